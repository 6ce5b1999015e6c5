"""
Triage Application DTOs
========================

Pydantic models for request/response validation.
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator


# ========== Type Aliases for Literals ==========
CategoryStr = Literal[
    "COMPLAINT", "BILLING", "HOUSEKEEPING", "MAINTENANCE", "CONCIERGE",
    "ROOM_SERVICE", "CHECK_IN_OUT", "BOOKING", "OTHER"
]
DepartmentStr = Literal[
    "FRONT_DESK", "HOUSEKEEPING", "MAINTENANCE", "CONCIERGE", "BILLING", "MANAGEMENT"
]
PriorityStr = Literal["LOW", "MEDIUM", "HIGH", "URGENT"]


# ========== Request DTOs ==========

class ClassifyRequest(BaseModel):
    """Request model for keyword classification."""
    subject: str = Field(default="", description="Conversation subject")
    message_text: str = Field(default="", description="Concatenated message bodies")

    @field_validator("message_text")
    @classmethod
    def validate_message_length(cls, v: str) -> str:
        """Keep request bodies bounded."""
        if len(v) > 20000:
            raise ValueError("message_text too long (max 20000 characters)")
        return v


# ========== Response DTOs ==========

class ClassificationResponse(BaseModel):
    """Response model for keyword classification."""
    category: CategoryStr
    department: DepartmentStr
    priority: PriorityStr
