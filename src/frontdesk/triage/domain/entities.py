"""
Triage Domain Entities
======================

Domain objects for deterministic keyword triage of guest conversations.

A rule set is an ordered list of (predicate, outcome) pairs: every rule
carries a keyword predicate and the classification it yields. Order is
significant, the first rule whose predicate holds decides the outcome.
"""

from dataclasses import dataclass
from typing import Iterable, List, Sequence

from pydantic import BaseModel, Field, field_validator

from frontdesk.config import (
    Department, TicketCategory, TicketPriority,
    VALID_CATEGORIES, VALID_DEPARTMENTS, VALID_PRIORITIES
)


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of classifying a conversation."""
    category: str
    department: str
    priority: str

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "department": self.department,
            "priority": self.priority,
        }


DEFAULT_CLASSIFICATION = ClassificationResult(
    category=TicketCategory.OTHER,
    department=Department.FRONT_DESK,
    priority=TicketPriority.MEDIUM,
)


class KeywordRule(BaseModel):
    """
    A single triage rule.

    Matches when any keyword occurs as a substring of the lower-cased text.
    Keywords are normalised to lower case on load, so rules read from YAML
    may be written in any case.
    """
    keywords: List[str] = Field(..., min_length=1, description="Substrings that trigger the rule")
    category: str
    department: str
    priority: str

    @field_validator("keywords")
    @classmethod
    def normalise_keywords(cls, v: List[str]) -> List[str]:
        cleaned = [k.strip().lower() for k in v if k and k.strip()]
        if not cleaned:
            raise ValueError("rule needs at least one non-blank keyword")
        return cleaned

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: str) -> str:
        if v not in VALID_CATEGORIES:
            raise ValueError(f"unknown category {v!r}")
        return v

    @field_validator("department")
    @classmethod
    def validate_department(cls, v: str) -> str:
        if v not in VALID_DEPARTMENTS:
            raise ValueError(f"unknown department {v!r}")
        return v

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v: str) -> str:
        if v not in VALID_PRIORITIES:
            raise ValueError(f"unknown priority {v!r}")
        return v

    def matches(self, text: str) -> bool:
        """Predicate half of the rule; `text` must already be lower-cased."""
        return any(keyword in text for keyword in self.keywords)

    @property
    def outcome(self) -> ClassificationResult:
        return ClassificationResult(
            category=self.category,
            department=self.department,
            priority=self.priority,
        )


def _rule(keywords: Iterable[str], category: str, department: str, priority: str) -> KeywordRule:
    return KeywordRule(
        keywords=list(keywords),
        category=category,
        department=department,
        priority=priority,
    )


def default_keyword_rules() -> List[KeywordRule]:
    """
    Built-in hotel rule table.

    Urgency and complaint rules come first so that e.g. "urgent refund"
    lands on COMPLAINT/URGENT rather than BILLING.
    """
    return [
        _rule(["urgent", "emergency", "immediately", "asap", "critical"],
              TicketCategory.COMPLAINT, Department.MANAGEMENT, TicketPriority.URGENT),
        _rule(["complaint", "unhappy", "disappointed", "terrible", "unacceptable", "furious", "angry"],
              TicketCategory.COMPLAINT, Department.MANAGEMENT, TicketPriority.HIGH),
        _rule(["invoice", "bill", "charge", "payment", "refund", "overcharge", "receipt"],
              TicketCategory.BILLING, Department.BILLING, TicketPriority.MEDIUM),
        _rule(["clean", "dirty", "towel", "sheet", "housekeeping", "maid", "tidy", "vacuum",
               "trash", "amenities"],
              TicketCategory.HOUSEKEEPING, Department.HOUSEKEEPING, TicketPriority.MEDIUM),
        _rule(["broken", "fix", "repair", "maintenance", "leak", "noise", "ac", "air conditioning",
               "heating", "plumbing", "wifi", "internet", "tv", "light"],
              TicketCategory.MAINTENANCE, Department.MAINTENANCE, TicketPriority.MEDIUM),
        _rule(["restaurant", "reservation", "taxi", "cab", "tour", "recommend", "direction",
               "sightseeing", "spa", "gym"],
              TicketCategory.CONCIERGE, Department.CONCIERGE, TicketPriority.LOW),
        _rule(["food", "room service", "breakfast", "lunch", "dinner", "menu", "order", "hungry"],
              TicketCategory.ROOM_SERVICE, Department.FRONT_DESK, TicketPriority.MEDIUM),
        _rule(["check-in", "checkin", "check-out", "checkout", "early", "late", "arrival",
               "departure", "extend", "extension"],
              TicketCategory.CHECK_IN_OUT, Department.FRONT_DESK, TicketPriority.MEDIUM),
        _rule(["booking", "reservation", "cancel", "modify", "change", "room type", "upgrade",
               "downgrade"],
              TicketCategory.BOOKING, Department.FRONT_DESK, TicketPriority.MEDIUM),
    ]


class KeywordClassifier:
    """
    First-match-wins keyword classifier.

    Pure and total: any pair of strings yields exactly one
    ClassificationResult, falling back to OTHER/FRONT_DESK/MEDIUM.
    """

    def __init__(
        self,
        rules: Sequence[KeywordRule],
        default: ClassificationResult = DEFAULT_CLASSIFICATION
    ):
        self._rules = tuple(rules)
        self._default = default

    @property
    def rules(self) -> tuple:
        return self._rules

    @staticmethod
    def combine(subject: str, message_text: str) -> str:
        return f"{subject or ''} {message_text or ''}".lower()

    def classify(self, subject: str, message_text: str) -> ClassificationResult:
        text = self.combine(subject, message_text)
        for rule in self._rules:
            if rule.matches(text):
                return rule.outcome
        return self._default
