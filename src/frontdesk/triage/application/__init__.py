"""
Triage Application Layer
=========================

Contains:
- Services: ClassificationService
- DTOs: request/response models for the triage API
"""

from frontdesk.triage.application.dto import ClassifyRequest, ClassificationResponse
from frontdesk.triage.application.services import (
    ClassificationService,
    IKeywordRuleProvider,
    StaticKeywordRuleProvider,
)

__all__ = [
    # DTOs
    "ClassifyRequest",
    "ClassificationResponse",
    # Services
    "ClassificationService",
    # Provider Interfaces
    "IKeywordRuleProvider",
    "StaticKeywordRuleProvider",
]
