"""
Triage Domain Layer
===================

Domain layer for keyword triage.

Contains:
- Entities: ClassificationResult, KeywordRule
- Domain Services: KeywordClassifier (first-match-wins rule evaluation)

This layer is framework-agnostic and contains pure business logic.
"""

from frontdesk.triage.domain.entities import (
    ClassificationResult,
    DEFAULT_CLASSIFICATION,
    KeywordRule,
    KeywordClassifier,
    default_keyword_rules,
)

__all__ = [
    "ClassificationResult",
    "DEFAULT_CLASSIFICATION",
    "KeywordRule",
    "KeywordClassifier",
    "default_keyword_rules",
]
