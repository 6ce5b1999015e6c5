"""
Triage Application Services
============================

Application service for keyword classification.

The rule table is pulled from a provider on every call so that a
hot-reloaded configuration takes effect without a restart.
"""

from abc import ABC, abstractmethod
from typing import List

from frontdesk.triage.domain import ClassificationResult, KeywordClassifier, KeywordRule
from frontdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Provider Interfaces ==========

class IKeywordRuleProvider(ABC):
    """Source of the ordered keyword rule table."""

    @abstractmethod
    def get_keyword_rules(self) -> List[KeywordRule]:
        """Return the current rule table in evaluation order."""


class StaticKeywordRuleProvider(IKeywordRuleProvider):
    """Fixed rule table, handy for tests and scripts."""

    def __init__(self, rules: List[KeywordRule]):
        self._rules = list(rules)

    def get_keyword_rules(self) -> List[KeywordRule]:
        return self._rules


# ========== Application Services ==========

class ClassificationService:
    """Classifies conversation text into category, department and priority."""

    def __init__(self, rule_provider: IKeywordRuleProvider):
        self._rule_provider = rule_provider

    def classifier(self) -> KeywordClassifier:
        return KeywordClassifier(self._rule_provider.get_keyword_rules())

    def classify(self, subject: str, message_text: str) -> ClassificationResult:
        """
        Classify a conversation.

        Args:
            subject: Conversation subject (may be empty)
            message_text: Concatenated message bodies

        Returns:
            ClassificationResult; never raises for any string input
        """
        result = self.classifier().classify(subject, message_text)
        logger.debug(
            "Conversation classified",
            extra={
                "category": result.category,
                "department": result.department,
                "priority": result.priority
            }
        )
        return result
