from __future__ import annotations

from typing import List, Optional, Sequence

from inbox_sorter.models import Category, ClassificationResult, NormalizedMessage, Priority
from inbox_sorter.rules.base import BaseRule, MailText
from inbox_sorter.rules.builtins import default_rules

RULES_PROVIDER = "rules"

CATCH_ALL_CONFIDENCE = 0.3

POSITIVE_WORDS = (
    "thank", "great", "congratulations", "congrats", "happy", "pleased",
    "appreciate", "welcome", "excellent", "love", "glad",
)
NEGATIVE_WORDS = (
    "unfortunately", "problem", "issue", "failed", "failure", "regret", "sorry",
    "complaint", "overdue", "declined", "rejected", "cancelled", "error", "angry",
)
SENTIMENT_STEP = 0.25


def sentiment_score(text: str) -> float:
    """Signed keyword hits, each worth SENTIMENT_STEP, clamped to [-1, 1]."""
    t = (text or "").lower()
    score = sum(SENTIMENT_STEP for w in POSITIVE_WORDS if w in t)
    score -= sum(SENTIMENT_STEP for w in NEGATIVE_WORDS if w in t)
    return max(-1.0, min(1.0, score))


class RuleBasedClassifier:
    """Deterministic keyword/domain classifier. Never fails."""

    def __init__(self, rules: Optional[Sequence[BaseRule]] = None):
        self.rules: List[BaseRule] = list(rules) if rules is not None else default_rules()

    def classify(self, message: NormalizedMessage) -> ClassificationResult:
        mail = MailText.of(message)
        sentiment = sentiment_score(f"{mail.subject}\n{mail.body}")

        # Ordered if/else chain: rule order is the tie-break.
        for rule in self.rules:
            match = rule.match(mail)
            if match.matched:
                return ClassificationResult(
                    category=rule.category,
                    confidence=rule.confidence,
                    sentiment=sentiment,
                    priority=rule.priority,
                    needs_follow_up=rule.needs_follow_up,
                    follow_up_suggestion=rule.follow_up_suggestion,
                    suggested_response=rule.suggested_response,
                    reasoning=f"Matched rule {rule.name}: {match.reason}",
                    provider=RULES_PROVIDER,
                )

        return catch_all_result("No rule matched", provider=RULES_PROVIDER, sentiment=sentiment)


def catch_all_result(
    reasoning: str, *, provider: str, sentiment: float = 0.0, error: Optional[str] = None
) -> ClassificationResult:
    return ClassificationResult(
        category=Category.UNCATEGORIZED,
        confidence=CATCH_ALL_CONFIDENCE if error is None else 0.0,
        sentiment=sentiment,
        priority=Priority.LOW,
        needs_follow_up=False,
        follow_up_suggestion="",
        suggested_response="",
        reasoning=reasoning,
        provider=provider,
        error=error,
    )
