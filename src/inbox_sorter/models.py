from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple


class Category(str, Enum):
    PERSONAL = "Personal"
    WORK = "Work"
    PROMOTIONAL = "Promotional"
    SOCIAL = "Social"
    NOTIFICATION = "Notification"
    FINANCE = "Finance"
    CAREER = "Career"
    URGENT = "Urgent"
    # Terminal catch-all, never offered to the AI providers.
    UNCATEGORIZED = "Uncategorized"

    @classmethod
    def parse(cls, value: Any) -> Optional["Category"]:
        """Map a provider-supplied string onto the taxonomy, or None."""
        if isinstance(value, Category):
            return value
        if not isinstance(value, str):
            return None
        key = value.strip().lower()
        key = _CATEGORY_ALIASES.get(key, key)
        for member in cls:
            if key in (member.value.lower(), member.name.lower()):
                return member
        return None


# Long display names accepted for a category; any other decorated value is rejected.
_CATEGORY_ALIASES: Dict[str, str] = {
    "urgent/follow-up": "urgent",
    "urgent/follow up": "urgent",
    "urgent/followup": "urgent",
}


# The eight categories a classifier may assign.
TAXONOMY: Tuple[Category, ...] = tuple(c for c in Category if c is not Category.UNCATEGORIZED)


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Any) -> "Priority":
        text = str(value or "").strip().lower()
        if text in ("high", "urgent", "critical"):
            return cls.HIGH
        if text == "low":
            return cls.LOW
        return cls.MEDIUM


HIGH_CONFIDENCE = 0.8
MEDIUM_CONFIDENCE = 0.5


def confidence_band(confidence: float) -> str:
    """high (decisive) >= 0.8, medium (ambiguous) >= 0.5, low below."""
    if confidence >= HIGH_CONFIDENCE:
        return "high"
    if confidence >= MEDIUM_CONFIDENCE:
        return "medium"
    return "low"


@dataclass(frozen=True)
class NormalizedMessage:
    message_id: str
    thread_id: Optional[str]
    subject: str
    from_email: str
    to: Tuple[str, ...]
    body_text: str
    snippet: str
    internal_date_ms: int
    is_read: bool
    label_ids: FrozenSet[str] = frozenset()
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def timestamp(self) -> datetime:
        return datetime.fromtimestamp(self.internal_date_ms / 1000, tz=timezone.utc)

    @property
    def sender_domain(self) -> str:
        addr = self.from_email.rsplit("<", 1)[-1].rstrip(">").strip().lower()
        return addr.rsplit("@", 1)[-1] if "@" in addr else ""


@dataclass(frozen=True)
class ClassificationResult:
    category: Category
    confidence: float
    sentiment: float
    priority: Priority
    needs_follow_up: bool
    follow_up_suggestion: str
    suggested_response: str
    reasoning: str
    # Which stage of the fallback chain produced this result.
    provider: str
    # Set only when every permitted stage failed and the catch-all was used.
    error: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.category, Category):
            raise ValueError(f"category must be a Category, got {self.category!r}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence out of range: {self.confidence}")
        if not -1.0 <= self.sentiment <= 1.0:
            raise ValueError(f"sentiment out of range: {self.sentiment}")

    @property
    def band(self) -> str:
        return confidence_band(self.confidence)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["category"] = self.category.value
        data["priority"] = self.priority.value
        data["band"] = self.band
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ClassificationResult":
        """Inverse of to_dict; raises ValueError for a category outside the taxonomy."""
        category = Category.parse(data.get("category"))
        if category is None:
            raise ValueError(f"unknown category {data.get('category')!r}")
        return cls(
            category=category,
            confidence=float(data.get("confidence", 0.0)),
            sentiment=float(data.get("sentiment", 0.0)),
            priority=Priority.parse(data.get("priority")),
            needs_follow_up=bool(data.get("needs_follow_up", False)),
            follow_up_suggestion=str(data.get("follow_up_suggestion") or ""),
            suggested_response=str(data.get("suggested_response") or ""),
            reasoning=str(data.get("reasoning") or ""),
            provider=str(data.get("provider") or "unknown"),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class BatchOutcome:
    message_id: str
    applied_labels: Tuple[str, ...]
    success: bool
    attempts: int
    error: Optional[str] = None
    # None when verification was not requested or the call failed.
    verified: Optional[bool] = None


@dataclass(frozen=True)
class MessageRow:
    message_id: str
    status: str  # labeled | classified | skipped | error
    subject: str = ""
    from_email: str = ""
    classification: Optional[ClassificationResult] = None
    outcome: Optional[BatchOutcome] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message_id": self.message_id,
            "status": self.status,
            "subject": self.subject,
            "from": self.from_email,
            "classification": self.classification.to_dict() if self.classification else None,
            "applied_labels": list(self.outcome.applied_labels) if self.outcome else [],
            "attempts": self.outcome.attempts if self.outcome else 0,
            "verified": self.outcome.verified if self.outcome else None,
            "error": self.error,
        }


@dataclass
class RunSummary:
    total_processed: int
    total_classified: int
    labels_applied: int
    errors: List[str]
    category_breakdown: Dict[str, int]
    duration_ms: int
    skipped: int = 0
    high_priority: int = 0
    follow_ups: int = 0
    labels_created: int = 0
    provider_breakdown: Dict[str, int] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    next_page_token: Optional[str] = None
    rows: List[MessageRow] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_processed": self.total_processed,
            "total_classified": self.total_classified,
            "labels_applied": self.labels_applied,
            "errors": list(self.errors),
            "category_breakdown": dict(self.category_breakdown),
            "duration_ms": self.duration_ms,
            "skipped": self.skipped,
            "high_priority": self.high_priority,
            "follow_ups": self.follow_ups,
            "labels_created": self.labels_created,
            "provider_breakdown": dict(self.provider_breakdown),
            "warnings": list(self.warnings),
            "next_page_token": self.next_page_token,
            "rows": [row.to_dict() for row in self.rows],
        }
