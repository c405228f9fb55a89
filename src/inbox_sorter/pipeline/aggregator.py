"""
Pure reduction of one run's collected outcomes into a RunSummary.

No I/O happens here. Every message id that entered the run yields exactly
one row: loaded messages first (in fetch order), then ids whose detail fetch
failed, then ids never reached because the deadline passed.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Set

from inbox_sorter.models import (
    BatchOutcome,
    Category,
    ClassificationResult,
    MessageRow,
    NormalizedMessage,
    Priority,
    RunSummary,
)

LABELED = "labeled"
CLASSIFIED = "classified"
SKIPPED = "skipped"
ERROR = "error"


@dataclass
class RunRecord:
    messages: Sequence[NormalizedMessage] = ()
    classifications: Mapping[str, ClassificationResult] = field(default_factory=dict)
    outcomes: Mapping[str, BatchOutcome] = field(default_factory=dict)
    skipped_ids: Set[str] = field(default_factory=set)
    # message id -> reason
    fetch_failures: Mapping[str, str] = field(default_factory=dict)
    # message id -> reason, for work cut off by the deadline
    not_processed: Mapping[str, str] = field(default_factory=dict)
    # Run-level problems not tied to one message (label listing/creation).
    run_errors: Sequence[str] = ()
    labels_created: int = 0
    provider_breakdown: Mapping[str, int] = field(default_factory=dict)
    next_page_token: Optional[str] = None
    started_at: float = 0.0
    finished_at: float = 0.0


def _row_for(message: NormalizedMessage, record: RunRecord) -> MessageRow:
    mid = message.message_id
    common = {"message_id": mid, "subject": message.subject, "from_email": message.from_email}

    if mid in record.skipped_ids:
        return MessageRow(status=SKIPPED, **common)

    result = record.classifications.get(mid)
    if result is None:
        reason = record.not_processed.get(mid, "not classified")
        return MessageRow(status=ERROR, error=reason, **common)

    outcome = record.outcomes.get(mid)
    if outcome is not None and not outcome.success:
        return MessageRow(status=ERROR, classification=result, outcome=outcome, error=outcome.error, **common)
    if result.error:
        return MessageRow(status=ERROR, classification=result, outcome=outcome, error=result.error, **common)
    if outcome is not None and outcome.applied_labels:
        return MessageRow(status=LABELED, classification=result, outcome=outcome, **common)
    return MessageRow(status=CLASSIFIED, classification=result, outcome=outcome, **common)


def aggregate(record: RunRecord) -> RunSummary:
    rows: List[MessageRow] = [_row_for(m, record) for m in record.messages]
    seen = {row.message_id for row in rows}

    for mid, reason in record.fetch_failures.items():
        if mid not in seen:
            rows.append(MessageRow(message_id=mid, status=ERROR, error=f"fetch failed: {reason}"))
            seen.add(mid)
    for mid, reason in record.not_processed.items():
        if mid not in seen:
            rows.append(MessageRow(message_id=mid, status=ERROR, error=reason))
            seen.add(mid)

    classified_rows = [row for row in rows if row.classification is not None]
    breakdown: Counter = Counter(row.classification.category.value for row in classified_rows)

    errors: List[str] = []
    warnings: List[str] = []
    for row in rows:
        if row.status == ERROR:
            errors.append(f"message {row.message_id}: {row.error}")
        if row.outcome is not None and row.outcome.verified is False:
            warnings.append(f"message {row.message_id}: labels not visible after re-read")
    errors.extend(record.run_errors)

    labels_applied = sum(
        len(row.outcome.applied_labels) for row in rows if row.outcome is not None and row.outcome.success
    )

    return RunSummary(
        total_processed=len(classified_rows),
        total_classified=sum(
            1 for row in classified_rows if row.classification.category is not Category.UNCATEGORIZED
        ),
        labels_applied=labels_applied,
        errors=errors,
        category_breakdown=dict(breakdown),
        duration_ms=max(0, int(round((record.finished_at - record.started_at) * 1000))),
        skipped=sum(1 for row in rows if row.status == SKIPPED),
        high_priority=sum(1 for row in classified_rows if row.classification.priority is Priority.HIGH),
        follow_ups=sum(1 for row in classified_rows if row.classification.needs_follow_up),
        labels_created=record.labels_created,
        provider_breakdown=dict(record.provider_breakdown),
        warnings=warnings,
        next_page_token=record.next_page_token,
        rows=rows,
    )


def status_counts(summary: RunSummary) -> Dict[str, int]:
    return dict(Counter(row.status for row in summary.rows))
