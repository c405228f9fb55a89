from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from inbox_sorter.errors import RetriesExhausted, describe_error
from inbox_sorter.gmail.mailbox import Mailbox
from inbox_sorter.models import BatchOutcome
from inbox_sorter.observability.logging import get_logger
from inbox_sorter.pipeline.retry import RetryPolicy
from inbox_sorter.pipeline.scheduler import BatchScheduler, FixedDelayLimiter

logger = get_logger(__name__)

LabelPair = Tuple[str, Sequence[str]]

ADD = "add"
REMOVE = "remove"


@dataclass
class BulkResult:
    outcomes: List[BatchOutcome] = field(default_factory=list)
    # Pairs never dispatched because the caller's deadline passed.
    pending: List[str] = field(default_factory=list)

    @property
    def successful(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def labels_changed(self) -> int:
        return sum(len(o.applied_labels) for o in self.outcomes if o.success)

    @property
    def errors(self) -> List[str]:
        return [f"{o.message_id}: {o.error}" for o in self.outcomes if not o.success]

    @property
    def verification_mismatches(self) -> List[str]:
        return [o.message_id for o in self.outcomes if o.verified is False]


def _unique(label_ids: Sequence[str]) -> List[str]:
    return [label_id for label_id in dict.fromkeys(label_ids) if label_id]


class BulkLabelApplier:
    """
    Applies or removes labels message by message.

    Pairs are processed in batches of batch_size; a batch runs concurrently
    and a fixed delay separates consecutive batches. Each message's modify
    call has its own retry policy, so one bad message never costs the batch.
    """

    def __init__(
        self,
        mailbox: Mailbox,
        *,
        batch_size: int = 50,
        batch_delay_s: float = 0.2,
        retry: Optional[RetryPolicy] = None,
        verify: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._mailbox = mailbox
        self.retry = retry or RetryPolicy(sleep=sleep, stage="apply")
        self.verify = verify
        self._scheduler = BatchScheduler(
            batch_size,
            limiter=FixedDelayLimiter(batch_delay_s, sleep=sleep),
            name="apply",
            clock=clock,
        )

    async def apply_labels(self, message_id: str, label_ids: Sequence[str]) -> BatchOutcome:
        return await self._modify(message_id, _unique(label_ids), ADD)

    async def remove_labels(self, message_id: str, label_ids: Sequence[str]) -> BatchOutcome:
        return await self._modify(message_id, _unique(label_ids), REMOVE)

    async def bulk_apply(self, pairs: Sequence[LabelPair], *, deadline: Optional[float] = None) -> BulkResult:
        return await self._bulk(pairs, ADD, deadline=deadline)

    async def bulk_remove(self, pairs: Sequence[LabelPair], *, deadline: Optional[float] = None) -> BulkResult:
        return await self._bulk(pairs, REMOVE, deadline=deadline)

    async def verify_labels(self, message_id: str, label_ids: Sequence[str], *, present: bool = True) -> bool:
        """Re-read the message (minimal projection) and check its label set."""
        msg = await self._mailbox.get_message(message_id, fmt="minimal")
        current = set(msg.get("labelIds") or [])
        if present:
            return all(label_id in current for label_id in label_ids)
        return not any(label_id in current for label_id in label_ids)

    async def _bulk(self, pairs: Sequence[LabelPair], mode: str, *, deadline: Optional[float]) -> BulkResult:
        async def worker(pair: LabelPair) -> BatchOutcome:
            message_id, label_ids = pair
            return await self._modify(message_id, _unique(label_ids), mode)

        schedule = await self._scheduler.run(list(pairs), worker, deadline=deadline)
        result = BulkResult(outcomes=list(schedule.results), pending=[mid for mid, _ in schedule.pending])
        logger.info(
            "[apply] %s labels: %d ok, %d failed, %d not dispatched",
            mode,
            result.successful,
            result.failed,
            len(result.pending),
        )
        return result

    async def _modify(self, message_id: str, label_ids: List[str], mode: str) -> BatchOutcome:
        if not label_ids:
            return BatchOutcome(message_id=message_id, applied_labels=(), success=True, attempts=0)

        async def call():
            if mode == ADD:
                return await self._mailbox.modify_message_labels(message_id, add_label_ids=label_ids)
            return await self._mailbox.modify_message_labels(message_id, remove_label_ids=label_ids)

        try:
            _, attempts = await self.retry.call(call)
        except RetriesExhausted as exc:
            logger.error("[apply] %s %s on %s %s", mode, label_ids, message_id, exc)
            return BatchOutcome(
                message_id=message_id,
                applied_labels=(),
                success=False,
                attempts=exc.attempts,
                error=str(exc),
            )

        verified = None
        if self.verify:
            verified = await self._verify(message_id, label_ids, present=(mode == ADD))

        return BatchOutcome(
            message_id=message_id,
            applied_labels=tuple(label_ids),
            success=True,
            attempts=attempts,
            verified=verified,
        )

    async def _verify(self, message_id: str, label_ids: List[str], *, present: bool) -> Optional[bool]:
        # A mismatch is reported, never retried: provider state may lag behind.
        try:
            ok = await self.verify_labels(message_id, label_ids, present=present)
        except Exception as exc:
            logger.warning("[verify] could not re-read %s: %s", message_id, describe_error(exc))
            return None
        if not ok:
            logger.warning("[verify] labels %s not %s on %s", label_ids, "present" if present else "removed", message_id)
        return ok
