from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

from inbox_sorter.observability.logging import get_logger

T = TypeVar("T")
R = TypeVar("R")

Sleep = Callable[[float], Awaitable[None]]

logger = get_logger(__name__)


class FixedDelayLimiter:
    """Waits a fixed delay before every dispatch except the first."""

    def __init__(self, delay_s: float, sleep: Sleep = asyncio.sleep):
        self.delay_s = delay_s
        self._sleep = sleep
        self._dispatched = False

    async def wait(self) -> None:
        if self._dispatched and self.delay_s > 0:
            await self._sleep(self.delay_s)
        self._dispatched = True


@dataclass
class ScheduleResult(Generic[T, R]):
    # One result per dispatched item, in submission order.
    results: List[R] = field(default_factory=list)
    # Items never dispatched because the deadline passed.
    pending: List[T] = field(default_factory=list)
    batches_run: int = 0

    @property
    def timed_out(self) -> bool:
        return bool(self.pending)


class BatchScheduler:
    """
    Splits work into fixed-size batches and runs them strictly one after another.

    Items inside a batch run concurrently (optionally capped by max_concurrency);
    the limiter is awaited before each batch is dispatched. Workers are expected
    to turn their own failures into results; an exception escaping a worker
    propagates to the caller.
    """

    def __init__(
        self,
        batch_size: int,
        *,
        limiter: Optional[FixedDelayLimiter] = None,
        max_concurrency: Optional[int] = None,
        name: str = "batch",
        clock: Callable[[], float] = time.monotonic,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.batch_size = batch_size
        self.limiter = limiter or FixedDelayLimiter(0.0)
        self.max_concurrency = max_concurrency
        self.name = name
        self._clock = clock

    def batches(self, items: Sequence[T]) -> List[List[T]]:
        return [list(items[i : i + self.batch_size]) for i in range(0, len(items), self.batch_size)]

    async def run(
        self,
        items: Sequence[T],
        worker: Callable[[T], Awaitable[R]],
        *,
        deadline: Optional[float] = None,
        on_batch_done: Optional[Callable[[int, int], None]] = None,
    ) -> ScheduleResult[T, R]:
        """
        Args:
            deadline: absolute clock() value; no batch starts after it.
            on_batch_done: called with (items_done, items_total) after each batch.
        """
        result: ScheduleResult[T, R] = ScheduleResult()
        batches = self.batches(items)
        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None

        async def guarded(item: T) -> R:
            if semaphore is None:
                return await worker(item)
            async with semaphore:
                return await worker(item)

        done = 0
        for index, batch in enumerate(batches, start=1):
            await self.limiter.wait()
            if deadline is not None and self._clock() >= deadline:
                for rest in batches[index - 1 :]:
                    result.pending.extend(rest)
                logger.warning(
                    "[%s] deadline reached, %d item(s) not dispatched", self.name, len(result.pending)
                )
                break

            batch_results = await asyncio.gather(*(guarded(item) for item in batch))
            result.results.extend(batch_results)
            result.batches_run += 1
            done += len(batch)
            logger.debug("[%s] batch %d/%d done (%d/%d)", self.name, index, len(batches), done, len(items))
            if on_batch_done:
                on_batch_done(done, len(items))

        return result
