"""
Single-operation retry with exponential backoff.

Only the failing operation is retried; batching and rate limiting live in the
scheduler. The delay before retry n is base ** n seconds (2s, 4s, 8s, ...),
capped at max_delay.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Tuple, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from inbox_sorter.errors import RetriesExhausted, describe_error, is_retryable
from inbox_sorter.observability.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    base: float = 2.0
    max_delay: float = 60.0
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    retry_if: Callable[[BaseException], bool] = is_retryable
    stage: str = "op"

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        return min(self.base ** attempt, self.max_delay)

    def delays(self) -> List[float]:
        return [self.delay_for(attempt) for attempt in range(1, self.max_attempts)]

    def _wait(self, state: RetryCallState) -> float:
        return self.delay_for(state.attempt_number)

    def _before_sleep(self, state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        logger.info(
            "[%s] attempt %d/%d failed (%s), retrying in %.1fs",
            self.stage,
            state.attempt_number,
            self.max_attempts,
            describe_error(exc) if exc else "unknown",
            self.delay_for(state.attempt_number),
        )

    async def call(self, func: Callable[[], Awaitable[T]]) -> Tuple[T, int]:
        """
        Run func until it succeeds or attempts run out.

        Returns (result, attempts). Raises RetriesExhausted carrying the
        attempt count and the last error.
        """
        attempts = 0
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=self._wait,
                retry=retry_if_exception(self.retry_if),
                sleep=self.sleep,
                before_sleep=self._before_sleep,
                reraise=True,
            ):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    result = await func()
        except Exception as exc:
            raise RetriesExhausted(attempts, exc) from exc
        return result, attempts
