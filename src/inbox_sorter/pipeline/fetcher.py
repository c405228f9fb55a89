from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence

from inbox_sorter.errors import describe_error
from inbox_sorter.gmail.mailbox import Mailbox
from inbox_sorter.models import NormalizedMessage
from inbox_sorter.observability.logging import get_logger
from inbox_sorter.parsing.parser import normalize_message
from inbox_sorter.pipeline.retry import RetryPolicy
from inbox_sorter.pipeline.scheduler import BatchScheduler, FixedDelayLimiter

logger = get_logger(__name__)

UNREAD_FILTER = "is:unread"


@dataclass
class FetchPage:
    messages: List[NormalizedMessage] = field(default_factory=list)
    next_page_token: Optional[str] = None
    # message id -> reason, for ids that were listed but could not be loaded.
    failed: Dict[str, str] = field(default_factory=dict)
    # Ids listed but not loaded before the deadline passed.
    pending: List[str] = field(default_factory=list)


def build_query(query: str = "", unread_only: bool = False) -> str:
    """The caller's query is passed through verbatim; unread_only appends is:unread."""
    query = (query or "").strip()
    if unread_only and UNREAD_FILTER not in query.split():
        query = f"{query} {UNREAD_FILTER}".strip()
    return query


class MessageFetcher:
    """List ids for one page, then load full messages in small paced sub-batches."""

    def __init__(
        self,
        mailbox: Mailbox,
        *,
        detail_batch_size: int = 10,
        delay_s: float = 0.1,
        retry: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._mailbox = mailbox
        self._detail_batch_size = detail_batch_size
        self._delay_s = delay_s
        self._sleep = sleep
        self._clock = clock
        # Only the list call is retried; a failed detail fetch just drops that message.
        self.retry = retry or RetryPolicy(sleep=sleep, stage="fetch")

    async def fetch_messages(
        self,
        query: str = "",
        max_results: int = 50,
        page_token: Optional[str] = None,
        *,
        unread_only: bool = False,
        deadline: Optional[float] = None,
    ) -> FetchPage:
        q = build_query(query, unread_only)
        (ids, next_token), _ = await self.retry.call(
            lambda: self._mailbox.list_message_ids(q, max_results, page_token)
        )
        logger.info("[fetch] %d message id(s) listed for query %r", len(ids), q)

        page = FetchPage(next_page_token=next_token)
        await self._load_details(ids, page, deadline)
        return page

    async def fetch_by_ids(self, message_ids: Sequence[str], *, deadline: Optional[float] = None) -> FetchPage:
        """Load known ids without a list call, e.g. to label an earlier run's results."""
        page = FetchPage()
        await self._load_details(list(dict.fromkeys(message_ids)), page, deadline)
        return page

    async def _load_details(self, ids: List[str], page: FetchPage, deadline: Optional[float]) -> None:
        async def load(message_id: str) -> Optional[NormalizedMessage]:
            try:
                raw = await self._mailbox.get_message(message_id, fmt="full")
                return normalize_message(raw)
            except Exception as exc:
                # Typically deleted or moved between the list and the get call.
                reason = describe_error(exc)
                page.failed[message_id] = reason
                logger.warning("[fetch] skipping message %s: %s", message_id, reason)
                return None

        # A fresh limiter per page: the first sub-batch of a page is not delayed.
        scheduler = BatchScheduler(
            self._detail_batch_size,
            limiter=FixedDelayLimiter(self._delay_s, sleep=self._sleep),
            name="fetch",
            clock=self._clock,
        )
        schedule = await scheduler.run(ids, load, deadline=deadline)
        page.messages = [m for m in schedule.results if m is not None]
        page.pending = list(schedule.pending)

        if page.failed:
            logger.info("[fetch] %d loaded, %d failed", len(page.messages), len(page.failed))

    async def iter_pages(
        self,
        query: str = "",
        max_results: int = 50,
        page_token: Optional[str] = None,
        *,
        unread_only: bool = False,
        max_pages: Optional[int] = None,
    ) -> AsyncIterator[FetchPage]:
        """Yield pages until the provider has no next page, or max_pages is reached."""
        pages = 0
        token = page_token
        while True:
            page = await self.fetch_messages(query, max_results, token, unread_only=unread_only)
            yield page
            pages += 1
            token = page.next_page_token
            if not token or (max_pages is not None and pages >= max_pages):
                return
