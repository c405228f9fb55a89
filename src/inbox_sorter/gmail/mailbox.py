from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from inbox_sorter.gmail.client import GmailClient
from inbox_sorter.gmail.label_colors import LabelColor


class Mailbox(Protocol):
    """The provider operations the pipeline consumes. Every call is awaitable."""

    async def list_message_ids(
        self, query: str, max_results: int, page_token: Optional[str] = None
    ) -> Tuple[List[str], Optional[str]]: ...

    async def get_message(self, message_id: str, fmt: str = "full") -> Dict[str, Any]: ...

    async def list_labels(self) -> List[Dict[str, Any]]: ...

    async def create_label(self, name: str, color: LabelColor) -> str: ...

    async def modify_message_labels(
        self,
        message_id: str,
        add_label_ids: Sequence[str] = (),
        remove_label_ids: Sequence[str] = (),
    ) -> Dict[str, Any]: ...


class GmailMailbox:
    """Runs the blocking GmailClient calls in worker threads."""

    def __init__(self, client: GmailClient):
        self._client = client

    async def list_message_ids(
        self, query: str, max_results: int, page_token: Optional[str] = None
    ) -> Tuple[List[str], Optional[str]]:
        return await asyncio.to_thread(self._client.list_message_ids, query, max_results, page_token)

    async def get_message(self, message_id: str, fmt: str = "full") -> Dict[str, Any]:
        return await asyncio.to_thread(self._client.get_message, message_id, fmt)

    async def list_labels(self) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._client.list_labels)

    async def create_label(self, name: str, color: LabelColor) -> str:
        return await asyncio.to_thread(self._client.create_label, name, color)

    async def modify_message_labels(
        self,
        message_id: str,
        add_label_ids: Sequence[str] = (),
        remove_label_ids: Sequence[str] = (),
    ) -> Dict[str, Any]:
        return await asyncio.to_thread(
            self._client.modify_message_labels, message_id, add_label_ids, remove_label_ids
        )
