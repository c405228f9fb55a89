from __future__ import annotations

import base64
import itertools
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import pytest

from inbox_sorter.classification.strategies import ClassificationStrategy
from inbox_sorter.gmail.label_colors import LabelColor
from inbox_sorter.models import Category, ClassificationResult, NormalizedMessage, Priority


def encode_body(text: str) -> str:
    # Gmail style: base64url without padding.
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def raw_message(
    message_id: str,
    *,
    subject: str = "",
    sender: str = "someone@example.com",
    body: str = "",
    snippet: str = "",
    label_ids: Iterable[str] = ("INBOX", "UNREAD"),
    internal_date_ms: int = 1_700_000_000_000,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "mimeType": "text/plain",
        "headers": [
            {"name": "Subject", "value": subject},
            {"name": "From", "value": sender},
            {"name": "To", "value": "me@example.com"},
        ],
        "body": {"data": encode_body(body)} if body else {"size": 0},
    }
    return {
        "id": message_id,
        "threadId": f"t-{message_id}",
        "labelIds": list(label_ids),
        "snippet": snippet or body[:100],
        "internalDate": str(internal_date_ms),
        "payload": payload,
    }


def make_message(
    message_id: str = "m1",
    *,
    subject: str = "",
    sender: str = "someone@example.com",
    body: str = "",
    label_ids: Iterable[str] = (),
) -> NormalizedMessage:
    return NormalizedMessage(
        message_id=message_id,
        thread_id=f"t-{message_id}",
        subject=subject,
        from_email=sender,
        to=("me@example.com",),
        body_text=body,
        snippet=body[:100],
        internal_date_ms=1_700_000_000_000,
        is_read=False,
        label_ids=frozenset(label_ids),
    )


def make_result(category: Category, provider: str = "fake", **overrides: Any) -> ClassificationResult:
    values: Dict[str, Any] = dict(
        category=category,
        confidence=0.9,
        sentiment=0.0,
        priority=Priority.MEDIUM,
        needs_follow_up=False,
        follow_up_suggestion="",
        suggested_response="",
        reasoning="test",
        provider=provider,
    )
    values.update(overrides)
    return ClassificationResult(**values)


class SleepRecorder:
    """Stands in for asyncio.sleep; records every requested delay.

    `clock` reads simulated time, which only moves when something sleeps.
    """

    def __init__(self) -> None:
        self.delays: List[float] = []
        self.now = 0.0

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        self.now += delay

    def clock(self) -> float:
        return self.now


class FakeMailbox:
    """In-memory mailbox with the same async surface as GmailMailbox."""

    def __init__(
        self,
        messages: Sequence[Dict[str, Any]] = (),
        labels: Sequence[Dict[str, Any]] = (),
    ) -> None:
        self.raw: Dict[str, Dict[str, Any]] = {m["id"]: m for m in messages}
        self.message_labels: Dict[str, Set[str]] = {m["id"]: set(m.get("labelIds") or []) for m in messages}
        self.labels: List[Dict[str, Any]] = [dict(label) for label in labels]
        self.created: List[Tuple[str, LabelColor]] = []
        self.calls: List[Tuple[Any, ...]] = []
        self._ids = itertools.count(1)

        # Failure injection.
        self.fail_get: Set[str] = set()
        self.fail_create: Set[str] = set()
        self.fail_list_labels = False
        self.fail_list_messages = 0
        # message id -> remaining failures, -1 for every attempt.
        self.fail_modify: Dict[str, int] = {}
        self.modify_error: Exception = ConnectionError("503 backend error")
        # Labels silently dropped by modify; makes verification fail.
        self.drop_on_modify: Set[str] = set()

    async def list_message_ids(
        self, query: str, max_results: int, page_token: Optional[str] = None
    ) -> Tuple[List[str], Optional[str]]:
        self.calls.append(("list", query, max_results, page_token))
        if self.fail_list_messages:
            self.fail_list_messages -= 1
            raise ConnectionError("list failed")
        ids = list(self.raw)
        start = int(page_token or 0)
        end = start + max_results
        return ids[start:end], (str(end) if end < len(ids) else None)

    async def get_message(self, message_id: str, fmt: str = "full") -> Dict[str, Any]:
        self.calls.append(("get", message_id, fmt))
        if message_id in self.fail_get or message_id not in self.raw:
            raise KeyError(f"message {message_id} not found")
        labels = sorted(self.message_labels[message_id])
        if fmt == "minimal":
            return {"id": message_id, "labelIds": labels}
        msg = dict(self.raw[message_id])
        msg["labelIds"] = labels
        return msg

    async def list_labels(self) -> List[Dict[str, Any]]:
        self.calls.append(("list_labels",))
        if self.fail_list_labels:
            raise ConnectionError("labels.list failed")
        return [dict(label) for label in self.labels]

    async def create_label(self, name: str, color: LabelColor) -> str:
        self.calls.append(("create_label", name))
        if name in self.fail_create:
            raise RuntimeError(f"cannot create {name}")
        if any(label["name"] == name for label in self.labels):
            raise RuntimeError(f"409 label {name} already exists")
        label_id = f"Label_{next(self._ids)}"
        self.labels.append({"id": label_id, "name": name, "type": "user"})
        self.created.append((name, color))
        return label_id

    async def modify_message_labels(
        self,
        message_id: str,
        add_label_ids: Sequence[str] = (),
        remove_label_ids: Sequence[str] = (),
    ) -> Dict[str, Any]:
        self.calls.append(("modify", message_id, tuple(add_label_ids), tuple(remove_label_ids)))
        remaining = self.fail_modify.get(message_id, 0)
        if remaining:
            if remaining > 0:
                self.fail_modify[message_id] = remaining - 1
            raise self.modify_error
        current = self.message_labels.setdefault(message_id, set())
        current.update(label_id for label_id in add_label_ids if label_id not in self.drop_on_modify)
        current.difference_update(remove_label_ids)
        return {"id": message_id, "labelIds": sorted(current)}

    def modify_calls(self) -> List[Tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == "modify"]


class FakeStrategy(ClassificationStrategy):
    """Returns canned results per message id, or raises."""

    def __init__(
        self,
        name: str,
        results: Optional[Dict[str, ClassificationResult]] = None,
        *,
        fail_for: Iterable[str] = (),
        fail_all: bool = False,
        configured: bool = True,
        error: Optional[Exception] = None,
    ) -> None:
        self.name = name
        self.results = results or {}
        self.fail_for = set(fail_for)
        self.fail_all = fail_all
        self.configured = configured
        self.error = error
        self.seen: List[str] = []

    def is_configured(self) -> bool:
        return self.configured

    async def classify(self, message: NormalizedMessage) -> ClassificationResult:
        self.seen.append(message.message_id)
        if self.fail_all or message.message_id in self.fail_for or message.message_id not in self.results:
            raise self.error or RuntimeError(f"{self.name} unavailable")
        return self.results[message.message_id]


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in (
        "OPENAI_API_KEY",
        "GEMINI_API_KEY",
        "GOOGLE_API_KEY",
        "INBOX_SORTER_LABEL_PREFIX",
        "INBOX_SORTER_OPENAI_MODEL",
        "INBOX_SORTER_GEMINI_MODEL",
        "INBOX_SORTER_REQUEST_TIMEOUT",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()
