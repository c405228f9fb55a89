from __future__ import annotations

import socket
from typing import Optional

from googleapiclient.errors import HttpError


class InboxSorterError(RuntimeError):
    """Base class for pipeline errors."""


class ConfigurationError(InboxSorterError):
    """Invalid options, or a requested provider that is not configured."""


class ClassificationError(InboxSorterError):
    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class ProviderUnavailable(ClassificationError):
    """Provider has no credentials or its SDK is missing."""


class InvalidResponse(ClassificationError):
    """Provider answered, but not with a usable classification."""


class LabelMappingError(InboxSorterError):
    """Existing labels could not be listed."""


class RetriesExhausted(InboxSorterError):
    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"failed after {attempts} attempt(s): {describe_error(last_error)}")
        self.attempts = attempts
        self.last_error = last_error


# Client errors that will not succeed on a second try.
PERMANENT_HTTP_STATUSES = frozenset({400, 401, 404})


def http_status(exc: BaseException) -> Optional[int]:
    if isinstance(exc, HttpError):
        try:
            return int(exc.resp.status)
        except (AttributeError, TypeError, ValueError):
            return None
    return None


def is_retryable(exc: BaseException) -> bool:
    """Transient provider failures: 429/5xx, timeouts, dropped connections, unknown errors."""
    if isinstance(exc, (TimeoutError, socket.timeout, ConnectionError)):
        return True
    status = http_status(exc)
    if status is not None:
        return status not in PERMANENT_HTTP_STATUSES
    return not isinstance(exc, (ValueError, TypeError, KeyError))


def describe_error(exc: BaseException) -> str:
    status = http_status(exc)
    if status is not None:
        return f"HTTP {status}: {getattr(exc, 'reason', '') or exc}"
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__
