from __future__ import annotations

import base64
import binascii
from email.utils import getaddresses
from typing import Any, Dict, Optional, Tuple

from inbox_sorter.models import NormalizedMessage


def decode_body_data(data: str) -> str:
    # Gmail returns base64url, frequently without padding.
    padded = data + "=" * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        return ""


def extract_body_from_payload(payload: dict) -> str:
    """
    Extract plain text body from Gmail message payload.
    Returns "" when no usable body exists; callers fall back to the snippet.
    """

    def find_part(part: dict, mime_type: str) -> Optional[str]:
        # Depth-first search through multipart payloads.
        if part.get("mimeType") == mime_type and part.get("body", {}).get("data"):
            return decode_body_data(part["body"]["data"])
        for child in part.get("parts", []) or []:
            found = find_part(child, mime_type)
            if found:
                return found
        return None

    if not payload.get("parts") and payload.get("body", {}).get("data"):
        return decode_body_data(payload["body"]["data"])

    return find_part(payload, "text/plain") or ""


def parse_headers(payload: dict) -> Dict[str, str]:
    return {h["name"]: h["value"] for h in payload.get("headers", []) if "name" in h}


def _header(headers: Dict[str, str], name: str) -> str:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return ""


def _recipients(value: str) -> Tuple[str, ...]:
    return tuple(addr for _name, addr in getaddresses([value]) if addr)


def normalize_message(msg: Dict[str, Any]) -> NormalizedMessage:
    """Turn a full-format Gmail message resource into an immutable snapshot."""
    payload = msg.get("payload", {}) or {}
    headers = parse_headers(payload)
    snippet = msg.get("snippet", "") or ""
    label_ids = frozenset(str(x) for x in (msg.get("labelIds") or []))

    body_text = extract_body_from_payload(payload).strip() or snippet

    return NormalizedMessage(
        message_id=str(msg["id"]),
        thread_id=msg.get("threadId"),
        subject=_header(headers, "Subject"),
        from_email=_header(headers, "From"),
        to=_recipients(_header(headers, "To")),
        body_text=body_text,
        snippet=snippet,
        internal_date_ms=int(msg.get("internalDate") or 0),
        is_read="UNREAD" not in label_ids,
        label_ids=label_ids,
        headers=headers,
    )
