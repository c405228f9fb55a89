from __future__ import annotations

import json
from typing import Any, Dict

from inbox_sorter.errors import InvalidResponse
from inbox_sorter.models import TAXONOMY, ClassificationResult, Priority, Category


def _number(data: Dict[str, Any], key: str, default: float, low: float, high: float, provider: str) -> float:
    value = data.get(key, default)
    if value is None:
        return default
    # bool is an int subclass; "true" is not a confidence.
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise InvalidResponse(provider, f"{key} is not a number: {value!r}")
    try:
        number = float(value)
    except ValueError as exc:
        raise InvalidResponse(provider, f"{key} is not a number: {value!r}") from exc
    return max(low, min(high, number))


def _text(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    return "" if value is None else str(value).strip()


def _flag(data: Dict[str, Any], key: str) -> bool:
    value = data.get(key, False)
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def parse_classification(raw: str, provider: str) -> ClassificationResult:
    """
    Parse a provider's JSON answer.

    Invalid JSON, a non-object, a missing category or a category outside the
    taxonomy raise InvalidResponse so the orchestrator moves on to the next
    stage. Numeric fields are clamped to their ranges; missing optional fields
    take neutral defaults.
    """
    if not raw or not raw.strip():
        raise InvalidResponse(provider, "empty response")
    try:
        data = json.loads(raw.strip())
    except json.JSONDecodeError as exc:
        raise InvalidResponse(provider, f"invalid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise InvalidResponse(provider, f"expected a JSON object, got {type(data).__name__}")

    if "category" not in data:
        raise InvalidResponse(provider, "missing required field 'category'")
    category = Category.parse(data["category"])
    if category is None or category not in TAXONOMY:
        raise InvalidResponse(provider, f"category outside taxonomy: {data['category']!r}")

    return ClassificationResult(
        category=category,
        confidence=_number(data, "confidence", 0.5, 0.0, 1.0, provider),
        sentiment=_number(data, "sentiment", 0.0, -1.0, 1.0, provider),
        priority=Priority.parse(data.get("priority")),
        needs_follow_up=_flag(data, "needsFollowUp"),
        follow_up_suggestion=_text(data, "followUpSuggestion"),
        suggested_response=_text(data, "suggestedResponse"),
        reasoning=_text(data, "reasoning"),
        provider=provider,
    )
