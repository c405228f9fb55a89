from __future__ import annotations

import json

import pytest
from conftest import make_message

from inbox_sorter.classification.prompt import MAX_BODY_CHARS, build_prompt
from inbox_sorter.classification.response import parse_classification
from inbox_sorter.errors import InvalidResponse
from inbox_sorter.models import TAXONOMY, Category, Priority


def _answer(**fields) -> str:
    data = {
        "category": "Work",
        "confidence": 0.92,
        "sentiment": 0.1,
        "needsFollowUp": True,
        "followUpSuggestion": "Confirm the meeting",
        "suggestedResponse": "Works for me.",
        "priority": "high",
        "reasoning": "Meeting request from a colleague",
    }
    data.update(fields)
    return json.dumps(data)


def test_parse_full_answer() -> None:
    result = parse_classification(_answer(), provider="openai")

    assert result.category is Category.WORK
    assert result.confidence == 0.92
    assert result.priority is Priority.HIGH
    assert result.needs_follow_up is True
    assert result.follow_up_suggestion == "Confirm the meeting"
    assert result.provider == "openai"
    assert result.band == "high"


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "   ",
        "not json at all",
        "```json\n{\"category\": \"Work\"",
        "[\"Work\"]",
        json.dumps({"confidence": 0.9}),
        json.dumps({"category": "Gardening"}),
        json.dumps({"category": "Uncategorized"}),
        json.dumps({"category": None}),
    ],
)
def test_unusable_answers_are_provider_failures(raw: str) -> None:
    with pytest.raises(InvalidResponse) as excinfo:
        parse_classification(raw, provider="gemini")

    assert excinfo.value.provider == "gemini"


def test_numbers_are_clamped_to_their_ranges() -> None:
    result = parse_classification(_answer(confidence=1.7, sentiment=-3), provider="openai")

    assert result.confidence == 1.0
    assert result.sentiment == -1.0


def test_non_numeric_confidence_is_rejected() -> None:
    with pytest.raises(InvalidResponse):
        parse_classification(_answer(confidence="very"), provider="openai")
    with pytest.raises(InvalidResponse):
        parse_classification(_answer(confidence=True), provider="openai")


def test_missing_optional_fields_take_defaults() -> None:
    result = parse_classification(json.dumps({"category": "finance"}), provider="openai")

    assert result.category is Category.FINANCE
    assert result.confidence == 0.5
    assert result.sentiment == 0.0
    assert result.priority is Priority.MEDIUM
    assert result.needs_follow_up is False
    assert result.suggested_response == ""


def test_decorated_category_names_map_onto_taxonomy() -> None:
    assert parse_classification(_answer(category="Urgent/Follow-up"), "openai").category is Category.URGENT
    assert parse_classification(_answer(category="NOTIFICATION"), "openai").category is Category.NOTIFICATION


@pytest.mark.parametrize("category", ["personal-finance", "work-life", "Finance/Banking"])
def test_free_text_that_only_starts_with_a_category_is_rejected(category: str) -> None:
    with pytest.raises(InvalidResponse):
        parse_classification(_answer(category=category), "openai")


def test_prompt_lists_taxonomy_and_truncates_body() -> None:
    message = make_message(subject="Hello", sender="a@b.example", body="x" * (MAX_BODY_CHARS + 500))

    prompt = build_prompt(message)

    for category in TAXONOMY:
        assert f'"{category.value}"' in prompt
    assert "x" * MAX_BODY_CHARS in prompt
    assert "x" * (MAX_BODY_CHARS + 1) not in prompt
    assert "Subject: Hello" in prompt
    assert "needsFollowUp" in prompt
