from __future__ import annotations

from inbox_sorter.gmail.label_colors import (
    CATEGORY_COLORS,
    DEFAULT_LABEL_COLOR,
    GMAIL_COLOR_TABLE,
    LabelColor,
    gmail_color_for,
    is_allowed,
)
from inbox_sorter.models import Category


def test_every_category_color_maps_to_an_allowed_pair() -> None:
    for category in Category:
        color = gmail_color_for(CATEGORY_COLORS[category])
        assert is_allowed(color), category


def test_lookup_is_case_insensitive_and_deterministic() -> None:
    assert gmail_color_for("#DC2626") == gmail_color_for("#dc2626") == GMAIL_COLOR_TABLE["#dc2626"]


def test_palette_color_passes_through_with_readable_text() -> None:
    assert gmail_color_for("#000000") == LabelColor("#000000", "#ffffff")
    assert gmail_color_for("#ffffff") == LabelColor("#ffffff", "#000000")


def test_unknown_color_falls_back_to_default() -> None:
    assert gmail_color_for("#123456") == DEFAULT_LABEL_COLOR
    assert gmail_color_for("") == DEFAULT_LABEL_COLOR


def test_custom_table() -> None:
    table = {"#123456": LabelColor("#4a86e8", "#ffffff")}

    assert gmail_color_for("#123456", table=table) == LabelColor("#4a86e8", "#ffffff")


def test_gmail_payload_shape() -> None:
    assert LabelColor("#16a766", "#ffffff").as_gmail() == {"backgroundColor": "#16a766", "textColor": "#ffffff"}
