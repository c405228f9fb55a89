from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Mapping

from inbox_sorter.models import Category


@dataclass(frozen=True)
class LabelColor:
    background: str
    text: str

    def as_gmail(self) -> Dict[str, str]:
        return {"backgroundColor": self.background, "textColor": self.text}


# Gmail rejects any label color outside this palette.
GMAIL_PALETTE: FrozenSet[str] = frozenset(
    {
        "#000000", "#434343", "#666666", "#999999", "#cccccc", "#efefef", "#f3f3f3", "#ffffff",
        "#fb4c2f", "#ffad47", "#fad165", "#16a766", "#43d692", "#4a86e8", "#a479e2", "#f691b3",
        "#f6c5be", "#ffe6c7", "#fef1d1", "#b9e4d0", "#c6f3de", "#c9daf8", "#e4d7f5", "#fcdee8",
        "#efa093", "#ffd6a2", "#fce8b3", "#89d3b2", "#a0eac9", "#a4c2f4", "#d0bcf1", "#fbc8d9",
        "#e66550", "#ffbc6b", "#fcda83", "#44b984", "#68dfa9", "#6d9eeb", "#b694e8", "#f7a7c0",
        "#cc3a21", "#eaa041", "#f2c960", "#149e60", "#3dc789", "#3c78d8", "#8e63ce", "#e07798",
        "#ac2b16", "#cf8933", "#d5ae49", "#0b804b", "#2a9c68", "#285bac", "#653e9b", "#b65775",
        "#822111", "#a46a21", "#aa8831", "#076239", "#1a764a", "#1c4587", "#41236d", "#83334c",
    }
)

# Semantic color each category would ideally carry.
CATEGORY_COLORS: Dict[Category, str] = {
    Category.PERSONAL: "#DC2626",      # red
    Category.WORK: "#059669",          # green
    Category.PROMOTIONAL: "#F59E0B",   # amber
    Category.SOCIAL: "#8B5CF6",        # violet
    Category.NOTIFICATION: "#6B7280",  # gray
    Category.FINANCE: "#0EA5E9",       # sky blue
    Category.CAREER: "#10B981",        # emerald
    Category.URGENT: "#B91C1C",        # dark red
    Category.UNCATEGORIZED: "#9CA3AF", # light gray
}

# Desired color -> allowed Gmail pair, chosen by hand once per color.
GMAIL_COLOR_TABLE: Dict[str, LabelColor] = {
    "#dc2626": LabelColor("#fb4c2f", "#ffffff"),
    "#059669": LabelColor("#16a766", "#ffffff"),
    "#f59e0b": LabelColor("#ffad47", "#000000"),
    "#8b5cf6": LabelColor("#a479e2", "#ffffff"),
    "#6b7280": LabelColor("#666666", "#ffffff"),
    "#0ea5e9": LabelColor("#4a86e8", "#ffffff"),
    "#10b981": LabelColor("#43d692", "#000000"),
    "#b91c1c": LabelColor("#cc3a21", "#ffffff"),
    "#9ca3af": LabelColor("#cccccc", "#000000"),
}

DEFAULT_LABEL_COLOR = LabelColor("#999999", "#ffffff")

ColorResolver = Callable[[str], LabelColor]


def gmail_color_for(desired: str, table: Mapping[str, LabelColor] = GMAIL_COLOR_TABLE) -> LabelColor:
    """Return the allowed Gmail pair for a desired hex color."""
    key = (desired or "").strip().lower()
    if key in GMAIL_PALETTE:
        # Already allowed; pick a readable text color from the same palette.
        return LabelColor(key, "#000000" if _is_light(key) else "#ffffff")
    return table.get(key, DEFAULT_LABEL_COLOR)


def is_allowed(color: LabelColor) -> bool:
    return color.background in GMAIL_PALETTE and color.text in GMAIL_PALETTE


def _is_light(hex_color: str) -> bool:
    r, g, b = (int(hex_color[i : i + 2], 16) for i in (1, 3, 5))
    return (0.299 * r + 0.587 * g + 0.114 * b) > 160
