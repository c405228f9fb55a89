from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Set

from inbox_sorter.errors import LabelMappingError, describe_error
from inbox_sorter.gmail.label_colors import CATEGORY_COLORS, ColorResolver, LabelColor, gmail_color_for
from inbox_sorter.gmail.mailbox import Mailbox
from inbox_sorter.models import Category
from inbox_sorter.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class LabelRef:
    label_id: str
    name: str
    color: Optional[LabelColor] = None
    created: bool = False


def label_name(category: Category, prefix: str = "AI") -> str:
    return f"{prefix}/{category.value}"


class LabelMapper:
    """
    Category -> provider label id for one pipeline run.

    Existing labels are listed once, on first need. Missing labels are
    created with a palette-safe color. Nothing is re-fetched afterwards:
    a label created by another process mid-run stays invisible until the
    next run lists labels again.
    """

    def __init__(
        self,
        mailbox: Mailbox,
        *,
        prefix: str = "AI",
        desired_colors: Mapping[Category, str] = CATEGORY_COLORS,
        color_for: ColorResolver = gmail_color_for,
    ):
        self._mailbox = mailbox
        self.prefix = prefix
        self._desired_colors = desired_colors
        self._color_for = color_for
        self._existing: Optional[Dict[str, LabelRef]] = None
        self.mapping: Dict[Category, LabelRef] = {}
        # Categories whose label could not be created this run; not retried.
        self.failures: Dict[Category, str] = {}

    @property
    def loaded(self) -> bool:
        return self._existing is not None

    async def load(self) -> None:
        """List provider labels once and index them by exact name."""
        if self._existing is not None:
            return
        try:
            labels = await self._mailbox.list_labels()
        except Exception as exc:
            raise LabelMappingError(f"could not list labels: {describe_error(exc)}") from exc

        self._existing = {}
        for label in labels:
            name = label.get("name")
            if name and label.get("id"):
                self._existing[name] = LabelRef(label_id=label["id"], name=name)

        for category in Category:
            ref = self._existing.get(label_name(category, self.prefix))
            if ref is not None:
                self.mapping[category] = ref
        logger.info(
            "[labels] %d provider labels listed, %d already mapped", len(self._existing), len(self.mapping)
        )

    def color_for(self, category: Category) -> LabelColor:
        return self._color_for(self._desired_colors.get(category, ""))

    async def resolve_label(self, category: Category) -> Optional[str]:
        """Label id for a category, creating the label if needed. None if creation failed."""
        await self.load()
        ref = self.mapping.get(category)
        if ref is not None:
            return ref.label_id
        if category in self.failures:
            return None

        name = label_name(category, self.prefix)
        color = self.color_for(category)
        try:
            label_id = await self._mailbox.create_label(name, color)
        except Exception as exc:
            reason = describe_error(exc)
            self.failures[category] = reason
            logger.error("[labels] could not create %s: %s", name, reason)
            return None

        ref = LabelRef(label_id=label_id, name=name, color=color, created=True)
        self.mapping[category] = ref
        self._existing[name] = ref
        logger.info("[labels] created %s (id=%s, color=%s)", name, label_id, color.background)
        return label_id

    async def ensure_all_labels(self, categories: Iterable[Category]) -> Dict[Category, str]:
        """
        Resolve every category, creating what is missing. One failed creation
        does not stop the others; the result holds only the categories that
        resolved.
        """
        resolved: Dict[Category, str] = {}
        for category in dict.fromkeys(categories):
            label_id = await self.resolve_label(category)
            if label_id is not None:
                resolved[category] = label_id
        return resolved

    def lookup(self, category: Category) -> Optional[str]:
        """Cached label id without any provider call."""
        ref = self.mapping.get(category)
        return ref.label_id if ref else None

    def known_label_ids(self) -> Set[str]:
        return {ref.label_id for ref in self.mapping.values()}

    def created_labels(self) -> List[LabelRef]:
        return [ref for ref in self.mapping.values() if ref.created]

    def failure_messages(self) -> List[str]:
        return [
            f"label {label_name(category, self.prefix)} could not be created: {reason}"
            for category, reason in self.failures.items()
        ]
