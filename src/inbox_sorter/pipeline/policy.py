from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from inbox_sorter.models import Category, ClassificationResult, NormalizedMessage

LabelPlan = Tuple[str, List[str]]


@dataclass(frozen=True)
class PlannedLabel:
    message_id: str
    category: Category
    # None when the category has no resolvable label this run.
    label_id: Optional[str]
    already_present: bool = False


def categories_to_label(results: Iterable[ClassificationResult]) -> List[Category]:
    # The catch-all is reported but never labeled.
    return list(
        dict.fromkeys(r.category for r in results if r.category is not Category.UNCATEGORIZED)
    )


def plan_for(
    message: NormalizedMessage, result: ClassificationResult, mapping: Mapping[Category, str]
) -> PlannedLabel:
    if result.category is Category.UNCATEGORIZED:
        return PlannedLabel(message.message_id, result.category, None)
    label_id = mapping.get(result.category)
    return PlannedLabel(
        message_id=message.message_id,
        category=result.category,
        label_id=label_id,
        already_present=bool(label_id) and label_id in message.label_ids,
    )


def label_pairs(plans: Sequence[PlannedLabel]) -> List[LabelPlan]:
    """
    (message_id, label_ids) pairs for the applier.

    Plans without a label id are skipped, not redirected to another label.
    Label ids the message already carries are not added again.
    """
    grouped: Dict[str, List[str]] = {}
    for plan in plans:
        if not plan.label_id or plan.already_present:
            continue
        ids = grouped.setdefault(plan.message_id, [])
        if plan.label_id not in ids:
            ids.append(plan.label_id)
    return list(grouped.items())


def already_classified(message: NormalizedMessage, pipeline_label_ids: Set[str]) -> bool:
    return bool(message.label_ids & pipeline_label_ids)
