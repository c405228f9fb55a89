from __future__ import annotations

import asyncio

import pytest
from conftest import FakeMailbox

from inbox_sorter.errors import LabelMappingError
from inbox_sorter.gmail.label_colors import LabelColor, is_allowed
from inbox_sorter.labels.mapper import LabelMapper, label_name
from inbox_sorter.models import Category


def test_existing_labels_are_indexed_by_exact_name() -> None:
    mailbox = FakeMailbox(labels=[{"id": "L9", "name": "AI/Work"}, {"id": "L3", "name": "ai/finance"}])
    mapper = LabelMapper(mailbox)

    work = asyncio.run(mapper.resolve_label(Category.WORK))

    assert work == "L9"
    assert mailbox.created == []
    assert mapper.lookup(Category.FINANCE) is None


def test_ensure_all_labels_creates_missing_with_allowed_colors() -> None:
    mailbox = FakeMailbox(labels=[])
    mapper = LabelMapper(mailbox)
    wanted = [Category.WORK, Category.FINANCE, Category.URGENT]

    resolved = asyncio.run(mapper.ensure_all_labels(wanted))

    assert set(resolved) == set(wanted)
    assert [name for name, _ in mailbox.created] == ["AI/Work", "AI/Finance", "AI/Urgent"]
    assert all(is_allowed(color) for _, color in mailbox.created)
    assert len(mapper.created_labels()) == 3


def test_ensure_all_labels_is_idempotent_within_a_run() -> None:
    mailbox = FakeMailbox(labels=[])
    mapper = LabelMapper(mailbox)
    wanted = [Category.SOCIAL, Category.CAREER, Category.SOCIAL]

    first = asyncio.run(mapper.ensure_all_labels(wanted))
    second = asyncio.run(mapper.ensure_all_labels(wanted))

    assert first == second
    assert len(mailbox.created) == 2
    assert [c for c in mailbox.calls if c[0] == "list_labels"] == [("list_labels",)]


def test_one_failed_creation_does_not_stop_the_others() -> None:
    mailbox = FakeMailbox(labels=[])
    mailbox.fail_create.add("AI/Finance")
    mapper = LabelMapper(mailbox)

    resolved = asyncio.run(mapper.ensure_all_labels([Category.WORK, Category.FINANCE, Category.SOCIAL]))

    assert set(resolved) == {Category.WORK, Category.SOCIAL}
    assert Category.FINANCE in mapper.failures
    assert "AI/Finance" in mapper.failure_messages()[0]


def test_failed_creation_is_not_retried_in_the_same_run() -> None:
    mailbox = FakeMailbox(labels=[])
    mailbox.fail_create.add("AI/Finance")
    mapper = LabelMapper(mailbox)

    assert asyncio.run(mapper.resolve_label(Category.FINANCE)) is None
    mailbox.fail_create.clear()
    assert asyncio.run(mapper.resolve_label(Category.FINANCE)) is None
    assert [c for c in mailbox.calls if c[0] == "create_label"] == [("create_label", "AI/Finance")]


def test_listing_failure_is_a_mapping_error() -> None:
    mailbox = FakeMailbox()
    mailbox.fail_list_labels = True

    with pytest.raises(LabelMappingError):
        asyncio.run(LabelMapper(mailbox).load())


def test_color_resolver_is_injectable() -> None:
    mailbox = FakeMailbox(labels=[])
    fixed = LabelColor("#000000", "#ffffff")
    mapper = LabelMapper(mailbox, color_for=lambda desired: fixed)

    asyncio.run(mapper.resolve_label(Category.PERSONAL))

    assert mailbox.created == [("AI/Personal", fixed)]


def test_custom_prefix() -> None:
    mailbox = FakeMailbox(labels=[{"id": "L1", "name": "Sorted/Career"}])
    mapper = LabelMapper(mailbox, prefix="Sorted")

    assert asyncio.run(mapper.resolve_label(Category.CAREER)) == "L1"
    assert label_name(Category.CAREER, "Sorted") == "Sorted/Career"
