"""Tests for the default checklist catalog."""

import pytest

from checklist.catalog import (
    CHOKING_SECTIONS,
    CPR_SECTIONS,
    default_items,
    expected_compulsory,
    valid_sections,
)
from checklist.models import ChecklistType


@pytest.mark.parametrize("checklist_type", list(ChecklistType))
def test_defaults_use_conventional_sections(checklist_type):
    items = default_items(checklist_type)

    assert items
    assert {item.section for item in items} <= set(valid_sections(checklist_type))
    assert [item.order_index for item in items] == list(range(1, len(items) + 1))
    assert all(item.id is None for item in items)


@pytest.mark.parametrize(
    "checklist_type",
    [ChecklistType.ONE_MAN_CPR, ChecklistType.TWO_MAN_CPR, ChecklistType.INFANT_CPR],
)
def test_cpr_compulsory_sections(checklist_type):
    for item in default_items(checklist_type):
        assert item.is_compulsory is (item.section in {"airway", "breathing", "circulation"})


@pytest.mark.parametrize("checklist_type", [ChecklistType.ADULT_CHOKING, ChecklistType.INFANT_CHOKING])
def test_choking_items_never_compulsory(checklist_type):
    assert not any(item.is_compulsory for item in default_items(checklist_type))


def test_expected_compulsory():
    assert expected_compulsory("one_man_cpr", "airway") is True
    assert expected_compulsory("one_man_cpr", "danger") is False
    assert expected_compulsory("adult_choking", "airway") is False


def test_section_vocabularies():
    assert valid_sections("infant_cpr") == CPR_SECTIONS
    assert valid_sections("infant_choking") == CHOKING_SECTIONS
