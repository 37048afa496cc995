"""Tests for section grouping, scoring and compulsory validation."""

import pytest

from checklist.models import ChecklistType, ScoringPolicy, Verdict
from checklist.scoring import (
    assess,
    build_sections,
    policy_for,
    score,
    section_results,
    validate_compulsory_completion,
)
from tests.conftest import catalog_with_ids, make_item, make_section


class TestPolicyFor:
    @pytest.mark.parametrize(
        "checklist_type",
        [ChecklistType.ONE_MAN_CPR, ChecklistType.TWO_MAN_CPR, ChecklistType.INFANT_CPR],
    )
    def test_cpr_types_are_compulsory(self, checklist_type):
        assert policy_for(checklist_type) is ScoringPolicy.COMPULSORY

    @pytest.mark.parametrize("checklist_type", ["adult_choking", "infant_choking"])
    def test_choking_types_use_quota(self, checklist_type):
        assert policy_for(checklist_type) is ScoringPolicy.QUOTA

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            policy_for("three_man_cpr")


class TestBuildSections:
    def test_groups_in_order_of_first_appearance(self):
        items = [
            make_item("c1", "circulation", order_index=3),
            make_item("a1", "airway", order_index=1),
            make_item("b1", "breathing", order_index=2),
            make_item("a2", "airway", order_index=4),
        ]

        sections = build_sections(items)

        assert [s.section for s in sections] == ["airway", "breathing", "circulation"]
        assert [i.id for i in sections[0].items] == ["a1", "a2"]

    def test_duplicate_order_index_keeps_encounter_order(self):
        items = [
            make_item("x", "danger", order_index=1),
            make_item("y", "danger", order_index=1),
            make_item("z", "danger", order_index=1),
        ]

        sections = build_sections(items)

        assert [i.id for i in sections[0].items] == ["x", "y", "z"]

    def test_empty(self):
        assert build_sections([]) == []


class TestScore:
    def test_zero_completed_is_incomplete_for_any_policy(self):
        sections = [make_section("airway", make_item("a", compulsory=True), make_item("b"))]

        for policy in ScoringPolicy:
            verdict = score(sections, frozenset(), policy)
            assert verdict.verdict is Verdict.INCOMPLETE
            assert verdict.completed_count == 0

    def test_compulsory_fail_scenario(self):
        sections = [
            make_section("airway", make_item("a", "airway", compulsory=True)),
            make_section("circulation", make_item("c", "circulation", compulsory=True)),
        ]

        verdict = score(sections, {"a"}, ScoringPolicy.COMPULSORY)

        assert verdict.verdict is Verdict.FAIL
        assert verdict.completed_count == 1
        assert verdict.total_count == 2
        assert verdict.percentage == 50
        assert verdict.compulsory_fully_met is False
        assert verdict.can_pass is False

    def test_compulsory_pass_ignores_optional_items(self):
        sections = [
            make_section("danger", make_item("d1"), make_item("d2")),
            make_section("airway", make_item("a", "airway", compulsory=True)),
        ]

        verdict = score(sections, {"a"}, ScoringPolicy.COMPULSORY)

        assert verdict.verdict is Verdict.PASS
        assert verdict.can_pass is True
        assert verdict.percentage == pytest.approx(100 / 3)

    def test_compulsory_with_no_compulsory_items_passes_once_started(self):
        sections = [make_section("danger", make_item("d1"), make_item("d2"))]

        verdict = score(sections, {"d1"}, ScoringPolicy.COMPULSORY)

        assert verdict.compulsory_fully_met is True
        assert verdict.verdict is Verdict.PASS

    def test_quota_scenario_four_of_five(self):
        items = [make_item(str(n), "severe_choking") for n in range(5)]
        sections = [make_section("severe_choking", *items)]

        verdict = score(sections, {"0", "1", "2", "3"}, ScoringPolicy.QUOTA)

        assert verdict.verdict is Verdict.PASS
        assert verdict.percentage == 80

    @pytest.mark.parametrize("done,expected", [(1, Verdict.FAIL), (3, Verdict.FAIL), (4, Verdict.PASS), (6, Verdict.PASS)])
    def test_quota_threshold(self, done, expected):
        items = [make_item(str(n), "severe_choking", compulsory=True) for n in range(6)]
        sections = [make_section("severe_choking", *items)]

        verdict = score(sections, {str(n) for n in range(done)}, ScoringPolicy.QUOTA)

        assert verdict.verdict is expected

    def test_quota_ignores_compulsory_flags(self):
        items = [make_item(str(n), compulsory=(n == 0)) for n in range(5)]
        sections = [make_section("assess_severity", *items)]

        verdict = score(sections, {"1", "2", "3", "4"}, ScoringPolicy.QUOTA)

        assert verdict.compulsory_fully_met is False
        assert verdict.verdict is Verdict.PASS

    def test_custom_quota(self):
        sections = [make_section("s", *[make_item(str(n)) for n in range(3)])]

        verdict = score(sections, {"0", "1"}, "quota", quota=2)

        assert verdict.verdict is Verdict.PASS

    def test_empty_sections_give_zero_percentage(self):
        verdict = score([], frozenset(), ScoringPolicy.COMPULSORY)

        assert verdict.total_count == 0
        assert verdict.percentage == 0.0
        assert verdict.verdict is Verdict.INCOMPLETE

    def test_unknown_ids_do_not_count(self):
        sections = [make_section("airway", make_item("a"))]

        verdict = score(sections, {"zzz"}, ScoringPolicy.COMPULSORY)

        assert verdict.completed_count == 0
        assert 0 <= verdict.percentage <= 100

    def test_unpersisted_items_never_count(self):
        item = make_item("a").model_copy(update={"id": None})

        verdict = score([make_section("airway", item)], {"a"}, ScoringPolicy.COMPULSORY)

        assert verdict.completed_count == 0


class TestValidateCompulsoryCompletion:
    def test_reports_missing_label(self):
        sections = [
            make_section(
                "circulation",
                make_item("p", "circulation", compulsory=True, text="Check pulse"),
                make_item("o", "circulation", text="Optional"),
            )
        ]

        validation = validate_compulsory_completion(section_results(sections, frozenset()))

        assert validation.is_valid is False
        assert validation.missing_labels == ("circulation: Check pulse",)

    def test_valid_when_all_compulsory_done(self):
        sections = [make_section("airway", make_item("a", compulsory=True), make_item("b"))]

        validation = validate_compulsory_completion(section_results(sections, {"a"}))

        assert validation.is_valid is True
        assert validation.missing_labels == ()


class TestSectionResults:
    def test_empty_section_counts_as_completed(self):
        results = section_results([make_section("danger")], frozenset())

        assert results[0].completed is True
        assert results[0].items == []

    def test_section_completed_only_when_every_item_marked(self):
        sections = [make_section("airway", make_item("a"), make_item("b"))]

        assert section_results(sections, {"a"})[0].completed is False
        assert section_results(sections, {"a", "b"})[0].completed is True


class TestAssess:
    def test_full_one_man_cpr_compulsory_only_passes(self):
        items = catalog_with_ids(ChecklistType.ONE_MAN_CPR)
        compulsory = {item.id for item in items if item.is_compulsory}

        assessment = assess(items, compulsory, ChecklistType.ONE_MAN_CPR)

        assert assessment.policy is ScoringPolicy.COMPULSORY
        assert assessment.verdict.verdict is Verdict.PASS
        assert [s.section for s in assessment.sections][:3] == ["danger", "respons", "shout_for_help"]

    def test_adult_choking_three_items_fails(self):
        items = catalog_with_ids(ChecklistType.ADULT_CHOKING)
        completed = {item.id for item in items[:3]}

        assessment = assess(items, completed, "adult_choking")

        assert assessment.policy is ScoringPolicy.QUOTA
        assert assessment.verdict.verdict is Verdict.FAIL
