"""Assessment scoring: section grouping, verdict derivation and PASS validation.

All functions are pure. They never touch the cache or the remote store and
return fresh immutable snapshots on every call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import AbstractSet, Dict, Iterable, List, Sequence, Tuple

from checklist.models import (
    AssessmentVerdict,
    ChecklistItem,
    ChecklistSection,
    ChecklistType,
    ScoringPolicy,
    SectionItemResult,
    SectionResult,
    Verdict,
)

QUOTA_PASS_THRESHOLD = 4

_QUOTA_TYPES = frozenset({ChecklistType.ADULT_CHOKING, ChecklistType.INFANT_CHOKING})


@dataclass(frozen=True)
class CompulsoryValidation:
    """Outcome of the pre-submission compulsory check."""

    is_valid: bool
    missing_labels: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Assessment:
    """Everything a view needs to render and submit one assessment."""

    checklist_type: ChecklistType
    policy: ScoringPolicy
    sections: Tuple[ChecklistSection, ...]
    section_results: Tuple[SectionResult, ...]
    verdict: AssessmentVerdict


def policy_for(checklist_type: ChecklistType | str) -> ScoringPolicy:
    """Choking checklists are quota-gated; CPR checklists are compulsory-gated."""
    if ChecklistType(checklist_type) in _QUOTA_TYPES:
        return ScoringPolicy.QUOTA
    return ScoringPolicy.COMPULSORY


def build_sections(items: Iterable[ChecklistItem]) -> List[ChecklistSection]:
    """Group items into sections after a stable sort on ``order_index``.

    Sections appear in the order their first item appears. Duplicate order
    indices keep encounter order.
    """
    ordered = sorted(items, key=lambda item: item.order_index)
    grouped: Dict[str, List[ChecklistItem]] = {}
    for item in ordered:
        grouped.setdefault(item.section, []).append(item)
    return [ChecklistSection(section=name, items=members) for name, members in grouped.items()]


def _is_done(item: ChecklistItem, completed: AbstractSet[str]) -> bool:
    return item.id is not None and item.id in completed


def section_results(
    sections: Sequence[ChecklistSection],
    completed: AbstractSet[str],
) -> List[SectionResult]:
    results: List[SectionResult] = []
    for section in sections:
        entries = [
            SectionItemResult(
                id=item.id,
                item=item.item,
                completed=_is_done(item, completed),
                is_compulsory=item.is_compulsory,
            )
            for item in section.items
        ]
        # An empty section is vacuously complete.
        results.append(
            SectionResult(
                section=section.section,
                completed=all(entry.completed for entry in entries),
                items=entries,
            )
        )
    return results


def score(
    sections: Sequence[ChecklistSection],
    completed: AbstractSet[str],
    policy: ScoringPolicy = ScoringPolicy.COMPULSORY,
    *,
    quota: int = QUOTA_PASS_THRESHOLD,
) -> AssessmentVerdict:
    """Derive counts, percentage and verdict from the completed item ids.

    ``compulsory_fully_met`` reports whether every compulsory item is done
    (true when there are none), whatever the policy. ``can_pass`` is the
    active policy's pass condition.
    """
    total_count = 0
    completed_count = 0
    compulsory_fully_met = True

    for section in sections:
        for item in section.items:
            total_count += 1
            done = _is_done(item, completed)
            if done:
                completed_count += 1
            elif item.is_compulsory:
                compulsory_fully_met = False

    percentage = completed_count * 100 / total_count if total_count else 0.0

    if ScoringPolicy(policy) is ScoringPolicy.QUOTA:
        can_pass = completed_count >= quota
    else:
        can_pass = compulsory_fully_met

    if completed_count == 0:
        verdict = Verdict.INCOMPLETE
    elif can_pass:
        verdict = Verdict.PASS
    else:
        verdict = Verdict.FAIL

    return AssessmentVerdict(
        completed_count=completed_count,
        total_count=total_count,
        percentage=float(percentage),
        compulsory_fully_met=compulsory_fully_met,
        can_pass=can_pass,
        verdict=verdict,
    )


def validate_compulsory_completion(results: Sequence[SectionResult]) -> CompulsoryValidation:
    """Re-check that every compulsory item is completed.

    Independent of the scoring policy; callers decide whether to run it.
    Labels read ``"<section>: <item>"``.
    """
    missing = [
        f"{section.section}: {entry.item}"
        for section in results
        for entry in section.items
        if entry.is_compulsory and not entry.completed
    ]
    return CompulsoryValidation(is_valid=not missing, missing_labels=tuple(missing))


def assess(
    items: Iterable[ChecklistItem],
    completed: AbstractSet[str],
    checklist_type: ChecklistType | str,
    *,
    quota: int = QUOTA_PASS_THRESHOLD,
) -> Assessment:
    """Group, score and snapshot a checklist in one call."""
    kind = ChecklistType(checklist_type)
    policy = policy_for(kind)
    sections = build_sections(items)
    return Assessment(
        checklist_type=kind,
        policy=policy,
        sections=tuple(sections),
        section_results=tuple(section_results(sections, completed)),
        verdict=score(sections, completed, policy, quota=quota),
    )
