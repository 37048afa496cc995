"""Assessment submission and result history."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AbstractSet, Any, Dict, Iterable, List, Optional

from checklist.errors import RecordNotFoundError, ResultImmutableError, SubmissionValidationError
from checklist.models import (
    ChecklistItem,
    ChecklistResult,
    ChecklistStats,
    ChecklistType,
    ParticipantSnapshot,
    ScoringPolicy,
    Verdict,
)
from checklist.scoring import QUOTA_PASS_THRESHOLD, assess, policy_for, validate_compulsory_completion
from checklist.store import RemoteStore
from checklist.sync import RESULTS_KEY, SyncCoordinator

logger = logging.getLogger(__name__)

ANNOTATION_FIELDS = frozenset({"instructor_comments", "assessment_notes"})


@dataclass
class ResultFilters:
    participant_id: Optional[str] = None
    checklist_type: Optional[ChecklistType] = None
    status: Optional[Verdict] = None
    instructor_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: Optional[int] = None
    offset: int = 0


@dataclass
class RetakeEligibility:
    can_retake: bool
    retake_count: int
    max_retakes: int


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _check_pass(record: ChecklistResult) -> None:
    if record.status is not Verdict.PASS or policy_for(record.checklist_type) is not ScoringPolicy.COMPULSORY:
        return
    validation = validate_compulsory_completion(record.section_results)
    if not validation.is_valid:
        raise SubmissionValidationError(validation.missing_labels)


def build_result(
    participant: ParticipantSnapshot,
    checklist_type: ChecklistType | str,
    items: Iterable[ChecklistItem],
    completed: AbstractSet[str],
    *,
    quota: int = QUOTA_PASS_THRESHOLD,
    instructor_id: Optional[str] = None,
    instructor_name: Optional[str] = None,
    instructor_comments: Optional[str] = None,
    assessment_notes: Optional[str] = None,
    duration_seconds: Optional[int] = None,
    submitted_at: Optional[datetime] = None,
) -> ChecklistResult:
    """Score an assessment and snapshot it as an unsaved result.

    Raises SubmissionValidationError when a compulsory-policy PASS still has
    compulsory items outstanding.
    """
    assessment = assess(items, completed, checklist_type, quota=quota)
    verdict = assessment.verdict

    record = ChecklistResult(
        participant_id=participant.participant_id,
        participant_name=participant.name,
        participant_email=participant.email,
        participant_ic_number=participant.ic_number,
        participant_phone_number=participant.phone_number,
        participant_job_position=participant.job_position,
        participant_category=participant.category,
        participant_workplace=participant.workplace,
        checklist_type=assessment.checklist_type,
        total_items=verdict.total_count,
        completed_items=verdict.completed_count,
        completion_percentage=round(verdict.percentage, 2),
        status=verdict.verdict,
        can_pass=verdict.can_pass,
        all_compulsory_completed=verdict.compulsory_fully_met,
        section_results=list(assessment.section_results),
        instructor_id=instructor_id,
        instructor_name=instructor_name,
        instructor_comments=(instructor_comments or "").strip() or None,
        assessment_notes=assessment_notes,
        assessment_duration_seconds=duration_seconds,
        submitted_at=submitted_at,
    )
    _check_pass(record)
    return record


class ChecklistResultService:
    """Writes submissions through the coordinator and reads result history."""

    def __init__(
        self,
        store: RemoteStore,
        coordinator: SyncCoordinator,
        *,
        table: str = "checklist_result",
        quota: int = QUOTA_PASS_THRESHOLD,
        max_retakes: int = 3,
    ) -> None:
        self._store = store
        self._coordinator = coordinator
        self._table = table
        self.quota = quota
        self.max_retakes = max_retakes

    async def submit(
        self,
        participant: ParticipantSnapshot,
        checklist_type: ChecklistType | str,
        items: Iterable[ChecklistItem],
        completed: AbstractSet[str],
        **details: Any,
    ) -> ChecklistResult:
        """Score, validate and persist one assessment."""
        record = build_result(participant, checklist_type, items, completed, quota=self.quota, **details)
        return await self.submit_result(record)

    async def submit_result(self, record: ChecklistResult) -> ChecklistResult:
        """Persist a built result after the PASS gate and retake bookkeeping."""
        _check_pass(record)

        previous = await self._latest_result(record.participant_id, record.checklist_type)
        updates: Dict[str, Any] = {}
        if previous is not None:
            updates.update(
                retake_count=previous.retake_count + 1,
                is_retake=True,
                previous_assessment_id=previous.id,
            )
        if record.submitted_at is None:
            updates["submitted_at"] = _utcnow()
        if updates:
            record = record.model_copy(update=updates)

        async def operation() -> ChecklistResult:
            row = await self._store.insert(self._table, record.to_row())
            return ChecklistResult.model_validate(row)

        saved = await self._coordinator.run_mutation(operation, RESULTS_KEY)
        logger.info(
            "Submitted %s result %s for participant %s: %s (%.0f%%)",
            saved.checklist_type.value,
            saved.id,
            saved.participant_id,
            saved.status.value,
            saved.completion_percentage,
        )
        return saved

    async def list_results(self, filters: Optional[ResultFilters] = None) -> List[ChecklistResult]:
        """Non-deleted results, newest first."""
        filters = filters or ResultFilters()
        criteria: Dict[str, Any] = {"is_deleted": False}
        if filters.participant_id:
            criteria["participant_id"] = filters.participant_id
        if filters.checklist_type:
            criteria["checklist_type"] = ChecklistType(filters.checklist_type).value
        if filters.status:
            criteria["status"] = Verdict(filters.status).value
        if filters.instructor_id:
            criteria["instructor_id"] = filters.instructor_id

        rows = await self._store.select(self._table, criteria, order_by=("submitted_at",), descending=True)
        results = [ChecklistResult.model_validate(row) for row in rows]

        if filters.start_date is not None:
            start = _aware(filters.start_date)
            results = [r for r in results if r.submitted_at is not None and _aware(r.submitted_at) >= start]
        if filters.end_date is not None:
            end = _aware(filters.end_date)
            results = [r for r in results if r.submitted_at is not None and _aware(r.submitted_at) <= end]

        start_index = filters.offset or 0
        end_index = start_index + filters.limit if filters.limit is not None else None
        return results[start_index:end_index]

    async def get_result(self, result_id: str) -> ChecklistResult:
        rows = await self._store.select(self._table, {"id": result_id, "is_deleted": False}, limit=1)
        if not rows:
            raise RecordNotFoundError(f"Checklist result not found: {result_id}", table=self._table, operation="select")
        return ChecklistResult.model_validate(rows[0])

    async def results_for_participant(
        self,
        participant_id: str,
        checklist_type: Optional[ChecklistType | str] = None,
    ) -> List[ChecklistResult]:
        kind = ChecklistType(checklist_type) if checklist_type else None
        return await self.list_results(ResultFilters(participant_id=participant_id, checklist_type=kind))

    async def stats(self, checklist_type: Optional[ChecklistType | str] = None) -> List[ChecklistStats]:
        """Per-type pass/fail/incomplete counts and averages."""
        kind = ChecklistType(checklist_type) if checklist_type else None
        results = await self.list_results(ResultFilters(checklist_type=kind))

        buckets: Dict[ChecklistType, List[ChecklistResult]] = {}
        for result in results:
            buckets.setdefault(result.checklist_type, []).append(result)

        stats: List[ChecklistStats] = []
        for kind_key in ChecklistType:
            bucket = buckets.get(kind_key)
            if not bucket:
                continue
            total = len(bucket)
            passes = sum(1 for r in bucket if r.status is Verdict.PASS)
            fails = sum(1 for r in bucket if r.status is Verdict.FAIL)
            incomplete = sum(1 for r in bucket if r.status is Verdict.INCOMPLETE)
            completion = sum(r.completion_percentage for r in bucket)
            duration = sum(r.assessment_duration_seconds or 0 for r in bucket)
            stats.append(
                ChecklistStats(
                    checklist_type=kind_key,
                    total_assessments=total,
                    pass_count=passes,
                    fail_count=fails,
                    incomplete_count=incomplete,
                    avg_completion_percentage=round(completion / total, 2),
                    avg_duration_seconds=round(duration / total),
                    pass_rate=round(passes * 100 / total),
                )
            )
        return stats

    async def annotate(self, result_id: str, **fields: Optional[str]) -> ChecklistResult:
        """Update instructor annotations; every other field is immutable."""
        forbidden = set(fields) - ANNOTATION_FIELDS
        if forbidden:
            raise ResultImmutableError(f"Checklist results are immutable; cannot change {', '.join(sorted(forbidden))}")
        current = await self.get_result(result_id)
        if not fields:
            return current

        async def operation() -> ChecklistResult:
            await self._store.update(self._table, {"id": result_id}, dict(fields))
            return current.model_copy(update=fields)

        return await self._coordinator.run_mutation(operation, RESULTS_KEY)

    async def soft_delete(self, result_id: str, deleted_by: str, reason: Optional[str] = None) -> None:
        """Tombstone a result. Rows are never removed."""
        await self.get_result(result_id)
        patch = {
            "is_deleted": True,
            "deleted_at": _utcnow().isoformat(),
            "deleted_by": deleted_by,
            "deletion_reason": reason,
        }

        async def operation() -> None:
            await self._store.update(self._table, {"id": result_id}, patch)

        await self._coordinator.run_mutation(operation, RESULTS_KEY)
        logger.info("Soft-deleted checklist result %s (by %s)", result_id, deleted_by)

    async def retake_count(self, participant_id: str, checklist_type: ChecklistType | str) -> int:
        latest = await self._latest_result(participant_id, ChecklistType(checklist_type))
        return latest.retake_count if latest is not None else 0

    async def can_retake(
        self,
        participant_id: str,
        checklist_type: ChecklistType | str,
        max_retakes: Optional[int] = None,
    ) -> RetakeEligibility:
        limit = self.max_retakes if max_retakes is None else max_retakes
        count = await self.retake_count(participant_id, checklist_type)
        return RetakeEligibility(can_retake=count < limit, retake_count=count, max_retakes=limit)

    async def _latest_result(self, participant_id: str, checklist_type: ChecklistType) -> Optional[ChecklistResult]:
        rows = await self._store.select(
            self._table,
            {
                "participant_id": participant_id,
                "checklist_type": ChecklistType(checklist_type).value,
                "is_deleted": False,
            },
            order_by=("submitted_at",),
            descending=True,
            limit=1,
        )
        return ChecklistResult.model_validate(rows[0]) if rows else None
