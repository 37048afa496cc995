"""Data model for checklist definitions, assessments and persisted results.

Structure: ChecklistType → sections → ChecklistItem. Scoring derives
SectionResult and AssessmentVerdict snapshots from a CompletionMark; a
ChecklistResult is the persisted record of one submission.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChecklistType(str, Enum):
    """Closed set of assessment kinds shared with the persistence schema."""
    ONE_MAN_CPR = "one_man_cpr"
    TWO_MAN_CPR = "two_man_cpr"
    INFANT_CPR = "infant_cpr"
    ADULT_CHOKING = "adult_choking"
    INFANT_CHOKING = "infant_choking"


class Verdict(str, Enum):
    """Tri-state outcome of scoring."""
    INCOMPLETE = "INCOMPLETE"
    FAIL = "FAIL"
    PASS = "PASS"


class ScoringPolicy(str, Enum):
    """Gating rule used to derive a verdict."""
    COMPULSORY = "compulsory"  # every compulsory item must be completed
    QUOTA = "quota"            # a minimum number of items, any of them


class EventType(str, Enum):
    """Kind of row change reported by the remote store."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChecklistItem(BaseModel):
    """A single checklist step as stored in the items table."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: Optional[str] = None  # None until persisted
    checklist_type: ChecklistType
    section: str
    item: str
    is_compulsory: bool = False
    order_index: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_row(self) -> Dict[str, Any]:
        """Columns written on insert; the store assigns id and timestamps."""
        return self.model_dump(mode="json", exclude={"id", "created_at", "updated_at"})


class ChecklistSection(BaseModel):
    """Items of one section, already in display order."""

    model_config = ConfigDict(frozen=True)

    section: str
    items: List[ChecklistItem] = Field(default_factory=list)


class CompletionMark(BaseModel):
    """In-progress selections of one assessment view. Never persisted."""

    model_config = ConfigDict(frozen=True)

    checklist_type: ChecklistType
    participant_id: Optional[str] = None
    completed: FrozenSet[str] = frozenset()

    def toggle(self, item_id: str) -> "CompletionMark":
        if item_id in self.completed:
            remaining = self.completed - {item_id}
        else:
            remaining = self.completed | {item_id}
        return self.model_copy(update={"completed": frozenset(remaining)})

    def cleared(self) -> "CompletionMark":
        return self.model_copy(update={"completed": frozenset()})


class SectionItemResult(BaseModel):
    """Completion state of one item at scoring time."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    item: str
    completed: bool
    is_compulsory: bool


class SectionResult(BaseModel):
    """Per-section snapshot produced by the scoring engine."""

    model_config = ConfigDict(frozen=True)

    section: str
    completed: bool  # every item in the section marked; display only
    items: List[SectionItemResult] = Field(default_factory=list)


class AssessmentVerdict(BaseModel):
    """Aggregate scoring outcome."""

    model_config = ConfigDict(frozen=True)

    completed_count: int
    total_count: int
    percentage: float
    compulsory_fully_met: bool
    can_pass: bool
    verdict: Verdict


class ParticipantSnapshot(BaseModel):
    """Participant fields copied into a result at submission time."""

    participant_id: str
    name: str
    email: Optional[str] = None
    ic_number: Optional[str] = None
    phone_number: Optional[str] = None
    job_position: Optional[str] = None
    category: Optional[str] = None
    workplace: Optional[str] = None


class ChecklistResult(BaseModel):
    """Persisted outcome of one submitted assessment.

    Created once; afterwards only the tombstone and instructor annotation
    fields may change.
    """

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None

    # Participant snapshot
    participant_id: str
    participant_name: str
    participant_email: Optional[str] = None
    participant_ic_number: Optional[str] = None
    participant_phone_number: Optional[str] = None
    participant_job_position: Optional[str] = None
    participant_category: Optional[str] = None
    participant_workplace: Optional[str] = None

    # Scoring
    checklist_type: ChecklistType
    total_items: int
    completed_items: int
    completion_percentage: float
    status: Verdict
    can_pass: bool
    all_compulsory_completed: bool
    section_results: List[SectionResult] = Field(default_factory=list)

    # Instructor
    instructor_id: Optional[str] = None
    instructor_name: Optional[str] = None
    instructor_comments: Optional[str] = None
    assessment_notes: Optional[str] = None
    submitted_at: Optional[datetime] = None
    assessment_duration_seconds: Optional[int] = None

    # Retake bookkeeping
    retake_count: int = 0
    is_retake: bool = False
    previous_assessment_id: Optional[str] = None

    # Tombstone
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None
    deletion_reason: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_row(self) -> Dict[str, Any]:
        """Columns written on insert."""
        return self.model_dump(
            mode="json",
            exclude={"id", "created_at", "updated_at"},
            exclude_none=True,
        )


class ChecklistStats(BaseModel):
    """Aggregate result statistics for one checklist type."""

    checklist_type: ChecklistType
    total_assessments: int = 0
    pass_count: int = 0
    fail_count: int = 0
    incomplete_count: int = 0
    avg_completion_percentage: float = 0.0
    avg_duration_seconds: int = 0
    pass_rate: int = 0


class ChangeEvent(BaseModel):
    """Row change notification emitted by a remote store."""

    event_type: EventType
    table: str
    new_row: Optional[Dict[str, Any]] = None
    old_row: Optional[Dict[str, Any]] = None
