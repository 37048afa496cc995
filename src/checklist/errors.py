"""Exception hierarchy for checklist operations."""

from __future__ import annotations

from typing import Sequence


class ChecklistError(Exception):
    """Base class for all checklist errors."""


class RemoteStoreError(ChecklistError):
    """The remote store failed to serve a read or write."""

    def __init__(self, message: str, *, table: str | None = None, operation: str | None = None) -> None:
        super().__init__(message)
        self.table = table
        self.operation = operation


class RecordNotFoundError(RemoteStoreError):
    """A lookup by id matched no row."""


class SubmissionValidationError(ChecklistError):
    """A PASS submission still has incomplete compulsory items."""

    def __init__(self, missing_labels: Sequence[str]) -> None:
        self.missing_labels = list(missing_labels)
        joined = "; ".join(self.missing_labels)
        super().__init__(f"Cannot submit as PASS, compulsory items incomplete: {joined}")


class ResultImmutableError(ChecklistError):
    """An attempt to change a persisted result outside its mutable fields."""
