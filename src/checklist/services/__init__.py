"""Checklist item and result services built on the remote store."""

from .items import ChecklistItemService
from .results import ChecklistResultService, ResultFilters, RetakeEligibility, build_result

__all__ = [
    "ChecklistItemService",
    "ChecklistResultService",
    "ResultFilters",
    "RetakeEligibility",
    "build_result",
]
