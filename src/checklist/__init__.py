"""Checklist assessment state, scoring and synchronization for life-support training."""

from .cache import ChecklistCache, RefreshResult, Subscription
from .engine import ChecklistEngine
from .scoring import assess, score, validate_compulsory_completion
from .sync import SyncCoordinator

__all__ = [
    "ChecklistCache",
    "ChecklistEngine",
    "RefreshResult",
    "Subscription",
    "SyncCoordinator",
    "assess",
    "score",
    "validate_compulsory_completion",
]

__version__ = "0.1.0"
