"""Composition root and view-facing facade.

Construct one ChecklistEngine per application and hand it to views; each
engine owns its own cache, coordinator and services.
"""

from __future__ import annotations

import logging
from typing import AbstractSet, Any, Awaitable, Callable, Optional, Sequence, Tuple, TypeVar

from checklist.cache import ChecklistCache, FetchFunction, RefreshResult, Subscription
from checklist.config import Settings, settings as default_settings
from checklist.models import AssessmentVerdict, ChecklistSection, ChecklistType, ScoringPolicy, SectionResult
from checklist.scoring import CompulsoryValidation, score, validate_compulsory_completion
from checklist.services import ChecklistItemService, ChecklistResultService
from checklist.store import RemoteStore
from checklist.sync import SyncCoordinator

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChecklistEngine:
    """Cache, synchronization and scoring behind a single object."""

    def __init__(self, store: RemoteStore, *, config: Optional[Settings] = None, owns_store: bool = False) -> None:
        self.config = config or default_settings
        self.store = store
        # Only a store built by from_settings is closed on stop.
        self.owns_store = owns_store
        self.cache = ChecklistCache(freshness_seconds=self.config.cache_freshness_seconds)
        self.coordinator = SyncCoordinator(
            store,
            self.cache,
            items_table=self.config.items_table,
            results_table=self.config.results_table,
        )
        self.items = ChecklistItemService(
            store,
            self.cache,
            self.coordinator,
            table=self.config.items_table,
            seed_missing=self.config.seed_missing_checklists,
        )
        self.results = ChecklistResultService(
            store,
            self.coordinator,
            table=self.config.results_table,
            quota=self.config.quota_pass_threshold,
            max_retakes=self.config.max_retakes,
        )

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "ChecklistEngine":
        """Engine backed by PostgreSQL and the Redis change feed."""
        from checklist.store.postgres import PostgresRemoteStore

        config = config or default_settings
        return cls(PostgresRemoteStore.from_settings(config), config=config, owns_store=True)

    async def start(self) -> None:
        await self.coordinator.start_listening()

    async def stop(self) -> None:
        await self.coordinator.stop_listening()
        if not self.owns_store:
            return
        close = getattr(self.store, "close", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> "ChecklistEngine":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def get_snapshot(self, key: str) -> Tuple[Any, ...]:
        return self.cache.get(key)

    def is_stale(self, key: str) -> bool:
        return self.cache.is_stale(key)

    async def refresh(self, key: str, fetch: FetchFunction) -> RefreshResult:
        return await self.cache.refresh(key, fetch)

    def subscribe(self, key: str, callback: Callable[[], None]) -> Subscription:
        """Call ``callback`` whenever the snapshot for ``key`` is replaced or invalidated.

        Covers refreshed snapshots, local mutations and remote changes, since
        every coordinator notification invalidates the cache entry. Callbacks
        should read snapshots or schedule a non-forced load; they must not
        write to the cache themselves.
        """

        def listener(changed: Optional[str]) -> None:
            if changed is None or changed == key:
                callback()

        return self.cache.subscribe(listener)

    async def load_checklist(self, checklist_type: ChecklistType | str, *, force: bool = False) -> RefreshResult:
        return await self.items.load(checklist_type, force=force)

    def score(
        self,
        sections: Sequence[ChecklistSection],
        completed: AbstractSet[str],
        policy: ScoringPolicy,
    ) -> AssessmentVerdict:
        return score(sections, completed, policy, quota=self.config.quota_pass_threshold)

    def validate_compulsory_completion(self, results: Sequence[SectionResult]) -> CompulsoryValidation:
        return validate_compulsory_completion(results)

    async def run_mutation(self, operation: Callable[[], Awaitable[T]], key: Optional[str] = None) -> T:
        return await self.coordinator.run_mutation(operation, key)
