"""Checklist item reads and writes, cached per checklist type."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from checklist.cache import ChecklistCache, RefreshResult
from checklist.catalog import CPR_TYPES, default_items, expected_compulsory
from checklist.errors import RecordNotFoundError
from checklist.models import ChecklistItem, ChecklistType
from checklist.store import RemoteStore
from checklist.sync import SyncCoordinator

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({"checklist_type", "section", "item", "is_compulsory", "order_index"})


def _check_fields(changes: Mapping[str, Any]) -> None:
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update checklist item fields: {', '.join(sorted(unknown))}")


class ChecklistItemService:
    """Loads checklist definitions through the cache and routes writes through the coordinator."""

    def __init__(
        self,
        store: RemoteStore,
        cache: ChecklistCache,
        coordinator: SyncCoordinator,
        *,
        table: str = "checklist_item",
        seed_missing: bool = True,
    ) -> None:
        self._store = store
        self._cache = cache
        self._coordinator = coordinator
        self._table = table
        self._seed_missing = seed_missing

    async def _select_type(self, checklist_type: ChecklistType) -> List[Dict[str, Any]]:
        return await self._store.select(
            self._table,
            {"checklist_type": checklist_type.value},
            order_by=("order_index",),
        )

    async def fetch_items(self, checklist_type: ChecklistType | str) -> List[ChecklistItem]:
        """Read items of one type from the store, ordered by ``order_index``."""
        rows = await self._select_type(ChecklistType(checklist_type))
        return [ChecklistItem.model_validate(row) for row in rows]

    async def ensure_defaults(self, checklist_type: ChecklistType | str) -> List[ChecklistItem]:
        """Seed the default catalog when a type has no items; returns what was created."""
        kind = ChecklistType(checklist_type)
        existing = await self._store.select(self._table, {"checklist_type": kind.value}, limit=1)
        if existing:
            return []
        logger.info("No checklist items for %s; creating defaults", kind.value)
        return await self.seed_defaults(kind)

    async def load(self, checklist_type: ChecklistType | str, *, force: bool = False) -> RefreshResult:
        """Return the cached snapshot, refreshing it first when stale or forced.

        Missing defaults are seeded before the refresh, and the change events
        they cause are drained first, so the snapshot stored by the refresh is
        not invalidated by its own seeding.
        """
        kind = ChecklistType(checklist_type)
        key = kind.value
        if not force and not self._cache.is_stale(key):
            return RefreshResult(key=key, success=True, items=self._cache.get(key))

        if self._seed_missing:
            try:
                await self.ensure_defaults(kind)
            except Exception as exc:
                logger.warning("Seeding defaults for %s failed: %s", key, exc)
                return RefreshResult(key=key, success=False, error=str(exc) or type(exc).__name__, exception=exc)
            await self._coordinator.drain()

        return await self._cache.refresh(key, lambda: self.fetch_items(kind))

    def snapshot(self, checklist_type: ChecklistType | str) -> Tuple[ChecklistItem, ...]:
        return self._cache.get(ChecklistType(checklist_type).value)

    async def all_items(self) -> List[ChecklistItem]:
        rows = await self._store.select(self._table, order_by=("checklist_type", "order_index"))
        return [ChecklistItem.model_validate(row) for row in rows]

    async def get_item(self, item_id: str) -> ChecklistItem:
        rows = await self._store.select(self._table, {"id": item_id}, limit=1)
        if not rows:
            raise RecordNotFoundError(f"Checklist item not found: {item_id}", table=self._table, operation="select")
        return ChecklistItem.model_validate(rows[0])

    async def create_item(self, item: ChecklistItem) -> ChecklistItem:
        async def operation() -> ChecklistItem:
            row = await self._store.insert(self._table, item.to_row())
            return ChecklistItem.model_validate(row)

        created = await self._coordinator.run_mutation(operation, item.checklist_type.value)
        logger.info("Created checklist item %s in %s/%s", created.id, created.checklist_type.value, created.section)
        return created

    async def update_item(self, item_id: str, **changes: Any) -> ChecklistItem:
        """Patch editable fields. Moving an item to another type notifies every key."""
        _check_fields(changes)
        current = await self.get_item(item_id)
        updated = ChecklistItem.model_validate({**current.model_dump(), **changes})
        dumped = updated.model_dump(mode="json")
        patch = {field: dumped[field] for field in changes}

        affected: Optional[str] = current.checklist_type.value
        if updated.checklist_type != current.checklist_type:
            affected = None

        async def operation() -> ChecklistItem:
            await self._store.update(self._table, {"id": item_id}, patch)
            return updated

        return await self._coordinator.run_mutation(operation, affected)

    async def delete_item(self, item_id: str) -> None:
        current = await self.get_item(item_id)

        async def operation() -> None:
            await self._store.delete(self._table, {"id": item_id})

        await self._coordinator.run_mutation(operation, current.checklist_type.value)
        logger.info("Deleted checklist item %s", item_id)

    async def delete_items_by_type(self, checklist_type: ChecklistType | str) -> None:
        key = ChecklistType(checklist_type).value

        async def operation() -> None:
            await self._store.delete(self._table, {"checklist_type": key})

        await self._coordinator.run_mutation(operation, key)
        logger.info("Deleted all checklist items for %s", key)

    async def bulk_update(self, updates: Sequence[Tuple[str, Mapping[str, Any]]]) -> int:
        """Apply several patches in one mutation; returns the number of rows patched."""
        for _, changes in updates:
            _check_fields(changes)
        if not updates:
            return 0

        # Every id is resolved and validated before the first write.
        ids = [item_id for item_id, _ in updates]
        rows = await self._store.select(self._table, {"id": ids})
        current = {row["id"]: ChecklistItem.model_validate(row) for row in rows}
        missing = [item_id for item_id in ids if item_id not in current]
        if missing:
            raise RecordNotFoundError(
                f"Checklist items not found: {', '.join(missing)}",
                table=self._table,
                operation="select",
            )

        patches = []
        for item_id, changes in updates:
            updated = ChecklistItem.model_validate({**current[item_id].model_dump(), **changes})
            dumped = updated.model_dump(mode="json")
            patches.append((item_id, {field: dumped[field] for field in changes}))

        async def operation() -> int:
            for item_id, patch in patches:
                await self._store.update(self._table, {"id": item_id}, patch)
            return len(patches)

        return await self._coordinator.run_mutation(operation)

    async def bulk_delete(self, item_ids: Sequence[str]) -> None:
        if not item_ids:
            return

        async def operation() -> None:
            await self._store.delete(self._table, {"id": list(item_ids)})

        await self._coordinator.run_mutation(operation)

    async def seed_defaults(self, checklist_type: ChecklistType | str, *, replace: bool = False) -> List[ChecklistItem]:
        """Insert the default catalog for a type, optionally replacing existing items."""
        kind = ChecklistType(checklist_type)

        async def operation() -> List[ChecklistItem]:
            if replace:
                await self._store.delete(self._table, {"checklist_type": kind.value})
            created = []
            for item in default_items(kind):
                row = await self._store.insert(self._table, item.to_row())
                created.append(ChecklistItem.model_validate(row))
            return created

        created = await self._coordinator.run_mutation(operation, kind.value)
        logger.info("Seeded %d default items for %s", len(created), kind.value)
        return created

    async def normalize_compulsory_flags(self) -> int:
        """Mark CPR items compulsory exactly when their section is airway, breathing or circulation."""
        rows = await self._store.select(
            self._table,
            {"checklist_type": [kind.value for kind in CPR_TYPES]},
        )
        items = [ChecklistItem.model_validate(row) for row in rows]
        fixes = [
            (item.id, expected_compulsory(item.checklist_type, item.section))
            for item in items
            if item.is_compulsory != expected_compulsory(item.checklist_type, item.section)
        ]
        if not fixes:
            return 0

        async def operation() -> int:
            for item_id, flag in fixes:
                await self._store.update(self._table, {"id": item_id}, {"is_compulsory": flag})
            return len(fixes)

        changed = await self._coordinator.run_mutation(operation)
        logger.info("Corrected compulsory flag on %d CPR items", changed)
        return changed
