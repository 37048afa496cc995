"""In-process remote store used for tests, demos and offline tooling."""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence
from uuid import uuid4

from checklist.models import ChangeEvent, EventType

if TYPE_CHECKING:  # pragma: no cover - type check helper
    from checklist.store import ChangeHandler, Row

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _matches(row: Mapping[str, Any], filters: Optional[Mapping[str, Any]]) -> bool:
    if not filters:
        return True
    for column, expected in filters.items():
        value = row.get(column)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


def _sort_key(column: str, descending: bool):
    # None sorts last in either direction.
    def key(row: Mapping[str, Any]):
        value = row.get(column)
        missing = value is None
        return (not missing if descending else missing, value if not missing else 0)

    return key


class MemorySubscription:
    def __init__(self, store: "InMemoryRemoteStore", table: str, handler: "ChangeHandler") -> None:
        self._store = store
        self.table = table
        self.handler = handler
        self.closed = False

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._store._detach(self)


class InMemoryRemoteStore:
    """Dictionary-backed store that emits change events on every write."""

    def __init__(self) -> None:
        self._tables: Dict[str, List["Row"]] = {}
        self._subscriptions: List[MemorySubscription] = []

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def rows(self, table: str) -> List["Row"]:
        """Copy of the raw rows of a table."""
        return copy.deepcopy(self._tables.get(table, []))

    async def select(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Sequence[str] = (),
        descending: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List["Row"]:
        rows = [copy.deepcopy(row) for row in self._tables.get(table, []) if _matches(row, filters)]
        # Sort by the last column first so earlier columns take precedence.
        for column in reversed(list(order_by)):
            rows.sort(key=_sort_key(column, descending), reverse=descending)
        start = offset or 0
        end = start + limit if limit is not None else None
        return rows[start:end]

    async def insert(self, table: str, row: Mapping[str, Any]) -> "Row":
        stored = copy.deepcopy(dict(row))
        stored.setdefault("id", str(uuid4()))
        timestamp = _now()
        stored.setdefault("created_at", timestamp)
        stored.setdefault("updated_at", timestamp)
        self._tables.setdefault(table, []).append(stored)
        logger.debug("Inserted row %s into %s", stored["id"], table)
        self._emit(ChangeEvent(event_type=EventType.INSERT, table=table, new_row=copy.deepcopy(stored)))
        return copy.deepcopy(stored)

    async def update(self, table: str, filters: Mapping[str, Any], patch: Mapping[str, Any]) -> None:
        rows = self._tables.get(table, [])
        for index, row in enumerate(rows):
            if not _matches(row, filters):
                continue
            updated = {**row, **copy.deepcopy(dict(patch))}
            if "updated_at" not in patch:
                updated["updated_at"] = _now()
            rows[index] = updated
            self._emit(
                ChangeEvent(
                    event_type=EventType.UPDATE,
                    table=table,
                    new_row=copy.deepcopy(updated),
                    old_row=copy.deepcopy(row),
                )
            )

    async def delete(self, table: str, filters: Mapping[str, Any]) -> None:
        rows = self._tables.get(table, [])
        kept: List["Row"] = []
        removed: List["Row"] = []
        for row in rows:
            (removed if _matches(row, filters) else kept).append(row)
        self._tables[table] = kept
        for row in removed:
            self._emit(ChangeEvent(event_type=EventType.DELETE, table=table, old_row=copy.deepcopy(row)))

    async def subscribe_changes(self, table: str, handler: "ChangeHandler") -> MemorySubscription:
        subscription = MemorySubscription(self, table, handler)
        self._subscriptions.append(subscription)
        logger.debug("Subscribed to changes on %s", table)
        return subscription

    def _detach(self, subscription: MemorySubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def _emit(self, event: ChangeEvent) -> None:
        for subscription in list(self._subscriptions):
            if subscription.table != event.table:
                continue
            try:
                subscription.handler(event)
            except Exception:
                logger.exception("Change handler failed for %s event on %s", event.event_type.value, event.table)
