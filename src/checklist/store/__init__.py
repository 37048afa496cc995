"""Remote store contract and its implementations."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from checklist.models import ChangeEvent

ChangeHandler = Callable[[ChangeEvent], None]
Row = Dict[str, Any]


class StoreSubscription(Protocol):
    """Handle for an open change subscription."""

    async def close(self) -> None: ...


class RemoteStore(Protocol):
    """Row-oriented persistence service with change notifications.

    Filters are column equality checks; a list, tuple or set value matches
    any of its members.
    """

    async def select(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Sequence[str] = (),
        descending: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Row]: ...

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row: ...

    async def update(self, table: str, filters: Mapping[str, Any], patch: Mapping[str, Any]) -> None: ...

    async def delete(self, table: str, filters: Mapping[str, Any]) -> None: ...

    async def subscribe_changes(self, table: str, handler: ChangeHandler) -> StoreSubscription: ...


from .memory import InMemoryRemoteStore  # noqa: E402

__all__ = [
    "ChangeHandler",
    "InMemoryRemoteStore",
    "RemoteStore",
    "Row",
    "StoreSubscription",
]
