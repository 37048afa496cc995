"""Shared fixtures: an in-memory store, a controllable clock and a wired engine."""

from __future__ import annotations

from typing import List

import pytest

from checklist.cache import ChecklistCache
from checklist.catalog import default_items
from checklist.config import Settings
from checklist.engine import ChecklistEngine
from checklist.models import ChecklistItem, ChecklistSection, ChecklistType
from checklist.store import InMemoryRemoteStore
from checklist.sync import SyncCoordinator


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_item(
    item_id: str,
    section: str = "airway",
    *,
    compulsory: bool = False,
    order_index: int = 0,
    checklist_type: ChecklistType = ChecklistType.ONE_MAN_CPR,
    text: str | None = None,
) -> ChecklistItem:
    return ChecklistItem(
        id=item_id,
        checklist_type=checklist_type,
        section=section,
        item=text or f"Step {item_id}",
        is_compulsory=compulsory,
        order_index=order_index,
    )


def make_section(name: str, *items: ChecklistItem) -> ChecklistSection:
    return ChecklistSection(section=name, items=list(items))


def catalog_with_ids(checklist_type: ChecklistType) -> List[ChecklistItem]:
    """Default items of a type with deterministic ids ``<type>-<n>``."""
    return [
        item.model_copy(update={"id": f"{checklist_type.value}-{item.order_index}"})
        for item in default_items(checklist_type)
    ]


@pytest.fixture
def test_settings() -> Settings:
    return Settings(_env_file=None, cache_freshness_seconds=300.0, seed_missing_checklists=True)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryRemoteStore:
    return InMemoryRemoteStore()


@pytest.fixture
def cache(clock: FakeClock) -> ChecklistCache:
    return ChecklistCache(freshness_seconds=300, clock=clock)


@pytest.fixture
def coordinator(store: InMemoryRemoteStore, cache: ChecklistCache) -> SyncCoordinator:
    return SyncCoordinator(store, cache)


@pytest.fixture
async def engine(store: InMemoryRemoteStore, test_settings: Settings):
    engine = ChecklistEngine(store, config=test_settings)
    yield engine
    await engine.stop()
