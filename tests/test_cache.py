"""Tests for the checklist cache."""

import pytest

from checklist.cache import MAX_NOTIFY_ROUNDS, ChecklistCache, Subscription
from tests.conftest import make_item


class TestSnapshots:
    def test_missing_key_returns_empty(self, cache):
        assert cache.get("one_man_cpr") == ()
        assert cache.is_stale("one_man_cpr") is True
        assert cache.last_updated("one_man_cpr") == 0.0

    def test_set_then_get_round_trips(self, cache):
        items = [make_item("b", order_index=2), make_item("a", order_index=1)]

        cache.set("one_man_cpr", items)

        assert cache.get("one_man_cpr") == tuple(items)

    def test_get_is_idempotent(self, cache):
        cache.set("one_man_cpr", [make_item("a")])

        assert cache.get("one_man_cpr") is cache.get("one_man_cpr")

    def test_snapshot_unaffected_by_later_set(self, cache):
        cache.set("k", [make_item("a")])
        before = cache.get("k")

        cache.set("k", [make_item("b")])

        assert [i.id for i in before] == ["a"]
        assert [i.id for i in cache.get("k")] == ["b"]

    def test_snapshot_unaffected_by_caller_list_mutation(self, cache):
        items = [make_item("a")]
        cache.set("k", items)

        items.append(make_item("b"))

        assert len(cache.get("k")) == 1

    def test_invalidate_then_get(self, cache):
        cache.set("k", [make_item("a")])

        cache.invalidate("k")

        assert cache.get("k") == ()
        assert cache.is_stale("k") is True

    def test_invalidate_all(self, cache):
        cache.set("a", [make_item("1")])
        cache.set("b", [make_item("2")])

        cache.invalidate_all()

        assert cache.keys() == []
        assert cache.get("a") == ()


class TestStaleness:
    def test_fresh_until_window_passes(self, cache, clock):
        cache.set("k", [])

        clock.advance(300)
        assert cache.is_stale("k") is False

        clock.advance(1)
        assert cache.is_stale("k") is True

    def test_set_resets_timestamp(self, cache, clock):
        cache.set("k", [])
        clock.advance(500)

        cache.set("k", [])

        assert cache.is_stale("k") is False
        assert cache.last_updated("k") == clock.now


class TestNotifications:
    def test_fan_out_each_listener_once(self, cache):
        calls = []
        for name in ("first", "second", "third"):
            cache.subscribe(lambda key, name=name: calls.append((name, key)))

        cache.set("k", [])

        assert sorted(calls) == [("first", "k"), ("second", "k"), ("third", "k")]

    def test_invalidate_all_passes_none(self, cache):
        keys = []
        cache.subscribe(keys.append)

        cache.invalidate_all()

        assert keys == [None]

    def test_unsubscribe_stops_delivery(self, cache):
        keys = []
        subscription = cache.subscribe(keys.append)

        subscription.close()
        subscription.close()
        cache.set("k", [])

        assert keys == []
        assert subscription.active is False

    def test_subscription_as_context_manager(self, cache):
        keys = []
        with cache.subscribe(keys.append):
            cache.set("k", [])
        cache.set("k", [])

        assert keys == ["k"]

    def test_failing_listener_does_not_block_others(self, cache):
        received = []

        def broken(key):
            raise RuntimeError("boom")

        cache.subscribe(broken)
        cache.subscribe(received.append)

        cache.set("k", [])

        assert received == ["k"]

    def test_reentrant_set_is_delivered_after_current_round(self, cache):
        order = []

        def listener(key):
            order.append(key)
            if key == "a":
                cache.set("b", [])

        cache.subscribe(listener)
        cache.set("a", [])

        assert order == ["a", "b"]
        assert cache.keys() == ["a", "b"]

    def test_listener_cycle_is_cut(self, cache):
        calls = []

        def listener(key):
            calls.append(key)
            cache.invalidate(key)

        cache.subscribe(listener)
        cache.set("loop", [])

        assert len(calls) == MAX_NOTIFY_ROUNDS


class TestRefresh:
    async def test_success_stores_items(self, cache):
        async def fetch():
            return [make_item("a"), make_item("b")]

        result = await cache.refresh("k", fetch)

        assert result.success is True
        assert [i.id for i in result.items] == ["a", "b"]
        assert cache.get("k") == result.items

    async def test_failure_leaves_entry_untouched(self, cache):
        cache.set("k", [make_item("old")])
        before = cache.get("k")
        notified = []
        cache.subscribe(notified.append)

        async def fetch():
            raise ConnectionError("offline")

        result = await cache.refresh("k", fetch)

        assert result.success is False
        assert result.error == "offline"
        assert isinstance(result.exception, ConnectionError)
        assert cache.get("k") is before
        assert notified == []


class TestSubscription:
    def test_callable_disposes(self):
        disposed = []
        subscription = Subscription(lambda: disposed.append(True))

        subscription()
        subscription()

        assert disposed == [True]

    def test_isolated_instances(self):
        first = ChecklistCache()
        second = ChecklistCache()

        first.set("k", [make_item("a")])

        assert second.get("k") == ()


@pytest.mark.parametrize("freshness", [0, 10])
def test_zero_age_entry_is_fresh(freshness, clock):
    cache = ChecklistCache(freshness_seconds=freshness, clock=clock)
    cache.set("k", [])

    assert cache.is_stale("k") is False
