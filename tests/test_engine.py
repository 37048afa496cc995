"""End-to-end tests of ChecklistEngine over the in-memory store."""

from checklist.engine import ChecklistEngine
from checklist.models import ChecklistType, ParticipantSnapshot, ScoringPolicy, Verdict
from checklist.scoring import build_sections, section_results
from checklist.store import InMemoryRemoteStore
from checklist.sync import RESULTS_KEY
from tests.conftest import catalog_with_ids


class TestEngine:
    async def test_engines_do_not_share_cache(self, store, test_settings):
        first = ChecklistEngine(store, config=test_settings)
        second = ChecklistEngine(store, config=test_settings)

        await first.load_checklist("one_man_cpr")

        assert first.get_snapshot("one_man_cpr")
        assert second.get_snapshot("one_man_cpr") == ()

    async def test_load_seeds_and_caches(self, engine):
        result = await engine.load_checklist(ChecklistType.TWO_MAN_CPR)

        assert result.success is True
        assert engine.get_snapshot("two_man_cpr") == result.items
        assert engine.is_stale("two_man_cpr") is False

    async def test_failed_refresh_keeps_snapshot(self, engine):
        await engine.load_checklist("infant_cpr")
        before = engine.get_snapshot("infant_cpr")

        async def fetch():
            raise TimeoutError("remote store timed out")

        result = await engine.refresh("infant_cpr", fetch)

        assert result.success is False
        assert engine.get_snapshot("infant_cpr") is before

    async def test_view_flow_scores_and_submits(self, engine):
        result = await engine.load_checklist("one_man_cpr")
        sections = build_sections(result.items)
        completed = {item.id for item in result.items if item.is_compulsory}

        verdict = engine.score(sections, completed, ScoringPolicy.COMPULSORY)
        validation = engine.validate_compulsory_completion(section_results(sections, completed))

        assert verdict.verdict is Verdict.PASS
        assert validation.is_valid is True

        saved = await engine.results.submit(
            ParticipantSnapshot(participant_id="p-9", name="Chen"),
            "one_man_cpr",
            result.items,
            completed,
        )
        assert saved.status is Verdict.PASS

    async def test_remote_change_reaches_subscriber(self, store, engine):
        await engine.load_checklist("adult_choking")
        calls = []
        subscription = engine.subscribe("adult_choking", lambda: calls.append(True))
        await engine.start()

        await store.insert(
            engine.config.items_table,
            {"checklist_type": "adult_choking", "section": "mild_choking", "item": "Reassure", "order_index": 50},
        )
        await engine.coordinator.drain()

        assert calls == [True]
        assert engine.is_stale("adult_choking") is True
        reloaded = await engine.load_checklist("adult_choking")
        assert any(item.item == "Reassure" for item in reloaded.items)

        subscription.close()
        await engine.stop()

    async def test_local_and_remote_notifications_after_submit(self, engine):
        calls = []
        engine.subscribe(RESULTS_KEY, lambda: calls.append(True))
        await engine.start()

        async def operation():
            return await engine.store.insert(engine.config.results_table, {"participant_id": "x"})

        await engine.run_mutation(operation, RESULTS_KEY)
        await engine.coordinator.drain()

        # one from the mutation itself, one from the change feed
        assert calls == [True, True]

    async def test_context_manager_starts_and_stops(self, store, test_settings):
        async with ChecklistEngine(store, config=test_settings) as engine:
            assert engine.coordinator.is_listening is True
            assert store.subscription_count == 2

        assert store.subscription_count == 0


class ClosingStore(InMemoryRemoteStore):
    def __init__(self):
        super().__init__()
        self.closed = False

    async def close(self):
        self.closed = True


class TestSubscribe:
    async def test_each_subscriber_called_once_per_refresh(self, engine):
        calls = []
        for name in ("first", "second", "third"):
            engine.subscribe("one_man_cpr", lambda name=name: calls.append(name))
        engine.subscribe("infant_cpr", lambda: calls.append("other key"))

        async def fetch():
            return catalog_with_ids(ChecklistType.ONE_MAN_CPR)

        result = await engine.refresh("one_man_cpr", fetch)

        assert result.success is True
        assert sorted(calls) == ["first", "second", "third"]

    async def test_load_by_one_view_reaches_another(self, engine):
        seen = []
        engine.subscribe("adult_choking", lambda: seen.append(len(engine.get_snapshot("adult_choking"))))

        await engine.load_checklist("adult_choking")

        assert seen[-1] == len(engine.get_snapshot("adult_choking")) > 0

    async def test_full_clear_reaches_every_key(self, engine):
        calls = []
        engine.subscribe("one_man_cpr", lambda: calls.append("one_man_cpr"))
        engine.subscribe(RESULTS_KEY, lambda: calls.append(RESULTS_KEY))

        engine.coordinator.notify_all()

        assert sorted(calls) == ["one_man_cpr", RESULTS_KEY]

    async def test_closed_subscription_is_silent(self, engine):
        calls = []
        subscription = engine.subscribe("one_man_cpr", lambda: calls.append(True))
        subscription.close()

        await engine.load_checklist("one_man_cpr")

        assert calls == []

    async def test_seeding_load_leaves_fresh_snapshot_while_listening(self, engine):
        await engine.start()

        result = await engine.load_checklist(ChecklistType.ONE_MAN_CPR)
        await engine.coordinator.drain()

        assert engine.get_snapshot("one_man_cpr") is result.items
        assert engine.is_stale("one_man_cpr") is False


class TestStoreOwnership:
    async def test_stop_leaves_borrowed_store_open(self, test_settings):
        store = ClosingStore()
        engine = ChecklistEngine(store, config=test_settings)

        await engine.stop()

        assert store.closed is False

    async def test_stop_closes_owned_store(self, test_settings):
        store = ClosingStore()
        engine = ChecklistEngine(store, config=test_settings, owns_store=True)

        await engine.stop()

        assert store.closed is True
