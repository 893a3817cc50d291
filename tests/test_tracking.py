"""Tests for collection event orchestration and storage retries."""

import threading

import pytest

from services.errors import InvalidStageTransition, StorageUnavailable, UnknownMaterialType
from services.ledger_service import Ledger
from services.record_store import MemoryRecordStore
from services.rewards_service import RewardsEngine
from services.tracking_service import STAGE_ORDER, TrackingService, generate_tracking_id, retry_on_storage_error
from tests.conftest import TEST_DIFFICULTY, StepClock


def _event(tracking, stage, **overrides):
    arguments = dict(
        collection_id="col-1",
        stage=stage,
        weight=1.8,
        location="Ecoponto Centro",
        responsible_person="Maria Coletora",
        event_id=f"evt-{stage}",
    )
    arguments.update(overrides)
    return tracking.record_event(**arguments)


class TestRecordEvent:
    def test_full_progression_yields_valid_custody_chain(self, tracking, ledger):
        for stage in STAGE_ORDER:
            _event(tracking, stage)

        custody = ledger.custody_chain("col-1")

        assert custody.valid
        assert [entry.stage for entry in custody.timeline] == list(STAGE_ORDER)

    def test_collected_event_awards_points_once(self, tracking, rewards):
        response = _event(tracking, "collected", user_id="user-1", material_type="plastico")

        assert response.points_awarded == 40
        assert response.user_points.total_points == 40
        assert response.record.payload.stage == "collected"

        _event(tracking, "processing", user_id="user-1", material_type="plastico")
        assert rewards.user_points("user-1").total_points == 40

    def test_first_event_must_be_collected(self, tracking, memory_store):
        with pytest.raises(InvalidStageTransition):
            _event(tracking, "processing")
        assert memory_store.count() == 0

    def test_skipping_a_stage_is_rejected(self, tracking):
        _event(tracking, "collected")

        with pytest.raises(InvalidStageTransition):
            _event(tracking, "shipped_to_industry")

    def test_repeating_current_stage_is_allowed(self, tracking, memory_store):
        _event(tracking, "collected")
        _event(tracking, "collected", event_id="evt-collected-2", weight=2.0)

        assert memory_store.count() == 2

    def test_unknown_stage_is_rejected(self, tracking):
        with pytest.raises(InvalidStageTransition):
            _event(tracking, "lost")

    def test_replayed_event_id_is_idempotent(self, tracking, rewards, memory_store):
        first = _event(tracking, "collected", user_id="user-1", material_type="metal", weight=0.5)
        second = _event(tracking, "collected", user_id="user-1", material_type="metal", weight=0.5)

        assert second.record == first.record
        assert memory_store.count() == 1
        assert rewards.user_points("user-1").total_points == 20

    def test_unknown_material_writes_nothing(self, tracking, memory_store):
        with pytest.raises(UnknownMaterialType):
            _event(tracking, "collected", user_id="user-1", material_type="isopor")

        assert memory_store.count() == 0
        assert memory_store.get_user_points("user-1") is None

    def test_material_required_to_award(self, tracking, memory_store):
        with pytest.raises(ValueError):
            _event(tracking, "collected", user_id="user-1")
        assert memory_store.count() == 0

    def test_generated_event_id(self, tracking):
        response = _event(tracking, "collected", event_id=None)

        assert response.record.payload.event_id.startswith("TRK-")

    def test_transient_storage_error_is_retried(self, ledger, rewards):
        calls = []
        original = ledger.append

        def flaky_append(payload, cancel=None):
            calls.append(payload)
            if len(calls) == 1:
                raise StorageUnavailable("connection reset")
            return original(payload, cancel)

        ledger.append = flaky_append
        tracking = TrackingService(ledger, rewards, attempts=3, backoff=0, sleep=lambda _: None)

        response = _event(tracking, "collected")

        assert len(calls) == 2
        assert response.record.payload.collection_id == "col-1"


class BarrierScanStore(MemoryRecordStore):
    """Holds collection scans at a two-party barrier so two writers read the same state."""

    def __init__(self):
        super().__init__()
        self.barrier = None

    def scan(self, predicate=None, collection_id=None):
        if self.barrier is not None and collection_id is not None:
            try:
                self.barrier.wait(timeout=0.5)
            except threading.BrokenBarrierError:
                pass
        return super().scan(predicate=predicate, collection_id=collection_id)


class TestConcurrentEvents:
    def _service(self, store):
        ledger = Ledger(store, difficulty=TEST_DIFFICULTY, clock=StepClock())
        return TrackingService(ledger, RewardsEngine(store), attempts=1, backoff=0, sleep=lambda _: None)

    def _run_together(self, *calls):
        errors = []

        def run(call):
            try:
                call()
            except InvalidStageTransition as exc:
                errors.append(exc)

        threads = [threading.Thread(target=run, args=(call,)) for call in calls]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)
        return errors

    def test_replayed_event_is_appended_once(self):
        store = BarrierScanStore()
        tracking = self._service(store)
        _event(tracking, "collected", event_id="evt-1")
        store.barrier = threading.Barrier(2)

        replay = lambda: _event(tracking, "processing", event_id="evt-2")
        self._run_together(replay, replay)

        ids = [record.payload.event_id for record in store.scan()]
        assert ids == ["evt-1", "evt-2"]

    def test_stale_event_cannot_move_stage_backwards(self):
        store = BarrierScanStore()
        tracking = self._service(store)
        _event(tracking, "collected", event_id="evt-1")
        _event(tracking, "processing", event_id="evt-2")
        store.barrier = threading.Barrier(2)

        errors = self._run_together(
            lambda: _event(tracking, "shipped_to_industry", event_id="evt-3"),
            lambda: _event(tracking, "processing", event_id="evt-4"),
        )

        stages = [record.payload.stage for record in store.scan()]
        for previous, current in zip(stages, stages[1:]):
            assert STAGE_ORDER.index(current) >= STAGE_ORDER.index(previous)
        assert len(stages) + len(errors) == 4


class TestRetryOnStorageError:
    def test_backs_off_exponentially(self):
        delays = []
        outcomes = iter([StorageUnavailable("a"), StorageUnavailable("b"), "ok"])

        def operation():
            outcome = next(outcomes)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        result = retry_on_storage_error(operation, attempts=3, backoff=0.1, sleep=delays.append)

        assert result == "ok"
        assert delays == pytest.approx([0.1, 0.2])

    def test_gives_up_after_attempts(self):
        delays = []

        def operation():
            raise StorageUnavailable("down")

        with pytest.raises(StorageUnavailable):
            retry_on_storage_error(operation, attempts=2, backoff=0.1, sleep=delays.append)
        assert delays == pytest.approx([0.1])

    def test_other_errors_are_not_retried(self):
        calls = []

        def operation():
            calls.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            retry_on_storage_error(operation, attempts=3, backoff=0, sleep=lambda _: None)
        assert len(calls) == 1


def test_tracking_ids_are_unique():
    ids = {generate_tracking_id() for _ in range(100)}

    assert len(ids) == 100
    assert all(tracking_id.startswith("TRK-") for tracking_id in ids)
