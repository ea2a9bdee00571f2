"""Tests for seek planning."""

import pytest

from logplay.seek import PendingRemovals, SeekController, TimeWindow
from logplay.state import DiffRecord


class TestTimeWindow:
    """Tests for TimeWindow."""

    def test_half_open(self):
        window = TimeWindow(1.0, 2.0)
        assert window.contains(1.0)
        assert window.contains(1.5)
        assert not window.contains(2.0)

    def test_empty_when_bounds_equal(self):
        window = TimeWindow(3.0, 3.0)
        assert window.empty
        assert not window.contains(3.0)
        assert window.duration == 0.0

    def test_rejects_negative_start(self):
        with pytest.raises(ValueError):
            TimeWindow(-1.0, 1.0)

    def test_rejects_inverted_bounds(self):
        with pytest.raises(ValueError):
            TimeWindow(2.0, 1.0)


class TestPendingRemovals:
    """Tests for PendingRemovals bookkeeping during a rewind."""

    def test_seeded_from_entities(self):
        pending = PendingRemovals([3, 1, 2])
        assert list(pending) == [1, 2, 3]
        assert len(pending) == 3

    def test_mention_evicts(self):
        pending = PendingRemovals([1, 2])
        pending.update([DiffRecord(entity_id=1)])
        assert 1 not in pending
        assert 2 in pending

    def test_removal_reinserts(self):
        pending = PendingRemovals([1])
        pending.update([
            DiffRecord(entity_id=1),
            DiffRecord(entity_id=1, is_removal=True),
        ])
        assert 1 in pending

    def test_removal_then_recreate_evicts(self):
        pending = PendingRemovals()
        pending.update([
            DiffRecord(entity_id=5, is_removal=True),
            DiffRecord(entity_id=5),
        ])
        assert 5 not in pending

    def test_evict(self):
        pending = PendingRemovals([1, 2, 3])
        pending.evict([1, 3])
        assert list(pending) == [2]


class TestSeekController:
    """Tests for SeekController.plan()."""

    @pytest.fixture
    def controller(self):
        return SeekController()

    def test_zero_dt_gives_empty_window(self, controller, ecm):
        plan = controller.plan(ecm, 2.0, 2.0)
        assert plan.window.empty
        assert plan.window.end == 2.0
        assert not plan.rewind
        assert plan.pending_removals is None

    def test_forward(self, controller, ecm):
        plan = controller.plan(ecm, 1.0, 1.5)
        assert plan.window == TimeWindow(1.0, 1.5)
        assert not plan.rewind
        assert plan.pending_removals is None

    def test_backward_replays_from_zero(self, controller, ecm):
        for entity_id in (4, 7):
            ecm.ensure_entity(entity_id)

        plan = controller.plan(ecm, 5.0, 2.0)

        assert plan.rewind
        assert plan.window == TimeWindow(0.0, 2.0)
        assert list(plan.pending_removals) == [4, 7]

    def test_backward_to_zero(self, controller, ecm):
        plan = controller.plan(ecm, 3.0, 0.0)
        assert plan.rewind
        assert plan.window.empty

    def test_does_not_mutate_world(self, controller, ecm):
        ecm.ensure_entity(1)
        controller.plan(ecm, 5.0, 0.0)
        assert ecm.entities() == {1}
        assert not ecm.is_removal_requested(1)

    def test_negative_times_clamped(self, controller, ecm):
        plan = controller.plan(ecm, -1.0, 0.5)
        assert plan.window == TimeWindow(0.0, 0.5)
