"""
Tests for PlaybackSession.

Recordings are written to tmp_path as JSON Lines and replayed into a
fresh EntityComponentManager.
"""

import json
import zipfile

import pytest

from conftest import (
    EMITTER,
    GEOMETRY,
    NAME,
    POSE,
    WORLD,
    entity,
    state_line,
    state_map_line,
    string_line,
)

from logplay import logging as logplay_logging
from logplay.components import Geometry, LogPlaybackStatistics, Name, ParticleEmitterCmd, Pose
from logplay.config import PlaybackConfig
from logplay.ecm import ComponentState, EntityComponentManager
from logplay.errors import ConfigurationError, NotFoundError
from logplay.log_store import JsonLinesLogStore
from logplay.registry import SessionRegistry
from logplay.session import PlaybackSession

A, B, C = 10, 11, 12


@pytest.fixture
def make_session(events, registry):
    """Factory for sessions sharing the test's registry and event manager."""
    sessions = []

    def make(path="", **kwargs):
        config = kwargs.pop('config', None) or PlaybackConfig(playback_path=str(path))
        session = PlaybackSession(config, events, registry=registry, **kwargs)
        sessions.append(session)
        return session

    yield make
    for session in sessions:
        session.close()


@pytest.fixture
def lifecycle_log(recording):
    """Seed {A}; B created at t=1; A removed at t=2."""
    return recording([
        string_line(0.0),
        state_line(0.0, entity(A, **{NAME: {"data": "a"}})),
        state_line(1.0, entity(B, **{NAME: {"data": "b"}})),
        state_line(2.0, entity(A, remove=True)),
    ])


class StoreSpy:
    """Store factory recording every open."""

    def __init__(self):
        self.opened = []

    def __call__(self, path):
        self.opened.append(path)
        return JsonLinesLogStore.open(path)


# =============================================================================
# Start
# =============================================================================

class TestStart:
    """Tests for PlaybackSession.start()."""

    def test_seeds_world(self, make_session, lifecycle_log, ecm):
        session = make_session(lifecycle_log)

        assert session.start(ecm)

        assert session.active
        assert ecm.entities() == {A}
        assert ecm.component(A, Name).data == "a"
        assert [r.entity_id for r in session.seed_records] == [A]

    def test_seed_skips_leading_non_state_messages(self, make_session, recording, ecm):
        root = recording([
            string_line(0.0),
            string_line(0.5),
            state_map_line(1.0, entity(A)),
            state_line(2.0, entity(B)),
        ])
        session = make_session(root)
        session.start(ecm)
        assert ecm.entities() == {A}

    def test_no_path(self, make_session, ecm, registry):
        session = make_session("")
        with pytest.raises(ConfigurationError):
            session.start(ecm)
        assert registry.active is None

    def test_missing_log_file(self, make_session, tmp_path, ecm, registry):
        (tmp_path / "empty_dir").mkdir()
        session = make_session(tmp_path / "empty_dir")

        with pytest.raises(NotFoundError):
            session.start(ecm)

        assert not session.active
        assert registry.active is None

    def test_custom_log_file_name(self, make_session, recording, ecm):
        root = recording([state_line(0.0, entity(A))], log_file="custom.tlog")
        session = make_session(config=PlaybackConfig(
            playback_path=str(root), log_file_name="custom.tlog"))
        assert session.start(ecm)
        assert ecm.entities() == {A}

    def test_start_twice(self, make_session, lifecycle_log, ecm):
        spy = StoreSpy()
        session = make_session(lifecycle_log, store_factory=spy)
        assert session.start(ecm)
        assert session.start(ecm)
        assert len(spy.opened) == 1

    def test_single_session(self, make_session, lifecycle_log, ecm):
        first = make_session(lifecycle_log)
        assert first.start(ecm)

        spy = StoreSpy()
        second = make_session(lifecycle_log, store_factory=spy)

        assert second.start(EntityComponentManager()) is False
        assert not second.active
        assert spy.opened == []
        assert ecm.entities() == {A}

        # The first session keeps playing as if nothing happened
        first.step(ecm, 0.0, 3.0)
        assert first.active
        assert ecm.entities() == {B}
        assert ecm.component(B, Name).data == "b"

    def test_registry_free_after_close(self, make_session, lifecycle_log, ecm):
        first = make_session(lifecycle_log)
        first.start(ecm)
        first.close()

        second = make_session(lifecycle_log)
        assert second.start(EntityComponentManager())

    def test_empty_log_stays_active(self, make_session, recording, ecm, pauses):
        session = make_session(recording([]))

        assert session.start(ecm)
        assert session.active
        assert ecm.entities() == set()

        session.step(ecm, 0.0, 0.1)
        assert len(pauses) == 1

    def test_no_seed_state_stays_active(self, make_session, recording, ecm):
        session = make_session(recording([string_line(0.0), string_line(1.0)]))
        assert session.start(ecm)
        assert session.seed_records == []

    def test_playback_statistics_on_world(self, make_session, recording, ecm):
        root = recording([
            state_line(0.5, entity(1, **{WORLD: {}}), entity(A)),
            state_line(4.0, entity(B)),
        ])
        session = make_session(root)
        session.start(ecm)

        stats = ecm.component(1, LogPlaybackStatistics)
        assert stats == LogPlaybackStatistics(start_time=0.5, end_time=4.0)

    def test_no_world_entity(self, make_session, lifecycle_log, ecm):
        session = make_session(lifecycle_log)
        assert session.start(ecm)
        assert ecm.entities_with(LogPlaybackStatistics) == set()

    def test_entity_create_offset(self, make_session, lifecycle_log, ecm):
        session = make_session(config=PlaybackConfig(
            playback_path=str(lifecycle_log), entity_create_offset=1000))
        session.start(ecm)
        assert ecm.create_entity() == 1000


# =============================================================================
# Step
# =============================================================================

class TestStep:
    """Tests for forward playback."""

    def test_forward_window_is_half_open(self, make_session, lifecycle_log, ecm):
        session = make_session(lifecycle_log)
        session.start(ecm)

        session.step(ecm, 0.0, 1.0)
        assert ecm.entities() == {A}

        session.step(ecm, 1.0, 2.0)
        assert ecm.entities() == {A, B}

        session.step(ecm, 2.0, 3.0)
        assert ecm.entities() == {B}

    def test_zero_dt_is_noop(self, make_session, lifecycle_log, ecm, pauses):
        session = make_session(lifecycle_log)
        session.start(ecm)
        session.step(ecm, 5.0, 5.0)
        assert ecm.entities() == {A}
        assert session.stats.steps == 0
        assert pauses == []

    def test_step_before_start_is_noop(self, make_session, lifecycle_log, ecm):
        session = make_session(lifecycle_log)
        session.step(ecm, 0.0, 3.0)
        assert ecm.entities() == set()

    def test_forward_determinism(self, recording):
        root = recording([
            state_line(0.0, entity(A, **{POSE: {"x": 0.0}})),
            state_line(0.3, entity(A, **{POSE: {"x": 1.0}}), entity(B)),
            state_line(0.7, entity(B, remove=True), entity(C, **{NAME: {"data": "c"}})),
            state_line(1.1, entity(A, **{POSE: {"x": 2.0}})),
        ])

        def play(times):
            ecm = EntityComponentManager()
            with PlaybackSession(PlaybackConfig(playback_path=str(root)),
                                 registry=SessionRegistry()) as session:
                session.start(ecm)
                for t_prev, t_now in zip(times, times[1:]):
                    session.step(ecm, t_prev, t_now)
            return {
                e: (ecm.component(e, Pose), ecm.component(e, Name))
                for e in ecm.entities()
            }

        fine = play([i / 10 for i in range(0, 16)])
        coarse = play([0.0, 1.5])
        assert fine == coarse
        assert fine[A][0] == Pose(x=2.0)
        assert set(fine) == {A, C}

    def test_unknown_and_malformed_messages_skipped(self, make_session, recording, ecm):
        root = recording([
            state_line(0.0, entity(A)),
            {"time": 1.0, "type": "vendor.msgs.Telemetry", "topic": "/t", "data": "{}"},
            {"time": 1.0, "type": "logplay.msgs.SerializedState", "topic": "/s", "data": "{bad"},
            state_line(1.0, entity(B)),
        ])
        session = make_session(root)
        session.start(ecm)

        session.step(ecm, 0.5, 2.0)

        assert ecm.entities() == {A, B}
        stats = session.stats
        assert stats.messages_skipped == 2
        assert stats.messages_applied == 1

    def test_bad_entity_keeps_siblings(self, make_session, recording, ecm):
        """One invalid entity does not drop the rest of its message."""
        root = recording([
            state_line(0.0, entity(A, **{NAME: {"data": "a"}})),
            state_line(1.0, entity(B, **{NAME: {"data": "b"}}), {"id": "not-an-id"}),
        ])
        session = make_session(root)
        session.start(ecm)

        session.step(ecm, 0.0, 2.0)

        assert ecm.entities() == {A, B}
        stats = session.stats
        assert stats.records_dropped == 1
        assert stats.messages_skipped == 0
        assert stats.messages_applied == 1

    def test_component_removal(self, make_session, recording, ecm):
        payload = {"entities": [{"id": A, "components": [{"type": NAME, "remove": True}]}]}
        root = recording([
            state_line(0.0, entity(A, **{NAME: {"data": "a"}, POSE: {}})),
            {"time": 1.0, "type": "logplay.msgs.SerializedState", "data": json.dumps(payload)},
        ])
        session = make_session(root)
        session.start(ecm)

        session.step(ecm, 0.5, 1.5)

        assert ecm.component(A, Name) is None
        assert ecm.component(A, Pose) == Pose()

    def test_emitter_transitions_flagged(self, make_session, recording, ecm):
        root = recording([
            state_line(0.0, entity(A, **{EMITTER: {"emitting": True}})),
            state_line(1.0, entity(A, **{EMITTER: {"emitting": True}})),
            state_line(2.0, entity(A, **{EMITTER: {"emitting": False}})),
            state_line(3.0, entity(A, **{EMITTER: {"emitting": False}})),
            state_line(4.0, entity(A, **{EMITTER: {"emitting": True}})),
            string_line(5.0),
        ])
        session = make_session(root)
        session.start(ecm)

        flagged_at = []
        for t in range(5):
            ecm.clear_changes()
            session.step(ecm, float(t), float(t + 1))
            if ecm.changed_state(A, ParticleEmitterCmd) is ComponentState.ONE_TIME_CHANGE:
                flagged_at.append(t)

        assert flagged_at == [2, 4]


# =============================================================================
# Rewind
# =============================================================================

class TestRewind:
    """Tests for stepping backward."""

    def test_rewind_to_seed_time(self, make_session, lifecycle_log, ecm):
        session = make_session(lifecycle_log)
        session.start(ecm)
        session.step(ecm, 0.0, 3.0)
        assert ecm.entities() == {B}

        session.step(ecm, 3.0, 0.0)

        assert ecm.entities() == {A}
        assert ecm.component(A, Name).data == "a"
        assert session.stats.rewinds == 1

    def test_rewind_to_middle(self, make_session, lifecycle_log, ecm):
        session = make_session(lifecycle_log)
        session.start(ecm)
        session.step(ecm, 0.0, 3.0)

        session.step(ecm, 3.0, 1.5)

        assert ecm.entities() == {A, B}

    def test_rewind_removes_host_entities(self, make_session, lifecycle_log, ecm):
        session = make_session(lifecycle_log)
        session.start(ecm)
        extra = ecm.create_entity()
        session.step(ecm, 0.0, 1.0)

        session.step(ecm, 1.0, 0.5)

        assert not ecm.has_entity(extra)

    def test_rewind_matches_forward_playback(self, make_session, recording, ecm):
        root = recording([
            state_line(0.0, entity(A, **{POSE: {"x": 0.0}})),
            state_line(1.0, entity(A, **{POSE: {"x": 1.0}}), entity(B)),
            state_line(2.0, entity(B, remove=True), entity(C)),
            state_line(3.0, entity(A, **{POSE: {"x": 3.0}})),
        ])
        session = make_session(root)
        session.start(ecm)
        session.step(ecm, 0.0, 4.0)
        session.step(ecm, 4.0, 1.5)

        assert ecm.entities() == {A, B}
        assert ecm.component(A, Pose).x == 1.0

    def test_rewind_record(self, make_session, lifecycle_log, ecm, tmp_path):
        sink = logplay_logging.FileSink(log_dir=str(tmp_path / "logs"), session_name="test")
        logplay_logging.register_sink('playback', sink)

        session = make_session(lifecycle_log)
        session.start(ecm)
        session.step(ecm, 0.0, 3.0)
        session.step(ecm, 3.0, 0.0)
        sink.flush()

        lines = sink.log_paths['playback'].read_text().splitlines()
        records = [json.loads(line) for line in lines]
        rewinds = [r for r in records if r["type"] == "rewind"]
        assert len(rewinds) == 1
        assert rewinds[0]["from"] == 3.0
        assert rewinds[0]["to"] == 0.0


# =============================================================================
# End of log
# =============================================================================

class TestEndOfLog:
    """Tests for the end-of-log pause."""

    def test_pause_once_per_crossing(self, make_session, lifecycle_log, ecm, pauses):
        session = make_session(lifecycle_log)
        session.start(ecm)

        session.step(ecm, 0.0, 1.0)
        assert pauses == []

        session.step(ecm, 1.0, 2.0)
        session.step(ecm, 2.0, 3.0)
        session.step(ecm, 3.0, 4.0)

        assert len(pauses) == 1
        assert pauses[0].paused is True

    def test_pause_rearmed_after_rewind(self, make_session, lifecycle_log, ecm, pauses):
        session = make_session(lifecycle_log)
        session.start(ecm)
        session.step(ecm, 0.0, 3.0)

        session.step(ecm, 3.0, 0.5)
        session.step(ecm, 0.5, 2.5)

        assert len(pauses) == 2
        assert session.stats.pauses_emitted == 2

    def test_repeat_pause(self, make_session, lifecycle_log, ecm, pauses):
        session = make_session(config=PlaybackConfig(
            playback_path=str(lifecycle_log), repeat_pause_at_end=True))
        session.start(ecm)

        for t in range(2, 6):
            session.step(ecm, float(t), float(t + 1))

        assert len(pauses) == 4


# =============================================================================
# Resources and archives
# =============================================================================

class TestResources:
    """Tests for URI rewriting and zipped recordings."""

    def test_mesh_uri_rewritten(self, make_session, recording, ecm):
        mesh = {"type": "mesh", "mesh": {"uri": "/home/u/arm.dae"}}
        root = recording([state_line(0.0, entity(A, **{GEOMETRY: mesh}))])
        (root / "home/u").mkdir(parents=True)
        (root / "home/u/arm.dae").write_text("")

        session = make_session(root)
        session.start(ecm)

        expected = str(session.log_root) + "/home/u/arm.dae"
        assert ecm.component(A, Geometry).mesh_uri == expected

        session.step(ecm, 0.0, 1.0)
        assert ecm.component(A, Geometry).mesh_uri == expected
        assert session.stats.rewriting_enabled

    def test_legacy_recording_left_alone(self, make_session, recording, ecm):
        mesh = {"type": "mesh", "mesh": {"uri": "/home/u/arm.dae"}}
        session = make_session(recording([state_line(0.0, entity(A, **{GEOMETRY: mesh}))]))
        session.start(ecm)

        assert ecm.component(A, Geometry).mesh_uri == "/home/u/arm.dae"
        assert not session.stats.rewriting_enabled

    def test_zipped_recording(self, make_session, tmp_path, ecm):
        archive = tmp_path / "run1.zip"
        with zipfile.ZipFile(archive, 'w') as zf:
            zf.writestr("run1/state.tlog", json.dumps(state_line(0.0, entity(A))) + "\n")

        session = make_session(archive)
        assert session.start(ecm)
        extracted = session.extracted_dir

        assert ecm.entities() == {A}
        assert session.log_root == extracted / "run1"

        session.close()
        assert not extracted.exists()

    def test_non_zip_file(self, make_session, tmp_path, ecm):
        path = tmp_path / "state.tlog"
        path.write_text("")
        session = make_session(path)
        with pytest.raises(ConfigurationError):
            session.start(ecm)


# =============================================================================
# Close
# =============================================================================

class TestClose:
    """Tests for close() and context manager use."""

    def test_close_is_idempotent(self, make_session, lifecycle_log, ecm, registry):
        session = make_session(lifecycle_log)
        session.start(ecm)
        session.close()
        session.close()
        assert not session.active
        assert registry.active is None

    def test_context_manager(self, lifecycle_log, ecm, registry):
        with PlaybackSession(PlaybackConfig(playback_path=str(lifecycle_log)),
                             registry=registry) as session:
            session.start(ecm)
            assert registry.active is not None
        assert registry.active is None

    def test_reset_is_noop(self, make_session, lifecycle_log, ecm):
        session = make_session(lifecycle_log)
        session.start(ecm)
        session.reset(ecm)
        assert ecm.entities() == {A}
