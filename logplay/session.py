"""
PlaybackSession - replays a recorded state log into a live world.

The session owns the log store and drives the per-step pipeline:

    plan (SeekController)
      -> re-apply seed on rewind
      -> query window, parse, apply records (DiffApplier)
      -> rewrite resource URIs (ResourceURIRewriter)
      -> flag command transitions (ChangeDetector)
      -> carry out removals
      -> end-of-log pause

Usage:
    config = PlaybackConfig(playback_path='/recordings/run1')
    with PlaybackSession(config, events) as session:
        session.start(ecm)
        while running:
            session.step(ecm, t_prev, t_now)
"""

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable, List, Optional

from fs.base import FS
from pydantic import ValidationError

from logplay.archive import extract_recording, remove_extracted
from logplay.change_detector import ChangeDetector
from logplay.components import LogPlaybackStatistics, World
from logplay.config import PlaybackConfig
from logplay.diff_applier import DiffApplier
from logplay.ecm import EntityComponentManager
from logplay.errors import (
    ConfigurationError,
    DuplicateSessionError,
    EmptyLogError,
    NoSeedStateError,
    NotFoundError,
    UnrecognizedMessageType,
)
from logplay.events import EventManager, Pause
from logplay.log_store import JsonLinesLogStore, LogMessageStore, TypedMessage
from logplay.logging import create_sink, emit_record, get_logger, get_sink, register_sink
from logplay.registry import SessionRegistry, SessionToken, get_session_registry
from logplay.seek import PendingRemovals, SeekController
from logplay.state import DiffRecord, is_state_message, parse_message
from logplay.uri_rewriter import ResourceURIRewriter

log = get_logger('playback')

PLAYBACK_MODULE = 'playback'

StoreFactory = Callable[[Path], LogMessageStore]


@dataclass
class PlaybackStats:
    """Counters for one playback session."""
    steps: int = 0
    rewinds: int = 0
    messages_applied: int = 0
    messages_skipped: int = 0
    records_dropped: int = 0
    records_applied: int = 0
    entities_removed: int = 0
    pauses_emitted: int = 0
    uris_rewritten: int = 0
    rewriting_enabled: bool = True


class PlaybackSession:
    """
    Plays a state log back into an EntityComponentManager.

    Args:
        config: Playback settings; applied by configure() on first start()
        event_manager: Receives the Pause event at the end of the log
        registry: Registry enforcing one active session (process-wide if None)
        resource_fs: Filesystem for resource existence checks (OSFS('/') if None)
        store_factory: Opens the log data file (JsonLinesLogStore.open if None)

    A session that found an empty log or no seed state stays active and
    keeps stepping; there is simply nothing to replay.
    """

    def __init__(
        self,
        config: Optional[PlaybackConfig] = None,
        event_manager: Optional[EventManager] = None,
        registry: Optional[SessionRegistry] = None,
        resource_fs: Optional[FS] = None,
        store_factory: Optional[StoreFactory] = None,
    ):
        self.config = config if config is not None else PlaybackConfig()
        self.events = event_manager if event_manager is not None else EventManager()
        self._registry = registry if registry is not None else get_session_registry()
        self._resource_fs = resource_fs
        self._store_factory: StoreFactory = store_factory or JsonLinesLogStore.open

        self._configured = False
        self._log_root: Optional[Path] = None
        self._extracted_dir: Optional[Path] = None

        self._token: Optional[SessionToken] = None
        self._store: Optional[LogMessageStore] = None
        self._rewriter: Optional[ResourceURIRewriter] = None
        self._seed_records: List[DiffRecord] = []

        self._seek = SeekController()
        self._applier = DiffApplier()
        self._detector: ChangeDetector = ChangeDetector()

        # End-of-log latch, armed while the played time is before the end
        self._paused_at_end = False
        self._stats = PlaybackStats()

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def active(self) -> bool:
        """True between a successful start() and close()."""
        return self._token is not None

    @property
    def log_root(self) -> Optional[Path]:
        """Absolute log root directory, once configured."""
        return self._log_root

    @property
    def log_file(self) -> Optional[Path]:
        if self._log_root is None:
            return None
        return self._log_root / self.config.log_file_name

    @property
    def extracted_dir(self) -> Optional[Path]:
        """Directory a zipped recording was unpacked into, if any."""
        return self._extracted_dir

    @property
    def seed_records(self) -> List[DiffRecord]:
        return list(self._seed_records)

    @property
    def stats(self) -> PlaybackStats:
        """Snapshot of the session counters."""
        stats = PlaybackStats(**asdict(self._stats))
        stats.records_applied = self._applier.records_applied
        if self._rewriter is not None:
            stats.uris_rewritten = self._rewriter.rewritten
            stats.rewriting_enabled = self._rewriter.enabled
        return stats

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def configure(self, config: Optional[PlaybackConfig] = None) -> Optional[Path]:
        """Resolve the playback path into a log root directory.

        A path naming a file must be a zipped recording; it is extracted
        next to itself and the log root becomes the directory inside it.

        Returns:
            The log root, or None if no playback path is set

        Raises:
            ConfigurationError: If the path is a file but not a .zip archive
            NotFoundError: If extraction fails
        """
        if config is not None:
            self.config = config
        self._configured = True

        raw = self.config.playback_path
        if not raw:
            self._log_root = None
            return None

        path = Path(raw).expanduser().resolve()
        if path.is_file():
            extracted = extract_recording(path)
            self._extracted_dir = extracted.destination
            self._log_root = extracted.log_path
        else:
            self._log_root = path

        log.info("Playback log root: %s", self._log_root)
        return self._log_root

    def start(self, ecm: EntityComponentManager) -> bool:
        """Open the log and seed the world with its first state.

        Returns:
            True if the session is active, False if another session holds
            the registry (no log is opened in that case)

        Raises:
            ConfigurationError: If no playback path is configured
            NotFoundError: If the log data file does not exist
        """
        if self.active:
            log.warning("Playback session already started")
            return True

        if not self._configured:
            self.configure()
        if self._log_root is None:
            raise ConfigurationError("Please specify a playback path")

        try:
            token = self._registry.try_acquire(owner=str(self._log_root))
        except DuplicateSessionError as e:
            log.warning("%s; ignoring this playback session", e)
            return False

        log_file = self._log_root / self.config.log_file_name
        try:
            if not log_file.is_file():
                raise NotFoundError(f"Log file [{log_file}] not found")
            store = self._store_factory(log_file)
        except Exception:
            self._registry.release(token)
            raise

        self._token = token
        self._store = store
        self._paused_at_end = False
        self._ensure_sink()

        ecm.set_entity_create_offset(self.config.entity_create_offset)

        try:
            self._seed(ecm, store)
        except (EmptyLogError, NoSeedStateError) as e:
            log.error("%s", e)

        self._write_statistics(ecm, store)

        self._rewriter = ResourceURIRewriter(str(self._log_root), self._resource_fs)
        self._rewriter.rewrite(ecm)

        log.info("Started playback of [%s] (%.3fs to %.3fs)",
                 log_file, store.start_time(), store.end_time())
        return True

    def step(self, ecm: EntityComponentManager, t_prev: float, t_now: float) -> None:
        """Advance the world from ``t_prev`` to ``t_now``.

        Moving forward applies the messages recorded in [t_prev, t_now).
        Moving backward replays [0, t_now) and removes every entity the
        replay did not mention.
        """
        store, rewriter = self._store, self._rewriter
        if t_now == t_prev or store is None or rewriter is None:
            return

        self._stats.steps += 1
        plan = self._seek.plan(ecm, t_prev, t_now)
        pending = plan.pending_removals

        if plan.rewind:
            self._stats.rewinds += 1
            self._reapply_seed(ecm, pending, rewriter)
            emit_record(PLAYBACK_MODULE, {
                "type": "rewind",
                "from": t_prev,
                "to": t_now,
                "entities_before": ecm.entity_count,
            })

        for message in store.query_range(plan.window):
            records = self._parse(message)
            if records is None:
                continue
            if pending is not None:
                pending.update(records)
            for record in records:
                self._applier.apply(ecm, record)
            self._stats.messages_applied += 1
            rewriter.rewrite(ecm)

        self._detector.detect(ecm)

        if pending is not None:
            for entity in pending:
                ecm.request_remove_entity(entity)
        self._stats.entities_removed += len(ecm.process_remove_entity_requests())

        self._check_end_of_log(t_now, store.end_time())

    def reset(self, ecm: EntityComponentManager) -> None:
        """Nothing to do; time jumps are handled by step()."""

    def close(self) -> None:
        """Release everything the session holds. Safe to call twice."""
        if self._rewriter is not None:
            self._rewriter.close()
            self._rewriter = None

        if self._store is not None:
            self._store.close()
            self._store = None

        if self._token is not None:
            self._registry.release(self._token)
            self._token = None

        if self._extracted_dir is not None:
            remove_extracted(self._extracted_dir)
            self._extracted_dir = None
            self._configured = False

        self._seed_records = []

    def __enter__(self) -> 'PlaybackSession':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # =========================================================================
    # Internals
    # =========================================================================

    def _seed(self, ecm: EntityComponentManager, store: LogMessageStore) -> None:
        """Apply the first state message of the log.

        Raises:
            EmptyLogError: If the log holds no messages
            NoSeedStateError: If no message is a state message
        """
        messages = store.query_all()
        if not messages:
            raise EmptyLogError("Log has no messages")

        for message in messages:
            if not is_state_message(message):
                continue
            dropped: List[str] = []
            try:
                records = parse_message(message, dropped)
            except ValidationError as e:
                log.warning("Skipping malformed state message at %.3f: %s",
                            message.timestamp, e.error_count())
                continue
            self._stats.records_dropped += len(dropped)
            self._seed_records = records or []
            for record in self._seed_records:
                self._applier.apply(ecm, record)
            ecm.process_remove_entity_requests()
            log.debug("Seeded world from state at %.3f (%d entities)",
                      message.timestamp, len(self._seed_records))
            return

        raise NoSeedStateError("Log has no state message to start from")

    def _reapply_seed(
        self,
        ecm: EntityComponentManager,
        pending: Optional[PendingRemovals],
        rewriter: ResourceURIRewriter,
    ) -> None:
        if not self._seed_records:
            return
        if pending is not None:
            pending.update(self._seed_records)
        for record in self._seed_records:
            self._applier.apply(ecm, record)
        rewriter.rewrite(ecm)

    def _parse(self, message: TypedMessage) -> Optional[List[DiffRecord]]:
        dropped: List[str] = []
        try:
            records = parse_message(message, dropped)
        except UnrecognizedMessageType as e:
            self._stats.messages_skipped += 1
            log.warning("Trying to play back unrecognized message type [%s]", e.type_tag)
        except ValidationError as e:
            self._stats.messages_skipped += 1
            log.warning("Dropping malformed %s at %.3f (%d errors)",
                        message.type_tag, message.timestamp, e.error_count())
        else:
            self._stats.records_dropped += len(dropped)
            return records
        return None

    def _write_statistics(self, ecm: EntityComponentManager, store: LogMessageStore) -> None:
        world = ecm.entity_by_components(World())
        if world is None:
            log.error("Unable to find the world entity; playback statistics not set")
            return

        statistics = LogPlaybackStatistics(
            start_time=store.start_time(),
            end_time=store.end_time(),
        )
        if ecm.has_component(world, LogPlaybackStatistics):
            ecm.set_component_data(world, statistics)
        else:
            ecm.create_component(world, statistics)

    def _check_end_of_log(self, t_now: float, end_time: float) -> None:
        if t_now < end_time:
            self._paused_at_end = False
            return

        if self._paused_at_end and not self.config.repeat_pause_at_end:
            return

        self._paused_at_end = True
        self._stats.pauses_emitted += 1
        self.events.emit(Pause(paused=True))
        emit_record(PLAYBACK_MODULE, {"type": "end_of_log", "time": t_now, "end_time": end_time})
        log.debug("End of log reached at %.3f", t_now)

    def _ensure_sink(self) -> None:
        if get_sink(PLAYBACK_MODULE) is None:
            register_sink(PLAYBACK_MODULE, create_sink(PLAYBACK_MODULE))

