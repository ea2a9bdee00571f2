"""
Seek planning for incremental state logs.

The log only holds forward diffs, so moving forward means applying the
messages recorded since the previous step, while moving backward means
replaying everything from time zero. During such a rewind every entity
alive before the jump is a removal candidate until the replay shows that
it exists at the target time.
"""

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional, Set, TYPE_CHECKING

from logplay.logging import get_logger

if TYPE_CHECKING:
    from logplay.ecm import EntityComponentManager
    from logplay.state import DiffRecord

log = get_logger('seek')


@dataclass(frozen=True)
class TimeWindow:
    """Half-open interval [start, end) of log time, in seconds."""
    start: float
    end: float

    def __post_init__(self):
        if self.start < 0:
            raise ValueError(f"Window start must be non-negative, got {self.start}")
        if self.start > self.end:
            raise ValueError(f"Window start {self.start} is after end {self.end}")

    @property
    def empty(self) -> bool:
        return self.start == self.end

    @property
    def duration(self) -> float:
        return self.end - self.start

    def contains(self, timestamp: float) -> bool:
        return self.start <= timestamp < self.end


class PendingRemovals:
    """Entities to delete once a rewind replay has finished.

    Starts as every entity alive before the rewind. A replayed record that
    removes an entity (re-)inserts it; any other record mentioning the entity
    evicts it, since the entity exists at that point of the replay.
    """

    def __init__(self, entities: Iterable[int] = ()):
        self._entities: Set[int] = set(entities)

    def update(self, records: Iterable['DiffRecord']) -> None:
        """Fold a batch of replayed records into the set, in order."""
        for record in records:
            if record.is_removal:
                self._entities.add(record.entity_id)
            else:
                self._entities.discard(record.entity_id)

    def evict(self, entities: Iterable[int]) -> None:
        self._entities.difference_update(entities)

    def __contains__(self, entity: object) -> bool:
        return entity in self._entities

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._entities))

    def __len__(self) -> int:
        return len(self._entities)


@dataclass
class SeekPlan:
    """What one step has to query and whether it is a rewind."""
    window: TimeWindow
    rewind: bool = False
    pending_removals: Optional[PendingRemovals] = field(default=None)


class SeekController:
    """Decides how a step moves through the log."""

    def plan(self, ecm: 'EntityComponentManager', t_prev: float, t_now: float) -> SeekPlan:
        """Plan the step from ``t_prev`` to ``t_now``.

        Args:
            ecm: World, read only to snapshot live entities on a rewind
            t_prev: Simulation time of the previous step
            t_now: Simulation time of this step

        Returns:
            SeekPlan with the window to query, the rewind flag and, when
            rewinding, the initial removal candidates
        """
        dt = t_now - t_prev
        # Log time starts at zero; nothing is recorded before it
        start, end = max(t_prev, 0.0), max(t_now, 0.0)
        if dt == 0:
            return SeekPlan(window=TimeWindow(end, end))

        if dt > 0:
            return SeekPlan(window=TimeWindow(start, end))

        # Jumping back: only forward diffs exist, so rebuild from the start
        log.debug("Rewind from %.3f to %.3f, replaying log from the start", t_prev, t_now)
        return SeekPlan(
            window=TimeWindow(0.0, end),
            rewind=True,
            pending_removals=PendingRemovals(ecm.entities()),
        )
