"""
Edge-triggered change detection for command-style components.

A recording stores the last value written to a command component, not
whether it changed, yet consumers such as particle systems react to the
change itself. ChangeDetector remembers the last value seen per entity and
flags the component as a one-time change only on a transition.
"""

from typing import Callable, Dict, Generic, Hashable, List, Type, TypeVar

from logplay.components import Component, ParticleEmitterCmd
from logplay.ecm import ComponentState, EntityComponentManager
from logplay.logging import get_logger

log = get_logger('change_detector')

C = TypeVar('C', bound=Component)


def _emitting(cmd: ParticleEmitterCmd) -> bool:
    return cmd.emitting


class ChangeDetector(Generic[C]):
    """Flags ``kind`` components whose tracked value changed since last seen.

    Args:
        kind: Component kind to watch
        value_of: Extracts the tracked scalar from a payload

    The first observation of an entity only records its value. Cached values
    are kept for the whole session, including for entities that have since
    been removed.
    """

    def __init__(
        self,
        kind: Type[C] = ParticleEmitterCmd,  # type: ignore[assignment]
        value_of: Callable[[C], Hashable] = _emitting,  # type: ignore[assignment]
    ):
        self.kind = kind
        self._value_of = value_of
        self._previous: Dict[int, Hashable] = {}

    def detect(self, ecm: EntityComponentManager) -> List[int]:
        """Compare current values against the cache and flag transitions.

        Returns:
            Entities flagged in this call, in entity order
        """
        flagged: List[int] = []
        for entity, component in ecm.each(self.kind):
            value = self._value_of(component)
            if entity not in self._previous:
                self._previous[entity] = value
                continue

            if self._previous[entity] != value:
                self._previous[entity] = value
                ecm.set_changed(entity, self.kind, ComponentState.ONE_TIME_CHANGE)
                flagged.append(entity)

        if flagged:
            log.debug("%s changed on %d entities", self.kind.__name__, len(flagged))
        return flagged

    def previous_value(self, entity: int):
        """Last value seen for the entity, or None if never observed."""
        return self._previous.get(entity)

    def __len__(self) -> int:
        return len(self._previous)
