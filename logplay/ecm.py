"""
EntityComponentManager - in-process entity-component world.

Stores every component kind in its own entity -> payload map and keeps a
per-component change state for downstream consumers. Entity removal is a
two-phase operation: removals are requested while a batch is applied and
only carried out by process_remove_entity_requests(), so nothing is deleted
while a caller is still walking the world.

Usage:
    ecm = EntityComponentManager()
    world = ecm.create_entity()
    ecm.create_component(world, World())

    for entity, geometry in ecm.each(Geometry):
        ...

    ecm.request_remove_entity(world)
    ecm.process_remove_entity_requests()
"""

from enum import Enum
from typing import Dict, Iterator, List, Optional, Set, Tuple, Type, TypeVar

from logplay.components import Component, Comparator, value_equal
from logplay.logging import get_logger

log = get_logger('ecm')

C = TypeVar('C', bound=Component)


class ComponentState(Enum):
    """Change classification of a component within the current iteration."""
    NO_CHANGE = "no_change"
    ONE_TIME_CHANGE = "one_time_change"  # Must reach consumers exactly once
    PERIODIC_CHANGE = "periodic_change"  # Continuous updates, may be dropped


class EntityComponentManager:
    """
    Entity-component store mutated in place by playback.

    Entities are non-negative ints. Lookups never create anything:
    ensure_entity() is the only get-or-create operation.
    """

    def __init__(self):
        self._entities: Set[int] = set()
        self._components: Dict[Type[Component], Dict[int, Component]] = {}
        self._changes: Dict[Tuple[int, Type[Component]], ComponentState] = {}
        self._remove_requests: Set[int] = set()
        self._next_entity = 0

    # =========================================================================
    # Entities
    # =========================================================================

    def set_entity_create_offset(self, offset: int) -> None:
        """Make create_entity() hand out ids starting at ``offset``.

        Keeps ids allocated by the host clear of ids replayed from a log.
        """
        if offset < 0:
            raise ValueError(f"Entity create offset must be non-negative, got {offset}")
        self._next_entity = max(offset, self._next_entity)

    def create_entity(self) -> int:
        """Create a new entity with a fresh id."""
        while self._next_entity in self._entities:
            self._next_entity += 1
        entity = self._next_entity
        self._next_entity += 1
        self._entities.add(entity)
        return entity

    def has_entity(self, entity: int) -> bool:
        """Whether the entity currently exists."""
        return entity in self._entities

    def ensure_entity(self, entity: int) -> bool:
        """Create the entity with this exact id if it does not exist.

        Returns:
            True if the entity was created
        """
        if entity < 0:
            raise ValueError(f"Entity ids are non-negative, got {entity}")
        if entity in self._entities:
            return False
        self._entities.add(entity)
        return True

    def entities(self) -> Set[int]:
        """Copy of the current entity ids."""
        return set(self._entities)

    @property
    def entity_count(self) -> int:
        return len(self._entities)

    def request_remove_entity(self, entity: int) -> None:
        """Schedule an entity for removal at the end of the batch."""
        if entity in self._entities:
            self._remove_requests.add(entity)

    def cancel_remove_request(self, entity: int) -> bool:
        """Drop a pending removal request. Returns True if one existed."""
        if entity in self._remove_requests:
            self._remove_requests.discard(entity)
            return True
        return False

    def is_removal_requested(self, entity: int) -> bool:
        return entity in self._remove_requests

    def process_remove_entity_requests(self) -> List[int]:
        """Remove every entity with a pending request.

        Returns:
            Ids of the removed entities, sorted
        """
        removed = sorted(self._remove_requests)
        for entity in removed:
            self._remove_entity(entity)
        self._remove_requests.clear()
        if removed:
            log.debug("Removed %d entities", len(removed))
        return removed

    def _remove_entity(self, entity: int) -> None:
        self._entities.discard(entity)
        for kind, store in self._components.items():
            if store.pop(entity, None) is not None:
                self._changes.pop((entity, kind), None)

    # =========================================================================
    # Components
    # =========================================================================

    def component(self, entity: int, kind: Type[C]) -> Optional[C]:
        """Payload of ``kind`` on the entity, or None."""
        return self._components.get(kind, {}).get(entity)  # type: ignore[return-value]

    def has_component(self, entity: int, kind: Type[Component]) -> bool:
        return entity in self._components.get(kind, {})

    def component_kinds(self, entity: int) -> List[Type[Component]]:
        """Kinds of all components held by the entity."""
        return [kind for kind, store in self._components.items() if entity in store]

    def create_component(self, entity: int, value: Component) -> None:
        """Attach a new component to an existing entity.

        Raises:
            KeyError: If the entity does not exist
            ValueError: If the entity already has a component of this kind
        """
        if entity not in self._entities:
            raise KeyError(f"Entity {entity} does not exist")
        kind = type(value)
        store = self._components.setdefault(kind, {})
        if entity in store:
            raise ValueError(f"Entity {entity} already has component {kind.__name__}")
        store[entity] = value
        self._changes[(entity, kind)] = ComponentState.ONE_TIME_CHANGE

    def set_component_data(
        self,
        entity: int,
        value: Component,
        equal: Comparator = value_equal,
    ) -> bool:
        """Replace an existing component's payload.

        The component is flagged ONE_TIME_CHANGE only if ``equal`` reports
        the old and new payloads as different.

        Returns:
            True if the component was flagged as changed

        Raises:
            KeyError: If the entity has no component of this kind
        """
        kind = type(value)
        store = self._components.get(kind, {})
        if entity not in store:
            raise KeyError(f"Entity {entity} has no component {kind.__name__}")
        old = store[entity]
        store[entity] = value
        if equal(old, value):
            return False
        self._changes[(entity, kind)] = ComponentState.ONE_TIME_CHANGE
        return True

    def remove_component(self, entity: int, kind: Type[Component]) -> bool:
        """Detach a component. Returns True if it existed."""
        store = self._components.get(kind, {})
        if store.pop(entity, None) is None:
            return False
        self._changes.pop((entity, kind), None)
        return True

    def each(self, kind: Type[C]) -> Iterator[Tuple[int, C]]:
        """Iterate (entity, payload) pairs of one kind, ordered by entity.

        Iterates over a snapshot, so payloads may be replaced while walking.
        """
        store = self._components.get(kind, {})
        for entity in sorted(store):
            yield entity, store[entity]  # type: ignore[misc]

    def entities_with(self, kind: Type[Component]) -> Set[int]:
        return set(self._components.get(kind, {}))

    def entity_by_components(self, *values: Component) -> Optional[int]:
        """First entity (lowest id) holding components equal to all ``values``."""
        if not values:
            return None
        candidates: Optional[Set[int]] = None
        for value in values:
            store = self._components.get(type(value), {})
            matching = {entity for entity, held in store.items() if held == value}
            candidates = matching if candidates is None else candidates & matching
            if not candidates:
                return None
        return min(candidates) if candidates else None

    # =========================================================================
    # Change tracking
    # =========================================================================

    def set_changed(self, entity: int, kind: Type[Component], state: ComponentState) -> None:
        """Set the change state of an existing component."""
        if not self.has_component(entity, kind):
            log.warning("Cannot mark missing component %s on entity %d as changed",
                        kind.__name__, entity)
            return
        if state is ComponentState.NO_CHANGE:
            self._changes.pop((entity, kind), None)
        else:
            self._changes[(entity, kind)] = state

    def changed_state(self, entity: int, kind: Type[Component]) -> ComponentState:
        return self._changes.get((entity, kind), ComponentState.NO_CHANGE)

    def changed_components(self) -> Dict[Tuple[int, Type[Component]], ComponentState]:
        """Copy of every component currently flagged as changed."""
        return dict(self._changes)

    def has_one_time_changes(self) -> bool:
        return any(state is ComponentState.ONE_TIME_CHANGE for state in self._changes.values())

    def clear_changes(self) -> None:
        """Mark all changes as delivered. Called by the host after each iteration."""
        self._changes.clear()

    def __repr__(self) -> str:
        return (
            f"EntityComponentManager(entities={len(self._entities)}, "
            f"kinds={len(self._components)}, "
            f"pending_removals={len(self._remove_requests)})"
        )
