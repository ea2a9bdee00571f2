"""
State message payloads and their conversion to diff records.

A state message lists only the entities and components that changed at
its log time. Two encodings exist: SerializedState holds lists, while
SerializedStateMap keys entities by id and components by type name. Both
decode to the same ordered list of DiffRecords.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Type, Union

from pydantic import BaseModel, Field, ValidationError

from logplay.errors import UnrecognizedMessageType
from logplay.log_store import (
    STATE_MAP_MESSAGE_TYPE,
    STATE_MESSAGE_TYPE,
    STATE_MESSAGE_TYPES,
    STRING_MESSAGE_TYPE,
    TypedMessage,
)
from logplay.logging import get_logger

log = get_logger("state")


@dataclass(frozen=True)
class DiffRecord:
    """Changes to one entity at one log time.

    Attributes:
        entity_id: Entity the changes apply to
        is_removal: Entity was removed; component changes are ignored
        component_changes: Component type name -> raw recorded payload
        component_removals: Type names of components removed from the entity
    """
    entity_id: int
    is_removal: bool = False
    component_changes: Dict[str, Any] = field(default_factory=dict)
    component_removals: FrozenSet[str] = frozenset()


# =============================================================================
# Wire models
# =============================================================================

class SerializedComponent(BaseModel):
    type: str
    data: Any = None
    remove: bool = False


class SerializedEntity(BaseModel):
    id: int = Field(..., ge=0)
    remove: bool = False
    components: List[SerializedComponent] = Field(default_factory=list)

    def to_record(self) -> DiffRecord:
        return _to_record(self.id, self.remove, self.components)


class SerializedState(BaseModel):
    """List encoding of a state message.

    Entities are validated one at a time by to_records(), so one bad entry
    does not take its siblings down with it.
    """
    entities: List[Any] = Field(default_factory=list)

    def to_records(self, dropped: Optional[List[str]] = None) -> List[DiffRecord]:
        return _entity_records(SerializedEntity, self.entities, dropped)


class SerializedEntityMap(BaseModel):
    id: int = Field(..., ge=0)
    remove: bool = False
    components: Dict[str, SerializedComponent] = Field(default_factory=dict)

    def to_record(self) -> DiffRecord:
        return _to_record(self.id, self.remove, list(self.components.values()))


class SerializedStateMap(BaseModel):
    """Map encoding of a state message, entities keyed by id."""
    entities: Dict[str, Any] = Field(default_factory=dict)

    def to_records(self, dropped: Optional[List[str]] = None) -> List[DiffRecord]:
        return _entity_records(SerializedEntityMap, list(self.entities.values()), dropped)


def _entity_records(
    model: Type[Union[SerializedEntity, SerializedEntityMap]],
    raw_entities: List[Any],
    dropped: Optional[List[str]],
) -> List[DiffRecord]:
    records: List[DiffRecord] = []
    for raw in raw_entities:
        try:
            entity = model.model_validate(raw)
        except ValidationError as e:
            entity_id = raw.get("id") if isinstance(raw, dict) else raw
            reason = f"entity {entity_id!r}: {e.errors()[0].get('msg', e)}"
            log.warning("Dropping malformed %s", reason)
            if dropped is not None:
                dropped.append(reason)
            continue
        records.append(entity.to_record())
    return records


def _to_record(entity_id: int, remove: bool, components: List[SerializedComponent]) -> DiffRecord:
    if remove:
        return DiffRecord(entity_id=entity_id, is_removal=True)
    changes = {c.type: c.data for c in components if not c.remove}
    removals = frozenset(c.type for c in components if c.remove)
    return DiffRecord(
        entity_id=entity_id,
        component_changes=changes,
        component_removals=removals,
    )


# =============================================================================
# Parsing
# =============================================================================

def is_state_message(message: TypedMessage) -> bool:
    return message.type_tag in STATE_MESSAGE_TYPES


def parse_message(
    message: TypedMessage,
    dropped: Optional[List[str]] = None,
) -> Optional[List[DiffRecord]]:
    """Decode a message into diff records.

    Entities that fail validation are logged, described in ``dropped``
    when a list is given, and left out; the rest still decode.

    Returns:
        Records in recorded order, or None for string messages (the
        embedded world description, which playback does not need)

    Raises:
        UnrecognizedMessageType: For any other type tag
        pydantic.ValidationError: If the message envelope is malformed
    """
    if message.type_tag == STATE_MESSAGE_TYPE:
        return SerializedState.model_validate_json(message.payload).to_records(dropped)
    if message.type_tag == STATE_MAP_MESSAGE_TYPE:
        return SerializedStateMap.model_validate_json(message.payload).to_records(dropped)
    if message.type_tag == STRING_MESSAGE_TYPE:
        return None
    raise UnrecognizedMessageType(message.type_tag)
