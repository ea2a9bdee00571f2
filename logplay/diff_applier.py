"""
DiffApplier - applies one diff record to the world.

Per (entity, component kind) slot the states are Absent and Present:
a change on an absent slot creates the component, a change on a present
slot replaces the payload, and an entity removal only requests removal.
Requests are carried out at the end of the batch by the caller, so the
world is never shrunk while a batch is still being walked.
"""

from typing import Type

from pydantic import ValidationError

from logplay.components import Component, comparator_for, component_type
from logplay.ecm import EntityComponentManager
from logplay.logging import get_logger
from logplay.state import DiffRecord

log = get_logger('diff_applier')


class DiffApplier:
    """Writes diff records into an EntityComponentManager.

    Applying the same ordered sequence of records again yields the same
    world, so a full replay after a rewind is safe.
    """

    def __init__(self):
        self.records_applied = 0
        self.components_skipped = 0

    def apply(self, ecm: EntityComponentManager, record: DiffRecord) -> None:
        """Apply a single record.

        Unknown component type names and payloads that fail validation are
        logged and skipped; the rest of the record still applies.
        """
        self.records_applied += 1

        if record.is_removal:
            ecm.request_remove_entity(record.entity_id)
            return

        entity = record.entity_id
        if ecm.ensure_entity(entity):
            log.trace("Created entity %d", entity)
        elif ecm.cancel_remove_request(entity):
            # Removed earlier in this batch, then recorded again
            log.trace("Entity %d re-created within batch", entity)

        for type_name, raw in record.component_changes.items():
            kind = component_type(type_name)
            if kind is None:
                self.components_skipped += 1
                log.warning("Ignoring unknown component type [%s] on entity %d",
                            type_name, entity)
                continue

            value = self._decode(kind, raw, entity)
            if value is None:
                continue

            if ecm.has_component(entity, kind):
                ecm.set_component_data(entity, value, comparator_for(kind))
            else:
                ecm.create_component(entity, value)

        for type_name in record.component_removals:
            kind = component_type(type_name)
            if kind is None:
                log.warning("Ignoring removal of unknown component type [%s] on entity %d",
                            type_name, entity)
                continue
            ecm.remove_component(entity, kind)

    def _decode(self, kind: Type[Component], raw, entity: int):
        try:
            if isinstance(raw, kind):
                return raw
            return kind.model_validate(raw if raw is not None else {})
        except ValidationError as e:
            self.components_skipped += 1
            log.warning("Dropping malformed %s on entity %d: %s",
                        kind.__name__, entity, e.errors()[0].get('msg', e))
            return None
