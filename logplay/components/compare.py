"""
Comparison strategies deciding whether a replacement counts as a change.

Each strategy is a pure function ``(old, new) -> bool`` returning True
when the two payloads are considered equal, in which case the world does
not flag the component as changed.
"""

from typing import Callable, Dict, Type

from .base import Component
from .kinds import Geometry, GeometryType, Material, ParticleEmitterCmd

Comparator = Callable[[Component, Component], bool]


def value_equal(old: Component, new: Component) -> bool:
    """Field-by-field equality of the two payloads."""
    return old == new


def mesh_uri_equal(old: Geometry, new: Geometry) -> bool:
    """Equal when both are meshes pointing at the same file.

    Non-mesh geometries never compare equal, so replacing them always
    flags a change.
    """
    if old.type is GeometryType.MESH and new.type is GeometryType.MESH:
        return old.mesh_uri == new.mesh_uri
    return False


def script_uri_equal(old: Material, new: Material) -> bool:
    """Equal when both materials reference the same script file."""
    return old.script_uri == new.script_uri


def never_changed(old: Component, new: Component) -> bool:
    """Always equal; the changed flag for this kind is derived elsewhere."""
    return True


# Strategy used when a diff replaces a payload, by component kind
_DIFF_STRATEGIES: Dict[Type[Component], Comparator] = {
    ParticleEmitterCmd: never_changed,
}


def comparator_for(kind: Type[Component]) -> Comparator:
    """Strategy for replacing a payload of ``kind`` from a diff."""
    return _DIFF_STRATEGIES.get(kind, value_equal)
