"""
Component kinds that playback understands.

These mirror what a recorder writes into state messages: identity and
hierarchy (World, Name, ParentEntity), placement (Pose), rendering
payloads that embed resource URIs (Geometry, Material), command-style
components (ParticleEmitterCmd) and playback bookkeeping
(LogPlaybackStatistics).
"""

from enum import Enum
from typing import ClassVar, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .base import Component, register_component


@register_component
class World(Component):
    """Marker component for the world entity."""
    type_name: ClassVar[str] = "logplay.components.World"


@register_component
class Name(Component):
    """Human-readable entity name."""
    type_name: ClassVar[str] = "logplay.components.Name"

    data: str = ""


@register_component
class ParentEntity(Component):
    """Id of the entity this one is attached to."""
    type_name: ClassVar[str] = "logplay.components.ParentEntity"

    data: int = Field(..., ge=0)


@register_component
class Pose(Component):
    """Position and orientation (roll/pitch/yaw in radians)."""
    type_name: ClassVar[str] = "logplay.components.Pose"

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0


class GeometryType(str, Enum):
    """Shape of a Geometry component."""
    EMPTY = "empty"
    BOX = "box"
    CAPSULE = "capsule"
    CYLINDER = "cylinder"
    SPHERE = "sphere"
    PLANE = "plane"
    MESH = "mesh"


class MeshShape(BaseModel):
    """Mesh description embedded in a Geometry. Not a component on its own."""

    uri: str = ""
    submesh: str = ""
    scale: Tuple[float, float, float] = (1.0, 1.0, 1.0)

    model_config = ConfigDict(frozen=True)


@register_component
class Geometry(Component):
    """Collision/visual geometry.

    Attributes:
        type: Shape kind
        size: Box or plane dimensions
        radius: Sphere, cylinder or capsule radius
        length: Cylinder or capsule length
        mesh: Mesh description, only meaningful when type is MESH
    """
    type_name: ClassVar[str] = "logplay.components.Geometry"

    type: GeometryType = GeometryType.EMPTY
    size: Optional[Tuple[float, float, float]] = None
    radius: Optional[float] = None
    length: Optional[float] = None
    mesh: Optional[MeshShape] = None

    @property
    def mesh_uri(self) -> str:
        """URI of the mesh, or empty string for non-mesh geometry."""
        if self.type is GeometryType.MESH and self.mesh is not None:
            return self.mesh.uri
        return ""

    def with_mesh_uri(self, uri: str) -> 'Geometry':
        """Copy of this geometry pointing at a different mesh file."""
        mesh = self.mesh or MeshShape()
        return self.model_copy(update={'mesh': mesh.model_copy(update={'uri': uri})})


@register_component
class Material(Component):
    """Visual material; may reference a material script file."""
    type_name: ClassVar[str] = "logplay.components.Material"

    script_uri: str = ""
    script_name: str = ""
    ambient: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)
    diffuse: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)

    def with_script_uri(self, uri: str) -> 'Material':
        """Copy of this material pointing at a different script file."""
        return self.model_copy(update={'script_uri': uri})


@register_component
class ParticleEmitterCmd(Component):
    """Command toggling a particle emitter.

    The log stores the last value written, not whether it changed, so the
    changed flag for this kind is derived during playback.
    """
    type_name: ClassVar[str] = "logplay.components.ParticleEmitterCmd"

    emitting: bool = False
    rate: Optional[float] = None


@register_component
class SemanticLabel(Component):
    """Label used by segmentation and bounding-box sensors."""
    type_name: ClassVar[str] = "logplay.components.SemanticLabel"

    data: int = 0

    @field_validator('data')
    @classmethod
    def validate_unsigned(cls, v: int) -> int:
        """Labels are unsigned 32-bit values."""
        if not 0 <= v <= 0xFFFFFFFF:
            raise ValueError(f'Semantic label must fit in uint32, got {v}')
        return v


@register_component
class LogPlaybackStatistics(Component):
    """Start and end time of the log being played, on the world entity."""
    type_name: ClassVar[str] = "logplay.components.LogPlaybackStatistics"

    start_time: float = 0.0
    end_time: float = 0.0
