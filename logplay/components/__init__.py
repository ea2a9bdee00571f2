"""
Component payload models for log playback.

Usage:
    >>> from logplay.components import Geometry, GeometryType, MeshShape
    >>> geo = Geometry(type=GeometryType.MESH, mesh=MeshShape(uri='/meshes/arm.dae'))
    >>> component_type('logplay.components.Geometry') is Geometry
    True
"""

# ============================================================================
# Base model and registry
# ============================================================================
from .base import (
    Component,
    component_type,
    register_component,
    registered_components,
)

# ============================================================================
# Component kinds
# ============================================================================
from .kinds import (
    Geometry,
    GeometryType,
    LogPlaybackStatistics,
    Material,
    MeshShape,
    Name,
    ParentEntity,
    ParticleEmitterCmd,
    Pose,
    SemanticLabel,
    World,
)

# ============================================================================
# Comparison strategies
# ============================================================================
from .compare import (
    Comparator,
    comparator_for,
    mesh_uri_equal,
    never_changed,
    script_uri_equal,
    value_equal,
)

__all__ = [
    # Base
    "Component",
    "component_type",
    "register_component",
    "registered_components",
    # Kinds
    "Geometry",
    "GeometryType",
    "LogPlaybackStatistics",
    "Material",
    "MeshShape",
    "Name",
    "ParentEntity",
    "ParticleEmitterCmd",
    "Pose",
    "SemanticLabel",
    "World",
    # Comparison
    "Comparator",
    "comparator_for",
    "mesh_uri_equal",
    "never_changed",
    "script_uri_equal",
    "value_equal",
]
