"""
Component base model and type registry.

Every component kind is an immutable pydantic model registered under a
stable type name. The type name is what the log records; playback resolves
it back to the model class through this registry. Names that are not
registered are skipped during playback so logs written by newer or older
versions still replay.
"""

from typing import ClassVar, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict


class Component(BaseModel):
    """Immutable component payload.

    Subclasses set ``type_name`` and are registered with
    ``@register_component``. Updates never mutate a payload in place;
    they replace it with a new instance (``model_copy(update=...)``).
    """
    type_name: ClassVar[str] = ""

    model_config = ConfigDict(frozen=True)


C = TypeVar('C', bound=Type[Component])

_registry: Dict[str, Type[Component]] = {}


def register_component(cls: C) -> C:
    """Class decorator adding a component kind to the registry."""
    if not cls.type_name:
        raise ValueError(f"{cls.__name__} has no type_name")
    existing = _registry.get(cls.type_name)
    if existing is not None and existing is not cls:
        raise ValueError(
            f"Component type name {cls.type_name!r} already registered "
            f"by {existing.__name__}"
        )
    _registry[cls.type_name] = cls
    return cls


def component_type(type_name: str) -> Optional[Type[Component]]:
    """Look up a component kind by its recorded type name."""
    return _registry.get(type_name)


def registered_components() -> Dict[str, Type[Component]]:
    """Snapshot of the registry (type name -> model class)."""
    return dict(_registry)
