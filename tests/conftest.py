"""Pytest fixtures for playback tests."""
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from fs.memoryfs import MemoryFS

from logplay import logging as logplay_logging
from logplay.ecm import EntityComponentManager
from logplay.events import EventManager, Pause
from logplay.log_store import (
    STATE_MAP_MESSAGE_TYPE,
    STATE_MESSAGE_TYPE,
    STRING_MESSAGE_TYPE,
)
from logplay.registry import SessionRegistry

WORLD = "logplay.components.World"
NAME = "logplay.components.Name"
POSE = "logplay.components.Pose"
GEOMETRY = "logplay.components.Geometry"
MATERIAL = "logplay.components.Material"
EMITTER = "logplay.components.ParticleEmitterCmd"


# =============================================================================
# Log line builders
# =============================================================================

def entity(entity_id: int, remove: bool = False, **components: Any) -> Dict[str, Any]:
    """Entity entry of a SerializedState; keyword names are type names."""
    return {
        "id": entity_id,
        "remove": remove,
        "components": [{"type": name, "data": data} for name, data in components.items()],
    }


def state_line(time: float, *entities: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "time": time,
        "type": STATE_MESSAGE_TYPE,
        "topic": "/world/default/changed_state",
        "data": json.dumps({"entities": list(entities)}),
    }


def state_map_line(time: float, *entities: Dict[str, Any]) -> Dict[str, Any]:
    """Same entities in the map encoding."""
    mapped = {}
    for e in entities:
        mapped[str(e["id"])] = {
            "id": e["id"],
            "remove": e["remove"],
            "components": {c["type"]: c for c in e["components"]},
        }
    return {
        "time": time,
        "type": STATE_MAP_MESSAGE_TYPE,
        "topic": "/world/default/changed_state",
        "data": json.dumps({"entities": mapped}),
    }


def string_line(time: float, text: str = "<sdf version='1.6'/>") -> Dict[str, Any]:
    return {"time": time, "type": STRING_MESSAGE_TYPE, "topic": "/world/sdf", "data": text}


def write_log(path: Path, lines: List[Any]) -> Path:
    """Write lines (dicts or raw strings) as JSON Lines."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        for line in lines:
            f.write((line if isinstance(line, str) else json.dumps(line)) + "\n")
    return path


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def clean_sinks():
    """Drop structured-log sinks registered during a test."""
    yield
    logplay_logging.close_all_sinks()
    logplay_logging._config['modules'] = {}


@pytest.fixture
def ecm():
    return EntityComponentManager()


@pytest.fixture
def events():
    return EventManager()


@pytest.fixture
def pauses(events):
    """Pause events emitted during the test, in order."""
    received: List[Pause] = []
    events.connect(Pause, received.append)
    return received


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def memory_fs():
    with MemoryFS() as mem:
        yield mem


@pytest.fixture
def recording(tmp_path):
    """Factory writing a recording directory with a state.tlog.

    Usage:
        root = recording([state_line(0.0, entity(1, **{WORLD: {}}))])
    """
    def make(lines: List[Any], name: str = "run1", log_file: Optional[str] = None) -> Path:
        root = tmp_path / name
        write_log(root / (log_file or "state.tlog"), lines)
        return root

    return make
