"""
logplay - replays recorded entity-component state logs.

A recording is an ordered log of incremental world-state diffs. A
PlaybackSession seeds a live world from the first state in the log and
then advances it step by step, replaying from the start whenever the
simulation jumps backward.
"""

from logplay.config import PlaybackConfig, load_config
from logplay.ecm import ComponentState, EntityComponentManager
from logplay.errors import (
    ConfigurationError,
    DuplicateSessionError,
    EmptyLogError,
    NoSeedStateError,
    NotFoundError,
    PlaybackError,
    UnrecognizedMessageType,
)
from logplay.events import EventManager, Pause
from logplay.registry import SessionRegistry, get_session_registry
from logplay.session import PlaybackSession, PlaybackStats

__version__ = '0.1.0'

__all__ = [
    'ComponentState',
    'ConfigurationError',
    'DuplicateSessionError',
    'EmptyLogError',
    'EntityComponentManager',
    'EventManager',
    'NoSeedStateError',
    'NotFoundError',
    'Pause',
    'PlaybackConfig',
    'PlaybackError',
    'PlaybackSession',
    'PlaybackStats',
    'SessionRegistry',
    'UnrecognizedMessageType',
    'get_session_registry',
    'load_config',
]
