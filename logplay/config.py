"""
Playback configuration loader.

Loads settings from a .env file and the environment with sensible
defaults, or from a YAML file with a top-level ``playback:`` mapping:

    playback:
      path: recordings/run1.zip
      repeat_pause_at_end: false
"""
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv

from logplay.errors import ConfigurationError

# Load .env from the working directory
load_dotenv()

DEFAULT_LOG_FILE_NAME = 'state.tlog'

# Entities created by the host during playback start here, so they never
# collide with entity ids replayed from the log.
DEFAULT_ENTITY_CREATE_OFFSET = 2 ** 62


def _get_str(key: str, default: str) -> str:
    """Get string from environment."""
    return os.getenv(key, default)


def _get_bool(key: str, default: bool) -> bool:
    """Get boolean from environment."""
    val = os.getenv(key, str(default)).lower()
    return val in ('true', '1', 'yes')


def _get_int(key: str, default: int) -> int:
    """Get integer from environment."""
    return int(os.getenv(key, str(default)))


@dataclass
class PlaybackConfig:
    """Settings for one playback session."""
    playback_path: str = ""
    log_file_name: str = DEFAULT_LOG_FILE_NAME
    repeat_pause_at_end: bool = False
    entity_create_offset: int = DEFAULT_ENTITY_CREATE_OFFSET

    @classmethod
    def from_env(cls) -> 'PlaybackConfig':
        """Build from LOGPLAY_* environment variables."""
        return cls(
            playback_path=_get_str('LOGPLAY_PLAYBACK_PATH', ""),
            log_file_name=_get_str('LOGPLAY_LOG_FILE', DEFAULT_LOG_FILE_NAME),
            repeat_pause_at_end=_get_bool('LOGPLAY_REPEAT_PAUSE', False),
            entity_create_offset=_get_int('LOGPLAY_ENTITY_OFFSET', DEFAULT_ENTITY_CREATE_OFFSET),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Optional[Path] = None) -> 'PlaybackConfig':
        """Build from a ``playback:`` mapping.

        ``path`` is accepted as a short form of ``playback_path``. A relative
        path is resolved against ``base_dir`` when given.

        Raises:
            ConfigurationError: On unknown keys
        """
        data = dict(data)
        if 'path' in data:
            data.setdefault('playback_path', data.pop('path'))

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown playback settings: {', '.join(unknown)}")

        config = cls(**data)
        if config.playback_path and base_dir is not None:
            path = Path(config.playback_path).expanduser()
            if not path.is_absolute():
                config.playback_path = str(base_dir / path)
        return config


def load_config(path: Union[str, Path]) -> PlaybackConfig:
    """Load a PlaybackConfig from a YAML file.

    Raises:
        ConfigurationError: If the file is missing or has no ``playback``
            mapping
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Config file [{path}] does not exist")

    with open(path, 'r') as f:
        data = yaml.safe_load(f) or {}

    section = data.get('playback') if isinstance(data, dict) else None
    if not isinstance(section, dict):
        raise ConfigurationError(f"Config file [{path}] has no 'playback' mapping")

    return PlaybackConfig.from_dict(section, base_dir=path.parent.resolve())
