"""
logplay Logging System

Two channels:

- Console loggers, one per module, printing ``[module] LEVEL: message``
  with a level that can be tuned per module.
- Structured records (rewinds, end of log) routed by module name to a
  sink, normally a FileSink writing one JSONL file per module.

Usage:
    from logplay.logging import get_logger, emit_record

    log = get_logger('session')
    log.debug("Applying %d messages", count)

    emit_record('playback', {'type': 'rewind', 'from': 4.0, 'to': 0.0})

Configuration:
    Environment variables:
        LOGPLAY_LOG_LEVEL=DEBUG           # Default level for every module
        LOGPLAY_LOG_URI_REWRITER=TRACE    # Level for one module
        LOGPLAY_LOG_DIR=./debug_logs      # Where FileSink writes JSONL

        # Structured records for one module
        LOGPLAY_LOGGING_PLAYBACK_ENABLED=true

    Or programmatically:
        from logplay.logging import configure_logging
        configure_logging(level='DEBUG', modules={'seek': 'INFO'})
"""

import json
import os
import sys
import time
from abc import ABC, abstractmethod
from enum import IntEnum
from functools import lru_cache, partialmethod
from pathlib import Path
from typing import Any, Dict, IO, Optional

LEVEL_ENV = 'LOGPLAY_LOG_LEVEL'
DIR_ENV = 'LOGPLAY_LOG_DIR'
LEVEL_PREFIX = 'LOGPLAY_LOG_'
MODULE_PREFIX = 'LOGPLAY_LOGGING_'


class LogLevel(IntEnum):
    """Console levels; numeric values line up with the stdlib's."""
    TRACE = 5
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50
    OFF = 100

    @classmethod
    def parse(cls, text: str) -> 'LogLevel':
        """Level from its name; WARN is accepted, anything unknown is INFO."""
        name = text.strip().upper()
        if name == 'WARN':
            return cls.WARNING
        return cls.__members__.get(name, cls.INFO)


# Label printed for each level
_LABELS = {
    LogLevel.TRACE: 'TRACE',
    LogLevel.DEBUG: 'DEBUG',
    LogLevel.INFO: 'INFO',
    LogLevel.WARNING: 'WARN',
    LogLevel.ERROR: 'ERROR',
    LogLevel.CRITICAL: 'CRIT',
}


# =============================================================================
# Structured record sinks
# =============================================================================

class LogSink(ABC):
    """Destination for structured records, shared by one or more modules."""

    @abstractmethod
    def emit(self, module: str, record: Dict[str, Any]) -> None:
        """Write one JSON-serializable record on behalf of ``module``."""

    @abstractmethod
    def flush(self) -> None:
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    def __enter__(self) -> 'LogSink':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class FileSink(LogSink):
    """
    Appends records to ``<log_dir>/<session_name>_<module>.jsonl``.

    Each file opens with a header record and ends with a footer record
    written by close(). Records without a ``wall_time`` get one.

    Args:
        log_dir: Output directory (get_log_dir() if None, resolved lazily)
        session_name: File name prefix (start timestamp if None)
    """

    def __init__(self, log_dir: Optional[str] = None, session_name: Optional[str] = None):
        self._log_dir = Path(log_dir) if log_dir else None
        self._session_name = session_name or time.strftime("%Y%m%d_%H%M%S")
        self._handles: Dict[str, IO[str]] = {}

    def _directory(self) -> Path:
        if self._log_dir is None:
            self._log_dir = Path(get_log_dir())
        self._log_dir.mkdir(parents=True, exist_ok=True)
        return self._log_dir

    def _path_for(self, module: str) -> Path:
        return self._directory() / f"{self._session_name}_{module}.jsonl"

    def _write(self, handle: IO[str], record: Dict[str, Any]) -> None:
        handle.write(json.dumps(record, default=str) + "\n")

    def _marker(self, kind: str, module: str) -> Dict[str, Any]:
        now = time.time()
        return {
            "type": kind,
            "module": module,
            "session_name": self._session_name,
            "time": now,
            "time_iso": time.strftime("%Y-%m-%dT%H:%M:%S", time.localtime(now)),
        }

    def _handle(self, module: str) -> IO[str]:
        handle = self._handles.get(module)
        if handle is None:
            handle = open(self._path_for(module), 'a', encoding='utf-8')
            self._write(handle, self._marker("header", module))
            self._handles[module] = handle
        return handle

    def emit(self, module: str, record: Dict[str, Any]) -> None:
        self._write(self._handle(module), {'wall_time': time.time(), **record})

    def flush(self) -> None:
        for handle in self._handles.values():
            handle.flush()

    def close(self) -> None:
        for module, handle in self._handles.items():
            self._write(handle, self._marker("footer", module))
            handle.close()
        self._handles.clear()

    @property
    def log_paths(self) -> Dict[str, Path]:
        """Files opened so far, by module."""
        return {module: self._path_for(module) for module in self._handles}


class NullSink(LogSink):
    """Discards records; used when a module's records are disabled."""

    def emit(self, module: str, record: Dict[str, Any]) -> None:
        pass

    def flush(self) -> None:
        pass

    def close(self) -> None:
        pass


_sinks: Dict[str, LogSink] = {}


def register_sink(module: str, sink: LogSink) -> None:
    _sinks[module] = sink


def get_sink(module: str) -> Optional[LogSink]:
    return _sinks.get(module)


def emit_record(module: str, record: Dict[str, Any]) -> bool:
    """
    Route a structured record to the module's sink.

    Returns:
        False if no sink is registered for the module
    """
    sink = get_sink(module)
    if sink is None:
        return False
    sink.emit(module, record)
    return True


def close_all_sinks() -> None:
    """Close and forget every registered sink."""
    sinks = list(_sinks.values())
    _sinks.clear()
    for sink in sinks:
        sink.close()


def create_sink(module: str, session_name: Optional[str] = None) -> LogSink:
    """FileSink if LOGPLAY_LOGGING_<MODULE>_ENABLED is set, else NullSink."""
    if get_module_config(module).get('enabled', False):
        return FileSink(session_name=session_name)
    return NullSink()


# =============================================================================
# Settings
# =============================================================================

_config: Dict[str, Any] = {
    'default_level': LogLevel.INFO,
    'module_levels': {},     # module key -> LogLevel
    'log_dir': None,         # None = LOGPLAY_LOG_DIR or the user data dir
    'modules': {},           # module -> structured-record settings
}


def get_log_dir() -> str:
    """Directory for JSONL records.

    configure_logging(log_dir=...) wins over LOGPLAY_LOG_DIR, which wins
    over ``<user data dir>/logplay/logs``.
    """
    configured = _config.get('log_dir') or os.environ.get(DIR_ENV)
    if configured:
        return str(Path(configured).expanduser())

    if sys.platform == 'win32':
        base = Path(os.environ.get('APPDATA', str(Path.home())))
    else:
        base = Path(os.environ.get('XDG_DATA_HOME', str(Path.home() / '.local' / 'share')))
    return str(base / 'logplay' / 'logs')


def get_module_config(module: str) -> Dict[str, Any]:
    """Structured-record settings of a module.

    LOGPLAY_LOGGING_PLAYBACK_ENABLED=true gives {'enabled': True} for
    'playback'; further underscores nest deeper.
    """
    return _config['modules'].get(module.lower(), {})


def _env_value(text: str) -> Any:
    lowered = text.strip().lower()
    if lowered in ('true', 'yes', 'on', '1'):
        return True
    if lowered in ('false', 'no', 'off', '0'):
        return False
    for convert in (int, float):
        try:
            return convert(text)
        except ValueError:
            continue
    return text


def configure_logging(
    level: str = 'INFO',
    modules: Optional[Dict[str, str]] = None,
    log_dir: Optional[str] = None,
) -> None:
    """
    Set console levels and the record directory.

    Args:
        level: Default level name
        modules: Level name per module, overriding the default
        log_dir: Directory for FileSink output
    """
    _config['default_level'] = LogLevel.parse(level)
    for module, module_level in (modules or {}).items():
        _config['module_levels'][module] = LogLevel.parse(module_level)
    if log_dir:
        _config['log_dir'] = log_dir


def _load_env_config() -> None:
    if LEVEL_ENV in os.environ:
        _config['default_level'] = LogLevel.parse(os.environ[LEVEL_ENV])
    if DIR_ENV in os.environ:
        _config['log_dir'] = os.environ[DIR_ENV]

    # LOGPLAY_LOG_FILE names the recording's data file, not a logger
    not_levels = {LEVEL_ENV, DIR_ENV, 'LOGPLAY_LOG_FILE'}

    for key, value in os.environ.items():
        if key.startswith(MODULE_PREFIX):
            module, *path = key[len(MODULE_PREFIX):].lower().split('_')
            if not path:
                continue
            settings = _config['modules'].setdefault(module, {})
            for part in path[:-1]:
                settings = settings.setdefault(part, {})
            settings[path[-1]] = _env_value(value)
        elif key.startswith(LEVEL_PREFIX) and key not in not_levels:
            _config['module_levels'][key[len(LEVEL_PREFIX):].lower()] = LogLevel.parse(value)


_load_env_config()


# =============================================================================
# Console loggers
# =============================================================================

class PlaybackLogger:
    """Console logger for one module; %-style arguments are applied lazily."""

    def __init__(self, module: str):
        self.module = module
        self._key = module.lower().replace('.', '_').replace('/', '_')

    @property
    def level(self) -> LogLevel:
        return _config['module_levels'].get(self._key, _config['default_level'])

    def _log(self, level: LogLevel, msg: str, *args) -> None:
        if level < self.level:
            return
        if args:
            try:
                msg = msg % args
            except (TypeError, ValueError):
                msg = f"{msg} {args}"
        print(f"[{self.module}] {_LABELS.get(level, level.name)}: {msg}")

    trace = partialmethod(_log, LogLevel.TRACE)
    debug = partialmethod(_log, LogLevel.DEBUG)
    info = partialmethod(_log, LogLevel.INFO)
    warning = partialmethod(_log, LogLevel.WARNING)
    warn = warning
    error = partialmethod(_log, LogLevel.ERROR)
    critical = partialmethod(_log, LogLevel.CRITICAL)

    def exception(self, msg: str, *args) -> None:
        """ERROR message followed by the traceback being handled, if any."""
        import traceback

        self._log(LogLevel.ERROR, msg, *args)
        if sys.exc_info()[0] is None:
            return
        for line in traceback.format_exc().rstrip().splitlines():
            self._log(LogLevel.ERROR, line)


@lru_cache(maxsize=64)
def get_logger(module: str) -> PlaybackLogger:
    """Cached logger for ``module``."""
    return PlaybackLogger(module)
