"""
Time-indexed log message store.

Playback only needs range queries over typed, opaque messages. The
LogMessageStore protocol captures that; JsonLinesLogStore implements it
over a JSON Lines recording, one message per line:

    {"time": 0.0, "type": "logplay.msgs.SerializedStateMap",
     "topic": "/world/default/changed_state", "data": "{...}"}

Messages are held in time order. Lines that cannot be parsed are skipped
with a warning so one corrupt line does not make a whole recording
unplayable.
"""

import bisect
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Union

from pydantic import BaseModel, Field, ValidationError

from logplay.errors import NotFoundError
from logplay.logging import get_logger
from logplay.seek import TimeWindow

log = get_logger('log_store')

# Message type tags
STATE_MESSAGE_TYPE = "logplay.msgs.SerializedState"
STATE_MAP_MESSAGE_TYPE = "logplay.msgs.SerializedStateMap"
STRING_MESSAGE_TYPE = "logplay.msgs.StringMsg"

STATE_MESSAGE_TYPES = (STATE_MESSAGE_TYPE, STATE_MAP_MESSAGE_TYPE)


@dataclass(frozen=True)
class TypedMessage:
    """One recorded message: type tag, raw payload and log time."""
    type_tag: str
    payload: bytes
    timestamp: float
    topic: str = ""


class LogMessageStore(Protocol):
    """Read side of a recorded log."""

    def query_range(self, window: TimeWindow) -> Sequence[TypedMessage]:
        """Messages with ``window.start <= timestamp < window.end``, in time order."""
        ...

    def query_all(self) -> Sequence[TypedMessage]:
        """Every message, in time order."""
        ...

    def start_time(self) -> float:
        ...

    def end_time(self) -> float:
        ...

    def close(self) -> None:
        ...


class _LogLine(BaseModel):
    """Schema of one JSON Lines record."""
    time: float = Field(..., ge=0)
    type: str
    topic: str = ""
    data: str = ""


class JsonLinesLogStore:
    """LogMessageStore backed by a JSON Lines file loaded into memory.

    Example:
        store = JsonLinesLogStore.open('/recordings/run1/state.tlog')
        for message in store.query_range(TimeWindow(0.0, 1.0)):
            print(message.type_tag, message.timestamp)
    """

    def __init__(self, messages: Sequence[TypedMessage], path: Optional[Path] = None):
        # Stable sort keeps recording order for messages sharing a timestamp
        self._messages: List[TypedMessage] = sorted(messages, key=lambda m: m.timestamp)
        self._times: List[float] = [m.timestamp for m in self._messages]
        self._path = path
        self._closed = False

    @classmethod
    def open(cls, path: Union[str, Path]) -> 'JsonLinesLogStore':
        """Load a recording from disk.

        Raises:
            NotFoundError: If the file does not exist
        """
        path = Path(path)
        if not path.is_file():
            raise NotFoundError(f"Log file [{path}] does not exist")

        messages: List[TypedMessage] = []
        skipped = 0
        # Lines are decoded one at a time so bad bytes cost only their line
        with open(path, 'rb') as f:
            for line_number, raw in enumerate(f, start=1):
                if not raw.strip():
                    continue
                try:
                    record = _LogLine.model_validate_json(raw.decode('utf-8'))
                except UnicodeDecodeError as e:
                    skipped += 1
                    log.warning("Skipping undecodable line %d in [%s]: %s",
                                line_number, path, e.reason)
                    continue
                except ValidationError as e:
                    skipped += 1
                    log.warning("Skipping malformed line %d in [%s]: %s",
                                line_number, path, e.errors()[0].get('msg', e))
                    continue
                messages.append(TypedMessage(
                    type_tag=record.type,
                    payload=record.data.encode('utf-8'),
                    timestamp=record.time,
                    topic=record.topic,
                ))

        log.info("Loaded %d messages from [%s]%s", len(messages), path,
                 f" ({skipped} skipped)" if skipped else "")
        return cls(messages, path=path)

    @property
    def path(self) -> Optional[Path]:
        return self._path

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._messages)

    def query_range(self, window: TimeWindow) -> List[TypedMessage]:
        if window.empty:
            return []
        lo = bisect.bisect_left(self._times, window.start)
        hi = bisect.bisect_left(self._times, window.end)
        return self._messages[lo:hi]

    def query_all(self) -> List[TypedMessage]:
        return list(self._messages)

    def start_time(self) -> float:
        return self._times[0] if self._times else 0.0

    def end_time(self) -> float:
        return self._times[-1] if self._times else 0.0

    def close(self) -> None:
        self._closed = True

    def __enter__(self) -> 'JsonLinesLogStore':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
