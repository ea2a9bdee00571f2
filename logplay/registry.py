"""
Registry enforcing a single active playback session.

Sessions acquire a token before opening a log and release it on close.
Hosts normally share the process-wide registry returned by
get_session_registry(); tests and embedders can create their own.
"""

import itertools
import threading
from dataclasses import dataclass
from typing import Optional

from logplay.errors import DuplicateSessionError

_token_ids = itertools.count(1)


@dataclass(frozen=True)
class SessionToken:
    """Proof that a session holds the registry."""
    token_id: int
    owner: str = ""


class SessionRegistry:
    """Hands out at most one SessionToken at a time."""

    def __init__(self):
        self._lock = threading.Lock()
        self._active: Optional[SessionToken] = None

    @property
    def active(self) -> Optional[SessionToken]:
        """Token of the active session, or None."""
        return self._active

    def try_acquire(self, owner: str = "") -> SessionToken:
        """Become the active session.

        Raises:
            DuplicateSessionError: If another session holds the registry
        """
        with self._lock:
            if self._active is not None:
                raise DuplicateSessionError(
                    "A playback session has already been started"
                    + (f" by {self._active.owner}" if self._active.owner else "")
                )
            self._active = SessionToken(token_id=next(_token_ids), owner=owner)
            return self._active

    def release(self, token: SessionToken) -> bool:
        """Give the registry back. Stale tokens are ignored.

        Returns:
            True if ``token`` was the active one
        """
        with self._lock:
            if self._active != token:
                return False
            self._active = None
            return True


_default_registry: Optional[SessionRegistry] = None
_default_lock = threading.Lock()


def get_session_registry() -> SessionRegistry:
    """Process-wide registry shared by sessions that are not given one."""
    global _default_registry
    with _default_lock:
        if _default_registry is None:
            _default_registry = SessionRegistry()
        return _default_registry
