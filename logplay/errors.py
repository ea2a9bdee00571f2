"""Error types raised by log playback.

Only ConfigurationError and NotFoundError ever escape a session; the rest
are raised internally, caught where they happen and logged.
"""


class PlaybackError(Exception):
    """Base class for all playback errors."""


class ConfigurationError(PlaybackError):
    """Missing or invalid playback path."""


class NotFoundError(PlaybackError):
    """Log data file or extraction target does not exist."""


class EmptyLogError(PlaybackError):
    """The log contains no messages."""


class NoSeedStateError(PlaybackError):
    """The log contains no state message to seed the world with."""


class UnrecognizedMessageType(PlaybackError):
    """A log message carries a type tag playback does not understand."""

    def __init__(self, type_tag: str):
        super().__init__(f"Unsupported message type [{type_tag}]")
        self.type_tag = type_tag


class DuplicateSessionError(PlaybackError):
    """A playback session is already active."""
