"""Mindful Code exception hierarchy."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mindfulcode.core.session.models import SessionSnapshot


class MindfulCodeError(Exception):
    """Base exception for all Mindful Code errors."""


class ConfigError(MindfulCodeError):
    """Raised when the configuration is invalid or cannot be read."""


class ConfigNotFoundError(ConfigError):
    """Raised when the configuration file does not exist."""


class PersistenceError(MindfulCodeError):
    """Raised when a session snapshot cannot be written to the store."""


class SnapshotPersistError(PersistenceError):
    """
    Raised when the terminal snapshot of an ended session could not be written.

    The in-memory session is already discarded at this point, so the snapshot
    is attached for the caller to retry or dump elsewhere.
    """

    def __init__(self, message: str, snapshot: SessionSnapshot) -> None:
        super().__init__(message)
        self.snapshot = snapshot
