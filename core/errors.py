"""Error taxonomy shared by the engine services."""

from __future__ import annotations


class EngineError(Exception):
    """Base class for errors raised by the triage engine."""


class InvalidArgumentError(EngineError, ValueError):
    """A caller contract violation, such as a non-positive batch size.

    Also raised for operations that require a prior analysis of the album.
    These are programming errors and are not meant to be retried.
    """


class PersistenceError(EngineError):
    """The underlying key-value store failed to read or write.

    Propagated unchanged so that callers can decide on retry and backoff.
    """
