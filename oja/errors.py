"""Exception types raised at the core's boundaries."""

from __future__ import annotations


class OjaError(Exception):
    """Base class for all errors raised by oja."""


class ValidationError(OjaError, ValueError):
    """Malformed input (non-positive price, empty name, missing size).

    Raised before anything is written.
    """


class NotFoundError(OjaError, LookupError):
    """A referenced record does not exist or belongs to another user."""


class ConflictError(OjaError):
    """A write contradicts a terminal state that was already recorded."""
