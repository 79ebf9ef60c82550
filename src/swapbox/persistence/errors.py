"""Custom persistence exceptions."""

from __future__ import annotations

from swapbox.errors import NotFoundError


class RepositoryError(RuntimeError):
    """Base class for persistence layer errors."""


class ConcurrencyError(RepositoryError):
    """Raised when a conditional write finds the row changed underneath it."""


__all__ = ["ConcurrencyError", "NotFoundError", "RepositoryError"]
