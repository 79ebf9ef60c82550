"""Caller-visible error taxonomy for exchange operations."""

from __future__ import annotations


class ExchangeError(RuntimeError):
    """Base class for typed exchange failures."""

    retryable = False


class NotFoundError(ExchangeError, LookupError):
    """Raised when an exchange, item or box id is unknown."""


class ItemConflictError(ExchangeError):
    """Raised when an item is already tagged to another exchange."""


class NoCapacityError(ExchangeError):
    """Raised when no box can hold the exchange's items."""


class InvalidCodeError(ExchangeError):
    """Raised for wrong, expired, revoked or already consumed codes."""


class InvalidRoleError(ExchangeError):
    """Raised when a box-open role does not match the exchange's next step."""


class StateConflictError(ExchangeError):
    """Raised when an operation is illegal for the exchange's current status."""


class ExchangeExpiredError(StateConflictError):
    """Raised when an exchange passed its pickup deadline."""


class InvalidCancellationError(StateConflictError):
    """Raised when cancelling an exchange that is already terminal."""


class DependencyUnavailableError(ExchangeError):
    """Raised when a collaborator service cannot be reached. Safe to retry."""

    retryable = True


__all__ = [
    "DependencyUnavailableError",
    "ExchangeError",
    "ExchangeExpiredError",
    "InvalidCancellationError",
    "InvalidCodeError",
    "InvalidRoleError",
    "ItemConflictError",
    "NoCapacityError",
    "NotFoundError",
    "StateConflictError",
]
