"""Persistence layer: repository protocols, in-memory and SQLite stores."""

from .errors import ConcurrencyError, NotFoundError, RepositoryError
from .interfaces import (
    AccessCodeRepository,
    ExchangeLogRepository,
    ExchangeRepository,
    UnitOfWork,
)
from .memory import InMemoryUnitOfWork

__all__ = [
    "AccessCodeRepository",
    "ConcurrencyError",
    "ExchangeLogRepository",
    "ExchangeRepository",
    "InMemoryUnitOfWork",
    "NotFoundError",
    "RepositoryError",
    "UnitOfWork",
]
