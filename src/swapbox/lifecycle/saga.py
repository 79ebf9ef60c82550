"""Compensation tracking for multi-service exchange transitions."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from types import TracebackType

logger = logging.getLogger(__name__)

Compensation = Callable[[], Awaitable[object]]


class Saga:
    """Undo completed collaborator steps when a later step fails.

    Used as ``async with Saga(...) as saga``: after each successful side effect
    register its inverse with :meth:`on_failure`. If the block raises, the
    inverses run newest first and the original exception propagates. Every
    compensation must be idempotent.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._compensations: list[tuple[str, Compensation]] = []

    def on_failure(self, description: str, compensation: Compensation) -> None:
        self._compensations.append((description, compensation))

    async def compensate(self) -> None:
        while self._compensations:
            description, compensation = self._compensations.pop()
            try:
                await compensation()
            except Exception:
                logger.exception("Compensation '%s' failed for %s", description, self.name)
            else:
                logger.warning("Compensated '%s' for %s", description, self.name)

    async def __aenter__(self) -> Saga:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            await self.compensate()
        self._compensations.clear()


__all__ = ["Compensation", "Saga"]
