"""Exchange status state machine."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from swapbox.domain import BoxRole, Exchange, ExchangeStatus
from swapbox.errors import InvalidCancellationError, StateConflictError

_S = ExchangeStatus

TRANSITIONS: Mapping[ExchangeStatus, frozenset[ExchangeStatus]] = {
    _S.PROPOSED: frozenset({_S.ITEMS_COMMITTED, _S.CANCELLED}),
    _S.ITEMS_COMMITTED: frozenset({_S.BOX_ASSIGNED, _S.CANCELLED}),
    _S.BOX_ASSIGNED: frozenset({_S.AWAITING_PICKUP, _S.CANCELLED, _S.EXPIRED}),
    _S.AWAITING_PICKUP: frozenset({_S.COMPLETED, _S.CANCELLED, _S.EXPIRED}),
    _S.COMPLETED: frozenset(),
    _S.CANCELLED: frozenset(),
    _S.EXPIRED: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)

# Statuses in which the exchange occupies a box and runs against the pickup deadline.
BOX_STATUSES = frozenset({_S.BOX_ASSIGNED, _S.AWAITING_PICKUP})

_OPEN_ROLE: Mapping[ExchangeStatus, BoxRole] = {
    _S.BOX_ASSIGNED: BoxRole.CREATOR,
    _S.AWAITING_PICKUP: BoxRole.PICKUP,
}

_OPEN_TARGET: Mapping[BoxRole, ExchangeStatus] = {
    BoxRole.CREATOR: _S.AWAITING_PICKUP,
    BoxRole.PICKUP: _S.COMPLETED,
}


class ExchangeStateMachine:
    """Canonical transition rules for exchanges."""

    def can_transition(self, current: ExchangeStatus, target: ExchangeStatus) -> bool:
        return target in TRANSITIONS[current]

    def require_transition(self, current: ExchangeStatus, target: ExchangeStatus) -> None:
        if self.can_transition(current, target):
            return
        if target is _S.CANCELLED:
            raise InvalidCancellationError(f"Cannot cancel an exchange that is {current}")
        raise StateConflictError(f"Cannot move exchange from {current} to {target}")

    def is_terminal(self, status: ExchangeStatus) -> bool:
        return status in TERMINAL_STATUSES

    def holds_box(self, status: ExchangeStatus) -> bool:
        return status in BOX_STATUSES

    def required_role(self, status: ExchangeStatus) -> BoxRole | None:
        """Role allowed to open the box next, or None when the box stays shut."""

        return _OPEN_ROLE.get(status)

    def open_target(self, role: BoxRole) -> ExchangeStatus:
        return _OPEN_TARGET[role]

    def is_overdue(self, exchange: Exchange, now: datetime) -> bool:
        return (
            exchange.status in BOX_STATUSES
            and exchange.pickup_deadline is not None
            and now >= exchange.pickup_deadline
        )

    def effective_status(self, exchange: Exchange, now: datetime) -> ExchangeStatus:
        """Status as callers should see it, counting a missed deadline as expiry."""

        if self.is_overdue(exchange, now):
            return _S.EXPIRED
        return exchange.status

    def advance(
        self,
        exchange: Exchange,
        target: ExchangeStatus,
        *,
        now: datetime,
        **changes: Any,
    ) -> Exchange:
        self.require_transition(exchange.status, target)
        return exchange.model_copy(update={**changes, "status": target, "updated_at": now})


__all__ = [
    "BOX_STATUSES",
    "TERMINAL_STATUSES",
    "TRANSITIONS",
    "ExchangeStateMachine",
]
