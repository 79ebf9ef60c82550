from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from swapbox.domain import BoxId, BoxRole, Exchange, ExchangeId, ExchangeStatus, ItemId, UserId
from swapbox.errors import InvalidCancellationError, StateConflictError
from swapbox.lifecycle import TERMINAL_STATUSES, TRANSITIONS, ExchangeStateMachine

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


def _exchange(status: ExchangeStatus, **changes: object) -> Exchange:
    return Exchange(
        id=ExchangeId(7),
        initiator_id=UserId(1),
        counterpart_id=UserId(2),
        item_ids=(ItemId(1),),
        status=status,
        created_at=NOW,
        updated_at=NOW,
        **changes,
    )


def test_terminal_statuses_have_no_exits() -> None:
    assert TERMINAL_STATUSES == {
        ExchangeStatus.COMPLETED,
        ExchangeStatus.CANCELLED,
        ExchangeStatus.EXPIRED,
    }
    for status in TERMINAL_STATUSES:
        assert TRANSITIONS[status] == frozenset()


def test_happy_path_is_allowed_in_order() -> None:
    machine = ExchangeStateMachine()
    path = [
        ExchangeStatus.PROPOSED,
        ExchangeStatus.ITEMS_COMMITTED,
        ExchangeStatus.BOX_ASSIGNED,
        ExchangeStatus.AWAITING_PICKUP,
        ExchangeStatus.COMPLETED,
    ]
    for current, target in zip(path, path[1:], strict=False):
        assert machine.can_transition(current, target)
    assert not machine.can_transition(ExchangeStatus.PROPOSED, ExchangeStatus.BOX_ASSIGNED)
    assert not machine.can_transition(ExchangeStatus.AWAITING_PICKUP, ExchangeStatus.BOX_ASSIGNED)


def test_expiry_only_from_box_statuses() -> None:
    machine = ExchangeStateMachine()
    assert machine.can_transition(ExchangeStatus.BOX_ASSIGNED, ExchangeStatus.EXPIRED)
    assert machine.can_transition(ExchangeStatus.AWAITING_PICKUP, ExchangeStatus.EXPIRED)
    assert not machine.can_transition(ExchangeStatus.PROPOSED, ExchangeStatus.EXPIRED)
    assert not machine.can_transition(ExchangeStatus.ITEMS_COMMITTED, ExchangeStatus.EXPIRED)


def test_require_transition_error_types() -> None:
    machine = ExchangeStateMachine()
    with pytest.raises(InvalidCancellationError):
        machine.require_transition(ExchangeStatus.COMPLETED, ExchangeStatus.CANCELLED)
    with pytest.raises(StateConflictError):
        machine.require_transition(ExchangeStatus.PROPOSED, ExchangeStatus.COMPLETED)


def test_required_role_follows_status() -> None:
    machine = ExchangeStateMachine()
    assert machine.required_role(ExchangeStatus.BOX_ASSIGNED) is BoxRole.CREATOR
    assert machine.required_role(ExchangeStatus.AWAITING_PICKUP) is BoxRole.PICKUP
    assert machine.required_role(ExchangeStatus.ITEMS_COMMITTED) is None
    assert machine.open_target(BoxRole.CREATOR) is ExchangeStatus.AWAITING_PICKUP
    assert machine.open_target(BoxRole.PICKUP) is ExchangeStatus.COMPLETED


def test_overdue_at_deadline_instant() -> None:
    machine = ExchangeStateMachine()
    deadline = NOW + timedelta(hours=72)
    exchange = _exchange(
        ExchangeStatus.BOX_ASSIGNED, box_id=BoxId("S1"), pickup_deadline=deadline
    )
    assert not machine.is_overdue(exchange, deadline - timedelta(seconds=1))
    assert machine.is_overdue(exchange, deadline)
    assert machine.effective_status(exchange, deadline) is ExchangeStatus.EXPIRED

    completed = _exchange(ExchangeStatus.COMPLETED, pickup_deadline=deadline)
    assert machine.effective_status(completed, deadline + timedelta(days=1)) is ExchangeStatus.COMPLETED


def test_advance_sets_status_and_timestamp() -> None:
    machine = ExchangeStateMachine()
    exchange = _exchange(ExchangeStatus.ITEMS_COMMITTED)
    later = NOW + timedelta(minutes=5)
    updated = machine.advance(
        exchange, ExchangeStatus.BOX_ASSIGNED, now=later, box_id=BoxId("L1")
    )
    assert updated.status is ExchangeStatus.BOX_ASSIGNED
    assert updated.box_id == "L1"
    assert updated.updated_at == later
    assert exchange.status is ExchangeStatus.ITEMS_COMMITTED

    with pytest.raises(StateConflictError):
        machine.advance(updated, ExchangeStatus.PROPOSED, now=later)
