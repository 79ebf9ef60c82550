from __future__ import annotations

import asyncio

import pytest
from conftest import ALICE, BOB, CAROL, Harness

from swapbox.domain import BoxId, BoxRole, Exchange, ExchangeStatus, ItemId
from swapbox.errors import InvalidCodeError, ItemConflictError, StateConflictError
from swapbox.lifecycle import KeyedLock


def test_overlapping_proposals_admit_one(harness: Harness) -> None:
    async def _race() -> list[Exchange | BaseException]:
        return await asyncio.gather(
            harness.coordinator.propose_exchange(ALICE, BOB, (ItemId(1), ItemId(2))),
            harness.coordinator.propose_exchange(CAROL, BOB, (ItemId(2), ItemId(3))),
            return_exceptions=True,
        )

    results = asyncio.run(_race())
    created = [result for result in results if isinstance(result, Exchange)]
    failures = [result for result in results if isinstance(result, BaseException)]

    assert len(created) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], ItemConflictError)
    winner = created[0]
    for item_id in winner.item_ids:
        assert harness.ledger.tag_of(item_id) == winner.id
    loser_only = {ItemId(1), ItemId(3)} - set(winner.item_ids)
    for item_id in loser_only:
        assert harness.ledger.tag_of(item_id) is None


def test_concurrent_consumes_advance_once(harness: Harness) -> None:
    coordinator = harness.coordinator

    async def _scenario() -> list[Exchange | BaseException]:
        exchange = await coordinator.propose_exchange(ALICE, BOB, (ItemId(1),))
        await coordinator.assign_box(exchange.id)
        issued = await coordinator.request_box_open(exchange.id, BoxRole.CREATOR)
        return await asyncio.gather(
            coordinator.consume_box_open(exchange.id, issued.code),
            coordinator.consume_box_open(exchange.id, issued.code),
            return_exceptions=True,
        )

    results = asyncio.run(_scenario())
    advanced = [result for result in results if isinstance(result, Exchange)]
    rejected = [result for result in results if isinstance(result, BaseException)]

    assert len(advanced) == 1
    assert advanced[0].status is ExchangeStatus.AWAITING_PICKUP
    assert len(rejected) == 1
    assert isinstance(rejected[0], InvalidCodeError)


def test_concurrent_assign_and_cancel_leave_consistent_state(harness: Harness) -> None:
    coordinator = harness.coordinator

    async def _scenario() -> tuple[Exchange, list[Exchange | BaseException]]:
        exchange = await coordinator.propose_exchange(ALICE, BOB, (ItemId(1),))
        results = await asyncio.gather(
            coordinator.assign_box(exchange.id),
            coordinator.cancel_exchange(exchange.id),
            return_exceptions=True,
        )
        return exchange, results

    exchange, results = asyncio.run(_scenario())
    for result in results:
        if isinstance(result, BaseException):
            assert isinstance(result, StateConflictError)

    stored = asyncio.run(coordinator.get_exchange(exchange.id))
    assert stored.status is ExchangeStatus.CANCELLED
    assert harness.boxes.occupant(BoxId("B1")) is None
    assert harness.ledger.tag_of(ItemId(1)) is None


def test_keyed_lock_serializes_per_key() -> None:
    lock: KeyedLock[int] = KeyedLock()
    order: list[str] = []

    async def _worker(key: int, name: str, delay: float) -> None:
        async with lock.hold(key):
            order.append(f"{name}-start")
            await asyncio.sleep(delay)
            order.append(f"{name}-end")

    async def _run() -> None:
        await asyncio.gather(
            _worker(1, "a", 0.02),
            _worker(1, "b", 0.0),
            _worker(2, "c", 0.0),
        )

    asyncio.run(_run())
    assert order.index("a-end") < order.index("b-start")
    assert order.index("c-end") < order.index("a-end")
    assert len(lock) == 0


@pytest.mark.parametrize("key", ["x", 7])
def test_keyed_lock_reports_state(key: object) -> None:
    lock: KeyedLock[object] = KeyedLock()

    async def _check() -> None:
        assert not lock.locked(key)
        async with lock.hold(key):
            assert lock.locked(key)
            assert len(lock) == 1
        assert not lock.locked(key)

    asyncio.run(_check())
