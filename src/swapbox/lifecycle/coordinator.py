"""Exchange lifecycle coordination across the ledger, box registry and notifications."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime, timedelta

from swapbox.domain import (
    BoxRole,
    CapacityClass,
    Exchange,
    ExchangeId,
    ExchangeLogEntry,
    ExchangeStatus,
    ExchangeStatusView,
    IssuedCode,
    ItemId,
    LedgerItem,
    UserId,
)
from swapbox.errors import (
    DependencyUnavailableError,
    ExchangeExpiredError,
    InvalidCancellationError,
    InvalidCodeError,
    InvalidRoleError,
    NotFoundError,
    StateConflictError,
)
from swapbox.integrations import (
    BoxRegistry,
    CacheInvalidator,
    ItemLedger,
    NotificationSink,
    exchange_cache_keys,
)
from swapbox.persistence import ConcurrencyError, UnitOfWork
from swapbox.utils import Clock, utc_now

from .capacity import DEFAULT_LIMITS, CapacityLimits, required_capacity
from .codes import AccessCodeGenerator
from .locks import KeyedLock
from .saga import Saga
from .state_machine import ExchangeStateMachine

UnitOfWorkFactory = Callable[[], UnitOfWork]

logger = logging.getLogger(__name__)


def _status_message(exchange: Exchange) -> str:
    ref = f"Exchange #{exchange.id}"
    match exchange.status:
        case ExchangeStatus.PROPOSED:
            return f"{ref} was proposed with {len(exchange.item_ids)} item(s)."
        case ExchangeStatus.ITEMS_COMMITTED:
            return f"{ref}: items are committed to the exchange."
        case ExchangeStatus.BOX_ASSIGNED:
            deadline = exchange.pickup_deadline
            suffix = f" Pickup deadline: {deadline:%Y-%m-%d %H:%M} UTC." if deadline else ""
            return f"{ref}: box {exchange.box_id} is reserved for the deposit.{suffix}"
        case ExchangeStatus.AWAITING_PICKUP:
            return f"{ref}: items were deposited in box {exchange.box_id} and await pickup."
        case ExchangeStatus.COMPLETED:
            return f"{ref} is complete; the items were picked up."
        case ExchangeStatus.CANCELLED:
            return f"{ref} was cancelled."
        case ExchangeStatus.EXPIRED:
            return f"{ref} expired before pickup; the items were released."
    return f"{ref} is now {exchange.status}."


class ExchangeCoordinator:
    """Drives exchanges through their lifecycle.

    Mutations of one exchange are serialized by a per-exchange lock, while
    status writes are additionally conditioned on the expected current status
    so that separate processes sharing a database cannot double-apply a
    transition. Collaborator side effects run inside a :class:`Saga` ahead of
    the status write, which is the commit point of every transition.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        ledger: ItemLedger,
        box_registry: BoxRegistry,
        notifications: NotificationSink,
        *,
        cache: CacheInvalidator | None = None,
        code_generator: AccessCodeGenerator | None = None,
        state_machine: ExchangeStateMachine | None = None,
        code_ttl: timedelta = timedelta(minutes=15),
        pickup_window: timedelta = timedelta(hours=72),
        capacity_limits: Sequence[CapacityLimits] = DEFAULT_LIMITS,
        clock: Clock = utc_now,
    ) -> None:
        self._uow_factory = uow_factory
        self._ledger = ledger
        self._boxes = box_registry
        self._notifications = notifications
        self._cache = cache
        self._codes = code_generator or AccessCodeGenerator()
        self._machine = state_machine or ExchangeStateMachine()
        self._code_ttl = code_ttl
        self._pickup_window = pickup_window
        self._capacity_limits = tuple(capacity_limits)
        self._clock = clock
        self._locks: KeyedLock[ExchangeId] = KeyedLock()

    # ------------------------------------------------------------------
    # Lifecycle operations

    async def propose_exchange(
        self,
        initiator_id: UserId,
        counterpart_id: UserId,
        item_ids: Iterable[ItemId],
    ) -> Exchange:
        """Create an exchange in ``proposed`` and tag its items, or do neither."""

        ids = tuple(item_ids)
        if not ids:
            msg = "An exchange needs at least one item"
            raise ValueError(msg)
        if len(set(ids)) != len(ids):
            msg = "Item ids must not repeat within an exchange"
            raise ValueError(msg)
        if initiator_id == counterpart_id:
            msg = "An exchange needs two different users"
            raise ValueError(msg)
        async with self._uow_factory() as uow:
            exchange_id = await uow.exchange_repository.allocate_id()
            await uow.commit()
        now = self._clock()
        exchange = Exchange(
            id=exchange_id,
            initiator_id=initiator_id,
            counterpart_id=counterpart_id,
            item_ids=ids,
            created_at=now,
            updated_at=now,
        )

        async with self._locks.hold(exchange.id):
            async with Saga(f"propose exchange {exchange.id}") as saga:
                await self._ledger.tag_items(ids, exchange.id)
                saga.on_failure("clear item tags", lambda: self._ledger.clear_tags(ids))
                async with self._uow_factory() as uow:
                    await uow.exchange_repository.add(exchange)
                    await uow.log_repository.add(
                        ExchangeLogEntry(
                            exchange_id=exchange.id,
                            next_status=exchange.status,
                            message="Exchange proposed",
                            created_at=now,
                            attributes={"item_ids": ",".join(str(item) for item in ids)},
                        )
                    )
                    await uow.commit()

        logger.info(
            "Exchange %s proposed by user %s for user %s with items %s",
            exchange.id,
            initiator_id,
            counterpart_id,
            list(ids),
        )
        await self._publish(exchange)
        return exchange

    async def commit_items(self, exchange_id: ExchangeId) -> Exchange:
        """Confirm the item tags and move ``proposed`` to ``items_committed``."""

        async with self._locks.hold(exchange_id):
            exchange = await self._fetch(exchange_id)
            updated = await self._commit_items(exchange)
        await self._publish(updated)
        return updated

    async def assign_box(self, exchange_id: ExchangeId) -> Exchange:
        """Reserve a box that fits the items and move to ``box_assigned``.

        A ``proposed`` exchange has its items committed first; that step stays
        applied even if no box is available.
        """

        async with self._locks.hold(exchange_id):
            exchange = await self._fetch(exchange_id)
            if exchange.status is ExchangeStatus.PROPOSED:
                exchange = await self._commit_items(exchange)
                await self._publish(exchange)
            self._machine.require_transition(exchange.status, ExchangeStatus.BOX_ASSIGNED)

            dimensions = await self._ledger.get_item_dimensions(exchange.item_ids)
            capacity = required_capacity(dimensions, self._capacity_limits)
            now = self._clock()
            async with Saga(f"assign box to exchange {exchange.id}") as saga:
                box_id = await self._boxes.reserve(capacity, exchange.id)
                saga.on_failure("release box", lambda: self._boxes.release(box_id))
                updated = self._machine.advance(
                    exchange,
                    ExchangeStatus.BOX_ASSIGNED,
                    now=now,
                    box_id=box_id,
                    capacity_class=capacity,
                    pickup_deadline=now + self._pickup_window,
                )
                await self._persist(
                    exchange,
                    updated,
                    message="Box assigned",
                    attributes={"box_id": box_id, "capacity_class": capacity.value},
                )
        await self._publish(updated)
        return updated

    async def request_box_open(
        self,
        exchange_id: ExchangeId,
        role: BoxRole | str,
        *,
        requested_by: UserId | None = None,
    ) -> IssuedCode:
        """Issue a fresh access code for the party allowed to open the box next."""

        try:
            role = BoxRole(role)
        except ValueError as exc:
            raise InvalidRoleError(f"Unknown box role {role!r}") from exc
        async with self._locks.hold(exchange_id):
            now = self._clock()
            exchange = await self._fetch_active(exchange_id, now)
            if self._machine.is_terminal(exchange.status):
                raise StateConflictError(f"Exchange {exchange_id} is {exchange.status}")
            expected = self._machine.required_role(exchange.status)
            if expected is not role:
                raise InvalidRoleError(
                    f"Exchange {exchange_id} is {exchange.status}; a {role} code cannot be issued"
                )
            if requested_by is not None and requested_by != exchange.user_for_role(role):
                raise InvalidRoleError(
                    f"User {requested_by} is not the {role} of exchange {exchange_id}"
                )
            async with self._uow_factory() as uow:
                issued = await self._codes.issue(
                    uow, exchange.id, role, ttl=self._code_ttl, now=now
                )
                await uow.commit()
        logger.info(
            "Issued %s code for exchange %s valid until %s",
            role,
            exchange_id,
            issued.expires_at.isoformat(),
        )
        return issued

    async def consume_box_open(self, exchange_id: ExchangeId, code: str) -> Exchange:
        """Open the box with ``code`` and advance the exchange for the code's role."""

        async with self._locks.hold(exchange_id):
            now = self._clock()
            exchange = await self._fetch_active(exchange_id, now)
            role = self._machine.required_role(exchange.status)
            if role is None:
                raise StateConflictError(
                    f"Exchange {exchange_id} is {exchange.status}; the box cannot be opened"
                )
            # Reject bad codes before touching any collaborator.
            async with self._uow_factory() as uow:
                record = await self._codes.validate(uow, exchange.id, code, now=now)
            if record.role is not role:
                raise InvalidCodeError(
                    f"Code was issued for the {record.role}, exchange {exchange_id} expects {role}"
                )

            target = self._machine.open_target(role)
            if target is ExchangeStatus.AWAITING_PICKUP:
                updated = self._machine.advance(exchange, target, now=now, deposited_at=now)
                await self._persist(exchange, updated, message="Items deposited", code=code)
            else:
                async with Saga(f"complete exchange {exchange.id}") as saga:
                    await self._release_resources(exchange, saga)
                    updated = self._machine.advance(exchange, target, now=now, completed_at=now)
                    await self._persist(
                        exchange,
                        updated,
                        message="Items picked up",
                        code=code,
                        revoke_codes=True,
                    )
        await self._publish(updated)
        return updated

    async def cancel_exchange(self, exchange_id: ExchangeId) -> Exchange:
        """Cancel a non-terminal exchange, releasing its items and box."""

        async with self._locks.hold(exchange_id):
            exchange = await self._fetch(exchange_id)
            now = self._clock()
            if self._machine.is_overdue(exchange, now):
                await self._expire(exchange, now)
                raise InvalidCancellationError(f"Exchange {exchange_id} has already expired")
            self._machine.require_transition(exchange.status, ExchangeStatus.CANCELLED)
            async with Saga(f"cancel exchange {exchange.id}") as saga:
                await self._release_resources(exchange, saga)
                updated = self._machine.advance(exchange, ExchangeStatus.CANCELLED, now=now)
                await self._persist(
                    exchange, updated, message="Exchange cancelled", revoke_codes=True
                )
        await self._publish(updated)
        return updated

    async def get_status(self, exchange_id: ExchangeId) -> ExchangeStatusView:
        """Project the current status without writing anything."""

        now = self._clock()
        async with self._uow_factory() as uow:
            exchange = await self._load(uow, exchange_id)
            code = await self._codes.current(uow, exchange_id, now=now)
        status = self._machine.effective_status(exchange, now)
        if status is not exchange.status:
            code = None
        return ExchangeStatusView(
            exchange_id=exchange.id,
            status=status,
            box_id=exchange.box_id,
            pickup_deadline=exchange.pickup_deadline,
            code_role=code.role if code else None,
            code_expires_at=code.expires_at if code else None,
            created_at=exchange.created_at,
            updated_at=exchange.updated_at,
        )

    async def expire_overdue(self, *, limit: int = 100) -> tuple[Exchange, ...]:
        """Expire exchanges whose pickup deadline has passed."""

        async with self._uow_factory() as uow:
            candidates = await uow.exchange_repository.list_overdue(self._clock(), limit=limit)
        expired: list[Exchange] = []
        for candidate in candidates:
            async with self._locks.hold(candidate.id):
                exchange = await self._fetch(candidate.id)
                now = self._clock()
                if not self._machine.is_overdue(exchange, now):
                    continue
                try:
                    expired.append(await self._expire(exchange, now))
                except (StateConflictError, DependencyUnavailableError) as exc:
                    logger.warning("Could not expire exchange %s: %s", exchange.id, exc)
        if expired:
            logger.info("Expired %d overdue exchange(s)", len(expired))
        return tuple(expired)

    async def archive_exchange(self, exchange_id: ExchangeId) -> Exchange:
        """Soft-delete a terminal exchange whose items are no longer tagged."""

        async with self._locks.hold(exchange_id):
            exchange = await self._fetch(exchange_id)
            if not self._machine.is_terminal(exchange.status):
                raise StateConflictError(
                    f"Exchange {exchange_id} is {exchange.status}; only finished exchanges "
                    "can be archived"
                )
            if exchange.archived_at is not None:
                return exchange
            still_tagged = await self._ledger.list_item_ids(exchange.id)
            if still_tagged:
                raise StateConflictError(
                    f"Exchange {exchange_id} still has tagged items {still_tagged}"
                )
            now = self._clock()
            updated = exchange.model_copy(update={"archived_at": now, "updated_at": now})
            await self._persist(exchange, updated, message="Exchange archived")
        return updated

    # ------------------------------------------------------------------
    # Queries

    async def get_exchange(self, exchange_id: ExchangeId) -> Exchange:
        return await self._fetch(exchange_id)

    async def list_exchanges(self, *, include_archived: bool = False) -> tuple[Exchange, ...]:
        async with self._uow_factory() as uow:
            exchanges = await uow.exchange_repository.list_all(include_archived=include_archived)
        return tuple(exchanges)

    async def list_user_exchanges(
        self,
        user_id: UserId,
        *,
        include_archived: bool = False,
    ) -> tuple[Exchange, ...]:
        async with self._uow_factory() as uow:
            exchanges = await uow.exchange_repository.list_for_user(
                user_id, include_archived=include_archived
            )
        return tuple(exchanges)

    async def list_exchange_item_ids(self, exchange_id: ExchangeId) -> list[ItemId]:
        await self._fetch(exchange_id)
        return await self._ledger.list_item_ids(exchange_id)

    async def list_exchange_items(self, exchange_id: ExchangeId) -> list[LedgerItem]:
        await self._fetch(exchange_id)
        return await self._ledger.list_items(exchange_id)

    async def get_required_capacity(self, exchange_id: ExchangeId) -> CapacityClass:
        exchange = await self._fetch(exchange_id)
        dimensions = await self._ledger.get_item_dimensions(exchange.item_ids)
        return required_capacity(dimensions, self._capacity_limits)

    async def list_transitions(self, exchange_id: ExchangeId) -> tuple[ExchangeLogEntry, ...]:
        async with self._uow_factory() as uow:
            await self._load(uow, exchange_id)
            entries = await uow.log_repository.list_for_exchange(exchange_id)
        return tuple(entries)

    # ------------------------------------------------------------------
    # Internals

    async def _load(self, uow: UnitOfWork, exchange_id: ExchangeId) -> Exchange:
        exchange = await uow.exchange_repository.get(exchange_id)
        if exchange is None:
            raise NotFoundError(f"Exchange {exchange_id} not found")
        return exchange

    async def _fetch(self, exchange_id: ExchangeId) -> Exchange:
        async with self._uow_factory() as uow:
            return await self._load(uow, exchange_id)

    async def _fetch_active(self, exchange_id: ExchangeId, now: datetime) -> Exchange:
        """Fetch an exchange, expiring it first if its pickup deadline passed by ``now``.

        Callers pass the same ``now`` on to the transition they commit.
        """

        exchange = await self._fetch(exchange_id)
        if self._machine.is_overdue(exchange, now):
            await self._expire(exchange, now)
            raise ExchangeExpiredError(f"Exchange {exchange_id} passed its pickup deadline")
        return exchange

    async def _commit_items(self, exchange: Exchange) -> Exchange:
        self._machine.require_transition(exchange.status, ExchangeStatus.ITEMS_COMMITTED)
        # Re-tagging with the same exchange id is a no-op unless an item moved elsewhere.
        await self._ledger.tag_items(exchange.item_ids, exchange.id)
        updated = self._machine.advance(
            exchange, ExchangeStatus.ITEMS_COMMITTED, now=self._clock()
        )
        return await self._persist(exchange, updated, message="Items committed")

    async def _expire(self, exchange: Exchange, now: datetime) -> Exchange:
        async with Saga(f"expire exchange {exchange.id}") as saga:
            await self._release_resources(exchange, saga)
            updated = self._machine.advance(exchange, ExchangeStatus.EXPIRED, now=now)
            await self._persist(
                exchange,
                updated,
                message="Pickup deadline passed",
                revoke_codes=True,
            )
        await self._publish(updated)
        return updated

    async def _release_resources(self, exchange: Exchange, saga: Saga) -> None:
        item_ids = exchange.item_ids
        await self._ledger.clear_tags(item_ids)
        saga.on_failure(
            "restore item tags", lambda: self._ledger.tag_items(item_ids, exchange.id)
        )
        box_id = exchange.box_id
        if box_id is not None and self._machine.holds_box(exchange.status):
            await self._boxes.release(box_id)
            saga.on_failure("re-hold box", lambda: self._boxes.hold(box_id, exchange.id))

    async def _persist(
        self,
        previous: Exchange,
        updated: Exchange,
        *,
        message: str,
        attributes: Mapping[str, str] | None = None,
        code: str | None = None,
        revoke_codes: bool = False,
    ) -> Exchange:
        """Write the new exchange state, code consumption and log entry as one unit."""

        now = updated.updated_at
        async with self._uow_factory() as uow:
            if code is not None:
                await self._codes.consume(uow, updated.id, code, now=now)
            try:
                await uow.exchange_repository.update(updated, expected_status=previous.status)
            except ConcurrencyError as exc:
                raise StateConflictError(
                    f"Exchange {updated.id} changed concurrently; retry with fresh state"
                ) from exc
            if revoke_codes:
                await uow.code_repository.revoke_open(updated.id, now)
            await uow.log_repository.add(
                ExchangeLogEntry(
                    exchange_id=updated.id,
                    previous_status=previous.status,
                    next_status=updated.status,
                    message=message,
                    created_at=now,
                    attributes=dict(attributes or {}),
                )
            )
            await uow.commit()
        logger.info(
            "Exchange %s: %s -> %s (%s)",
            updated.id,
            previous.status,
            updated.status,
            message,
        )
        return updated

    async def _publish(self, exchange: Exchange) -> None:
        """Best-effort notification and cache invalidation after a committed change."""

        text = _status_message(exchange)
        for user_id in exchange.participant_ids():
            try:
                await self._notifications.send(user_id, text)
            except Exception:
                logger.warning(
                    "Notification to user %s about exchange %s failed",
                    user_id,
                    exchange.id,
                    exc_info=True,
                )
        if self._cache is None:
            return
        try:
            await self._cache.invalidate(exchange_cache_keys(exchange))
        except Exception:
            logger.warning(
                "Cache invalidation for exchange %s failed", exchange.id, exc_info=True
            )


__all__ = ["ExchangeCoordinator", "UnitOfWorkFactory"]
