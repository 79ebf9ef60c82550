"""Typer CLI wiring SwapBox services."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer

from swapbox.config import AppSettings
from swapbox.domain import BoxRole, Exchange, ExchangeId, ItemId, UserId
from swapbox.errors import ExchangeError
from swapbox.lifecycle import ExchangeCoordinator

from .deps import get_container

T = TypeVar("T")

app = typer.Typer(help="SwapBox exchange lifecycle command-line interface")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level")) -> None:
    """Configure logging for every command."""

    level = "DEBUG" if verbose else AppSettings.from_env().log_level
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _parse_item_ids(value: str) -> tuple[ItemId, ...]:
    try:
        return tuple(ItemId(int(part)) for part in value.split(",") if part.strip())
    except ValueError as exc:
        raise typer.BadParameter("items must be a comma separated list of integers") from exc


def _run(action: Callable[[ExchangeCoordinator], Awaitable[T]]) -> T:
    try:
        coordinator = get_container().coordinator
        return asyncio.run(action(coordinator))
    except ExchangeError as exc:
        typer.echo(f"{type(exc).__name__}: {exc}")
        raise typer.Exit(code=1) from exc
    except ValueError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1) from exc


def _echo_exchange(exchange: Exchange) -> None:
    box = exchange.box_id or "-"
    typer.echo(f"Exchange {exchange.id}\t{exchange.status.value}\tbox {box}")


@app.command("show-settings")
def show_settings() -> None:
    """Print the resolved application settings."""

    settings = AppSettings.from_env()
    typer.echo("Environment:\t" + settings.environment)
    typer.echo("Database URL:\t" + settings.database_url)
    typer.echo(f"Code TTL:\t{settings.code_ttl_seconds}s")
    typer.echo(f"Pickup window:\t{settings.pickup_window_hours}h")
    typer.echo("Item ledger:\t" + (settings.ledger_url or "in-memory"))
    typer.echo("Box registry:\t" + (settings.box_registry_url or "in-memory"))


@app.command("propose")
def propose(
    initiator: int,
    counterpart: int,
    items: str = typer.Option(..., help="Comma separated item ids"),
) -> None:
    """Propose an exchange of items from INITIATOR to COUNTERPART."""

    item_ids = _parse_item_ids(items)
    exchange = _run(
        lambda c: c.propose_exchange(UserId(initiator), UserId(counterpart), item_ids)
    )
    _echo_exchange(exchange)


@app.command("commit-items")
def commit_items(exchange_id: int) -> None:
    """Confirm the items of a proposed exchange."""

    _echo_exchange(_run(lambda c: c.commit_items(ExchangeId(exchange_id))))


@app.command("assign-box")
def assign_box(exchange_id: int) -> None:
    """Reserve a box that fits the exchange's items."""

    _echo_exchange(_run(lambda c: c.assign_box(ExchangeId(exchange_id))))


@app.command("request-open")
def request_open(
    exchange_id: int,
    role: BoxRole = typer.Option(..., case_sensitive=False),
    user: int | None = typer.Option(None, help="User asking for the code"),
) -> None:
    """Issue a one-time box code for the creator or the pickup person."""

    requested_by = UserId(user) if user is not None else None
    issued = _run(
        lambda c: c.request_box_open(ExchangeId(exchange_id), role, requested_by=requested_by)
    )
    typer.echo(f"Code: {issued.code}")
    typer.echo(f"Role: {issued.role.value}")
    typer.echo(f"Expires: {issued.expires_at.isoformat()}")


@app.command("consume-open")
def consume_open(exchange_id: int, code: str) -> None:
    """Open the box with a previously issued code."""

    _echo_exchange(_run(lambda c: c.consume_box_open(ExchangeId(exchange_id), code)))


@app.command("cancel")
def cancel(exchange_id: int) -> None:
    """Cancel an exchange and release its items and box."""

    _echo_exchange(_run(lambda c: c.cancel_exchange(ExchangeId(exchange_id))))


@app.command("archive")
def archive(exchange_id: int) -> None:
    """Archive a finished exchange."""

    _echo_exchange(_run(lambda c: c.archive_exchange(ExchangeId(exchange_id))))


@app.command("status")
def status(exchange_id: int) -> None:
    """Show the current status of an exchange."""

    view = _run(lambda c: c.get_status(ExchangeId(exchange_id)))
    typer.echo(f"Status:\t{view.status.value}")
    typer.echo(f"Box:\t{view.box_id or '-'}")
    if view.pickup_deadline is not None:
        typer.echo(f"Deadline:\t{view.pickup_deadline.isoformat()}")
    if view.code_expires_at is not None and view.code_role is not None:
        typer.echo(f"Open code:\t{view.code_role.value} until {view.code_expires_at.isoformat()}")


@app.command("list-exchanges")
def list_exchanges(
    user: int | None = typer.Argument(None, help="Only exchanges this user takes part in"),
    include_archived: bool = typer.Option(False, "--include-archived"),
) -> None:
    """List exchanges, optionally for one user."""

    if user is None:
        exchanges = _run(lambda c: c.list_exchanges(include_archived=include_archived))
    else:
        exchanges = _run(
            lambda c: c.list_user_exchanges(UserId(user), include_archived=include_archived)
        )
    if not exchanges:
        typer.echo("No exchanges found")
        return
    for exchange in exchanges:
        _echo_exchange(exchange)


@app.command("sweep-expired")
def sweep_expired(limit: int = typer.Option(100, min=1)) -> None:
    """Expire exchanges whose pickup deadline passed."""

    expired = _run(lambda c: c.expire_overdue(limit=limit))
    typer.echo(f"Expired {len(expired)} exchange(s)")
