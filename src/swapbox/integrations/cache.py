"""Cache keys held by read-side services for exchange data."""

from __future__ import annotations

from swapbox.domain import Exchange

ALL_EXCHANGES_KEY = "allExchanges"


def exchange_cache_keys(exchange: Exchange) -> tuple[str, ...]:
    """Return every cached view affected by a change to ``exchange``."""

    keys = [ALL_EXCHANGES_KEY]
    for user_id in exchange.participant_ids():
        keys.append(f"userExchanges:{user_id}")
        keys.append(f"fullExchange:{exchange.id}:{user_id}")
    return tuple(keys)


__all__ = ["ALL_EXCHANGES_KEY", "exchange_cache_keys"]
