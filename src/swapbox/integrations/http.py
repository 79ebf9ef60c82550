"""httpx-backed clients for the item, box and notification services."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any

import httpx

from swapbox.domain import (
    BoxId,
    CapacityClass,
    ExchangeId,
    ItemDimensions,
    ItemId,
    LedgerItem,
    UserId,
)
from swapbox.errors import (
    DependencyUnavailableError,
    ExchangeError,
    ItemConflictError,
    NoCapacityError,
    NotFoundError,
)

from .interfaces import BoxRegistry, ItemLedger, NotificationSink


class _ServiceClient:
    """Shared request plumbing; maps HTTP failures onto the exchange error taxonomy."""

    service_name = "service"
    conflict_error: type[ExchangeError] = ExchangeError

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client
        self._timeout = timeout

    async def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        async with self._client_scope() as client:
            try:
                response = await client.request(method, f"{self._base_url}{path}", json=payload)
            except httpx.HTTPError as exc:
                msg = f"{self.service_name} request failed"
                raise DependencyUnavailableError(msg) from exc
        status = response.status_code
        if status == httpx.codes.NOT_FOUND:
            raise NotFoundError(self._detail(response))
        if status == httpx.codes.CONFLICT:
            raise self.conflict_error(self._detail(response))
        if status >= 500:
            msg = f"{self.service_name} request failed with status {status}"
            raise DependencyUnavailableError(msg)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            msg = f"{self.service_name} rejected request with status {status}"
            raise ExchangeError(msg) from exc
        if status == httpx.codes.NO_CONTENT or not response.content:
            return None
        return response.json()

    @staticmethod
    def _detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text
        if isinstance(body, dict) and "detail" in body:
            return str(body["detail"])
        return str(body)

    @asynccontextmanager
    async def _client_scope(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            yield client


class HttpItemLedger(_ServiceClient, ItemLedger):
    service_name = "Item ledger"
    conflict_error = ItemConflictError

    async def tag_items(self, item_ids: Sequence[ItemId], exchange_id: ExchangeId) -> None:
        await self._request(
            "POST",
            "/items/tags",
            {"item_ids": list(item_ids), "exchange_id": exchange_id},
        )

    async def clear_tags(self, item_ids: Sequence[ItemId]) -> None:
        await self._request("POST", "/items/tags/clear", {"item_ids": list(item_ids)})

    async def get_item_dimensions(self, item_ids: Sequence[ItemId]) -> list[ItemDimensions]:
        payload = await self._request(
            "POST", "/items/dimensions", {"item_ids": list(item_ids)}
        )
        return [ItemDimensions.model_validate(entry) for entry in payload or []]

    async def list_item_ids(self, exchange_id: ExchangeId) -> list[ItemId]:
        payload = await self._request("GET", f"/exchanges/{exchange_id}/item-ids")
        return [ItemId(int(value)) for value in payload or []]

    async def list_items(self, exchange_id: ExchangeId) -> list[LedgerItem]:
        payload = await self._request("GET", f"/exchanges/{exchange_id}/items")
        return [LedgerItem.model_validate(entry) for entry in payload or []]


class HttpBoxRegistry(_ServiceClient, BoxRegistry):
    service_name = "Box registry"
    conflict_error = NoCapacityError

    async def reserve(self, capacity_class: CapacityClass, exchange_id: ExchangeId) -> BoxId:
        payload = await self._request(
            "POST",
            "/boxes/reserve",
            {"capacity_class": capacity_class.value, "exchange_id": exchange_id},
        )
        if not isinstance(payload, dict) or not payload.get("box_id"):
            msg = "Box registry returned no box id"
            raise DependencyUnavailableError(msg)
        return BoxId(str(payload["box_id"]))

    async def release(self, box_id: BoxId) -> None:
        await self._request("POST", f"/boxes/{box_id}/release")

    async def hold(self, box_id: BoxId, exchange_id: ExchangeId) -> None:
        await self._request("POST", f"/boxes/{box_id}/hold", {"exchange_id": exchange_id})


class HttpNotificationSink(_ServiceClient, NotificationSink):
    service_name = "Notification service"

    async def send(self, user_id: UserId, text: str) -> None:
        await self._request("POST", "/notifications", {"user_id": user_id, "text": text})


__all__ = ["HttpBoxRegistry", "HttpItemLedger", "HttpNotificationSink"]
