from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from app.client.api import ApiResponse, JsonApi
from app.config import ClientConfig
from app.models.payments import ProviderTag
from app.utils.money import amount_to_json


class BackendApi(JsonApi):
    """The external backend that owns credit plans and the balance ledger.

    Responses follow ``{"success": bool, "data": ..., "message": str}``.
    """

    @classmethod
    def from_config(cls, config: ClientConfig, transport: httpx.AsyncBaseTransport | None = None) -> BackendApi:
        return cls(config.backend_api_url, timeout=config.timeout, transport=transport)

    async def get_credit_plans(self) -> ApiResponse:
        return await self._request("GET", "/credit-plans")

    async def get_balance(self, token: str) -> ApiResponse:
        return await self._request("GET", "/users/me/credits", token=token)

    async def get_global_notice(self) -> ApiResponse:
        return await self._request("GET", "/notices/global")

    async def get_credits_page_notice(self) -> ApiResponse:
        return await self._request("GET", "/notices/credits-page")

    async def confirm_purchase(
        self,
        token: str,
        *,
        order_id: str,
        provider: ProviderTag,
        amount: Optional[Decimal] = None,
    ) -> ApiResponse:
        body: Dict[str, Any] = {"orderId": order_id, "provider": provider.value}
        if amount is not None:
            body["amount"] = amount_to_json(amount)
        return await self._request("POST", "/payments/confirm", token=token, json=body)


def new_credits_from(response: ApiResponse) -> Optional[int]:
    data = response.data.get("data") if isinstance(response.data.get("data"), dict) else response.data
    for key in ("newCredits", "credits", "balance"):
        value = data.get(key)
        if value is None or isinstance(value, bool):
            continue
        try:
            return int(value)
        except (TypeError, ValueError):
            continue
    return None


def notice_from(response: ApiResponse) -> str:
    """Notice text from a successful notice response, or ``''``."""
    if not response.success:
        return ""
    value = response.data.get("data")
    return value.strip() if isinstance(value, str) else ""
