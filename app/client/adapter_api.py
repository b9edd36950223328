from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from app.client.api import ApiResponse, JsonApi
from app.config import ClientConfig
from app.models.payments import ProviderTag
from app.utils.money import amount_to_json


class AdapterApi(JsonApi):
    """HTTP access to this project's own payment and generation endpoints."""

    @classmethod
    def from_config(cls, config: ClientConfig, transport: httpx.AsyncBaseTransport | None = None) -> AdapterApi:
        return cls(config.adapter_api_url, timeout=config.timeout, transport=transport)

    async def create_upi_payment(
        self,
        *,
        order_id: str,
        amount: Decimal,
        currency: str,
        customer_phone: str,
        customer_name: str,
        customer_email: Optional[str],
        return_url: str,
    ) -> ApiResponse:
        body: Dict[str, Any] = {
            "orderId": order_id,
            "amount": amount_to_json(amount),
            "currency": currency,
            "customerPhone": customer_phone,
            "customerName": customer_name,
            "customerEmail": customer_email,
            "returnUrl": return_url,
        }
        return await self._request("POST", "/payment/upi", json=body)

    async def create_crypto_payment(
        self,
        *,
        order_id: str,
        amount: Decimal,
        return_url: str,
        email: Optional[str] = None,
        description: Optional[str] = None,
    ) -> ApiResponse:
        body: Dict[str, Any] = {
            "orderId": order_id,
            "amount": amount_to_json(amount),
            "returnUrl": return_url,
            "email": email,
            "description": description,
        }
        return await self._request("POST", "/payment/crypto", json=body)

    async def verify_payment(self, order_id: str, provider: ProviderTag) -> ApiResponse:
        return await self._request("POST", "/payment/verify", json={"orderId": order_id, "provider": provider.value})

    async def generate_images(self, prompt: str, number_of_images: int) -> ApiResponse:
        return await self._request("POST", "/generate", json={"prompt": prompt, "numberOfImages": number_of_images})
