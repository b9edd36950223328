from __future__ import annotations

import json
from decimal import Decimal
from typing import Any
from urllib.parse import quote

import httpx

from app.config import CashfreeConfig
from app.models.payments import GatewayOrder, ProviderTag
from app.utils.logging import get_logger
from app.utils.money import amount_to_json
from app.utils.text import sanitize_customer_name


logger = get_logger("cashfree")

MOCK_PAYMENT_LINK = "https://cashfree.com/"
MOCK_SESSION_ID = "mock-session-id"


class CashfreeError(Exception):
    def __init__(self, message: str, status_code: int | None = None, payload: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class CashfreeClient:
    def __init__(self, config: CashfreeConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-client-id": self.config.app_id,
            "x-client-secret": self.config.secret_key,
            "x-api-version": self.config.api_version,
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.config.timeout, transport=self.transport)

    @staticmethod
    def customer_id_for(order_id: str) -> str:
        return order_id.split("-")[0] or "guest"

    def build_order_payload(
        self,
        *,
        order_id: str,
        amount: Decimal,
        currency: str,
        customer_phone: str,
        customer_name: str,
        customer_email: str | None,
        return_url: str | None,
    ) -> dict[str, Any]:
        return {
            "order_id": order_id,
            "order_amount": amount_to_json(amount),
            "order_currency": currency.upper(),
            "customer_details": {
                "customer_id": self.customer_id_for(order_id),
                "customer_name": sanitize_customer_name(customer_name),
                "customer_email": customer_email or "",
                "customer_phone": customer_phone,
            },
            "order_meta": {
                "return_url": return_url,
            },
        }

    async def create_order(
        self,
        *,
        order_id: str,
        amount: Decimal | None,
        customer_phone: str,
        customer_name: str,
        customer_email: str | None = None,
        return_url: str | None = None,
        currency: str | None = None,
    ) -> GatewayOrder:
        if not order_id or amount is None or not customer_phone or not customer_name:
            raise CashfreeError("Missing required fields for Cashfree payment.", 400)

        if not self.config.enabled:
            logger.warning("cashfree_mock_mode", order_id=order_id)
            return GatewayOrder(
                order_id=order_id,
                amount_value=amount,
                redirect_url=MOCK_PAYMENT_LINK,
                provider_tag=ProviderTag.CARD_UPI,
                session_id=MOCK_SESSION_ID,
                mock=True,
            )

        payload = self.build_order_payload(
            order_id=order_id,
            amount=amount,
            currency=currency or self.config.currency,
            customer_phone=customer_phone,
            customer_name=customer_name,
            customer_email=customer_email,
            return_url=return_url,
        )
        async with self._client() as client:
            resp = await client.post(f"{self.base_url}/orders", headers=self._headers(), json=payload)

        try:
            data = resp.json()
        except ValueError:
            text = resp.text
            logger.error("cashfree_non_json_response", status=resp.status_code, body=text[:500])
            raise CashfreeError(f"Cashfree returned invalid JSON: {text[:100]}", 400, payload)

        if not isinstance(data, dict):
            data = {"response": data}
        payment_link = str(data.get("payment_link") or "").strip()
        session_id = str(data.get("payment_session_id") or "").strip()
        if not resp.is_success or (not payment_link and not session_id):
            logger.error("cashfree_order_rejected", status=resp.status_code, response=data)
            message = data.get("message") or json.dumps(data) or "Failed to initiate Cashfree payment"
            raise CashfreeError(str(message), 400, payload)

        return GatewayOrder(
            order_id=order_id,
            amount_value=amount,
            redirect_url=payment_link,
            provider_tag=ProviderTag.CARD_UPI,
            session_id=session_id or None,
        )

    async def get_order(self, order_id: str) -> dict[str, Any]:
        async with self._client() as client:
            resp = await client.get(f"{self.base_url}/orders/{quote(order_id, safe='')}", headers=self._headers())
        if resp.status_code >= 400:
            raise CashfreeError("Failed to verify payment with Cashfree", 400)
        try:
            data = resp.json()
        except ValueError:
            raise CashfreeError(f"Cashfree returned invalid JSON: {resp.text[:100]}", 400)
        if not isinstance(data, dict):
            raise CashfreeError("Cashfree returned an unexpected order payload", 400)
        return data
