from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Optional
from urllib.parse import quote

import httpx

from app.config import OxapayConfig
from app.models.payments import GatewayOrder, ProviderTag
from app.utils.logging import get_logger
from app.utils.money import amount_to_json
from app.utils.text import clamp_text


logger = get_logger("oxapay")

SUCCESS_RESULT_CODES = {100, 200}
SUCCESS_KEYWORDS = ("success", "completed")
MOCK_PAY_URL = "https://pay.oxapay.com/sandbox"
DEFAULT_RETURN_URL = "https://example.com/success"


class OxapayError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class InvoiceOutcome:
    success: bool
    rule: str
    pay_url: str
    message: str


def extract_pay_link(data: dict[str, Any]) -> str:
    nested = data.get("data") if isinstance(data.get("data"), dict) else {}
    candidates = [
        data.get("payLink"),
        data.get("pay_link"),
        nested.get("payLink"),
        nested.get("pay_link"),
        nested.get("payment_url"),
    ]
    for candidate in candidates:
        value = str(candidate or "").strip()
        if value:
            return value
    return ""


def _has_success_code(data: dict[str, Any]) -> bool:
    for key in ("result", "status"):
        value = data.get(key)
        if isinstance(value, bool):
            continue
        try:
            if int(value) in SUCCESS_RESULT_CODES:
                return True
        except (TypeError, ValueError):
            continue
    return False


def _has_success_keyword(data: dict[str, Any]) -> bool:
    message = str(data.get("message") or "").lower()
    return any(word in message for word in SUCCESS_KEYWORDS)


def _has_pay_link(data: dict[str, Any]) -> bool:
    return bool(extract_pay_link(data))


# Evaluated in order; the first matching rule names the success signal.
# A pay link is required regardless of which rule matched.
INVOICE_SUCCESS_RULES: tuple[tuple[str, Callable[[dict[str, Any]], bool]], ...] = (
    ("result_code", _has_success_code),
    ("message_keyword", _has_success_keyword),
    ("pay_link", _has_pay_link),
)


def evaluate_invoice_response(data: dict[str, Any]) -> InvoiceOutcome:
    pay_url = extract_pay_link(data)
    message = str(data.get("message") or "").strip()
    if not pay_url:
        return InvoiceOutcome(success=False, rule="missing_pay_link", pay_url="", message=message)
    for name, check in INVOICE_SUCCESS_RULES:
        if check(data):
            return InvoiceOutcome(success=True, rule=name, pay_url=pay_url, message=message)
    return InvoiceOutcome(success=False, rule="no_rule_matched", pay_url=pay_url, message=message)


class OxapayClient:
    def __init__(self, config: OxapayConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "merchant_api_key": self.config.merchant_api_key,
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.config.timeout, transport=self.transport)

    def build_invoice_payload(
        self,
        *,
        amount: Decimal,
        order_id: str,
        email: Optional[str],
        description: Optional[str],
        return_url: Optional[str],
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "amount": amount_to_json(amount),
            "currency": self.config.currency,
            "lifetime": int(self.config.lifetime_minutes),
            "fee_paid_by_payer": int(self.config.fee_paid_by_payer),
            "under_paid_coverage": float(self.config.under_paid_coverage),
            "to_currency": self.config.to_currency,
            "auto_withdrawal": False,
            "mixed_payment": True,
            "return_url": return_url or DEFAULT_RETURN_URL,
            "order_id": order_id,
            "thanks_message": self.config.thanks_message,
            "description": clamp_text(description or f"Order #{order_id}", 255),
            "sandbox": bool(self.config.sandbox),
        }
        if email:
            payload["email"] = email
        return payload

    async def create_invoice(
        self,
        *,
        amount: Decimal | None,
        order_id: str,
        email: Optional[str] = None,
        description: Optional[str] = None,
        return_url: Optional[str] = None,
    ) -> GatewayOrder:
        if amount is None or not order_id:
            raise OxapayError("Missing required fields for Oxapay.", 400)

        if not self.config.enabled:
            logger.warning("oxapay_mock_mode", order_id=order_id)
            return GatewayOrder(
                order_id=order_id,
                amount_value=amount,
                redirect_url=f"{MOCK_PAY_URL}/{uuid.uuid4().hex[:12]}",
                provider_tag=ProviderTag.CRYPTO,
                mock=True,
            )

        payload = self.build_invoice_payload(
            amount=amount,
            order_id=order_id,
            email=email,
            description=description,
            return_url=return_url,
        )
        async with self._client() as client:
            resp = await client.post(f"{self.base_url}/payment/invoice", headers=self._headers(), json=payload)

        data = resp.json()
        if not isinstance(data, dict):
            raise OxapayError("Oxapay returned an unexpected response shape", 500)

        outcome = evaluate_invoice_response(data)
        if not outcome.success:
            logger.error("oxapay_invoice_rejected", rule=outcome.rule, status=resp.status_code, response=data)
            raise OxapayError(outcome.message or "Failed to create crypto invoice", 400)

        logger.info("oxapay_invoice_created", order_id=order_id, rule=outcome.rule)
        nested = data.get("data") if isinstance(data.get("data"), dict) else {}
        track_id = str(nested.get("track_id") or data.get("trackId") or order_id)
        return GatewayOrder(
            order_id=track_id,
            amount_value=amount,
            redirect_url=outcome.pay_url,
            provider_tag=ProviderTag.CRYPTO,
        )

    async def payment_info(self, track_id: str) -> dict[str, Any]:
        async with self._client() as client:
            resp = await client.get(f"{self.base_url}/payment/{quote(track_id, safe='')}", headers=self._headers())
        if resp.status_code >= 400:
            raise OxapayError("Failed to verify payment with Oxapay", 400)
        data = resp.json()
        if not isinstance(data, dict):
            raise OxapayError("Oxapay returned an unexpected payment payload", 400)
        return data
