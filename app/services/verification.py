from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict

from app.models.payments import PaymentStatus, ProviderTag, VerificationResult
from app.services.cashfree import CashfreeClient, CashfreeError
from app.services.oxapay import OxapayClient, OxapayError
from app.utils.logging import get_logger
from app.utils.money import parse_amount


logger = get_logger("verification")

MOCK_SETTLED_AMOUNT = Decimal("100")

CASHFREE_STATUS_MAP: Dict[str, PaymentStatus] = {
    "PAID": PaymentStatus.PAID,
    "ACTIVE": PaymentStatus.PENDING,
    "EXPIRED": PaymentStatus.FAILED,
    "TERMINATED": PaymentStatus.FAILED,
    "TERMINATION_REQUESTED": PaymentStatus.FAILED,
}

OXAPAY_STATUS_MAP: Dict[str, PaymentStatus] = {
    "paid": PaymentStatus.PAID,
    "waiting": PaymentStatus.PENDING,
    "confirming": PaymentStatus.PENDING,
    "paying": PaymentStatus.PENDING,
    "new": PaymentStatus.PENDING,
    "expired": PaymentStatus.FAILED,
    "failed": PaymentStatus.FAILED,
    "refunded": PaymentStatus.FAILED,
    "canceled": PaymentStatus.FAILED,
    "cancelled": PaymentStatus.FAILED,
}


class VerificationError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _result(status: PaymentStatus, provider_status: str, amount: Any = None) -> VerificationResult:
    settled = parse_amount(amount) if status == PaymentStatus.PAID else None
    return VerificationResult(
        success=status == PaymentStatus.PAID,
        status=status,
        settled_amount=settled,
        provider_status=provider_status,
    )


def map_cashfree_order(data: Dict[str, Any]) -> VerificationResult:
    raw = str(data.get("order_status") or "").strip()
    status = CASHFREE_STATUS_MAP.get(raw.upper(), PaymentStatus.UNKNOWN)
    return _result(status, raw, data.get("order_amount"))


def map_oxapay_payment(data: Dict[str, Any]) -> VerificationResult:
    nested = data.get("data") if isinstance(data.get("data"), dict) else {}
    raw = nested.get("status")
    if not isinstance(raw, str):
        # Older inquiry responses carry the text status at the top level.
        raw = data.get("status") if isinstance(data.get("status"), str) else ""
    raw = raw.strip()
    status = OXAPAY_STATUS_MAP.get(raw.lower(), PaymentStatus.UNKNOWN)
    amount = nested.get("amount") if nested else data.get("amount")
    return _result(status, raw, amount)


class PaymentVerificationService:
    """Asks the owning provider for an order's live status.

    Nothing is credited here. The caller hands a Paid result to the backend
    that owns the ledger.
    """

    def __init__(self, cashfree: CashfreeClient, oxapay: OxapayClient) -> None:
        self.cashfree = cashfree
        self.oxapay = oxapay

    async def verify(self, order_id: str, provider: ProviderTag) -> VerificationResult:
        order_id = (order_id or "").strip()
        if not order_id:
            raise VerificationError("Order ID required", 400)

        if provider == ProviderTag.CARD_UPI:
            result = await self._verify_cashfree(order_id)
        else:
            result = await self._verify_oxapay(order_id)
        logger.info(
            "payment_verified",
            order_id=order_id,
            provider=provider.value,
            status=result.status.value,
            provider_status=result.provider_status,
        )
        return result

    async def _verify_cashfree(self, order_id: str) -> VerificationResult:
        if not self.cashfree.config.enabled:
            logger.warning("cashfree_mock_verification", order_id=order_id)
            return _result(PaymentStatus.PAID, "PAID", MOCK_SETTLED_AMOUNT)
        try:
            data = await self.cashfree.get_order(order_id)
        except CashfreeError as exc:
            raise VerificationError(str(exc), exc.status_code or 400) from exc
        return map_cashfree_order(data)

    async def _verify_oxapay(self, track_id: str) -> VerificationResult:
        if not self.oxapay.config.enabled:
            logger.warning("oxapay_mock_verification", track_id=track_id)
            return _result(PaymentStatus.PENDING, "mock")
        try:
            data = await self.oxapay.payment_info(track_id)
        except OxapayError as exc:
            raise VerificationError(str(exc), exc.status_code or 400) from exc
        return map_oxapay_payment(data)
