from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from app.utils.money import amount_to_json


class ProviderTag(str, Enum):
    CARD_UPI = 'CASHFREE'
    CRYPTO = 'OXAPAY'


PROVIDER_ALIASES: Dict[str, ProviderTag] = {
    'cashfree': ProviderTag.CARD_UPI,
    'upi': ProviderTag.CARD_UPI,
    'card_upi': ProviderTag.CARD_UPI,
    'cardupi': ProviderTag.CARD_UPI,
    'oxapay': ProviderTag.CRYPTO,
    'oxpay': ProviderTag.CRYPTO,
    'crypto': ProviderTag.CRYPTO,
}


def parse_provider_tag(value: Any, default: ProviderTag | None = ProviderTag.CARD_UPI) -> ProviderTag | None:
    raw = str(value or '').strip().lower()
    if not raw:
        return default
    return PROVIDER_ALIASES.get(raw)


class PaymentStatus(str, Enum):
    PAID = 'PAID'
    PENDING = 'PENDING'
    FAILED = 'FAILED'
    UNKNOWN = 'UNKNOWN'


@dataclass
class PurchaseIntent:
    user_id: str
    credit_amount: int
    price_value: Decimal
    currency: str
    return_url: str
    contact_phone: Optional[str] = None


@dataclass
class GatewayOrder:
    order_id: str
    amount_value: Decimal
    redirect_url: str
    provider_tag: ProviderTag
    session_id: Optional[str] = None
    mock: bool = False


@dataclass
class VerificationResult:
    success: bool
    status: PaymentStatus
    settled_amount: Optional[Decimal] = None
    provider_status: str = ''

    def to_json(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            'success': self.success,
            'status': self.status.value,
            'providerStatus': self.provider_status,
        }
        if self.settled_amount is not None:
            body['amount'] = amount_to_json(self.settled_amount)
        return body
