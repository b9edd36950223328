from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Tuple
from urllib.parse import parse_qsl, urlsplit, urlunsplit

import httpx

from app.client.adapter_api import AdapterApi
from app.client.backend_api import BackendApi, new_credits_from
from app.client.navigator import Navigator
from app.client.session import UserSession
from app.models.payments import PaymentStatus, ProviderTag
from app.utils.logging import get_logger
from app.utils.money import parse_amount


logger = get_logger("return_flow")

CRYPTO_STATUS_PARAMS = ("status", "pay_status")
CRYPTO_PENDING_STATUSES = {"waiting", "confirming", "paying"}
PENDING_MESSAGE = "Payment is still processing in the blockchain. Please check your history in a few minutes."


@dataclass(frozen=True)
class ReturnRule:
    provider: ProviderTag
    id_params: Tuple[str, ...]
    forbidden_params: Tuple[str, ...] = ()

    def match(self, params: Dict[str, str]) -> Optional[str]:
        if any(name in params for name in self.forbidden_params):
            return None
        for name in self.id_params:
            value = (params.get(name) or "").strip()
            if value:
                return value
        return None


# First match wins. Card/UPI only when no crypto status parameter is present.
RETURN_RULES: Tuple[ReturnRule, ...] = (
    ReturnRule(ProviderTag.CARD_UPI, ("order_id",), CRYPTO_STATUS_PARAMS),
    ReturnRule(ProviderTag.CRYPTO, ("order_id", "trackId")),
)


@dataclass(frozen=True)
class ReturnMatch:
    provider: ProviderTag
    order_id: str
    status: str = ""


class ReturnState(str, Enum):
    IDLE = "idle"
    AWAITING_VERIFICATION = "awaiting_verification"
    VERIFIED = "verified"
    VERIFICATION_PENDING = "verification_pending"
    VERIFICATION_FAILED = "verification_failed"


@dataclass
class ReturnOutcome:
    state: ReturnState
    provider: Optional[ProviderTag] = None
    order_id: Optional[str] = None
    message: Optional[str] = None
    credits_added: int = 0


def extract_return_params(url: str) -> Dict[str, str]:
    """Query parameters from the URL, falling back to the hash route's query.

    Hash routers put provider parameters after the fragment
    (``#/profile?order_id=...``); the real search string wins on conflicts.
    """
    parts = urlsplit(url)
    params: Dict[str, str] = {}
    _, _, hash_query = parts.fragment.partition("?")
    for key, value in parse_qsl(hash_query, keep_blank_values=True):
        params.setdefault(key, value)
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        params[key] = value
    return params


def detect_return(params: Dict[str, str]) -> Optional[ReturnMatch]:
    status = (params.get("status") or params.get("pay_status") or "").strip()
    for rule in RETURN_RULES:
        order_id = rule.match(params)
        if order_id:
            return ReturnMatch(provider=rule.provider, order_id=order_id, status=status)
    return None


def strip_return_params(url: str) -> str:
    parts = urlsplit(url)
    fragment, _, _ = parts.fragment.partition("?")
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", fragment))


class ReturnFlow:
    def __init__(
        self,
        session: UserSession,
        adapter: AdapterApi,
        backend: BackendApi,
        navigator: Navigator,
    ) -> None:
        self.session = session
        self.adapter = adapter
        self.backend = backend
        self.navigator = navigator
        self.state = ReturnState.IDLE
        self.outcome: Optional[ReturnOutcome] = None

    def _finish(self, outcome: ReturnOutcome) -> ReturnOutcome:
        self.state = outcome.state
        self.outcome = outcome
        return outcome

    async def handle(self, url: str) -> Optional[ReturnOutcome]:
        if self.state == ReturnState.AWAITING_VERIFICATION:
            return None
        match = detect_return(extract_return_params(url))
        if match is None:
            return None

        self.state = ReturnState.AWAITING_VERIFICATION
        failed = ReturnOutcome(ReturnState.VERIFICATION_FAILED, match.provider, match.order_id)
        token = self.session.token
        if not token:
            failed.message = "Authentication token not found."
            return self._finish(failed)

        if match.provider == ProviderTag.CRYPTO and match.status.lower() in CRYPTO_PENDING_STATUSES:
            logger.info("crypto_payment_pending", order_id=match.order_id, status=match.status)
            return self._finish(
                ReturnOutcome(ReturnState.VERIFICATION_PENDING, match.provider, match.order_id, PENDING_MESSAGE)
            )

        try:
            return self._finish(await self._verify(url, match, token))
        except httpx.HTTPError as exc:
            logger.warning("payment_verification_unreachable", order_id=match.order_id, error=str(exc))
            failed.message = "Connection lost during payment verification."
            return self._finish(failed)

    async def _verify(self, url: str, match: ReturnMatch, token: str) -> ReturnOutcome:
        response = await self.adapter.verify_payment(match.order_id, match.provider)
        status_text = str(response.data.get("status") or "").upper()
        status = PaymentStatus.__members__.get(status_text, PaymentStatus.UNKNOWN)

        if status == PaymentStatus.PENDING:
            return ReturnOutcome(ReturnState.VERIFICATION_PENDING, match.provider, match.order_id, PENDING_MESSAGE)

        if not response.success or status != PaymentStatus.PAID:
            detail = response.message or "Payment not detected yet."
            return ReturnOutcome(
                ReturnState.VERIFICATION_FAILED,
                match.provider,
                match.order_id,
                f"Verification: {detail}",
            )

        settled: Optional[Decimal] = parse_amount(response.data.get("amount"))
        confirmation = await self.backend.confirm_purchase(
            token,
            order_id=match.order_id,
            provider=match.provider,
            amount=settled,
        )
        new_credits = new_credits_from(confirmation) if confirmation.success else None
        if new_credits is None:
            message = confirmation.message or "Payment verified but balance update failed."
            if "Already completed" in message:
                # The backend has already credited this order.
                message = None
            else:
                message = f"Verification: {message}"
            return ReturnOutcome(ReturnState.VERIFICATION_FAILED, match.provider, match.order_id, message)

        previous = self.session.credits
        self.session.set_balance(new_credits)
        self.navigator.replace_state(strip_return_params(url))
        added = new_credits - previous
        logger.info("payment_credited", order_id=match.order_id, provider=match.provider.value, credits=new_credits)
        return ReturnOutcome(
            ReturnState.VERIFIED,
            match.provider,
            match.order_id,
            f"Success! {added} Credits added to your balance.",
            credits_added=added,
        )
