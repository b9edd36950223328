from __future__ import annotations

import time
from enum import Enum
from typing import Callable, List, Optional

import httpx

from app.client.adapter_api import AdapterApi
from app.client.backend_api import BackendApi, notice_from
from app.client.navigator import Navigator
from app.client.plans import CREDIT_PLANS, CreditPlan, SelectedPlan, plan_from_json, price_for
from app.client.session import UserSession
from app.models.payments import ProviderTag, PurchaseIntent
from app.utils.logging import get_logger
from app.utils.money import as_amount
from app.utils.text import digits_only


logger = get_logger("purchase_flow")

PHONE_LENGTH = 10


class PurchaseState(str, Enum):
    PLAN_SELECTION = "plan_selection"
    METHOD_CHOICE = "method_choice"
    PHONE_CAPTURE = "phone_capture"
    REDIRECTING = "redirecting"
    REDIRECTED = "redirected"


class PurchaseFlow:
    """Credits page: pick a plan, pick a gateway, leave for the hosted page.

    Once ``REDIRECTED`` the app has handed the browser to the provider and
    the flow accepts no further input.
    """

    def __init__(
        self,
        session: UserSession,
        adapter: AdapterApi,
        navigator: Navigator,
        origin: str,
        path: str = "/",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.session = session
        self.adapter = adapter
        self.navigator = navigator
        self.origin = origin.rstrip("/")
        self.path = path or "/"
        self.clock = clock
        self.state = PurchaseState.PLAN_SELECTION
        self.plans: List[CreditPlan] = list(CREDIT_PLANS)
        self.selected: Optional[SelectedPlan] = None
        self.phone = ""
        self.error: Optional[str] = None
        self.intent: Optional[PurchaseIntent] = None
        self.global_notice = ""
        self.credits_notice = ""
        self.notice_error: Optional[str] = None

    @property
    def return_url(self) -> str:
        return f"{self.origin}{self.path}#/profile"

    def new_order_id(self, credits: int) -> str:
        return f"{self.session.user_id}-{credits}-{int(self.clock() * 1000)}"

    async def load_page(self, backend: BackendApi) -> List[CreditPlan]:
        """Load both backend notices, then the plan catalogue.

        If the backend is unreachable the page still works with the built-in
        plans and a single ``notice_error``.
        """
        self.notice_error = None
        try:
            self.global_notice = notice_from(await backend.get_global_notice())
            self.credits_notice = notice_from(await backend.get_credits_page_notice())
        except httpx.HTTPError as exc:
            logger.warning("credits_page_load_failed", error=str(exc))
            self.notice_error = "Failed to load page data."
            self.plans = list(CREDIT_PLANS)
            return self.plans
        return await self.load_plans(backend)

    async def load_plans(self, backend: BackendApi) -> List[CreditPlan]:
        try:
            response = await backend.get_credit_plans()
        except httpx.HTTPError as exc:
            logger.warning("credit_plans_fetch_failed", error=str(exc))
            response = None
        rows = response.data.get("data") if response and response.success else None
        plans = [plan for plan in (plan_from_json(row) for row in rows or [] if isinstance(row, dict)) if plan]
        self.plans = plans or list(CREDIT_PLANS)
        return self.plans

    def _require(self, *states: PurchaseState) -> None:
        if self.state not in states:
            raise RuntimeError(f"purchase flow is in state {self.state.value}")

    def select_plan(self, plan: CreditPlan) -> SelectedPlan:
        self._require(PurchaseState.PLAN_SELECTION, PurchaseState.METHOD_CHOICE, PurchaseState.PHONE_CAPTURE)
        self.selected = price_for(plan, self.session)
        self.error = None
        self.state = PurchaseState.METHOD_CHOICE
        return self.selected

    def choose_upi(self) -> None:
        self._require(PurchaseState.METHOD_CHOICE)
        self.state = PurchaseState.PHONE_CAPTURE

    def cancel_phone(self) -> None:
        self._require(PurchaseState.PHONE_CAPTURE)
        self.state = PurchaseState.METHOD_CHOICE

    def enter_phone(self, raw: str) -> str:
        self.phone = digits_only(raw, PHONE_LENGTH)
        return self.phone

    def _fail(self, message: str, back_to: PurchaseState) -> bool:
        self.error = message
        self.state = back_to
        return False

    async def submit_upi(self) -> bool:
        self._require(PurchaseState.PHONE_CAPTURE)
        selected = self.selected
        if selected is None:
            return False
        if len(self.phone) < PHONE_LENGTH:
            self.error = "Please enter a valid 10-digit phone number."
            return False

        self.error = None
        self.state = PurchaseState.REDIRECTING
        if not self.session.token:
            return self._fail("Session expired. Please re-login.", PurchaseState.PHONE_CAPTURE)

        order_id = self.new_order_id(selected.credits)
        self.intent = PurchaseIntent(
            user_id=self.session.user_id,
            credit_amount=selected.credits,
            price_value=selected.price,
            currency=selected.currency,
            contact_phone=self.phone,
            return_url=self.return_url,
        )
        try:
            response = await self.adapter.create_upi_payment(
                order_id=order_id,
                amount=selected.price,
                currency=selected.currency,
                customer_phone=self.phone,
                customer_name=self.session.name,
                customer_email=self.session.email or None,
                return_url=self.return_url,
            )
        except httpx.HTTPError as exc:
            logger.warning("upi_intent_failed", error=str(exc))
            return self._fail("Server timed out. Please try again.", PurchaseState.PHONE_CAPTURE)

        if not response.success:
            return self._fail(response.message or "Payment gateway connection failed.", PurchaseState.PHONE_CAPTURE)

        payment_link = str(response.data.get("paymentLink") or "").strip()
        session_id = str(response.data.get("paymentSessionId") or "").strip()
        if payment_link:
            self.state = PurchaseState.REDIRECTED
            logger.info("redirecting_to_gateway", provider=ProviderTag.CARD_UPI.value, order_id=order_id)
            self.navigator.assign(payment_link)
            return True
        if session_id:
            self.state = PurchaseState.REDIRECTED
            logger.info("redirecting_to_checkout", provider=ProviderTag.CARD_UPI.value, order_id=order_id)
            self.navigator.open_checkout(session_id, self.return_url)
            return True
        return self._fail(
            "Payment initialized but no link received. Please try again.",
            PurchaseState.PHONE_CAPTURE,
        )

    async def pay_with_crypto(self) -> bool:
        self._require(PurchaseState.METHOD_CHOICE)
        selected = self.selected
        if selected is None:
            return False

        self.error = None
        self.state = PurchaseState.REDIRECTING
        if not self.session.token:
            return self._fail("Session expired.", PurchaseState.METHOD_CHOICE)

        order_id = self.new_order_id(selected.credits)
        # The crypto gateway always settles in USD.
        usd_price = as_amount(selected.plan.usd_price)
        self.intent = PurchaseIntent(
            user_id=self.session.user_id,
            credit_amount=selected.credits,
            price_value=usd_price,
            currency="USD",
            return_url=self.return_url,
        )
        try:
            response = await self.adapter.create_crypto_payment(
                order_id=order_id,
                amount=usd_price,
                return_url=self.return_url,
                email=self.session.email or None,
                description=f"{selected.credits} Credits",
            )
        except httpx.HTTPError as exc:
            logger.warning("crypto_intent_failed", error=str(exc))
            return self._fail("Unexpected error during crypto payment setup.", PurchaseState.METHOD_CHOICE)

        payment_url = str(response.data.get("paymentUrl") or "").strip()
        if not response.success or not payment_url:
            return self._fail(response.message or "Crypto gateway unavailable.", PurchaseState.METHOD_CHOICE)

        self.state = PurchaseState.REDIRECTED
        logger.info("redirecting_to_gateway", provider=ProviderTag.CRYPTO.value, order_id=order_id)
        self.navigator.assign(payment_url)
        return True
