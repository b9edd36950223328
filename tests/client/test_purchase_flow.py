import asyncio
from decimal import Decimal
from unittest.mock import Mock

import httpx
import pytest

from app.client.adapter_api import AdapterApi
from app.client.backend_api import BackendApi
from app.client.plans import CREDIT_PLANS, CreditPlan
from app.client.purchase_flow import PurchaseFlow, PurchaseState
from app.client.session import UserSession
from app.web.app import create_app


PLAN_100 = CreditPlan(id=1, credits=100, usd_price=Decimal("5.00"), inr_price=Decimal("399.00"))


def _session(**overrides):
    values = dict(user_id="42", name="Asha", email="asha@example.com", country="Canada", token="jwt", credits=10)
    values.update(overrides)
    return UserSession(**values)


def _flow(session, adapter, navigator=None):
    return PurchaseFlow(
        session,
        adapter,
        navigator or Mock(),
        origin="https://app.test",
        path="/",
        clock=lambda: 1700000000.0,
    )


def test_upi_end_to_end(app_config, recorder_factory):
    provider = recorder_factory(
        lambda request: httpx.Response(200, json={"payment_link": "https://payments.cashfree.test/l/1"})
    )
    app = create_app(app_config, transport=provider.transport)
    adapter = AdapterApi("http://adapter", transport=httpx.ASGITransport(app=app))
    navigator = Mock()
    flow = _flow(_session(), adapter, navigator)

    selected = flow.select_plan(PLAN_100)
    assert selected.price == Decimal("5.00")
    assert selected.currency == "USD"
    assert flow.state == PurchaseState.METHOD_CHOICE

    flow.choose_upi()
    flow.enter_phone("987654321")
    assert asyncio.run(flow.submit_upi()) is False
    assert flow.error == "Please enter a valid 10-digit phone number."
    assert flow.state == PurchaseState.PHONE_CAPTURE
    assert provider.calls == []

    flow.enter_phone("9876543210")
    assert asyncio.run(flow.submit_upi()) is True

    [call] = provider.calls
    body = provider.body(call)
    assert body["order_amount"] == 5.0
    assert body["order_id"] == "42-100-1700000000000"
    assert body["customer_details"]["customer_phone"] == "9876543210"
    assert body["order_meta"]["return_url"] == "https://app.test/#/profile"
    navigator.assign.assert_called_once_with("https://payments.cashfree.test/l/1")
    assert flow.state == PurchaseState.REDIRECTED
    assert flow.intent.price_value == Decimal("5.00")
    assert flow.intent.contact_phone == "9876543210"


def test_indian_user_pays_in_inr(recorder_factory):
    recorder = recorder_factory(lambda request: httpx.Response(200, json={"success": True, "paymentLink": "https://l"}))
    flow = _flow(_session(country="India"), AdapterApi("https://adapter.test", transport=recorder.transport))

    selected = flow.select_plan(PLAN_100)
    flow.choose_upi()
    flow.enter_phone("9876543210")
    asyncio.run(flow.submit_upi())

    assert selected.label() == "₹399.00"
    body = recorder.body(recorder.calls[0])
    assert body["amount"] == 399.0
    assert body["currency"] == "INR"


def test_phone_input_is_sanitized():
    flow = _flow(_session(), AdapterApi("https://adapter.test"))

    assert flow.enter_phone("+91 98765-43210 ext") == "9198765432"


def test_missing_token_blocks_upi_without_network(recorder_factory):
    recorder = recorder_factory(lambda request: httpx.Response(200, json={"paymentLink": "https://l"}))
    flow = _flow(_session(token=None), AdapterApi("https://adapter.test", transport=recorder.transport))
    flow.select_plan(PLAN_100)
    flow.choose_upi()
    flow.enter_phone("9876543210")

    assert asyncio.run(flow.submit_upi()) is False
    assert flow.error == "Session expired. Please re-login."
    assert flow.state == PurchaseState.PHONE_CAPTURE
    assert recorder.calls == []


def test_session_id_opens_hosted_checkout(recorder_factory):
    recorder = recorder_factory(
        lambda request: httpx.Response(200, json={"success": True, "paymentLink": None, "paymentSessionId": "sess_9"})
    )
    navigator = Mock()
    flow = _flow(_session(), AdapterApi("https://adapter.test", transport=recorder.transport), navigator)
    flow.select_plan(PLAN_100)
    flow.choose_upi()
    flow.enter_phone("9876543210")

    assert asyncio.run(flow.submit_upi()) is True
    navigator.open_checkout.assert_called_once_with("sess_9", "https://app.test/#/profile")
    navigator.assign.assert_not_called()


def test_upi_gateway_failure_is_inline(recorder_factory):
    recorder = recorder_factory(
        lambda request: httpx.Response(400, json={"success": False, "message": "customer_phone is invalid"})
    )
    navigator = Mock()
    flow = _flow(_session(), AdapterApi("https://adapter.test", transport=recorder.transport), navigator)
    flow.select_plan(PLAN_100)
    flow.choose_upi()
    flow.enter_phone("9876543210")

    assert asyncio.run(flow.submit_upi()) is False
    assert flow.error == "customer_phone is invalid"
    assert flow.state == PurchaseState.PHONE_CAPTURE
    navigator.assign.assert_not_called()


def test_crypto_redirects_with_usd_price(recorder_factory):
    recorder = recorder_factory(
        lambda request: httpx.Response(200, json={"success": True, "paymentUrl": "https://pay.oxapay.test/1"})
    )
    navigator = Mock()
    flow = _flow(_session(country="India"), AdapterApi("https://adapter.test", transport=recorder.transport), navigator)
    flow.select_plan(PLAN_100)

    assert asyncio.run(flow.pay_with_crypto()) is True

    body = recorder.body(recorder.calls[0])
    assert recorder.calls[0].url.path == "/payment/crypto"
    assert body["amount"] == 5.0
    assert body["orderId"] == "42-100-1700000000000"
    navigator.assign.assert_called_once_with("https://pay.oxapay.test/1")
    assert flow.state == PurchaseState.REDIRECTED


def test_crypto_failure_returns_to_method_choice(recorder_factory):
    recorder = recorder_factory(lambda request: httpx.Response(400, json={"success": False, "message": "Invalid key"}))
    flow = _flow(_session(), AdapterApi("https://adapter.test", transport=recorder.transport))
    flow.select_plan(PLAN_100)

    assert asyncio.run(flow.pay_with_crypto()) is False
    assert flow.error == "Invalid key"
    assert flow.state == PurchaseState.METHOD_CHOICE


def test_redirected_flow_accepts_no_more_input(recorder_factory):
    recorder = recorder_factory(lambda request: httpx.Response(200, json={"paymentUrl": "https://pay/1"}))
    flow = _flow(_session(), AdapterApi("https://adapter.test", transport=recorder.transport))
    flow.select_plan(PLAN_100)
    asyncio.run(flow.pay_with_crypto())

    with pytest.raises(RuntimeError):
        flow.select_plan(PLAN_100)


def test_plans_fall_back_to_defaults(recorder_factory):
    recorder = recorder_factory(lambda request: httpx.Response(503, json={"success": False}))
    flow = _flow(_session(), AdapterApi("https://adapter.test"))

    plans = asyncio.run(flow.load_plans(BackendApi("https://backend.test", transport=recorder.transport)))

    assert plans == CREDIT_PLANS


def test_plans_from_backend(recorder_factory):
    recorder = recorder_factory(
        lambda request: httpx.Response(
            200,
            json={"success": True, "data": [{"id": 9, "credits": 50, "usdPrice": 2.5, "inrPrice": 199}, {"id": "bad"}]},
        )
    )
    flow = _flow(_session(), AdapterApi("https://adapter.test"))

    plans = asyncio.run(flow.load_plans(BackendApi("https://backend.test", transport=recorder.transport)))

    assert plans == [CreditPlan(id=9, credits=50, usd_price=Decimal("2.50"), inr_price=Decimal("199.00"))]


def _page_handler(request):
    if request.url.path == "/notices/global":
        return httpx.Response(200, json={"success": True, "data": "Maintenance at 02:00 UTC"})
    if request.url.path == "/notices/credits-page":
        return httpx.Response(200, json={"success": True, "data": "20% bonus this week"})
    if request.url.path == "/credit-plans":
        plans = [{"id": 9, "credits": 50, "usdPrice": 2.5, "inrPrice": 199}]
        return httpx.Response(200, json={"success": True, "data": plans})
    raise AssertionError(f"unexpected call to {request.url}")


def test_page_load_reads_notices_and_plans(recorder_factory):
    recorder = recorder_factory(_page_handler)
    flow = _flow(_session(), AdapterApi("https://adapter.test"))

    plans = asyncio.run(flow.load_page(BackendApi("https://backend.test", transport=recorder.transport)))

    assert flow.global_notice == "Maintenance at 02:00 UTC"
    assert flow.credits_notice == "20% bonus this week"
    assert flow.notice_error is None
    assert [plan.id for plan in plans] == [9]


def test_page_load_skips_failed_notice(recorder_factory):
    def handler(request):
        if request.url.path == "/notices/credits-page":
            return httpx.Response(404, json={"success": False, "message": "Not found"})
        return _page_handler(request)

    recorder = recorder_factory(handler)
    flow = _flow(_session(), AdapterApi("https://adapter.test"))

    asyncio.run(flow.load_page(BackendApi("https://backend.test", transport=recorder.transport)))

    assert flow.global_notice == "Maintenance at 02:00 UTC"
    assert flow.credits_notice == ""
    assert flow.notice_error is None


def test_unreachable_backend_falls_back(recorder_factory):
    def handler(request):
        raise httpx.ConnectError("offline", request=request)

    flow = _flow(_session(), AdapterApi("https://adapter.test"))

    plans = asyncio.run(flow.load_page(BackendApi("https://backend.test", transport=recorder_factory(handler).transport)))

    assert flow.notice_error == "Failed to load page data."
    assert plans == CREDIT_PLANS
