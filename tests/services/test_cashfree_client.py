import asyncio
from decimal import Decimal

import httpx
import pytest

from app.config import CashfreeConfig
from app.models.payments import ProviderTag
from app.services.cashfree import MOCK_PAYMENT_LINK, CashfreeClient, CashfreeError


ORDER_FIELDS = dict(
    order_id="42-100-1700000000000",
    amount=Decimal("5.00"),
    customer_phone="9876543210",
    customer_name="Asha K.",
    customer_email="asha@example.com",
    return_url="https://app.test/#/profile",
)


def _client(app_config, recorder):
    return CashfreeClient(app_config.cashfree, transport=recorder.transport)


@pytest.mark.parametrize("missing", ["order_id", "amount", "customer_phone", "customer_name"])
def test_missing_field_rejected_without_network(app_config, recorder_factory, missing):
    recorder = recorder_factory(lambda request: httpx.Response(200, json={"payment_link": "x"}))
    fields = dict(ORDER_FIELDS)
    fields[missing] = None if missing == "amount" else ""

    with pytest.raises(CashfreeError) as info:
        asyncio.run(_client(app_config, recorder).create_order(**fields))

    assert info.value.status_code == 400
    assert len(recorder.calls) == 0


def test_mock_mode_without_credentials(recorder_factory):
    recorder = recorder_factory(lambda request: httpx.Response(500))
    client = CashfreeClient(CashfreeConfig(), transport=recorder.transport)

    order = asyncio.run(client.create_order(**ORDER_FIELDS))

    assert order.mock is True
    assert order.redirect_url == MOCK_PAYMENT_LINK
    assert order.session_id == "mock-session-id"
    assert recorder.calls == []


def test_create_order_sends_provider_payload(app_config, recorder_factory):
    recorder = recorder_factory(
        lambda request: httpx.Response(
            200,
            json={"payment_link": "https://payments.cashfree.test/l/abc", "payment_session_id": "sess_1"},
        )
    )

    order = asyncio.run(_client(app_config, recorder).create_order(**ORDER_FIELDS, currency="usd"))

    assert order.provider_tag == ProviderTag.CARD_UPI
    assert order.redirect_url == "https://payments.cashfree.test/l/abc"
    assert order.session_id == "sess_1"

    [call] = recorder.calls
    assert call.url.path == "/pg/orders"
    assert call.headers["x-client-id"] == "cf-app"
    assert call.headers["x-client-secret"] == "cf-secret"
    assert call.headers["x-api-version"] == "2023-08-01"
    body = recorder.body(call)
    assert body["order_amount"] == 5.0
    assert body["order_currency"] == "USD"
    assert body["customer_details"]["customer_id"] == "42"
    assert body["customer_details"]["customer_name"] == "Asha K"
    assert body["order_meta"]["return_url"] == "https://app.test/#/profile"


def test_session_id_alone_is_success(app_config, recorder_factory):
    recorder = recorder_factory(lambda request: httpx.Response(200, json={"payment_session_id": "sess_only"}))

    order = asyncio.run(_client(app_config, recorder).create_order(**ORDER_FIELDS))

    assert order.redirect_url == ""
    assert order.session_id == "sess_only"


def test_rejection_surfaces_provider_message_and_payload(app_config, recorder_factory):
    recorder = recorder_factory(
        lambda request: httpx.Response(400, json={"message": "order_amount is invalid", "code": "request_failed"})
    )

    with pytest.raises(CashfreeError) as info:
        asyncio.run(_client(app_config, recorder).create_order(**ORDER_FIELDS))

    assert str(info.value) == "order_amount is invalid"
    assert info.value.status_code == 400
    assert info.value.payload["order_id"] == ORDER_FIELDS["order_id"]


def test_rejection_without_message_serializes_body(app_config, recorder_factory):
    recorder = recorder_factory(lambda request: httpx.Response(200, json={"cf_order_id": 7}))

    with pytest.raises(CashfreeError) as info:
        asyncio.run(_client(app_config, recorder).create_order(**ORDER_FIELDS))

    assert '"cf_order_id": 7' in str(info.value)


def test_non_json_response_is_distinct_failure(app_config, recorder_factory):
    html = "<html>" + "x" * 300 + "</html>"
    recorder = recorder_factory(lambda request: httpx.Response(502, text=html))

    with pytest.raises(CashfreeError) as info:
        asyncio.run(_client(app_config, recorder).create_order(**ORDER_FIELDS))

    assert str(info.value) == f"Cashfree returned invalid JSON: {html[:100]}"
    assert info.value.status_code == 400
    assert info.value.payload is not None


def test_link_in_error_response_is_rejected(app_config, recorder_factory):
    recorder = recorder_factory(
        lambda request: httpx.Response(
            500, json={"message": "upstream error", "payment_link": "https://payments.cashfree.test/l/stale"}
        )
    )

    with pytest.raises(CashfreeError) as info:
        asyncio.run(_client(app_config, recorder).create_order(**ORDER_FIELDS))

    assert str(info.value) == "upstream error"
    assert info.value.status_code == 400


def test_order_lookup_escapes_order_id(app_config, recorder_factory):
    recorder = recorder_factory(lambda request: httpx.Response(200, json={"order_status": "PAID"}))

    asyncio.run(_client(app_config, recorder).get_order("42/../refunds?x=1"))

    [call] = recorder.calls
    assert call.url.raw_path == b"/pg/orders/42%2F..%2Frefunds%3Fx%3D1"
    assert call.url.query == b""
