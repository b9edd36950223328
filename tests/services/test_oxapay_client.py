import asyncio
from decimal import Decimal

import httpx
import pytest

from app.config import OxapayConfig
from app.models.payments import ProviderTag
from app.services.oxapay import OxapayClient, OxapayError, evaluate_invoice_response


def test_pay_link_alone_is_success():
    outcome = evaluate_invoice_response({"payLink": "https://pay.oxapay.test/1", "message": "invoice queued"})

    assert outcome.success is True
    assert outcome.rule == "pay_link"
    assert outcome.pay_url == "https://pay.oxapay.test/1"


@pytest.mark.parametrize(
    "response, rule",
    [
        ({"result": 100, "payLink": "https://p/1"}, "result_code"),
        ({"status": 200, "data": {"payment_url": "https://p/2"}}, "result_code"),
        ({"message": "Operation Completed", "data": {"payLink": "https://p/3"}}, "message_keyword"),
        ({"message": "SUCCESS", "payLink": "https://p/4"}, "message_keyword"),
    ],
)
def test_success_rules_in_order(response, rule):
    outcome = evaluate_invoice_response(response)

    assert outcome.success is True
    assert outcome.rule == rule


@pytest.mark.parametrize(
    "response",
    [
        {"result": 100, "message": "success"},
        {"message": "completed", "data": {}},
        {},
    ],
)
def test_missing_pay_link_is_always_failure(response):
    outcome = evaluate_invoice_response(response)

    assert outcome.success is False
    assert outcome.rule == "missing_pay_link"


@pytest.mark.parametrize("amount, order_id", [(None, "42-100-1"), (Decimal("5.00"), "")])
def test_missing_field_rejected_without_network(app_config, recorder_factory, amount, order_id):
    recorder = recorder_factory(lambda request: httpx.Response(200, json={"payLink": "https://p/1"}))
    client = OxapayClient(app_config.oxapay, transport=recorder.transport)

    with pytest.raises(OxapayError) as info:
        asyncio.run(client.create_invoice(amount=amount, order_id=order_id))

    assert info.value.status_code == 400
    assert len(recorder.calls) == 0


def test_invoice_payload_carries_fixed_policy(app_config, recorder_factory):
    recorder = recorder_factory(
        lambda request: httpx.Response(
            200,
            json={"status": 200, "message": "Operation completed successfully!",
                  "data": {"track_id": "184747701", "payment_url": "https://pay.oxapay.test/184747701"}},
        )
    )
    client = OxapayClient(app_config.oxapay, transport=recorder.transport)

    order = asyncio.run(
        client.create_invoice(amount=Decimal("5.00"), order_id="42-100-1", return_url="https://app.test/#/profile")
    )

    assert order.provider_tag == ProviderTag.CRYPTO
    assert order.order_id == "184747701"
    assert order.redirect_url == "https://pay.oxapay.test/184747701"
    [call] = recorder.calls
    assert call.url.path == "/v1/payment/invoice"
    assert call.headers["merchant_api_key"] == "oxa-key"
    body = recorder.body(call)
    assert body["amount"] == 5.0
    assert body["currency"] == "USD"
    assert body["lifetime"] == 30
    assert body["fee_paid_by_payer"] == 1
    assert body["under_paid_coverage"] == 2.5
    assert body["to_currency"] == "USDT"
    assert body["description"] == "Order #42-100-1"
    assert "email" not in body


def test_rejection_uses_provider_message(app_config, recorder_factory):
    recorder = recorder_factory(lambda request: httpx.Response(200, json={"result": 102, "message": "Invalid key"}))
    client = OxapayClient(app_config.oxapay, transport=recorder.transport)

    with pytest.raises(OxapayError) as info:
        asyncio.run(client.create_invoice(amount=Decimal("5"), order_id="42-100-1"))

    assert str(info.value) == "Invalid key"
    assert info.value.status_code == 400


def test_mock_mode_without_key(recorder_factory):
    recorder = recorder_factory(lambda request: httpx.Response(500))
    client = OxapayClient(OxapayConfig(), transport=recorder.transport)

    order = asyncio.run(client.create_invoice(amount=Decimal("5"), order_id="42-100-1"))

    assert order.mock is True
    assert order.redirect_url.startswith("https://")
    assert recorder.calls == []


def test_payment_lookup_escapes_track_id(app_config, recorder_factory):
    recorder = recorder_factory(lambda request: httpx.Response(200, json={"data": {"status": "paid"}}))
    client = OxapayClient(app_config.oxapay, transport=recorder.transport)

    asyncio.run(client.payment_info("1847/invoice"))

    assert recorder.calls[0].url.raw_path == b"/v1/payment/1847%2Finvoice"
