import json
from typing import Callable, List

import httpx
import pytest

from app.config import AppConfig, CashfreeConfig, ClientConfig, ImageProviderConfig, OxapayConfig


class Recorder:
    """MockTransport wrapper that keeps every outbound request."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.handler = handler
        self.calls: List[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        return self.handler(request)

    def calls_to(self, path: str) -> List[httpx.Request]:
        return [call for call in self.calls if call.url.path == path]

    @staticmethod
    def body(request: httpx.Request) -> dict:
        return json.loads(request.content.decode("utf-8"))


@pytest.fixture
def recorder_factory():
    return Recorder


@pytest.fixture
def app_config():
    return AppConfig(
        cashfree=CashfreeConfig(app_id="cf-app", secret_key="cf-secret", base_url="https://cashfree.test/pg"),
        oxapay=OxapayConfig(merchant_api_key="oxa-key", base_url="https://oxapay.test/v1"),
        image_provider=ImageProviderConfig(api_key="a4f-test-key", base_url="https://a4f.test/v1", max_images=4),
        client=ClientConfig(backend_api_url="https://backend.test", adapter_api_url="https://adapter.test"),
    )


@pytest.fixture
def unconfigured_config():
    return AppConfig(
        cashfree=CashfreeConfig(),
        oxapay=OxapayConfig(),
        image_provider=ImageProviderConfig(),
        client=ClientConfig(),
    )
