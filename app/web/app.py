from __future__ import annotations

import json
import uuid
from typing import Any, Dict

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from app.config import AppConfig, get_config
from app.models.payments import ProviderTag, parse_provider_tag
from app.services.a4f_client import A4FClient
from app.services.cashfree import CashfreeClient, CashfreeError
from app.services.generation import GenerationError, GenerationService
from app.services.oxapay import OxapayClient, OxapayError
from app.services.verification import PaymentVerificationService, VerificationError
from app.utils.logging import bind_request, get_logger
from app.utils.money import parse_amount
from app.utils.text import str_field


logger = get_logger("web")

GENERATE_PATH = "/generate"

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Allow-Methods": "GET,OPTIONS,PATCH,DELETE,POST,PUT",
    "Access-Control-Allow-Headers": (
        "X-CSRF-Token, X-Requested-With, Accept, Accept-Version, Content-Length, "
        "Content-MD5, Content-Type, Date, X-Api-Version"
    ),
}


async def _read_json(request: Request) -> Dict[str, Any]:
    raw = await request.body()
    if not raw:
        return {}
    try:
        data: Any = json.loads(raw.decode("utf-8"))
        # Some serverless proxies double-encode the body as a JSON string.
        if isinstance(data, str):
            data = json.loads(data)
    except (UnicodeDecodeError, ValueError) as exc:
        logger.warning("request_body_parse_failed", error=str(exc))
        return {}
    return data if isinstance(data, dict) else {}


def _server_error(event: str, exc: Exception, message: str = "Internal Server Error") -> JSONResponse:
    logger.exception(event, error=str(exc))
    return JSONResponse({"success": False, "message": message}, status_code=500)


def create_app(config: AppConfig | None = None, transport: httpx.AsyncBaseTransport | None = None) -> FastAPI:
    config = config or get_config()
    app = FastAPI(title="Credits & Images API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.config = config

    cashfree = CashfreeClient(config.cashfree, transport=transport)
    oxapay = OxapayClient(config.oxapay, transport=transport)
    verifier = PaymentVerificationService(cashfree, oxapay)

    # Registered after CORSMiddleware so it runs first: any origin may call
    # /generate, whatever CORS_ALLOW_ORIGINS says.
    @app.middleware("http")
    async def open_generate_cors(request: Request, call_next):
        if request.url.path != GENERATE_PATH:
            return await call_next(request)
        origin = request.headers.get("origin") or "*"
        if request.method == "OPTIONS":
            headers = dict(PREFLIGHT_HEADERS)
            headers["Access-Control-Allow-Origin"] = origin
            return Response(status_code=200, headers=headers)
        response = await call_next(request)
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        return response

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        bind_request(request.url.path, request_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.get("/health")
    async def health():
        return {"ok": True}

    @app.post("/payment/upi")
    async def payment_upi(request: Request):
        try:
            data = await _read_json(request)
            order = await cashfree.create_order(
                order_id=str_field(data, "orderId"),
                amount=parse_amount(data.get("amount")),
                customer_phone=str_field(data, "customerPhone"),
                customer_name=str_field(data, "customerName"),
                customer_email=str_field(data, "customerEmail") or None,
                return_url=str_field(data, "returnUrl") or None,
                currency=str_field(data, "currency") or None,
            )
        except CashfreeError as exc:
            body: Dict[str, Any] = {"success": False, "message": str(exc)}
            if exc.payload is not None:
                body["payload"] = exc.payload
            return JSONResponse(body, status_code=exc.status_code or 400)
        except httpx.HTTPError as exc:
            return _server_error("cashfree_transport_failed", exc)
        except Exception as exc:
            return _server_error("cashfree_handler_failed", exc)

        return {
            "success": True,
            "paymentLink": order.redirect_url or None,
            "paymentSessionId": order.session_id,
        }

    @app.post("/payment/crypto")
    async def payment_crypto(request: Request):
        try:
            data = await _read_json(request)
            order = await oxapay.create_invoice(
                amount=parse_amount(data.get("amount")),
                order_id=str_field(data, "orderId"),
                email=str_field(data, "email") or None,
                description=str_field(data, "description") or None,
                return_url=str_field(data, "returnUrl") or None,
            )
        except OxapayError as exc:
            return JSONResponse({"success": False, "message": str(exc)}, status_code=exc.status_code or 400)
        except httpx.HTTPError as exc:
            return _server_error("oxapay_transport_failed", exc)
        except Exception as exc:
            return _server_error("oxapay_handler_failed", exc)

        return {"success": True, "paymentUrl": order.redirect_url, "trackId": order.order_id}

    @app.post("/payment/verify")
    async def payment_verify(request: Request):
        try:
            data = await _read_json(request)
            provider = parse_provider_tag(data.get("provider"))
            if provider is None:
                return JSONResponse({"success": False, "message": "Unknown payment provider"}, status_code=400)
            if provider == ProviderTag.CRYPTO:
                # OxaPay looks payments up by its own track id.
                order_id = str_field(data, "trackId") or str_field(data, "orderId")
            else:
                order_id = str_field(data, "orderId") or str_field(data, "trackId")
            result = await verifier.verify(order_id, provider)
        except VerificationError as exc:
            return JSONResponse({"success": False, "message": str(exc)}, status_code=exc.status_code or 400)
        except httpx.HTTPError as exc:
            return _server_error("verification_transport_failed", exc)
        except Exception as exc:
            return _server_error("verification_handler_failed", exc)

        return result.to_json()

    @app.post(GENERATE_PATH)
    async def generate(request: Request):
        provider_config = config.image_provider
        client: A4FClient | None = None
        try:
            data = await _read_json(request)
            logger.info("generate_requested", prompt_length=len(str(data.get("prompt") or "")))
            if not str(data.get("prompt") or "").strip():
                return JSONResponse({"message": "Prompt is required"}, status_code=400)

            logger.info("a4f_key_status", present=provider_config.enabled, key=provider_config.masked_key())
            if not provider_config.enabled:
                return JSONResponse({"message": "Missing A4F_API_KEY"}, status_code=500)

            client = A4FClient(provider_config, transport=transport)
            service = GenerationService(client, provider_config.max_images)
            gen_request = service.build_request(data.get("prompt"), data.get("numberOfImages", 1))
            images = await service.generate(gen_request)
        except GenerationError as exc:
            if exc.status_code >= 500:
                logger.error("generation_failed", error=str(exc))
            return JSONResponse({"message": str(exc)}, status_code=exc.status_code)
        except Exception as exc:
            return _server_error("generate_handler_failed", exc)
        finally:
            if client is not None:
                await client.close()

        return {"images": [image.to_json() for image in images]}

    return app
