from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from app.utils.logging import get_logger


logger = get_logger("client_api")


@dataclass
class ApiResponse:
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    message: Optional[str] = None
    status_code: int = 0


class JsonApi:
    def __init__(self, base_url: str, timeout: float = 20.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _headers(self, token: str | None = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        json: Dict[str, Any] | None = None,
    ) -> ApiResponse:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            resp = await client.request(method, f"{self.base_url}{path}", headers=self._headers(token), json=json)
        return self.to_response(resp)

    @staticmethod
    def to_response(resp: httpx.Response) -> ApiResponse:
        try:
            body = resp.json()
        except ValueError:
            logger.warning("non_json_api_response", status=resp.status_code, url=str(resp.request.url))
            return ApiResponse(success=False, message=resp.text[:100] or None, status_code=resp.status_code)
        if not isinstance(body, dict):
            body = {"data": body}
        success = resp.is_success and body.get("success") is not False
        message = body.get("message") or body.get("detail")
        return ApiResponse(
            success=success,
            data=body,
            message=str(message) if message else None,
            status_code=resp.status_code,
        )
