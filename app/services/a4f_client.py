from __future__ import annotations

import base64
import binascii
from typing import Any, Dict, Optional, Union

import httpx

from app.config import ImageProviderConfig
from app.utils.logging import get_logger


logger = get_logger('a4f')

ImageOutput = Union[str, bytes]


class A4FError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class A4FClient:
    """Client for the OpenAI-compatible A4F images endpoint.

    ``generate`` always asks for a single image; callers fan out for more.
    The return value is either a URL string or raw image bytes, depending on
    what the upstream model produced.
    """

    def __init__(self, config: ImageProviderConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self.base_url = config.base_url.rstrip('/')
        self._client = httpx.AsyncClient(timeout=config.timeout, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        return {
            'Authorization': f'Bearer {self.config.api_key}',
            'Content-Type': 'application/json',
        }

    async def generate(self, prompt: str, seed: Optional[int] = None) -> ImageOutput:
        body: Dict[str, Any] = {
            'model': self.config.model_id,
            'prompt': prompt,
            'n': 1,
            'size': self.config.image_size,
        }
        if seed is not None:
            body['seed'] = seed
        resp = await self._client.post(f'{self.base_url}/images/generations', headers=self._headers(), json=body)
        if resp.status_code >= 400:
            raise A4FError(f'A4F images error {resp.status_code}: {self.error_message(resp)}', resp.status_code)

        content_type = resp.headers.get('content-type', '').lower()
        if content_type.startswith('image/'):
            return resp.content
        try:
            data = resp.json()
        except ValueError:
            raise A4FError('A4F returned a non-JSON response')
        return self.parse_output(data)

    @staticmethod
    def error_message(resp: httpx.Response) -> str:
        try:
            data = resp.json()
        except ValueError:
            return resp.text[:200]
        if isinstance(data, dict):
            error = data.get('error')
            if isinstance(error, dict) and error.get('message'):
                return str(error['message'])
            if error:
                return str(error)
            if data.get('message'):
                return str(data['message'])
        return str(data)[:200]

    @staticmethod
    def parse_output(record: Dict[str, Any]) -> ImageOutput:
        items = record.get('data') if isinstance(record, dict) else None
        if not isinstance(items, list) or not items:
            raise A4FError('Model returned empty response.')
        first = items[0] if isinstance(items[0], dict) else {}

        url = str(first.get('url') or '').strip()
        if url:
            return url

        encoded = first.get('b64_json')
        if isinstance(encoded, str):
            try:
                return base64.b64decode(encoded, validate=True)
            except (binascii.Error, ValueError) as exc:
                logger.warning('failed_to_decode_b64', error=str(exc))
                raise A4FError('Failed to process image data.')
        raise A4FError('Model returned empty response.')
