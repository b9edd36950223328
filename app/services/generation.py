from __future__ import annotations

import asyncio
import base64
import math
import random
import time
from typing import Any, Callable, List, Optional, Union

from app.models.generation import GenerationRequest, ImageResult
from app.services.provider import ImageProvider
from app.utils.logging import get_logger


logger = get_logger("generation")

AUTH_MARKERS = ("unauthorized", "invalid api key", "forbidden")
RATE_LIMIT_MARKERS = ("rate limit", "too many requests")
SEED_MAX = 2**31 - 1


class GenerationError(Exception):
    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message)
        self.status_code = status_code


class EmptyImageError(Exception):
    pass


def clamp_count(value: Any, max_images: int) -> int:
    if isinstance(value, bool):
        count = 1
    elif isinstance(value, float) and math.isinf(value):
        # JSON numbers like 1e400 arrive as infinity.
        count = max_images if value > 0 else 1
    else:
        try:
            count = int(value)
        except (TypeError, ValueError, OverflowError):
            count = 1
    return min(max(1, count), max(1, max_images))


def sniff_mime(data: bytes) -> str:
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data.startswith((b"GIF87a", b"GIF89a")):
        return "image/gif"
    return "image/png"


def normalize_output(output: Union[str, bytes, bytearray, None]) -> str:
    """Turn one provider output into something an ``<img src>`` accepts.

    HTTP(S) URLs pass through untouched; anything binary becomes a base64
    data URI. Empty payloads are an error for that image only.
    """
    if isinstance(output, str):
        cleaned = output.strip()
        if cleaned.startswith(("http://", "https://")):
            return cleaned
        if cleaned.startswith("data:image/"):
            return cleaned
        raise EmptyImageError("Model returned an unrecognised output string.")
    if isinstance(output, (bytes, bytearray)):
        payload = bytes(output)
        if not payload:
            raise EmptyImageError("Empty image buffer returned.")
        encoded = base64.b64encode(payload).decode("ascii")
        return f"data:{sniff_mime(payload)};base64,{encoded}"
    raise EmptyImageError("Model returned empty response.")


def classify_failure(exc: BaseException) -> int:
    status_code = getattr(exc, "status_code", None)
    message = str(exc).lower()
    if status_code in (401, 403) or any(marker in message for marker in AUTH_MARKERS):
        return 401
    if status_code == 429 or any(marker in message for marker in RATE_LIMIT_MARKERS):
        return 429
    return 500


class GenerationService:
    def __init__(
        self,
        provider: ImageProvider,
        max_images: int,
        seed_factory: Optional[Callable[[], int]] = None,
    ) -> None:
        self.provider = provider
        self.max_images = max_images
        self.seed_factory = seed_factory or (lambda: random.randint(0, SEED_MAX))

    def build_request(self, prompt: Any, number_of_images: Any) -> GenerationRequest:
        text = str(prompt or "").strip()
        if not text:
            raise GenerationError("Prompt is required", 400)
        return GenerationRequest(prompt=text, count=clamp_count(number_of_images, self.max_images))

    async def _run_one(self, prompt: str) -> str:
        output = await self.provider.generate(prompt, seed=self.seed_factory())
        return normalize_output(output)

    async def generate(self, request: GenerationRequest) -> List[ImageResult]:
        logger.info("generation_started", count=request.count)
        results = await asyncio.gather(
            *(self._run_one(request.prompt) for _ in range(request.count)),
            return_exceptions=True,
        )

        batch_stamp = int(time.time() * 1000)
        images: List[ImageResult] = []
        errors: List[BaseException] = []
        for index, result in enumerate(results):
            if isinstance(result, BaseException):
                logger.warning("image_generation_failed", index=index, error=str(result))
                errors.append(result)
                continue
            images.append(ImageResult(id=f"img-{batch_stamp}-{index}", url=result, prompt=request.prompt))

        if not images:
            if not errors:
                raise GenerationError("Failed to generate image. The model returned no valid data.")
            first = errors[0]
            status_code = classify_failure(first)
            if status_code == 401:
                raise GenerationError("Unauthorized: check A4F_API_KEY and model access", 401)
            if status_code == 429:
                raise GenerationError(f"Rate limited by image provider: {first}", 429)
            raise GenerationError(f"Model Error: {first}", 500)

        logger.info("generation_finished", requested=request.count, produced=len(images))
        return images
