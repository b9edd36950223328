from __future__ import annotations

from typing import List, Optional

import httpx

from app.client.adapter_api import AdapterApi
from app.client.backend_api import BackendApi, new_credits_from, notice_from
from app.client.session import UserSession
from app.config import ClientConfig
from app.models.generation import ImageResult
from app.utils.logging import get_logger


logger = get_logger("generation_flow")


class ImageGenerationFlow:
    def __init__(
        self,
        session: Optional[UserSession],
        adapter: AdapterApi,
        backend: BackendApi,
        image_cost: int = 1,
    ) -> None:
        self.session = session
        self.adapter = adapter
        self.backend = backend
        self.image_cost = image_cost
        self.images: List[ImageResult] = []
        self.error: Optional[str] = None
        self.loading = False
        self.notice = ""
        self.notice_error: Optional[str] = None

    @classmethod
    def from_config(
        cls,
        session: Optional[UserSession],
        config: ClientConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ImageGenerationFlow:
        return cls(
            session,
            AdapterApi.from_config(config, transport=transport),
            BackendApi.from_config(config, transport=transport),
            image_cost=config.image_cost_credits,
        )

    async def load_notice(self) -> str:
        self.notice_error = None
        try:
            response = await self.backend.get_global_notice()
        except httpx.HTTPError as exc:
            logger.warning("global_notice_fetch_failed", error=str(exc))
            self.notice_error = "An unexpected error occurred while fetching global notice."
            return ""
        if not response.success:
            self.notice_error = response.message or "Failed to fetch global notice."
            return ""
        self.notice = notice_from(response)
        return self.notice

    def required_credits(self, number_of_images: int) -> int:
        return self.image_cost * number_of_images

    def can_generate(self, number_of_images: int) -> bool:
        session = self.session
        return bool(
            session
            and session.is_authenticated
            and session.credits >= self.required_credits(number_of_images)
            and not self.loading
        )

    async def generate(self, prompt: str, number_of_images: int = 1) -> List[ImageResult]:
        self.error = None
        session = self.session
        if session is None or not session.is_authenticated:
            self.error = "Please log in to generate images."
            return []
        if not prompt.strip():
            self.error = "Please enter a prompt."
            return []
        required = self.required_credits(number_of_images)
        if session.credits < required:
            self.error = f"Insufficient credits. You need {required} credits for {number_of_images} images."
            return []

        self.loading = True
        self.images = []
        try:
            response = await self.adapter.generate_images(prompt, number_of_images)
            if not response.success:
                self.error = response.message or "Failed to generate images."
                return []
            rows = response.data.get("images") or []
            self.images = [
                ImageResult(id=str(row.get("id")), url=str(row.get("url")), prompt=str(row.get("prompt") or prompt))
                for row in rows
                if isinstance(row, dict) and row.get("url")
            ]
            await self._refresh_balance(session)
        except httpx.HTTPError as exc:
            logger.warning("image_generation_request_failed", error=str(exc))
            self.error = "An unexpected error occurred during image generation."
        finally:
            self.loading = False
        return self.images

    async def _refresh_balance(self, session: UserSession) -> None:
        try:
            response = await self.backend.get_balance(session.token or "")
        except httpx.HTTPError as exc:
            logger.warning("balance_refresh_unreachable", error=str(exc))
            return
        credits = new_credits_from(response) if response.success else None
        if credits is None:
            logger.warning("balance_refresh_failed", message=response.message)
            return
        session.set_balance(credits)
