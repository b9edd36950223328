from __future__ import annotations

from typing import Optional, Protocol, Union


class ImageProvider(Protocol):
    async def generate(self, prompt: str, seed: Optional[int] = None) -> Union[str, bytes]:
        ...

    async def close(self) -> None:
        ...
