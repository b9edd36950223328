from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict


@dataclass
class GenerationRequest:
    prompt: str
    count: int


@dataclass
class ImageResult:
    id: str
    url: str
    prompt: str

    def to_json(self) -> Dict[str, Any]:
        return asdict(self)
