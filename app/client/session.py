from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class UserSession:
    user_id: str
    name: str
    email: str = ''
    country: str = ''
    token: Optional[str] = None
    credits: int = 0

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    @property
    def is_indian(self) -> bool:
        return self.country.strip().lower() == 'india'

    def set_balance(self, value: int) -> None:
        # Only ever called with a backend-reported balance.
        self.credits = int(value)
