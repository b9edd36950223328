from __future__ import annotations

from typing import Protocol


class Navigator(Protocol):
    """The browser-side effects the client flows need."""

    def assign(self, url: str) -> None:
        """Full-page navigation away from the app."""
        ...

    def open_checkout(self, session_id: str, return_url: str) -> None:
        """Hand off to the card/UPI provider's hosted checkout in the same tab."""
        ...

    def replace_state(self, url: str) -> None:
        """Rewrite the current URL without navigating."""
        ...
