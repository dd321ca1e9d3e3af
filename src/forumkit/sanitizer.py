"""HTML sanitizer contract. The implementation lives outside forumkit."""

from __future__ import annotations

from typing import Protocol


class Sanitizer(Protocol):
    def clean(self, raw_html: str) -> str:
        """Return markup safe to store and render."""
        ...
