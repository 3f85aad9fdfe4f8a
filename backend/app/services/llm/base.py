"""Provider contracts for text-generation integrations."""

from __future__ import annotations

from typing import Protocol


class TextGenerationError(RuntimeError):
    """Raised when a provider cannot produce text for a prompt."""


class TextGenerator(Protocol):
    """Interface implemented by provider adapters."""

    name: str

    async def generate(self, prompt: str) -> str:
        """Return the model's text completion for ``prompt``."""


__all__ = ["TextGenerationError", "TextGenerator"]
