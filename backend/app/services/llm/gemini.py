"""Google Gemini provider hooks."""

from __future__ import annotations

from dataclasses import dataclass

import google.generativeai as genai
from loguru import logger

from app.core.config import settings

from .base import TextGenerationError, TextGenerator


@dataclass(slots=True)
class GeminiTextGenerator(TextGenerator):
    api_key: str | None = None
    model: str | None = None
    name: str = "gemini"

    def _resolve_api_key(self) -> str:
        key = (self.api_key or settings.gemini_api_key or "").strip()
        if not key:
            raise TextGenerationError("GEMINI_API_KEY environment variable is not set")
        return key

    async def generate(self, prompt: str) -> str:
        genai.configure(api_key=self._resolve_api_key())
        model_name = self.model or settings.gemini_model
        model = genai.GenerativeModel(model_name)
        try:
            response = await model.generate_content_async(prompt)
        except Exception as exc:
            logger.warning("Gemini request failed model={} error={}", model_name, exc)
            raise TextGenerationError(f"Gemini request failed: {exc}") from exc
        try:
            text = response.text
        except ValueError:
            # Raised by the SDK when the candidate was blocked or empty.
            return ""
        return (text or "").strip()


__all__ = ["GeminiTextGenerator"]
