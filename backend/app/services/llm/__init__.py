"""Text-generation providers used for market explanations."""

from .base import TextGenerationError, TextGenerator
from .gemini import GeminiTextGenerator

__all__ = [
    "GeminiTextGenerator",
    "TextGenerationError",
    "TextGenerator",
]
