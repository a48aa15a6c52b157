from .base import VisionProvider
from .gemini import GeminiProvider
from .openai_compatible import OpenAICompatibleProvider, build_default_providers

__all__ = [
    "VisionProvider",
    "OpenAICompatibleProvider",
    "GeminiProvider",
    "build_default_providers",
]
