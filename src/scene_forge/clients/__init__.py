"""Remote generation backends for Scene-Forge."""

from ..config import Config
from .base import ImageGenerator, TextGenerator
from .gemini_backend import GeminiBackend
from .openrouter_backend import OpenRouterBackend


def create_image_client(config: Config) -> ImageGenerator:
    """Create the image backend. Images are always generated with Gemini.

    Args:
        config: Application configuration

    Returns:
        Configured image backend
    """
    provider = config.provider
    return GeminiBackend(
        api_key=provider.resolve_api_key("google"),
        image_model=provider.image_model,
        text_model=provider.text_model,
        safety_threshold=provider.safety_threshold,
        timeout=provider.request_timeout,
    )


def create_text_client(config: Config) -> TextGenerator:
    """Create the text backend for the configured provider.

    Args:
        config: Application configuration

    Returns:
        Configured text backend
    """
    provider = config.provider
    backends = {
        "google": lambda: GeminiBackend(
            api_key=provider.resolve_api_key("google"),
            image_model=provider.image_model,
            text_model=provider.text_model,
            safety_threshold=provider.safety_threshold,
            timeout=provider.request_timeout,
        ),
        "openrouter": lambda: OpenRouterBackend(
            api_key=provider.resolve_api_key("openrouter"),
            model=provider.openrouter_model,
            base_url=provider.openrouter_base_url,
            timeout=provider.request_timeout,
        ),
    }

    if provider.provider not in backends:
        raise ValueError(f"Unknown provider: {provider.provider}. Available: {list(backends.keys())}")

    return backends[provider.provider]()


__all__ = [
    "ImageGenerator",
    "TextGenerator",
    "GeminiBackend",
    "OpenRouterBackend",
    "create_image_client",
    "create_text_client",
]
