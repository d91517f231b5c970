"""OpenRouter backend for text generation via its OpenAI-compatible API."""

import logging
from typing import Any, Optional

import openai
from openai import OpenAI

from ..errors import (
    GenerationError,
    RateLimitedError,
    RequestRejectedError,
    ServerError,
    TransportError,
)
from ..models.schemas import ImageRef
from .base import TextGenerator

logger = logging.getLogger(__name__)


def translate_error(exc: Exception) -> GenerationError:
    """Map OpenAI SDK exceptions onto the generation error taxonomy."""
    if isinstance(exc, openai.RateLimitError):
        return RateLimitedError(f"OpenRouter rate limit: {exc}")
    if isinstance(exc, openai.InternalServerError):
        return ServerError(f"OpenRouter server error {exc.status_code}: {exc}")
    if isinstance(exc, openai.APIStatusError):
        return RequestRejectedError(f"OpenRouter Error: {exc.status_code} - {exc}", exc.status_code)
    if isinstance(exc, openai.APIConnectionError):
        return TransportError(f"Failed to reach OpenRouter: {exc}")
    return TransportError(f"Unexpected OpenRouter failure: {exc}")


class OpenRouterBackend(TextGenerator):
    """OpenRouter chat backend.

    OpenRouter serves text/chat models only, so it is used for video
    prompts; image generation always goes to Gemini.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "google/gemini-2.0-flash-exp:free",
        base_url: str = "https://openrouter.ai/api/v1",
        timeout: Optional[float] = None,
        client: Any = None,
    ):
        """Initialize OpenRouter backend.

        Args:
            api_key: OpenRouter API key
            model: Chat model name
            base_url: API base URL
            timeout: Request timeout in seconds; None leaves requests unbounded
            client: Pre-built OpenAI-compatible client
        """
        self.model = model

        if client is None:
            if not api_key:
                raise ValueError(
                    "OpenRouter API key required. Set OPENROUTER_API_KEY environment "
                    "variable or configure provider.api_key."
                )
            client = OpenAI(
                api_key=api_key,
                base_url=base_url,
                timeout=timeout,
                max_retries=0,
                default_headers={"X-Title": "Scene-Forge"},
            )

        self.client = client
        logger.info(f"Initialized OpenRouter backend with model: {model}")

    def generate_text(
        self,
        prompt: str,
        images: Optional[list[ImageRef]] = None,
        system: Optional[str] = None,
    ) -> str:
        """Generate a chat completion, attaching images as data URLs."""
        messages = []

        if system:
            messages.append({"role": "system", "content": system})

        content = [{"type": "text", "text": prompt}]
        for image in images or []:
            content.append({
                "type": "image_url",
                "image_url": {"url": f"data:{image.mime_type};base64,{image.data}"},
            })

        messages.append({"role": "user", "content": content})

        logger.debug(f"Generating with {self.model}, {len(images or [])} image(s)")

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
            )
        except openai.OpenAIError as e:
            raise translate_error(e) from e

        if not response.choices:
            return ""
        result = response.choices[0].message.content or ""
        logger.debug(f"LLM Output ({len(result)} chars): {(result[:500] + '...') if len(result) > 500 else result}")
        return result
