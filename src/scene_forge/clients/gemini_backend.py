"""Google Gemini backend for image generation and image-grounded text."""

import logging
from typing import Any, Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..errors import (
    GenerationError,
    RateLimitedError,
    RequestRejectedError,
    ServerError,
    TransportError,
)
from ..models.schemas import GenerationRequest, GenerationResult, ImageRef
from .base import ImageGenerator, TextGenerator
from .parsing import classify_response, ensure_image, extract_text

logger = logging.getLogger(__name__)

HARM_CATEGORIES = [
    types.HarmCategory.HARM_CATEGORY_HARASSMENT,
    types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
    types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
    types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
]


def translate_error(exc: Exception) -> GenerationError:
    """Map SDK and transport exceptions onto the generation error taxonomy."""
    if isinstance(exc, genai_errors.ServerError):
        return ServerError(f"Gemini server error {exc.code}: {exc.message}")
    if isinstance(exc, genai_errors.ClientError):
        if exc.code == 429 or exc.status == "RESOURCE_EXHAUSTED":
            return RateLimitedError(f"Gemini rate limit: {exc.message}")
        return RequestRejectedError(f"Gemini rejected request {exc.code}: {exc.message}", exc.code)
    if isinstance(exc, genai_errors.APIError):
        return RequestRejectedError(f"Gemini API error {exc.code}: {exc.message}", exc.code)
    if isinstance(exc, httpx.TransportError):
        return TransportError(f"Failed to reach Gemini: {exc}")
    return TransportError(f"Unexpected Gemini client failure: {exc}")


class GeminiBackend(ImageGenerator, TextGenerator):
    """Gemini backend using the google-genai SDK.

    Image generation goes to the image model with an IMAGE-only response
    modality; text generation (video prompts) goes to the text model.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        image_model: str = "gemini-2.5-flash-image",
        text_model: str = "gemini-2.5-flash",
        safety_threshold: str = "BLOCK_ONLY_HIGH",
        timeout: Optional[float] = None,
        client: Any = None,
    ):
        """Initialize Gemini backend.

        Args:
            api_key: Gemini API key
            image_model: Model for image generation
            text_model: Model for text generation
            safety_threshold: Harm block threshold applied to every category
            timeout: Request timeout in seconds; None leaves requests unbounded
            client: Pre-built SDK client (used instead of creating one)
        """
        self.image_model = image_model
        self.text_model = text_model
        self.timeout = timeout
        self.safety_settings = [
            types.SafetySetting(category=category, threshold=types.HarmBlockThreshold(safety_threshold))
            for category in HARM_CATEGORIES
        ]

        if client is None:
            if not api_key:
                raise ValueError(
                    "Gemini API key required. Set GEMINI_API_KEY environment variable "
                    "or configure provider.api_key."
                )
            http_options = None
            if timeout is not None:
                http_options = types.HttpOptions(timeout=int(timeout * 1000))
            client = genai.Client(api_key=api_key, http_options=http_options)

        self.client = client
        logger.info(f"Initialized Gemini backend (image: {image_model}, text: {text_model})")

    @staticmethod
    def _image_part(image: ImageRef) -> types.Part:
        return types.Part.from_bytes(data=image.to_bytes(), mime_type=image.mime_type)

    def _call(self, **kwargs):
        try:
            return self.client.models.generate_content(**kwargs)
        except (genai_errors.APIError, httpx.TransportError) as e:
            raise translate_error(e) from e

    def generate(self, request: GenerationRequest) -> GenerationResult:
        """Generate one image from the request's images and prompt."""
        contents: list = [self._image_part(image) for image in request.images()]
        contents.append(request.prompt)

        model = request.provider_options.get("model", self.image_model)
        config = types.GenerateContentConfig(
            response_modalities=["IMAGE"],
            image_config=types.ImageConfig(aspect_ratio=request.aspect_ratio.value),
            safety_settings=self.safety_settings,
        )

        logger.debug(
            f"Generating image with {model}, {len(contents) - 1} image part(s), "
            f"ratio={request.aspect_ratio.value}"
        )
        logger.debug(f"Image Input - Prompt: {(request.prompt[:500] + '...') if len(request.prompt) > 500 else request.prompt}")

        response = self._call(model=model, contents=contents, config=config)
        payload = ensure_image(classify_response(response))

        logger.debug(f"Image Output: {payload.mime_type}, {len(payload.data)} base64 chars")
        return GenerationResult(
            image_data=payload.data,
            mime_type=payload.mime_type,
            source_prompt=request.prompt,
        )

    def generate_text(
        self,
        prompt: str,
        images: Optional[list[ImageRef]] = None,
        system: Optional[str] = None,
    ) -> str:
        """Generate text about the given images with the text model."""
        contents: list = [self._image_part(image) for image in images or []]
        contents.append(prompt)

        config = None
        if system:
            config = types.GenerateContentConfig(system_instruction=system)

        logger.debug(f"Generating text with {self.text_model}, {len(contents) - 1} image(s)")
        response = self._call(model=self.text_model, contents=contents, config=config)

        result = extract_text(response)
        logger.debug(f"Text Output ({len(result)} chars): {(result[:500] + '...') if len(result) > 500 else result}")
        return result
