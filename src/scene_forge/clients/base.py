"""Abstract interfaces for remote generation backends."""

from abc import ABC, abstractmethod
from typing import Optional

from ..models.schemas import GenerationRequest, GenerationResult, ImageRef


class ImageGenerator(ABC):
    """A backend that turns a prompt plus reference images into one image.

    Implementations make exactly one outbound call per ``generate`` and
    never retry on their own; retrying is the caller's decision.
    """

    @abstractmethod
    def generate(self, request: GenerationRequest) -> GenerationResult:
        """Generate a single image.

        Args:
            request: Prompt, reference images and aspect ratio

        Returns:
            GenerationResult holding the image payload

        Raises:
            BlockedError: The model stopped abnormally
            MalformedResponseError: The response carried no image
            RateLimitedError, ServerError: Transient provider failures
            TransportError: Network-level failure
        """
        pass


class TextGenerator(ABC):
    """A backend that answers a prompt (optionally about images) with text."""

    @abstractmethod
    def generate_text(
        self,
        prompt: str,
        images: Optional[list[ImageRef]] = None,
        system: Optional[str] = None,
    ) -> str:
        """Generate a text answer.

        Args:
            prompt: Instruction text
            images: Optional images sent before the prompt
            system: Optional system instruction

        Returns:
            Generated text, possibly empty
        """
        pass
