"""Derivation of text video prompts from generated frames.

Each frame stands for one 8-second clip; frame n covers ``(n-1)*8s`` to
``n*8s``. The derived prompt is best-effort: callers that must not fail use
``fallback_video_prompt`` when derivation raises.
"""

import logging
from typing import Optional

from .clients.base import TextGenerator
from .models.schemas import Frame, ImageRef, VideoPromptOptions
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

CLIP_SECONDS = 8
EMPTY_ANSWER = "Could not generate prompt."

FRAME_ROLES = {
    1: "FRAME 1 (START): Establish the scene, the character and the outfit with subtle, confident movement.",
    2: "FRAME 2 (CONTINUATION): Continue naturally from the previous clip while the character performs the main action.",
    3: "FRAME 3 (EMOTION/REACTION): Close-up or reaction shot that highlights the key emotion and eye contact.",
}


def clip_window(frame_index: int) -> str:
    """Return the time window covered by a frame, e.g. ``8s to 16s``."""
    start = (frame_index - 1) * CLIP_SECONDS
    return f"{start}s to {start + CLIP_SECONDS}s"


def frame_role(frame_index: int) -> str:
    return FRAME_ROLES.get(
        frame_index,
        f"FRAME {frame_index} (PROGRESSION): A calm, resolving shot or a new action beat.",
    )


def fallback_video_prompt(options: VideoPromptOptions, frame_index: int = 1) -> str:
    """Fixed prompt used when derivation fails."""
    if frame_index <= 1:
        return f"Cinematic video of {options.category} scene."
    return f"Continuation video frame {frame_index}."


def build_instruction(options: VideoPromptOptions, frame_index: int = 1) -> str:
    """Build the instruction sent alongside the frame image."""
    language = options.language or "English"
    dialogue = (options.audio_context or "").strip()

    lines = [
        "You write video generation prompts for photorealistic human characters.",
        f"Analyze the attached image and describe an exact {CLIP_SECONDS}-second clip ({clip_window(frame_index)}).",
        "",
        f"OUTPUT LANGUAGE: {language}. Write the entire prompt in {language}.",
        f"CATEGORY: {options.category}. Choose voice tone, action and camera to fit it.",
        f"ASPECT RATIO: {options.aspect_ratio.value}.",
        "",
        "Requirements:",
        f"1. Duration: a clip of exactly {CLIP_SECONDS} seconds.",
        "2. Identity: strictly preserve face, hair and body from the input image.",
    ]
    if dialogue:
        lines.append("3. Lip-sync: mouth movement must match the enhanced dialogue below.")
    else:
        lines.append("3. Lip-sync: mouth closed or natural breathing, no speech.")
    lines += [
        "4. Movement: fluid, human-like motion without robotic stiffness.",
        "5. Camera: cinematic lighting, high dynamic range.",
        f"6. Scene: {frame_role(frame_index)}",
    ]
    if options.product_image is not None:
        lines.append("7. Product: the second image is the product; keep it consistent and naturally held.")

    if dialogue:
        lines += [
            "",
            f'DIALOGUE (rough input): "{dialogue}"',
            f"Polish it into natural screenplay dialogue in {language}, add emotion cues such as "
            "[Sighs] or [Whispers], and describe pitch, pace and tone of the voice.",
        ]

    lines += [
        "",
        "Answer with a single detailed paragraph covering subject, action over the clip, "
        "camera angle, lighting and audio.",
    ]
    return "\n".join(lines)


class VideoPromptDeriver:
    """Derives video prompts from frame images with a text backend."""

    def __init__(self, client: TextGenerator, retry_policy: Optional[RetryPolicy] = None):
        """Initialize the deriver.

        Args:
            client: Text backend able to read images
            retry_policy: Backoff for transient failures (default policy if omitted)
        """
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy()

    def derive(
        self,
        image: ImageRef,
        options: VideoPromptOptions,
        frame_index: int = 1,
    ) -> str:
        """Derive the video prompt for ``image`` playing as frame ``frame_index``.

        Raises:
            GenerationError: If the text backend fails after retries
        """
        images = [image]
        if options.product_image is not None:
            images.append(options.product_image)

        instruction = build_instruction(options, frame_index)
        logger.info(f"Deriving video prompt for frame {frame_index} ({options.language})")

        text = self.retry_policy.call(
            lambda: self.client.generate_text(
                instruction + "\n\nBased on the attached image, generate the video prompt.",
                images=images,
            )
        )
        return text.strip() or EMPTY_ANSWER

    def derive_or_fallback(
        self,
        image: ImageRef,
        options: VideoPromptOptions,
        frame_index: int = 1,
    ) -> str:
        """Like ``derive`` but never raises; failures yield the fallback text."""
        try:
            return self.derive(image, options, frame_index)
        except Exception as e:
            logger.warning(f"Video prompt derivation failed for frame {frame_index}, using fallback: {e}")
            return fallback_video_prompt(options, frame_index)

    def derive_continuation(self, frame: Frame, options: VideoPromptOptions) -> str:
        """Derive the prompt for the next clip, using ``frame`` as the context image."""
        if options.audio_context is None and frame.audio_context:
            options = options.model_copy(update={"audio_context": frame.audio_context})
        return self.derive(frame.image, options, frame_index=frame.frame_index + 1)
