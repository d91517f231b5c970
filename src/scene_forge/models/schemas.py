"""Pydantic data models for the Scene-Forge generation pipeline."""

import base64
import binascii
import uuid
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MEDIA_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}

EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


class AspectRatio(str, Enum):
    """Aspect ratios accepted by the image model."""

    SQUARE = "1:1"
    LANDSCAPE = "4:3"
    PORTRAIT = "3:4"
    WIDESCREEN = "16:9"
    VERTICAL = "9:16"


class ImageRef(BaseModel):
    """Base64-encoded image bytes plus their declared media type."""

    model_config = ConfigDict(frozen=True)

    data: str = Field(..., description="Base64-encoded image bytes")
    mime_type: str = Field(..., description="Media type, e.g. image/png")

    @field_validator("data")
    @classmethod
    def validate_data(cls, v: str) -> str:
        """Reject empty or non-base64 payloads."""
        if not v:
            raise ValueError("Image data must not be empty")
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("Image data is not valid base64")
        return v

    @field_validator("mime_type")
    @classmethod
    def validate_mime_type(cls, v: str) -> str:
        """Require a type/subtype media type."""
        v = v.strip().lower()
        if "/" not in v:
            raise ValueError(f"Invalid mime type: {v!r}")
        return v

    @classmethod
    def from_bytes(cls, raw: bytes, mime_type: str = "image/png") -> "ImageRef":
        return cls(data=base64.b64encode(raw).decode("utf-8"), mime_type=mime_type)

    @classmethod
    def from_path(cls, path: Path | str) -> "ImageRef":
        """Load an image file, inferring the media type from its suffix.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the suffix is not a supported image format
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Image not found: {path}")

        media_type = MEDIA_TYPES.get(path.suffix.lower())
        if media_type is None:
            raise ValueError(f"Unsupported format {path.suffix}: {path.name}")

        return cls.from_bytes(path.read_bytes(), media_type)

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.data)

    @property
    def extension(self) -> str:
        return EXTENSIONS.get(self.mime_type, ".png")


class GenerationRequest(BaseModel):
    """One call to the remote image model. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    prompt: str = Field(..., description="Prompt text sent after the image parts")
    primary_image: Optional[ImageRef] = Field(None, description="Main reference image")
    auxiliary_images: tuple[ImageRef, ...] = Field(
        default=(), description="Extra reference images, in order"
    )
    aspect_ratio: AspectRatio = Field(default=AspectRatio.SQUARE)
    provider_options: dict[str, Any] = Field(
        default_factory=dict, description="Opaque per-provider overrides (e.g. model)"
    )

    @field_validator("prompt")
    @classmethod
    def validate_prompt(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Prompt must not be empty")
        return v

    def images(self) -> list[ImageRef]:
        """All image parts in send order: primary first, then auxiliaries."""
        images = [self.primary_image] if self.primary_image else []
        images.extend(self.auxiliary_images)
        return images


class GenerationResult(BaseModel):
    """Successful outcome of a GenerationRequest."""

    model_config = ConfigDict(frozen=True)

    image_data: str = Field(..., description="Base64-encoded generated image")
    mime_type: str = Field(default="image/png")
    source_prompt: str = Field(..., description="Prompt that produced the image")
    derived_video_prompt: Optional[str] = Field(None, description="Video prompt derived from the image")

    @property
    def image(self) -> ImageRef:
        return ImageRef(data=self.image_data, mime_type=self.mime_type)


class Frame(BaseModel):
    """One generated image belonging to a scene, in sequence order."""

    model_config = ConfigDict(frozen=True)

    frame_index: int = Field(..., ge=1, description="1-based position within the scene")
    image_data: str
    mime_type: str = "image/png"
    prompt: str
    video_prompt: Optional[str] = None
    audio_context: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)

    @classmethod
    def from_result(
        cls,
        result: GenerationResult,
        frame_index: int,
        audio_context: Optional[str] = None,
    ) -> "Frame":
        return cls(
            frame_index=frame_index,
            image_data=result.image_data,
            mime_type=result.mime_type,
            prompt=result.source_prompt,
            video_prompt=result.derived_video_prompt,
            audio_context=audio_context,
        )

    @property
    def image(self) -> ImageRef:
        return ImageRef(data=self.image_data, mime_type=self.mime_type)


class SceneState(BaseModel):
    """Read-only snapshot of a scene's progressive output."""

    model_config = ConfigDict(frozen=True)

    id: str
    frames: tuple[Frame, ...] = ()
    is_in_progress: bool = True
    last_error: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def latest_frame(self) -> Optional[Frame]:
        return self.frames[-1] if self.frames else None


class VideoPromptOptions(BaseModel):
    """Inputs for deriving a text video prompt from a generated frame."""

    model_config = ConfigDict(frozen=True)

    category: str = Field(default="Cinematic", description="Content category, e.g. Fashion")
    language: str = Field(default="English", description="Output language of the prompt")
    audio_context: Optional[str] = Field(None, description="Rough dialogue to polish for lip-sync")
    product_image: Optional[ImageRef] = Field(None, description="Product shown alongside the frame")
    aspect_ratio: AspectRatio = Field(default=AspectRatio.SQUARE)


class BatchKind(str, Enum):
    """The batch types the application runs."""

    VARIANTS = "variants"
    RANDOM_SET = "random_set"
    EXTRACTION = "extraction"
    CHARACTER = "character"
    CONTINUATION = "continuation"


class BatchStatus(str, Enum):
    """Lifecycle of a batch: Idle -> Running -> terminal."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED_EMPTY = "failed_empty"


class BatchStep(BaseModel):
    """A single generation request within a batch."""

    model_config = ConfigDict(frozen=True)

    prompt: str
    label: Optional[str] = Field(None, description="Human-readable name of the step")
    scene_id: Optional[str] = Field(None, description="Target scene; defaults to the plan's scene")
    primary_image: Optional[ImageRef] = None
    auxiliary_images: tuple[ImageRef, ...] = ()
    aspect_ratio: Optional[AspectRatio] = Field(None, description="Overrides the plan's ratio")
    depends_on_previous: bool = Field(
        False, description="Use the scene's latest frame as the primary image"
    )
    video_prompt: Optional[VideoPromptOptions] = Field(
        None, description="Derive a video prompt from the generated image"
    )

    @field_validator("prompt")
    @classmethod
    def validate_prompt(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Step prompt must not be empty")
        return v

    @model_validator(mode="after")
    def validate_inputs(self) -> "BatchStep":
        if self.depends_on_previous and self.primary_image is not None:
            raise ValueError("A dependent step takes its primary image from the previous frame")
        return self


def _new_scene_id() -> str:
    return f"scene-{uuid.uuid4().hex[:12]}"


class BatchPlan(BaseModel):
    """Ordered list of generation steps run as one logical operation."""

    kind: BatchKind
    steps: list[BatchStep] = Field(..., min_length=1)
    scene_id: str = Field(default_factory=_new_scene_id)
    aspect_ratio: AspectRatio = AspectRatio.SQUARE
    pacing_seconds: Optional[float] = Field(
        None, ge=0, description="Pause between steps; defaults from config by kind"
    )
    single_target: bool = Field(
        False, description="One expected output: a failure aborts the batch"
    )
    scene_metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_cardinality(self) -> "BatchPlan":
        if self.single_target and len(self.steps) != 1:
            raise ValueError("A single-target plan must have exactly one step")
        return self

    def scene_for(self, step: BatchStep) -> str:
        return step.scene_id or self.scene_id

    def scene_ids(self) -> list[str]:
        """Scene ids touched by this plan, in first-use order."""
        seen: dict[str, None] = {}
        for step in self.steps:
            seen.setdefault(self.scene_for(step), None)
        return list(seen)

    def last_step_by_scene(self) -> dict[str, int]:
        return {self.scene_for(step): index for index, step in enumerate(self.steps)}


class StepOutcome(BaseModel):
    """Result of one executed step: a generation result or a diagnostic."""

    index: int
    scene_id: str
    prompt: str
    label: Optional[str] = None
    result: Optional[GenerationResult] = None
    error: Optional[str] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.result is not None


class BatchOutcome(BaseModel):
    """Final (or in-flight) state of a batch run."""

    kind: BatchKind
    status: BatchStatus = BatchStatus.IDLE
    results: list[GenerationResult] = Field(default_factory=list)
    steps: list[StepOutcome] = Field(default_factory=list)
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    @property
    def failed_steps(self) -> list[StepOutcome]:
        return [step for step in self.steps if not step.ok]
