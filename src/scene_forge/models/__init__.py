"""Data models for the Scene-Forge pipeline."""

from .schemas import (
      AspectRatio,
      BatchKind,
      BatchOutcome,
      BatchPlan,
      BatchStatus,
      BatchStep,
      Frame,
      GenerationRequest,
      GenerationResult,
      ImageRef,
      SceneState,
      StepOutcome,
      VideoPromptOptions,
  )

__all__ = [
    "AspectRatio",
    "ImageRef",
    "GenerationRequest",
    "GenerationResult",
    "Frame",
    "SceneState",
    "VideoPromptOptions",
    "BatchKind",
    "BatchStatus",
    "BatchStep",
    "BatchPlan",
    "StepOutcome",
    "BatchOutcome",
]
