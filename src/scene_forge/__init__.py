"""Scene-Forge: batched multimodal image generation with progressive scene state."""

__version__ = "0.1.0"
