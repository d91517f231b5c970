"""Shared fakes for Scene-Forge tests: no network, no real sleeping."""

from typing import Optional

import pytest

from scene_forge.clients.base import ImageGenerator, TextGenerator
from scene_forge.config import Config
from scene_forge.models.schemas import GenerationRequest, GenerationResult, ImageRef
from scene_forge.tracker import SceneTracker


def make_image(tag: str = "img", mime_type: str = "image/png") -> ImageRef:
    return ImageRef.from_bytes(tag.encode("utf-8"), mime_type)


def output_for(prompt: str) -> str:
    """Base64 payload the fake image client returns for a prompt."""
    return make_image(f"out:{prompt}").data


class FakeImageClient(ImageGenerator):
    """Scripted image backend.

    ``script`` maps a prompt to a list of behaviours consumed one per call:
    an exception instance is raised, anything else means success.
    """

    def __init__(self, script: Optional[dict] = None):
        self.script = {prompt: list(behaviours) for prompt, behaviours in (script or {}).items()}
        self.calls: list[GenerationRequest] = []

    def generate(self, request: GenerationRequest) -> GenerationResult:
        self.calls.append(request)
        queue = self.script.get(request.prompt)
        if queue:
            behaviour = queue.pop(0)
            if isinstance(behaviour, Exception):
                raise behaviour
        return GenerationResult(image_data=output_for(request.prompt), source_prompt=request.prompt)

    def calls_for(self, prompt: str) -> int:
        return sum(1 for request in self.calls if request.prompt == prompt)


class FakeTextClient(TextGenerator):
    """Text backend returning canned answers (or raising scripted errors)."""

    def __init__(self, answer: str = "A slow dolly-in on the character.", errors: Optional[list] = None):
        self.answer = answer
        self.errors = list(errors or [])
        self.calls: list[dict] = []

    def generate_text(self, prompt, images=None, system=None) -> str:
        self.calls.append({"prompt": prompt, "images": images, "system": system})
        if self.errors:
            raise self.errors.pop(0)
        return self.answer


class SleepRecorder:
    """Drop-in for time.sleep that records instead of sleeping."""

    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def tracker() -> SceneTracker:
    return SceneTracker()


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep real keys, config files and SCENE_FORGE_* overrides out of tests."""
    for var in ("GEMINI_API_KEY", "GOOGLE_API_KEY", "OPENROUTER_API_KEY"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
