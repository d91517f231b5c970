"""Tests for the command-line interface."""

import json
import logging

import pytest
from typer.testing import CliRunner

from scene_forge import __version__, cli
from scene_forge.errors import BlockedError

from conftest import FakeImageClient, FakeTextClient

runner = CliRunner()

PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR"


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def fake_backends(monkeypatch):
    image_client = FakeImageClient()
    monkeypatch.setattr(cli, "create_image_client", lambda config: image_client)
    monkeypatch.setattr(cli, "create_text_client", lambda config: FakeTextClient("A slow pan."))
    return image_client


def write_plan(tmp_path, body):
    (tmp_path / "model.png").write_bytes(PNG_BYTES)
    path = tmp_path / "plan.yaml"
    path.write_text(body)
    return path


class TestBasics:
    def test_version(self):
        result = runner.invoke(cli.app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_init_writes_config(self, tmp_path):
        result = runner.invoke(cli.app, ["init"])
        assert result.exit_code == 0
        assert (tmp_path / "config.yaml").read_text() == cli.DEFAULT_CONFIG

    def test_init_refuses_to_overwrite(self, tmp_path):
        (tmp_path / "config.yaml").write_text("output_dir: ./mine\n")
        result = runner.invoke(cli.app, ["init"])
        assert result.exit_code == 1
        assert (tmp_path / "config.yaml").read_text() == "output_dir: ./mine\n"


class TestRun:
    def test_run_writes_frames_and_summary(self, tmp_path, fake_backends):
        plan = write_plan(
            tmp_path,
            "kind: character\n"
            "scene_id: hero\n"
            "pacing_seconds: 0\n"
            "image: model.png\n"
            "video_prompt:\n"
            "  category: Fashion\n"
            "steps:\n"
            "  - At the beach.\n",
        )
        out = tmp_path / "out"

        result = runner.invoke(cli.app, ["run", str(plan), "-o", str(out)])

        assert result.exit_code == 0, result.output
        assert (out / "hero" / "frame_01.png").exists()
        assert (out / "hero" / "frame_01.txt").read_text() == "A slow pan."
        summary = json.loads((out / "batch.json").read_text())
        assert summary["status"] == "completed"
        assert summary["steps"][0]["ok"] is True
        assert summary["steps"][0]["video_prompt"] == "A slow pan."

    def test_run_fails_when_nothing_generated(self, tmp_path, fake_backends):
        fake_backends.script = {"Extract the hat.": [BlockedError("SAFETY")]}
        plan = write_plan(
            tmp_path,
            "kind: extraction\n"
            "single_target: true\n"
            "image: model.png\n"
            "steps:\n"
            "  - Extract the hat.\n",
        )
        out = tmp_path / "out"

        result = runner.invoke(cli.app, ["run", str(plan), "-o", str(out)])

        assert result.exit_code == 1
        summary = json.loads((out / "batch.json").read_text())
        assert summary["status"] == "failed_empty"
        assert "SAFETY" in summary["error"]

    def test_continuation_with_seed_frame(self, tmp_path, fake_backends):
        plan = write_plan(
            tmp_path,
            "kind: continuation\n"
            "scene_id: hero\n"
            "pacing_seconds: 0\n"
            "steps:\n"
            "  - prompt: Turn around.\n"
            "    depends_on_previous: true\n",
        )
        out = tmp_path / "out"

        result = runner.invoke(
            cli.app, ["run", str(plan), "-o", str(out), "--seed-frame", str(tmp_path / "model.png")]
        )

        assert result.exit_code == 0, result.output
        assert fake_backends.calls[0].primary_image.to_bytes() == PNG_BYTES
        assert not (out / "hero" / "frame_01.png").exists()
        assert (out / "hero" / "frame_02.png").exists()

    def test_step_without_prompt_is_invalid_plan(self, tmp_path, fake_backends):
        plan = write_plan(tmp_path, "kind: variants\nsteps:\n  - label: x\n")

        result = runner.invoke(cli.app, ["run", str(plan), "-o", str(tmp_path / "out")])

        assert result.exit_code == 1
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert "Invalid plan" in result.output
        assert fake_backends.calls == []

    def test_invalid_plan(self, tmp_path, fake_backends):
        result = runner.invoke(cli.app, ["run", str(tmp_path / "missing.yaml"), "-o", str(tmp_path / "out")])
        assert result.exit_code == 1
        assert "Invalid plan" in result.output
