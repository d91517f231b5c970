"""Command-line interface for Scene-Forge."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import httpx
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .clients import create_image_client, create_text_client
from .config import Config, setup_logging
from .models.schemas import (
    BatchOutcome,
    BatchKind,
    Frame,
    GenerationResult,
    ImageRef,
    SceneState,
    VideoPromptOptions,
)
from .orchestrator import BatchOrchestrator
from .plans import load_plan_file
from .retry import RetryPolicy
from .tracker import SceneTracker
from .video_prompts import VideoPromptDeriver

app = typer.Typer(
    name="scene-forge",
    help="Batched multimodal image generation with progressive scene output",
    add_completion=False,
)
console = Console()
logger = logging.getLogger(__name__)

DEFAULT_CONFIG = """# Scene-Forge Configuration

provider:
  provider: "google"          # text provider for video prompts: google or openrouter
  api_key: "${GEMINI_API_KEY}"
  image_model: "gemini-2.5-flash-image"
  text_model: "gemini-2.5-flash"
  safety_threshold: "BLOCK_ONLY_HIGH"
  # request_timeout: 120      # seconds; unset means no timeout

retry:
  max_attempts: 10
  base_delay: 5.0
  # max_delay: 120
  # jitter: 2.0

pacing:
  variants: 6.0
  random_set: 6.0
  extraction: 6.0
  character: 1.5
  continuation: 2.0

output_dir: "./outputs"

logging:
  level: "INFO"
"""


def _load_config(config: Optional[Path]) -> Config:
    try:
        return Config.load(config)
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        console.print("Run 'scene-forge init' to create a configuration file.")
        raise typer.Exit(1)


def _seed_scene(tracker: SceneTracker, scene_id: str, seed_frame: Path) -> None:
    """Create a completed scene whose frame 1 is an existing image."""
    image = ImageRef.from_path(seed_frame)
    tracker.create_scene(scene_id)
    tracker.append_frame(
        scene_id,
        Frame(frame_index=1, image_data=image.data, mime_type=image.mime_type, prompt=f"seed: {seed_frame.name}"),
    )
    tracker.mark_done(scene_id)


def write_scene(scene: SceneState, output_dir: Path, first_frame: int = 1) -> list[Path]:
    """Write a scene's frames (and video prompts) under ``output_dir/<scene id>``."""
    scene_dir = output_dir / scene.id
    scene_dir.mkdir(parents=True, exist_ok=True)

    written = []
    for frame in scene.frames:
        if frame.frame_index < first_frame:
            continue
        image_path = scene_dir / f"frame_{frame.frame_index:02d}{frame.image.extension}"
        image_path.write_bytes(frame.image.to_bytes())
        written.append(image_path)
        if frame.video_prompt:
            (scene_dir / f"frame_{frame.frame_index:02d}.txt").write_text(frame.video_prompt)
    return written


def summarize(outcome: BatchOutcome) -> dict:
    """JSON-friendly summary of a batch, without image payloads."""
    return {
        "kind": outcome.kind.value,
        "status": outcome.status.value,
        "error": outcome.error,
        "started_at": outcome.started_at.isoformat(),
        "completed_at": outcome.completed_at.isoformat() if outcome.completed_at else None,
        "steps": [
            {
                "index": step.index,
                "scene_id": step.scene_id,
                "label": step.label,
                "ok": step.ok,
                "error": step.error,
                "attempts": step.attempts,
                "video_prompt": step.result.derived_video_prompt if step.result else None,
            }
            for step in outcome.steps
        ],
    }


@app.command()
def run(
    plan_file: Path = typer.Argument(..., help="YAML batch plan"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Output directory for generated files"
    ),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to configuration file"
    ),
    seed_frame: Optional[Path] = typer.Option(
        None, "--seed-frame", help="Existing frame 1 for a continuation plan"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging"
    ),
):
    """Run a batch plan and save every generated image.

    Examples:
        scene-forge run variants.yaml
        scene-forge run next_frames.yaml --seed-frame frame1.png
    """
    cfg = _load_config(config)

    if output is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        output = Path(cfg.output_dir) / timestamp
    output = Path(output)
    output.mkdir(parents=True, exist_ok=True)

    if verbose:
        cfg.logging.level = "DEBUG"
    log_file = output / "batch.log"
    setup_logging(cfg, log_file=log_file)

    try:
        plan = load_plan_file(plan_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Invalid plan: {e}[/red]")
        raise typer.Exit(1)

    tracker = SceneTracker()
    if seed_frame is not None:
        if plan.kind != BatchKind.CONTINUATION:
            console.print("[red]--seed-frame only applies to continuation plans[/red]")
            raise typer.Exit(1)
        _seed_scene(tracker, plan.scene_id, seed_frame)

    console.print(Panel(f"[bold]Scene-Forge v{__version__}[/bold]"))
    console.print(f"Plan: {plan_file} ({plan.kind.value}, {len(plan.steps)} step(s))")
    console.print(f"Image model: {cfg.provider.image_model}")
    console.print(f"Output: {output}")
    console.print()

    try:
        orchestrator = BatchOrchestrator(
            image_client=create_image_client(cfg),
            tracker=tracker,
            config=cfg,
            text_client=create_text_client(cfg),
        )
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    def _progress(results: list[GenerationResult]) -> None:
        console.print(f"  [green]Step done[/green] ({len(results)} result(s) so far)")

    outcome = orchestrator.run_batch(plan, on_step_complete=_progress)

    first_frame = 2 if seed_frame is not None else 1
    for scene_id in plan.scene_ids():
        write_scene(tracker.get(scene_id), output, first_frame=first_frame)
    (output / "batch.json").write_text(json.dumps(summarize(outcome), indent=2))

    table = Table(show_header=True, header_style="bold")
    table.add_column("#")
    table.add_column("Scene")
    table.add_column("Step")
    table.add_column("Status")
    table.add_column("Attempts")
    for step in outcome.steps:
        status = "[green]OK[/green]" if step.ok else f"[red]FAIL[/red] {(step.error or '')[:60]}"
        table.add_row(str(step.index + 1), step.scene_id, step.label or "", status, str(step.attempts))
    console.print(table)

    console.print(f"Status: {outcome.status.value}")
    if outcome.error:
        console.print(f"[red]{outcome.error}[/red]")

    raise typer.Exit(0 if outcome.results else 1)


@app.command("video-prompt")
def video_prompt(
    image: Path = typer.Argument(..., help="Frame image to describe"),
    category: str = typer.Option("Cinematic", "--category", help="Content category"),
    frame: int = typer.Option(1, "--frame", min=1, help="Frame index (8 seconds per frame)"),
    language: str = typer.Option("English", "--language", "-l", help="Output language"),
    audio: Optional[str] = typer.Option(None, "--audio", help="Rough dialogue for lip-sync"),
    product: Optional[Path] = typer.Option(None, "--product", help="Product image"),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to configuration file"
    ),
):
    """Derive a video generation prompt from an existing image."""
    cfg = _load_config(config)
    setup_logging(cfg)

    try:
        options = VideoPromptOptions(
            category=category,
            language=language,
            audio_context=audio,
            product_image=ImageRef.from_path(product) if product else None,
        )
        deriver = VideoPromptDeriver(create_text_client(cfg), RetryPolicy.from_config(cfg.retry))
        text = deriver.derive(ImageRef.from_path(image), options, frame_index=frame)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(text)


@app.command()
def init(
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite existing config file"
    ),
):
    """Initialize a new configuration file.

    Creates a config.yaml file in the current directory with
    default settings that you can customize.
    """
    config_path = Path("config.yaml")

    if config_path.exists() and not force:
        console.print(f"[yellow]Config file already exists: {config_path}[/yellow]")
        console.print("Use --force to overwrite.")
        raise typer.Exit(1)

    config_path.write_text(DEFAULT_CONFIG)

    console.print(f"[green]Created config file: {config_path}[/green]")
    console.print("\nNext steps:")
    console.print("1. Set GEMINI_API_KEY (or OPENROUTER_API_KEY for text prompts)")
    console.print("2. Write a batch plan YAML")
    console.print("3. Run: scene-forge run plan.yaml")


def _check_endpoint(url: str, headers: dict) -> tuple[bool, str]:
    try:
        resp = httpx.get(url, headers=headers, timeout=5)
    except httpx.HTTPError as e:
        return False, f"Not reachable: {e.__class__.__name__}"
    if resp.status_code == 200:
        return True, url
    return False, f"Status: {resp.status_code}"


@app.command()
def doctor():
    """Validate your Scene-Forge setup.

    Checks the configuration file, API keys and provider reachability.
    """
    console.print(Panel("[bold]Scene-Forge Doctor[/bold]"))

    table = Table(show_header=True, header_style="bold")
    table.add_column("Check")
    table.add_column("Status")
    table.add_column("Details")

    all_ok = True

    config_path = Config.find_config()
    cfg = None
    if config_path:
        try:
            cfg = Config.from_yaml(config_path)
            table.add_row("Config file", "[green]OK[/green]", str(config_path))
        except Exception as e:
            table.add_row("Config valid", "[red]FAIL[/red]", str(e)[:50])
            all_ok = False
    else:
        cfg = Config()
        table.add_row("Config file", "[yellow]DEFAULTS[/yellow]", "Run 'scene-forge init' to customize")

    if cfg:
        checks = [("google", "Gemini")]
        if cfg.provider.provider == "openrouter":
            checks.append(("openrouter", "OpenRouter"))

        for provider, name in checks:
            api_key = cfg.provider.resolve_api_key(provider)
            if not api_key:
                table.add_row(f"{name} API Key", "[red]MISSING[/red]", f"Set {'GEMINI' if provider == 'google' else 'OPENROUTER'}_API_KEY")
                all_ok = False
                continue

            masked = api_key[:8] + "..." + api_key[-4:]
            table.add_row(f"{name} API Key", "[green]OK[/green]", masked)

            if provider == "google":
                ok, details = _check_endpoint(
                    "https://generativelanguage.googleapis.com/v1beta/models",
                    {"x-goog-api-key": api_key},
                )
            else:
                ok, details = _check_endpoint(
                    f"{cfg.provider.openrouter_base_url.rstrip('/')}/models",
                    {"Authorization": f"Bearer {api_key}"},
                )
            table.add_row(name, "[green]OK[/green]" if ok else "[red]FAIL[/red]", details)
            all_ok = all_ok and ok

        timeout = cfg.provider.request_timeout
        table.add_row(
            "Request timeout",
            "[green]OK[/green]" if timeout else "[yellow]NONE[/yellow]",
            f"{timeout}s" if timeout else "No timeout configured",
        )

    console.print(table)

    if all_ok:
        console.print("\n[bold green]All checks passed![/bold green]")
        raise typer.Exit(0)
    else:
        console.print("\n[bold red]Some checks failed. Please fix the issues above.[/bold red]")
        raise typer.Exit(1)


@app.command()
def version():
    """Show version information."""
    console.print(f"Scene-Forge v{__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
