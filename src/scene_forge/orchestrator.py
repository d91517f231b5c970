"""Batch orchestrator for sequential multi-step image generation.

Runs the steps of a ``BatchPlan`` one at a time, in order, against a remote
image backend. Each step goes through the retry wrapper; a failed step
leaves an empty slot and the batch moves on, except for single-target
plans where the failure aborts the batch. Results land in the
``SceneTracker`` as soon as each step finishes.
"""

import logging
import time
from datetime import datetime
from typing import Callable, Iterator, Optional

from .clients.base import ImageGenerator, TextGenerator
from .config import Config
from .errors import MissingInputError, SceneBusyError
from .models.schemas import (
    BatchKind,
    BatchOutcome,
    BatchPlan,
    BatchStatus,
    BatchStep,
    Frame,
    GenerationRequest,
    GenerationResult,
    StepOutcome,
)
from .retry import RetryPolicy
from .tracker import SceneTracker
from .video_prompts import VideoPromptDeriver

logger = logging.getLogger(__name__)

StepCallback = Callable[[list[GenerationResult]], None]


class BatchOrchestrator:
    """Coordinates batch runs.

    For every plan the orchestrator:
    1. Opens the plan's scenes (creating new ones, reopening finished ones)
    2. Runs each step through the retry wrapper, pausing between steps
    3. Optionally derives a video prompt from each new image
    4. Appends each success to its scene and reports progress
    5. Finalizes every scene and the batch status
    """

    def __init__(
        self,
        image_client: ImageGenerator,
        tracker: Optional[SceneTracker] = None,
        config: Optional[Config] = None,
        text_client: Optional[TextGenerator] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the orchestrator.

        Args:
            image_client: Backend producing images
            tracker: Scene store to populate (a fresh one if omitted)
            config: Application configuration (defaults if omitted)
            text_client: Backend for video prompts; the image client is
                reused when it can also generate text
            sleep: Sleep function for pacing and backoff
        """
        self.config = config or Config()
        self.image_client = image_client
        self.tracker = tracker if tracker is not None else SceneTracker()
        self.sleep = sleep
        self.retry_policy = RetryPolicy.from_config(self.config.retry, sleep=sleep)

        if text_client is None and isinstance(image_client, TextGenerator):
            text_client = image_client
        self.video_prompts = (
            VideoPromptDeriver(text_client, self.retry_policy) if text_client is not None else None
        )

    def pacing_for(self, plan: BatchPlan) -> float:
        if plan.pacing_seconds is not None:
            return plan.pacing_seconds
        return self.config.pacing.for_kind(plan.kind)

    def run_batch(
        self,
        plan: BatchPlan,
        on_step_complete: Optional[StepCallback] = None,
    ) -> BatchOutcome:
        """Run a plan to completion.

        Never raises for step failures: they are recorded in the returned
        outcome and, when nothing succeeded, summarized in ``outcome.error``.

        Args:
            plan: Steps to run
            on_step_complete: Called after each successful step with the
                results accumulated so far, in step order

        Returns:
            Terminal BatchOutcome
        """
        outcome = BatchOutcome(kind=plan.kind)
        results: list[GenerationResult] = []

        for step_outcome in self.iter_batch(plan, outcome):
            if step_outcome.ok:
                results.append(step_outcome.result)
                if on_step_complete:
                    on_step_complete(list(results))

        return outcome

    def iter_batch(
        self,
        plan: BatchPlan,
        outcome: Optional[BatchOutcome] = None,
    ) -> Iterator[StepOutcome]:
        """Run a plan lazily, yielding each step's outcome as it resolves.

        At most one step is in flight: the next step starts only when the
        consumer asks for it. Scenes are finalized even if the consumer
        stops iterating early.

        Args:
            plan: Steps to run
            outcome: Outcome object to fill in (created if omitted)

        Yields:
            One StepOutcome per executed step, in plan order
        """
        if outcome is None:
            outcome = BatchOutcome(kind=plan.kind)

        try:
            opened = self._open_scenes(plan)
        except SceneBusyError as e:
            logger.error(f"Batch refused: {e}")
            outcome.error = str(e)
            self._finish(outcome, BatchStatus.FAILED_EMPTY)
            return

        outcome.status = BatchStatus.RUNNING
        pacing = self.pacing_for(plan)
        last_step = plan.last_step_by_scene()
        produced = {scene_id: 0 for scene_id in opened}
        failures: dict[str, str] = {}

        logger.info(
            f"Starting {plan.kind.value} batch: {len(plan.steps)} step(s), "
            f"{len(opened)} scene(s), pacing {pacing}s"
        )

        try:
            for index, step in enumerate(plan.steps):
                if index > 0 and pacing > 0:
                    self.sleep(pacing)

                step_outcome = self._run_step(plan, index, step)
                outcome.steps.append(step_outcome)
                scene_id = step_outcome.scene_id

                if step_outcome.ok:
                    outcome.results.append(step_outcome.result)
                    produced[scene_id] += 1
                else:
                    failures[scene_id] = step_outcome.error

                if last_step[scene_id] == index:
                    self._close_scene(scene_id, produced[scene_id], failures.get(scene_id))
                    opened.remove(scene_id)

                abort = plan.single_target and not step_outcome.ok
                if abort:
                    action = "Extraction" if plan.kind == BatchKind.EXTRACTION else "Generation"
                    outcome.error = f"{action} failed. {step_outcome.error}"

                yield step_outcome

                if abort:
                    break
        finally:
            for scene_id in opened:
                self._close_scene(scene_id, produced[scene_id], failures.get(scene_id))
            self._finalize(outcome)

    def _open_scenes(self, plan: BatchPlan) -> list[str]:
        scene_ids = plan.scene_ids()
        self.tracker.open_scenes(scene_ids, plan.scene_metadata)
        return scene_ids

    def _close_scene(self, scene_id: str, produced: int, error: Optional[str]) -> None:
        if produced == 0:
            self.tracker.mark_error(scene_id, f"Failed to generate. {error or ''}".strip())
        self.tracker.mark_done(scene_id)
        logger.debug(f"Scene {scene_id} done with {produced} new frame(s)")

    def _run_step(self, plan: BatchPlan, index: int, step: BatchStep) -> StepOutcome:
        """Run one step; every failure is caught and recorded."""
        scene_id = plan.scene_for(step)
        label = step.label or f"step {index + 1}"
        stats: dict = {}

        logger.info(f"[{plan.kind.value}] {label} ({index + 1}/{len(plan.steps)}) -> {scene_id}")

        try:
            request = self._build_request(plan, step, scene_id)
            result = self.retry_policy.call(lambda: self.image_client.generate(request), stats=stats)

            frame_index = len(self.tracker.get(scene_id).frames) + 1
            if step.video_prompt is not None and self.video_prompts is not None:
                video_prompt = self.video_prompts.derive_or_fallback(
                    result.image, step.video_prompt, frame_index
                )
                result = result.model_copy(update={"derived_video_prompt": video_prompt})

            audio_context = step.video_prompt.audio_context if step.video_prompt else None
            self.tracker.append_frame(
                scene_id, Frame.from_result(result, frame_index, audio_context)
            )
        except Exception as e:
            logger.error(f"[{plan.kind.value}] {label} failed: {e}")
            return StepOutcome(
                index=index,
                scene_id=scene_id,
                prompt=step.prompt,
                label=step.label,
                error=str(e) or e.__class__.__name__,
                attempts=stats.get("attempts", 0),
            )

        return StepOutcome(
            index=index,
            scene_id=scene_id,
            prompt=step.prompt,
            label=step.label,
            result=result,
            attempts=stats.get("attempts", 0),
        )

    def _build_request(self, plan: BatchPlan, step: BatchStep, scene_id: str) -> GenerationRequest:
        primary = step.primary_image
        if step.depends_on_previous:
            latest = self.tracker.get(scene_id).latest_frame
            if latest is None:
                raise MissingInputError(f"Scene {scene_id} has no frame to continue from")
            primary = latest.image

        return GenerationRequest(
            prompt=step.prompt,
            primary_image=primary,
            auxiliary_images=step.auxiliary_images,
            aspect_ratio=step.aspect_ratio or plan.aspect_ratio,
        )

    def _finalize(self, outcome: BatchOutcome) -> None:
        succeeded = len(outcome.results)
        if succeeded and succeeded == len(outcome.steps) and outcome.error is None:
            status = BatchStatus.COMPLETED
        elif succeeded:
            status = BatchStatus.PARTIALLY_COMPLETED
        else:
            status = BatchStatus.FAILED_EMPTY
            if outcome.error is None:
                last_error = outcome.steps[-1].error if outcome.steps else "no steps ran"
                outcome.error = f"Generation failed. {last_error}"
        self._finish(outcome, status)

    @staticmethod
    def _finish(outcome: BatchOutcome, status: BatchStatus) -> None:
        outcome.status = status
        outcome.completed_at = datetime.now()
        duration = outcome.completed_at - outcome.started_at
        logger.info(
            f"Batch {outcome.kind.value} {status.value}: {len(outcome.results)}/"
            f"{len(outcome.steps)} step(s) succeeded in {duration.total_seconds():.1f}s"
        )
