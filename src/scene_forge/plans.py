"""Builders for the application's batch plans.

Prompt wording comes from the caller; these helpers only arrange prompts,
images and options into ordered steps.
"""

import logging
import random
import uuid
from pathlib import Path
from typing import Mapping, Optional, Sequence

import yaml

from .models.schemas import (
    AspectRatio,
    BatchKind,
    BatchPlan,
    BatchStep,
    ImageRef,
    VideoPromptOptions,
)

logger = logging.getLogger(__name__)


def _labels(labels: Optional[Sequence[str]], count: int) -> list[Optional[str]]:
    if labels is None:
        return [None] * count
    if len(labels) != count:
        raise ValueError(f"Expected {count} labels, got {len(labels)}")
    return list(labels)


def fixed_plan(
    prompts: Sequence[str],
    primary_image: Optional[ImageRef] = None,
    auxiliary_images: Sequence[ImageRef] = (),
    labels: Optional[Sequence[str]] = None,
    aspect_ratio: AspectRatio = AspectRatio.SQUARE,
    kind: BatchKind = BatchKind.VARIANTS,
    scene_id: Optional[str] = None,
    pacing_seconds: Optional[float] = None,
) -> BatchPlan:
    """One step per prompt, all against the same input images, in one scene."""
    steps = [
        BatchStep(
            prompt=prompt,
            label=label,
            primary_image=primary_image,
            auxiliary_images=tuple(auxiliary_images),
        )
        for prompt, label in zip(prompts, _labels(labels, len(prompts)))
    ]
    plan_kwargs = {"scene_id": scene_id} if scene_id else {}
    return BatchPlan(
        kind=kind,
        steps=steps,
        aspect_ratio=aspect_ratio,
        pacing_seconds=pacing_seconds,
        **plan_kwargs,
    )


def variant_plan(
    image: ImageRef,
    prompts: Sequence[str],
    labels: Optional[Sequence[str]] = None,
    aspect_ratio: AspectRatio = AspectRatio.SQUARE,
    scene_id: Optional[str] = None,
) -> BatchPlan:
    """Style variants of one source image (e.g. color, material, redesign)."""
    return fixed_plan(
        prompts,
        primary_image=image,
        labels=labels,
        aspect_ratio=aspect_ratio,
        kind=BatchKind.VARIANTS,
        scene_id=scene_id,
    )


def randomized_plan(
    templates: Sequence[BatchStep],
    choices: Mapping[str, Sequence[str]],
    rng: Optional[random.Random] = None,
    fixed: Optional[Mapping[str, str]] = None,
    aspect_ratio: AspectRatio = AspectRatio.VERTICAL,
    scene_id: Optional[str] = None,
) -> BatchPlan:
    """Fill step templates with one random pick per choice key.

    Every key is drawn once per batch, so all steps share the same picks
    (the same top, the same shoes, ...). Templates use ``str.format`` fields.

    Args:
        templates: Steps whose prompts contain ``{key}`` fields
        choices: Candidate values per key
        rng: Random source (an unseeded one if omitted)
        fixed: Values that are not drawn, merged over the picks
        aspect_ratio: Ratio for every step
        scene_id: Target scene

    Returns:
        Plan whose ``scene_metadata["picks"]`` records the draw
    """
    rng = rng or random.Random()
    picks = {}
    for key, values in choices.items():
        if not values:
            raise ValueError(f"No choices for {key!r}")
        picks[key] = rng.choice(list(values))
    picks.update(fixed or {})

    steps = []
    for template in templates:
        try:
            prompt = template.prompt.format(**picks)
        except KeyError as e:
            raise ValueError(f"Template field {e} has no choice") from None
        steps.append(BatchStep.model_validate({**template.model_dump(), "prompt": prompt}))

    logger.debug(f"Randomized picks: {picks}")
    plan_kwargs = {"scene_id": scene_id} if scene_id else {}
    return BatchPlan(
        kind=BatchKind.RANDOM_SET,
        steps=steps,
        aspect_ratio=aspect_ratio,
        scene_metadata={"picks": picks},
        **plan_kwargs,
    )


def extraction_plan(
    image: ImageRef,
    base_prompt: str,
    targets: Sequence[str],
    placeholder: str = "{target}",
    aspect_ratio: AspectRatio = AspectRatio.LANDSCAPE,
    scene_id: Optional[str] = None,
) -> BatchPlan:
    """Extract one item per target from a source image.

    With a single target the plan is single-target: a failure aborts the
    batch and becomes the batch-level error.
    """
    if not targets:
        raise ValueError("At least one extraction target is required")
    if placeholder not in base_prompt:
        raise ValueError(f"Base prompt does not contain placeholder {placeholder!r}")

    steps = [
        BatchStep(
            prompt=base_prompt.replace(placeholder, target),
            label=target,
            primary_image=image,
        )
        for target in targets
    ]
    plan_kwargs = {"scene_id": scene_id} if scene_id else {}
    return BatchPlan(
        kind=BatchKind.EXTRACTION,
        steps=steps,
        aspect_ratio=aspect_ratio,
        single_target=len(steps) == 1,
        **plan_kwargs,
    )


def character_plan(
    prompts: Sequence[str],
    reference_image: Optional[ImageRef] = None,
    product_image: Optional[ImageRef] = None,
    video_options: Optional[VideoPromptOptions] = None,
    labels: Optional[Sequence[str]] = None,
    aspect_ratio: AspectRatio = AspectRatio.VERTICAL,
    scene_ids: Optional[Sequence[str]] = None,
    metadata: Optional[Mapping[str, object]] = None,
) -> BatchPlan:
    """One new scene per prompt, each starting with frame 1.

    The reference image locks identity (primary), the product image is an
    auxiliary input. Video prompts are derived for every frame unless
    ``video_options`` is None.
    """
    if scene_ids is None:
        scene_ids = [f"scene-{uuid.uuid4().hex[:12]}" for _ in prompts]
    if len(scene_ids) != len(prompts):
        raise ValueError(f"Expected {len(prompts)} scene ids, got {len(scene_ids)}")

    if video_options is not None:
        video_options = video_options.model_copy(
            update={"product_image": product_image, "aspect_ratio": aspect_ratio}
        )
    auxiliary = (product_image,) if product_image else ()

    steps = [
        BatchStep(
            prompt=prompt,
            label=label,
            scene_id=scene_id,
            primary_image=reference_image,
            auxiliary_images=auxiliary,
            video_prompt=video_options,
        )
        for prompt, label, scene_id in zip(prompts, _labels(labels, len(prompts)), scene_ids)
    ]
    return BatchPlan(
        kind=BatchKind.CHARACTER,
        steps=steps,
        scene_id=scene_ids[0],
        aspect_ratio=aspect_ratio,
        scene_metadata=dict(metadata or {}, aspect_ratio=aspect_ratio.value),
    )


def continuation_plan(
    scene_id: str,
    prompts: Sequence[str],
    product_image: Optional[ImageRef] = None,
    video_options: Optional[VideoPromptOptions] = None,
    aspect_ratio: AspectRatio = AspectRatio.VERTICAL,
) -> BatchPlan:
    """Append frames to an existing scene, each continuing from the latest frame."""
    if video_options is not None:
        video_options = video_options.model_copy(
            update={"product_image": product_image, "aspect_ratio": aspect_ratio}
        )
    auxiliary = (product_image,) if product_image else ()

    steps = [
        BatchStep(
            prompt=prompt,
            auxiliary_images=auxiliary,
            depends_on_previous=True,
            video_prompt=video_options,
        )
        for prompt in prompts
    ]
    return BatchPlan(
        kind=BatchKind.CONTINUATION,
        steps=steps,
        scene_id=scene_id,
        aspect_ratio=aspect_ratio,
    )


def _image(value: Optional[str], base_dir: Path) -> Optional[ImageRef]:
    if not value:
        return None
    path = Path(value)
    if not path.is_absolute():
        path = base_dir / path
    return ImageRef.from_path(path)


def _aspect_ratio(value):
    # YAML 1.1 reads an unquoted 16:9 as the base-60 integer 969
    if isinstance(value, int) and not isinstance(value, bool):
        return f"{value // 60}:{value % 60}"
    return value


def plan_from_dict(data: Mapping, base_dir: Path | str = ".") -> BatchPlan:
    """Build a plan from its YAML/JSON form.

    Image fields are file paths, resolved against ``base_dir``. Top-level
    ``image``, ``auxiliary_images`` and ``video_prompt`` are defaults for
    every step that does not set its own.

    Raises:
        FileNotFoundError: If a referenced image doesn't exist
        ValueError: If the plan is invalid
    """
    base_dir = Path(base_dir)
    default_image = _image(data.get("image"), base_dir)
    default_aux = tuple(_image(p, base_dir) for p in data.get("auxiliary_images") or [])
    default_video = data.get("video_prompt")

    steps = []
    for number, raw in enumerate(data.get("steps") or [], start=1):
        if isinstance(raw, str):
            raw = {"prompt": raw}
        if not isinstance(raw, Mapping) or "prompt" not in raw:
            raise ValueError(f"Step {number} must be a prompt string or a mapping with 'prompt'")
        depends = bool(raw.get("depends_on_previous", False))

        primary = _image(raw.get("image"), base_dir)
        if primary is None and not depends:
            primary = default_image

        aux = raw.get("auxiliary_images")
        auxiliary = tuple(_image(p, base_dir) for p in aux) if aux is not None else default_aux

        video = raw.get("video_prompt", default_video)
        video_options = None
        if video:
            video = dict(video) if isinstance(video, Mapping) else {}
            product = _image(video.pop("product_image", None), base_dir)
            video_options = VideoPromptOptions(product_image=product, **video)

        steps.append(
            BatchStep(
                prompt=raw["prompt"],
                label=raw.get("label"),
                scene_id=raw.get("scene_id"),
                primary_image=primary,
                auxiliary_images=auxiliary,
                aspect_ratio=_aspect_ratio(raw.get("aspect_ratio")),
                depends_on_previous=depends,
                video_prompt=video_options,
            )
        )

    plan_kwargs = {}
    for key in ("scene_id", "aspect_ratio", "pacing_seconds", "single_target"):
        if data.get(key) is not None:
            plan_kwargs[key] = data[key]
    if "aspect_ratio" in plan_kwargs:
        plan_kwargs["aspect_ratio"] = _aspect_ratio(plan_kwargs["aspect_ratio"])

    return BatchPlan(
        kind=data.get("kind", BatchKind.VARIANTS.value),
        steps=steps,
        scene_metadata=dict(data.get("metadata") or {}),
        **plan_kwargs,
    )


def load_plan_file(path: Path | str) -> BatchPlan:
    """Load a batch plan from a YAML file; image paths are relative to it."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Plan file not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, Mapping):
        raise ValueError(f"Plan file must contain a mapping: {path}")

    return plan_from_dict(data, base_dir=path.parent)
