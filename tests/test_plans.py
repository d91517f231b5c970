"""Tests for batch plan builders and YAML plan loading."""

import random

import pytest
from pydantic import ValidationError

from scene_forge.models.schemas import AspectRatio, BatchKind, BatchStep, VideoPromptOptions
from scene_forge.plans import (
    character_plan,
    continuation_plan,
    extraction_plan,
    fixed_plan,
    load_plan_file,
    plan_from_dict,
    randomized_plan,
    variant_plan,
)

from conftest import make_image

PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR"


# ---------------------------------------------------------------------------
# Fixed prompt lists
# ---------------------------------------------------------------------------


class TestFixedPlans:
    def test_variant_plan_one_step_per_prompt(self):
        image = make_image("product")
        plan = variant_plan(image, ["Recolor it.", "Make it chrome."], labels=["color", "material"], scene_id="p1")

        assert plan.kind == BatchKind.VARIANTS
        assert [s.prompt for s in plan.steps] == ["Recolor it.", "Make it chrome."]
        assert [s.label for s in plan.steps] == ["color", "material"]
        assert all(s.primary_image == image for s in plan.steps)
        assert plan.scene_ids() == ["p1"]
        assert not plan.single_target

    def test_label_count_must_match(self):
        with pytest.raises(ValueError, match="labels"):
            fixed_plan(["a", "b"], labels=["only one"])

    def test_generated_scene_id(self):
        plan = fixed_plan(["a"])
        assert plan.scene_id.startswith("scene-")


# ---------------------------------------------------------------------------
# Randomized sets
# ---------------------------------------------------------------------------


class TestRandomizedPlan:
    TEMPLATES = [
        BatchStep(prompt="Wear the {top} with {shoes}.", label="outfit"),
        BatchStep(prompt="Close-up of the {shoes}.", label="detail"),
    ]
    CHOICES = {"top": ["hoodie", "blazer", "tee"], "shoes": ["boots", "sneakers"]}

    def test_all_steps_share_one_draw(self):
        plan = randomized_plan(self.TEMPLATES, self.CHOICES, rng=random.Random(7), scene_id="r1")

        picks = plan.scene_metadata["picks"]
        assert plan.kind == BatchKind.RANDOM_SET
        assert plan.steps[0].prompt == f"Wear the {picks['top']} with {picks['shoes']}."
        assert plan.steps[1].prompt == f"Close-up of the {picks['shoes']}."
        assert plan.steps[0].label == "outfit"
        assert plan.aspect_ratio == AspectRatio.VERTICAL

    def test_same_seed_same_draw(self):
        first = randomized_plan(self.TEMPLATES, self.CHOICES, rng=random.Random(3))
        second = randomized_plan(self.TEMPLATES, self.CHOICES, rng=random.Random(3))
        assert [s.prompt for s in first.steps] == [s.prompt for s in second.steps]

    def test_fixed_values_are_not_drawn(self):
        plan = randomized_plan(self.TEMPLATES, {"top": ["tee"]}, fixed={"shoes": "loafers"})
        assert plan.steps[0].prompt == "Wear the tee with loafers."

    def test_empty_choices_rejected(self):
        with pytest.raises(ValueError, match="No choices"):
            randomized_plan(self.TEMPLATES, {"top": [], "shoes": ["boots"]})

    def test_blank_filled_prompt_rejected_at_build_time(self):
        templates = [BatchStep(prompt="{pose}")]
        with pytest.raises(ValidationError, match="must not be empty"):
            randomized_plan(templates, {"pose": ["  "]})

    def test_missing_template_field_rejected(self):
        with pytest.raises(ValueError, match="shoes"):
            randomized_plan(self.TEMPLATES, {"top": ["tee"]})


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


class TestExtractionPlan:
    def test_one_target_is_single_target(self):
        plan = extraction_plan(make_image("look"), "Extract the {target} on white.", ["jacket"])
        assert plan.single_target
        assert plan.steps[0].prompt == "Extract the jacket on white."
        assert plan.steps[0].label == "jacket"
        assert plan.aspect_ratio == AspectRatio.LANDSCAPE

    def test_many_targets(self):
        plan = extraction_plan(make_image("look"), "Extract the {target}.", ["jacket", "bag", "shoes"])
        assert not plan.single_target
        assert [s.label for s in plan.steps] == ["jacket", "bag", "shoes"]

    def test_requires_targets(self):
        with pytest.raises(ValueError, match="target"):
            extraction_plan(make_image("look"), "Extract the {target}.", [])

    def test_requires_placeholder(self):
        with pytest.raises(ValueError, match="placeholder"):
            extraction_plan(make_image("look"), "Extract everything.", ["jacket"])


# ---------------------------------------------------------------------------
# Character scenes and continuation
# ---------------------------------------------------------------------------


class TestScenePlans:
    def test_character_plan_scene_per_prompt(self):
        face, bottle = make_image("face"), make_image("bottle")
        plan = character_plan(
            ["at the beach", "in the studio"],
            reference_image=face,
            product_image=bottle,
            video_options=VideoPromptOptions(category="Beauty", language="Spanish"),
        )

        assert plan.kind == BatchKind.CHARACTER
        assert len(set(plan.scene_ids())) == 2
        for step in plan.steps:
            assert step.primary_image == face
            assert step.auxiliary_images == (bottle,)
            assert step.video_prompt.product_image == bottle
            assert step.video_prompt.aspect_ratio == AspectRatio.VERTICAL
            assert step.video_prompt.language == "Spanish"

    def test_character_plan_scene_id_count(self):
        with pytest.raises(ValueError, match="scene ids"):
            character_plan(["a", "b"], scene_ids=["only"])

    def test_continuation_steps_depend_on_previous(self):
        plan = continuation_plan("s1", ["walk", "turn"], product_image=make_image("bottle"))
        assert plan.kind == BatchKind.CONTINUATION
        assert plan.scene_ids() == ["s1"]
        assert all(s.depends_on_previous and s.primary_image is None for s in plan.steps)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestPlanValidation:
    def test_plan_needs_a_step(self):
        with pytest.raises(ValidationError):
            plan_from_dict({"kind": "variants", "steps": []})

    def test_single_target_needs_exactly_one_step(self):
        with pytest.raises(ValidationError, match="exactly one step"):
            plan_from_dict({"kind": "extraction", "single_target": True, "steps": ["a", "b"]})

    def test_dependent_step_cannot_have_primary_image(self):
        with pytest.raises(ValidationError, match="previous frame"):
            BatchStep(prompt="next", primary_image=make_image("x"), depends_on_previous=True)

    def test_blank_prompt_rejected(self):
        with pytest.raises(ValidationError):
            BatchStep(prompt="   ")


# ---------------------------------------------------------------------------
# YAML plans
# ---------------------------------------------------------------------------


class TestPlanFiles:
    @pytest.fixture
    def images(self, tmp_path):
        for name in ("source.png", "top.png", "bottle.png"):
            (tmp_path / name).write_bytes(PNG_BYTES)
        return tmp_path

    def test_defaults_apply_to_steps(self, images):
        plan = plan_from_dict(
            {
                "kind": "random_set",
                "scene_id": "look-1",
                "aspect_ratio": "9:16",
                "image": "source.png",
                "auxiliary_images": ["top.png"],
                "steps": [
                    "Full body shot.",
                    {"prompt": "Detail shot.", "label": "detail", "auxiliary_images": []},
                ],
            },
            base_dir=images,
        )

        assert plan.kind == BatchKind.RANDOM_SET
        assert plan.scene_id == "look-1"
        assert plan.aspect_ratio == AspectRatio.VERTICAL
        assert plan.steps[0].primary_image.to_bytes() == PNG_BYTES
        assert len(plan.steps[0].auxiliary_images) == 1
        assert plan.steps[1].auxiliary_images == ()
        assert plan.steps[1].label == "detail"

    def test_dependent_steps_skip_default_image(self, images):
        plan = plan_from_dict(
            {
                "kind": "continuation",
                "scene_id": "s1",
                "image": "source.png",
                "video_prompt": {"category": "Fashion", "product_image": "bottle.png"},
                "steps": [{"prompt": "walk", "depends_on_previous": True}],
            },
            base_dir=images,
        )

        step = plan.steps[0]
        assert step.primary_image is None
        assert step.video_prompt.category == "Fashion"
        assert step.video_prompt.product_image.mime_type == "image/png"

    def test_load_plan_file(self, images):
        path = images / "plan.yaml"
        path.write_text(
            "kind: extraction\n"
            "image: source.png\n"
            "pacing_seconds: 0\n"
            "single_target: true\n"
            "steps:\n"
            "  - prompt: Extract the jacket.\n"
            "    label: jacket\n"
        )

        plan = load_plan_file(path)

        assert plan.kind == BatchKind.EXTRACTION
        assert plan.single_target
        assert plan.pacing_seconds == 0
        assert plan.steps[0].primary_image is not None

    @pytest.mark.parametrize("step", [{"label": "no prompt"}, 3, ["a", "list"]])
    def test_malformed_step_rejected(self, step):
        with pytest.raises(ValueError, match="Step 2 must be a prompt string or a mapping with 'prompt'"):
            plan_from_dict({"kind": "variants", "steps": ["fine", step]})

    def test_unquoted_ratios_in_yaml(self, tmp_path):
        path = tmp_path / "plan.yaml"
        path.write_text(
            "kind: variants\n"
            "aspect_ratio: 16:9\n"
            "steps:\n"
            "  - prompt: Tall one.\n"
            "    aspect_ratio: 9:16\n"
            "  - Wide one.\n"
        )

        plan = load_plan_file(path)

        assert plan.aspect_ratio == AspectRatio.WIDESCREEN
        assert plan.steps[0].aspect_ratio == AspectRatio.VERTICAL
        assert plan.steps[1].aspect_ratio is None

    def test_missing_plan_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_plan_file(tmp_path / "nope.yaml")

    def test_plan_file_must_be_mapping(self, tmp_path):
        path = tmp_path / "plan.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ValueError, match="mapping"):
            load_plan_file(path)

    def test_missing_image_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            plan_from_dict({"kind": "variants", "image": "missing.png", "steps": ["a"]}, base_dir=tmp_path)
