"""Tests for prodshot.core.prompt_builder - product prompt optimisation.

Tests cover:
- Description cleaning (technical lines, line limit, parentheticals).
- Prompt assembly order and vocabulary modifiers.
- Colour placement and the ``other`` category noun.
- Log previews.
"""

from __future__ import annotations

import pytest

from prodshot.core.prompt_builder import (
    NEGATIVE_PROMPT,
    clean_description,
    description_preview,
    optimize_prompt,
)


class TestCleanDescription:
    """Listing noise is stripped from descriptions."""

    def test_plain_description_unchanged(self):
        assert clean_description("Red running shoe, mesh upper") == "Red running shoe, mesh upper"

    def test_drops_composition_and_variant_lines(self):
        desc = "Cotton tee\n100% organic cotton\nSizes: S; M; L\nRelaxed fit"
        assert clean_description(desc) == "Cotton tee Relaxed fit"

    def test_drops_print_method_line(self):
        desc = "Poster\nPrint Method: giclee\nMatte finish"
        assert clean_description(desc) == "Poster Matte finish"

    def test_keeps_first_two_lines(self):
        assert clean_description("one\ntwo\nthree") == "one two"

    def test_unescapes_literal_newlines(self):
        assert clean_description("first\\nsecond\\nthird") == "first second"

    def test_removes_parentheticals(self):
        assert clean_description("Desk lamp (LED bulb included)") == "Desk lamp "

    def test_collapses_whitespace(self):
        assert clean_description("Wool   \t scarf") == "Wool scarf"

    def test_blank_lines_ignored(self):
        assert clean_description("\n\nWallet\n\n\nLeather") == "Wallet Leather"


class TestOptimizePrompt:
    """Prompt assembly."""

    def test_prompt_starts_with_base(self):
        result = optimize_prompt("running shoe", category="footwear")
        assert result.prompt.startswith(
            "Professional product photography of running shoe, footwear, "
        )

    def test_color_precedes_description(self):
        result = optimize_prompt("running shoe, mesh upper", color="Red")
        assert "of Red running shoe, mesh upper" in result.prompt

    def test_other_category_renders_as_product(self):
        result = optimize_prompt("gadget", category="other")
        assert result.prompt.startswith("Professional product photography of gadget, product, ")

    def test_modifier_order(self):
        """Angle, then style, then category enhancement, then quality."""
        result = optimize_prompt("shoe", category="footwear", style="urban", angle="top")
        prompt = result.prompt
        angle_at = prompt.index("top-down view")
        style_at = prompt.index("urban environment")
        category_at = prompt.index("footwear photography")
        quality_at = prompt.index("8K resolution")
        assert angle_at < style_at < category_at < quality_at

    def test_ends_with_quality_modifiers(self):
        result = optimize_prompt("shoe")
        assert result.prompt.endswith("sharp focus, photorealistic")

    def test_negative_prompt_is_fixed(self):
        result = optimize_prompt("shoe")
        assert result.negative_prompt == NEGATIVE_PROMPT
        assert "watermark" in result.negative_prompt

    @pytest.mark.parametrize(
        "angle",
        ["front", "side", "back", "top", "bottom", "45_degree", "close_up", "wide", "eye_level"],
    )
    def test_every_angle_has_a_modifier(self, angle):
        assert optimize_prompt("shoe", angle=angle).prompt

    def test_same_input_same_prompt(self):
        assert optimize_prompt("shoe", color="Blue") == optimize_prompt("shoe", color="Blue")


class TestDescriptionPreview:
    """Previews used in log lines."""

    def test_short_description_unchanged(self):
        assert description_preview("Red shoe") == "Red shoe"

    def test_long_description_truncated(self):
        preview = description_preview("x" * 80)
        assert preview == "x" * 50 + "..."

    def test_whitespace_collapsed(self):
        assert description_preview("Red\n\nshoe") == "Red shoe"
