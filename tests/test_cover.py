"""
Tests for the cover renderer.

Tests cover PNG output, every catalog theme, background parsing,
decorations, title wrapping and layout, and encoding failures.
"""

import random
from io import BytesIO
from unittest.mock import patch

import pytest
from PIL import Image

from storykeep.cover import (
    BORDER_INSET,
    DECORATION_COUNT,
    FALLBACK_COLOR,
    _gradient_image,
    draw_background,
    generate_cover,
    open_canvas,
    parse_background,
    parse_color,
    render_cover,
    title_line_positions,
    wrap_title,
)
from storykeep.models import normalize_story
from storykeep.utils.errors import CoverRenderError, ValidationError
from tests.test_constants import COVER_SIZE, PNG_SIGNATURE, THEME_NAMES


def decode(png: bytes) -> Image.Image:
    return Image.open(BytesIO(png))


class TestGenerateCover:
    """Test PNG cover generation."""

    def test_returns_png_of_fixed_size(self, sample_story):
        """Test that the cover is an 800x1200 PNG."""
        png = generate_cover(sample_story)
        assert png.startswith(PNG_SIGNATURE)
        image = decode(png)
        assert image.format == "PNG"
        assert image.size == COVER_SIZE

    @pytest.mark.parametrize("theme_name", THEME_NAMES)
    def test_every_catalog_theme_renders(self, sample_story, theme_name):
        """Test that each built-in theme produces a valid cover."""
        image = decode(generate_cover(sample_story, theme_name))
        assert image.size == COVER_SIZE

    def test_unknown_theme_renders_classic(self, sample_story, seeded_rng):
        """Test that an unknown theme name falls back to Classic."""
        cover = render_cover(sample_story, "Nonexistent", rng=seeded_rng)
        assert cover.theme.name == "Classic"

    def test_partial_overrides(self, sample_story, seeded_rng):
        """Test that an accent override changes only the accent colour."""
        cover = render_cover(sample_story, "Dark", {"accentColor": "#123456"}, rng=seeded_rng)
        assert cover.theme.accent_color == "#123456"
        assert cover.theme.background == "linear-gradient(135deg, #2c3e50 0%, #34495e 100%)"

    def test_invalid_override_raises(self, sample_story):
        """Test that unknown override fields are rejected before drawing."""
        with pytest.raises(ValidationError):
            generate_cover(sample_story, "Classic", {"sparkle": "#ffffff"})

    def test_story_without_fandom(self, minimal_story):
        """Test that a story without fandom still renders."""
        image = decode(generate_cover(minimal_story))
        assert image.size == COVER_SIZE

    def test_fandom_line_drawn_only_when_present(self, sample_story, minimal_story):
        """Test that the fandom line is skipped when fandom is absent."""
        with patch("storykeep.cover.draw_fandom") as draw_fandom:
            generate_cover(minimal_story)
            draw_fandom.assert_not_called()

            generate_cover(sample_story)
            draw_fandom.assert_called_once()
            assert draw_fandom.call_args[0][1] == "Harry Potter"

    def test_multiple_fandoms_joined(self):
        """Test that a fandom list is drawn as one joined line."""
        story = normalize_story({
            "id": "1",
            "title": "Crossover",
            "author": "A",
            "fandom": ["Star Wars", "Star Trek"],
        })
        with patch("storykeep.cover.draw_fandom") as draw_fandom:
            generate_cover(story)
        assert draw_fandom.call_args[0][1] == "Star Wars, Star Trek"

    def test_seeded_render_is_deterministic(self, sample_story):
        """Test that the same random seed gives identical covers."""
        first = generate_cover(sample_story, rng=random.Random(7))
        second = generate_cover(sample_story, rng=random.Random(7))
        assert first == second

    def test_encoding_failure_raises_cover_render_error(self, sample_story):
        """Test that an encoder failure surfaces as CoverRenderError."""
        with patch.object(Image.Image, "save", side_effect=OSError("encoder broke")):
            with pytest.raises(CoverRenderError) as exc_info:
                generate_cover(sample_story, "Ocean")
        assert exc_info.value.error_code == "COVER_RENDER_FAILED"
        assert exc_info.value.details == {"theme": "Ocean"}


class TestCoverLayout:
    """Test cover layout details."""

    def test_five_decorations_with_accent_fill(self, sample_story, seeded_rng):
        """Test decoration count, radius range and translucent accent fill."""
        cover = render_cover(sample_story, "Classic", rng=seeded_rng)
        assert len(cover.decorations) == DECORATION_COUNT
        for decoration in cover.decorations:
            assert decoration.fill == (255, 215, 0, 26)
            assert 20 <= decoration.radius < 120
            assert 0 <= decoration.x < 800
            assert 0 <= decoration.y < 1200

    def test_border_uses_accent_colour(self, sample_story, seeded_rng):
        """Test that the inset border is drawn in the accent colour."""
        cover = render_cover(sample_story, "Classic", {"accentColor": "#123456"}, rng=seeded_rng)
        assert cover.image.getpixel((BORDER_INSET - 2, 600)) == (0x12, 0x34, 0x56, 255)
        assert cover.image.getpixel((400, BORDER_INSET + 1)) == (0x12, 0x34, 0x56, 255)

    def test_long_title_wraps(self, seeded_rng):
        """Test that a long title is split over several lines."""
        title = "The Extraordinarily Long Title Of A Story That Simply Goes On And On"
        story = normalize_story({"id": "1", "title": title, "author": "A"})
        cover = render_cover(story, rng=seeded_rng)
        assert len(cover.title_lines) > 1
        assert " ".join(cover.title_lines) == title

    def test_title_line_positions_centred(self):
        """Test that the title block is centred on y=400 with 80px lines."""
        assert title_line_positions(1) == [400]
        assert title_line_positions(2) == [360, 440]
        assert title_line_positions(3) == [320, 400, 480]


class TestWrapTitle:
    """Test greedy title wrapping."""

    def test_fits_on_one_line(self):
        """Test that a short title stays on one line."""
        assert wrap_title("a bb", len, max_width=10) == ["a bb"]

    def test_breaks_at_width(self):
        """Test that words move to a new line once the width is exceeded."""
        assert wrap_title("a bb ccc dd", len, max_width=4) == ["a bb", "ccc", "dd"]

    def test_exact_width_fits(self):
        """Test that a line exactly max_width wide is allowed."""
        assert wrap_title("ab cd", len, max_width=5) == ["ab cd"]

    def test_overlong_word_gets_own_line(self):
        """Test that a single word wider than max_width is never broken."""
        assert wrap_title("Supercalifragilistic", len, max_width=5) == ["Supercalifragilistic"]
        assert wrap_title("a Supercalifragilistic b", len, max_width=5) == [
            "a", "Supercalifragilistic", "b"
        ]

    def test_collapses_whitespace(self):
        """Test that runs of whitespace separate words like single spaces."""
        assert wrap_title("  a   b  ", len, max_width=10) == ["a b"]


class TestBackgroundParsing:
    """Test theme background parsing."""

    def test_catalog_gradient(self):
        """Test parsing of the Classic gradient."""
        background = parse_background("linear-gradient(135deg, #667eea 0%, #764ba2 100%)")
        assert background.is_gradient
        assert background.angle == "135deg"
        assert background.colors == ((0x66, 0x7e, 0xea), (0x76, 0x4b, 0xa2))

    def test_gradient_without_angle(self):
        """Test that a gradient may start with a colour."""
        background = parse_background("linear-gradient(red 0%, blue 50%, lime 100%)")
        assert background.angle is None
        assert background.colors == ((255, 0, 0), (0, 0, 255), (0, 255, 0))

    def test_gradient_with_keyword_angle_and_rgb(self):
        """Test keyword directions and rgb() stops containing commas."""
        background = parse_background("linear-gradient(to right, rgb(255, 0, 0), #00f)")
        assert background.angle == "to right"
        assert background.colors == ((255, 0, 0), (0, 0, 255))

    def test_flat_colour(self):
        """Test that a plain colour gives a flat background."""
        background = parse_background("#abc")
        assert not background.is_gradient
        assert background.colors == ((0xaa, 0xbb, 0xcc),)

    def test_unreadable_stop_falls_back_to_first_colour(self):
        """Test that a malformed gradient degrades to a flat fill."""
        background = parse_background("linear-gradient(135deg, #zzzzzz 0%, blue 100%)")
        assert background.colors == ((0, 0, 255),)

    @pytest.mark.parametrize("value", ["garbage!!", "", None, "linear-gradient()"])
    def test_unparseable_background_is_black(self, value):
        """Test that hopeless input never raises and yields black."""
        assert parse_background(value).colors == (FALLBACK_COLOR,)

    def test_parse_color(self):
        """Test colour parsing helper."""
        assert parse_color("#ffd700") == (255, 215, 0)
        assert parse_color("not-a-colour") is None
        assert parse_color(None) is None


class TestBackgroundFill:
    """Test background painting."""

    def test_gradient_runs_corner_to_corner(self):
        """Test that the gradient starts and ends at the first and last stop."""
        image = _gradient_image((80, 120), ((0, 0, 0), (255, 255, 255)))
        assert image.getpixel((0, 0)) == (0, 0, 0)
        assert all(channel >= 250 for channel in image.getpixel((79, 119)))

    def test_gradient_increases_along_diagonal(self):
        """Test that the gradient brightens from top-left to bottom-right."""
        image = _gradient_image((80, 120), ((0, 0, 0), (255, 255, 255)))
        samples = [image.getpixel((i * 8, i * 12))[0] for i in range(10)]
        assert samples == sorted(samples)

    def test_flat_fill(self):
        """Test that a flat background fills the whole canvas."""
        with open_canvas(40, 60) as canvas:
            draw_background(canvas, "#102030")
            assert canvas.image.getpixel((0, 0)) == (0x10, 0x20, 0x30, 255)
            assert canvas.image.getpixel((39, 59)) == (0x10, 0x20, 0x30, 255)
