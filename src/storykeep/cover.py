"""
Cover image renderer.

Draws a themed 800x1200 cover for a story with Pillow: gradient or flat
background, translucent decorative circles, a word-wrapped title with a
drop shadow, the author line, the fandom line and an accent border.

Every render draws on its own CoverCanvas, acquired and released around
the render, so no drawing state is shared between calls.
"""

import io
import re
import random
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Callable, Iterator, List, Mapping, Optional, Tuple

from PIL import Image, ImageChops, ImageColor, ImageDraw, ImageFilter, ImageFont

from .models import Story
from .themes import COVER_THEMES, CoverTheme, apply_overrides, get_theme
from .utils.errors import CoverRenderError

logger = logging.getLogger(__name__)

RGB = Tuple[int, int, int]
RGBA = Tuple[int, int, int, int]

CANVAS_WIDTH = 800
CANVAS_HEIGHT = 1200

TITLE_FONT_SIZE = 72
TITLE_MAX_WIDTH = 700
TITLE_CENTER_Y = 400
TITLE_LINE_HEIGHT = 80
AUTHOR_FONT_SIZE = 36
AUTHOR_Y = 700
FANDOM_FONT_SIZE = 24
FANDOM_Y = 800

SHADOW_COLOR: RGBA = (0, 0, 0, 128)
SHADOW_BLUR_RADIUS = 5
SHADOW_OFFSET = (2, 2)

DECORATION_COUNT = 5
DECORATION_OPACITY = 0.1
DECORATION_MIN_RADIUS = 20
DECORATION_RADIUS_SPREAD = 100

BORDER_INSET = 20
BORDER_WIDTH = 8

FALLBACK_COLOR: RGB = (0, 0, 0)

_GRADIENT_PATTERN = re.compile(r'^\s*linear-gradient\s*\((.*)\)\s*$', re.IGNORECASE | re.DOTALL)
_ANGLE_PATTERN = re.compile(
    r'^(-?\d*\.?\d+(deg|grad|rad|turn)|to(\s+(left|right|top|bottom)){1,2})$',
    re.IGNORECASE
)
_STOP_POSITION_PATTERN = re.compile(r'(\s+-?\d*\.?\d+(%|px)?)+\s*$')
_COLOR_TOKEN_PATTERN = re.compile(r'#[0-9A-Fa-f]{3,8}\b|(?:rgb|hsl)a?\([^)]*\)|[A-Za-z]+')

# Candidate TrueType files per (generic family, style), searched in order
_FONT_CANDIDATES = {
    ("serif", "bold"): [
        "georgiab.ttf", "Georgia Bold.ttf", "DejaVuSerif-Bold.ttf",
        "LiberationSerif-Bold.ttf", "FreeSerifBold.ttf",
    ],
    ("serif", "italic"): [
        "georgiai.ttf", "Georgia Italic.ttf", "DejaVuSerif-Italic.ttf",
        "LiberationSerif-Italic.ttf", "FreeSerifItalic.ttf",
    ],
    ("serif", "regular"): [
        "georgia.ttf", "Georgia.ttf", "DejaVuSerif.ttf",
        "LiberationSerif-Regular.ttf", "FreeSerif.ttf",
    ],
    ("sans-serif", "bold"): [
        "arialbd.ttf", "Arial Bold.ttf", "DejaVuSans-Bold.ttf",
        "LiberationSans-Bold.ttf", "FreeSansBold.ttf",
    ],
    ("sans-serif", "italic"): [
        "ariali.ttf", "Arial Italic.ttf", "DejaVuSans-Oblique.ttf",
        "LiberationSans-Italic.ttf", "FreeSansOblique.ttf",
    ],
    ("sans-serif", "regular"): [
        "arial.ttf", "Arial.ttf", "DejaVuSans.ttf",
        "LiberationSans-Regular.ttf", "FreeSans.ttf",
    ],
}


@dataclass(frozen=True)
class Background:
    """Parsed theme background: one colour is a flat fill, more a gradient."""
    colors: Tuple[RGB, ...]
    angle: Optional[str] = None

    @property
    def is_gradient(self) -> bool:
        return len(self.colors) > 1


@dataclass(frozen=True)
class Decoration:
    """One decorative circle as drawn on the cover."""
    x: float
    y: float
    radius: float
    fill: RGBA


@dataclass
class RenderedCover:
    """A finished cover and the layout decisions made while drawing it."""
    image: Image.Image
    theme: CoverTheme
    title_lines: List[str] = field(default_factory=list)
    decorations: List[Decoration] = field(default_factory=list)


class CoverCanvas:
    """Drawing surface for a single cover render."""

    def __init__(self, width: int = CANVAS_WIDTH, height: int = CANVAS_HEIGHT):
        self.image = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        self.draw = ImageDraw.Draw(self.image)

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    def new_layer(self) -> Image.Image:
        """Transparent layer the size of the canvas."""
        return Image.new("RGBA", self.image.size, (0, 0, 0, 0))

    def composite(self, layer: Image.Image) -> None:
        self.image.alpha_composite(layer)
        self.draw = ImageDraw.Draw(self.image)

    def encode_png(self, theme_name: Optional[str] = None) -> bytes:
        return _encode_png(self.image, theme_name)

    def close(self) -> None:
        self.image.close()


@contextmanager
def open_canvas(width: int = CANVAS_WIDTH, height: int = CANVAS_HEIGHT) -> Iterator[CoverCanvas]:
    """Acquire a fresh canvas and release it when the block exits."""
    canvas = CoverCanvas(width, height)
    try:
        yield canvas
    finally:
        canvas.close()


def _encode_png(image: Image.Image, theme_name: Optional[str]) -> bytes:
    buffer = io.BytesIO()
    try:
        image.save(buffer, "PNG")
    except (OSError, ValueError) as e:
        logger.error(f"Cover encoding failed: {str(e)}", exc_info=True)
        raise CoverRenderError(f"Cover encoding failed: {str(e)}", theme=theme_name)
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Colours and backgrounds
# ---------------------------------------------------------------------------

def parse_color(value: Optional[str]) -> Optional[RGB]:
    """Parse a CSS-style colour; None when Pillow cannot read it."""
    if not value:
        return None
    try:
        return ImageColor.getrgb(value.strip())[:3]
    except ValueError:
        return None


def _first_color_token(value: str) -> Optional[RGB]:
    for match in _COLOR_TOKEN_PATTERN.finditer(value or ""):
        color = parse_color(match.group(0))
        if color is not None:
            return color
    return None


def _split_top_level(params: str) -> List[str]:
    """Split on commas that are not inside parentheses."""
    parts: List[str] = []
    depth = 0
    current = []
    for char in params:
        if char == "(":
            depth += 1
        elif char == ")":
            depth = max(depth - 1, 0)
        if char == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    parts.append("".join(current).strip())
    return [part for part in parts if part]


def parse_background(value: Optional[str]) -> Background:
    """
    Parse a theme background string.

    ``linear-gradient(<angle>, <stop>, <stop>, ...)`` yields a gradient;
    anything else is a flat colour. Malformed input degrades to a flat
    fill of the first colour token that can be parsed, or black.

    Args:
        value: Background string from a theme

    Returns:
        Background description (never raises)
    """
    text = (value or "").strip()
    match = _GRADIENT_PATTERN.match(text)
    if not match:
        color = parse_color(text) or _first_color_token(text) or FALLBACK_COLOR
        return Background(colors=(color,))

    parts = _split_top_level(match.group(1))
    angle = None
    if parts and _ANGLE_PATTERN.match(parts[0]):
        angle = parts.pop(0)

    colors: List[RGB] = []
    for part in parts:
        token = _STOP_POSITION_PATTERN.sub("", part).strip()
        color = parse_color(token)
        if color is None:
            logger.warning(f"Unreadable gradient stop '{part}', using flat background")
            fallback = _first_color_token(match.group(1)) or FALLBACK_COLOR
            return Background(colors=(fallback,), angle=angle)
        colors.append(color)

    if not colors:
        return Background(colors=(_first_color_token(text) or FALLBACK_COLOR,), angle=angle)
    return Background(colors=tuple(colors), angle=angle)


def _gradient_lut(colors: Tuple[RGB, ...]) -> List[List[int]]:
    """Per-channel 256-entry lookup tables, stops evenly spaced."""
    segments = len(colors) - 1
    tables: List[List[int]] = [[], [], []]
    for level in range(256):
        position = level / 255 * segments
        index = min(int(position), segments - 1)
        local = position - index
        start, end = colors[index], colors[index + 1]
        for channel in range(3):
            value = start[channel] + (end[channel] - start[channel]) * local
            tables[channel].append(int(round(value)))
    return tables


def _gradient_image(size: Tuple[int, int], colors: Tuple[RGB, ...]) -> Image.Image:
    """
    Diagonal gradient from the top-left to the bottom-right corner.

    The gradient parameter for a pixel is its projection on the diagonal,
    which splits into an x term and a y term; each term is a one
    dimensional ramp stretched over the canvas and the two are summed.
    """
    width, height = size
    diagonal = width * width + height * height
    x_share = 255 * width * width / diagonal
    y_share = 255 * height * height / diagonal

    x_ramp = Image.new("L", (width, 1))
    x_ramp.putdata([int(round(x_share * x / max(width - 1, 1))) for x in range(width)])
    y_ramp = Image.new("L", (1, height))
    y_ramp.putdata([int(round(y_share * y / max(height - 1, 1))) for y in range(height)])

    ramp = ImageChops.add(
        x_ramp.resize(size, Image.Resampling.NEAREST),
        y_ramp.resize(size, Image.Resampling.NEAREST),
    )
    red, green, blue = _gradient_lut(colors)
    return Image.merge("RGB", (ramp.point(red), ramp.point(green), ramp.point(blue)))


def draw_background(canvas: CoverCanvas, background: str) -> Background:
    """Fill the whole canvas with the theme background."""
    parsed = parse_background(background)
    size = (canvas.width, canvas.height)
    if parsed.is_gradient:
        fill = _gradient_image(size, parsed.colors).convert("RGBA")
    else:
        fill = Image.new("RGBA", size, parsed.colors[0] + (255,))
    canvas.image.paste(fill, (0, 0))
    canvas.draw = ImageDraw.Draw(canvas.image)
    return parsed


# ---------------------------------------------------------------------------
# Shapes and text
# ---------------------------------------------------------------------------

def draw_decorations(
    canvas: CoverCanvas,
    accent_color: RGB,
    rng: Optional[random.Random] = None
) -> List[Decoration]:
    """
    Draw translucent accent circles at random positions.

    Each circle gets its own layer so overlapping circles blend the same
    way they would with a global alpha.
    """
    rng = rng or random.Random()
    alpha = int(round(255 * DECORATION_OPACITY))
    fill = tuple(accent_color) + (alpha,)
    decorations: List[Decoration] = []
    for _ in range(DECORATION_COUNT):
        x = rng.random() * canvas.width
        y = rng.random() * canvas.height
        radius = rng.random() * DECORATION_RADIUS_SPREAD + DECORATION_MIN_RADIUS
        layer = canvas.new_layer()
        ImageDraw.Draw(layer).ellipse(
            (x - radius, y - radius, x + radius, y + radius),
            fill=fill
        )
        canvas.composite(layer)
        decorations.append(Decoration(x=x, y=y, radius=radius, fill=fill))
    return decorations


def _generic_family(font: str) -> str:
    lowered = (font or "").lower()
    if "sans" in lowered or "helvetica" in lowered or "arial" in lowered:
        return "sans-serif"
    return "serif"


@lru_cache(maxsize=64)
def load_font(font: str, style: str, size: int) -> ImageFont.ImageFont:
    """
    Load a TrueType font matching a theme font token.

    Args:
        font: Theme font token, e.g. "Georgia, serif"
        style: "bold", "italic" or "regular"
        size: Pixel size

    Returns:
        The first installed candidate, or Pillow's default font
    """
    family = _generic_family(font)
    for candidate in _FONT_CANDIDATES[(family, style)]:
        try:
            return ImageFont.truetype(candidate, size)
        except OSError:
            continue
    logger.debug(f"No {family} {style} font installed, using default font")
    return ImageFont.load_default(size=size)


def wrap_title(
    title: str,
    measure: Callable[[str], float],
    max_width: float = TITLE_MAX_WIDTH
) -> List[str]:
    """
    Greedily pack title words into lines no wider than ``max_width``.

    A word that is wider than ``max_width`` on its own still gets a line
    to itself; it is never broken.

    Args:
        title: Title text, split on whitespace
        measure: Returns the rendered width of a string
        max_width: Maximum line width in pixels

    Returns:
        Lines in reading order
    """
    lines: List[str] = []
    current = ""
    for word in title.split():
        candidate = f"{current} {word}" if current else word
        if current and measure(candidate) > max_width:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines


def title_line_positions(line_count: int) -> List[float]:
    """Vertical centres for each title line, block centred on TITLE_CENTER_Y."""
    start_y = TITLE_CENTER_Y - (line_count - 1) * (TITLE_LINE_HEIGHT / 2)
    return [start_y + index * TITLE_LINE_HEIGHT for index in range(line_count)]


def _draw_centered(
    draw: ImageDraw.ImageDraw,
    text: str,
    center: Tuple[float, float],
    font: ImageFont.ImageFont,
    fill: Any
) -> None:
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    x = center[0] - (left + right) / 2
    y = center[1] - (top + bottom) / 2
    draw.text((x, y), text, font=font, fill=fill)


def draw_title(canvas: CoverCanvas, title: str, theme: CoverTheme, color: RGB) -> List[str]:
    font = load_font(theme.font, "bold", TITLE_FONT_SIZE)
    lines = wrap_title(title, lambda text: canvas.draw.textlength(text, font=font))
    positions = title_line_positions(len(lines))
    center_x = canvas.width / 2

    shadow = canvas.new_layer()
    shadow_draw = ImageDraw.Draw(shadow)
    for line, y in zip(lines, positions):
        _draw_centered(
            shadow_draw,
            line,
            (center_x + SHADOW_OFFSET[0], y + SHADOW_OFFSET[1]),
            font,
            SHADOW_COLOR
        )
    canvas.composite(shadow.filter(ImageFilter.GaussianBlur(SHADOW_BLUR_RADIUS)))

    for line, y in zip(lines, positions):
        _draw_centered(canvas.draw, line, (center_x, y), font, color)
    return lines


def draw_author(canvas: CoverCanvas, author: str, theme: CoverTheme, color: RGB) -> None:
    font = load_font(theme.font, "italic", AUTHOR_FONT_SIZE)
    _draw_centered(canvas.draw, f"by {author}", (canvas.width / 2, AUTHOR_Y), font, color)


def draw_fandom(canvas: CoverCanvas, fandom: str, theme: CoverTheme, color: RGB) -> None:
    font = load_font(theme.font, "regular", FANDOM_FONT_SIZE)
    _draw_centered(canvas.draw, fandom, (canvas.width / 2, FANDOM_Y), font, color)


def draw_border(canvas: CoverCanvas, accent_color: RGB) -> None:
    # Stroke is centred on the inset rectangle, half inside and half outside
    half = BORDER_WIDTH // 2
    canvas.draw.rectangle(
        (
            BORDER_INSET - half,
            BORDER_INSET - half,
            canvas.width - BORDER_INSET + half - 1,
            canvas.height - BORDER_INSET + half - 1,
        ),
        outline=accent_color + (255,),
        width=BORDER_WIDTH
    )


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def resolve_theme(
    theme_name: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None
) -> CoverTheme:
    """Catalog lookup (Classic fallback) followed by partial overrides."""
    return apply_overrides(get_theme(theme_name), overrides)


def _theme_color(value: str, fallback: str) -> RGB:
    color = parse_color(value)
    if color is None:
        logger.warning(f"Unreadable theme colour '{value}', using '{fallback}'")
        return parse_color(fallback) or FALLBACK_COLOR
    return color


def paint_cover(
    canvas: CoverCanvas,
    story: Story,
    theme: CoverTheme,
    rng: Optional[random.Random] = None
) -> Tuple[List[str], List[Decoration]]:
    """
    Draw every cover layer onto ``canvas`` in order.

    Returns:
        Tuple of (title lines, decorations)
    """
    classic = COVER_THEMES[0]
    title_color = _theme_color(theme.title_color, classic.title_color)
    author_color = _theme_color(theme.author_color, classic.author_color)
    accent_color = _theme_color(theme.accent_color, classic.accent_color)

    draw_background(canvas, theme.background)
    decorations = draw_decorations(canvas, accent_color, rng)
    title_lines = draw_title(canvas, story.title, theme, title_color)
    draw_author(canvas, story.author, theme, author_color)
    if story.fandom_text:
        draw_fandom(canvas, story.fandom_text, theme, accent_color)
    draw_border(canvas, accent_color)
    return title_lines, decorations


def render_cover(
    story: Story,
    theme_name: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    rng: Optional[random.Random] = None
) -> RenderedCover:
    """
    Render a cover and keep the image for further processing.

    The caller owns the returned image.

    Args:
        story: Story whose title, author and fandom are drawn
        theme_name: Catalog theme name; unknown names use Classic
        overrides: Partial theme fields replacing the named theme's values
        rng: Random source for decoration placement

    Returns:
        RenderedCover with the image, resolved theme and layout details
    """
    theme = resolve_theme(theme_name, overrides)
    canvas = CoverCanvas()
    title_lines, decorations = paint_cover(canvas, story, theme, rng)
    return RenderedCover(
        image=canvas.image,
        theme=theme,
        title_lines=title_lines,
        decorations=decorations
    )


def generate_cover(
    story: Story,
    theme_name: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    rng: Optional[random.Random] = None
) -> bytes:
    """
    Render a cover and encode it as PNG.

    Args:
        story: Story whose title, author and fandom are drawn
        theme_name: Catalog theme name; unknown names use Classic
        overrides: Partial theme fields replacing the named theme's values
        rng: Random source for decoration placement

    Returns:
        PNG bytes of an 800x1200 image

    Raises:
        CoverRenderError: If the image cannot be encoded
        ValidationError: If ``overrides`` names an unknown theme field
    """
    theme = resolve_theme(theme_name, overrides)
    logger.debug(f"Rendering cover for story {story.id} with theme {theme.name}")
    with open_canvas() as canvas:
        paint_cover(canvas, story, theme, rng)
        return canvas.encode_png(theme.name)
