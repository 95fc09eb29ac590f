"""
Cover theme catalog.

Each theme bundles the background, text colours and font family used by
the cover renderer. Themes are static configuration: lookups return the
shared instances and overrides always produce a new theme.

Unknown theme names resolve to the first catalog entry (Classic) rather
than raising.
"""

from dataclasses import dataclass, fields, replace
from typing import Dict, Any, List, Optional, Mapping

from .utils.errors import ValidationError


@dataclass(frozen=True)
class CoverTheme:
    """Named, immutable cover style."""
    name: str
    background: str
    title_color: str
    author_color: str
    accent_color: str
    font: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "name": self.name,
            "background": self.background,
            "titleColor": self.title_color,
            "authorColor": self.author_color,
            "accentColor": self.accent_color,
            "font": self.font,
        }


COVER_THEMES: List[CoverTheme] = [
    CoverTheme(
        name="Classic",
        background="linear-gradient(135deg, #667eea 0%, #764ba2 100%)",
        title_color="#ffffff",
        author_color="#f0f0f0",
        accent_color="#ffd700",
        font="Georgia, serif",
    ),
    CoverTheme(
        name="Modern",
        background="linear-gradient(135deg, #f093fb 0%, #f5576c 100%)",
        title_color="#ffffff",
        author_color="#f8f8f8",
        accent_color="#ffeb3b",
        font="Helvetica, Arial, sans-serif",
    ),
    CoverTheme(
        name="Dark",
        background="linear-gradient(135deg, #2c3e50 0%, #34495e 100%)",
        title_color="#ecf0f1",
        author_color="#bdc3c7",
        accent_color="#e74c3c",
        font="Georgia, serif",
    ),
    CoverTheme(
        name="Nature",
        background="linear-gradient(135deg, #4CAF50 0%, #45a049 100%)",
        title_color="#ffffff",
        author_color="#f0f0f0",
        accent_color="#ffeb3b",
        font="Helvetica, Arial, sans-serif",
    ),
    CoverTheme(
        name="Ocean",
        background="linear-gradient(135deg, #0077be 0%, #1e88e5 100%)",
        title_color="#ffffff",
        author_color="#e3f2fd",
        accent_color="#00bcd4",
        font="Georgia, serif",
    ),
    CoverTheme(
        name="Sunset",
        background="linear-gradient(135deg, #ff6b6b 0%, #ffd93d 100%)",
        title_color="#ffffff",
        author_color="#fff3e0",
        accent_color="#ff5722",
        font="Helvetica, Arial, sans-serif",
    ),
]

DEFAULT_THEME_NAME = COVER_THEMES[0].name

_THEME_FIELDS = {f.name for f in fields(CoverTheme)}
_OVERRIDE_ALIASES = {
    "titleColor": "title_color",
    "authorColor": "author_color",
    "accentColor": "accent_color",
}


def get_themes() -> List[CoverTheme]:
    """
    Get the theme catalog.

    Returns:
        A new list containing every built-in theme, catalog order preserved
    """
    return list(COVER_THEMES)


def get_theme_names() -> List[str]:
    return [theme.name for theme in COVER_THEMES]


def find_theme(name: Optional[str]) -> Optional[CoverTheme]:
    """Exact-name lookup; None when the catalog has no such theme."""
    for theme in COVER_THEMES:
        if theme.name == name:
            return theme
    return None


def get_theme(name: Optional[str]) -> CoverTheme:
    """
    Get a theme by name.

    Args:
        name: Theme name (case-sensitive, as listed in the catalog)

    Returns:
        The matching theme, or the Classic theme when no theme has that name
    """
    return find_theme(name) or COVER_THEMES[0]


def apply_overrides(
    theme: CoverTheme,
    overrides: Optional[Mapping[str, Any]] = None
) -> CoverTheme:
    """
    Replace selected theme fields.

    Only keys whose value is not None are applied, so a partial override
    (for example just ``accentColor``) keeps every other field from the
    base theme.

    Args:
        theme: Base theme
        overrides: Field values keyed by snake_case or camelCase name

    Returns:
        New CoverTheme with the overrides applied

    Raises:
        ValidationError: If an override names an unknown field or is not a string
    """
    if not overrides:
        return theme

    changes: Dict[str, str] = {}
    for key, value in overrides.items():
        if value is None:
            continue
        field_name = _OVERRIDE_ALIASES.get(key, key)
        if field_name not in _THEME_FIELDS:
            raise ValidationError(
                f"Unknown cover theme field '{key}'.",
                details={"field": key, "valid_fields": sorted(_THEME_FIELDS)}
            )
        if not isinstance(value, str):
            raise ValidationError(
                f"Cover theme field '{key}' must be a string.",
                details={"field": key, "type": type(value).__name__}
            )
        changes[field_name] = value

    return replace(theme, **changes)
