"""
Download option resolution.

Merges the options supplied with one download request with the persisted
settings. Request values win, then settings, then the built-in defaults.
A value of None means "not specified"; an explicit False is kept.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from .models import DownloadOptions, ExportFormat, Settings
from .filenames import DEFAULT_FILENAME_TEMPLATE
from .themes import DEFAULT_THEME_NAME

DEFAULT_FORMAT = ExportFormat.EPUB
DEFAULT_INCLUDE_REVIEWS = False
DEFAULT_GENERATE_COVER = True
DEFAULT_TYPESET_PDF = False
DEFAULT_DOWNLOAD_DELAY = 2.0


@dataclass(frozen=True)
class ResolvedOptions:
    """Effective configuration for one generation request."""
    format: ExportFormat
    filename_template: str
    include_reviews: bool
    generate_cover: bool
    cover_theme: str
    typeset_pdf: bool
    download_delay: float
    justify_text: bool = False
    font_style: Optional[str] = None
    font_size: Optional[str] = None
    paragraph_style: Optional[str] = None
    punctuation_style: Optional[str] = None
    story_status_override: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["format"] = self.format.value
        return data


def _first_set(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def resolve_options(
    options: Optional[DownloadOptions] = None,
    settings: Optional[Settings] = None
) -> ResolvedOptions:
    """
    Build the effective options for a request.

    Args:
        options: Request-level options (fields may be None)
        settings: Persisted defaults (fields may be None)

    Returns:
        ResolvedOptions with every field filled in
    """
    options = options or DownloadOptions()
    settings = settings or Settings()

    return ResolvedOptions(
        format=_first_set(options.format, settings.default_format, DEFAULT_FORMAT),
        filename_template=_first_set(settings.filename_template, DEFAULT_FILENAME_TEMPLATE),
        include_reviews=_first_set(
            options.include_reviews, settings.include_reviews, DEFAULT_INCLUDE_REVIEWS
        ),
        generate_cover=_first_set(
            options.generate_cover, settings.generate_covers, DEFAULT_GENERATE_COVER
        ),
        cover_theme=_first_set(options.cover_theme, settings.cover_theme, DEFAULT_THEME_NAME),
        typeset_pdf=_first_set(settings.typeset_pdf, DEFAULT_TYPESET_PDF),
        download_delay=_first_set(settings.download_delay, DEFAULT_DOWNLOAD_DELAY),
        justify_text=_first_set(settings.justify_text, False),
        font_style=settings.font_style,
        font_size=settings.font_size,
        paragraph_style=settings.paragraph_style,
        punctuation_style=settings.punctuation_style,
        story_status_override=settings.story_status_override,
    )
