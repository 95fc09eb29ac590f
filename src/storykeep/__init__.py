"""
storykeep

Turns story metadata from an archive site into downloadable documents
(EPUB, PDF, TXT, HTML, Markdown) with generated cover art and
template-driven filenames.
"""

from .models import (
    ExportFormat,
    Story,
    DownloadOptions,
    Settings,
    normalize_story,
)
from .themes import CoverTheme, COVER_THEMES, get_themes, get_theme, apply_overrides
from .filenames import render_template, generate_filename, sanitize
from .cover import render_cover, generate_cover
from .exports import Artifact, generate_document, generate
from .options import ResolvedOptions, resolve_options
from .sources import get_site_from_url, is_valid_story_url, extract_story_id

__version__ = "0.1.0"

__all__ = [
    "ExportFormat",
    "Story",
    "DownloadOptions",
    "Settings",
    "normalize_story",
    "CoverTheme",
    "COVER_THEMES",
    "get_themes",
    "get_theme",
    "apply_overrides",
    "render_template",
    "generate_filename",
    "sanitize",
    "render_cover",
    "generate_cover",
    "Artifact",
    "generate_document",
    "generate",
    "ResolvedOptions",
    "resolve_options",
    "get_site_from_url",
    "is_valid_story_url",
    "extract_story_id",
]
