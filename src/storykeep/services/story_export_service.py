"""
Story export service.

Orchestrates one download: resolves options against settings, renders
the cover, synthesizes the document and computes its filename. A cover
failure is reported on the result and never stops the document.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping, Optional, Sequence

from ..cover import generate_cover
from ..exports import Artifact, generate_document
from ..filenames import generate_filename
from ..models import DownloadOptions, ExportFormat, Settings, Story
from ..options import ResolvedOptions, resolve_options
from ..utils.errors import (
    APIError,
    CoverRenderError,
    ServiceUnavailableError,
    ValidationError,
)

logger = logging.getLogger(__name__)

COVER_EMBEDDED = "embedded"
COVER_ATTACHED = "attached"
COVER_SKIPPED = "skipped"
COVER_FAILED = "failed"


@dataclass(frozen=True)
class ExportResult:
    """Outcome of one export request."""
    artifact: Artifact
    filename: str
    options: ResolvedOptions
    cover: Optional[bytes] = None
    cover_error: Optional[str] = None

    @property
    def cover_status(self) -> str:
        if self.cover_error:
            return COVER_FAILED
        if not self.cover:
            return COVER_SKIPPED
        if self.artifact.format == ExportFormat.EPUB:
            return COVER_EMBEDDED
        return COVER_ATTACHED


class StoryExportService:
    """Service for exporting stories in various formats."""

    def __init__(self, settings: Optional[Settings] = None):
        """
        Initialize export service.

        Args:
            settings: Persisted defaults applied to every request
        """
        self.settings = settings

    def resolve(
        self,
        options: Optional[DownloadOptions] = None,
        settings: Optional[Settings] = None
    ) -> ResolvedOptions:
        return resolve_options(options, settings if settings is not None else self.settings)

    def render_cover(
        self,
        story: Story,
        theme_name: Optional[str] = None,
        overrides: Optional[Mapping[str, Any]] = None
    ) -> bytes:
        """Render a cover on its own, outside of an export."""
        return generate_cover(story, theme_name, overrides)

    def _try_cover(
        self,
        story: Story,
        resolved: ResolvedOptions,
        overrides: Optional[Mapping[str, Any]]
    ) -> tuple:
        if not resolved.generate_cover:
            return None, None
        try:
            return generate_cover(story, resolved.cover_theme, overrides), None
        except (CoverRenderError, ValidationError) as e:
            logger.warning(f"Cover generation failed for story {story.id}: {e.message}")
            return None, e.message
        except (OSError, ValueError) as e:
            logger.error(f"Cover generation failed for story {story.id}: {str(e)}", exc_info=True)
            return None, str(e)

    def export(
        self,
        story: Story,
        options: Optional[DownloadOptions] = None,
        settings: Optional[Settings] = None,
        chapter_texts: Optional[Sequence[Optional[str]]] = None,
        cover_overrides: Optional[Mapping[str, Any]] = None,
        today: Optional[date] = None
    ) -> ExportResult:
        """
        Export a story in the requested format.

        Args:
            story: Normalized story
            options: Request-level options
            settings: Persisted defaults (overrides the service-wide settings)
            chapter_texts: Optional plain text per chapter
            cover_overrides: Partial cover theme fields
            today: Date used for the ``{date}`` filename placeholder

        Returns:
            ExportResult with the artifact, filename and cover outcome

        Raises:
            ValidationError: If the format is invalid
            MissingDependencyError: If a required library is missing
            ServiceUnavailableError: If document generation fails
        """
        resolved = self.resolve(options, settings)
        cover, cover_error = self._try_cover(story, resolved, cover_overrides)

        try:
            artifact = generate_document(
                story,
                resolved,
                chapter_texts=chapter_texts,
                cover=cover,
                typeset=resolved.typeset_pdf
            )
        except APIError:
            raise
        except Exception as e:
            logger.error(
                f"Unexpected export failure for story {story.id}, format {resolved.format.value}: {str(e)}",
                exc_info=True
            )
            raise ServiceUnavailableError(
                "export",
                f"An unexpected error occurred during export: {str(e)}"
            )

        filename = generate_filename(story, resolved.format, resolved.filename_template, today)
        logger.info(
            f"Exported story {story.id} as {resolved.format.value} "
            f"({artifact.size} bytes, cover {cover_error and 'failed' or ('yes' if cover else 'no')})"
        )
        return ExportResult(
            artifact=artifact,
            filename=filename,
            options=resolved,
            cover=cover,
            cover_error=cover_error
        )
