"""
Service layer for story archive operations.

Services hold the request-level logic shared by the HTTP routes and the CLI.
"""

from .story_validation_service import StoryValidationService
from .story_export_service import (
    StoryExportService,
    ExportResult,
    COVER_EMBEDDED,
    COVER_ATTACHED,
    COVER_SKIPPED,
    COVER_FAILED,
)

__all__ = [
    "StoryValidationService",
    "StoryExportService",
    "ExportResult",
    "COVER_EMBEDDED",
    "COVER_ATTACHED",
    "COVER_SKIPPED",
    "COVER_FAILED",
]
