"""
Story validation service.

Handles input validation for generation requests, including:
- Story payload normalization
- Export format validation
- Download options and settings validation
- Chapter text and filename template validation
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from ..models import (
    ExportFormat,
    Story,
    DownloadOptions,
    Settings,
    normalize_story,
    parse_download_options,
    parse_settings,
)
from ..utils.errors import ValidationError

logger = logging.getLogger(__name__)


class StoryValidationService:
    """Service for validating generation request parameters."""

    MAX_TEMPLATE_LENGTH = 200
    MAX_CHAPTERS = 5000

    def validate_export_format(self, format_type: Optional[str]) -> ExportFormat:
        """
        Validate an export format name.

        Args:
            format_type: Format name, case-insensitive

        Returns:
            The matching ExportFormat

        Raises:
            ValidationError: If the format is missing or not supported
        """
        valid_formats = ExportFormat.values()
        if isinstance(format_type, ExportFormat):
            return format_type
        if not format_type or not isinstance(format_type, str):
            raise ValidationError(
                f"Export format is required. Supported formats: {', '.join(valid_formats)}",
                details={"valid_formats": valid_formats}
            )

        normalized = format_type.strip().lower()
        if normalized not in valid_formats:
            raise ValidationError(
                f"Invalid format '{format_type}'. Supported formats: {', '.join(valid_formats)}",
                details={"format_type": format_type, "valid_formats": valid_formats}
            )
        return ExportFormat(normalized)

    def validate_story(self, story: Any) -> Story:
        """Normalize a story payload, or pass a Story through."""
        if isinstance(story, Story):
            return story
        if story is None:
            raise ValidationError("Story data is required.", details={"field": "story"})
        normalized = normalize_story(story)
        logger.debug(f"Normalized story {normalized.id}: '{normalized.title}'")
        return normalized

    def validate_options(self, options: Any) -> DownloadOptions:
        if isinstance(options, DownloadOptions):
            return options
        if options is not None and not isinstance(options, Mapping):
            raise ValidationError(
                "Download options must be an object.",
                details={"field": "options", "type": type(options).__name__}
            )
        data = dict(options or {})
        if isinstance(data.get("format"), str):
            data["format"] = self.validate_export_format(data["format"])
        return parse_download_options(data)

    def validate_settings(self, settings: Any) -> Optional[Settings]:
        if settings is None or isinstance(settings, Settings):
            return settings
        if not isinstance(settings, Mapping):
            raise ValidationError(
                "Settings must be an object.",
                details={"field": "settings", "type": type(settings).__name__}
            )
        return parse_settings(settings)

    def validate_chapter_texts(self, chapters: Any) -> Optional[List[Optional[str]]]:
        """
        Validate supplied chapter texts.

        Returns:
            List of chapter texts (None entries allowed) or None

        Raises:
            ValidationError: If chapters is not a list of strings
        """
        if chapters is None:
            return None
        if not isinstance(chapters, list):
            raise ValidationError(
                "Chapters must be a list of chapter texts.",
                details={"field": "chapters", "type": type(chapters).__name__}
            )
        if len(chapters) > self.MAX_CHAPTERS:
            raise ValidationError(
                f"Too many chapters (maximum {self.MAX_CHAPTERS}).",
                details={"field": "chapters", "count": len(chapters), "max": self.MAX_CHAPTERS}
            )
        for index, text in enumerate(chapters):
            if text is not None and not isinstance(text, str):
                raise ValidationError(
                    f"Chapter {index + 1} text must be a string.",
                    details={"field": f"chapters[{index}]", "type": type(text).__name__}
                )
        return chapters

    def validate_template(self, template: Any) -> Optional[str]:
        if template is None:
            return None
        if not isinstance(template, str):
            raise ValidationError(
                "Filename template must be a string.",
                details={"field": "template", "type": type(template).__name__}
            )
        if len(template) > self.MAX_TEMPLATE_LENGTH:
            raise ValidationError(
                f"Filename template is too long (maximum {self.MAX_TEMPLATE_LENGTH} characters).",
                details={
                    "field": "template",
                    "length": len(template),
                    "max_length": self.MAX_TEMPLATE_LENGTH
                }
            )
        return template

    def validate_theme_overrides(self, overrides: Any) -> Optional[Dict[str, Any]]:
        if overrides is None:
            return None
        if not isinstance(overrides, Mapping):
            raise ValidationError(
                "Cover overrides must be an object.",
                details={"field": "overrides", "type": type(overrides).__name__}
            )
        return dict(overrides)
