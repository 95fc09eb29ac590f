"""
Standardized story data model.

This module defines the canonical structures handed to the document
synthesizer: the immutable Story record, the per-request DownloadOptions
and the persisted Settings defaults. Story records coming from the
analysis collaborator should go through normalize_story() so that
nullable fields are defaulted consistently.
"""

import re
import uuid
import logging
from enum import Enum
from typing import Dict, Any, Optional, List, Union, Mapping
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .utils.errors import ValidationError

logger = logging.getLogger(__name__)


class ExportFormat(str, Enum):
    """Closed set of output formats the synthesizer can produce."""
    EPUB = "epub"
    PDF = "pdf"
    TXT = "txt"
    HTML = "html"
    MARKDOWN = "markdown"

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]


class Story(BaseModel):
    """
    Canonical story record.

    Immutable once constructed. Only ``id``, ``title`` and ``author`` are
    required; everything else is an optional label sourced from the
    upstream site and treated as opaque.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Opaque unique identifier")
    title: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    fandom: Optional[Union[str, List[str]]] = None
    summary: Optional[str] = None
    status: Optional[str] = None
    rating: Optional[str] = None
    language: Optional[str] = None
    chapters: Optional[int] = Field(default=None, ge=1)
    words: Optional[int] = Field(default=None, ge=0)
    published: Optional[datetime] = None
    updated: Optional[datetime] = None
    url: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, v):
        """Accept numeric identifiers from sites that use them."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator('title', 'author')
    @classmethod
    def require_display_text(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    @field_validator('fandom', mode='before')
    @classmethod
    def normalize_fandom(cls, v):
        """Blank strings and empty lists both mean "no fandom"."""
        if v is None:
            return None
        if isinstance(v, str):
            return v if v.strip() else None
        if isinstance(v, (list, tuple)):
            items = [str(item) for item in v if str(item).strip()]
            return items or None
        return v

    @property
    def fandom_text(self) -> Optional[str]:
        """Fandom as display text, multiple fandoms joined with ", "."""
        if self.fandom is None:
            return None
        if isinstance(self.fandom, list):
            return ", ".join(self.fandom)
        return self.fandom

    @property
    def chapter_count(self) -> int:
        """Number of sections to generate; never zero."""
        return self.chapters or 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to a JSON-friendly dictionary."""
        return self.model_dump(mode='json', exclude_none=True)


class DownloadOptions(BaseModel):
    """
    Per-request download options.

    ``None`` means the request did not specify the field; the resolver
    fills it from settings or hard-coded defaults.
    """
    model_config = ConfigDict(populate_by_name=True)

    format: Optional[ExportFormat] = None
    include_reviews: Optional[bool] = Field(default=None, alias="includeReviews")
    generate_cover: Optional[bool] = Field(default=None, alias="generateCover")
    cover_theme: Optional[str] = Field(default=None, alias="coverTheme")


class Settings(BaseModel):
    """Persisted download and appearance defaults."""
    model_config = ConfigDict(populate_by_name=True)

    default_format: Optional[ExportFormat] = Field(default=None, alias="defaultFormat")
    filename_template: Optional[str] = Field(default=None, alias="filenameTemplate")
    include_reviews: Optional[bool] = Field(default=None, alias="includeReviews")
    generate_covers: Optional[bool] = Field(default=None, alias="generateCovers")
    download_delay: Optional[float] = Field(default=None, ge=0, alias="downloadDelay")
    cover_theme: Optional[str] = Field(default=None, alias="coverTheme")
    typeset_pdf: Optional[bool] = Field(default=None, alias="typesetPdf")

    # Appearance / formatting preferences
    theme: Optional[str] = None
    font_style: Optional[str] = Field(default=None, alias="fontStyle")
    font_size: Optional[str] = Field(default=None, alias="fontSize")
    custom_cover_image: Optional[str] = Field(default=None, alias="customCoverImage")
    punctuation_style: Optional[str] = Field(default=None, alias="punctuationStyle")
    paragraph_style: Optional[str] = Field(default=None, alias="paragraphStyle")
    justify_text: Optional[bool] = Field(default=None, alias="justifyText")
    story_status_override: Optional[str] = Field(default=None, alias="storyStatusOverride")


# Analysis records use the site's camelCase naming.
_ANALYSIS_ALIASES = {
    "storyId": "id",
    "story_id": "id",
    "chapterCount": "chapters",
    "totalChapters": "chapters",
    "chapter_count": "chapters",
    "wordCount": "words",
    "word_count": "words",
    "lang": "language",
    "publishedAt": "published",
    "published_at": "published",
    "updatedAt": "updated",
    "updated_at": "updated",
    "sourceUrl": "url",
}
_STORY_FIELDS = set(Story.model_fields)
_DIGITS_PATTERN = re.compile(r'\d+')


def _coerce_chapter_count(value: Any) -> Optional[int]:
    """Turn the analysis chapter value into a positive int or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        # Sites report progress as "3/10" or "3/?"; the first number is
        # the number of chapters actually posted.
        match = _DIGITS_PATTERN.search(value)
        if not match:
            return None
        value = match.group(0)
    try:
        count = int(value)
    except (TypeError, ValueError):
        return None
    return count if count >= 1 else None


def _coerce_word_count(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.replace(",", "").strip()
    try:
        count = int(value)
    except (TypeError, ValueError):
        return None
    return count if count >= 0 else None


def normalize_story(analysis: Mapping[str, Any]) -> Story:
    """
    Merge an analysis record into a canonical Story.

    Args:
        analysis: Record returned by the story analysis collaborator.
            Keys may be camelCase or snake_case.

    Returns:
        Validated Story instance

    Raises:
        ValidationError: If title or author are missing, or a field has
            a value the Story model rejects
    """
    if not isinstance(analysis, Mapping):
        raise ValidationError(
            "Story data must be an object.",
            details={"type": type(analysis).__name__}
        )

    data: Dict[str, Any] = {}
    extras: Dict[str, Any] = {}
    for key, value in analysis.items():
        field_name = _ANALYSIS_ALIASES.get(key, key)
        if field_name in _STORY_FIELDS:
            if field_name not in data or data[field_name] is None:
                data[field_name] = value
        else:
            extras[key] = value

    for required in ("title", "author"):
        value = data.get(required)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(
                f"Story {required} is required.",
                details={"field": required}
            )
        data[required] = value.strip()

    if data.get("id") in (None, ""):
        data["id"] = f"story_{uuid.uuid4().hex[:8]}"
        logger.debug(f"Generated identifier {data['id']} for story without id")

    data["chapters"] = _coerce_chapter_count(data.get("chapters"))
    data["words"] = _coerce_word_count(data.get("words"))

    raw_metadata = data.get("metadata")
    metadata = dict(raw_metadata) if isinstance(raw_metadata, Mapping) else {}
    metadata.update(extras)
    data["metadata"] = metadata or None

    try:
        return Story(**data)
    except PydanticValidationError as e:
        raise ValidationError(
            "Story data is invalid.",
            details={"errors": _describe_errors(e)}
        )


def parse_download_options(data: Optional[Mapping[str, Any]]) -> DownloadOptions:
    """
    Validate request-level download options.

    Raises:
        ValidationError: If a field (most commonly ``format``) is invalid
    """
    try:
        return DownloadOptions.model_validate(dict(data or {}))
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid download options. Supported formats: {', '.join(ExportFormat.values())}",
            details={"errors": _describe_errors(e)}
        )


def parse_settings(data: Optional[Mapping[str, Any]]) -> Settings:
    """Validate a settings record, raising ValidationError on bad values."""
    try:
        return Settings.model_validate(dict(data or {}))
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid settings.",
            details={"errors": _describe_errors(e)}
        )


def _describe_errors(error: PydanticValidationError) -> List[Dict[str, str]]:
    return [
        {
            "field": ".".join(str(part) for part in item["loc"]),
            "message": item["msg"],
        }
        for item in error.errors()
    ]
