"""
Flask route handlers for the story archive API.

Every endpoint is a thin layer over the services: requests are validated
by StoryValidationService and documents are produced by StoryExportService.
"""

import logging
from io import BytesIO
from typing import TYPE_CHECKING, Any, Dict

if TYPE_CHECKING:
    from flask import Flask
    from flask_limiter import Limiter

from flask import request, jsonify, send_file, current_app

from ..models import ExportFormat
from ..options import resolve_options
from ..filenames import generate_filename
from ..themes import get_themes, DEFAULT_THEME_NAME
from ..sources import get_site_from_url, is_valid_story_url, extract_story_id
from ..utils.errors import ValidationError
from ..services import StoryValidationService, StoryExportService

logger = logging.getLogger(__name__)

_validation_service = StoryValidationService()
_export_service = StoryExportService()

COVER_STATUS_HEADER = "X-Cover-Status"


def get_request_body() -> Dict[str, Any]:
    """
    Read the JSON request body.

    Raises:
        ValidationError: If the body is not a JSON object
    """
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError(
            "Request body must be a JSON object.",
            details={"type": type(data).__name__}
        )
    return data


def get_settings(data: Dict[str, Any]):
    """Request-supplied settings, else the settings loaded at startup."""
    settings = _validation_service.validate_settings(data.get("settings"))
    if settings is None:
        settings = current_app.config.get("SETTINGS")
    return settings


def register_routes(flask_app: 'Flask', limiter_instance: 'Limiter') -> None:
    """
    Register all application routes.

    Args:
        flask_app: Flask application instance
        limiter_instance: Limiter instance for rate limiting
    """

    @flask_app.route('/api/health')
    def health():
        """
        Health check endpoint.

        Returns:
            JSON response with status "ok" indicating the service is running
        """
        return jsonify({"status": "ok"})

    @flask_app.route('/api/themes', methods=['GET'])
    def list_themes():
        """List the built-in cover themes in catalog order."""
        return jsonify({
            "themes": [theme.to_dict() for theme in get_themes()],
            "default": DEFAULT_THEME_NAME
        })

    @flask_app.route('/api/formats', methods=['GET'])
    def list_formats():
        defaults = resolve_options(None, current_app.config.get("SETTINGS"))
        return jsonify({
            "formats": ExportFormat.values(),
            "default": defaults.format.value
        })

    @flask_app.route('/api/stories/check-url', methods=['POST'])
    @limiter_instance.limit(lambda: current_app.config["CHECK_URL_RATE_LIMIT"])
    def check_story_url():
        """
        Check whether a URL points at a supported archive site.

        Request body:
            {"url": str}

        Returns:
            JSON with "valid", "site" and "story_id" (null when not found)
        """
        data = get_request_body()
        url = data.get("url")
        if not url or not isinstance(url, str):
            raise ValidationError("URL is required.", details={"field": "url"})

        valid = is_valid_story_url(url)
        return jsonify({
            "valid": valid,
            "site": get_site_from_url(url),
            "story_id": extract_story_id(url) if valid else None
        })

    @flask_app.route('/api/filename', methods=['POST'])
    @limiter_instance.limit(lambda: current_app.config["FILENAME_RATE_LIMIT"])
    def preview_filename():
        """
        Render a download filename for a story.

        Request body:
            {"story": {...}, "format": str, "template": str (optional)}

        Returns:
            JSON with "filename"

        Raises:
            ValidationError: If the story, format or template is invalid
        """
        data = get_request_body()
        story = _validation_service.validate_story(data.get("story"))
        template = _validation_service.validate_template(data.get("template"))
        settings = get_settings(data)
        resolved = resolve_options(None, settings)

        format_type = resolved.format
        if data.get("format") is not None:
            format_type = _validation_service.validate_export_format(data.get("format"))
        if template is None:
            template = resolved.filename_template

        return jsonify({"filename": generate_filename(story, format_type, template)})

    @flask_app.route('/api/cover', methods=['POST'])
    @limiter_instance.limit(lambda: current_app.config["COVER_RATE_LIMIT"])
    def render_cover():
        """
        Render a cover image.

        Request body:
            {"story": {...}, "theme": str (optional), "overrides": {...} (optional)}

        Returns:
            PNG image response

        Raises:
            ValidationError: If the story or overrides are invalid
            CoverRenderError: If the image cannot be encoded
        """
        data = get_request_body()
        story = _validation_service.validate_story(data.get("story"))
        overrides = _validation_service.validate_theme_overrides(data.get("overrides"))
        theme = data.get("theme")
        if theme is not None and not isinstance(theme, str):
            raise ValidationError("Theme must be a string.", details={"field": "theme"})

        png = _export_service.render_cover(story, theme, overrides)
        logger.info(f"Rendered cover for story {story.id} ({len(png)} bytes)")
        return send_file(BytesIO(png), mimetype="image/png")

    @flask_app.route('/api/export', methods=['POST'])
    @limiter_instance.limit(lambda: current_app.config["EXPORT_RATE_LIMIT"])
    def export_story():
        """
        Export a story as a downloadable document.

        Request body:
            {
                "story": {...},
                "options": {"format": str, "generateCover": bool, ...} (optional),
                "settings": {...} (optional),
                "chapters": [str, ...] (optional),
                "overrides": {...} (optional)
            }

        Returns:
            File download response; the X-Cover-Status header reports
            whether a cover was embedded, attached, skipped or failed

        Raises:
            ValidationError: If any part of the request is invalid
            ServiceUnavailableError: If export fails
            MissingDependencyError: If a required export library is missing
        """
        data = get_request_body()
        story = _validation_service.validate_story(data.get("story"))
        options = _validation_service.validate_options(data.get("options"))
        settings = get_settings(data)
        chapters = _validation_service.validate_chapter_texts(data.get("chapters"))
        overrides = _validation_service.validate_theme_overrides(data.get("overrides"))

        result = _export_service.export(
            story,
            options,
            settings=settings,
            chapter_texts=chapters,
            cover_overrides=overrides
        )

        response = send_file(
            BytesIO(result.artifact.data),
            mimetype=result.artifact.media_type,
            as_attachment=True,
            download_name=result.filename
        )
        response.headers[COVER_STATUS_HEADER] = result.cover_status
        return response
