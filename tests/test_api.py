"""
API endpoint tests with response structure validation.

Tests cover all API endpoints with validation of:
- Response structure and required fields
- File download headers
- Error response formats
- Rate limiting behavior
"""

import zipfile
from io import BytesIO
from unittest.mock import patch

import pytest
from PIL import Image

from storykeep.api import create_app
from storykeep.models import Settings
from storykeep.utils.errors import CoverRenderError
from tests.test_constants import (
    ALL_FORMATS,
    COVER_SIZE,
    HTTP_BAD_REQUEST,
    HTTP_METHOD_NOT_ALLOWED,
    HTTP_NOT_FOUND,
    HTTP_OK,
    HTTP_TOO_MANY_REQUESTS,
    THEME_NAMES,
)


@pytest.fixture
def rate_limit_client():
    """Create a test client with very low rate limits for testing."""
    config = {
        'TESTING': True,
        'SETTINGS': Settings(),
        'EXPORT_RATE_LIMIT': '2 per minute',
        'COVER_RATE_LIMIT': '2 per minute',
        'RATELIMIT_STORAGE_URI': 'memory://',
    }
    app = create_app(config=config)
    with app.test_client() as test_client:
        yield test_client


class TestMetadataEndpoints:
    """Test read-only endpoints."""

    def test_health_returns_ok(self, client):
        """Test health check endpoint."""
        response = client.get('/api/health')
        assert response.status_code == HTTP_OK
        assert response.get_json() == {"status": "ok"}

    def test_themes(self, client):
        """Test that the theme catalog is listed in order."""
        data = client.get('/api/themes').get_json()
        assert [theme["name"] for theme in data["themes"]] == THEME_NAMES
        assert data["default"] == "Classic"
        assert data["themes"][0]["accentColor"] == "#ffd700"

    def test_formats(self, client):
        """Test that the valid formats are listed."""
        data = client.get('/api/formats').get_json()
        assert data["formats"] == ALL_FORMATS
        assert data["default"] == "epub"

    def test_formats_default_from_settings(self):
        """Test that the default format follows the loaded settings."""
        app = create_app(config={'TESTING': True, 'SETTINGS': Settings(default_format="txt")})
        with app.test_client() as test_client:
            assert test_client.get('/api/formats').get_json()["default"] == "txt"

    def test_unknown_route(self, client):
        """Test the JSON 404 body."""
        response = client.get('/api/nothing-here')
        assert response.status_code == HTTP_NOT_FOUND
        assert response.get_json()["error_code"] == "NOT_FOUND"

    def test_wrong_method(self, client):
        """Test the JSON 405 body."""
        response = client.get('/api/export')
        assert response.status_code == HTTP_METHOD_NOT_ALLOWED
        assert response.get_json()["error_code"] == "METHOD_NOT_ALLOWED"


class TestCheckUrlEndpoint:
    """Test POST /api/stories/check-url."""

    def test_supported_url(self, client):
        """Test a supported story URL."""
        response = client.post('/api/stories/check-url', json={
            "url": "https://archiveofourown.org/works/12345"
        })
        assert response.status_code == HTTP_OK
        assert response.get_json() == {
            "valid": True,
            "site": "Archive of Our Own",
            "story_id": "12345",
        }

    def test_unsupported_url(self, client):
        """Test an unsupported URL."""
        data = client.post('/api/stories/check-url', json={"url": "https://example.com"}).get_json()
        assert data == {"valid": False, "site": "Unknown", "story_id": None}

    def test_missing_url(self, client):
        """Test that the URL is required."""
        response = client.post('/api/stories/check-url', json={})
        assert response.status_code == HTTP_BAD_REQUEST
        assert response.get_json()["error_code"] == "VALIDATION_ERROR"


class TestFilenameEndpoint:
    """Test POST /api/filename."""

    def test_default_template(self, client, story_payload):
        """Test filename with the default template."""
        response = client.post('/api/filename', json={"story": story_payload, "format": "epub"})
        assert response.status_code == HTTP_OK
        assert response.get_json() == {"filename": "Jane Doe - My Story.epub"}

    def test_custom_template_and_format_case(self, client, story_payload):
        """Test a custom template and an upper-case format."""
        response = client.post('/api/filename', json={
            "story": story_payload,
            "format": "MARKDOWN",
            "template": "{title} [{chapters}]",
        })
        assert response.get_json()["filename"] == "My Story [{chapters}].markdown"

    def test_invalid_format(self, client, story_payload):
        """Test that an unknown format is rejected with the valid list."""
        response = client.post('/api/filename', json={"story": story_payload, "format": "docx"})
        assert response.status_code == HTTP_BAD_REQUEST
        assert "valid_formats" in response.get_json()["details"]

    def test_missing_story(self, client):
        """Test that a story is required."""
        response = client.post('/api/filename', json={"format": "epub"})
        assert response.status_code == HTTP_BAD_REQUEST

    def test_story_without_author(self, client):
        """Test that the normalizer's validation error is returned."""
        response = client.post('/api/filename', json={"story": {"title": "T"}, "format": "txt"})
        assert response.status_code == HTTP_BAD_REQUEST
        assert response.get_json()["details"] == {"field": "author"}

    def test_non_object_body(self, client):
        """Test that the body must be a JSON object."""
        response = client.post('/api/filename', json=["epub"])
        assert response.status_code == HTTP_BAD_REQUEST


class TestCoverEndpoint:
    """Test POST /api/cover."""

    def test_returns_png(self, client, story_payload):
        """Test that the endpoint returns an 800x1200 PNG."""
        response = client.post('/api/cover', json={"story": story_payload, "theme": "Dark"})
        assert response.status_code == HTTP_OK
        assert response.mimetype == "image/png"
        assert Image.open(BytesIO(response.data)).size == COVER_SIZE

    def test_overrides(self, client, story_payload):
        """Test that partial overrides are accepted."""
        response = client.post('/api/cover', json={
            "story": story_payload,
            "overrides": {"accentColor": "#00ff00"},
        })
        assert response.status_code == HTTP_OK

    def test_invalid_override(self, client, story_payload):
        """Test that unknown override fields are rejected."""
        response = client.post('/api/cover', json={
            "story": story_payload,
            "overrides": {"glitter": "#00ff00"},
        })
        assert response.status_code == HTTP_BAD_REQUEST

    def test_render_failure(self, client, story_payload):
        """Test that a cover failure maps to a JSON error."""
        with patch(
            "storykeep.services.story_export_service.generate_cover",
            side_effect=CoverRenderError("Cover encoding failed: boom")
        ):
            response = client.post('/api/cover', json={"story": story_payload})
        assert response.status_code == 500
        assert response.get_json()["error_code"] == "COVER_RENDER_FAILED"


class TestExportEndpoint:
    """Test POST /api/export."""

    def test_epub_download(self, client, story_payload):
        """Test the default EPUB download with embedded cover."""
        response = client.post('/api/export', json={"story": story_payload})
        assert response.status_code == HTTP_OK
        assert response.mimetype == "application/epub+zip"
        assert response.headers["X-Cover-Status"] == "embedded"
        disposition = response.headers["Content-Disposition"]
        assert disposition.startswith("attachment")
        assert "Jane Doe - My Story.epub" in disposition

        archive = zipfile.ZipFile(BytesIO(response.data))
        assert archive.namelist()[0] == "mimetype"
        assert "OEBPS/cover.png" in archive.namelist()

    @pytest.mark.parametrize("format_type", ALL_FORMATS)
    def test_every_format(self, client, story_payload, format_type):
        """Test that every format downloads with its extension."""
        response = client.post('/api/export', json={
            "story": story_payload,
            "options": {"format": format_type, "generateCover": False},
        })
        assert response.status_code == HTTP_OK
        assert f"My Story.{format_type}" in response.headers["Content-Disposition"]
        assert response.headers["X-Cover-Status"] == "skipped"

    def test_chapters_and_settings(self, client, story_payload):
        """Test request settings and supplied chapter text."""
        response = client.post('/api/export', json={
            "story": story_payload,
            "options": {"generateCover": False},
            "settings": {"defaultFormat": "txt", "filenameTemplate": "{title}"},
            "chapters": ["The first chapter."],
        })
        assert response.status_code == HTTP_OK
        assert 'My Story.txt' in response.headers["Content-Disposition"]
        assert b"The first chapter." in response.data

    def test_cover_failure_still_downloads(self, client, story_payload):
        """Test that a cover failure is reported in a header, not an error."""
        with patch(
            "storykeep.services.story_export_service.generate_cover",
            side_effect=CoverRenderError("Cover encoding failed: boom")
        ):
            response = client.post('/api/export', json={"story": story_payload})
        assert response.status_code == HTTP_OK
        assert response.headers["X-Cover-Status"] == "failed"

    def test_invalid_format(self, client, story_payload):
        """Test that invalid formats are rejected."""
        response = client.post('/api/export', json={
            "story": story_payload,
            "options": {"format": "docx"},
        })
        assert response.status_code == HTTP_BAD_REQUEST
        assert response.get_json()["error_code"] == "VALIDATION_ERROR"

    def test_invalid_chapters(self, client, story_payload):
        """Test that chapters must be a list of strings."""
        response = client.post('/api/export', json={"story": story_payload, "chapters": "text"})
        assert response.status_code == HTTP_BAD_REQUEST


class TestRateLimiting:
    """Test rate limits on the generation endpoints."""

    def test_export_rate_limit(self, rate_limit_client, story_payload):
        """Test that the export limit returns 429 once exceeded."""
        body = {"story": story_payload, "options": {"format": "txt", "generateCover": False}}
        for _ in range(2):
            assert rate_limit_client.post('/api/export', json=body).status_code == HTTP_OK

        response = rate_limit_client.post('/api/export', json=body)
        assert response.status_code == HTTP_TOO_MANY_REQUESTS
        body = response.get_json()
        assert body["error_code"] == "RATE_LIMIT_EXCEEDED"
        assert "2 per 1 minute" in body["details"]["limit"]

    def test_cover_rate_limit(self, rate_limit_client, story_payload):
        """Test that the cover limit is applied separately."""
        for _ in range(2):
            response = rate_limit_client.post('/api/cover', json={"story": story_payload})
            assert response.status_code == HTTP_OK
        response = rate_limit_client.post('/api/cover', json={"story": story_payload})
        assert response.status_code == HTTP_TOO_MANY_REQUESTS
