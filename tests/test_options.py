"""
Tests for download option resolution.

Tests cover the precedence of request options over settings over
built-in defaults.
"""

import pytest

from storykeep.models import DownloadOptions, ExportFormat, Settings
from storykeep.options import resolve_options


class TestResolveOptions:
    """Test option precedence."""

    def test_defaults(self):
        """Test the built-in defaults when nothing is supplied."""
        resolved = resolve_options()
        assert resolved.format == ExportFormat.EPUB
        assert resolved.filename_template == "{author} - {title}"
        assert resolved.include_reviews is False
        assert resolved.generate_cover is True
        assert resolved.cover_theme == "Classic"
        assert resolved.typeset_pdf is False
        assert resolved.download_delay == 2.0

    def test_request_overrides_settings(self):
        """Test that request options win over persisted settings."""
        resolved = resolve_options(
            DownloadOptions(format="txt", generate_cover=True, cover_theme="Dark"),
            Settings(default_format="pdf", generate_covers=False, cover_theme="Ocean")
        )
        assert resolved.format == ExportFormat.TXT
        assert resolved.generate_cover is True
        assert resolved.cover_theme == "Dark"

    def test_settings_fill_unset_options(self):
        """Test that settings apply where the request is silent."""
        resolved = resolve_options(
            DownloadOptions(),
            Settings(default_format="markdown", filename_template="{title}", include_reviews=True)
        )
        assert resolved.format == ExportFormat.MARKDOWN
        assert resolved.filename_template == "{title}"
        assert resolved.include_reviews is True

    @pytest.mark.parametrize("setting", [False, True])
    def test_explicit_false_generate_covers_respected(self, setting):
        """Test that a generate_covers setting of False is not replaced by the default."""
        resolved = resolve_options(DownloadOptions(), Settings(generate_covers=setting))
        assert resolved.generate_cover is setting

    def test_explicit_false_option_beats_true_setting(self):
        """Test that a request can switch covers off."""
        resolved = resolve_options(
            DownloadOptions(generate_cover=False),
            Settings(generate_covers=True)
        )
        assert resolved.generate_cover is False

    def test_appearance_settings_carried(self):
        """Test that formatting preferences are passed through."""
        resolved = resolve_options(None, Settings(justify_text=True, font_size="large"))
        assert resolved.justify_text is True
        assert resolved.font_size == "large"

    def test_to_dict(self):
        """Test the JSON-friendly view of resolved options."""
        data = resolve_options().to_dict()
        assert data["format"] == "epub"
        assert data["generate_cover"] is True
