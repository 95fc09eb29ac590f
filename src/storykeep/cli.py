"""
CLI tool for offline story archiving.

Provides commands for rendering covers, previewing filenames and
exporting stories from an analysis record saved as JSON, without
running the web API.
"""

import os
import sys
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
from dotenv import load_dotenv  # type: ignore[import-untyped]

from .config import load_settings
from .filenames import generate_filename
from .models import ExportFormat, DownloadOptions, Story, normalize_story
from .options import resolve_options
from .sources import get_site_from_url, is_valid_story_url, extract_story_id
from .themes import get_themes, DEFAULT_THEME_NAME
from .services import StoryExportService
from .utils.errors import APIError

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO if os.getenv('FLASK_ENV') != 'development' else logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def read_story(story_file) -> Story:
    """
    Load and normalize an analysis record from an open JSON file.

    Exits with status 1 when the file is not valid JSON or not a valid story.
    """
    try:
        data: Dict[str, Any] = json.load(story_file)
    except json.JSONDecodeError as e:
        click.echo(f"Error: {story_file.name} is not valid JSON: {e}", err=True)
        sys.exit(1)
    try:
        return normalize_story(data)
    except APIError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)


def read_chapters(paths: Tuple[str, ...]) -> Optional[list]:
    if not paths:
        return None
    return [Path(path).read_text(encoding="utf-8") for path in paths]


@click.group()
def cli():
    """Story archive tool - render covers and export stories."""
    load_dotenv()
    configure_logging()


@cli.command()
def themes() -> None:
    """List the built-in cover themes."""
    for theme in get_themes():
        marker = " (default)" if theme.name == DEFAULT_THEME_NAME else ""
        click.echo(f"{theme.name:<10} {theme.accent_color:<9} {theme.font}{marker}")


@cli.command()
def formats() -> None:
    """List the supported export formats."""
    for value in ExportFormat.values():
        click.echo(value)


@cli.command('check-url')
@click.argument('url')
def check_url(url: str) -> None:
    """Check whether URL points at a supported archive site."""
    if not is_valid_story_url(url):
        click.echo(f"✗ Unsupported URL (site: {get_site_from_url(url)})", err=True)
        sys.exit(1)

    click.echo(f"✓ {get_site_from_url(url)}")
    story_id = extract_story_id(url)
    if story_id:
        click.echo(f"  Story ID: {story_id}")


@cli.command()
@click.argument('story_file', type=click.File('r', encoding='utf-8'))
@click.option('--format', 'format_type', type=click.Choice(ExportFormat.values()),
              help='Export format (default: from settings, else epub)')
@click.option('--template', '-t', type=str, help='Filename template, e.g. "{author} - {title}"')
def filename(story_file, format_type: Optional[str], template: Optional[str]) -> None:
    """Print the download filename for STORY_FILE."""
    story = read_story(story_file)
    resolved = resolve_options(None, load_settings())
    chosen_format = ExportFormat(format_type) if format_type else resolved.format
    click.echo(generate_filename(story, chosen_format, template or resolved.filename_template))


@cli.command()
@click.argument('story_file', type=click.File('r', encoding='utf-8'))
@click.option('--theme', type=str, default=None, help=f'Cover theme (default: {DEFAULT_THEME_NAME})')
@click.option('--accent-color', type=str, default=None, help='Override the theme accent color')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Output PNG path (default: cover.png)')
def cover(story_file, theme: Optional[str], accent_color: Optional[str], output: Optional[str]) -> None:
    """Render a cover image for STORY_FILE."""
    story = read_story(story_file)
    overrides = {"accent_color": accent_color} if accent_color else None
    output_path = Path(output or "cover.png")

    try:
        png = StoryExportService().render_cover(story, theme, overrides)
        output_path.write_bytes(png)
    except APIError as e:
        click.echo(f"Error rendering cover: {e.message}", err=True)
        sys.exit(1)
    except OSError as e:
        click.echo(f"Error writing cover: {e}", err=True)
        sys.exit(1)

    click.echo(f"✓ Cover written to '{output_path}' ({len(png):,} bytes)")


@cli.command()
@click.argument('story_file', type=click.File('r', encoding='utf-8'))
@click.option('--format', 'format_type', type=click.Choice(ExportFormat.values()),
              help='Export format (default: from settings, else epub)')
@click.option('--template', '-t', type=str, help='Filename template')
@click.option('--cover/--no-cover', 'with_cover', default=None, help='Render a cover (default: on)')
@click.option('--theme', type=str, default=None, help='Cover theme')
@click.option('--chapter', 'chapter_files', multiple=True, type=click.Path(exists=True, dir_okay=False),
              help='Plain-text chapter file, in order (repeatable)')
@click.option('--output-dir', '-d', type=click.Path(file_okay=False), default='.',
              help='Directory to write into (default: current directory)')
def export(
    story_file,
    format_type: Optional[str],
    template: Optional[str],
    with_cover: Optional[bool],
    theme: Optional[str],
    chapter_files: Tuple[str, ...],
    output_dir: str
) -> None:
    """Export STORY_FILE as a document."""
    story = read_story(story_file)

    try:
        settings = load_settings()
        if template:
            settings = settings.model_copy(update={"filename_template": template})
        options = DownloadOptions(
            format=ExportFormat(format_type) if format_type else None,
            generate_cover=with_cover,
            cover_theme=theme
        )
        result = StoryExportService(settings).export(
            story,
            options,
            chapter_texts=read_chapters(chapter_files)
        )

        target_dir = Path(output_dir)
        target_dir.mkdir(parents=True, exist_ok=True)
        output_path = target_dir / result.filename
        output_path.write_bytes(result.artifact.data)
        if result.cover and result.artifact.format != ExportFormat.EPUB:
            output_path.with_suffix(".cover.png").write_bytes(result.cover)
    except APIError as e:
        click.echo(f"Error exporting story: {e.message}", err=True)
        sys.exit(1)
    except OSError as e:
        click.echo(f"Error exporting story: {e}", err=True)
        sys.exit(1)

    click.echo(
        f"✓ Exported '{story.title}' to '{output_path}' "
        f"({result.artifact.format.value.upper()}, {result.artifact.size:,} bytes)"
    )
    if result.cover_error:
        click.echo(f"⚠️  Cover was not generated: {result.cover_error}", err=True)


if __name__ == '__main__':
    cli()
