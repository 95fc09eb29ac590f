"""
Filename template engine.

Substitutes story fields into user-defined filename templates such as
``"{author} - {title}"`` and sanitizes every substituted value so the
result is safe to use as a file name on common filesystems.
"""

import re
from datetime import date, datetime, timezone
from typing import Dict, Optional, Union

from .models import Story, ExportFormat

# Pre-compiled patterns, shared by every call
_UNSAFE_CHARS_PATTERN = re.compile(r'[^A-Za-z0-9_\s-]')
_WHITESPACE_PATTERN = re.compile(r'\s+')
_PLACEHOLDER_PATTERN = re.compile(r'\{([A-Za-z_]+)\}')

DEFAULT_FILENAME_TEMPLATE = "{author} - {title}"

RECOGNIZED_PLACEHOLDERS = (
    "title",
    "author",
    "fandom",
    "chapters",
    "words",
    "lang",
    "published",
    "updated",
    "status",
    "subject",
    "date",
)

# Recognized but not filled in: chapters, words, lang, published, updated,
# status and subject are left in the output exactly as written.
POPULATED_PLACEHOLDERS = ("title", "author", "fandom", "date")

UNKNOWN_FANDOM = "Unknown"


def sanitize(value: str) -> str:
    """
    Make a value safe for use inside a filename.

    Removes every character other than ASCII letters, digits, underscore,
    whitespace and hyphen, collapses whitespace runs to a single space and
    trims the ends. Applying it twice gives the same result as once.

    Args:
        value: Raw text

    Returns:
        Sanitized text (possibly empty)
    """
    safe = _UNSAFE_CHARS_PATTERN.sub('', value or '')
    safe = _WHITESPACE_PATTERN.sub(' ', safe)
    return safe.strip()


def _today(today: Optional[date]) -> str:
    if today is None:
        today = datetime.now(timezone.utc).date()
    return today.isoformat()


def template_variables(story: Story, today: Optional[date] = None) -> Dict[str, str]:
    """
    Build the placeholder values for a story.

    Args:
        story: Story being archived
        today: Date used for ``{date}`` (defaults to the current UTC date)

    Returns:
        Mapping of placeholder name to sanitized value
    """
    return {
        "title": sanitize(story.title),
        "author": sanitize(story.author),
        "fandom": sanitize(story.fandom_text or UNKNOWN_FANDOM),
        "date": _today(today),
    }


def render_template(
    template: str,
    story: Story,
    today: Optional[date] = None
) -> str:
    """
    Render a filename template into a filename stem.

    Substitution is a single pass over the template, so text inserted for
    one placeholder is never scanned for further placeholders. Literal
    text around placeholders is kept as written.

    Args:
        template: Template such as "{author} - {title}"
        story: Story providing the values
        today: Date used for ``{date}``

    Returns:
        Filename stem without extension; empty for an empty template
    """
    if not template:
        return ""

    variables = template_variables(story, today)

    def _substitute(match: re.Match) -> str:
        return variables.get(match.group(1), match.group(0))

    return _PLACEHOLDER_PATTERN.sub(_substitute, template)


def generate_filename(
    story: Story,
    format_type: Union[ExportFormat, str],
    template: Optional[str] = None,
    today: Optional[date] = None
) -> str:
    """
    Compute the full filename for an artifact.

    Args:
        story: Story being archived
        format_type: Output format; its value is used verbatim as extension
        template: Filename template (defaults to "{author} - {title}")
        today: Date used for ``{date}``

    Returns:
        "<stem>.<format>"
    """
    if template is None:
        template = DEFAULT_FILENAME_TEMPLATE
    extension = format_type.value if isinstance(format_type, ExportFormat) else str(format_type)
    return f"{render_template(template, story, today)}.{extension}"
