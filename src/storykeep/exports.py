"""
Document synthesis for stories in various formats.

Every generator is a pure function of the story (plus optional chapter
text and cover image) and returns an Artifact holding the document bytes
and media type. Nothing here touches the network or the filesystem.

Chapter bodies are placeholder paragraphs unless the caller supplies the
chapter text; the document structure is the same either way.
"""

import re
import html
import zipfile
import logging
from io import BytesIO
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Union

from .models import Story, ExportFormat
from .utils.errors import (
    ValidationError,
    MissingDependencyError,
    ServiceUnavailableError
)

logger = logging.getLogger(__name__)

MEDIA_TYPES = {
    ExportFormat.EPUB: "application/epub+zip",
    ExportFormat.PDF: "application/pdf",
    ExportFormat.TXT: "text/plain; charset=utf-8",
    ExportFormat.HTML: "text/html; charset=utf-8",
    ExportFormat.MARKDOWN: "text/markdown; charset=utf-8",
}

PLACEHOLDER_PARAGRAPHS = (
    "This is the content of chapter {number}.",
    "Chapter text was not supplied for this download, so this section holds placeholder content.",
)

EPUB_MIMETYPE = "application/epub+zip"
EPUB_CONTENT_DIR = "OEBPS"
EPUB_COVER_FILENAME = "cover.png"
# Fixed entry timestamp keeps archives byte-identical between runs
ZIP_TIMESTAMP = (1980, 1, 1, 0, 0, 0)

_PARAGRAPH_BREAK_PATTERN = re.compile(r'\n\s*\n')
_LANGUAGE_CODE_PATTERN = re.compile(r'^[A-Za-z]{2,3}(-[A-Za-z0-9]{2,8})*$')
_XML_ILLEGAL_PATTERN = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f]')

STYLESHEET = """body {
  font-family: Georgia, serif;
  line-height: 1.6;
  margin: 0;
  padding: 20px;
}

h1, h2 {
  color: #333;
}

.title-page {
  text-align: center;
  page-break-after: always;
}

.chapter {
  page-break-before: always;
}

p {
  margin-bottom: 1em;
  text-align: justify;
}"""

CONTAINER_XML = """<?xml version="1.0"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>"""


@dataclass(frozen=True)
class Artifact:
    """Generated document bytes and how to label them."""
    data: bytes
    media_type: str
    format: ExportFormat

    @property
    def extension(self) -> str:
        return self.format.value

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class Chapter:
    """One section of the output document."""
    number: int
    paragraphs: Tuple[str, ...]
    placeholder: bool = False

    @property
    def heading(self) -> str:
        return f"Chapter {self.number}"

    @property
    def file_name(self) -> str:
        return f"chapter{self.number}.xhtml"

    @property
    def item_id(self) -> str:
        return f"chapter{self.number}"


def _split_paragraphs(text: str) -> Tuple[str, ...]:
    paragraphs = []
    for block in _PARAGRAPH_BREAK_PATTERN.split(text.strip()):
        paragraph = " ".join(line.strip() for line in block.splitlines() if line.strip())
        if paragraph:
            paragraphs.append(paragraph)
    return tuple(paragraphs)


def build_chapters(
    story: Story,
    chapter_texts: Optional[Sequence[Optional[str]]] = None
) -> List[Chapter]:
    """
    Build the chapter list for a story.

    The number of chapters always comes from the story (at least one).
    Chapter ``i`` uses ``chapter_texts[i - 1]`` when it is present and not
    blank, otherwise placeholder paragraphs.

    Args:
        story: Story being archived
        chapter_texts: Optional plain text per chapter, in order

    Returns:
        Chapters in ascending order
    """
    texts = list(chapter_texts or [])
    if len(texts) > story.chapter_count:
        logger.warning(
            f"Story {story.id} lists {story.chapter_count} chapters but "
            f"{len(texts)} chapter texts were supplied; extra texts ignored"
        )

    chapters = []
    for number in range(1, story.chapter_count + 1):
        text = texts[number - 1] if number <= len(texts) else None
        paragraphs = _split_paragraphs(text) if text else ()
        if paragraphs:
            chapters.append(Chapter(number=number, paragraphs=paragraphs))
        else:
            chapters.append(Chapter(
                number=number,
                paragraphs=tuple(p.format(number=number) for p in PLACEHOLDER_PARAGRAPHS),
                placeholder=True
            ))
    return chapters


def language_code(story: Story) -> str:
    """Story language when it looks like a language tag, else "en"."""
    language = (story.language or "").strip()
    if _LANGUAGE_CODE_PATTERN.match(language):
        return language.lower()
    return "en"


def _esc(value: str) -> str:
    """Escape markup characters and drop control characters XML 1.0 forbids."""
    return html.escape(_XML_ILLEGAL_PATTERN.sub("", value), quote=True)


def _esc_multiline(value: str) -> str:
    """Escape text and keep its line breaks as <br/>."""
    return "<br/>".join(_esc(line) for line in value.splitlines())


# ---------------------------------------------------------------------------
# Plain text, PDF, Markdown, HTML
# ---------------------------------------------------------------------------

def render_text(story: Story, chapters: Sequence[Chapter]) -> str:
    """
    Render the plain-text document.

    Title and author lines, optional fandom and summary lines, then a
    "Chapter N" block per chapter.
    """
    parts = [f"{story.title}\nby {story.author}\n\n"]
    if story.fandom_text:
        parts.append(f"Fandom: {story.fandom_text}\n")
    if story.summary:
        parts.append(f"Summary: {story.summary}\n")
    parts.append("\n\n")
    for chapter in chapters:
        body = "\n\n".join(chapter.paragraphs)
        parts.append(f"\n{chapter.heading}\n\n{body}\n\n")
    return "".join(parts)


def render_markdown(story: Story, chapters: Sequence[Chapter]) -> str:
    lines = [f"# {story.title}", "", f"**Author:** {story.author}"]
    if story.fandom_text:
        lines.append(f"**Fandom:** {story.fandom_text}")
    if story.summary:
        lines.append(f"**Summary:** {story.summary}")
    lines.extend(["", "---", ""])

    parts = ["\n".join(lines), "\n"]
    for chapter in chapters:
        body = "\n\n".join(chapter.paragraphs)
        parts.append(f"\n## {chapter.heading}\n\n{body}\n\n")
    return "".join(parts)


def render_html(story: Story, chapters: Sequence[Chapter]) -> str:
    """Render a single self-contained HTML document with inline styles."""
    meta = [f"        <p>By {_esc(story.author)}</p>"]
    if story.fandom_text:
        meta.append(f"        <p>Fandom: {_esc(story.fandom_text)}</p>")
    if story.summary:
        meta.append(f"        <p>Summary: {_esc_multiline(story.summary)}</p>")

    sections = []
    for chapter in chapters:
        paragraphs = "\n".join(f"        <p>{_esc(p)}</p>" for p in chapter.paragraphs)
        sections.append(
            f'    <div class="chapter">\n'
            f'        <h2>{chapter.heading}</h2>\n'
            f'{paragraphs}\n'
            f'    </div>'
        )

    meta_block = "\n".join(meta)
    chapter_block = "\n".join(sections)
    return f"""<!DOCTYPE html>
<html lang="{language_code(story)}">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{_esc(story.title)}</title>
    <style>
        body {{ font-family: Georgia, serif; max-width: 800px; margin: 0 auto; padding: 20px; }}
        h1 {{ color: #333; border-bottom: 2px solid #333; }}
        .meta {{ color: #666; font-style: italic; margin-bottom: 30px; }}
        .chapter {{ margin-bottom: 40px; }}
        .chapter h2 {{ color: #555; }}
    </style>
</head>
<body>
    <h1>{_esc(story.title)}</h1>
    <div class="meta">
{meta_block}
    </div>
{chapter_block}
</body>
</html>
"""


def export_txt(story: Story, chapters: Sequence[Chapter]) -> Artifact:
    return Artifact(
        data=render_text(story, chapters).encode('utf-8'),
        media_type=MEDIA_TYPES[ExportFormat.TXT],
        format=ExportFormat.TXT
    )


def export_markdown(story: Story, chapters: Sequence[Chapter]) -> Artifact:
    return Artifact(
        data=render_markdown(story, chapters).encode('utf-8'),
        media_type=MEDIA_TYPES[ExportFormat.MARKDOWN],
        format=ExportFormat.MARKDOWN
    )


def export_html(story: Story, chapters: Sequence[Chapter]) -> Artifact:
    return Artifact(
        data=render_html(story, chapters).encode('utf-8'),
        media_type=MEDIA_TYPES[ExportFormat.HTML],
        format=ExportFormat.HTML
    )


def export_pdf(story: Story, chapters: Sequence[Chapter], typeset: bool = False) -> Artifact:
    """
    Export story as PDF.

    By default the PDF artifact is the plain-text document labeled with
    the PDF media type. With ``typeset`` the same content is laid out
    with reportlab into a real PDF file.

    Raises:
        MissingDependencyError: If typesetting is requested and reportlab is not installed
        ServiceUnavailableError: If PDF typesetting fails
    """
    if not typeset:
        return Artifact(
            data=render_text(story, chapters).encode('utf-8'),
            media_type=MEDIA_TYPES[ExportFormat.PDF],
            format=ExportFormat.PDF
        )
    return Artifact(
        data=typeset_pdf(story, chapters),
        media_type=MEDIA_TYPES[ExportFormat.PDF],
        format=ExportFormat.PDF
    )


def typeset_pdf(story: Story, chapters: Sequence[Chapter]) -> bytes:
    """
    Lay the story out as a real PDF with reportlab.

    Args:
        story: Story being archived
        chapters: Chapters to include

    Returns:
        PDF file bytes
    """
    try:
        from reportlab.lib.pagesizes import letter
        from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
        from reportlab.lib.units import inch
        from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, PageBreak
        from reportlab.lib.enums import TA_LEFT, TA_CENTER
        from reportlab.lib.colors import HexColor
    except ImportError:
        raise MissingDependencyError("reportlab", "pip install reportlab")

    try:
        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=letter,
            rightMargin=72,
            leftMargin=72,
            topMargin=72,
            bottomMargin=18,
            title=story.title,
            author=story.author
        )

        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            'StoryTitle',
            parent=styles['Title'],
            fontSize=24,
            textColor=HexColor('#333333'),
            spaceAfter=12,
            alignment=TA_CENTER
        )
        byline_style = ParagraphStyle(
            'StoryByline',
            parent=styles['Normal'],
            fontSize=14,
            leading=18,
            spaceAfter=24,
            alignment=TA_CENTER
        )
        heading_style = ParagraphStyle(
            'ChapterHeading',
            parent=styles['Heading2'],
            textColor=HexColor('#555555'),
            spaceAfter=18,
            alignment=TA_LEFT
        )
        body_style = ParagraphStyle(
            'StoryBody',
            parent=styles['Normal'],
            fontSize=11,
            leading=16,
            spaceAfter=12,
            alignment=TA_LEFT
        )

        flowables: List[Any] = [
            Paragraph(_esc(story.title), title_style),
            Paragraph(f"by {_esc(story.author)}", byline_style),
        ]
        if story.fandom_text:
            flowables.append(Paragraph(f"<b>Fandom:</b> {_esc(story.fandom_text)}", body_style))
        if story.summary:
            flowables.append(Paragraph(f"<b>Summary:</b> {_esc_multiline(story.summary)}", body_style))

        for chapter in chapters:
            flowables.append(PageBreak())
            flowables.append(Paragraph(chapter.heading, heading_style))
            for paragraph in chapter.paragraphs:
                flowables.append(Paragraph(_esc(paragraph), body_style))
            flowables.append(Spacer(1, 0.2 * inch))

        doc.build(flowables)
        return buffer.getvalue()
    except (IOError, OSError) as e:
        logger.error(f"I/O error during PDF typesetting: {str(e)}", exc_info=True)
        raise ServiceUnavailableError("export", f"PDF export failed due to I/O issue: {str(e)}")


# ---------------------------------------------------------------------------
# EPUB
# ---------------------------------------------------------------------------

def build_content_opf(story: Story, chapters: Sequence[Chapter], has_cover: bool = False) -> str:
    """Package document: Dublin Core metadata, manifest and spine."""
    metadata = [
        f"    <dc:title>{_esc(story.title)}</dc:title>",
        f'    <dc:creator opf:role="aut">{_esc(story.author)}</dc:creator>',
        f'    <dc:identifier id="BookId">{_esc(story.id)}</dc:identifier>',
        f"    <dc:language>{language_code(story)}</dc:language>",
    ]
    if story.summary:
        metadata.append(f"    <dc:description>{_esc(story.summary)}</dc:description>")
    if story.fandom_text:
        metadata.append(f"    <dc:subject>{_esc(story.fandom_text)}</dc:subject>")
    if story.published:
        metadata.append(f"    <dc:date>{story.published.date().isoformat()}</dc:date>")
    if has_cover:
        metadata.append('    <meta name="cover" content="cover-image"/>')

    manifest = [
        '    <item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>',
        '    <item id="stylesheet" href="styles.css" media-type="text/css"/>',
        '    <item id="titlepage" href="titlepage.xhtml" media-type="application/xhtml+xml"/>',
    ]
    manifest.extend(
        f'    <item id="{chapter.item_id}" href="{chapter.file_name}" media-type="application/xhtml+xml"/>'
        for chapter in chapters
    )
    if has_cover:
        manifest.append(
            f'    <item id="cover-image" href="{EPUB_COVER_FILENAME}" media-type="image/png"/>'
        )

    spine = ['    <itemref idref="titlepage"/>']
    spine.extend(f'    <itemref idref="{chapter.item_id}"/>' for chapter in chapters)

    return "\n".join([
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<package xmlns="http://www.idpf.org/2007/opf" unique-identifier="BookId" version="2.0">',
        '  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/" xmlns:opf="http://www.idpf.org/2007/opf">',
        *metadata,
        '  </metadata>',
        '',
        '  <manifest>',
        *manifest,
        '  </manifest>',
        '',
        '  <spine toc="ncx">',
        *spine,
        '  </spine>',
        '</package>',
    ])


def build_toc_ncx(story: Story, chapters: Sequence[Chapter]) -> str:
    """Navigation document: title page first, then chapters in order."""
    nav_points = [
        '    <navPoint id="titlepage" playOrder="1">\n'
        '      <navLabel><text>Title Page</text></navLabel>\n'
        '      <content src="titlepage.xhtml"/>\n'
        '    </navPoint>'
    ]
    for play_order, chapter in enumerate(chapters, start=2):
        nav_points.append(
            f'    <navPoint id="{chapter.item_id}" playOrder="{play_order}">\n'
            f'      <navLabel><text>{chapter.heading}</text></navLabel>\n'
            f'      <content src="{chapter.file_name}"/>\n'
            f'    </navPoint>'
        )

    nav_map = "\n".join(nav_points)
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">
  <head>
    <meta name="dtb:uid" content="{_esc(story.id)}"/>
  </head>

  <docTitle>
    <text>{_esc(story.title)}</text>
  </docTitle>

  <navMap>
{nav_map}
  </navMap>
</ncx>"""


def _xhtml_document(title: str, body: str) -> str:
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<html xmlns="http://www.w3.org/1999/xhtml">
<head>
  <title>{title}</title>
  <link rel="stylesheet" type="text/css" href="styles.css"/>
</head>
<body>
{body}
</body>
</html>"""


def build_title_page(story: Story) -> str:
    lines = [
        '  <div class="title-page">',
        f"    <h1>{_esc(story.title)}</h1>",
        f"    <h2>by {_esc(story.author)}</h2>",
    ]
    if story.fandom_text:
        lines.append(f"    <p><strong>Fandom:</strong> {_esc(story.fandom_text)}</p>")
    if story.summary:
        lines.append(f"    <div><strong>Summary:</strong><br/>{_esc_multiline(story.summary)}</div>")
    lines.append("  </div>")
    return _xhtml_document("Title Page", "\n".join(lines))


def build_chapter_page(chapter: Chapter) -> str:
    lines = ['  <div class="chapter">', f"    <h2>{chapter.heading}</h2>"]
    lines.extend(f"    <p>{_esc(paragraph)}</p>" for paragraph in chapter.paragraphs)
    lines.append("  </div>")
    return _xhtml_document(chapter.heading, "\n".join(lines))


def _write_entry(
    archive: zipfile.ZipFile,
    name: str,
    data: Union[str, bytes],
    compress_type: int = zipfile.ZIP_DEFLATED
) -> None:
    info = zipfile.ZipInfo(name, date_time=ZIP_TIMESTAMP)
    info.compress_type = compress_type
    info.create_system = 3
    info.external_attr = 0o644 << 16
    archive.writestr(info, data)


def export_epub(
    story: Story,
    chapters: Sequence[Chapter],
    cover: Optional[bytes] = None
) -> Artifact:
    """
    Export story as an EPUB 2 package.

    The ``mimetype`` entry is written first and stored uncompressed so
    e-readers can identify the container from its leading bytes.

    Args:
        story: Story being archived
        chapters: Chapters in ascending order
        cover: Optional PNG cover to embed

    Returns:
        Artifact with the EPUB archive bytes
    """
    has_cover = bool(cover)
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        _write_entry(archive, "mimetype", EPUB_MIMETYPE, zipfile.ZIP_STORED)
        _write_entry(archive, "META-INF/container.xml", CONTAINER_XML)
        _write_entry(archive, f"{EPUB_CONTENT_DIR}/content.opf",
                     build_content_opf(story, chapters, has_cover))
        _write_entry(archive, f"{EPUB_CONTENT_DIR}/toc.ncx", build_toc_ncx(story, chapters))
        _write_entry(archive, f"{EPUB_CONTENT_DIR}/styles.css", STYLESHEET)
        _write_entry(archive, f"{EPUB_CONTENT_DIR}/titlepage.xhtml", build_title_page(story))
        for chapter in chapters:
            _write_entry(archive, f"{EPUB_CONTENT_DIR}/{chapter.file_name}",
                         build_chapter_page(chapter))
        if has_cover:
            # PNG data is already compressed
            _write_entry(archive, f"{EPUB_CONTENT_DIR}/{EPUB_COVER_FILENAME}",
                         cover, zipfile.ZIP_STORED)

    return Artifact(
        data=buffer.getvalue(),
        media_type=MEDIA_TYPES[ExportFormat.EPUB],
        format=ExportFormat.EPUB
    )


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def _coerce_format(options: Any) -> ExportFormat:
    if isinstance(options, str):
        value = options
    else:
        value = getattr(options, "format", None)
    if isinstance(value, ExportFormat):
        return value
    try:
        return ExportFormat(value)
    except ValueError:
        raise ValidationError(
            f"Invalid format '{value}'. Supported formats: {', '.join(ExportFormat.values())}",
            details={"format_type": value, "valid_formats": ExportFormat.values()}
        )


def generate_document(
    story: Story,
    options: Any,
    chapter_texts: Optional[Sequence[Optional[str]]] = None,
    cover: Optional[bytes] = None,
    typeset: bool = False
) -> Artifact:
    """
    Generate a story document in the requested format.

    This is the main entry point of the synthesizer.

    Args:
        story: Story being archived
        options: Object with a ``format`` attribute (DownloadOptions,
            ResolvedOptions) or the format itself
        chapter_texts: Optional plain text per chapter
        cover: Optional PNG cover, embedded in EPUB output only
        typeset: Lay PDF output out with reportlab instead of plain text

    Returns:
        Artifact with the document bytes

    Raises:
        ValidationError: If the format is not one of the supported formats
        MissingDependencyError: If a required library is not installed
        ServiceUnavailableError: If generation fails
    """
    format_type = _coerce_format(options)
    chapters = build_chapters(story, chapter_texts)
    logger.debug(
        f"Generating {format_type.value} for story {story.id} with {len(chapters)} chapters"
    )

    try:
        if format_type == ExportFormat.EPUB:
            return export_epub(story, chapters, cover)
        elif format_type == ExportFormat.PDF:
            return export_pdf(story, chapters, typeset)
        elif format_type == ExportFormat.TXT:
            return export_txt(story, chapters)
        elif format_type == ExportFormat.HTML:
            return export_html(story, chapters)
        elif format_type == ExportFormat.MARKDOWN:
            return export_markdown(story, chapters)
    except (ValidationError, MissingDependencyError, ServiceUnavailableError):
        raise
    except (IOError, OSError) as e:
        logger.error(
            f"I/O error during export for story {story.id}, format {format_type.value}: {str(e)}",
            exc_info=True
        )
        raise ServiceUnavailableError("export", f"Export failed due to I/O issue: {str(e)}")
    raise ValidationError(
        f"Invalid format '{format_type.value}'.",
        details={"format_type": format_type.value}
    )


def generate(story: Story, options: Any) -> bytes:
    """Generate a document and return only its bytes."""
    return generate_document(story, options).data
