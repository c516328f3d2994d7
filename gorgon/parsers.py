"""Content parsers for Gorgon.

This module contains implementations of the ContentParser protocol for the
supported source formats. Each parser splits off the YAML frontmatter, turns
it into Metadata and produces the HTML body.

Key classes:
- MarkdownParser: Renders Markdown to HTML with syntax highlighting.
- HTMLParser: Passes HTML bodies through unchanged.
- ParserRegistry: Selects a parser by file extension.
"""

from __future__ import annotations

import logging
import posixpath
import re
from typing import Any, Iterable

import mistune
import yaml
from markupsafe import escape
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .errors import ContentParseError
from .models import Metadata
from .protocols import ContentParser, ParsedContent
from .utils import slugify

logger = logging.getLogger(__name__)

# A first line of "---", the YAML block, then a line consisting of "---".
FRONTMATTER_RE = re.compile(
    r"\A---[ \t]*\r?\n(?:(.*?)\r?\n)?---[ \t]*(?:\r?\n|\Z)", re.DOTALL
)


def split_frontmatter(text: str, source_path: str = "") -> tuple[dict[str, Any], str]:
    """Split YAML frontmatter from the rest of a content file.

    Args:
        text: Complete file contents.
        source_path: Storage path used in error messages.

    Returns:
        Tuple of (frontmatter mapping, remaining body). Files without a
        frontmatter block yield an empty mapping and the whole text.

    Raises:
        ContentParseError: If the block is not valid YAML or not a mapping.
    """
    text = text.lstrip("\ufeff")
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1) or "") or {}
    except yaml.YAMLError as exc:
        raise ContentParseError(source_path, f"Invalid YAML frontmatter: {exc}") from exc
    if not isinstance(data, dict):
        raise ContentParseError(source_path, "Frontmatter must be a YAML mapping")
    return data, text[match.end():]


def parse_metadata(data: dict[str, Any], source_path: str) -> Metadata:
    """Convert a frontmatter mapping to Metadata.

    Raises:
        ContentParseError: If a known field has an unusable value.
    """
    try:
        return Metadata.from_mapping(data)
    except (TypeError, ValueError) as exc:
        raise ContentParseError(source_path, f"Invalid frontmatter value: {exc}") from exc


class _HighlightRenderer(mistune.HTMLRenderer):
    """Markdown renderer with heading anchors and Pygments highlighting."""

    def __init__(self):
        super().__init__(escape=False)
        self._heading_ids: dict[str, int] = {}

    def heading(self, text: str, level: int, **attrs) -> str:
        """Render a heading with a unique, slug-based id."""
        base_id = slugify(re.sub(r"<[^>]+>", "", text))
        count = self._heading_ids.get(base_id)
        if count is None:
            self._heading_ids[base_id] = 0
            heading_id = base_id
        else:
            self._heading_ids[base_id] = count + 1
            heading_id = f"{base_id}-{count + 1}"
        return f'<h{level} id="{heading_id}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a fenced code block, highlighted when the language is known.

        Args:
            code: The code content.
            info: Language identifier (e.g., 'python', 'javascript').

        Returns:
            HTML string with highlighted code.
        """
        lang = info.split()[0] if info and info.strip() else None
        if lang:
            try:
                lexer = get_lexer_by_name(lang, stripall=True)
            except ClassNotFound:
                logger.debug("No Pygments lexer for %r, rendering plain code", lang)
            else:
                formatter = HtmlFormatter(nowrap=False, cssclass="highlight")
                return highlight(code, lexer, formatter)
        lang_class = f' class="language-{escape(lang)}"' if lang else ""
        return f"<pre><code{lang_class}>{escape(code)}</code></pre>\n"


class MarkdownParser:
    """Parses Markdown files with YAML frontmatter.

    The body is rendered with mistune; fenced code blocks are highlighted
    with Pygments.
    """

    def __init__(self, plugins: Iterable[str] | None = None):
        self.plugins = list(plugins or ["strikethrough", "footnotes", "table", "url"])

    @property
    def extensions(self) -> tuple[str, ...]:
        return (".md", ".markdown")

    def render_markdown(self, text: str) -> str:
        """Render Markdown text to HTML."""
        markdown = mistune.create_markdown(renderer=_HighlightRenderer(), plugins=self.plugins)
        return markdown(text)

    def parse(self, raw_text: str, source_path: str) -> ParsedContent:
        """Parse a Markdown file.

        Args:
            raw_text: Complete file contents.
            source_path: Storage path of the file.

        Returns:
            Parsed metadata and rendered HTML body.
        """
        data, body = split_frontmatter(raw_text, source_path)
        metadata = parse_metadata(data, source_path)
        return ParsedContent(metadata=metadata, body=self.render_markdown(body))


class HTMLParser:
    """Parses HTML files with YAML frontmatter; the body passes through."""

    @property
    def extensions(self) -> tuple[str, ...]:
        return (".html", ".htm")

    def parse(self, raw_text: str, source_path: str) -> ParsedContent:
        data, body = split_frontmatter(raw_text, source_path)
        return ParsedContent(metadata=parse_metadata(data, source_path), body=body)


class ParserRegistry:
    """Registry mapping file extensions to content parsers.

    New formats can be added by registering another parser; a later
    registration for the same extension replaces the earlier one.
    """

    def __init__(self, parsers: Iterable[ContentParser] | None = None):
        """Initialize the registry.

        Args:
            parsers: Parsers to register. Defaults to Markdown and HTML.
        """
        self._parsers: dict[str, ContentParser] = {}
        for parser in parsers if parsers is not None else (MarkdownParser(), HTMLParser()):
            self.register(parser)

    def register(self, parser: ContentParser) -> None:
        """Register a parser for every extension it declares."""
        for ext in parser.extensions:
            self._parsers[ext.lower()] = parser

    @property
    def extensions(self) -> list[str]:
        return sorted(self._parsers)

    def get_parser(self, path: str) -> ContentParser | None:
        """Return the parser for a storage path, or None when unsupported."""
        ext = posixpath.splitext(path)[1].lower()
        return self._parsers.get(ext)
