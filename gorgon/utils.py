"""Utility functions for Gorgon.

This module contains the string and URL helpers shared by the build stages
and the built-in plugins.

Key functions:
    slugify: Convert arbitrary text to a URL slug.
    normalize_url: Canonicalize a site-relative URL.
    has_file_extension: Check whether a URL's last segment names a file.
    join_root_url: Join the site base URL with a site-relative path.
    strip_tags: Remove HTML tags from a fragment.
    generate_summary: Build a plain-text summary from rendered HTML.
    reading_time: Estimate reading time in minutes.
    truncate: Shorten text on a word boundary.
"""

from __future__ import annotations

import html
import math
import re

_INVALID_SLUG_CHARS_RE = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE_RE = re.compile(r"\s+")
_MULTI_HYPHEN_RE = re.compile(r"-{2,}")
_MULTI_SLASH_RE = re.compile(r"/{2,}")
_TAG_RE = re.compile(r"<.*?>", re.DOTALL)
_FIRST_PARAGRAPH_RE = re.compile(r"<p(?:\s+[^>]*?)?>(.*?)</p>", re.IGNORECASE | re.DOTALL)
_WORD_RE = re.compile(r"[\w'-]+")
_EXTENSION_RE = re.compile(r"\.[A-Za-z0-9]+$")

WORDS_PER_MINUTE = 225
SUMMARY_MAX_LENGTH = 250


def slugify(text: str | None) -> str:
    """Convert text to a URL slug.

    Lowercases, drops everything outside ``[a-z0-9\\s-]``, turns whitespace
    runs into single hyphens, collapses repeated hyphens and trims them.

    Args:
        text: Text to convert, possibly None.

    Returns:
        URL-friendly slug, ``untitled`` when nothing usable remains.

    Examples:
        >>> slugify("Hello World!")
        'hello-world'

        >>> slugify("C# & .NET")
        'c-net'

        >>> slugify("!!!")
        'untitled'
    """
    if text is None or not text.strip():
        return "untitled"
    output = _INVALID_SLUG_CHARS_RE.sub("", text.lower())
    output = _WHITESPACE_RE.sub("-", output)
    output = _MULTI_HYPHEN_RE.sub("-", output)
    output = output.strip("-")
    return output or "untitled"


def has_file_extension(url: str) -> bool:
    """Check if the last path segment of a URL carries a file extension.

    Examples:
        >>> has_file_extension("/feed.xml")
        True

        >>> has_file_extension("/blog/")
        False
    """
    if url.endswith("/"):
        return False
    return bool(_EXTENSION_RE.search(url.rsplit("/", 1)[-1]))


def normalize_url(url: str) -> str:
    """Canonicalize a site-relative URL.

    Ensures a single leading slash, collapses duplicate slashes and appends
    a trailing slash unless the last segment has a file extension.

    Examples:
        >>> normalize_url("about")
        '/about/'

        >>> normalize_url("//docs//feed.xml")
        '/docs/feed.xml'
    """
    cleaned = _MULTI_SLASH_RE.sub("/", "/" + (url or "").strip().replace("\\", "/"))
    if cleaned.endswith("/") or has_file_extension(cleaned):
        return cleaned
    return cleaned + "/"


def join_root_url(root_url: str, path: str) -> str:
    """Safely join a root URL and a path, avoiding double slashes.

    Args:
        root_url: Base URL (e.g., https://example.com/blog).
        path: Path beginning with or without a leading slash.

    Returns:
        Combined URL with proper slash handling, or ``path`` unchanged when
        there is no root URL.

    Examples:
        >>> join_root_url('https://example.com', '/about/')
        'https://example.com/about/'
    """
    if not root_url:
        return path
    base = root_url.rstrip("/")
    suffix = path if path.startswith("/") else f"/{path}"
    return f"{base}{suffix}"


def strip_tags(fragment: str) -> str:
    """Remove HTML tags and decode entities."""
    return html.unescape(_TAG_RE.sub("", fragment or ""))


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def generate_summary(html_content: str, max_length: int = SUMMARY_MAX_LENGTH) -> str | None:
    """Build a plain-text summary from rendered HTML.

    The first ``<p>`` element is used (the whole document when there is
    none). Text longer than ``max_length`` is cut at the last sentence end
    when that lies past half the limit, otherwise at the last space with an
    ellipsis appended.

    Args:
        html_content: Rendered HTML body.
        max_length: Maximum summary length before the ellipsis.

    Returns:
        Summary text, or None when the content has no text.
    """
    if not html_content or not html_content.strip():
        return None
    match = _FIRST_PARAGRAPH_RE.search(html_content)
    source = match.group(1) if match else html_content
    text = collapse_whitespace(strip_tags(source))
    if not text:
        return None
    if len(text) <= max_length:
        return text

    window = text[:max_length]
    cutoff = max(window.rfind("."), window.rfind("!"), window.rfind("?"))
    if cutoff > max_length * 0.5:
        return text[: cutoff + 1].strip()

    cutoff = window.rfind(" ")
    if cutoff > 0:
        return text[:cutoff].strip() + "..."
    return window.strip() + "..."


def count_words(html_content: str) -> int:
    return len(_WORD_RE.findall(_TAG_RE.sub("", html_content or "")))


def reading_time(html_content: str, words_per_minute: int = WORDS_PER_MINUTE) -> int:
    """Estimate reading time of rendered HTML in whole minutes, rounded up.

    Examples:
        >>> reading_time("<p>" + "word " * 226 + "</p>")
        2
    """
    words = count_words(html_content)
    if words == 0:
        return 0
    return math.ceil(words / words_per_minute)


def truncate(text: str, limit: int) -> str:
    """Shorten text to ``limit`` characters on a word boundary, adding ``...``."""
    text = collapse_whitespace(text)
    if len(text) <= limit:
        return text
    cut = text[: max(limit - 3, 0)]
    space = cut.rfind(" ")
    if space > 0:
        cut = cut[:space]
    return cut.rstrip(" ,.;:") + "..."
