"""Permalink and destination path resolution.

Pure functions that map a content item to its site URL and output path.
They never touch storage, so they can be called from anywhere in the build.
"""

from __future__ import annotations

import logging
import posixpath
import re

from .models import ContentItem, SiteConfiguration
from .utils import has_file_extension, normalize_url, slugify

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r":([A-Za-z]+)")
KNOWN_PLACEHOLDERS = ("slug", "title", "year", "month", "day")


def destination_for_url(url: str) -> str:
    """Map a normalized URL to an output storage path.

    Examples:
        >>> destination_for_url("/")
        'index.html'

        >>> destination_for_url("/about/")
        'about/index.html'

        >>> destination_for_url("/feed.xml")
        'feed.xml'
    """
    if url == "/":
        return "index.html"
    relative = url.lstrip("/")
    if has_file_extension(url):
        return relative
    if not relative.endswith("/"):
        relative += "/"
    return relative + "index.html"


def _content_relative(source_path: str, config: SiteConfiguration) -> str:
    """Return the source path relative to the content directory."""
    content_dir = config.content_directory.strip("/")
    path = source_path.lstrip("/")
    if content_dir and path.startswith(content_dir + "/"):
        return path[len(content_dir) + 1:]
    return path


def is_root_index(source_path: str, config: SiteConfiguration) -> bool:
    """Check whether a source file is the index directly under the content root."""
    relative = _content_relative(source_path, config)
    if "/" in relative:
        return False
    stem = posixpath.splitext(relative)[0]
    return stem.lower() == "index"


def fallback_slug(source_path: str) -> str:
    """Slug derived from the file name; ``index`` files use their directory name."""
    directory, filename = posixpath.split(source_path)
    stem = posixpath.splitext(filename)[0]
    if stem.lower() == "index" and directory:
        stem = posixpath.basename(directory)
    return slugify(stem)


def item_slug(item: ContentItem) -> str:
    """Pick the slug for an item: explicit slug, then title, then file name."""
    meta = item.metadata
    if meta.slug:
        return slugify(meta.slug)
    if meta.title:
        return slugify(meta.title)
    return fallback_slug(item.source_path)


def draft_url(item: ContentItem, config: SiteConfiguration) -> str:
    """Mirror a draft's source path below the drafts base path."""
    relative = _content_relative(item.source_path, config)
    directory, filename = posixpath.split(relative)
    segments = [slugify(part) for part in directory.split("/") if part]
    stem = posixpath.splitext(filename)[0]
    if stem.lower() != "index":
        segments.append(slugify(stem))
    base = config.drafts_base_path.strip("/") or "drafts"
    return normalize_url("/".join([base, *segments]))


def expand_permalink(template: str, item: ContentItem) -> str:
    """Substitute permalink placeholders for an item.

    ``:slug`` and ``:title`` are always available; ``:year``, ``:month`` and
    ``:day`` (zero-padded) are filled from a post's publish day as written,
    before any UTC conversion. Names are matched case-insensitively; anything
    else is left in place with a warning.
    """
    slug = item_slug(item)
    date = None
    if item.post is not None:
        date = item.post.local_date or item.post.date
    values = {"slug": slug, "title": slug}
    if date is not None:
        values.update(
            year=f"{date.year:04d}", month=f"{date.month:02d}", day=f"{date.day:02d}"
        )

    def repl(match: re.Match) -> str:
        name = match.group(1).lower()
        if name in values:
            return values[name]
        logger.warning(
            "Unknown permalink placeholder ':%s' in '%s' for %s",
            match.group(1),
            template,
            item.source_path,
        )
        return match.group(0)

    return PLACEHOLDER_RE.sub(repl, template)


def resolve(
    item: ContentItem, permalink_template: str, config: SiteConfiguration
) -> tuple[str, str]:
    """Compute the URL and destination path of a content item.

    Args:
        item: Item with metadata and source path filled in.
        permalink_template: Template for the item's kind.
        config: Site configuration.

    Returns:
        Tuple of (url, destination_path).
    """
    meta = item.metadata
    if meta.url:
        url = normalize_url(meta.url)
    elif is_root_index(item.source_path, config):
        url = "/"
    elif meta.draft:
        url = draft_url(item, config)
    else:
        url = normalize_url(expand_permalink(permalink_template, item))
    return url, destination_for_url(url)
