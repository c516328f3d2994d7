"""Feed generation plugins for Gorgon.

This module provides the built-in POST_BUILD plugins that write
machine-readable files next to the rendered site: sitemap.xml, the RSS feed
and robots.txt.

Classes:
    FeedPlugin: Base class for plugins that generate one output file.
    SitemapPlugin: Generates sitemap.xml files.
    RssPlugin: Generates the RSS 2.0 feed.
    RobotsPlugin: Generates robots.txt.
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from datetime import datetime
from email.utils import format_datetime
from typing import TYPE_CHECKING, Any
from xml.sax.saxutils import escape

from .models import ContentItem, PipelineStage, SiteContext
from .plugins import Plugin
from .utils import join_root_url

if TYPE_CHECKING:
    from .cancellation import CancellationToken
    from .protocols import Storage

logger = logging.getLogger(__name__)


class FeedPlugin(Plugin):
    """Base class for plugins that write one generated file.

    Subclasses implement ``filename`` and ``generate``; returning None from
    ``generate`` skips the file.
    """

    stages = (PipelineStage.POST_BUILD,)

    @property
    @abstractmethod
    def filename(self) -> str:
        """Return the output path for this feed, relative to the output root."""
        ...

    @abstractmethod
    def generate(self, context: SiteContext, cancel: CancellationToken) -> str | None:
        """Generate the file contents.

        Args:
            context: Site context after rendering.
            cancel: Token checked between items.

        Returns:
            File contents, or None if the feed cannot be generated (e.g.,
            missing base URL).
        """
        ...

    def output_path(self, context: SiteContext) -> str:
        """Return where the file is written; defaults to ``filename``."""
        return self.filename

    async def execute(
        self,
        stage: PipelineStage,
        context: SiteContext,
        source: Storage,
        output: Storage,
        cancel: CancellationToken,
    ) -> None:
        content = self.generate(context, cancel)
        if content is None:
            return
        path = self.output_path(context)
        await output.write_text(path, content)
        logger.info("%s wrote %s", self.name, path)


def _w3c_datetime(value: datetime) -> str:
    return value.isoformat(timespec="seconds")


class SitemapPlugin(FeedPlugin):
    """Generates sitemap.xml for search engine indexing.

    Lists every non-draft post and page following the sitemaps.org
    protocol. Frontmatter ``sitemapChangeFreq`` and ``sitemapPriority``
    override the defaults. Requires a base URL for absolute locations.
    """

    name = "sitemap"

    @property
    def filename(self) -> str:
        return "sitemap.xml"

    def entry(self, item: ContentItem, context: SiteContext) -> dict[str, Any]:
        """Compute the sitemap fields of one item."""
        meta = item.metadata
        lastmod = meta.last_modified or item.date or context.build_time
        change_freq = "monthly" if item.is_post else "weekly"
        if item.url == "/":
            priority = 1.0
        else:
            priority = 0.8 if item.is_post else 0.5
        change_freq = str(meta.get("sitemapChangeFreq") or change_freq)
        override = meta.get("sitemapPriority")
        if override is not None:
            try:
                priority = float(override)
            except (TypeError, ValueError):
                logger.warning("Ignoring invalid sitemapPriority %r in %s", override, item.source_path)
        return {
            "loc": join_root_url(context.configuration.base_url, item.url),
            "lastmod": _w3c_datetime(lastmod),
            "changefreq": change_freq,
            "priority": f"{min(max(priority, 0.0), 1.0):.1f}",
        }

    def generate(self, context: SiteContext, cancel: CancellationToken) -> str | None:
        if not context.configuration.base_url:
            logger.warning("sitemap: base URL is not configured, skipping sitemap.xml")
            return None

        lines = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
        ]
        count = 0
        for item in [*context.posts, *context.pages]:
            cancel.raise_if_cancelled()
            if item.metadata.draft or not item.url:
                continue
            fields = self.entry(item, context)
            lines.append(
                "  <url>"
                + "".join(f"<{key}>{escape(value)}</{key}>" for key, value in fields.items())
                + "</url>"
            )
            count += 1
        if count == 0:
            logger.warning("sitemap: no eligible content, skipping sitemap.xml")
            return None
        lines.append("</urlset>")
        return "\n".join(lines) + "\n"


class RssPlugin(FeedPlugin):
    """Generates an RSS 2.0 feed for content syndication.

    Uses the sorted post list, limited to ``feed.max_items``. Skipped when
    the feed is disabled, no base URL is configured or there are no posts.
    """

    name = "rss"

    @property
    def filename(self) -> str:
        return "feed.xml"

    def output_path(self, context: SiteContext) -> str:
        return context.configuration.feed.output_path.strip("/") or self.filename

    def item_xml(self, post: ContentItem, base_url: str) -> str:
        link = join_root_url(base_url, post.url)
        pub_date = format_datetime(post.date) if post.date else ""
        parts = [
            "<item>",
            f"<title>{escape(post.title or 'Untitled Post')}</title>",
            f"<link>{escape(link)}</link>",
            f"<description>{escape(post.body)}</description>",
            f"<pubDate>{pub_date}</pubDate>",
            f"<guid isPermaLink=\"true\">{escape(link)}</guid>",
        ]
        seen: set[str] = set()
        for term in [*post.metadata.categories, *post.metadata.tags]:
            term = term.strip()
            if term and term.casefold() not in seen:
                seen.add(term.casefold())
                parts.append(f"<category>{escape(term)}</category>")
        author = post.metadata.get("author")
        if author:
            parts.append(f"<author>{escape(str(author))}</author>")
        parts.append("</item>")
        return "".join(parts)

    def generate(self, context: SiteContext, cancel: CancellationToken) -> str | None:
        config = context.configuration
        if not config.feed.enabled:
            logger.debug("rss: feed disabled")
            return None
        if not config.base_url:
            logger.warning("rss: base URL is not configured, skipping feed")
            return None
        if not context.posts:
            logger.info("rss: no posts, skipping feed")
            return None

        limit = config.feed.max_items
        posts = context.posts[:limit] if limit > 0 else list(context.posts)
        last_build = posts[0].date or context.build_time

        rss = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<rss version="2.0"><channel>',
            f"<title>{escape(config.title)}</title>",
            f"<link>{escape(config.base_url)}</link>",
            f"<description>{escape(config.description)}</description>",
            f"<language>{escape(config.language)}</language>",
            f"<lastBuildDate>{format_datetime(last_build)}</lastBuildDate>",
            "<generator>Gorgon</generator>",
        ]
        for post in posts:
            cancel.raise_if_cancelled()
            rss.append(self.item_xml(post, config.base_url))
        rss.append("</channel></rss>")
        return "\n".join(rss) + "\n"


class RobotsPlugin(FeedPlugin):
    """Generates robots.txt allowing all crawlers.

    A ``Sitemap:`` line is added when the base URL is configured.
    """

    name = "robots"

    @property
    def filename(self) -> str:
        return "robots.txt"

    def generate(self, context: SiteContext, cancel: CancellationToken) -> str | None:
        lines = ["User-agent: *", "Allow: /"]
        base_url = context.configuration.base_url
        if base_url:
            lines.append(f"Sitemap: {join_root_url(base_url, '/sitemap.xml')}")
        return "\n".join(lines) + "\n"
