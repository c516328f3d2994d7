"""SEO metadata plugin.

Runs at POST_CONTENT_PROCESSING and attaches a SeoData payload to every
post and page: canonical URL, page titles, descriptions, Open Graph and
Twitter card fields. Frontmatter keys (``seoTitle``, ``metaDescription``,
``ogImage``, ``twitterCard`` ...) override the computed values; site-wide
defaults come from ``config.extra`` (``defaultOgImage``, ``twitterHandle``,
``defaultAuthorTwitter``).
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from .models import ContentItem, PipelineStage, SeoData, SiteConfiguration, SiteContext
from .plugins import Plugin
from .utils import collapse_whitespace, join_root_url, strip_tags

if TYPE_CHECKING:
    from .cancellation import CancellationToken
    from .protocols import Storage

logger = logging.getLogger(__name__)

FIRST_IMAGE_RE = re.compile(r"""<img[^>]+src\s*=\s*['"]([^'"]+)['"][^>]*>""", re.IGNORECASE)

MAX_META_DESCRIPTION = 160
MAX_SOCIAL_DESCRIPTION = 200


def absolute_url(base_url: str, url: str | None) -> str | None:
    """Prefix site-relative URLs with the base URL; absolute URLs pass through."""
    if not url:
        return None
    if re.match(r"^[a-z][a-z0-9+.-]*://", url, re.IGNORECASE) or url.startswith("//"):
        return url
    return join_root_url(base_url, url)


def clean_text(text: str | None) -> str:
    return collapse_whitespace(strip_tags(text or ""))


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def twitter_handle(handle: object) -> str | None:
    if not handle or not str(handle).strip():
        return None
    handle = str(handle).strip()
    return handle if handle.startswith("@") else f"@{handle}"


def _meta_str(item: ContentItem, key: str) -> str | None:
    value = item.metadata.get(key)
    return str(value) if value not in (None, "") else None


class SeoPlugin(Plugin):
    """Computes SEO metadata for posts and pages."""

    name = "seo"
    stages = (PipelineStage.POST_CONTENT_PROCESSING,)

    def build_seo(self, item: ContentItem, config: SiteConfiguration) -> SeoData:
        """Compute the SEO payload of one item."""
        base_url = config.base_url
        extra = config.extra
        page_title = item.metadata.title or config.title or "Untitled"
        is_home = item.url == "/"

        seo = SeoData()
        seo.canonical_url = absolute_url(base_url, item.url)
        seo.og_url = seo.canonical_url
        seo.title = _meta_str(item, "seoTitle") or (
            config.title if is_home else f"{page_title} | {config.title}"
        )
        seo.og_title = _meta_str(item, "ogTitle") or page_title
        seo.twitter_title = _meta_str(item, "twitterTitle") or seo.og_title

        description = (
            _meta_str(item, "metaDescription")
            or (item.post.summary if item.post is not None else None)
            or item.metadata.summary
            or config.description
            or ""
        )
        seo.meta_description = truncate_text(clean_text(description), MAX_META_DESCRIPTION)
        seo.og_description = truncate_text(
            clean_text(_meta_str(item, "ogDescription") or description), MAX_SOCIAL_DESCRIPTION
        )
        seo.twitter_description = truncate_text(
            clean_text(_meta_str(item, "twitterDescription") or description),
            MAX_SOCIAL_DESCRIPTION,
        )

        match = FIRST_IMAGE_RE.search(item.body or "")
        image = (
            _meta_str(item, "ogImage")
            or _meta_str(item, "twitterImage")
            or _meta_str(item, "image")
            or (match.group(1) if match else None)
            or (str(extra["defaultOgImage"]) if extra.get("defaultOgImage") else None)
        )
        seo.og_image = absolute_url(base_url, image)
        seo.twitter_image = absolute_url(base_url, _meta_str(item, "twitterImage") or image)
        seo.og_type = _meta_str(item, "ogType") or ("article" if item.is_post else "website")
        seo.og_locale = config.language.replace("-", "_") if config.language else None

        if item.post is not None:
            seo.article_published_time = item.post.date.isoformat()
            modified = item.metadata.last_modified
            if modified is not None and modified != item.post.date:
                seo.article_modified_time = modified.isoformat()
            seo.article_tags = [t.strip() for t in item.metadata.tags if t.strip()]

        seo.twitter_card = _meta_str(item, "twitterCard") or (
            "summary_large_image" if seo.twitter_image else "summary"
        )
        seo.twitter_site = twitter_handle(extra.get("twitterHandle"))
        seo.twitter_creator = (
            twitter_handle(item.metadata.get("authorTwitter") or extra.get("defaultAuthorTwitter"))
            or seo.twitter_site
        )
        return seo

    def execute(
        self,
        stage: PipelineStage,
        context: SiteContext,
        source: Storage,
        output: Storage,
        cancel: CancellationToken,
    ) -> None:
        config = context.configuration
        if not config.base_url:
            logger.warning("seo: base URL is not configured, canonical URLs stay relative")
        processed = 0
        for item in [*context.posts, *context.pages]:
            cancel.raise_if_cancelled()
            if not item.url:
                continue
            item.seo = self.build_seo(item, config)
            processed += 1
        logger.info("seo: processed %d items", processed)
