"""List page and pagination generation.

Synthesizes LIST content items for every taxonomy term and for the blog
index. Each list is split into pages; page 1 lives at the list's base URL,
page ``n`` at ``<base>page/<n>/``. Lists without posts produce no pages.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

from .models import (
    DEFAULT_LIST_LAYOUT,
    TAXONOMY_CATEGORY,
    TAXONOMY_TAG,
    ContentItem,
    ContentKind,
    ListInfo,
    Metadata,
    Pager,
    SiteContext,
)
from .urls import destination_for_url
from .utils import normalize_url, slugify

logger = logging.getLogger(__name__)

LIST_TYPE_BLOG = "blog"

_TERM_TITLES = {TAXONOMY_CATEGORY: "Category", TAXONOMY_TAG: "Tag"}


def page_url(base_url: str, number: int) -> str:
    """Return the URL of page ``number`` of a list rooted at ``base_url``.

    Examples:
        >>> page_url("/blog/", 1)
        '/blog/'

        >>> page_url("/blog/", 3)
        '/blog/page/3/'
    """
    base = normalize_url(base_url)
    if number <= 1:
        return base
    return f"{base}page/{number}/"


def paginate(posts: Sequence[ContentItem], page_size: int, base_url: str) -> list[Pager]:
    """Split posts into pagers.

    Args:
        posts: Posts in display order.
        page_size: Posts per page; ``<= 0`` puts everything on one page.
        base_url: URL of the first page.

    Returns:
        One Pager per page, empty when there are no posts.
    """
    total = len(posts)
    if total == 0:
        return []
    size = page_size if page_size > 0 else total
    total_pages = math.ceil(total / size)
    base = normalize_url(base_url)
    template = f"{base}page/{{page}}/"

    pagers = []
    for number in range(1, total_pages + 1):
        start = (number - 1) * size
        pagers.append(
            Pager(
                items_on_page=list(posts[start:start + size]),
                current_page=number,
                total_pages=total_pages,
                total_items=total,
                items_per_page=size,
                first_page_url=base,
                page_url_template=template,
                previous_page_url=page_url(base, number - 1) if number > 1 else None,
                next_page_url=page_url(base, number + 1) if number < total_pages else None,
            )
        )
    return pagers


def unique_slug(slug: str, used: set[str]) -> str:
    """Return ``slug`` or the first free ``slug-<n>`` and mark it used.

    Examples:
        >>> used = {"untitled"}
        >>> unique_slug("untitled", used)
        'untitled-2'
    """
    candidate = slug
    number = 2
    while candidate in used:
        candidate = f"{slug}-{number}"
        number += 1
    used.add(candidate)
    return candidate


def _list_items(
    posts: Sequence[ContentItem],
    page_size: int,
    base_url: str,
    title: str,
    list_type: str,
    term: str,
    term_slug: str,
) -> list[ContentItem]:
    items = []
    for pager in paginate(posts, page_size, base_url):
        url = page_url(base_url, pager.current_page)
        page_title = title if pager.current_page == 1 else f"{title} (page {pager.current_page})"
        source = "/".join(p for p in ("_generated", list_type, term) if p)
        items.append(
            ContentItem(
                kind=ContentKind.LIST,
                source_path=f"{source}/page/{pager.current_page}",
                metadata=Metadata(title=page_title, layout=DEFAULT_LIST_LAYOUT),
                url=url,
                destination_path=destination_for_url(url),
                listing=ListInfo(
                    posts=pager.items_on_page,
                    list_type=list_type,
                    term=term,
                    term_slug=term_slug,
                    pager=pager,
                ),
            )
        )
    return items


def generate_list_pages(context: SiteContext) -> list[ContentItem]:
    """Synthesize list pages for every taxonomy term and the blog index.

    Expects ``context.posts`` sorted and ``context.taxonomies`` aggregated.

    Returns:
        New LIST items, taxonomy terms first (categories, then tags, each in
        first-seen order) followed by the blog index pages.
    """
    config = context.configuration
    size = config.posts_per_page
    items: list[ContentItem] = []

    for taxonomy in (TAXONOMY_CATEGORY, TAXONOMY_TAG):
        terms = context.taxonomies.get(taxonomy)
        base_path = config.taxonomy_base_path(taxonomy)
        if not terms or base_path is None:
            continue
        used: set[str] = set()
        for term in terms:
            posts = terms[term]
            term_slug = unique_slug(slugify(term), used)
            items.extend(
                _list_items(
                    posts,
                    size,
                    f"/{base_path}/{term_slug}/",
                    f"{_TERM_TITLES[taxonomy]}: {term}",
                    taxonomy,
                    term,
                    term_slug,
                )
            )

    blog_title = str(config.extra.get("blog_title") or "Blog")
    blog_base = config.blog_base_path.strip("/")
    items.extend(
        _list_items(
            context.posts,
            size,
            f"/{blog_base}/" if blog_base else "/",
            blog_title,
            LIST_TYPE_BLOG,
            "",
            "",
        )
    )
    logger.info("Generated %d list pages", len(items))
    return items
