"""Post ordering, linking and taxonomy aggregation.

These functions run once per build after every content item is known and
the POST_CONTENT_PROCESSING hooks have finished.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping, Sequence
from datetime import datetime, timezone

from .models import TAXONOMY_CATEGORY, TAXONOMY_TAG, ContentItem, SiteContext

logger = logging.getLogger(__name__)

_MIN_DATE = datetime.min.replace(tzinfo=timezone.utc)


class PostCollection(Sequence[ContentItem]):
    """Lightweight helper for working with lists of posts in templates and code."""

    def __init__(self, posts: Iterable[ContentItem]):
        self._posts = list(posts)

    def __iter__(self) -> Iterator[ContentItem]:
        return iter(self._posts)

    def __len__(self) -> int:
        return len(self._posts)

    def __getitem__(self, item):
        return self._posts[item]

    def with_tag(self, tag: str) -> PostCollection:
        wanted = tag.strip().casefold()
        return PostCollection(
            p for p in self._posts if any(t.strip().casefold() == wanted for t in p.metadata.tags)
        )

    def in_category(self, category: str) -> PostCollection:
        wanted = category.strip().casefold()
        return PostCollection(
            p
            for p in self._posts
            if any(c.strip().casefold() == wanted for c in p.metadata.categories)
        )

    def latest(self, count: int = 5) -> PostCollection:
        return PostCollection(sort_posts(self._posts)[:count])

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"PostCollection({len(self._posts)} posts)"


class TaxonomyTerms(Mapping[str, PostCollection]):
    """Mapping of term display name to the posts carrying that term.

    Lookup is case-insensitive; iteration yields display names (the casing
    first seen for each term) in first-seen order. Terms only come into
    existence together with their first post.
    """

    def __init__(self):
        self._terms: dict[str, tuple[str, list[ContentItem]]] = {}

    def add(self, term: str, post: ContentItem) -> None:
        """Append ``post`` under ``term``; blank terms are ignored."""
        display = term.strip()
        if not display:
            return
        key = display.casefold()
        entry = self._terms.get(key)
        if entry is None:
            self._terms[key] = (display, [post])
        elif not any(p is post for p in entry[1]):
            entry[1].append(post)

    def display_name(self, term: str) -> str | None:
        entry = self._terms.get(term.strip().casefold())
        return entry[0] if entry else None

    def __getitem__(self, key: str) -> PostCollection:
        entry = self._terms.get(key.strip().casefold())
        if entry is None:
            raise KeyError(key)
        return PostCollection(entry[1])

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.strip().casefold() in self._terms

    def __iter__(self) -> Iterator[str]:
        return (display for display, _ in self._terms.values())

    def __len__(self) -> int:
        return len(self._terms)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"TaxonomyTerms({len(self._terms)} terms)"


def sort_posts(posts: Iterable[ContentItem]) -> list[ContentItem]:
    """Sort posts by date, newest first; equal dates order by source path."""
    by_path = sorted(posts, key=lambda p: p.source_path)
    return sorted(by_path, key=lambda p: p.date or _MIN_DATE, reverse=True)


def link_posts(posts: Sequence[ContentItem]) -> None:
    """Set next/previous references along an already sorted post list.

    ``previous`` points at the next older post (later in the list) and
    ``next`` at the next newer one (earlier in the list).
    """
    for index, post in enumerate(posts):
        if post.post is None:
            continue
        post.post.next = posts[index - 1] if index > 0 else None
        post.post.previous = posts[index + 1] if index + 1 < len(posts) else None


def build_taxonomies(posts: Iterable[ContentItem]) -> dict[str, TaxonomyTerms]:
    """Aggregate the categories and tags of ``posts``.

    Returns:
        Mapping with ``category`` and ``tag`` keys, each a TaxonomyTerms.
    """
    categories = TaxonomyTerms()
    tags = TaxonomyTerms()
    for post in posts:
        for term in post.metadata.categories:
            categories.add(term, post)
        for term in post.metadata.tags:
            tags.add(term, post)
    return {TAXONOMY_CATEGORY: categories, TAXONOMY_TAG: tags}


def post_process(context: SiteContext) -> None:
    """Sort, link and aggregate the posts of a site context in place."""
    context.posts[:] = sort_posts(context.posts)
    link_posts(context.posts)
    context.taxonomies.update(build_taxonomies(context.posts))
    logger.info(
        "Post-processed %d posts: %d categories, %d tags",
        len(context.posts),
        len(context.taxonomies[TAXONOMY_CATEGORY]),
        len(context.taxonomies[TAXONOMY_TAG]),
    )
