"""Shared data model for Gorgon.

This module defines the records that flow through a build: the immutable site
configuration, the mutable site context, content items and their metadata,
pagers and the pipeline stage tags.

Key classes:
- SiteConfiguration: Frozen dataclass holding the settings of one build.
- SiteContext: Mutable aggregate every stage and plugin works on.
- ContentItem: Tagged union of posts, pages and list pages. Variant data lives
  in the ``post`` and ``listing`` payloads; code dispatches on ``kind``.
- Metadata: Frontmatter with known keys plus an open ``extra`` mapping.
- Pager: Navigation data for one page of a paginated list.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .collections import TaxonomyTerms


TAXONOMY_CATEGORY = "category"
TAXONOMY_TAG = "tag"

DEFAULT_POST_LAYOUT = "post.html"
DEFAULT_PAGE_LAYOUT = "default.html"
DEFAULT_LIST_LAYOUT = "list.html"


class PipelineStage(Enum):
    """Checkpoints at which plugins run, in build order."""

    PRE_BUILD = "pre_build"
    POST_CONTENT_PROCESSING = "post_content_processing"
    POST_RENDER = "post_render"
    POST_BUILD = "post_build"
    BUILD_COMPLETE = "build_complete"


class ContentKind(Enum):
    """Variant tag of a ContentItem."""

    POST = "post"
    PAGE = "page"
    LIST = "list"


@dataclass(frozen=True)
class FeedSettings:
    """Settings for the RSS feed plugin."""

    enabled: bool = True
    output_path: str = "feed.xml"
    max_items: int = 20


@dataclass(frozen=True)
class SiteConfiguration:
    """Settings for one build, loaded once and never mutated.

    Directory names are storage paths relative to the source root, except
    ``posts_directory`` which is relative to ``content_directory``.
    ``posts_per_page <= 0`` disables pagination.
    """

    base_url: str = ""
    title: str = "My Gorgon Site"
    description: str = ""
    language: str = "en-US"
    posts_per_page: int = 10
    content_directory: str = "content"
    posts_directory: str = "posts"
    template_directory: str = "templates"
    includes_directory: str = "includes"
    static_directory: str = "static"
    styles_directory: str = "styles"
    style_entry_point: str = "main.scss"
    output_directory: str = "_site"
    post_permalink: str = "/blog/:year/:month/:day/:slug/"
    page_permalink: str = "/:slug/"
    build_drafts: bool = False
    build_future_dated: bool = False
    blog_base_path: str = "blog"
    category_base_path: str = "category"
    tag_base_path: str = "tag"
    drafts_base_path: str = "drafts"
    feed: FeedSettings = field(default_factory=FeedSettings)
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "base_url", (self.base_url or "").strip().rstrip("/"))

    def taxonomy_base_path(self, taxonomy: str) -> str | None:
        """Return the URL base path for a taxonomy type, or None if unknown."""
        if taxonomy == TAXONOMY_CATEGORY:
            return self.category_base_path.strip("/") or TAXONOMY_CATEGORY
        if taxonomy == TAXONOMY_TAG:
            return self.tag_base_path.strip("/") or TAXONOMY_TAG
        return None


def _parse_datetime(value: Any) -> datetime | None:
    """Parse a frontmatter date value, keeping any offset as written.

    Raises:
        ValueError: If the value cannot be interpreted as a date.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return datetime.fromisoformat(text)
    raise ValueError(f"Unsupported date value: {value!r}")


def to_local_date(value: Any) -> date | None:
    """Return the calendar date of a frontmatter value in its own offset.

    Examples:
        >>> to_local_date("2024-03-01T08:00:00+09:00")
        datetime.date(2024, 3, 1)
    """
    parsed = _parse_datetime(value)
    return parsed.date() if parsed is not None else None


def to_utc_datetime(value: Any) -> datetime | None:
    """Normalize a frontmatter date value to an aware UTC datetime.

    Args:
        value: A datetime, date, ISO 8601 string or None.

    Returns:
        Timezone-aware datetime in UTC, or None for empty values.

    Raises:
        ValueError: If the value cannot be interpreted as a date.
    """
    parsed = _parse_datetime(value)
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _to_terms(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part for part in value.split(",")]
    if isinstance(value, (list, tuple, set)):
        return [str(v) for v in value if v is not None]
    return [str(value)]


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "on", "1"}
    return bool(value)


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# Normalized key (lowercase, no separators) -> Metadata attribute.
_KNOWN_KEYS = {
    "title": "title",
    "date": "date",
    "lastmodified": "last_modified",
    "layout": "layout",
    "categories": "categories",
    "tags": "tags",
    "draft": "draft",
    "url": "url",
    "slug": "slug",
    "summary": "summary",
}


@dataclass
class Metadata:
    """Frontmatter of a content item.

    Attributes:
        title: Item title.
        date: Publication date (aware UTC datetime).
        local_date: Calendar day of ``date`` in the offset it was written with.
        last_modified: Last modification date (aware UTC datetime).
        layout: Layout template name.
        categories: Category terms as written.
        tags: Tag terms as written.
        draft: Whether the item is unpublished.
        url: Explicit URL overriding the permalink template.
        slug: Explicit slug.
        summary: Explicit summary.
        extra: Every unrecognized frontmatter key, original spelling.
    """

    title: str | None = None
    date: datetime | None = None
    local_date: date | None = None
    last_modified: datetime | None = None
    layout: str | None = None
    categories: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    draft: bool = False
    url: str | None = None
    slug: str | None = None
    summary: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> Metadata:
        """Build Metadata from a parsed frontmatter mapping.

        Known keys are matched case-insensitively and accept camelCase or
        snake_case spellings (``lastModified``, ``last_modified``).

        Raises:
            ValueError: If a date field cannot be parsed.
        """
        known: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            normalized = str(key).replace("_", "").replace("-", "").lower()
            attr = _KNOWN_KEYS.get(normalized)
            if attr is None:
                extra[str(key)] = value
            else:
                known[attr] = value
        return cls(
            title=_optional_str(known.get("title")),
            date=to_utc_datetime(known.get("date")),
            local_date=to_local_date(known.get("date")),
            last_modified=to_utc_datetime(known.get("last_modified")),
            layout=_optional_str(known.get("layout")),
            categories=_to_terms(known.get("categories")),
            tags=_to_terms(known.get("tags")),
            draft=_to_bool(known.get("draft", False)),
            url=_optional_str(known.get("url")),
            slug=_optional_str(known.get("slug")),
            summary=_optional_str(known.get("summary")),
            extra=extra,
        )

    def get(self, key: str, default: Any = None) -> Any:
        """Return an extension value from ``extra``."""
        return self.extra.get(key, default)


@dataclass
class SeoData:
    """SEO payload computed for a content item by the SEO plugin."""

    title: str | None = None
    meta_description: str | None = None
    canonical_url: str | None = None
    og_type: str | None = None
    og_url: str | None = None
    og_title: str | None = None
    og_description: str | None = None
    og_image: str | None = None
    og_locale: str | None = None
    article_published_time: str | None = None
    article_modified_time: str | None = None
    article_tags: list[str] = field(default_factory=list)
    twitter_card: str | None = None
    twitter_site: str | None = None
    twitter_creator: str | None = None
    twitter_title: str | None = None
    twitter_description: str | None = None
    twitter_image: str | None = None


@dataclass(eq=False)
class PostInfo:
    """Post-specific payload of a ContentItem.

    ``previous`` is the next older post and ``next`` the next newer one in
    the sorted Posts list; both are None at the ends of the chain.
    ``local_date`` is the publish day as written, used for permalinks.
    """

    date: datetime
    reading_time: int = 0
    local_date: date | None = None
    summary: str = ""
    next: ContentItem | None = field(default=None, repr=False)
    previous: ContentItem | None = field(default=None, repr=False)


@dataclass
class Pager:
    """Navigation data for one page of a paginated post list."""

    items_on_page: list[ContentItem]
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    first_page_url: str
    page_url_template: str
    previous_page_url: str | None = None
    next_page_url: str | None = None

    @property
    def has_previous(self) -> bool:
        return self.current_page > 1

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages


@dataclass(eq=False)
class ListInfo:
    """List-page payload of a ContentItem."""

    posts: list[ContentItem]
    list_type: str
    term: str
    term_slug: str
    pager: Pager | None = None


@dataclass(eq=False)
class ContentItem:
    """A renderable unit of the site.

    Attributes:
        kind: Variant tag (post, page or list page).
        source_path: Storage path of the source file, or a conceptual
            ``_generated/...`` path for synthesized items.
        metadata: Parsed frontmatter.
        body: Rendered HTML body.
        url: Site-relative URL, always starting with ``/``.
        destination_path: Output storage path, never starting with ``/``.
        seo: Optional SEO payload.
        post: Payload for POST items.
        listing: Payload for LIST items.
    """

    kind: ContentKind
    source_path: str
    metadata: Metadata = field(default_factory=Metadata)
    body: str = ""
    url: str = ""
    destination_path: str = ""
    seo: SeoData | None = None
    post: PostInfo | None = None
    listing: ListInfo | None = None

    @property
    def title(self) -> str:
        return self.metadata.title or ""

    @property
    def date(self) -> datetime | None:
        if self.post is not None:
            return self.post.date
        return self.metadata.date

    @property
    def is_post(self) -> bool:
        return self.kind is ContentKind.POST

    @property
    def is_page(self) -> bool:
        return self.kind is ContentKind.PAGE

    @property
    def is_list(self) -> bool:
        return self.kind is ContentKind.LIST

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"ContentItem({self.kind.value}, {self.source_path!r}, url={self.url!r})"


@dataclass(eq=False)
class SiteContext:
    """Mutable state of one build.

    Stages and plugins mutate the collections in place. Plugins only run
    between stages, never while the orchestrator is mutating the context.
    """

    configuration: SiteConfiguration
    posts: list[ContentItem] = field(default_factory=list)
    pages: list[ContentItem] = field(default_factory=list)
    other_content: list[ContentItem] = field(default_factory=list)
    taxonomies: dict[str, TaxonomyTerms] = field(default_factory=dict)
    list_pages: list[ContentItem] = field(default_factory=list)
    build_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def all_content(self) -> list[ContentItem]:
        """Posts, pages and other content in that order."""
        return [*self.posts, *self.pages, *self.other_content]

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return (
            f"SiteContext({len(self.posts)} posts, {len(self.pages)} pages, "
            f"{len(self.list_pages)} list pages)"
        )


class BuildStatus(Enum):
    """Aggregate outcome of a build."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class BuildIssue:
    """A recoverable per-item failure recorded during a build.

    Attributes:
        source: Storage path, plugin name or other origin of the issue.
        message: Human-readable description.
        stage: Build step the issue occurred in (``content``, ``render``,
            ``assets``, ``static``, ``config`` or a pipeline stage value).
    """

    source: str
    message: str
    stage: str


@dataclass
class BuildResult:
    """Outcome of one build."""

    status: BuildStatus
    context: SiteContext | None = None
    issues: list[BuildIssue] = field(default_factory=list)
    elapsed: float = 0.0
    exception: BaseException | None = None

    @property
    def error_count(self) -> int:
        return len(self.issues)

    @property
    def succeeded(self) -> bool:
        return self.status is BuildStatus.SUCCEEDED
