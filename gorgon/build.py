"""Site building functionality for Gorgon.

This module contains the build orchestrator: the staged pipeline that turns
a source storage tree into a rendered site in an output storage.

Stages, in order:
1. Load configuration and create the SiteContext.
2. PRE_BUILD plugins.
3. Initialize the template renderer.
4. Discover, parse, filter and classify content; resolve URLs.
5. POST_CONTENT_PROCESSING plugins.
6. Sort, link and aggregate posts.
7. Generate list pages.
8. Render posts, pages, other content and list pages.
9. POST_RENDER plugins.
10. Compile the stylesheet and copy static files.
11. POST_BUILD plugins, then BUILD_COMPLETE plugins.

Per-item failures inside a stage are recorded as issues and the stage moves
on to the next item. Anything else that raises aborts the build.

Key names:
- SiteBuilder: The orchestrator.
- build_site: Synchronous wrapper building a local directory.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import posixpath
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from itertools import groupby
from pathlib import Path
from typing import Any

from markupsafe import Markup

from .assets import OutputStyle, SassCompiler
from .cancellation import CancellationToken
from .collections import PostCollection, post_process
from .config import load_configuration
from .errors import BuildCancelled, ContentError, TemplateNotFoundError
from .models import (
    DEFAULT_LIST_LAYOUT,
    DEFAULT_PAGE_LAYOUT,
    DEFAULT_POST_LAYOUT,
    TAXONOMY_CATEGORY,
    TAXONOMY_TAG,
    BuildIssue,
    BuildResult,
    BuildStatus,
    ContentItem,
    ContentKind,
    PipelineStage,
    PostInfo,
    SiteConfiguration,
    SiteContext,
)
from .pagination import generate_list_pages
from .parsers import ParserRegistry
from .plugins import PluginDispatcher, default_dispatcher
from .protocols import AssetCompiler, ContentParser, Storage, TemplateRenderer
from .storage import LocalStorage
from .templates import JinjaTemplateRenderer
from .urls import resolve
from .utils import generate_summary, reading_time

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config.json"

DEFAULT_LAYOUTS = {
    ContentKind.POST: DEFAULT_POST_LAYOUT,
    ContentKind.PAGE: DEFAULT_PAGE_LAYOUT,
    ContentKind.LIST: DEFAULT_LIST_LAYOUT,
}


def _format_error_message(exc: Exception) -> str:
    """Format an exception into a user-friendly error message.

    Args:
        exc: The exception to format.

    Returns:
        A human-readable error message.
    """
    error_type = type(exc).__name__
    if error_type == "UndefinedError":
        return f"Undefined variable: {exc}"
    if error_type == "TemplateSyntaxError":
        return f"Template syntax error on line {getattr(exc, 'lineno', '?')}: {exc}"
    return f"{error_type}: {exc}"


def layout_for(item: ContentItem) -> str:
    """Return the layout key for an item.

    An explicit ``layout`` without extension gets ``.html`` appended;
    otherwise the default layout of the item's kind is used.
    """
    layout = item.metadata.layout
    if layout:
        return layout if posixpath.splitext(layout)[1] else f"{layout}.html"
    return DEFAULT_LAYOUTS[item.kind]


def site_model(context: SiteContext) -> dict[str, Any]:
    """Build the ``site`` variable shared by every template."""
    config = context.configuration
    return {
        "title": config.title,
        "description": config.description,
        "base_url": config.base_url,
        "language": config.language,
        "data": config.extra,
        "posts": PostCollection(context.posts),
        "pages": context.pages,
        "taxonomies": context.taxonomies,
        "categories": context.taxonomies.get(TAXONOMY_CATEGORY, {}),
        "tags": context.taxonomies.get(TAXONOMY_TAG, {}),
        "build_time": context.build_time,
    }


def template_model(item: ContentItem, context: SiteContext) -> dict[str, Any]:
    """Build the template variables for one item, by kind.

    Every item gets ``page``, ``content``, ``site``, ``config`` and ``seo``.
    Posts add ``post``, ``next_post`` and ``previous_post``; list pages add
    ``posts``, ``pager``, ``term`` and ``list_type``.
    """
    model: dict[str, Any] = {
        "page": item,
        "content": Markup(item.body),
        "site": site_model(context),
        "config": context.configuration,
        "seo": item.seo,
    }
    if item.kind is ContentKind.POST and item.post is not None:
        model.update(
            post=item.post,
            next_post=item.post.next,
            previous_post=item.post.previous,
        )
    elif item.kind is ContentKind.LIST and item.listing is not None:
        model.update(
            posts=PostCollection(item.listing.posts),
            pager=item.listing.pager,
            term=item.listing.term,
            list_type=item.listing.list_type,
        )
    return model


@dataclass
class BuildSession:
    """Mutable state of one running build.

    Attributes:
        context: The site context handed to stages and plugins.
        source: Source storage.
        output: Output storage.
        cancel: Cancellation token.
        issues: Recoverable failures recorded so far.
        claimed: Destination path to the source path that produced it.
    """

    context: SiteContext
    source: Storage
    output: Storage
    cancel: CancellationToken
    issues: list[BuildIssue] = field(default_factory=list)
    claimed: dict[str, str] = field(default_factory=dict)

    @property
    def config(self) -> SiteConfiguration:
        return self.context.configuration

    def record(self, source: str, message: str, stage: str) -> None:
        """Record a recoverable failure."""
        self.issues.append(BuildIssue(source=source, message=message, stage=stage))

    def claim(self, item: ContentItem, stage: str) -> bool:
        """Reserve an item's destination path.

        Returns:
            False, with an issue recorded, if another item already claimed it.
        """
        owner = self.claimed.get(item.destination_path)
        if owner is not None:
            message = f"Destination {item.destination_path} is already produced by {owner}"
            logger.error("%s: %s", item.source_path, message)
            self.record(item.source_path, message, stage)
            return False
        self.claimed[item.destination_path] = item.source_path
        return True

    def claim_all(self, items: list[ContentItem], stage: str) -> bool:
        """Reserve the destinations of a group of items, or none of them.

        Returns:
            False, with one issue recorded against the first item, if any
            destination in the group is already claimed.
        """
        for item in items:
            owner = self.claimed.get(item.destination_path)
            if owner is not None:
                first = items[0].source_path
                message = (
                    f"Destination {item.destination_path} is already produced by {owner}; "
                    f"skipping {len(items)} list page(s)"
                )
                logger.error("%s: %s", first, message)
                self.record(first, message, stage)
                return False
        for item in items:
            self.claimed[item.destination_path] = item.source_path
        return True


class SiteBuilder:
    """Build orchestrator.

    Collaborators default to the shipped implementations and can be
    replaced for other formats, template engines or tests.

    Attributes:
        parsers: Parser registry selecting a ContentParser per extension.
        renderer: Template renderer.
        compiler: Stylesheet compiler.
        dispatcher: Plugin dispatcher.
        clock: Callable returning the current time, used for future-dated
            filtering and ``SiteContext.build_time``.
        output_style: CSS output style passed to the compiler.
    """

    def __init__(
        self,
        parsers: ParserRegistry | list[ContentParser] | None = None,
        renderer: TemplateRenderer | None = None,
        compiler: AssetCompiler | None = None,
        dispatcher: PluginDispatcher | None = None,
        clock: Callable[[], datetime] | None = None,
        output_style: str = OutputStyle.COMPRESSED.value,
    ):
        if parsers is None or isinstance(parsers, ParserRegistry):
            self.parsers = parsers or ParserRegistry()
        else:
            self.parsers = ParserRegistry(parsers)
        self.renderer = renderer or JinjaTemplateRenderer()
        self.compiler = compiler or SassCompiler()
        self.dispatcher = dispatcher if dispatcher is not None else default_dispatcher()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.output_style = output_style

    def now(self) -> datetime:
        current = self.clock()
        if current.tzinfo is None:
            return current.replace(tzinfo=timezone.utc)
        return current.astimezone(timezone.utc)

    async def build(
        self,
        config_path: str,
        source: Storage,
        output: Storage | Callable[[SiteConfiguration], Storage],
        cancel: CancellationToken | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> BuildResult:
        """Build the site.

        Args:
            config_path: Storage path of the configuration file in ``source``.
            source: Storage holding content, templates, styles and static files.
            output: Output storage, or a factory creating it from the loaded
                configuration.
            cancel: Optional cancellation token.
            overrides: SiteConfiguration fields replacing the loaded values.

        Returns:
            BuildResult with the aggregate status, the context and all issues.
        """
        started = time.perf_counter()
        cancel = cancel or CancellationToken()
        issues: list[BuildIssue] = []
        context: SiteContext | None = None

        def finish(status: BuildStatus, exc: BaseException | None = None) -> BuildResult:
            elapsed = time.perf_counter() - started
            return BuildResult(
                status=status, context=context, issues=issues, elapsed=elapsed, exception=exc
            )

        try:
            cancel.raise_if_cancelled()
            config, config_issues = await load_configuration(config_path, source)
            issues.extend(config_issues)
            if overrides:
                config = dataclasses.replace(config, **overrides)
            if not isinstance(output, Storage) and callable(output):
                output = output(config)

            context = SiteContext(configuration=config, build_time=self.now())
            session = BuildSession(
                context=context, source=source, output=output, cancel=cancel, issues=issues
            )
            logger.info("Building '%s'", config.title)

            await self.run_stage(session, PipelineStage.PRE_BUILD)
            await output.create_directory("")
            await self.renderer.initialize(config, source)

            await self.discover_content(session)
            await self.run_stage(session, PipelineStage.POST_CONTENT_PROCESSING)

            cancel.raise_if_cancelled()
            post_process(context)
            self.add_list_pages(session)

            await self.render_all(session)
            await self.run_stage(session, PipelineStage.POST_RENDER)

            await self.compile_styles(session)
            await self.copy_static_files(session)
            await self.run_stage(session, PipelineStage.POST_BUILD)
            await self.run_stage(session, PipelineStage.BUILD_COMPLETE)
        except BuildCancelled as exc:
            logger.warning("Build cancelled; files already written are kept")
            return finish(BuildStatus.CANCELLED, exc)
        except Exception as exc:
            logger.exception("Build failed")
            return finish(BuildStatus.FAILED, exc)

        result = finish(BuildStatus.SUCCEEDED)
        logger.info(
            "Built %d posts, %d pages and %d list pages in %.2fs with %d issue(s)",
            len(context.posts),
            len(context.pages),
            len(context.list_pages),
            result.elapsed,
            result.error_count,
        )
        return result

    async def run_stage(self, session: BuildSession, stage: PipelineStage) -> None:
        """Dispatch plugins for a stage and record their failures."""
        session.cancel.raise_if_cancelled()
        issues = await self.dispatcher.dispatch(
            stage, session.context, session.source, session.output, session.cancel
        )
        session.issues.extend(issues)

    async def load_item(
        self, path: str, parser: ContentParser, session: BuildSession, now: datetime
    ) -> ContentItem | None:
        """Read, parse, filter and classify one content file.

        Returns:
            The item with URL and destination resolved, or None when the item
            is filtered out (draft or future-dated).

        Raises:
            ContentError: If the file cannot become a content item.
        """
        config = session.config
        raw = await session.source.read_text(path)
        parsed = parser.parse(raw, path)
        meta = parsed.metadata

        if meta.draft and not config.build_drafts:
            logger.debug("Skipping draft %s", path)
            return None
        if meta.date is not None and meta.date > now and not config.build_future_dated:
            logger.debug("Skipping future-dated %s (%s)", path, meta.date.isoformat())
            return None

        posts_root = session.source.combine(config.content_directory, config.posts_directory)
        if path.startswith(posts_root + "/"):
            if meta.date is None:
                raise ContentError(path, "Post has no date")
            item = ContentItem(
                kind=ContentKind.POST,
                source_path=path,
                metadata=meta,
                body=parsed.body,
                post=PostInfo(
                    date=meta.date,
                    local_date=meta.local_date,
                    reading_time=reading_time(parsed.body),
                    summary=meta.summary or generate_summary(parsed.body) or "",
                ),
            )
            template = config.post_permalink
        else:
            item = ContentItem(
                kind=ContentKind.PAGE, source_path=path, metadata=meta, body=parsed.body
            )
            template = config.page_permalink

        item.url, item.destination_path = resolve(item, template, config)
        return item

    async def discover_content(self, session: BuildSession) -> None:
        """Discover every content file and add it to the context."""
        config = session.config
        content_dir = config.content_directory.strip("/")
        files = sorted(await session.source.list_files(content_dir, "*", recursive=True))
        now = self.now()

        for path in files:
            session.cancel.raise_if_cancelled()
            parser = self.parsers.get_parser(path)
            if parser is None:
                logger.debug("No parser for %s, skipping", path)
                continue
            try:
                item = await self.load_item(path, parser, session, now)
            except ContentError as exc:
                logger.error("%s", exc)
                session.record(path, exc.message, "content")
                continue
            except Exception as exc:
                logger.exception("Failed to load %s", path)
                session.record(path, _format_error_message(exc), "content")
                continue
            if item is None or not session.claim(item, "content"):
                continue
            if item.kind is ContentKind.POST:
                session.context.posts.append(item)
            else:
                session.context.pages.append(item)

        logger.info(
            "Discovered %d posts and %d pages",
            len(session.context.posts),
            len(session.context.pages),
        )

    def add_list_pages(self, session: BuildSession) -> None:
        """Generate list pages and add every list whose destinations are all free."""
        pages = generate_list_pages(session.context)
        for _, group in groupby(pages, key=lambda p: (p.listing.list_type, p.listing.term)):
            list_pages = list(group)
            if session.claim_all(list_pages, "lists"):
                session.context.list_pages.extend(list_pages)

    async def render_item(self, item: ContentItem, session: BuildSession) -> None:
        html = await self.renderer.render(layout_for(item), template_model(item, session.context))
        await session.output.write_text(item.destination_path, html)

    async def render_all(self, session: BuildSession) -> None:
        """Render posts, pages, other content and list pages, in that order."""
        context = session.context
        rendered = 0
        for item in [*context.posts, *context.pages, *context.other_content, *context.list_pages]:
            session.cancel.raise_if_cancelled()
            try:
                await self.render_item(item, session)
            except TemplateNotFoundError as exc:
                logger.error("%s: %s", item.source_path, exc)
                session.record(item.source_path, str(exc), "render")
                continue
            except Exception as exc:
                logger.exception("Failed to render %s", item.source_path)
                session.record(item.source_path, _format_error_message(exc), "render")
                continue
            rendered += 1
        logger.info("Rendered %d items", rendered)

    async def compile_styles(self, session: BuildSession) -> None:
        """Compile the stylesheet entry point into ``css/<stem>.css``."""
        config = session.config
        session.cancel.raise_if_cancelled()
        entry = session.source.combine(config.styles_directory, config.style_entry_point)
        if not await session.source.exists(entry):
            logger.warning("Stylesheet entry point %s not found, skipping CSS", entry)
            return
        stem = posixpath.splitext(posixpath.basename(entry))[0]
        destination = f"css/{stem}.css"
        try:
            text = await session.source.read_text(entry)
            css = await self.compiler.compile(text, entry, session.source, self.output_style)
            await session.output.write_text(destination, css)
        except Exception as exc:
            logger.exception("Failed to compile %s", entry)
            session.record(entry, _format_error_message(exc), "assets")
            return
        logger.info("Compiled %s -> %s", entry, destination)

    async def copy_static_files(self, session: BuildSession) -> None:
        """Stream every static file to the same relative output path."""
        static_dir = session.config.static_directory.strip("/")
        files = await session.source.list_files(static_dir, "*", recursive=True)
        copied = 0
        for path in files:
            session.cancel.raise_if_cancelled()
            relative = path[len(static_dir) + 1:] if static_dir else path
            try:
                stream = await session.source.open_stream(path)
                try:
                    await session.output.write_stream(relative, stream)
                finally:
                    stream.close()
            except Exception as exc:
                logger.exception("Failed to copy static file %s", path)
                session.record(path, _format_error_message(exc), "static")
                continue
            copied += 1
        logger.info("Copied %d static files", copied)


def build_site(
    source_dir: Path | str,
    output_dir: Path | str | None = None,
    config_file: str = DEFAULT_CONFIG_FILE,
    cancel: CancellationToken | None = None,
    builder: SiteBuilder | None = None,
    **overrides: Any,
) -> BuildResult:
    """Build a site from a local directory.

    Args:
        source_dir: Directory holding the configuration and source tree.
        output_dir: Output directory. Defaults to the configuration's
            ``output_directory`` inside ``source_dir``.
        config_file: Configuration path relative to ``source_dir``.
        cancel: Optional cancellation token.
        builder: Optional preconfigured SiteBuilder.
        **overrides: SiteConfiguration fields replacing the loaded values.

    Returns:
        BuildResult of the build.
    """
    source_root = Path(source_dir)
    source = LocalStorage(source_root)

    def configured_output(config: SiteConfiguration) -> Storage:
        return LocalStorage(source_root / config.output_directory)

    output: Storage | Callable[[SiteConfiguration], Storage] = (
        LocalStorage(output_dir) if output_dir is not None else configured_output
    )
    builder = builder or SiteBuilder()
    return asyncio.run(builder.build(config_file, source, output, cancel, overrides or None))
