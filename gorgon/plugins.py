"""Plugin dispatch for Gorgon.

Extensions hook into the build at the five pipeline stages. The dispatcher
keeps an explicit table from stage to handlers, filled in registration
order, so a plugin is only ever called for the stages it registered for.

Classes:
    Plugin: Optional base class for extensions.
    PluginDispatcher: Stage table and failure-isolating dispatch.

Functions:
    default_dispatcher: Create a dispatcher with the built-in plugins.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from .cancellation import CancellationToken
from .errors import BuildCancelled
from .models import BuildIssue, PipelineStage

if TYPE_CHECKING:
    from .models import SiteContext
    from .protocols import Storage

logger = logging.getLogger(__name__)


class Plugin(ABC):
    """Base class for build extensions.

    Subclasses set ``name`` and ``stages`` and must implement ``execute``,
    which may be a plain method or a coroutine.
    """

    name: str = "plugin"
    stages: tuple[PipelineStage, ...] = ()

    @abstractmethod
    def execute(
        self,
        stage: PipelineStage,
        context: SiteContext,
        source: Storage,
        output: Storage,
        cancel: CancellationToken,
    ) -> Any:
        """Run the plugin for one stage."""

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"{type(self).__name__}(name={self.name!r})"


class PluginDispatcher:
    """Registry and dispatcher for build extensions.

    Attributes:
        _handlers: Stage to handlers table, each list in registration order.
    """

    def __init__(self, plugins: Iterable[Any] | None = None) -> None:
        self._handlers: dict[PipelineStage, list[Any]] = {stage: [] for stage in PipelineStage}
        for plugin in plugins or ():
            self.register(plugin)

    def register(self, plugin: Any, stages: Iterable[PipelineStage] | None = None) -> None:
        """Register a plugin for the given stages.

        Args:
            plugin: Object with ``execute(stage, context, source, output,
                cancel)`` and a ``name``.
            stages: Stages to run the plugin at. Defaults to ``plugin.stages``.

        Raises:
            ValueError: If no stages are given or declared.
        """
        selected = list(stages if stages is not None else getattr(plugin, "stages", ()))
        if not selected:
            raise ValueError(f"Plugin {plugin_name(plugin)} does not declare any stages")
        for stage in dict.fromkeys(selected):
            self._handlers[PipelineStage(stage)].append(plugin)
        logger.debug(
            "Registered plugin %s for %s",
            plugin_name(plugin),
            ", ".join(s.value for s in dict.fromkeys(selected)),
        )

    def handlers(self, stage: PipelineStage) -> list[Any]:
        """Return the plugins registered for ``stage``, in dispatch order."""
        return list(self._handlers[stage])

    def __len__(self) -> int:
        return len({id(p) for handlers in self._handlers.values() for p in handlers})

    async def dispatch(
        self,
        stage: PipelineStage,
        context: SiteContext,
        source: Storage,
        output: Storage,
        cancel: CancellationToken | None = None,
    ) -> list[BuildIssue]:
        """Run every plugin registered for ``stage``.

        A plugin that raises is logged and recorded; the remaining plugins
        still run. Cancellation stops dispatch immediately.

        Returns:
            One issue per failed plugin.

        Raises:
            BuildCancelled: If the token is cancelled or a plugin cancels.
        """
        cancel = cancel or CancellationToken()
        issues: list[BuildIssue] = []
        handlers = self._handlers[stage]
        if handlers:
            logger.info("Running %d plugin(s) for %s", len(handlers), stage.value)
        for plugin in list(handlers):
            cancel.raise_if_cancelled()
            name = plugin_name(plugin)
            try:
                result = plugin.execute(stage, context, source, output, cancel)
                if inspect.isawaitable(result):
                    await result
            except (BuildCancelled, asyncio.CancelledError):
                logger.info("Plugin %s cancelled during %s", name, stage.value)
                raise
            except Exception as exc:
                logger.exception("Plugin %s failed during %s", name, stage.value)
                issues.append(BuildIssue(source=name, message=str(exc), stage=stage.value))
        return issues


def plugin_name(plugin: Any) -> str:
    return str(getattr(plugin, "name", None) or type(plugin).__name__)


def default_dispatcher() -> PluginDispatcher:
    """Create a dispatcher with the built-in plugins.

    Returns:
        PluginDispatcher with the SEO, sitemap, RSS and robots.txt plugins.
    """
    # Import here to avoid circular imports
    from .feeds import RobotsPlugin, RssPlugin, SitemapPlugin
    from .seo import SeoPlugin

    return PluginDispatcher([SeoPlugin(), SitemapPlugin(), RssPlugin(), RobotsPlugin()])
