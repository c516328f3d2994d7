"""Template rendering engine for Gorgon.

This module uses Jinja2 to render layouts. Every template and include is
read from the source storage once during ``initialize``; rendering then
works purely from memory.

Key class:
- JinjaTemplateRenderer: Implements the TemplateRenderer protocol.

Templates get these globals:
- ``url_for(path)``: Prefix a site-relative path with the base URL.
- ``slugify(text)``: Also available as a filter.
- ``pygments_css()``: Stylesheet for highlighted code blocks.
"""

from __future__ import annotations

import logging
from typing import Any

from jinja2 import (
    ChoiceLoader,
    DictLoader,
    Environment,
    Template,
    TemplateSyntaxError,
    select_autoescape,
)
from pygments.formatters import HtmlFormatter

from .errors import TemplateNotFoundError
from .models import SiteConfiguration
from .protocols import Storage
from .utils import join_root_url, slugify

logger = logging.getLogger(__name__)


def pygments_css() -> str:
    """Return Pygments CSS styles for the .highlight class."""
    return HtmlFormatter().get_style_defs(".highlight")


class JinjaTemplateRenderer:
    """Template renderer using Jinja2.

    Layouts are keyed by their path relative to the template directory
    (``post.html``, ``partials/nav.html``); includes by their path relative to
    the includes directory. Both are visible to ``{% include %}`` and
    ``{% extends %}``, layouts first.

    Attributes:
        env: Jinja2 environment, available after ``initialize``.
        layouts: Loaded layout sources keyed by name.
        includes: Loaded include sources keyed by name.
    """

    def __init__(self, extensions: list[str] | None = None):
        """Initialize the renderer.

        Args:
            extensions: Jinja2 extensions to enable.
        """
        self.extensions = extensions or []
        self.env: Environment | None = None
        self.layouts: dict[str, str] = {}
        self.includes: dict[str, str] = {}
        self._compiled: dict[str, Template] = {}
        self._base_url = ""

    async def _load_directory(self, storage: Storage, directory: str) -> dict[str, str]:
        sources: dict[str, str] = {}
        prefix = directory.strip("/")
        for path in await storage.list_files(prefix, "*", recursive=True):
            key = path[len(prefix) + 1:] if prefix and path.startswith(prefix + "/") else path
            try:
                sources[key] = await storage.read_text(path)
            except (OSError, UnicodeDecodeError):
                logger.exception("Failed to read template %s", path)
        return sources

    async def initialize(self, config: SiteConfiguration, storage: Storage) -> None:
        """Load and compile all templates.

        Args:
            config: Site configuration naming the template directories.
            storage: Source storage to read templates from.
        """
        self._base_url = config.base_url
        self.layouts = await self._load_directory(storage, config.template_directory)
        self.includes = await self._load_directory(storage, config.includes_directory)
        self.env = Environment(
            loader=ChoiceLoader([DictLoader(self.layouts), DictLoader(self.includes)]),
            autoescape=select_autoescape(["html", "xml"]),
            extensions=self.extensions,
        )
        self._install_globals(config)

        self._compiled = {}
        for key in sorted(self.layouts):
            try:
                self._compiled[key] = self.env.get_template(key)
            except TemplateSyntaxError as exc:
                logger.error("Template %s has a syntax error at line %s: %s", key, exc.lineno, exc.message)
        logger.info(
            "Loaded %d layouts and %d includes", len(self._compiled), len(self.includes)
        )

    def _install_globals(self, config: SiteConfiguration) -> None:
        """Install global variables and functions in the Jinja environment."""
        assert self.env is not None
        self.env.globals["url_for"] = self.url_for
        self.env.globals["slugify"] = slugify
        self.env.globals["pygments_css"] = pygments_css
        self.env.globals["site_title"] = config.title
        self.env.filters["slugify"] = slugify

    def url_for(self, path: str) -> str:
        """Generate a URL for a path, applying the base URL if configured.

        Args:
            path: Path to generate URL for.

        Returns:
            Full URL with the base URL prefix if configured.
        """
        if path.startswith(("http://", "https://", "//")):
            return path
        path = path if path.startswith("/") else f"/{path}"
        return join_root_url(self._base_url, path)

    def has_template(self, key: str) -> bool:
        return key in self._compiled

    async def render(self, key: str, model: dict[str, Any]) -> str:
        """Render a loaded layout.

        Args:
            key: Layout name relative to the template directory.
            model: Template variables.

        Returns:
            Rendered text.

        Raises:
            TemplateNotFoundError: If the layout was not loaded or failed to
                compile.
        """
        template = self._compiled.get(key)
        if template is None:
            raise TemplateNotFoundError(key)
        return template.render(**model)
