"""Site configuration loading.

The configuration file is a JSON object whose keys map onto
SiteConfiguration fields. Keys may be written in camelCase or snake_case;
``rss``/``feed`` holds the feed settings and ``data``/``extra`` the free-form
extension map. Unknown top-level keys are merged into ``extra``.

A missing file yields the defaults. An unreadable or invalid file also
yields the defaults, and the problem is logged and reported as an issue so
the build can continue.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import re
from typing import Any

from .errors import ConfigurationError
from .models import BuildIssue, FeedSettings, SiteConfiguration
from .protocols import Storage

logger = logging.getLogger(__name__)

_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")

# Alternative spellings accepted for some fields.
FIELD_ALIASES = {
    "layouts_directory": "template_directory",
    "templates_directory": "template_directory",
    "include_drafts": "build_drafts",
    "drafts": "build_drafts",
    "future": "build_future_dated",
    "rss": "feed",
    "data": "extra",
}

_FIELDS = {f.name: f for f in dataclasses.fields(SiteConfiguration)}
_FEED_FIELDS = {f.name for f in dataclasses.fields(FeedSettings)}


def snake_case(key: str) -> str:
    """Convert a camelCase or kebab-case key to snake_case.

    Examples:
        >>> snake_case("postsPerPage")
        'posts_per_page'

        >>> snake_case("base_url")
        'base_url'
    """
    return _CAMEL_RE.sub("_", key).replace("-", "_").lower()


def _check_type(name: str, value: Any, expected: Any) -> Any:
    if isinstance(expected, bool):
        if not isinstance(value, bool):
            raise ConfigurationError(f"'{name}' must be true or false, got {value!r}")
    elif isinstance(expected, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(f"'{name}' must be an integer, got {value!r}")
    elif isinstance(expected, str):
        if not isinstance(value, str):
            raise ConfigurationError(f"'{name}' must be a string, got {value!r}")
    return value


def _feed_settings(value: Any) -> FeedSettings:
    if isinstance(value, bool):
        return FeedSettings(enabled=value)
    if not isinstance(value, dict):
        raise ConfigurationError(f"'feed' must be an object, got {value!r}")
    defaults = FeedSettings()
    kwargs = {}
    for key, item in value.items():
        name = snake_case(str(key))
        if name not in _FEED_FIELDS:
            logger.warning("Ignoring unknown feed setting '%s'", key)
            continue
        kwargs[name] = _check_type(f"feed.{name}", item, getattr(defaults, name))
    return FeedSettings(**kwargs)


def configuration_from_mapping(data: dict[str, Any]) -> SiteConfiguration:
    """Build a SiteConfiguration from a parsed JSON object.

    Args:
        data: Top-level JSON object.

    Returns:
        Immutable configuration.

    Raises:
        ConfigurationError: If a known key has a value of the wrong type.
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a JSON object")

    defaults = SiteConfiguration()
    kwargs: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for key, value in data.items():
        name = snake_case(str(key))
        name = FIELD_ALIASES.get(name, name)
        if value is None and name in _FIELDS:
            continue
        if name == "feed":
            kwargs["feed"] = _feed_settings(value)
        elif name == "extra":
            if not isinstance(value, dict):
                raise ConfigurationError(f"'{key}' must be an object, got {value!r}")
            extra.update(value)
        elif name in _FIELDS:
            kwargs[name] = _check_type(name, value, getattr(defaults, name))
        else:
            extra[str(key)] = value

    return SiteConfiguration(**kwargs, extra=extra)


def validate_configuration(config: SiteConfiguration) -> list[str]:
    """Return human-readable warnings about a loaded configuration."""
    warnings = []
    if not config.title.strip():
        warnings.append("Site title is empty")
    if not config.base_url:
        warnings.append("Base URL is empty; sitemap and feed will be skipped")
    elif not config.base_url.startswith(("http://", "https://")):
        warnings.append(f"Base URL '{config.base_url}' is not an absolute http(s) URL")
    return warnings


async def load_configuration(
    path: str, storage: Storage
) -> tuple[SiteConfiguration, list[BuildIssue]]:
    """Load the site configuration from source storage.

    Args:
        path: Storage path of the JSON configuration file.
        storage: Source storage.

    Returns:
        Tuple of (configuration, issues). Issues are non-empty only when the
        file existed but could not be used, in which case the defaults are
        returned.
    """
    if not path or not await storage.exists(path):
        logger.warning("Configuration file %s not found, using defaults", path)
        return SiteConfiguration(), []

    try:
        text = await storage.read_text(path)
        if not text.strip():
            logger.warning("Configuration file %s is empty, using defaults", path)
            return SiteConfiguration(), []
        config = configuration_from_mapping(json.loads(text))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, ConfigurationError) as exc:
        logger.error("Invalid configuration file %s, using defaults: %s", path, exc)
        return SiteConfiguration(), [BuildIssue(source=path, message=str(exc), stage="config")]

    for warning in validate_configuration(config):
        logger.warning("%s: %s", path, warning)
    logger.info("Loaded configuration from %s", path)
    return config, []
