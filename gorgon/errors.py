"""Exception hierarchy for Gorgon.

Per-item failures raised from these types are caught by the build
orchestrator and recorded as build issues; only errors raised from the
orchestration code itself abort a build.
"""

from __future__ import annotations


class GorgonError(Exception):
    """Base class for all Gorgon errors."""


class ConfigurationError(GorgonError):
    """The site configuration could not be read or has invalid values."""


class ContentError(GorgonError):
    """A content item cannot be added to the site.

    Attributes:
        source_path: Storage path of the offending source file.
        message: Human-readable error message.
    """

    def __init__(self, source_path: str, message: str):
        self.source_path = source_path
        self.message = message
        super().__init__(f"{source_path}: {message}")


class ContentParseError(ContentError):
    """Raw content (usually its frontmatter) could not be parsed."""


class TemplateNotFoundError(GorgonError):
    """A template key was requested that was never loaded."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Template '{key}' not found or failed to load")


class AssetCompileError(GorgonError):
    """A stylesheet could not be compiled."""


class BuildCancelled(GorgonError):
    """The build was cancelled through its cancellation token."""
