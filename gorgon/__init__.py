"""Gorgon static site generator.

This package turns a tree of Markdown/HTML content files with YAML frontmatter
and Jinja2 templates into a complete static website. All file access goes
through an asynchronous storage interface, so the same build runs against the
local disk or any other backend that implements the protocol.

The main entry point is the build orchestrator in ``gorgon.build``; the CLI
module wraps it in a ``gorgon build`` command.

Architecture:
- Collaborators (storage, parsers, templates, assets) are protocols with
  default implementations that can be swapped out.
- Extensions hook into five pipeline stages through the plugin dispatcher.
- Cross-item logic (URLs, ordering, taxonomies, pagination) lives in small,
  pure modules the orchestrator sequences.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
