"""Command-line interface for Gorgon.

This module defines the CLI commands using the Click framework.

Commands:
- build: Build the site into the output directory.

Exit codes of ``gorgon build``: 0 on success, 1 on failure (or on any
recorded issue with ``--strict``), 130 when interrupted.
"""

from __future__ import annotations

import logging
import signal
from pathlib import Path

import click

from . import __version__
from .cancellation import CancellationToken
from .models import BuildResult, BuildStatus

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(verbose: bool, quiet: bool) -> None:
    """Configure root logging for a CLI run."""
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S", force=True)


@click.group()
@click.version_option(version=__version__, prog_name="gorgon")
def cli():
    """Gorgon static site generator."""


@cli.command()
@click.option(
    "--source",
    "-s",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Site source directory",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Output directory (defaults to the configured output directory)",
)
@click.option(
    "--config",
    "config_file",
    default="config.json",
    show_default=True,
    help="Configuration file, relative to the source directory",
)
@click.option("--drafts", is_flag=True, help="Include draft content")
@click.option("--future", is_flag=True, help="Include future-dated content")
@click.option("--strict", is_flag=True, help="Exit non-zero when any item failed")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.option("--quiet", "-q", is_flag=True, help="Only show warnings and errors")
def build(
    source: Path,
    output: Path | None,
    config_file: str,
    drafts: bool,
    future: bool,
    strict: bool,
    verbose: bool,
    quiet: bool,
):
    """Build the site into the output directory."""
    from .build import build_site

    configure_logging(verbose, quiet)
    if not source.is_dir():
        raise click.ClickException(f"Source directory not found: {source}")

    overrides = {}
    if drafts:
        overrides["build_drafts"] = True
    if future:
        overrides["build_future_dated"] = True

    cancel = CancellationToken()

    def handle_interrupt(signum, frame):
        click.echo(click.style("Interrupted, stopping build...", fg="yellow"), err=True)
        cancel.cancel()

    previous_handler = signal.signal(signal.SIGINT, handle_interrupt)
    try:
        result = build_site(source, output, config_file=config_file, cancel=cancel, **overrides)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    raise SystemExit(report(result, strict))


def report(result: BuildResult, strict: bool = False) -> int:
    """Print a build summary and return the process exit code."""
    for issue in result.issues:
        click.echo(
            click.style(f"  [{issue.stage}] {issue.source}: ", fg="yellow") + issue.message,
            err=True,
        )

    if result.status is BuildStatus.CANCELLED:
        click.echo(click.style("Build cancelled.", fg="yellow", bold=True), err=True)
        return EXIT_CANCELLED
    if result.status is BuildStatus.FAILED:
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  Error: {result.exception}", fg="white"), err=True)
        return EXIT_FAILED

    context = result.context
    summary = (
        f"Built {len(context.posts)} posts, {len(context.pages)} pages and "
        f"{len(context.list_pages)} list pages in {result.elapsed:.2f}s"
        if context is not None
        else f"Build finished in {result.elapsed:.2f}s"
    )
    if result.error_count:
        click.echo(
            click.style(f"{summary} with {result.error_count} issue(s)", fg="yellow", bold=True)
        )
        return EXIT_FAILED if strict else EXIT_OK
    click.echo(click.style(summary, fg="green"))
    return EXIT_OK


def main():
    """Entry point for the CLI application."""
    cli()
