"""Protocol definitions for Gorgon.

This module defines the interfaces (protocols) the build orchestrator
depends on. Default implementations live in their own modules; tests and
embedders can pass any object that satisfies the protocol instead.

These protocols enable:
- Running the same build against local disk or a remote object store
- Swapping the Markdown, template or stylesheet toolchain
- Hooking third-party extensions into the pipeline stages
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import IO, TYPE_CHECKING, Any, Iterable, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .cancellation import CancellationToken
    from .models import Metadata, PipelineStage, SiteConfiguration, SiteContext


@runtime_checkable
class Storage(Protocol):
    """Protocol for asynchronous file storage.

    Paths are ``/``-separated strings relative to the storage root. The
    orchestrator uses one instance for source files and one for output.
    """

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Check whether a file or directory exists at ``path``."""
        ...

    @abstractmethod
    async def read_text(self, path: str) -> str:
        """Read a UTF-8 text file.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        ...

    @abstractmethod
    async def read_bytes(self, path: str) -> bytes:
        """Read a binary file."""
        ...

    @abstractmethod
    async def open_stream(self, path: str) -> IO[bytes]:
        """Open a file for binary reading. The caller closes the stream."""
        ...

    @abstractmethod
    async def write_text(self, path: str, content: str) -> None:
        """Write a UTF-8 text file, creating parent directories."""
        ...

    @abstractmethod
    async def write_bytes(self, path: str, content: bytes) -> None:
        """Write a binary file, creating parent directories."""
        ...

    @abstractmethod
    async def write_stream(self, path: str, stream: IO[bytes]) -> None:
        """Copy a readable binary stream into a file."""
        ...

    @abstractmethod
    async def list_files(
        self, path: str, pattern: str = "*", recursive: bool = True
    ) -> list[str]:
        """List files below ``path`` whose name matches ``pattern``.

        Args:
            path: Directory to search.
            pattern: Glob pattern matched against the file name.
            recursive: Whether to descend into subdirectories.

        Returns:
            Storage paths of the matching files. Missing directories yield
            an empty list.
        """
        ...

    @abstractmethod
    async def list_directories(self, path: str) -> list[str]:
        """List the direct subdirectories of ``path``."""
        ...

    @abstractmethod
    async def create_directory(self, path: str) -> None:
        """Create a directory and its parents; existing ones are fine."""
        ...

    @abstractmethod
    async def delete_file(self, path: str) -> None:
        """Delete a file; missing files are ignored."""
        ...

    @abstractmethod
    async def delete_directory(self, path: str, recursive: bool = False) -> None:
        """Delete a directory, with its contents when ``recursive`` is set."""
        ...

    @abstractmethod
    async def copy_file(self, source: str, destination: str, overwrite: bool = True) -> None:
        """Copy a file inside this storage.

        Raises:
            FileExistsError: If ``destination`` exists and ``overwrite`` is False.
        """
        ...

    @abstractmethod
    def combine(self, *segments: str) -> str:
        """Join path segments with ``/``."""
        ...


@dataclass
class ParsedContent:
    """Result of parsing one content file."""

    metadata: Metadata
    body: str


@runtime_checkable
class ContentParser(Protocol):
    """Protocol for turning raw content text into metadata and HTML.

    Implementations handle one source format each (Markdown, HTML).
    """

    @property
    @abstractmethod
    def extensions(self) -> Iterable[str]:
        """Return the lowercase file extensions (with dot) this parser handles."""
        ...

    @abstractmethod
    def parse(self, raw_text: str, source_path: str) -> ParsedContent:
        """Parse raw file text.

        Args:
            raw_text: Complete file contents including frontmatter.
            source_path: Storage path, used in error messages.

        Returns:
            Parsed metadata and body HTML.

        Raises:
            ContentParseError: If the frontmatter is malformed.
        """
        ...


@runtime_checkable
class TemplateRenderer(Protocol):
    """Protocol for rendering layout templates.

    All template sources are loaded during ``initialize``; ``render`` works
    purely from memory.
    """

    @abstractmethod
    async def initialize(self, config: SiteConfiguration, storage: Storage) -> None:
        """Load templates and includes from the source storage."""
        ...

    @abstractmethod
    async def render(self, key: str, model: dict[str, Any]) -> str:
        """Render the layout registered under ``key``.

        Raises:
            TemplateNotFoundError: If no layout was loaded under ``key``.
        """
        ...


@runtime_checkable
class AssetCompiler(Protocol):
    """Protocol for compiling a stylesheet entry point to CSS."""

    @abstractmethod
    async def compile(
        self,
        source_text: str,
        source_path: str,
        storage: Storage,
        output_style: str = "compressed",
    ) -> str:
        """Compile stylesheet source.

        Args:
            source_text: Contents of the entry point.
            source_path: Storage path of the entry point; imports resolve
                relative to it.
            storage: Storage used to resolve imports.
            output_style: ``expanded`` or ``compressed``.

        Returns:
            Compiled CSS text.

        Raises:
            AssetCompileError: If compilation fails.
        """
        ...


@runtime_checkable
class Plugin(Protocol):
    """Protocol for build extensions.

    A plugin declares the stages it runs at; the dispatcher never calls it
    for other stages. ``execute`` may be a plain function or a coroutine.
    """

    name: str
    stages: Iterable[PipelineStage]

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
        ...
