"""Stylesheet compilation for Gorgon.

``SassCompiler`` implements the AssetCompiler protocol. Imports are resolved
through the storage interface first, so the same stylesheet tree compiles
whether it lives on local disk or in a remote store; the flattened source is
then piped through the Dart Sass command line tool.

Key components:
- SassCompiler: Inlines ``@import`` directives and runs ``sass``.
- find_executable: Locate a tool on PATH or in local node_modules.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import re
import shutil
import subprocess
from enum import Enum
from pathlib import Path

from .errors import AssetCompileError
from .protocols import Storage

logger = logging.getLogger(__name__)

IMPORT_RE = re.compile(r"@import\s+([^;\n]+);")
QUOTED_RE = re.compile(r"""(['"])(.*?)\1|(url\([^)]*\))""")


class OutputStyle(str, Enum):
    """CSS output styles understood by ``sass``."""

    EXPANDED = "expanded"
    COMPRESSED = "compressed"


def find_executable(name: str, project_root: Path | None = None) -> str | None:
    """Find an executable in PATH or local node_modules.

    Args:
        name: Name of the executable to find (e.g., 'sass').
        project_root: Optional project root directory to search for
            local node_modules installations.

    Returns:
        Full path to the executable if found, None otherwise.
    """
    found = shutil.which(name)
    if found:
        return found
    if project_root is not None:
        local = project_root / "node_modules" / ".bin" / name
        if local.exists():
            return str(local)
    return None


def _is_remote(target: str) -> bool:
    return target.startswith(("http://", "https://", "//"))


class SassCompiler:
    """Compiles SCSS through the ``sass`` command line tool.

    Attributes:
        executable: Name or path of the sass binary.
        project_root: Directory whose node_modules/.bin is searched as well.
    """

    def __init__(self, executable: str = "sass", project_root: Path | None = None):
        self.executable = executable
        self.project_root = project_root if project_root is not None else Path.cwd()

    def _candidates(self, directory: str, target: str) -> list[str]:
        folder, name = posixpath.split(target)
        base = posixpath.normpath(posixpath.join(directory, folder)) if folder else directory
        base = "" if base == "." else base

        def join(filename: str) -> str:
            return posixpath.join(base, filename) if base else filename

        if posixpath.splitext(name)[1] in (".scss", ".sass", ".css"):
            return [join(name), join(f"_{name}")]
        return [
            join(name),
            join(f"{name}.scss"),
            join(f"_{name}.scss"),
            join(f"{name}.css"),
            join(f"_{name}.css"),
        ]

    async def _resolve_import(self, storage: Storage, directory: str, target: str) -> str | None:
        for candidate in self._candidates(directory, target):
            if await storage.exists(candidate):
                return candidate
        return None

    async def inline_imports(
        self, source_text: str, source_path: str, storage: Storage, _stack: tuple[str, ...] = ()
    ) -> str:
        """Replace resolvable ``@import`` directives with the imported source.

        ``url(...)``, remote and unresolvable imports are left untouched.

        Raises:
            AssetCompileError: If imports form a cycle.
        """
        stack = (*_stack, source_path)
        directory = posixpath.dirname(source_path)
        output: list[str] = []
        position = 0
        for match in IMPORT_RE.finditer(source_text):
            output.append(source_text[position:match.start()])
            position = match.end()
            pieces: list[str] = []
            untouched: list[str] = []
            for quoted in QUOTED_RE.finditer(match.group(1)):
                if quoted.group(3):
                    untouched.append(quoted.group(3))
                    continue
                target = quoted.group(2)
                if _is_remote(target):
                    untouched.append(quoted.group(0))
                    continue
                resolved = await self._resolve_import(storage, directory, target)
                if resolved is None:
                    logger.warning("Unresolved import '%s' in %s", target, source_path)
                    untouched.append(quoted.group(0))
                    continue
                if resolved in stack:
                    chain = " -> ".join((*stack, resolved))
                    raise AssetCompileError(f"Import cycle detected: {chain}")
                text = await storage.read_text(resolved)
                pieces.append(await self.inline_imports(text, resolved, storage, stack))
            if untouched:
                pieces.insert(0, f"@import {', '.join(untouched)};")
            output.append("\n".join(pieces))
        output.append(source_text[position:])
        return "".join(output)

    def _run_sass(self, binary: str, source: str, output_style: str) -> str:
        cmd = [binary, "--stdin", f"--style={output_style}", "--no-source-map"]
        result = subprocess.run(cmd, input=source, capture_output=True, text=True)
        if result.returncode != 0:
            raise AssetCompileError(f"sass failed: {result.stderr.strip()}")
        return result.stdout

    async def compile(
        self,
        source_text: str,
        source_path: str,
        storage: Storage,
        output_style: str = OutputStyle.COMPRESSED.value,
    ) -> str:
        """Compile a stylesheet entry point.

        Args:
            source_text: Contents of the entry point.
            source_path: Storage path of the entry point.
            storage: Storage used to resolve imports.
            output_style: ``expanded`` or ``compressed``.

        Returns:
            Compiled CSS. Without a sass binary the import-inlined source is
            returned unchanged.

        Raises:
            AssetCompileError: On import cycles or a failing sass run.
        """
        style = OutputStyle(output_style).value
        flattened = await self.inline_imports(source_text, source_path, storage)
        binary = find_executable(self.executable, self.project_root)
        if binary is None:
            logger.warning("%s not found; writing %s without compilation", self.executable, source_path)
            return flattened
        try:
            return await asyncio.to_thread(self._run_sass, binary, flattened, style)
        except OSError as exc:
            raise AssetCompileError(f"Could not run {binary}: {exc}") from exc
