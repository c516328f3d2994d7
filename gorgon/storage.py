"""Local filesystem storage.

``LocalStorage`` implements the Storage protocol on top of a directory. All
blocking file operations run in a worker thread via ``asyncio.to_thread`` so
the build loop stays responsive to cancellation.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import shutil
from pathlib import Path
from typing import IO

logger = logging.getLogger(__name__)


class LocalStorage:
    """Storage rooted at a local directory.

    Args:
        root: Directory all storage paths are relative to. It does not need
            to exist until something is written.
    """

    def __init__(self, root: Path | str):
        self.root = Path(root).resolve()

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"LocalStorage({str(self.root)!r})"

    def combine(self, *segments: str) -> str:
        parts = [s.strip("/") for s in segments if s and s.strip("/")]
        return "/".join(parts)

    def _resolve(self, path: str) -> Path:
        """Map a storage path to a filesystem path inside the root.

        Raises:
            ValueError: If the path escapes the storage root.
        """
        relative = (path or "").replace("\\", "/").lstrip("/")
        full = (self.root / relative).resolve()
        if full != self.root and self.root not in full.parents:
            raise ValueError(f"Path escapes storage root: {path}")
        return full

    def _relative(self, full: Path) -> str:
        return full.relative_to(self.root).as_posix()

    async def exists(self, path: str) -> bool:
        full = self._resolve(path)
        return await asyncio.to_thread(full.exists)

    async def read_text(self, path: str) -> str:
        full = self._resolve(path)
        return await asyncio.to_thread(full.read_text, encoding="utf-8")

    async def read_bytes(self, path: str) -> bytes:
        full = self._resolve(path)
        return await asyncio.to_thread(full.read_bytes)

    async def open_stream(self, path: str) -> IO[bytes]:
        full = self._resolve(path)
        return await asyncio.to_thread(full.open, "rb")

    async def write_text(self, path: str, content: str) -> None:
        full = self._resolve(path)

        def _write() -> None:
            full.parent.mkdir(parents=True, exist_ok=True)
            full.write_text(content, encoding="utf-8")

        await asyncio.to_thread(_write)
        logger.debug("Wrote %s", path)

    async def write_bytes(self, path: str, content: bytes) -> None:
        full = self._resolve(path)

        def _write() -> None:
            full.parent.mkdir(parents=True, exist_ok=True)
            full.write_bytes(content)

        await asyncio.to_thread(_write)
        logger.debug("Wrote %s", path)

    async def write_stream(self, path: str, stream: IO[bytes]) -> None:
        full = self._resolve(path)

        def _write() -> None:
            full.parent.mkdir(parents=True, exist_ok=True)
            with full.open("wb") as handle:
                shutil.copyfileobj(stream, handle)

        await asyncio.to_thread(_write)
        logger.debug("Wrote %s", path)

    async def list_files(
        self, path: str, pattern: str = "*", recursive: bool = True
    ) -> list[str]:
        base = self._resolve(path)

        def _list() -> list[str]:
            if not base.is_dir():
                return []
            candidates = base.rglob("*") if recursive else base.iterdir()
            return sorted(
                self._relative(p)
                for p in candidates
                if p.is_file() and fnmatch.fnmatch(p.name, pattern)
            )

        return await asyncio.to_thread(_list)

    async def list_directories(self, path: str) -> list[str]:
        base = self._resolve(path)

        def _list() -> list[str]:
            if not base.is_dir():
                return []
            return sorted(self._relative(p) for p in base.iterdir() if p.is_dir())

        return await asyncio.to_thread(_list)

    async def create_directory(self, path: str) -> None:
        full = self._resolve(path)
        await asyncio.to_thread(full.mkdir, parents=True, exist_ok=True)

    async def delete_file(self, path: str) -> None:
        full = self._resolve(path)
        await asyncio.to_thread(full.unlink, missing_ok=True)

    async def delete_directory(self, path: str, recursive: bool = False) -> None:
        full = self._resolve(path)

        def _delete() -> None:
            if not full.exists():
                return
            if recursive:
                shutil.rmtree(full)
            else:
                full.rmdir()

        await asyncio.to_thread(_delete)

    async def copy_file(self, source: str, destination: str, overwrite: bool = True) -> None:
        src = self._resolve(source)
        dst = self._resolve(destination)

        def _copy() -> None:
            if dst.exists() and not overwrite:
                raise FileExistsError(f"Destination exists: {destination}")
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dst)

        await asyncio.to_thread(_copy)
