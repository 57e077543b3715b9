"""Per-execution staging filesystem.

``StagingFileSystem`` is an in-memory overlay over the project directory.
Files are read through from disk at most once, every write is buffered, and
nothing reaches disk until ``commit()``.  One instance belongs to exactly one
blueprint execution; there is no process-wide cache.
"""

from __future__ import annotations

import asyncio
import logging
import os
import posixpath
import tempfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional, Protocol

from architech.errors import ArchitechError, PathOutsideProjectError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Disk I/O provider
# ---------------------------------------------------------------------------


class DiskIO(Protocol):
    """Disk access used by the staging layer. Paths are absolute."""

    def read(self, path: Path) -> Optional[bytes]: ...

    def write(self, path: Path, data: bytes) -> None: ...

    def exists(self, path: Path) -> bool: ...


class LocalDisk:
    """``DiskIO`` backed by the local filesystem.

    Each write goes to a temp file in the target directory and is moved into
    place with ``os.replace``, so a single file is never left half-written.
    """

    def read(self, path: Path) -> Optional[bytes]:
        try:
            return path.read_bytes()
        except (FileNotFoundError, NotADirectoryError):
            return None

    def write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(temp_path, path)
        except OSError:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def exists(self, path: Path) -> bool:
        return path.is_file()


# ---------------------------------------------------------------------------
# Staged state
# ---------------------------------------------------------------------------


@dataclass
class StagedFile:
    """A file mirrored into the staging layer.

    ``content`` is ``None`` while the file does not exist (absent marker).
    """

    path: str
    content: Optional[str]
    dirty: bool = False
    loaded_from_disk: bool = False

    @property
    def exists(self) -> bool:
        return self.content is not None


@dataclass
class CommitResult:
    """Outcome of flushing dirty files to disk."""

    written: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failed

    @property
    def partial(self) -> bool:
        """True when disk was touched but not every file made it."""
        return bool(self.failed) and bool(self.written)


class StagingError(ArchitechError):
    """Raised on misuse of a staging filesystem (e.g. a second commit)."""


# ---------------------------------------------------------------------------
# StagingFileSystem
# ---------------------------------------------------------------------------


class StagingFileSystem:
    """In-memory overlay over a project directory for one blueprint execution."""

    def __init__(self, root: str | Path, disk: DiskIO | None = None, label: str = "") -> None:
        self.root = Path(root).resolve()
        self.disk: DiskIO = disk or LocalDisk()
        self.label = label
        self._files: dict[str, StagedFile] = {}
        self._dirty_order: list[str] = []
        self._committed = False
        self.disk_reads = 0
        logger.debug("Created staging filesystem %s for %s", label or "<anonymous>", self.root)

    # -- Path handling -----------------------------------------------------

    def normalize(self, path: str | Path) -> str:
        """Return *path* as a POSIX path relative to the project root.

        Raises:
            PathOutsideProjectError: If the path resolves outside the root.
        """
        raw = str(path).replace("\\", "/")
        if os.path.isabs(raw):
            try:
                raw = Path(raw).resolve().relative_to(self.root).as_posix()
            except ValueError:
                raise PathOutsideProjectError(str(path), str(self.root)) from None
        normalized = posixpath.normpath(raw)
        if normalized in ("", ".") or normalized.startswith("../") or normalized == "..":
            raise PathOutsideProjectError(str(path), str(self.root))
        return PurePosixPath(normalized).as_posix()

    def absolute(self, path: str | Path) -> Path:
        return self.root / self.normalize(path)

    # -- Reads -------------------------------------------------------------

    def _stage(self, rel: str) -> StagedFile:
        staged = self._files.get(rel)
        if staged is not None:
            return staged

        data = self.disk.read(self.root / rel)
        self.disk_reads += 1
        content = data.decode("utf-8") if data is not None else None
        staged = StagedFile(path=rel, content=content, loaded_from_disk=data is not None)
        self._files[rel] = staged
        logger.debug(
            "Staged %s (%s)", rel, "loaded from disk" if staged.loaded_from_disk else "absent"
        )
        return staged

    def read_file(self, path: str | Path) -> Optional[str]:
        """Return the staged content of *path*, or ``None`` when it does not exist."""
        return self._stage(self.normalize(path)).content

    def exists(self, path: str | Path) -> bool:
        rel = self.normalize(path)
        staged = self._files.get(rel)
        if staged is not None:
            return staged.exists
        return self.disk.exists(self.root / rel)

    def is_staged(self, path: str | Path) -> bool:
        return self.normalize(path) in self._files

    def get(self, path: str | Path) -> Optional[StagedFile]:
        return self._files.get(self.normalize(path))

    # -- Writes ------------------------------------------------------------

    def write_file(self, path: str | Path, content: str) -> str:
        """Replace the staged content of *path* and mark it dirty.

        Returns:
            The normalised path that was written.
        """
        if self._committed:
            raise StagingError("Staging filesystem has already been committed")
        rel = self.normalize(path)
        staged = self._stage(rel)
        if staged.content == content and staged.exists:
            return rel
        staged.content = content
        if not staged.dirty:
            staged.dirty = True
            self._dirty_order.append(rel)
        return rel

    @property
    def dirty_paths(self) -> list[str]:
        return list(self._dirty_order)

    @property
    def staged_paths(self) -> list[str]:
        return sorted(self._files)

    # -- Lifecycle ---------------------------------------------------------

    async def preload(self, paths: Iterable[str | Path]) -> list[str]:
        """Stage every path up-front so later mutations never block on I/O.

        Returns:
            The normalised paths that were staged.
        """
        normalized = [self.normalize(p) for p in paths]
        pending = [rel for rel in normalized if rel not in self._files]
        if pending:
            await asyncio.to_thread(self._preload_sync, pending)
        return normalized

    def _preload_sync(self, paths: list[str]) -> None:
        for rel in paths:
            self._stage(rel)

    async def commit(self) -> CommitResult:
        """Write every dirty file to disk.

        Every dirty file is attempted even after a failure; the result lists
        exactly which paths were written and which were not.  Files that were
        never modified are not written.
        """
        if self._committed:
            raise StagingError("Staging filesystem has already been committed")
        self._committed = True
        return await asyncio.to_thread(self._commit_sync)

    def _commit_sync(self) -> CommitResult:
        result = CommitResult()
        for rel in self._dirty_order:
            staged = self._files[rel]
            if staged.content is None:
                continue
            try:
                self.disk.write(self.root / rel, staged.content.encode("utf-8"))
            except OSError as exc:
                logger.error("Failed to write %s: %s", rel, exc)
                result.failed[rel] = str(exc)
                continue
            staged.dirty = False
            result.written.append(rel)
            logger.debug("Committed %s", rel)
        logger.info(
            "Commit finished: %d written, %d failed", len(result.written), len(result.failed)
        )
        return result

    def discard(self) -> None:
        """Drop every staged change. Disk is left untouched."""
        logger.debug("Discarding %d staged file(s)", len(self._files))
        self._files.clear()
        self._dirty_order.clear()
        self._committed = True
