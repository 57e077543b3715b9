"""Shared pytest fixtures for the Architech engine test suite.

Provides reusable fixtures for:
- Temporary project directories and pre-populated project files
- Engine configuration pointing at the temporary project
- An in-memory disk provider with injectable write failures
- A mocked process runner
- A representative execution context
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional
from unittest.mock import AsyncMock

import pytest

from architech.config import EngineConfig
from architech.engine.process import ProcessResult
from architech.engine.staging import StagingFileSystem


# ---------------------------------------------------------------------------
# Paths & Directories
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_project_dir(tmp_path: Path) -> Path:
    """Temporary project directory (auto-cleanup)."""
    project_dir = tmp_path / "test-project"
    project_dir.mkdir()
    yield project_dir


@pytest.fixture
def write_project_files(tmp_project_dir: Path) -> Callable[[dict[str, str]], Path]:
    """Factory that writes ``{relative_path: content}`` into the project.

    Usage::

        def test_something(write_project_files):
            root = write_project_files({"package.json": "{}"})
    """

    def factory(files: dict[str, str]) -> Path:
        for rel, content in files.items():
            target = tmp_project_dir / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        return tmp_project_dir

    return factory


def snapshot_tree(root: Path) -> dict[str, bytes]:
    """Map every file under *root* to its bytes."""
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


@pytest.fixture
def tree_snapshot() -> Callable[[Path], dict[str, bytes]]:
    return snapshot_tree


# ---------------------------------------------------------------------------
# Engine objects
# ---------------------------------------------------------------------------

@pytest.fixture
def engine_config(tmp_project_dir: Path) -> EngineConfig:
    return EngineConfig(project_root=tmp_project_dir, command_timeout=30)


@pytest.fixture
def staging(tmp_project_dir: Path) -> StagingFileSystem:
    return StagingFileSystem(tmp_project_dir, label="test")


class MemoryDisk:
    """In-memory ``DiskIO`` recording reads and writes.

    Paths listed in ``fail_on`` (relative to ``root``) raise ``OSError`` on write.
    """

    def __init__(self, root: Path, files: Optional[dict[str, str]] = None, fail_on: tuple[str, ...] = ()):
        self.root = Path(root).resolve()
        self.files: dict[str, bytes] = {
            rel: content.encode("utf-8") for rel, content in (files or {}).items()
        }
        self.fail_on = set(fail_on)
        self.reads: list[str] = []
        self.writes: list[str] = []

    def _rel(self, path: Path) -> str:
        return Path(path).relative_to(self.root).as_posix()

    def read(self, path: Path) -> Optional[bytes]:
        rel = self._rel(path)
        self.reads.append(rel)
        return self.files.get(rel)

    def write(self, path: Path, data: bytes) -> None:
        rel = self._rel(path)
        if rel in self.fail_on:
            raise OSError(f"disk full while writing {rel}")
        self.writes.append(rel)
        self.files[rel] = data

    def exists(self, path: Path) -> bool:
        return self._rel(path) in self.files

    def text(self, rel: str) -> str:
        return self.files[rel].decode("utf-8")


@pytest.fixture
def memory_disk(tmp_project_dir: Path) -> Callable[..., MemoryDisk]:
    """Factory building a ``MemoryDisk`` rooted at the temporary project."""

    def factory(files: Optional[dict[str, str]] = None, fail_on: tuple[str, ...] = ()) -> MemoryDisk:
        return MemoryDisk(tmp_project_dir, files=files, fail_on=fail_on)

    return factory


# ---------------------------------------------------------------------------
# Mock process runner
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_runner() -> Callable[..., AsyncMock]:
    """Factory for a runner whose ``run`` coroutine returns a fixed result.

    Usage::

        def test_command(mock_runner):
            runner = mock_runner(exit_code=1, stderr="boom")
    """

    def factory(
        exit_code: int = 0,
        stdout: str = "",
        stderr: str = "",
        timed_out: bool = False,
    ) -> AsyncMock:
        runner = AsyncMock()

        async def run(command: str, cwd: Path, timeout: float) -> ProcessResult:
            return ProcessResult(
                command=command,
                exit_code=exit_code,
                stdout=stdout,
                stderr=stderr,
                timed_out=timed_out,
                duration_seconds=0.01,
            )

        runner.run = AsyncMock(side_effect=run)
        return runner

    return factory


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_context() -> dict[str, Any]:
    """Context as assembled by a module orchestrator."""
    return {
        "project": {"name": "my-app", "description": "Demo app"},
        "module": {
            "id": "drizzle",
            "category": "database",
            "version": "1.0.0",
            "parameters": {
                "databaseType": "postgresql",
                "template-engine": "handlebars",
                "migrations": True,
                "seed": False,
                "components": ["button", "card"],
            },
        },
        "integration": {"features": {"auth": True, "storage": "false"}},
    }
