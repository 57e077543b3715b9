"""Architech file engine -- staging layer and mutation primitives.

Key classes:
    StagingFileSystem - Per-execution in-memory overlay with explicit commit
    LocalDisk         - Default disk I/O provider (atomic single-file writes)
    ProcessRunner     - Async shell command execution with timeouts
"""

from .process import CommandRunner, ProcessResult, ProcessRunner
from .source import ImportKind, ImportRequest, SourceEdit
from .staging import CommitResult, DiskIO, LocalDisk, StagedFile, StagingError, StagingFileSystem

__all__ = [
    # Staging
    "StagingFileSystem",
    "StagedFile",
    "CommitResult",
    "StagingError",
    "DiskIO",
    "LocalDisk",
    # Source edits
    "ImportKind",
    "ImportRequest",
    "SourceEdit",
    # Processes
    "CommandRunner",
    "ProcessResult",
    "ProcessRunner",
]
