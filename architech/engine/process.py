"""Process execution for run-command actions.

``ProcessRunner`` is the default process-execution collaborator: it runs a
shell command with a timeout and reports a structured ``ProcessResult``.
Callers can substitute any object with the same ``run`` coroutine.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from architech.errors import ProcessNonZeroExitError, ProcessTimeoutError
from architech.utils import run_command

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    """Outcome of one command execution."""

    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return not self.timed_out and self.exit_code == 0

    def check(self) -> "ProcessResult":
        """Raise the matching ``ProcessError`` unless the command succeeded."""
        if self.timed_out:
            raise ProcessTimeoutError(
                self.stderr or f"Command timed out: {self.command}",
                command=self.command,
                stderr=self.stderr,
            )
        if self.exit_code != 0:
            raise ProcessNonZeroExitError(self.command, self.exit_code, self.stderr)
        return self


class CommandRunner(Protocol):
    async def run(self, command: str, cwd: Path, timeout: float) -> ProcessResult: ...


class ProcessRunner:
    """Runs commands through an asyncio subprocess shell."""

    def __init__(self, env: dict[str, str] | None = None) -> None:
        self.env = env

    async def run(self, command: str, cwd: Path, timeout: float) -> ProcessResult:
        logger.info("Running command in %s: %s", cwd, command)
        started = time.monotonic()
        exit_code, stdout, stderr, timed_out = await run_command(
            command, cwd=cwd, timeout=timeout, env=self.env
        )
        result = ProcessResult(
            command=command,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            timed_out=timed_out,
            duration_seconds=time.monotonic() - started,
        )
        if result.success:
            logger.debug("Command finished in %.1fs: %s", result.duration_seconds, command)
        else:
            logger.warning(
                "Command %s (exit %s): %s",
                "timed out" if timed_out else "failed",
                exit_code,
                command,
            )
        return result
