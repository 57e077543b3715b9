"""Exception hierarchy for the Architech blueprint engine.

Every failure the engine can surface derives from ``ArchitechError``.  The
mutation primitives raise the ``MutationError`` family; the orchestrator maps
those through an action's conflict-resolution policy before they can abort an
execution.  ``CommitPartialFailure`` is the only error raised after disk has
been touched.
"""

from __future__ import annotations


class ArchitechError(Exception):
    """Base class for every error raised by the engine."""


# ---------------------------------------------------------------------------
# Mutation primitives
# ---------------------------------------------------------------------------


class MutationError(ArchitechError):
    """Raised when a mutation primitive cannot apply cleanly."""

    kind = "mutation"

    def __init__(self, message: str, path: str = "") -> None:
        self.path = path
        super().__init__(message)


class NotFoundError(MutationError):
    """The primitive requires existing content but the file is absent."""

    kind = "not-found"


class AlreadyExistsError(MutationError):
    """A create was requested for a file that already exists."""

    kind = "already-exists"


class ParseError(MutationError):
    """Content could not be parsed as the expected structured format."""

    kind = "parse-error"


class NoMatchError(MutationError):
    """A wrap / enhance target was not found in the content."""

    kind = "no-match"


# ---------------------------------------------------------------------------
# Templates & conditions
# ---------------------------------------------------------------------------


class TemplateSyntaxError(ArchitechError):
    """Raised when a template string is malformed (e.g. an unclosed ``{{#if}}``)."""


class ConditionEvalError(ArchitechError):
    """Raised when an action ``condition`` cannot be evaluated."""

    def __init__(self, condition: str, reason: str) -> None:
        self.condition = condition
        self.reason = reason
        super().__init__(f"Cannot evaluate condition {condition!r}: {reason}")


# ---------------------------------------------------------------------------
# Staging & commit
# ---------------------------------------------------------------------------


class PathOutsideProjectError(ArchitechError):
    """Raised when an action targets a path outside the project root."""

    def __init__(self, path: str, root: str) -> None:
        self.path = path
        self.root = root
        super().__init__(f"Path {path!r} escapes the project root {root}")


class CommitPartialFailure(ArchitechError):
    """Raised when some staged files could not be written during commit.

    Disk may be inconsistent: ``written`` lists the paths that reached disk and
    ``failed`` maps every path that did not to the reason it failed.
    """

    def __init__(self, written: list[str], failed: dict[str, str]) -> None:
        self.written = list(written)
        self.failed = dict(failed)
        details = ", ".join(f"{path} ({reason})" for path, reason in self.failed.items())
        super().__init__(
            f"Commit partially failed: {len(self.written)} file(s) written, "
            f"{len(self.failed)} not written: {details}"
        )


# ---------------------------------------------------------------------------
# Process execution
# ---------------------------------------------------------------------------


class ProcessError(ArchitechError):
    """Raised when a run-command side effect fails."""

    def __init__(self, message: str, command: str = "", stderr: str = "") -> None:
        self.command = command
        self.stderr = stderr
        super().__init__(message)


class ProcessTimeoutError(ProcessError):
    """The command did not finish within its timeout."""


class ProcessNonZeroExitError(ProcessError):
    """The command exited with a non-zero status."""

    def __init__(self, command: str, exit_code: int, stderr: str = "") -> None:
        self.exit_code = exit_code
        super().__init__(
            f"Command failed (exit {exit_code}): {command}"
            + (f"\n{stderr}" if stderr else ""),
            command=command,
            stderr=stderr,
        )


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class BlueprintLoadError(ArchitechError):
    """Raised when a blueprint document cannot be read or validated."""

    def __init__(self, message: str, source: str = "") -> None:
        self.source = source
        super().__init__(message)
