"""Blueprint executor: the per-execution state machine.

One call to ``BlueprintExecutor.execute_blueprint`` walks a blueprint through::

    INITIALIZED -> ANALYZING -> STAGING -> RUNNING -> COMMITTING
                -> COMMITTED | PARTIALLY_COMMITTED | ABORTED
    COMMITTED -> RUNNING_COMMANDS -> COMMITTED | COMMANDS_FAILED

Every mutation is buffered in a fresh ``StagingFileSystem``.  A fatal failure
in any action aborts before commit, so the project directory is left exactly
as it was.  Only the commit itself can leave disk partially modified, and
that case is reported with the exact paths that were and were not written.

Run-command actions are deferred: their requests are queued in action order
and run only after a complete commit, so commands see the committed files
and an abort never leaves command output behind.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, computed_field
from rich.panel import Panel

from architech.config import EngineConfig
from architech.engine.process import CommandRunner, ProcessResult, ProcessRunner
from architech.engine.staging import DiskIO, StagingFileSystem
from architech.errors import ArchitechError, CommitPartialFailure, ProcessError
from architech.template.interpreter import evaluate_condition
from architech.utils import console, format_duration, get_nested, print_summary_table

from .analyzer import BlueprintAnalyzer
from .loader import load_blueprint
from .models import Action, Blueprint, RunCommandAction
from .orchestrator import BlueprintOrchestrator, CommandRequest

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------

class ExecutionState(str, Enum):
    """Lifecycle of one blueprint execution."""
    INITIALIZED = "initialized"
    ANALYZING = "analyzing"
    STAGING = "staging"
    RUNNING = "running"
    COMMITTING = "committing"
    COMMITTED = "committed"
    PARTIALLY_COMMITTED = "partially_committed"
    ABORTED = "aborted"
    RUNNING_COMMANDS = "running_commands"
    COMMANDS_FAILED = "commands_failed"


class CommandOutcome(BaseModel):
    """A run-command side effect as executed."""

    command: str
    exit_code: int
    timed_out: bool = False
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = Field(default=0.0, ge=0.0)

    @classmethod
    def from_process(cls, outcome: ProcessResult) -> "CommandOutcome":
        return cls(
            command=outcome.command,
            exit_code=outcome.exit_code,
            timed_out=outcome.timed_out,
            stdout=outcome.stdout,
            stderr=outcome.stderr,
            duration_seconds=max(outcome.duration_seconds, 0.0),
        )


class ExecutionResult(BaseModel):
    """Outcome of one blueprint execution.

    ``errors`` are fatal; ``warnings`` are not.  When ``state`` is
    ``ABORTED`` nothing was written.  When it is ``PARTIALLY_COMMITTED``,
    ``committed_files`` reached disk and ``uncommitted_files`` did not, and no
    command ran.  ``COMMANDS_FAILED`` means every file was committed but the
    command queued by action ``failed_command`` failed afterwards.
    """

    blueprint_id: str
    success: bool = False
    state: ExecutionState = ExecutionState.INITIALIZED
    files_written: list[str] = Field(
        default_factory=list, description="Touched paths in order, one entry per touch"
    )
    committed_files: list[str] = Field(default_factory=list)
    uncommitted_files: dict[str, str] = Field(
        default_factory=dict, description="Path -> reason for every file commit could not write"
    )
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    failed_action: Optional[int] = Field(
        default=None, description="Index of the action that aborted the execution"
    )
    failed_command: Optional[int] = Field(
        default=None, description="Index of the run-command action that failed after commit"
    )
    commands: list[CommandOutcome] = Field(default_factory=list)
    duration_seconds: float = Field(default=0.0, ge=0.0)

    @computed_field  # type: ignore[misc]
    @property
    def aborted_before_commit(self) -> bool:
        """True when the execution stopped before any disk write."""
        return self.state is ExecutionState.ABORTED

    def print_summary(self) -> None:
        """Render the result on the shared rich console."""
        if self.success:
            border_style = "bold green"
            status_text = "[bold green]BLUEPRINT APPLIED[/bold green]"
        elif self.state is ExecutionState.COMMANDS_FAILED:
            border_style = "bold yellow"
            status_text = "[bold yellow]FILES COMMITTED, COMMAND FAILED[/bold yellow]"
        elif self.state is ExecutionState.PARTIALLY_COMMITTED:
            border_style = "bold yellow"
            status_text = "[bold yellow]BLUEPRINT PARTIALLY COMMITTED[/bold yellow]"
        else:
            border_style = "bold red"
            status_text = "[bold red]BLUEPRINT ABORTED (no files written)[/bold red]"

        detail_lines = [
            status_text,
            "",
            f"Blueprint : {self.blueprint_id}",
            f"State     : {self.state.value}",
            f"Duration  : {format_duration(self.duration_seconds)}",
        ]
        for error in self.errors:
            detail_lines.append(f"[red]Error     : {error}[/red]")

        console.print()
        console.print(
            Panel("\n".join(detail_lines), title="[bold]Blueprint Execution[/bold]", border_style=border_style)
        )

        summary = {
            "Files touched": str(len(self.files_written)),
            "Files committed": str(len(self.committed_files)),
            "Files not written": str(len(self.uncommitted_files)),
            "Commands run": str(len(self.commands)),
            "Warnings": str(len(self.warnings)),
        }
        for path, reason in self.uncommitted_files.items():
            summary[f"  not written: {path}"] = reason
        for number, warning in enumerate(self.warnings, start=1):
            summary[f"  warning {number}"] = warning
        print_summary_table(summary, title="Execution Summary")


class _Abort(Exception):
    """Internal signal carrying the index of the action that failed."""

    def __init__(self, index: Optional[int], cause: BaseException) -> None:
        self.index = index
        self.cause = cause
        super().__init__(str(cause))


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class BlueprintExecutor:
    """Executes blueprints against a project directory.

    Attributes:
        config: Engine configuration (project root, defaults, timeouts).
        runner: Process-execution collaborator for run-command actions.
        disk: Optional disk I/O provider handed to each staging filesystem.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        runner: CommandRunner | None = None,
        disk: DiskIO | None = None,
        orchestrator: BlueprintOrchestrator | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.runner: CommandRunner = runner or ProcessRunner()
        self.disk = disk
        self.orchestrator = orchestrator or BlueprintOrchestrator(self.config)
        self.analyzer = BlueprintAnalyzer(
            default_manifest=self.config.default_manifest,
            default_env_file=self.config.default_env_file,
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def execute_blueprint(
        self,
        blueprint: Blueprint,
        context: Mapping[str, Any] | None = None,
    ) -> ExecutionResult:
        """Run every action of *blueprint* and commit the staged result.

        Never raises for blueprint failures: fatal problems are reported in
        ``ExecutionResult.errors`` with ``success=False``.
        """
        started = time.monotonic()
        view: Mapping[str, Any] = MappingProxyType(dict(context or {}))
        result = ExecutionResult(blueprint_id=blueprint.id)
        staging = StagingFileSystem(self.config.project_root, disk=self.disk, label=blueprint.id)
        logger.info("Executing blueprint %s (%d action(s))", blueprint.id, len(blueprint.actions))
        commands: list[tuple[int, RunCommandAction, CommandRequest]] = []

        try:
            self._transition(result, ExecutionState.ANALYZING)
            analysis = self.analyzer.analyze(blueprint, view)
            for target in analysis.dynamic_targets:
                logger.debug("Target %s is resolved at run time", target)

            self._transition(result, ExecutionState.STAGING)
            await self._preload(staging, analysis.all_required_files)

            self._transition(result, ExecutionState.RUNNING)
            for index, action in enumerate(blueprint.actions):
                self._run_action(index, action, staging, view, result, commands)
        except _Abort as abort:
            staging.discard()
            self._abort(result, abort.index, abort.cause)
            result.duration_seconds = time.monotonic() - started
            return result

        self._transition(result, ExecutionState.COMMITTING)
        commit = await staging.commit()
        result.committed_files = list(commit.written)
        result.uncommitted_files = dict(commit.failed)

        if commit.success:
            result.success = True
            self._transition(result, ExecutionState.COMMITTED)
            logger.info("Blueprint %s committed %d file(s)", blueprint.id, len(commit.written))
            if commands:
                await self._run_commands(commands, result)
        else:
            failure = CommitPartialFailure(commit.written, commit.failed)
            result.errors.append(str(failure))
            self._transition(result, ExecutionState.PARTIALLY_COMMITTED)
            logger.error("Blueprint %s: %s", blueprint.id, failure)
            if commands:
                result.warnings.append(
                    f"{len(commands)} command(s) not run because the commit was incomplete"
                )

        result.duration_seconds = time.monotonic() - started
        return result

    async def execute_blueprint_file(
        self,
        path: str | Path,
        context: Mapping[str, Any] | None = None,
    ) -> ExecutionResult:
        """Load a YAML / JSON blueprint document and execute it.

        Raises:
            BlueprintLoadError: If the document cannot be loaded.
        """
        return await self.execute_blueprint(load_blueprint(path), context)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    @staticmethod
    def _transition(result: ExecutionResult, state: ExecutionState) -> None:
        logger.debug("Blueprint %s: %s -> %s", result.blueprint_id, result.state.value, state.value)
        result.state = state

    async def _preload(self, staging: StagingFileSystem, paths: list[str]) -> None:
        try:
            await staging.preload(paths)
        except (ArchitechError, OSError, UnicodeDecodeError) as exc:
            raise _Abort(None, exc) from exc

    def _run_action(
        self,
        index: int,
        action: Action,
        staging: StagingFileSystem,
        context: Mapping[str, Any],
        result: ExecutionResult,
        commands: list[tuple[int, RunCommandAction, CommandRequest]],
    ) -> None:
        try:
            for item_context in self._expand(action, context, result):
                if not evaluate_condition(action.condition, item_context):
                    logger.debug("Action %d (%s) skipped: condition is false", index, action.type)
                    continue

                outcome = self.orchestrator.apply(action, staging, item_context)
                result.files_written.extend(outcome.files)
                result.warnings.extend(outcome.warnings)
                if outcome.command is not None and isinstance(action, RunCommandAction):
                    logger.debug("Action %d queued command: %s", index, outcome.command.command)
                    commands.append((index, action, outcome.command))
        except (ArchitechError, ValidationError, OSError, UnicodeDecodeError) as exc:
            raise _Abort(index, exc) from exc

    def _expand(
        self,
        action: Action,
        context: Mapping[str, Any],
        result: ExecutionResult,
    ) -> list[Mapping[str, Any]]:
        """One context per ``for_each`` item, or just *context*."""
        if not action.for_each:
            return [context]
        items = get_nested(context, action.for_each)
        if items is None:
            logger.debug("for_each path %s is not set; %s expands to nothing", action.for_each, action.type)
            return []
        if not isinstance(items, (list, tuple)):
            result.warnings.append(
                f"{action.type}: for_each path '{action.for_each}' is not a list "
                f"({type(items).__name__}); action skipped"
            )
            return []
        return [
            MappingProxyType({**context, "item": item, "index": position})
            for position, item in enumerate(items)
        ]

    async def _run_commands(
        self,
        commands: list[tuple[int, RunCommandAction, CommandRequest]],
        result: ExecutionResult,
    ) -> None:
        """Run queued commands in action order against the committed tree.

        A fatal command failure stops the queue; the files stay committed.
        """
        self._transition(result, ExecutionState.RUNNING_COMMANDS)
        for index, action, request in commands:
            timeout = request.timeout or self.config.command_timeout
            outcome = await self.runner.run(request.command, request.cwd, timeout)
            result.commands.append(CommandOutcome.from_process(outcome))
            try:
                warning = self.orchestrator.resolve_command_failure(action, outcome)
            except ProcessError as exc:
                message = f"Command at action {index} failed after commit: {type(exc).__name__}: {exc}"
                result.errors.append(message)
                result.failed_command = index
                result.success = False
                self._transition(result, ExecutionState.COMMANDS_FAILED)
                logger.error("Blueprint %s: %s", result.blueprint_id, message)
                return
            if warning:
                logger.warning(warning)
                result.warnings.append(warning)
        self._transition(result, ExecutionState.COMMITTED)

    @staticmethod
    def _abort(result: ExecutionResult, index: Optional[int], cause: BaseException) -> None:
        where = "during pre-flight" if index is None else f"at action {index}"
        message = f"Aborted {where} before commit: {type(cause).__name__}: {cause}"
        result.errors.append(message)
        result.failed_action = index
        result.success = False
        result.state = ExecutionState.ABORTED
        logger.error("Blueprint %s: %s", result.blueprint_id, message)
