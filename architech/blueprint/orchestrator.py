"""Maps blueprint actions onto mutation primitives.

``BlueprintOrchestrator.apply`` takes one action, substitutes the template
context into every string field, dispatches to the handler for its type and
maps any ``MutationError`` through the action's conflict-resolution policy.
Handlers compute the complete new content of a file before staging it, so an
action that fails (or is skipped) leaves the staging layer untouched.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Union

from architech.config import EngineConfig
from architech.engine import primitives
from architech.engine.primitives import ArrayMergeStrategy, MissingFilePolicy, ScalarPolicy
from architech.engine.process import ProcessResult
from architech.engine.source import (
    ImportRequest,
    append_statements,
    extend_schema,
    inject_imports,
    insert_import_lines,
    wrap_element,
    wrap_export,
)
from architech.engine.staging import StagingFileSystem
from architech.errors import MutationError, NotFoundError, ProcessError, ProcessTimeoutError
from architech.template.interpreter import render_value
from architech.template.renderer import TemplateRenderer
from architech.utils import dump_json

from .analyzer import action_targets
from .models import (
    Action,
    ActionType,
    AddEnvVarAction,
    AddScriptAction,
    AppendToFileAction,
    ConflictStrategy,
    CreateFileAction,
    EnhanceFallback,
    EnhanceFileAction,
    ExtendSchemaAction,
    InstallPackagesAction,
    MergeConfigAction,
    MergeJsonAction,
    PrependToFileAction,
    RunCommandAction,
    WrapConfigAction,
)

logger = logging.getLogger(__name__)

# Fields evaluated by the executor, never template-substituted.
_UNRENDERED_FIELDS = ("condition", "for_each")


# ---------------------------------------------------------------------------
# Result objects
# ---------------------------------------------------------------------------


@dataclass
class CommandRequest:
    """A run-command side effect, forwarded to the process runner."""

    command: str
    cwd: Path
    timeout: Optional[float] = None


@dataclass
class ActionResult:
    """What one applied action did."""

    action_type: str
    files: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    command: Optional[CommandRequest] = None
    skipped: bool = False

    def touch(self, path: str) -> None:
        self.files.append(path)


Handler = Callable[[Any, StagingFileSystem, ActionResult, Mapping[str, Any]], None]


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class BlueprintOrchestrator:
    """Applies individual actions against a staging filesystem."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self._renderer = renderer
        self._handlers: dict[ActionType, Handler] = {
            ActionType.CREATE_FILE: self._create_file,
            ActionType.APPEND_TO_FILE: self._append_to_file,
            ActionType.PREPEND_TO_FILE: self._prepend_to_file,
            ActionType.MERGE_JSON: self._merge_json,
            ActionType.ENHANCE_FILE: self._enhance_file,
            ActionType.INSTALL_PACKAGES: self._install_packages,
            ActionType.ADD_SCRIPT: self._add_script,
            ActionType.ADD_ENV_VAR: self._add_env_var,
            ActionType.MERGE_CONFIG: self._merge_config,
            ActionType.WRAP_CONFIG: self._wrap_config,
            ActionType.RUN_COMMAND: self._run_command,
            ActionType.EXTEND_SCHEMA: self._extend_schema,
        }
        missing = [t.value for t in ActionType if t not in self._handlers]
        if missing:
            raise TypeError(f"No handler registered for action type(s): {', '.join(missing)}")

    # -- Public API --------------------------------------------------------

    def apply(
        self,
        action: Action,
        staging: StagingFileSystem,
        context: Mapping[str, Any],
    ) -> ActionResult:
        """Apply one action to *staging*.

        Raises:
            MutationError: When the primitive fails and the policy is ``error``.
            TemplateSyntaxError: When a field holds a malformed template.
            PathOutsideProjectError: When a target escapes the project root.
        """
        rendered = self.render_action(action, context)
        result = ActionResult(action_type=rendered.type)
        handler = self._handlers[ActionType(rendered.type)]
        try:
            handler(rendered, staging, result, context)
        except MutationError as exc:
            self._resolve_conflict(rendered, staging, result, exc, context)
        return result

    def render_action(self, action: Action, context: Mapping[str, Any]) -> Action:
        """Return a copy of *action* with the context substituted into every string."""
        data = action.model_dump(mode="json", exclude_none=True, exclude_unset=True)
        kept = {name: data.pop(name) for name in _UNRENDERED_FIELDS if name in data}
        rendered = render_value(data, context)
        rendered.update(kept)
        return type(action).model_validate(rendered)

    def resolve_command_failure(self, action: RunCommandAction, outcome: ProcessResult) -> Optional[str]:
        """Apply the run-command failure policy to *outcome*.

        Without an explicit ``conflict_resolution`` a timeout becomes a warning
        and a non-zero exit is fatal.  An explicit ``skip`` turns both into
        warnings; any other explicit strategy makes both fatal.

        Returns:
            A warning message, or ``None`` when the command succeeded.

        Raises:
            ProcessError: When the failure is fatal.
        """
        try:
            outcome.check()
        except ProcessError as exc:
            if action.has_explicit_policy:
                if action.conflict_strategy is ConflictStrategy.SKIP:
                    return f"RUN_COMMAND skipped: {exc}"
                raise
            if isinstance(exc, ProcessTimeoutError):
                return f"RUN_COMMAND timed out, continuing: {exc}"
            raise
        return None

    # -- Conflict resolution -----------------------------------------------

    def _resolve_conflict(
        self,
        action: Action,
        staging: StagingFileSystem,
        result: ActionResult,
        exc: MutationError,
        context: Mapping[str, Any],
    ) -> None:
        strategy = action.conflict_strategy
        path = exc.path or self._target(action)

        if strategy is ConflictStrategy.SKIP:
            message = f"{action.type} {path}: skipped ({exc.kind}: {exc})"
            logger.warning(message)
            result.warnings.append(message)
            result.skipped = True
            return

        if strategy is ConflictStrategy.ERROR:
            raise exc

        payload = self._payload(action, context)
        if payload is None:
            logger.debug("%s has no payload for '%s'; failing", action.type, strategy.value)
            raise exc

        current = staging.read_file(path)
        if strategy is ConflictStrategy.REPLACE:
            new_content = payload if isinstance(payload, str) else dump_json(payload)
        else:
            new_content = self._merge_payload(action, current, payload, path)

        result.touch(staging.write_file(path, new_content))
        message = f"{action.type} {path}: resolved {exc.kind} with '{strategy.value}'"
        logger.info(message)

    def _merge_payload(
        self,
        action: Action,
        current: Optional[str],
        payload: Union[str, dict[str, Any]],
        path: str,
    ) -> str:
        array_strategy = self._array_strategy(action)
        if isinstance(payload, dict):
            return primitives.merge_structured(
                current, payload, array_strategy=array_strategy, path=path
            )
        structured = _as_object(payload)
        if structured is not None and (current is None or _as_object(current) is not None):
            return primitives.merge_structured(
                current, structured, array_strategy=array_strategy, path=path
            )
        return primitives.append(current, payload, fallback=MissingFilePolicy.CREATE, path=path)

    def _payload(self, action: Action, context: Mapping[str, Any]) -> Union[str, dict[str, Any], None]:
        """Content an action would write, used by ``replace`` and ``merge`` retries."""
        if isinstance(action, CreateFileAction):
            return self._file_content(action, context)
        if isinstance(action, (AppendToFileAction, PrependToFileAction)):
            return action.content
        if isinstance(action, MergeJsonAction):
            return primitives.coerce_structured(action.content, action.path)
        if isinstance(action, MergeConfigAction):
            return action.config
        if isinstance(action, InstallPackagesAction):
            return _dependencies_payload(action)
        if isinstance(action, AddScriptAction):
            return {"scripts": {action.name: action.command}}
        return None

    def _target(self, action: Action) -> str:
        targets = action_targets(
            action,
            default_manifest=self.config.default_manifest,
            default_env_file=self.config.default_env_file,
        )
        return targets[0] if targets else ""

    @staticmethod
    def _array_strategy(action: Action) -> ArrayMergeStrategy:
        """Array handling for structured merges.

        ``conflictResolution.mergeStrategy`` takes precedence over an action's own
        ``arrayStrategy``; without either, arrays are concatenated.
        """
        if action.conflict_resolution and action.conflict_resolution.merge_strategy:
            return action.conflict_resolution.merge_strategy
        return getattr(action, "array_strategy", ArrayMergeStrategy.CONCAT)

    @staticmethod
    def _scalar_policy(action: Action) -> ScalarPolicy:
        if not action.has_explicit_policy:
            return ScalarPolicy.INCOMING
        if action.conflict_strategy is ConflictStrategy.SKIP:
            return ScalarPolicy.EXISTING
        if action.conflict_strategy is ConflictStrategy.ERROR:
            return ScalarPolicy.ERROR
        return ScalarPolicy.INCOMING

    # -- File templates ----------------------------------------------------

    @property
    def renderer(self) -> TemplateRenderer:
        if self._renderer is None:
            if self.config.template_dir is None:
                raise NotFoundError("No template directory configured for file templates")
            self._renderer = TemplateRenderer(self.config.template_dir)
        return self._renderer

    def _file_content(self, action: CreateFileAction, context: Mapping[str, Any]) -> str:
        if action.template is not None:
            return self.renderer.render(action.template, context)
        return action.content or ""

    # -- Handlers ----------------------------------------------------------

    def _create_file(self, action: CreateFileAction, staging, result, context) -> None:
        content = self._file_content(action, context)
        current = staging.read_file(action.path)
        new_content = primitives.create(current, content, overwrite=action.overwrite, path=action.path)
        result.touch(staging.write_file(action.path, new_content))

    def _append_to_file(self, action: AppendToFileAction, staging, result, context) -> None:
        current = staging.read_file(action.path)
        new_content = primitives.append(current, action.content, fallback=action.fallback, path=action.path)
        result.touch(staging.write_file(action.path, new_content))

    def _prepend_to_file(self, action: PrependToFileAction, staging, result, context) -> None:
        current = staging.read_file(action.path)
        new_content = primitives.prepend(current, action.content, fallback=action.fallback, path=action.path)
        result.touch(staging.write_file(action.path, new_content))

    def _merge_json(self, action: MergeJsonAction, staging, result, context) -> None:
        incoming = primitives.coerce_structured(action.content, action.path)
        current = staging.read_file(action.path)
        new_content = primitives.merge_structured(
            current,
            incoming,
            array_strategy=self._array_strategy(action),
            scalar_policy=self._scalar_policy(action),
            path=action.path,
        )
        result.touch(staging.write_file(action.path, new_content))

    def _enhance_file(self, action: EnhanceFileAction, staging, result, context) -> None:
        current = staging.read_file(action.path)
        if current is None:
            if action.fallback is EnhanceFallback.SKIP:
                message = f"ENHANCE_FILE {action.path}: file does not exist, skipped"
                logger.info(message)
                result.warnings.append(message)
                result.skipped = True
                return
            if action.fallback is EnhanceFallback.ERROR:
                raise NotFoundError(f"Cannot enhance {action.path}: file does not exist", path=action.path)
            current = ""

        content = current
        if action.imports:
            requests = [ImportRequest(spec.name, spec.from_module, spec.kind) for spec in action.imports]
            content = inject_imports(content, requests, path=action.path)
        if action.wrap is not None:
            edit = wrap_element(
                content,
                action.wrap.target,
                action.wrap.wrapper,
                action.wrap.attributes,
                path=action.path,
            )
            result.warnings.extend(edit.warnings)
            content = edit.content
        if action.statements:
            content = append_statements(content, action.statements, path=action.path)
        result.touch(staging.write_file(action.path, content))

    def _install_packages(self, action: InstallPackagesAction, staging, result, context) -> None:
        manifest = action.manifest or self.config.default_manifest
        current = staging.read_file(manifest)
        new_content = primitives.merge_structured(
            current,
            _dependencies_payload(action),
            array_strategy=self._array_strategy(action),
            scalar_policy=self._scalar_policy(action),
            path=manifest,
        )
        result.touch(staging.write_file(manifest, new_content))

    def _add_script(self, action: AddScriptAction, staging, result, context) -> None:
        manifest = action.manifest or self.config.default_manifest
        current = staging.read_file(manifest)
        new_content = primitives.merge_structured(
            current,
            {"scripts": {action.name: action.command}},
            array_strategy=self._array_strategy(action),
            scalar_policy=self._scalar_policy(action),
            path=manifest,
        )
        result.touch(staging.write_file(manifest, new_content))

    def _add_env_var(self, action: AddEnvVarAction, staging, result, context) -> None:
        env_file = action.path or self.config.default_env_file
        current = staging.read_file(env_file)
        new_content = primitives.upsert_env_var(current, action.key, action.value, action.description)
        result.touch(staging.write_file(env_file, new_content))

    def _merge_config(self, action: MergeConfigAction, staging, result, context) -> None:
        current = staging.read_file(action.path)
        new_content = primitives.merge_structured(
            current,
            action.config,
            strategy=action.strategy,
            array_strategy=self._array_strategy(action),
            scalar_policy=self._scalar_policy(action),
            path=action.path,
        )
        result.touch(staging.write_file(action.path, new_content))

    def _wrap_config(self, action: WrapConfigAction, staging, result, context) -> None:
        current = staging.read_file(action.path)
        new_content = wrap_export(
            current, action.wrapper, action.import_from, action.options, path=action.path
        )
        result.touch(staging.write_file(action.path, new_content))

    def _run_command(self, action: RunCommandAction, staging, result, context) -> None:
        working_dir = (action.working_dir or "").strip()
        cwd = staging.root if working_dir in ("", ".", "./") else staging.absolute(working_dir)
        result.command = CommandRequest(
            command=action.command,
            cwd=cwd,
            timeout=action.timeout or self.config.command_timeout,
        )

    def _extend_schema(self, action: ExtendSchemaAction, staging, result, context) -> None:
        current = staging.read_file(action.path)
        content = current
        if action.additional_imports:
            content = insert_import_lines(content, action.additional_imports, path=action.path)
        content = extend_schema(
            content, [(table.name, table.definition) for table in action.tables], path=action.path
        )
        result.touch(staging.write_file(action.path, content))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_package_spec(spec: str) -> tuple[str, str]:
    """Split ``name@version`` into its parts; scoped names keep their ``@``.

    Examples::

        parse_package_spec("react")              -> ("react", "latest")
        parse_package_spec("zod@^3.22.0")        -> ("zod", "^3.22.0")
        parse_package_spec("@types/node@20.1.0") -> ("@types/node", "20.1.0")
    """
    spec = spec.strip()
    at = spec.rfind("@")
    if at <= 0:
        return spec, "latest"
    name, version = spec[:at], spec[at + 1:]
    return name, version or "latest"


def _dependencies_payload(action: InstallPackagesAction) -> dict[str, Any]:
    section = "devDependencies" if action.is_dev else "dependencies"
    dependencies: dict[str, str] = {}
    for spec in action.packages:
        name, version = parse_package_spec(spec)
        if name:
            dependencies[name] = version
    return {section: dependencies}


def _as_object(text: str) -> Optional[dict[str, Any]]:
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    return data if isinstance(data, dict) else None
