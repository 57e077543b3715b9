"""Pre-flight analysis: which files will a blueprint touch?

The executor preloads every file the analyzer reports, so the action loop
never has to wait on disk.  Analysis is static: it never checks existence and
never fails.  Conditions are not evaluated, so the result is a superset of the
files a run actually modifies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from architech.errors import TemplateSyntaxError
from architech.template.interpreter import render_template
from architech.utils import get_nested

from .models import (
    Action,
    AddEnvVarAction,
    AddScriptAction,
    Blueprint,
    InstallPackagesAction,
    RunCommandAction,
)

logger = logging.getLogger(__name__)


@dataclass
class BlueprintAnalysis:
    """Files a blueprint reads or writes, relative to the project root."""

    blueprint_id: str
    all_required_files: list[str] = field(default_factory=list)
    contextual_files: list[str] = field(default_factory=list)
    dynamic_targets: list[str] = field(default_factory=list)

    @property
    def file_count(self) -> int:
        return len(self.all_required_files)


def action_targets(
    action: Action,
    *,
    default_manifest: str = "package.json",
    default_env_file: str = ".env",
) -> list[str]:
    """Raw (unrendered) filesystem targets of a single action.

    Import module specifiers are not paths and are never returned.
    """
    if isinstance(action, RunCommandAction):
        return []
    if isinstance(action, (InstallPackagesAction, AddScriptAction)):
        return [action.manifest or default_manifest]
    if isinstance(action, AddEnvVarAction):
        return [action.path or default_env_file]
    return [action.path]


class BlueprintAnalyzer:
    """Collects the file set of a blueprint before it runs."""

    def __init__(self, default_manifest: str = "package.json", default_env_file: str = ".env") -> None:
        self.default_manifest = default_manifest
        self.default_env_file = default_env_file

    def analyze(
        self,
        blueprint: Blueprint,
        context: Optional[Mapping[str, Any]] = None,
    ) -> BlueprintAnalysis:
        """Return the sorted, de-duplicated file set of *blueprint*.

        Targets containing ``{{...}}`` placeholders are rendered against
        *context* when one is supplied (expanding ``for_each`` lists); those
        still unresolved are reported in ``dynamic_targets`` and left out of
        ``all_required_files``.
        """
        required: set[str] = set()
        dynamic: set[str] = set()

        for action in blueprint.actions:
            raw_targets = action_targets(
                action,
                default_manifest=self.default_manifest,
                default_env_file=self.default_env_file,
            )
            for raw in raw_targets:
                if "{{" not in raw:
                    required.add(_clean(raw))
                    continue
                try:
                    rendered_targets = self._render_target(raw, action, context)
                except TemplateSyntaxError:
                    dynamic.add(raw)
                    continue
                for rendered in rendered_targets:
                    if "{{" in rendered:
                        dynamic.add(raw)
                    else:
                        required.add(_clean(rendered))

        contextual = sorted({_clean(p) for p in blueprint.contextual_files if p})
        required.update(contextual)
        required.discard("")

        analysis = BlueprintAnalysis(
            blueprint_id=blueprint.id,
            all_required_files=sorted(required),
            contextual_files=contextual,
            dynamic_targets=sorted(dynamic),
        )
        logger.debug(
            "Analyzed blueprint %s: %d file(s), %d dynamic target(s)",
            blueprint.id,
            analysis.file_count,
            len(analysis.dynamic_targets),
        )
        return analysis

    @staticmethod
    def _render_target(
        raw: str,
        action: Action,
        context: Optional[Mapping[str, Any]],
    ) -> list[str]:
        if context is None:
            return [raw]
        if action.for_each:
            items = get_nested(context, action.for_each)
            if isinstance(items, (list, tuple)):
                return [
                    render_template(raw, {**context, "item": item, "index": index})
                    for index, item in enumerate(items)
                ]
        return [render_template(raw, context)]


def _clean(path: str) -> str:
    cleaned = path.strip().replace("\\", "/")
    while cleaned.startswith("./"):
        cleaned = cleaned[2:]
    return cleaned
