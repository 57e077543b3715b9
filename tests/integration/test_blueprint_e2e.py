"""Integration tests: whole blueprints executed against a real project directory.

Each test applies one or more blueprints through ``BlueprintExecutor`` with
the real staging filesystem and local disk.  The process runner is mocked
except where a test runs the current Python interpreter, so no package
manager or network access is required.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import pytest

from architech.blueprint import Blueprint, BlueprintExecutor, ExecutionState

pytestmark = pytest.mark.integration


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

LAYOUT = """import type { Metadata } from "next";
import { Inter } from "next/font/google";
import "./globals.css";

export default function RootLayout({ children }: { children: React.ReactNode }) {
  return (
    <html lang="en">
      <body className={inter.className}>{children}</body>
    </html>
  );
}
"""

NEXT_APP = {
    "package.json": json.dumps({"name": "my-app", "scripts": {"dev": "next dev"}}, indent=2) + "\n",
    "app/layout.tsx": LAYOUT,
    "next.config.js": "/** @type {import('next').NextConfig} */\nconst nextConfig = {};\n\nmodule.exports = nextConfig;\n",
    "tsconfig.json": '{\n  "compilerOptions": {\n    "strict": true\n  }\n}\n',
}


def _blueprint(blueprint_id: str, *actions: dict[str, Any]) -> Blueprint:
    return Blueprint.model_validate({"id": blueprint_id, "actions": list(actions)})


@pytest.fixture
def executor(engine_config, mock_runner) -> BlueprintExecutor:
    return BlueprintExecutor(engine_config, runner=mock_runner())


UI_BLUEPRINT = _blueprint(
    "shadcn-ui",
    {
        "type": "INSTALL_PACKAGES",
        "packages": ["class-variance-authority@^0.7.0", "clsx", "tailwind-merge"],
    },
    {
        "type": "CREATE_FILE",
        "path": "components/providers.tsx",
        "content": "'use client';\n\nexport function Providers({ children }) {\n  return children;\n}\n",
        "conflictResolution": {"strategy": "skip"},
    },
    {
        "type": "ENHANCE_FILE",
        "path": "app/layout.tsx",
        "imports": [{"name": "Providers", "from": "@/components/providers"}],
        "wrap": {"target": "body", "wrapper": "Providers"},
    },
    {
        "type": "CREATE_FILE",
        "path": "components/ui/{{item}}.tsx",
        "content": "export function {{item}}() {}\n",
        "forEach": "module.parameters.components",
        "conflictResolution": "skip",
    },
    {
        "type": "MERGE_JSON",
        "path": "components.json",
        "content": {"style": "default", "aliases": {"components": "@/components"}, "keywords": ["ui"]},
        "arrayStrategy": "dedupe",
    },
    {
        "type": "MERGE_JSON",
        "path": "tsconfig.json",
        "content": {"compilerOptions": {"paths": {"@/*": ["./*"]}}},
        "arrayStrategy": "dedupe",
    },
    {"type": "ADD_SCRIPT", "name": "ui:add", "command": "npx shadcn@latest add"},
    {"type": "ADD_ENV_VAR", "key": "NEXT_PUBLIC_APP_NAME", "value": "{{project.name}}"},
    {"type": "APPEND_TO_FILE", "path": "app/globals.css", "content": "@layer base {}\n", "fallback": "create"},
    {"type": "WRAP_CONFIG", "path": "next.config.js", "wrapper": "withUi", "importFrom": "ui-plugin"},
)

GOOD_ACTIONS = (
    {"type": "INSTALL_PACKAGES", "packages": ["zod"]},
    {"type": "CREATE_FILE", "path": "lib/db.ts", "content": "export const db = {};\n"},
    {"type": "ADD_ENV_VAR", "key": "DATABASE_URL", "value": "postgres://"},
    {"type": "ENHANCE_FILE", "path": "app/layout.tsx", "imports": [{"name": "db", "from": "@/lib/db"}]},
)
FAILING_ACTION = {"type": "ENHANCE_FILE", "path": "app/missing.tsx", "statements": ["export {};"]}


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestBlueprintEndToEnd:
    async def test_full_blueprint(self, executor, write_project_files, tmp_project_dir: Path, sample_context):
        write_project_files(NEXT_APP)
        result = await executor.execute_blueprint(UI_BLUEPRINT, sample_context)

        assert result.success, result.errors
        assert result.state is ExecutionState.COMMITTED
        assert result.warnings == []

        package = json.loads((tmp_project_dir / "package.json").read_text(encoding="utf-8"))
        assert package["dependencies"] == {
            "class-variance-authority": "^0.7.0",
            "clsx": "latest",
            "tailwind-merge": "latest",
        }
        assert package["scripts"] == {"dev": "next dev", "ui:add": "npx shadcn@latest add"}

        layout = (tmp_project_dir / "app/layout.tsx").read_text(encoding="utf-8")
        assert 'import { Providers } from "@/components/providers";' in layout
        assert "<Providers>\n        <body className={inter.className}>{children}</body>\n      </Providers>" in layout

        assert (tmp_project_dir / "components/ui/button.tsx").read_text(encoding="utf-8") == (
            "export function button() {}\n"
        )
        assert (tmp_project_dir / "components/ui/card.tsx").exists()
        assert (tmp_project_dir / ".env").read_text(encoding="utf-8") == "NEXT_PUBLIC_APP_NAME=my-app\n"
        assert (tmp_project_dir / "app/globals.css").read_text(encoding="utf-8") == "@layer base {}\n"

        tsconfig = json.loads((tmp_project_dir / "tsconfig.json").read_text(encoding="utf-8"))
        assert tsconfig == {"compilerOptions": {"strict": True, "paths": {"@/*": ["./*"]}}}

        next_config = (tmp_project_dir / "next.config.js").read_text(encoding="utf-8")
        assert next_config.startswith("const { withUi } = require('ui-plugin');\n")
        assert next_config.endswith("module.exports = withUi(nextConfig);\n")

    async def test_second_run_is_byte_identical(
        self, executor, write_project_files, tmp_project_dir: Path, sample_context, tree_snapshot
    ):
        write_project_files(NEXT_APP)
        first = await executor.execute_blueprint(UI_BLUEPRINT, sample_context)
        assert first.success
        after_first = tree_snapshot(tmp_project_dir)

        second = await executor.execute_blueprint(UI_BLUEPRINT, sample_context)
        assert second.success, second.errors
        assert second.committed_files == []
        assert tree_snapshot(tmp_project_dir) == after_first
        # The skip-guarded creates report that they found existing files.
        assert len(second.warnings) == 3

    @pytest.mark.parametrize("position", range(len(GOOD_ACTIONS) + 1))
    async def test_abort_leaves_tree_untouched(
        self, executor, write_project_files, tmp_project_dir: Path, sample_context, tree_snapshot, position
    ):
        write_project_files(NEXT_APP)
        before = tree_snapshot(tmp_project_dir)
        actions = list(GOOD_ACTIONS)
        actions.insert(position, FAILING_ACTION)
        result = await executor.execute_blueprint(_blueprint("failing", *actions), sample_context)

        assert result.state is ExecutionState.ABORTED
        assert result.failed_action == position
        assert tree_snapshot(tmp_project_dir) == before

    async def test_abort_after_real_command_leaves_no_trace(
        self, engine_config, write_project_files, tmp_project_dir: Path, tree_snapshot
    ):
        write_project_files(NEXT_APP)
        before = tree_snapshot(tmp_project_dir)
        command = f'"{sys.executable}" -c "open(\'marker.txt\', \'w\').close()"'
        result = await BlueprintExecutor(engine_config).execute_blueprint(
            _blueprint(
                "command-then-fail",
                {"type": "RUN_COMMAND", "command": command},
                {"type": "CREATE_FILE", "path": "a.txt", "content": "a\n"},
                {"type": "CREATE_FILE", "path": "a.txt", "content": "b\n"},
            )
        )

        assert result.state is ExecutionState.ABORTED
        assert result.commands == []
        assert not (tmp_project_dir / "marker.txt").exists()
        assert tree_snapshot(tmp_project_dir) == before

    async def test_real_command_sees_committed_files(self, engine_config, tmp_project_dir: Path):
        command = f'"{sys.executable}" -c "import shutil; shutil.copy(\'package.json\', \'copy.json\')"'
        result = await BlueprintExecutor(engine_config).execute_blueprint(
            _blueprint(
                "command-after-commit",
                {"type": "CREATE_FILE", "path": "package.json", "content": '{"name": "fresh"}\n'},
                {"type": "RUN_COMMAND", "command": command},
            )
        )

        assert result.success, result.errors
        assert result.commands[0].exit_code == 0
        assert (tmp_project_dir / "copy.json").read_text(encoding="utf-8") == '{"name": "fresh"}\n'


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


class TestExecutionProperties:
    async def test_create_then_merge_manifest(self, executor, tmp_project_dir: Path):
        result = await executor.execute_blueprint(
            _blueprint(
                "pkg",
                {"type": "CREATE_FILE", "path": "pkg.json", "content": '{"name":"a"}'},
                {"type": "MERGE_JSON", "path": "pkg.json", "content": {"version": "1.0.0"}},
            )
        )
        assert result.files_written == ["pkg.json", "pkg.json"]
        assert result.warnings == []
        assert result.errors == []
        assert json.loads((tmp_project_dir / "pkg.json").read_text(encoding="utf-8")) == {
            "name": "a",
            "version": "1.0.0",
        }

    async def test_env_var_last_value_wins(self, executor, tmp_project_dir: Path):
        result = await executor.execute_blueprint(
            _blueprint(
                "env",
                {"type": "ADD_ENV_VAR", "key": "KEY", "value": "V1"},
                {"type": "ADD_ENV_VAR", "key": "KEY", "value": "V2"},
            )
        )
        assert result.success
        assert (tmp_project_dir / ".env").read_text(encoding="utf-8") == "KEY=V2\n"

    async def test_disjoint_merges_commute(self, engine_config, mock_runner, tmp_path: Path):
        merge_a = {"type": "MERGE_JSON", "path": "c.json", "content": {"a": {"x": 1}}}
        merge_b = {"type": "MERGE_JSON", "path": "c.json", "content": {"b": [1, 2]}}
        outputs = []
        for name, actions in (("ab", (merge_a, merge_b)), ("ba", (merge_b, merge_a))):
            root = tmp_path / name
            root.mkdir()
            config = engine_config.model_copy(update={"project_root": root})
            await BlueprintExecutor(config, runner=mock_runner()).execute_blueprint(_blueprint(name, *actions))
            outputs.append(json.loads((root / "c.json").read_text(encoding="utf-8")))
        assert outputs[0] == outputs[1] == {"a": {"x": 1}, "b": [1, 2]}

    async def test_existing_import_leaves_file_unchanged(
        self, executor, write_project_files, tmp_project_dir: Path
    ):
        write_project_files({"app/layout.tsx": LAYOUT})
        result = await executor.execute_blueprint(
            _blueprint(
                "imports",
                {
                    "type": "ENHANCE_FILE",
                    "path": "app/layout.tsx",
                    "imports": [{"name": "Inter", "from": "next/font/google"}],
                },
            )
        )
        assert result.success
        assert result.committed_files == []
        assert (tmp_project_dir / "app/layout.tsx").read_text(encoding="utf-8") == LAYOUT

    async def test_wrap_without_target_warns(self, executor, write_project_files, tmp_project_dir: Path):
        write_project_files({"app/layout.tsx": LAYOUT})
        result = await executor.execute_blueprint(
            _blueprint(
                "wrap",
                {"type": "ENHANCE_FILE", "path": "app/layout.tsx", "wrap": {"target": "main", "wrapper": "Shell"}},
            )
        )
        assert result.success
        assert len(result.warnings) == 1
        assert "<main>" in result.warnings[0]
        assert (tmp_project_dir / "app/layout.tsx").read_text(encoding="utf-8") == LAYOUT

    async def test_dedupe_merge_strategy_holds_across_runs(
        self, executor, write_project_files, tmp_project_dir: Path, tree_snapshot
    ):
        write_project_files({"package.json": '{"keywords": []}'})
        blueprint = _blueprint(
            "keywords",
            {
                "type": "MERGE_JSON",
                "path": "package.json",
                "content": {"keywords": ["a"]},
                "conflictResolution": {"strategy": "skip", "mergeStrategy": "dedupe"},
            },
        )
        first = await executor.execute_blueprint(blueprint)
        after_first = tree_snapshot(tmp_project_dir)
        second = await executor.execute_blueprint(blueprint)

        assert first.success and second.success
        assert second.committed_files == []
        assert tree_snapshot(tmp_project_dir) == after_first
        assert (tmp_project_dir / "package.json").read_text(encoding="utf-8") == '{\n  "keywords": [\n    "a"\n  ]\n}\n'
