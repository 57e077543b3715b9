"""Unit tests for blueprint document loading (architech.blueprint.loader)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from architech.blueprint import CreateFileAction, load_blueprint, parse_blueprint
from architech.errors import BlueprintLoadError

pytestmark = pytest.mark.unit

YAML_BLUEPRINT = """\
id: drizzle-postgres
name: Drizzle ORM (PostgreSQL)
contextualFiles:
  - tsconfig.json
actions:
  - type: INSTALL_PACKAGES
    packages: [drizzle-orm, postgres]
  - type: INSTALL_PACKAGES
    packages: [drizzle-kit]
    isDev: true
  - type: CREATE_FILE
    path: src/db/index.ts
    content: |
      import { drizzle } from 'drizzle-orm/postgres-js';
    conflictResolution:
      strategy: skip
"""


class TestLoadBlueprint:
    def test_load_yaml(self, tmp_path: Path):
        path = tmp_path / "drizzle.yml"
        path.write_text(YAML_BLUEPRINT, encoding="utf-8")
        blueprint = load_blueprint(path)
        assert blueprint.id == "drizzle-postgres"
        assert len(blueprint.actions) == 3
        assert blueprint.actions[1].is_dev is True
        assert isinstance(blueprint.actions[2], CreateFileAction)
        assert blueprint.actions[2].content == "import { drizzle } from 'drizzle-orm/postgres-js';\n"

    def test_load_json(self, tmp_path: Path):
        path = tmp_path / "bp.json"
        path.write_text(json.dumps({"id": "x", "actions": [{"type": "ADD_ENV_VAR", "key": "A"}]}), encoding="utf-8")
        assert load_blueprint(path).actions[0].key == "A"

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(BlueprintLoadError) as exc_info:
            load_blueprint(tmp_path / "missing.yaml")
        assert exc_info.value.source.endswith("missing.yaml")

    def test_malformed_yaml(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("id: [unclosed\n", encoding="utf-8")
        with pytest.raises(BlueprintLoadError, match="Cannot parse"):
            load_blueprint(path)

    def test_malformed_json(self, tmp_path: Path):
        path = tmp_path / "bad.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(BlueprintLoadError):
            load_blueprint(path)


class TestParseBlueprint:
    def test_nested_blueprint_key(self):
        blueprint = parse_blueprint({"module": "drizzle", "blueprint": {"id": "nested", "actions": []}})
        assert blueprint.id == "nested"

    def test_non_mapping(self):
        with pytest.raises(BlueprintLoadError, match="must be a mapping"):
            parse_blueprint(["not", "a", "mapping"])

    def test_schema_violation(self):
        with pytest.raises(BlueprintLoadError, match="Invalid blueprint"):
            parse_blueprint({"id": "x", "actions": [{"type": "CREATE_FILE"}]})

    def test_missing_id(self):
        with pytest.raises(BlueprintLoadError):
            parse_blueprint({"actions": []})
