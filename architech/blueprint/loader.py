"""Load blueprint documents from YAML or JSON files."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from architech.errors import BlueprintLoadError

from .models import Blueprint

logger = logging.getLogger(__name__)

_YAML_SUFFIXES = {".yaml", ".yml"}


def parse_blueprint(data: Any, source: str = "<data>") -> Blueprint:
    """Validate an already-decoded blueprint document.

    Raises:
        BlueprintLoadError: If the document does not match the blueprint schema.
    """
    if not isinstance(data, dict):
        raise BlueprintLoadError(
            f"Blueprint {source} must be a mapping, got {type(data).__name__}", source=source
        )
    # Documents exported from plugin modules nest the blueprint under "blueprint".
    if "actions" not in data and isinstance(data.get("blueprint"), dict):
        data = data["blueprint"]
    try:
        return Blueprint.model_validate(data)
    except ValidationError as exc:
        raise BlueprintLoadError(f"Invalid blueprint {source}:\n{exc}", source=source) from exc


def load_blueprint(path: str | Path) -> Blueprint:
    """Read a blueprint from a ``.yaml`` / ``.yml`` or ``.json`` file.

    Raises:
        BlueprintLoadError: If the file is missing, malformed, or invalid.
    """
    file_path = Path(path)
    try:
        raw = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise BlueprintLoadError(f"Cannot read blueprint {file_path}: {exc}", source=str(file_path)) from exc

    try:
        if file_path.suffix.lower() in _YAML_SUFFIXES:
            data = yaml.safe_load(raw)
        else:
            data = json.loads(raw)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise BlueprintLoadError(f"Cannot parse blueprint {file_path}: {exc}", source=str(file_path)) from exc

    blueprint = parse_blueprint(data, source=str(file_path))
    logger.debug("Loaded blueprint %s from %s (%d action(s))", blueprint.id, file_path, len(blueprint.actions))
    return blueprint
