"""Architech engine configuration.

Centralised, typed configuration for blueprint execution. All settings use
Pydantic v2 models so they can be validated at construction time and serialised
to/from JSON or environment variables without boiler-plate.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from architech.logging_config import setup_logging


class EngineConfig(BaseModel):
    """Global Architech engine configuration.

    Instances are typically created once by the caller that drives blueprint
    execution and then handed to every ``BlueprintExecutor`` it creates.
    """

    project_root: Path = Field(default=Path("."), description="Directory the blueprints mutate")
    template_dir: Optional[Path] = Field(
        default=None, description="Root directory for Jinja2 file templates"
    )
    command_timeout: int = Field(
        default=300, ge=1, description="Default run-command timeout in seconds"
    )
    default_manifest: str = Field(
        default="package.json", description="Manifest targeted by package/script actions"
    )
    default_env_file: str = Field(
        default=".env", description="File targeted by env-var actions without a path"
    )
    log_level: str = Field(default="WARNING", description="Console log level for configure_logging")
    log_file: Optional[Path] = Field(default=None, description="Optional log file for configure_logging")

    # ------------------------------------------------------------------
    # Derived paths and logging
    # ------------------------------------------------------------------

    @property
    def resolved_root(self) -> Path:
        """Absolute path of the project root."""
        return self.project_root.resolve()

    def configure_logging(self) -> None:
        """Apply ``log_level`` and ``log_file`` to the process-wide logging setup."""
        setup_logging(self.log_level, self.log_file)

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the configuration to a JSON file and return its path."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "EngineConfig":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build an ``EngineConfig`` from environment variables.

        Recognised variables (all optional):
            ARCHITECH_PROJECT_ROOT, ARCHITECH_TEMPLATE_DIR,
            ARCHITECH_COMMAND_TIMEOUT, ARCHITECH_LOG_LEVEL, ARCHITECH_LOG_FILE.
        """
        kwargs: dict[str, Any] = {}
        if os.environ.get("ARCHITECH_PROJECT_ROOT"):
            kwargs["project_root"] = Path(os.environ["ARCHITECH_PROJECT_ROOT"])
        if os.environ.get("ARCHITECH_TEMPLATE_DIR"):
            kwargs["template_dir"] = Path(os.environ["ARCHITECH_TEMPLATE_DIR"])
        if os.environ.get("ARCHITECH_COMMAND_TIMEOUT"):
            kwargs["command_timeout"] = int(os.environ["ARCHITECH_COMMAND_TIMEOUT"])
        if os.environ.get("ARCHITECH_LOG_LEVEL"):
            kwargs["log_level"] = os.environ["ARCHITECH_LOG_LEVEL"]
        if os.environ.get("ARCHITECH_LOG_FILE"):
            kwargs["log_file"] = Path(os.environ["ARCHITECH_LOG_FILE"])
        return cls(**kwargs)
