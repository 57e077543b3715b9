"""Architech blueprints -- models, analysis, orchestration and execution.

Key classes:
    Blueprint             - Immutable, ordered list of typed actions
    BlueprintAnalyzer     - Pre-flight file-set analysis
    BlueprintOrchestrator - Maps actions onto mutation primitives
    BlueprintExecutor     - Per-execution state machine with staged commit
"""

from .analyzer import BlueprintAnalysis, BlueprintAnalyzer
from .executor import BlueprintExecutor, CommandOutcome, ExecutionResult, ExecutionState
from .loader import load_blueprint, parse_blueprint
from .models import (
    Action,
    ActionType,
    AddEnvVarAction,
    AddScriptAction,
    AppendToFileAction,
    Blueprint,
    ConflictResolution,
    ConflictStrategy,
    CreateFileAction,
    EnhanceFallback,
    EnhanceFileAction,
    ExtendSchemaAction,
    ImportSpec,
    InstallPackagesAction,
    MergeConfigAction,
    MergeJsonAction,
    PrependToFileAction,
    RunCommandAction,
    SchemaTable,
    WrapConfigAction,
    WrapSpec,
)
from .orchestrator import ActionResult, BlueprintOrchestrator, CommandRequest

__all__ = [
    # Models
    "Blueprint",
    "Action",
    "ActionType",
    "ConflictResolution",
    "ConflictStrategy",
    "EnhanceFallback",
    "ImportSpec",
    "WrapSpec",
    "SchemaTable",
    # Actions
    "CreateFileAction",
    "AppendToFileAction",
    "PrependToFileAction",
    "MergeJsonAction",
    "EnhanceFileAction",
    "InstallPackagesAction",
    "AddScriptAction",
    "AddEnvVarAction",
    "MergeConfigAction",
    "WrapConfigAction",
    "RunCommandAction",
    "ExtendSchemaAction",
    # Analysis
    "BlueprintAnalyzer",
    "BlueprintAnalysis",
    # Orchestration
    "BlueprintOrchestrator",
    "ActionResult",
    "CommandRequest",
    # Execution
    "BlueprintExecutor",
    "ExecutionResult",
    "ExecutionState",
    "CommandOutcome",
    # Loading
    "load_blueprint",
    "parse_blueprint",
]
