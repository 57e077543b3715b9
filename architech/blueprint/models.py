"""Pydantic v2 models for blueprints and their actions.

A blueprint is an immutable, ordered list of typed actions.  ``Action`` is a
closed union discriminated by the ``type`` field, so every document is checked
against exactly one action schema at load time.  Blueprint documents may use
camelCase keys (``conflictResolution``, ``isDev``, ``forEach``); every model
also accepts the snake_case field names.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from architech.engine.primitives import ArrayMergeStrategy, DocumentMergeStrategy, MissingFilePolicy
from architech.engine.source import ImportKind


class CamelModel(BaseModel):
    """Base model accepting both camelCase and snake_case keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class ActionType(str, Enum):
    """Every action kind a blueprint may contain."""
    CREATE_FILE = "CREATE_FILE"
    APPEND_TO_FILE = "APPEND_TO_FILE"
    PREPEND_TO_FILE = "PREPEND_TO_FILE"
    MERGE_JSON = "MERGE_JSON"
    ENHANCE_FILE = "ENHANCE_FILE"
    INSTALL_PACKAGES = "INSTALL_PACKAGES"
    ADD_SCRIPT = "ADD_SCRIPT"
    ADD_ENV_VAR = "ADD_ENV_VAR"
    MERGE_CONFIG = "MERGE_CONFIG"
    WRAP_CONFIG = "WRAP_CONFIG"
    RUN_COMMAND = "RUN_COMMAND"
    EXTEND_SCHEMA = "EXTEND_SCHEMA"


class ConflictStrategy(str, Enum):
    """What to do when a mutation primitive cannot apply cleanly."""
    ERROR = "error"
    SKIP = "skip"
    REPLACE = "replace"
    MERGE = "merge"


class EnhanceFallback(str, Enum):
    """What an enhance action does when its target file does not exist."""
    ERROR = "error"
    SKIP = "skip"
    CREATE = "create"


# ---------------------------------------------------------------------------
# Shared payload models
# ---------------------------------------------------------------------------

class ConflictResolution(CamelModel):
    """Per-action conflict policy."""
    strategy: ConflictStrategy = Field(default=ConflictStrategy.ERROR)
    merge_strategy: Optional[ArrayMergeStrategy] = Field(
        default=None, description="Array strategy for structured merges; overrides the action's arrayStrategy"
    )


class ImportSpec(CamelModel):
    """A binding an enhance action guarantees is imported."""
    name: str = Field(
        ...,
        validation_alias=AliasChoices("name", "importedName", "imported_name"),
        description="Imported binding, e.g. 'Providers'",
    )
    from_module: str = Field(
        ...,
        validation_alias=AliasChoices("fromModule", "from_module", "from"),
        description="Module specifier, e.g. '@/components/providers'",
    )
    kind: ImportKind = Field(default=ImportKind.NAMED)


class WrapSpec(CamelModel):
    """Surround the first ``<target>`` element with a ``<wrapper>`` element."""
    target: str = Field(..., description="Tag name of the element to wrap")
    wrapper: str = Field(..., description="Tag name of the wrapping element")
    attributes: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("attributes", "props"),
    )


class SchemaTable(CamelModel):
    """A table definition appended by an extend-schema action."""
    name: str = Field(..., description="Declared table identifier")
    definition: str = Field(..., description="Source code declaring the table")


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

class BaseAction(CamelModel):
    """Fields shared by every action."""
    condition: Optional[str] = Field(
        default=None, description="Expression; the action runs only when it is truthy"
    )
    for_each: Optional[str] = Field(
        default=None, description="Dotted context path to a list; one expansion per item"
    )
    conflict_resolution: Optional[ConflictResolution] = Field(default=None)

    @field_validator("conflict_resolution", mode="before")
    @classmethod
    def _strategy_shorthand(cls, value: Any) -> Any:
        # conflictResolution: skip
        if isinstance(value, str):
            return {"strategy": value}
        return value

    @property
    def conflict_strategy(self) -> ConflictStrategy:
        if self.conflict_resolution is None:
            return ConflictStrategy.ERROR
        return self.conflict_resolution.strategy

    @property
    def has_explicit_policy(self) -> bool:
        """True when the blueprint named a ``strategy``; ``mergeStrategy`` alone is not a policy."""
        return (
            self.conflict_resolution is not None
            and "strategy" in self.conflict_resolution.model_fields_set
        )


class CreateFileAction(BaseAction):
    type: Literal["CREATE_FILE"] = "CREATE_FILE"
    path: str
    content: Optional[str] = None
    template: Optional[str] = Field(
        default=None, description="Jinja2 template path relative to the template directory"
    )
    overwrite: bool = False

    @model_validator(mode="after")
    def _one_source(self) -> "CreateFileAction":
        if self.content is not None and self.template is not None:
            raise ValueError("CREATE_FILE takes either 'content' or 'template', not both")
        return self


class AppendToFileAction(BaseAction):
    type: Literal["APPEND_TO_FILE"] = "APPEND_TO_FILE"
    path: str
    content: str
    fallback: MissingFilePolicy = MissingFilePolicy.ERROR


class PrependToFileAction(BaseAction):
    type: Literal["PREPEND_TO_FILE"] = "PREPEND_TO_FILE"
    path: str
    content: str
    fallback: MissingFilePolicy = MissingFilePolicy.ERROR


class MergeJsonAction(BaseAction):
    type: Literal["MERGE_JSON"] = "MERGE_JSON"
    path: str
    content: Union[dict[str, Any], str]
    array_strategy: ArrayMergeStrategy = ArrayMergeStrategy.CONCAT


class EnhanceFileAction(BaseAction):
    type: Literal["ENHANCE_FILE"] = "ENHANCE_FILE"
    path: str
    imports: list[ImportSpec] = Field(default_factory=list)
    wrap: Optional[WrapSpec] = None
    statements: list[str] = Field(default_factory=list)
    fallback: EnhanceFallback = EnhanceFallback.ERROR

    @model_validator(mode="after")
    def _has_edit(self) -> "EnhanceFileAction":
        if not self.imports and self.wrap is None and not self.statements:
            raise ValueError("ENHANCE_FILE needs at least one of 'imports', 'wrap' or 'statements'")
        return self


class InstallPackagesAction(BaseAction):
    type: Literal["INSTALL_PACKAGES"] = "INSTALL_PACKAGES"
    packages: list[str] = Field(..., min_length=1)
    is_dev: bool = False
    manifest: Optional[str] = Field(default=None, description="Defaults to the configured manifest")


class AddScriptAction(BaseAction):
    type: Literal["ADD_SCRIPT"] = "ADD_SCRIPT"
    name: str
    command: str
    manifest: Optional[str] = None


class AddEnvVarAction(BaseAction):
    type: Literal["ADD_ENV_VAR"] = "ADD_ENV_VAR"
    key: str
    value: str = ""
    description: Optional[str] = None
    path: Optional[str] = Field(default=None, description="Defaults to the configured env file")

    @field_validator("value", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        # YAML turns PORT: 3000 into an int
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return str(value)
        return value


class MergeConfigAction(BaseAction):
    type: Literal["MERGE_CONFIG"] = "MERGE_CONFIG"
    path: str
    config: dict[str, Any]
    strategy: DocumentMergeStrategy = DocumentMergeStrategy.DEEP


class WrapConfigAction(BaseAction):
    type: Literal["WRAP_CONFIG"] = "WRAP_CONFIG"
    path: str
    wrapper: str
    import_from: Optional[str] = None
    options: Optional[dict[str, Any]] = None


class RunCommandAction(BaseAction):
    type: Literal["RUN_COMMAND"] = "RUN_COMMAND"
    command: str
    working_dir: Optional[str] = None
    timeout: Optional[float] = Field(default=None, gt=0)


class ExtendSchemaAction(BaseAction):
    type: Literal["EXTEND_SCHEMA"] = "EXTEND_SCHEMA"
    path: str
    tables: list[SchemaTable] = Field(..., min_length=1)
    additional_imports: list[str] = Field(default_factory=list)


Action = Annotated[
    Union[
        CreateFileAction,
        AppendToFileAction,
        PrependToFileAction,
        MergeJsonAction,
        EnhanceFileAction,
        InstallPackagesAction,
        AddScriptAction,
        AddEnvVarAction,
        MergeConfigAction,
        WrapConfigAction,
        RunCommandAction,
        ExtendSchemaAction,
    ],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Blueprint
# ---------------------------------------------------------------------------

class Blueprint(CamelModel):
    """An immutable, ordered list of actions describing one unit of scaffolding."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    id: str = Field(..., description="Stable identifier, e.g. 'nextjs-base'")
    name: str = Field(default="", description="Human-readable name")
    description: str = Field(default="")
    version: Optional[str] = Field(default=None)
    contextual_files: list[str] = Field(
        default_factory=list,
        description="Files the blueprint reads without necessarily writing",
    )
    actions: list[Action] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.name or self.id
