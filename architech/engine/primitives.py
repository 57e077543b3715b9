"""Text and structured-data mutation primitives.

Every function here is pure: it takes the current content of a file (``None``
when the file does not exist) and returns the new content, or raises a
``MutationError`` subclass.  None of them know about blueprints or disk.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Optional

from architech.errors import AlreadyExistsError, NotFoundError, ParseError
from architech.utils import dump_json


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class MissingFilePolicy(str, Enum):
    """What append / prepend do when the target file does not exist."""
    ERROR = "error"
    CREATE = "create"


class ArrayMergeStrategy(str, Enum):
    """How arrays present on both sides of a deep merge are combined."""
    CONCAT = "concat"
    REPLACE = "replace"
    DEDUPE = "dedupe"


class ScalarPolicy(str, Enum):
    """Which side wins when both documents hold different scalars at one key."""
    INCOMING = "incoming"
    EXISTING = "existing"
    ERROR = "error"


class DocumentMergeStrategy(str, Enum):
    """Whole-document strategies used by config merges."""
    DEEP = "deep-merge"
    SHALLOW = "shallow-merge"
    REPLACE = "replace"


# ---------------------------------------------------------------------------
# create / append / prepend
# ---------------------------------------------------------------------------


def create(current: Optional[str], content: str, *, overwrite: bool = False, path: str = "") -> str:
    """Return *content* as the new file body.

    Raises:
        AlreadyExistsError: If the file exists and *overwrite* is not set.
    """
    if current is not None and not overwrite:
        raise AlreadyExistsError(f"File already exists: {path or '<content>'}", path=path)
    return content


def _require(current: Optional[str], policy: MissingFilePolicy, path: str, verb: str) -> str:
    if current is not None:
        return current
    if MissingFilePolicy(policy) is MissingFilePolicy.CREATE:
        return ""
    raise NotFoundError(f"Cannot {verb} {path or '<content>'}: file does not exist", path=path)


def _appended(current: str, block: str) -> bool:
    needle = block.strip("\n")
    if not needle:
        return False
    return f"\n{needle}\n" in f"\n{current}\n"


def _prepended(current: str, block: str) -> bool:
    needle = block.strip("\n")
    if not needle:
        return False
    return current.lstrip("\n").startswith(f"{needle}\n") or current.strip("\n") == needle


def append(
    current: Optional[str],
    block: str,
    *,
    fallback: MissingFilePolicy = MissingFilePolicy.ERROR,
    path: str = "",
) -> str:
    """Append *block* to the end of the file.

    Re-applying the same block is a no-op: if it already occupies whole lines
    of the file the content is returned unchanged.  A block that only occurs
    inside a longer line is still appended.
    """
    existing = _require(current, fallback, path, "append to")
    if not block or _appended(existing, block):
        return existing
    if existing and not existing.endswith("\n"):
        existing += "\n"
    return existing + block


def prepend(
    current: Optional[str],
    block: str,
    *,
    fallback: MissingFilePolicy = MissingFilePolicy.ERROR,
    path: str = "",
) -> str:
    """Insert *block* at the start of the file, skipping it when the file already starts with it."""
    existing = _require(current, fallback, path, "prepend to")
    if not block or _prepended(existing, block):
        return existing
    if existing and not block.endswith("\n"):
        block += "\n"
    return block + existing


# ---------------------------------------------------------------------------
# Env files
# ---------------------------------------------------------------------------


def upsert_env_var(
    current: Optional[str],
    key: str,
    value: str,
    description: str | None = None,
) -> str:
    """Set ``KEY=value`` in a dotenv file, deduplicating by key.

    An existing assignment of *key* is rewritten in place (last value wins);
    otherwise the assignment is appended, preceded by ``# description`` when
    one is given.  A missing file is treated as empty.
    """
    lines = (current or "").splitlines()
    assignment = f"{key}={value}"
    prefix = f"{key}="

    for index, line in enumerate(lines):
        stripped = line.strip()
        exported = stripped.startswith(f"export {prefix}")
        if stripped.startswith(prefix) or exported:
            replacement = f"export {assignment}" if exported else assignment
            if stripped == replacement:
                return current or ""
            lines[index] = replacement
            return "\n".join(lines) + "\n"

    if description:
        comment = f"# {description}"
        if not lines or lines[-1].strip() != comment:
            lines.append(comment)
    lines.append(assignment)
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Structured data (JSON manifests)
# ---------------------------------------------------------------------------


def parse_structured(current: Optional[str], path: str = "") -> dict[str, Any]:
    """Parse a JSON object document. Absent or blank content is an empty object.

    Raises:
        ParseError: If the content is not valid JSON or its root is not an object.
    """
    if current is None or not current.strip():
        return {}
    try:
        data = json.loads(current)
    except json.JSONDecodeError as exc:
        raise ParseError(f"{path or '<content>'} is not valid JSON: {exc}", path=path) from exc
    if not isinstance(data, dict):
        raise ParseError(
            f"{path or '<content>'} must contain a JSON object, got {type(data).__name__}",
            path=path,
        )
    return data


def merge_arrays(base: list[Any], incoming: list[Any], strategy: ArrayMergeStrategy) -> list[Any]:
    strategy = ArrayMergeStrategy(strategy)
    if strategy is ArrayMergeStrategy.REPLACE:
        return list(incoming)
    if strategy is ArrayMergeStrategy.DEDUPE:
        merged = list(base)
        for item in incoming:
            if item not in merged:
                merged.append(item)
        return merged
    return list(base) + list(incoming)


def deep_merge(
    base: Any,
    incoming: Any,
    *,
    array_strategy: ArrayMergeStrategy = ArrayMergeStrategy.CONCAT,
    scalar_policy: ScalarPolicy = ScalarPolicy.INCOMING,
    path: str = "",
    _trail: str = "",
) -> Any:
    """Recursively merge *incoming* into *base* without mutating either.

    Objects recurse key by key (existing keys keep their position, new keys
    are appended).  Arrays follow *array_strategy*.  Any other clash is a
    scalar conflict resolved by *scalar_policy*.
    """
    if isinstance(base, dict) and isinstance(incoming, dict):
        result = dict(base)
        for key, value in incoming.items():
            if key in result:
                result[key] = deep_merge(
                    result[key],
                    value,
                    array_strategy=array_strategy,
                    scalar_policy=scalar_policy,
                    path=path,
                    _trail=f"{_trail}.{key}" if _trail else str(key),
                )
            else:
                result[key] = value
        return result

    if isinstance(base, list) and isinstance(incoming, list):
        return merge_arrays(base, incoming, array_strategy)

    if base == incoming:
        return base

    policy = ScalarPolicy(scalar_policy)
    if policy is ScalarPolicy.EXISTING:
        return base
    if policy is ScalarPolicy.ERROR:
        raise AlreadyExistsError(
            f"Conflicting value at '{_trail or '<root>'}' in {path or '<content>'}: "
            f"{base!r} != {incoming!r}",
            path=path,
        )
    return incoming


def merge_structured(
    current: Optional[str],
    incoming: dict[str, Any],
    *,
    strategy: DocumentMergeStrategy = DocumentMergeStrategy.DEEP,
    array_strategy: ArrayMergeStrategy = ArrayMergeStrategy.CONCAT,
    scalar_policy: ScalarPolicy = ScalarPolicy.INCOMING,
    path: str = "",
) -> str:
    """Merge *incoming* into the JSON document held in *current*.

    A missing file is treated as an empty object, so merging into a manifest
    that does not exist yet creates it.  Unchanged documents are returned
    byte-identical.
    """
    existing = parse_structured(current, path)
    strategy = DocumentMergeStrategy(strategy)

    if strategy is DocumentMergeStrategy.REPLACE:
        merged: dict[str, Any] = dict(incoming)
    elif strategy is DocumentMergeStrategy.SHALLOW:
        merged = {**existing, **incoming}
    else:
        merged = deep_merge(
            existing,
            incoming,
            array_strategy=array_strategy,
            scalar_policy=scalar_policy,
            path=path,
        )

    if current is not None and merged == existing and strategy is not DocumentMergeStrategy.REPLACE:
        return current
    return dump_json(merged)


def coerce_structured(payload: Any, path: str = "") -> dict[str, Any]:
    """Accept a mapping or a JSON string and return a mapping."""
    if isinstance(payload, dict):
        return payload
    if isinstance(payload, str):
        return parse_structured(payload, path)
    raise ParseError(
        f"Structured payload for {path or '<content>'} must be an object, "
        f"got {type(payload).__name__}",
        path=path,
    )
