"""Structured source-file edits for JavaScript / TypeScript / JSX files.

Edits are text-based: ES import declarations and markup tags are located with
regular expressions and rewritten in place.  The observable behaviour is part
of the contract:

* import injection never duplicates a name imported from the same module,
* element wrapping wraps only the first occurrence of the target tag and
  reports (rather than fails on) a missing target,
* every edit is idempotent, so unchanged input comes back byte-identical.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional

from architech.errors import NoMatchError, NotFoundError, ParseError


class ImportKind(str, Enum):
    """Shape of an import binding."""
    NAMED = "named"
    DEFAULT = "default"
    NAMESPACE = "namespace"
    TYPE = "type"


@dataclass(frozen=True)
class ImportRequest:
    """One binding to guarantee: ``name`` imported from ``module``."""

    name: str
    module: str
    kind: ImportKind = ImportKind.NAMED


@dataclass
class SourceEdit:
    """Result of an edit that may succeed with warnings."""

    content: str
    warnings: list[str] = field(default_factory=list)
    changed: bool = False


# ---------------------------------------------------------------------------
# Import parsing
# ---------------------------------------------------------------------------

_IMPORT_RE = re.compile(
    r"^[ \t]*import\s+(?P<type>type\s+)?(?P<clause>[^;'\"]*?)\s*\bfrom\s*"
    r"(?P<quote>['\"])(?P<module>[^'\"]+)(?P=quote)(?P<semi>[ \t]*;)?",
    re.MULTILINE,
)
_SIDE_EFFECT_IMPORT_RE = re.compile(
    r"^[ \t]*import\s*(?P<quote>['\"])[^'\"]+(?P=quote)[ \t]*;?", re.MULTILINE
)
_REQUIRE_RE = re.compile(
    r"^[ \t]*(?:const|let|var)\s+[^=\n]+=\s*require\(\s*['\"][^'\"]+['\"]\s*\)[ \t]*;?",
    re.MULTILINE,
)
_DIRECTIVE_RE = re.compile(r"\A(?:#![^\n]*\n)?(?:[ \t]*(['\"])use [\w-]+\1;?[ \t]*\n)*")


@dataclass
class _ImportDecl:
    module: str
    start: int
    end: int
    type_only: bool
    default: Optional[str]
    namespace: Optional[str]
    named: Optional[list[str]]
    braces: Optional[tuple[int, int]]  # absolute span of "{...}" inside the declaration

    def binds(self, name: str, value: bool = True) -> bool:
        """Whether *name* is imported here; *value* requests ignore type-only bindings."""
        if value and self.type_only:
            return False
        if self.default == name or self.namespace == name:
            return True
        for spec in self.named or []:
            if value and spec.startswith("type "):
                continue
            if name in _specifier_names(spec):
                return True
        return False


def _specifier_names(spec: str) -> set[str]:
    """Imported and local names of ``a``, ``a as b`` or ``type a``."""
    spec = re.sub(r"^type\s+", "", spec.strip())
    parts = [p.strip() for p in re.split(r"\s+as\s+", spec) if p.strip()]
    return set(parts)


def _parse_imports(content: str) -> list[_ImportDecl]:
    decls: list[_ImportDecl] = []
    for match in _IMPORT_RE.finditer(content):
        clause = match.group("clause")
        clause_start = match.start("clause")
        default = namespace = None
        named: Optional[list[str]] = None
        braces = None

        brace_open = clause.find("{")
        if brace_open != -1:
            brace_close = clause.rfind("}")
            if brace_close == -1:
                continue
            inner = clause[brace_open + 1:brace_close]
            named = [s.strip() for s in inner.split(",") if s.strip()]
            braces = (clause_start + brace_open, clause_start + brace_close + 1)
            head = clause[:brace_open]
        else:
            head = clause

        ns_match = re.search(r"\*\s*as\s+([\w$]+)", head)
        if ns_match:
            namespace = ns_match.group(1)
            head = head[: ns_match.start()]
        head = head.strip().rstrip(",").strip()
        if head:
            default = head

        decls.append(
            _ImportDecl(
                module=match.group("module"),
                start=match.start(),
                end=match.end(),
                type_only=bool(match.group("type")),
                default=default,
                namespace=namespace,
                named=named,
                braces=braces,
            )
        )
    return decls


def _style(content: str) -> tuple[str, str]:
    """Quote character and statement terminator used by existing imports."""
    match = _IMPORT_RE.search(content)
    if match is None:
        return "'", ";"
    return match.group("quote"), ";" if match.group("semi") else ""


def _add_named(content: str, braces: tuple[int, int], name: str) -> str:
    open_at, close_at = braces
    inner = content[open_at + 1:close_at - 1]
    if "\n" in inner:
        body = inner.rstrip()
        trailing = inner[len(body):]
        last_line = body.rsplit("\n", 1)[-1]
        indent = re.match(r"[ \t]*", last_line).group(0) or "  "
        if body.strip() and not body.endswith(","):
            body += ","
        new_inner = f"{body}\n{indent}{name},{trailing}"
    else:
        specs = [s.strip() for s in inner.split(",") if s.strip()]
        specs.append(name)
        new_inner = " " + ", ".join(specs) + " "
    return content[: open_at + 1] + new_inner + content[close_at - 1:]


def _insertion_point(content: str) -> int:
    """Offset just after the last top-level import, or after any directives."""
    last_end = -1
    for regex in (_IMPORT_RE, _SIDE_EFFECT_IMPORT_RE, _REQUIRE_RE):
        for match in regex.finditer(content):
            last_end = max(last_end, match.end())
    if last_end >= 0:
        newline = content.find("\n", last_end)
        return len(content) if newline == -1 else newline + 1
    return _DIRECTIVE_RE.match(content).end()


def _render_import(request: ImportRequest, quote: str, semi: str) -> str:
    source = f"{quote}{request.module}{quote}"
    kind = ImportKind(request.kind)
    if kind is ImportKind.DEFAULT:
        return f"import {request.name} from {source}{semi}"
    if kind is ImportKind.NAMESPACE:
        return f"import * as {request.name} from {source}{semi}"
    if kind is ImportKind.TYPE:
        return f"import type {{ {request.name} }} from {source}{semi}"
    return f"import {{ {request.name} }} from {source}{semi}"


def _inject_one(content: str, request: ImportRequest) -> str:
    kind = ImportKind(request.kind)
    decls = [d for d in _parse_imports(content) if d.module == request.module]
    if any(d.binds(request.name, value=kind is not ImportKind.TYPE) for d in decls):
        return content

    if kind in (ImportKind.NAMED, ImportKind.TYPE):
        type_only = kind is ImportKind.TYPE
        for decl in decls:
            if decl.type_only == type_only and decl.braces is not None:
                return _add_named(content, decl.braces, request.name)
        if not type_only:
            for decl in decls:
                if not decl.type_only and decl.namespace is None and decl.default is not None:
                    # import Foo from 'm'  ->  import Foo, { name } from 'm'
                    at = content.index(decl.default, decl.start) + len(decl.default)
                    return content[:at] + f", {{ {request.name} }}" + content[at:]

    quote, semi = _style(content)
    line = _render_import(request, quote, semi) + "\n"
    at = _insertion_point(content)
    if at > 0 and not content[:at].endswith("\n"):
        line = "\n" + line
    return content[:at] + line + content[at:]


def inject_imports(current: Optional[str], requests: Iterable[ImportRequest], path: str = "") -> str:
    """Guarantee every requested binding is imported.

    An import from the same module is extended when it exists; otherwise a new
    declaration is inserted after the last import.  Names that are already
    bound from that module are left alone.

    Raises:
        NotFoundError: If the file does not exist.
    """
    if current is None:
        raise NotFoundError(f"Cannot add imports to {path or '<content>'}: file does not exist", path=path)
    content = current
    for request in requests:
        content = _inject_one(content, request)
    return content


def insert_import_lines(current: Optional[str], lines: Iterable[str], path: str = "") -> str:
    """Insert raw import statements that are not already present verbatim."""
    if current is None:
        raise NotFoundError(f"Cannot add imports to {path or '<content>'}: file does not exist", path=path)
    content = current
    for line in lines:
        statement = line.strip()
        if not statement or statement in content:
            continue
        at = _insertion_point(content)
        block = statement + "\n"
        if at > 0 and not content[:at].endswith("\n"):
            block = "\n" + block
        content = content[:at] + block + content[at:]
    return content


# ---------------------------------------------------------------------------
# Element wrapping
# ---------------------------------------------------------------------------


def serialize_attributes(attributes: dict[str, Any] | None) -> str:
    """Render JSX attributes: strings quoted, everything else in braces."""
    if not attributes:
        return ""
    parts: list[str] = []
    for key, value in attributes.items():
        if isinstance(value, str):
            parts.append(f'{key}="{value}"')
        elif isinstance(value, bool):
            parts.append(f"{key}={{{'true' if value else 'false'}}}")
        elif isinstance(value, (int, float)):
            parts.append(f"{key}={{{value}}}")
        elif value is None:
            parts.append(f"{key}={{null}}")
        else:
            parts.append(f"{key}={{{json.dumps(value)}}}")
    return " ".join(parts)


# Attribute text up to the end of a tag. Quoted strings and {...} expressions
# (one level of nested braces) may contain ">" without closing the tag.
_ATTRIBUTES = r"""(?:\{(?:[^{}]|\{[^{}]*\})*\}|"[^"]*"|'[^']*'|[^>{}"'])*?"""


def _tag_pattern(tag: str) -> str:
    return re.escape(tag) + r"(?=[\s/>])"


def _find_element(content: str, target: str, path: str) -> Optional[tuple[int, int]]:
    opening = re.compile(r"<" + _tag_pattern(target) + _ATTRIBUTES + r"(?P<selfclose>/?)>")
    first = opening.search(content)
    if first is None:
        return None
    if first.group("selfclose"):
        return first.start(), first.end()

    token = re.compile(
        r"<(?P<close>/)?" + _tag_pattern(target) + _ATTRIBUTES + r"(?P<selfclose>/?)>"
    )
    depth = 0
    for match in token.finditer(content, first.start()):
        if match.group("close"):
            depth -= 1
            if depth == 0:
                return first.start(), match.end()
        elif not match.group("selfclose"):
            depth += 1
    raise ParseError(
        f"Opening <{target}> in {path or '<content>'} has no matching </{target}>", path=path
    )


def wrap_element(
    current: Optional[str],
    target: str,
    wrapper: str,
    attributes: dict[str, Any] | None = None,
    path: str = "",
) -> SourceEdit:
    """Surround the first ``<target>`` element with ``<wrapper>`` tags.

    The target keeps its own attributes; the wrapper's opening tag carries
    *attributes*.  If the target never occurs the content is returned
    unchanged with a warning.  A target that is already directly wrapped by
    *wrapper* is left alone.

    Raises:
        NotFoundError: If the file does not exist.
        ParseError: If the opening tag has no matching closing tag.
    """
    if current is None:
        raise NotFoundError(f"Cannot wrap element in {path or '<content>'}: file does not exist", path=path)

    span = _find_element(current, target, path)
    if span is None:
        return SourceEdit(
            content=current,
            warnings=[f"No <{target}> element found in {path or '<content>'}; nothing wrapped"],
        )

    start, end = span
    before = current[:start]
    if re.search(r"<" + _tag_pattern(wrapper) + r"(?:[^>]*|" + _ATTRIBUTES + r")>\s*$", before):
        return SourceEdit(content=current)

    line_start = before.rfind("\n") + 1
    leading = before[line_start:]
    indent = leading if not leading.strip() else ""

    attrs = serialize_attributes(attributes)
    open_tag = f"<{wrapper}{' ' + attrs if attrs else ''}>"
    element = current[start:end].replace("\n", "\n  ")
    wrapped = f"{open_tag}\n{indent}  {element}\n{indent}</{wrapper}>"
    return SourceEdit(content=before + wrapped + current[end:], changed=True)


# ---------------------------------------------------------------------------
# Export wrapping (config files)
# ---------------------------------------------------------------------------

_EXPORT_RE = re.compile(r"(?P<lead>module\.exports\s*=|export\s+default)\s*", re.MULTILINE)


def wrap_export(
    current: Optional[str],
    wrapper: str,
    import_from: str | None = None,
    options: dict[str, Any] | None = None,
    path: str = "",
) -> str:
    """Rewrite the module's export as ``wrapper(<export>, options)``.

    Handles ``module.exports = ...`` and ``export default ...`` where the
    export is the final statement of the file.  When *import_from* is given
    the wrapper is imported (``require`` for CommonJS, ``import`` otherwise).

    Raises:
        NotFoundError: If the file does not exist.
        NoMatchError: If the file has no recognisable export.
    """
    if current is None:
        raise NotFoundError(f"Config file not found: {path or '<content>'}", path=path)

    matches = list(_EXPORT_RE.finditer(current))
    if not matches:
        raise NoMatchError(f"No module export found in {path or '<content>'}", path=path)
    match = matches[-1]
    expression = current[match.end():].rstrip().rstrip(";").rstrip()
    if not expression:
        raise NoMatchError(f"Empty module export in {path or '<content>'}", path=path)

    base_name = wrapper.split(".")[0]
    content = current
    if not expression.startswith(f"{wrapper}("):
        args = expression
        if options:
            args += ", " + json.dumps(options, indent=2)
        lead = match.group("lead")
        content = current[: match.start()] + f"{lead} {wrapper}({args});\n"

    if import_from:
        if match.group("lead").startswith("module.exports"):
            if not re.search(r"\b" + re.escape(base_name) + r"\b[^\n]*=\s*require\(", content):
                content = f"const {{ {base_name} }} = require('{import_from}');\n" + (
                    "\n" if not content.startswith("\n") else ""
                ) + content
        else:
            content = inject_imports(content, [ImportRequest(base_name, import_from)], path)
    return content


# ---------------------------------------------------------------------------
# Statements & schema tables
# ---------------------------------------------------------------------------


def append_statements(current: Optional[str], statements: Iterable[str], path: str = "") -> str:
    """Append each statement that is not already present verbatim."""
    if current is None:
        raise NotFoundError(f"Cannot append statements to {path or '<content>'}: file does not exist", path=path)
    content = current
    for statement in statements:
        block = statement.strip("\n")
        if not block or block in content:
            continue
        if content and not content.endswith("\n"):
            content += "\n"
        if content.strip():
            content += "\n"
        content += block + "\n"
    return content


def _declares(content: str, name: str) -> bool:
    return re.search(
        r"\b(?:const|let|var|class|function|interface|type|model|table)\s+"
        + re.escape(name)
        + r"\b",
        content,
    ) is not None


def extend_schema(
    current: Optional[str],
    tables: Iterable[tuple[str, str]],
    path: str = "",
) -> str:
    """Append ``(name, definition)`` tables whose name is not yet declared.

    Raises:
        NotFoundError: If the schema file does not exist.
    """
    if current is None:
        raise NotFoundError(f"Schema file not found: {path or '<content>'}", path=path)
    content = current
    for name, definition in tables:
        block = definition.strip("\n")
        if not block or _declares(content, name) or block in content:
            continue
        content = content.rstrip("\n") + "\n\n" + block + "\n"
    return content
