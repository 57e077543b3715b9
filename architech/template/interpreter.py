"""Template micro-interpreter for blueprint strings.

Grammar (deliberately without loops or calls, so rendering always
terminates and never has side effects)::

    template   := (text | variable | block)*
    variable   := "{{" path "}}"
    block      := "{{#if" expr "}}" template ("{{else}}" template)? "{{/if}}"

    expr       := or_expr
    or_expr    := and_expr ("||" and_expr)*
    and_expr   := compare ("&&" compare)*
    compare    := unary (("==" | "!=") unary)?
    unary      := "!" unary | primary
    primary    := literal | path | "(" helper expr* ")"
    helper     := "eq" | "ne" | "not" | "and" | "or"

Unresolved ``{{path}}`` placeholders are left in the output verbatim.  Action
conditions use the same expression language and may be written bare
(``module.parameters.orm``) or wrapped (``{{#if module.parameters.orm}}``).
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Mapping, Union

from architech.errors import ConditionEvalError, TemplateSyntaxError
from architech.utils import get_nested

_MISSING = object()

# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------

_EXPR_TOKEN_RE = re.compile(
    r"""\s*(?:
        (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
      | (?P<number>-?\d+(?:\.\d+)?(?![\w.]))
      | (?P<op>\|\||&&|==|!=|!|\(|\))
      | (?P<name>[A-Za-z_$@][\w$@\-]*(?:\.[\w$@\-]+)*)
    )""",
    re.VERBOSE,
)

_HELPERS = frozenset({"eq", "ne", "not", "and", "or"})
_LITERALS: dict[str, Any] = {"true": True, "false": False, "null": None, "undefined": None}


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class PathRef:
    path: str


@dataclass(frozen=True)
class Not:
    operand: "Expr"


@dataclass(frozen=True)
class Compare:
    op: str
    left: "Expr"
    right: "Expr"


@dataclass(frozen=True)
class Logical:
    op: str
    operands: tuple["Expr", ...]


Expr = Union[Literal, PathRef, Not, Compare, Logical]


def _tokenize(source: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    source = source.strip()
    while pos < len(source):
        match = _EXPR_TOKEN_RE.match(source, pos)
        if match is None or match.end() == pos:
            raise TemplateSyntaxError(f"Unexpected character {source[pos]!r} in expression {source!r}")
        kind = match.lastgroup or ""
        tokens.append((kind, match.group(kind)))
        pos = match.end()
        while pos < len(source) and source[pos].isspace():
            pos += 1
    return tokens


class _ExprParser:
    def __init__(self, source: str) -> None:
        self.source = source
        self.tokens = _tokenize(source)
        self.pos = 0

    def _peek(self) -> tuple[str, str] | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _take(self) -> tuple[str, str]:
        token = self._peek()
        if token is None:
            raise TemplateSyntaxError(f"Unexpected end of expression {self.source!r}")
        self.pos += 1
        return token

    def _accept_op(self, *ops: str) -> str | None:
        token = self._peek()
        if token is not None and token[0] == "op" and token[1] in ops:
            self.pos += 1
            return token[1]
        return None

    def parse(self) -> Expr:
        if not self.tokens:
            raise TemplateSyntaxError("Empty expression")
        expr = self._or()
        if self._peek() is not None:
            raise TemplateSyntaxError(
                f"Unexpected token {self._peek()[1]!r} in expression {self.source!r}"
            )
        return expr

    def _or(self) -> Expr:
        operands = [self._and()]
        while self._accept_op("||"):
            operands.append(self._and())
        return operands[0] if len(operands) == 1 else Logical("or", tuple(operands))

    def _and(self) -> Expr:
        operands = [self._compare()]
        while self._accept_op("&&"):
            operands.append(self._compare())
        return operands[0] if len(operands) == 1 else Logical("and", tuple(operands))

    def _compare(self) -> Expr:
        left = self._unary()
        op = self._accept_op("==", "!=")
        if op is None:
            return left
        return Compare("eq" if op == "==" else "ne", left, self._unary())

    def _unary(self) -> Expr:
        if self._accept_op("!"):
            return Not(self._unary())
        return self._primary()

    def _primary(self) -> Expr:
        kind, text = self._take()
        if kind == "string":
            return Literal(_unquote(text))
        if kind == "number":
            return Literal(float(text) if "." in text else int(text))
        if kind == "name":
            if text in _LITERALS:
                return Literal(_LITERALS[text])
            return PathRef(text)
        if kind == "op" and text == "(":
            return self._helper()
        raise TemplateSyntaxError(f"Unexpected token {text!r} in expression {self.source!r}")

    def _helper(self) -> Expr:
        kind, name = self._take()
        if kind != "name" or name not in _HELPERS:
            raise TemplateSyntaxError(f"Unknown helper {name!r} in expression {self.source!r}")
        args: list[Expr] = []
        while not self._accept_op(")"):
            if self._peek() is None:
                raise TemplateSyntaxError(f"Unclosed '(' in expression {self.source!r}")
            args.append(self._or())

        if name in ("eq", "ne"):
            if len(args) != 2:
                raise TemplateSyntaxError(f"'{name}' takes 2 arguments, got {len(args)}")
            return Compare(name, args[0], args[1])
        if name == "not":
            if len(args) != 1:
                raise TemplateSyntaxError(f"'not' takes 1 argument, got {len(args)}")
            return Not(args[0])
        if not args:
            raise TemplateSyntaxError(f"'{name}' needs at least one argument")
        return Logical(name, tuple(args))


def _unquote(text: str) -> str:
    body = text[1:-1]
    return re.sub(r"\\(.)", r"\1", body)


@lru_cache(maxsize=512)
def parse_expression(source: str) -> Expr:
    """Parse an expression string into an immutable expression tree."""
    return _ExprParser(source).parse()


def is_truthy(value: Any) -> bool:
    """Handlebars-style truthiness; the strings ``"false"`` and ``"0"`` are false."""
    if value is None or value is _MISSING:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value not in ("", "false", "0")
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, (list, tuple, set, dict)) or hasattr(value, "keys"):
        return len(value) > 0
    return bool(value)


def _evaluate(expr: Expr, context: Mapping[str, Any]) -> Any:
    if isinstance(expr, Literal):
        return expr.value
    if isinstance(expr, PathRef):
        return get_nested(context, expr.path)
    if isinstance(expr, Not):
        return not is_truthy(_evaluate(expr.operand, context))
    if isinstance(expr, Compare):
        equal = _loose_equal(_evaluate(expr.left, context), _evaluate(expr.right, context))
        return equal if expr.op == "eq" else not equal
    if isinstance(expr, Logical):
        if expr.op == "and":
            return all(is_truthy(_evaluate(op, context)) for op in expr.operands)
        return any(is_truthy(_evaluate(op, context)) for op in expr.operands)
    raise TypeError(f"Unknown expression node: {expr!r}")


def _loose_equal(left: Any, right: Any) -> bool:
    if left == right:
        return True
    # Parameters often arrive as strings from prompts or YAML.
    if isinstance(left, bool) or isinstance(right, bool):
        return str(left).lower() == str(right).lower()
    if isinstance(left, (int, float)) or isinstance(right, (int, float)):
        return str(left) == str(right)
    return False


def evaluate(expression: str, context: Mapping[str, Any]) -> Any:
    """Evaluate *expression* against *context* and return the raw value."""
    return _evaluate(parse_expression(expression), context)


_WRAPPED_CONDITION_RE = re.compile(
    r"^\{\{\s*(?:#if\s+)?(?P<expr>.*?)\s*\}\}(?:\s*\{\{\s*/if\s*\}\})?$", re.DOTALL
)


def evaluate_condition(condition: str | None, context: Mapping[str, Any]) -> bool:
    """Decide whether an action with this *condition* should run.

    An empty condition always passes.

    Raises:
        ConditionEvalError: If the condition is not a valid expression.
    """
    if condition is None or not condition.strip():
        return True
    source = condition.strip()
    wrapped = _WRAPPED_CONDITION_RE.match(source)
    if wrapped:
        source = wrapped.group("expr")
    try:
        return is_truthy(evaluate(source, context))
    except TemplateSyntaxError as exc:
        raise ConditionEvalError(condition, str(exc)) from exc


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

_TAG_RE = re.compile(r"\{\{\s*(.*?)\s*\}\}", re.DOTALL)
_PATH_RE = re.compile(r"^[A-Za-z_$@][\w$@\-]*(?:\.[\w$@\-]+)*$")


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Variable:
    path: str
    raw: str


@dataclass
class IfBlock:
    condition: Expr
    body: list["Node"] = field(default_factory=list)
    orelse: list["Node"] = field(default_factory=list)


Node = Union[Text, Variable, IfBlock]


@lru_cache(maxsize=1024)
def parse_template(template: str) -> tuple[Node, ...]:
    """Parse *template* into a tuple of nodes.

    Raises:
        TemplateSyntaxError: On unbalanced ``{{#if}}`` / ``{{else}}`` / ``{{/if}}``.
    """
    root: list[Node] = []
    # Each frame: (block, list currently receiving nodes)
    stack: list[tuple[IfBlock, list[Node]]] = []
    target = root
    pos = 0

    for match in _TAG_RE.finditer(template):
        if match.start() > pos:
            target.append(Text(template[pos:match.start()]))
        pos = match.end()
        tag = match.group(1)

        if tag.startswith("#if"):
            expression = tag[3:].strip()
            if not expression:
                raise TemplateSyntaxError("'{{#if}}' requires an expression")
            block = IfBlock(condition=parse_expression(expression))
            target.append(block)
            stack.append((block, target))
            target = block.body
        elif tag == "else":
            if not stack:
                raise TemplateSyntaxError("'{{else}}' outside of an '{{#if}}' block")
            block, _ = stack[-1]
            if target is block.orelse:
                raise TemplateSyntaxError("Duplicate '{{else}}' in '{{#if}}' block")
            target = block.orelse
        elif tag == "/if":
            if not stack:
                raise TemplateSyntaxError("'{{/if}}' without a matching '{{#if}}'")
            _, target = stack.pop()
        elif _PATH_RE.match(tag):
            target.append(Variable(path=tag, raw=match.group(0)))
        else:
            target.append(Text(match.group(0)))

    if stack:
        raise TemplateSyntaxError(f"{len(stack)} unclosed '{{{{#if}}}}' block(s)")
    if pos < len(template):
        target.append(Text(template[pos:]))
    return tuple(root)


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _render_nodes(nodes: Any, context: Mapping[str, Any], out: list[str]) -> None:
    for node in nodes:
        if isinstance(node, Text):
            out.append(node.value)
        elif isinstance(node, Variable):
            value = get_nested(context, node.path, _MISSING)
            out.append(node.raw if value is _MISSING or value is None else _stringify(value))
        else:
            branch = node.body if is_truthy(_evaluate(node.condition, context)) else node.orelse
            _render_nodes(branch, context, out)


def render_template(template: str, context: Mapping[str, Any]) -> str:
    """Render *template* against *context*."""
    if "{{" not in template:
        return template
    out: list[str] = []
    _render_nodes(parse_template(template), context, out)
    return "".join(out)


def render_value(value: Any, context: Mapping[str, Any]) -> Any:
    """Render every string inside a nested structure of dicts and lists."""
    if isinstance(value, str):
        return render_template(value, context)
    if isinstance(value, dict):
        return {render_template(k, context) if isinstance(k, str) else k: render_value(v, context)
                for k, v in value.items()}
    if isinstance(value, list):
        return [render_value(item, context) for item in value]
    if isinstance(value, tuple):
        return tuple(render_value(item, context) for item in value)
    return value


def extract_variables(template: str) -> list[str]:
    """Return the distinct ``{{path}}`` variables used in *template*, in order."""
    seen: dict[str, None] = {}
    for match in _TAG_RE.finditer(template):
        tag = match.group(1)
        if _PATH_RE.match(tag) and tag != "else":
            seen.setdefault(tag, None)
    return list(seen)


def validate_template(template: str) -> list[str]:
    """Return a list of syntax problems in *template* (empty when valid)."""
    try:
        parse_template(template)
    except TemplateSyntaxError as exc:
        return [str(exc)]
    return []
