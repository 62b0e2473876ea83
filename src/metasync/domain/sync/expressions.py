"""Restricted formula expressions used as attribute flow sources.

Expressions are parsed with :mod:`ast` in ``eval`` mode and then checked
against an allow-list of node types before they are interpreted by a small
tree walker, so no Python code is ever executed. The language covers:

- literals (strings, numbers, booleans, ``None``, lists)
- attribute lookups ``cs["Name"]`` (connected system object) and
  ``mv["Name"]`` (metaverse object); missing attributes evaluate to ``None``
- ``+`` for string concatenation (``None`` counts as empty) or numeric addition
- comparisons, ``and``/``or``/``not`` and ``x if cond else y``
- calls to the functions registered in ``DEFAULT_FUNCTIONS``

Example: ``concat(upper(left(cs["FirstName"], 1)), lower(cs["LastName"]))``
"""

from __future__ import annotations

import ast
import operator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping


class ExpressionError(ValueError):
    """Raised when an expression cannot be parsed, is not allowed, or fails."""


@dataclass(slots=True, kw_only=True)
class ExpressionContext:
    cs: Mapping[str, object] = field(default_factory=dict[str, object])
    mv: Mapping[str, object] = field(default_factory=dict[str, object])


@runtime_checkable
class ExpressionEvaluator(Protocol):
    """Pluggable strategy evaluating one expression against object attributes."""

    def evaluate(self, expression: str, context: ExpressionContext) -> object: ...


def _text(value: object) -> str | None:
    return None if value is None else str(value)


def _upper(value: object) -> str | None:
    text = _text(value)
    return None if text is None else text.upper()


def _lower(value: object) -> str | None:
    text = _text(value)
    return None if text is None else text.lower()


def _trim(value: object) -> str | None:
    text = _text(value)
    return None if text is None else text.strip()


def _left(value: object, length: int) -> str | None:
    text = _text(value)
    return None if text is None else text[: max(length, 0)]


def _right(value: object, length: int) -> str | None:
    text = _text(value)
    if text is None:
        return None
    return text[-length:] if length > 0 else ""


def _concat(*values: object) -> str:
    return "".join(str(value) for value in values if value is not None)


def _coalesce(*values: object) -> object:
    for value in values:
        if value is None or value == "":
            continue
        return value
    return None


def _split(value: object, separator: str = ",") -> list[str] | None:
    text = _text(value)
    if text is None:
        return None
    return [part for part in (item.strip() for item in text.split(separator)) if part]


def _join(values: object, separator: str = ",") -> str | None:
    if values is None:
        return None
    if not isinstance(values, list | tuple):
        return str(values)
    items: list[Any] = list(values)  # pyright: ignore[reportUnknownArgumentType]
    return separator.join(str(item) for item in items if item is not None)


def _replace(value: object, old: str, new: str) -> str | None:
    text = _text(value)
    return None if text is None else text.replace(old, new)


def _to_int(value: object) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ExpressionError(f"Cannot convert {value!r} to an integer") from exc


DEFAULT_FUNCTIONS: Mapping[str, Callable[..., object]] = {
    "upper": _upper,
    "lower": _lower,
    "trim": _trim,
    "left": _left,
    "right": _right,
    "concat": _concat,
    "coalesce": _coalesce,
    "split": _split,
    "join": _join,
    "replace": _replace,
    "is_null": lambda value: value is None or value == "",
    "to_string": _text,
    "to_int": _to_int,
}

_COMPARISONS: Mapping[type[ast.cmpop], Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda left, right: right is not None and left in right,
    ast.NotIn: lambda left, right: right is None or left not in right,
}

_ALLOWED_NODES: tuple[type[ast.AST], ...] = (
    ast.Expression,
    ast.Constant,
    ast.List,
    ast.Tuple,
    ast.Name,
    ast.Load,
    ast.Subscript,
    ast.BinOp,
    ast.Add,
    ast.UnaryOp,
    ast.Not,
    ast.USub,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.Compare,
    ast.IfExp,
    ast.Call,
    *_COMPARISONS,
)

_OBJECT_NAMES = frozenset({"cs", "mv"})


def parse_expression(expression: str) -> ast.Expression:
    """Parse and validate ``expression`` without evaluating it."""

    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as exc:
        raise ExpressionError(f"Invalid expression {expression!r}: {exc.msg}") from exc

    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            raise ExpressionError(
                f"Unsupported syntax {type(node).__name__} in expression {expression!r}"
            )
        if isinstance(node, ast.Subscript) and _attribute_lookup(node) is None:
            raise ExpressionError(
                f'Only cs["Name"] and mv["Name"] lookups are allowed in {expression!r}'
            )
        if isinstance(node, ast.Call) and (node.keywords or not isinstance(node.func, ast.Name)):
            raise ExpressionError(f"Unsupported call in expression {expression!r}")
    return tree


def referenced_metaverse_attributes(expression: str) -> set[str]:
    """Return the metaverse attribute names read via ``mv["Name"]``."""

    names: set[str] = set()
    for node in ast.walk(parse_expression(expression)):
        if isinstance(node, ast.Subscript):
            lookup = _attribute_lookup(node)
            if lookup is not None and lookup[0] == "mv":
                names.add(lookup[1])
    return names


def _attribute_lookup(node: ast.Subscript) -> tuple[str, str] | None:
    if not isinstance(node.value, ast.Name) or node.value.id not in _OBJECT_NAMES:
        return None
    if not isinstance(node.slice, ast.Constant) or not isinstance(node.slice.value, str):
        return None
    return node.value.id, node.slice.value


@dataclass(slots=True)
class FormulaEvaluator:
    """Default ``ExpressionEvaluator`` interpreting the restricted formula language."""

    functions: Mapping[str, Callable[..., object]] = field(
        default_factory=lambda: dict(DEFAULT_FUNCTIONS)
    )
    _parsed: dict[str, ast.Expression] = field(
        default_factory=dict[str, ast.Expression], repr=False
    )

    def evaluate(self, expression: str, context: ExpressionContext) -> object:
        tree = self._parsed.get(expression)
        if tree is None:
            tree = parse_expression(expression)
            self._parsed[expression] = tree
        return self._eval(tree.body, context)

    def _eval(self, node: ast.expr, context: ExpressionContext) -> object:  # noqa: PLR0911
        match node:
            case ast.Constant(value=value):
                return value
            case ast.List(elts=elements) | ast.Tuple(elts=elements):
                return [self._eval(element, context) for element in elements]
            case ast.Name(id="cs" | "mv"):
                raise ExpressionError("Object names must be indexed with an attribute name")
            case ast.Name(id=name):
                raise ExpressionError(f"Unknown name {name!r}")
            case ast.Subscript():
                lookup = _attribute_lookup(node)
                if lookup is None:
                    raise ExpressionError("Unsupported lookup")
                source = context.cs if lookup[0] == "cs" else context.mv
                return source.get(lookup[1])
            case ast.BinOp(left=left, op=ast.Add(), right=right):
                return _add(self._eval(left, context), self._eval(right, context))
            case ast.UnaryOp(op=ast.Not(), operand=operand):
                return not self._eval(operand, context)
            case ast.UnaryOp(op=ast.USub(), operand=operand):
                value = self._eval(operand, context)
                if not isinstance(value, int | float) or isinstance(value, bool):
                    raise ExpressionError(f"Cannot negate {value!r}")
                return -value
            case ast.BoolOp(op=ast.And(), values=values):
                result: object = True
                for value_node in values:
                    result = self._eval(value_node, context)
                    if not result:
                        return result
                return result
            case ast.BoolOp(op=ast.Or(), values=values):
                result = False
                for value_node in values:
                    result = self._eval(value_node, context)
                    if result:
                        return result
                return result
            case ast.Compare(left=left, ops=ops, comparators=comparators):
                return self._compare(left, ops, comparators, context)
            case ast.IfExp(test=test, body=body, orelse=orelse):
                return self._eval(body if self._eval(test, context) else orelse, context)
            case ast.Call(func=ast.Name(id=name), args=args):
                function = self.functions.get(name)
                if function is None:
                    raise ExpressionError(f"Unknown function {name!r}")
                arguments = [self._eval(argument, context) for argument in args]
                try:
                    return function(*arguments)
                except TypeError as exc:
                    raise ExpressionError(f"Invalid arguments for {name}(): {exc}") from exc
            case _:
                raise ExpressionError(f"Unsupported expression node {type(node).__name__}")

    def _compare(
        self,
        left: ast.expr,
        ops: list[ast.cmpop],
        comparators: list[ast.expr],
        context: ExpressionContext,
    ) -> bool:
        current = self._eval(left, context)
        for op, comparator in zip(ops, comparators, strict=True):
            other = self._eval(comparator, context)
            try:
                if not _COMPARISONS[type(op)](current, other):
                    return False
            except TypeError as exc:
                raise ExpressionError(f"Cannot compare {current!r} and {other!r}") from exc
            current = other
        return True


def _add(left: object, right: object) -> object:
    numeric = (int, float)
    if (
        isinstance(left, numeric)
        and isinstance(right, numeric)
        and not isinstance(left, bool)
        and not isinstance(right, bool)
    ):
        return left + right
    return _concat(left, right)
