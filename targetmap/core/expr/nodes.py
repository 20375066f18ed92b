"""Unevaluated expression trees.

Commands, patterns and parameter cells are all expressions. They are never
executed by targetmap: the engines only substitute into them, walk them for
symbols and render them back to source text.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union


LiteralValue = Union[str, int, float, bool, None]


@dataclass(frozen=True)
class Literal:
    value: LiteralValue


@dataclass(frozen=True)
class Symbol:
    """Reference to a target or to an external name (function, module attribute)."""

    name: str

    @property
    def root(self) -> str:
        return self.name.split(".", 1)[0]


@dataclass(frozen=True)
class Placeholder:
    """Explicit column placeholder, written ``{name}``. Must be bound by a table column."""

    name: str


@dataclass(frozen=True)
class Splice:
    """Collection placeholder spliced into the enclosing call, written ``*name``."""

    name: str


@dataclass(frozen=True)
class Call:
    func: "Expr"
    args: tuple["Expr", ...] = ()
    kwargs: tuple[tuple[str, "Expr"], ...] = ()


Expr = Union[Literal, Symbol, Placeholder, Splice, Call]

# Heads for list, tuple and dict displays. They are not identifiers, so a column
# or target can never be named like them and `list(...)` stays an ordinary call.
LIST = "[list]"
TUPLE = "(tuple)"
DICT = "{dict}"
DISPLAYS = (LIST, TUPLE, DICT)

EXPR_TYPES = (Literal, Symbol, Placeholder, Splice, Call)


def lit(value: LiteralValue) -> Literal:
    return Literal(value)


def sym(name: str) -> Symbol:
    return Symbol(name)


def call(func: str | Expr, *args: Expr, **kwargs: Expr) -> Call:
    head = Symbol(func) if isinstance(func, str) else func
    return Call(func=head, args=tuple(args), kwargs=tuple(kwargs.items()))


def display(kind: str, *items: Expr, **entries: Expr) -> Call:
    """Build a list, tuple or dict display (`kind` is one of LIST, TUPLE, DICT)."""
    if kind not in DISPLAYS:
        raise ValueError(f"not a display kind: {kind!r}")
    return Call(func=Symbol(kind), args=tuple(items), kwargs=tuple(entries.items()))


def is_display(expr: object, kind: str) -> bool:
    return isinstance(expr, Call) and isinstance(expr.func, Symbol) and expr.func.name == kind


def is_expr(value: object) -> bool:
    return isinstance(value, EXPR_TYPES)


def as_cell(value: object) -> Expr:
    """Coerce a Python value into a table cell.

    Plain scalars are literals; expressions pass through unchanged. Strings are
    never promoted to symbols implicitly: callers tag symbol cells with ``sym``.
    """
    if is_expr(value):
        return value  # type: ignore[return-value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return Literal(value)
    raise TypeError(f"table cell must be a literal scalar or an expression (type={type(value).__name__})")
