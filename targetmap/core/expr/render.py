from __future__ import annotations

from targetmap.core.expr.nodes import DICT, LIST, TUPLE, Call, Expr, Literal, Placeholder, Splice, Symbol
from targetmap.core.expr.parse import (
    BINARY_OPERATORS,
    BOOL_OPERATORS,
    COMPARE_OPERATORS,
    SUBSCRIPT,
)


_INFIX = set(BINARY_OPERATORS.values()) | set(COMPARE_OPERATORS.values())
_BOOL = set(BOOL_OPERATORS.values())
_PREFIX = {"u-": "-", "u+": "+", "~": "~", "not": "not "}


def deparse(expr: Expr) -> str:
    """Render an expression back to Python source text.

    Output is deterministic and parses back (``parse_expr``) to the same tree.
    """
    if isinstance(expr, Literal):
        return repr(expr.value)
    if isinstance(expr, Symbol):
        return expr.name
    if isinstance(expr, Placeholder):
        return "{" + expr.name + "}"
    if isinstance(expr, Splice):
        return "*" + expr.name
    if isinstance(expr, Call):
        return _deparse_call(expr)
    raise TypeError(f"not an expression: {expr!r}")


def _is_operator_call(expr: Expr) -> bool:
    if not isinstance(expr, Call) or not isinstance(expr.func, Symbol):
        return False
    name = expr.func.name
    return name in _INFIX or name in _BOOL or name in _PREFIX


def _operand(expr: Expr) -> str:
    text = deparse(expr)
    if _is_operator_call(expr):
        return f"({text})"
    return text


def _deparse_call(expr: Call) -> str:
    head = expr.func
    if isinstance(head, Symbol) and not expr.kwargs:
        name = head.name
        if name in _INFIX and len(expr.args) == 2:
            return f"{_operand(expr.args[0])} {name} {_operand(expr.args[1])}"
        if name in _BOOL and len(expr.args) >= 2:
            return f" {name} ".join(_operand(a) for a in expr.args)
        if name in _PREFIX and len(expr.args) == 1:
            return _PREFIX[name] + _operand(expr.args[0])
        if name == SUBSCRIPT and len(expr.args) == 2:
            return f"{_operand(expr.args[0])}[{deparse(expr.args[1])}]"
        if name == LIST:
            return "[" + ", ".join(deparse(a) for a in expr.args) + "]"
        if name == TUPLE:
            inner = ", ".join(deparse(a) for a in expr.args)
            return f"({inner},)" if len(expr.args) == 1 else f"({inner})"
    if isinstance(head, Symbol) and head.name == DICT:
        parts = ["**" + (a.name if isinstance(a, Splice) else _operand(a)) for a in expr.args]
        parts.extend(f"{k!r}: {deparse(v)}" for k, v in expr.kwargs)
        return "{" + ", ".join(parts) + "}"

    if isinstance(head, (Symbol, Placeholder)):
        func = deparse(head)
    else:
        func = f"({deparse(head)})"

    parts = [deparse(a) for a in expr.args]
    parts.extend(f"{k}={deparse(v)}" for k, v in expr.kwargs)
    return f"{func}({', '.join(parts)})"
