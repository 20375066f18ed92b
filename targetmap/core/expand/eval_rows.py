from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

from targetmap.core.errors import BuildValidationError, LengthMismatchError
from targetmap.core.expr.nodes import Expr, Literal, Symbol, as_cell
from targetmap.core.expr.parse import parse_expr
from targetmap.core.expr.render import deparse
from targetmap.core.expr.walk import substitute
from targetmap.core.model import TargetTemplate


def substitute_rows(template: Expr, columns: Mapping[str, Sequence[Any]]) -> list[Expr]:
    """Substitute column values into ``template`` row by row.

    Row ``i`` binds every column name to that column's ``i``-th value, then
    substitutes symbols, placeholders and splices of the same name. Returns one
    expression per row. No naming, uniqueness checks or dependency inference
    happen here; placeholders without a column are left in place.
    """
    cells = {name: [_coerce(v, f"{name}[{i}]") for i, v in enumerate(values)] for name, values in columns.items()}

    lengths = {name: len(values) for name, values in cells.items()}
    if len(set(lengths.values())) > 1:
        detail = ", ".join(f"{k}={v}" for k, v in lengths.items())
        raise LengthMismatchError(
            code="E_LENGTH_MISMATCH",
            message=f"all columns must have the same length ({detail})",
            path="values",
        )

    n = next(iter(lengths.values()), 0)
    out: list[Expr] = []
    for i in range(n):
        bindings = {name: values[i] for name, values in cells.items()}
        out.append(substitute(template, bindings))
    return out


def substitute_targets(
    name: str | Expr,
    command: str | Expr,
    columns: Mapping[str, Sequence[Any]],
    pattern: Optional[str | Expr] = None,
) -> list[TargetTemplate]:
    """Row-wise substitution that also produces the target names.

    ``name`` must substitute to a symbol or a string literal in every row. The
    results are unchecked templates: add them to a BuildContext to validate
    names and infer dependencies.
    """
    name_expr = parse_expr(name, path="name") if isinstance(name, str) else name
    command_expr = parse_expr(command, path="command") if isinstance(command, str) else command
    if isinstance(pattern, str):
        pattern_expr: Optional[Expr] = parse_expr(pattern, path="pattern")
    else:
        pattern_expr = pattern

    names = substitute_rows(name_expr, columns)
    commands = substitute_rows(command_expr, columns)
    patterns: list[Optional[Expr]]
    if pattern_expr is not None:
        patterns = list(substitute_rows(pattern_expr, columns))
    else:
        patterns = [None] * len(commands)

    out: list[TargetTemplate] = []
    for i, (n, c, p) in enumerate(zip(names, commands, patterns)):
        if isinstance(n, Symbol):
            target_name = n.name
        elif isinstance(n, Literal) and isinstance(n.value, str):
            target_name = n.value
        else:
            raise BuildValidationError(
                code="E_TARGET_NAME",
                message=f"row {i} name substitutes to {deparse(n)}, expected a symbol or string",
                path=f"values[{i}]",
            )
        out.append(TargetTemplate(name=target_name, command=c, pattern=p))
    return out


def _coerce(value: Any, path: str) -> Expr:
    try:
        return as_cell(value)
    except TypeError as e:
        raise BuildValidationError(code="E_INVALID_CELL", message=str(e), path=path) from e
