"""Static branching: clone target templates across the rows of a parameter table.

Every template is substituted once per row. Column names bind to the row's
cells; template names bind to the sibling node generated for the *same* row,
so ``summarize(analysis)`` in row ``NIH`` becomes ``summarize(analysis_NIH)``.
Patterns get exactly the same substitution as commands.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Iterable, Optional, Sequence

from targetmap.core.config import DEFAULT_OPTIONS, BuildOptions
from targetmap.core.deps.infer import infer_target_dependencies
from targetmap.core.errors import BuildError, NameConflictError, UnknownColumnError
from targetmap.core.expand.eval_rows import substitute_rows
from targetmap.core.expr.nodes import Expr, Symbol
from targetmap.core.expr.walk import placeholders
from targetmap.core.model import ConcreteTarget, ExpansionGroup, TargetTemplate, make_target
from targetmap.core.naming.names import check_target_name, generate_names
from targetmap.core.params.table import ParameterTable

if TYPE_CHECKING:
    from targetmap.core.context import BuildContext


logger = logging.getLogger(__name__)


def expand_targets(
    templates: Iterable[TargetTemplate],
    table: ParameterTable,
    *,
    names: Optional[Sequence[str]] = None,
    group: bool = False,
    context: Optional["BuildContext"] = None,
    options: Optional[BuildOptions] = None,
) -> list[ConcreteTarget] | list[ExpansionGroup]:
    """Expand ``templates`` over every row of ``table``.

    Returns ``len(templates) * len(table)`` targets, row-major (each row's
    templates in declaration order), or one ExpansionGroup per template when
    ``group=True``. With a ``context`` the new nodes are checked against and
    registered in it. An empty table yields no targets.
    """
    opts = options or (context.options if context is not None else DEFAULT_OPTIONS)
    tpls = list(templates)
    _check_templates(tpls, table)

    existing: frozenset[str] = context.names if context is not None else frozenset()

    generated: dict[str, list[str]] = {}
    owner: dict[str, str] = {}
    for t in tpls:
        t_names = generate_names(t.name, table, names, opts)
        for i, n in enumerate(t_names):
            if n in existing:
                raise NameConflictError(
                    code="E_NAME_CONFLICT",
                    message=f"target {n} already exists in the build",
                    path=f"table[{i}]",
                    template=t.name,
                )
            if n in owner:
                raise NameConflictError(
                    code="E_NAME_CONFLICT",
                    message=f"target {n} is produced by both {owner[n]} and {t.name}",
                    path=f"table[{i}]",
                    template=t.name,
                )
            owner[n] = t.name
        generated[t.name] = t_names

    known = set(existing) | set(owner)

    bind_columns: dict[str, list[Expr]] = table.as_columns()
    for t in tpls:
        bind_columns[t.name] = [Symbol(n) for n in generated[t.name]]

    row_cells = [tuple(zip(table.columns, cells)) for cells in table.rows]

    per_template: dict[str, list[ConcreteTarget]] = {}
    for k, t in enumerate(tpls):
        commands = _substitute_field(t.command, bind_columns, k, "command", t.name)
        if t.pattern is not None:
            patterns: list[Optional[Expr]] = list(_substitute_field(t.pattern, bind_columns, k, "pattern", t.name))
        else:
            patterns = [None] * len(table)

        nodes: list[ConcreteTarget] = []
        for i, (command, pattern) in enumerate(zip(commands, patterns)):
            name = generated[t.name][i]
            deps = infer_target_dependencies(command, pattern, known, exclude=(name,))
            nodes.append(make_target(name, command, deps, pattern, template=t.name, row=row_cells[i]))
        per_template[t.name] = nodes

    groups = [ExpansionGroup(template=t.name, targets=tuple(per_template[t.name])) for t in tpls]
    flat = [per_template[t.name][i] for i in range(len(table)) for t in tpls]

    if context is not None:
        context.register(flat, groups)

    logger.debug("expanded %d template(s) over %d row(s) into %d target(s)", len(tpls), len(table), len(flat))

    if group:
        return groups
    return flat


def _substitute_field(expr: Expr, columns: dict[str, list[Expr]], k: int, field: str, template: str) -> list[Expr]:
    try:
        return substitute_rows(expr, columns)
    except BuildError as e:
        raise dataclasses.replace(e, path=f"templates[{k}].{field}", template=template) from e


def _check_templates(templates: list[TargetTemplate], table: ParameterTable) -> None:
    seen: set[str] = set()
    for k, t in enumerate(templates):
        check_target_name(t.name, path=f"templates[{k}].name", template=t.name)
        if t.name in seen:
            raise NameConflictError(
                code="E_NAME_CONFLICT",
                message=f"duplicate template name: {t.name}",
                path=f"templates[{k}].name",
                template=t.name,
            )
        if table.has_column(t.name):
            raise NameConflictError(
                code="E_NAME_CONFLICT",
                message=f"template name {t.name} is also a table column",
                path=f"templates[{k}].name",
                template=t.name,
            )
        seen.add(t.name)

        for field, expr in (("command", t.command), ("pattern", t.pattern)):
            if expr is None:
                continue
            for ph in placeholders(expr):
                if not table.has_column(ph):
                    raise UnknownColumnError(
                        code="E_UNKNOWN_COLUMN",
                        message=(
                            f"placeholder {{{ph}}} is not a table column "
                            f"(columns: {', '.join(table.columns) or '<none>'})"
                        ),
                        path=f"templates[{k}].{field}",
                        template=t.name,
                    )
