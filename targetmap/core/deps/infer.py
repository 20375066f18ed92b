from __future__ import annotations

from typing import AbstractSet, Iterable, Optional

from targetmap.core.expr.nodes import Expr, Symbol
from targetmap.core.expr.walk import iter_nodes


def infer_dependencies(expr: Optional[Expr], known_names: AbstractSet[str]) -> frozenset[str]:
    """Names in ``known_names`` that ``expr`` mentions anywhere.

    Conservative: no scoping or shadowing analysis, any syntactic match counts.
    A dotted symbol matches on its full name or on its root (``fit.coef``
    depends on ``fit``).
    """
    if expr is None or not known_names:
        return frozenset()
    found: set[str] = set()
    for node in iter_nodes(expr):
        if not isinstance(node, Symbol):
            continue
        if node.name in known_names:
            found.add(node.name)
        elif node.root in known_names:
            found.add(node.root)
    return frozenset(found)


def infer_target_dependencies(
    command: Expr,
    pattern: Optional[Expr],
    known_names: AbstractSet[str],
    *,
    exclude: Iterable[str] = (),
) -> tuple[str, ...]:
    """Sorted dependencies of a target, command and pattern scanned alike."""
    deps = infer_dependencies(command, known_names) | infer_dependencies(pattern, known_names)
    return tuple(sorted(deps - set(exclude)))
