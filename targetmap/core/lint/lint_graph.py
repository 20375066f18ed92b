from __future__ import annotations

from typing import Optional

from targetmap.core.errors import BuildValidationError
from targetmap.core.expr.nodes import Placeholder, Splice, Symbol
from targetmap.core.expr.walk import iter_nodes
from targetmap.core.model import TargetGraph


# Graph lint rules, run in addition to validate_graph:
# - L_SELF_REFERENCE: a target's command or pattern mentions its own name
# - L_PATTERN_NO_TARGETS: a pattern that references no target cannot fan out over anything
# - L_UNBOUND_PLACEHOLDER: a {column} or *splice survived into a built target


def lint_graph(graph: TargetGraph, *, file: Optional[str] = None) -> list[BuildValidationError]:
    errors: list[BuildValidationError] = []
    names = set(graph.nodes_by_name)

    for i, (name, node) in enumerate(graph.nodes_by_name.items()):
        fields = [("command", node.command)]
        if node.pattern is not None:
            fields.append(("pattern", node.pattern))

        for field, expr in fields:
            path = f"targets[{i}].{field}"
            symbols = [n for n in iter_nodes(expr) if isinstance(n, Symbol)]

            if any(s.name == name or s.root == name for s in symbols):
                errors.append(
                    BuildValidationError(
                        code="L_SELF_REFERENCE",
                        message=f"{name} references itself",
                        file=file,
                        path=path,
                    )
                )

            unbound = sorted({n.name for n in iter_nodes(expr) if isinstance(n, (Placeholder, Splice))})
            if unbound:
                errors.append(
                    BuildValidationError(
                        code="L_UNBOUND_PLACEHOLDER",
                        message=f"unbound placeholder(s): {', '.join(unbound)}",
                        file=file,
                        path=path,
                    )
                )

            if field == "pattern" and not any(s.name in names or s.root in names for s in symbols):
                errors.append(
                    BuildValidationError(
                        code="L_PATTERN_NO_TARGETS",
                        message="pattern references no target to branch over",
                        file=file,
                        path=path,
                    )
                )

    return sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
