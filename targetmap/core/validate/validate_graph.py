from __future__ import annotations

from collections import Counter
from typing import Iterable, Optional

from targetmap.core.errors import BuildValidationError
from targetmap.core.model import TargetGraph


def validate_graph(graph: TargetGraph, *, file: Optional[str] = None) -> list[BuildValidationError]:
    """Check referential integrity and acyclicity of a built graph.

    Returns errors sorted by (file, path, code); an empty list means the graph
    can be handed to an executor.
    """
    errors: list[BuildValidationError] = []
    index = {name: i for i, name in enumerate(graph.nodes_by_name)}

    deps_by_name: dict[str, list[str]] = {name: [] for name in graph.nodes_by_name}
    for node, dep in graph.edges:
        if node not in index:
            errors.append(
                BuildValidationError(
                    code="E_UNKNOWN_NODE",
                    message=f"edge starts at unknown target: {node}",
                    file=file,
                    path="edges",
                )
            )
            continue
        if dep not in index:
            errors.append(
                BuildValidationError(
                    code="E_UNKNOWN_DEPENDENCY",
                    message=f"depends_on references unknown target: {dep}",
                    file=file,
                    path=f"targets[{index[node]}].depends_on",
                )
            )
            continue
        deps_by_name[node].append(dep)

    for name, msg in _detect_cycles(deps_by_name):
        errors.append(
            BuildValidationError(
                code="E_CYCLE_DETECTED",
                message=msg,
                file=file,
                path=f"targets[{index[name]}].depends_on",
            )
        )

    return _sorted(errors)


def summarize_graph(graph: TargetGraph) -> str:
    counts = Counter(n.kind for n in graph.nodes_by_name.values())
    return (
        f"OK: {len(graph.nodes_by_name)} targets (static={counts.get('static', 0)}, "
        f"pattern={counts.get('pattern', 0)}), {len(graph.edges)} edges"
        + "\nRoots: "
        + ", ".join(graph.roots)
    )


def _detect_cycles(deps_by_name: dict[str, list[str]]) -> list[tuple[str, str]]:
    WHITE, GRAY, BLACK = 0, 1, 2
    state: dict[str, int] = {name: WHITE for name in deps_by_name}
    stack: list[str] = []
    emitted: set[str] = set()
    out: list[tuple[str, str]] = []

    def dfs(u: str) -> None:
        state[u] = GRAY
        stack.append(u)
        for v in deps_by_name.get(u, []):
            if state[v] == GRAY:
                cycle = stack[stack.index(v):] + [v]
                key = "->".join(cycle)
                if key not in emitted:
                    emitted.add(key)
                    out.append((u, "dependency cycle detected: " + " -> ".join(cycle)))
            elif state[v] == WHITE:
                dfs(v)
        stack.pop()
        state[u] = BLACK

    for name in list(state):
        if state[name] == WHITE:
            dfs(name)

    return out


def _sorted(errors: Iterable[BuildValidationError]) -> list[BuildValidationError]:
    return sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
