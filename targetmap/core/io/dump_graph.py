from __future__ import annotations

from typing import Any

import yaml

from targetmap.core.expr.render import deparse
from targetmap.core.model import TargetGraph


GRAPH_SCHEMA_VERSION = "0.1.0"


def manifest_rows(graph: TargetGraph) -> list[dict[str, Any]]:
    """One row per node: name, command, pattern, dependencies, is_pattern. Creation order."""
    rows: list[dict[str, Any]] = []
    for name, node in graph.nodes_by_name.items():
        rows.append(
            {
                "name": name,
                "command": deparse(node.command),
                "pattern": deparse(node.pattern) if node.pattern is not None else None,
                "dependencies": graph.dependencies_of(name),
                "is_pattern": node.is_pattern,
            }
        )
    return rows


def graph_to_dict(graph: TargetGraph) -> dict[str, Any]:
    targets: list[dict[str, Any]] = []
    for row in manifest_rows(graph):
        node = graph.nodes_by_name[row["name"]]
        item: dict[str, Any] = {
            "name": row["name"],
            "kind": node.kind,
            "command": row["command"],
        }
        if row["pattern"] is not None:
            item["pattern"] = row["pattern"]
        item["depends_on"] = row["dependencies"]
        if node.template is not None:
            item["template"] = node.template
        targets.append(item)

    return {
        "schema_version": GRAPH_SCHEMA_VERSION,
        "roots": list(graph.roots),
        "targets": targets,
    }


def dump_graph_yaml(graph: TargetGraph, path: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(graph_to_dict(graph), f, sort_keys=False, default_flow_style=False, allow_unicode=True)
