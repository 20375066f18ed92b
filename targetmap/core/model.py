from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Literal, Optional

from targetmap.core.expr.nodes import Expr
from targetmap.core.expr.parse import parse_expr


NodeKind = Literal["static", "pattern"]


@dataclass(frozen=True)
class TargetTemplate:
    name: str
    command: Expr
    pattern: Optional[Expr] = None

    @classmethod
    def parse(cls, name: str, command: str, pattern: Optional[str] = None) -> "TargetTemplate":
        return cls(
            name=name,
            command=parse_expr(command, path="command", template=name),
            pattern=parse_expr(pattern, path="pattern", template=name) if pattern is not None else None,
        )


@dataclass(frozen=True)
class ConcreteTarget:
    name: str
    command: Expr
    dependencies: tuple[str, ...]
    pattern: Optional[Expr] = None

    # Provenance: originating template and row bindings (None/() for declared and combined targets).
    template: Optional[str] = None
    row: tuple[tuple[str, Expr], ...] = ()

    @property
    def kind(self) -> NodeKind:
        return "pattern" if self.pattern is not None else "static"

    @property
    def is_pattern(self) -> bool:
        return self.pattern is not None

    def row_value(self, column: str) -> Optional[Expr]:
        for k, v in self.row:
            if k == column:
                return v
        return None


class StaticNode(ConcreteTarget):
    pass


class PatternNode(ConcreteTarget):
    pass


def make_target(
    name: str,
    command: Expr,
    dependencies: tuple[str, ...],
    pattern: Optional[Expr] = None,
    *,
    template: Optional[str] = None,
    row: tuple[tuple[str, Expr], ...] = (),
) -> ConcreteTarget:
    cls = PatternNode if pattern is not None else StaticNode
    return cls(
        name=name,
        command=command,
        dependencies=dependencies,
        pattern=pattern,
        template=template,
        row=row,
    )


@dataclass(frozen=True)
class ExpansionGroup:
    template: str
    targets: tuple[ConcreteTarget, ...]

    @property
    def names(self) -> list[str]:
        return [t.name for t in self.targets]

    def __len__(self) -> int:
        return len(self.targets)

    def __iter__(self) -> Iterator[ConcreteTarget]:
        return iter(self.targets)


@dataclass(frozen=True)
class TargetGraph:
    nodes_by_name: dict[str, ConcreteTarget]
    edges: list[tuple[str, str]]  # (node_name, depends_on_name)
    roots: list[str]

    def dependencies_of(self, name: str) -> list[str]:
        return sorted(dep for node, dep in self.edges if node == name)
