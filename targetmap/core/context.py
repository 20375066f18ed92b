from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from targetmap.core.config import DEFAULT_OPTIONS, BuildOptions
from targetmap.core.deps.infer import infer_target_dependencies
from targetmap.core.errors import NameConflictError, UnknownColumnError, UnknownTargetError
from targetmap.core.expand.combine_targets import Source, combine_targets
from targetmap.core.expand.map_targets import expand_targets
from targetmap.core.expr.nodes import Expr
from targetmap.core.expr.parse import parse_expr
from targetmap.core.expr.walk import placeholders
from targetmap.core.model import ConcreteTarget, ExpansionGroup, TargetGraph, TargetTemplate, make_target
from targetmap.core.naming.names import check_target_name
from targetmap.core.params.table import ParameterTable


logger = logging.getLogger(__name__)


class BuildContext:
    """The graph being assembled by one build.

    Holds every node created so far (in creation order) and the expansion
    groups keyed by template name. Its names are the "known names" used for
    dependency inference by later declarations, expansions and combinations.
    Nodes are never replaced or removed once registered.
    """

    def __init__(self, options: BuildOptions = DEFAULT_OPTIONS) -> None:
        self.options = options
        self._nodes: dict[str, ConcreteTarget] = {}
        self._groups: dict[str, list[ExpansionGroup]] = {}

    @property
    def names(self) -> frozenset[str]:
        return frozenset(self._nodes)

    @property
    def nodes(self) -> list[ConcreteTarget]:
        return list(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def get(self, name: str) -> ConcreteTarget:
        try:
            return self._nodes[name]
        except KeyError:
            raise UnknownTargetError(
                code="E_UNKNOWN_TARGET",
                message=f"no target named {name}",
                path="name",
            ) from None

    def groups(self, template: str) -> list[ExpansionGroup]:
        return list(self._groups.get(template, []))

    def resolve(self, ref: str, *, path: str = "sources") -> list[ConcreteTarget]:
        """A target name resolves to that target; a template name to all of its expanded targets."""
        if ref in self._nodes:
            return [self._nodes[ref]]
        if ref in self._groups:
            return [t for g in self._groups[ref] for t in g.targets]
        raise UnknownTargetError(
            code="E_UNKNOWN_TARGET",
            message=f"{ref} is neither a target nor an expanded template",
            path=path,
        )

    def register(self, nodes: Sequence[ConcreteTarget], groups: Iterable[ExpansionGroup] = ()) -> None:
        """Add nodes (all or none) and remember their groups."""
        incoming: set[str] = set()
        for node in nodes:
            if node.name in self._nodes or node.name in incoming:
                raise NameConflictError(
                    code="E_NAME_CONFLICT",
                    message=f"target {node.name} already exists in the build",
                    path="name",
                    template=node.template,
                )
            incoming.add(node.name)
        for node in nodes:
            self._nodes[node.name] = node
        for g in groups:
            self._groups.setdefault(g.template, []).append(g)

    def declare(
        self,
        target: TargetTemplate | str,
        command: Optional[str | Expr] = None,
        pattern: Optional[str | Expr] = None,
    ) -> ConcreteTarget:
        """Add one unbranched target. Its dependencies are inferred against the current names."""
        if isinstance(target, TargetTemplate):
            tpl = target
        else:
            if command is None:
                raise TypeError("declare(name, command) requires a command")
            tpl = TargetTemplate(
                name=target,
                command=parse_expr(command, path="command", template=target) if isinstance(command, str) else command,
                pattern=parse_expr(pattern, path="pattern", template=target) if isinstance(pattern, str) else pattern,
            )

        check_target_name(tpl.name, path="name", template=tpl.name)
        for field, expr in (("command", tpl.command), ("pattern", tpl.pattern)):
            if expr is None:
                continue
            unbound = placeholders(expr)
            if unbound:
                raise UnknownColumnError(
                    code="E_UNKNOWN_COLUMN",
                    message=f"placeholder {{{unbound[0]}}} has no table to bind it",
                    path=field,
                    template=tpl.name,
                )

        deps = infer_target_dependencies(tpl.command, tpl.pattern, self.names, exclude=(tpl.name,))
        node = make_target(tpl.name, tpl.command, deps, tpl.pattern)
        self.register([node])
        logger.debug("declared %s (%d dependencies)", node.name, len(deps))
        return node

    def expand(
        self,
        templates: Iterable[TargetTemplate],
        table: ParameterTable,
        *,
        names: Optional[Sequence[str]] = None,
        group: bool = False,
    ) -> list[ConcreteTarget] | list[ExpansionGroup]:
        return expand_targets(templates, table, names=names, group=group, context=self)

    def combine(
        self,
        name: str,
        sources: Iterable[Source],
        command: Optional[str | Expr] = None,
        *,
        label_column: Optional[str] = None,
        use_names: bool = False,
        pattern: Optional[str | Expr] = None,
    ) -> ConcreteTarget:
        return combine_targets(
            name,
            sources,
            command,
            label_column=label_column,
            use_names=use_names,
            pattern=pattern,
            context=self,
        )

    def graph(self) -> TargetGraph:
        """Freeze the node set into a TargetGraph.

        Edges are the nodes' own dependencies plus a re-inference against the
        final name set, so a reference to a target declared later is kept.
        """
        all_names = frozenset(self._nodes)
        edges: list[tuple[str, str]] = []
        has_deps: set[str] = set()
        for name, node in self._nodes.items():
            late = infer_target_dependencies(node.command, node.pattern, all_names, exclude=(name,))
            deps = sorted(set(node.dependencies) | set(late))
            for dep in deps:
                edges.append((name, dep))
            if deps:
                has_deps.add(name)

        roots = sorted(n for n in self._nodes if n not in has_deps)
        return TargetGraph(nodes_by_name=dict(self._nodes), edges=edges, roots=roots)
