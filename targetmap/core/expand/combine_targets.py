"""Aggregation: one new target that depends on and references a group of targets."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Optional, Union

from targetmap.core.config import DEFAULT_OPTIONS, BuildOptions
from targetmap.core.deps.infer import infer_target_dependencies
from targetmap.core.errors import (
    BuildValidationError,
    EmptyGroupError,
    NameConflictError,
    NamingCollisionError,
    UnknownColumnError,
    UnknownTargetError,
)
from targetmap.core.expr.nodes import DICT, LIST, Call, Expr, Splice, Symbol
from targetmap.core.expr.parse import parse_expr
from targetmap.core.expr.walk import is_keyword_name, keyword_splices, mentions, substitute
from targetmap.core.model import ConcreteTarget, ExpansionGroup, make_target
from targetmap.core.naming.names import canonical_token, check_target_name

if TYPE_CHECKING:
    from targetmap.core.context import BuildContext


logger = logging.getLogger(__name__)

Source = Union[ConcreteTarget, ExpansionGroup, str]


def default_reducer(options: BuildOptions = DEFAULT_OPTIONS, *, labelled: bool = False) -> Expr:
    """``[*_x]``, or ``{**_x}`` when sources are labelled."""
    return Call(func=Symbol(DICT if labelled else LIST), args=(Splice(options.combine_placeholder),))


def combine_targets(
    name: str,
    sources: Iterable[Source],
    command: Optional[str | Expr] = None,
    *,
    label_column: Optional[str] = None,
    use_names: bool = False,
    pattern: Optional[str | Expr] = None,
    context: Optional["BuildContext"] = None,
    options: Optional[BuildOptions] = None,
) -> ConcreteTarget:
    """Build a target whose command reduces every source target.

    ``sources`` may mix targets, expansion groups and, when a context is given,
    names of targets or of expanded templates. The reducer's collection
    placeholder (``_x`` by default) becomes ``[a, b, ...]``; written as a
    splice (``*_x``) the source symbols become arguments of the enclosing call.
    With ``label_column`` or ``use_names`` the collection is a dict keyed by
    label instead, and splicing it into a call passes ``label=target``
    keyword arguments (labels must then be identifiers).
    """
    opts = options or (context.options if context is not None else DEFAULT_OPTIONS)
    check_target_name(name, path="name", template=name)

    if label_column is not None and use_names:
        raise BuildValidationError(
            code="E_COMBINE_LABELS",
            message="use either label_column or use_names, not both",
            path="label_column",
            template=name,
        )

    targets = _flatten_sources(name, sources, context)
    if not targets:
        raise EmptyGroupError(
            code="E_EMPTY_GROUP",
            message="combine needs at least one source target",
            path="sources",
            template=name,
        )

    source_names = [t.name for t in targets]
    if name in source_names or (context is not None and name in context.names):
        raise NameConflictError(
            code="E_NAME_CONFLICT",
            message=f"target {name} already exists in the build",
            path="name",
            template=name,
        )

    placeholder = opts.combine_placeholder
    if command is None:
        reducer = default_reducer(opts, labelled=label_column is not None or use_names)
    elif isinstance(command, str):
        reducer = parse_expr(command, path="command", template=name)
    else:
        reducer = command
    if not mentions(reducer, placeholder):
        raise BuildValidationError(
            code="E_COMBINE_NO_PLACEHOLDER",
            message=f"reducer must reference the source collection {placeholder}",
            path="command",
            template=name,
        )

    if isinstance(pattern, str):
        pattern_expr: Optional[Expr] = parse_expr(pattern, path="pattern", template=name)
    else:
        pattern_expr = pattern

    refs = [Symbol(n) for n in source_names]
    if label_column is not None or use_names:
        as_keywords = any(placeholder in keyword_splices(e) for e in (reducer, pattern_expr) if e is not None)
        labels = _labels(name, targets, label_column, as_keywords=as_keywords)
        collection: Expr = Call(func=Symbol(DICT), kwargs=tuple(zip(labels, refs)))
    else:
        collection = Call(func=Symbol(LIST), args=tuple(refs))

    bindings = {placeholder: collection}
    cmd = substitute(reducer, bindings)
    pat = substitute(pattern_expr, bindings) if pattern_expr is not None else None

    known = set(source_names)
    if context is not None:
        known |= context.names
    inferred = infer_target_dependencies(cmd, pat, known, exclude=(name,))
    deps = tuple(sorted(set(inferred) | set(source_names)))

    node = make_target(name, cmd, deps, pat)
    if context is not None:
        context.register([node])

    logger.debug("combined %d target(s) into %s", len(source_names), name)
    return node


def _flatten_sources(
    name: str,
    sources: Iterable[Source],
    context: Optional["BuildContext"],
) -> list[ConcreteTarget]:
    out: list[ConcreteTarget] = []
    seen: set[str] = set()

    def add(t: ConcreteTarget) -> None:
        if t.name not in seen:
            seen.add(t.name)
            out.append(t)

    for i, src in enumerate(sources):
        if isinstance(src, ConcreteTarget):
            add(src)
        elif isinstance(src, ExpansionGroup):
            for t in src.targets:
                add(t)
        elif isinstance(src, str):
            if context is None:
                raise UnknownTargetError(
                    code="E_UNKNOWN_TARGET",
                    message=f"cannot resolve source {src!r} without a build context",
                    path=f"sources[{i}]",
                    template=name,
                )
            for t in context.resolve(src, path=f"sources[{i}]"):
                add(t)
        else:
            raise BuildValidationError(
                code="E_INVALID_SOURCE",
                message=f"sources must be targets, groups or names (type={type(src).__name__})",
                path=f"sources[{i}]",
                template=name,
            )
    return out


def _labels(
    name: str,
    targets: list[ConcreteTarget],
    label_column: Optional[str],
    *,
    as_keywords: bool = False,
) -> list[str]:
    labels: list[str] = []
    first: dict[str, str] = {}
    for i, t in enumerate(targets):
        if label_column is None:
            label = t.name
        else:
            cell = t.row_value(label_column)
            if cell is None:
                raise UnknownColumnError(
                    code="E_UNKNOWN_COLUMN",
                    message=f"source {t.name} has no column {label_column}",
                    path=f"sources[{i}]",
                    template=name,
                )
            label = canonical_token(cell)
        if as_keywords and not is_keyword_name(label):
            raise BuildValidationError(
                code="E_INVALID_LABEL",
                message=f"label {label!r} of {t.name} cannot be used as a keyword argument",
                path=f"sources[{i}]",
                template=name,
            )
        if label in first:
            raise NamingCollisionError(
                code="E_DUPLICATE_LABEL",
                message=f"sources {first[label]} and {t.name} share the label {label}",
                path=f"sources[{i}]",
                template=name,
            )
        first[label] = t.name
        labels.append(label)
    return labels
