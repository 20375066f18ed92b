"""Turn a loaded build document into a BuildContext.

Document shape::

    schema_version: "0.1.0"            # optional; checked when present
    options: {delimiter: "_"}          # optional
    pipeline:                          # steps run in order
      - target: {name: seed, command: "draw_seed()"}
      - map:
          values:                      # or rows: [{col: cell, ...}, ...]
            method: {symbols: [fit_glm, fit_gam]}
            data_source: [NIH, NIAID]
          names: [data_source]         # optional; default is a row digest
          targets:                     # or use: <template set>
            - {name: analysis, command: "method({data_source})", pattern: "map(seed)"}
      - combine: {name: combined, sources: [analysis], command: "concat(*_x)"}

Cells: scalars are literals, ``{symbol: x}`` is a symbol, ``{expr: "..."}``
any expression, lists become list displays.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Any, Optional

from targetmap.core.config import load_options
from targetmap.core.context import BuildContext
from targetmap.core.errors import BuildError, BuildValidationError
from targetmap.core.expr.nodes import LIST, Call, Expr, Literal, Symbol
from targetmap.core.expr.parse import parse_expr
from targetmap.core.io.load_build import SUPPORTED_SCHEMA_VERSIONS, TOP_LEVEL_KEYS
from targetmap.core.model import TargetGraph, TargetTemplate
from targetmap.core.params.table import ParameterTable


logger = logging.getLogger(__name__)

STEP_KINDS = ("target", "map", "combine")

_TARGET_KEYS = {"name", "command", "pattern"}
_MAP_KEYS = {"values", "rows", "names", "targets", "use"}
_COMBINE_KEYS = {"name", "sources", "command", "label_column", "use_names", "pattern"}


def build_graph(doc: dict[str, Any], *, templates: Optional[dict[str, list[TargetTemplate]]] = None) -> TargetGraph:
    return build_context(doc, templates=templates).graph()


def build_context(
    doc: dict[str, Any],
    *,
    templates: Optional[dict[str, list[TargetTemplate]]] = None,
) -> BuildContext:
    file = doc.get("__file__") if isinstance(doc.get("__file__"), str) else None

    unknown = sorted(str(k) for k in doc if k not in TOP_LEVEL_KEYS and k != "__file__")
    if unknown:
        raise BuildValidationError(
            code="E_UNKNOWN_KEY",
            message=f"unknown top-level key(s): {', '.join(unknown)} (allowed: {', '.join(TOP_LEVEL_KEYS)})",
            file=file,
            path=unknown[0],
        )

    version = doc.get("schema_version")
    if version is not None and version not in SUPPORTED_SCHEMA_VERSIONS:
        raise BuildValidationError(
            code="E_SCHEMA_VERSION",
            message=f"unsupported schema_version {version!r} (supported: {', '.join(SUPPORTED_SCHEMA_VERSIONS)})",
            file=file,
            path="schema_version",
        )

    options = load_options(doc.get("options"), file=file)
    ctx = BuildContext(options)

    pipeline = doc.get("pipeline")
    if not isinstance(pipeline, list):
        raise BuildValidationError(
            code="E_REQUIRED_FIELD",
            message="pipeline is required and must be an array",
            file=file,
            path="pipeline",
        )

    for i, step in enumerate(pipeline):
        step_path = f"pipeline[{i}]"
        if not isinstance(step, dict) or len(step) != 1 or next(iter(step)) not in STEP_KINDS:
            raise BuildValidationError(
                code="E_INVALID_STEP",
                message=f"each step must be a mapping with exactly one of: {', '.join(STEP_KINDS)}",
                file=file,
                path=step_path,
            )
        kind, body = next(iter(step.items()))
        body_path = f"{step_path}.{kind}"
        try:
            if not isinstance(body, dict):
                raise BuildValidationError(code="E_INVALID_TYPE", message=f"{kind} step must be a mapping")
            if kind == "target":
                _run_target(ctx, body)
            elif kind == "map":
                _run_map(ctx, body, templates or {})
            else:
                _run_combine(ctx, body)
        except BuildError as e:
            raise _locate(e, file, body_path) from e

    logger.debug("built %d target(s) from %d step(s)", len(ctx), len(pipeline))
    return ctx


def _locate(e: BuildError, file: Optional[str], prefix: str) -> BuildError:
    path = f"{prefix}.{e.path}" if e.path else prefix
    return dataclasses.replace(e, file=file, path=path)


def _check_keys(body: dict[str, Any], allowed: set[str]) -> None:
    unknown = sorted(str(k) for k in body if k not in allowed)
    if unknown:
        raise BuildValidationError(
            code="E_UNKNOWN_KEY",
            message=f"unknown key(s): {', '.join(unknown)} (allowed: {', '.join(sorted(allowed))})",
        )


def _require_str(body: dict[str, Any], key: str) -> str:
    value = body.get(key)
    if not isinstance(value, str) or not value.strip():
        raise BuildValidationError(
            code="E_REQUIRED_FIELD",
            message=f"{key} is required and must be a non-empty string",
            path=key,
        )
    return value.strip()


def _optional_str(body: dict[str, Any], key: str) -> Optional[str]:
    value = body.get(key)
    if value is not None and not isinstance(value, str):
        raise BuildValidationError(code="E_INVALID_TYPE", message=f"{key} must be a string", path=key)
    return value


def _template(body: dict[str, Any]) -> TargetTemplate:
    _check_keys(body, _TARGET_KEYS)
    name = _require_str(body, "name")
    command = _require_str(body, "command")
    pattern = _optional_str(body, "pattern")
    return TargetTemplate.parse(name, command, pattern)


def _run_target(ctx: BuildContext, body: dict[str, Any]) -> None:
    ctx.declare(_template(body))


def _run_map(ctx: BuildContext, body: dict[str, Any], library: dict[str, list[TargetTemplate]]) -> None:
    _check_keys(body, _MAP_KEYS)

    has_targets = "targets" in body
    has_use = "use" in body
    if has_targets == has_use:
        raise BuildValidationError(
            code="E_MAP_TEMPLATES",
            message="map needs exactly one of targets or use",
            path="targets",
        )

    templates: list[TargetTemplate] = []
    if has_use:
        set_name = _require_str(body, "use")
        if set_name not in library:
            known = ", ".join(sorted(library)) or "<none>"
            raise BuildValidationError(
                code="E_UNKNOWN_TEMPLATE_SET",
                message=f"unknown template set: {set_name} (choose one of: {known})",
                path="use",
            )
        templates = list(library[set_name])
    else:
        raw_targets = body.get("targets")
        if not isinstance(raw_targets, list) or not raw_targets:
            raise BuildValidationError(
                code="E_INVALID_TYPE",
                message="targets must be a non-empty array",
                path="targets",
            )
        for k, item in enumerate(raw_targets):
            if not isinstance(item, dict):
                raise BuildValidationError(code="E_INVALID_TYPE", message="target must be a mapping", path=f"targets[{k}]")
            try:
                templates.append(_template(item))
            except BuildError as e:
                raise _locate(e, None, f"targets[{k}]") from e

    table = _table(body)

    names = body.get("names")
    if names is not None and (not isinstance(names, list) or not all(isinstance(n, str) for n in names)):
        raise BuildValidationError(code="E_INVALID_TYPE", message="names must be an array of strings", path="names")

    ctx.expand(templates, table, names=names)


def _table(body: dict[str, Any]) -> ParameterTable:
    if "values" in body and "rows" in body:
        raise BuildValidationError(code="E_MAP_VALUES", message="use either values or rows, not both", path="values")

    if "rows" in body:
        rows = body["rows"]
        if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
            raise BuildValidationError(code="E_INVALID_TYPE", message="rows must be an array of mappings", path="rows")
        converted = [
            {str(col): _cell(cell, f"rows[{i}].{col}") for col, cell in row.items()} for i, row in enumerate(rows)
        ]
        return ParameterTable.from_rows(converted)

    values = body.get("values")
    if values is None:
        return ParameterTable.empty()
    return ParameterTable.from_columns(parse_columns(values))


def parse_columns(values: Any) -> dict[str, list[Expr]]:
    """Convert a `values:` mapping (column -> cells) into expression columns. Lengths are not checked."""
    if not isinstance(values, dict):
        raise BuildValidationError(code="E_INVALID_TYPE", message="values must be a mapping of column -> cells", path="values")

    columns: dict[str, list[Expr]] = {}
    for col, raw in values.items():
        col_path = f"values.{col}"
        if isinstance(raw, dict) and set(raw) == {"symbols"} and isinstance(raw["symbols"], list):
            columns[str(col)] = [_symbol(s, f"{col_path}.symbols[{i}]") for i, s in enumerate(raw["symbols"])]
        elif isinstance(raw, list):
            columns[str(col)] = [_cell(c, f"{col_path}[{i}]") for i, c in enumerate(raw)]
        else:
            raise BuildValidationError(
                code="E_INVALID_TYPE",
                message="a column must be an array of cells or {symbols: [...]}",
                path=col_path,
            )
    return columns


def _cell(raw: Any, path: str) -> Expr:
    if isinstance(raw, dict):
        if set(raw) == {"symbol"}:
            return _symbol(raw["symbol"], path)
        if set(raw) == {"expr"} and isinstance(raw["expr"], str):
            return parse_expr(raw["expr"], path=path)
        raise BuildValidationError(
            code="E_INVALID_CELL",
            message="mapping cells must be {symbol: name} or {expr: text}",
            path=path,
        )
    if isinstance(raw, list):
        return Call(func=Symbol(LIST), args=tuple(_cell(c, f"{path}[{i}]") for i, c in enumerate(raw)))
    if raw is None or isinstance(raw, (str, int, float, bool)):
        return Literal(raw)
    raise BuildValidationError(
        code="E_INVALID_CELL",
        message=f"unsupported cell type: {type(raw).__name__}",
        path=path,
    )


def _symbol(raw: Any, path: str) -> Symbol:
    if not isinstance(raw, str) or not all(part.isidentifier() for part in raw.split(".")):
        raise BuildValidationError(
            code="E_INVALID_CELL",
            message=f"symbol must be a (dotted) identifier, got {raw!r}",
            path=path,
        )
    return Symbol(raw)


def _run_combine(ctx: BuildContext, body: dict[str, Any]) -> None:
    _check_keys(body, _COMBINE_KEYS)
    name = _require_str(body, "name")

    sources = body.get("sources")
    if not isinstance(sources, list) or not all(isinstance(s, str) for s in sources):
        raise BuildValidationError(
            code="E_INVALID_TYPE",
            message="sources must be an array of target or template names",
            path="sources",
        )

    use_names = body.get("use_names", False)
    if not isinstance(use_names, bool):
        raise BuildValidationError(code="E_INVALID_TYPE", message="use_names must be a boolean", path="use_names")

    ctx.combine(
        name,
        sources,
        _optional_str(body, "command"),
        label_column=_optional_str(body, "label_column"),
        use_names=use_names,
        pattern=_optional_str(body, "pattern"),
    )
