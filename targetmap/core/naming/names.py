from __future__ import annotations

import hashlib
import keyword
import logging
import re
from typing import Mapping, Optional, Sequence

from targetmap.core.config import DEFAULT_OPTIONS, BuildOptions
from targetmap.core.errors import BuildValidationError, NamingCollisionError, UnknownColumnError
from targetmap.core.expr.nodes import Expr, Literal, Symbol
from targetmap.core.expr.render import deparse
from targetmap.core.params.table import ParameterTable


logger = logging.getLogger(__name__)

_INVALID_RUN = re.compile(r"[^A-Za-z0-9_]+")
_UNDERSCORES = re.compile(r"_+")


def canonical_token(cell: Expr) -> str:
    """Turn a cell into an identifier-safe token.

    Steps:
    1. string literals use their raw text, symbols their name, anything else its source text
    2. replace runs of non [A-Za-z0-9_] characters with underscore
    3. collapse multiple underscores
    4. strip underscores at the ends
    Case is preserved. An empty result becomes ``empty``.
    """
    if isinstance(cell, Literal) and isinstance(cell.value, str):
        text = cell.value
    elif isinstance(cell, Symbol):
        text = cell.name
    else:
        text = deparse(cell)

    text = _INVALID_RUN.sub("_", text)
    text = _UNDERSCORES.sub("_", text)
    text = text.strip("_")
    return text or "empty"


def row_digest(index: int, row: Mapping[str, Expr], length: int) -> str:
    """Deterministic hex digest of a row and its position."""
    h = hashlib.blake2b(digest_size=16)
    h.update(str(index).encode("utf-8"))
    for col, cell in row.items():
        h.update(b"\x1f")
        h.update(col.encode("utf-8"))
        h.update(b"=")
        h.update(deparse(cell).encode("utf-8"))
    return h.hexdigest()[:length]


def row_suffix(
    index: int,
    row: Mapping[str, Expr],
    selected: Sequence[str],
    options: BuildOptions = DEFAULT_OPTIONS,
) -> str:
    if not selected:
        return row_digest(index, row, options.hash_length)
    return options.delimiter.join(canonical_token(row[c]) for c in selected)


def select_name_columns(
    table: ParameterTable,
    name_columns: Optional[Sequence[str]],
    *,
    template: Optional[str] = None,
) -> list[str]:
    """Validate ``name_columns`` against the table and return them in table column order."""
    if not name_columns:
        return []
    for c in name_columns:
        if not table.has_column(c):
            raise UnknownColumnError(
                code="E_UNKNOWN_COLUMN",
                message=f"name column not in table: {c} (columns: {', '.join(table.columns) or '<none>'})",
                path="names",
                template=template,
            )
    wanted = set(name_columns)
    return [c for c in table.columns if c in wanted]


def generate_names(
    template_name: str,
    table: ParameterTable,
    name_columns: Optional[Sequence[str]] = None,
    options: BuildOptions = DEFAULT_OPTIONS,
) -> list[str]:
    """Return one target name per table row for ``template_name``.

    Raises NamingCollisionError when two rows canonicalize to the same name.
    """
    selected = select_name_columns(table, name_columns, template=template_name)

    names: list[str] = []
    first_row: dict[str, int] = {}
    for i, row in enumerate(table):
        name = f"{template_name}{options.delimiter}{row_suffix(i, row, selected, options)}"
        if name in first_row:
            raise NamingCollisionError(
                code="E_NAMING_COLLISION",
                message=(
                    f"rows {first_row[name]} and {i} both produce target name {name} "
                    f"(name columns: {', '.join(selected)})"
                ),
                path=f"table[{i}]",
                template=template_name,
            )
        first_row[name] = i
        names.append(name)

    logger.debug("generated %d names for template %s", len(names), template_name)
    return names


def check_target_name(name: object, *, path: str, template: Optional[str] = None) -> str:
    """Target names must be plain (non-keyword, non-dotted) identifiers."""
    if not isinstance(name, str) or not name.isidentifier() or keyword.iskeyword(name):
        raise BuildValidationError(
            code="E_TARGET_NAME",
            message=f"target name must be an identifier, got {name!r}",
            path=path,
            template=template,
        )
    return name
