from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Sequence

from targetmap.core.errors import BuildValidationError, LengthMismatchError
from targetmap.core.expr.nodes import Expr, as_cell


Row = Mapping[str, Expr]


@dataclass(frozen=True)
class ParameterTable:
    """Ordered rows of column -> cell bindings sharing one column schema.

    Cells are expressions: ``Literal`` for data values, ``Symbol`` for
    references to targets or functions. Use ``from_rows``/``from_columns``
    rather than the constructor so the schema is checked.
    """

    columns: tuple[str, ...]
    rows: tuple[tuple[Expr, ...], ...]

    @classmethod
    def from_columns(cls, columns: Mapping[str, Sequence[Any]]) -> "ParameterTable":
        names = tuple(columns.keys())
        _check_column_names(names)
        lengths = {name: len(values) for name, values in columns.items()}
        if len(set(lengths.values())) > 1:
            detail = ", ".join(f"{k}={v}" for k, v in lengths.items())
            raise LengthMismatchError(
                code="E_LENGTH_MISMATCH",
                message=f"all columns must have the same length ({detail})",
                path="values",
            )
        n = next(iter(lengths.values()), 0)
        rows = tuple(
            tuple(_cell(columns[name][i], f"values.{name}[{i}]") for name in names) for i in range(n)
        )
        return cls(columns=names, rows=rows)

    @classmethod
    def from_rows(cls, rows: Sequence[Mapping[str, Any]], columns: Sequence[str] | None = None) -> "ParameterTable":
        if columns is None:
            names = tuple(rows[0].keys()) if rows else ()
        else:
            names = tuple(columns)
        _check_column_names(names)
        expected = set(names)
        out: list[tuple[Expr, ...]] = []
        for i, row in enumerate(rows):
            got = set(row.keys())
            if got != expected:
                missing = sorted(expected - got)
                extra = sorted(got - expected)
                raise BuildValidationError(
                    code="E_ROW_SCHEMA",
                    message=f"row does not match table columns (missing={missing}, extra={extra})",
                    path=f"table[{i}]",
                )
            out.append(tuple(_cell(row[name], f"table[{i}].{name}") for name in names))
        return cls(columns=names, rows=tuple(out))

    @classmethod
    def empty(cls) -> "ParameterTable":
        return cls(columns=(), rows=())

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[dict[str, Expr]]:
        for i in range(len(self.rows)):
            yield self.row(i)

    def row(self, index: int) -> dict[str, Expr]:
        return dict(zip(self.columns, self.rows[index]))

    def column(self, name: str) -> list[Expr]:
        idx = self.columns.index(name)
        return [r[idx] for r in self.rows]

    def as_columns(self) -> dict[str, list[Expr]]:
        return {name: self.column(name) for name in self.columns}

    def has_column(self, name: str) -> bool:
        return name in self.columns


def _check_column_names(names: Sequence[str]) -> None:
    seen: set[str] = set()
    for name in names:
        if not isinstance(name, str) or not name.isidentifier():
            raise BuildValidationError(
                code="E_COLUMN_NAME",
                message=f"column names must be identifiers, got {name!r}",
                path="values",
            )
        if name in seen:
            raise BuildValidationError(
                code="E_COLUMN_NAME",
                message=f"duplicate column: {name}",
                path="values",
            )
        seen.add(name)


def _cell(value: Any, path: str) -> Expr:
    try:
        return as_cell(value)
    except TypeError as e:
        raise BuildValidationError(code="E_INVALID_CELL", message=str(e), path=path) from e
