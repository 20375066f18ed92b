from targetmap.core.errors import BuildValidationError, LengthMismatchError
from targetmap.core.expr.nodes import Literal, Symbol, sym
from targetmap.core.params.table import ParameterTable


def test_from_columns_keeps_column_and_row_order():
    t = ParameterTable.from_columns({"method": [sym("fit_glm"), sym("fit_gam")], "data_source": ["NIH", "NIAID"]})
    assert t.columns == ("method", "data_source")
    assert len(t) == 2
    assert t.row(1) == {"method": Symbol("fit_gam"), "data_source": Literal("NIAID")}
    assert list(t)[0]["data_source"] == Literal("NIH")


def test_from_columns_length_mismatch():
    try:
        ParameterTable.from_columns({"a": [1, 2, 3], "b": [1, 2]})
        assert False, "expected LengthMismatchError"
    except LengthMismatchError as e:
        assert e.code == "E_LENGTH_MISMATCH"
        assert e.path == "values"


def test_from_rows_requires_one_schema():
    try:
        ParameterTable.from_rows([{"a": 1}, {"b": 2}])
        assert False, "expected BuildValidationError"
    except BuildValidationError as e:
        assert e.code == "E_ROW_SCHEMA"
        assert e.path == "table[1]"


def test_column_names_must_be_identifiers():
    try:
        ParameterTable.from_columns({"data source": ["x"]})
        assert False, "expected BuildValidationError"
    except BuildValidationError as e:
        assert e.code == "E_COLUMN_NAME"


def test_cells_must_be_scalars_or_expressions():
    try:
        ParameterTable.from_columns({"a": [object()]})
        assert False, "expected BuildValidationError"
    except BuildValidationError as e:
        assert e.code == "E_INVALID_CELL"
        assert e.path == "values.a[0]"


def test_empty_table():
    assert len(ParameterTable.empty()) == 0
    assert len(ParameterTable.from_columns({"a": []})) == 0
    assert ParameterTable.from_rows([]).columns == ()
