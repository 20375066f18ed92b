from targetmap.core.errors import BuildValidationError, LengthMismatchError
from targetmap.core.expand.eval_rows import substitute_rows, substitute_targets
from targetmap.core.expr.nodes import Placeholder, sym
from targetmap.core.expr.parse import parse_expr
from targetmap.core.expr.render import deparse


def test_substitute_rows_one_expression_per_row():
    out = substitute_rows(
        parse_expr("method({data_source})"),
        {"method": [sym("fit_glm"), sym("fit_gam")], "data_source": ["NIH", "NIAID"]},
    )
    assert [deparse(e) for e in out] == ["fit_glm('NIH')", "fit_gam('NIAID')"]


def test_substitute_rows_length_mismatch():
    try:
        substitute_rows(parse_expr("f(a, b)"), {"a": [1, 2, 3], "b": [1, 2]})
        assert False, "expected LengthMismatchError"
    except LengthMismatchError as e:
        assert e.code == "E_LENGTH_MISMATCH"
        assert "a=3" in e.message and "b=2" in e.message


def test_substitute_rows_leaves_unbound_placeholders_for_later():
    out = substitute_rows(parse_expr("f({a}, {b})"), {"a": [1]})
    assert out[0].args[1] == Placeholder("b")


def test_substitute_rows_without_columns_is_empty():
    assert substitute_rows(parse_expr("f(x)"), {}) == []


def test_substitute_targets_produces_names():
    out = substitute_targets(
        "target_name",
        "download({url})",
        {"target_name": [sym("raw_a"), "raw_b"], "url": ["https://a", "https://b"]},
    )
    assert [t.name for t in out] == ["raw_a", "raw_b"]
    assert deparse(out[1].command) == "download('https://b')"
    assert out[0].pattern is None


def test_substitute_targets_rejects_non_name_outputs():
    try:
        substitute_targets("n", "f()", {"n": [1]})
        assert False, "expected BuildValidationError"
    except BuildValidationError as e:
        assert e.code == "E_TARGET_NAME"
        assert e.path == "values[0]"
