import re

from targetmap.core.context import BuildContext
from targetmap.core.errors import BuildValidationError, NameConflictError, UnknownColumnError
from targetmap.core.expand.map_targets import expand_targets
from targetmap.core.expr.nodes import sym
from targetmap.core.expr.render import deparse
from targetmap.core.model import ExpansionGroup, PatternNode, StaticNode, TargetTemplate
from targetmap.core.params.table import ParameterTable


def _methods_table() -> ParameterTable:
    return ParameterTable.from_columns({"method": [sym("M1"), sym("M2")], "data_source": ["NIH", "NIAID"]})


def test_one_template_two_rows_default_names():
    tpl = TargetTemplate.parse("analysis", "run_analysis(method, data_source)")
    targets = expand_targets([tpl], _methods_table())

    assert len(targets) == 2
    assert targets[0].name != targets[1].name
    assert all(re.fullmatch(r"analysis_[0-9a-f]{8}", t.name) for t in targets)
    assert deparse(targets[0].command) == "run_analysis(M1, 'NIH')"
    assert deparse(targets[1].command) == "run_analysis(M2, 'NIAID')"
    assert all(t.dependencies == () for t in targets)
    assert all(isinstance(t, StaticNode) for t in targets)


def test_name_columns_give_readable_names():
    tpls = [
        TargetTemplate.parse("analysis", "run_analysis(method, data_source)"),
        TargetTemplate.parse("summary", "summarize(data_source)"),
    ]
    targets = expand_targets(tpls, _methods_table(), names=["data_source"])
    assert [t.name for t in targets] == ["analysis_NIH", "summary_NIH", "analysis_NIAID", "summary_NIAID"]


def test_siblings_bind_to_same_row_and_patterns_are_substituted():
    ctx = BuildContext()
    ctx.declare("random_seed", "draw_seeds(10)")
    tpls = [
        TargetTemplate.parse("analysis", "method(data, seed=random_seed)", "map(random_seed)"),
        TargetTemplate.parse("summary", "summarize(analysis)", "map(analysis)"),
    ]
    table = ParameterTable.from_columns({"method": [sym("M1"), sym("M2")]})
    targets = ctx.expand(tpls, table, names=["method"])

    by_name = {t.name: t for t in targets}
    assert list(by_name) == ["analysis_M1", "summary_M1", "analysis_M2", "summary_M2"]

    for n in ["analysis_M1", "analysis_M2"]:
        assert isinstance(by_name[n], PatternNode)
        assert deparse(by_name[n].pattern) == "map(random_seed)"
        assert by_name[n].dependencies == ("random_seed",)
    assert deparse(by_name["analysis_M2"].command) == "M2(data, seed=random_seed)"

    assert deparse(by_name["summary_M1"].command) == "summarize(analysis_M1)"
    assert deparse(by_name["summary_M1"].pattern) == "map(analysis_M1)"
    assert deparse(by_name["summary_M2"].pattern) == "map(analysis_M2)"
    assert by_name["summary_M2"].dependencies == ("analysis_M2",)


def test_every_template_times_every_row_with_unique_names():
    table = ParameterTable.from_columns({"x": [1, 2, 3, 4]})
    tpls = [TargetTemplate.parse(n, f"{n}_fn(x)") for n in ["a", "b", "c"]]
    targets = expand_targets(tpls, table)
    assert len(targets) == 12
    assert len({t.name for t in targets}) == 12


def test_expansion_is_deterministic():
    tpls = [TargetTemplate.parse("analysis", "run(method, {data_source})")]
    first = expand_targets(tpls, _methods_table())
    second = expand_targets(tpls, _methods_table())
    assert first == second


def test_row_provenance_is_recorded():
    tpl = TargetTemplate.parse("analysis", "run(method)")
    t = expand_targets([tpl], _methods_table(), names=["data_source"])[1]
    assert t.template == "analysis"
    assert deparse(t.row_value("data_source")) == "'NIAID'"
    assert t.row_value("nope") is None


def test_grouped_output_is_per_template():
    tpls = [TargetTemplate.parse("a", "f(x)"), TargetTemplate.parse("b", "g(a)")]
    groups = expand_targets(tpls, ParameterTable.from_columns({"x": [1, 2]}), names=["x"], group=True)
    assert [g.template for g in groups] == ["a", "b"]
    assert groups[0].names == ["a_1", "a_2"]
    assert groups[1].names == ["b_1", "b_2"]
    assert all(isinstance(g, ExpansionGroup) for g in groups)


def test_empty_table_expands_to_nothing():
    tpl = TargetTemplate.parse("a", "f(x)")
    table = ParameterTable.from_columns({"x": []})
    assert expand_targets([tpl], table) == []
    groups = expand_targets([tpl], table, group=True)
    assert len(groups) == 1
    assert len(groups[0]) == 0


def test_unknown_placeholder_column():
    tpl = TargetTemplate.parse("a", "fit({dataset})")
    try:
        expand_targets([tpl], ParameterTable.from_columns({"x": [1]}))
        assert False, "expected UnknownColumnError"
    except UnknownColumnError as e:
        assert e.code == "E_UNKNOWN_COLUMN"
        assert e.template == "a"
        assert e.path == "templates[0].command"


def test_unknown_placeholder_in_pattern():
    tpl = TargetTemplate.parse("a", "fit(x)", "map({dataset})")
    try:
        expand_targets([tpl], ParameterTable.from_columns({"x": [1]}))
        assert False, "expected UnknownColumnError"
    except UnknownColumnError as e:
        assert e.path == "templates[0].pattern"


def test_bare_symbols_that_are_not_columns_pass_through():
    tpl = TargetTemplate.parse("a", "fit(x, mtcars)")
    t = expand_targets([tpl], ParameterTable.from_columns({"x": [1]}))[0]
    assert deparse(t.command) == "fit(1, mtcars)"


def test_builtin_list_call_is_not_a_display():
    tpl = TargetTemplate.parse("a", "fit(list(range(n)))")
    t = expand_targets([tpl], ParameterTable.from_columns({"n": [3]}))[0]
    assert deparse(t.command) == "fit(list(range(3)))"


def test_attribute_of_a_value_column_is_rejected():
    tpl = TargetTemplate.parse("a", "f(data.upper)")
    try:
        expand_targets([tpl], ParameterTable.from_columns({"data": ["x", "y"]}))
        assert False, "expected BuildValidationError"
    except BuildValidationError as e:
        assert e.code == "E_DOTTED_BINDING"
        assert e.path == "templates[0].command"
        assert e.template == "a"


def test_generated_name_already_in_context():
    ctx = BuildContext()
    ctx.declare("analysis_NIH", "f()")
    try:
        ctx.expand([TargetTemplate.parse("analysis", "g()")], _methods_table(), names=["data_source"])
        assert False, "expected NameConflictError"
    except NameConflictError as e:
        assert e.code == "E_NAME_CONFLICT"
        assert e.path == "table[0]"
    assert len(ctx) == 1


def test_names_from_different_templates_cannot_clash():
    table = ParameterTable.from_columns({"x": ["b_c", "c"]})
    tpls = [TargetTemplate.parse("a", "f(x)"), TargetTemplate.parse("a_b", "g(x)")]
    try:
        expand_targets(tpls, table, names=["x"])
        assert False, "expected NameConflictError"
    except NameConflictError as e:
        assert e.code == "E_NAME_CONFLICT"
        assert "a_b_c" in e.message


def test_template_named_like_a_column():
    try:
        expand_targets([TargetTemplate.parse("x", "f(x)")], ParameterTable.from_columns({"x": [1]}))
        assert False, "expected NameConflictError"
    except NameConflictError as e:
        assert e.path == "templates[0].name"
