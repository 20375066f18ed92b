from pathlib import Path

import yaml

from targetmap.core.errors import BuildError, NamingCollisionError, UnknownColumnError
from targetmap.core.expand.template_library import load_template_file
from targetmap.core.io.build_file import build_context, build_graph, parse_columns
from targetmap.core.io.dump_graph import graph_to_dict
from targetmap.core.io.load_build import load_build
from targetmap.core.expr.nodes import LIST, Call, Literal, Symbol


def _load_yaml(path: str):
    return yaml.safe_load(Path(path).read_text(encoding="utf-8"))


def _build_error(doc: dict, **kwargs) -> BuildError:
    try:
        build_graph(doc, **kwargs)
    except BuildError as e:
        return e
    assert False, "expected BuildError"


def test_methods_build_matches_golden_graph():
    graph = build_graph(load_build("examples/methods.yaml"))
    assert graph_to_dict(graph) == _load_yaml("examples/methods-expected.yaml")


def test_combine_declared_targets():
    graph = build_graph(load_build("examples/mtcars.yaml"))
    node = graph.nodes_by_name["combined"]
    assert node.dependencies == ("head_mtcars", "tail_mtcars")
    assert graph.roots == ["head_mtcars", "tail_mtcars"]


def test_template_sets_and_options():
    library = load_template_file("examples/templates.yaml")
    d = graph_to_dict(build_graph(load_build("examples/library-build.yaml"), templates=library))
    by_name = {t["name"]: t for t in d["targets"]}

    assert list(by_name) == ["analysis__NIH", "summary__NIH", "analysis__NIAID", "summary__NIAID", "all_summaries"]
    assert by_name["analysis__NIAID"]["command"] == "fit_gam('NIAID')"
    assert by_name["summary__NIH"]["depends_on"] == ["analysis__NIH"]
    assert by_name["all_summaries"]["command"] == (
        "{'summary__NIH': summary__NIH, 'summary__NIAID': summary__NIAID}"
    )


def test_unknown_template_set():
    doc = load_build("examples/library-build.yaml")
    e = _build_error(doc)
    assert e.code == "E_UNKNOWN_TEMPLATE_SET"
    assert e.path == "pipeline[0].map.use"
    assert e.file == "examples/library-build.yaml"


def test_collision_is_located_in_the_build_file():
    doc = load_build("examples/collision.yaml")
    e = _build_error(doc)
    assert isinstance(e, NamingCollisionError)
    assert e.code == "E_NAMING_COLLISION"
    assert e.path == "pipeline[0].map.table[1]"
    assert e.file == "examples/collision.yaml"


def test_unknown_column_is_located_in_the_build_file():
    e = _build_error(load_build("examples/unknown-column.yaml"))
    assert isinstance(e, UnknownColumnError)
    assert e.path == "pipeline[0].map.templates[0].command"


def test_step_shape_errors():
    cases = [
        ({"pipeline": None}, "E_REQUIRED_FIELD", "pipeline"),
        ({"pipeline": [{"target": {}, "map": {}}]}, "E_INVALID_STEP", "pipeline[0]"),
        ({"pipeline": [{"run": {}}]}, "E_INVALID_STEP", "pipeline[0]"),
        ({"pipeline": [{"target": "a"}]}, "E_INVALID_TYPE", "pipeline[0].target"),
        ({"pipeline": [{"target": {"name": "a"}}]}, "E_REQUIRED_FIELD", "pipeline[0].target.command"),
        ({"pipeline": [{"target": {"name": "a", "command": "f()", "deps": []}}]}, "E_UNKNOWN_KEY", "pipeline[0].target"),
        ({"pipeline": [{"target": {"name": "a", "command": "f("}}]}, "E_EXPR_SYNTAX", "pipeline[0].target.command"),
        ({"options": {"bogus": 1}, "pipeline": []}, "E_OPTIONS_INVALID", "options"),
        ({"schema_version": "9.9", "pipeline": []}, "E_SCHEMA_VERSION", "schema_version"),
        ({"schema_version": 0.1, "pipeline": []}, "E_SCHEMA_VERSION", "schema_version"),
        ({"pipeline": [], "targets": []}, "E_UNKNOWN_KEY", "targets"),
    ]
    for doc, code, path in cases:
        e = _build_error(doc)
        assert e.code == code, doc
        assert e.path == path, doc


def test_map_step_errors():
    target = {"name": "a", "command": "f(x)"}
    cases = [
        ({"values": {"x": [1]}}, "E_MAP_TEMPLATES", "pipeline[0].map.targets"),
        ({"values": {"x": [1]}, "targets": [target], "use": "s"}, "E_MAP_TEMPLATES", "pipeline[0].map.targets"),
        ({"values": {"x": [1]}, "rows": [{"x": 1}], "targets": [target]}, "E_MAP_VALUES", "pipeline[0].map.values"),
        ({"values": {"x": [1, 2], "y": [1]}, "targets": [target]}, "E_LENGTH_MISMATCH", "pipeline[0].map.values"),
        ({"rows": [{"x": 1}, {"y": 2}], "targets": [target]}, "E_ROW_SCHEMA", "pipeline[0].map.table[1]"),
        ({"values": {"x": [{"bad": 1}]}, "targets": [target]}, "E_INVALID_CELL", "pipeline[0].map.values.x[0]"),
        ({"values": {"x": [1]}, "targets": [{"name": "a"}]}, "E_REQUIRED_FIELD", "pipeline[0].map.targets[0].command"),
        ({"values": {"x": [1]}, "targets": [target], "names": "x"}, "E_INVALID_TYPE", "pipeline[0].map.names"),
    ]
    for body, code, path in cases:
        e = _build_error({"pipeline": [{"map": body}]})
        assert e.code == code, body
        assert e.path == path, body


def test_combine_step_errors():
    base = [{"target": {"name": "a", "command": "f()"}}]
    cases = [
        ({"name": "c", "sources": "a"}, "E_INVALID_TYPE", "pipeline[1].combine.sources"),
        ({"name": "c", "sources": ["missing"]}, "E_UNKNOWN_TARGET", "pipeline[1].combine.sources[0]"),
        ({"name": "c", "sources": ["a"], "use_names": "yes"}, "E_INVALID_TYPE", "pipeline[1].combine.use_names"),
        ({"name": "c", "sources": ["a"], "command": "g(y)"}, "E_COMBINE_NO_PLACEHOLDER", "pipeline[1].combine.command"),
    ]
    for body, code, path in cases:
        e = _build_error({"pipeline": [*base, {"combine": body}]})
        assert e.code == code, body
        assert e.path == path, body


def test_empty_values_expand_to_nothing():
    ctx = build_context({"pipeline": [{"map": {"targets": [{"name": "a", "command": "f()"}]}}]})
    assert len(ctx) == 0


def test_parse_columns_cell_kinds():
    cols = parse_columns(
        {
            "method": {"symbols": ["fit_glm", "stats.lm"]},
            "arg": [{"symbol": "raw"}, {"expr": "load(1)"}],
            "opts": [[1, 2], None],
        }
    )
    assert cols["method"] == [Symbol("fit_glm"), Symbol("stats.lm")]
    assert cols["arg"][0] == Symbol("raw")
    assert cols["arg"][1] == Call(func=Symbol("load"), args=(Literal(1),))
    assert cols["opts"] == [Call(func=Symbol(LIST), args=(Literal(1), Literal(2))), Literal(None)]
