from pathlib import Path

from targetmap.core.errors import BuildLoadError
from targetmap.core.io.load_build import load_build


def test_load_build_yaml():
    doc = load_build("examples/methods.yaml")
    assert doc["schema_version"] == "0.1.0"
    assert isinstance(doc["pipeline"], list)
    assert "options" not in doc
    assert doc["__file__"] == "examples/methods.yaml"


def test_load_build_json(tmp_path: Path):
    p = tmp_path / "build.json"
    p.write_text('{"pipeline": [{"target": {"name": "a", "command": "f()"}}]}', encoding="utf-8")
    doc = load_build(str(p))
    assert doc["pipeline"][0]["target"]["name"] == "a"


def _load_error(path: str) -> BuildLoadError:
    try:
        load_build(path)
    except BuildLoadError as e:
        return e
    assert False, f"expected BuildLoadError for {path}"


def test_load_build_errors(tmp_path: Path):
    assert _load_error(str(tmp_path / "missing.yaml")).code == "E_FILE_NOT_FOUND"

    txt = tmp_path / "build.txt"
    txt.write_text("pipeline: []", encoding="utf-8")
    assert _load_error(str(txt)).code == "E_UNSUPPORTED_FORMAT"

    bad_yaml = tmp_path / "bad.yaml"
    bad_yaml.write_text("pipeline: [\n", encoding="utf-8")
    assert _load_error(str(bad_yaml)).code == "E_YAML_PARSE"

    bad_json = tmp_path / "bad.json"
    bad_json.write_text("{", encoding="utf-8")
    assert _load_error(str(bad_json)).code == "E_JSON_PARSE"

    top_list = tmp_path / "list.yaml"
    top_list.write_text("- a\n", encoding="utf-8")
    e = _load_error(str(top_list))
    assert e.code == "E_INVALID_TOP_LEVEL"
    assert e.file == str(top_list)

    folder = tmp_path / "folder.yaml"
    folder.mkdir()
    assert _load_error(str(folder)).code == "E_FILE_READ"
