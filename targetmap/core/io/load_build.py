"""Read build files from disk.

Reading only: the returned mapping is the document as written plus
``__file__``. Shape, options and ``schema_version`` are checked by
``build_file.build_context`` so their errors carry document paths.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import yaml

from targetmap.core.errors import BuildLoadError


SUPPORTED_SCHEMA_VERSIONS = ("0.1.0",)
TOP_LEVEL_KEYS = ("schema_version", "options", "pipeline")


def _read_yaml(text: str) -> Any:
    return yaml.safe_load(text)


def _read_json(text: str) -> Any:
    return json.loads(text)


_READERS: dict[str, tuple[Callable[[str], Any], type[Exception], str]] = {
    ".yaml": (_read_yaml, yaml.YAMLError, "E_YAML_PARSE"),
    ".yml": (_read_yaml, yaml.YAMLError, "E_YAML_PARSE"),
    ".json": (_read_json, json.JSONDecodeError, "E_JSON_PARSE"),
}


def load_build(path: str) -> dict[str, Any]:
    p = Path(path)
    file = str(p)

    reader = _READERS.get(p.suffix.lower())
    if reader is None:
        raise BuildLoadError(
            code="E_UNSUPPORTED_FORMAT",
            message=f"build files are {', '.join(sorted(_READERS))} (got {p.suffix or 'no suffix'})",
            file=file,
        )
    read, parse_error, code = reader

    try:
        text = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise BuildLoadError(code="E_FILE_NOT_FOUND", message="file does not exist", file=file) from None
    except OSError as e:
        raise BuildLoadError(code="E_FILE_READ", message=str(e), file=file) from e

    try:
        data = read(text)
    except parse_error as e:
        raise BuildLoadError(code=code, message=str(e), file=file) from e

    if not isinstance(data, dict):
        raise BuildLoadError(
            code="E_INVALID_TOP_LEVEL",
            message=f"a build file is a mapping with {', '.join(TOP_LEVEL_KEYS)}",
            file=file,
        )
    return {**data, "__file__": file}
