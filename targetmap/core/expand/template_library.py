from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from targetmap.core.errors import BuildError
from targetmap.core.model import TargetTemplate


# Named template sets usable from build files via `use: <set>`. Nothing ships built in;
# projects add their own with --template-file.
DEFAULT_TEMPLATES: dict[str, list[TargetTemplate]] = {}


class TemplateConfigError(ValueError):
    pass


def load_template_file(path: str | Path) -> dict[str, list[TargetTemplate]]:
    """Load template sets from a YAML file.

    Format:
      <set name>:
        - {name: analysis, command: "fit({data_source})", pattern: "map(seed)"}
        - {name: summary, command: "summarize(analysis)"}

    Returns a mapping of set name -> list of templates.
    """
    p = Path(path)
    raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise TemplateConfigError("template file must be a mapping of name -> list of templates")

    out: dict[str, list[TargetTemplate]] = {}
    for k, v in raw.items():
        if not isinstance(k, str) or not k.strip():
            raise TemplateConfigError("template set names must be non-empty strings")
        if not isinstance(v, list) or not v:
            raise TemplateConfigError(f"template set '{k}' must be a non-empty list")
        out[k.strip()] = [_parse_item(k, i, item) for i, item in enumerate(v)]
    return out


def _parse_item(set_name: str, index: int, item: Any) -> TargetTemplate:
    where = f"template set '{set_name}' item {index}"
    if not isinstance(item, dict):
        raise TemplateConfigError(f"{where} must be a mapping with name and command")
    unknown = sorted(set(item) - {"name", "command", "pattern"})
    if unknown:
        raise TemplateConfigError(f"{where} has unknown keys: {', '.join(unknown)}")
    name = item.get("name")
    command = item.get("command")
    pattern = item.get("pattern")
    if not isinstance(name, str) or not name.strip():
        raise TemplateConfigError(f"{where} name must be a non-empty string")
    if not isinstance(command, str) or not command.strip():
        raise TemplateConfigError(f"{where} command must be a non-empty string")
    if pattern is not None and not isinstance(pattern, str):
        raise TemplateConfigError(f"{where} pattern must be a string")
    try:
        return TargetTemplate.parse(name.strip(), command, pattern)
    except BuildError as e:
        raise TemplateConfigError(f"{where}: {e.message}") from e


def merged_templates(overrides: dict[str, list[TargetTemplate]] | None = None) -> dict[str, list[TargetTemplate]]:
    """Return DEFAULT_TEMPLATES merged with optional overrides.

    Overrides replace sets of the same name, and may add new ones.
    """
    merged = dict(DEFAULT_TEMPLATES)
    if overrides:
        for k, v in overrides.items():
            merged[k] = list(v)
    return merged


def load_and_merge(template_file: str | None) -> dict[str, list[TargetTemplate]]:
    if not template_file:
        return merged_templates()
    overrides = load_template_file(template_file)
    return merged_templates(overrides)
