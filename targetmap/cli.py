from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from targetmap.core.errors import BuildError, BuildLoadError, BuildValidationError
from targetmap.core.expand.eval_rows import substitute_rows
from targetmap.core.expand.template_library import TemplateConfigError, load_and_merge
from targetmap.core.expr.parse import parse_expr
from targetmap.core.expr.render import deparse
from targetmap.core.io.build_file import build_graph, parse_columns
from targetmap.core.io.dump_graph import dump_graph_yaml, manifest_rows
from targetmap.core.io.load_build import load_build
from targetmap.core.lint.lint_graph import lint_graph
from targetmap.core.model import TargetGraph, TargetTemplate
from targetmap.core.validate.validate_graph import summarize_graph, validate_graph

app = typer.Typer(add_completion=False, no_args_is_help=True)
console = Console()


@app.callback()
def _callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log expansion details to stderr"),
) -> None:
    """targetmap: static branching for pipeline target graphs."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


@app.command("validate")
def validate(
    path: str = typer.Argument(..., help="Path to a build file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
    template_file: Optional[str] = typer.Option(None, "--template-file", help="Optional YAML template sets"),
) -> None:
    """Build the graph and check it (validation + lint)."""
    if format not in ("text", "json"):
        _print_errors([_unknown_format("E_VALIDATE_UNKNOWN_FORMAT", format, ("text", "json"))])
        raise typer.Exit(code=2)

    def _to_item(e: BuildError) -> dict:
        if isinstance(e, BuildLoadError):
            source = "load"
        elif e.code.startswith("L_"):
            source = "lint"
        else:
            source = "build"
        return {
            "code": e.code,
            "message": e.message,
            "file": e.file,
            "path": e.path,
            "template": e.template,
            "severity": "error",
            "source": source,
        }

    def _emit_json(ok: bool, *, exit_code: int, errors: list[BuildError], summary: dict | None) -> None:
        payload = {
            "tool": "targetmap",
            "command": "validate",
            "ok": ok,
            "error_count": len(errors),
            "errors": [_to_item(e) for e in errors],
            "summary": summary,
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        raise typer.Exit(code=exit_code)

    try:
        graph, file = _load_and_build(path, template_file)
    except BuildLoadError as e:
        if format == "json":
            _emit_json(False, exit_code=1, errors=[e], summary=None)
        _print_errors([e])
        raise typer.Exit(code=1)
    except BuildError as e:
        if format == "json":
            _emit_json(False, exit_code=2, errors=[e], summary=None)
        _print_errors([e])
        raise typer.Exit(code=2)

    errors: list[BuildError] = [*validate_graph(graph, file=file), *lint_graph(graph, file=file)]
    if errors:
        if format == "json":
            _emit_json(False, exit_code=2, errors=errors, summary=None)
        _print_errors(errors)
        raise typer.Exit(code=2)

    if format == "text":
        typer.echo(summarize_graph(graph))
        return

    summary = {
        "target_count": len(graph.nodes_by_name),
        "pattern_count": sum(1 for n in graph.nodes_by_name.values() if n.is_pattern),
        "edge_count": len(graph.edges),
        "roots": list(graph.roots),
    }
    _emit_json(True, exit_code=0, errors=[], summary=summary)


@app.command("manifest")
def manifest(
    path: str = typer.Argument(..., help="Path to a build file (.yaml/.yml/.json)"),
    format: str = typer.Option("table", "--format", help="Output format: table|json"),
    template_file: Optional[str] = typer.Option(None, "--template-file", help="Optional YAML template sets"),
) -> None:
    """List every target with its command, pattern and dependencies."""
    if format not in ("table", "json"):
        _print_errors([_unknown_format("E_MANIFEST_UNKNOWN_FORMAT", format, ("table", "json"))])
        raise typer.Exit(code=2)

    graph, _ = _build_or_exit(path, template_file)
    rows = manifest_rows(graph)

    if format == "json":
        typer.echo(json.dumps(rows, indent=2, sort_keys=True))
        return

    table = Table(title=f"targetmap manifest ({len(rows)} targets)")
    table.add_column("Name")
    table.add_column("Command")
    table.add_column("Pattern")
    table.add_column("Dependencies")
    for row in rows:
        table.add_row(
            row["name"],
            row["command"],
            row["pattern"] or "",
            ", ".join(row["dependencies"]),
        )
    console.print(table)


@app.command("build")
def build(
    path: str = typer.Argument(..., help="Path to a build file (.yaml/.yml/.json)"),
    out: str = typer.Option(..., "--out", help="Path to write the expanded target graph (YAML)"),
    template_file: Optional[str] = typer.Option(None, "--template-file", help="Optional YAML template sets"),
) -> None:
    """Expand a build file into a concrete target graph."""
    graph, file = _build_or_exit(path, template_file)

    errors: list[BuildError] = [*validate_graph(graph, file=file), *lint_graph(graph, file=file)]
    if errors:
        _print_errors(errors)
        raise typer.Exit(code=2)

    _write_yaml(out, graph)
    typer.echo(f"OK: wrote {len(graph.nodes_by_name)} targets to {out}")


@app.command("templates")
def templates(
    template_file: Optional[str] = typer.Option(None, "--template-file", help="Optional YAML template sets"),
) -> None:
    """List available template sets."""
    library = _load_library_or_exit(template_file, file=None)

    if not library:
        typer.echo("Templates: (none)")
        return
    typer.echo("Templates:")
    for name in sorted(library.keys()):
        typer.echo(f"- {name}: {', '.join(t.name for t in library[name])}")


@app.command("eval")
def eval_cmd(
    expr: str = typer.Argument(..., help="Template expression, e.g. 'fit({data_source})'"),
    values: str = typer.Option(..., "--values", help="YAML/JSON mapping of column -> cells"),
) -> None:
    """Substitute each row of VALUES into EXPR and print one expression per row."""
    try:
        raw = yaml.safe_load(Path(values).read_text(encoding="utf-8"))
    except FileNotFoundError:
        _print_errors([BuildLoadError(code="E_FILE_NOT_FOUND", message="file does not exist", file=values)])
        raise typer.Exit(code=1)
    except yaml.YAMLError as e:
        _print_errors([BuildLoadError(code="E_YAML_PARSE", message=str(e), file=values)])
        raise typer.Exit(code=1)

    try:
        template = parse_expr(expr, path="expr")
        results = substitute_rows(template, parse_columns(raw))
    except BuildError as e:
        _print_errors([e])
        raise typer.Exit(code=2)

    for r in results:
        typer.echo(deparse(r))


def _unknown_format(code: str, got: str, choices: tuple[str, ...]) -> BuildValidationError:
    return BuildValidationError(
        code=code,
        message=f"unknown format: {got} (choose one of: {', '.join(choices)})",
        file=None,
        path="format",
    )


def _load_library_or_exit(template_file: Optional[str], *, file: Optional[str]) -> dict[str, list[TargetTemplate]]:
    try:
        return load_and_merge(template_file)
    except FileNotFoundError:
        _print_errors(
            [
                BuildLoadError(
                    code="E_TEMPLATE_FILE_NOT_FOUND",
                    message=f"template file not found: {template_file}",
                    file=file,
                    path="template_file",
                )
            ]
        )
        raise typer.Exit(code=1)
    except TemplateConfigError as e:
        _print_errors(
            [
                BuildValidationError(
                    code="E_TEMPLATE_FILE_INVALID",
                    message=str(e),
                    file=file,
                    path="template_file",
                )
            ]
        )
        raise typer.Exit(code=2)


def _load_and_build(path: str, template_file: Optional[str]) -> tuple[TargetGraph, Optional[str]]:
    doc = load_build(path)
    library = _load_library_or_exit(template_file, file=doc.get("__file__"))
    return build_graph(doc, templates=library), doc.get("__file__")


def _build_or_exit(path: str, template_file: Optional[str]) -> tuple[TargetGraph, Optional[str]]:
    try:
        return _load_and_build(path, template_file)
    except BuildLoadError as e:
        _print_errors([e])
        raise typer.Exit(code=1)
    except BuildError as e:
        _print_errors([e])
        raise typer.Exit(code=2)


def _write_yaml(path: str, graph: TargetGraph) -> None:
    p = Path(path)
    if str(p.parent) not in (".", ""):
        p.parent.mkdir(parents=True, exist_ok=True)
    dump_graph_yaml(graph, str(p))


def _print_errors(errors: list[BuildError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="targetmap")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
