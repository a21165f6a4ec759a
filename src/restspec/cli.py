from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from restspec.config import get_settings
from restspec.errors import RestSpecError
from restspec.introspect.controllers import PythonControllerIntrospector
from restspec.openapi.assembler import OpenAPIAssembler, default_template
from restspec.registry.metadata import MetadataRegistry
from restspec.store.sqlite_store import SnapshotSQLiteStore

app = typer.Typer(no_args_is_help=True, add_completion=False)

routes_app = typer.Typer(no_args_is_help=True)
app.add_typer(routes_app, name="routes")

console = Console()
err_console = Console(stderr=True)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _db_path(db: Optional[str]) -> Path:
    if db:
        return Path(db).expanduser()
    return get_settings().metadata_path


def _registry(db: Optional[str]) -> MetadataRegistry:
    store = SnapshotSQLiteStore(_db_path(db))
    return MetadataRegistry(PythonControllerIntrospector(), store)


def _fail(e: object) -> typer.Exit:
    err_console.print(f"[bold red]error[/bold red]: {e}")
    return typer.Exit(code=1)


@app.callback()
def main_callback(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level (default from settings)"),
) -> None:
    _configure_logging(log_level or get_settings().log_level)


@app.command()
def generate(
    sources: Optional[list[str]] = typer.Argument(None, help="Controller modules or .py files"),
    db: Optional[str] = typer.Option(None, help="Snapshot database path"),
) -> None:
    sources = sources or get_settings().metadata_sources
    if not sources:
        raise typer.BadParameter("no sources given and RESTSPEC_METADATA_SOURCES is empty")

    registry = _registry(db)
    try:
        snapshot = registry.generate(sources)
        written = registry.persist(snapshot)
    except (RestSpecError, ImportError) as e:
        raise _fail(e)

    table = Table(show_header=True, header_style="bold")
    table.add_column("METHOD", no_wrap=True)
    table.add_column("PATH")
    table.add_column("ACTION")
    for method, entry in snapshot.iter_routes():
        table.add_row(method.upper(), entry.path, f"{entry.action.owner_name}.{entry.action.name}")

    console.print(f"[bold green]restspec[/bold green] generate: {len(sources)} source(s)")
    console.print(table)
    console.print(f"Routes written: {written}")
    console.print(f"DB: {registry.store.db_path}")


@routes_app.command("list")
def routes_list(
    db: Optional[str] = typer.Option(None, help="Snapshot database path"),
    method: Optional[str] = typer.Option(None, help="Filter by HTTP method (GET/POST/...)"),
    format: str = typer.Option("table", help="Output format: table|json"),
) -> None:
    store = SnapshotSQLiteStore(_db_path(db))
    if not store.exists():
        raise _fail(f"No persisted metadata snapshot at {store.db_path}")

    rows = store.list_routes(method=method)

    if format.lower() == "json":
        payload = [
            {
                "method": r["method"],
                "path": r["path"],
                "pattern": r["pattern"],
                "action": json.loads(r["action_json"])["name"],
            }
            for r in rows
        ]
        typer.echo(json.dumps(payload, indent=2))
        return

    console.print(f"[bold]DB:[/bold] {store.db_path}")
    console.print(f"[bold]Routes:[/bold] {len(rows)}")

    table = Table(show_header=True, header_style="bold")
    table.add_column("METHOD", no_wrap=True)
    table.add_column("PATH")
    table.add_column("ACTION")
    table.add_column("PATTERN", no_wrap=True)
    for r in rows:
        action = json.loads(r["action_json"])
        table.add_row(
            r["method"].upper(),
            r["path"],
            f"{action.get('controllerName')}.{action['name']}",
            r["pattern"],
        )
    console.print(table)


@app.command()
def find(
    method: str = typer.Argument(..., help="HTTP method"),
    path: str = typer.Argument(..., help="Request path, e.g. /users/42"),
    db: Optional[str] = typer.Option(None, help="Snapshot database path"),
) -> None:
    registry = _registry(db)
    try:
        registry.load()
    except RestSpecError as e:
        raise _fail(e)

    found = registry.match(method, path)
    if found is None:
        err_console.print(f"No route for {method.upper()} {path}")
        raise typer.Exit(code=1)

    typer.echo(found.action.name)
    if found.params:
        typer.echo(json.dumps(found.params))


@app.command("dump-schema")
def dump_schema(
    db: Optional[str] = typer.Option(None, help="Snapshot database path"),
    template: Optional[str] = typer.Option(None, help="OpenAPI template JSON file"),
) -> None:
    settings = get_settings()
    registry = _registry(db)
    try:
        registry.load()
    except RestSpecError as e:
        raise _fail(e)

    if template:
        base = json.loads(Path(template).expanduser().read_text(encoding="utf-8"))
    else:
        base = default_template(settings.openapi_title, settings.openapi_version)

    document = OpenAPIAssembler(registry, template=base).get_document()
    typer.echo(json.dumps(document, indent=2))


@app.command()
def ping() -> None:
    console.print("pong")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
