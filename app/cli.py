from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import orjson
import typer
from pydantic import Field, ValidationError
from rich.console import Console
from rich.table import Table

from adapters.filesystem.access_policy import FileSystemAccessPolicy
from app.config import AppSettings, load_settings
from app.wiring import build_preview, build_services
from domain.errors import ProcessFlowError
from domain.models import Department, DiagramOptions, Role, Step, WireModel
from domain.services.build_process_preview import ProcessPreview
from domain.services.draft_resolution import plan_drafts
from domain.services.render_layout_svg import render_layout_svg
from domain.services.save_process import validate_steps, validate_title

app = typer.Typer(no_args_is_help=True)
diagram_app = typer.Typer(no_args_is_help=True)
app.add_typer(diagram_app, name="diagram")
console = Console()
err_console = Console(stderr=True)

ConfigOption = typer.Option(None, "--config", help="YAML settings file.")


class ProcessDocument(WireModel):
    title: Optional[str] = None
    steps: List[Step] = Field(default_factory=list)
    departments: List[Department] = Field(default_factory=list)
    roles: Optional[List[Role]] = None
    options: Optional[DiagramOptions] = None


def load_document(path: Path) -> ProcessDocument:
    if not path.exists():
        err_console.print(f"[red]File not found:[/] {path}")
        raise typer.Exit(code=1)
    try:
        data = orjson.loads(path.read_bytes())
        if isinstance(data, list):
            data = {"steps": data}
        return ProcessDocument.model_validate(data)
    except (orjson.JSONDecodeError, ValidationError) as exc:
        err_console.print(f"[red]Invalid process document:[/] {exc}")
        raise typer.Exit(code=1) from exc


def build_document_preview(path: Path, settings: AppSettings) -> ProcessPreview:
    document = load_document(path)
    try:
        return build_preview(settings).build(
            document.steps,
            document.departments,
            document.options or settings.diagram.to_options(),
            document.roles,
        )
    except ProcessFlowError as exc:
        err_console.print(f"[red]Cannot build diagram:[/] {exc}")
        raise typer.Exit(code=1) from exc


@diagram_app.command("definition")
def diagram_definition(
    input_path: Path = typer.Argument(..., help="Process JSON document."),
    config: Optional[Path] = ConfigOption,
) -> None:
    preview = build_document_preview(input_path, load_settings(config))
    typer.echo(preview.definition, nl=False)


@diagram_app.command("layout")
def diagram_layout(
    input_path: Path = typer.Argument(..., help="Process JSON document."),
    config: Optional[Path] = ConfigOption,
) -> None:
    preview = build_document_preview(input_path, load_settings(config))
    typer.echo(orjson.dumps(preview.layout.to_dict(), option=orjson.OPT_INDENT_2).decode("utf-8"))


@diagram_app.command("svg")
def diagram_svg(
    input_path: Path = typer.Argument(..., help="Process JSON document."),
    output: Path = typer.Option(..., "--output", "-o", help="SVG file to write."),
    config: Optional[Path] = ConfigOption,
) -> None:
    preview = build_document_preview(input_path, load_settings(config))
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(render_layout_svg(preview.layout), encoding="utf-8")
    console.print(f"[green]Wrote[/] {output}")


@app.command("validate")
def validate(input_path: Path = typer.Argument(..., help="Process JSON document to validate.")) -> None:
    document = load_document(input_path)
    try:
        if document.title is not None:
            validate_title(document.title)
        validate_steps(document.steps)
        plan = plan_drafts(document.steps, document.departments, document.roles)
    except ProcessFlowError as exc:
        err_console.print(f"[red]Validation failed:[/] {exc}")
        raise typer.Exit(code=1) from exc

    console.print(f"[green]Valid process document:[/] {input_path}")
    if plan.is_empty:
        return
    table = Table("Entity", "Name")
    for department in plan.department_creates:
        table.add_row("department", department.name)
    for role in plan.role_creates:
        table.add_row("role", role.name)
    console.print("[yellow]Saving will create:[/]")
    console.print(table)


@app.command("create")
def create(
    organization: str = typer.Option(..., "--org", help="Organization id."),
    user: str = typer.Option(..., "--user", help="Acting user id."),
    title: Optional[str] = typer.Option(None, help="Process title."),
    config: Optional[Path] = ConfigOption,
) -> None:
    services = build_services(load_settings(config))
    try:
        record = services.processes.create(user, organization, title)
    except ProcessFlowError as exc:
        err_console.print(f"[red]Create failed ({exc.kind}):[/] {exc}")
        raise typer.Exit(code=1) from exc
    console.print(f"[green]Created process[/] {record.id}")


@app.command("save")
def save(
    input_path: Path = typer.Argument(..., help="Process JSON document with title and steps."),
    user: str = typer.Option(..., "--user", help="Acting user id."),
    process: str = typer.Option(..., "--process", help="Process id to overwrite."),
    config: Optional[Path] = ConfigOption,
) -> None:
    document = load_document(input_path)
    services = build_services(load_settings(config))
    try:
        record = services.saver.save(user, process, document.title, document.steps)
    except ProcessFlowError as exc:
        err_console.print(f"[red]Save failed ({exc.kind}):[/] {exc}")
        raise typer.Exit(code=1) from exc
    console.print(f"[green]Saved[/] {record.id} ({len(record.steps)} steps)")


@app.command("grant")
def grant(
    organization: str = typer.Option(..., "--org", help="Organization id."),
    user: str = typer.Option(..., "--user", help="User id to grant."),
    role: str = typer.Option("member", help="Membership role: owner, admin or member."),
    config: Optional[Path] = ConfigOption,
) -> None:
    settings = load_settings(config)
    FileSystemAccessPolicy(settings.store.root_dir).grant(user, organization, role)
    console.print(f"[green]Granted[/] {role} on {organization} to {user}")


if __name__ == "__main__":
    app()
