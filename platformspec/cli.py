"""platformspec CLI: validate and inspect platform specification files."""

from __future__ import annotations

import json
import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from platformspec import __version__
from platformspec.errors import ArtifactValidationError, SpecificationError
from platformspec.models.specification import ArtifactScope, PluginSpecification
from platformspec.spec import FORMAT_JSON, FORMAT_YAML

console = Console()
err_console = Console(stderr=True)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _validator():
    from platformspec.spec.dispatcher import get_default_validator

    return get_default_validator()


def _fail(error: SpecificationError) -> None:
    console.print(f"[red]FAIL[/] {escape(str(error))}", soft_wrap=True)
    if isinstance(error, ArtifactValidationError):
        for failure in error.failures:
            console.print(f"  [red]x[/] {escape(str(failure))}", soft_wrap=True)
    sys.exit(1)


def _load_plugin(path: str) -> PluginSpecification:
    spec = _validator().process_specification(path, skip_artifacts=True)
    if not isinstance(spec, PluginSpecification):
        raise click.UsageError(f"'{path}' is a {spec.type} specification, expected a plugin")
    return spec


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose: bool):
    """platformspec: validate plugin, task, query and control specifications.

    Checks document structure and metadata, and verifies that the images
    and archives a specification references exist and match their
    declared checksums.
    """
    _setup_logging(verbose)


# ── Validate ─────────────────────────────────────────────────────────


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--platform-version", default="", help="Report whether the plugin supports this platform version")
@click.option(
    "--artifacts",
    "scope",
    default=ArtifactScope.ALL.value,
    type=click.Choice([s.value for s in ArtifactScope], case_sensitive=False),
    help="Which plugin artifacts to verify",
)
@click.option("--skip-artifacts", is_flag=True, help="Skip image and download checks")
def validate(path: str, platform_version: str, scope: str, skip_artifacts: bool):
    """Validate a specification file and verify its artifacts."""
    console.print(f"\n[bold blue]platformspec[/] Validating: {path}\n")

    try:
        spec = _validator().process_specification(
            path,
            platform_version=platform_version,
            artifact_scope=scope,
            skip_artifacts=skip_artifacts,
        )
    except SpecificationError as e:
        _fail(e)
        return

    name = getattr(spec, "name", "") or getattr(spec, "id", "")
    console.print(f"  [green]v[/] {spec.type} '{name}' is valid")
    if skip_artifacts:
        console.print("  [yellow]![/] Artifact checks skipped")


# ── Identify ─────────────────────────────────────────────────────────


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def identify(path: str):
    """Show the specification type without validating the document."""
    try:
        info = _validator().identify_specification_types(path)
    except SpecificationError as e:
        _fail(e)
        return

    console.print(f"[cyan]{path}[/]: {info.primary_type}")
    for embedded, count in sorted(info.embedded_types.items()):
        console.print(f"  embedded: {embedded} ({count})")


# ── Platform support ─────────────────────────────────────────────────


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.argument("platform_version")
def support(path: str, platform_version: str):
    """Check whether a plugin supports PLATFORM_VERSION."""
    validator = _validator()
    try:
        spec = _load_plugin(path)
        supported = validator.check_platform_support(spec, platform_version)
    except SpecificationError as e:
        _fail(e)
        return

    constraints = ", ".join(spec.supported_platform_versions)
    if supported:
        console.print(f"[green]Supported:[/] {spec.name} {spec.version} works with platform {platform_version}")
    else:
        console.print(
            f"[yellow]Not supported:[/] {spec.name} {spec.version} requires one of: {escape(constraints)}"
        )
        sys.exit(2)


# ── Projections ──────────────────────────────────────────────────────


@main.command(name="task-details")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--allow-reference", is_flag=True, help="Accept plugins whose discovery is a task-id reference")
def task_details(path: str, allow_reference: bool):
    """Show the discovery task of a plugin with its inherited fields."""
    validator = _validator()
    try:
        spec = _load_plugin(path)
        details = validator.get_task_details_from_plugin_specification(spec, allow_reference=allow_reference)
    except SpecificationError as e:
        _fail(e)
        return

    table = Table(title=f"Discovery task of {details.plugin_name}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    if details.is_reference:
        table.add_row("Referenced task", details.referenced_task_id)
    else:
        table.add_row("Task ID", details.task_id)
        table.add_row("Name", details.task_name)
        table.add_row("Image", details.validated_image_uri)
        table.add_row("Command", " ".join(details.command))
        table.add_row("Timeout", details.timeout)
        table.add_row("Params", ", ".join(details.params))
        table.add_row("Schedules", ", ".join(f"{e.id} ({e.frequency})" for e in details.run_schedule))
    table.add_row("Platform versions", ", ".join(details.supported_platform_versions))
    table.add_row("License", details.metadata.license)
    console.print(table)


@main.command(name="embedded-task")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--format", "fmt", default=FORMAT_YAML, type=click.Choice([FORMAT_YAML, FORMAT_JSON]))
def embedded_task(path: str, fmt: str):
    """Print a plugin's embedded discovery task as a standalone task document."""
    validator = _validator()
    try:
        spec = _load_plugin(path)
        rendered = validator.get_embedded_task_specification(spec, fmt)
    except SpecificationError as e:
        _fail(e)
        return
    click.echo(rendered.rstrip("\n"))


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Print the tags as a JSON list")
def tags(path: str, as_json: bool):
    """List the tags of a specification as key:value pairs."""
    from platformspec.spec.common import get_flattened_tags

    try:
        spec = _validator().process_specification(path, skip_artifacts=True)
    except SpecificationError as e:
        _fail(e)
        return

    flattened = get_flattened_tags(spec)
    if as_json:
        click.echo(json.dumps(flattened))
        return
    if not flattened:
        console.print("[yellow]No tags.[/]")
        return
    console.print(Panel("\n".join(flattened), title=f"Tags ({len(flattened)})"))
