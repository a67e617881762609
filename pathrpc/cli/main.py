"""
pathrpc CLI: inspect configuration, manifests and wire encoding.

Usage:
    pathrpc status                 Show client, server, batching and logging settings
    pathrpc routes MODULE:ATTR     List the paths a manifest registers
    pathrpc validate MODULE:ATTR   Build the registry and report startup errors
    pathrpc encode PATH...         Show the batch URL for a set of dotted paths
"""

import importlib
import json
from typing import Any, List

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..client.builder import describe_path
from ..config import get_config
from ..errors import PathRpcError, StartupValidationError
from ..server.registry import PathRegistry
from ..wire import build_url

console = Console()
cli = typer.Typer(
    name="pathrpc",
    help="Batched path-addressed RPC: inspect manifests, settings and wire encoding.",
    no_args_is_help=True,
)


def load_manifest(reference: str) -> Any:
    """Import ``module:attribute`` and return the attribute."""
    module_name, sep, attr = reference.partition(":")
    if not sep or not module_name or not attr:
        raise typer.BadParameter(f"expected MODULE:ATTRIBUTE, got {reference!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise typer.BadParameter(f"cannot import {module_name!r}: {e}") from e

    target: Any = module
    for part in attr.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as e:
            raise typer.BadParameter(f"{module_name!r} has no attribute {attr!r}") from e
    return target


def _build_registry(reference: str) -> PathRegistry:
    manifest = load_manifest(reference)
    if isinstance(manifest, PathRegistry):
        return manifest
    return PathRegistry.build(manifest)


@cli.command()
def status():
    """Show client, server, batching and logging configuration."""
    config = get_config()

    client_table = Table(show_header=False, box=box.SIMPLE)
    client_table.add_column("Setting", style="bold")
    client_table.add_column("Value")

    client_table.add_row("Base URL", config.client.base_url)
    client_table.add_row("API prefix", config.client.api_prefix)
    client_table.add_row("Timeout (s)", str(config.client.timeout_seconds))

    console.print(Panel(client_table, title="Client Configuration", border_style="green"))

    server_table = Table(show_header=False, box=box.SIMPLE)
    server_table.add_column("Setting", style="bold")
    server_table.add_column("Value")

    server_table.add_row("API prefix", config.server.api_prefix)
    server_table.add_row("Expose internal errors", _bool_badge(config.server.expose_internal_errors))
    server_table.add_row("Max calls per request", str(config.server.max_calls_per_request))

    console.print(Panel(server_table, title="Server Configuration", border_style="blue"))

    batch_table = Table(show_header=False, box=box.SIMPLE)
    batch_table.add_column("Setting", style="bold")
    batch_table.add_column("Value")

    batch_table.add_row("Batching", _bool_badge(config.batching.enabled))
    batch_table.add_row("Max batch size", str(config.batching.max_batch_size))
    batch_table.add_row("Debounce (ms)", str(config.batching.debounce_ms))
    batch_table.add_row("Max URL size", str(config.batching.max_url_size))
    batch_table.add_row("Max retries", str(config.batching.max_retries))

    console.print(Panel(batch_table, title="Batching Configuration", border_style="cyan"))

    console.print(Panel(
        f"Level: {config.logging.log_level}\nFormat: {config.logging.log_format}",
        title="Logging Configuration",
        border_style="magenta",
    ))

    for problem in config.validate():
        console.print(f"[yellow]Warning:[/yellow] {problem}")


@cli.command()
def routes(
    manifest: str = typer.Argument(..., help="Manifest reference, e.g. myapp.rpc:manifest"),
    output_json: bool = typer.Option(False, "--json", help="Output routes as JSON"),
):
    """List every path registered by a manifest."""
    try:
        registry = _build_registry(manifest)
    except StartupValidationError as e:
        console.print(f"[red]Invalid manifest:[/red] {e.message}")
        raise typer.Exit(code=1)

    if output_json:
        data = [
            {
                "path": entry.dotted_path,
                "handler": f"{entry.router_name}.{entry.method_name}",
                "async": entry.is_async,
                "upload": entry.upload.mode if entry.upload else None,
            }
            for entry in registry.entries()
        ]
        console.print(json.dumps(data, indent=2))
        return

    table = Table(title=f"Routes ({len(registry)})", box=box.ROUNDED)
    table.add_column("Path", style="bold")
    table.add_column("Router")
    table.add_column("Kind")
    table.add_column("Input")
    table.add_column("Upload")

    for entry in registry.entries():
        if not entry.accepts_input:
            input_desc = "-"
        elif entry.input_model is not None:
            input_desc = entry.input_model.__name__
        else:
            input_desc = "any"
        table.add_row(
            entry.dotted_path,
            entry.router_name,
            "async" if entry.is_async else "sync",
            input_desc,
            entry.upload.mode if entry.upload else "-",
        )

    console.print(table)


@cli.command()
def validate(
    manifest: str = typer.Argument(..., help="Manifest reference, e.g. myapp.rpc:manifest"),
):
    """Build the path registry and report startup validation errors."""
    config = get_config()

    console.print("[bold]Running validation checks...[/bold]\n")
    errors = []

    config_errors = config.validate()
    if config_errors:
        for err in config_errors:
            errors.append(f"Config: {err}")
            console.print(f"  [red]FAIL[/red] {err}")
    else:
        console.print("  [green]PASS[/green] Configuration is valid")

    try:
        registry = _build_registry(manifest)
        console.print(f"  [green]PASS[/green] Registry built with {len(registry)} route(s)")
    except StartupValidationError as e:
        errors.append(f"Registry: {e.message}")
        console.print(f"  [red]FAIL[/red] {e.message}")

    console.print()
    if errors:
        console.print(f"[red]Validation failed with {len(errors)} error(s).[/red]")
        raise typer.Exit(code=1)
    else:
        console.print("[green]All validation checks passed.[/green]")


@cli.command()
def encode(
    paths: List[str] = typer.Argument(..., help="Dotted route paths, in call order"),
    base_url: str = typer.Option("", "--base-url", help="Server base URL"),
):
    """Show the batch URL that a set of calls would be sent to."""
    config = get_config()
    endpoint = f"{(base_url or config.client.base_url).rstrip('/')}/{config.client.api_prefix}"

    try:
        descriptors = [
            describe_path(path).with_id(str(index)) for index, path in enumerate(paths, start=1)
        ]
    except PathRpcError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    url = build_url(endpoint, descriptors)
    size = len(url)
    limit = config.batching.max_url_size

    console.print(url, soft_wrap=True)
    if size <= limit:
        console.print(f"[green]{size} bytes[/green] (limit {limit})")
    else:
        console.print(f"[red]{size} bytes[/red] exceeds the limit of {limit}")
        raise typer.Exit(code=1)


def _bool_badge(value: bool) -> str:
    """Return a colored badge for a boolean value."""
    if value:
        return "[green]enabled[/green]"
    return "[red]disabled[/red]"


if __name__ == "__main__":
    cli()
