"""
CLI: ``playdeck sync`` and ``playdeck demos`` — catalog commands.
"""

from __future__ import annotations

import typer

from playdeck.cli.utils import (
    console,
    err_console,
    handle_errors,
    make_runtime,
    output_json,
    print_dict,
    print_table,
    run_async,
)

app = typer.Typer(no_args_is_help=True)


def sync(
    config_path: str | None = typer.Option(None, "--config", "-c", help="Catalog config JSON"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Find, clone, pull or install the configured catalog."""
    from playdeck.catalog.sync import CatalogSyncController, save_sync_result

    runtime = make_runtime(config_path)
    with handle_errors():
        result = run_async(CatalogSyncController(runtime.host, runtime.settings).sync(runtime.config))
        save_sync_result(runtime.host, runtime.settings, result)

    if json_out:
        output_json(result)
        return
    print_dict(
        {
            "mode": result.mode.value,
            "path": result.path,
            "collection": f"{result.namespace}.{result.collection_name}",
        },
        title="Catalog synced",
    )
    if result.degraded:
        err_console.print(
            "[yellow]Warning:[/yellow] namespace/collection could not be read from the "
            "installed manifest; configured values were used."
        )


@app.command("list")
def list_demos(
    config_path: str | None = typer.Option(None, "--config", "-c", help="Catalog config JSON"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List the demos in the synced catalog."""
    runtime = make_runtime(config_path)
    with handle_errors():
        definitions = runtime.catalog.load_definitions(runtime.config)

    if json_out:
        output_json(definitions)
        return
    rows = [(d.id, d.name, d.kind.value, d.path, len(d.parameters)) for d in definitions]
    print_table(rows, ["ID", "Name", "Kind", "Path", "Params"], title="Demos")


@app.command("show")
def show_demo(
    demo_id: str = typer.Argument(..., help="Demo ID"),
    config_path: str | None = typer.Option(None, "--config", "-c", help="Catalog config JSON"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show a demo and its effective parameters."""
    runtime = make_runtime(config_path)
    with handle_errors():
        definitions = runtime.catalog.load_definitions(runtime.config)

    definition = next((d for d in definitions if d.id == demo_id), None)
    if definition is None:
        err_console.print(f"[bold red]Error[/bold red]: demo not found: {demo_id}")
        raise typer.Exit(code=1)

    if json_out:
        output_json(definition)
        return
    console.print(f"[bold]{definition.name}[/bold] ({definition.kind.value}: {definition.path})")
    if definition.description:
        console.print(definition.description)
    rows = [
        (
            p.name,
            p.type.value,
            "yes" if p.required else "no",
            p.default,
            ", ".join(p.options or []),
            p.label,
        )
        for p in definition.parameters
    ]
    print_table(rows, ["Name", "Type", "Required", "Default", "Options", "Label"], title="Parameters")
