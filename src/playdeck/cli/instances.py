"""
CLI: ``playdeck instances`` — create, run and track demo instances.
"""

from __future__ import annotations

from typing import Any

import typer

from playdeck.catalog.coercion import coerce_scalar
from playdeck.catalog.models import DemoDefinition, ParameterType
from playdeck.cli.utils import (
    console,
    err_console,
    handle_errors,
    make_runtime,
    output_json,
    print_dict,
    print_table,
    run_async,
    styled_state,
)
from playdeck.execution.models import Instance, InstanceStatus

app = typer.Typer(no_args_is_help=True)

_TRUE_WORDS = {"true", "yes", "on", "1"}
_FALSE_WORDS = {"false", "no", "off", "0"}


def form_values(definition: DemoDefinition, assignments: list[str]) -> dict[str, Any]:
    """Build the run's parameter values from ``name=value`` assignments.

    Defaults fill unset parameters, as the launch form does.  Values are
    typed according to the parameter declaration.

    Raises:
        typer.BadParameter: Unknown name, bad value, or a required parameter left unset.
    """
    raw: dict[str, str] = {}
    for item in assignments:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise typer.BadParameter(f"expected name=value, got {item!r}")
        raw[name.strip()] = value

    values: dict[str, Any] = {}
    for param in definition.parameters:
        if param.name in raw:
            values[param.name] = _typed(param.name, param.type, param.options, raw.pop(param.name))
        elif param.default is not None:
            values[param.name] = param.default
        elif param.required:
            raise typer.BadParameter(f"missing required parameter {param.name!r}")

    if raw:
        raise typer.BadParameter(f"unknown parameter(s): {', '.join(sorted(raw))}")
    return values


def _typed(name: str, kind: ParameterType, options: list[str] | None, value: str) -> Any:
    if kind is ParameterType.NUMBER:
        number = coerce_scalar(value)
        if isinstance(number, bool) or not isinstance(number, int | float):
            raise typer.BadParameter(f"{name} must be a number, got {value!r}")
        return number
    if kind is ParameterType.BOOLEAN:
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        raise typer.BadParameter(f"{name} must be true or false, got {value!r}")
    if kind is ParameterType.SELECT and options and value not in options:
        raise typer.BadParameter(f"{name} must be one of {', '.join(options)}")
    return value


def _summary_row(instance: Instance) -> tuple[Any, ...]:
    status = instance.status
    return (
        instance.id,
        instance.spec.demo_name,
        styled_state(status.state.value),
        status.started_at,
        status.completed_at,
        status.error or status.message,
    )


def _print_status(instance_id: str, status: InstanceStatus) -> None:
    console.print(f"{instance_id}: {styled_state(status.state.value)}")
    if status.message:
        console.print(f"  [cyan]message[/cyan]: {status.message}")
    if status.error:
        console.print(f"  [red]error[/red]: {status.error}")


@app.command("list")
def list_instances(
    state: str | None = typer.Option(None, "--state", "-s", help="Only this state"),
    config_path: str | None = typer.Option(None, "--config", "-c", help="Catalog config JSON"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List instances, newest first."""
    runtime = make_runtime(config_path)
    instances = sorted(runtime.store.list(), key=lambda i: i.spec.created_at, reverse=True)
    if state:
        instances = [i for i in instances if i.status.state.value == state]

    if json_out:
        output_json(instances)
        return
    print_table(
        [_summary_row(i) for i in instances],
        ["ID", "Demo", "State", "Started", "Completed", "Message"],
        title="Instances",
    )


@app.command("show")
def show_instance(
    instance_id: str = typer.Argument(..., help="Instance ID"),
    output: bool = typer.Option(False, "--output", "-o", help="Print the captured run output"),
    config_path: str | None = typer.Option(None, "--config", "-c", help="Catalog config JSON"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show an instance's spec and status."""
    runtime = make_runtime(config_path)
    with handle_errors():
        instance = runtime.store.get(instance_id)

    if json_out:
        output_json(instance)
        return
    spec, status = instance.spec, instance.status
    print_dict(
        {
            "demo": f"{spec.demo_name} ({spec.demo_id})",
            "kind": spec.demo_kind.value,
            "target": spec.resolved_run_target,
            "parameters": spec.parameters,
            "created": spec.created_at,
        },
        title=f"Instance: {instance_id}",
    )
    print_dict(
        {
            "state": styled_state(status.state.value),
            "started": status.started_at,
            "completed": status.completed_at,
            "message": status.message,
            "error": status.error,
            "summary": status.summary,
        },
        title="Status",
    )
    if output and status.output:
        console.rule("output")
        typer.echo(status.output, nl=not status.output.endswith("\n"))


@app.command("create")
def create_instance(
    demo_id: str = typer.Argument(..., help="Demo ID"),
    param: list[str] = typer.Option([], "--param", "-p", help="Parameter as name=value"),
    run: bool = typer.Option(False, "--run", help="Execute right after creating"),
    config_path: str | None = typer.Option(None, "--config", "-c", help="Catalog config JSON"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Create a pending instance of a demo."""
    runtime = make_runtime(config_path)
    with handle_errors():
        definitions = runtime.catalog.load_definitions(runtime.config)
    definition = next((d for d in definitions if d.id == demo_id), None)
    if definition is None:
        err_console.print(f"[bold red]Error[/bold red]: demo not found: {demo_id}")
        raise typer.Exit(code=1)

    values = form_values(definition, param)
    store = runtime.store
    with handle_errors():
        instance = store.create(definition, values, runtime.config)

    if json_out:
        output_json(instance)
    else:
        console.print(f"Created [bold]{instance.id}[/bold]")
    if run:
        _run(runtime.orchestrator(store), instance.id)


@app.command("run")
def run_instance(
    instance_id: str = typer.Argument(..., help="Instance ID"),
    config_path: str | None = typer.Option(None, "--config", "-c", help="Catalog config JSON"),
) -> None:
    """Execute an instance, streaming its output."""
    runtime = make_runtime(config_path)
    _run(runtime.orchestrator(), instance_id)


def _run(orchestrator: Any, instance_id: str) -> None:
    async def _consume() -> None:
        async for chunk in orchestrator.stream(instance_id):
            typer.echo(chunk, nl=False)

    with handle_errors():
        run_async(_consume())
    console.print(f"{instance_id}: {styled_state('completed')}")


@app.command("reapply")
def reapply_instance(
    instance_id: str = typer.Argument(..., help="Instance ID"),
    config_path: str | None = typer.Option(None, "--config", "-c", help="Catalog config JSON"),
) -> None:
    """Reset an instance to pending so it can run again."""
    runtime = make_runtime(config_path)
    with handle_errors():
        status = run_async(runtime.orchestrator().reapply(instance_id))
    _print_status(instance_id, status)


@app.command("delete")
def delete_instance(
    instance_id: str = typer.Argument(..., help="Instance ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    config_path: str | None = typer.Option(None, "--config", "-c", help="Catalog config JSON"),
) -> None:
    """Delete an instance and its records."""
    if not yes:
        typer.confirm(f"Delete instance {instance_id}?", abort=True)
    runtime = make_runtime(config_path)
    with handle_errors():
        run_async(runtime.store.delete(instance_id))
    console.print(f"Deleted [bold]{instance_id}[/bold]")


@app.command("watch")
def watch_instance(
    instance_id: str = typer.Argument(..., help="Instance ID"),
    interval: float | None = typer.Option(None, "--interval", "-i", help="Seconds between polls"),
    config_path: str | None = typer.Option(None, "--config", "-c", help="Catalog config JSON"),
) -> None:
    """Poll an instance's status until it completes or fails."""
    runtime = make_runtime(config_path)

    async def _poll() -> InstanceStatus | None:
        last: InstanceStatus | None = None
        async for status in runtime.orchestrator().watch(instance_id, interval):
            if last is None or status.state is not last.state:
                _print_status(instance_id, status)
            last = status
        return last

    with handle_errors():
        final = run_async(_poll())
    if final is not None and final.state.value == "failed":
        raise typer.Exit(code=1)
