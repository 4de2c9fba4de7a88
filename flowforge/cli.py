"""Command line interface for the flowforge engine."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Optional, TypeVar

import typer

from .config import load_config
from .engine import WorkflowEngine, build_engine
from .errors import FlowforgeError

T = TypeVar("T")

app = typer.Typer(help="CLI for flowforge workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for running workflows")
execution_app = typer.Typer(help="Commands for inspecting executions")
schedule_app = typer.Typer(help="Commands for managing cron schedules")

app.add_typer(workflow_app, name="workflow")
app.add_typer(execution_app, name="execution")
app.add_typer(schedule_app, name="schedule")


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to a YAML config file"
    ),
    log_level: str = typer.Option("INFO", "--log-level", help="Root logging level"),
) -> None:
    """flowforge CLI entry point."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"config": config}


def _engine(ctx: typer.Context) -> WorkflowEngine:
    return build_engine(load_config((ctx.obj or {}).get("config")))


def _run(call: Awaitable[T]) -> T:
    try:
        return asyncio.run(call)
    except FlowforgeError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


@app.command("serve")
def serve(
    ctx: typer.Context,
    lifespan: Optional[float] = typer.Option(
        None, help="Seconds to run before shutting down (default: run indefinitely)"
    ),
    http: bool = typer.Option(False, "--http", help="Serve the delivery endpoint"),
    host: str = typer.Option("0.0.0.0", help="HTTP bind address"),
    port: int = typer.Option(8000, help="HTTP port"),
) -> None:
    """
    Start the engine: bootstrap schedules, run the timers and the duplicate sweep.

    Example:
        flowforge serve --lifespan 60
        flowforge serve --http --port 8080
    """
    engine = _engine(ctx)

    async def _serve() -> None:
        report = await engine.start()
        typer.echo(
            f"Engine started: {len(report.registered)} schedules resumed, "
            f"{len(report.deactivated)} deactivated, {len(report.failed)} failed"
        )
        try:
            if http:
                import uvicorn

                from .server import create_app

                server = uvicorn.Server(
                    uvicorn.Config(create_app(engine), host=host, port=port, log_config=None)
                )
                if lifespan is not None:
                    await asyncio.wait_for(server.serve(), timeout=lifespan)
                else:
                    await server.serve()
            elif lifespan is not None:
                await asyncio.sleep(lifespan)
            else:
                await asyncio.Event().wait()
        except asyncio.TimeoutError:
            pass
        finally:
            await engine.stop()

    _run(_serve())


@workflow_app.command("run")
def workflow_run(
    ctx: typer.Context,
    workflow_id: str,
    payload: Optional[str] = typer.Option(None, help="Trigger payload as JSON"),
    isolated: bool = typer.Option(False, "--isolated", help="Run in a worker process"),
) -> None:
    """
    Run a workflow once and print the execution record.

    Example:
        flowforge workflow run wf_1 --payload '{"email": "a@example.com"}'
    """
    try:
        data = json.loads(payload) if payload else {}
    except ValueError as e:
        typer.secho(f"Invalid payload JSON: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    engine = _engine(ctx)

    async def _execute() -> Any:
        try:
            if isolated or engine.config.isolation.enabled:
                return await engine.run_isolated(workflow_id, data)
            return await engine.run_workflow(workflow_id, data)
        finally:
            await engine.close()

    result = _run(_execute())
    if hasattr(result, "to_document"):
        _echo_json(result.to_document())
        return
    _echo_json(result.model_dump())
    if not result.success:
        raise typer.Exit(code=1)


@execution_app.command("list")
def execution_list(
    ctx: typer.Context,
    workflow: Optional[str] = typer.Option(None, help="Only executions of this workflow"),
) -> None:
    """List executions with their status."""
    engine = _engine(ctx)
    records = _run(engine.list_executions(workflow))
    if not records:
        typer.echo("No executions found")
        return
    for record in records:
        typer.echo(
            f"{record.id}\t{record.workflow_id}\t{record.status}\t{record.started_at.isoformat()}"
        )


@execution_app.command("show")
def execution_show(ctx: typer.Context, execution_id: str) -> None:
    """Show one execution with its log."""
    engine = _engine(ctx)
    record = _run(engine.get_execution(execution_id))
    if record is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)

    typer.echo(f"Execution {record.id}: {record.status}")
    typer.echo(f"Workflow: {record.workflow_id}")
    if record.error:
        typer.echo(f"Error: {record.error}")
    for entry in record.logs:
        typer.echo(f"- {entry.timestamp.isoformat()} [{entry.level}] {entry.message}")


@schedule_app.command("list")
def schedule_list(ctx: typer.Context) -> None:
    """List live schedules held by this process."""
    engine = _engine(ctx)
    entries = engine.list_active_schedules()
    if not entries:
        typer.echo("No active schedules")
        return
    for entry in entries:
        next_run = entry.next_execution.isoformat() if entry.next_execution else "-"
        typer.echo(f"{entry.workflow_id}\t{entry.cron_expression}\t{entry.timezone}\t{next_run}")


@schedule_app.command("activate")
def schedule_activate(ctx: typer.Context, workflow_id: str) -> None:
    """Register a cron workflow and mark it active."""
    engine = _engine(ctx)

    async def _activate() -> Any:
        try:
            return await engine.activate_schedule(workflow_id)
        finally:
            await engine.close()

    entry = _run(_activate())
    typer.echo(f"Activated {workflow_id}: {entry.cron_expression} ({entry.timezone})")


@schedule_app.command("deactivate")
def schedule_deactivate(
    ctx: typer.Context,
    workflow_id: str,
    clear_queue: bool = typer.Option(
        False, "--clear-queue", help="Also cancel runs that are in flight"
    ),
) -> None:
    """Remove a workflow's schedule and mark it inactive."""
    engine = _engine(ctx)
    removed = _run(engine.deactivate_schedule(workflow_id, also_clear_queue=clear_queue))
    typer.echo(f"Deactivated {workflow_id}" if removed else f"{workflow_id} was not scheduled")


@schedule_app.command("deactivate-all")
def schedule_deactivate_all(ctx: typer.Context) -> None:
    """Remove every schedule held by this process."""
    engine = _engine(ctx)
    count = _run(engine.deactivate_all_schedules())
    typer.echo(f"Deactivated {count} schedules")


@schedule_app.command("sweep")
def schedule_sweep(ctx: typer.Context) -> None:
    """Run one duplicate-execution sweep."""
    engine = _engine(ctx)
    stopped = _run(engine.reconcile())
    typer.echo(f"Stopped {len(stopped)} duplicate executions")
    for execution_id in stopped:
        typer.echo(f"- {execution_id}")
