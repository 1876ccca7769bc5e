"""Command line interface for running replayflow deciders and workers."""

from __future__ import annotations

import asyncio
import json
import logging
import signal
from pathlib import Path
from typing import Any, Callable, Optional

import typer
from pydantic import ValidationError

from replayflow.config import ReplayflowConfig, load_config
from replayflow.contracts import ActivityOptions, DecisionTask, HistoryEvent
from replayflow.errors import UnknownWorkflowError
from replayflow.registry import ActivityRegistry, WorkflowRegistry, load_module
from replayflow.replay import WorkflowReplayer
from replayflow.transports import BaseServiceClient, get_service_client
from replayflow.worker import ActivityWorker, Decider

app = typer.Typer(help="CLI for replayflow deciders and activity workers")

decider_app = typer.Typer(help="Commands for running deciders")
activity_app = typer.Typer(help="Commands for running activity workers")

app.add_typer(decider_app, name="decider")
app.add_typer(activity_app, name="activity")

_state: dict[str, Any] = {"config_path": None}


@app.callback()
def main(
    log_level: str = typer.Option("INFO", help="Logging level"),
    config: Optional[Path] = typer.Option(None, help="Path to a YAML config file"),
) -> None:
    """replayflow CLI entry point."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _state["config_path"] = str(config) if config else None


def _config(domain: Optional[str], backend: Optional[str]) -> ReplayflowConfig:
    config = load_config(_state["config_path"])
    if domain:
        config.service.swf.domain = domain
    if backend:
        config.service.backend = backend
    return config


def _load(module: str):
    try:
        return load_module(module)
    except (ImportError, ValueError) as exc:
        typer.secho(f"Cannot load {module}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _service_client(config: ReplayflowConfig) -> BaseServiceClient:
    try:
        return get_service_client(config=config)
    except (ImportError, ValueError) as exc:
        typer.secho(f"Cannot create service client: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _resolve_workflow(module: str, name: Optional[str]) -> Callable[..., Any]:
    registry = WorkflowRegistry.from_module(_load(module))
    try:
        return registry.get(name) if name else registry.only()
    except UnknownWorkflowError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _run_until_interrupted(poller: Any, lifespan: Optional[float]) -> None:
    async def _main() -> None:
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, poller.stop)
        except (NotImplementedError, RuntimeError):
            pass
        await poller.start(lifespan=lifespan)

    asyncio.run(_main())


@decider_app.command("start")
def decider_start(
    module: str = typer.Argument(..., help="Python file or dotted module with workflows"),
    workflow: Optional[str] = typer.Option(None, help="Workflow name to run"),
    task_list: Optional[str] = typer.Option(None, help="Task list to poll"),
    domain: Optional[str] = typer.Option(None, help="SWF domain"),
    identity: Optional[str] = typer.Option(None, help="Identity of this decider"),
    backend: Optional[str] = typer.Option(None, help="Service backend"),
    lifespan: Optional[float] = typer.Option(None, help="Seconds to run before exiting"),
) -> None:
    """
    Run a decider that replays a workflow for every decision task.

    Example:
        replayflow decider start ./workflows.py --workflow signup --task-list main
    """
    config = _config(domain, backend)
    task_list = task_list or config.decider.task_list
    if not task_list:
        typer.secho("A task list is required", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    workflow_fn = _resolve_workflow(module, workflow)
    decider = Decider(
        _service_client(config),
        workflow_fn,
        task_list,
        identity=identity or config.decider.identity,
        activity_defaults=ActivityOptions(version=config.activity.default_version),
    )
    typer.echo(f"Starting decider '{decider.identity}' for task list '{task_list}'")
    _run_until_interrupted(decider, lifespan)


@activity_app.command("start")
def activity_start(
    module: str = typer.Argument(..., help="Python file or dotted module with activities"),
    task_list: Optional[str] = typer.Option(None, help="Task list to poll"),
    domain: Optional[str] = typer.Option(None, help="SWF domain"),
    identity: Optional[str] = typer.Option(None, help="Identity of this worker"),
    backend: Optional[str] = typer.Option(None, help="Service backend"),
    concurrency: Optional[int] = typer.Option(None, help="Activities run at once"),
    lifespan: Optional[float] = typer.Option(None, help="Seconds to run before exiting"),
) -> None:
    """
    Run a worker executing the activities defined in MODULE.

    Example:
        replayflow activity start ./activities.py --task-list main --concurrency 4
    """
    config = _config(domain, backend)
    task_list = task_list or config.activity.task_list
    if not task_list:
        typer.secho("A task list is required", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    registry = ActivityRegistry.from_module(_load(module))
    if not len(registry):
        typer.secho(f"No activities found in {module}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    worker = ActivityWorker(
        _service_client(config),
        registry,
        task_list,
        identity=identity or config.activity.identity,
        heartbeat_interval=config.activity.heartbeat_interval,
        max_concurrency=concurrency or config.activity.max_concurrency,
    )
    typer.echo(f"Starting activity worker '{worker.identity}' for task list '{task_list}'")
    _run_until_interrupted(worker, lifespan)


@activity_app.command("list")
def activity_list(module: str) -> None:
    """List the activities registered in MODULE."""
    registry = ActivityRegistry.from_module(_load(module))
    if not len(registry):
        typer.echo("No activities found.")
        return
    for descriptor in registry.descriptors():
        summary = (descriptor.description or "").splitlines()
        line = f"{descriptor.name}\t{descriptor.version}"
        if summary:
            line += f"\t{summary[0]}"
        typer.echo(line)


@app.command("replay")
def replay(
    module: str,
    history: Path,
    workflow: Optional[str] = typer.Option(None, help="Workflow name to replay"),
) -> None:
    """
    Replay a saved history offline and print the resulting decisions as JSON.

    HISTORY is a JSON file holding either a list of events or an object with
    an ``events`` list (plus optional ``workflow_id``).
    """
    if not history.exists():
        typer.secho(f"History file {history} does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    try:
        data = json.loads(history.read_text())
        if isinstance(data, list):
            data = {"events": data}
        task = DecisionTask(
            task_token="offline",
            workflow_id=data.get("workflow_id", "offline"),
            run_id=data.get("run_id"),
            events=[HistoryEvent.model_validate(event) for event in data.get("events", [])],
        )
    except (ValueError, AttributeError, ValidationError) as exc:
        typer.secho(f"Invalid history file {history}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    workflow_fn = _resolve_workflow(module, workflow)
    outcome, decisions = WorkflowReplayer(workflow_fn).replay(task)
    typer.echo(
        json.dumps(
            {
                "status": outcome.status,
                "decisions": [d.model_dump(mode="json", exclude_none=True) for d in decisions],
            },
            indent=2,
        )
    )


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
