"""Command line interface for reelflow."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
import yaml

from reelflow.compiler import WorkflowAssignment
from reelflow.config import load_config
from reelflow.constants import WORKFLOW_STEPS, work_notes_collection
from reelflow.engine import WorkflowEngine, build_engine
from reelflow.errors import StepNotFoundError, TemplateValidationError
from reelflow.models import WorkflowStep, WorkflowTemplate

app = typer.Typer(help="CLI for reelflow production workflows")

template_app = typer.Typer(help="Commands for workflow templates")
session_app = typer.Typer(help="Commands for work sessions")
instance_app = typer.Typer(help="Commands for workflow instances")
step_app = typer.Typer(help="Commands for workflow steps")
worker_app = typer.Typer(help="Commands for trigger workers")

app.add_typer(template_app, name="template")
app.add_typer(session_app, name="session")
app.add_typer(instance_app, name="instance")
app.add_typer(step_app, name="step")
app.add_typer(worker_app, name="worker")

_config_path: Optional[str] = None


@app.callback()
def main(config: Optional[Path] = typer.Option(None, help="Path to reelflow.yaml")) -> None:
    """reelflow CLI entry point."""
    global _config_path
    _config_path = str(config) if config else None
    cfg = load_config(_config_path)
    logging.basicConfig(
        level=cfg.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _engine() -> WorkflowEngine:
    cfg = load_config(_config_path)
    if not cfg.store.database_url:
        typer.secho(
            "No store.database_url configured: using an in-memory store that is "
            "discarded when this command exits. Set REELFLOW_DATABASE_URL "
            "(e.g. sqlite://reelflow.db) to keep data between commands.",
            fg=typer.colors.YELLOW,
            err=True,
        )
    return build_engine(cfg)


def _read_template(path: Path) -> WorkflowTemplate:
    if not path.exists():
        typer.secho(f"Template file not found: {path}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    data = yaml.safe_load(path.read_text()) or {}
    data.setdefault("id", path.stem)
    return WorkflowTemplate.model_validate(data)


def _echo_steps(steps: list[WorkflowStep]) -> None:
    for step in sorted(steps, key=lambda s: s.order):
        subtype = f" [{step.agent_subtype}]" if step.agent_subtype else ""
        typer.echo(
            f"- {step.id}\t{step.name}\t{step.step_type.value}{subtype}\t{step.status.value}"
        )


@template_app.command("import")
def template_import(path: Path) -> None:
    """
    Store a YAML or JSON template so sessions can be assigned to it.

    Example:
        reelflow template import ./templates/post.yaml
    """
    template = _read_template(path)

    async def _run() -> str:
        engine = _engine()
        return await engine.compiler.save_template(template)

    template_id = asyncio.run(_run())
    typer.echo(f"Template stored: {template_id}")


@template_app.command("compile")
def template_compile(
    path: Path,
    session: str = typer.Option(..., help="Session the instance belongs to"),
    phase: str = typer.Option(..., help="Production phase, e.g. POST_PRODUCTION"),
    org: Optional[str] = typer.Option(None, help="Organization id"),
) -> None:
    """
    Compile a template file into a workflow instance and its steps.

    Example:
        reelflow template compile ./templates/post.yaml --session s1 --phase POST_PRODUCTION
    """
    template = _read_template(path)

    async def _run():
        engine = _engine()
        return await engine.compiler.instantiate(
            template, session_id=session, phase=phase, organization_id=org
        )

    try:
        compiled = asyncio.run(_run())
    except TemplateValidationError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)

    typer.echo(f"Instance {compiled.instance.id}: {len(compiled.steps)} steps")
    _echo_steps(compiled.steps)


@session_app.command("assign")
def session_assign(
    session_id: str,
    template_id: str = typer.Option(..., "--template", help="Stored template id"),
    phase: str = typer.Option(..., help="Production phase"),
    org: Optional[str] = typer.Option(None, help="Organization id"),
    department: Optional[str] = typer.Option(None, help="Department name"),
) -> None:
    """Assign a stored template to a session phase."""
    assignment = WorkflowAssignment(
        phase=phase, template_id=template_id, department_name=department
    )

    async def _run():
        engine = _engine()
        return await engine.compiler.assign_workflows(
            session_id, [assignment], organization_id=org
        )

    try:
        result = asyncio.run(_run())
    except TemplateValidationError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)

    if not result.instances:
        typer.echo("No workflow assigned")
        raise typer.Exit(code=1)
    for instance in result.instances:
        typer.echo(f"Instance {instance.id} ({instance.name}, {instance.phase})")
    typer.echo(f"Steps created: {result.steps_created}")


@instance_app.command("show")
def instance_show(instance_id: str) -> None:
    """List the steps of a workflow instance with their status."""

    async def _run() -> list[WorkflowStep]:
        engine = _engine()
        docs = await engine.store.query(WORKFLOW_STEPS, "instance_id", instance_id)
        return [WorkflowStep.from_document(doc) for doc in docs]

    steps = asyncio.run(_run())
    if not steps:
        typer.echo("Instance not found")
        raise typer.Exit(code=1)
    typer.echo(f"Instance {instance_id}")
    _echo_steps(steps)


@step_app.command("complete")
def step_complete(step_id: str) -> None:
    """
    Mark a step COMPLETED and let dependents and agents run.

    In local trigger mode the command waits until every agent started by the
    cascade has finished.
    """

    async def _run():
        engine = _engine()
        try:
            result = await engine.complete_step(step_id)
            if engine.local:
                await engine.settle()
            return result
        finally:
            await engine.aclose()

    try:
        result = asyncio.run(_run())
    except StepNotFoundError as e:
        typer.echo(str(e))
        raise typer.Exit(code=1)

    if result is None:
        typer.echo(f"Step {step_id} was already finished")
    else:
        typer.echo(f"Step {step_id} completed")


@app.command("notes")
def notes(session_id: str) -> None:
    """Print the work notes of a session."""

    async def _run() -> list[dict]:
        engine = _engine()
        return await engine.store.list_all(work_notes_collection(session_id))

    entries = sorted(asyncio.run(_run()), key=lambda n: n.get("timestamp", ""))
    if not entries:
        typer.echo("No work notes")
        return
    for note in entries:
        typer.echo(f"[{note.get('author_role')}] {note.get('content')}")


@worker_app.command("run")
def worker_run(lifespan: Optional[float] = None) -> None:
    """
    Consume step change events from the configured transport.

    Example:
        REELFLOW_TRANSPORT=redis reelflow worker run --lifespan 300
    """

    async def _run() -> int:
        engine = _engine()
        try:
            worker = engine.worker()
        except RuntimeError as e:
            typer.secho(str(e), fg=typer.colors.RED)
            raise typer.Exit(code=1)
        try:
            await worker.start(lifespan=lifespan)
            await engine.settle()
        finally:
            await engine.aclose()
        return worker.processed

    typer.echo("Starting trigger worker")
    processed = asyncio.run(_run())
    typer.echo(f"Processed {processed} change events")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
