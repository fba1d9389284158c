"""CLI utilities for inspecting protocol executions."""

# purpose: give lab administrators read-only insight into execution progress and audit trails
# status: production
# depends_on: labrun.database, labrun.services.executions

from __future__ import annotations

import json
from uuid import UUID

import typer

from ..database import SessionLocal, init_db
from ..services import errors, executions, progress
from ..services.execution_controller import ExecutionController

app = typer.Typer(help="Protocol execution maintenance commands")


def _parse_uuid(value: str, label: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise typer.BadParameter(f"{label} must be a UUID") from exc


@app.command("init-db")
def init_db_command() -> None:
    """Create the execution tables on the configured database."""

    init_db()
    typer.echo("execution tables ready")


@app.command("summary")
def summary_command(execution_id: str) -> None:
    """Print status, version, progress and per-sample current step."""

    execution_uuid = _parse_uuid(execution_id, "execution_id")
    with SessionLocal() as session:
        try:
            execution = executions.get_execution(session, execution_uuid)
        except errors.ExecutionNotFound as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=1) from exc

    payload = {
        "id": str(execution.id),
        "status": execution.status,
        "version": execution.version,
        "progress": round(progress.overall_progress(execution), 2),
        "samples": [
            {
                "name": sample.name,
                "status": sample.status,
                "current_step_index": progress.current_step_index(sample, execution.steps),
                "total_steps": len(execution.steps),
            }
            for sample in execution.samples
        ],
    }
    typer.echo(json.dumps(payload, indent=2))


@app.command("corrections")
def corrections_command(
    execution_id: str,
    sample_id: str,
    step_id: str | None = typer.Option(None, help="Limit the trail to one step"),
) -> None:
    """Dump the correction trail of a sample as JSON, oldest first."""

    execution_uuid = _parse_uuid(execution_id, "execution_id")
    sample_uuid = _parse_uuid(sample_id, "sample_id")
    with SessionLocal() as session:
        try:
            controller = ExecutionController(executions.get_execution(session, execution_uuid))
            if step_id is not None:
                entries = controller.corrections_for_step(sample_uuid, step_id)
            else:
                entries = controller.log.entries_for_sample(sample_uuid)
        except errors.NotFoundError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=1) from exc

    typer.echo(json.dumps([entry.model_dump(mode="json") for entry in entries], indent=2))


if __name__ == "__main__":  # pragma: no cover
    app()
