"""API routes for protocol execution commands and projections."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import eventlog, schemas
from ..database import get_db
from ..services import errors, executions
from ..services.execution_controller import ExecutionController

# purpose: expose every execution command as a named endpoint; no direct field mutation
# status: production
# depends_on: labrun.services.executions

router = APIRouter(prefix="/api/executions", tags=["executions"])


def _status_for(exc: errors.ExecutionError) -> int:
    if isinstance(exc, errors.NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, errors.ValidationFailure):
        return 422
    return status.HTTP_409_CONFLICT


def _http_error(db: Session, exc: errors.ExecutionError) -> HTTPException:
    db.rollback()
    return HTTPException(status_code=_status_for(exc), detail=exc.to_detail())


def _apply(
    db: Session,
    execution_id: UUID,
    command: str,
    handler: executions.Command,
    *,
    expected_version: int | None,
    actor: str | None = None,
    detail: dict | None = None,
) -> schemas.ProtocolExecution:
    try:
        execution, _ = executions.dispatch(
            db,
            execution_id,
            command,
            handler,
            expected_version=expected_version,
            actor=actor,
            detail=detail,
        )
    except errors.ExecutionError as exc:
        raise _http_error(db, exc) from exc
    return execution


def _sample_view(
    db: Session,
    execution: schemas.ProtocolExecution,
    sample_id: UUID,
) -> schemas.SampleOut:
    sample = execution.sample(sample_id)
    if sample is None:
        raise _http_error(db, errors.SampleNotFound(sample_id))
    return executions.build_sample_view(execution, sample)


@router.post("", response_model=schemas.ExecutionOut, status_code=status.HTTP_201_CREATED)
def create_execution(
    payload: schemas.ProtocolExecutionCreate,
    db: Session = Depends(get_db),
):
    execution = executions.create_execution(db, payload)
    return executions.build_execution_view(execution)


@router.get("", response_model=list[schemas.ExecutionSummary])
def list_executions(study_id: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    return executions.list_executions_for_study(db, study_id)


@router.get("/{execution_id}", response_model=schemas.ExecutionOut)
def get_execution(execution_id: UUID, db: Session = Depends(get_db)):
    try:
        execution = executions.get_execution(db, execution_id)
    except errors.ExecutionNotFound as exc:
        raise _http_error(db, exc) from exc
    return executions.build_execution_view(execution)


@router.get("/{execution_id}/progress", response_model=schemas.ExecutionStatistics)
def get_execution_progress(execution_id: UUID, db: Session = Depends(get_db)):
    try:
        execution = executions.get_execution(db, execution_id)
    except errors.ExecutionNotFound as exc:
        raise _http_error(db, exc) from exc
    return ExecutionController(execution).statistics()


@router.get("/{execution_id}/timeline", response_model=list[schemas.ExecutionEventOut])
def get_execution_timeline(
    execution_id: UUID,
    limit: int = Query(default=200, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    try:
        executions.get_execution(db, execution_id)
    except errors.ExecutionNotFound as exc:
        raise _http_error(db, exc) from exc
    return eventlog.list_execution_events(db, execution_id, limit=limit)


@router.put("/{execution_id}/steps", response_model=schemas.ExecutionOut)
def redefine_steps(
    execution_id: UUID,
    payload: schemas.StepDefinitionsUpdate,
    expected_version: int | None = Query(default=None, ge=0),
    db: Session = Depends(get_db),
):
    execution = _apply(
        db,
        execution_id,
        "steps_redefined",
        lambda controller: controller.redefine_steps(payload.steps),
        expected_version=expected_version,
        detail={"step_ids": [step.id for step in payload.steps]},
    )
    return executions.build_execution_view(execution)


@router.post("/{execution_id}/start", response_model=schemas.ExecutionOut)
def start_execution(
    execution_id: UUID,
    expected_version: int | None = Query(default=None, ge=0),
    db: Session = Depends(get_db),
):
    execution = _apply(
        db,
        execution_id,
        "started",
        lambda controller: controller.start(),
        expected_version=expected_version,
    )
    return executions.build_execution_view(execution)


@router.post("/{execution_id}/pause", response_model=schemas.ExecutionOut)
def pause_execution(
    execution_id: UUID,
    payload: schemas.PauseRequest | None = None,
    expected_version: int | None = Query(default=None, ge=0),
    db: Session = Depends(get_db),
):
    notes = payload.notes if payload else None
    execution = _apply(
        db,
        execution_id,
        "paused",
        lambda controller: controller.pause(notes),
        expected_version=expected_version,
        detail={"notes": notes},
    )
    return executions.build_execution_view(execution)


@router.post("/{execution_id}/resume", response_model=schemas.ExecutionOut)
def resume_execution(
    execution_id: UUID,
    expected_version: int | None = Query(default=None, ge=0),
    db: Session = Depends(get_db),
):
    execution = _apply(
        db,
        execution_id,
        "resumed",
        lambda controller: controller.resume(),
        expected_version=expected_version,
    )
    return executions.build_execution_view(execution)


@router.post("/{execution_id}/complete", response_model=schemas.ExecutionOut)
def complete_execution(
    execution_id: UUID,
    payload: schemas.CompleteExecutionRequest | None = None,
    expected_version: int | None = Query(default=None, ge=0),
    db: Session = Depends(get_db),
):
    payload = payload or schemas.CompleteExecutionRequest()
    execution = _apply(
        db,
        execution_id,
        "completed",
        lambda controller: controller.complete(payload.summary, payload.recommendations),
        expected_version=expected_version,
    )
    return executions.build_execution_view(execution)


@router.post("/{execution_id}/cancel", response_model=schemas.ExecutionOut)
def cancel_execution(
    execution_id: UUID,
    expected_version: int | None = Query(default=None, ge=0),
    db: Session = Depends(get_db),
):
    execution = _apply(
        db,
        execution_id,
        "cancelled",
        lambda controller: controller.cancel(),
        expected_version=expected_version,
    )
    return executions.build_execution_view(execution)


@router.post("/{execution_id}/fail", response_model=schemas.ExecutionOut)
def fail_execution(
    execution_id: UUID,
    payload: schemas.FailExecutionRequest,
    expected_version: int | None = Query(default=None, ge=0),
    db: Session = Depends(get_db),
):
    execution = _apply(
        db,
        execution_id,
        "failed",
        lambda controller: controller.fail(payload.reason),
        expected_version=expected_version,
        detail={"reason": payload.reason},
    )
    return executions.build_execution_view(execution)


@router.post("/{execution_id}/test-conditions", response_model=schemas.ExecutionOut)
def record_test_condition(
    execution_id: UUID,
    payload: schemas.TestConditionRecord,
    expected_version: int | None = Query(default=None, ge=0),
    db: Session = Depends(get_db),
):
    execution = _apply(
        db,
        execution_id,
        "test_condition.recorded",
        lambda controller: controller.record_test_condition(payload.name, payload.actual_value),
        expected_version=expected_version,
        detail=payload.model_dump(),
    )
    return executions.build_execution_view(execution)


@router.patch("/{execution_id}/environment", response_model=schemas.ExecutionOut)
def update_environment(
    execution_id: UUID,
    payload: schemas.EnvironmentUpdate,
    expected_version: int | None = Query(default=None, ge=0),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    execution = _apply(
        db,
        execution_id,
        "environment.updated",
        lambda controller: controller.update_environment(changes),
        expected_version=expected_version,
        detail=changes,
    )
    return executions.build_execution_view(execution)


@router.post("/{execution_id}/samples/{sample_id}/start", response_model=schemas.SampleOut)
def start_sample(
    execution_id: UUID,
    sample_id: UUID,
    payload: schemas.SampleStartRequest | None = None,
    expected_version: int | None = Query(default=None, ge=0),
    db: Session = Depends(get_db),
):
    operator = payload.operator if payload else None
    execution = _apply(
        db,
        execution_id,
        "sample.started",
        lambda controller: controller.start_sample(sample_id, operator),
        expected_version=expected_version,
        actor=operator,
        detail={"sample_id": str(sample_id)},
    )
    return _sample_view(db, execution, sample_id)


@router.post("/{execution_id}/samples/{sample_id}/measurements", response_model=schemas.SampleOut)
def record_measurement(
    execution_id: UUID,
    sample_id: UUID,
    payload: schemas.MeasurementRecordCreate,
    expected_version: int | None = Query(default=None, ge=0),
    db: Session = Depends(get_db),
):
    execution = _apply(
        db,
        execution_id,
        "measurement.recorded",
        lambda controller: controller.record_measurement(
            sample_id,
            payload.step_id,
            payload.measurement_id,
            payload.value,
            payload.operator,
            payload.note,
        ),
        expected_version=expected_version,
        actor=payload.operator,
        detail={
            "sample_id": str(sample_id),
            "step_id": payload.step_id,
            "measurement_id": payload.measurement_id,
            "value": payload.value,
        },
    )
    return _sample_view(db, execution, sample_id)


@router.post(
    "/{execution_id}/samples/{sample_id}/steps/{step_id}/complete",
    response_model=schemas.SampleOut,
)
def complete_step(
    execution_id: UUID,
    sample_id: UUID,
    step_id: str,
    expected_version: int | None = Query(default=None, ge=0),
    db: Session = Depends(get_db),
):
    execution = _apply(
        db,
        execution_id,
        "step.completed",
        lambda controller: controller.complete_step(sample_id, step_id),
        expected_version=expected_version,
        detail={"sample_id": str(sample_id), "step_id": step_id},
    )
    return _sample_view(db, execution, sample_id)


@router.post(
    "/{execution_id}/samples/{sample_id}/steps/{step_id}/rollback",
    response_model=schemas.SampleOut,
)
def rollback_step(
    execution_id: UUID,
    sample_id: UUID,
    step_id: str,
    payload: schemas.StepRollbackRequest,
    expected_version: int | None = Query(default=None, ge=0),
    db: Session = Depends(get_db),
):
    execution = _apply(
        db,
        execution_id,
        "step.rolled_back",
        lambda controller: controller.uncomplete_step(
            sample_id, step_id, payload.reason, payload.operator
        ),
        expected_version=expected_version,
        actor=payload.operator,
        detail={"sample_id": str(sample_id), "step_id": step_id, "reason": payload.reason},
    )
    return _sample_view(db, execution, sample_id)


@router.post("/{execution_id}/samples/{sample_id}/complete", response_model=schemas.SampleOut)
def complete_sample(
    execution_id: UUID,
    sample_id: UUID,
    payload: schemas.SampleCompleteRequest,
    expected_version: int | None = Query(default=None, ge=0),
    db: Session = Depends(get_db),
):
    execution = _apply(
        db,
        execution_id,
        "sample.completed",
        lambda controller: controller.complete_sample(
            sample_id, payload.quality, payload.notes, payload.override_reason
        ),
        expected_version=expected_version,
        detail={
            "sample_id": str(sample_id),
            "quality": payload.quality,
            "override_reason": payload.override_reason,
        },
    )
    return _sample_view(db, execution, sample_id)


@router.post("/{execution_id}/samples/{sample_id}/skip", response_model=schemas.SampleOut)
def skip_sample(
    execution_id: UUID,
    sample_id: UUID,
    payload: schemas.SampleSkipRequest,
    expected_version: int | None = Query(default=None, ge=0),
    db: Session = Depends(get_db),
):
    execution = _apply(
        db,
        execution_id,
        "sample.skipped",
        lambda controller: controller.skip_sample(sample_id, payload.reason),
        expected_version=expected_version,
        detail={"sample_id": str(sample_id), "reason": payload.reason},
    )
    return _sample_view(db, execution, sample_id)


@router.post("/{execution_id}/samples/{sample_id}/fail", response_model=schemas.SampleOut)
def fail_sample(
    execution_id: UUID,
    sample_id: UUID,
    payload: schemas.SampleFailRequest,
    expected_version: int | None = Query(default=None, ge=0),
    db: Session = Depends(get_db),
):
    execution = _apply(
        db,
        execution_id,
        "sample.failed",
        lambda controller: controller.fail_sample(sample_id, payload.reason),
        expected_version=expected_version,
        detail={"sample_id": str(sample_id), "reason": payload.reason},
    )
    return _sample_view(db, execution, sample_id)


@router.get(
    "/{execution_id}/samples/{sample_id}/corrections",
    response_model=list[schemas.CorrectionEntry],
)
def list_corrections(
    execution_id: UUID,
    sample_id: UUID,
    step_id: str | None = None,
    db: Session = Depends(get_db),
):
    try:
        controller = ExecutionController(executions.get_execution(db, execution_id))
        if step_id is not None:
            return controller.corrections_for_step(sample_id, step_id)
        return controller.log.entries_for_sample(sample_id)
    except errors.ExecutionError as exc:
        raise _http_error(db, exc) from exc
