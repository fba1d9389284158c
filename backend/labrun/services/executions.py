"""Command dispatch for protocol executions: load, apply, persist."""

from __future__ import annotations

import logging
from typing import Any, Callable
from uuid import UUID

from sqlalchemy.orm import Session

from .. import schemas
from ..eventlog import record_execution_event
from . import progress
from .errors import ConcurrentModification
from .execution_controller import ExecutionController
from .execution_store import ExecutionStore

# purpose: serialize commands per execution through version-checked aggregate writes
# inputs: SQLAlchemy session, execution id, controller command callable, optional caller version
# outputs: updated aggregate plus a changed flag; timeline event appended on genuine change
# status: production
# depends_on: labrun.services.execution_store, labrun.services.execution_controller, labrun.eventlog

logger = logging.getLogger(__name__)

Command = Callable[[ExecutionController], bool]


def create_execution(
    db: Session,
    payload: schemas.ProtocolExecutionCreate,
) -> schemas.ProtocolExecution:
    """Bind a protocol's step definitions to a study as a new NOT_STARTED execution."""

    execution = schemas.ProtocolExecution(
        study_id=payload.study_id,
        protocol_id=payload.protocol_id,
        study_name=payload.study_name,
        protocol_name=payload.protocol_name,
        category=payload.category,
        operator=payload.operator,
        steps=payload.steps,
        settings=payload.settings,
        test_conditions=payload.test_conditions,
        environment=payload.environment,
        samples=[
            schemas.Sample(sample_number=number, **sample.model_dump())
            for number, sample in enumerate(payload.samples, start=1)
        ],
    )
    store = ExecutionStore(db)
    store.create(execution)
    record_execution_event(
        db,
        execution.id,
        "execution.created",
        {
            "study_id": execution.study_id,
            "protocol_id": execution.protocol_id,
            "steps": len(execution.steps),
            "samples": len(execution.samples),
        },
        execution.version,
        payload.operator,
    )
    db.commit()
    logger.info("Created execution %s for study %s", execution.id, execution.study_id)
    return execution


def get_execution(db: Session, execution_id: UUID) -> schemas.ProtocolExecution:
    return ExecutionStore(db).load(execution_id)


def list_executions_for_study(db: Session, study_id: str) -> list[schemas.ExecutionSummary]:
    return ExecutionStore(db).list_by_study(study_id)


def dispatch(
    db: Session,
    execution_id: UUID,
    command: str,
    handler: Command,
    *,
    expected_version: int | None = None,
    actor: str | None = None,
    detail: dict[str, Any] | None = None,
) -> tuple[schemas.ProtocolExecution, bool]:
    """Apply ``handler`` to the stored aggregate and persist it on genuine change.

    Idempotent replays return the stored aggregate untouched, without a write and
    without a version bump, even when ``expected_version`` is stale.
    """

    store = ExecutionStore(db)
    execution = store.load(execution_id)
    loaded_version = execution.version
    controller = ExecutionController(execution)
    changed = handler(controller)
    if not changed:
        logger.debug("Command %s on execution %s was a replay", command, execution_id)
        return execution, False

    if expected_version is not None and expected_version != loaded_version:
        raise ConcurrentModification(execution_id, expected_version, loaded_version)

    store.save(execution)
    record_execution_event(
        db,
        execution.id,
        f"execution.{command}",
        detail or {},
        execution.version,
        actor,
    )
    db.commit()
    logger.info(
        "Applied %s to execution %s (version %s)", command, execution_id, execution.version
    )
    return execution, True


def build_sample_view(
    execution: schemas.ProtocolExecution,
    sample: schemas.Sample,
) -> schemas.SampleOut:
    return schemas.SampleOut.model_validate(
        {
            **sample.model_dump(),
            "current_step_index": progress.current_step_index(sample, execution.steps),
            "progress": progress.sample_progress(sample, len(execution.steps)),
        }
    )


def build_execution_view(execution: schemas.ProtocolExecution) -> schemas.ExecutionOut:
    """Project the aggregate with derived current steps and percentages."""

    return schemas.ExecutionOut.model_validate(
        {
            **execution.model_dump(exclude={"samples"}),
            "samples": [build_sample_view(execution, sample) for sample in execution.samples],
            "progress": progress.overall_progress(execution),
        }
    )
