"""SQLAlchemy store adapter for the execution aggregate."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from .. import models, schemas
from .errors import ConcurrentModification, ExecutionNotFound

# purpose: load, create and version-checked save of ProtocolExecution aggregates
# inputs: SQLAlchemy session, aggregate instances
# outputs: aggregates hydrated from protocol_executions rows; version bumped on every save
# status: production
# depends_on: labrun.models.ProtocolExecutionRecord

logger = logging.getLogger(__name__)


def _document(execution: schemas.ProtocolExecution) -> dict:
    return execution.model_dump(mode="json", exclude={"version"})


class ExecutionStore:
    """Durable load/save of executions; writes compare and bump ``version``."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _record(self, execution_id: UUID) -> models.ProtocolExecutionRecord:
        record = self.db.get(models.ProtocolExecutionRecord, execution_id)
        if record is None:
            raise ExecutionNotFound(execution_id)
        return record

    def _hydrate(self, record: models.ProtocolExecutionRecord) -> schemas.ProtocolExecution:
        execution = schemas.ProtocolExecution.model_validate(record.document)
        execution.version = record.version
        return execution

    def create(self, execution: schemas.ProtocolExecution) -> schemas.ProtocolExecution:
        if execution.created_at is None:
            execution.created_at = datetime.now(timezone.utc)
        record = models.ProtocolExecutionRecord(
            id=execution.id,
            study_id=execution.study_id,
            protocol_id=execution.protocol_id,
            study_name=execution.study_name,
            protocol_name=execution.protocol_name,
            status=execution.status,
            operator=execution.operator,
            document=_document(execution),
        )
        self.db.add(record)
        self.db.flush()
        execution.version = record.version
        return execution

    def load(self, execution_id: UUID) -> schemas.ProtocolExecution:
        return self._hydrate(self._record(execution_id))

    def save(self, execution: schemas.ProtocolExecution) -> schemas.ProtocolExecution:
        """Persist ``execution`` if the stored version still matches, then bump it."""

        record = self._record(execution.id)
        if record.version != execution.version:
            logger.warning(
                "Rejecting stale save of execution %s (have %s, stored %s)",
                execution.id,
                execution.version,
                record.version,
            )
            raise ConcurrentModification(execution.id, execution.version, record.version)
        record.status = execution.status
        record.operator = execution.operator
        record.document = _document(execution)
        record.updated_at = datetime.now(timezone.utc)
        try:
            self.db.flush()
        except StaleDataError as exc:
            logger.warning("Execution %s was updated by another writer", execution.id)
            raise ConcurrentModification(execution.id, execution.version, None) from exc
        execution.version = record.version
        return execution

    def list_by_study(self, study_id: str) -> list[schemas.ExecutionSummary]:
        records = (
            self.db.query(models.ProtocolExecutionRecord)
            .filter(models.ProtocolExecutionRecord.study_id == study_id)
            .order_by(models.ProtocolExecutionRecord.created_at.asc())
            .all()
        )
        return [schemas.ExecutionSummary.model_validate(record) for record in records]
