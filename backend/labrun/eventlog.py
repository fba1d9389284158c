"""Utilities for recording execution timeline events."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from . import models

# purpose: shareable helpers for persisting execution timeline events alongside aggregate saves
# inputs: SQLAlchemy session, execution identifier, event metadata
# outputs: normalized ExecutionEvent rows with sequential ordering
# status: production


def record_execution_event(
    db: Session,
    execution_id: UUID,
    event_type: str,
    payload: dict[str, Any],
    version: int,
    actor: str | None = None,
) -> models.ExecutionEvent:
    """Persist a structured execution event for timeline replay."""

    payload_dict = payload if isinstance(payload, dict) else {}
    latest = (
        db.query(models.ExecutionEvent)
        .filter(models.ExecutionEvent.execution_id == execution_id)
        .order_by(models.ExecutionEvent.sequence.desc())
        .first()
    )
    next_sequence = 1 if latest is None else latest.sequence + 1
    event = models.ExecutionEvent(
        execution_id=execution_id,
        event_type=event_type,
        payload=payload_dict,
        actor=actor,
        version=version,
        sequence=next_sequence,
        created_at=datetime.now(timezone.utc),
    )
    db.add(event)
    return event


def list_execution_events(
    db: Session,
    execution_id: UUID,
    *,
    limit: int = 200,
) -> list[models.ExecutionEvent]:
    return (
        db.query(models.ExecutionEvent)
        .filter(models.ExecutionEvent.execution_id == execution_id)
        .order_by(models.ExecutionEvent.sequence.asc())
        .limit(limit)
        .all()
    )
