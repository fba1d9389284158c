import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON, Integer
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProtocolExecutionRecord(Base):
    __tablename__ = "protocol_executions"

    # purpose: persist the execution aggregate as a single versioned row
    # document: pydantic ProtocolExecution dump (samples, records, corrections nested)
    # version: optimistic concurrency counter, compared and bumped on every UPDATE

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    study_id = Column(String, nullable=False, index=True)
    protocol_id = Column(String, nullable=False)
    study_name = Column(String, nullable=True)
    protocol_name = Column(String, nullable=True)
    status = Column(String, nullable=False, default="NOT_STARTED")
    operator = Column(String, nullable=True)
    document = Column(JSON, nullable=False, default=dict)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    events = relationship(
        "ExecutionEvent",
        back_populates="execution",
        cascade="all, delete-orphan",
        order_by="ExecutionEvent.sequence",
    )

    __mapper_args__ = {"version_id_col": version}


class ExecutionEvent(Base):
    __tablename__ = "execution_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    execution_id = Column(
        UUID(as_uuid=True),
        ForeignKey("protocol_executions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_type = Column(String, nullable=False)
    payload = Column(JSON, default=dict)
    actor = Column(String, nullable=True)
    version = Column(Integer, nullable=False)
    sequence = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    execution = relationship("ProtocolExecutionRecord", back_populates="events")

    __table_args__ = (
        sa.UniqueConstraint("execution_id", "sequence", name="uq_execution_event_sequence"),
    )
