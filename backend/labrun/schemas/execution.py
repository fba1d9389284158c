"""Schemas for the protocol execution aggregate and its commands."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

# purpose: typed execution aggregate shared by the engine, the store adapter and the API
# status: production
# depends_on: labrun.services.execution_controller, labrun.services.execution_store

ExecutionStatus = Literal[
    "NOT_STARTED",
    "IN_PROGRESS",
    "PAUSED",
    "COMPLETED",
    "FAILED",
    "CANCELLED",
]
SampleStatus = Literal["PENDING", "IN_PROGRESS", "COMPLETED", "FAILED", "SKIPPED"]
SampleQuality = Literal["pass", "fail", "warning"]
ResultStatus = Literal["PENDING", "PASSED", "FAILED", "PARTIAL"]
CorrectionKind = Literal["ROLLBACK", "VALUE_EDIT"]
MeasurementDataType = Literal["numeric", "text", "boolean"]

MeasurementValue = Union[bool, float, int, str]


class MeasurementDefinition(BaseModel):
    id: str = Field(min_length=1)
    name: str
    unit: str | None = None
    data_type: MeasurementDataType = "numeric"
    required: bool = True
    expected_value: MeasurementValue | None = None
    tolerance: float | None = Field(default=None, ge=0)
    description: str | None = None


class StepDefinition(BaseModel):
    id: str = Field(min_length=1)
    title: str
    description: str | None = None
    instructions: list[str] = Field(default_factory=list)
    measurements: list[MeasurementDefinition] = Field(default_factory=list)
    estimated_duration: str | None = None

    @model_validator(mode="after")
    def check_unique_measurement_ids(self) -> "StepDefinition":
        ids = [measurement.id for measurement in self.measurements]
        if len(ids) != len(set(ids)):
            raise ValueError(f"step {self.id} declares duplicate measurement ids")
        return self

    def measurement(self, measurement_id: str) -> MeasurementDefinition | None:
        for definition in self.measurements:
            if definition.id == measurement_id:
                return definition
        return None


class ProtocolSettings(BaseModel):
    """Per-protocol policy switches consulted by the sample tracker."""

    strict_tolerance: bool = False
    allow_early_sample_completion: bool = True


class TestCondition(BaseModel):
    name: str = Field(min_length=1)
    target_value: str
    unit: str | None = None
    tolerance: str | None = None
    required: bool = False
    description: str | None = None
    actual_value: str | None = None
    is_set: bool = False
    recorded_at: datetime | None = None


class EnvironmentConditions(BaseModel):
    temperature: float | None = None
    humidity: float | None = None
    pressure: float | None = None
    notes: str | None = None
    location: str | None = None
    equipment: str | None = None
    recorded_at: datetime | None = None


class MeasurementRecord(BaseModel):
    step_id: str
    measurement_id: str
    value: MeasurementValue
    operator: str
    recorded_at: datetime
    note: str | None = None
    within_tolerance: bool | None = None


class CorrectionEntry(BaseModel):
    """Immutable audit record of a rollback or a value edit."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    sample_id: UUID
    step_id: str
    kind: CorrectionKind
    measurement_id: str | None = None
    previous_value: MeasurementValue | None = None
    new_value: MeasurementValue | None = None
    removed_step: str | None = None
    reason: str | None = None
    operator: str | None = None
    recorded_at: datetime


class Sample(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    name: str = Field(min_length=1)
    sample_number: int = 1
    description: str | None = None
    material: str | None = None
    batch_number: str | None = None
    lot_number: str | None = None
    status: SampleStatus = "PENDING"
    completed_steps: set[str] = Field(default_factory=set)
    measurements: list[MeasurementRecord] = Field(default_factory=list)
    corrections: list[CorrectionEntry] = Field(default_factory=list)
    quality: SampleQuality | None = None
    notes: str | None = None
    skip_reason: str | None = None
    completion_override: str | None = None
    failure_reason: str | None = None
    operator: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @field_serializer("completed_steps")
    def serialize_completed_steps(self, value: set[str]) -> list[str]:
        return sorted(value)


class ProtocolExecution(BaseModel):
    """Top-level aggregate: one run of a protocol against a study."""

    id: UUID = Field(default_factory=uuid4)
    study_id: str
    protocol_id: str
    study_name: str | None = None
    protocol_name: str | None = None
    category: str | None = None
    status: ExecutionStatus = "NOT_STARTED"
    steps: list[StepDefinition] = Field(default_factory=list)
    settings: ProtocolSettings = Field(default_factory=ProtocolSettings)
    test_conditions: list[TestCondition] = Field(default_factory=list)
    environment: EnvironmentConditions = Field(default_factory=EnvironmentConditions)
    samples: list[Sample] = Field(default_factory=list)
    operator: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    paused_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    failed_at: datetime | None = None
    pause_notes: str | None = None
    summary: str | None = None
    recommendations: str | None = None
    overall_result: ResultStatus = "PENDING"
    failure_reason: str | None = None
    version: int = 0

    def step(self, step_id: str) -> StepDefinition | None:
        for definition in self.steps:
            if definition.id == step_id:
                return definition
        return None

    def sample(self, sample_id: UUID) -> Sample | None:
        for sample in self.samples:
            if sample.id == sample_id:
                return sample
        return None


def _ensure_unique_step_ids(steps: list[StepDefinition]) -> list[StepDefinition]:
    ids = [step.id for step in steps]
    if len(ids) != len(set(ids)):
        raise ValueError("step ids must be unique within a protocol")
    return steps


class SampleCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None
    material: str | None = None
    batch_number: str | None = None
    lot_number: str | None = None
    notes: str | None = None


class ProtocolExecutionCreate(BaseModel):
    study_id: str = Field(min_length=1)
    protocol_id: str = Field(min_length=1)
    study_name: str | None = None
    protocol_name: str | None = None
    category: str | None = None
    operator: str | None = None
    steps: list[StepDefinition] = Field(default_factory=list)
    settings: ProtocolSettings = Field(default_factory=ProtocolSettings)
    test_conditions: list[TestCondition] = Field(default_factory=list)
    environment: EnvironmentConditions = Field(default_factory=EnvironmentConditions)
    samples: list[SampleCreate] = Field(default_factory=list)

    unique_step_ids = field_validator("steps")(_ensure_unique_step_ids)


class StepDefinitionsUpdate(BaseModel):
    steps: list[StepDefinition]

    unique_step_ids = field_validator("steps")(_ensure_unique_step_ids)


class PauseRequest(BaseModel):
    notes: str | None = None


class CompleteExecutionRequest(BaseModel):
    summary: str | None = None
    recommendations: str | None = None


class FailExecutionRequest(BaseModel):
    reason: str


class TestConditionRecord(BaseModel):
    name: str = Field(min_length=1)
    actual_value: str


class EnvironmentUpdate(BaseModel):
    temperature: float | None = None
    humidity: float | None = None
    pressure: float | None = None
    notes: str | None = None
    location: str | None = None
    equipment: str | None = None


class MeasurementRecordCreate(BaseModel):
    step_id: str = Field(min_length=1)
    measurement_id: str = Field(min_length=1)
    value: MeasurementValue | None = None
    operator: str = Field(min_length=1)
    note: str | None = None


class StepRollbackRequest(BaseModel):
    reason: str
    operator: str | None = None


class SampleStartRequest(BaseModel):
    operator: str | None = None


class SampleCompleteRequest(BaseModel):
    quality: SampleQuality
    notes: str | None = None
    override_reason: str | None = None


class SampleSkipRequest(BaseModel):
    reason: str


class SampleFailRequest(BaseModel):
    reason: str


class ToleranceFlag(BaseModel):
    id: str
    within_tolerance: bool


class MeasurementValidation(BaseModel):
    missing_required: list[str] = Field(default_factory=list)
    tolerance_flags: list[ToleranceFlag] = Field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.missing_required

    @property
    def out_of_tolerance(self) -> list[str]:
        return [flag.id for flag in self.tolerance_flags if not flag.within_tolerance]


class SampleOut(Sample):
    current_step_index: int
    progress: float


class ExecutionOut(ProtocolExecution):
    samples: list[SampleOut] = Field(default_factory=list)
    progress: float = 0.0


class ExecutionStatistics(BaseModel):
    total_samples: int
    completed_samples: int
    passed_samples: int
    failed_samples: int
    warning_samples: int
    skipped_samples: int
    sample_completion_percentage: float
    overall_progress: float
    overall_result: ResultStatus


class ExecutionSummary(BaseModel):
    id: UUID
    study_id: str
    protocol_id: str
    study_name: str | None = None
    protocol_name: str | None = None
    status: ExecutionStatus
    operator: str | None = None
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ExecutionEventOut(BaseModel):
    id: UUID
    execution_id: UUID
    event_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    actor: str | None = None
    version: int
    sequence: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
