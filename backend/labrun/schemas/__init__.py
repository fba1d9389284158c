"""Pydantic schemas consolidating execution engine contracts."""

# purpose: aggregate domain models, command payloads and projections for services and routes
# status: production

from .execution import (
    CompleteExecutionRequest,
    CorrectionEntry,
    CorrectionKind,
    EnvironmentConditions,
    EnvironmentUpdate,
    ExecutionEventOut,
    ExecutionOut,
    ExecutionStatistics,
    ExecutionStatus,
    ExecutionSummary,
    FailExecutionRequest,
    MeasurementDataType,
    MeasurementDefinition,
    MeasurementRecord,
    MeasurementRecordCreate,
    MeasurementValidation,
    MeasurementValue,
    PauseRequest,
    ProtocolExecution,
    ProtocolExecutionCreate,
    ProtocolSettings,
    ResultStatus,
    Sample,
    SampleCompleteRequest,
    SampleCreate,
    SampleFailRequest,
    SampleOut,
    SampleQuality,
    SampleSkipRequest,
    SampleStartRequest,
    SampleStatus,
    StepDefinition,
    StepDefinitionsUpdate,
    StepRollbackRequest,
    TestCondition,
    TestConditionRecord,
    ToleranceFlag,
)
