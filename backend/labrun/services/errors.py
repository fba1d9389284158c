"""Typed failures raised by the execution engine."""

from __future__ import annotations

from typing import Any, Iterable
from uuid import UUID

# purpose: give every engine failure a named type and a structured detail payload
# status: production
# depends_on: labrun.routes.executions (HTTP translation)


class ExecutionError(RuntimeError):
    """Base error for execution engine commands."""

    code = "execution_error"

    def to_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": str(self)}


class InvalidTransition(ExecutionError):
    """Raised when a lifecycle command does not apply to the current status."""

    code = "invalid_transition"

    def __init__(self, current: str, attempted: str) -> None:
        super().__init__(f"cannot {attempted} an execution that is {current}")
        self.current = current
        self.attempted = attempted

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail.update({"current": self.current, "attempted": self.attempted})
        return detail


class ExecutionNotActive(ExecutionError):
    """Raised when a sample or step command arrives while the execution is not running."""

    code = "execution_not_active"

    def __init__(self, status: str, command: str) -> None:
        super().__init__(f"{command} requires an IN_PROGRESS execution, current status is {status}")
        self.status = status
        self.command = command

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail.update({"status": self.status, "command": self.command})
        return detail


class StepDefinitionsLocked(ExecutionError):
    """Raised when step definitions change after the execution has started."""

    code = "step_definitions_locked"

    def __init__(self, status: str) -> None:
        super().__init__(f"step definitions are fixed once an execution is {status}")
        self.status = status


class SampleNotActive(ExecutionError):
    """Raised when a sample in a terminal status receives a progress command."""

    code = "sample_not_active"

    def __init__(self, sample_id: UUID, status: str) -> None:
        super().__init__(f"sample {sample_id} is {status}")
        self.sample_id = sample_id
        self.status = status

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail.update({"sample_id": str(self.sample_id), "status": self.status})
        return detail


class ValidationFailure(ExecutionError):
    """Base for rejected inputs; nothing is mutated when raised."""

    code = "validation_failure"


class SampleNotReady(ValidationFailure):
    """Raised when a sample is completed before its last step without an override."""

    code = "sample_not_ready"

    def __init__(self, sample_id: UUID, current_step_index: int, total_steps: int) -> None:
        super().__init__(
            f"sample {sample_id} is at step {current_step_index} of {total_steps}"
        )
        self.sample_id = sample_id
        self.current_step_index = current_step_index
        self.total_steps = total_steps

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail.update(
            {
                "sample_id": str(self.sample_id),
                "current_step_index": self.current_step_index,
                "total_steps": self.total_steps,
            }
        )
        return detail


class IncompleteRequiredMeasurements(ValidationFailure):
    """Raised when a step is completed while required measurements are missing."""

    code = "incomplete_required_measurements"

    def __init__(self, step_id: str, missing: Iterable[str]) -> None:
        self.step_id = step_id
        self.missing = list(missing)
        super().__init__(
            f"step {step_id} is missing required measurements: {', '.join(self.missing)}"
        )

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail.update({"step_id": self.step_id, "missing": self.missing})
        return detail


class ToleranceViolation(ValidationFailure):
    """Raised in strict mode when recorded values fall outside their tolerance band."""

    code = "tolerance_violation"

    def __init__(self, step_id: str, measurement_ids: Iterable[str]) -> None:
        self.step_id = step_id
        self.measurement_ids = list(measurement_ids)
        super().__init__(
            f"step {step_id} has values outside tolerance: {', '.join(self.measurement_ids)}"
        )

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail.update({"step_id": self.step_id, "measurement_ids": self.measurement_ids})
        return detail


class InvalidMeasurementValue(ValidationFailure):
    """Raised when a recorded value does not match the measurement data type."""

    code = "invalid_measurement_value"

    def __init__(self, measurement_id: str, data_type: str, value: Any) -> None:
        super().__init__(
            f"measurement {measurement_id} expects a {data_type} value, got {value!r}"
        )
        self.measurement_id = measurement_id
        self.data_type = data_type

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail.update({"measurement_id": self.measurement_id, "data_type": self.data_type})
        return detail


class MissingReason(ValidationFailure):
    """Raised when a correction or skip arrives without a reason."""

    code = "missing_reason"

    def __init__(self, kind: str) -> None:
        super().__init__(f"{kind} requires a non-empty reason")
        self.kind = kind

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["kind"] = self.kind
        return detail


class StepNotCompleted(ExecutionError):
    """Raised when rolling back a step the sample has not completed."""

    code = "step_not_completed"

    def __init__(self, sample_id: UUID, step_id: str) -> None:
        super().__init__(f"step {step_id} is not completed for sample {sample_id}")
        self.sample_id = sample_id
        self.step_id = step_id

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail.update({"sample_id": str(self.sample_id), "step_id": self.step_id})
        return detail


class ConcurrentModification(ExecutionError):
    """Raised when a save races another writer; reload and retry."""

    code = "concurrent_modification"

    def __init__(
        self,
        execution_id: UUID,
        expected_version: int | None,
        actual_version: int | None,
    ) -> None:
        super().__init__(
            f"execution {execution_id} changed concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
        self.execution_id = execution_id
        self.expected_version = expected_version
        self.actual_version = actual_version

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail.update(
            {
                "execution_id": str(self.execution_id),
                "expected_version": self.expected_version,
                "actual_version": self.actual_version,
            }
        )
        return detail


class NotFoundError(ExecutionError):
    """Base for unknown identifiers."""

    code = "not_found"
    kind = "resource"

    def __init__(self, identifier: Any) -> None:
        super().__init__(f"{self.kind} {identifier} not found")
        self.identifier = identifier

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail[self.kind.replace(" ", "_") + "_id"] = str(self.identifier)
        return detail


class ExecutionNotFound(NotFoundError):
    kind = "execution"


class SampleNotFound(NotFoundError):
    kind = "sample"


class StepNotFound(NotFoundError):
    kind = "step"


class MeasurementNotFound(NotFoundError):
    kind = "measurement"


class TestConditionNotFound(NotFoundError):
    kind = "test condition"
