"""Lifecycle state machine and single command entry point for an execution."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Mapping
from uuid import UUID

from .. import schemas
from . import progress
from .correction_log import CorrectionLog
from .errors import (
    ExecutionNotActive,
    InvalidTransition,
    MissingReason,
    SampleNotFound,
    StepDefinitionsLocked,
    TestConditionNotFound,
)
from .sample_tracker import SampleTracker

# purpose: validate every command against the execution lifecycle before touching the aggregate
# inputs: ProtocolExecution aggregate loaded by the store adapter
# outputs: in-place aggregate mutations; commands return True on genuine change, False on replay
# status: production
# depends_on: labrun.services.sample_tracker, labrun.services.correction_log, labrun.services.progress

TERMINAL_STATUSES = {"COMPLETED", "FAILED", "CANCELLED"}

_ENVIRONMENT_FIELDS = {"temperature", "humidity", "pressure", "notes", "location", "equipment"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionController:
    """Owns one execution aggregate and applies named commands to it."""

    def __init__(self, execution: schemas.ProtocolExecution) -> None:
        self.execution = execution
        self.log = CorrectionLog(execution)

    @property
    def status(self) -> str:
        return self.execution.status

    @property
    def is_terminal(self) -> bool:
        return self.execution.status in TERMINAL_STATUSES

    def _require_not_terminal(self, attempted: str) -> None:
        if self.is_terminal:
            raise InvalidTransition(self.execution.status, attempted)

    def _require_active(self, command: str) -> None:
        if self.execution.status != "IN_PROGRESS":
            raise ExecutionNotActive(self.execution.status, command)

    # lifecycle

    def start(self) -> bool:
        if self.execution.status == "IN_PROGRESS":
            return False
        if self.execution.status != "NOT_STARTED":
            raise InvalidTransition(self.execution.status, "start")
        self.execution.status = "IN_PROGRESS"
        self.execution.started_at = _utcnow()
        return True

    def pause(self, notes: str | None = None) -> bool:
        if self.execution.status != "IN_PROGRESS":
            raise InvalidTransition(self.execution.status, "pause")
        self.execution.status = "PAUSED"
        self.execution.paused_at = _utcnow()
        self.execution.pause_notes = notes
        return True

    def resume(self) -> bool:
        if self.execution.status != "PAUSED":
            raise InvalidTransition(self.execution.status, "resume")
        self.execution.status = "IN_PROGRESS"
        return True

    def complete(self, summary: str | None = None, recommendations: str | None = None) -> bool:
        if self.execution.status != "IN_PROGRESS":
            raise InvalidTransition(self.execution.status, "complete")
        self.execution.status = "COMPLETED"
        self.execution.completed_at = _utcnow()
        self.execution.summary = summary
        self.execution.recommendations = recommendations
        self.execution.overall_result = progress.determine_overall_result(self.execution.samples)
        return True

    def cancel(self) -> bool:
        self._require_not_terminal("cancel")
        self.execution.status = "CANCELLED"
        self.execution.cancelled_at = _utcnow()
        return True

    def fail(self, reason: str) -> bool:
        if self.execution.status not in {"IN_PROGRESS", "PAUSED"}:
            raise InvalidTransition(self.execution.status, "fail")
        if not (reason or "").strip():
            raise MissingReason("failure")
        self.execution.status = "FAILED"
        self.execution.failed_at = _utcnow()
        self.execution.failure_reason = reason.strip()
        return True

    def redefine_steps(self, steps: Iterable[schemas.StepDefinition]) -> bool:
        """Replace the step sequence; only allowed before the execution starts."""

        if self.execution.status != "NOT_STARTED":
            raise StepDefinitionsLocked(self.execution.status)
        new_steps = [schemas.StepDefinition.model_validate(step) for step in steps]
        if new_steps == self.execution.steps:
            return False
        self.execution.steps = new_steps
        return True

    # global records

    def record_test_condition(self, name: str, actual_value: str) -> bool:
        self._require_not_terminal("record a test condition on")
        for index, condition in enumerate(self.execution.test_conditions):
            if condition.name != name:
                continue
            if condition.is_set and condition.actual_value == actual_value:
                return False
            self.execution.test_conditions[index] = condition.model_copy(
                update={"actual_value": actual_value, "is_set": True, "recorded_at": _utcnow()}
            )
            return True
        raise TestConditionNotFound(name)

    def update_environment(self, partial: Mapping[str, Any]) -> bool:
        self._require_not_terminal("update the environment of")
        current = self.execution.environment.model_dump()
        changes = {
            key: value
            for key, value in partial.items()
            if key in _ENVIRONMENT_FIELDS and current.get(key) != value
        }
        if not changes:
            return False
        changes["recorded_at"] = _utcnow()
        self.execution.environment = self.execution.environment.model_copy(update=changes)
        return True

    # samples

    def tracker(self, sample_id: UUID) -> SampleTracker:
        sample = self.execution.sample(sample_id)
        if sample is None:
            raise SampleNotFound(sample_id)
        return SampleTracker(self.execution, sample, self.log)

    def _active_tracker(self, sample_id: UUID, command: str) -> SampleTracker:
        self._require_active(command)
        return self.tracker(sample_id)

    def start_sample(self, sample_id: UUID, operator: str | None = None) -> bool:
        return self._active_tracker(sample_id, "start_sample").start_sample(operator)

    def record_measurement(
        self,
        sample_id: UUID,
        step_id: str,
        measurement_id: str,
        value: Any,
        operator: str,
        note: str | None = None,
    ) -> bool:
        tracker = self._active_tracker(sample_id, "record_measurement")
        return tracker.record_measurement(step_id, measurement_id, value, operator, note)

    def complete_step(self, sample_id: UUID, step_id: str) -> bool:
        return self._active_tracker(sample_id, "complete_step").complete_step(step_id)

    def uncomplete_step(
        self,
        sample_id: UUID,
        step_id: str,
        reason: str,
        operator: str | None = None,
    ) -> bool:
        tracker = self._active_tracker(sample_id, "uncomplete_step")
        return tracker.uncomplete_step(step_id, reason, operator)

    def complete_sample(
        self,
        sample_id: UUID,
        quality: schemas.SampleQuality,
        notes: str | None = None,
        override_reason: str | None = None,
    ) -> bool:
        tracker = self._active_tracker(sample_id, "complete_sample")
        return tracker.complete_sample(quality, notes, override_reason)

    def skip_sample(self, sample_id: UUID, reason: str) -> bool:
        return self._active_tracker(sample_id, "skip_sample").skip_sample(reason)

    def fail_sample(self, sample_id: UUID, reason: str) -> bool:
        return self._active_tracker(sample_id, "fail_sample").fail_sample(reason)

    # reads

    def current_step_index(self, sample_id: UUID) -> int:
        return self.tracker(sample_id).current_step_index()

    def corrections_for_step(self, sample_id: UUID, step_id: str) -> list[schemas.CorrectionEntry]:
        return self.log.entries_for_step(sample_id, step_id)

    def progress(self) -> float:
        return progress.overall_progress(self.execution)

    def statistics(self) -> schemas.ExecutionStatistics:
        return progress.execution_statistics(self.execution)
