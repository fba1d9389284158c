"""Per-sample step progression, measurement capture and corrections."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from .. import schemas
from . import measurement_validator, progress
from .correction_log import CorrectionLog
from .errors import (
    IncompleteRequiredMeasurements,
    MeasurementNotFound,
    MissingReason,
    SampleNotActive,
    SampleNotReady,
    StepNotCompleted,
    StepNotFound,
    ToleranceViolation,
)

# purpose: advance one sample through the protocol's step sequence with audit-safe corrections
# inputs: execution aggregate (steps, settings), the tracked sample, the execution correction log
# outputs: in-place sample mutations; every command returns True only on a genuine change
# status: production
# depends_on: labrun.services.measurement_validator, labrun.services.correction_log

logger = logging.getLogger(__name__)

_TERMINAL_SAMPLE_STATUSES = {"COMPLETED", "FAILED", "SKIPPED"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _same_value(left: Any, right: Any) -> bool:
    if _is_number(left) and _is_number(right):
        return left == right
    return type(left) is type(right) and left == right


class SampleTracker:
    """Command surface for a single sample inside an active execution."""

    def __init__(
        self,
        execution: schemas.ProtocolExecution,
        sample: schemas.Sample,
        log: CorrectionLog | None = None,
    ) -> None:
        self.execution = execution
        self.sample = sample
        self.log = log if log is not None else CorrectionLog(execution)

    @property
    def total_steps(self) -> int:
        return len(self.execution.steps)

    def current_step_index(self) -> int:
        return progress.current_step_index(self.sample, self.execution.steps)

    def is_done(self) -> bool:
        return self.current_step_index() == self.total_steps

    def progress(self) -> float:
        return progress.sample_progress(self.sample, self.total_steps)

    def recorded_values(self, step_id: str) -> dict[str, Any]:
        return {
            record.measurement_id: record.value
            for record in self.sample.measurements
            if record.step_id == step_id
        }

    def _step(self, step_id: str) -> schemas.StepDefinition:
        step = self.execution.step(step_id)
        if step is None:
            raise StepNotFound(step_id)
        return step

    def _find_record(self, step_id: str, measurement_id: str) -> int | None:
        for index, record in enumerate(self.sample.measurements):
            if record.step_id == step_id and record.measurement_id == measurement_id:
                return index
        return None

    def _require_open(self) -> None:
        if self.sample.status in _TERMINAL_SAMPLE_STATUSES:
            raise SampleNotActive(self.sample.id, self.sample.status)

    def _mark_started(self, operator: str | None = None) -> None:
        if self.sample.status == "PENDING":
            self.sample.status = "IN_PROGRESS"
            self.sample.started_at = self.sample.started_at or _utcnow()
        if operator and not self.sample.operator:
            self.sample.operator = operator

    def start_sample(self, operator: str | None = None) -> bool:
        if self.sample.status == "IN_PROGRESS":
            return False
        self._require_open()
        self._mark_started(operator)
        return True

    def record_measurement(
        self,
        step_id: str,
        measurement_id: str,
        value: Any,
        operator: str,
        note: str | None = None,
    ) -> bool:
        """Upsert a measurement; edits to completed steps leave a VALUE_EDIT correction."""

        step = self._step(step_id)
        definition = step.measurement(measurement_id)
        if definition is None:
            raise MeasurementNotFound(measurement_id)
        coerced = measurement_validator.coerce_value(definition, value)
        within = measurement_validator.check_tolerance(definition, coerced)
        index = self._find_record(step_id, measurement_id)
        existing = self.sample.measurements[index] if index is not None else None
        is_correction = step_id in self.sample.completed_steps

        if is_correction:
            if self.sample.status in {"FAILED", "SKIPPED"}:
                raise SampleNotActive(self.sample.id, self.sample.status)
            if existing is not None and _same_value(existing.value, coerced):
                return False
            if within is False and self.execution.settings.strict_tolerance:
                raise ToleranceViolation(step_id, [measurement_id])
            self.log.append(
                schemas.CorrectionEntry(
                    sample_id=self.sample.id,
                    step_id=step_id,
                    kind="VALUE_EDIT",
                    measurement_id=measurement_id,
                    previous_value=existing.value if existing is not None else None,
                    new_value=coerced,
                    reason=note,
                    operator=operator,
                    recorded_at=_utcnow(),
                )
            )
        else:
            self._require_open()
            if (
                existing is not None
                and _same_value(existing.value, coerced)
                and existing.note == note
            ):
                return False

        record = schemas.MeasurementRecord(
            step_id=step_id,
            measurement_id=measurement_id,
            value=coerced,
            operator=operator,
            recorded_at=_utcnow(),
            note=note,
            within_tolerance=within,
        )
        if index is None:
            self.sample.measurements.append(record)
        else:
            self.sample.measurements[index] = record
        if within is False:
            logger.warning(
                "Measurement %s on step %s for sample %s is outside tolerance",
                measurement_id,
                step_id,
                self.sample.id,
            )
        if not is_correction:
            self._mark_started(operator)
        return True

    def complete_step(self, step_id: str) -> bool:
        """Add ``step_id`` to the completed set once every required value is present."""

        step = self._step(step_id)
        if step_id in self.sample.completed_steps:
            return False
        self._require_open()

        validation = measurement_validator.validate(step, self.recorded_values(step_id))
        if validation.missing_required:
            raise IncompleteRequiredMeasurements(step_id, validation.missing_required)
        out_of_tolerance = validation.out_of_tolerance
        if out_of_tolerance and self.execution.settings.strict_tolerance:
            raise ToleranceViolation(step_id, out_of_tolerance)

        for index, record in enumerate(self.sample.measurements):
            if record.step_id != step_id:
                continue
            definition = step.measurement(record.measurement_id)
            if definition is None:
                continue
            flag = measurement_validator.check_tolerance(definition, record.value)
            if flag != record.within_tolerance:
                self.sample.measurements[index] = record.model_copy(update={"within_tolerance": flag})

        if out_of_tolerance:
            logger.warning(
                "Step %s completed for sample %s with tolerance warnings on %s",
                step_id,
                self.sample.id,
                ", ".join(out_of_tolerance),
            )
        self.sample.completed_steps.add(step_id)
        self._mark_started()
        return True

    def uncomplete_step(self, step_id: str, reason: str, operator: str | None = None) -> bool:
        """Roll a completed step back; measurement records stay in place."""

        self._step(step_id)
        self._require_open()
        if step_id not in self.sample.completed_steps:
            raise StepNotCompleted(self.sample.id, step_id)
        self.log.append(
            schemas.CorrectionEntry(
                sample_id=self.sample.id,
                step_id=step_id,
                kind="ROLLBACK",
                removed_step=step_id,
                reason=reason.strip() if reason else reason,
                operator=operator,
                recorded_at=_utcnow(),
            )
        )
        self.sample.completed_steps.discard(step_id)
        return True

    def complete_sample(
        self,
        quality: schemas.SampleQuality,
        notes: str | None = None,
        override_reason: str | None = None,
    ) -> bool:
        if self.sample.status == "COMPLETED" and self.sample.quality == quality:
            return False
        self._require_open()

        index = self.current_step_index()
        override = (override_reason or "").strip()
        if index < self.total_steps:
            if not override or not self.execution.settings.allow_early_sample_completion:
                raise SampleNotReady(self.sample.id, index, self.total_steps)

        now = _utcnow()
        self.sample.status = "COMPLETED"
        self.sample.quality = quality
        self.sample.completed_at = now
        self.sample.started_at = self.sample.started_at or now
        if notes is not None:
            self.sample.notes = notes
        if index < self.total_steps:
            self.sample.completion_override = override
        return True

    def skip_sample(self, reason: str) -> bool:
        if not (reason or "").strip():
            raise MissingReason("skip")
        if self.sample.status == "SKIPPED":
            return False
        self._require_open()
        self.sample.status = "SKIPPED"
        self.sample.skip_reason = reason.strip()
        return True

    def fail_sample(self, reason: str) -> bool:
        if not (reason or "").strip():
            raise MissingReason("failure")
        if self.sample.status == "FAILED":
            return False
        self._require_open()
        self.sample.status = "FAILED"
        self.sample.failure_reason = reason.strip()
        self.sample.completed_at = _utcnow()
        return True
