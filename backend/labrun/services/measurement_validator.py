"""Completeness and tolerance checks for step measurements."""

from __future__ import annotations

import math
from typing import Any, Mapping

from .. import schemas
from .errors import InvalidMeasurementValue

# purpose: decide whether a step's measurements are complete and within tolerance
# inputs: step definition, mapping of measurement id -> recorded value
# outputs: MeasurementValidation with missing ids and per-measurement tolerance flags
# status: production


def is_recorded(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def coerce_value(
    definition: schemas.MeasurementDefinition,
    value: Any,
) -> schemas.MeasurementValue:
    """Normalize a raw value to the definition's data type or reject it."""

    if value is None:
        raise InvalidMeasurementValue(definition.id, definition.data_type, value)

    if definition.data_type == "numeric":
        if isinstance(value, bool):
            raise InvalidMeasurementValue(definition.id, definition.data_type, value)
        if isinstance(value, (int, float)):
            number = value
        elif isinstance(value, str):
            try:
                number = float(value.strip())
            except ValueError as exc:
                raise InvalidMeasurementValue(definition.id, definition.data_type, value) from exc
        else:
            raise InvalidMeasurementValue(definition.id, definition.data_type, value)
        if isinstance(number, float) and not math.isfinite(number):
            raise InvalidMeasurementValue(definition.id, definition.data_type, value)
        return number

    if definition.data_type == "boolean":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
            return value.strip().lower() == "true"
        raise InvalidMeasurementValue(definition.id, definition.data_type, value)

    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise InvalidMeasurementValue(definition.id, definition.data_type, value)
    text = str(value)
    if not text.strip():
        raise InvalidMeasurementValue(definition.id, definition.data_type, value)
    return text


def check_tolerance(
    definition: schemas.MeasurementDefinition,
    value: Any,
) -> bool | None:
    """Return the tolerance flag for one value, or None when nothing is declared."""

    expected = definition.expected_value
    if expected is None or not is_recorded(value):
        return None

    if definition.data_type == "numeric":
        if definition.tolerance is None:
            return None
        try:
            actual = float(value)
            target = float(expected)
        except (TypeError, ValueError):
            return False
        return abs(actual - target) <= definition.tolerance

    return value == expected


def validate(
    step: schemas.StepDefinition,
    recorded_values: Mapping[str, Any],
) -> schemas.MeasurementValidation:
    """Check every measurement declared on ``step`` against the recorded values."""

    missing: list[str] = []
    flags: list[schemas.ToleranceFlag] = []
    for definition in step.measurements:
        value = recorded_values.get(definition.id)
        if not is_recorded(value):
            if definition.required:
                missing.append(definition.id)
            continue
        within = check_tolerance(definition, value)
        flags.append(
            schemas.ToleranceFlag(
                id=definition.id,
                within_tolerance=True if within is None else within,
            )
        )
    return schemas.MeasurementValidation(missing_required=missing, tolerance_flags=flags)
