import math

import pytest

from labrun.services import errors, measurement_validator
from .conftest import measurement, step


def test_validate_reports_missing_required_in_definition_order():
    definition = step(
        "S1",
        measurement("b"),
        measurement("a"),
        measurement("optional", required=False),
    )

    result = measurement_validator.validate(definition, {"optional": 1})

    assert result.missing_required == ["b", "a"]
    assert not result.complete


def test_blank_text_counts_as_not_recorded():
    definition = step("S1", measurement("note", data_type="text"))

    result = measurement_validator.validate(definition, {"note": "   "})

    assert result.missing_required == ["note"]


def test_zero_and_false_count_as_recorded():
    definition = step(
        "S1",
        measurement("count"),
        measurement("clear", data_type="boolean"),
    )

    result = measurement_validator.validate(definition, {"count": 0, "clear": False})

    assert result.complete
    assert result.out_of_tolerance == []


def test_numeric_tolerance_is_inclusive():
    definition = measurement("m1", expected_value=10, tolerance=1)

    assert measurement_validator.check_tolerance(definition, 11) is True
    assert measurement_validator.check_tolerance(definition, 9) is True
    assert measurement_validator.check_tolerance(definition, 12) is False


def test_tolerance_not_declared_returns_none_and_flags_within():
    definition = measurement("m1")
    assert measurement_validator.check_tolerance(definition, 42) is None

    result = measurement_validator.validate(step("S1", definition), {"m1": 42})
    assert [flag.within_tolerance for flag in result.tolerance_flags] == [True]


def test_non_numeric_tolerance_uses_equality():
    definition = measurement("color", data_type="text", expected_value="clear")

    assert measurement_validator.check_tolerance(definition, "clear") is True
    assert measurement_validator.check_tolerance(definition, "cloudy") is False


def test_out_of_tolerance_listing():
    definition = step(
        "S1",
        measurement("ph", expected_value=7.0, tolerance=0.2),
        measurement("temp", expected_value=37, tolerance=0.5),
    )

    result = measurement_validator.validate(definition, {"ph": 7.1, "temp": 39})

    assert result.complete
    assert result.out_of_tolerance == ["temp"]


def test_coerce_numeric_accepts_numeric_strings():
    assert measurement_validator.coerce_value(measurement("m1"), " 5.5 ") == 5.5
    assert measurement_validator.coerce_value(measurement("m1"), 3) == 3


@pytest.mark.parametrize("value", [True, "abc", math.inf, float("nan"), None])
def test_coerce_numeric_rejects_invalid_values(value):
    with pytest.raises(errors.InvalidMeasurementValue) as exc_info:
        measurement_validator.coerce_value(measurement("m1"), value)
    assert exc_info.value.measurement_id == "m1"


def test_coerce_boolean():
    definition = measurement("clear", data_type="boolean")

    assert measurement_validator.coerce_value(definition, True) is True
    assert measurement_validator.coerce_value(definition, "FALSE") is False
    with pytest.raises(errors.InvalidMeasurementValue):
        measurement_validator.coerce_value(definition, 1)


def test_coerce_text_rejects_blank_and_bool():
    definition = measurement("note", data_type="text")

    assert measurement_validator.coerce_value(definition, 12) == "12"
    with pytest.raises(errors.InvalidMeasurementValue):
        measurement_validator.coerce_value(definition, "  ")
    with pytest.raises(errors.InvalidMeasurementValue):
        measurement_validator.coerce_value(definition, False)
