# tests/schemas/test_schema_models.py
from __future__ import annotations

import pytest
from pydantic import ValidationError as PydanticValidationError

from visitcore.schemas.models import (
    Activity,
    ActivityRule,
    AdherenceThresholds,
    Config,
    MedicationTrackingConfig,
    SelectOption,
)


def test_activity_accepts_camel_case_wire_names():
    """
    @brief
    Schema records validate from camelCase and dump back to camelCase.
    """
    # --- Arrange ---
    wire = {
        "id": "a1",
        "visitId": "v1",
        "order": 3,
        "name": "Peso",
        "fieldType": "number_simple",
        "required": True,
        "measurementUnit": "kg",
        "decimalPlaces": 1,
        "someProducerMetadata": {"ignored": True},
    }

    # --- Act ---
    activity = Activity.model_validate(wire)
    dumped = activity.model_dump(by_alias=True, exclude_none=True)

    # --- Assert ---
    assert activity.visit_id == "v1"
    assert activity.measurement_unit == "kg"
    assert dumped["fieldType"] == "number_simple"
    assert dumped["decimalPlaces"] == 1
    assert "someProducerMetadata" not in dumped


def test_activity_defaults_and_derived_properties():
    # --- Arrange ---
    single = Activity(id="a", field_type="text_short")
    repeated = Activity(id="b", field_type="number_simple", allow_multiple=True)
    repeated_five = Activity(
        id="c",
        field_type="number_simple",
        allow_multiple=True,
        repeat_count=5,
        require_date_per_measurement=False,
        time_interval_minutes=15,
    )

    # --- Assert ---
    assert single.effective_repeat_count == 0
    assert single.effective_decimal_places == 2
    assert repeated.effective_repeat_count == 3
    assert repeated.date_per_measurement is True
    assert repeated.time_per_measurement is True
    assert repeated.has_time_interval is False
    assert repeated_five.effective_repeat_count == 5
    assert repeated_five.date_per_measurement is False
    assert repeated_five.has_time_interval is True


def test_activity_rejects_invalid_repeat_count_and_empty_id():
    with pytest.raises(PydanticValidationError):
        Activity(id="a", field_type="number_simple", allow_multiple=True, repeat_count=0)
    with pytest.raises(PydanticValidationError):
        Activity(id="", field_type="text_short")


def test_unknown_field_type_still_loads():
    """
    @brief
    Tags from newer producers are preserved as plain strings.
    """
    activity = Activity.model_validate({"id": "x", "fieldType": "signature_pad"})
    assert activity.field_type == "signature_pad"


def test_select_option_value_and_label_fill_each_other():
    assert SelectOption(label="Sí").value == "Sí"
    assert SelectOption(value="yes").label == "yes"
    option = SelectOption(value="y", label="Yes", exclusive=True)
    assert (option.value, option.label, option.exclusive) == ("y", "Yes", True)


@pytest.mark.parametrize(
    "frequency, quantity, expected",
    [
        ("once_daily", 1, 1),
        ("twice_daily", 1, 2),
        ("three_daily", 2, 6),
        ("every_x_hours", 1, None),
        ("once_weekly", 1, None),
    ],
)
def test_expected_daily_dose_is_derived_from_frequency(frequency, quantity, expected):
    config = MedicationTrackingConfig(quantity_per_dose=quantity, frequency_type=frequency)
    assert config.expected_daily_dose == expected


def test_explicit_expected_daily_dose_wins():
    config = MedicationTrackingConfig.model_validate(
        {"quantityPerDose": 1, "frequencyType": "every_x_hours", "expectedDailyDose": 4}
    )
    assert config.expected_daily_dose == 4


def test_medication_config_defaults_and_bounds():
    # --- Arrange ---
    config = MedicationTrackingConfig(quantity_per_dose=1, frequency_type="once_daily")

    # --- Assert ---
    assert config.dosage_unit == "comprimidos"
    assert config.should_consume_on_delivery_day is None
    assert config.should_take_on_visit_day is None
    with pytest.raises(PydanticValidationError):
        MedicationTrackingConfig(quantity_per_dose=0, frequency_type="once_daily")


def test_describe_frequency_is_human_readable():
    twice = MedicationTrackingConfig(quantity_per_dose=1, frequency_type="twice_daily")
    hourly = MedicationTrackingConfig(
        quantity_per_dose=2.5,
        frequency_type="every_x_hours",
        custom_hours_interval=8,
        dosage_unit="ml",
    )
    assert twice.describe_frequency() == "1 comprimidos dos veces al día"
    assert hourly.describe_frequency() == "2.5 ml cada 8 horas"


def test_activity_rule_defaults():
    rule = ActivityRule(condition="formula", formula="peso * 2")
    assert rule.formula_operator == ">"
    assert rule.severity == "error"
    assert rule.is_active is True


def test_config_defaults_and_strictness():
    # --- Act ---
    cfg = Config()

    # --- Assert ---
    assert cfg.adherence.low_threshold == 80
    assert cfg.adherence.target == 100
    assert cfg.export.write_submission is True
    assert cfg.visit_date is None
    with pytest.raises(PydanticValidationError):
        Config(unknown_section={})
    with pytest.raises(PydanticValidationError):
        AdherenceThresholds(low_threshold=120, target=100)
