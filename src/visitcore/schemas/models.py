# src/visitcore/schemas/models.py
"""
@brief
Pydantic data models for the visit activity schema.

@details
Defines the canonical record types exchanged with the schema-editing and
presentation layers:
    - Activity: one field definition within a visit (plus its nested configs)
    - ActivityRule / ValidationError: validation rule and reported violation
    - MedicationTrackingConfig: prescription data for adherence tracking
    - Config: runtime configuration (from config.yaml)

Wire names are camelCase; attributes are snake_case with camelCase aliases
so that both spellings validate and ``model_dump(by_alias=True)`` restores
the wire shape. Activity records ignore unknown keys because schemas are
produced by an external persistence layer that may carry extra metadata.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_REPEAT_COUNT = 3
DEFAULT_DECIMAL_PLACES = 2
DEFAULT_DOSAGE_UNIT = "comprimidos"


class FieldType(str, Enum):
    TEXT_SHORT = "text_short"
    TEXT_LONG = "text_long"
    NUMBER_SIMPLE = "number_simple"
    NUMBER_COMPOUND = "number_compound"
    SELECT_SINGLE = "select_single"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    FILE = "file"
    CALCULATED = "calculated"
    MEDICATION_TRACKING = "medication_tracking"
    CONDITIONAL = "conditional"


# Pre-datetime schemas stored date-only and time-only fields under these tags.
LEGACY_DATE_TYPE = "date"
LEGACY_TIME_TYPE = "time"


class FrequencyType(str, Enum):
    ONCE_DAILY = "once_daily"
    TWICE_DAILY = "twice_daily"
    THREE_DAILY = "three_daily"
    EVERY_X_HOURS = "every_x_hours"
    ONCE_WEEKLY = "once_weekly"


_DOSES_PER_DAY = {
    FrequencyType.ONCE_DAILY: 1,
    FrequencyType.TWICE_DAILY: 2,
    FrequencyType.THREE_DAILY: 3,
}


class WireModel(BaseModel):
    """
    @brief
    Base model for records that cross the schema boundary.

    @details
    camelCase aliases, population by attribute name, unknown keys ignored.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        use_enum_values=True,
    )


class SelectOption(WireModel):
    """
    One selectable answer. ``value`` and ``label`` fall back to each other.

    ``required`` marks an option that must be selected for the patient to
    qualify; ``exclusive`` marks one whose selection disqualifies.
    """

    value: str = ""
    label: str = ""
    required: bool = False
    exclusive: bool = False

    @model_validator(mode="after")
    def _fill_value_or_label(self) -> SelectOption:
        if not self.value:
            self.value = self.label
        if not self.label:
            self.label = self.value
        return self


class CompoundSubField(WireModel):
    name: str
    label: str = ""
    unit: str | None = None


class CompoundConfig(WireModel):
    fields: list[CompoundSubField] = Field(default_factory=list)


class ConditionalConfig(WireModel):
    """Stored as-is; visibility semantics are not defined yet."""

    depends_on: str
    show_when: str | bool


class MedicationTrackingConfig(WireModel):
    """
    @brief
    Prescription parameters for a medication-adherence activity.

    @details
    ``expected_daily_dose`` may be given explicitly; otherwise it is derived
    as ``quantity_per_dose`` times the number of daily doses for the three
    daily frequencies and stays ``None`` for the others, in which case no
    adherence can be computed.

    ``should_consume_on_delivery_day`` and ``should_take_on_visit_day`` are
    tri-state: ``None`` means the protocol does not say.
    """

    medication_name: str = ""
    dosage_unit: str = DEFAULT_DOSAGE_UNIT
    quantity_per_dose: float = Field(..., gt=0)
    frequency_type: FrequencyType
    custom_hours_interval: float | None = Field(None, gt=0)
    expected_daily_dose: float | None = None
    should_consume_on_delivery_day: bool | None = None
    should_take_on_visit_day: bool | None = None

    @model_validator(mode="after")
    def _derive_daily_dose(self) -> MedicationTrackingConfig:
        if self.expected_daily_dose is None:
            per_day = _DOSES_PER_DAY.get(FrequencyType(self.frequency_type))
            if per_day is not None:
                self.expected_daily_dose = self.quantity_per_dose * per_day
        return self

    def describe_frequency(self) -> str:
        """Human-readable prescribed dose, e.g. ``"1 comprimidos dos veces al día"``."""
        quantity = f"{self.quantity_per_dose:g}"
        unit = self.dosage_unit or DEFAULT_DOSAGE_UNIT
        frequency = FrequencyType(self.frequency_type)

        if frequency is FrequencyType.ONCE_DAILY:
            return f"{quantity} {unit} una vez al día"
        if frequency is FrequencyType.TWICE_DAILY:
            return f"{quantity} {unit} dos veces al día"
        if frequency is FrequencyType.THREE_DAILY:
            return f"{quantity} {unit} tres veces al día"
        if frequency is FrequencyType.EVERY_X_HOURS:
            hours = f"{self.custom_hours_interval:g}" if self.custom_hours_interval else "?"
            return f"{quantity} {unit} cada {hours} horas"
        return f"{quantity} {unit} una vez por semana"


RuleCondition = Literal["range", "min", "max", "equals", "not_equals", "formula"]
FormulaOperator = Literal[">", "<", ">=", "<=", "==", "!="]
Severity = Literal["error", "warning"]


class ActivityRule(WireModel):
    """
    @brief
    Validation rule attached to an activity.

    @details
    ``severity=error`` blocks submission, ``warning`` is informational.
    The engine also emits synthetic rules (``condition="equals"``) for
    required-field violations so every violation has the same shape.
    """

    id: str | None = None
    name: str = ""
    condition: RuleCondition
    min_value: float | None = None
    max_value: float | None = None
    value: str | float | None = None
    formula: str | None = None
    formula_operator: FormulaOperator = ">"
    severity: Severity = "error"
    message: str = ""
    is_active: bool = True


class Activity(WireModel):
    """
    @brief
    Schema for one data-collection field of a visit.

    @details
    ``field_type`` is kept as a plain string so that schemas from newer
    producers still load; see ``visitcore.schemas.field_types.variant_of``
    for the closed set of kinds and the fallback for unknown tags.
    ``order`` defines display and iteration order; ties keep input order.
    """

    id: str = Field(..., min_length=1)
    visit_id: str = ""
    order: int = 0
    name: str = ""
    description: str | None = None
    field_type: str
    required: bool = False

    measurement_unit: str | None = None
    help_text: str | None = None
    expected_min: float | None = None
    expected_max: float | None = None
    decimal_places: int | None = Field(None, ge=0)

    # --- Repeated measurements ---
    allow_multiple: bool = False
    repeat_count: int | None = Field(None, ge=1)

    # --- Selection ---
    options: list[SelectOption] | None = None
    select_multiple: bool | None = None
    allow_custom_options: bool | None = None

    # --- Kind-specific configuration ---
    compound_config: CompoundConfig | None = None
    conditional_config: ConditionalConfig | None = None
    calculation_formula: str | None = None
    medication_tracking_config: MedicationTrackingConfig | None = None

    # --- Date / time sub-answers ---
    datetime_include_date: bool | None = None
    datetime_include_time: bool | None = None
    require_date: bool | None = None
    require_time: bool | None = None
    require_date_per_measurement: bool | None = None
    require_time_per_measurement: bool | None = None
    time_interval_minutes: int | None = Field(None, ge=0)

    validation_rules: list[ActivityRule] = Field(default_factory=list)

    @property
    def effective_repeat_count(self) -> int:
        """Number of repetition slots (0 for non-repeatable activities)."""
        if not self.allow_multiple:
            return 0
        return self.repeat_count or DEFAULT_REPEAT_COUNT

    @property
    def effective_decimal_places(self) -> int:
        return DEFAULT_DECIMAL_PLACES if self.decimal_places is None else self.decimal_places

    @property
    def date_per_measurement(self) -> bool:
        """Per-repetition date keys unless explicitly shared."""
        return self.require_date_per_measurement is not False

    @property
    def time_per_measurement(self) -> bool:
        return self.require_time_per_measurement is not False

    @property
    def has_time_interval(self) -> bool:
        return bool(self.time_interval_minutes and self.time_interval_minutes > 0)


class ValidationError(WireModel):
    """One violated rule for one activity, as shown to the user."""

    activity_id: str
    activity_name: str
    rule: ActivityRule
    current_value: Any = None


# ------------------------------------------------------------
# Runtime configuration (config.yaml)
# ------------------------------------------------------------
class _StrictBaseModel(BaseModel):
    """
    @brief
    Base model for configuration contracts.

    @details
    Forbids unknown fields so that typos in config.yaml surface as errors.
    """

    model_config = {
        "extra": "forbid",
        "populate_by_name": True,
        "use_enum_values": True,
    }


class AdherenceThresholds(_StrictBaseModel):
    """Percent bounds used to classify adherence deviations."""

    low_threshold: float = Field(80.0, ge=0.0, description="Below this: low_adherence")
    target: float = Field(
        100.0, gt=0.0, description="Expected adherence; below it (and above low): warning"
    )

    @model_validator(mode="after")
    def _check_order(self) -> AdherenceThresholds:
        if self.low_threshold > self.target:
            raise ValueError("low_threshold must not exceed target")
        return self


class ExportConfig(_StrictBaseModel):
    write_submission: bool = Field(True, description="Write submission.json")
    write_measurements_csv: bool = Field(True, description="Write measurements.csv")


class Config(_StrictBaseModel):
    """
    @brief
    Represents the runtime configuration loaded from config.yaml.

    @details
    ``visit_date`` pins the adherence reference day for reproducible runs;
    when absent the wall-clock date is used.
    """

    adherence: AdherenceThresholds = Field(default_factory=AdherenceThresholds)
    export: ExportConfig = Field(default_factory=ExportConfig)
    output_dir: str | None = "data/output"
    visit_date: date | None = None


__all__ = [
    "Activity",
    "ActivityRule",
    "AdherenceThresholds",
    "CompoundConfig",
    "CompoundSubField",
    "ConditionalConfig",
    "Config",
    "ExportConfig",
    "FieldType",
    "FrequencyType",
    "MedicationTrackingConfig",
    "SelectOption",
    "ValidationError",
]
