# src/visitcore/schemas/field_types.py
"""
@brief
Closed catalog of activity field kinds.

@details
Each field kind is a frozen variant record carrying only the configuration
that kind uses. ``variant_of`` is the single place where the string tag of
an ``Activity`` is turned into a variant; downstream code (value defaults,
validation, submission) dispatches on the variant class.

Tags this reader does not know resolve to ``UnknownField`` so that a schema
written by a newer producer degrades to an inert placeholder. ``conditional``
resolves to ``ConditionalField``, which is declared but has no trigger
semantics yet and is treated as a no-op everywhere.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, ClassVar

from visitcore.schemas.models import (
    LEGACY_DATE_TYPE,
    LEGACY_TIME_TYPE,
    Activity,
    CompoundSubField,
    ConditionalConfig,
    FieldType,
    MedicationTrackingConfig,
    SelectOption,
)

logger = logging.getLogger(__name__)


# ------------------------------------------------------------
# Ancillary configuration lookup
# ------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class FieldRequirements:
    """Which ancillary configuration the schema editor must collect for a kind."""

    needs_options: bool = False
    needs_unit: bool = False
    needs_compound_fields: bool = False
    needs_medication_config: bool = False
    needs_formula: bool = False
    is_numeric: bool = False


_REQUIREMENTS: dict[str, FieldRequirements] = {
    FieldType.NUMBER_SIMPLE.value: FieldRequirements(needs_unit=True, is_numeric=True),
    FieldType.NUMBER_COMPOUND.value: FieldRequirements(
        needs_unit=True, needs_compound_fields=True, is_numeric=True
    ),
    FieldType.CALCULATED.value: FieldRequirements(
        needs_unit=True, needs_formula=True, is_numeric=True
    ),
    FieldType.SELECT_SINGLE.value: FieldRequirements(needs_options=True),
    FieldType.MEDICATION_TRACKING.value: FieldRequirements(needs_medication_config=True),
}


def field_requirements(field_type: str) -> FieldRequirements:
    """Pure lookup; kinds without ancillary configuration get all-false flags."""
    return _REQUIREMENTS.get(str(field_type), FieldRequirements())


# ------------------------------------------------------------
# Variants
# ------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TextShortField:
    kind: ClassVar[str] = FieldType.TEXT_SHORT.value


@dataclass(frozen=True, slots=True)
class TextLongField:
    kind: ClassVar[str] = FieldType.TEXT_LONG.value


@dataclass(frozen=True, slots=True)
class NumberSimpleField:
    kind: ClassVar[str] = FieldType.NUMBER_SIMPLE.value
    unit: str | None
    decimal_places: int


@dataclass(frozen=True, slots=True)
class NumberCompoundField:
    kind: ClassVar[str] = FieldType.NUMBER_COMPOUND.value
    fields: tuple[CompoundSubField, ...]
    decimal_places: int


@dataclass(frozen=True, slots=True)
class SelectField:
    kind: ClassVar[str] = FieldType.SELECT_SINGLE.value
    options: tuple[SelectOption, ...]
    multiple: bool


@dataclass(frozen=True, slots=True)
class BooleanField:
    kind: ClassVar[str] = FieldType.BOOLEAN.value


@dataclass(frozen=True, slots=True)
class DatetimeField:
    kind: ClassVar[str] = FieldType.DATETIME.value
    include_date: bool
    include_time: bool


@dataclass(frozen=True, slots=True)
class FileField:
    """Value is the selected file's name only."""

    kind: ClassVar[str] = FieldType.FILE.value


@dataclass(frozen=True, slots=True)
class CalculatedField:
    kind: ClassVar[str] = FieldType.CALCULATED.value
    formula: str | None
    decimal_places: int
    unit: str | None


@dataclass(frozen=True, slots=True)
class MedicationTrackingField:
    kind: ClassVar[str] = FieldType.MEDICATION_TRACKING.value
    config: MedicationTrackingConfig | None


@dataclass(frozen=True, slots=True)
class ConditionalField:
    kind: ClassVar[str] = FieldType.CONDITIONAL.value
    config: ConditionalConfig | None


@dataclass(frozen=True, slots=True)
class UnknownField:
    kind: ClassVar[str] = "unknown"
    tag: str


FieldVariant = (
    TextShortField
    | TextLongField
    | NumberSimpleField
    | NumberCompoundField
    | SelectField
    | BooleanField
    | DatetimeField
    | FileField
    | CalculatedField
    | MedicationTrackingField
    | ConditionalField
    | UnknownField
)


def _datetime_parts(activity: Activity) -> DatetimeField:
    # (1) Legacy tags include only their own part unless explicitly configured
    tag = activity.field_type
    include_date = activity.datetime_include_date
    include_time = activity.datetime_include_time
    if include_date is None:
        include_date = tag != LEGACY_TIME_TYPE
    if include_time is None:
        include_time = tag != LEGACY_DATE_TYPE
    return DatetimeField(include_date=include_date, include_time=include_time)


_BUILDERS: dict[str, Callable[[Activity], FieldVariant]] = {
    FieldType.TEXT_SHORT.value: lambda a: TextShortField(),
    FieldType.TEXT_LONG.value: lambda a: TextLongField(),
    FieldType.NUMBER_SIMPLE.value: lambda a: NumberSimpleField(
        unit=a.measurement_unit, decimal_places=a.effective_decimal_places
    ),
    FieldType.NUMBER_COMPOUND.value: lambda a: NumberCompoundField(
        fields=tuple(a.compound_config.fields) if a.compound_config else (),
        decimal_places=a.effective_decimal_places,
    ),
    FieldType.SELECT_SINGLE.value: lambda a: SelectField(
        options=tuple(a.options or ()), multiple=a.select_multiple is True
    ),
    FieldType.BOOLEAN.value: lambda a: BooleanField(),
    FieldType.DATETIME.value: _datetime_parts,
    LEGACY_DATE_TYPE: _datetime_parts,
    LEGACY_TIME_TYPE: _datetime_parts,
    FieldType.FILE.value: lambda a: FileField(),
    FieldType.CALCULATED.value: lambda a: CalculatedField(
        formula=a.calculation_formula,
        decimal_places=a.effective_decimal_places,
        unit=a.measurement_unit,
    ),
    FieldType.MEDICATION_TRACKING.value: lambda a: MedicationTrackingField(
        config=a.medication_tracking_config
    ),
    FieldType.CONDITIONAL.value: lambda a: ConditionalField(config=a.conditional_config),
}


def variant_of(activity: Activity) -> FieldVariant:
    """
    @brief
    Resolve the field variant for an activity.

    @details
    Unknown tags never fail: they yield ``UnknownField`` carrying the tag.
    """
    builder = _BUILDERS.get(str(activity.field_type))
    if builder is None:
        logger.debug(
            "Activity %s has unknown field type %r; treated as placeholder.",
            activity.id,
            activity.field_type,
        )
        return UnknownField(tag=str(activity.field_type))
    return builder(activity)


def empty_value(activity: Activity) -> Any:
    """
    @brief
    Type-appropriate default for an answer that was never stored.

    @details
    Repeated activities default to an empty list; otherwise the variant
    decides: ``False`` for booleans, ``{}`` for compound and medication
    answers, ``[]`` for multi-select and ``''`` for everything else.
    """
    if activity.allow_multiple:
        return []

    variant = variant_of(activity)
    if isinstance(variant, BooleanField):
        return False
    if isinstance(variant, (NumberCompoundField, MedicationTrackingField)):
        return {}
    if isinstance(variant, SelectField) and variant.multiple:
        return []
    return ""


def repetition_slots(activity: Activity) -> range:
    """
    Repetition indices to render and iterate.

    Always exactly ``repeatCount`` slots (default 3) for repeatable
    activities, independent of how many already hold values.
    """
    return range(activity.effective_repeat_count)


# ------------------------------------------------------------
# Editor input helpers
# ------------------------------------------------------------
def parse_options(text: str) -> list[SelectOption]:
    """
    @brief
    Parse the option editor's text area into options.

    @details
    One option per line as ``value|label`` (both sides trimmed). A line with
    a single side uses it for both value and label. Blank lines are dropped.
    """
    options: list[SelectOption] = []
    for line in (text or "").split("\n"):
        if not line.strip():
            continue
        parts = [p.strip() for p in line.split("|")]
        value = parts[0]
        label = parts[1] if len(parts) > 1 else ""
        options.append(SelectOption(value=value or label, label=label or value))
    return options


def compound_field_name(label: str | None, index: int) -> str:
    """
    Internal sub-field name derived from its label.

    ``"Presión Sistólica"`` -> ``"presion_sistolica"``; empty results fall
    back to ``field_{index}``.
    """
    text = unicodedata.normalize("NFD", (label or "").strip().lower())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = re.sub(r"[^a-z0-9]", "_", text)
    text = re.sub(r"_+", "_", text).strip("_")
    return text or f"field_{index}"


__all__ = [
    "BooleanField",
    "CalculatedField",
    "ConditionalField",
    "DatetimeField",
    "FieldRequirements",
    "FieldVariant",
    "FileField",
    "MedicationTrackingField",
    "NumberCompoundField",
    "NumberSimpleField",
    "SelectField",
    "TextLongField",
    "TextShortField",
    "UnknownField",
    "compound_field_name",
    "empty_value",
    "field_requirements",
    "parse_options",
    "repetition_slots",
    "variant_of",
]
