# tests/submission/test_builder.py
from __future__ import annotations

from datetime import date

import pytest

from visitcore.adherence.problems import MedicationErrorState
from visitcore.schemas.models import Activity
from visitcore.store.form_values import FormValueStore
from visitcore.submission.builder import build_submission, format_numeric_value, submit_activity

VISIT_DAY = date(2024, 1, 11)


# -----------------------------
# HELPER FACTORIES
# -----------------------------
def mk(activity_id: str, field_type: str, **kwargs) -> Activity:
    kwargs.setdefault("name", activity_id.capitalize())
    return Activity(id=activity_id, field_type=field_type, **kwargs)


def medication_activity() -> Activity:
    return mk(
        "med",
        "medication_tracking",
        medication_tracking_config={
            "medicationName": "Metformina",
            "quantityPerDose": 2,
            "frequencyType": "once_daily",
            "shouldConsumeOnDeliveryDay": True,
            "shouldTakeOnVisitDay": False,
        },
    )


def medication_answers(**overrides) -> dict:
    answers = {
        "lastVisitDate": "2024-01-01",
        "unitsDelivered": "20",
        "unitsReturned": "4",
        "tookMedicationToday": True,
    }
    answers.update(overrides)
    return answers


def submit(activity: Activity, values: dict, **kwargs):
    store = FormValueStore([activity], values=values)
    return submit_activity(activity, store, [activity], visit_date=VISIT_DAY, **kwargs)


# -----------------------------
# NUMERIC FORMATTING
# -----------------------------
@pytest.mark.parametrize(
    "activity, value, expected",
    [
        (mk("p", "number_simple", decimal_places=1), "70", "70.0"),
        (mk("p", "number_simple", decimal_places=2), 3.14159, "3.14"),
        (mk("p", "number_simple"), "70", "70"),
        (mk("p", "number_simple", decimal_places=1), "abc", "abc"),
        (mk("p", "number_simple", decimal_places=1), "", ""),
        (mk("t", "text_short", decimal_places=1), "70", "70"),
        (
            mk("p", "number_simple", decimal_places=0, allow_multiple=True),
            ["1.6", None],
            ["2", None],
        ),
        (
            mk("pa", "number_compound", decimal_places=0),
            {"sys": "120.4", "dia": "80"},
            {"sys": "120", "dia": "80"},
        ),
    ],
)
def test_format_numeric_value(activity, value, expected):
    assert format_numeric_value(value, activity) == expected


# -----------------------------
# PER-ACTIVITY RECORDS
# -----------------------------
def test_datetime_answer_carries_normalized_parts():
    # --- Arrange ---
    activity = mk("ingreso", "datetime")
    values = {"ingreso_date": "2024-01-05", "ingreso_time": "08:30:15"}

    # --- Act ---
    record = submit(activity, values)

    # --- Assert ---
    assert record.date == "2024-01-05"
    assert record.time == "08:30"
    assert record.value is None


def test_repeated_measurements_with_interval_times():
    """
    @brief
    Later repetitions get their derived time; date is not attached when not asked for.
    """
    # --- Arrange ---
    activity = mk(
        "fc",
        "number_simple",
        allow_multiple=True,
        require_time=True,
        time_interval_minutes=30,
    )
    values = {"fc": ["72", "75", "80"], "fc_time_0": "08:00"}

    # --- Act ---
    record = submit(activity, values)

    # --- Assert ---
    assert record.value is None
    assert [(m.value, m.date, m.time) for m in record.measurements] == [
        ("72", None, "08:00"),
        ("75", None, "08:30"),
        ("80", None, "09:00"),
    ]
    assert [m.index for m in record.measurements] == [0, 1, 2]


def test_measurements_keep_their_repetition_index():
    """
    @brief
    Empty slots are skipped without shifting the index of later repetitions.
    """
    # --- Arrange ---
    activity = mk("fc", "number_simple", allow_multiple=True, repeat_count=3, require_time=True)
    values = {"fc": ["72", None, "80"], "fc_time_2": "09:00"}

    # --- Act ---
    record = submit(activity, values)

    # --- Assert ---
    assert [(m.index, m.value, m.time) for m in record.measurements] == [
        (0, "72", None),
        (2, "80", "09:00"),
    ]


def test_repeated_without_date_or_time_keeps_plain_list():
    record = submit(mk("fc", "number_simple", allow_multiple=True), {"fc": ["72", "75"]})
    assert record.value == ["72", "75"]
    assert record.measurements is None


def test_calculated_value_is_reevaluated():
    # --- Arrange ---
    peso = mk("peso", "number_simple", order=1)
    doble = mk("doble", "calculated", order=2, calculation_formula="peso * 2")
    store = FormValueStore([peso, doble], values={"peso": "35", "doble": "1"})

    # --- Act ---
    record = submit_activity(doble, store, [peso, doble])

    # --- Assert ---
    assert record.value == pytest.approx(70.0)


def test_description_override_wins():
    activity = mk("peso", "number_simple", description="En ayunas")
    store = FormValueStore([activity], values={"peso": "70"})
    assert submit_activity(activity, store, [activity]).description == "En ayunas"
    store = store.set_description("peso", "Tras el desayuno")
    assert submit_activity(activity, store, [activity]).description == "Tras el desayuno"


def test_medication_record_includes_only_flagged_deviations():
    # --- Arrange ---
    activity = medication_activity()
    store = FormValueStore([activity], values={"med": medication_answers()})
    store = store.set_medication_error(
        "med", "low_adherence", MedicationErrorState(include_in_history=True, comment="Olvidos")
    )
    store = store.set_medication_error(
        "med", "should_not_take_today_taken", MedicationErrorState(include_in_history=False)
    )

    # --- Act ---
    record = submit_activity(activity, store, [activity], visit_date=VISIT_DAY)

    # --- Assert ---
    tracking = record.medication_tracking
    assert tracking is not None
    assert tracking.units_delivered == 20.0
    assert tracking.units_returned == 4.0
    assert tracking.took_medication_today is True
    assert tracking.adherence.adherence_percentage == pytest.approx(70.0)
    assert [(d.type, d.comment) for d in tracking.deviations] == [("low_adherence", "Olvidos")]


def test_medication_record_absent_when_not_computable():
    record = submit(medication_activity(), {"med": medication_answers(unitsReturned="")})
    assert record.medication_tracking is None


# -----------------------------
# WHOLE SUBMISSION
# -----------------------------
def test_blocking_errors_prevent_submission():
    activity = mk("peso", "number_simple", required=True)
    store = FormValueStore([activity])
    assert build_submission([activity], store) is None


def test_submission_wire_shape_and_warnings():
    # --- Arrange ---
    activities = [
        mk("peso", "number_simple", order=1, required=True, measurement_unit="kg"),
        mk(
            "fc",
            "number_simple",
            order=2,
            validation_rules=[{"condition": "max", "maxValue": 100, "severity": "warning"}],
        ),
    ]
    store = FormValueStore(activities, values={"peso": "70", "fc": "120"})

    # --- Act ---
    submission = build_submission(
        activities,
        store,
        patient_id="P-001",
        protocol_name="Estudio A",
        visit_name="Visita 2",
    )
    wire = submission.to_wire()

    # --- Assert ---
    assert wire["patientId"] == "P-001"
    assert wire["protocolName"] == "Estudio A"
    assert [a["id"] for a in wire["activities"]] == ["peso", "fc"]
    assert wire["activities"][0] == {
        "id": "peso",
        "name": "Peso",
        "fieldType": "number_simple",
        "measurementUnit": "kg",
        "value": "70",
    }
    assert [e["activityId"] for e in wire["validationErrors"]] == ["fc"]
    assert "timestamp" in wire
    assert "visitType" not in wire
