# tests/dataloader/test_schema_loader.py
import json
import logging
from pathlib import Path

import pytest
import yaml

from visitcore.dataloader.schema_loader import ActivitySchemaLoader, FormValuesLoader
from visitcore.errors import DataError, SchemaError
from visitcore.schemas.models import Activity


# -----------------------------
# HELPER FACTORIES
# -----------------------------
def write_json(path: Path, payload) -> Path:
    path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
    return path


def entry(activity_id: str, field_type: str = "number_simple", **extra) -> dict:
    return {"id": activity_id, "name": activity_id.title(), "fieldType": field_type, **extra}


def schema_activities() -> list[Activity]:
    return [
        Activity(id="peso", name="Peso", field_type="number_simple", order=1),
        Activity(id="fc", name="FC", field_type="number_simple", order=2, allow_multiple=True),
        Activity(
            id="med",
            name="Med",
            field_type="medication_tracking",
            order=3,
            medication_tracking_config={"quantityPerDose": 1, "frequencyType": "once_daily"},
        ),
    ]


# -----------------------------
# ACTIVITY SCHEMA
# -----------------------------
def test_load_list_root_sorts_by_order(tmp_path: Path, caplog: pytest.LogCaptureFixture):
    # --- Arrange ---
    caplog.set_level(logging.INFO)
    path = write_json(
        tmp_path / "schema.json",
        [entry("talla", order=2), entry("peso", order=1)],
    )

    # --- Act ---
    result = ActivitySchemaLoader().load(path)

    # --- Assert ---
    assert result.success is True
    assert [a.id for a in result.activities] == ["peso", "talla"]
    assert result.total_entries == 2
    assert result.kept_entries == 2
    assert "kept=2/2" in caplog.text


def test_load_yaml_with_system_activities(tmp_path: Path):
    """
    @brief
    System activities come first and visit activities are shifted past them.
    """
    # --- Arrange ---
    path = tmp_path / "schema.yaml"
    document = {
        "systemActivities": [entry("consent", "boolean", order=0)],
        "activities": [entry("peso", order=0), entry("talla", order=1)],
    }
    path.write_text(yaml.safe_dump(document), encoding="utf-8")

    # --- Act ---
    result = ActivitySchemaLoader().load(path)

    # --- Assert ---
    assert [(a.id, a.order) for a in result.activities] == [
        ("consent", 0),
        ("peso", 1),
        ("talla", 2),
    ]
    assert result.activities[0].visit_id == "system"


def test_entry_issues_are_collected(tmp_path: Path, caplog: pytest.LogCaptureFixture):
    """
    @brief
    Every bad entry is reported with its position; loading does not stop early.
    """
    # --- Arrange ---
    caplog.set_level(logging.ERROR)
    path = write_json(
        tmp_path / "schema.json",
        {
            "activities": [
                entry("peso"),
                "not-an-object",
                {"name": "sin id", "fieldType": "text_short"},
                entry("peso"),
                {"id": "roto", "fieldType": "number_simple", "decimalPlaces": -1},
            ]
        },
    )

    # --- Act ---
    result = ActivitySchemaLoader().load(path)

    # --- Assert ---
    assert result.success is False
    assert result.activities == []
    assert [(i["kind"], i["position"]) for i in result.errors] == [
        ("invalid_entry", "activities[1]"),
        ("missing_id", "activities[2]"),
        ("duplicate_id", "activities[3]"),
        ("schema_error", "activities[4]"),
    ]
    assert "duplicate_id=1" in caplog.text


def test_unknown_field_type_loads_with_warning(tmp_path: Path, caplog: pytest.LogCaptureFixture):
    caplog.set_level(logging.WARNING)
    path = write_json(tmp_path / "schema.json", [entry("firma", "signature_pad")])
    result = ActivitySchemaLoader().load(path)
    assert result.success is True
    assert "unsupported field type" in caplog.text


@pytest.mark.parametrize(
    "name, content, fragment",
    [
        ("schema.json", "{broken", "Parsing failed"),
        ("schema.json", '{"activities": 3}', "Schema root"),
        ("schema.json", "42", "Schema root"),
        ("schema.csv", "id,name", "extension"),
    ],
)
def test_fatal_schema_problems_raise(tmp_path: Path, name: str, content: str, fragment: str):
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    with pytest.raises(SchemaError) as e:
        ActivitySchemaLoader().load(path)
    assert fragment in str(e.value)


def test_missing_schema_file_raises(tmp_path: Path):
    with pytest.raises(SchemaError, match="not found"):
        ActivitySchemaLoader().load(tmp_path / "missing.json")


# -----------------------------
# FORM VALUES
# -----------------------------
def test_values_document_with_decisions(tmp_path: Path):
    # --- Arrange ---
    path = write_json(
        tmp_path / "values.json",
        {
            "values": {"peso": "70", "fc": ["72", "75"], "fc_time_0": "08:00"},
            "medicationErrors": {
                "med": {"low_adherence": {"includeInHistory": True, "comment": "Olvidos"}}
            },
            "descriptions": {"peso": "En ayunas"},
        },
    )
    activities = schema_activities()

    # --- Act ---
    store = FormValuesLoader().load(path, activities)

    # --- Assert ---
    assert store.get("peso") == "70"
    assert store.get("fc") == ["72", "75"]
    state = store.medication_error("med", "low_adherence")
    assert state.include_in_history is True
    assert state.comment == "Olvidos"
    assert store.description_of(activities[0]) == "En ayunas"


def test_exported_visit_is_imported(tmp_path: Path):
    # --- Arrange ---
    path = write_json(
        tmp_path / "visit.json",
        {
            "activities": [
                {"id": "peso", "value": "70", "date": "2024-01-11"},
                {
                    "id": "fc",
                    "measurements": [{"value": "72", "time": "08:00"}, {"value": "75"}],
                },
                {"id": "ajeno", "value": "x"},
            ]
        },
    )

    # --- Act ---
    store = FormValuesLoader().load(path, schema_activities())

    # --- Assert ---
    assert store.get("peso") == "70"
    assert store.get("peso_date") == "2024-01-11"
    assert store.get("fc") == ["72", "75"]
    assert store.get("fc_time_0") == "08:00"
    assert "ajeno" not in store


@pytest.mark.parametrize(
    "payload, fragment",
    [
        ([1, 2], "root"),
        ({"other": {}}, "'values'"),
        ({"values": {}, "medicationErrors": ["x"]}, "medicationErrors"),
        ({"values": {}, "medicationErrors": {"med": 1}}, "med"),
        ({"values": {}, "descriptions": "texto"}, "descriptions"),
    ],
)
def test_malformed_values_raise_dataerror(tmp_path: Path, payload, fragment: str):
    path = write_json(tmp_path / "values.json", payload)
    with pytest.raises(DataError) as e:
        FormValuesLoader().load(path, schema_activities())
    assert fragment in str(e.value)


def test_values_must_be_json(tmp_path: Path):
    path = tmp_path / "values.yaml"
    path.write_text("values: {}", encoding="utf-8")
    with pytest.raises(DataError, match="extension"):
        FormValuesLoader().load(path, schema_activities())
