from __future__ import annotations

import pytest

from ssdb_eda.models import QCReport, RunManifest


def test_qcreport_to_dict_returns_copies() -> None:
    qc = QCReport(
        sheet_rows={"incidents": 2},
        incidents_in=2,
        incidents_out=2,
        missing_columns=["victims.injury"],
        warnings=["bad row"],
        unrecognized={"weapon": {"crossbow": 1}},
    )

    payload = qc.to_dict()
    payload["missing_columns"].append("weapons.weapon_type")
    payload["warnings"].append("another")
    payload["sheet_rows"]["victims"] = 9
    payload["unrecognized"]["weapon"]["sling"] = 1

    assert qc.missing_columns == ["victims.injury"]
    assert qc.warnings == ["bad row"]
    assert qc.sheet_rows == {"incidents": 2}
    assert qc.unrecognized == {"weapon": {"crossbow": 1}}


def test_qcreport_rejects_negative_counts() -> None:
    with pytest.raises(ValueError, match="incidents_in"):
        QCReport(incidents_in=-1)

    with pytest.raises(ValueError, match="incidents_out"):
        QCReport(incidents_out=-1)

    with pytest.raises(ValueError, match="sheet_rows"):
        QCReport(sheet_rows={"victims": -3})


def test_qcreport_join_must_keep_every_incident() -> None:
    with pytest.raises(ValueError, match="incidents_out"):
        QCReport(incidents_in=4, incidents_out=3)

    assert QCReport(incidents_in=4, incidents_out=0).incidents_out == 0
    assert QCReport(incidents_in=4, incidents_out=4).incidents_out == 4


def test_qcreport_rejects_non_string_lists() -> None:
    with pytest.raises(TypeError, match="missing_columns"):
        QCReport(missing_columns=["date", 1])  # type: ignore[list-item]

    with pytest.raises(TypeError, match="warnings"):
        QCReport(warnings=["warn", object()])  # type: ignore[list-item]


def test_qcreport_rejects_string_value_for_list_fields() -> None:
    with pytest.raises(TypeError, match="missing_columns"):
        QCReport(missing_columns="date")  # type: ignore[arg-type]


def test_qcreport_accepts_none_for_collection_fields() -> None:
    qc = QCReport(
        sheet_rows=None,  # type: ignore[arg-type]
        missing_columns=None,  # type: ignore[arg-type]
        warnings=None,  # type: ignore[arg-type]
        unrecognized=None,  # type: ignore[arg-type]
    )

    assert qc.sheet_rows == {}
    assert qc.missing_columns == []
    assert qc.warnings == []
    assert qc.unrecognized == {}


def test_qcreport_rejects_malformed_unrecognized() -> None:
    with pytest.raises(TypeError, match="unrecognized"):
        QCReport(unrecognized=["crossbow"])  # type: ignore[arg-type]

    with pytest.raises(TypeError, match="unrecognized"):
        QCReport(unrecognized={"weapon": {"crossbow": "two"}})  # type: ignore[dict-item]


def test_add_unrecognized_accumulates_counts() -> None:
    qc = QCReport()

    qc.add_unrecognized("weapon", {"crossbow": 2})
    qc.add_unrecognized("weapon", {"crossbow": 1, "sling": 1})
    qc.add_unrecognized("severity", {})

    assert qc.unrecognized == {"weapon": {"crossbow": 3, "sling": 1}}


def test_run_manifest_rejects_non_integer_and_negative_counts() -> None:
    with pytest.raises(TypeError, match="incidents_in"):
        RunManifest(incidents_in=True)  # type: ignore[arg-type]

    with pytest.raises(ValueError, match="incidents_out"):
        RunManifest(incidents_out=-2)


def test_run_manifest_validates_status_and_error_code() -> None:
    with pytest.raises(ValueError, match="status"):
        RunManifest(status="partial")

    failed = RunManifest(status="failed", error_code=2, error_message="boom")

    assert failed.to_dict()["error_code"] == 2
    assert failed.to_dict()["tool"] == "ssdb-eda"
