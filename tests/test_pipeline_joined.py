"""End-to-end pipeline contracts on the joined incident table."""

from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from ssdb_eda.errors import ColumnClashError, MissingFieldError, SsdbError
from ssdb_eda.io import write_csv
from ssdb_eda.pipeline import (
    NA_TIME,
    build_incident_wide,
    join_incident_tables,
    run_pipeline,
)

SURVIVAL = ["survived", "died", "unknown_status"]
SEVERITY = ["fatal", "wounded", "minor_injuries", "none", "unknown"]
BUCKETS = ["handguns", "rifles", "other"]


@pytest.fixture
def wide(sheets: dict[str, pd.DataFrame]) -> pd.DataFrame:
    result, _qc = build_incident_wide(sheets)
    return result


def _child_counts(sheets: dict[str, pd.DataFrame], sheet: str) -> pd.Series:
    return sheets[sheet]["incidentid"].value_counts()


def test_every_incident_appears_exactly_once(
    sheets: dict[str, pd.DataFrame], wide: pd.DataFrame
) -> None:
    assert len(wide) == len(sheets["incidents"])
    assert wide["incident_id"].tolist() == sheets["incidents"]["Incident_ID"].tolist()
    assert wide["incident_id"].is_unique


def test_weapon_buckets_sum_to_total(wide: pd.DataFrame) -> None:
    has_weapons = wide["total_weapons"].notna()

    summed = wide.loc[has_weapons, BUCKETS].sum(axis=1)

    assert (summed == wide.loc[has_weapons, "total_weapons"]).all()


def test_shooter_outcomes_sum_to_shooter_rows(
    sheets: dict[str, pd.DataFrame], wide: pd.DataFrame
) -> None:
    expected = _child_counts(sheets, "shooters")
    indexed = wide.set_index("incident_id")

    for incident_id, count in expected.items():
        assert int(indexed.loc[incident_id, SURVIVAL].sum()) == count


def test_victim_severities_sum_to_victim_rows(
    sheets: dict[str, pd.DataFrame], wide: pd.DataFrame
) -> None:
    expected = _child_counts(sheets, "victims")
    indexed = wide.set_index("incident_id")

    for incident_id, count in expected.items():
        assert int(indexed.loc[incident_id, SEVERITY].sum()) == count


def test_incident_without_child_rows_gets_null_not_zero(wide: pd.DataFrame) -> None:
    lonely = wide.set_index("incident_id").loc["0007"]

    for col in [*SURVIVAL, *SEVERITY, *BUCKETS, "total_weapons"]:
        assert pd.isna(lonely[col]), col


def test_absent_category_within_aggregate_is_zero(wide: pd.DataFrame) -> None:
    row = wide.set_index("incident_id").loc["2019-001"]

    assert row["unknown_status"] == 0
    assert row["minor_injuries"] == 0
    assert row["rifles"] == 0


def test_two_shooters_and_no_weapons_scenario() -> None:
    sheets = {
        "incidents": pd.DataFrame(
            {"incident_id": ["X"], "date": ["2018-05-18"], "first_shot": ["7:40 AM"]},
            dtype="string",
        ),
        "shooters": pd.DataFrame(
            {"incident_id": ["X", "X"], "age": ["17", "19"], "shooter_died": ["Survived", "Died"]},
            dtype="string",
        ),
        "victims": pd.DataFrame({"incident_id": ["X"], "injury": ["Fatal"]}, dtype="string"),
        "weapons": pd.DataFrame(
            {"incident_id": pd.Series([], dtype="string"), "weapon_type": pd.Series([], dtype="string")}
        ),
    }

    wide, _qc = build_incident_wide(sheets)
    row = wide.iloc[0]

    assert (row["survived"], row["died"], row["unknown_status"]) == (1, 1, 0)
    for col in [*BUCKETS, "total_weapons"]:
        assert pd.isna(row[col])


def test_handgun_spelling_variants_share_one_bucket(wide: pd.DataFrame) -> None:
    row = wide.set_index("incident_id").loc["2019-001"]

    assert row["handguns"] == 3
    assert row["total_weapons"] == 3


def test_first_shot_sentinel_survives_join(wide: pd.DataFrame) -> None:
    assert wide.set_index("incident_id").loc["2020-001", "first_shot"] == NA_TIME
    assert wide["first_shot"].notna().all()


def test_final_schema_is_fixed(wide: pd.DataFrame) -> None:
    expected_tail = [*SURVIVAL, *SEVERITY, *BUCKETS, "total_weapons"]

    assert list(wide.columns[-len(expected_tail):]) == expected_tail
    for col in ("year", "month", "day", "day_of_week", "situation", "preplanned"):
        assert col in wide.columns


def test_pipeline_is_idempotent_byte_for_byte(
    sheets: dict[str, pd.DataFrame], tmp_path: Path
) -> None:
    first, _ = build_incident_wide(sheets)
    second, _ = build_incident_wide(sheets)

    a = write_csv(tmp_path / "a.csv", first).read_bytes()
    b = write_csv(tmp_path / "b.csv", second).read_bytes()

    assert a == b


def test_run_pipeline_does_not_mutate_inputs(sheets: dict[str, pd.DataFrame]) -> None:
    before = {name: df.copy() for name, df in sheets.items()}

    run_pipeline(sheets)

    for name, df in sheets.items():
        pd.testing.assert_frame_equal(df, before[name])


def test_run_pipeline_exposes_intermediate_frames(sheets: dict[str, pd.DataFrame]) -> None:
    result = run_pipeline(sheets)

    assert "age_group" in result.shooters.columns
    assert "age_group" not in result.wide.columns
    assert "mulitiple_handguns" in result.weapon_types.columns
    assert result.qc.incidents_in == result.qc.incidents_out == 4
    assert result.qc.sheet_rows == {"incidents": 4, "shooters": 4, "victims": 6, "weapons": 6}


def test_orphan_child_rows_are_reported(sheets: dict[str, pd.DataFrame]) -> None:
    sheets = dict(sheets)
    extra = pd.DataFrame({"incidentid": ["9999"], "injury": ["Fatal"]}, dtype="string")
    sheets["victims"] = pd.concat([sheets["victims"], extra], ignore_index=True)

    wide, qc = build_incident_wide(sheets)

    assert "9999" not in wide["incident_id"].tolist()
    assert any("1 victim row referencing unknown incident_id" in w for w in qc.warnings)


def test_orphan_warning_counts_rows_not_incidents(sheets: dict[str, pd.DataFrame]) -> None:
    sheets = dict(sheets)
    extra = pd.DataFrame(
        {"incidentid": ["9999", "9999"], "weapontype": ["Rifle", "Handgun"]}, dtype="string"
    )
    sheets["weapons"] = pd.concat([sheets["weapons"], extra], ignore_index=True)

    _wide, qc = build_incident_wide(sheets)

    assert "Found 2 weapon rows referencing unknown incident_id" in qc.warnings


def test_run_pipeline_raises_on_missing_column(sheets: dict[str, pd.DataFrame]) -> None:
    sheets = dict(sheets)
    sheets["shooters"] = sheets["shooters"].drop(columns=["shooter_died"])

    with pytest.raises(MissingFieldError, match="shooters"):
        run_pipeline(sheets)


def test_join_rejects_column_clash() -> None:
    incidents = pd.DataFrame({"incident_id": ["1"], "fatal": [1]})
    agg = pd.DataFrame({"incident_id": ["1"], "survived": [1]})
    victims = pd.DataFrame({"incident_id": ["1"], "fatal": [2]})

    with pytest.raises(ColumnClashError) as excinfo:
        join_incident_tables(incidents, agg, victims, agg.iloc[:0][["incident_id"]])

    assert excinfo.value.sheet == "victims"
    assert excinfo.value.columns == ["fatal"]
    assert isinstance(excinfo.value, SsdbError)
