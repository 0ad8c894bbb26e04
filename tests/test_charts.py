from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from ssdb_eda.charts import (
    CASUALTIES_CHART,
    INCIDENTS_CHART,
    casualties_by_preplanned,
    incidents_by_situation,
    render_charts,
)
from ssdb_eda.pipeline import build_incident_wide

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


@pytest.fixture
def wide(sheets: dict[str, pd.DataFrame]) -> pd.DataFrame:
    result, _qc = build_incident_wide(sheets)
    return result


def test_incidents_by_situation_counts_and_fills_unknown(wide: pd.DataFrame) -> None:
    table = incidents_by_situation(wide)

    assert table.index.tolist() == [2019, 2020, 2021]
    assert table.columns.tolist() == ["Accidental", "Escalation of Dispute", "Unknown"]
    assert table.loc[2019].tolist() == [1, 1, 0]
    assert table.loc[2021, "Unknown"] == 1
    assert int(table.to_numpy().sum()) == len(wide)


def test_casualties_by_preplanned_is_long_form(wide: pd.DataFrame) -> None:
    long = casualties_by_preplanned(wide)

    assert list(long.columns) == ["year", "preplanned", "severity", "victims"]
    assert set(long["severity"]) == {"fatal", "wounded"}
    yes = long[(long["preplanned"] == "Yes") & (long["year"] == 2019)]
    assert dict(zip(yes["severity"], yes["victims"])) == {"fatal": 1, "wounded": 2}
    unknown = long[long["preplanned"] == "Unknown"]
    assert unknown["victims"].sum() == 0


def test_rows_without_year_are_left_out(wide: pd.DataFrame) -> None:
    wide = wide.copy()
    wide.loc[0, "year"] = pd.NA

    table = incidents_by_situation(wide)

    assert int(table.to_numpy().sum()) == len(wide) - 1


def test_render_charts_writes_both_pngs(wide: pd.DataFrame, tmp_path: Path) -> None:
    paths, warnings = render_charts(wide, tmp_path / "charts")

    assert warnings == []
    assert [p.name for p in paths] == [INCIDENTS_CHART, CASUALTIES_CHART]
    for path in paths:
        assert path.read_bytes().startswith(PNG_MAGIC)
    assert not list((tmp_path / "charts").glob("*.tmp.png"))


def test_render_charts_skips_without_years(wide: pd.DataFrame, tmp_path: Path) -> None:
    wide = wide.copy()
    wide["year"] = pd.array([pd.NA] * len(wide), dtype="Int64")

    paths, warnings = render_charts(wide, tmp_path)

    assert paths == []
    assert warnings == ["Charts skipped: no incident has a parseable year"]
    assert list(tmp_path.iterdir()) == []
