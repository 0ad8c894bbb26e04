from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pandas as pd
import pytest

SheetMap = dict[str, pd.DataFrame]


def _frame(data: dict[str, list[object]]) -> pd.DataFrame:
    return pd.DataFrame(data, dtype="string")


@pytest.fixture
def incidents_raw() -> pd.DataFrame:
    return _frame(
        {
            "Incident_ID": ["2019-001", "2019-002", "2020-001", "0007"],
            "Sources": ["AP", "local", "AP", "blog"],
            "Number_News": ["12", "3", "5", "1"],
            "Media_Attention": ["National", "Local", "Regional", "Local"],
            "Reliability": ["3", "2", "3", "1"],
            "Date": ["2019-02-05", "2019-11-14", "2020-03-02", "2021-06-10"],
            "Quarter": ["Winter", "Fall", "Winter", "Summer"],
            "School": ["Lincoln HS", "Oak MS", "Pine ES", "River HS"],
            "State": ["TX", "CA", "OH", "GA"],
            "Situation": ["Escalation of Dispute", "Accidental", "Escalation of Dispute", None],
            "Preplanned": ["Yes", "No", "No", None],
            "First_Shot": ["8:15 AM", "14:30", "", "noonish"],
        }
    )


@pytest.fixture
def shooters_raw() -> pd.DataFrame:
    return _frame(
        {
            "incidentid": ["2019-001", "2019-001", "2019-002", "2020-001"],
            "age": ["16", "Unknown", "35", None],
            "shooter_died": ["Survived", "Died", "Died", None],
            "criminal_history": ["No", "Yes", None, None],
            "verdict": [None, None, "Guilty", None],
        }
    )


@pytest.fixture
def victims_raw() -> pd.DataFrame:
    return _frame(
        {
            "incidentid": ["2019-001", "2019-001", "2019-001", "2019-002", "2020-001", "2020-001"],
            "injury": ["Fatal", "Wounded", "Wounded", "Minor Injuries", "None", None],
        }
    )


@pytest.fixture
def weapons_raw() -> pd.DataFrame:
    return _frame(
        {
            "incidentid": ["2019-001", "2019-001", "2019-001", "2019-002", "2019-002", "2020-001"],
            "weapontype": [
                "Handgun",
                "Multiple Handguns",
                "Mulitiple Handguns",
                "Rifle",
                "No Data",
                "Multiple Unknown",
            ],
        }
    )


@pytest.fixture
def sheets(
    incidents_raw: pd.DataFrame,
    shooters_raw: pd.DataFrame,
    victims_raw: pd.DataFrame,
    weapons_raw: pd.DataFrame,
) -> SheetMap:
    return {
        "incidents": incidents_raw,
        "shooters": shooters_raw,
        "victims": victims_raw,
        "weapons": weapons_raw,
    }


@pytest.fixture
def write_workbook(tmp_path: Path) -> Callable[..., Path]:
    """Return a helper that writes ``{sheet: df}`` into an xlsx under tmp_path."""

    def _write(frames: SheetMap, name: str = "ssdb.xlsx") -> Path:
        path = tmp_path / name
        tab_names = {
            "incidents": "INCIDENT",
            "shooters": "SHOOTER",
            "victims": "VICTIM",
            "weapons": "WEAPON",
        }
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            for key, df in frames.items():
                df.to_excel(writer, sheet_name=tab_names.get(key, key), index=False)
        return path

    return _write


@pytest.fixture
def workbook(sheets: SheetMap, write_workbook: Callable[..., Path]) -> Path:
    return write_workbook(sheets)
