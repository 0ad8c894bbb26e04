"""Excel report writer — produces Analysis_Report.xlsx."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo
from openpyxl.worksheet.worksheet import Worksheet

from ssdb_eda.models import QCReport
from ssdb_eda.vocabulary import SEVERITY_COLUMNS, SURVIVAL_COLUMNS, WEAPON_COLUMNS

REPORT_NAME = "Analysis_Report.xlsx"

# ── Style constants ──────────────────────────────────────────────

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="7B2C2C", end_color="7B2C2C", fill_type="solid")
HEADER_ALIGN = Alignment(horizontal="center", vertical="center", wrap_text=True)

TITLE_FONT = Font(name="Calibri", bold=True, size=14, color="7B2C2C")
SUBTITLE_FONT = Font(name="Calibri", bold=False, size=10, color="808080")
LABEL_FONT = Font(name="Calibri", bold=True, size=11)
VALUE_FONT = Font(name="Calibri", size=11)
WARN_FONT = Font(name="Calibri", italic=True, size=10, color="CC6600")

NOTE_FILL = PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid")
KPI_FILL = PatternFill(start_color="F2DCDB", end_color="F2DCDB", fill_type="solid")

INT_FMT = '#,##0'
YEAR_FMT = '0'

# Column-name → format mapping for data sheets
_COL_FORMATS: dict[str, str] = {
    "year": YEAR_FMT,
    "month": YEAR_FMT,
    "day": YEAR_FMT,
    "incidents": INT_FMT,
    "shooters": INT_FMT,
    "total_weapons": INT_FMT,
    **{col: INT_FMT for col in (*SURVIVAL_COLUMNS, *SEVERITY_COLUMNS, *WEAPON_COLUMNS)},
}

_MAX_COL_WIDTH = 40
_FORMULA_LEADS = ("=", "+", "-", "@")


# ── Helpers ──────────────────────────────────────────────────────


def _cell_value(val: Any) -> Any:
    """Excel-safe value: NA → empty cell, numpy scalars → Python, formula-like text quoted."""
    if isinstance(val, str):
        lead = val.lstrip()[:1]
        return f"'{val}" if lead and lead in _FORMULA_LEADS else val
    if pd.api.types.is_scalar(val) and pd.isna(val):
        return None
    return val.item() if hasattr(val, "item") else val


def _column_width(header: str, values: pd.Series) -> int:
    text = values.dropna().astype(str)
    widest = max(len(header), int(text.str.len().max()) if len(text) else 0)
    return min(widest + 4, _MAX_COL_WIDTH)


def _write_frame(wb: Workbook, title: str, df: pd.DataFrame) -> Worksheet:
    """Add *df* as sheet *title*: styled header, count formats, an Excel table named *title*."""
    ws = wb.create_sheet(title=title)
    headers = [str(c) for c in df.columns]
    if not headers:
        ws["A1"] = "No data"
        ws["A1"].font = VALUE_FONT
        return ws

    ws.append(headers)
    for values in df.itertuples(index=False, name=None):
        ws.append([_cell_value(v) for v in values])

    for cell in ws[1]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGN
    for idx, header in enumerate(headers, 1):
        fmt = _COL_FORMATS.get(header)
        if fmt:
            for (cell,) in ws.iter_rows(min_row=2, min_col=idx, max_col=idx):
                cell.number_format = fmt
        ws.column_dimensions[get_column_letter(idx)].width = _column_width(
            header, df.iloc[:, idx - 1]
        )
    ws.freeze_panes = "A2"

    if len(df):
        table = Table(
            displayName=title,
            ref=f"A1:{get_column_letter(len(headers))}{len(df) + 1}",
        )
        table.tableStyleInfo = TableStyleInfo(name="TableStyleMedium3", showRowStripes=True)
        ws.add_table(table)
    return ws


def _fill_row(ws: Worksheet, row: int, fill: PatternFill, ncols: int = 4) -> None:
    for c in range(1, ncols + 1):
        ws.cell(row=row, column=c).fill = fill


def _write_dashboard(wb: Workbook, kpis: dict[str, Any], qc: QCReport, generated: str) -> None:
    ws = wb.create_sheet(title="Dashboard")

    # ── Title ────────────────────────────────────────────────────
    ws.cell(row=1, column=1, value="School Shooting Incidents — Dashboard").font = TITLE_FONT
    ws.merge_cells("A1:D1")
    ws.cell(row=2, column=1, value=f"Generated {generated}").font = SUBTITLE_FONT
    ws.merge_cells("A2:D2")

    # ── Notes block (from QC) ────────────────────────────────────
    row = 4
    ws.cell(row=row, column=1, value="Notes").font = LABEL_FONT
    _fill_row(ws, row, NOTE_FILL)
    ws.merge_cells(f"A{row}:D{row}")
    row += 1
    for c_idx, sheet in enumerate(sorted(qc.sheet_rows), 1):
        if c_idx > 4:
            break
        ws.cell(row=row, column=c_idx, value=f"{sheet}: {qc.sheet_rows[sheet]} rows")
    _fill_row(ws, row, NOTE_FILL)
    row += 1
    for warn in qc.warnings or ["No warnings"]:
        cell = ws.cell(row=row, column=1, value=f"⚠ {warn}" if qc.warnings else warn)
        cell.font = WARN_FONT if qc.warnings else VALUE_FONT
        _fill_row(ws, row, NOTE_FILL)
        row += 1

    # ── KPI cards ────────────────────────────────────────────────
    row += 1
    ws.cell(row=row, column=1, value="Key Metrics").font = LABEL_FONT
    _fill_row(ws, row, KPI_FILL)
    ws.merge_cells(f"A{row}:D{row}")
    row += 1

    for label, value in kpis.items():
        lbl_cell = ws.cell(row=row, column=1, value=label)
        lbl_cell.font = LABEL_FONT
        lbl_cell.fill = KPI_FILL
        val_cell = ws.cell(row=row, column=2, value=value)
        val_cell.font = VALUE_FONT
        val_cell.fill = KPI_FILL
        if isinstance(value, int) and not isinstance(value, bool):
            val_cell.number_format = INT_FMT
            val_cell.alignment = Alignment(horizontal="right")
        row += 1

    ws.column_dimensions["A"].width = 24
    ws.column_dimensions["B"].width = 22
    ws.column_dimensions["C"].width = 18
    ws.column_dimensions["D"].width = 18


# ── Public API ───────────────────────────────────────────────────


def write_report(
    out_dir: Path,
    wide: pd.DataFrame,
    kpis: dict[str, Any],
    yearly: pd.DataFrame,
    age_groups: pd.DataFrame,
    weapon_types: pd.DataFrame,
    qc: QCReport | None = None,
    *,
    generated: str = "",
) -> Path:
    """Write ``Analysis_Report.xlsx`` and return the path."""
    if qc is None:
        qc = QCReport()

    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    report_path = out_dir / REPORT_NAME

    wb = Workbook()
    active_sheet = wb.active
    if active_sheet is not None:
        wb.remove(active_sheet)  # remove default sheet

    _write_dashboard(wb, kpis, qc, generated)
    _write_frame(wb, "Yearly", yearly)
    _write_frame(wb, "Age_Groups", age_groups)
    _write_frame(wb, "Weapon_Types", weapon_types)
    _write_frame(wb, "Incident_Wide", wide)

    tmp_path = out_dir / "Analysis_Report.tmp.xlsx"
    wb.save(tmp_path)
    tmp_path.replace(report_path)
    return report_path
