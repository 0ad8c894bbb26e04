"""QC report construction helpers + persistence."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from ssdb_eda.io import write_json
from ssdb_eda.models import QCReport


def schema_failure_report(
    sheet_rows: Mapping[str, int], problems: Mapping[str, list[str]]
) -> QCReport:
    """Build the QC report for a run that stopped at the schema check."""
    missing = [f"{sheet}.{col}" for sheet, cols in problems.items() for col in cols]
    warnings = [
        f"Sheet {sheet!r} is missing required columns: {', '.join(cols)}"
        for sheet, cols in problems.items()
    ]
    return QCReport(
        sheet_rows=dict(sheet_rows),
        incidents_in=int(sheet_rows.get("incidents", 0)),
        incidents_out=0,
        missing_columns=missing,
        warnings=warnings,
    )


def write_qc_report(out_dir: Path, qc: QCReport) -> Path:
    """Write ``qc_report.json`` into *out_dir* and return the path."""
    return write_json(out_dir / "qc_report.json", qc.to_dict())
