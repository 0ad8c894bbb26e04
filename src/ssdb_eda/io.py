"""I/O helpers — load the workbook, write JSON and CSV artifacts."""

from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, cast

import pandas as pd

from ssdb_eda import SHEET_ORDER
from ssdb_eda.errors import MissingSheetError

# ── Loading ──────────────────────────────────────────────────────


def _read_all_sheets(path: Path, engine: str) -> dict[Any, pd.DataFrame]:
    read_excel = cast(Callable[..., dict[Any, pd.DataFrame]], getattr(pd, "read_excel"))
    # Only blank cells are missing: "None" is a severity and "NA" a valid id.
    return read_excel(
        path,
        sheet_name=None,
        engine=engine,
        dtype="string",
        keep_default_na=False,
        na_values=[""],
    )


def load_sheets(path: Path) -> dict[str, pd.DataFrame]:
    """Load the four analysis sheets, keyed by ``SHEET_ORDER`` position.

    Sheets are matched by position, not by tab name; extra trailing sheets
    are ignored. Every cell is read as text so ``incident_id`` keeps its
    exact spelling.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If the extension is not supported.
    MissingSheetError
        If the workbook has fewer than four sheets.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")

    suffix = path.suffix.lower()
    if suffix in (".xlsx", ".xlsm", ".xltx", ".xltm"):
        raw = _read_all_sheets(path, "openpyxl")
    elif suffix == ".xls":
        try:
            raw = _read_all_sheets(path, "xlrd")
        except ImportError as exc:
            raise ValueError(
                "Unsupported .xls input unless 'xlrd' is installed. "
                "Either convert to .xlsx or add dependency: pip install xlrd"
            ) from exc
    else:
        raise ValueError(f"Unsupported file type: {suffix!r}. Use .xlsx or .xls")

    frames = list(raw.values())
    if len(frames) < len(SHEET_ORDER):
        raise MissingSheetError(SHEET_ORDER, len(frames))
    return {name: frames[idx] for idx, name in enumerate(SHEET_ORDER)}


def read_profile_lines(path: Path | None, *, example: str) -> list[str]:
    """Return the non-blank, non-comment lines of a ``key=value`` profile file."""
    if not path:
        return []
    path = Path(path)
    if not path.exists():
        raise ValueError(f"Profile not found: {path} (expected lines like {example})")
    if path.is_dir():
        raise ValueError(f"Profile is a directory, not a file: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Cannot read profile {path}: {exc}") from exc

    lines: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        lines.append(stripped)
    return lines


# ── Writing ──────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _atomic_write_text(path: Path, payload: str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    return _atomic_write_text(path, payload)


def write_text(path: Path, text: str) -> Path:
    """Write *text* to *path* atomically."""
    return _atomic_write_text(path, text)


def write_csv(path: Path, df: pd.DataFrame) -> Path:
    """Write *df* as CSV (no index, ``\\n`` line endings, empty cells for NA)."""
    payload = df.to_csv(index=False, lineterminator="\n", na_rep="")
    return _atomic_write_text(path, payload)
