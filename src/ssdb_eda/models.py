"""Data models / typed dicts used across the package."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from numbers import Integral
from typing import Any


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_string_list(values: Sequence[Any] | None, field_name: str) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str):
        raise TypeError(f"{field_name} must be a sequence of strings")
    normalized: list[str] = []
    for item in values:
        if not isinstance(item, str):
            raise TypeError(f"{field_name} items must be strings")
        normalized.append(item)
    return normalized


def _to_count_map(values: Mapping[Any, Any] | None, field_name: str) -> dict[str, int]:
    if values is None:
        return {}
    if not isinstance(values, Mapping):
        raise TypeError(f"{field_name} must be a mapping")
    result: dict[str, int] = {}
    for key, count in values.items():
        if not isinstance(key, str):
            raise TypeError(f"{field_name} keys must be strings")
        result[key] = _to_non_negative_int(count, f"{field_name}[{key!r}]")
    return result


@dataclass
class QCReport:
    """Quality-control report emitted alongside every run.

    Contract invariant: a successful join keeps every incident row, so
    ``incidents_out`` is either ``0`` (failed run) or ``incidents_in``.
    """

    sheet_rows: dict[str, int] = field(default_factory=dict)
    incidents_in: int = 0
    incidents_out: int = 0
    missing_columns: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    unrecognized: dict[str, dict[str, int]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.sheet_rows = _to_count_map(self.sheet_rows, "sheet_rows")
        self.incidents_in = _to_non_negative_int(self.incidents_in, "incidents_in")
        self.incidents_out = _to_non_negative_int(self.incidents_out, "incidents_out")
        self.missing_columns = _to_string_list(self.missing_columns, "missing_columns")
        self.warnings = _to_string_list(self.warnings, "warnings")
        if self.unrecognized is None:
            self.unrecognized = {}
        if not isinstance(self.unrecognized, Mapping):
            raise TypeError("unrecognized must be a mapping")
        self.unrecognized = {
            str(dim): _to_count_map(labels, f"unrecognized[{dim!r}]")
            for dim, labels in self.unrecognized.items()
        }
        if self.incidents_out not in (0, self.incidents_in):
            raise ValueError("incidents_out must be 0 or equal to incidents_in")

    def add_unrecognized(self, dimension: str, labels: Mapping[str, int]) -> None:
        if not labels:
            return
        bucket = self.unrecognized.setdefault(dimension, {})
        for label, count in labels.items():
            bucket[label] = bucket.get(label, 0) + _to_non_negative_int(count, "count")

    def to_dict(self) -> dict[str, Any]:
        return {
            "sheet_rows": dict(self.sheet_rows),
            "incidents_in": self.incidents_in,
            "incidents_out": self.incidents_out,
            "missing_columns": list(self.missing_columns),
            "warnings": list(self.warnings),
            "unrecognized": {dim: dict(labels) for dim, labels in self.unrecognized.items()},
        }


@dataclass
class RunManifest:
    """Audit-trail manifest for a single pipeline run."""

    tool: str = "ssdb-eda"
    version: str = ""
    input_path: str = ""
    output_dir: str = ""
    created_at_utc: str = ""
    incidents_in: int = 0
    incidents_out: int = 0
    sha256: str = ""
    status: str = "success"
    error_code: int | None = None
    error_message: str = ""

    def __post_init__(self) -> None:
        self.incidents_in = _to_non_negative_int(self.incidents_in, "incidents_in")
        self.incidents_out = _to_non_negative_int(self.incidents_out, "incidents_out")
        if self.status not in {"success", "failed"}:
            raise ValueError("status must be 'success' or 'failed'")
        if self.error_code is not None:
            self.error_code = _to_non_negative_int(self.error_code, "error_code")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "input_path": self.input_path,
            "output_dir": self.output_dir,
            "created_at_utc": self.created_at_utc,
            "incidents_in": self.incidents_in,
            "incidents_out": self.incidents_out,
            "sha256": self.sha256,
            "status": self.status,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }
