"""Category vocabularies — raw label variant → canonical count column.

Every table is keyed by the *normalized* label (stripped, lower-cased,
whitespace collapsed to ``_``), so a new spelling variant is added by editing
a table or a vocab profile, never the pipeline.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

from ssdb_eda.io import read_profile_lines

SURVIVAL_COLUMNS: list[str] = ["survived", "died", "unknown_status"]
SEVERITY_COLUMNS: list[str] = ["fatal", "wounded", "minor_injuries", "none", "unknown"]
WEAPON_COLUMNS: list[str] = ["handguns", "rifles", "other"]

MISSING_LABEL = "no_data"
"""Normalized label used for an empty or missing category cell."""

SURVIVAL_STATUS: Mapping[str, str] = MappingProxyType(
    {
        "survived": "survived",
        "died": "died",
        "unknown": "unknown_status",
        MISSING_LABEL: "unknown_status",
    }
)

INJURY_SEVERITY: Mapping[str, str] = MappingProxyType(
    {
        "fatal": "fatal",
        "wounded": "wounded",
        "minor_injuries": "minor_injuries",
        "none": "none",
        "unknown": "unknown",
        MISSING_LABEL: "unknown",
    }
)

WEAPON_BUCKETS: Mapping[str, str] = MappingProxyType(
    {
        "handgun": "handguns",
        "handguns": "handguns",
        "multiple_handguns": "handguns",
        "mulitiple_handguns": "handguns",
        "rifle": "rifles",
        "rifles": "rifles",
        "multiple_rifles": "rifles",
        "shotgun": "rifles",
        "shotguns": "rifles",
        "multiple_shotguns": "rifles",
        MISSING_LABEL: "other",
        "unknown": "other",
        "multiple_unknown": "other",
        "other": "other",
    }
)

DIMENSIONS: tuple[str, ...] = ("survival", "severity", "weapon")


def normalize_label(value: object) -> str:
    """Return the lookup key for a raw label (``"Multiple Handguns"`` → ``multiple_handguns``)."""
    return re.sub(r"\s+", "_", str(value).strip().lower())


@dataclass(frozen=True)
class Vocabulary:
    """The three variant→column tables used by the aggregates."""

    survival: Mapping[str, str] = field(default_factory=lambda: dict(SURVIVAL_STATUS))
    severity: Mapping[str, str] = field(default_factory=lambda: dict(INJURY_SEVERITY))
    weapon: Mapping[str, str] = field(default_factory=lambda: dict(WEAPON_BUCKETS))

    def __post_init__(self) -> None:
        for dimension, allowed in self._columns().items():
            table = getattr(self, dimension)
            unknown_targets = sorted({v for v in table.values() if v not in allowed})
            if unknown_targets:
                raise ValueError(
                    f"{dimension} vocabulary maps to unknown column(s): "
                    f"{', '.join(unknown_targets)} (expected one of {', '.join(allowed)})"
                )

    @staticmethod
    def _columns() -> dict[str, list[str]]:
        return {
            "survival": SURVIVAL_COLUMNS,
            "severity": SEVERITY_COLUMNS,
            "weapon": WEAPON_COLUMNS,
        }

    def columns(self, dimension: str) -> list[str]:
        """Return the fixed output column order for *dimension*."""
        try:
            return list(self._columns()[dimension])
        except KeyError:
            raise ValueError(f"Unknown vocabulary dimension: {dimension!r}") from None

    def table(self, dimension: str) -> Mapping[str, str]:
        if dimension not in DIMENSIONS:
            raise ValueError(f"Unknown vocabulary dimension: {dimension!r}")
        return getattr(self, dimension)

    def with_overrides(self, overrides: Mapping[str, Mapping[str, str]]) -> Vocabulary:
        """Return a copy with ``{dimension: {variant: column}}`` entries added or replaced."""
        tables = {dim: dict(self.table(dim)) for dim in DIMENSIONS}
        for dimension, entries in overrides.items():
            if dimension not in tables:
                raise ValueError(f"Unknown vocabulary dimension: {dimension!r}")
            for variant, column in entries.items():
                tables[dimension][normalize_label(variant)] = normalize_label(column)
        return Vocabulary(**tables)


def parse_vocab_entries(
    raw: list[str] | None, *, default_dimension: str | None = None
) -> dict[str, dict[str, str]]:
    """Parse ``dimension.column=variant`` pairs into ``{dimension: {variant: column}}``.

    With *default_dimension* the ``dimension.`` prefix may be omitted
    (``--weapon-map handguns=Revolver``).
    """
    if not raw:
        return {}
    overrides: dict[str, dict[str, str]] = {}
    for item in raw:
        if "=" not in item:
            raise ValueError(f"Invalid vocabulary entry: {item!r}  (expected column=variant)")
        target, variant = item.split("=", 1)
        target = target.strip()
        if "." in target:
            dimension, column = target.split(".", 1)
        elif default_dimension:
            dimension, column = default_dimension, target
        else:
            raise ValueError(
                f"Invalid vocabulary entry: {item!r}  (expected dimension.column=variant)"
            )
        dimension = dimension.strip().lower()
        if not column.strip() or not variant.strip():
            raise ValueError("Vocabulary entries must have non-empty column and variant")
        if dimension not in DIMENSIONS:
            raise ValueError(
                f"Unknown vocabulary dimension {dimension!r} in {item!r} "
                f"(expected one of {', '.join(DIMENSIONS)})"
            )
        overrides.setdefault(dimension, {})[normalize_label(variant)] = normalize_label(column)
    return overrides


def load_vocab_profile(path: Path | None) -> list[str]:
    """Return ``dimension.column=variant`` lines from a vocab profile file."""
    return read_profile_lines(path, example="weapon.handguns=Revolver")
