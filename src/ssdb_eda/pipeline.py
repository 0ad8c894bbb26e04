"""Cleaning + reshaping pipeline — pure functions, no side effects.

Four independent per-sheet transforms feed one join:

* ``transform_incidents`` — calendar fields, ``first_shot`` time, metadata drop
* ``aggregate_shooters`` — survived / died / unknown_status per incident
* ``aggregate_victims`` — victim counts per injury severity
* ``aggregate_weapons`` — weapon counts per canonical bucket + total
* ``join_incident_tables`` — left-join of the aggregates onto incidents
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from ssdb_eda import REQUIRED_COLUMNS, SHEET_ORDER
from ssdb_eda.errors import (
    ColumnClashError,
    DuplicateColumnError,
    MissingFieldError,
    UnparseableValueError,
    UnrecognizedCategoryError,
)
from ssdb_eda.models import QCReport
from ssdb_eda.utils import plural
from ssdb_eda.vocabulary import (
    MISSING_LABEL,
    Vocabulary,
    normalize_label,
)

NA_TIME = "N/A"

COLUMN_RENAMES: dict[str, str] = {
    "incidentid": "incident_id",
    "firstshot": "first_shot",
    "weapontype": "weapon_type",
    "criminalhistory": "criminal_history",
}

DROPPED_COLUMNS: dict[str, list[str]] = {
    "incidents": ["sources", "number_news", "media_attention", "reliability", "quarter", "date"],
    "shooters": ["criminal_history", "verdict"],
    "victims": [],
    "weapons": [],
}

AGE_GROUPS: list[str] = ["Child", "Teen", "Adult", "Unknown"]

_MERIDIEM_RE = re.compile(r"\s*([AP])\.?\s*M\.?$")
_TIME_FORMATS: tuple[str, ...] = (
    "%H:%M:%S",
    "%H:%M",
    "%I:%M:%S %p",
    "%I:%M %p",
    "%I %p",
    "%Y-%m-%d %H:%M:%S",
)
_EXAMPLE_LIMIT = 3


@dataclass(frozen=True)
class PipelineOptions:
    """Knobs shared by every transform."""

    dayfirst: bool = False
    strict: bool = False
    vocabulary: Vocabulary = field(default_factory=Vocabulary)
    renames: Mapping[str, str] = field(default_factory=dict)


@dataclass
class PipelineResult:
    wide: pd.DataFrame
    qc: QCReport
    shooters: pd.DataFrame
    weapon_types: pd.DataFrame


# ── Header normalisation ────────────────────────────────────────


def _find_duplicate_columns(columns: pd.Index) -> list[str]:
    return sorted({str(name) for name in columns[columns.duplicated(keep=False)]})


def normalize_headers(df: pd.DataFrame, renames: Mapping[str, str] | None = None) -> pd.DataFrame:
    """Lower-case and underscore headers, then apply built-in and extra renames."""
    mapping = dict(COLUMN_RENAMES)
    for source, target in (renames or {}).items():
        mapping[normalize_label(source)] = normalize_label(target)
    df = df.copy()
    names = [normalize_label(c) for c in df.columns]
    df.columns = pd.Index([mapping.get(name, name) for name in names])
    return df


def missing_columns(
    df: pd.DataFrame, sheet: str, renames: Mapping[str, str] | None = None
) -> list[str]:
    """Return the required columns of *sheet* absent from *df* (after normalization)."""
    present = set(normalize_headers(df.iloc[:0], renames).columns)
    return [col for col in REQUIRED_COLUMNS[sheet] if col not in present]


def check_schema(
    sheets: Mapping[str, pd.DataFrame], renames: Mapping[str, str] | None = None
) -> dict[str, list[str]]:
    """Return ``{sheet: [missing columns]}`` for every sheet that fails its schema."""
    problems: dict[str, list[str]] = {}
    for sheet in SHEET_ORDER:
        missing = missing_columns(sheets[sheet], sheet, renames)
        if missing:
            problems[sheet] = missing
    return problems


def _prepare_sheet(df: pd.DataFrame, sheet: str, options: PipelineOptions) -> pd.DataFrame:
    df = normalize_headers(df, options.renames)
    duplicates = _find_duplicate_columns(df.columns)
    if duplicates:
        raise DuplicateColumnError(sheet, duplicates)
    missing = [col for col in REQUIRED_COLUMNS[sheet] if col not in df.columns]
    if missing:
        raise MissingFieldError(sheet, missing)
    return df


# ── Type coercion helpers ────────────────────────────────────────


def _blank_mask(s: pd.Series) -> pd.Series:
    return s.astype("string").fillna("").str.strip().eq("")


def _examples(s: pd.Series, mask: pd.Series) -> list[str]:
    return [str(v) for v in s[mask].head(_EXAMPLE_LIMIT).tolist()]


def _coerce_date(s: pd.Series, *, dayfirst: bool) -> pd.Series:
    return pd.to_datetime(s, errors="coerce", dayfirst=dayfirst, format="mixed")


def _coerce_age(s: pd.Series) -> pd.Series:
    return pd.to_numeric(s.astype("string").str.strip(), errors="coerce").astype("Float64")


def normalize_time(s: pd.Series) -> tuple[pd.Series, int]:
    """Parse free-text times into ``HH:MM:SS``; return ``(times, malformed_count)``.

    Empty and unparseable cells become :data:`NA_TIME`; only non-empty cells
    that fail every format count as malformed.
    """
    text = s.astype("string").str.strip().str.upper()
    text = text.str.replace(_MERIDIEM_RE, r" \1M", regex=True)

    parsed = pd.Series(pd.NaT, index=s.index, dtype="datetime64[ns]")
    for fmt in _TIME_FORMATS:
        pending = parsed.isna()
        if not pending.any():
            break
        parsed.loc[pending] = pd.to_datetime(text[pending], format=fmt, errors="coerce")

    ok = parsed.notna()
    result = pd.Series(NA_TIME, index=s.index, dtype="string")
    result.loc[ok] = parsed[ok].dt.strftime("%H:%M:%S")
    malformed = int((~ok & ~_blank_mask(s)).sum())
    return result, malformed


def normalize_labels(s: pd.Series) -> pd.Series:
    """Vectorised :func:`normalize_label`; blank cells become ``MISSING_LABEL``."""
    text = s.astype("string").fillna("").str.strip()
    labels = text.str.lower().str.replace(r"\s+", "_", regex=True)
    return labels.where(text.ne(""), MISSING_LABEL)


def classify_age(age: pd.Series) -> pd.Series:
    """Map numeric ages onto ``Child`` (<13), ``Teen`` (13-17), ``Adult`` (18+) or ``Unknown``."""
    age = pd.to_numeric(age, errors="coerce").astype("Float64")
    groups = pd.Series("Unknown", index=age.index, dtype="string")
    groups[age.lt(13).fillna(False).astype(bool)] = "Child"
    groups[(age.ge(13) & age.lt(18)).fillna(False).astype(bool)] = "Teen"
    groups[age.ge(18).fillna(False).astype(bool)] = "Adult"
    return groups


# ── Shared aggregation helpers ──────────────────────────────────


def _drop_missing_ids(
    df: pd.DataFrame, sheet: str, qc: QCReport, *, strict: bool
) -> pd.DataFrame:
    missing = df["incident_id"].isna()
    count = int(missing.sum())
    if not count:
        return df
    if strict:
        raise UnparseableValueError(sheet, "incident_id", count, [])
    qc.warnings.append(
        f"Dropped {plural(count, sheet[:-1] + ' row')} with missing incident_id"
    )
    return df[~missing].copy()


def _map_categories(
    labels: pd.Series,
    table: Mapping[str, str],
    dimension: str,
    qc: QCReport,
    *,
    strict: bool,
) -> pd.Series:
    mapped = labels.map(dict(table)).astype("string")
    _report_unrecognized(labels[mapped.isna()], dimension, qc, strict=strict)
    return mapped


def _report_unrecognized(
    unmatched: pd.Series | Mapping[str, int],
    dimension: str,
    qc: QCReport,
    *,
    strict: bool,
) -> None:
    if isinstance(unmatched, pd.Series):
        counts = {str(k): int(v) for k, v in unmatched.value_counts().sort_index().items()}
    else:
        counts = {str(k): int(v) for k, v in sorted(unmatched.items())}
    if not counts:
        return
    if strict:
        raise UnrecognizedCategoryError(dimension, counts)
    qc.add_unrecognized(dimension, counts)
    listed = ", ".join(f"{label} ({n})" for label, n in counts.items())
    qc.warnings.append(
        f"Found {plural(sum(counts.values()), 'row')} with unrecognized {dimension} "
        f"labels: {listed}; excluded from counts"
    )


def _pivot_counts(df: pd.DataFrame, category: str, columns: list[str]) -> pd.DataFrame:
    """Count rows per (incident_id, category) into one zero-filled column per category.

    Every incident present in *df* gets a row, even when all its labels were
    unrecognized (``category`` is NA).
    """
    ids = pd.Index(df["incident_id"].unique(), name="incident_id").sort_values()
    known = df[df[category].notna()]
    if known.empty:
        counts = pd.DataFrame(0, index=ids, columns=columns)
    else:
        counts = (
            known.groupby(["incident_id", category]).size()
            .unstack(fill_value=0)
            .reindex(index=ids, columns=columns, fill_value=0)
        )
    counts = counts.fillna(0).astype("Int64")
    counts.columns.name = None
    counts.index.name = "incident_id"
    return counts.reset_index()


# ── Incidents ────────────────────────────────────────────────────


def transform_incidents(
    df: pd.DataFrame,
    *,
    options: PipelineOptions | None = None,
    qc: QCReport | None = None,
) -> pd.DataFrame:
    """Derive calendar fields and a canonical ``first_shot``; one row out per row in."""
    options = options or PipelineOptions()
    qc = qc if qc is not None else QCReport()

    # 1. Normalise headers + schema
    df = _prepare_sheet(df, "incidents", options)

    # 2. Calendar fields
    dates = _coerce_date(df["date"], dayfirst=options.dayfirst)
    bad = dates.isna()
    bad_dates = int(bad.sum())
    if bad_dates:
        if options.strict:
            raise UnparseableValueError(
                "incidents", "date", bad_dates, _examples(df["date"].fillna(""), bad)
            )
        qc.warnings.append(f"Found {bad_dates} rows with unparseable dates")
    df["year"] = dates.dt.year.astype("Int64")
    df["month"] = dates.dt.month.astype("Int64")
    df["day"] = dates.dt.day.astype("Int64")
    df["day_of_week"] = dates.dt.day_name().astype("string")

    # 3. First-shot time
    df["first_shot"], malformed = normalize_time(df["first_shot"])
    if malformed:
        if options.strict:
            raise UnparseableValueError("incidents", "first_shot", malformed, [])
        qc.warnings.append(
            f"Found {malformed} rows with unparseable first_shot times; set to {NA_TIME!r}"
        )

    # 4. Key sanity (reported, never dropped)
    missing_ids = int(df["incident_id"].isna().sum())
    if missing_ids:
        qc.warnings.append(f"Found {plural(missing_ids, 'incident row')} with missing incident_id")
    ids = df["incident_id"].dropna()
    duplicated = sorted(ids[ids.duplicated()].unique().tolist())
    if duplicated:
        qc.warnings.append(
            f"Found {plural(len(duplicated), 'duplicated incident_id')}: "
            + ", ".join(str(i) for i in duplicated[:_EXAMPLE_LIMIT])
            + (" …" if len(duplicated) > _EXAMPLE_LIMIT else "")
        )

    # 5. Drop metadata columns
    drop = [c for c in DROPPED_COLUMNS["incidents"] if c in df.columns]
    return df.drop(columns=drop).reset_index(drop=True)


# ── Shooters ─────────────────────────────────────────────────────


def clean_shooters(
    df: pd.DataFrame,
    *,
    options: PipelineOptions | None = None,
    qc: QCReport | None = None,
) -> pd.DataFrame:
    """Row-level shooter cleaning: numeric ``age``, ``age_group`` and canonical ``outcome``."""
    options = options or PipelineOptions()
    qc = qc if qc is not None else QCReport()

    df = _prepare_sheet(df, "shooters", options)
    df = _drop_missing_ids(df, "shooters", qc, strict=options.strict)

    age = _coerce_age(df["age"])
    bad_age = age.isna() & ~_blank_mask(df["age"])
    bad_ages = int(bad_age.sum())
    if bad_ages:
        if options.strict:
            raise UnparseableValueError(
                "shooters", "age", bad_ages, _examples(df["age"], bad_age)
            )
        qc.warnings.append(f"Found {bad_ages} shooter rows with non-numeric age; treated as unknown")
    df["age"] = age
    df["age_group"] = classify_age(age)

    df["outcome"] = _map_categories(
        normalize_labels(df["shooter_died"]),
        options.vocabulary.table("survival"),
        "survival",
        qc,
        strict=options.strict,
    )

    drop = [c for c in DROPPED_COLUMNS["shooters"] if c in df.columns]
    return df.drop(columns=drop).reset_index(drop=True)


def aggregate_shooters(
    df: pd.DataFrame,
    *,
    options: PipelineOptions | None = None,
    qc: QCReport | None = None,
) -> pd.DataFrame:
    """One row per incident with ``survived``, ``died``, ``unknown_status`` counts.

    Accepts the raw shooter sheet or the output of :func:`clean_shooters`.
    """
    options = options or PipelineOptions()
    if "outcome" not in df.columns:
        df = clean_shooters(df, options=options, qc=qc)
    return _pivot_counts(df, "outcome", options.vocabulary.columns("survival"))


def summarize_age_groups(shooters: pd.DataFrame) -> pd.DataFrame:
    """Shooter counts per age group (fixed order, zero-filled)."""
    counts = (
        shooters["age_group"].value_counts().reindex(AGE_GROUPS, fill_value=0)
        if "age_group" in shooters.columns
        else pd.Series(0, index=AGE_GROUPS)
    )
    return pd.DataFrame({"age_group": AGE_GROUPS, "shooters": counts.astype(int).tolist()})


# ── Victims ──────────────────────────────────────────────────────


def aggregate_victims(
    df: pd.DataFrame,
    *,
    options: PipelineOptions | None = None,
    qc: QCReport | None = None,
) -> pd.DataFrame:
    """One row per incident with a count column per injury severity."""
    options = options or PipelineOptions()
    qc = qc if qc is not None else QCReport()

    df = _prepare_sheet(df, "victims", options)
    df = _drop_missing_ids(df, "victims", qc, strict=options.strict)
    df["severity"] = _map_categories(
        normalize_labels(df["injury"]),
        options.vocabulary.table("severity"),
        "severity",
        qc,
        strict=options.strict,
    )
    return _pivot_counts(df, "severity", options.vocabulary.columns("severity"))


# ── Weapons ──────────────────────────────────────────────────────


def count_weapon_types(
    df: pd.DataFrame,
    *,
    options: PipelineOptions | None = None,
    qc: QCReport | None = None,
) -> pd.DataFrame:
    """One row per incident, one zero-filled column per normalized weapon label seen."""
    options = options or PipelineOptions()
    qc = qc if qc is not None else QCReport()

    df = _prepare_sheet(df, "weapons", options)
    df = _drop_missing_ids(df, "weapons", qc, strict=options.strict)
    df["weapon_type"] = normalize_labels(df["weapon_type"])
    types = sorted(str(t) for t in df["weapon_type"].unique())
    return _pivot_counts(df, "weapon_type", types)


def collapse_weapon_types(
    type_counts: pd.DataFrame,
    *,
    options: PipelineOptions | None = None,
    qc: QCReport | None = None,
) -> pd.DataFrame:
    """Sum label columns into ``handguns``/``rifles``/``other`` and add ``total_weapons``.

    Label columns missing from the weapon vocabulary are reported and left
    out of every bucket.
    """
    options = options or PipelineOptions()
    qc = qc if qc is not None else QCReport()
    table = options.vocabulary.table("weapon")

    type_cols = [c for c in type_counts.columns if c != "incident_id"]
    unmapped = {c: int(type_counts[c].sum()) for c in type_cols if c not in table}
    _report_unrecognized(unmapped, "weapon", qc, strict=options.strict)

    out = type_counts[["incident_id"]].copy()
    buckets = options.vocabulary.columns("weapon")
    for bucket in buckets:
        members = [c for c in type_cols if table.get(c) == bucket]
        if members:
            out[bucket] = type_counts[members].sum(axis=1).astype("Int64")
        else:
            out[bucket] = pd.Series(0, index=out.index, dtype="Int64")
    out["total_weapons"] = out[buckets].sum(axis=1).astype("Int64")
    return out


def aggregate_weapons(
    df: pd.DataFrame,
    *,
    options: PipelineOptions | None = None,
    qc: QCReport | None = None,
) -> pd.DataFrame:
    """:func:`count_weapon_types` followed by :func:`collapse_weapon_types`."""
    qc = qc if qc is not None else QCReport()
    return collapse_weapon_types(
        count_weapon_types(df, options=options, qc=qc), options=options, qc=qc
    )


# ── Join ─────────────────────────────────────────────────────────


def join_incident_tables(
    incidents: pd.DataFrame,
    shooters: pd.DataFrame,
    victims: pd.DataFrame,
    weapons: pd.DataFrame,
) -> pd.DataFrame:
    """Left-join the three aggregates onto *incidents* by ``incident_id``.

    Incidents without child rows keep ``<NA>`` in that table's columns.
    """
    wide = incidents
    for name, agg in (("shooters", shooters), ("victims", victims), ("weapons", weapons)):
        clash = sorted(c for c in agg.columns if c != "incident_id" and c in wide.columns)
        if clash:
            raise ColumnClashError(name, clash)
        wide = wide.merge(agg, on="incident_id", how="left", validate="many_to_one")
    return wide.reset_index(drop=True)


# ── Driver ───────────────────────────────────────────────────────


def _warn_orphans(
    child: pd.DataFrame, incident_ids: pd.Series, sheet: str, qc: QCReport
) -> None:
    orphans = int((~child["incident_id"].isin(incident_ids.dropna())).sum())
    if orphans:
        qc.warnings.append(
            f"Found {plural(orphans, sheet[:-1] + ' row')} referencing unknown incident_id"
        )


def run_pipeline(
    sheets: Mapping[str, pd.DataFrame], *, options: PipelineOptions | None = None
) -> PipelineResult:
    """Run every transform over a loaded workbook and join the results.

    Raises :class:`MissingFieldError` on the first sheet that fails its
    schema; value and category problems land in ``result.qc``.
    """
    options = options or PipelineOptions()
    qc = QCReport(
        sheet_rows={name: len(sheets[name]) for name in SHEET_ORDER},
        incidents_in=len(sheets["incidents"]),
    )

    problems = check_schema(sheets, options.renames)
    if problems:
        sheet, cols = next(iter(problems.items()))
        raise MissingFieldError(sheet, cols)

    incidents = transform_incidents(sheets["incidents"], options=options, qc=qc)
    shooters = clean_shooters(sheets["shooters"], options=options, qc=qc)
    weapon_types = count_weapon_types(sheets["weapons"], options=options, qc=qc)
    victim_counts = aggregate_victims(sheets["victims"], options=options, qc=qc)
    shooter_counts = aggregate_shooters(shooters, options=options, qc=qc)
    weapon_counts = collapse_weapon_types(weapon_types, options=options, qc=qc)

    for sheet in SHEET_ORDER[1:]:
        child = normalize_headers(sheets[sheet], options.renames)
        _warn_orphans(child[child["incident_id"].notna()], incidents["incident_id"], sheet, qc)

    wide = join_incident_tables(incidents, shooter_counts, victim_counts, weapon_counts)
    qc.incidents_out = len(wide)
    if len(wide) == 0:
        qc.warnings.append("Incident sheet is empty; no rows to analyse")
    return PipelineResult(wide=wide, qc=qc, shooters=shooters, weapon_types=weapon_types)


def build_incident_wide(
    sheets: Mapping[str, pd.DataFrame], *, options: PipelineOptions | None = None
) -> tuple[pd.DataFrame, QCReport]:
    """Return ``(incident_wide, qc_report)`` for a loaded workbook."""
    result = run_pipeline(sheets, options=options)
    return result.wide, result.qc


# ── Summary / KPI helpers ───────────────────────────────────────


def compute_yearly(wide: pd.DataFrame) -> pd.DataFrame:
    """Aggregate by year: incidents, fatal, wounded, total_weapons."""
    columns = ["year", "incidents", "fatal", "wounded", "total_weapons"]
    if wide.empty or "year" not in wide.columns or wide["year"].isna().all():
        return pd.DataFrame(columns=columns)
    data = wide[wide["year"].notna()].copy()
    for col in ("fatal", "wounded", "total_weapons"):
        if col not in data.columns:
            data[col] = 0
    yearly = (
        data.groupby("year", as_index=False)
        .agg(
            incidents=("incident_id", "size"),
            fatal=("fatal", "sum"),
            wounded=("wounded", "sum"),
            total_weapons=("total_weapons", "sum"),
        )
        .sort_values("year")
        .reset_index(drop=True)
    )
    return yearly[columns]


def _top_value(s: pd.Series) -> Any:
    counts = s.dropna().value_counts()
    if counts.empty:
        return "N/A"
    top = counts.max()
    return sorted(str(v) for v in counts[counts == top].index)[0]


def compute_dashboard_kpis(wide: pd.DataFrame) -> dict[str, Any]:
    """Return a dict of top-level KPIs for the Dashboard sheet."""
    if wide.empty:
        return {
            "Total Incidents": 0,
            "Years Covered": "N/A",
            "Total Fatalities": 0,
            "Total Wounded": 0,
            "Total Weapons": 0,
            "Peak Year": "N/A",
            "Top Situation": "N/A",
        }

    def _total(col: str) -> int:
        return int(wide[col].sum(skipna=True)) if col in wide.columns else 0

    years = wide["year"].dropna() if "year" in wide.columns else pd.Series(dtype="Int64")
    covered = f"{int(years.min())} to {int(years.max())}" if not years.empty else "N/A"
    peak = _top_value(years.astype("Int64").astype("string")) if not years.empty else "N/A"
    situation = _top_value(wide["situation"]) if "situation" in wide.columns else "N/A"

    return {
        "Total Incidents": int(len(wide)),
        "Years Covered": covered,
        "Total Fatalities": _total("fatal"),
        "Total Wounded": _total("wounded"),
        "Total Weapons": _total("total_weapons"),
        "Peak Year": peak,
        "Top Situation": situation,
    }
