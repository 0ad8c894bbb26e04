"""Static charts rendered from the IncidentWide table."""

from __future__ import annotations

from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import matplotlib.ticker as mticker  # noqa: E402
import pandas as pd  # noqa: E402
import seaborn as sns  # noqa: E402

INCIDENTS_CHART = "incidents_by_year.png"
CASUALTIES_CHART = "casualties_by_year.png"

UNKNOWN = "Unknown"
DPI = 150

_RC = {
    "axes.spines.top": False,
    "axes.spines.right": False,
    "axes.titleweight": "bold",
    "axes.titlesize": 13,
    "axes.labelsize": 11,
    "xtick.labelsize": 9,
    "ytick.labelsize": 9,
}


def _fill_label(s: pd.Series) -> pd.Series:
    text = s.astype("string").str.strip()
    return text.where(text.fillna("").ne(""), UNKNOWN).fillna(UNKNOWN)


def _has_years(wide: pd.DataFrame) -> bool:
    return "year" in wide.columns and bool(wide["year"].notna().any())


def _save(fig: plt.Figure, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.stem + ".tmp" + path.suffix)
    fig.savefig(tmp_path, dpi=DPI, bbox_inches="tight", metadata={"Software": None})
    plt.close(fig)
    tmp_path.replace(path)
    return path


def incidents_by_situation(wide: pd.DataFrame) -> pd.DataFrame:
    """Incident counts as a ``year × situation`` table (zero-filled)."""
    data = wide[wide["year"].notna()].copy()
    data["year"] = data["year"].astype(int)
    situation = (
        wide["situation"] if "situation" in wide.columns else pd.Series(pd.NA, index=wide.index)
    )
    data["situation"] = _fill_label(situation.loc[data.index])
    table = data.groupby(["year", "situation"]).size().unstack(fill_value=0).sort_index()
    table.columns.name = None
    return table[sorted(table.columns)]


def casualties_by_preplanned(wide: pd.DataFrame) -> pd.DataFrame:
    """Long-form ``year, preplanned, severity, victims`` table of fatal + wounded counts."""
    data = wide[wide["year"].notna()].copy()
    data["year"] = data["year"].astype(int)
    preplanned = (
        wide["preplanned"] if "preplanned" in wide.columns else pd.Series(pd.NA, index=wide.index)
    )
    data["preplanned"] = _fill_label(preplanned.loc[data.index])
    for col in ("fatal", "wounded"):
        if col not in data.columns:
            data[col] = 0
        data[col] = pd.to_numeric(data[col], errors="coerce").fillna(0).astype(int)
    grouped = data.groupby(["year", "preplanned"], as_index=False)[["fatal", "wounded"]].sum()
    long = grouped.melt(
        id_vars=["year", "preplanned"],
        value_vars=["fatal", "wounded"],
        var_name="severity",
        value_name="victims",
    )
    return long.sort_values(["preplanned", "severity", "year"]).reset_index(drop=True)


def plot_incidents_by_year(wide: pd.DataFrame, out_dir: Path) -> Path:
    """Stacked bars: incidents per year split by situation."""
    table = incidents_by_situation(wide)
    with sns.axes_style("whitegrid"), plt.rc_context(_RC):
        fig, ax = plt.subplots(figsize=(12, 6))
        palette = sns.color_palette("tab20", n_colors=max(len(table.columns), 1))
        table.plot(kind="bar", stacked=True, ax=ax, color=palette, width=0.85)
        ax.set_title("School shooting incidents per year by situation")
        ax.set_xlabel("Year")
        ax.set_ylabel("Incidents")
        ax.yaxis.set_major_formatter(mticker.FuncFormatter(lambda x, _: f"{x:,.0f}"))
        ax.legend(title="Situation", bbox_to_anchor=(1.01, 1), loc="upper left", fontsize=8)
        fig.tight_layout()
    return _save(fig, Path(out_dir) / INCIDENTS_CHART)


def plot_casualties_by_year(wide: pd.DataFrame, out_dir: Path) -> Path:
    """Fatal and wounded victims per year, one panel per ``preplanned`` value."""
    long = casualties_by_preplanned(wide)
    with sns.axes_style("whitegrid"), plt.rc_context(_RC):
        grid = sns.relplot(
            data=long,
            x="year",
            y="victims",
            hue="severity",
            col="preplanned",
            kind="line",
            marker="o",
            height=4,
            aspect=1.3,
            palette={"fatal": "#D62728", "wounded": "#4C72B0"},
            facet_kws={"sharey": True},
        )
        grid.set_axis_labels("Year", "Victims")
        grid.set_titles("Preplanned: {col_name}")
        grid.figure.suptitle("Victims per year by preplanning", y=1.03, fontweight="bold")
    return _save(grid.figure, Path(out_dir) / CASUALTIES_CHART)


def render_charts(wide: pd.DataFrame, out_dir: Path) -> tuple[list[Path], list[str]]:
    """Render both charts; return ``(paths, warnings)``.

    Charts are skipped, with a warning, when no incident has a parseable year.
    """
    if not _has_years(wide):
        return [], ["Charts skipped: no incident has a parseable year"]
    paths = [plot_incidents_by_year(wide, out_dir), plot_casualties_by_year(wide, out_dir)]
    return paths, []
