"""CLI entry point for ssdb-eda."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

import pandas as pd
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table as RichTable

from ssdb_eda import REQUIRED_COLUMNS, SHEET_ORDER, __version__
from ssdb_eda.charts import render_charts
from ssdb_eda.errors import SsdbError
from ssdb_eda.io import load_sheets, read_profile_lines, write_csv, write_json, write_text
from ssdb_eda.models import QCReport, RunManifest
from ssdb_eda.pipeline import (
    PipelineOptions,
    check_schema,
    compute_dashboard_kpis,
    compute_yearly,
    run_pipeline,
    summarize_age_groups,
)
from ssdb_eda.qc import schema_failure_report, write_qc_report
from ssdb_eda.report import write_report
from ssdb_eda.utils import sha256_file, utcnow_iso
from ssdb_eda.vocabulary import (
    Vocabulary,
    load_vocab_profile,
    normalize_label,
    parse_vocab_entries,
)

WIDE_CSV = "incident_wide.csv"

app = typer.Typer(
    name="ssdb-eda",
    help="ssdb-eda — Clean and join a school-shooting workbook into one analysis table.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()


class SetupError(ValueError):
    """Bad CLI configuration (column map, profile, vocabulary)."""


@dataclass
class RunContext:
    input_file: Path
    out_dir: Path
    created_at: str
    quiet: bool


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"ssdb-eda v{__version__}")
        raise typer.Exit()


def _parse_column_map(raw: list[str] | None, *, quiet: bool = False) -> dict[str, str]:
    """Parse ``--map target=source`` pairs into ``{source: target}``."""
    if not raw:
        return {}
    mapping: dict[str, str] = {}
    for item in raw:
        if "=" not in item:
            raise SetupError(f"Invalid --map value: {item!r}  (expected target=source)")
        target, source = item.split("=", 1)
        target_norm = normalize_label(target)
        source_norm = normalize_label(source)
        if not target_norm or not source_norm:
            raise SetupError("--map entries must have non-empty target and source (target=source)")
        if source_norm in mapping and not quiet:
            console.print(f"[yellow]![/yellow] Overriding mapping for source {source_norm!r}")
        mapping[source_norm] = target_norm
    return mapping


def _build_options(
    *,
    col_map: list[str] | None,
    profile: Path | None,
    weapon_map: list[str] | None,
    vocab_profile: Path | None,
    dayfirst: bool,
    strict: bool,
    quiet: bool,
) -> PipelineOptions:
    try:
        renames = _parse_column_map(
            read_profile_lines(profile, example="incident_id=Incident ID") + (col_map or []),
            quiet=quiet,
        )
        overrides = parse_vocab_entries(load_vocab_profile(vocab_profile))
        for dimension, entries in parse_vocab_entries(
            weapon_map, default_dimension="weapon"
        ).items():
            overrides.setdefault(dimension, {}).update(entries)
        vocabulary = Vocabulary().with_overrides(overrides)
    except SetupError:
        raise
    except ValueError as exc:
        raise SetupError(str(exc)) from exc
    return PipelineOptions(
        dayfirst=dayfirst, strict=strict, vocabulary=vocabulary, renames=renames
    )


def _write_manifest(
    ctx: RunContext,
    qc: QCReport,
    *,
    status: str = "success",
    error_code: int | None = None,
    error_message: str = "",
) -> Path:
    sha256 = ""
    try:
        sha256 = sha256_file(ctx.input_file)
    except OSError:
        sha256 = ""

    manifest = RunManifest(
        version=__version__,
        input_path=str(ctx.input_file.resolve()),
        output_dir=str(ctx.out_dir.resolve()),
        created_at_utc=ctx.created_at,
        incidents_in=qc.incidents_in,
        incidents_out=qc.incidents_out,
        sha256=sha256,
        status=status,
        error_code=error_code,
        error_message=error_message,
    )
    return write_json(ctx.out_dir / "run_manifest.json", manifest.to_dict())


def _fail(
    ctx: RunContext,
    message: str,
    *,
    qc: QCReport | None = None,
    error_code: int = 2,
) -> typer.Exit:
    """Write failure QC + manifest, print the error, and return the Exit to raise."""
    if qc is None:
        qc = QCReport(warnings=[message])
    elif message not in qc.warnings:
        qc.warnings.append(message)
    qc.incidents_out = 0
    qc_path = write_qc_report(ctx.out_dir, qc)
    manifest_path = _write_manifest(
        ctx, qc, status="failed", error_code=error_code, error_message=message
    )
    _err(message)
    console.print(f"  QC report -> {qc_path}")
    console.print(f"  Manifest  -> {manifest_path}")
    return typer.Exit(code=error_code)


def _schema_hint(problems: Mapping[str, list[str]]) -> None:
    for sheet in problems:
        console.print(f"  Expected in {sheet}: {', '.join(REQUIRED_COLUMNS[sheet])}")
    console.print("  Hint: use --map target=source to rename headers")


def _load_and_check(
    ctx: RunContext, options: PipelineOptions
) -> dict[str, pd.DataFrame]:
    """Load the workbook and run the schema check; exit 2 on either failure."""
    try:
        sheets = load_sheets(ctx.input_file)
    except (FileNotFoundError, ValueError, OSError, SsdbError) as exc:
        raise _fail(ctx, str(exc)) from exc

    sheet_rows = {name: len(sheets[name]) for name in SHEET_ORDER}
    _printer(ctx.quiet)(
        "  " + ", ".join(f"{name}: {rows} rows" for name, rows in sheet_rows.items())
    )
    problems = check_schema(sheets, options.renames)
    if problems:
        qc = schema_failure_report(sheet_rows, problems)
        sheet, cols = next(iter(problems.items()))
        message = f"Sheet {sheet!r} is missing required columns: {', '.join(cols)}"
        exit_ = _fail(ctx, message, qc=qc)
        _schema_hint(problems)
        raise exit_
    return sheets


def _summary_lines(qc: QCReport, kpis: dict[str, object], *, max_warnings: int = 5) -> list[str]:
    lines = [
        "ssdb-eda summary",
        f"tool_version: ssdb-eda v{__version__}",
        *(f"rows_{name}: {qc.sheet_rows.get(name, 0)}" for name in SHEET_ORDER),
        f"incidents_out: {qc.incidents_out}",
        f"warning_count: {len(qc.warnings)}",
    ]
    for idx, warning in enumerate(qc.warnings[:max_warnings], start=1):
        lines.append(f"warning_{idx}: {warning}")
    if len(qc.warnings) > max_warnings:
        lines.append(f"warning_more: {len(qc.warnings) - max_warnings}")
    for label, value in kpis.items():
        key = normalize_label(label)
        lines.append(f"kpi_{key}: {value}")
    return lines


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """ssdb-eda CLI."""


# ── Shared options ───────────────────────────────────────────────

_INPUT = typer.Option(
    ..., "--input", "-i",
    help="Path to the four-sheet XLSX workbook (incidents, shooters, victims, weapons).",
    exists=True, readable=True,
)
_MAP = typer.Option(
    None, "--map", "-m",
    help="Header rename: target=source, applied to every sheet. E.g. --map incident_id=ID",
)
_PROFILE = typer.Option(
    None, "--profile", help="File of header renames (target=source lines)."
)
_WEAPON_MAP = typer.Option(
    None, "--weapon-map",
    help="Extra weapon label: bucket=variant. E.g. --weapon-map handguns=Revolver",
)
_VOCAB_PROFILE = typer.Option(
    None, "--vocab-profile",
    help="File of dimension.column=variant lines (survival, severity, weapon).",
)
_DAYFIRST = typer.Option(
    False, "--dayfirst/--monthfirst",
    help="Date parsing mode for ambiguous values like 01/02/2019.",
)
_STRICT = typer.Option(
    False, "--strict",
    help="Fail on unparseable values and unrecognized labels instead of reporting them.",
)


# ── run command ──────────────────────────────────────────────────


@app.command()
def run(
    input_file: Path = _INPUT,
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for table, report, charts, QC and manifest.",
    ),
    col_map: list[str] | None = _MAP,
    profile: Path | None = _PROFILE,
    weapon_map: list[str] | None = _WEAPON_MAP,
    vocab_profile: Path | None = _VOCAB_PROFILE,
    dayfirst: bool = _DAYFIRST,
    strict: bool = _STRICT,
    charts: bool = typer.Option(True, "--charts/--no-charts", help="Render PNG charts."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
) -> None:
    """Clean, join and report on a school-shooting workbook."""
    echo = _printer(quiet)
    ctx = RunContext(input_file, out_dir, utcnow_iso(), quiet)
    out_dir.mkdir(parents=True, exist_ok=True)
    try:
        options = _build_options(
            col_map=col_map, profile=profile, weapon_map=weapon_map,
            vocab_profile=vocab_profile, dayfirst=dayfirst, strict=strict, quiet=quiet,
        )
    except SetupError as exc:
        raise _fail(ctx, str(exc)) from exc

    if not quiet:
        console.print(Panel(
            f"[bold]ssdb-eda[/bold] v{__version__}\n"
            f"Input:  {input_file}\nOutput: {out_dir}",
            title="Pipeline Start", border_style="blue",
        ))
        if options.renames:
            console.print(f"  Column map: {dict(options.renames)}")
        console.print(
            f"  Parse mode: date={'DD/MM' if dayfirst else 'MM/DD'}, strict={strict}"
        )

    # ── Load ─────────────────────────────────────────────────────
    echo("[blue]>[/blue] Loading workbook …")
    sheets = _load_and_check(ctx, options)

    try:
        # ── Clean + join ─────────────────────────────────────────
        echo("[blue]>[/blue] Cleaning and joining sheets …")
        try:
            result = run_pipeline(sheets, options=options)
        except SsdbError as exc:
            qc = QCReport(
                sheet_rows={name: len(sheets[name]) for name in SHEET_ORDER},
                incidents_in=len(sheets["incidents"]),
            )
            raise _fail(ctx, str(exc), qc=qc) from exc
        qc = result.qc
        wide = result.wide

        if not quiet:
            for w in qc.warnings:
                console.print(f"  [yellow]![/yellow] {w}")
            console.print(f"  {qc.incidents_out} incident rows joined")

        csv_path = write_csv(out_dir / WIDE_CSV, wide)
        echo(f"  Table  -> {csv_path}")

        # ── Charts ───────────────────────────────────────────────
        if charts:
            echo("[blue]>[/blue] Rendering charts …")
            chart_paths, chart_warnings = render_charts(wide, out_dir)
            qc.warnings.extend(chart_warnings)
            for path in chart_paths:
                echo(f"  Chart  -> {path}")
            for w in chart_warnings:
                echo(f"  [yellow]![/yellow] {w}")

        # ── Report ───────────────────────────────────────────────
        echo("[blue]>[/blue] Writing Analysis_Report.xlsx …")
        kpis = compute_dashboard_kpis(wide)
        report_path = write_report(
            out_dir,
            wide,
            kpis,
            compute_yearly(wide),
            summarize_age_groups(result.shooters),
            result.weapon_types,
            qc=qc,
            generated=ctx.created_at,
        )
        echo(f"  Report -> {report_path}")

        qc_path = write_qc_report(out_dir, qc)
        echo(f"  QC report -> {qc_path}")
        manifest_path = _write_manifest(ctx, qc)
        echo(f"  Manifest  -> {manifest_path}")
        summary_path = write_text(
            out_dir / "summary.txt", "\n".join(_summary_lines(qc, kpis)) + "\n"
        )
        echo(f"  Summary   -> {summary_path}")

        if not quiet:
            console.print(Panel(
                f"[green]Done[/green] — {qc.incidents_out} incidents -> {csv_path}",
                title="Pipeline Complete", border_style="green",
            ))
    except typer.Exit:
        raise
    except Exception as exc:
        raise _fail(
            ctx,
            f"Unexpected internal error: {exc}",
            qc=QCReport(
                sheet_rows={name: len(sheets[name]) for name in SHEET_ORDER},
                incidents_in=len(sheets["incidents"]),
            ),
            error_code=1,
        ) from exc


# ── validate command ─────────────────────────────────────────────


@app.command()
def validate(
    input_file: Path = _INPUT,
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for QC + manifest.",
    ),
    col_map: list[str] | None = _MAP,
    profile: Path | None = _PROFILE,
    weapon_map: list[str] | None = _WEAPON_MAP,
    vocab_profile: Path | None = _VOCAB_PROFILE,
    dayfirst: bool = _DAYFIRST,
    strict: bool = _STRICT,
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes QC + manifest.",
    ),
) -> None:
    """Validate a workbook without writing the table, report or charts.

    Writes qc_report.json + run_manifest.json only.
    Exit 0 = OK, exit 2 = schema failure.
    """
    ctx = RunContext(input_file, out_dir, utcnow_iso(), quiet)
    out_dir.mkdir(parents=True, exist_ok=True)
    try:
        options = _build_options(
            col_map=col_map, profile=profile, weapon_map=weapon_map,
            vocab_profile=vocab_profile, dayfirst=dayfirst, strict=strict, quiet=quiet,
        )
    except SetupError as exc:
        raise _fail(ctx, str(exc)) from exc

    if not quiet:
        console.print(Panel(
            f"[bold]ssdb-eda[/bold] v{__version__}  [dim]validate mode[/dim]\n"
            f"Input: {input_file}",
            title="Validate", border_style="cyan",
        ))

    sheets = _load_and_check(ctx, options)

    try:
        try:
            qc = run_pipeline(sheets, options=options).qc
        except SsdbError as exc:
            raise _fail(
                ctx,
                str(exc),
                qc=QCReport(
                    sheet_rows={name: len(sheets[name]) for name in SHEET_ORDER},
                    incidents_in=len(sheets["incidents"]),
                ),
            ) from exc

        qc_path = write_qc_report(out_dir, qc)
        manifest_path = _write_manifest(ctx, qc)

        if not quiet:
            tbl = RichTable(title="Validation Summary", show_lines=True)
            tbl.add_column("Check", style="bold")
            tbl.add_column("Result")
            for name in SHEET_ORDER:
                tbl.add_row(f"Rows ({name})", str(qc.sheet_rows.get(name, 0)))
            tbl.add_row("Incidents joined", str(qc.incidents_out))
            for dimension, labels in sorted(qc.unrecognized.items()):
                tbl.add_row(
                    f"Unrecognized {dimension}",
                    ", ".join(f"{k} ({v})" for k, v in sorted(labels.items())),
                )
            for w in qc.warnings:
                tbl.add_row("Warning", f"[yellow]{w}[/yellow]")
            tbl.add_row("Status", "[green]PASS[/green]")
            console.print(tbl)
        console.print(f"  QC       -> {qc_path}")
        console.print(f"  Manifest -> {manifest_path}")
    except typer.Exit:
        raise
    except Exception as exc:
        raise _fail(ctx, f"Unexpected internal error: {exc}", error_code=1) from exc
