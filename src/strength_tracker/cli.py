"""CLI entry point for strength-tracker."""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

import pandas as pd
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table as RichTable

from strength_tracker import REQUIRED_FIELDS, __version__
from strength_tracker.errors import NoDataFound, SchemaMismatch
from strength_tracker.io import load_sheets, write_json
from strength_tracker.models import DEFAULT_VOCABULARY, ColumnVocabulary, QCReport, RunManifest
from strength_tracker.pipeline import compute_all_time_bests, summarize_sheets
from strength_tracker.qc import describe_rejections, write_qc_report
from strength_tracker.report import write_report
from strength_tracker.utils import new_run_id, sha256_file, utcnow_iso

app = typer.Typer(
    name="strack",
    help="strength-tracker: Turn BLOC workout exports into e1RM progress charts.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()

Sheets = Mapping[str, Sequence[Sequence[Any]]]


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"strength-tracker v{__version__}")
        raise typer.Exit()


def _normalize_field_name(name: object) -> str:
    return re.sub(r"\s+", "_", str(name).strip().lower())


def _parse_column_map(raw: list[str] | None, *, quiet: bool = False) -> dict[str, str]:
    """Parse ``--map field=Header`` pairs into ``{field: header}``.

    Field names are normalised; header text is kept verbatim because header
    matching is exact.
    """
    if not raw:
        return {}
    mapping: dict[str, str] = {}
    for item in raw:
        if "=" not in item:
            raise ValueError(f"Invalid --map value: {item!r}  (expected field=Header)")
        field_name, header = item.split("=", 1)
        field_norm = _normalize_field_name(field_name)
        header = header.strip()
        if not field_norm or not header:
            raise ValueError("--map entries must have non-empty field and header (field=Header)")
        if field_norm in mapping and not quiet:
            console.print(f"[yellow]![/yellow] Overriding mapping for field {field_norm!r}")
        mapping[field_norm] = header
    return mapping


def _load_profile_map(profile: Path | None) -> list[str]:
    """Return list of ``field=Header`` strings from a profile file."""
    if not profile:
        return []
    if not profile.exists():
        raise ValueError(f"Profile not found: {profile} (expected lines like completed=Done)")
    if profile.is_dir():
        raise ValueError(f"Profile is a directory, not a file: {profile}")
    try:
        text = profile.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Cannot read profile {profile}: {exc}") from exc

    lines: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        lines.append(stripped)
    return lines


def _build_vocabulary(
    profile: Path | None, col_map: list[str] | None, *, quiet: bool
) -> tuple[ColumnVocabulary, dict[str, str]]:
    mapping = _parse_column_map(_load_profile_map(profile) + (col_map or []), quiet=quiet)
    return DEFAULT_VOCABULARY.with_overrides(mapping), mapping


def _data_rows(sheets: Sheets) -> int:
    return sum(max(len(table) - 1, 0) for table in sheets.values())


def _write_manifest(
    out_dir: Path,
    input_file: Path,
    run_id: str,
    created_at: str,
    qc: QCReport,
    *,
    status: str = "success",
    error_code: int | None = None,
    error_message: str = "",
) -> Path:
    sha256 = ""
    try:
        sha256 = sha256_file(input_file)
    except OSError:
        pass

    manifest = RunManifest(
        run_id=run_id,
        version=__version__,
        input_path=str(input_file.resolve()),
        output_dir=str(out_dir.resolve()),
        created_at_utc=created_at,
        rows_in=qc.rows_in,
        rows_out=qc.rows_out,
        sha256=sha256,
        status=status,
        error_code=error_code,
        error_message=error_message,
    )
    return write_json(out_dir / "run_manifest.json", manifest.to_dict())


def _fail(
    out_dir: Path,
    input_file: Path,
    run_id: str,
    created_at: str,
    *,
    message: str,
    qc: QCReport | None = None,
    rows_in: int = 0,
    error_code: int = 2,
) -> typer.Exit:
    """Write QC + manifest for a failed run, report it, and return the exit."""
    if qc is None:
        qc = QCReport(rows_in=rows_in, rows_out=0, dropped_rows=rows_in, warnings=[message])
    qc_path = write_qc_report(out_dir, qc)
    manifest_path = _write_manifest(
        out_dir,
        input_file,
        run_id,
        created_at,
        qc,
        status="failed",
        error_code=error_code,
        error_message=message,
    )
    _err(message)
    console.print(f"  QC report -> {qc_path}")
    console.print(f"  Manifest  -> {manifest_path}")
    return typer.Exit(code=error_code)


def _schema_failure(
    exc: SchemaMismatch,
    vocabulary: ColumnVocabulary,
    out_dir: Path,
    input_file: Path,
    run_id: str,
    created_at: str,
    *,
    rows_in: int,
) -> typer.Exit:
    qc = QCReport(
        rows_in=rows_in,
        rows_out=0,
        dropped_rows=rows_in,
        missing_columns=list(exc.missing),
        warnings=[str(exc)],
    )
    failure = _fail(out_dir, input_file, run_id, created_at, message=str(exc), qc=qc)
    expected = ", ".join(vocabulary.header_for(name) for name in REQUIRED_FIELDS)
    console.print(f"  Expected: {expected}")
    console.print("  Hint: use --map field=Header to rename headers")
    return failure


def _select_sheets(sheets: Sheets, all_sheets: bool) -> Sheets:
    if all_sheets or not sheets:
        return sheets
    first = next(iter(sheets))
    return {first: sheets[first]}


def _write_text_artifact(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(text, encoding="utf-8")
    tmp_path.replace(path)
    return path


def _summary_date_range(table: pd.DataFrame) -> str:
    if table.empty:
        return "N/A"
    dates = table["Date"].dropna()
    if dates.empty:
        return "N/A"
    return f"{min(dates).isoformat()} to {max(dates).isoformat()}"


def _write_summary_artifact(
    *,
    out_dir: Path,
    input_file: Path,
    qc: QCReport,
    table: pd.DataFrame,
    bests: dict[str, dict[str, Any]],
    mapping: dict[str, str],
    all_sheets: bool,
    max_warnings: int = 5,
) -> Path:
    lines: list[str] = [
        "strength-tracker summary",
        f"tool_version: strength-tracker v{__version__}",
        f"input_file: {input_file.name}",
        f"rows_in: {qc.rows_in}",
        f"lifts_used: {qc.rows_out}",
        f"rows_skipped: {qc.dropped_rows}",
        f"sessions: {qc.sessions}",
        f"date_range: {_summary_date_range(table)}",
    ]
    for line in describe_rejections(qc):
        lines.append(f"skipped: {line}")
    lines.append(f"warning_count: {len(qc.warnings)}")
    for idx, warning in enumerate(qc.warnings[:max_warnings], start=1):
        lines.append(f"warning_{idx}: {warning}")
    if len(qc.warnings) > max_warnings:
        lines.append(f"warning_more: {len(qc.warnings) - max_warnings}")

    for lift, best in bests.items():
        notes = f" ({best['notes']})" if best.get("notes") else ""
        lines.append(
            f"best_{lift.lower()}: {best['e1rm']:g}{notes} on {best['date'].isoformat()}"
        )

    parts = ["strack run", f"--input {input_file.name}", f"--out-dir {out_dir.name or out_dir}"]
    if all_sheets:
        parts.append("--all-sheets")
    for field_name, header in sorted(mapping.items()):
        parts.append(f"--map {field_name}={header}")
    lines.append("command: " + " ".join(parts))

    payload = "\n".join(lines) + "\n"
    return _write_text_artifact(out_dir / "summary.txt", payload)


def _bests_table(bests: dict[str, dict[str, Any]]) -> RichTable:
    tbl = RichTable(title="All-time best e1RM")
    tbl.add_column("Lift", style="bold")
    tbl.add_column("e1RM", justify="right")
    tbl.add_column("Set")
    tbl.add_column("Date")
    for lift, best in bests.items():
        tbl.add_row(lift, f"{best['e1rm']:g}", best.get("notes") or "", best["date"].isoformat())
    return tbl


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
    """strength-tracker CLI."""


# ── run command ──────────────────────────────────────────────────


@app.command()
def run(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to the BLOC CSV or XLSX export.",
        envvar="STRACK_INPUT",
        exists=True, readable=True,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for report + QC + manifest.",
        envvar="STRACK_OUT_DIR",
    ),
    col_map: list[str] | None = typer.Option(
        None, "--map", "-m",
        help=(
            "Header override: field=Header. "
            "E.g. --map completed=Done --map workout_date=Date"
        ),
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file containing header overrides (field=Header lines).",
    ),
    all_sheets: bool = typer.Option(
        False, "--all-sheets",
        help="Aggregate every worksheet instead of only the first one.",
    ),
    dayfirst: bool = typer.Option(
        False,
        "--dayfirst/--monthfirst",
        help="Date parsing mode for CSV values like 01/02/2024.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
) -> None:
    """Aggregate best e1RM per day and lift, and write the chart workbook."""
    echo = _printer(quiet)
    created_at = utcnow_iso()
    run_id = new_run_id(created_at)
    out_dir.mkdir(parents=True, exist_ok=True)
    try:
        vocabulary, mapping = _build_vocabulary(profile, col_map, quiet=quiet)
    except ValueError as exc:
        raise _fail(out_dir, input_file, run_id, created_at, message=str(exc))

    if not quiet:
        console.print(Panel(
            f"[bold]strength-tracker[/bold] v{__version__}\n"
            f"Input:  {input_file}\nOutput: {out_dir}",
            title="Pipeline Start", border_style="blue",
        ))
        if profile:
            console.print(f"  Using profile: {profile}")
        if mapping:
            console.print(f"  Header map: {mapping}")

    # ── Load ─────────────────────────────────────────────────────
    echo("[blue]>[/blue] Loading workout log …")
    try:
        sheets = _select_sheets(load_sheets(input_file, dayfirst=dayfirst), all_sheets)
    except (FileNotFoundError, ValueError, OSError) as exc:
        raise _fail(out_dir, input_file, run_id, created_at, message=str(exc))

    rows_in = _data_rows(sheets)
    echo(f"  {len(sheets)} sheet(s), {rows_in} data rows")

    try:
        # ── Aggregate ────────────────────────────────────────────
        echo("[blue]>[/blue] Aggregating best e1RM per session …")
        try:
            table, qc = summarize_sheets(sheets, vocabulary)
        except SchemaMismatch as exc:
            raise _schema_failure(
                exc, vocabulary, out_dir, input_file, run_id, created_at, rows_in=rows_in
            )
        except NoDataFound as exc:
            raise _fail(
                out_dir, input_file, run_id, created_at,
                message=str(exc), qc=exc.qc, rows_in=rows_in,
            )

        qc_path = write_qc_report(out_dir, qc)
        echo(f"  QC report -> {qc_path}")
        if not quiet:
            for w in qc.warnings:
                console.print(f"  [yellow]![/yellow] {w}")
            console.print(f"  {qc.rows_out} lifts across {qc.sessions} sessions")

        bests = compute_all_time_bests(table)

        # ── Write report ─────────────────────────────────────────
        echo("[blue]>[/blue] Writing Processed_E1RMs.xlsx …")
        report_path = write_report(out_dir, table, qc=qc)
        echo(f"  Report -> {report_path}")

        # ── Manifest ─────────────────────────────────────────────
        manifest_path = _write_manifest(out_dir, input_file, run_id, created_at, qc)
        echo(f"  Manifest -> {manifest_path}")

        summary_path = _write_summary_artifact(
            out_dir=out_dir,
            input_file=input_file,
            qc=qc,
            table=table,
            bests=bests,
            mapping=mapping,
            all_sheets=all_sheets,
        )
        echo(f"  Summary  -> {summary_path}")

        if not quiet:
            console.print(_bests_table(bests))
            console.print(Panel(
                f"[green]Done[/green]: {qc.sessions} sessions -> {report_path}",
                title="Pipeline Complete", border_style="green",
            ))
    except typer.Exit:
        raise
    except Exception as exc:
        raise _fail(
            out_dir, input_file, run_id, created_at,
            message=f"Unexpected internal error: {exc}",
            rows_in=rows_in,
            error_code=1,
        )


# ── validate command ─────────────────────────────────────────────


@app.command()
def validate(
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Path to the BLOC CSV or XLSX export.",
        envvar="STRACK_INPUT",
        exists=True, readable=True,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for QC + manifest.",
        envvar="STRACK_OUT_DIR",
    ),
    col_map: list[str] | None = typer.Option(
        None, "--map", "-m",
        help="Header override: field=Header.",
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file containing header overrides (field=Header lines).",
    ),
    all_sheets: bool = typer.Option(
        False, "--all-sheets",
        help="Check every worksheet instead of only the first one.",
    ),
    dayfirst: bool = typer.Option(
        False,
        "--dayfirst/--monthfirst",
        help="Date parsing mode for CSV values like 01/02/2024.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes QC + manifest.",
    ),
) -> None:
    """Check a workout log without writing the chart workbook.

    Writes qc_report.json + run_manifest.json only.
    Exit 0 = OK, exit 2 = schema failure or no usable lifts.
    """
    echo = _printer(quiet)
    created_at = utcnow_iso()
    run_id = new_run_id(created_at)
    out_dir.mkdir(parents=True, exist_ok=True)
    try:
        vocabulary, _mapping = _build_vocabulary(profile, col_map, quiet=quiet)
    except ValueError as exc:
        raise _fail(out_dir, input_file, run_id, created_at, message=str(exc))

    if not quiet:
        console.print(Panel(
            f"[bold]strength-tracker[/bold] v{__version__}  [dim]validate mode[/dim]\n"
            f"Input: {input_file}",
            title="Validate", border_style="cyan",
        ))

    try:
        sheets = _select_sheets(load_sheets(input_file, dayfirst=dayfirst), all_sheets)
    except (FileNotFoundError, ValueError, OSError) as exc:
        raise _fail(out_dir, input_file, run_id, created_at, message=str(exc))

    rows_in = _data_rows(sheets)
    echo(f"  {len(sheets)} sheet(s), {rows_in} data rows")

    try:
        try:
            _table, qc = summarize_sheets(sheets, vocabulary)
        except SchemaMismatch as exc:
            raise _schema_failure(
                exc, vocabulary, out_dir, input_file, run_id, created_at, rows_in=rows_in
            )
        except NoDataFound as exc:
            raise _fail(
                out_dir, input_file, run_id, created_at,
                message=str(exc), qc=exc.qc, rows_in=rows_in,
            )

        qc_path = write_qc_report(out_dir, qc)
        manifest_path = _write_manifest(out_dir, input_file, run_id, created_at, qc)

        if not quiet:
            tbl = RichTable(title="Validation Summary", show_lines=True)
            tbl.add_column("Check", style="bold")
            tbl.add_column("Result")

            tbl.add_row("Rows in", str(qc.rows_in))
            tbl.add_row("Lifts used", str(qc.rows_out))
            tbl.add_row("Sessions", str(qc.sessions))
            for line in describe_rejections(qc):
                tbl.add_row("Skipped", line)
            if qc.missing_columns:
                tbl.add_row("Missing (skipped sheets)", ", ".join(qc.missing_columns))
            for w in qc.warnings:
                tbl.add_row("Warning", f"[yellow]{w}[/yellow]")
            tbl.add_row("Status", "[green]PASS[/green]")
            console.print(tbl)
        console.print(f"  QC       -> {qc_path}")
        console.print(f"  Manifest -> {manifest_path}")
    except typer.Exit:
        raise
    except Exception as exc:
        raise _fail(
            out_dir, input_file, run_id, created_at,
            message=f"Unexpected internal error: {exc}",
            rows_in=rows_in,
            error_code=1,
        )
