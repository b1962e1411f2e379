"""Excel report writer: produces Processed_E1RMs.xlsx with progress charts."""

from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl import Workbook
from openpyxl.chart import LineChart, Reference
from openpyxl.chart.axis import DateAxis
from openpyxl.chart.label import DataLabelList
from openpyxl.chart.marker import Marker
from openpyxl.chart.shapes import GraphicalProperties
from openpyxl.drawing.line import LineProperties
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from strength_tracker import OUTPUT_HEADER
from strength_tracker.models import QCReport

# ── Style constants ──────────────────────────────────────────────

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="2F5496", end_color="2F5496", fill_type="solid")
HEADER_ALIGN = Alignment(horizontal="center", vertical="center", wrap_text=True)

TITLE_FONT = Font(name="Calibri", bold=True, size=14, color="2F5496")
SUBTITLE_FONT = Font(name="Calibri", bold=False, size=10, color="808080")
LABEL_FONT = Font(name="Calibri", bold=True, size=11)
VALUE_FONT = Font(name="Calibri", size=11)
WARN_FONT = Font(name="Calibri", italic=True, size=10, color="CC6600")

NOTE_FILL = PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid")

DATE_FMT = 'yyyy-mm-dd'

DATA_SHEET = "Processed E1RMs"
REPORT_FILENAME = "Processed_E1RMs.xlsx"
Y_AXIS_TITLE = "Epley One Rep Max"

# (value column header, chart sheet title, line colour)
CHARTS: tuple[tuple[str, str, str], ...] = (
    ("Squat", "Squat Progress", "FF0000"),
    ("Bench", "Bench Progress", "1F77B4"),
    ("Deadlift", "Deadlift Progress", "2CA02C"),
    ("Press", "Press Progress", "FF7F0E"),
)

_AUTO_WIDTH_SAMPLE_ROWS = 300
_EXCEL_FORMULA_PREFIXES = ("=", "+", "-", "@")


# ── Helpers ──────────────────────────────────────────────────────


def _style_header(ws: Worksheet, ncols: int) -> None:
    for c in range(1, ncols + 1):
        cell = ws.cell(row=1, column=c)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGN


def _auto_width(ws: Worksheet) -> None:
    max_row = min(ws.max_row, _AUTO_WIDTH_SAMPLE_ROWS + 1)  # include header row
    for c_idx in range(1, ws.max_column + 1):
        letter = get_column_letter(c_idx)
        width = 0
        for row in ws.iter_rows(min_row=1, max_row=max_row, min_col=c_idx, max_col=c_idx):
            cell = row[0]
            width = max(width, len(str(cell.value or "")))
        width += 4
        ws.column_dimensions[letter].width = min(width, 30)


def _excel_value(val: Any) -> Any:
    try:
        if pd.isna(val):
            return None
    except (TypeError, ValueError):
        return val

    if isinstance(val, pd.Timestamp):
        dt = val.to_pydatetime()
        return dt.replace(tzinfo=None) if dt.tzinfo else dt

    if isinstance(val, datetime) and val.tzinfo:
        return val.replace(tzinfo=None)

    if isinstance(val, str):
        if val.startswith("'"):
            return val
        stripped = val.lstrip()
        if stripped and stripped[0] in _EXCEL_FORMULA_PREFIXES:
            return f"'{val}"

    item = getattr(val, "item", None)
    if callable(item) and not isinstance(val, (date, str)):
        return item()
    return val


def _write_data_sheet(wb: Workbook, table: pd.DataFrame) -> Worksheet:
    ws = wb.create_sheet(title=DATA_SHEET)
    for c_idx, col_name in enumerate(OUTPUT_HEADER, 1):
        ws.cell(row=1, column=c_idx, value=col_name)
    for r_idx, row_vals in enumerate(
        table.reindex(columns=list(OUTPUT_HEADER)).itertuples(index=False, name=None), 2
    ):
        for c_idx, val in enumerate(row_vals, 1):
            cell = ws.cell(row=r_idx, column=c_idx, value=_excel_value(val))
            if c_idx == 1:
                cell.number_format = DATE_FMT
    _style_header(ws, len(OUTPUT_HEADER))
    ws.freeze_panes = "A2"
    _auto_width(ws)
    return ws


def _progress_chart(ws: Worksheet, column_name: str, title: str, color: str) -> LineChart:
    """Line chart of one e1RM column against the date column."""
    nrows = ws.max_row
    col = OUTPUT_HEADER.index(column_name) + 1

    chart = LineChart()
    chart.title = title
    chart.y_axis.title = Y_AXIS_TITLE
    chart.y_axis.crossAx = 500
    chart.x_axis = DateAxis(crossAx=100)
    chart.x_axis.number_format = DATE_FMT
    chart.x_axis.majorTimeUnit = "days"
    chart.x_axis.title = "Date"
    chart.legend = None
    # Days without this lift are empty cells; join across them instead of dropping to 0.
    chart.display_blanks = "span"

    data = Reference(ws, min_col=col, min_row=1, max_row=nrows)
    chart.add_data(data, titles_from_data=True)
    chart.set_categories(Reference(ws, min_col=1, min_row=2, max_row=nrows))

    series = chart.series[0]
    series.smooth = True
    series.graphicalProperties = GraphicalProperties(ln=LineProperties(solidFill=color))
    series.marker = Marker(symbol="diamond", size=5)
    series.marker.graphicalProperties = GraphicalProperties(solidFill=color)
    series.dLbls = DataLabelList()
    series.dLbls.showVal = True
    return chart


def _write_chart_sheets(wb: Workbook, ws: Worksheet) -> None:
    for column_name, title, color in CHARTS:
        chart = _progress_chart(ws, column_name, title, color)
        chart_sheet = wb.create_chartsheet(title=title)
        chart_sheet.add_chart(chart)


def _write_notes(wb: Workbook, qc: QCReport) -> None:
    ws = wb.create_sheet(title="Notes")

    ws.cell(row=1, column=1, value="strength-tracker: Notes").font = TITLE_FONT
    ws.merge_cells("A1:C1")
    generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    ws.cell(row=2, column=1, value=f"Generated {generated}").font = SUBTITLE_FONT
    ws.merge_cells("A2:C2")

    row = 4
    counts = [
        ("Rows in", qc.rows_in),
        ("Lifts used", qc.rows_out),
        ("Rows skipped", qc.dropped_rows),
        ("Sessions", qc.sessions),
    ]
    counts.extend((f"Skipped: {reason}", count) for reason, count in qc.rejections.items())
    for label, value in counts:
        lbl_cell = ws.cell(row=row, column=1, value=label)
        lbl_cell.font = LABEL_FONT
        lbl_cell.fill = NOTE_FILL
        val_cell = ws.cell(row=row, column=2, value=value)
        val_cell.font = VALUE_FONT
        val_cell.fill = NOTE_FILL
        row += 1

    row += 1
    if qc.warnings:
        for warn in qc.warnings:
            ws.cell(row=row, column=1, value=f"⚠ {warn}").font = WARN_FONT
            row += 1
    else:
        ws.cell(row=row, column=1, value="No warnings").font = VALUE_FONT

    ws.column_dimensions["A"].width = 28
    ws.column_dimensions["B"].width = 14


# ── Public API ───────────────────────────────────────────────────


def write_report(out_dir: Path, table: pd.DataFrame, qc: QCReport | None = None) -> Path:
    """Write ``Processed_E1RMs.xlsx`` and return the path.

    The data sheet comes first, followed by one chart sheet per named lift
    and a Notes sheet with the QC counts.
    """
    if qc is None:
        qc = QCReport()

    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    report_path = out_dir / REPORT_FILENAME

    wb = Workbook()
    active_sheet = wb.active
    if active_sheet is not None:
        wb.remove(active_sheet)  # remove default sheet

    data_ws = _write_data_sheet(wb, table)
    _write_chart_sheets(wb, data_ws)
    _write_notes(wb, qc)

    tmp_path = out_dir / "Processed_E1RMs.tmp.xlsx"
    wb.save(tmp_path)
    tmp_path.replace(report_path)
    return report_path
