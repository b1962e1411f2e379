"""I/O helpers: load workout exports as typed cell tables, write JSON artifacts."""

from __future__ import annotations

import csv
import json
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any, Literal

import pandas as pd
from openpyxl import load_workbook

Table = list[list[Any]]

_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{1,2}-\d{1,2}([ T]\d{1,2}:\d{2}(:\d{2}(\.\d+)?)?)?$")
_SLASH_DATE_RE = re.compile(r"^\d{1,2}/\d{1,2}/\d{2,4}( \d{1,2}:\d{2}(:\d{2})?)?$")

# ── Cell typing ──────────────────────────────────────────────────


def host_cell(value: object, *, dayfirst: bool = False) -> Any:
    """Type a raw text cell the way a spreadsheet would on import.

    Blank becomes ``None``, ``TRUE``/``FALSE`` become booleans, numbers
    become ``int``/``float`` and recognised dates become ``datetime``.
    Anything else is returned as text.
    """
    if value is None:
        return None
    try:
        if pd.isna(value):  # type: ignore[arg-type]
            return None
    except (TypeError, ValueError):
        pass
    if not isinstance(value, str):
        return value

    text = value.strip()
    if not text:
        return None
    upper = text.upper()
    if upper == "TRUE":
        return True
    if upper == "FALSE":
        return False
    if _INT_RE.fullmatch(text):
        return int(text)
    if _FLOAT_RE.fullmatch(text):
        return float(text)
    if _ISO_DATE_RE.fullmatch(text) or _SLASH_DATE_RE.fullmatch(text):
        parsed = pd.to_datetime(text, errors="coerce", dayfirst=dayfirst)
        if not pd.isna(parsed):
            return parsed.to_pydatetime()
    return value


def _drop_empty_rows(rows: Table) -> Table:
    return [row for row in rows if any(cell is not None for cell in row)]


# ── Loading ──────────────────────────────────────────────────────


def _read_csv(path: Path, delimiter: str | None, dayfirst: bool) -> Table:
    if path.stat().st_size == 0:
        return []
    last_exc: Exception | None = None
    sep = delimiter if delimiter else None
    engine: Literal["c", "python"] = "c" if delimiter else "python"
    for encoding in ("utf-8-sig", "utf-8", "latin-1"):
        try:
            raw = pd.read_csv(
                path,
                header=None,
                dtype="string",
                sep=sep,
                engine=engine,
                encoding=encoding,
                encoding_errors="strict",
                keep_default_na=False,
                na_values=[""],
            )
        except (UnicodeDecodeError, pd.errors.ParserError, csv.Error) as exc:
            last_exc = exc
            continue
        except pd.errors.EmptyDataError:
            return []
        if raw.empty:
            return []
        header, *body = raw.itertuples(index=False, name=None)
        # Header cells are names, never typed values.
        rows: Table = [[None if pd.isna(v) else str(v) for v in header]]
        for values in body:
            rows.append([host_cell(v, dayfirst=dayfirst) for v in values])
        return _drop_empty_rows(rows)
    raise ValueError(f"Could not read CSV {path} (decode or parse failed)") from last_exc


def _read_workbook(path: Path) -> dict[str, Table]:
    wb = load_workbook(path, read_only=True, data_only=True)
    try:
        sheets: dict[str, Table] = {}
        # Chart sheets are not in ``worksheets``.
        for ws in wb.worksheets:
            rows = [list(values) for values in ws.iter_rows(values_only=True)]
            sheets[ws.title] = _drop_empty_rows(rows)
        return sheets
    finally:
        wb.close()


def load_sheets(
    path: Path, delimiter: str | None = None, *, dayfirst: bool = False
) -> dict[str, Table]:
    """Load a CSV or Excel export and return ``{sheet name: rows}``.

    Row 0 of each table is the header row. A CSV yields one sheet named after
    the file stem.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If the extension is not supported, or CSV decoding/parsing fails.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".csv":
        return {path.stem: _read_csv(path, delimiter, dayfirst)}

    if suffix in (".xlsx", ".xlsm", ".xltx", ".xltm"):
        return _read_workbook(path)

    raise ValueError(f"Unsupported file type: {suffix!r}. Use .csv or .xlsx")


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


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path
