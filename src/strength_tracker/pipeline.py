"""e1RM pipeline: pure functions over in-memory tables, no side effects."""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime
from numbers import Integral, Real
from types import MappingProxyType
from typing import Any

import pandas as pd

from strength_tracker import OPTIONAL_FIELDS, OUTPUT_HEADER, REQUIRED_FIELDS
from strength_tracker.errors import InvalidLiftInput, NoDataFound, SchemaMismatch
from strength_tracker.models import (
    DEFAULT_VOCABULARY,
    NAMED_CATEGORIES,
    ColumnMap,
    ColumnVocabulary,
    ExerciseCategory,
    LiftRecord,
    QCReport,
    Rejection,
    SessionBest,
)

SessionKey = tuple[date, ExerciseCategory]

_EXERCISE_LOOKUP: Mapping[str, ExerciseCategory] = MappingProxyType(
    {
        "Squat": ExerciseCategory.SQUAT,
        "Bench Press": ExerciseCategory.BENCH_PRESS,
        "Deadlift": ExerciseCategory.DEADLIFT,
        "Press": ExerciseCategory.PRESS,
    }
)

# ── Cell semantics ───────────────────────────────────────────────


def _is_blank(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _is_truthy(value: object) -> bool:
    """Spreadsheet truthiness: blanks, ``False`` and ``0`` are falsy."""
    if _is_blank(value):
        return False
    return bool(value)


def _calendar_day(value: object) -> date | None:
    if _is_blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def _cell(row: Sequence[Any], index: int | None) -> Any:
    if index is None or index >= len(row):
        return None
    return row[index]


def _positive_reps(value: object) -> int | None:
    if isinstance(value, bool) or not isinstance(value, Real):
        return None
    if isinstance(value, Integral):
        reps = int(value)
    elif math.isfinite(float(value)) and float(value).is_integer():
        reps = int(value)
    else:
        return None
    return reps if reps > 0 else None


def _positive_weight(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, Real):
        return None
    if isinstance(value, Integral):
        weight: float = int(value)
    else:
        weight = float(value)
        if not math.isfinite(weight):
            return None
    return weight if weight > 0 else None


# ── Column resolver ──────────────────────────────────────────────


def resolve_columns(
    header: Sequence[Any], vocabulary: ColumnVocabulary = DEFAULT_VOCABULARY
) -> ColumnMap:
    """Map *header* to column indices by exact header-name match.

    The first occurrence of a repeated name wins. Raises ``SchemaMismatch``
    listing every required header that is absent.
    """
    positions: dict[str, int] = {}
    for index, name in enumerate(header):
        if isinstance(name, str):
            positions.setdefault(name, index)

    missing = [
        vocabulary.header_for(name)
        for name in REQUIRED_FIELDS
        if vocabulary.header_for(name) not in positions
    ]
    if missing:
        raise SchemaMismatch(missing)

    resolved = {name: positions[vocabulary.header_for(name)] for name in REQUIRED_FIELDS}
    for name in OPTIONAL_FIELDS:
        resolved[name] = positions.get(vocabulary.header_for(name))  # type: ignore[assignment]
    return ColumnMap(**resolved)


# ── Strength estimator ───────────────────────────────────────────


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero (not banker's)."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def estimate_e1rm(reps: int, weight: float) -> float:
    """Epley estimate of the one-rep max for *reps* at *weight*.

    A single is returned unchanged; anything else is rounded to an integer.
    """
    if _positive_reps(reps) is None:
        raise InvalidLiftInput(f"reps must be a positive integer, got {reps!r}")
    if _positive_weight(weight) is None:
        raise InvalidLiftInput(f"weight must be a positive number, got {weight!r}")
    if reps == 1:
        return weight
    return round_half_up(weight * (1 + reps / 30))


# ── Row filter & override resolver ───────────────────────────────


def classify_exercise(name: object) -> ExerciseCategory:
    if not isinstance(name, str):
        return ExerciseCategory.OTHER
    return _EXERCISE_LOOKUP.get(name, ExerciseCategory.OTHER)


def interpret_row(row: Sequence[Any], columns: ColumnMap) -> LiftRecord | Rejection:
    """Turn one data row into a ``LiftRecord`` or the reason it is skipped."""
    raw_date = _cell(row, columns.workout_date)
    day = _calendar_day(raw_date)
    if day is None:
        return Rejection.MISSING_DATE
    if not _is_truthy(_cell(row, columns.completed)):
        return Rejection.NOT_COMPLETED
    if not _is_truthy(_cell(row, columns.assigned_reps)):
        # BLOC emits coach comments as rows without assigned reps.
        return Rejection.NO_ASSIGNED_REPS
    if columns.missed is not None and _is_truthy(_cell(row, columns.missed)):
        return Rejection.MARKED_MISSED

    reps = _cell(row, columns.assigned_reps)
    weight = _cell(row, columns.assigned_weight)
    actual_reps = _cell(row, columns.actual_reps)
    actual_weight = _cell(row, columns.actual_weight)
    if _is_truthy(actual_reps) and _is_truthy(actual_weight):
        reps, weight = actual_reps, actual_weight

    lifted_reps = _positive_reps(reps)
    lifted_weight = _positive_weight(weight)
    if lifted_reps is None or lifted_weight is None:
        return Rejection.INVALID_SET

    lift_date = raw_date if isinstance(raw_date, date) else day
    return LiftRecord(
        date=lift_date,
        category=classify_exercise(_cell(row, columns.exercise_name)),
        reps=lifted_reps,
        weight=lifted_weight,
    )


# ── Session aggregator ───────────────────────────────────────────


class SessionAggregator:
    """Running best e1RM per (calendar day, category).

    A stored best is replaced only by a strictly greater e1RM, so equal
    values keep the first set seen.
    """

    def __init__(self) -> None:
        self._bests: dict[SessionKey, SessionBest] = {}

    def __len__(self) -> int:
        return len(self._bests)

    @property
    def bests(self) -> Mapping[SessionKey, SessionBest]:
        return MappingProxyType(self._bests)

    def add(self, record: LiftRecord) -> SessionBest:
        day = _calendar_day(record.date)
        if day is None:
            raise InvalidLiftInput(f"lift has no calendar date: {record.date!r}")
        candidate = SessionBest(
            day=day,
            category=record.category,
            e1rm=estimate_e1rm(record.reps, record.weight),
            reps=record.reps,
            weight=record.weight,
        )
        return self._offer(candidate)

    def extend(self, records: Iterable[LiftRecord]) -> None:
        for record in records:
            self.add(record)

    def merge(self, other: SessionAggregator) -> None:
        """Fold *other*'s bests into this one using the same max rule."""
        for best in other._bests.values():
            self._offer(best)

    def _offer(self, candidate: SessionBest) -> SessionBest:
        key = (candidate.day, candidate.category)
        current = self._bests.get(key)
        if current is None or candidate.e1rm > current.e1rm:
            self._bests[key] = candidate
            return candidate
        return current


def aggregate_sessions(records: Iterable[LiftRecord]) -> Mapping[SessionKey, SessionBest]:
    aggregator = SessionAggregator()
    aggregator.extend(records)
    return aggregator.bests


# ── Output table builder ─────────────────────────────────────────


def build_output_table(bests: Mapping[SessionKey, SessionBest]) -> pd.DataFrame:
    """One row per day, oldest first, in ``OUTPUT_HEADER`` layout.

    Categories with no lift on a day stay null so charts skip them.
    """
    by_day: dict[date, dict[ExerciseCategory, SessionBest]] = {}
    for best in bests.values():
        by_day.setdefault(best.day, {})[best.category] = best

    rows: list[list[Any]] = []
    for day in sorted(by_day):
        slots = by_day[day]
        row: list[Any] = [day]
        for category in NAMED_CATEGORIES:
            best = slots.get(category)
            row.extend((best.e1rm, best.provenance) if best else (None, None))
        other = slots.get(ExerciseCategory.OTHER)
        row.append(other.e1rm if other else None)
        rows.append(row)

    return pd.DataFrame(rows, columns=list(OUTPUT_HEADER))


# ── Sheet pipeline ───────────────────────────────────────────────


def extract_lifts(
    table: Sequence[Sequence[Any]], vocabulary: ColumnVocabulary = DEFAULT_VOCABULARY
) -> tuple[list[LiftRecord], Counter[Rejection]]:
    """Resolve the header of *table* and interpret every data row."""
    if not table:
        raise SchemaMismatch(vocabulary.header_for(name) for name in REQUIRED_FIELDS)
    columns = resolve_columns(table[0], vocabulary)

    records: list[LiftRecord] = []
    rejections: Counter[Rejection] = Counter()
    for row in table[1:]:
        outcome = interpret_row(row, columns)
        if isinstance(outcome, Rejection):
            rejections[outcome] += 1
        else:
            records.append(outcome)
    return records, rejections


def summarize_sheets(
    sheets: Mapping[str, Sequence[Sequence[Any]]],
    vocabulary: ColumnVocabulary = DEFAULT_VOCABULARY,
) -> tuple[pd.DataFrame, QCReport]:
    """Aggregate every sheet in *sheets* into a single output table.

    Sheets whose header does not match are skipped with a warning. Raises
    ``SchemaMismatch`` when no sheet matches and ``NoDataFound`` when no row
    produced a lift.
    """
    aggregator = SessionAggregator()
    rejections: Counter[Rejection] = Counter()
    missing_columns: list[str] = []
    warnings: list[str] = []
    mismatch: SchemaMismatch | None = None
    matched = 0
    rows_in = 0
    rows_out = 0

    for name, table in sheets.items():
        try:
            records, rejected = extract_lifts(table, vocabulary)
        except SchemaMismatch as exc:
            mismatch = exc
            missing_columns.extend(c for c in exc.missing if c not in missing_columns)
            warnings.append(f"Sheet {name!r} skipped: {exc}")
            continue
        matched += 1
        rows_in += len(table) - 1
        rows_out += len(records)
        rejections.update(rejected)
        aggregator.extend(records)

    if not matched:
        raise mismatch if mismatch is not None else SchemaMismatch(
            vocabulary.header_for(name) for name in REQUIRED_FIELDS
        )

    invalid = rejections[Rejection.INVALID_SET]
    if invalid:
        warnings.append(
            f"Skipped {invalid} rows with non-numeric or non-positive reps/weight"
        )

    qc = QCReport(
        rows_in=rows_in,
        rows_out=rows_out,
        dropped_rows=rows_in - rows_out,
        sessions=len({day for day, _category in aggregator.bests}),
        rejections={reason.value: count for reason, count in sorted(rejections.items())},
        missing_columns=missing_columns,
        warnings=warnings,
    )
    if rows_out == 0:
        qc.warnings.append("No data found: no completed sets in the input")
        raise NoDataFound("No data found: the input has no completed, non-missed sets", qc=qc)

    return build_output_table(aggregator.bests), qc


def summarize_table(
    table: Sequence[Sequence[Any]], vocabulary: ColumnVocabulary = DEFAULT_VOCABULARY
) -> tuple[pd.DataFrame, QCReport]:
    """Single-sheet form of :func:`summarize_sheets`; header is row 0."""
    return summarize_sheets({"Sheet1": table}, vocabulary)


# ── Summary helpers ─────────────────────────────────────────────


def compute_all_time_bests(table: pd.DataFrame) -> dict[str, dict[str, Any]]:
    """Highest e1RM per lift column of an output table, earliest date on ties.

    Lifts with no data are left out. Other has no ``notes`` entry.
    """
    bests: dict[str, dict[str, Any]] = {}
    if table.empty:
        return bests
    for category in (*NAMED_CATEGORIES, ExerciseCategory.OTHER):
        column = category.value
        values = pd.to_numeric(table[column], errors="coerce")
        if values.notna().sum() == 0:
            continue
        idx = values.idxmax()
        best: dict[str, Any] = {"date": table.at[idx, "Date"], "e1rm": float(values[idx])}
        notes_column = f"{column} Notes"
        if notes_column in table.columns:
            best["notes"] = table.at[idx, notes_column]
        bests[column] = best
    return bests
