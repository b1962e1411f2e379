"""Data models used across the package."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, fields, replace
from datetime import date
from enum import Enum
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


def _format_number(value: float) -> str:
    return f"{value:g}"


# ── Schema ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class ColumnVocabulary:
    """Header text the BLOC export uses for each semantic field."""

    workout_date: str = "workout_date"
    completed: str = "workout_completed"
    exercise_name: str = "exercise_name"
    assigned_reps: str = "assigned_reps"
    assigned_weight: str = "assigned_weight"
    actual_reps: str = "actual_reps"
    actual_weight: str = "actual_weight"
    missed: str = "assigned_exercise_missed"

    def header_for(self, field_name: str) -> str:
        return str(getattr(self, field_name))

    def as_dict(self) -> dict[str, str]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def with_overrides(self, overrides: Mapping[str, str]) -> ColumnVocabulary:
        """Return a copy with some header names replaced (``{field: header}``)."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(
                f"Unknown field(s): {', '.join(unknown)}. "
                f"Expected one of: {', '.join(sorted(known))}"
            )
        return replace(self, **dict(overrides))


DEFAULT_VOCABULARY = ColumnVocabulary()


@dataclass(frozen=True)
class ColumnMap:
    """Column index of each semantic field; ``missed`` may be absent."""

    workout_date: int
    completed: int
    exercise_name: int
    assigned_reps: int
    assigned_weight: int
    actual_reps: int
    actual_weight: int
    missed: int | None = None


# ── Lifts ────────────────────────────────────────────────────────


class ExerciseCategory(str, Enum):
    SQUAT = "Squat"
    BENCH_PRESS = "Bench"
    DEADLIFT = "Deadlift"
    PRESS = "Press"
    OTHER = "Other"


NAMED_CATEGORIES: tuple[ExerciseCategory, ...] = (
    ExerciseCategory.SQUAT,
    ExerciseCategory.BENCH_PRESS,
    ExerciseCategory.DEADLIFT,
    ExerciseCategory.PRESS,
)


class Rejection(str, Enum):
    """Why a data row did not become a lift. Expected, never an error."""

    MISSING_DATE = "MissingDate"
    NOT_COMPLETED = "NotCompleted"
    NO_ASSIGNED_REPS = "NoAssignedReps"
    MARKED_MISSED = "MarkedMissed"
    INVALID_SET = "InvalidSet"


@dataclass(frozen=True)
class LiftRecord:
    date: date
    category: ExerciseCategory
    reps: int
    weight: float


@dataclass(frozen=True)
class SessionBest:
    """Best e1RM for one calendar day and category, with the set behind it."""

    day: date
    category: ExerciseCategory
    e1rm: float
    reps: int
    weight: float

    @property
    def provenance(self) -> str:
        return f"{self.reps}@{_format_number(self.weight)}"


# ── Run reporting ────────────────────────────────────────────────


@dataclass
class QCReport:
    """Quality-control report emitted alongside every run.

    Contract invariant: ``dropped_rows == rows_in - rows_out``.
    """

    rows_in: int = 0
    rows_out: int = 0
    dropped_rows: int = 0
    sessions: int = 0
    rejections: dict[str, int] = field(default_factory=dict)
    missing_columns: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        self.dropped_rows = _to_non_negative_int(self.dropped_rows, "dropped_rows")
        self.sessions = _to_non_negative_int(self.sessions, "sessions")
        self.rejections = {
            str(reason): _to_non_negative_int(count, "rejections")
            for reason, count in (self.rejections or {}).items()
        }
        self.missing_columns = _to_string_list(self.missing_columns, "missing_columns")
        self.warnings = _to_string_list(self.warnings, "warnings")
        if self.rows_out > self.rows_in:
            raise ValueError("rows_out must be <= rows_in")
        expected_dropped = self.rows_in - self.rows_out
        if self.dropped_rows != expected_dropped:
            raise ValueError("dropped_rows must equal rows_in - rows_out")

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "dropped_rows": self.dropped_rows,
            "sessions": self.sessions,
            "rejections": dict(self.rejections),
            "missing_columns": list(self.missing_columns),
            "warnings": list(self.warnings),
        }


@dataclass
class RunManifest:
    """Audit-trail manifest for a single pipeline run."""

    tool: str = "strength-tracker"
    version: str = ""
    run_id: str = ""
    input_path: str = ""
    output_dir: str = ""
    created_at_utc: str = ""
    rows_in: int = 0
    rows_out: int = 0
    sha256: str = ""
    status: str = "success"
    error_code: int | None = None
    error_message: str = ""

    def __post_init__(self) -> None:
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        if self.status not in {"success", "failed"}:
            raise ValueError("status must be 'success' or 'failed'")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "run_id": self.run_id,
            "input_path": self.input_path,
            "output_dir": self.output_dir,
            "created_at_utc": self.created_at_utc,
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "sha256": self.sha256,
            "status": self.status,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }
