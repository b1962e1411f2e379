"""Targeted tests for column resolution, e1RM estimation and aggregation."""

from __future__ import annotations

import itertools
import math
from datetime import date, datetime

import pandas as pd
import pytest

from strength_tracker import OUTPUT_HEADER
from strength_tracker.errors import InvalidLiftInput, NoDataFound, SchemaMismatch
from strength_tracker.models import (
    ColumnVocabulary,
    ExerciseCategory,
    LiftRecord,
    Rejection,
    SessionBest,
)
from strength_tracker.pipeline import (
    SessionAggregator,
    aggregate_sessions,
    build_output_table,
    classify_exercise,
    compute_all_time_bests,
    estimate_e1rm,
    interpret_row,
    resolve_columns,
    round_half_up,
    summarize_sheets,
    summarize_table,
)

HEADER = [
    "workout_date",
    "workout_completed",
    "exercise_name",
    "assigned_reps",
    "assigned_weight",
    "actual_reps",
    "actual_weight",
    "assigned_exercise_missed",
]
COLUMNS = resolve_columns(HEADER)


def _row(
    day: object = datetime(2024, 1, 1),
    completed: object = True,
    exercise: object = "Squat",
    reps: object = 5,
    weight: object = 100,
    actual_reps: object = None,
    actual_weight: object = None,
    missed: object = False,
) -> list[object]:
    return [day, completed, exercise, reps, weight, actual_reps, actual_weight, missed]


def _lift(
    day: date, category: ExerciseCategory, reps: int, weight: float
) -> LiftRecord:
    return LiftRecord(date=day, category=category, reps=reps, weight=weight)


# ── Column resolver ──────────────────────────────────────────────


def test_resolve_columns_accepts_any_order_and_index_zero() -> None:
    header = list(reversed(HEADER)) + ["notes"]

    columns = resolve_columns(header)

    assert columns.missed == 0
    assert columns.workout_date == 7
    assert columns.exercise_name == 5


def test_resolve_columns_first_occurrence_wins() -> None:
    header = HEADER + ["assigned_reps"]

    columns = resolve_columns(header)

    assert columns.assigned_reps == 3


def test_resolve_columns_missed_is_optional() -> None:
    header = [name for name in HEADER if name != "assigned_exercise_missed"]

    columns = resolve_columns(header)

    assert columns.missed is None


def test_resolve_columns_reports_every_missing_field() -> None:
    header = [name for name in HEADER if name not in {"assigned_reps", "actual_weight"}]

    with pytest.raises(SchemaMismatch) as excinfo:
        resolve_columns(header)

    assert excinfo.value.missing == ("assigned_reps", "actual_weight")
    assert "assigned_reps" in str(excinfo.value)


def test_resolve_columns_is_case_sensitive() -> None:
    header = ["Workout_Date" if name == "workout_date" else name for name in HEADER]

    with pytest.raises(SchemaMismatch, match="workout_date"):
        resolve_columns(header)


def test_resolve_columns_uses_vocabulary_overrides() -> None:
    vocabulary = ColumnVocabulary().with_overrides({"workout_date": "Date"})
    header = ["Date" if name == "workout_date" else name for name in HEADER]

    columns = resolve_columns(header, vocabulary)

    assert columns.workout_date == 0


# ── Strength estimator ───────────────────────────────────────────


@pytest.mark.parametrize("weight", [1, 60, 102.5, 142.75, 300.0])
def test_single_rep_returns_weight_unchanged(weight: float) -> None:
    assert estimate_e1rm(1, weight) == weight


def test_epley_examples() -> None:
    assert estimate_e1rm(5, 100) == 117
    assert estimate_e1rm(10, 80) == 107
    assert estimate_e1rm(3, 110) == 121


def test_epley_matches_formula_for_multi_rep_sets() -> None:
    for reps in range(2, 13):
        for weight in (20, 47.5, 60, 100, 182.5):
            expected = math.floor(weight * (1 + reps / 30) + 0.5)
            assert estimate_e1rm(reps, weight) == expected


def test_halves_round_away_from_zero() -> None:
    # 7 * 1.5 == 10.5 exactly; banker's rounding would give 10.
    assert estimate_e1rm(15, 7) == 11
    assert round_half_up(2.5) == 3
    assert round_half_up(-2.5) == -3
    assert round_half_up(2.4999) == 2


@pytest.mark.parametrize(
    ("reps", "weight"),
    [(0, 100), (-1, 100), (2.5, 100), (True, 100), ("5", 100), (5, 0), (5, -20), (5, None)],
)
def test_estimator_rejects_invalid_input(reps: object, weight: object) -> None:
    with pytest.raises(InvalidLiftInput):
        estimate_e1rm(reps, weight)  # type: ignore[arg-type]


# ── Row filter & override resolver ───────────────────────────────


def test_interpret_row_builds_lift_record() -> None:
    record = interpret_row(_row(), COLUMNS)

    assert record == LiftRecord(
        date=datetime(2024, 1, 1), category=ExerciseCategory.SQUAT, reps=5, weight=100
    )


@pytest.mark.parametrize(
    ("row", "reason"),
    [
        (_row(day=None), Rejection.MISSING_DATE),
        (_row(day=""), Rejection.MISSING_DATE),
        (_row(completed=False), Rejection.NOT_COMPLETED),
        (_row(completed=None), Rejection.NOT_COMPLETED),
        (_row(completed=0), Rejection.NOT_COMPLETED),
        (_row(reps=None), Rejection.NO_ASSIGNED_REPS),
        (_row(reps="  "), Rejection.NO_ASSIGNED_REPS),
        (_row(missed=True), Rejection.MARKED_MISSED),
        (_row(weight=None), Rejection.INVALID_SET),
        (_row(reps="AMRAP"), Rejection.INVALID_SET),
    ],
)
def test_interpret_row_rejections(row: list[object], reason: Rejection) -> None:
    assert interpret_row(row, COLUMNS) is reason


def test_rejections_short_circuit_in_order() -> None:
    row = _row(day=None, completed=False, reps=None, missed=True)
    assert interpret_row(row, COLUMNS) is Rejection.MISSING_DATE

    row = _row(completed=False, reps=None, missed=True)
    assert interpret_row(row, COLUMNS) is Rejection.NOT_COMPLETED

    row = _row(reps=None, missed=True)
    assert interpret_row(row, COLUMNS) is Rejection.NO_ASSIGNED_REPS


def test_missed_row_never_contributes_even_when_heaviest() -> None:
    rows = [
        HEADER,
        _row(reps=5, weight=100),
        _row(reps=1, weight=250, missed=True),
    ]

    table, qc = summarize_table(rows)

    assert table.loc[0, "Squat"] == 117
    assert qc.rejections == {"MarkedMissed": 1}


def test_actual_values_override_assigned() -> None:
    record = interpret_row(_row(reps=5, weight=100, actual_reps=3, actual_weight=110), COLUMNS)

    assert isinstance(record, LiftRecord)
    assert (record.reps, record.weight) == (3, 110)


def test_partial_actual_values_keep_assigned() -> None:
    record = interpret_row(_row(reps=5, weight=100, actual_reps=3), COLUMNS)

    assert isinstance(record, LiftRecord)
    assert (record.reps, record.weight) == (5, 100)


def test_missing_missed_column_means_never_missed() -> None:
    header = HEADER[:-1]
    columns = resolve_columns(header)

    record = interpret_row(_row()[:-1], columns)

    assert isinstance(record, LiftRecord)


def test_short_rows_read_missing_cells_as_blank() -> None:
    record = interpret_row(_row()[:5], COLUMNS)

    assert isinstance(record, LiftRecord)
    assert (record.reps, record.weight) == (5, 100)


def test_integral_float_reps_are_accepted() -> None:
    record = interpret_row(_row(reps=5.0, weight=62.5), COLUMNS)

    assert isinstance(record, LiftRecord)
    assert record.reps == 5
    assert isinstance(record.reps, int)


@pytest.mark.parametrize(
    ("name", "category"),
    [
        ("Squat", ExerciseCategory.SQUAT),
        ("Bench Press", ExerciseCategory.BENCH_PRESS),
        ("Deadlift", ExerciseCategory.DEADLIFT),
        ("Press", ExerciseCategory.PRESS),
        ("Lat Pulldown", ExerciseCategory.OTHER),
        ("squat", ExerciseCategory.OTHER),
        ("", ExerciseCategory.OTHER),
        (None, ExerciseCategory.OTHER),
    ],
)
def test_classify_exercise(name: object, category: ExerciseCategory) -> None:
    assert classify_exercise(name) is category


# ── Session aggregator ───────────────────────────────────────────


def test_aggregator_keeps_maximum_per_day_and_category() -> None:
    day = date(2024, 1, 1)
    bests = aggregate_sessions(
        [
            _lift(day, ExerciseCategory.SQUAT, 5, 100),
            _lift(day, ExerciseCategory.SQUAT, 3, 110),
            _lift(day, ExerciseCategory.SQUAT, 8, 80),
        ]
    )

    best = bests[(day, ExerciseCategory.SQUAT)]
    assert best.e1rm == 121
    assert best.provenance == "3@110"


def test_aggregator_ties_keep_first_seen_set() -> None:
    day = date(2024, 1, 1)
    aggregator = SessionAggregator()
    # 5@90 -> 105, 3@95 -> 104.5 -> 105
    aggregator.add(_lift(day, ExerciseCategory.PRESS, 5, 90))
    aggregator.add(_lift(day, ExerciseCategory.PRESS, 3, 95))

    best = aggregator.bests[(day, ExerciseCategory.PRESS)]
    assert best.e1rm == 105
    assert (best.reps, best.weight) == (5, 90)


def test_aggregator_ignores_time_of_day() -> None:
    aggregator = SessionAggregator()
    aggregator.add(_lift(datetime(2024, 1, 1, 7, 30), ExerciseCategory.SQUAT, 5, 100))
    aggregator.add(_lift(datetime(2024, 1, 1, 18, 0), ExerciseCategory.SQUAT, 1, 125))

    assert list(aggregator.bests) == [(date(2024, 1, 1), ExerciseCategory.SQUAT)]
    assert aggregator.bests[(date(2024, 1, 1), ExerciseCategory.SQUAT)].e1rm == 125


def test_same_day_different_categories_do_not_overwrite() -> None:
    day = date(2024, 1, 1)
    bests = aggregate_sessions(
        [
            _lift(day, ExerciseCategory.SQUAT, 5, 100),
            _lift(day, ExerciseCategory.BENCH_PRESS, 5, 70),
        ]
    )

    assert len(bests) == 2
    assert bests[(day, ExerciseCategory.SQUAT)].e1rm == 117
    assert bests[(day, ExerciseCategory.BENCH_PRESS)].e1rm == 82


def test_aggregation_is_order_independent() -> None:
    records = [
        _lift(date(2024, 1, 1), ExerciseCategory.SQUAT, 5, 100),
        _lift(date(2024, 1, 1), ExerciseCategory.SQUAT, 3, 110),
        _lift(date(2024, 1, 1), ExerciseCategory.OTHER, 10, 50),
        _lift(date(2024, 1, 2), ExerciseCategory.DEADLIFT, 1, 150),
        _lift(date(2024, 1, 2), ExerciseCategory.DEADLIFT, 5, 120),
    ]
    expected = dict(aggregate_sessions(records))

    for permutation in itertools.permutations(records):
        assert dict(aggregate_sessions(permutation)) == expected


def test_aggregation_is_idempotent() -> None:
    record = _lift(date(2024, 1, 1), ExerciseCategory.SQUAT, 5, 100)
    once = dict(aggregate_sessions([record]))

    twice = dict(aggregate_sessions([record, record]))

    assert twice == once


def test_merge_applies_max_rule() -> None:
    day = date(2024, 1, 1)
    left = SessionAggregator()
    left.add(_lift(day, ExerciseCategory.SQUAT, 5, 100))
    right = SessionAggregator()
    right.add(_lift(day, ExerciseCategory.SQUAT, 3, 110))
    right.add(_lift(day, ExerciseCategory.PRESS, 5, 50))

    left.merge(right)

    assert len(left) == 2
    assert left.bests[(day, ExerciseCategory.SQUAT)].provenance == "3@110"


def test_aggregator_propagates_invalid_lift_input() -> None:
    aggregator = SessionAggregator()

    with pytest.raises(InvalidLiftInput):
        aggregator.add(_lift(date(2024, 1, 1), ExerciseCategory.SQUAT, 5, 0))


# ── Output table builder ─────────────────────────────────────────


def test_build_output_table_layout_and_order() -> None:
    bests = {
        (date(2024, 1, 3), ExerciseCategory.DEADLIFT): SessionBest(
            day=date(2024, 1, 3), category=ExerciseCategory.DEADLIFT, e1rm=150, reps=1, weight=150
        ),
        (date(2024, 1, 1), ExerciseCategory.SQUAT): SessionBest(
            day=date(2024, 1, 1), category=ExerciseCategory.SQUAT, e1rm=117, reps=5, weight=100
        ),
        (date(2024, 1, 1), ExerciseCategory.OTHER): SessionBest(
            day=date(2024, 1, 1), category=ExerciseCategory.OTHER, e1rm=67, reps=10, weight=50
        ),
    }

    table = build_output_table(bests)

    assert list(table.columns) == list(OUTPUT_HEADER)
    assert table["Date"].tolist() == [date(2024, 1, 1), date(2024, 1, 3)]
    assert table.loc[0, "Squat"] == 117
    assert table.loc[0, "Squat Notes"] == "5@100"
    assert table.loc[0, "Other"] == 67
    assert pd.isna(table.loc[0, "Deadlift"])
    assert pd.isna(table.loc[0, "Deadlift Notes"])
    assert table.loc[1, "Deadlift Notes"] == "1@150"
    assert pd.isna(table.loc[1, "Squat"])


def test_provenance_drops_trailing_zero() -> None:
    best = SessionBest(
        day=date(2024, 1, 1), category=ExerciseCategory.PRESS, e1rm=62, reps=5, weight=52.5
    )
    assert best.provenance == "5@52.5"
    assert SessionBest(
        day=date(2024, 1, 1), category=ExerciseCategory.PRESS, e1rm=70, reps=8, weight=60.0
    ).provenance == "8@60"


def test_unknown_exercise_goes_to_other_without_notes() -> None:
    rows = [HEADER, _row(exercise="Lat Pulldown", reps=10, weight=50)]

    table, _qc = summarize_table(rows)

    assert table.loc[0, "Other"] == 67
    assert "Other Notes" not in table.columns
    assert table.drop(columns=["Date", "Other"]).isna().all(axis=None)


def test_empty_bests_give_empty_table_with_header() -> None:
    table = build_output_table({})

    assert table.empty
    assert list(table.columns) == list(OUTPUT_HEADER)


# ── Sheet pipeline ───────────────────────────────────────────────


def test_summarize_table_missing_header_raises_before_rows() -> None:
    header = [name for name in HEADER if name != "assigned_reps"]

    with pytest.raises(SchemaMismatch) as excinfo:
        summarize_table([header, ["not", "a", "row"]])

    assert excinfo.value.missing == ("assigned_reps",)


def test_summarize_table_empty_input_is_schema_mismatch() -> None:
    with pytest.raises(SchemaMismatch):
        summarize_table([])


def test_summarize_table_without_lifts_raises_no_data_found() -> None:
    rows = [HEADER, _row(completed=False), _row(reps=None)]

    with pytest.raises(NoDataFound, match="No data found") as excinfo:
        summarize_table(rows)

    qc = excinfo.value.qc
    assert qc is not None
    assert qc.rows_in == 2
    assert qc.rows_out == 0
    assert qc.rejections == {"NoAssignedReps": 1, "NotCompleted": 1}


def test_summarize_table_counts_rows_and_sessions() -> None:
    rows = [
        HEADER,
        _row(day=datetime(2024, 1, 1), reps=5, weight=100),
        _row(day=datetime(2024, 1, 1), exercise="Bench Press", reps=5, weight=70),
        _row(day=datetime(2024, 1, 2), reps=5, weight=105),
        _row(day=datetime(2024, 1, 2), weight=None),
        _row(day=None),
    ]

    table, qc = summarize_table(rows)

    assert len(table) == 2
    assert qc.rows_in == 5
    assert qc.rows_out == 3
    assert qc.dropped_rows == 2
    assert qc.sessions == 2
    assert qc.rejections == {"InvalidSet": 1, "MissingDate": 1}
    assert any("non-positive reps/weight" in w for w in qc.warnings)


def test_summarize_sheets_skips_mismatched_sheet() -> None:
    good = [HEADER, _row()]
    bad = [["date", "lift"], [datetime(2024, 1, 1), "Squat"]]

    table, qc = summarize_sheets({"Log": good, "Scratch": bad})

    assert len(table) == 1
    assert "workout_date" in qc.missing_columns
    assert any("Scratch" in w for w in qc.warnings)
    assert qc.rows_in == 1


def test_summarize_sheets_folds_all_matching_sheets() -> None:
    first = [HEADER, _row(day=datetime(2024, 1, 1), reps=5, weight=100)]
    second = [HEADER, _row(day=datetime(2024, 1, 1), reps=1, weight=130)]

    table, qc = summarize_sheets({"A": first, "B": second})

    assert len(table) == 1
    assert table.loc[0, "Squat"] == 130
    assert table.loc[0, "Squat Notes"] == "1@130"
    assert qc.rows_out == 2


def test_summarize_sheets_all_mismatched_raises() -> None:
    with pytest.raises(SchemaMismatch):
        summarize_sheets({"A": [["foo"]], "B": [["bar"]]})


def test_compute_all_time_bests_picks_earliest_on_ties() -> None:
    rows = [
        HEADER,
        _row(day=datetime(2024, 1, 1), reps=5, weight=100),
        _row(day=datetime(2024, 1, 5), reps=5, weight=100),
        _row(day=datetime(2024, 1, 3), exercise="Row", reps=10, weight=60),
    ]
    table, _qc = summarize_table(rows)

    bests = compute_all_time_bests(table)

    assert set(bests) == {"Squat", "Other"}
    assert bests["Squat"] == {"date": date(2024, 1, 1), "e1rm": 117.0, "notes": "5@100"}
    assert "notes" not in bests["Other"]
