"""strength-tracker: Turn BLOC workout exports into e1RM progress charts."""

__version__ = "0.1.0"

REQUIRED_FIELDS: tuple[str, ...] = (
    "workout_date",
    "completed",
    "exercise_name",
    "assigned_reps",
    "assigned_weight",
    "actual_reps",
    "actual_weight",
)
OPTIONAL_FIELDS: tuple[str, ...] = ("missed",)

OUTPUT_HEADER: tuple[str, ...] = (
    "Date",
    "Squat",
    "Squat Notes",
    "Bench",
    "Bench Notes",
    "Deadlift",
    "Deadlift Notes",
    "Press",
    "Press Notes",
    "Other",
)
