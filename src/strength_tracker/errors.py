"""Exceptions raised by the e1RM pipeline."""

from __future__ import annotations

from collections.abc import Iterable

from strength_tracker.models import QCReport


class SchemaMismatch(ValueError):
    """A required column is absent from the header row."""

    def __init__(self, missing: Iterable[str]) -> None:
        self.missing: tuple[str, ...] = tuple(missing)
        super().__init__(f"Missing required columns: {', '.join(self.missing)}")


class InvalidLiftInput(ValueError):
    """Non-positive or non-numeric reps/weight reached the estimator."""


class NoDataFound(ValueError):
    """No row in the input produced a usable lift."""

    def __init__(self, message: str, *, qc: QCReport | None = None) -> None:
        self.qc = qc
        super().__init__(message)
