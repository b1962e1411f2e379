"""QC report persistence and display helpers."""

from __future__ import annotations

from pathlib import Path

from strength_tracker.io import write_json
from strength_tracker.models import QCReport

QC_FILENAME = "qc_report.json"


def write_qc_report(out_dir: Path, qc: QCReport) -> Path:
    """Write ``qc_report.json`` into *out_dir* and return the path."""
    return write_json(out_dir / QC_FILENAME, qc.to_dict())


def describe_rejections(qc: QCReport) -> list[str]:
    """One ``"<count> <reason>"`` line per skip reason, largest first."""
    ordered = sorted(qc.rejections.items(), key=lambda item: (-item[1], item[0]))
    return [f"{count} {reason}" for reason, count in ordered if count]
