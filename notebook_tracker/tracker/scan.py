from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import pandas as pd

from notebook_tracker.database.submission_store import SubmissionStore
from notebook_tracker.tracker.history import aggregate_history
from notebook_tracker.tracker.models import HistoryEntry, SubmissionStatus
from notebook_tracker.tracker.risk_scorer import (
    DEFAULT_THRESHOLD,
    MODE_ALL,
    StudentHistory,
    filter_predictions,
    predict_defaulters,
)


REQUIRED_COLUMNS = ("student_id", "student_name", "scholar_number", "subject", "cycle_id", "cycle_start", "status")


@dataclass
class ScanResult:
    scored: int
    written: int
    outputs_path: Path


def load_histories(history_csv: Path) -> list[StudentHistory]:
    """Read a submission-history export and build one scoring input per student.

    Rows of a student are ordered by cycle start (ties keep file order); the
    last row's status is taken as the current status.
    """

    df = pd.read_csv(history_csv, dtype=str)
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"History CSV is missing columns: {', '.join(missing)}")

    df["cycle_start"] = pd.to_datetime(df["cycle_start"])
    if "late_days" not in df.columns:
        df["late_days"] = 0
    df["late_days"] = pd.to_numeric(df["late_days"], errors="coerce").fillna(0).astype(int)

    out: list[StudentHistory] = []
    for student_id, rows in df.groupby("student_id", sort=False):
        rows = rows.sort_values("cycle_start", kind="stable")
        entries = [
            HistoryEntry(
                submission_id=f"{row['cycle_id']}:{student_id}",
                cycle_id=str(row["cycle_id"]),
                subject_name=str(row["subject"]),
                cycle_start=row["cycle_start"].to_pydatetime(),
                status=SubmissionStatus.parse(row["status"]),
                late_days=int(row["late_days"]),
            )
            for _, row in rows.iterrows()
        ]
        first = rows.iloc[0]
        out.append(
            StudentHistory(
                student_id=str(student_id),
                student_name=str(first["student_name"]),
                scholar_number=str(first["scholar_number"]),
                current_status=entries[-1].status,
                summary=aggregate_history(entries),
            )
        )
    return out


def run_defaulter_scan(
    *,
    history_csv: Path,
    outputs_path: Path,
    threshold: int = DEFAULT_THRESHOLD,
    mode: str = MODE_ALL,
    store: SubmissionStore | None = None,
    as_of: datetime | None = None,
) -> ScanResult:
    as_of = as_of or datetime.utcnow()

    histories = load_histories(history_csv)
    predictions = predict_defaulters(histories, threshold)
    selected = filter_predictions(predictions, mode)

    if store is not None:
        for p in selected:
            store.add_risk_snapshot(p, as_of)

    payload = {
        "as_of": as_of.isoformat(),
        "threshold": threshold,
        "mode": mode,
        "students_scanned": len(histories),
        "predictions": [p.as_dict() for p in selected],
    }
    outputs_path.parent.mkdir(parents=True, exist_ok=True)
    outputs_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")

    logging.info(
        "Scanned %s students; %s candidates, %s written to %s",
        len(histories),
        len(predictions),
        len(selected),
        outputs_path,
    )
    return ScanResult(scored=len(predictions), written=len(selected), outputs_path=outputs_path)
