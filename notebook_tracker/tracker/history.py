from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from notebook_tracker.tracker.models import (
    CollectionCycle,
    HistoryEntry,
    Subject,
    Submission,
    SubmissionStatus,
)


PATTERN_INSUFFICIENT = "insufficient data"
PATTERN_CONSECUTIVE = "multiple consecutive missing submissions"
PATTERN_LATE = "frequently submits late"
PATTERN_LOW_RATE = "low submission rate overall"
PATTERN_EXCELLENT = "excellent submission record"
PATTERN_OCCASIONAL = "occasional missing submissions"

RECENT_WINDOW = 3


@dataclass
class SubjectTally:
    total: int = 0
    missing: int = 0
    submitted: int = 0
    returned: int = 0

    @property
    def missing_pct(self) -> float:
        return self.missing / self.total if self.total else 0.0


@dataclass(frozen=True)
class ProblemSubject:
    name: str
    missing: int
    total: int
    percentage: int


@dataclass(frozen=True)
class HistorySummary:
    total: int = 0
    returned_count: int = 0
    submitted_count: int = 0
    missing_count: int = 0
    submission_rate: int = 0
    max_consecutive_missing: int = 0
    recent_missing_count: int = 0
    late_submission_count: int = 0
    per_subject: dict[str, SubjectTally] = field(default_factory=dict)
    most_problematic_subject: ProblemSubject | None = None
    pattern_label: str = PATTERN_INSUFFICIENT


def percent(part: int, whole: int) -> int:
    """Integer percentage rounded half-up; 0 for an empty whole."""
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


def late_days(submission: Submission, cycle: CollectionCycle) -> int:
    if submission.submitted_at is None or cycle.due_at is None:
        return 0
    overdue = submission.submitted_at - cycle.due_at
    if overdue.total_seconds() <= 0:
        return 0
    return math.ceil(overdue.total_seconds() / 86400)


def build_history(
    submissions: Iterable[Submission],
    cycles: Mapping[str, CollectionCycle],
    subjects: Mapping[str, Subject],
) -> list[HistoryEntry]:
    """Join a student's submissions with the cycle catalog, oldest cycle first."""

    entries: list[HistoryEntry] = []
    for sub in submissions:
        cycle = cycles[sub.cycle_id]
        subject = subjects.get(cycle.subject_id)
        entries.append(
            HistoryEntry(
                submission_id=sub.id,
                cycle_id=cycle.id,
                subject_name=subject.name if subject else cycle.subject_id,
                cycle_start=cycle.start_at,
                status=sub.status,
                late_days=late_days(sub, cycle),
            )
        )
    # sorted() is stable, so equal starts keep their input order
    return sorted(entries, key=lambda e: e.cycle_start)


def _most_problematic(per_subject: dict[str, SubjectTally]) -> ProblemSubject | None:
    best_name: str | None = None
    best: SubjectTally | None = None
    for name, tally in per_subject.items():
        if tally.missing == 0:
            continue
        if best is None:
            best_name, best = name, tally
            continue
        # cross-multiplied to compare missing/total exactly
        lhs = tally.missing * best.total
        rhs = best.missing * tally.total
        if lhs > rhs or (lhs == rhs and tally.missing > best.missing):
            best_name, best = name, tally

    if best is None or best_name is None:
        return None
    return ProblemSubject(
        name=best_name,
        missing=best.missing,
        total=best.total,
        percentage=percent(best.missing, best.total),
    )


def classify_pattern(
    total: int,
    max_consecutive_missing: int,
    late_submission_count: int,
    submission_rate: int,
) -> str:
    if total < 3:
        return PATTERN_INSUFFICIENT
    if max_consecutive_missing >= 3:
        return PATTERN_CONSECUTIVE
    if late_submission_count * 3 > total:
        return PATTERN_LATE
    if submission_rate < 50:
        return PATTERN_LOW_RATE
    if submission_rate > 90:
        return PATTERN_EXCELLENT
    return PATTERN_OCCASIONAL


def aggregate_history(history: Sequence[HistoryEntry]) -> HistorySummary:
    """Summarize an ordered (oldest first) submission history.

    Counts, rate, longest missing streak, lateness, per-subject tallies and a
    pattern label. Pure and deterministic: only the input order matters.
    """

    returned = submitted = missing = late = 0
    run = longest = 0
    per_subject: dict[str, SubjectTally] = {}

    for entry in history:
        tally = per_subject.setdefault(entry.subject_name, SubjectTally())
        tally.total += 1

        if entry.status is SubmissionStatus.MISSING:
            missing += 1
            tally.missing += 1
            run += 1
            longest = max(longest, run)
        elif entry.status is SubmissionStatus.SUBMITTED:
            submitted += 1
            tally.submitted += 1
            run = 0
        elif entry.status is SubmissionStatus.RETURNED:
            returned += 1
            tally.returned += 1
            run = 0
        else:
            raise ValueError(f"Unhandled submission status: {entry.status!r}")

        if entry.late_days > 0:
            late += 1

    total = len(history)
    rate = percent(submitted + returned, total)
    recent = sum(1 for e in history[-RECENT_WINDOW:] if e.status is SubmissionStatus.MISSING)

    return HistorySummary(
        total=total,
        returned_count=returned,
        submitted_count=submitted,
        missing_count=missing,
        submission_rate=rate,
        max_consecutive_missing=longest,
        recent_missing_count=recent,
        late_submission_count=late,
        per_subject=per_subject,
        most_problematic_subject=_most_problematic(per_subject),
        pattern_label=classify_pattern(total, longest, late, rate),
    )
