from __future__ import annotations

from datetime import datetime, timedelta

from notebook_tracker.tracker.models import HistoryEntry, Student, SubmissionStatus


BASE = datetime(2024, 4, 1, 8, 0, 0)


def day(n: int, hours: int = 0) -> datetime:
    return BASE + timedelta(days=n, hours=hours)


def make_history(statuses, subjects=None, late=None) -> list[HistoryEntry]:
    return [
        HistoryEntry(
            submission_id=f"sub-{i}",
            cycle_id=f"cyc-{i}",
            subject_name=subjects[i] if subjects else "Math",
            cycle_start=day(7 * i),
            status=SubmissionStatus.parse(status),
            late_days=late[i] if late else 0,
        )
        for i, status in enumerate(statuses)
    ]


def make_student(student_id: str = "S1", phone: str | None = "9876543210", class_id: str = "7B") -> Student:
    return Student(
        id=student_id,
        full_name=f"Student {student_id}",
        scholar_number=f"10{student_id[-1]}00",
        roll_number=student_id[-1],
        class_id=class_id,
        parent_name=f"Parent of {student_id}",
        parent_phone=phone,
    )
