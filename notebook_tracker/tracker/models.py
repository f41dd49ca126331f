from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum


class SubmissionStatus(str, Enum):
    MISSING = "missing"
    SUBMITTED = "submitted"
    RETURNED = "returned"

    @classmethod
    def parse(cls, value: object) -> "SubmissionStatus":
        if isinstance(value, cls):
            return value
        raw = str(value or "").strip().lower()
        for member in cls:
            if member.value == raw:
                return member
        raise ValueError(f"Unknown submission status: {value!r}")

    @property
    def rank(self) -> int:
        """Position in the forward-only lifecycle missing -> submitted -> returned."""
        if self is SubmissionStatus.MISSING:
            return 0
        if self is SubmissionStatus.SUBMITTED:
            return 1
        if self is SubmissionStatus.RETURNED:
            return 2
        raise ValueError(f"Unhandled submission status: {self!r}")


@dataclass(frozen=True)
class Student:
    id: str
    full_name: str
    scholar_number: str
    roll_number: str
    class_id: str
    parent_name: str
    parent_phone: str | None = None
    parent_email: str | None = None
    is_active: bool = True

    @property
    def has_contact(self) -> bool:
        return bool((self.parent_phone or "").strip())


@dataclass(frozen=True)
class ClassChange:
    student_id: str
    old_class_id: str
    new_class_id: str
    changed_at: datetime
    changed_by: str
    reason: str | None = None


def move_student(
    student: Student,
    new_class_id: str,
    log: tuple[ClassChange, ...],
    *,
    changed_at: datetime,
    changed_by: str,
    reason: str | None = None,
) -> tuple[Student, tuple[ClassChange, ...]]:
    """Move a student to another class and append the change to its class-history log.

    The log is append-only: a new tuple is returned and the input is left as is.
    Submissions already created keep pointing at their original cycles.
    """

    if new_class_id == student.class_id:
        raise ValueError(f"Student {student.id} is already in class {new_class_id}")

    entry = ClassChange(
        student_id=student.id,
        old_class_id=student.class_id,
        new_class_id=new_class_id,
        changed_at=changed_at,
        changed_by=changed_by,
        reason=reason,
    )
    return replace(student, class_id=new_class_id), (*log, entry)


@dataclass(frozen=True)
class Subject:
    id: str
    name: str


@dataclass(frozen=True)
class SchoolClass:
    id: str
    name: str


@dataclass(frozen=True)
class CollectionCycle:
    id: str
    class_id: str
    subject_id: str
    start_at: datetime
    due_at: datetime | None = None
    name: str | None = None
    active: bool = True

    def __post_init__(self) -> None:
        if self.due_at is not None and self.due_at < self.start_at:
            raise ValueError(f"Cycle {self.id}: due_at precedes start_at")


@dataclass(frozen=True)
class Submission:
    id: str
    student_id: str
    cycle_id: str
    status: SubmissionStatus
    created_at: datetime
    submitted_at: datetime | None = None
    returned_at: datetime | None = None
    notification_sent: bool = False
    notification_sent_at: datetime | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        status = SubmissionStatus.parse(self.status)
        object.__setattr__(self, "status", status)

        handed_in = status in (SubmissionStatus.SUBMITTED, SubmissionStatus.RETURNED)
        if handed_in != (self.submitted_at is not None):
            raise ValueError(f"Submission {self.id}: submitted_at must be set iff status is submitted or returned")
        if (status is SubmissionStatus.RETURNED) != (self.returned_at is not None):
            raise ValueError(f"Submission {self.id}: returned_at must be set iff status is returned")
        if self.returned_at is not None and self.submitted_at is not None and self.returned_at < self.submitted_at:
            raise ValueError(f"Submission {self.id}: returned_at precedes submitted_at")
        if self.notification_sent != (self.notification_sent_at is not None):
            raise ValueError(f"Submission {self.id}: notification_sent_at must be set iff notification_sent")


@dataclass(frozen=True)
class HistoryEntry:
    """One row of a student's submission history, ordered by cycle start."""

    submission_id: str
    cycle_id: str
    subject_name: str
    cycle_start: datetime
    status: SubmissionStatus
    late_days: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", SubmissionStatus.parse(self.status))
        if self.late_days < 0:
            raise ValueError(f"History entry {self.submission_id}: late_days must be >= 0")
