from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Mapping, Protocol, Sequence

from notebook_tracker.tracker.models import CollectionCycle, Student, Submission, SubmissionStatus
from notebook_tracker.tracker.notification_gate import NotificationFields, can_notify, render_notification
from notebook_tracker.tracker.status_resolver import resolve_status
from notebook_tracker.tracker.transitions import (
    MutationOutcome,
    MutationRequest,
    MutationResult,
    mark_notified,
    materialize_submission,
    release_notification,
)


class SubmissionWriter(Protocol):
    def add_submissions(self, submissions: Iterable[Submission]) -> int: ...

    def apply(self, request: MutationRequest) -> MutationResult: ...


class SmsSender(Protocol):
    def send_sms(self, to: str, body: str, timeout_s: int = 30) -> str: ...


class SmsError(RuntimeError):
    """Raised by an SMS sender when a message could not be handed over.

    ``delivery_unknown`` is set when the request may have reached the provider
    (e.g. a read timeout); the message must then not be sent again.
    """

    def __init__(self, message: str, *, delivery_unknown: bool = False) -> None:
        super().__init__(message)
        self.delivery_unknown = delivery_unknown


class NotificationOutcome(str, Enum):
    SENT = "sent"
    ALREADY_SENT = "already_sent"
    NOT_ELIGIBLE = "not_eligible"
    MISSING_CONTACT = "missing_contact"
    FAILED = "failed"


@dataclass(frozen=True)
class Recipient:
    student: Student
    cycle: CollectionCycle
    subject_name: str
    next_date: str | None = None
    submission: Submission | None = None

    def fields(self) -> NotificationFields:
        return NotificationFields(
            parent_name=self.student.parent_name,
            student_name=self.student.full_name,
            subject=self.subject_name,
            next_date=self.next_date,
        )


@dataclass(frozen=True)
class NotificationResult:
    student_id: str
    outcome: NotificationOutcome
    submission_id: str | None = None
    message_id: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is NotificationOutcome.SENT


@dataclass
class BatchResult:
    results: list[NotificationResult] = field(default_factory=list)

    @property
    def sent_count(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failures(self) -> list[NotificationResult]:
        return [
            r
            for r in self.results
            if r.outcome in (NotificationOutcome.FAILED, NotificationOutcome.MISSING_CONTACT)
        ]

    def by_student(self) -> dict[str, NotificationResult]:
        return {r.student_id: r for r in self.results}


@dataclass
class NotificationDispatcher:
    store: SubmissionWriter
    sms: SmsSender

    def notify(self, recipient: Recipient, template: str, at: datetime) -> NotificationResult:
        """Send at most one missing-notebook SMS for the recipient's submission.

        The submission is claimed (notification flag set by compare-and-set)
        before the SMS goes out. A definite transport failure releases the
        claim; when delivery is unknown the claim stays so no second SMS goes out.
        """

        student = recipient.student
        sub = recipient.submission

        if sub is not None and sub.notification_sent:
            return NotificationResult(student.id, NotificationOutcome.ALREADY_SENT, sub.id)
        if not can_notify(sub):
            return NotificationResult(student.id, NotificationOutcome.NOT_ELIGIBLE, sub.id if sub else None)
        if not student.has_contact:
            logging.warning("No contact number for student %s; skipping notification", student.id)
            return NotificationResult(
                student.id,
                NotificationOutcome.MISSING_CONTACT,
                sub.id if sub else None,
                error="Guardian phone number missing",
            )

        if sub is None:
            sub = materialize_submission(student.id, recipient.cycle, at)
            self.store.add_submissions([sub])

        claim = self.store.apply(mark_notified(sub.id, at))
        if claim.outcome is MutationOutcome.CONFLICT:
            if claim.submission is not None and claim.submission.notification_sent:
                return NotificationResult(student.id, NotificationOutcome.ALREADY_SENT, sub.id)
            return NotificationResult(student.id, NotificationOutcome.NOT_ELIGIBLE, sub.id, error=claim.message)
        if claim.outcome is MutationOutcome.NOT_FOUND:
            return NotificationResult(student.id, NotificationOutcome.FAILED, sub.id, error=claim.message)

        body = render_notification(template, recipient.fields())
        try:
            message_id = self.sms.send_sms(student.parent_phone or "", body)
        except SmsError as e:
            if e.delivery_unknown:
                logging.error(
                    "SMS to guardian of %s may have been delivered; keeping claim on %s: %s", student.id, sub.id, e
                )
                return NotificationResult(
                    student.id, NotificationOutcome.FAILED, sub.id, error=f"Delivery unknown: {e}"
                )
            logging.error("SMS to guardian of %s failed: %s", student.id, e)
            self.store.apply(release_notification(sub.id, at))
            return NotificationResult(student.id, NotificationOutcome.FAILED, sub.id, error=str(e))
        except Exception:
            self.store.apply(release_notification(sub.id, at))
            raise

        logging.info("Notified guardian of %s (submission=%s)", student.id, sub.id)
        return NotificationResult(student.id, NotificationOutcome.SENT, sub.id, message_id=message_id)

    def notify_batch(self, recipients: Iterable[Recipient], template: str, at: datetime) -> BatchResult:
        batch = BatchResult()
        for recipient in recipients:
            try:
                result = self.notify(recipient, template, at)
            except Exception as e:
                logging.exception("Notification for student %s failed", recipient.student.id)
                result = NotificationResult(recipient.student.id, NotificationOutcome.FAILED, error=str(e))
            batch.results.append(result)

        logging.info("Notification batch: sent=%s total=%s", batch.sent_count, len(batch.results))
        return batch


def build_recipients(
    cycle: CollectionCycle,
    subject_name: str,
    students: Iterable[Student],
    submissions: Mapping[str, Sequence[Submission]],
    next_date: str | None = None,
) -> list[Recipient]:
    """Recipients for the active members of a cycle's class whose notebook is missing.

    ``submissions`` maps student id to that student's records for the cycle;
    a student with no record gets the lazy missing default.
    """

    out: list[Recipient] = []
    for student in students:
        if not student.is_active or student.class_id != cycle.class_id:
            continue
        records = list(submissions.get(student.id, ()))
        status = resolve_status(records)
        if status.status is not SubmissionStatus.MISSING:
            continue
        current = next((s for s in records if s.id == status.submission_id), None)
        out.append(Recipient(student, cycle, subject_name, next_date, current))
    return out
