from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from notebook_tracker.tracker.models import CollectionCycle, Submission, SubmissionStatus


class InvalidTransitionError(ValueError):
    pass


class MutationKind(str, Enum):
    MARK_SUBMITTED = "mark_submitted"
    MARK_RETURNED = "mark_returned"
    MARK_NOTIFIED = "mark_notified"
    RELEASE_NOTIFICATION = "release_notification"


class MutationOutcome(str, Enum):
    APPLIED = "applied"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


# Status a request must expect for each kind; status moves only forward.
_REQUIRED_STATUS = {
    MutationKind.MARK_SUBMITTED: SubmissionStatus.MISSING,
    MutationKind.MARK_RETURNED: SubmissionStatus.SUBMITTED,
    MutationKind.MARK_NOTIFIED: SubmissionStatus.MISSING,
    MutationKind.RELEASE_NOTIFICATION: SubmissionStatus.MISSING,
}


@dataclass(frozen=True)
class MutationRequest:
    kind: MutationKind
    submission_id: str
    expected_status: SubmissionStatus
    at: datetime

    def __post_init__(self) -> None:
        expected = SubmissionStatus.parse(self.expected_status)
        object.__setattr__(self, "expected_status", expected)
        required = _REQUIRED_STATUS[MutationKind(self.kind)]
        if expected is not required:
            raise InvalidTransitionError(
                f"{self.kind.value} requires expected status {required.value}, got {expected.value}"
            )


@dataclass(frozen=True)
class MutationResult:
    outcome: MutationOutcome
    submission: Submission | None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is MutationOutcome.APPLIED


def mark_submitted(submission_id: str, at: datetime) -> MutationRequest:
    return MutationRequest(MutationKind.MARK_SUBMITTED, submission_id, SubmissionStatus.MISSING, at)


def mark_returned(submission_id: str, at: datetime) -> MutationRequest:
    return MutationRequest(MutationKind.MARK_RETURNED, submission_id, SubmissionStatus.SUBMITTED, at)


def mark_notified(submission_id: str, at: datetime) -> MutationRequest:
    return MutationRequest(MutationKind.MARK_NOTIFIED, submission_id, SubmissionStatus.MISSING, at)


def release_notification(submission_id: str, at: datetime) -> MutationRequest:
    return MutationRequest(MutationKind.RELEASE_NOTIFICATION, submission_id, SubmissionStatus.MISSING, at)


def materialize_submission(student_id: str, cycle: CollectionCycle, created_at: datetime) -> Submission:
    """The record behind the lazy 'missing' default, created on first mutation."""
    return Submission(
        id=f"{cycle.id}:{student_id}",
        student_id=student_id,
        cycle_id=cycle.id,
        status=SubmissionStatus.MISSING,
        created_at=created_at,
    )


def _conflict(current: Submission, message: str) -> MutationResult:
    return MutationResult(MutationOutcome.CONFLICT, current, message)


def apply_mutation(current: Submission | None, request: MutationRequest) -> MutationResult:
    """Compare-and-set: apply ``request`` only if ``current`` still matches what it expects.

    A mismatch returns the stored record untouched with a CONFLICT outcome so the
    caller can refetch and retry, or give up.
    """

    if current is None:
        return MutationResult(MutationOutcome.NOT_FOUND, None, f"Submission {request.submission_id} not found")
    if current.id != request.submission_id:
        raise ValueError(f"Request for {request.submission_id} applied to submission {current.id}")

    if current.status is not request.expected_status:
        return _conflict(
            current,
            f"Expected status {request.expected_status.value}, found {current.status.value}",
        )

    kind = request.kind
    if kind is MutationKind.MARK_SUBMITTED:
        updated = replace(current, status=SubmissionStatus.SUBMITTED, submitted_at=request.at)
    elif kind is MutationKind.MARK_RETURNED:
        if current.submitted_at is not None and request.at < current.submitted_at:
            raise InvalidTransitionError(f"Submission {current.id}: return time precedes submission time")
        updated = replace(current, status=SubmissionStatus.RETURNED, returned_at=request.at)
    elif kind is MutationKind.MARK_NOTIFIED:
        if current.notification_sent:
            return _conflict(current, "Notification already sent")
        updated = replace(current, notification_sent=True, notification_sent_at=request.at)
    elif kind is MutationKind.RELEASE_NOTIFICATION:
        if not current.notification_sent:
            return _conflict(current, "No notification claim to release")
        updated = replace(current, notification_sent=False, notification_sent_at=None)
    else:
        raise ValueError(f"Unhandled mutation kind: {kind!r}")

    return MutationResult(MutationOutcome.APPLIED, updated)
