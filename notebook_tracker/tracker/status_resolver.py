from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from notebook_tracker.tracker.models import Submission, SubmissionStatus


@dataclass(frozen=True)
class StatusResult:
    status: SubmissionStatus
    submission_id: str | None = None
    submitted_at: datetime | None = None
    returned_at: datetime | None = None
    notification_sent: bool = False
    notification_sent_at: datetime | None = None
    anomaly: bool = False


def resolve_status(submissions: Sequence[Submission]) -> StatusResult:
    """Current status of one student in the active cycle of one subject.

    No submission means the lazy default: missing, no timestamps. Several
    submissions for the same (student, cycle) is a data anomaly; the most
    recently created one wins (later in the input on equal created_at).
    """

    if not submissions:
        return StatusResult(status=SubmissionStatus.MISSING)

    winner = submissions[0]
    for sub in submissions[1:]:
        if sub.created_at >= winner.created_at:
            winner = sub

    anomaly = len(submissions) > 1
    if anomaly:
        logging.warning(
            "Found %s submissions for student=%s cycle=%s; using %s",
            len(submissions),
            winner.student_id,
            winner.cycle_id,
            winner.id,
        )

    return StatusResult(
        status=winner.status,
        submission_id=winner.id,
        submitted_at=winner.submitted_at,
        returned_at=winner.returned_at,
        notification_sent=winner.notification_sent,
        notification_sent_at=winner.notification_sent_at,
        anomaly=anomaly,
    )
