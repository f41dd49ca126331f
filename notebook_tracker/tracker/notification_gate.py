from __future__ import annotations

import re
from dataclasses import dataclass

from notebook_tracker.tracker.models import Submission, SubmissionStatus


TOKEN_PARENT_NAME = "[Parent Name]"
TOKEN_STUDENT_NAME = "[Student Name]"
TOKEN_SUBJECT = "[Subject]"
TOKEN_NEXT_DATE = "[next date]"

_TOKEN_RE = re.compile(
    "|".join(re.escape(t) for t in (TOKEN_PARENT_NAME, TOKEN_STUDENT_NAME, TOKEN_SUBJECT, TOKEN_NEXT_DATE))
)

DEFAULT_MISSING_TEMPLATE = (
    "Dear [Parent Name], [Student Name] did not submit their [Subject] notebook today. "
    "Please ensure submission by [next date]. Thank you."
)

DEFAULT_REMINDER_TEMPLATE = (
    "Dear [Parent Name], this is a reminder that [Student Name]'s [Subject] notebook "
    "is due on [next date]. Please ensure it is submitted on time."
)

DEFAULT_DEFAULTER_TEMPLATE = (
    "Dear [Parent Name], we are concerned that [Student Name] has repeatedly missed "
    "[Subject] notebook submissions. Please make sure the notebook is submitted by [next date]."
)

TEMPLATES = {
    "missing": DEFAULT_MISSING_TEMPLATE,
    "reminder": DEFAULT_REMINDER_TEMPLATE,
    "defaulter": DEFAULT_DEFAULTER_TEMPLATE,
}


def template_for(name: str) -> str:
    try:
        return TEMPLATES[name.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown notification template {name!r}; expected one of {', '.join(TEMPLATES)}") from None


@dataclass(frozen=True)
class NotificationFields:
    parent_name: str | None = None
    student_name: str | None = None
    subject: str | None = None
    next_date: str | None = None


def can_notify(submission: Submission | None) -> bool:
    """True when the submission is missing and nobody has been notified about it yet.

    ``None`` stands for the lazy default (no record yet), which is missing and unnotified.
    """

    if submission is None:
        return True
    if submission.status is SubmissionStatus.MISSING:
        return not submission.notification_sent
    if submission.status in (SubmissionStatus.SUBMITTED, SubmissionStatus.RETURNED):
        return False
    raise ValueError(f"Unhandled submission status: {submission.status!r}")


def render_notification(template: str, fields: NotificationFields) -> str:
    """Fill the bracket placeholders of an operator template.

    Only the first occurrence of each token is replaced, in a single pass, so
    values are never re-scanned. Tokens without a value stay in the text so a
    preview can render before every field is known.
    """

    values = {
        TOKEN_PARENT_NAME: fields.parent_name,
        TOKEN_STUDENT_NAME: fields.student_name,
        TOKEN_SUBJECT: fields.subject,
        TOKEN_NEXT_DATE: fields.next_date,
    }
    used: set[str] = set()

    def _sub(match: re.Match[str]) -> str:
        token = match.group(0)
        value = values.get(token)
        if value is None or token in used:
            return token
        used.add(token)
        return value

    return _TOKEN_RE.sub(_sub, template)
