from __future__ import annotations

import pytest

from factories import day
from notebook_tracker.tracker.models import Submission
from notebook_tracker.tracker.notification_gate import (
    DEFAULT_DEFAULTER_TEMPLATE,
    DEFAULT_MISSING_TEMPLATE,
    DEFAULT_REMINDER_TEMPLATE,
    NotificationFields,
    can_notify,
    render_notification,
    template_for,
)


def _sub(status="missing", sent=False):
    kw = {}
    if status in ("submitted", "returned"):
        kw["submitted_at"] = day(1)
    if status == "returned":
        kw["returned_at"] = day(2)
    if sent:
        kw["notification_sent_at"] = day(1)
    return Submission(
        id="s1", student_id="S1", cycle_id="C1", status=status, created_at=day(0), notification_sent=sent, **kw
    )


def test_missing_and_unsent_is_eligible():
    assert can_notify(_sub())
    assert can_notify(None)


def test_already_sent_is_not_eligible():
    assert not can_notify(_sub(sent=True))


def test_handed_in_is_not_eligible():
    assert not can_notify(_sub("submitted"))
    assert not can_notify(_sub("returned"))


def test_render_partial_fields():
    fields = NotificationFields(parent_name="Mrs. Rao", subject="Math", student_name="", next_date="")
    assert render_notification("[Parent Name] - [Subject]", fields) == "Mrs. Rao - Math"


def test_render_default_template():
    fields = NotificationFields(parent_name="Mr. Iyer", student_name="Kabir", subject="Science", next_date="Monday")
    assert render_notification(DEFAULT_MISSING_TEMPLATE, fields) == (
        "Dear Mr. Iyer, Kabir did not submit their Science notebook today. "
        "Please ensure submission by Monday. Thank you."
    )


def test_unresolved_tokens_stay_verbatim():
    fields = NotificationFields(student_name="Kabir")
    assert render_notification("[Parent Name]: [Student Name] by [next date]", fields) == (
        "[Parent Name]: Kabir by [next date]"
    )


def test_only_first_occurrence_is_replaced():
    fields = NotificationFields(subject="Math")
    assert render_notification("[Subject] and [Subject]", fields) == "Math and [Subject]"


def test_tokens_are_case_sensitive():
    fields = NotificationFields(next_date="Friday")
    assert render_notification("[Next Date] / [next date]", fields) == "[Next Date] / Friday"


def test_values_are_not_rescanned():
    fields = NotificationFields(parent_name="[Subject]", subject="Math")
    assert render_notification("[Parent Name] [Subject]", fields) == "[Subject] Math"


def test_template_for_names():
    assert template_for("missing") == DEFAULT_MISSING_TEMPLATE
    assert template_for(" Reminder ") == DEFAULT_REMINDER_TEMPLATE
    assert template_for("defaulter") == DEFAULT_DEFAULTER_TEMPLATE
    with pytest.raises(ValueError, match="weekly"):
        template_for("weekly")
