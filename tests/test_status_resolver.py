from __future__ import annotations

import logging

from factories import day
from notebook_tracker.tracker.models import Submission, SubmissionStatus
from notebook_tracker.tracker.status_resolver import resolve_status


def _sub(sub_id, created, status="missing", **kw):
    return Submission(id=sub_id, student_id="S1", cycle_id="C1", status=status, created_at=created, **kw)


def test_no_submission_is_lazy_missing():
    result = resolve_status([])
    assert result.status is SubmissionStatus.MISSING
    assert result.submission_id is None
    assert result.submitted_at is None
    assert result.returned_at is None
    assert result.notification_sent is False
    assert result.anomaly is False


def test_single_submission_fields_pass_through():
    sub = _sub("a", day(0), status="returned", submitted_at=day(1), returned_at=day(2))
    result = resolve_status([sub])
    assert result.status is SubmissionStatus.RETURNED
    assert result.submission_id == "a"
    assert result.submitted_at == day(1)
    assert result.returned_at == day(2)
    assert not result.anomaly


def test_duplicates_resolve_to_most_recently_created(caplog):
    older = _sub("old", day(0), status="submitted", submitted_at=day(1))
    newer = _sub("new", day(2))

    with caplog.at_level(logging.WARNING):
        result = resolve_status([newer, older])

    assert result.submission_id == "new"
    assert result.status is SubmissionStatus.MISSING
    assert result.anomaly is True
    assert "using new" in caplog.text


def test_duplicates_with_same_created_at_pick_last_in_input():
    first = _sub("first", day(0))
    second = _sub("second", day(0), notification_sent=True, notification_sent_at=day(1))
    result = resolve_status([first, second])
    assert result.submission_id == "second"
    assert result.notification_sent is True
    assert result.notification_sent_at == day(1)
