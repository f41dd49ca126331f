from __future__ import annotations

import json
from dataclasses import dataclass, field

from factories import day, make_student
from notebook_tracker.tracker.cycles import complete_cycle, start_cycle
from notebook_tracker.tracker.dispatcher import NotificationOutcome
from notebook_tracker.tracker.models import CollectionCycle, Subject
from notebook_tracker.tracker.notification_gate import DEFAULT_MISSING_TEMPLATE
from notebook_tracker.tracker.notify import NEXT_DATE_FALLBACK, next_date_for, run_missing_notifications
from notebook_tracker.tracker.transitions import mark_submitted


@dataclass
class RecordingSms:
    sent: list[tuple[str, str]] = field(default_factory=list)

    def send_sms(self, to: str, body: str, timeout_s: int = 30) -> str:
        self.sent.append((to, body))
        return f"SM{len(self.sent)}"


def _seed(store):
    store.add_subject(Subject(id="sci", name="Science"))
    students = [make_student("S1"), make_student("S2"), make_student("S3", phone=None)]
    for s in students:
        store.upsert_student(s)

    old = CollectionCycle(id="C0", class_id="7B", subject_id="sci", start_at=day(0), due_at=day(2))
    store.add_cycle(old)
    store.add_submissions(start_cycle(old, [], students, day(0)))
    old = complete_cycle(old)
    store.add_cycle(old)

    current = CollectionCycle(id="C1", class_id="7B", subject_id="sci", start_at=day(7), due_at=day(9))
    store.add_cycle(current)
    store.add_submissions(start_cycle(current, [old], students, day(7)))
    store.apply(mark_submitted("C1:S2", day(8)))
    return current


def test_notifies_missing_students_of_active_cycles(store, tmp_path):
    _seed(store)
    sms = RecordingSms()
    out = tmp_path / "outputs" / "notifications.json"

    result = run_missing_notifications(
        store=store, sms=sms, template=DEFAULT_MISSING_TEMPLATE, outputs_path=out, at=day(8)
    )

    assert result.cycles == 1
    outcomes = {sid: r.outcome for sid, r in result.batch.by_student().items()}
    assert outcomes == {"S1": NotificationOutcome.SENT, "S3": NotificationOutcome.MISSING_CONTACT}
    assert sms.sent == [
        (
            "9876543210",
            "Dear Parent of S1, Student S1 did not submit their Science notebook today. "
            "Please ensure submission by 10 Apr 2024. Thank you.",
        )
    ]
    # closed cycle is left alone
    assert not store.get_submission("C0:S1").notification_sent

    payload = json.loads(out.read_text(encoding="utf-8"))
    assert payload["sent"] == 1
    assert [r["outcome"] for r in payload["results"]] == ["sent", "missing_contact"]


def test_rerun_sends_nothing_new(store):
    _seed(store)
    sms = RecordingSms()

    run_missing_notifications(store=store, sms=sms, template=DEFAULT_MISSING_TEMPLATE, at=day(8))
    again = run_missing_notifications(store=store, sms=sms, template=DEFAULT_MISSING_TEMPLATE, at=day(8, 3))

    assert len(sms.sent) == 1
    assert again.batch.by_student()["S1"].outcome is NotificationOutcome.ALREADY_SENT


def test_next_date_falls_back_without_due_date():
    open_ended = CollectionCycle(id="C9", class_id="7B", subject_id="sci", start_at=day(0))
    assert next_date_for(open_ended) == NEXT_DATE_FALLBACK
