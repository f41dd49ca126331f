from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from notebook_tracker.database.submission_store import SubmissionStore
from notebook_tracker.tracker.dispatcher import BatchResult, NotificationDispatcher, SmsSender, build_recipients
from notebook_tracker.tracker.models import CollectionCycle


NEXT_DATE_FALLBACK = "as soon as possible"


@dataclass
class NotifyRunResult:
    cycles: int
    batch: BatchResult
    outputs_path: Path | None = None


def next_date_for(cycle: CollectionCycle) -> str:
    return cycle.due_at.strftime("%d %b %Y") if cycle.due_at else NEXT_DATE_FALLBACK


def run_missing_notifications(
    *,
    store: SubmissionStore,
    sms: SmsSender,
    template: str,
    outputs_path: Path | None = None,
    at: datetime | None = None,
) -> NotifyRunResult:
    """Notify guardians of every student whose notebook is missing in an active cycle."""

    at = at or datetime.utcnow()
    dispatcher = NotificationDispatcher(store, sms)
    batch = BatchResult()

    cycles = store.list_active_cycles()
    for cycle in cycles:
        subject = store.get_subject(cycle.subject_id)
        recipients = build_recipients(
            cycle,
            subject.name if subject else cycle.subject_id,
            store.list_students(cycle.class_id),
            store.list_submissions_by_student(cycle.id),
            next_date_for(cycle),
        )
        logging.info("Cycle %s: %s students with a missing notebook", cycle.id, len(recipients))
        batch.results.extend(dispatcher.notify_batch(recipients, template, at).results)

    if outputs_path is not None:
        payload = {
            "as_of": at.isoformat(),
            "cycles": len(cycles),
            "sent": batch.sent_count,
            "results": [
                {
                    "student_id": r.student_id,
                    "outcome": r.outcome.value,
                    "submission_id": r.submission_id,
                    "message_id": r.message_id,
                    "error": r.error,
                }
                for r in batch.results
            ],
        }
        outputs_path.parent.mkdir(parents=True, exist_ok=True)
        outputs_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")

    logging.info(
        "Notified %s of %s students across %s active cycles", batch.sent_count, len(batch.results), len(cycles)
    )
    return NotifyRunResult(cycles=len(cycles), batch=batch, outputs_path=outputs_path)
