from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Iterable

from notebook_tracker.tracker.models import CollectionCycle, Student, Submission
from notebook_tracker.tracker.transitions import materialize_submission


class ActiveCycleError(RuntimeError):
    pass


def active_cycle(cycles: Iterable[CollectionCycle], class_id: str, subject_id: str) -> CollectionCycle | None:
    found = [c for c in cycles if c.active and c.class_id == class_id and c.subject_id == subject_id]
    if len(found) > 1:
        raise ActiveCycleError(
            f"{len(found)} active cycles for class={class_id} subject={subject_id}: "
            + ", ".join(c.id for c in found)
        )
    return found[0] if found else None


def start_cycle(
    cycle: CollectionCycle,
    existing_cycles: Iterable[CollectionCycle],
    students: Iterable[Student],
    created_at: datetime,
) -> list[Submission]:
    """Open a collection cycle and create a missing submission for each active class member."""

    if not cycle.active:
        raise ValueError(f"Cycle {cycle.id} is not active")

    current = active_cycle([c for c in existing_cycles if c.id != cycle.id], cycle.class_id, cycle.subject_id)
    if current is not None:
        raise ActiveCycleError(
            f"Cycle {current.id} is still active for class={cycle.class_id} subject={cycle.subject_id}; "
            "complete it before starting a new one"
        )

    return [
        materialize_submission(s.id, cycle, created_at)
        for s in students
        if s.is_active and s.class_id == cycle.class_id
    ]


def complete_cycle(cycle: CollectionCycle) -> CollectionCycle:
    return replace(cycle, active=False)
