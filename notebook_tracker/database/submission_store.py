from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Iterator

from notebook_tracker.database.db_manager import DBManager
from notebook_tracker.tracker.history import build_history
from notebook_tracker.tracker.models import (
    CollectionCycle,
    HistoryEntry,
    Student,
    Subject,
    Submission,
)
from notebook_tracker.tracker.risk_scorer import DefaulterPrediction
from notebook_tracker.tracker.transitions import MutationRequest, MutationResult, apply_mutation


def _iso(dt: datetime | None) -> str | None:
    return None if dt is None else dt.isoformat()


def _dt(value: str | None) -> datetime | None:
    return None if value is None else datetime.fromisoformat(value)


def _submission(row: sqlite3.Row) -> Submission:
    return Submission(
        id=row["submission_id"],
        student_id=row["student_id"],
        cycle_id=row["cycle_id"],
        status=row["status"],
        created_at=_dt(row["created_at"]),
        submitted_at=_dt(row["submitted_at"]),
        returned_at=_dt(row["returned_at"]),
        notification_sent=bool(row["notification_sent"]),
        notification_sent_at=_dt(row["notification_sent_at"]),
        notes=row["notes"],
    )


def _student(row: sqlite3.Row) -> Student:
    return Student(
        id=row["student_id"],
        full_name=row["full_name"],
        scholar_number=row["scholar_number"],
        roll_number=row["roll_number"],
        class_id=row["class_id"],
        parent_name=row["parent_name"],
        parent_phone=row["parent_phone"],
        parent_email=row["parent_email"],
        is_active=bool(row["is_active"]),
    )


def _cycle(row: sqlite3.Row) -> CollectionCycle:
    return CollectionCycle(
        id=row["cycle_id"],
        class_id=row["class_id"],
        subject_id=row["subject_id"],
        start_at=_dt(row["start_at"]),
        due_at=_dt(row["due_at"]),
        name=row["name"],
        active=bool(row["active"]),
    )


@dataclass
class SubmissionStore:
    """SQLite storage for the submission lifecycle.

    Status changes only go through :meth:`apply`, which runs the compare-and-set
    check and the write inside one ``BEGIN IMMEDIATE`` transaction.
    """

    db: DBManager

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self.db.connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def upsert_student(self, student: Student) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO students(
                    student_id, full_name, scholar_number, roll_number, class_id,
                    parent_name, parent_phone, parent_email, is_active
                ) VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(student_id) DO UPDATE SET
                  full_name = excluded.full_name,
                  scholar_number = excluded.scholar_number,
                  roll_number = excluded.roll_number,
                  class_id = excluded.class_id,
                  parent_name = excluded.parent_name,
                  parent_phone = excluded.parent_phone,
                  parent_email = excluded.parent_email,
                  is_active = excluded.is_active
                """,
                (
                    student.id,
                    student.full_name,
                    student.scholar_number,
                    student.roll_number,
                    student.class_id,
                    student.parent_name,
                    student.parent_phone,
                    student.parent_email,
                    int(student.is_active),
                ),
            )

    def get_student(self, student_id: str) -> Student | None:
        conn = self.db.connect()
        try:
            row = conn.execute("SELECT * FROM students WHERE student_id = ?", (student_id,)).fetchone()
        finally:
            conn.close()
        return _student(row) if row else None

    def list_students(self, class_id: str) -> list[Student]:
        conn = self.db.connect()
        try:
            rows = conn.execute(
                "SELECT * FROM students WHERE class_id = ? AND is_active = 1 ORDER BY roll_number, student_id",
                (class_id,),
            ).fetchall()
        finally:
            conn.close()
        return [_student(r) for r in rows]

    def add_subject(self, subject: Subject) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO subjects(subject_id, name) VALUES(?, ?) "
                "ON CONFLICT(subject_id) DO UPDATE SET name = excluded.name",
                (subject.id, subject.name),
            )

    def get_subject(self, subject_id: str) -> Subject | None:
        conn = self.db.connect()
        try:
            row = conn.execute("SELECT subject_id, name FROM subjects WHERE subject_id = ?", (subject_id,)).fetchone()
        finally:
            conn.close()
        return Subject(id=row["subject_id"], name=row["name"]) if row else None

    def add_cycle(self, cycle: CollectionCycle) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO cycles(cycle_id, class_id, subject_id, start_at, due_at, name, active)
                VALUES(?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(cycle_id) DO UPDATE SET active = excluded.active
                """,
                (
                    cycle.id,
                    cycle.class_id,
                    cycle.subject_id,
                    _iso(cycle.start_at),
                    _iso(cycle.due_at),
                    cycle.name,
                    int(cycle.active),
                ),
            )

    def list_cycles(self, class_id: str | None = None) -> list[CollectionCycle]:
        conn = self.db.connect()
        try:
            if class_id is None:
                rows = conn.execute("SELECT * FROM cycles ORDER BY start_at ASC").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM cycles WHERE class_id = ? ORDER BY start_at ASC", (class_id,)
                ).fetchall()
        finally:
            conn.close()
        return [_cycle(r) for r in rows]

    def list_active_cycles(self) -> list[CollectionCycle]:
        conn = self.db.connect()
        try:
            rows = conn.execute("SELECT * FROM cycles WHERE active = 1 ORDER BY start_at ASC").fetchall()
        finally:
            conn.close()
        return [_cycle(r) for r in rows]

    def add_submissions(self, submissions: Iterable[Submission]) -> int:
        """Insert new records; existing ids are left untouched (history is never rewritten)."""
        rows = [
            (
                s.id,
                s.student_id,
                s.cycle_id,
                s.status.value,
                _iso(s.created_at),
                _iso(s.submitted_at),
                _iso(s.returned_at),
                int(s.notification_sent),
                _iso(s.notification_sent_at),
                s.notes,
            )
            for s in submissions
        ]
        with self._transaction() as conn:
            before = conn.total_changes
            conn.executemany(
                """
                INSERT OR IGNORE INTO submissions(
                    submission_id, student_id, cycle_id, status, created_at,
                    submitted_at, returned_at, notification_sent, notification_sent_at, notes
                ) VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
            return conn.total_changes - before

    def get_submission(self, submission_id: str) -> Submission | None:
        conn = self.db.connect()
        try:
            row = conn.execute("SELECT * FROM submissions WHERE submission_id = ?", (submission_id,)).fetchone()
        finally:
            conn.close()
        return _submission(row) if row else None

    def list_cycle_submissions(self, student_id: str, cycle_id: str) -> list[Submission]:
        conn = self.db.connect()
        try:
            rows = conn.execute(
                """
                SELECT * FROM submissions
                WHERE student_id = ? AND cycle_id = ?
                ORDER BY created_at ASC, rowid ASC
                """,
                (student_id, cycle_id),
            ).fetchall()
        finally:
            conn.close()
        return [_submission(r) for r in rows]

    def list_submissions_by_student(self, cycle_id: str) -> dict[str, list[Submission]]:
        """All records of a cycle grouped by student, oldest first."""
        conn = self.db.connect()
        try:
            rows = conn.execute(
                "SELECT * FROM submissions WHERE cycle_id = ? ORDER BY created_at ASC, rowid ASC",
                (cycle_id,),
            ).fetchall()
        finally:
            conn.close()
        out: dict[str, list[Submission]] = {}
        for r in rows:
            out.setdefault(r["student_id"], []).append(_submission(r))
        return out

    def list_student_history(self, student_id: str) -> list[HistoryEntry]:
        conn = self.db.connect()
        try:
            sub_rows = conn.execute(
                "SELECT * FROM submissions WHERE student_id = ? ORDER BY created_at ASC, rowid ASC",
                (student_id,),
            ).fetchall()
            cycle_rows = conn.execute(
                """
                SELECT c.* FROM cycles c
                WHERE c.cycle_id IN (SELECT cycle_id FROM submissions WHERE student_id = ?)
                """,
                (student_id,),
            ).fetchall()
            subject_rows = conn.execute("SELECT subject_id, name FROM subjects").fetchall()
        finally:
            conn.close()

        cycles = {r["cycle_id"]: _cycle(r) for r in cycle_rows}
        subjects = {r["subject_id"]: Subject(id=r["subject_id"], name=r["name"]) for r in subject_rows}
        return build_history((_submission(r) for r in sub_rows), cycles, subjects)

    def apply(self, request: MutationRequest) -> MutationResult:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM submissions WHERE submission_id = ?", (request.submission_id,)
            ).fetchone()
            result = apply_mutation(_submission(row) if row else None, request)
            if not result.ok or result.submission is None:
                return result

            updated = result.submission
            cur = conn.execute(
                """
                UPDATE submissions SET
                  status = ?, submitted_at = ?, returned_at = ?,
                  notification_sent = ?, notification_sent_at = ?
                WHERE submission_id = ? AND status = ? AND notification_sent = ?
                """,
                (
                    updated.status.value,
                    _iso(updated.submitted_at),
                    _iso(updated.returned_at),
                    int(updated.notification_sent),
                    _iso(updated.notification_sent_at),
                    updated.id,
                    row["status"],
                    row["notification_sent"],
                ),
            )
            if cur.rowcount != 1:
                raise RuntimeError(f"Submission {updated.id} changed during compare-and-set")
            return result

    def add_risk_snapshot(self, prediction: DefaulterPrediction, as_of: datetime) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO risk_snapshots(
                    student_id, as_of, default_probability, band,
                    missing_count, history_pattern, reasoning_json
                ) VALUES(?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    prediction.student_id,
                    _iso(as_of),
                    float(prediction.default_probability),
                    prediction.band,
                    int(prediction.missing_count),
                    prediction.history_pattern,
                    json.dumps(prediction.reasoning, ensure_ascii=False),
                ),
            )

    def list_latest_risks(self, limit: int = 200) -> list[dict[str, Any]]:
        conn = self.db.connect()
        try:
            rows = conn.execute(
                """
                SELECT rs.student_id, rs.as_of, rs.default_probability, rs.band,
                       rs.missing_count, rs.history_pattern, rs.reasoning_json
                FROM risk_snapshots rs
                WHERE rs.id IN (
                  SELECT MAX(id) FROM risk_snapshots GROUP BY student_id
                )
                ORDER BY rs.default_probability DESC, rs.student_id ASC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        finally:
            conn.close()

        out: list[dict[str, Any]] = []
        for r in rows:
            d = dict(r)
            d["reasoning"] = json.loads(d.pop("reasoning_json"))
            out.append(d)
        return out
