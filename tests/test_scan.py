from __future__ import annotations

import json
from datetime import datetime

import pytest

from notebook_tracker.tracker.models import SubmissionStatus
from notebook_tracker.tracker.scan import load_histories, run_defaulter_scan


CSV = """student_id,student_name,scholar_number,subject,cycle_id,cycle_start,status,late_days
S2,Diya Rao,10232,Science,C02,2024-04-08,missing,
S1,Aarav Sharma,10231,Science,C04,2024-04-15,submitted,2
S1,Aarav Sharma,10231,Science,C01,2024-04-01,missing,0
S1,Aarav Sharma,10231,Science,C02,2024-04-08,missing,0
S1,Aarav Sharma,10231,Math,C03,2024-04-08,missing,0
S1,Aarav Sharma,10231,Math,C05,2024-04-22,returned,0
S2,Diya Rao,10232,Science,C01,2024-04-01,returned,0
S2,Diya Rao,10232,Math,C03,2024-04-08,returned,0
"""


@pytest.fixture
def history_csv(tmp_path):
    path = tmp_path / "history.csv"
    path.write_text(CSV, encoding="utf-8")
    return path


def test_load_histories_orders_rows_per_student(history_csv):
    histories = {h.student_id: h for h in load_histories(history_csv)}

    s1 = histories["S1"]
    assert s1.scholar_number == "10231"
    assert s1.summary.total == 5
    assert s1.summary.missing_count == 3
    assert s1.summary.max_consecutive_missing == 3
    assert s1.summary.late_submission_count == 1
    assert s1.current_status is SubmissionStatus.RETURNED

    s2 = histories["S2"]
    # C01 then the two 2024-04-08 rows in file order
    assert s2.current_status is SubmissionStatus.RETURNED
    assert s2.summary.missing_count == 1


def test_missing_columns_rejected(tmp_path):
    path = tmp_path / "bad.csv"
    path.write_text("student_id,status\nS1,missing\n", encoding="utf-8")
    with pytest.raises(ValueError, match="cycle_start"):
        load_histories(path)


def test_scan_writes_json_and_snapshots(history_csv, tmp_path, store):
    out = tmp_path / "out" / "defaulters.json"
    as_of = datetime(2024, 4, 30)

    result = run_defaulter_scan(history_csv=history_csv, outputs_path=out, threshold=2, store=store, as_of=as_of)

    assert (result.scored, result.written) == (1, 1)
    payload = json.loads(out.read_text(encoding="utf-8"))
    assert payload["as_of"] == "2024-04-30T00:00:00"
    assert payload["students_scanned"] == 2
    [pred] = payload["predictions"]
    assert pred["student_id"] == "S1"
    assert pred["history_pattern"] == "multiple consecutive missing submissions"
    assert pred["reasoning"][0] == "Found a pattern of 3 consecutive missing submissions."
    assert store.list_latest_risks()[0]["student_id"] == "S1"


def test_scan_high_mode_filters(history_csv, tmp_path):
    out = tmp_path / "high.json"
    result = run_defaulter_scan(history_csv=history_csv, outputs_path=out, threshold=1, mode="high")

    payload = json.loads(out.read_text(encoding="utf-8"))
    assert result.scored == 2
    assert all(p["default_probability"] >= 0.7 for p in payload["predictions"])
    assert result.written == len(payload["predictions"])
