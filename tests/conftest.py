from __future__ import annotations

from pathlib import Path

import pytest

import notebook_tracker.database as database_pkg
from notebook_tracker.database.db_manager import DBManager
from notebook_tracker.database.submission_store import SubmissionStore


SCHEMA_PATH = Path(database_pkg.__file__).resolve().parent / "schema.sql"


@pytest.fixture
def store(tmp_path) -> SubmissionStore:
    dbm = DBManager(tmp_path / "test.db")
    dbm.init_db(schema_path=SCHEMA_PATH)
    return SubmissionStore(dbm)
