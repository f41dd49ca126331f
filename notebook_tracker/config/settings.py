from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


PROJECT_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(PROJECT_ROOT / ".env")


def _path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    return Path(raw) if raw else default


@dataclass(frozen=True)
class Settings:
    twilio_account_sid: str | None = os.getenv("TWILIO_ACCOUNT_SID") or None
    twilio_auth_token: str | None = os.getenv("TWILIO_AUTH_TOKEN") or None
    twilio_phone_number: str | None = os.getenv("TWILIO_PHONE_NUMBER") or None
    default_country_code: str = os.getenv("DEFAULT_COUNTRY_CODE", "+1")
    notify_template: str = os.getenv("NOTIFY_TEMPLATE", "missing")

    defaulter_threshold: int = int(os.getenv("DEFAULTER_THRESHOLD", "2"))
    defaulter_mode: str = os.getenv("DEFAULTER_MODE", "all")

    database_path: Path = _path("DATABASE_PATH", PROJECT_ROOT / "notebook_tracker.db")
    schema_path: Path = PROJECT_ROOT / "database" / "schema.sql"

    history_csv_path: Path = _path("HISTORY_CSV_PATH", PROJECT_ROOT / "data" / "submission_history.csv")

    outputs_dir: Path = _path("OUTPUTS_DIR", PROJECT_ROOT / "outputs")
    logs_dir: Path = _path("LOGS_DIR", PROJECT_ROOT / "logs")


settings = Settings()
