from __future__ import annotations

import argparse
import logging
from pathlib import Path

from notebook_tracker.config.settings import settings
from notebook_tracker.database.db_manager import DBManager
from notebook_tracker.database.submission_store import SubmissionStore
from notebook_tracker.sms.twilio_client import TwilioClient
from notebook_tracker.tracker.notification_gate import template_for
from notebook_tracker.tracker.notify import run_missing_notifications
from notebook_tracker.tracker.scan import run_defaulter_scan


def setup_logging(logs_dir: Path) -> None:
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / "tracker.log"
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[logging.FileHandler(log_path, encoding="utf-8"), logging.StreamHandler()],
    )


def scan(store: SubmissionStore) -> int:
    result = run_defaulter_scan(
        history_csv=settings.history_csv_path,
        outputs_path=settings.outputs_dir / "defaulters.json",
        threshold=settings.defaulter_threshold,
        mode=settings.defaulter_mode,
        store=store,
    )
    logging.info("Done. Scored=%s Written=%s", result.scored, result.written)
    return 0


def notify(store: SubmissionStore) -> int:
    sms = TwilioClient(
        settings.twilio_account_sid,
        settings.twilio_auth_token,
        settings.twilio_phone_number,
        settings.default_country_code,
    )
    if not sms.is_configured():
        logging.error("Twilio is not configured; no notifications sent")
        return 1

    result = run_missing_notifications(
        store=store,
        sms=sms,
        template=template_for(settings.notify_template),
        outputs_path=settings.outputs_dir / "notifications.json",
    )
    logging.info("Done. Sent=%s Failed=%s", result.batch.sent_count, len(result.batch.failures))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="notebook-tracker")
    parser.add_argument(
        "command",
        nargs="?",
        default="scan",
        choices=("scan", "notify"),
        help="scan: score defaulters from the history CSV; notify: SMS guardians of missing notebooks",
    )
    args = parser.parse_args(argv)

    setup_logging(settings.logs_dir)

    dbm = DBManager(settings.database_path)
    dbm.init_db(schema_path=settings.schema_path)
    store = SubmissionStore(dbm)

    if args.command == "notify":
        return notify(store)
    return scan(store)


if __name__ == "__main__":
    raise SystemExit(main())
