"""Run the calendar reminders due today (meant for a daily cron entry).

Each job is claimed in ``reminder_runs`` before it sends anything, so running
the script twice on the same day is harmless. ``--from-date`` replays the
days missed while the host was down.
"""

from __future__ import annotations

import argparse
import importlib
import logging
import sys
from datetime import timedelta
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from dotenv import load_dotenv

from config import get_settings_module

from src.campus_invoicing.campus_invoicing.common.datetime_utils import now_local, parse_iso_date
from src.campus_invoicing.campus_invoicing.container import build_container


def main() -> None:
    parser = argparse.ArgumentParser(description="Send scheduled reminder notifications.")
    parser.add_argument("--date", help="run for this day (YYYY-MM-DD), default today")
    parser.add_argument("--from-date", help="catch up every day from this date (YYYY-MM-DD) to --date")
    parser.add_argument("--job", action="append", help="restrict to a job name (repeatable)")
    args = parser.parse_args()

    load_dotenv(override=False)
    settings = importlib.import_module(get_settings_module())
    logging.basicConfig(level=getattr(settings, "LOG_LEVEL", "INFO"))

    container = build_container(db_config=dict(settings.DB_CONFIG), settings=settings)
    try:
        end = parse_iso_date(args.date) if args.date else now_local().date()
        day = parse_iso_date(args.from_date) if args.from_date else end
        if day > end:
            raise SystemExit("--from-date must not be after --date")

        unknown = set(args.job or []) - set(container.reminder_scheduler.job_names)
        if unknown:
            raise SystemExit(f"Unknown job(s): {', '.join(sorted(unknown))}")

        failed = 0
        while day <= end:
            for outcome in container.reminder_scheduler.run_due(day, only=args.job):
                print(f"{day.isoformat()} {outcome.job_name}: {outcome.status} ({outcome.dispatch.delivered} sent)")
                if outcome.status == "failed":
                    failed += 1
            day += timedelta(days=1)

        purged = container.provisioning_service.purge_expired_credentials()
        print(f"OK: purged {purged} expired temporary credentials")
        if failed:
            raise SystemExit(f"{failed} reminder job(s) failed, rerun to retry them")
    finally:
        container.close()


if __name__ == "__main__":
    main()
