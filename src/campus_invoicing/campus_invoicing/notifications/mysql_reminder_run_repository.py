from __future__ import annotations

from datetime import date

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor
from .repository import ReminderRunRepository


class MySQLReminderRunRepository(ReminderRunRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def claim(self, *, job_name: str, run_date: date) -> bool:
        # (job_name, run_date) is the primary key: only one process wins the insert.
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "INSERT IGNORE INTO reminder_runs(job_name, run_date) VALUES(%s,%s)",
                (job_name, run_date),
            )
            return cur.rowcount == 1

    def release(self, *, job_name: str, run_date: date) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "DELETE FROM reminder_runs WHERE job_name=%s AND run_date=%s",
                (job_name, run_date),
            )
