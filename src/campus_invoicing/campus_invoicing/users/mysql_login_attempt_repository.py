from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone
from .repository import LoginAttemptRepository


class MySQLLoginAttemptRepository(LoginAttemptRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def record(
        self,
        *,
        email: Optional[str],
        ip_address: str,
        success: bool,
        user_agent: Optional[str],
        attempted_at: datetime,
    ) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO login_attempts(email, ip_address, success, user_agent, attempt_time)
                VALUES(%s,%s,%s,%s,%s)
                """,
                (email, ip_address, 1 if success else 0, (user_agent or "")[:255] or None, attempted_at),
            )

    def count_failures_since(self, *, email: Optional[str], ip_address: str, since: datetime) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT COUNT(*) AS n
                FROM login_attempts
                WHERE success=0 AND attempt_time >= %s
                  AND (email=%s OR ip_address=%s)
                """,
                (since, email, ip_address),
            )
            row = fetchone(cur) or {}
            return int(row.get("n") or 0)
