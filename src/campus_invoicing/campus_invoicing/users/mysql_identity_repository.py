from __future__ import annotations

from typing import Optional

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone
from .model import Identity
from .repository import IdentityRepository


class MySQLIdentityRepository(IdentityRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def _get(self, where: str, value: object) -> Optional[Identity]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT user_id, email, password_hash, created_at FROM identities WHERE {where}=%s",
                (value,),
            )
            row = fetchone(cur)
            if not row:
                return None
            return Identity(
                user_id=int(row["user_id"]),
                email=row["email"],
                password_hash=row["password_hash"],
                created_at=row.get("created_at"),
            )

    def get_by_id(self, user_id: int) -> Optional[Identity]:
        return self._get("user_id", int(user_id))

    def get_by_email(self, email: str) -> Optional[Identity]:
        return self._get("email", (email or "").strip().lower())

    def create(self, *, email: str, password_hash: str) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "INSERT INTO identities(email, password_hash) VALUES(%s,%s)",
                (email.strip().lower(), password_hash),
            )
            return int(cur.lastrowid)

    def update_password(self, user_id: int, *, password_hash: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE identities SET password_hash=%s WHERE user_id=%s",
                (password_hash, int(user_id)),
            )
            return cur.rowcount > 0

    def delete(self, user_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM identities WHERE user_id=%s", (int(user_id),))
            return cur.rowcount > 0
