from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from ..core.enums import Role
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, in_clause
from .model import CredentialExportRow, TempAccessCredential
from .repository import CredentialRepository


class MySQLCredentialRepository(CredentialRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def add(
        self,
        *,
        user_id: int,
        email: str,
        temp_password: str,
        created_by: Optional[int],
        expires_at: Optional[datetime],
    ) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO temp_access_credentials(user_id, email, temp_password, created_by, expires_at)
                VALUES(%s,%s,%s,%s,%s)
                """,
                (int(user_id), email, temp_password, created_by, expires_at),
            )
            return int(cur.lastrowid)

    def list_for_user(self, user_id: int) -> Sequence[TempAccessCredential]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT id, user_id, email, temp_password, created_by, created_at,
                       expires_at, exported_at, is_password_changed
                FROM temp_access_credentials
                WHERE user_id=%s
                ORDER BY created_at DESC, id DESC
                """,
                (int(user_id),),
            )
            return [
                TempAccessCredential(
                    credential_id=int(r["id"]),
                    user_id=int(r["user_id"]),
                    email=r["email"],
                    temp_password=r["temp_password"],
                    created_by=r.get("created_by"),
                    created_at=r["created_at"],
                    expires_at=r.get("expires_at"),
                    exported_at=r.get("exported_at"),
                    is_password_changed=bool(r.get("is_password_changed")),
                )
                for r in fetchall(cur)
            ]

    def list_for_export(self) -> Sequence[CredentialExportRow]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT t.id, t.email, t.temp_password, t.created_at, t.expires_at, t.exported_at,
                       p.first_name, p.last_name, p.role, c.name AS campus_name
                FROM temp_access_credentials t
                LEFT JOIN profiles p ON p.user_id = t.user_id
                LEFT JOIN campus c ON c.id = p.campus_id
                ORDER BY t.created_at DESC, t.id DESC
                """
            )
            return [
                CredentialExportRow(
                    credential_id=int(r["id"]),
                    email=r["email"],
                    temp_password=r["temp_password"],
                    first_name=r.get("first_name") or "",
                    last_name=r.get("last_name") or "",
                    role=Role(r["role"]) if r.get("role") else None,
                    campus_name=r.get("campus_name"),
                    created_at=r["created_at"],
                    expires_at=r.get("expires_at"),
                    exported_at=r.get("exported_at"),
                )
                for r in fetchall(cur)
            ]

    def mark_exported(self, credential_ids: Sequence[int], *, exported_at: datetime) -> int:
        if not credential_ids:
            return 0
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"UPDATE temp_access_credentials SET exported_at=%s WHERE id IN ({in_clause(credential_ids)})",
                (exported_at, *[int(i) for i in credential_ids]),
            )
            return int(cur.rowcount)

    def user_ids_with_credentials(self) -> set[int]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT DISTINCT user_id FROM temp_access_credentials")
            return {int(r["user_id"]) for r in fetchall(cur)}

    def mark_password_changed(self, user_id: int) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE temp_access_credentials SET is_password_changed=1 WHERE user_id=%s",
                (int(user_id),),
            )
            return int(cur.rowcount)

    def purge_expired(self, *, now: datetime) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                DELETE FROM temp_access_credentials
                WHERE expires_at IS NOT NULL AND expires_at <= %s
                  AND (exported_at IS NOT NULL OR is_password_changed=1)
                """,
                (now,),
            )
            return int(cur.rowcount)
