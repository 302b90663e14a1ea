from __future__ import annotations

from typing import Sequence

from ..core.constants import DEFAULT_LIST_LIMIT
from ..core.enums import NotificationType
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import Notification
from .repository import NotificationRepository


class MySQLNotificationRepository(NotificationRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def create(self, *, user_id: int, type: NotificationType, title: str, message: str) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "INSERT INTO notifications(user_id, type, title, message) VALUES(%s,%s,%s,%s)",
                (int(user_id), type.value, title, message),
            )
            return int(cur.lastrowid)

    def list_for_user(
        self, user_id: int, *, unread_only: bool = False, limit: int = DEFAULT_LIST_LIMIT
    ) -> Sequence[Notification]:
        sql = """
            SELECT id, user_id, type, title, message, is_read, created_at
            FROM notifications
            WHERE user_id=%s
        """
        if unread_only:
            sql += " AND is_read=0"
        sql += " ORDER BY created_at DESC, id DESC LIMIT %s"

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, (int(user_id), int(limit)))
            return [
                Notification(
                    notification_id=int(r["id"]),
                    user_id=int(r["user_id"]),
                    type=NotificationType(r["type"]),
                    title=r["title"],
                    message=r["message"],
                    is_read=bool(r["is_read"]),
                    created_at=r.get("created_at"),
                )
                for r in fetchall(cur)
            ]

    def mark_read(self, *, user_id: int, notification_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE notifications SET is_read=1 WHERE id=%s AND user_id=%s",
                (int(notification_id), int(user_id)),
            )
            return cur.rowcount > 0

    def mark_all_read(self, user_id: int) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("UPDATE notifications SET is_read=1 WHERE user_id=%s AND is_read=0", (int(user_id),))
            return int(cur.rowcount)

    def count_unread(self, user_id: int) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COUNT(*) AS n FROM notifications WHERE user_id=%s AND is_read=0", (int(user_id),))
            row = fetchone(cur) or {}
            return int(row.get("n") or 0)
