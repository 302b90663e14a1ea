from __future__ import annotations

from typing import Optional

from ..core.enums import ImportStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor
from .repository import TeacherImportRepository


class MySQLTeacherImportRepository(TeacherImportRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def create(self, *, imported_by: int, filename: str, total_teachers: int) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO teacher_import(imported_by, filename, total_teachers, status)
                VALUES(%s,%s,%s,%s)
                """,
                (int(imported_by), filename, int(total_teachers), ImportStatus.PROCESSING.value),
            )
            return int(cur.lastrowid)

    def finish(
        self,
        import_id: int,
        *,
        status: ImportStatus,
        processed_teachers: int,
        error_message: Optional[str],
    ) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE teacher_import
                SET status=%s, processed_teachers=%s, error_message=%s
                WHERE id=%s
                """,
                (status.value, int(processed_teachers), error_message, int(import_id)),
            )
