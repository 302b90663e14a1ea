from __future__ import annotations

from typing import Optional, Sequence

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall
from .model import Campus, CourseTitle, Filiere, SchoolClass
from .repository import ReferenceRepository


class MySQLReferenceRepository(ReferenceRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def list_campuses(self) -> Sequence[Campus]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT id, name, address, is_active FROM campus WHERE is_active=1 ORDER BY name")
            return [
                Campus(campus_id=int(r["id"]), name=r["name"], address=r.get("address") or "", is_active=bool(r["is_active"]))
                for r in fetchall(cur)
            ]

    def list_filieres(self) -> Sequence[Filiere]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT id, code, label, pole, is_active FROM filiere WHERE is_active=1 ORDER BY code")
            return [
                Filiere(
                    filiere_id=int(r["id"]),
                    code=r["code"],
                    label=r["label"],
                    pole=r.get("pole") or "",
                    is_active=bool(r["is_active"]),
                )
                for r in fetchall(cur)
            ]

    def list_course_titles(self) -> Sequence[CourseTitle]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT id, title, category, is_active FROM course_title WHERE is_active=1 ORDER BY title")
            return [
                CourseTitle(
                    course_title_id=int(r["id"]),
                    title=r["title"],
                    category=r.get("category"),
                    is_active=bool(r["is_active"]),
                )
                for r in fetchall(cur)
            ]

    def list_classes(self, *, campus_id: Optional[int] = None) -> Sequence[SchoolClass]:
        sql = """
            SELECT id, group_code, label, year, campus_id, filiere_id, is_active
            FROM class
            WHERE is_active=1
        """
        params: list[object] = []
        if campus_id is not None:
            sql += " AND campus_id=%s"
            params.append(int(campus_id))
        sql += " ORDER BY label"

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, tuple(params))
            return [
                SchoolClass(
                    class_id=int(r["id"]),
                    group_code=r["group_code"],
                    label=r["label"],
                    year=int(r["year"]),
                    campus_id=int(r["campus_id"]),
                    filiere_id=int(r["filiere_id"]),
                    is_active=bool(r["is_active"]),
                )
                for r in fetchall(cur)
            ]
