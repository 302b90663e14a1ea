from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional, Sequence

from ..core.enums import Role
from ..database.connection import DatabaseConnection
from ..database.mysql_base import as_decimal, db_cursor, fetchall, fetchone
from .model import Profile, TeacherProfile
from .repository import UserRepository

_PROFILE_COLUMNS = """
    user_id, email, first_name, last_name, phone, role, campus_id,
    is_active, is_new_teacher, hire_date, notes
"""


def _to_profile(row: Dict[str, Any]) -> Profile:
    is_new = row.get("is_new_teacher")
    return Profile(
        user_id=int(row["user_id"]),
        email=row["email"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        role=Role(row["role"]),
        campus_id=int(row["campus_id"]) if row.get("campus_id") is not None else None,
        phone=row.get("phone"),
        is_active=bool(row.get("is_active", True)),
        is_new_teacher=None if is_new is None else bool(is_new),
        hire_date=row.get("hire_date"),
        notes=row.get("notes"),
    )


class MySQLUserRepository(UserRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, user_id: int) -> Optional[Profile]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_PROFILE_COLUMNS} FROM profiles WHERE user_id=%s", (int(user_id),))
            row = fetchone(cur)
            return _to_profile(row) if row else None

    def get_by_email(self, email: str) -> Optional[Profile]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_PROFILE_COLUMNS} FROM profiles WHERE email=%s",
                ((email or "").strip().lower(),),
            )
            row = fetchone(cur)
            return _to_profile(row) if row else None

    def upsert_profile(
        self,
        *,
        user_id: int,
        email: str,
        first_name: str,
        last_name: str,
        role: Role,
        campus_id: Optional[int],
        phone: Optional[str],
        is_new_teacher: Optional[bool] = None,
        hire_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO profiles(
                    user_id, email, first_name, last_name, phone, role, campus_id,
                    is_active, is_new_teacher, hire_date, notes
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,1,%s,%s,%s)
                ON DUPLICATE KEY UPDATE
                    email=VALUES(email),
                    first_name=VALUES(first_name),
                    last_name=VALUES(last_name),
                    phone=VALUES(phone),
                    role=VALUES(role),
                    campus_id=VALUES(campus_id),
                    is_new_teacher=VALUES(is_new_teacher),
                    hire_date=VALUES(hire_date),
                    notes=VALUES(notes)
                """,
                (
                    int(user_id),
                    email,
                    first_name,
                    last_name,
                    phone,
                    role.value,
                    campus_id,
                    is_new_teacher,
                    hire_date,
                    notes,
                ),
            )

    def set_active(self, user_id: int, *, is_active: bool) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE profiles SET is_active=%s WHERE user_id=%s",
                (1 if is_active else 0, int(user_id)),
            )
            return cur.rowcount > 0

    def list_users(
        self,
        *,
        role: Optional[Role] = None,
        campus_id: Optional[int] = None,
        active_only: bool = False,
    ) -> Sequence[Profile]:
        clauses = ["1=1"]
        params: list[object] = []
        if role is not None:
            clauses.append("role=%s")
            params.append(role.value)
        if campus_id is not None:
            clauses.append("campus_id=%s")
            params.append(int(campus_id))
        if active_only:
            clauses.append("is_active=1")

        where = " AND ".join(clauses)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_PROFILE_COLUMNS} FROM profiles WHERE {where} ORDER BY last_name, first_name",
                tuple(params),
            )
            return [_to_profile(r) for r in fetchall(cur)]

    def list_active_ids_by_role(self, role: Role, *, campus_id: Optional[int] = None) -> Sequence[int]:
        sql = "SELECT user_id FROM profiles WHERE role=%s AND is_active=1"
        params: list[object] = [role.value]
        if campus_id is not None:
            sql += " AND campus_id=%s"
            params.append(int(campus_id))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, tuple(params))
            return [int(r["user_id"]) for r in fetchall(cur)]

    def list_new_teacher_ids(self) -> Sequence[int]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT user_id FROM profiles
                WHERE role='ENSEIGNANT' AND is_active=1 AND is_new_teacher=1
                """
            )
            return [int(r["user_id"]) for r in fetchall(cur)]

    def get_teacher_profile(self, user_id: int) -> Optional[TeacherProfile]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT user_id, rib_iban, rib_bic, rib_account_holder, rib_bank_name,
                       hourly_rate_min, hourly_rate_max, specialities
                FROM teacher_profile
                WHERE user_id=%s
                """,
                (int(user_id),),
            )
            r = fetchone(cur)
            if not r:
                return None
            return TeacherProfile(
                user_id=int(r["user_id"]),
                hourly_rate_min=as_decimal(r.get("hourly_rate_min")),
                hourly_rate_max=as_decimal(r.get("hourly_rate_max")),
                rib_iban=r.get("rib_iban"),
                rib_bic=r.get("rib_bic"),
                rib_account_holder=r.get("rib_account_holder"),
                rib_bank_name=r.get("rib_bank_name"),
                specialities=r.get("specialities"),
            )

    def ensure_teacher_profile(self, user_id: int, *, rate_min: Decimal, rate_max: Decimal) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO teacher_profile(user_id, hourly_rate_min, hourly_rate_max)
                VALUES(%s,%s,%s)
                ON DUPLICATE KEY UPDATE user_id=user_id
                """,
                (int(user_id), rate_min, rate_max),
            )

    def update_rib(
        self,
        user_id: int,
        *,
        iban: str,
        bic: Optional[str],
        account_holder: Optional[str],
        bank_name: Optional[str],
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE teacher_profile
                SET rib_iban=%s, rib_bic=%s, rib_account_holder=%s, rib_bank_name=%s
                WHERE user_id=%s
                """,
                (iban, bic, account_holder, bank_name, int(user_id)),
            )
            return cur.rowcount > 0

    def list_active_teacher_ids_without_rib(self) -> Sequence[int]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT p.user_id
                FROM profiles p
                LEFT JOIN teacher_profile t ON t.user_id = p.user_id
                WHERE p.role='ENSEIGNANT' AND p.is_active=1
                  AND (t.rib_iban IS NULL OR t.rib_iban = '')
                """
            )
            return [int(r["user_id"]) for r in fetchall(cur)]
