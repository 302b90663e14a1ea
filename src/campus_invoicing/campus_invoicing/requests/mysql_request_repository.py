from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from ..core.constants import DEFAULT_LIST_LIMIT
from ..core.enums import RequestStatus, Role
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause
from .model import UserCreationRequest
from .repository import UserRequestRepository

_COLUMNS = """
    id, requested_by, first_name, last_name, email, phone, role, campus_id, justification,
    status, processed_by, processed_at, rejection_reason, created_at
"""


def _to_request(r: Dict[str, Any]) -> UserCreationRequest:
    return UserCreationRequest(
        request_id=int(r["id"]),
        requested_by=int(r["requested_by"]),
        first_name=r["first_name"],
        last_name=r["last_name"],
        email=r["email"],
        role=Role(r["role"]),
        campus_id=int(r["campus_id"]),
        status=RequestStatus(r["status"]),
        phone=r.get("phone"),
        justification=r.get("justification"),
        processed_by=r.get("processed_by"),
        processed_at=r.get("processed_at"),
        rejection_reason=r.get("rejection_reason"),
        created_at=r.get("created_at"),
    )


class MySQLUserRequestRepository(UserRequestRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def create(
        self,
        *,
        requested_by: int,
        first_name: str,
        last_name: str,
        email: str,
        phone: Optional[str],
        role: Role,
        campus_id: int,
        justification: Optional[str],
    ) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO user_creation_requests(
                    requested_by, first_name, last_name, email, phone, role, campus_id, justification, status
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    int(requested_by),
                    first_name,
                    last_name,
                    email,
                    phone,
                    role.value,
                    int(campus_id),
                    justification,
                    RequestStatus.PENDING.value,
                ),
            )
            return int(cur.lastrowid)

    def get_by_id(self, request_id: int) -> Optional[UserCreationRequest]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM user_creation_requests WHERE id=%s", (int(request_id),))
            r = fetchone(cur)
            return _to_request(r) if r else None

    def list_requests(
        self,
        *,
        status: Optional[RequestStatus] = None,
        requested_by: Optional[int] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> Sequence[UserCreationRequest]:
        clauses = ["1=1"]
        params: list[object] = []
        if status is not None:
            clauses.append("status=%s")
            params.append(status.value)
        if requested_by is not None:
            clauses.append("requested_by=%s")
            params.append(int(requested_by))
        params.append(int(limit))

        where = " AND ".join(clauses)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM user_creation_requests WHERE {where} ORDER BY created_at DESC, id DESC LIMIT %s",
                tuple(params),
            )
            return [_to_request(r) for r in fetchall(cur)]

    def decide(
        self,
        *,
        request_id: int,
        from_statuses: Sequence[RequestStatus],
        status: RequestStatus,
        processed_by: int,
        rejection_reason: Optional[str] = None,
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                UPDATE user_creation_requests
                SET status=%s, processed_by=%s, processed_at=NOW(), rejection_reason=%s
                WHERE id=%s AND status IN ({in_clause(from_statuses)})
                """,
                (
                    status.value,
                    int(processed_by),
                    rejection_reason,
                    int(request_id),
                    *[s.value for s in from_statuses],
                ),
            )
            return cur.rowcount > 0
