from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Sequence

from ..core.constants import DEFAULT_LIST_LIMIT
from ..core.enums import ImportStatus, InvoiceStatus, PaymentMethod, Role
from ..core.exceptions import ConcurrentModificationError, InvoiceLockedError, NotFoundError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import as_decimal, db_cursor, fetchall, fetchone, in_clause, normalize_mysql_time
from .model import Invoice, InvoiceLine, NewInvoiceLine, NewPayment, Payment, ValidationLogEntry
from .repository import InvoiceRepository

_INVOICE_COLUMNS = """
    id, teacher_id, campus_id, month, year, total_ht, total_ttc, status, is_locked,
    notes, observations, original_filename, drive_pdf_url, created_at, updated_at
"""


def _to_invoice(r: Dict[str, Any]) -> Invoice:
    return Invoice(
        invoice_id=int(r["id"]),
        teacher_id=int(r["teacher_id"]),
        campus_id=int(r["campus_id"]),
        month=int(r["month"]),
        year=int(r["year"]),
        total_ht=as_decimal(r.get("total_ht")),
        total_ttc=as_decimal(r.get("total_ttc")),
        status=InvoiceStatus(r["status"]),
        is_locked=bool(r.get("is_locked")),
        notes=r.get("notes"),
        observations=r.get("observations"),
        original_filename=r.get("original_filename"),
        drive_pdf_url=r.get("drive_pdf_url"),
        created_at=r.get("created_at"),
        updated_at=r.get("updated_at"),
    )


def _to_log(r: Dict[str, Any]) -> ValidationLogEntry:
    return ValidationLogEntry(
        log_id=int(r["id"]),
        invoice_id=int(r["invoice_id"]),
        actor_id=int(r["actor_id"]),
        role=Role(r["role"]),
        action=r["action"],
        previous_status=InvoiceStatus(r["previous_status"]) if r.get("previous_status") else None,
        new_status=InvoiceStatus(r["new_status"]) if r.get("new_status") else None,
        comment=r.get("comment"),
        created_at=r.get("created_at"),
    )


def _to_payment(r: Dict[str, Any]) -> Payment:
    return Payment(
        payment_id=int(r["id"]),
        invoice_id=int(r["invoice_id"]),
        amount_ttc=as_decimal(r["amount_ttc"]),
        method=PaymentMethod(r["method"]),
        reference=r.get("reference"),
        paid_at=r["paid_at"],
    )


def _period_filters(
    *,
    month: Optional[int],
    year: Optional[int],
    campus_id: Optional[int],
    teacher_id: Optional[int],
) -> tuple[list[str], list[object]]:
    clauses: list[str] = []
    params: list[object] = []
    if month is not None:
        clauses.append("month=%s")
        params.append(int(month))
    if year is not None:
        clauses.append("year=%s")
        params.append(int(year))
    if campus_id is not None:
        clauses.append("campus_id=%s")
        params.append(int(campus_id))
    if teacher_id is not None:
        clauses.append("teacher_id=%s")
        params.append(int(teacher_id))
    return clauses, params


class MySQLInvoiceRepository(InvoiceRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, invoice_id: int) -> Optional[Invoice]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_INVOICE_COLUMNS} FROM invoice WHERE id=%s", (int(invoice_id),))
            r = fetchone(cur)
            return _to_invoice(r) if r else None

    def list_invoices(
        self,
        *,
        teacher_id: Optional[int] = None,
        campus_id: Optional[int] = None,
        status: Optional[InvoiceStatus] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> Sequence[Invoice]:
        clauses, params = _period_filters(month=month, year=year, campus_id=campus_id, teacher_id=teacher_id)
        if status is not None:
            clauses.append("status=%s")
            params.append(status.value)
        where = " AND ".join(clauses) or "1=1"
        params.append(int(limit))

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_INVOICE_COLUMNS} FROM invoice WHERE {where} ORDER BY created_at DESC, id DESC LIMIT %s",
                tuple(params),
            )
            return [_to_invoice(r) for r in fetchall(cur)]

    def find_for_period(self, *, teacher_id: int, campus_id: int, month: int, year: int) -> Optional[Invoice]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_INVOICE_COLUMNS} FROM invoice
                WHERE teacher_id=%s AND campus_id=%s AND month=%s AND year=%s
                ORDER BY id LIMIT 1
                """,
                (int(teacher_id), int(campus_id), int(month), int(year)),
            )
            r = fetchone(cur)
            return _to_invoice(r) if r else None

    def create_invoice(
        self,
        *,
        teacher_id: int,
        campus_id: int,
        month: int,
        year: int,
        original_filename: Optional[str] = None,
        drive_pdf_url: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO invoice(teacher_id, campus_id, month, year, status, original_filename, drive_pdf_url, notes)
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    int(teacher_id),
                    int(campus_id),
                    int(month),
                    int(year),
                    InvoiceStatus.PENDING.value,
                    original_filename,
                    drive_pdf_url,
                    notes,
                ),
            )
            return int(cur.lastrowid)

    def add_lines(self, invoice_id: int, lines: Sequence[NewInvoiceLine]) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT status FROM invoice WHERE id=%s FOR UPDATE", (int(invoice_id),))
            row = fetchone(cur)
            if not row:
                raise NotFoundError("Facture introuvable")
            if row["status"] != InvoiceStatus.PENDING.value:
                raise InvoiceLockedError("La facture n'est plus modifiable")

            cur.executemany(
                """
                INSERT INTO invoice_line(
                    invoice_id, date, start_time, end_time, hours_qty, unit_price,
                    course_title, campus_id, filiere_id, class_id, is_late, observations
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                [
                    (
                        int(invoice_id),
                        ln.date,
                        ln.start_time,
                        ln.end_time,
                        ln.hours_qty,
                        ln.unit_price,
                        ln.course_title,
                        int(ln.campus_id),
                        int(ln.filiere_id),
                        ln.class_id,
                        1 if ln.is_late else 0,
                        ln.observations,
                    )
                    for ln in lines
                ],
            )
            # No VAT on teacher invoices: HT equals TTC.
            cur.execute(
                """
                UPDATE invoice i
                JOIN (
                    SELECT invoice_id, COALESCE(SUM(ROUND(hours_qty * unit_price, 2)), 0) AS total
                    FROM invoice_line WHERE invoice_id=%s GROUP BY invoice_id
                ) t ON t.invoice_id = i.id
                SET i.total_ttc = t.total, i.total_ht = t.total
                WHERE i.id=%s
                """,
                (int(invoice_id), int(invoice_id)),
            )
            return len(lines)

    def list_lines(self, invoice_id: int) -> Sequence[InvoiceLine]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT id, invoice_id, date, start_time, end_time, hours_qty, unit_price,
                       course_title, campus_id, filiere_id, class_id, is_late, observations
                FROM invoice_line
                WHERE invoice_id=%s
                ORDER BY date, start_time, id
                """,
                (int(invoice_id),),
            )
            return [
                InvoiceLine(
                    line_id=int(r["id"]),
                    invoice_id=int(r["invoice_id"]),
                    date=r["date"],
                    start_time=normalize_mysql_time(r["start_time"]),
                    end_time=normalize_mysql_time(r["end_time"]),
                    hours_qty=as_decimal(r["hours_qty"]),
                    unit_price=as_decimal(r["unit_price"]),
                    course_title=r["course_title"],
                    campus_id=int(r["campus_id"]),
                    filiere_id=int(r["filiere_id"]),
                    class_id=int(r["class_id"]) if r.get("class_id") is not None else None,
                    is_late=bool(r.get("is_late")),
                    observations=r.get("observations"),
                )
                for r in fetchall(cur)
            ]

    @staticmethod
    def _insert_payment(cur, invoice_id: int, payment: NewPayment) -> Payment:
        cur.execute(
            """
            INSERT INTO payment(invoice_id, amount_ttc, method, reference, paid_at)
            VALUES(%s,%s,%s,%s,%s)
            """,
            (int(invoice_id), payment.amount_ttc, payment.method.value, payment.reference, payment.paid_at),
        )
        return Payment(
            payment_id=int(cur.lastrowid),
            invoice_id=int(invoice_id),
            amount_ttc=payment.amount_ttc,
            method=payment.method,
            reference=payment.reference,
            paid_at=payment.paid_at,
        )

    def apply_transition(
        self,
        *,
        invoice_id: int,
        previous_status: InvoiceStatus,
        new_status: InvoiceStatus,
        actor_id: int,
        role: Role,
        action: str,
        comment: Optional[str],
        payment: Optional[NewPayment] = None,
    ) -> tuple[ValidationLogEntry, Optional[Payment]]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE invoice SET status=%s, is_locked=%s WHERE id=%s AND status=%s",
                (
                    new_status.value,
                    0 if new_status == InvoiceStatus.PENDING else 1,
                    int(invoice_id),
                    previous_status.value,
                ),
            )
            if cur.rowcount != 1:
                raise ConcurrentModificationError("La facture a été modifiée entre-temps, rechargez-la")

            created_at = datetime.now()
            cur.execute(
                """
                INSERT INTO validation_log(invoice_id, actor_id, role, action, previous_status, new_status, comment, created_at)
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    int(invoice_id),
                    int(actor_id),
                    role.value,
                    action,
                    previous_status.value,
                    new_status.value,
                    comment,
                    created_at,
                ),
            )
            entry = ValidationLogEntry(
                log_id=int(cur.lastrowid),
                invoice_id=int(invoice_id),
                actor_id=int(actor_id),
                role=role,
                action=action,
                previous_status=previous_status,
                new_status=new_status,
                comment=comment,
                created_at=created_at,
            )

            saved_payment = self._insert_payment(cur, invoice_id, payment) if payment is not None else None
            return entry, saved_payment

    def add_payment(self, invoice_id: int, payment: NewPayment) -> Payment:
        with db_cursor(self._conn_factory) as (_, cur):
            return self._insert_payment(cur, invoice_id, payment)

    def total_paid(self, invoice_id: int) -> Decimal:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COALESCE(SUM(amount_ttc), 0) AS total FROM payment WHERE invoice_id=%s", (int(invoice_id),))
            row = fetchone(cur) or {}
            return as_decimal(row.get("total"))

    def list_payments(self, invoice_id: int) -> Sequence[Payment]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT id, invoice_id, amount_ttc, method, reference, paid_at
                FROM payment WHERE invoice_id=%s ORDER BY paid_at, id
                """,
                (int(invoice_id),),
            )
            return [_to_payment(r) for r in fetchall(cur)]

    def validation_history(self, invoice_id: int) -> Sequence[ValidationLogEntry]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT id, invoice_id, actor_id, role, action, previous_status, new_status, comment, created_at
                FROM validation_log WHERE invoice_id=%s ORDER BY created_at, id
                """,
                (int(invoice_id),),
            )
            return [_to_log(r) for r in fetchall(cur)]

    def delete_invoice(self, invoice_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM invoice_line WHERE invoice_id=%s", (int(invoice_id),))
            cur.execute("DELETE FROM payment WHERE invoice_id=%s", (int(invoice_id),))
            cur.execute("DELETE FROM invoice WHERE id=%s", (int(invoice_id),))
            return cur.rowcount > 0

    def status_counts(
        self,
        *,
        month: Optional[int] = None,
        year: Optional[int] = None,
        campus_id: Optional[int] = None,
        teacher_id: Optional[int] = None,
    ) -> dict[InvoiceStatus, int]:
        clauses, params = _period_filters(month=month, year=year, campus_id=campus_id, teacher_id=teacher_id)
        where = " AND ".join(clauses) or "1=1"
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT status, COUNT(*) AS n FROM invoice WHERE {where} GROUP BY status", tuple(params))
            counts = {status: 0 for status in InvoiceStatus}
            for r in fetchall(cur):
                counts[InvoiceStatus(r["status"])] = int(r["n"])
            return counts

    def sum_ttc(
        self,
        *,
        statuses: Sequence[InvoiceStatus],
        month: Optional[int] = None,
        year: Optional[int] = None,
        campus_id: Optional[int] = None,
        teacher_id: Optional[int] = None,
    ) -> Decimal:
        if not statuses:
            return Decimal("0.00")
        clauses, params = _period_filters(month=month, year=year, campus_id=campus_id, teacher_id=teacher_id)
        clauses.append(f"status IN ({in_clause(statuses)})")
        params.extend(s.value for s in statuses)
        where = " AND ".join(clauses)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COALESCE(SUM(total_ttc), 0) AS total FROM invoice WHERE {where}", tuple(params))
            row = fetchone(cur) or {}
            return as_decimal(row.get("total"))

    def sum_hours(self, *, teacher_id: int, month: int, year: int) -> Decimal:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT COALESCE(SUM(l.hours_qty), 0) AS hours
                FROM invoice_line l
                JOIN invoice i ON i.id = l.invoice_id
                WHERE i.teacher_id=%s AND i.month=%s AND i.year=%s
                """,
                (int(teacher_id), int(month), int(year)),
            )
            row = fetchone(cur) or {}
            return as_decimal(row.get("hours"))

    def list_pending_created_before(self, cutoff: datetime) -> Sequence[Invoice]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_INVOICE_COLUMNS} FROM invoice WHERE status=%s AND created_at < %s ORDER BY created_at",
                (InvoiceStatus.PENDING.value, cutoff),
            )
            return [_to_invoice(r) for r in fetchall(cur)]

    def create_import_record(
        self, *, teacher_id: int, filename: str, drive_url: Optional[str], total_lines: int
    ) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO invoice_import(teacher_id, filename, drive_url, total_lines, status)
                VALUES(%s,%s,%s,%s,%s)
                """,
                (int(teacher_id), filename, drive_url, int(total_lines), ImportStatus.PROCESSING.value),
            )
            return int(cur.lastrowid)

    def finish_import_record(
        self,
        import_id: int,
        *,
        status: ImportStatus,
        processed_lines: int,
        error_message: Optional[str],
    ) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE invoice_import SET status=%s, processed_lines=%s, error_message=%s WHERE id=%s",
                (status.value, int(processed_lines), error_message, int(import_id)),
            )
