from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional, Protocol, Sequence

from ..core.constants import DEFAULT_LIST_LIMIT
from ..core.enums import ImportStatus, InvoiceStatus, Role
from .model import Invoice, InvoiceLine, NewInvoiceLine, NewPayment, Payment, ValidationLogEntry


class InvoiceRepository(Protocol):
    """Invoices, their lines, payments and the validation audit log."""

    def get_by_id(self, invoice_id: int) -> Optional[Invoice]:
        raise NotImplementedError

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
        raise NotImplementedError

    def find_for_period(self, *, teacher_id: int, campus_id: int, month: int, year: int) -> Optional[Invoice]:
        raise NotImplementedError

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
        raise NotImplementedError

    def add_lines(self, invoice_id: int, lines: Sequence[NewInvoiceLine]) -> int:
        """Insert lines and refresh totals; raises InvoiceLockedError unless pending."""
        raise NotImplementedError

    def list_lines(self, invoice_id: int) -> Sequence[InvoiceLine]:
        raise NotImplementedError

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
        """Status change + audit row (+ payment) in one transaction.

        Raises ConcurrentModificationError when the invoice is no longer in
        ``previous_status``.
        """
        raise NotImplementedError

    def add_payment(self, invoice_id: int, payment: NewPayment) -> Payment:
        raise NotImplementedError

    def total_paid(self, invoice_id: int) -> Decimal:
        raise NotImplementedError

    def list_payments(self, invoice_id: int) -> Sequence[Payment]:
        raise NotImplementedError

    def validation_history(self, invoice_id: int) -> Sequence[ValidationLogEntry]:
        raise NotImplementedError

    def delete_invoice(self, invoice_id: int) -> bool:
        raise NotImplementedError

    def status_counts(
        self,
        *,
        month: Optional[int] = None,
        year: Optional[int] = None,
        campus_id: Optional[int] = None,
        teacher_id: Optional[int] = None,
    ) -> dict[InvoiceStatus, int]:
        raise NotImplementedError

    def sum_ttc(
        self,
        *,
        statuses: Sequence[InvoiceStatus],
        month: Optional[int] = None,
        year: Optional[int] = None,
        campus_id: Optional[int] = None,
        teacher_id: Optional[int] = None,
    ) -> Decimal:
        raise NotImplementedError

    def sum_hours(self, *, teacher_id: int, month: int, year: int) -> Decimal:
        raise NotImplementedError

    def list_pending_created_before(self, cutoff: datetime) -> Sequence[Invoice]:
        raise NotImplementedError

    def create_import_record(
        self, *, teacher_id: int, filename: str, drive_url: Optional[str], total_lines: int
    ) -> int:
        raise NotImplementedError

    def finish_import_record(
        self,
        import_id: int,
        *,
        status: ImportStatus,
        processed_lines: int,
        error_message: Optional[str],
    ) -> None:
        raise NotImplementedError
