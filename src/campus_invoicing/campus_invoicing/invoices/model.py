from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from ..core.enums import InvoiceStatus, PaymentMethod, Role
from ..notifications.model import DispatchResult


@dataclass(frozen=True)
class Invoice:
    invoice_id: int
    teacher_id: int
    campus_id: int
    month: int
    year: int
    total_ht: Decimal
    total_ttc: Decimal
    status: InvoiceStatus
    is_locked: bool = False
    notes: Optional[str] = None
    observations: Optional[str] = None
    original_filename: Optional[str] = None
    drive_pdf_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class NewInvoiceLine:
    """A billable session before it is attached to an invoice."""

    date: date
    start_time: time
    end_time: time
    hours_qty: Decimal
    unit_price: Decimal
    course_title: str
    campus_id: int
    filiere_id: int
    class_id: Optional[int] = None
    is_late: bool = False
    observations: Optional[str] = None

    @property
    def amount(self) -> Decimal:
        return (self.hours_qty * self.unit_price).quantize(Decimal("0.01"))


@dataclass(frozen=True)
class InvoiceLine:
    line_id: int
    invoice_id: int
    date: date
    start_time: time
    end_time: time
    hours_qty: Decimal
    unit_price: Decimal
    course_title: str
    campus_id: int
    filiere_id: int
    class_id: Optional[int] = None
    is_late: bool = False
    observations: Optional[str] = None

    @property
    def amount(self) -> Decimal:
        return (self.hours_qty * self.unit_price).quantize(Decimal("0.01"))


@dataclass(frozen=True)
class ValidationLogEntry:
    """Append-only audit row for one status change."""

    log_id: int
    invoice_id: int
    actor_id: int
    role: Role
    action: str
    previous_status: Optional[InvoiceStatus]
    new_status: Optional[InvoiceStatus]
    comment: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class NewPayment:
    amount_ttc: Decimal
    method: PaymentMethod
    reference: Optional[str]
    paid_at: datetime


@dataclass(frozen=True)
class Payment:
    payment_id: int
    invoice_id: int
    amount_ttc: Decimal
    method: PaymentMethod
    reference: Optional[str]
    paid_at: datetime


@dataclass(frozen=True)
class TransitionResult:
    invoice_id: int
    previous_status: InvoiceStatus
    new_status: InvoiceStatus
    log_entry: ValidationLogEntry
    dispatch: DispatchResult = field(default_factory=DispatchResult)
    payment: Optional[Payment] = None

    @property
    def side_effects_ok(self) -> bool:
        return self.dispatch.ok

    def to_dict(self) -> dict:
        out = {
            "invoice_id": self.invoice_id,
            "previous_status": self.previous_status.value,
            "new_status": self.new_status.value,
            "action": self.log_entry.action,
            "side_effects_ok": self.side_effects_ok,
            "notifications": self.dispatch.to_dict(),
        }
        if self.payment is not None:
            out["payment"] = {
                "payment_id": self.payment.payment_id,
                "amount_ttc": str(self.payment.amount_ttc),
                "method": self.payment.method.value,
                "reference": self.payment.reference,
            }
        return out
