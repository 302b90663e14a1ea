from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """User roles used for authorization."""

    SUPER_ADMIN = "SUPER_ADMIN"
    COMPTABLE = "COMPTABLE"
    DIRECTEUR_CAMPUS = "DIRECTEUR_CAMPUS"
    ENSEIGNANT = "ENSEIGNANT"


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status as stored in the database."""

    PENDING = "pending"
    PREVALIDATED = "prevalidated"
    VALIDATED = "validated"
    REJECTED = "rejected"
    PAID = "paid"

    @property
    def label(self) -> str:
        return {
            InvoiceStatus.PENDING: "En attente",
            InvoiceStatus.PREVALIDATED: "Pré-validée",
            InvoiceStatus.VALIDATED: "Validée",
            InvoiceStatus.REJECTED: "Rejetée",
            InvoiceStatus.PAID: "Payée",
        }[self]


class InvoiceAction(str, Enum):
    PREVALIDATE = "prevalidate"
    VALIDATE = "validate"
    REJECT = "reject"
    PAY = "pay"


class PaymentMethod(str, Enum):
    VIREMENT = "virement"
    CHEQUE = "cheque"
    ESPECES = "especes"
    AUTRE = "autre"


class NotificationType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class ResetScope(str, Enum):
    """Which users a bulk password reset targets."""

    NEW_TEACHERS = "new_teachers"
    ALL_TEACHERS = "all_teachers"
    ALL_USERS = "all_users"


class RequestStatus(str, Enum):
    """Status of an account creation request submitted by a campus director."""

    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    REJECTED = "rejected"


class ImportStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
