"""Invoice validation state machine.

    pending --prevalidate--> prevalidated --validate--> validated --pay--> paid
       \\                         |
        `-------reject-----------'--> rejected

``rejected`` and ``paid`` are terminal. Every transition is authorized and
checked against the current status before anything is written, then the
status change and its audit row are committed together.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from ..common.datetime_utils import now_local
from ..common.validators import optional_str, parse_amount
from ..core.enums import InvoiceAction, InvoiceStatus, PaymentMethod, Role
from ..core.exceptions import AuthorizationError, InvalidTransitionError, NotFoundError, ValidationError
from ..notifications.model import DispatchResult
from ..notifications.service import NotificationService
from ..users.model import Actor
from ..users.repository import UserRepository
from .model import Invoice, NewPayment, Payment, TransitionResult, ValidationLogEntry
from .repository import InvoiceRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Edge:
    action: InvoiceAction
    sources: frozenset[InvoiceStatus]
    target: InvoiceStatus
    roles: frozenset[Role]
    label: str
    # Directors may only prevalidate invoices of their own campus.
    same_campus: bool = False


TRANSITIONS: dict[InvoiceAction, Edge] = {
    InvoiceAction.PREVALIDATE: Edge(
        action=InvoiceAction.PREVALIDATE,
        sources=frozenset({InvoiceStatus.PENDING}),
        target=InvoiceStatus.PREVALIDATED,
        roles=frozenset({Role.DIRECTEUR_CAMPUS}),
        label="Pré-validation",
        same_campus=True,
    ),
    InvoiceAction.VALIDATE: Edge(
        action=InvoiceAction.VALIDATE,
        sources=frozenset({InvoiceStatus.PREVALIDATED}),
        target=InvoiceStatus.VALIDATED,
        roles=frozenset({Role.COMPTABLE}),
        label="Validation",
    ),
    InvoiceAction.REJECT: Edge(
        action=InvoiceAction.REJECT,
        sources=frozenset({InvoiceStatus.PENDING, InvoiceStatus.PREVALIDATED}),
        target=InvoiceStatus.REJECTED,
        roles=frozenset({Role.DIRECTEUR_CAMPUS, Role.COMPTABLE}),
        label="Rejet",
    ),
    InvoiceAction.PAY: Edge(
        action=InvoiceAction.PAY,
        sources=frozenset({InvoiceStatus.VALIDATED}),
        target=InvoiceStatus.PAID,
        roles=frozenset({Role.COMPTABLE}),
        label="Paiement",
    ),
}

TERMINAL_STATUSES = frozenset({InvoiceStatus.REJECTED, InvoiceStatus.PAID})


def allowed_actions(invoice: Invoice, actor: Actor) -> list[InvoiceAction]:
    """Actions ``actor`` may take on ``invoice`` right now (for UI buttons)."""

    out: list[InvoiceAction] = []
    for action, edge in TRANSITIONS.items():
        if invoice.status not in edge.sources or actor.role not in edge.roles:
            continue
        if edge.same_campus and actor.role == Role.DIRECTEUR_CAMPUS and actor.campus_id != invoice.campus_id:
            continue
        out.append(action)
    return out


def check_transition(edge: Edge, invoice: Invoice, actor: Actor) -> None:
    if actor.role not in edge.roles:
        raise AuthorizationError(f"Action « {edge.label} » non autorisée pour le rôle {actor.role.value}")
    if edge.same_campus and actor.role == Role.DIRECTEUR_CAMPUS and (
        actor.campus_id is None or int(actor.campus_id) != int(invoice.campus_id)
    ):
        raise AuthorizationError("Cette facture n'appartient pas à votre campus")
    if invoice.status not in edge.sources:
        raise InvalidTransitionError(
            f"Impossible d'appliquer « {edge.label} » à une facture {invoice.status.label.lower()}"
        )


class InvoiceWorkflowService:
    """Use case: move invoices through the validation workflow."""

    def __init__(self, invoices: InvoiceRepository, users: UserRepository, notifications: NotificationService):
        self._invoices = invoices
        self._users = users
        self._notifications = notifications

    def _load(self, invoice_id: int) -> Invoice:
        invoice = self._invoices.get_by_id(int(invoice_id))
        if not invoice:
            raise NotFoundError("Facture introuvable")
        return invoice

    def _teacher_name(self, teacher_id: int) -> str:
        profile = self._users.get_by_id(teacher_id)
        return profile.full_name if profile else "Enseignant"

    def _dispatch(self, edge: Edge, invoice: Invoice, comment: Optional[str], payment: Optional[Payment]) -> DispatchResult:
        # Runs after the transition is committed; failures end up in the result.
        try:
            return self._notify(edge, invoice, comment, payment)
        except Exception as e:
            logger.exception("Invoice %s: notification dispatch failed", invoice.invoice_id)
            return DispatchResult(errors=(str(e),))

    def _notify(self, edge: Edge, invoice: Invoice, comment: Optional[str], payment: Optional[Payment]) -> DispatchResult:
        if edge.action == InvoiceAction.REJECT:
            return self._notifications.invoice_rejected(
                invoice.teacher_id, month=invoice.month, year=invoice.year, reason=comment
            )
        if edge.action == InvoiceAction.PREVALIDATE:
            return self._notifications.invoice_prevalidated(
                invoice.teacher_id,
                teacher_name=self._teacher_name(invoice.teacher_id),
                month=invoice.month,
                year=invoice.year,
            )
        if edge.action == InvoiceAction.VALIDATE:
            return self._notifications.invoice_validated(invoice.teacher_id, month=invoice.month, year=invoice.year)
        amount = payment.amount_ttc if payment is not None else invoice.total_ttc
        return self._notifications.payment_received(
            invoice.teacher_id, amount=amount, month=invoice.month, year=invoice.year
        )

    def _apply(
        self,
        edge: Edge,
        invoice: Invoice,
        actor: Actor,
        comment: Optional[str],
        payment: Optional[NewPayment] = None,
    ) -> TransitionResult:
        entry, saved_payment = self._invoices.apply_transition(
            invoice_id=invoice.invoice_id,
            previous_status=invoice.status,
            new_status=edge.target,
            actor_id=actor.user_id,
            role=actor.role,
            action=edge.label,
            comment=comment,
            payment=payment,
        )
        logger.info(
            "Invoice %s: %s -> %s by user %s (%s)",
            invoice.invoice_id,
            invoice.status.value,
            edge.target.value,
            actor.user_id,
            edge.label,
        )

        dispatch = self._dispatch(edge, invoice, comment, saved_payment)
        if not dispatch.ok:
            logger.warning("Invoice %s: notifications incomplete: %s", invoice.invoice_id, list(dispatch.errors))

        return TransitionResult(
            invoice_id=invoice.invoice_id,
            previous_status=invoice.status,
            new_status=edge.target,
            log_entry=entry,
            dispatch=dispatch,
            payment=saved_payment,
        )

    def transition(
        self,
        invoice_id: int,
        action: InvoiceAction,
        *,
        actor: Actor,
        comment: Optional[str] = None,
    ) -> TransitionResult:
        if action == InvoiceAction.PAY:
            return self.mark_paid(invoice_id, actor=actor)

        edge = TRANSITIONS[InvoiceAction(action)]
        invoice = self._load(invoice_id)
        check_transition(edge, invoice, actor)
        return self._apply(edge, invoice, actor, optional_str(comment))

    def prevalidate(self, invoice_id: int, *, actor: Actor, comment: Optional[str] = None) -> TransitionResult:
        return self.transition(invoice_id, InvoiceAction.PREVALIDATE, actor=actor, comment=comment)

    def validate(self, invoice_id: int, *, actor: Actor, comment: Optional[str] = None) -> TransitionResult:
        return self.transition(invoice_id, InvoiceAction.VALIDATE, actor=actor, comment=comment)

    def reject(self, invoice_id: int, *, actor: Actor, reason: Optional[str] = None) -> TransitionResult:
        return self.transition(invoice_id, InvoiceAction.REJECT, actor=actor, comment=reason)

    # -------- Payments --------
    def mark_paid(
        self,
        invoice_id: int,
        *,
        actor: Actor,
        method: PaymentMethod = PaymentMethod.VIREMENT,
        reference: Optional[str] = None,
        paid_at: Optional[datetime] = None,
    ) -> TransitionResult:
        """Pay the outstanding balance of a validated invoice and close it."""

        edge = TRANSITIONS[InvoiceAction.PAY]
        invoice = self._load(invoice_id)
        check_transition(edge, invoice, actor)

        when = paid_at or now_local()
        remaining = invoice.total_ttc - self._invoices.total_paid(invoice.invoice_id)
        payment = NewPayment(
            amount_ttc=max(remaining, Decimal("0.00")),
            method=PaymentMethod(method),
            reference=optional_str(reference) or f"AUTO-{int(when.timestamp() * 1000)}",
            paid_at=when,
        )
        return self._apply(edge, invoice, actor, f"Paiement {payment.method.value} ({payment.reference})", payment)

    def record_payment(
        self,
        invoice_id: int,
        *,
        actor: Actor,
        amount,
        method: PaymentMethod = PaymentMethod.VIREMENT,
        reference: Optional[str] = None,
        paid_at: Optional[datetime] = None,
    ) -> dict:
        """Partial payment. Closes the invoice when the balance reaches zero."""

        edge = TRANSITIONS[InvoiceAction.PAY]
        invoice = self._load(invoice_id)
        check_transition(edge, invoice, actor)

        value = parse_amount(amount)
        if value <= 0:
            raise ValidationError("Le montant doit être positif")

        already_paid = self._invoices.total_paid(invoice.invoice_id)
        remaining = invoice.total_ttc - already_paid
        if value > remaining:
            raise ValidationError(f"Montant supérieur au reste à payer ({remaining:.2f}€)")

        payment = NewPayment(
            amount_ttc=value,
            method=PaymentMethod(method),
            reference=optional_str(reference),
            paid_at=paid_at or now_local(),
        )

        if value == remaining:
            result = self._apply(edge, invoice, actor, f"Solde réglé ({value:.2f}€)", payment)
            return {"payment": result.payment, "paid_total": invoice.total_ttc, "fully_paid": True, "transition": result}

        saved = self._invoices.add_payment(invoice.invoice_id, payment)
        logger.info("Invoice %s: partial payment %s recorded", invoice.invoice_id, value)
        return {"payment": saved, "paid_total": already_paid + value, "fully_paid": False, "transition": None}

    def validation_history(self, invoice_id: int) -> Sequence[ValidationLogEntry]:
        self._load(invoice_id)
        return self._invoices.validation_history(int(invoice_id))
