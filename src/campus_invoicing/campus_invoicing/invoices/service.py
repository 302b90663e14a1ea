from __future__ import annotations

import logging
from collections import Counter
from decimal import Decimal
from typing import Optional, Sequence

from ..common.datetime_utils import now_local
from ..common.validators import optional_str, require_month_year, require_non_empty
from ..core.constants import IMPORT_ERROR_MESSAGE_LIMIT
from ..core.enums import ImportStatus, InvoiceStatus, Role
from ..core.exceptions import AuthorizationError, InvoiceLockedError, NotFoundError, ValidationError
from ..notifications.model import DispatchResult
from ..notifications.service import NotificationService
from ..reference.service import ReferenceDataService
from ..users.model import Actor
from ..users.repository import UserRepository
from .csv_import import FILIERE_ALIASES, ParsedInvoiceLine, normalize_campus_key, normalize_filiere_code
from .model import Invoice, NewInvoiceLine
from .repository import InvoiceRepository
from .workflow import allowed_actions

logger = logging.getLogger(__name__)


class InvoiceService:
    """Use case: create, import, read and delete invoices."""

    def __init__(
        self,
        invoices: InvoiceRepository,
        users: UserRepository,
        reference: ReferenceDataService,
        notifications: NotificationService,
    ):
        self._invoices = invoices
        self._users = users
        self._reference = reference
        self._notifications = notifications

    # -------- Access --------
    @staticmethod
    def can_view(invoice: Invoice, actor: Actor) -> bool:
        if actor.role in {Role.SUPER_ADMIN, Role.COMPTABLE}:
            return True
        if actor.role == Role.DIRECTEUR_CAMPUS:
            return actor.campus_id is not None and int(actor.campus_id) == invoice.campus_id
        return invoice.teacher_id == actor.user_id

    def _load_visible(self, invoice_id: int, actor: Actor) -> Invoice:
        invoice = self._invoices.get_by_id(int(invoice_id))
        if not invoice:
            raise NotFoundError("Facture introuvable")
        if not self.can_view(invoice, actor):
            raise AuthorizationError("Accès refusé à cette facture")
        return invoice

    def list_invoices(
        self,
        *,
        actor: Actor,
        status: Optional[InvoiceStatus] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
        campus_id: Optional[int] = None,
    ) -> Sequence[Invoice]:
        teacher_id: Optional[int] = None
        if actor.role == Role.ENSEIGNANT:
            teacher_id = actor.user_id
            campus_id = None
        elif actor.role == Role.DIRECTEUR_CAMPUS:
            if actor.campus_id is None:
                raise AuthorizationError("Aucun campus associé à votre compte")
            campus_id = actor.campus_id
        return self._invoices.list_invoices(
            teacher_id=teacher_id, campus_id=campus_id, status=status, month=month, year=year
        )

    def get_invoice_details(self, *, actor: Actor, invoice_id: int) -> dict:
        invoice = self._load_visible(invoice_id, actor)
        teacher = self._users.get_by_id(invoice.teacher_id)
        campus = self._reference.get_campus(invoice.campus_id)
        paid = self._invoices.total_paid(invoice.invoice_id)
        return {
            "invoice": invoice,
            "teacher": teacher,
            "campus": campus,
            "lines": list(self._invoices.list_lines(invoice.invoice_id)),
            "payments": list(self._invoices.list_payments(invoice.invoice_id)),
            "paid_total": paid,
            "remaining": invoice.total_ttc - paid,
            "history": list(self._invoices.validation_history(invoice.invoice_id)),
            "allowed_actions": [a.value for a in allowed_actions(invoice, actor)],
        }

    # -------- Creation --------
    def create_manual_invoice(
        self,
        *,
        actor: Actor,
        campus_id: int,
        month: int,
        year: int,
        lines: Sequence[NewInvoiceLine],
        notes: Optional[str] = None,
    ) -> Invoice:
        if actor.role != Role.ENSEIGNANT:
            raise AuthorizationError("Seuls les enseignants saisissent leurs factures")
        month, year = require_month_year(month, year)
        if not lines:
            raise ValidationError("Ajoutez au moins une ligne de prestation")
        if self._reference.get_campus(campus_id) is None:
            raise ValidationError("Campus inconnu")
        for ln in lines:
            require_non_empty(ln.course_title, "Intitulé du cours")
            if ln.hours_qty <= 0:
                raise ValidationError("La quantité d'heures doit être positive")
            if ln.unit_price < 0:
                raise ValidationError("Le prix unitaire ne peut pas être négatif")
            if ln.end_time <= ln.start_time:
                raise ValidationError("L'heure de fin doit être après l'heure de début")

        existing = self._invoices.find_for_period(
            teacher_id=actor.user_id, campus_id=int(campus_id), month=month, year=year
        )
        if existing and existing.status != InvoiceStatus.PENDING:
            raise InvoiceLockedError("Une facture déjà traitée existe pour cette période")

        invoice_id = (
            existing.invoice_id
            if existing
            else self._invoices.create_invoice(
                teacher_id=actor.user_id,
                campus_id=int(campus_id),
                month=month,
                year=year,
                notes=optional_str(notes),
            )
        )
        self._invoices.add_lines(invoice_id, lines)

        if not existing:
            self._announce(actor.user_id, int(campus_id), month, year)

        invoice = self._invoices.get_by_id(invoice_id)
        if not invoice:
            raise NotFoundError("Facture introuvable")
        return invoice

    def add_lines(self, *, actor: Actor, invoice_id: int, lines: Sequence[NewInvoiceLine]) -> Invoice:
        invoice = self._load_visible(invoice_id, actor)
        if invoice.teacher_id != actor.user_id:
            raise AuthorizationError("Seul l'auteur de la facture peut la modifier")
        if invoice.status != InvoiceStatus.PENDING:
            raise InvoiceLockedError("La facture n'est plus modifiable")
        self._invoices.add_lines(invoice.invoice_id, lines)
        return self._invoices.get_by_id(invoice.invoice_id) or invoice

    def _announce(self, teacher_id: int, campus_id: int, month: int, year: int) -> None:
        # The invoice lines are already stored; a failed notice must not surface.
        try:
            teacher = self._users.get_by_id(teacher_id)
            dispatch = self._notifications.director_new_invoice(
                campus_id,
                teacher_name=teacher.full_name if teacher else "Un enseignant",
                month=month,
                year=year,
            )
        except Exception as e:
            logger.exception("New invoice notification for campus %s failed", campus_id)
            dispatch = DispatchResult(errors=(str(e),))
        if not dispatch.ok:
            logger.warning("New invoice notifications incomplete: %s", list(dispatch.errors))

    def import_invoice(
        self,
        *,
        actor: Actor,
        lines: Sequence[ParsedInvoiceLine],
        filename: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
        drive_url: Optional[str] = None,
    ) -> dict:
        """Attach parsed CSV lines to the teacher's invoice for the period.

        The invoice campus is the most frequent line campus. Lines with an
        unknown campus are reported and skipped; unknown filières fall back
        to the first active filière and are reported.
        """

        if actor.role != Role.ENSEIGNANT:
            raise AuthorizationError("Seuls les enseignants importent leurs factures")

        today = now_local().date()
        month, year = require_month_year(month or today.month, year or today.year)
        filename = optional_str(filename) or "facture.csv"

        import_id = self._invoices.create_import_record(
            teacher_id=actor.user_id, filename=filename, drive_url=optional_str(drive_url), total_lines=len(lines)
        )
        try:
            result = self._import_lines(actor, lines, filename, month, year, optional_str(drive_url))
        except Exception as e:
            self._invoices.finish_import_record(
                import_id, status=ImportStatus.FAILED, processed_lines=0, error_message=str(e)
            )
            raise

        errors = result["errors"]
        self._invoices.finish_import_record(
            import_id,
            status=ImportStatus.COMPLETED,
            processed_lines=result["processedLines"],
            error_message="; ".join(errors[:IMPORT_ERROR_MESSAGE_LIMIT]) or None,
        )
        logger.info(
            "Invoice import %s by user %s: %d/%d lines",
            filename,
            actor.user_id,
            result["processedLines"],
            result["totalLines"],
        )
        return result

    def _import_lines(
        self,
        actor: Actor,
        lines: Sequence[ParsedInvoiceLine],
        filename: str,
        month: int,
        year: int,
        drive_url: Optional[str],
    ) -> dict:
        campuses = self._reference.list_campuses()
        filieres = self._reference.list_filieres()
        if not campuses:
            raise ValidationError("Aucun campus trouvé")
        if not filieres:
            raise ValidationError("Aucune filière trouvée")

        campus_map = {normalize_campus_key(c.name): c.campus_id for c in campuses}
        filiere_map = {normalize_filiere_code(f.code): f.filiere_id for f in filieres}
        for alias, code in FILIERE_ALIASES.items():
            if code in filiere_map:
                filiere_map.setdefault(alias, filiere_map[code])
        default_filiere_id = filieres[0].filiere_id

        complete = [ln for ln in lines if ln.is_complete]
        if not complete:
            raise ValidationError("Aucune ligne valide dans le fichier")

        frequency = Counter(normalize_campus_key(ln.campus) for ln in complete)
        main_campus_id: Optional[int] = None
        for key, _ in frequency.most_common():
            if key in campus_map:
                main_campus_id = campus_map[key]
                break
        if main_campus_id is None:
            raise ValidationError(f"Campus inconnu: {complete[0].campus}")

        errors: list[str] = []
        unknown_filieres: set[str] = set()
        class_maps: dict[int, dict[str, int]] = {}
        valid: list[NewInvoiceLine] = []

        for ln in complete:
            campus_id = campus_map.get(normalize_campus_key(ln.campus))
            if campus_id is None:
                errors.append(f'Ligne {ln.row_number}: Campus inconnu "{ln.campus}"')
                continue

            code = normalize_filiere_code(ln.filiere)
            filiere_id = filiere_map.get(code)
            if filiere_id is None:
                filiere_id = default_filiere_id
                unknown_filieres.add(code)

            if campus_id not in class_maps:
                class_maps[campus_id] = {
                    c.label.casefold(): c.class_id for c in self._reference.list_classes(campus_id=campus_id)
                }

            valid.append(
                NewInvoiceLine(
                    date=ln.date,
                    start_time=ln.start_time,
                    end_time=ln.end_time,
                    hours_qty=ln.hours_qty,
                    unit_price=ln.unit_price,
                    course_title=ln.course_title,
                    campus_id=campus_id,
                    filiere_id=filiere_id,
                    class_id=class_maps[campus_id].get(ln.class_label.casefold()),
                    is_late=ln.is_late,
                    observations=ln.class_label or None,
                )
            )

        if not valid:
            raise ValidationError("Aucune ligne valide: " + "; ".join(errors[:IMPORT_ERROR_MESSAGE_LIMIT]))

        existing = self._invoices.find_for_period(
            teacher_id=actor.user_id, campus_id=main_campus_id, month=month, year=year
        )
        if existing and existing.status != InvoiceStatus.PENDING:
            raise InvoiceLockedError("Une facture déjà traitée existe pour cette période")

        invoice_id = (
            existing.invoice_id
            if existing
            else self._invoices.create_invoice(
                teacher_id=actor.user_id,
                campus_id=main_campus_id,
                month=month,
                year=year,
                original_filename=filename,
                drive_pdf_url=drive_url,
            )
        )
        self._invoices.add_lines(invoice_id, valid)
        if not existing:
            self._announce(actor.user_id, main_campus_id, month, year)

        return {
            "success": True,
            "invoiceId": invoice_id,
            "created": existing is None,
            "totalLines": len(lines),
            "processedLines": len(valid),
            "skippedLines": len(lines) - len(complete),
            "totalAmount": str(sum((ln.amount for ln in valid), Decimal("0.00"))),
            "errors": errors,
            "unknownFilieres": sorted(unknown_filieres),
        }

    # -------- Deletion --------
    def delete_invoice(self, *, actor: Actor, invoice_id: int) -> None:
        if actor.role != Role.SUPER_ADMIN:
            raise AuthorizationError("Seuls les super administrateurs peuvent supprimer une facture")
        if not self._invoices.delete_invoice(int(invoice_id)):
            raise NotFoundError("Facture introuvable")
        logger.info("Invoice %s deleted by user %s", invoice_id, actor.user_id)
