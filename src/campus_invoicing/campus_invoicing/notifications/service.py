from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from ..core.enums import NotificationType, Role
from ..core.exceptions import NotFoundError
from ..users.repository import UserRepository
from .model import DispatchResult, Notification
from .repository import NotificationRepository

logger = logging.getLogger(__name__)


class NotificationService:
    """Insert-and-poll notifications.

    Dispatch never raises into the caller: failures are logged and reported
    through ``DispatchResult``.
    """

    def __init__(self, notifications: NotificationRepository, users: UserRepository):
        self._notifications = notifications
        self._users = users

    # -------- Dispatch --------
    def notify(self, user_id: int, type: NotificationType, title: str, message: str) -> DispatchResult:
        try:
            self._notifications.create(user_id=int(user_id), type=type, title=title, message=message)
        except Exception as e:
            logger.exception("Notification insert failed for user %s (%s)", user_id, title)
            return DispatchResult(attempted=1, delivered=0, errors=(f"{user_id}: {e}",))
        return DispatchResult(attempted=1, delivered=1)

    def notify_many(
        self, user_ids: Iterable[int], type: NotificationType, title: str, message: str
    ) -> DispatchResult:
        result = DispatchResult()
        for uid in user_ids:
            result = result.merge(self.notify(uid, type, title, message))
        return result

    def notify_role(
        self,
        role: Role,
        type: NotificationType,
        title: str,
        message: str,
        *,
        campus_id: Optional[int] = None,
    ) -> DispatchResult:
        try:
            recipients = self._users.list_active_ids_by_role(role, campus_id=campus_id)
        except Exception as e:
            logger.exception("Could not resolve recipients for role %s", role.value)
            return DispatchResult(errors=(f"{role.value}: {e}",))
        return self.notify_many(recipients, type, title, message)

    def notify_campus_directors(
        self, campus_id: int, type: NotificationType, title: str, message: str
    ) -> DispatchResult:
        return self.notify_role(Role.DIRECTEUR_CAMPUS, type, title, message, campus_id=int(campus_id))

    # -------- Recipient side --------
    def list_for_user(self, user_id: int, *, unread_only: bool = False) -> Sequence[Notification]:
        return self._notifications.list_for_user(int(user_id), unread_only=unread_only)

    def mark_read(self, *, user_id: int, notification_id: int) -> None:
        if not self._notifications.mark_read(user_id=int(user_id), notification_id=int(notification_id)):
            raise NotFoundError("Notification introuvable")

    def mark_all_read(self, user_id: int) -> int:
        return self._notifications.mark_all_read(int(user_id))

    def unread_count(self, user_id: int) -> int:
        return self._notifications.count_unread(int(user_id))

    # -------- Typed helpers --------
    def invoice_rejected(self, teacher_id: int, *, month: int, year: int, reason: Optional[str]) -> DispatchResult:
        return self.notify(
            teacher_id,
            NotificationType.ERROR,
            "Facture rejetée",
            f"Votre facture {month}/{year} a été rejetée. Motif: {reason or 'Aucun motif spécifié'}",
        )

    def invoice_prevalidated(
        self, teacher_id: int, *, teacher_name: str, month: int, year: int
    ) -> DispatchResult:
        to_teacher = self.notify(
            teacher_id,
            NotificationType.INFO,
            "Facture prévalidée",
            f"Votre facture {month}/{year} a été prévalidée par la direction du campus.",
        )
        to_accounting = self.notify_role(
            Role.COMPTABLE,
            NotificationType.INFO,
            "Facture prévalidée",
            f"La facture {month}/{year} de {teacher_name} est prête pour validation finale.",
        )
        return to_teacher.merge(to_accounting)

    def invoice_validated(self, teacher_id: int, *, month: int, year: int) -> DispatchResult:
        return self.notify(
            teacher_id,
            NotificationType.SUCCESS,
            "Facture validée",
            f"Votre facture {month}/{year} a été validée et est prête pour le paiement.",
        )

    def payment_received(self, teacher_id: int, *, amount: Decimal, month: int, year: int) -> DispatchResult:
        return self.notify(
            teacher_id,
            NotificationType.SUCCESS,
            "Paiement reçu",
            f"Votre paiement de {Decimal(amount):.2f}€ pour la facture {month}/{year} a été traité.",
        )

    def missing_rib(self, teacher_id: int) -> DispatchResult:
        return self.notify(
            teacher_id,
            NotificationType.WARNING,
            "RIB manquant",
            "Veuillez compléter vos informations bancaires pour recevoir vos paiements.",
        )

    def director_new_invoice(
        self, campus_id: int, *, teacher_name: str, month: int, year: int
    ) -> DispatchResult:
        return self.notify_campus_directors(
            campus_id,
            NotificationType.INFO,
            "Nouvelle facture à prévalider",
            f"{teacher_name} a soumis sa facture {month}/{year} pour prévalidation.",
        )

    def new_user_request(self, *, requester_name: str, new_user_name: str) -> DispatchResult:
        return self.notify_role(
            Role.SUPER_ADMIN,
            NotificationType.INFO,
            "Nouvelle demande utilisateur",
            f"{requester_name} demande la création d'un compte pour {new_user_name}.",
        )

    def system_alert(self, alert_type: str, details: str) -> DispatchResult:
        return self.notify_role(
            Role.SUPER_ADMIN,
            NotificationType.ERROR,
            f"Alerte système: {alert_type}",
            details,
        )
