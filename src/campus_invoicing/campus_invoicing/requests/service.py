from __future__ import annotations

import logging
from typing import Optional, Sequence

from ..common.validators import optional_str, require_email, require_non_empty
from ..core.enums import NotificationType, RequestStatus, Role
from ..core.exceptions import AuthorizationError, NotFoundError, ValidationError
from ..credentials.model import AccountResult
from ..credentials.service import ProvisioningService
from ..notifications.service import NotificationService
from ..users.model import Actor
from ..users.repository import UserRepository
from .model import UserCreationRequest
from .repository import UserRequestRepository

logger = logging.getLogger(__name__)

REQUESTABLE_ROLES = frozenset({Role.ENSEIGNANT, Role.DIRECTEUR_CAMPUS})


class UserRequestService:
    """Use case: directors request accounts, super admins decide and provision.

    pending -> approved -> completed, or pending/approved -> rejected.
    """

    def __init__(
        self,
        requests: UserRequestRepository,
        users: UserRepository,
        provisioning: ProvisioningService,
        notifications: NotificationService,
    ):
        self._requests = requests
        self._users = users
        self._provisioning = provisioning
        self._notifications = notifications

    def _get(self, request_id: int) -> UserCreationRequest:
        req = self._requests.get_by_id(int(request_id))
        if not req:
            raise NotFoundError("Demande introuvable")
        return req

    def submit(
        self,
        *,
        actor: Actor,
        first_name: str,
        last_name: str,
        email: str,
        role: Role,
        phone: Optional[str] = None,
        justification: Optional[str] = None,
    ) -> int:
        if actor.role != Role.DIRECTEUR_CAMPUS:
            raise AuthorizationError("Seuls les directeurs de campus peuvent demander un compte")
        if actor.campus_id is None:
            raise AuthorizationError("Aucun campus associé à votre compte")

        role = Role(role)
        if role not in REQUESTABLE_ROLES:
            raise ValidationError("Rôle non autorisé pour une demande")

        first_name = require_non_empty(first_name, "Prénom")
        last_name = require_non_empty(last_name, "Nom")
        email = require_email(email)
        if self._users.get_by_email(email):
            raise ValidationError(f"Un compte existe déjà pour {email}")

        request_id = self._requests.create(
            requested_by=actor.user_id,
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=optional_str(phone),
            role=role,
            campus_id=int(actor.campus_id),
            justification=optional_str(justification),
        )

        requester = self._users.get_by_id(actor.user_id)
        self._notifications.new_user_request(
            requester_name=requester.full_name if requester else "Un directeur",
            new_user_name=f"{first_name} {last_name}",
        )
        return request_id

    def list_requests(self, *, actor: Actor, status: Optional[RequestStatus] = None) -> Sequence[UserCreationRequest]:
        if actor.role == Role.SUPER_ADMIN:
            return self._requests.list_requests(status=status)
        if actor.role == Role.DIRECTEUR_CAMPUS:
            return self._requests.list_requests(status=status, requested_by=actor.user_id)
        raise AuthorizationError("Accès refusé")

    def approve(self, *, actor: Actor, request_id: int) -> None:
        if actor.role != Role.SUPER_ADMIN:
            raise AuthorizationError("Accès réservé aux super administrateurs")
        self._get(request_id)
        if not self._requests.decide(
            request_id=int(request_id),
            from_statuses=[RequestStatus.PENDING],
            status=RequestStatus.APPROVED,
            processed_by=actor.user_id,
        ):
            raise ValidationError("La demande a déjà été traitée")

    def reject(self, *, actor: Actor, request_id: int, reason: str) -> None:
        if actor.role != Role.SUPER_ADMIN:
            raise AuthorizationError("Accès réservé aux super administrateurs")
        reason = require_non_empty(reason, "Motif du refus")
        req = self._get(request_id)
        if not self._requests.decide(
            request_id=req.request_id,
            from_statuses=[RequestStatus.PENDING, RequestStatus.APPROVED],
            status=RequestStatus.REJECTED,
            processed_by=actor.user_id,
            rejection_reason=reason,
        ):
            raise ValidationError("La demande ne peut plus être refusée")

        self._notifications.notify(
            req.requested_by,
            NotificationType.WARNING,
            "Demande de compte refusée",
            f"La demande de création de compte pour {req.full_name} a été refusée. Motif: {reason}",
        )

    def complete(self, *, actor: Actor, request_id: int) -> AccountResult:
        """Create the requested account; an existing account also completes the request."""

        if actor.role != Role.SUPER_ADMIN:
            raise AuthorizationError("Accès réservé aux super administrateurs")
        req = self._get(request_id)
        if req.status != RequestStatus.APPROVED:
            raise ValidationError("Seule une demande approuvée peut être finalisée")

        account = self._provisioning.create_account(
            actor=actor,
            first_name=req.first_name,
            last_name=req.last_name,
            email=req.email,
            role=req.role,
            campus_id=req.campus_id,
            phone=req.phone,
            is_new_teacher=req.role == Role.ENSEIGNANT,
        )

        if not self._requests.decide(
            request_id=req.request_id,
            from_statuses=[RequestStatus.APPROVED],
            status=RequestStatus.COMPLETED,
            processed_by=actor.user_id,
        ):
            raise ValidationError("La demande a été modifiée entre-temps")

        logger.info("User request %s completed (user %s)", req.request_id, account.user_id)
        self._notifications.notify(
            req.requested_by,
            NotificationType.SUCCESS,
            "Compte créé",
            f"Le compte de {req.full_name} ({req.email}) est disponible.",
        )
        return account
