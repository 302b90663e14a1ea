from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Optional, Sequence

from werkzeug.security import generate_password_hash

from ..common.csv_utils import write_quoted_csv
from ..common.datetime_utils import format_fr_date, now_local
from ..common.passwords import generate_temp_password
from ..common.validators import optional_str, require_email, require_min_length, require_non_empty
from ..core.constants import (
    DEFAULT_CLEANUP_RETRIES,
    DEFAULT_HOURLY_RATE_MAX,
    DEFAULT_HOURLY_RATE_MIN,
    DEFAULT_TEMP_PASSWORD_TTL_DAYS,
    MIN_PASSWORD_LENGTH,
)
from ..core.enums import NotificationType, ResetScope, Role
from ..core.exceptions import AuthorizationError, ProvisioningError, ValidationError
from ..notifications.service import NotificationService
from ..reference.service import ReferenceDataService
from ..users.model import Actor
from ..users.repository import IdentityRepository, UserRepository
from .model import AccountResult
from .repository import CredentialRepository

logger = logging.getLogger(__name__)

EXPORT_HEADER = (
    "Email",
    "Mot de passe temporaire",
    "Prénom",
    "Nom",
    "Rôle",
    "Campus",
    "Date de création",
    "Déjà exporté",
)

ACCESS_NOTIFICATION_TITLE = "Nouvelles informations de connexion"


def _require_super_admin(actor: Actor) -> None:
    if actor.role != Role.SUPER_ADMIN:
        raise AuthorizationError("Accès réservé aux super administrateurs")


class ProvisioningService:
    """Use case: create accounts and issue, reset, export temporary passwords."""

    def __init__(
        self,
        identities: IdentityRepository,
        users: UserRepository,
        credentials: CredentialRepository,
        notifications: NotificationService,
        reference: ReferenceDataService,
        *,
        login_url: str = "",
        temp_password_ttl_days: int = DEFAULT_TEMP_PASSWORD_TTL_DAYS,
        cleanup_retries: int = DEFAULT_CLEANUP_RETRIES,
    ):
        self._identities = identities
        self._users = users
        self._credentials = credentials
        self._notifications = notifications
        self._reference = reference
        self._login_url = login_url
        self._ttl = timedelta(days=int(temp_password_ttl_days))
        self._cleanup_retries = max(1, int(cleanup_retries))

    def _issue(self, *, user_id: int, email: str, password: str, created_by: Optional[int]) -> None:
        self._credentials.add(
            user_id=user_id,
            email=email,
            temp_password=password,
            created_by=created_by,
            expires_at=now_local() + self._ttl,
        )

    # -------- Account creation --------
    def create_account(
        self,
        *,
        actor: Actor,
        first_name: str,
        last_name: str,
        email: str,
        role: Role,
        campus_id: Optional[int] = None,
        phone: Optional[str] = None,
        password: Optional[str] = None,
        is_new_teacher: bool = False,
        hire_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> AccountResult:
        """Identity, credential row, profile and (for teachers) teacher profile.

        An existing profile for the email is returned as ``already_exists``.
        If a step after the identity insert fails, the identity is deleted
        again (retried), and super admins are alerted when that also fails.
        """

        _require_super_admin(actor)

        first_name = require_non_empty(first_name, "Prénom")
        last_name = require_non_empty(last_name, "Nom")
        email = require_email(email)
        role = Role(role)
        if role == Role.DIRECTEUR_CAMPUS and campus_id is None:
            raise ValidationError("Un directeur de campus doit être rattaché à un campus")
        if password:
            require_min_length(password, "Mot de passe", MIN_PASSWORD_LENGTH)

        existing = self._users.get_by_email(email)
        if existing:
            return AccountResult(
                user_id=existing.user_id,
                email=email,
                full_name=existing.full_name,
                temporary_password=None,
                already_exists=True,
            )
        if self._identities.get_by_email(email):
            raise ValidationError(f"Un compte de connexion existe déjà pour {email}")

        temp_password = password or generate_temp_password()
        user_id = self._identities.create(email=email, password_hash=generate_password_hash(temp_password))

        try:
            self._issue(user_id=user_id, email=email, password=temp_password, created_by=actor.user_id)
            self._users.upsert_profile(
                user_id=user_id,
                email=email,
                first_name=first_name,
                last_name=last_name,
                role=role,
                campus_id=int(campus_id) if campus_id is not None else None,
                phone=optional_str(phone),
                is_new_teacher=bool(is_new_teacher) if role == Role.ENSEIGNANT else None,
                hire_date=hire_date,
                notes=optional_str(notes),
            )
            if role == Role.ENSEIGNANT:
                self._users.ensure_teacher_profile(
                    user_id, rate_min=DEFAULT_HOURLY_RATE_MIN, rate_max=DEFAULT_HOURLY_RATE_MAX
                )
        except Exception as e:
            logger.exception("Provisioning failed for %s after identity %s was created", email, user_id)
            self._compensate(user_id, email, e)
            raise ProvisioningError(f"Création du compte {email} impossible: {e}") from e

        logger.info("Account %s created for %s (%s)", user_id, email, role.value)
        return AccountResult(
            user_id=user_id,
            email=email,
            full_name=f"{first_name} {last_name}",
            temporary_password=temp_password,
        )

    def _compensate(self, user_id: int, email: str, cause: Exception) -> bool:
        for attempt in range(1, self._cleanup_retries + 1):
            try:
                self._identities.delete(user_id)
            except Exception:
                logger.warning(
                    "Cleanup of identity %s failed (attempt %d/%d)",
                    user_id,
                    attempt,
                    self._cleanup_retries,
                    exc_info=True,
                )
                continue
            logger.info("Identity %s removed after failed provisioning", user_id)
            return True

        logger.error(
            "Identity %s (%s) left without profile after %d cleanup attempts", user_id, email, self._cleanup_retries
        )
        self._notifications.system_alert(
            "provisioning",
            f"Le compte {email} (id {user_id}) a été créé sans profil et n'a pas pu être supprimé. "
            f"Erreur initiale: {cause}",
        )
        return False

    # -------- Password resets --------
    def user_ids_for_scope(self, scope: ResetScope, *, exclude: Optional[int] = None) -> list[int]:
        scope = ResetScope(scope)
        if scope == ResetScope.NEW_TEACHERS:
            ids = list(self._users.list_new_teacher_ids())
        elif scope == ResetScope.ALL_TEACHERS:
            ids = list(self._users.list_active_ids_by_role(Role.ENSEIGNANT))
        else:
            ids = [p.user_id for p in self._users.list_users(active_only=True)]
        return [uid for uid in ids if exclude is None or uid != int(exclude)]

    def reset_passwords(
        self,
        *,
        actor: Actor,
        user_ids: Optional[Sequence[int]] = None,
        scope: Optional[ResetScope] = None,
    ) -> dict:
        """New temporary password per user; a credential row is appended each time."""

        _require_super_admin(actor)

        if user_ids:
            targets = [int(uid) for uid in user_ids]
        elif scope is not None:
            targets = self.user_ids_for_scope(scope, exclude=actor.user_id)
        else:
            raise ValidationError("Aucun utilisateur sélectionné")
        if not targets:
            raise ValidationError("Aucun utilisateur ne correspond à la sélection")

        logger.info("Resetting passwords for %d users (scope=%s)", len(targets), scope.value if scope else "ids")
        results: list[dict] = []
        errors: list[str] = []
        for uid in targets:
            try:
                row = self._reset_one(uid, created_by=actor.user_id)
            except ValidationError as e:
                errors.append(f"{uid}: {e}")
                continue
            except Exception as e:
                logger.exception("Password reset failed for user %s", uid)
                errors.append(f"{uid}: {e}")
                continue
            results.append(row)

        logger.info("Password reset: %d/%d succeeded", len(results), len(targets))
        return {
            "success_count": len(results),
            "total_count": len(targets),
            "results": results,
            "errors": errors,
        }

    def _reset_one(self, uid: int, *, created_by: int) -> dict:
        profile = self._users.get_by_id(uid)
        if not profile:
            raise ValidationError("profil introuvable")

        password = generate_temp_password()
        if not self._identities.update_password(uid, password_hash=generate_password_hash(password)):
            raise ValidationError("compte de connexion introuvable")
        self._issue(user_id=uid, email=profile.email, password=password, created_by=created_by)

        campus = self._reference.get_campus(profile.campus_id) if profile.campus_id else None
        return {
            "user_id": uid,
            "email": profile.email,
            "first_name": profile.first_name,
            "last_name": profile.last_name,
            "role": profile.role.value,
            "campus": campus.name if campus else None,
            "temporary_password": password,
            "reset_date": now_local().isoformat(timespec="seconds"),
            "login_url": self._login_url,
        }

    def generate_missing_credentials(self, *, actor: Actor) -> dict:
        """Issue a password to every active user that never received one."""

        _require_super_admin(actor)

        profiles = self._users.list_users(active_only=True)
        have_credentials = self._credentials.user_ids_with_credentials()
        created: list[dict] = []
        errors: list[str] = []

        for profile in profiles:
            if profile.user_id in have_credentials:
                continue
            password = generate_temp_password()
            try:
                if not self._identities.update_password(profile.user_id, password_hash=generate_password_hash(password)):
                    errors.append(f"{profile.email}: compte de connexion introuvable")
                    continue
                self._issue(user_id=profile.user_id, email=profile.email, password=password, created_by=actor.user_id)
            except Exception as e:
                logger.exception("Temporary password generation failed for %s", profile.email)
                errors.append(f"{profile.email}: {e}")
                continue
            created.append({"email": profile.email, "name": profile.full_name, "password": password})

        logger.info("Generated %d missing temporary passwords", len(created))
        return {
            "processed": len(created),
            "total": len(profiles),
            "alreadyExisting": len(profiles) - len(created) - len(errors),
            "createdPasswords": created,
            "errors": errors,
        }

    # -------- Export / delivery --------
    def export_credentials_csv(self, *, actor: Actor) -> bytes:
        """Every credential row, newest first; flags the rows as exported.

        Expired passwords are listed with an empty password cell.
        """

        _require_super_admin(actor)

        now = now_local()
        rows = self._credentials.list_for_export()
        body = [
            (
                r.email,
                "" if r.expires_at is not None and r.expires_at <= now else r.temp_password,
                r.first_name,
                r.last_name,
                r.role.value if r.role else "",
                r.campus_name or "",
                format_fr_date(r.created_at),
                "Oui" if r.exported_at else "Non",
            )
            for r in rows
        ]
        data = write_quoted_csv(EXPORT_HEADER, body)
        self._credentials.mark_exported([r.credential_id for r in rows], exported_at=now)
        logger.info("Exported %d credential rows", len(rows))
        return data

    def send_access_notifications(self, *, actor: Actor, access_info: Sequence[dict]) -> dict:
        """Deliver login details to each user as an in-app notification."""

        _require_super_admin(actor)

        success_count = 0
        errors: list[str] = []
        for info in access_info:
            email = (info.get("email") or "").strip().lower()
            profile = self._users.get_by_email(email) if email else None
            if not profile:
                errors.append(f"{email or 'inconnu'}: utilisateur introuvable")
                continue

            message = (
                f"Bonjour {info.get('first_name') or profile.first_name},\n\n"
                "Vos informations de connexion ont été réinitialisées :\n\n"
                f"Email : {profile.email}\n"
                f"Mot de passe temporaire : {info.get('temporary_password') or ''}\n"
                f"URL de connexion : {info.get('login_url') or self._login_url}\n\n"
                "Veuillez vous connecter et changer votre mot de passe."
            )
            dispatch = self._notifications.notify(profile.user_id, NotificationType.INFO, ACCESS_NOTIFICATION_TITLE, message)
            if dispatch.ok:
                success_count += 1
            else:
                errors.extend(dispatch.errors)

        return {
            "success_count": success_count,
            "total": len(access_info),
            "errors": errors,
            "message": f"{success_count} notifications créées.",
        }

    def purge_expired_credentials(self, *, now: Optional[datetime] = None) -> int:
        removed = self._credentials.purge_expired(now=now or now_local())
        if removed:
            logger.info("Purged %d expired temporary credentials", removed)
        return removed
