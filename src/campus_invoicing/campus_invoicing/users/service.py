from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Sequence

from werkzeug.security import check_password_hash, generate_password_hash

from ..common.datetime_utils import now_local
from ..common.validators import normalize_bic, normalize_iban, optional_str, require_min_length
from ..core.constants import (
    DEFAULT_HOURLY_RATE_MAX,
    DEFAULT_HOURLY_RATE_MIN,
    DEFAULT_LOGIN_LOCKOUT_MINUTES,
    DEFAULT_LOGIN_MAX_ATTEMPTS,
    MIN_PASSWORD_LENGTH,
)
from ..core.enums import Role
from ..core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    LoginBlockedError,
    NotFoundError,
    ValidationError,
)
from ..credentials.repository import CredentialRepository
from .captcha import CaptchaVerifier
from .model import Actor, Profile, TeacherProfile
from .repository import IdentityRepository, LoginAttemptRepository, UserRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionUser:
    """What we store into Flask session after login."""

    user_id: int
    email: str
    full_name: str
    role: Role
    campus_id: Optional[int]

    @property
    def actor(self) -> Actor:
        return Actor(user_id=self.user_id, role=self.role, campus_id=self.campus_id)


def password_matches(password_hash: str, password: str) -> bool:
    try:
        return check_password_hash(password_hash, password or "")
    except ValueError:
        # placeholder or corrupted hashes
        return False


class AuthService:
    """Use case: login with bot-check and lockout, password change."""

    def __init__(
        self,
        identities: IdentityRepository,
        users: UserRepository,
        attempts: LoginAttemptRepository,
        credentials: CredentialRepository,
        *,
        captcha: CaptchaVerifier,
        max_attempts: int = DEFAULT_LOGIN_MAX_ATTEMPTS,
        lockout_minutes: int = DEFAULT_LOGIN_LOCKOUT_MINUTES,
    ):
        self._identities = identities
        self._users = users
        self._attempts = attempts
        self._credentials = credentials
        self._captcha = captcha
        self._max_attempts = int(max_attempts)
        self._lockout_minutes = int(lockout_minutes)

    def _record(self, email: str, ip_address: str, success: bool, user_agent: Optional[str]) -> None:
        self._attempts.record(
            email=email or None,
            ip_address=ip_address,
            success=success,
            user_agent=user_agent,
            attempted_at=now_local(),
        )

    def is_blocked(self, *, email: str, ip_address: str) -> bool:
        since = now_local() - timedelta(minutes=self._lockout_minutes)
        failures = self._attempts.count_failures_since(email=email or None, ip_address=ip_address, since=since)
        return failures >= self._max_attempts

    def authenticate(
        self,
        email: str,
        password: str,
        *,
        ip_address: str = "unknown",
        user_agent: Optional[str] = None,
        captcha_token: Optional[str] = None,
    ) -> SessionUser:
        email = (email or "").strip().lower()

        if not self._captcha.verify(captcha_token, remote_ip=ip_address):
            self._record(email, ip_address, False, user_agent)
            raise AuthenticationError("Vérification anti-robot échouée")

        if self.is_blocked(email=email, ip_address=ip_address):
            logger.warning("Login blocked for %s from %s", email, ip_address)
            raise LoginBlockedError(
                f"Trop de tentatives de connexion. Réessayez dans {self._lockout_minutes} minutes."
            )

        identity = self._identities.get_by_email(email) if email else None
        profile = self._users.get_by_id(identity.user_id) if identity else None

        if not identity or not password_matches(identity.password_hash, password):
            self._record(email, ip_address, False, user_agent)
            raise AuthenticationError("Email ou mot de passe incorrect")

        if not profile or not profile.is_active:
            self._record(email, ip_address, False, user_agent)
            raise AuthenticationError("Compte désactivé")

        self._record(email, ip_address, True, user_agent)
        return SessionUser(
            user_id=profile.user_id,
            email=profile.email,
            full_name=profile.full_name,
            role=profile.role,
            campus_id=profile.campus_id,
        )

    def change_password(self, *, user_id: int, current_password: str, new_password: str) -> None:
        require_min_length(new_password, "Nouveau mot de passe", MIN_PASSWORD_LENGTH)

        identity = self._identities.get_by_id(int(user_id))
        if not identity:
            raise NotFoundError("Utilisateur introuvable")
        if not password_matches(identity.password_hash, current_password):
            raise AuthenticationError("Mot de passe actuel incorrect")
        if current_password == new_password:
            raise ValidationError("Le nouveau mot de passe doit être différent de l'actuel")

        self._identities.update_password(identity.user_id, password_hash=generate_password_hash(new_password))
        self._credentials.mark_password_changed(identity.user_id)


class UserService:
    """Use case: manage users (admin) and teacher bank details."""

    def __init__(self, users: UserRepository, identities: IdentityRepository):
        self._users = users
        self._identities = identities

    def get_profile(self, user_id: int) -> Profile:
        profile = self._users.get_by_id(int(user_id))
        if not profile:
            raise NotFoundError("Utilisateur introuvable")
        return profile

    def list_users(
        self,
        *,
        current_role: Role,
        current_campus_id: Optional[int],
        role: Optional[Role] = None,
        campus_id: Optional[int] = None,
        active_only: bool = False,
    ) -> Sequence[Profile]:
        if current_role == Role.ENSEIGNANT:
            raise AuthorizationError("Accès refusé")
        if current_role == Role.DIRECTEUR_CAMPUS:
            if current_campus_id is None:
                raise AuthorizationError("Aucun campus associé à votre compte")
            campus_id = current_campus_id
        return self._users.list_users(role=role, campus_id=campus_id, active_only=active_only)

    def set_active(self, *, current_role: Role, current_user_id: int, user_id: int, active: bool) -> None:
        if current_role != Role.SUPER_ADMIN:
            raise AuthorizationError("Accès refusé")
        if int(user_id) == int(current_user_id) and not active:
            raise ValidationError("Vous ne pouvez pas désactiver votre propre compte")
        if not self._users.set_active(int(user_id), is_active=bool(active)):
            raise NotFoundError("Utilisateur introuvable")

    def delete_users(self, *, current_role: Role, current_user_id: int, user_ids: Sequence[int]) -> dict:
        """Delete identities (profiles cascade). Per-user failures are collected."""

        if current_role != Role.SUPER_ADMIN:
            raise AuthorizationError("Seuls les super administrateurs peuvent supprimer des utilisateurs")
        if not user_ids:
            raise ValidationError("Aucun utilisateur sélectionné")

        deleted: list[int] = []
        errors: list[str] = []
        for uid in user_ids:
            uid = int(uid)
            if uid == int(current_user_id):
                errors.append(f"{uid}: vous ne pouvez pas supprimer votre propre compte")
                continue
            if self._identities.delete(uid):
                deleted.append(uid)
            else:
                errors.append(f"{uid}: utilisateur introuvable")

        logger.info("Deleted %d/%d users", len(deleted), len(user_ids))
        return {"success_count": len(deleted), "deleted": deleted, "errors": errors}

    def get_teacher_profile(self, user_id: int) -> Optional[TeacherProfile]:
        return self._users.get_teacher_profile(int(user_id))

    def update_teacher_rib(
        self,
        *,
        current_role: Role,
        user_id: int,
        iban: str,
        bic: Optional[str] = None,
        account_holder: Optional[str] = None,
        bank_name: Optional[str] = None,
    ) -> TeacherProfile:
        if current_role != Role.ENSEIGNANT:
            raise AuthorizationError("Seuls les enseignants renseignent un RIB")

        iban_n = normalize_iban(iban)
        bic_n = normalize_bic(bic) if optional_str(bic) else None

        self._users.ensure_teacher_profile(
            int(user_id), rate_min=DEFAULT_HOURLY_RATE_MIN, rate_max=DEFAULT_HOURLY_RATE_MAX
        )
        self._users.update_rib(
            int(user_id),
            iban=iban_n,
            bic=bic_n,
            account_holder=optional_str(account_holder),
            bank_name=optional_str(bank_name),
        )
        teacher = self._users.get_teacher_profile(int(user_id))
        if not teacher:
            raise NotFoundError("Profil enseignant introuvable")
        return teacher
