from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Protocol, Sequence

from ..core.enums import Role
from .model import Identity, Profile, TeacherProfile


class IdentityRepository(Protocol):
    """Login identities (email + password hash). Deleting one cascades to the profile."""

    def get_by_id(self, user_id: int) -> Optional[Identity]:
        raise NotImplementedError

    def get_by_email(self, email: str) -> Optional[Identity]:
        raise NotImplementedError

    def create(self, *, email: str, password_hash: str) -> int:
        raise NotImplementedError

    def update_password(self, user_id: int, *, password_hash: str) -> bool:
        raise NotImplementedError

    def delete(self, user_id: int) -> bool:
        raise NotImplementedError


class UserRepository(Protocol):
    """Profiles and teacher profiles.

    The service layer depends on this interface, never on MySQL directly.
    """

    def get_by_id(self, user_id: int) -> Optional[Profile]:
        raise NotImplementedError

    def get_by_email(self, email: str) -> Optional[Profile]:
        raise NotImplementedError

    def upsert_profile(
        self,
        *,
        user_id: int,
        email: str,
        first_name: str,
        last_name: str,
        role: Role,
        campus_id: Optional[int],
        phone: Optional[str],
        is_new_teacher: Optional[bool] = None,
        hire_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> None:
        raise NotImplementedError

    def set_active(self, user_id: int, *, is_active: bool) -> bool:
        raise NotImplementedError

    def list_users(
        self,
        *,
        role: Optional[Role] = None,
        campus_id: Optional[int] = None,
        active_only: bool = False,
    ) -> Sequence[Profile]:
        raise NotImplementedError

    def list_active_ids_by_role(self, role: Role, *, campus_id: Optional[int] = None) -> Sequence[int]:
        raise NotImplementedError

    def list_new_teacher_ids(self) -> Sequence[int]:
        raise NotImplementedError

    def get_teacher_profile(self, user_id: int) -> Optional[TeacherProfile]:
        raise NotImplementedError

    def ensure_teacher_profile(self, user_id: int, *, rate_min: Decimal, rate_max: Decimal) -> None:
        raise NotImplementedError

    def update_rib(
        self,
        user_id: int,
        *,
        iban: str,
        bic: Optional[str],
        account_holder: Optional[str],
        bank_name: Optional[str],
    ) -> bool:
        raise NotImplementedError

    def list_active_teacher_ids_without_rib(self) -> Sequence[int]:
        raise NotImplementedError


class LoginAttemptRepository(Protocol):
    def record(
        self,
        *,
        email: Optional[str],
        ip_address: str,
        success: bool,
        user_agent: Optional[str],
        attempted_at: datetime,
    ) -> None:
        raise NotImplementedError

    def count_failures_since(self, *, email: Optional[str], ip_address: str, since: datetime) -> int:
        raise NotImplementedError
