from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from ..core.enums import Role


@dataclass(frozen=True)
class Identity:
    """Login record: email plus werkzeug password hash."""

    user_id: int
    email: str
    password_hash: str
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Profile:
    """User profile. Role and campus gate what the user may do."""

    user_id: int
    email: str
    first_name: str
    last_name: str
    role: Role
    campus_id: Optional[int]
    phone: Optional[str] = None
    is_active: bool = True
    is_new_teacher: Optional[bool] = None
    hire_date: Optional[date] = None
    notes: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class TeacherProfile:
    user_id: int
    hourly_rate_min: Decimal
    hourly_rate_max: Decimal
    rib_iban: Optional[str] = None
    rib_bic: Optional[str] = None
    rib_account_holder: Optional[str] = None
    rib_bank_name: Optional[str] = None
    specialities: Optional[str] = None

    @property
    def has_rib(self) -> bool:
        return bool(self.rib_iban)


@dataclass(frozen=True)
class Actor:
    """Who performs an action, as read from the Flask session."""

    user_id: int
    role: Role
    campus_id: Optional[int] = None
