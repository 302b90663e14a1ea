from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import Role


@dataclass(frozen=True)
class TempAccessCredential:
    """Plaintext temporary password issued at creation or reset.

    One row per issuance event; a user accumulates rows over resets.
    """

    credential_id: int
    user_id: int
    email: str
    temp_password: str
    created_by: Optional[int]
    created_at: datetime
    expires_at: Optional[datetime] = None
    exported_at: Optional[datetime] = None
    is_password_changed: bool = False

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


@dataclass(frozen=True)
class CredentialExportRow:
    credential_id: int
    email: str
    temp_password: str
    first_name: str
    last_name: str
    role: Optional[Role]
    campus_name: Optional[str]
    created_at: datetime
    expires_at: Optional[datetime]
    exported_at: Optional[datetime]


@dataclass(frozen=True)
class AccountResult:
    user_id: int
    email: str
    full_name: str
    temporary_password: Optional[str]
    already_exists: bool = False

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "full_name": self.full_name,
            "temporary_password": self.temporary_password,
            "already_exists": self.already_exists,
        }
