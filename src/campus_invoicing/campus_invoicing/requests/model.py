from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import RequestStatus, Role


@dataclass(frozen=True)
class UserCreationRequest:
    """A campus director asking a super admin to open an account."""

    request_id: int
    requested_by: int
    first_name: str
    last_name: str
    email: str
    role: Role
    campus_id: int
    status: RequestStatus
    phone: Optional[str] = None
    justification: Optional[str] = None
    processed_by: Optional[int] = None
    processed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
