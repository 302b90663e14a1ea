from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from .model import CredentialExportRow, TempAccessCredential


class CredentialRepository(Protocol):
    def add(
        self,
        *,
        user_id: int,
        email: str,
        temp_password: str,
        created_by: Optional[int],
        expires_at: Optional[datetime],
    ) -> int:
        raise NotImplementedError

    def list_for_user(self, user_id: int) -> Sequence[TempAccessCredential]:
        raise NotImplementedError

    def list_for_export(self) -> Sequence[CredentialExportRow]:
        """All rows, newest first, joined with profile and campus."""
        raise NotImplementedError

    def mark_exported(self, credential_ids: Sequence[int], *, exported_at: datetime) -> int:
        raise NotImplementedError

    def user_ids_with_credentials(self) -> set[int]:
        raise NotImplementedError

    def mark_password_changed(self, user_id: int) -> int:
        raise NotImplementedError

    def purge_expired(self, *, now: datetime) -> int:
        """Delete expired rows that were exported or whose password was changed."""
        raise NotImplementedError
