from __future__ import annotations

from typing import Optional, Protocol

from ..core.enums import ImportStatus


class TeacherImportRepository(Protocol):
    """Tracks each bulk teacher import (processing -> completed/failed)."""

    def create(self, *, imported_by: int, filename: str, total_teachers: int) -> int:
        raise NotImplementedError

    def finish(
        self,
        import_id: int,
        *,
        status: ImportStatus,
        processed_teachers: int,
        error_message: Optional[str],
    ) -> None:
        raise NotImplementedError
