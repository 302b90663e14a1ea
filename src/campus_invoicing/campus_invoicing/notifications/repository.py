from __future__ import annotations

from datetime import date
from typing import Protocol, Sequence

from ..core.enums import NotificationType
from .model import Notification


class NotificationRepository(Protocol):
    def create(self, *, user_id: int, type: NotificationType, title: str, message: str) -> int:
        raise NotImplementedError

    def list_for_user(self, user_id: int, *, unread_only: bool = False, limit: int = 200) -> Sequence[Notification]:
        raise NotImplementedError

    def mark_read(self, *, user_id: int, notification_id: int) -> bool:
        raise NotImplementedError

    def mark_all_read(self, user_id: int) -> int:
        raise NotImplementedError

    def count_unread(self, user_id: int) -> int:
        raise NotImplementedError


class ReminderRunRepository(Protocol):
    """Durable "already ran today" markers for reminder jobs."""

    def claim(self, *, job_name: str, run_date: date) -> bool:
        """Return True when this call inserted the (job, date) row."""
        raise NotImplementedError

    def release(self, *, job_name: str, run_date: date) -> None:
        """Drop the (job, date) row so a failed run can be retried."""
        raise NotImplementedError
