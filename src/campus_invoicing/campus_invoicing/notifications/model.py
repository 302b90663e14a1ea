from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..core.enums import NotificationType


@dataclass(frozen=True)
class Notification:
    notification_id: int
    user_id: int
    type: NotificationType
    title: str
    message: str
    is_read: bool = False
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of a best-effort notification fan-out.

    ``ok`` is False when at least one insert (or the recipient lookup) failed;
    the caller's primary operation has already succeeded at that point.
    """

    attempted: int = 0
    delivered: int = 0
    errors: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.errors and self.delivered == self.attempted

    def merge(self, other: "DispatchResult") -> "DispatchResult":
        return DispatchResult(
            attempted=self.attempted + other.attempted,
            delivered=self.delivered + other.delivered,
            errors=self.errors + other.errors,
        )

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "attempted": self.attempted,
            "delivered": self.delivered,
            "errors": list(self.errors),
        }
