from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from ..common.datetime_utils import now_local
from ..core.constants import RECENT_INVOICES_LIMIT
from ..core.enums import InvoiceStatus, Role
from ..core.exceptions import AuthorizationError
from ..invoices.repository import InvoiceRepository
from ..reference.service import ReferenceDataService
from ..users.model import Actor
from ..users.repository import UserRepository


@dataclass(frozen=True)
class DashboardData:
    role: Role
    stats: dict
    recent_invoices: list[dict]

    def to_dict(self) -> dict:
        return {"role": self.role.value, "stats": self.stats, "recent_invoices": self.recent_invoices}


def _money(value) -> str:
    return f"{value:.2f}"


class DashboardService:
    """Read-only aggregates for the home page of each role."""

    def __init__(self, invoices: InvoiceRepository, users: UserRepository, reference: ReferenceDataService):
        self._invoices = invoices
        self._users = users
        self._reference = reference

    def build(self, *, actor: Actor, today: Optional[date] = None) -> DashboardData:
        today = today or now_local().date()
        if actor.role == Role.SUPER_ADMIN:
            return self._super_admin()
        if actor.role == Role.COMPTABLE:
            return self._comptable(today)
        if actor.role == Role.DIRECTEUR_CAMPUS:
            if actor.campus_id is None:
                raise AuthorizationError("Aucun campus associé à votre compte")
            return self._director(int(actor.campus_id), today)
        return self._teacher(actor.user_id, today)

    def _super_admin(self) -> DashboardData:
        counts = self._invoices.status_counts()
        paid_amount = self._invoices.sum_ttc(statuses=[InvoiceStatus.PAID])
        return DashboardData(
            role=Role.SUPER_ADMIN,
            stats={
                "active_users": len(self._users.list_users(active_only=True)),
                "active_campuses": len(self._reference.list_campuses()),
                "invoices_total": sum(counts.values()),
                "invoices_pending": counts[InvoiceStatus.PENDING],
                "invoices_validated": counts[InvoiceStatus.VALIDATED] + counts[InvoiceStatus.PAID],
                "invoices_paid": counts[InvoiceStatus.PAID],
                "paid_amount": _money(paid_amount),
            },
            recent_invoices=[],
        )

    def _comptable(self, today: date) -> DashboardData:
        counts = self._invoices.status_counts()
        candidates = [
            *self._invoices.list_invoices(status=InvoiceStatus.PREVALIDATED, limit=RECENT_INVOICES_LIMIT),
            *self._invoices.list_invoices(status=InvoiceStatus.VALIDATED, limit=RECENT_INVOICES_LIMIT),
        ]
        candidates.sort(key=lambda inv: (inv.created_at or datetime.min, inv.invoice_id), reverse=True)
        recent = candidates[:RECENT_INVOICES_LIMIT]
        campus_names = {c.campus_id: c.name for c in self._reference.list_campuses()}

        return DashboardData(
            role=Role.COMPTABLE,
            stats={
                "to_validate": counts[InvoiceStatus.PREVALIDATED],
                "to_pay": counts[InvoiceStatus.VALIDATED],
                "paid_amount": _money(self._invoices.sum_ttc(statuses=[InvoiceStatus.PAID])),
                "month_amount": _money(
                    self._invoices.sum_ttc(
                        statuses=[InvoiceStatus.VALIDATED, InvoiceStatus.PAID],
                        month=today.month,
                        year=today.year,
                    )
                ),
            },
            recent_invoices=[
                {
                    "invoice_id": inv.invoice_id,
                    "teacher_id": inv.teacher_id,
                    "campus": campus_names.get(inv.campus_id, "-"),
                    "period": f"{inv.month:02d}/{inv.year}",
                    "total_ttc": _money(inv.total_ttc),
                    "status": inv.status.value,
                }
                for inv in recent
            ],
        )

    def _director(self, campus_id: int, today: date) -> DashboardData:
        counts = self._invoices.status_counts(campus_id=campus_id)
        teachers = self._users.list_users(role=Role.ENSEIGNANT, campus_id=campus_id, active_only=True)
        month_amount = self._invoices.sum_ttc(
            statuses=list(InvoiceStatus), month=today.month, year=today.year, campus_id=campus_id
        )
        return DashboardData(
            role=Role.DIRECTEUR_CAMPUS,
            stats={
                "campus_teachers": len(teachers),
                "invoices_pending": counts[InvoiceStatus.PENDING],
                "invoices_prevalidated": counts[InvoiceStatus.PREVALIDATED],
                "month_amount": _money(month_amount),
            },
            recent_invoices=[],
        )

    def _teacher(self, user_id: int, today: date) -> DashboardData:
        counts = self._invoices.status_counts(teacher_id=user_id)
        return DashboardData(
            role=Role.ENSEIGNANT,
            stats={
                "invoices_total": sum(counts.values()),
                "invoices_pending": counts[InvoiceStatus.PENDING],
                "invoices_paid": counts[InvoiceStatus.PAID],
                "paid_amount": _money(self._invoices.sum_ttc(statuses=[InvoiceStatus.PAID], teacher_id=user_id)),
                "month_hours": str(self._invoices.sum_hours(teacher_id=user_id, month=today.month, year=today.year)),
            },
            recent_invoices=[],
        )
