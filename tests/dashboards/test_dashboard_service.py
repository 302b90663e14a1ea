from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from src.campus_invoicing.campus_invoicing.common.cache import TTLCache
from src.campus_invoicing.campus_invoicing.core.enums import InvoiceStatus, Role
from src.campus_invoicing.campus_invoicing.core.exceptions import AuthorizationError
from src.campus_invoicing.campus_invoicing.dashboards.service import DashboardService
from src.campus_invoicing.campus_invoicing.invoices.model import Invoice
from src.campus_invoicing.campus_invoicing.reference.model import Campus
from src.campus_invoicing.campus_invoicing.reference.service import ReferenceDataService
from src.campus_invoicing.campus_invoicing.users.model import Actor

TODAY = date(2026, 3, 15)


def _invoice(invoice_id, status, *, teacher_id=10, campus_id=1, month=3, ttc="100.00"):
    return Invoice(
        invoice_id=invoice_id,
        teacher_id=teacher_id,
        campus_id=campus_id,
        month=month,
        year=2026,
        total_ht=Decimal(ttc),
        total_ttc=Decimal(ttc),
        status=status,
        created_at=datetime(2026, month, 1, 0, invoice_id),
    )


class FakeInvoicesRepo:
    def __init__(self, invoices, hours=None):
        self.invoices = invoices
        self.hours = hours or {}

    def _match(self, inv, *, month=None, year=None, campus_id=None, teacher_id=None):
        return (
            (month is None or inv.month == month)
            and (year is None or inv.year == year)
            and (campus_id is None or inv.campus_id == campus_id)
            and (teacher_id is None or inv.teacher_id == teacher_id)
        )

    def status_counts(self, *, month=None, year=None, campus_id=None, teacher_id=None):
        counts = {s: 0 for s in InvoiceStatus}
        for inv in self.invoices:
            if self._match(inv, month=month, year=year, campus_id=campus_id, teacher_id=teacher_id):
                counts[inv.status] += 1
        return counts

    def sum_ttc(self, *, statuses, month=None, year=None, campus_id=None, teacher_id=None):
        return sum(
            (
                inv.total_ttc
                for inv in self.invoices
                if inv.status in statuses
                and self._match(inv, month=month, year=year, campus_id=campus_id, teacher_id=teacher_id)
            ),
            Decimal("0"),
        )

    def sum_hours(self, *, teacher_id, month, year):
        return self.hours.get((teacher_id, month, year), Decimal("0"))

    def list_invoices(self, *, status=None, limit=200, **kwargs):
        matching = [inv for inv in self.invoices if status is None or inv.status == status]
        matching.sort(key=lambda inv: inv.created_at, reverse=True)
        return matching[:limit]


class FakeUsersRepo:
    def __init__(self):
        self.calls: list[dict] = []

    def list_users(self, *, role=None, campus_id=None, active_only=False):
        self.calls.append({"role": role, "campus_id": campus_id, "active_only": active_only})
        return [object()] * (3 if campus_id is None else 2)


class FakeReferenceRepo:
    def list_campuses(self):
        return [Campus(1, "Roquette"), Campus(2, "Nice")]


def _service(invoices, hours=None):
    users = FakeUsersRepo()
    reference = ReferenceDataService(FakeReferenceRepo(), cache=TTLCache())
    return DashboardService(FakeInvoicesRepo(invoices, hours), users, reference), users


SAMPLE = [
    _invoice(1, InvoiceStatus.PENDING, campus_id=1),
    _invoice(2, InvoiceStatus.PREVALIDATED, campus_id=1, ttc="200.00"),
    _invoice(3, InvoiceStatus.VALIDATED, campus_id=2, ttc="300.00"),
    _invoice(4, InvoiceStatus.PAID, campus_id=2, ttc="400.00", month=2),
    _invoice(5, InvoiceStatus.PAID, teacher_id=11, campus_id=1, ttc="50.50"),
]


def test_super_admin_sees_global_counts():
    svc, _ = _service(SAMPLE)

    data = svc.build(actor=Actor(user_id=1, role=Role.SUPER_ADMIN), today=TODAY)

    assert data.stats == {
        "active_users": 3,
        "active_campuses": 2,
        "invoices_total": 5,
        "invoices_pending": 1,
        "invoices_validated": 3,
        "invoices_paid": 2,
        "paid_amount": "450.50",
    }
    assert data.to_dict()["role"] == "SUPER_ADMIN"


def test_comptable_sees_work_queue_and_recent_invoices():
    svc, _ = _service(SAMPLE)

    data = svc.build(actor=Actor(user_id=30, role=Role.COMPTABLE), today=TODAY)

    assert data.stats["to_validate"] == 1
    assert data.stats["to_pay"] == 1
    assert data.stats["paid_amount"] == "450.50"
    assert data.stats["month_amount"] == "350.50"
    assert [r["invoice_id"] for r in data.recent_invoices] == [3, 2]
    assert data.recent_invoices[0]["campus"] == "Nice"
    assert data.recent_invoices[0]["period"] == "03/2026"


def test_comptable_recent_list_is_capped():
    many = [_invoice(i, InvoiceStatus.PREVALIDATED if i % 2 else InvoiceStatus.VALIDATED) for i in range(1, 13)]
    svc, _ = _service(many)

    data = svc.build(actor=Actor(user_id=30, role=Role.COMPTABLE), today=TODAY)

    assert [r["invoice_id"] for r in data.recent_invoices] == [12, 11, 10, 9, 8]


def test_director_stats_stay_on_own_campus():
    svc, users = _service(SAMPLE)

    data = svc.build(actor=Actor(user_id=20, role=Role.DIRECTEUR_CAMPUS, campus_id=1), today=TODAY)

    assert data.stats == {
        "campus_teachers": 2,
        "invoices_pending": 1,
        "invoices_prevalidated": 1,
        "month_amount": "350.50",
    }
    assert users.calls == [{"role": Role.ENSEIGNANT, "campus_id": 1, "active_only": True}]


def test_director_without_campus_is_refused():
    svc, _ = _service(SAMPLE)
    with pytest.raises(AuthorizationError):
        svc.build(actor=Actor(user_id=20, role=Role.DIRECTEUR_CAMPUS), today=TODAY)


def test_teacher_sees_own_figures():
    svc, _ = _service(SAMPLE, hours={(10, 3, 2026): Decimal("12.5")})

    data = svc.build(actor=Actor(user_id=10, role=Role.ENSEIGNANT), today=TODAY)

    assert data.stats == {
        "invoices_total": 4,
        "invoices_pending": 1,
        "invoices_paid": 1,
        "paid_amount": "400.00",
        "month_hours": "12.5",
    }
