from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from src.campus_invoicing.campus_invoicing.core.enums import InvoiceStatus, NotificationType, Role
from src.campus_invoicing.campus_invoicing.core.exceptions import NotFoundError
from src.campus_invoicing.campus_invoicing.notifications.model import DispatchResult, Notification
from src.campus_invoicing.campus_invoicing.notifications.scheduler import ReminderScheduler
from src.campus_invoicing.campus_invoicing.notifications.service import NotificationService


class FakeNotificationsRepo:
    def __init__(self, *, failing_users=()):
        self.failing_users = set(failing_users)
        self.items: list[Notification] = []

    def create(self, *, user_id, type, title, message):
        if user_id in self.failing_users:
            raise RuntimeError("insert failed")
        n = Notification(notification_id=len(self.items) + 1, user_id=user_id, type=type, title=title, message=message)
        self.items.append(n)
        return n.notification_id

    def list_for_user(self, user_id, *, unread_only=False, limit=200):
        return [n for n in self.items if n.user_id == user_id and not (unread_only and n.is_read)][:limit]

    def mark_read(self, *, user_id, notification_id):
        for i, n in enumerate(self.items):
            if n.notification_id == notification_id and n.user_id == user_id:
                self.items[i] = Notification(**{**n.__dict__, "is_read": True})
                return True
        return False

    def mark_all_read(self, user_id):
        count = 0
        for i, n in enumerate(self.items):
            if n.user_id == user_id and not n.is_read:
                self.items[i] = Notification(**{**n.__dict__, "is_read": True})
                count += 1
        return count

    def count_unread(self, user_id):
        return len(self.list_for_user(user_id, unread_only=True))


class FakeUsersRepo:
    def __init__(self):
        self.by_role = {
            Role.SUPER_ADMIN: [1],
            Role.COMPTABLE: [30],
            Role.ENSEIGNANT: [10, 11, 12],
        }
        self.directors = {1: [20], 2: [21]}
        self.without_rib = [11, 12]

    def list_active_ids_by_role(self, role, *, campus_id=None):
        if role == Role.DIRECTEUR_CAMPUS:
            return self.directors.get(campus_id, []) if campus_id else [i for ids in self.directors.values() for i in ids]
        return self.by_role.get(role, [])

    def list_active_teacher_ids_without_rib(self):
        return list(self.without_rib)


class BrokenUsersRepo(FakeUsersRepo):
    def list_active_ids_by_role(self, role, *, campus_id=None):
        raise RuntimeError("profiles table locked")


class FakeRunsRepo:
    def __init__(self):
        self.claimed: set[tuple[str, date]] = set()

    def claim(self, *, job_name, run_date):
        key = (job_name, run_date)
        if key in self.claimed:
            return False
        self.claimed.add(key)
        return True

    def release(self, *, job_name, run_date):
        self.claimed.discard((job_name, run_date))


class FakeInvoicesRepo:
    def __init__(self):
        self.pending_old = []
        self.cutoffs = []
        self.counts_error = None

    def status_counts(self, *, month=None, year=None, campus_id=None, teacher_id=None):
        if self.counts_error:
            raise self.counts_error
        counts = {s: 0 for s in InvoiceStatus}
        counts.update({InvoiceStatus.PENDING: 4, InvoiceStatus.VALIDATED: 2, InvoiceStatus.PAID: 1})
        return counts

    def list_pending_created_before(self, cutoff):
        self.cutoffs.append(cutoff)
        return list(self.pending_old)


def test_dispatch_result_merge_and_ok():
    merged = DispatchResult(attempted=2, delivered=2).merge(DispatchResult(attempted=1, delivered=0, errors=("x",)))
    assert (merged.attempted, merged.delivered, merged.ok) == (3, 2, False)
    assert DispatchResult().ok is True
    assert merged.to_dict()["errors"] == ["x"]


def test_failed_insert_is_reported_not_raised():
    repo = FakeNotificationsRepo(failing_users={11})
    svc = NotificationService(repo, FakeUsersRepo())

    result = svc.notify_role(Role.ENSEIGNANT, NotificationType.INFO, "Titre", "Message")

    assert (result.attempted, result.delivered) == (3, 2)
    assert result.ok is False
    assert result.errors[0].startswith("11:")


def test_recipient_lookup_failure_is_reported():
    svc = NotificationService(FakeNotificationsRepo(), BrokenUsersRepo())

    result = svc.system_alert("provisioning", "details")

    assert result.ok is False
    assert result.delivered == 0


def test_campus_directors_only_get_their_campus():
    repo = FakeNotificationsRepo()
    svc = NotificationService(repo, FakeUsersRepo())

    svc.director_new_invoice(2, teacher_name="Marie Curie", month=3, year=2026)

    assert [n.user_id for n in repo.items] == [21]
    assert repo.items[0].message == "Marie Curie a soumis sa facture 3/2026 pour prévalidation."


def test_payment_message_formats_amount():
    repo = FakeNotificationsRepo()
    NotificationService(repo, FakeUsersRepo()).payment_received(10, amount=Decimal("1234.5"), month=2, year=2026)

    assert repo.items[0].message == "Votre paiement de 1234.50€ pour la facture 2/2026 a été traité."
    assert repo.items[0].type == NotificationType.SUCCESS


def test_read_state():
    repo = FakeNotificationsRepo()
    svc = NotificationService(repo, FakeUsersRepo())
    svc.notify(10, NotificationType.INFO, "A", "a")
    svc.notify(10, NotificationType.INFO, "B", "b")
    svc.notify(11, NotificationType.INFO, "C", "c")

    svc.mark_read(user_id=10, notification_id=1)
    assert svc.unread_count(10) == 1
    with pytest.raises(NotFoundError):
        svc.mark_read(user_id=10, notification_id=3)
    assert svc.mark_all_read(10) == 1
    assert svc.unread_count(10) == 0
    assert svc.unread_count(11) == 1


def _scheduler():
    repo = FakeNotificationsRepo()
    users = FakeUsersRepo()
    runs = FakeRunsRepo()
    invoices = FakeInvoicesRepo()
    scheduler = ReminderScheduler(runs, NotificationService(repo, users), users, invoices, overdue_days=30)
    return scheduler, repo, invoices, runs


def test_monday_sends_missing_rib_reminders_once_per_day():
    scheduler, repo, _, _ = _scheduler()
    monday = date(2026, 3, 2)

    first = {o.job_name: o for o in scheduler.run_due(monday)}
    second = {o.job_name: o for o in scheduler.run_due(monday)}

    assert first["missing_rib"].status == "sent"
    assert first["missing_rib"].dispatch.delivered == 2
    assert first["invoice_submission"].status == "not_due"
    assert second["missing_rib"].status == "already_ran"
    assert [n.user_id for n in repo.items if n.title == "RIB manquant"] == [11, 12]


def test_end_of_month_submission_reminder_targets_teachers():
    scheduler, repo, _, _ = _scheduler()

    outcomes = scheduler.run_due(date(2026, 3, 26), only=["invoice_submission"])

    assert [o.job_name for o in outcomes] == ["invoice_submission"]
    assert sorted(n.user_id for n in repo.items) == [10, 11, 12]


def test_first_of_month_report_goes_to_accounting():
    scheduler, repo, _, _ = _scheduler()

    scheduler.run_due(date(2026, 4, 1), only=["monthly_report"])

    [report] = repo.items
    assert report.user_id == 30
    assert report.message == "Ce mois: 7 factures (2 validées, 1 payées, 4 en attente)"


def test_friday_overdue_check_is_silent_without_overdue_invoices():
    scheduler, repo, invoices, _ = _scheduler()

    [outcome] = scheduler.run_due(date(2026, 3, 6), only=["overdue_invoices"])

    assert outcome.status == "sent"
    assert outcome.dispatch.attempted == 0
    assert repo.items == []
    assert invoices.cutoffs == [datetime(2026, 2, 4)]


def test_friday_overdue_check_alerts_super_admin():
    scheduler, repo, invoices, _ = _scheduler()
    invoices.pending_old = [object(), object()]

    scheduler.run_due(date(2026, 3, 6), only=["overdue_invoices"])

    [alert] = repo.items
    assert alert.user_id == 1
    assert alert.message.startswith("2 facture(s) en attente depuis plus de 30 jours")


def test_failing_job_releases_its_day_and_the_others_still_run():
    scheduler, repo, invoices, runs = _scheduler()
    invoices.counts_error = RuntimeError("db down")
    first_of_june = date(2026, 6, 1)  # a Monday

    outcomes = {o.job_name: o for o in scheduler.run_due(first_of_june)}

    assert outcomes["missing_rib"].status == "sent"
    assert outcomes["monthly_report"].status == "failed"
    assert outcomes["monthly_report"].dispatch.errors == ("db down",)
    assert runs.claimed == {("missing_rib", first_of_june)}

    invoices.counts_error = None
    [retry] = scheduler.run_due(first_of_june, only=["monthly_report"])

    assert retry.status == "sent"
    assert [n.title for n in repo.items].count("Rapport mensuel") == 1
