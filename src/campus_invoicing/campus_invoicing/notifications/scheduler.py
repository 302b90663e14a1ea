from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Callable, Optional, Sequence

from ..core.constants import OVERDUE_INVOICE_DAYS
from ..core.enums import InvoiceStatus, NotificationType, Role
from ..invoices.repository import InvoiceRepository
from ..users.repository import UserRepository
from .model import DispatchResult
from .repository import ReminderRunRepository
from .service import NotificationService

logger = logging.getLogger(__name__)

MONDAY = 0
FRIDAY = 4


@dataclass(frozen=True)
class ReminderJob:
    name: str
    is_due: Callable[[date], bool]
    run: Callable[[date], DispatchResult]


@dataclass(frozen=True)
class ReminderOutcome:
    job_name: str
    status: str  # "sent" | "already_ran" | "not_due" | "failed"
    dispatch: DispatchResult = field(default_factory=DispatchResult)

    def to_dict(self) -> dict:
        return {"job": self.job_name, "status": self.status, **self.dispatch.to_dict()}


class ReminderScheduler:
    """Calendar-driven reminders, run once per job per day.

    ``run_due`` is meant to be called from cron (scripts/run_reminders.py);
    the claim row in ``reminder_runs`` keeps concurrent or repeated runs
    from sending twice.
    """

    def __init__(
        self,
        runs: ReminderRunRepository,
        notifications: NotificationService,
        users: UserRepository,
        invoices: InvoiceRepository,
        *,
        overdue_days: int = OVERDUE_INVOICE_DAYS,
    ):
        self._runs = runs
        self._notifications = notifications
        self._users = users
        self._invoices = invoices
        self._overdue_days = int(overdue_days)
        self._jobs: list[ReminderJob] = [
            ReminderJob("missing_rib", lambda d: d.weekday() == MONDAY, self._missing_rib),
            ReminderJob("invoice_submission", lambda d: 25 <= d.day <= 28, self._invoice_submission),
            ReminderJob("monthly_report", lambda d: d.day == 1, self._monthly_report),
            ReminderJob("overdue_invoices", lambda d: d.weekday() == FRIDAY, self._overdue_invoices),
        ]

    @property
    def job_names(self) -> list[str]:
        return [job.name for job in self._jobs]

    def run_due(self, today: date, *, only: Optional[Sequence[str]] = None) -> list[ReminderOutcome]:
        outcomes: list[ReminderOutcome] = []
        for job in self._jobs:
            if only and job.name not in only:
                continue
            if not job.is_due(today):
                outcomes.append(ReminderOutcome(job.name, "not_due"))
                continue
            if not self._runs.claim(job_name=job.name, run_date=today):
                logger.info("Reminder %s already ran for %s", job.name, today.isoformat())
                outcomes.append(ReminderOutcome(job.name, "already_ran"))
                continue

            try:
                dispatch = job.run(today)
            except Exception as e:
                logger.exception("Reminder %s for %s failed", job.name, today.isoformat())
                # Give the day back so a later run or catch-up replays it.
                self._runs.release(job_name=job.name, run_date=today)
                outcomes.append(ReminderOutcome(job.name, "failed", DispatchResult(errors=(str(e),))))
                continue

            logger.info(
                "Reminder %s for %s: %d/%d notifications",
                job.name,
                today.isoformat(),
                dispatch.delivered,
                dispatch.attempted,
            )
            outcomes.append(ReminderOutcome(job.name, "sent", dispatch))
        return outcomes

    # -------- Jobs --------
    def _missing_rib(self, today: date) -> DispatchResult:
        result = DispatchResult()
        for teacher_id in self._users.list_active_teacher_ids_without_rib():
            result = result.merge(self._notifications.missing_rib(teacher_id))
        return result

    def _invoice_submission(self, today: date) -> DispatchResult:
        return self._notifications.notify_role(
            Role.ENSEIGNANT,
            NotificationType.INFO,
            "Rappel - Soumission de facture",
            "N'oubliez pas de soumettre votre facture avant la fin du mois.",
        )

    def _monthly_report(self, today: date) -> DispatchResult:
        counts = self._invoices.status_counts(month=today.month, year=today.year)
        total = sum(counts.values())
        return self._notifications.notify_role(
            Role.COMPTABLE,
            NotificationType.INFO,
            "Rapport mensuel",
            (
                f"Ce mois: {total} factures ({counts[InvoiceStatus.VALIDATED]} validées, "
                f"{counts[InvoiceStatus.PAID]} payées, {counts[InvoiceStatus.PENDING]} en attente)"
            ),
        )

    def _overdue_invoices(self, today: date) -> DispatchResult:
        cutoff = datetime.combine(today, time.min) - timedelta(days=self._overdue_days)
        overdue = self._invoices.list_pending_created_before(cutoff)
        if not overdue:
            return DispatchResult()
        return self._notifications.notify_role(
            Role.SUPER_ADMIN,
            NotificationType.WARNING,
            "Factures en retard",
            (
                f"{len(overdue)} facture(s) en attente depuis plus de {self._overdue_days} jours "
                "nécessitent une attention."
            ),
        )
