from __future__ import annotations

from dataclasses import dataclass

from .common.cache import TTLCache
from .core.constants import (
    DEFAULT_CLEANUP_RETRIES,
    DEFAULT_LOGIN_LOCKOUT_MINUTES,
    DEFAULT_LOGIN_MAX_ATTEMPTS,
    DEFAULT_REFERENCE_CACHE_MINUTES,
    DEFAULT_TEMP_PASSWORD_TTL_DAYS,
)
from .credentials.mysql_credential_repository import MySQLCredentialRepository
from .credentials.service import ProvisioningService
from .dashboards.service import DashboardService
from .database.connection import DBConfig, DatabaseConnection
from .invoices.mysql_invoice_repository import MySQLInvoiceRepository
from .invoices.service import InvoiceService
from .invoices.workflow import InvoiceWorkflowService
from .notifications.mysql_notification_repository import MySQLNotificationRepository
from .notifications.mysql_reminder_run_repository import MySQLReminderRunRepository
from .notifications.scheduler import ReminderScheduler
from .notifications.service import NotificationService
from .reference.mysql_reference_repository import MySQLReferenceRepository
from .reference.service import ReferenceDataService
from .requests.mysql_request_repository import MySQLUserRequestRepository
from .requests.service import UserRequestService
from .teacher_import.mysql_teacher_import_repository import MySQLTeacherImportRepository
from .teacher_import.service import BulkTeacherImportService
from .users.captcha import RecaptchaVerifier
from .users.mysql_identity_repository import MySQLIdentityRepository
from .users.mysql_login_attempt_repository import MySQLLoginAttemptRepository
from .users.mysql_user_repository import MySQLUserRepository
from .users.service import AuthService, UserService


@dataclass(frozen=True)
class Container:
    conn: DatabaseConnection
    cache: TTLCache

    identities_repo: MySQLIdentityRepository
    users_repo: MySQLUserRepository
    login_attempts_repo: MySQLLoginAttemptRepository
    credentials_repo: MySQLCredentialRepository
    reference_repo: MySQLReferenceRepository
    invoices_repo: MySQLInvoiceRepository
    notifications_repo: MySQLNotificationRepository
    reminder_runs_repo: MySQLReminderRunRepository
    requests_repo: MySQLUserRequestRepository
    teacher_imports_repo: MySQLTeacherImportRepository

    reference_service: ReferenceDataService
    notification_service: NotificationService
    auth_service: AuthService
    user_service: UserService
    provisioning_service: ProvisioningService
    teacher_import_service: BulkTeacherImportService
    user_request_service: UserRequestService
    invoice_service: InvoiceService
    invoice_workflow: InvoiceWorkflowService
    dashboard_service: DashboardService
    reminder_scheduler: ReminderScheduler

    def close(self) -> None:
        self.cache.clear()


def build_container(*, db_config: dict, settings: object = None) -> Container:
    """Wire repositories and services; ``settings`` is the loaded config module."""

    def setting(name: str, default):
        return getattr(settings, name, default) if settings is not None else default

    conn = DatabaseConnection(DBConfig.from_dict(db_config))
    cache = TTLCache(
        default_ttl_seconds=60 * float(setting("REFERENCE_CACHE_MINUTES", DEFAULT_REFERENCE_CACHE_MINUTES))
    )

    identities_repo = MySQLIdentityRepository(conn)
    users_repo = MySQLUserRepository(conn)
    login_attempts_repo = MySQLLoginAttemptRepository(conn)
    credentials_repo = MySQLCredentialRepository(conn)
    reference_repo = MySQLReferenceRepository(conn)
    invoices_repo = MySQLInvoiceRepository(conn)
    notifications_repo = MySQLNotificationRepository(conn)
    reminder_runs_repo = MySQLReminderRunRepository(conn)
    requests_repo = MySQLUserRequestRepository(conn)
    teacher_imports_repo = MySQLTeacherImportRepository(conn)

    reference_service = ReferenceDataService(reference_repo, cache=cache)
    notification_service = NotificationService(notifications_repo, users_repo)
    auth_service = AuthService(
        identities_repo,
        users_repo,
        login_attempts_repo,
        credentials_repo,
        captcha=RecaptchaVerifier(setting("RECAPTCHA_SECRET_KEY", None)),
        max_attempts=int(setting("LOGIN_MAX_ATTEMPTS", DEFAULT_LOGIN_MAX_ATTEMPTS)),
        lockout_minutes=int(setting("LOGIN_LOCKOUT_MINUTES", DEFAULT_LOGIN_LOCKOUT_MINUTES)),
    )
    user_service = UserService(users_repo, identities_repo)
    provisioning_service = ProvisioningService(
        identities_repo,
        users_repo,
        credentials_repo,
        notification_service,
        reference_service,
        login_url=str(setting("LOGIN_URL", "")),
        temp_password_ttl_days=int(setting("TEMP_PASSWORD_TTL_DAYS", DEFAULT_TEMP_PASSWORD_TTL_DAYS)),
        cleanup_retries=int(setting("CLEANUP_RETRIES", DEFAULT_CLEANUP_RETRIES)),
    )
    teacher_import_service = BulkTeacherImportService(
        provisioning_service, users_repo, reference_service, teacher_imports_repo
    )
    user_request_service = UserRequestService(requests_repo, users_repo, provisioning_service, notification_service)
    invoice_service = InvoiceService(invoices_repo, users_repo, reference_service, notification_service)
    invoice_workflow = InvoiceWorkflowService(invoices_repo, users_repo, notification_service)
    dashboard_service = DashboardService(invoices_repo, users_repo, reference_service)
    reminder_scheduler = ReminderScheduler(reminder_runs_repo, notification_service, users_repo, invoices_repo)

    return Container(
        conn=conn,
        cache=cache,
        identities_repo=identities_repo,
        users_repo=users_repo,
        login_attempts_repo=login_attempts_repo,
        credentials_repo=credentials_repo,
        reference_repo=reference_repo,
        invoices_repo=invoices_repo,
        notifications_repo=notifications_repo,
        reminder_runs_repo=reminder_runs_repo,
        requests_repo=requests_repo,
        teacher_imports_repo=teacher_imports_repo,
        reference_service=reference_service,
        notification_service=notification_service,
        auth_service=auth_service,
        user_service=user_service,
        provisioning_service=provisioning_service,
        teacher_import_service=teacher_import_service,
        user_request_service=user_request_service,
        invoice_service=invoice_service,
        invoice_workflow=invoice_workflow,
        dashboard_service=dashboard_service,
        reminder_scheduler=reminder_scheduler,
    )
