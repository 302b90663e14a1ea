from __future__ import annotations

import csv
import io
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from src.campus_invoicing.campus_invoicing.common.cache import TTLCache
from src.campus_invoicing.campus_invoicing.common.datetime_utils import now_local
from src.campus_invoicing.campus_invoicing.core.enums import ResetScope, Role
from src.campus_invoicing.campus_invoicing.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ProvisioningError,
    ValidationError,
)
from src.campus_invoicing.campus_invoicing.credentials.model import CredentialExportRow, TempAccessCredential
from src.campus_invoicing.campus_invoicing.credentials.service import EXPORT_HEADER, ProvisioningService
from src.campus_invoicing.campus_invoicing.notifications.service import NotificationService
from src.campus_invoicing.campus_invoicing.reference.model import Campus
from src.campus_invoicing.campus_invoicing.reference.service import ReferenceDataService
from src.campus_invoicing.campus_invoicing.users.captcha import RecaptchaVerifier
from src.campus_invoicing.campus_invoicing.users.model import Actor, Identity, Profile, TeacherProfile
from src.campus_invoicing.campus_invoicing.users.service import AuthService

ADMIN = Actor(user_id=1, role=Role.SUPER_ADMIN)


class FakeIdentitiesRepo:
    def __init__(self, *, failing_deletes: int = 0):
        self.items: dict[int, Identity] = {1: Identity(user_id=1, email="admin@test.com", password_hash="x")}
        self.failing_deletes = failing_deletes
        self.delete_calls = 0

    def get_by_id(self, user_id):
        return self.items.get(user_id)

    def get_by_email(self, email):
        return next((i for i in self.items.values() if i.email == email), None)

    def create(self, *, email, password_hash):
        user_id = max(self.items) + 1
        self.items[user_id] = Identity(user_id=user_id, email=email, password_hash=password_hash)
        return user_id

    def update_password(self, user_id, *, password_hash):
        if user_id not in self.items:
            return False
        self.items[user_id] = replace(self.items[user_id], password_hash=password_hash)
        return True

    def delete(self, user_id):
        self.delete_calls += 1
        if self.failing_deletes:
            self.failing_deletes -= 1
            raise RuntimeError("database is gone")
        return self.items.pop(user_id, None) is not None


class FakeUsersRepo:
    def __init__(self, identities: FakeIdentitiesRepo, *, fail_teacher_profile: bool = False):
        self.identities = identities
        self.profiles: dict[int, Profile] = {
            1: Profile(user_id=1, email="admin@test.com", first_name="Ada", last_name="Admin", role=Role.SUPER_ADMIN, campus_id=None)
        }
        self.teacher_profiles: dict[int, TeacherProfile] = {}
        self.fail_teacher_profile = fail_teacher_profile

    def get_by_id(self, user_id):
        if user_id not in self.identities.items:
            return None
        return self.profiles.get(user_id)

    def get_by_email(self, email):
        return next((p for p in self.profiles.values() if p.email == email and p.user_id in self.identities.items), None)

    def upsert_profile(self, *, user_id, email, first_name, last_name, role, campus_id, phone, is_new_teacher=None, hire_date=None, notes=None):
        self.profiles[user_id] = Profile(
            user_id=user_id,
            email=email,
            first_name=first_name,
            last_name=last_name,
            role=role,
            campus_id=campus_id,
            phone=phone,
            is_new_teacher=is_new_teacher,
            hire_date=hire_date,
            notes=notes,
        )

    def ensure_teacher_profile(self, user_id, *, rate_min, rate_max):
        if self.fail_teacher_profile:
            raise RuntimeError("teacher_profile insert failed")
        self.teacher_profiles[user_id] = TeacherProfile(user_id=user_id, hourly_rate_min=rate_min, hourly_rate_max=rate_max)

    def list_users(self, *, role=None, campus_id=None, active_only=False):
        return [
            p
            for p in self.profiles.values()
            if p.user_id in self.identities.items
            and (role is None or p.role == role)
            and (campus_id is None or p.campus_id == campus_id)
            and (not active_only or p.is_active)
        ]

    def list_active_ids_by_role(self, role, *, campus_id=None):
        return [p.user_id for p in self.list_users(role=role, campus_id=campus_id, active_only=True)]

    def list_new_teacher_ids(self):
        return [p.user_id for p in self.list_users(role=Role.ENSEIGNANT) if p.is_new_teacher]


class FakeCredentialsRepo:
    def __init__(self, users: FakeUsersRepo):
        self.users = users
        self.rows: list[TempAccessCredential] = []
        self.failing_user_ids: set[int] = set()

    def add(self, *, user_id, email, temp_password, created_by, expires_at):
        if user_id in self.failing_user_ids:
            raise RuntimeError("credentials insert failed")
        row = TempAccessCredential(
            credential_id=len(self.rows) + 1,
            user_id=user_id,
            email=email,
            temp_password=temp_password,
            created_by=created_by,
            created_at=now_local(),
            expires_at=expires_at,
        )
        self.rows.append(row)
        return row.credential_id

    def list_for_user(self, user_id):
        return [r for r in self.rows if r.user_id == user_id]

    def list_for_export(self):
        out = []
        for r in reversed(self.rows):
            profile = self.users.profiles.get(r.user_id)
            out.append(
                CredentialExportRow(
                    credential_id=r.credential_id,
                    email=r.email,
                    temp_password=r.temp_password,
                    first_name=profile.first_name if profile else "",
                    last_name=profile.last_name if profile else "",
                    role=profile.role if profile else None,
                    campus_name=None,
                    created_at=r.created_at,
                    expires_at=r.expires_at,
                    exported_at=r.exported_at,
                )
            )
        return out

    def mark_exported(self, credential_ids, *, exported_at):
        ids = set(credential_ids)
        self.rows = [replace(r, exported_at=exported_at) if r.credential_id in ids else r for r in self.rows]
        return len(ids)

    def user_ids_with_credentials(self):
        return {r.user_id for r in self.rows}

    def mark_password_changed(self, user_id):
        self.rows = [replace(r, is_password_changed=True) if r.user_id == user_id else r for r in self.rows]
        return 1

    def purge_expired(self, *, now):
        before = len(self.rows)
        self.rows = [
            r for r in self.rows if not (r.is_expired(now) and (r.exported_at is not None or r.is_password_changed))
        ]
        return before - len(self.rows)


class FakeNotificationsRepo:
    def __init__(self):
        self.items: list[dict] = []

    def create(self, *, user_id, type, title, message):
        self.items.append({"user_id": user_id, "title": title, "message": message})
        return len(self.items)


class FakeLoginAttemptsRepo:
    def __init__(self):
        self.items: list[dict] = []

    def record(self, **kwargs):
        self.items.append(kwargs)

    def count_failures_since(self, *, email, ip_address, since):
        return 0


class FakeReferenceRepo:
    def list_campuses(self):
        return [Campus(1, "Roquette")]


class World:
    def __init__(self, *, failing_deletes: int = 0, fail_teacher_profile: bool = False, cleanup_retries: int = 3):
        self.identities = FakeIdentitiesRepo(failing_deletes=failing_deletes)
        self.users = FakeUsersRepo(self.identities, fail_teacher_profile=fail_teacher_profile)
        self.credentials = FakeCredentialsRepo(self.users)
        self.notifications = FakeNotificationsRepo()
        notification_service = NotificationService(self.notifications, self.users)
        self.provisioning = ProvisioningService(
            self.identities,
            self.users,
            self.credentials,
            notification_service,
            ReferenceDataService(FakeReferenceRepo(), cache=TTLCache()),
            login_url="https://factures.example.org/login",
            temp_password_ttl_days=14,
            cleanup_retries=cleanup_retries,
        )
        self.auth = AuthService(
            self.identities,
            self.users,
            FakeLoginAttemptsRepo(),
            self.credentials,
            captcha=RecaptchaVerifier(None),
        )

    def create_teacher(self, email="jean.dupont@test.com", *, is_new_teacher=True, campus_id=1):
        return self.provisioning.create_account(
            actor=ADMIN,
            first_name="Jean",
            last_name="Dupont",
            email=email,
            role=Role.ENSEIGNANT,
            campus_id=campus_id,
            is_new_teacher=is_new_teacher,
        )


def test_create_account_issues_credential_profile_and_teacher_profile():
    world = World()

    result = world.create_teacher()

    assert result.already_exists is False
    assert len(result.temporary_password) == 12
    profile = world.users.profiles[result.user_id]
    assert (profile.role, profile.campus_id, profile.is_new_teacher) == (Role.ENSEIGNANT, 1, True)
    assert world.users.teacher_profiles[result.user_id].hourly_rate_min == Decimal("50.00")
    [credential] = world.credentials.list_for_user(result.user_id)
    assert credential.temp_password == result.temporary_password
    assert timedelta(days=13, hours=23) < credential.expires_at - credential.created_at <= timedelta(days=14)
    assert world.auth.authenticate("jean.dupont@test.com", result.temporary_password).user_id == result.user_id


def test_existing_email_is_reported_not_recreated():
    world = World()
    first = world.create_teacher()

    again = world.create_teacher()

    assert again.already_exists is True
    assert again.user_id == first.user_id
    assert again.temporary_password is None
    assert len(world.credentials.rows) == 1


def test_only_super_admin_creates_accounts():
    world = World()
    with pytest.raises(AuthorizationError):
        world.provisioning.create_account(
            actor=Actor(user_id=5, role=Role.DIRECTEUR_CAMPUS, campus_id=1),
            first_name="A",
            last_name="B",
            email="a@b.fr",
            role=Role.ENSEIGNANT,
        )


def test_director_account_needs_a_campus():
    world = World()
    with pytest.raises(ValidationError):
        world.provisioning.create_account(
            actor=ADMIN, first_name="Dina", last_name="Dir", email="dina@test.com", role=Role.DIRECTEUR_CAMPUS
        )


def test_failed_profile_step_removes_the_identity():
    world = World(fail_teacher_profile=True)

    with pytest.raises(ProvisioningError):
        world.create_teacher()

    assert world.identities.get_by_email("jean.dupont@test.com") is None
    assert world.identities.delete_calls == 1
    assert world.notifications.items == []


def test_cleanup_is_retried_before_giving_up():
    world = World(fail_teacher_profile=True, failing_deletes=2, cleanup_retries=3)

    with pytest.raises(ProvisioningError):
        world.create_teacher()

    assert world.identities.delete_calls == 3
    assert world.identities.get_by_email("jean.dupont@test.com") is None


def test_exhausted_cleanup_alerts_super_admins():
    world = World(fail_teacher_profile=True, failing_deletes=5, cleanup_retries=2)

    with pytest.raises(ProvisioningError):
        world.create_teacher()

    assert world.identities.delete_calls == 2
    assert world.identities.get_by_email("jean.dupont@test.com") is not None
    [alert] = world.notifications.items
    assert alert["user_id"] == ADMIN.user_id
    assert alert["title"] == "Alerte système: provisioning"
    assert "jean.dupont@test.com" in alert["message"]


def test_two_resets_append_two_rows_and_latest_password_wins():
    world = World()
    account = world.create_teacher()

    first = world.provisioning.reset_passwords(actor=ADMIN, user_ids=[account.user_id])
    second = world.provisioning.reset_passwords(actor=ADMIN, user_ids=[account.user_id])

    rows = world.credentials.list_for_user(account.user_id)
    assert len(rows) == 3
    latest = second["results"][0]["temporary_password"]
    earlier = first["results"][0]["temporary_password"]
    assert rows[-1].temp_password == latest
    assert world.auth.authenticate("jean.dupont@test.com", latest).user_id == account.user_id
    with pytest.raises(AuthenticationError):
        world.auth.authenticate("jean.dupont@test.com", earlier)
    assert second["results"][0]["login_url"] == "https://factures.example.org/login"


def test_reset_by_scope_excludes_the_acting_admin():
    world = World()
    new_teacher = world.create_teacher()
    world.create_teacher("old.teacher@test.com", is_new_teacher=False)

    new_only = world.provisioning.reset_passwords(actor=ADMIN, scope=ResetScope.NEW_TEACHERS)
    everyone = world.provisioning.reset_passwords(actor=ADMIN, scope=ResetScope.ALL_USERS)

    assert [r["user_id"] for r in new_only["results"]] == [new_teacher.user_id]
    assert ADMIN.user_id not in [r["user_id"] for r in everyone["results"]]
    assert everyone["success_count"] == 2


def test_reset_reports_missing_users():
    world = World()
    result = world.provisioning.reset_passwords(actor=ADMIN, user_ids=[404])

    assert result["success_count"] == 0
    assert result["errors"] == ["404: profil introuvable"]

    with pytest.raises(ValidationError):
        world.provisioning.reset_passwords(actor=ADMIN)


def test_reset_continues_after_a_failed_credential_insert():
    world = World()
    first = world.create_teacher()
    second = world.create_teacher("ana.lima@test.com")
    world.credentials.failing_user_ids.add(first.user_id)

    result = world.provisioning.reset_passwords(actor=ADMIN, user_ids=[first.user_id, second.user_id])

    assert result["success_count"] == 1
    assert [r["user_id"] for r in result["results"]] == [second.user_id]
    assert result["errors"] == [f"{first.user_id}: credentials insert failed"]
    assert world.credentials.list_for_user(second.user_id)[-1].temp_password == result["results"][0]["temporary_password"]


def test_generate_missing_credentials_reports_failed_rows():
    world = World()
    world.credentials.failing_user_ids.add(ADMIN.user_id)

    result = world.provisioning.generate_missing_credentials(actor=ADMIN)

    assert result["processed"] == 0
    assert result["errors"] == ["admin@test.com: credentials insert failed"]


def test_generate_missing_credentials_skips_users_who_already_have_one():
    world = World()
    world.create_teacher()

    result = world.provisioning.generate_missing_credentials(actor=ADMIN)

    assert result["processed"] == 1
    assert result["createdPasswords"][0]["email"] == "admin@test.com"
    assert result["alreadyExisting"] == 1


def test_export_marks_rows_and_hides_expired_passwords():
    world = World()
    account = world.create_teacher()
    world.credentials.rows.append(
        TempAccessCredential(
            credential_id=99,
            user_id=account.user_id,
            email=account.email,
            temp_password="Expired#123",
            created_by=1,
            created_at=now_local() - timedelta(days=30),
            expires_at=now_local() - timedelta(days=16),
        )
    )

    data = world.provisioning.export_credentials_csv(actor=ADMIN)

    assert data.startswith(b"\xef\xbb\xbf")
    rows = list(csv.reader(io.StringIO(data.decode("utf-8-sig"))))
    assert tuple(rows[0]) == EXPORT_HEADER
    by_password = {r[1] for r in rows[1:]}
    assert account.temporary_password in by_password
    assert "Expired#123" not in by_password
    assert all(r.exported_at is not None for r in world.credentials.rows)


def test_purge_removes_only_expired_rows_that_were_exported():
    world = World()
    account = world.create_teacher()
    old = now_local() - timedelta(days=20)
    world.credentials.rows.append(
        TempAccessCredential(
            credential_id=50,
            user_id=account.user_id,
            email=account.email,
            temp_password="Old#1234",
            created_by=1,
            created_at=old,
            expires_at=old + timedelta(days=14),
            exported_at=old,
        )
    )

    removed = world.provisioning.purge_expired_credentials(now=datetime.now())

    assert removed == 1
    assert [r.credential_id for r in world.credentials.rows] == [1]


def test_access_notifications_are_delivered_in_app():
    world = World()
    account = world.create_teacher()

    result = world.provisioning.send_access_notifications(
        actor=ADMIN,
        access_info=[
            {"email": "Jean.Dupont@test.com", "temporary_password": account.temporary_password},
            {"email": "ghost@test.com"},
        ],
    )

    assert result["success_count"] == 1
    assert result["errors"] == ["ghost@test.com: utilisateur introuvable"]
    note = world.notifications.items[-1]
    assert note["user_id"] == account.user_id
    assert account.temporary_password in note["message"]
    assert "https://factures.example.org/login" in note["message"]
