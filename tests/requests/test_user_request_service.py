from __future__ import annotations

from dataclasses import replace

import pytest

from src.campus_invoicing.campus_invoicing.core.enums import RequestStatus, Role
from src.campus_invoicing.campus_invoicing.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from src.campus_invoicing.campus_invoicing.credentials.model import AccountResult
from src.campus_invoicing.campus_invoicing.notifications.service import NotificationService
from src.campus_invoicing.campus_invoicing.requests.model import UserCreationRequest
from src.campus_invoicing.campus_invoicing.requests.service import UserRequestService
from src.campus_invoicing.campus_invoicing.users.model import Actor, Profile

ADMIN = Actor(user_id=1, role=Role.SUPER_ADMIN)
DIRECTOR = Actor(user_id=20, role=Role.DIRECTEUR_CAMPUS, campus_id=2)


class FakeRequestsRepo:
    def __init__(self):
        self.items: dict[int, UserCreationRequest] = {}
        self.list_calls: list[dict] = []

    def create(self, *, requested_by, first_name, last_name, email, phone, role, campus_id, justification):
        request_id = len(self.items) + 1
        self.items[request_id] = UserCreationRequest(
            request_id=request_id,
            requested_by=requested_by,
            first_name=first_name,
            last_name=last_name,
            email=email,
            role=role,
            campus_id=campus_id,
            status=RequestStatus.PENDING,
            phone=phone,
            justification=justification,
        )
        return request_id

    def get_by_id(self, request_id):
        return self.items.get(request_id)

    def list_requests(self, *, status=None, requested_by=None, limit=200):
        self.list_calls.append({"status": status, "requested_by": requested_by})
        return list(self.items.values())

    def decide(self, *, request_id, from_statuses, status, processed_by, rejection_reason=None):
        req = self.items.get(request_id)
        if not req or req.status not in from_statuses:
            return False
        self.items[request_id] = replace(
            req, status=status, processed_by=processed_by, rejection_reason=rejection_reason
        )
        return True


class FakeUsersRepo:
    def __init__(self):
        self.profiles = {
            20: Profile(user_id=20, email="dir@test.com", first_name="Lou", last_name="Directrice", role=Role.DIRECTEUR_CAMPUS, campus_id=2),
        }

    def get_by_id(self, user_id):
        return self.profiles.get(user_id)

    def get_by_email(self, email):
        return next((p for p in self.profiles.values() if p.email == email), None)

    def list_active_ids_by_role(self, role, *, campus_id=None):
        return [1] if role == Role.SUPER_ADMIN else []


class FakeNotificationsRepo:
    def __init__(self):
        self.items: list[tuple[int, str, str]] = []

    def create(self, *, user_id, type, title, message):
        self.items.append((user_id, title, message))
        return len(self.items)


class StubProvisioning:
    def __init__(self):
        self.calls: list[dict] = []

    def create_account(self, **kwargs):
        self.calls.append(kwargs)
        return AccountResult(
            user_id=50,
            email=kwargs["email"],
            full_name=f"{kwargs['first_name']} {kwargs['last_name']}",
            temporary_password="Tmp@pass1234",
        )


def _service():
    requests_repo = FakeRequestsRepo()
    users = FakeUsersRepo()
    notes = FakeNotificationsRepo()
    provisioning = StubProvisioning()
    svc = UserRequestService(requests_repo, users, provisioning, NotificationService(notes, users))
    return svc, requests_repo, notes, provisioning


def _submit(svc, **overrides):
    data = dict(actor=DIRECTOR, first_name="Marie", last_name="Curie", email="Marie.Curie@test.com", role=Role.ENSEIGNANT)
    data.update(overrides)
    return svc.submit(**data)


def test_director_submits_for_own_campus_and_admins_are_told():
    svc, repo, notes, _ = _service()

    request_id = _submit(svc, justification="  Remplacement  ")

    req = repo.items[request_id]
    assert (req.campus_id, req.email, req.status) == (2, "marie.curie@test.com", RequestStatus.PENDING)
    assert req.justification == "Remplacement"
    assert notes.items == [
        (1, "Nouvelle demande utilisateur", "Lou Directrice demande la création d'un compte pour Marie Curie.")
    ]


def test_submit_rules():
    svc, _, _, _ = _service()

    with pytest.raises(AuthorizationError):
        _submit(svc, actor=Actor(user_id=30, role=Role.COMPTABLE))
    with pytest.raises(AuthorizationError):
        _submit(svc, actor=Actor(user_id=21, role=Role.DIRECTEUR_CAMPUS))
    with pytest.raises(ValidationError):
        _submit(svc, role=Role.SUPER_ADMIN)
    with pytest.raises(ValidationError):
        _submit(svc, email="dir@test.com")


def test_listing_scopes():
    svc, repo, _, _ = _service()

    svc.list_requests(actor=ADMIN, status=RequestStatus.PENDING)
    svc.list_requests(actor=DIRECTOR)

    assert repo.list_calls == [
        {"status": RequestStatus.PENDING, "requested_by": None},
        {"status": None, "requested_by": 20},
    ]
    with pytest.raises(AuthorizationError):
        svc.list_requests(actor=Actor(user_id=10, role=Role.ENSEIGNANT))


def test_approve_then_complete_provisions_the_account():
    svc, repo, notes, provisioning = _service()
    request_id = _submit(svc)

    svc.approve(actor=ADMIN, request_id=request_id)
    account = svc.complete(actor=ADMIN, request_id=request_id)

    assert repo.items[request_id].status == RequestStatus.COMPLETED
    assert account.user_id == 50
    [call] = provisioning.calls
    assert (call["campus_id"], call["role"], call["is_new_teacher"]) == (2, Role.ENSEIGNANT, True)
    assert notes.items[-1][:2] == (20, "Compte créé")


def test_complete_requires_approval():
    svc, _, _, provisioning = _service()
    request_id = _submit(svc)

    with pytest.raises(ValidationError):
        svc.complete(actor=ADMIN, request_id=request_id)
    assert provisioning.calls == []


def test_approve_twice_fails():
    svc, _, _, _ = _service()
    request_id = _submit(svc)
    svc.approve(actor=ADMIN, request_id=request_id)

    with pytest.raises(ValidationError):
        svc.approve(actor=ADMIN, request_id=request_id)
    with pytest.raises(NotFoundError):
        svc.approve(actor=ADMIN, request_id=99)


def test_reject_needs_reason_and_notifies_requester():
    svc, repo, notes, _ = _service()
    request_id = _submit(svc)

    with pytest.raises(ValidationError):
        svc.reject(actor=ADMIN, request_id=request_id, reason=" ")
    svc.reject(actor=ADMIN, request_id=request_id, reason="Doublon")

    req = repo.items[request_id]
    assert (req.status, req.rejection_reason) == (RequestStatus.REJECTED, "Doublon")
    assert notes.items[-1][0] == 20
    assert notes.items[-1][2].endswith("Motif: Doublon")
    with pytest.raises(ValidationError):
        svc.reject(actor=ADMIN, request_id=request_id, reason="Encore")


def test_only_super_admin_decides():
    svc, _, _, _ = _service()
    request_id = _submit(svc)

    with pytest.raises(AuthorizationError):
        svc.approve(actor=DIRECTOR, request_id=request_id)
    with pytest.raises(AuthorizationError):
        svc.complete(actor=DIRECTOR, request_id=request_id)
