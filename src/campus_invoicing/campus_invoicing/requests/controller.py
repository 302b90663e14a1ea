from __future__ import annotations

from flask import Flask, request

from ..common.web import current_actor, handle_errors, json_body, json_ok, parse_enum, roles_required
from ..core.enums import RequestStatus, Role
from ..container import Container


def register(app: Flask, container: Container) -> None:
    @app.route("/api/user-requests", methods=["POST"], endpoint="submit_user_request")
    @roles_required(Role.DIRECTEUR_CAMPUS)
    @handle_errors
    def submit_user_request():
        data = json_body()
        request_id = container.user_request_service.submit(
            actor=current_actor(),
            first_name=data.get("first_name", ""),
            last_name=data.get("last_name", ""),
            email=data.get("email", ""),
            role=parse_enum(Role, data.get("role", Role.ENSEIGNANT.value), "Rôle"),
            phone=data.get("phone"),
            justification=data.get("justification"),
        )
        return json_ok(request_id=request_id)

    @app.route("/api/user-requests", methods=["GET"], endpoint="list_user_requests")
    @roles_required(Role.SUPER_ADMIN, Role.DIRECTEUR_CAMPUS)
    @handle_errors
    def list_user_requests():
        status = request.args.get("status")
        requests_ = container.user_request_service.list_requests(
            actor=current_actor(),
            status=parse_enum(RequestStatus, status, "Statut") if status else None,
        )
        return json_ok(requests=requests_)

    @app.route("/api/user-requests/<int:request_id>/approve", methods=["POST"], endpoint="approve_user_request")
    @roles_required(Role.SUPER_ADMIN)
    @handle_errors
    def approve_user_request(request_id: int):
        container.user_request_service.approve(actor=current_actor(), request_id=request_id)
        return json_ok(request_id=request_id, status=RequestStatus.APPROVED)

    @app.route("/api/user-requests/<int:request_id>/reject", methods=["POST"], endpoint="reject_user_request")
    @roles_required(Role.SUPER_ADMIN)
    @handle_errors
    def reject_user_request(request_id: int):
        container.user_request_service.reject(
            actor=current_actor(), request_id=request_id, reason=json_body().get("reason", "")
        )
        return json_ok(request_id=request_id, status=RequestStatus.REJECTED)

    @app.route("/api/user-requests/<int:request_id>/complete", methods=["POST"], endpoint="complete_user_request")
    @roles_required(Role.SUPER_ADMIN)
    @handle_errors
    def complete_user_request(request_id: int):
        account = container.user_request_service.complete(actor=current_actor(), request_id=request_id)
        return json_ok(request_id=request_id, account=account.to_dict())
