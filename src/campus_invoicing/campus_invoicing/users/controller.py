from __future__ import annotations

import logging

from flask import Flask, request, session

from ..common.web import (
    current_actor,
    handle_errors,
    json_body,
    json_ok,
    login_required,
    optional_int,
    parse_enum,
    roles_required,
)
from ..core.enums import Role
from ..container import Container

logger = logging.getLogger(__name__)


def _profile_json(profile) -> dict:
    return {
        "user_id": profile.user_id,
        "email": profile.email,
        "first_name": profile.first_name,
        "last_name": profile.last_name,
        "full_name": profile.full_name,
        "role": profile.role.value,
        "campus_id": profile.campus_id,
        "phone": profile.phone,
        "is_active": profile.is_active,
        "is_new_teacher": profile.is_new_teacher,
    }


def register(app: Flask, container: Container) -> None:
    @app.route("/api/auth/login", methods=["POST"], endpoint="login")
    @handle_errors
    def login():
        data = json_body()
        s_user = container.auth_service.authenticate(
            data.get("email", ""),
            data.get("password", ""),
            ip_address=request.remote_addr or "unknown",
            user_agent=request.headers.get("User-Agent"),
            captcha_token=data.get("recaptcha_token"),
        )

        session.clear()
        session["user_id"] = s_user.user_id
        session["email"] = s_user.email
        session["name"] = s_user.full_name
        session["role"] = s_user.role.value
        session["campus_id"] = s_user.campus_id

        return json_ok(
            user={
                "user_id": s_user.user_id,
                "email": s_user.email,
                "full_name": s_user.full_name,
                "role": s_user.role.value,
                "campus_id": s_user.campus_id,
            }
        )

    @app.route("/api/auth/logout", methods=["POST"], endpoint="logout")
    def logout():
        session.clear()
        return json_ok()

    @app.route("/api/auth/password", methods=["POST"], endpoint="change_password")
    @login_required
    @handle_errors
    def change_password():
        data = json_body()
        container.auth_service.change_password(
            user_id=int(session["user_id"]),
            current_password=data.get("current_password", ""),
            new_password=data.get("new_password", ""),
        )
        return json_ok(message="Mot de passe modifié")

    @app.route("/api/users", methods=["GET"], endpoint="list_users")
    @login_required
    @handle_errors
    def list_users():
        actor = current_actor()
        role = request.args.get("role")
        users = container.user_service.list_users(
            current_role=actor.role,
            current_campus_id=actor.campus_id,
            role=parse_enum(Role, role, "Rôle") if role else None,
            campus_id=optional_int(request.args.get("campus_id")),
            active_only=request.args.get("active_only") in {"1", "true"},
        )
        return json_ok(users=[_profile_json(p) for p in users])

    @app.route("/api/users/<int:user_id>/active", methods=["POST"], endpoint="set_user_active")
    @roles_required(Role.SUPER_ADMIN)
    @handle_errors
    def set_user_active(user_id: int):
        actor = current_actor()
        active = bool(json_body().get("active", True))
        container.user_service.set_active(
            current_role=actor.role, current_user_id=actor.user_id, user_id=user_id, active=active
        )
        return json_ok(user_id=user_id, active=active)

    @app.route("/api/users/delete", methods=["POST"], endpoint="delete_users")
    @roles_required(Role.SUPER_ADMIN)
    @handle_errors
    def delete_users():
        actor = current_actor()
        user_ids = [int(uid) for uid in json_body().get("user_ids") or []]
        result = container.user_service.delete_users(
            current_role=actor.role, current_user_id=actor.user_id, user_ids=user_ids
        )
        return json_ok(**result)

    @app.route("/api/me/rib", methods=["PUT"], endpoint="update_rib")
    @roles_required(Role.ENSEIGNANT)
    @handle_errors
    def update_rib():
        actor = current_actor()
        data = json_body()
        profile = container.user_service.update_teacher_rib(
            current_role=actor.role,
            user_id=actor.user_id,
            iban=data.get("iban", ""),
            bic=data.get("bic"),
            account_holder=data.get("account_holder"),
            bank_name=data.get("bank_name"),
        )
        return json_ok(teacher_profile=profile)
