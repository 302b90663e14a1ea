from __future__ import annotations

from flask import Flask

from ..common.datetime_utils import now_local, parse_iso_date
from ..common.web import current_actor, handle_errors, json_body, json_ok, optional_int, parse_enum, roles_required
from ..core.enums import ResetScope, Role
from ..container import Container


def register(app: Flask, container: Container) -> None:
    @app.route("/api/users", methods=["POST"], endpoint="create_user")
    @roles_required(Role.SUPER_ADMIN)
    @handle_errors
    def create_user():
        data = json_body()
        hire_date = data.get("hire_date")
        result = container.provisioning_service.create_account(
            actor=current_actor(),
            first_name=data.get("first_name", ""),
            last_name=data.get("last_name", ""),
            email=data.get("email", ""),
            role=parse_enum(Role, data.get("role"), "Rôle"),
            campus_id=optional_int(data.get("campus_id")),
            phone=data.get("phone"),
            password=data.get("password"),
            is_new_teacher=bool(data.get("is_new_teacher", False)),
            hire_date=parse_iso_date(hire_date) if hire_date else None,
            notes=data.get("notes"),
        )
        return json_ok(account=result.to_dict())

    @app.route("/api/users/reset-passwords", methods=["POST"], endpoint="reset_passwords")
    @roles_required(Role.SUPER_ADMIN)
    @handle_errors
    def reset_passwords():
        data = json_body()
        scope = data.get("scope")
        result = container.provisioning_service.reset_passwords(
            actor=current_actor(),
            user_ids=[int(uid) for uid in data.get("user_ids") or []] or None,
            scope=parse_enum(ResetScope, scope, "Périmètre") if scope else None,
        )
        return json_ok(**result)

    @app.route("/api/users/temp-passwords", methods=["POST"], endpoint="generate_temp_passwords")
    @roles_required(Role.SUPER_ADMIN)
    @handle_errors
    def generate_temp_passwords():
        return json_ok(**container.provisioning_service.generate_missing_credentials(actor=current_actor()))

    @app.route("/api/users/access-notifications", methods=["POST"], endpoint="send_access_notifications")
    @roles_required(Role.SUPER_ADMIN)
    @handle_errors
    def send_access_notifications():
        access_info = json_body().get("access_info") or []
        return json_ok(
            **container.provisioning_service.send_access_notifications(actor=current_actor(), access_info=access_info)
        )

    @app.route("/api/users/credentials.csv", methods=["GET"], endpoint="export_credentials")
    @roles_required(Role.SUPER_ADMIN)
    @handle_errors
    def export_credentials():
        data = container.provisioning_service.export_credentials_csv(actor=current_actor())
        filename = f"identifiants_{now_local().strftime('%Y%m%d_%H%M')}.csv"
        return app.response_class(
            data,
            mimetype="text/csv; charset=utf-8",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )
