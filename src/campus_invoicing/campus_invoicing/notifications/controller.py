from __future__ import annotations

from flask import Flask, request, session

from ..common.web import handle_errors, json_ok, login_required
from ..container import Container


def register(app: Flask, container: Container) -> None:
    @app.route("/api/notifications", methods=["GET"], endpoint="list_notifications")
    @login_required
    @handle_errors
    def list_notifications():
        user_id = int(session["user_id"])
        unread_only = request.args.get("unread_only") in {"1", "true"}
        return json_ok(
            notifications=container.notification_service.list_for_user(user_id, unread_only=unread_only),
            unread_count=container.notification_service.unread_count(user_id),
        )

    @app.route("/api/notifications/<int:notification_id>/read", methods=["POST"], endpoint="read_notification")
    @login_required
    @handle_errors
    def read_notification(notification_id: int):
        container.notification_service.mark_read(user_id=int(session["user_id"]), notification_id=notification_id)
        return json_ok(notification_id=notification_id)

    @app.route("/api/notifications/read-all", methods=["POST"], endpoint="read_all_notifications")
    @login_required
    @handle_errors
    def read_all_notifications():
        return json_ok(updated=container.notification_service.mark_all_read(int(session["user_id"])))
