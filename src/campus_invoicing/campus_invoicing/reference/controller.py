from __future__ import annotations

from flask import Flask, request

from ..common.web import handle_errors, json_ok, login_required, optional_int, roles_required
from ..container import Container
from ..core.enums import Role


def register(app: Flask, container: Container) -> None:
    @app.route("/api/reference/campuses", methods=["GET"], endpoint="reference_campuses")
    @login_required
    @handle_errors
    def campuses():
        return json_ok(campuses=container.reference_service.list_campuses())

    @app.route("/api/reference/filieres", methods=["GET"], endpoint="reference_filieres")
    @login_required
    @handle_errors
    def filieres():
        return json_ok(filieres=container.reference_service.list_filieres())

    @app.route("/api/reference/course-titles", methods=["GET"], endpoint="reference_course_titles")
    @login_required
    @handle_errors
    def course_titles():
        return json_ok(course_titles=container.reference_service.list_course_titles())

    @app.route("/api/reference/classes", methods=["GET"], endpoint="reference_classes")
    @login_required
    @handle_errors
    def classes():
        campus_id = optional_int(request.args.get("campus_id"))
        return json_ok(classes=container.reference_service.list_classes(campus_id=campus_id))

    @app.route("/api/reference/refresh", methods=["POST"], endpoint="reference_refresh")
    @roles_required(Role.SUPER_ADMIN)
    @handle_errors
    def refresh():
        # Campuses and filières are edited directly in the database.
        container.reference_service.invalidate()
        return json_ok()
