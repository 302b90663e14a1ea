from __future__ import annotations

from flask import Flask

from ..common.web import current_actor, handle_errors, json_ok, read_uploaded_csv, roles_required
from ..core.enums import Role
from ..container import Container
from .parser import parse_teacher_csv


def register(app: Flask, container: Container) -> None:
    @app.route("/api/users/import", methods=["POST"], endpoint="import_teachers")
    @roles_required(Role.SUPER_ADMIN)
    @handle_errors
    def import_teachers():
        filename, text = read_uploaded_csv()
        parsed = parse_teacher_csv(text)
        result = container.teacher_import_service.import_teachers(
            actor=current_actor(), rows=parsed.rows, filename=filename
        )
        return json_ok(**result, warnings=list(parsed.warnings))
