from __future__ import annotations

from flask import Flask

from ..common.web import current_actor, handle_errors, json_ok, login_required
from ..container import Container


def register(app: Flask, container: Container) -> None:
    @app.route("/api/dashboard", methods=["GET"], endpoint="dashboard")
    @login_required
    @handle_errors
    def dashboard():
        return json_ok(**container.dashboard_service.build(actor=current_actor()).to_dict())
