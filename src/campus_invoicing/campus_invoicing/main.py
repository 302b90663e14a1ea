from __future__ import annotations

import atexit
import importlib
import logging
from pathlib import Path

from dotenv import load_dotenv
from flask import Flask

from config import get_settings_module

from .container import build_container
from .credentials.controller import register as register_credentials
from .dashboards.controller import register as register_dashboards
from .database.bootstrap import apply_schema, apply_seed_sql, ensure_super_admin, list_tables
from .invoices.controller import register as register_invoices
from .notifications.controller import register as register_notifications
from .reference.controller import register as register_reference
from .requests.controller import register as register_requests
from .teacher_import.controller import register as register_teacher_import
from .users.controller import register as register_users

logger = logging.getLogger(__name__)


def create_app() -> Flask:
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = get_settings_module()
    settings = importlib.import_module(settings_module)
    app.secret_key = getattr(settings, "SECRET_KEY")
    db_config = getattr(settings, "DB_CONFIG")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["JSON_AS_ASCII"] = False

    logging.basicConfig(
        level=getattr(settings, "LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info(
        "settings=%s db=%s@%s:%s/%s",
        settings_module,
        db_config.get("user"),
        db_config.get("host"),
        db_config.get("port", 3306),
        db_config.get("database"),
    )

    database_dir = Path(__file__).resolve().parents[3] / "database"
    if bool(getattr(settings, "AUTO_INIT_DB", False)):
        apply_schema(db_config, schema_path=database_dir / "schema.sql")
        logger.info("schema ready (tables=%d)", len(list_tables(db_config)))
    if bool(getattr(settings, "AUTO_SEED_DB", False)):
        apply_seed_sql(db_config, seed_path=database_dir / "seed.sql")
        admin_email = getattr(settings, "SUPER_ADMIN_EMAIL", "")
        admin_password = getattr(settings, "SUPER_ADMIN_PASSWORD", "")
        if admin_email and admin_password:
            ensure_super_admin(db_config, email=admin_email, password=admin_password)
        logger.info("seed ready")

    container = build_container(db_config=db_config, settings=settings)
    app.extensions["campus_invoicing"] = container
    atexit.register(container.close)

    register_users(app, container)
    register_credentials(app, container)
    register_teacher_import(app, container)
    register_requests(app, container)
    register_reference(app, container)
    register_invoices(app, container)
    register_notifications(app, container)
    register_dashboards(app, container)

    return app
