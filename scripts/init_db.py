from __future__ import annotations

import argparse
import importlib
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from config import get_settings_module

from src.campus_invoicing.campus_invoicing.database.bootstrap import (
    apply_schema,
    apply_seed_sql,
    ensure_super_admin,
    list_tables,
)


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the schema and optionally seed reference data.")
    parser.add_argument("--seed", action="store_true", help="also load database/seed.sql and the super admin")
    args = parser.parse_args()

    settings = importlib.import_module(get_settings_module())
    db_config = dict(settings.DB_CONFIG)
    target = (
        f"{db_config.get('user')}@{db_config.get('host')}:{db_config.get('port', 3306)}/{db_config.get('database')}"
    )

    apply_schema(db_config, schema_path=REPO_ROOT / "database" / "schema.sql")
    print(f"OK: Applied schema.sql -> {target} (tables={len(list_tables(db_config))})")

    if args.seed:
        apply_seed_sql(db_config, seed_path=REPO_ROOT / "database" / "seed.sql")
        email = getattr(settings, "SUPER_ADMIN_EMAIL", "")
        password = getattr(settings, "SUPER_ADMIN_PASSWORD", "")
        if email and password:
            ensure_super_admin(db_config, email=email, password=password)
            print(f"OK: Super admin ready ({email})")
        else:
            print("SKIP: SUPER_ADMIN_EMAIL / SUPER_ADMIN_PASSWORD not set")
        print(f"OK: Seeded database -> {target}")


if __name__ == "__main__":
    main()
