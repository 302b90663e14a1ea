from __future__ import annotations

import logging
from typing import Sequence

from ..common.datetime_utils import now_local
from ..core.constants import IMPORT_ERROR_MESSAGE_LIMIT
from ..core.enums import ImportStatus, Role
from ..core.exceptions import AuthorizationError, ProvisioningError, ValidationError
from ..credentials.service import ProvisioningService
from ..reference.service import ReferenceDataService
from ..users.model import Actor
from ..users.repository import UserRepository
from .parser import TeacherRow
from .repository import TeacherImportRepository

logger = logging.getLogger(__name__)


class BulkTeacherImportService:
    """Use case: provision teacher accounts from a spreadsheet export.

    Best effort: each row succeeds or fails on its own and the batch result
    aggregates errors, unknown campuses and already-known emails.
    """

    def __init__(
        self,
        provisioning: ProvisioningService,
        users: UserRepository,
        reference: ReferenceDataService,
        imports: TeacherImportRepository,
    ):
        self._provisioning = provisioning
        self._users = users
        self._reference = reference
        self._imports = imports

    def import_teachers(self, *, actor: Actor, rows: Sequence[TeacherRow], filename: str = "") -> dict:
        if actor.role != Role.SUPER_ADMIN:
            raise AuthorizationError("Accès réservé aux super administrateurs")

        total = len(rows)
        import_id = self._imports.create(
            imported_by=actor.user_id, filename=filename or "unknown.csv", total_teachers=total
        )
        logger.info("Teacher import %s started: %d rows", import_id, total)

        try:
            outcome = self._process(actor, rows)
        except Exception as e:
            self._imports.finish(import_id, status=ImportStatus.FAILED, processed_teachers=0, error_message=str(e))
            raise

        errors = outcome["errors"]
        self._imports.finish(
            import_id,
            status=ImportStatus.COMPLETED,
            processed_teachers=outcome["processed"],
            error_message="; ".join(errors[:IMPORT_ERROR_MESSAGE_LIMIT]) or None,
        )
        logger.info("Teacher import %s: %d/%d rows provisioned", import_id, outcome["processed"], total)

        return {
            "success": True,
            "importId": import_id,
            "totalTeachers": total,
            "processedTeachers": outcome["processed"],
            "errors": errors,
            "unknownCampuses": sorted(outcome["unknown_campuses"]),
            "alreadyExisting": outcome["already_existing"],
            "accounts": outcome["accounts"],
        }

    def _process(self, actor: Actor, rows: Sequence[TeacherRow]) -> dict:
        campus_ids = self._reference.campus_name_map()
        today = now_local().date()

        processed = 0
        errors: list[str] = []
        unknown_campuses: set[str] = set()
        already_existing: list[str] = []
        accounts: list[dict] = []

        for row in rows:
            if not row.email or "@" not in row.email:
                errors.append(f"{row.full_name}: email invalide ({row.email or 'manquant'})")
                continue
            if not row.first_name or not row.last_name:
                errors.append(f"{row.email}: prénom ou nom manquant")
                continue
            if self._users.get_by_email(row.email):
                already_existing.append(row.email)
                continue

            campus_id = None
            if row.primary_campus:
                campus_id = campus_ids.get(row.primary_campus.casefold())
                if campus_id is None:
                    unknown_campuses.add(row.primary_campus)

            try:
                result = self._provisioning.create_account(
                    actor=actor,
                    first_name=row.first_name,
                    last_name=row.last_name,
                    email=row.email,
                    role=Role.ENSEIGNANT,
                    campus_id=campus_id,
                    phone=row.phone,
                    is_new_teacher=row.is_new,
                    hire_date=today if row.is_new else None,
                    notes=f"Campus multiples: {', '.join(row.campuses)}" if len(row.campuses) > 1 else None,
                )
            except (ValidationError, ProvisioningError) as e:
                errors.append(f"{row.email}: {e}")
                continue

            if result.already_exists:
                already_existing.append(row.email)
                continue

            processed += 1
            accounts.append(result.to_dict())

        return {
            "processed": processed,
            "errors": errors,
            "unknown_campuses": unknown_campuses,
            "already_existing": already_existing,
            "accounts": accounts,
        }
