from __future__ import annotations

import dataclasses
import logging
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from functools import wraps
from typing import Any, Optional

from flask import jsonify, request, session

from ..core.enums import Role
from ..core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConcurrentModificationError,
    DomainError,
    InvalidTransitionError,
    InvoiceLockedError,
    LoginBlockedError,
    NotFoundError,
    ProvisioningError,
    ValidationError,
)
from ..users.model import Actor

logger = logging.getLogger(__name__)

# Most specific first.
_STATUS_BY_ERROR: list[tuple[type, int]] = [
    (LoginBlockedError, 429),
    (AuthenticationError, 401),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (ConcurrentModificationError, 409),
    (InvalidTransitionError, 409),
    (InvoiceLockedError, 409),
    (ProvisioningError, 500),
    (ValidationError, 400),
    (DomainError, 400),
]


def to_jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]
    return value


def json_ok(**payload):
    return jsonify({"success": True, **{k: to_jsonable(v) for k, v in payload.items()}})


def json_error(message: str, status: int):
    return jsonify({"success": False, "error": message}), status


def json_body() -> dict:
    return request.get_json(silent=True) or {}


def current_actor() -> Actor:
    campus_id = session.get("campus_id")
    return Actor(
        user_id=int(session["user_id"]),
        role=Role(session["role"]),
        campus_id=int(campus_id) if campus_id is not None else None,
    )


def optional_int(value) -> Optional[int]:
    if value is None or str(value).strip() == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Valeur numérique invalide: {value}") from e


def parse_enum(enum_type, value, field_name: str):
    try:
        return enum_type(value)
    except ValueError as e:
        raise ValidationError(f"{field_name} invalide: {value}") from e


def login_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if "user_id" not in session:
            return json_error("Veuillez vous connecter pour continuer", 401)
        return view(*args, **kwargs)

    return wrapper


def roles_required(*roles: Role):
    allowed = {r.value for r in roles}

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if "user_id" not in session:
                return json_error("Veuillez vous connecter pour continuer", 401)
            if session.get("role") not in allowed:
                return json_error("Accès refusé", 403)
            return view(*args, **kwargs)

        return wrapper

    return decorator


def handle_errors(view):
    """Map domain exceptions to HTTP status codes; anything else is a 500."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        try:
            return view(*args, **kwargs)
        except DomainError as e:
            for error_type, status in _STATUS_BY_ERROR:
                if isinstance(e, error_type):
                    return json_error(str(e), status)
            return json_error(str(e), 400)
        except Exception:
            logger.exception("Unhandled error on %s %s", request.method, request.path)
            return json_error("Erreur système, veuillez réessayer", 500)

    return wrapper


def read_uploaded_csv(field_name: str = "file") -> tuple[str, str]:
    """(filename, text) of an uploaded CSV; the UTF-8 BOM Excel adds is dropped."""

    upload = request.files.get(field_name)
    if upload is None or not upload.filename:
        raise ValidationError("Aucun fichier CSV fourni")
    if not upload.filename.lower().endswith(".csv"):
        raise ValidationError("Le fichier doit être au format CSV")
    try:
        text = upload.read().decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ValidationError("Le fichier doit être encodé en UTF-8") from e
    return upload.filename, text
