from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Optional

from ..core.exceptions import ValidationError

_IBAN_RE = re.compile(r"^[A-Z]{2}[0-9]{2}[A-Z0-9]{10,30}$")
_BIC_RE = re.compile(r"^[A-Z]{6}[A-Z0-9]{2}([A-Z0-9]{3})?$")


def require_non_empty(value: str, field_name: str) -> str:
    if not value or not value.strip():
        raise ValidationError(f"{field_name} invalide")
    return value.strip()


def require_min_length(value: str, field_name: str, min_len: int) -> str:
    if value is None or len(value) < min_len:
        raise ValidationError(f"{field_name} : {min_len} caractères minimum")
    return value


def require_email(value: str, field_name: str = "Email") -> str:
    email = require_non_empty(value, field_name)
    if "@" not in email:
        raise ValidationError(f"{field_name} invalide : {email}")
    return email.lower()


def optional_str(value: Optional[str]) -> Optional[str]:
    return (value or "").strip() or None


def parse_amount(value, field_name: str = "Montant") -> Decimal:
    try:
        amount = Decimal(str(value).replace(",", ".").strip())
    except (InvalidOperation, AttributeError):
        raise ValidationError(f"{field_name} invalide")
    if not amount.is_finite():
        raise ValidationError(f"{field_name} invalide")
    return amount.quantize(Decimal("0.01"))


def normalize_iban(value: str) -> str:
    iban = re.sub(r"\s+", "", value or "").upper()
    if not _IBAN_RE.match(iban):
        raise ValidationError("IBAN invalide")
    return iban


def normalize_bic(value: str) -> str:
    bic = re.sub(r"\s+", "", value or "").upper()
    if not _BIC_RE.match(bic):
        raise ValidationError("BIC invalide")
    return bic


def require_month_year(month: int, year: int) -> tuple[int, int]:
    try:
        month = int(month)
        year = int(year)
    except (TypeError, ValueError):
        raise ValidationError("Période invalide")
    if not 1 <= month <= 12:
        raise ValidationError("Mois invalide")
    if not 2000 <= year <= 2100:
        raise ValidationError("Année invalide")
    return month, year
