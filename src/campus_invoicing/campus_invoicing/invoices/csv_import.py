from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Optional, Sequence

from ..common.csv_utils import read_csv_rows
from ..core.exceptions import ValidationError

INVOICE_CSV_HEADER = (
    "MOIS",
    "DATE",
    "HEURE DÉBUT",
    "HEURE FIN",
    "CAMPUS",
    "FILIÈRE",
    "CLASSE",
    "INTITULÉ DU COURS",
    "RETARD ?",
    "QUANTITÉ",
    "PRIX UNITAIRE TTC",
    "TOTAL TTC",
)

FRENCH_MONTHS = {
    "janvier": 1,
    "février": 2,
    "fevrier": 2,
    "mars": 3,
    "avril": 4,
    "mai": 5,
    "juin": 6,
    "juillet": 7,
    "août": 8,
    "aout": 8,
    "septembre": 9,
    "octobre": 10,
    "novembre": 11,
    "décembre": 12,
    "decembre": 12,
}

# Filière spellings found in teachers' spreadsheets -> code in the filiere table.
FILIERE_ALIASES = {
    "SLAM": "SIO",
    "SISR": "SIO",
    "CIEL": "SIO",
    "MANAGEMENT OPERATIONNEL SECURITE": "MOS",
    "MANAGEMENT COMMERCIAL OPERATIONNEL": "MCO",
}


@dataclass(frozen=True)
class ParsedInvoiceLine:
    """One CSV row with campus/filière still as free text."""

    row_number: int
    month_label: str
    date: Optional[date]
    start_time: Optional[time]
    end_time: Optional[time]
    campus: str
    filiere: str
    class_label: str
    course_title: str
    is_late: bool
    hours_qty: Decimal
    unit_price: Decimal
    total_price: Decimal

    @property
    def is_complete(self) -> bool:
        return bool(
            self.date and self.start_time and self.end_time and self.campus and self.filiere and self.course_title
        )


def strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_campus_key(name: str) -> str:
    """Upper-case, accent-free key used to match campus names.

    ``"Saint-Sébastien"``, ``"SAINT SEBASTIEN"`` and ``"St-Sébastien"`` share one key.
    """

    key = strip_accents(name or "").upper().strip()
    key = re.sub(r"[\s\-]+", "-", key)
    key = re.sub(r"^ST-", "SAINT-", key)
    return key


def normalize_filiere_code(value: str) -> str:
    return re.sub(r"\s+", " ", strip_accents(value or "").upper().strip())


def parse_french_date(value: str) -> Optional[date]:
    """``"lundi 3 février 2025"`` (weekday optional) or ISO ``2025-02-03``."""

    text = (value or "").strip()
    if not text:
        return None
    try:
        return datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError:
        pass

    parts = text.lower().split()
    if len(parts) == 4:
        parts = parts[1:]
    if len(parts) != 3:
        return None
    month = FRENCH_MONTHS.get(parts[1])
    if month is None or not parts[0].isdigit() or not parts[2].isdigit():
        return None
    try:
        return date(int(parts[2]), month, int(parts[0]))
    except ValueError:
        return None


def parse_time_cell(value: str) -> Optional[time]:
    text = (value or "").strip()
    for fmt in ("%H:%M:%S", "%H:%M"):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    return None


def parse_number_cell(value: str) -> Decimal:
    """``"60,00 €"`` -> Decimal("60.00"); unreadable cells count as zero."""

    text = re.sub(r"[€\s ]", "", value or "").replace(",", ".")
    if not text:
        return Decimal("0")
    try:
        return Decimal(text)
    except InvalidOperation:
        return Decimal("0")


def check_header(header: Sequence[str], expected: Sequence[str]) -> None:
    for i, name in enumerate(expected):
        found = header[i].strip() if i < len(header) else ""
        if found != name:
            raise ValidationError(
                f'En-tête incorrect. Colonne {i + 1} attendue: "{name}", trouvée: "{found or "manquante"}"'
            )


def parse_invoice_csv(text: str) -> tuple[list[ParsedInvoiceLine], list[str]]:
    """Parse an exported invoice sheet. Returns (lines, warnings)."""

    rows = read_csv_rows(text)
    if len(rows) < 2:
        raise ValidationError("Le fichier CSV doit contenir au moins une ligne d'en-tête et une ligne de données")

    check_header(rows[0], INVOICE_CSV_HEADER)

    parsed: list[ParsedInvoiceLine] = []
    warnings: list[str] = []
    for index, cells in enumerate(rows[1:], start=2):
        if cells[0].startswith("#"):
            continue
        if len(cells) < len(INVOICE_CSV_HEADER):
            warnings.append(f"Ligne {index} ignorée : nombre de colonnes insuffisant")
            continue

        parsed.append(
            ParsedInvoiceLine(
                row_number=index,
                month_label=cells[0],
                date=parse_french_date(cells[1]),
                start_time=parse_time_cell(cells[2]),
                end_time=parse_time_cell(cells[3]),
                campus=cells[4],
                filiere=cells[5],
                class_label=cells[6],
                course_title=cells[7],
                is_late=cells[8].strip().lower() not in {"", "aucun", "non"},
                hours_qty=parse_number_cell(cells[9]),
                unit_price=parse_number_cell(cells[10]),
                total_price=parse_number_cell(cells[11]),
            )
        )
    return parsed, warnings
