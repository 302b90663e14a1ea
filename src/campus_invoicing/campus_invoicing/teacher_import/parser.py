from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from ..common.csv_utils import read_csv_rows
from ..core.exceptions import ValidationError

TEACHER_CSV_HEADER = ("Nouveau prof ?", "Prénom", "NOM", "MAIL", "TEL", "CAMPUS")


def _build_campus_aliases() -> dict[str, str]:
    aliases = {
        "SAINT SEB": "Saint-Sébastien",
        "SAINT-SEB": "Saint-Sébastien",
        "SAINT SEBASTIEN": "Saint-Sébastien",
        "JAURES": "Jaurès",
        "JAURÈS": "Jaurès",
        "JAURES PARIS": "Jaurès",
        "PARIS JAURES": "Jaurès",
        "NICE": "Nice",
    }
    for name in ("Roquette", "Picpus", "Sentier", "Douai", "Parmentier", "Boulogne"):
        key = name.upper()
        aliases[key] = name
        aliases[f"{key} PARIS"] = name
        aliases[f"PARIS {key}"] = name
    return aliases


# Upper-cased spelling found in spreadsheets -> canonical campus name.
CAMPUS_ALIASES = _build_campus_aliases()


def normalize_campus_name(name: str) -> str:
    """Canonical campus name for a spreadsheet spelling; unknown names pass through."""

    cleaned = re.sub(r"\s+", " ", (name or "").strip())
    return CAMPUS_ALIASES.get(cleaned.upper(), cleaned)


@dataclass(frozen=True)
class TeacherRow:
    row_number: int
    is_new: bool
    first_name: str
    last_name: str
    email: str
    phone: Optional[str]
    campuses: tuple[str, ...]

    @property
    def primary_campus(self) -> Optional[str]:
        return self.campuses[0] if self.campuses else None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class TeacherCsv:
    rows: tuple[TeacherRow, ...]
    warnings: tuple[str, ...] = ()


def parse_teacher_csv(text: str) -> TeacherCsv:
    rows_in = read_csv_rows(text)
    if not rows_in:
        raise ValidationError("Le fichier CSV est vide")

    header = rows_in[0]
    for i, name in enumerate(TEACHER_CSV_HEADER):
        found = header[i] if i < len(header) else ""
        if found != name:
            raise ValidationError(
                f'En-tête incorrect. Colonne {i + 1} attendue: "{name}", trouvée: "{found or "manquante"}"'
            )

    rows: list[TeacherRow] = []
    warnings: list[str] = []
    for index, cells in enumerate(rows_in[1:], start=2):
        if len(cells) < len(TEACHER_CSV_HEADER):
            warnings.append(f"Ligne {index} ignorée : nombre de colonnes insuffisant")
            continue

        campuses = tuple(normalize_campus_name(part) for part in cells[5].split(",") if part.strip())
        rows.append(
            TeacherRow(
                row_number=index,
                is_new=cells[0].strip().lower() == "oui",
                first_name=cells[1],
                last_name=cells[2],
                email=cells[3].strip().lower(),
                phone=cells[4] or None,
                campuses=campuses,
            )
        )

    return TeacherCsv(rows=tuple(rows), warnings=tuple(warnings))
