from __future__ import annotations

from datetime import date, time
from decimal import Decimal

import pytest

from src.campus_invoicing.campus_invoicing.common.cache import TTLCache
from src.campus_invoicing.campus_invoicing.core.enums import ImportStatus, InvoiceStatus, Role
from src.campus_invoicing.campus_invoicing.core.exceptions import AuthorizationError, ValidationError
from src.campus_invoicing.campus_invoicing.invoices.csv_import import (
    normalize_campus_key,
    parse_french_date,
    parse_invoice_csv,
    parse_number_cell,
)
from src.campus_invoicing.campus_invoicing.invoices.model import Invoice
from src.campus_invoicing.campus_invoicing.invoices.service import InvoiceService
from src.campus_invoicing.campus_invoicing.notifications.service import NotificationService
from src.campus_invoicing.campus_invoicing.reference.model import Campus, Filiere, SchoolClass
from src.campus_invoicing.campus_invoicing.reference.service import ReferenceDataService
from src.campus_invoicing.campus_invoicing.users.model import Actor, Profile

HEADER = (
    "MOIS,DATE,HEURE DÉBUT,HEURE FIN,CAMPUS,FILIÈRE,CLASSE,INTITULÉ DU COURS,RETARD ?,QUANTITÉ,"
    "PRIX UNITAIRE TTC,TOTAL TTC"
)

TEACHER = Actor(user_id=10, role=Role.ENSEIGNANT)


class FakeReferenceRepo:
    def list_campuses(self):
        return [Campus(1, "Roquette"), Campus(2, "Saint-Sébastien"), Campus(3, "Jaurès")]

    def list_filieres(self):
        return [Filiere(1, "MCO", "Management commercial opérationnel"), Filiere(2, "SIO", "Services informatiques")]

    def list_course_titles(self):
        return []

    def list_classes(self, *, campus_id=None):
        classes = [SchoolClass(7, "SIO1", "SIO 1A", 2026, 2, 2)]
        return [c for c in classes if campus_id is None or c.campus_id == campus_id]


class FakeInvoicesRepo:
    def __init__(self):
        self.invoices: dict[int, Invoice] = {}
        self.lines: dict[int, list] = {}
        self.imports: dict[int, dict] = {}

    def find_for_period(self, *, teacher_id, campus_id, month, year):
        for inv in self.invoices.values():
            if (inv.teacher_id, inv.campus_id, inv.month, inv.year) == (teacher_id, campus_id, month, year):
                return inv
        return None

    def create_invoice(self, *, teacher_id, campus_id, month, year, original_filename=None, drive_pdf_url=None, notes=None):
        invoice_id = len(self.invoices) + 1
        self.invoices[invoice_id] = Invoice(
            invoice_id=invoice_id,
            teacher_id=teacher_id,
            campus_id=campus_id,
            month=month,
            year=year,
            total_ht=Decimal("0.00"),
            total_ttc=Decimal("0.00"),
            status=InvoiceStatus.PENDING,
            original_filename=original_filename,
        )
        return invoice_id

    def add_lines(self, invoice_id, lines):
        self.lines.setdefault(invoice_id, []).extend(lines)
        return len(lines)

    def create_import_record(self, *, teacher_id, filename, drive_url, total_lines):
        import_id = len(self.imports) + 1
        self.imports[import_id] = {"status": ImportStatus.PROCESSING, "total": total_lines}
        return import_id

    def finish_import_record(self, import_id, *, status, processed_lines, error_message):
        self.imports[import_id].update(status=status, processed=processed_lines, error=error_message)


class FakeUsersRepo:
    def get_by_id(self, user_id):
        return Profile(user_id=user_id, email="paul@test.com", first_name="Paul", last_name="Martin", role=Role.ENSEIGNANT, campus_id=None)

    def list_active_ids_by_role(self, role, *, campus_id=None):
        return [20 + int(campus_id or 0)] if role == Role.DIRECTEUR_CAMPUS else []


class FakeNotificationsRepo:
    def __init__(self):
        self.items = []

    def create(self, *, user_id, type, title, message):
        self.items.append((user_id, title))
        return len(self.items)


def _service():
    invoices = FakeInvoicesRepo()
    users = FakeUsersRepo()
    notes = FakeNotificationsRepo()
    reference = ReferenceDataService(FakeReferenceRepo(), cache=TTLCache())
    svc = InvoiceService(invoices, users, reference, NotificationService(notes, users))
    return svc, invoices, notes


def _csv(*rows: str) -> str:
    return "\n".join((HEADER,) + rows) + "\n"


def test_parse_reads_french_dates_and_money_cells():
    lines, warnings = parse_invoice_csv(
        _csv(
            'Mars,lundi 3 mars 2026,09:00,12:00,ST SEBASTIEN,SLAM,SIO 1A,Python,Aucun,3,"60,00 €","180,00 €"',
            "Mars,2026-03-04,14:00,16:00",
        )
    )

    assert len(lines) == 1
    assert warnings == ["Ligne 3 ignorée : nombre de colonnes insuffisant"]
    line = lines[0]
    assert line.date == date(2026, 3, 3)
    assert (line.start_time, line.end_time) == (time(9, 0), time(12, 0))
    assert line.unit_price == Decimal("60.00")
    assert line.is_late is False
    assert line.is_complete


def test_parse_rejects_unexpected_header():
    with pytest.raises(ValidationError):
        parse_invoice_csv("MOIS,JOUR\nMars,3\n")


def test_cell_helpers():
    assert parse_french_date("12 août 2025") == date(2025, 8, 12)
    assert parse_french_date("32 mars 2025") is None
    assert parse_number_cell("n/a") == Decimal("0")
    assert normalize_campus_key("St-Sébastien") == normalize_campus_key("SAINT SEBASTIEN")


def test_import_creates_invoice_on_main_campus_and_reports_unknowns():
    svc, invoices, notes = _service()
    lines, _ = parse_invoice_csv(
        _csv(
            'Mars,2026-03-03,09:00,12:00,St Sébastien,SLAM,SIO 1A,Python,Aucun,3,"60,00","180,00"',
            'Mars,2026-03-05,09:00,11:00,Saint-Sebastien,BIOLOGIE,SIO 1A,Réseaux,Oui,2,"60,00","120,00"',
            'Mars,2026-03-06,09:00,10:00,Atlantis,MCO,,Vente,Aucun,1,"50,00","50,00"',
            "Mars,,09:00,10:00,Roquette,MCO,,Vente,Aucun,1,50,50",
        )
    )

    result = svc.import_invoice(actor=TEACHER, lines=lines, filename="mars.csv", month=3, year=2026)

    assert result["success"] is True
    assert result["created"] is True
    assert result["totalLines"] == 4
    assert result["processedLines"] == 2
    assert result["skippedLines"] == 1
    assert result["totalAmount"] == "300.00"
    assert result["unknownFilieres"] == ["BIOLOGIE"]
    assert result["errors"] == ['Ligne 4: Campus inconnu "Atlantis"']

    invoice = invoices.invoices[result["invoiceId"]]
    assert invoice.campus_id == 2
    saved = invoices.lines[invoice.invoice_id]
    assert [ln.filiere_id for ln in saved] == [2, 1]
    assert saved[0].class_id == 7
    assert saved[1].is_late is True
    assert invoices.imports[1]["status"] == ImportStatus.COMPLETED
    assert notes.items == [(22, "Nouvelle facture à prévalider")]


def test_second_import_for_same_period_reuses_the_invoice():
    svc, invoices, notes = _service()
    row = 'Mars,2026-03-03,09:00,12:00,Roquette,MCO,,Vente,Aucun,3,"40,00","120,00"'
    lines, _ = parse_invoice_csv(_csv(row))

    first = svc.import_invoice(actor=TEACHER, lines=lines, filename="a.csv", month=3, year=2026)
    second = svc.import_invoice(actor=TEACHER, lines=lines, filename="b.csv", month=3, year=2026)

    assert first["invoiceId"] == second["invoiceId"]
    assert second["created"] is False
    assert len(invoices.lines[first["invoiceId"]]) == 2
    assert len(notes.items) == 1


def test_import_with_only_unknown_campuses_fails_and_marks_record():
    svc, invoices, _ = _service()
    lines, _ = parse_invoice_csv(_csv('Mars,2026-03-03,09:00,12:00,Atlantis,MCO,,Vente,Aucun,3,"40,00","120,00"'))

    with pytest.raises(ValidationError):
        svc.import_invoice(actor=TEACHER, lines=lines, filename="x.csv", month=3, year=2026)

    assert invoices.invoices == {}
    assert invoices.imports[1]["status"] == ImportStatus.FAILED


def test_only_teachers_import_invoices():
    svc, _, _ = _service()
    with pytest.raises(AuthorizationError):
        svc.import_invoice(actor=Actor(user_id=1, role=Role.COMPTABLE), lines=[], filename="x.csv")
