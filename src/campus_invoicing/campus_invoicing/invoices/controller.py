from __future__ import annotations

from datetime import datetime

from flask import Flask, request

from ..common.datetime_utils import parse_iso_date
from ..common.validators import parse_amount
from ..common.web import (
    current_actor,
    handle_errors,
    json_body,
    json_ok,
    login_required,
    optional_int,
    parse_enum,
    read_uploaded_csv,
    roles_required,
)
from ..core.enums import InvoiceStatus, PaymentMethod, Role
from ..core.exceptions import ValidationError
from ..container import Container
from .csv_import import parse_invoice_csv
from .model import NewInvoiceLine


def _parse_time(value: str):
    try:
        return datetime.strptime((value or "").strip(), "%H:%M").time()
    except ValueError as e:
        raise ValidationError(f"Heure invalide: {value}") from e


def _line_from_json(data: dict) -> NewInvoiceLine:
    try:
        day = parse_iso_date(data.get("date") or "")
    except ValueError as e:
        raise ValidationError(f"Date invalide: {data.get('date')}") from e
    campus_id = optional_int(data.get("campus_id"))
    filiere_id = optional_int(data.get("filiere_id"))
    if campus_id is None or filiere_id is None:
        raise ValidationError("Campus et filière sont obligatoires pour chaque ligne")
    return NewInvoiceLine(
        date=day,
        start_time=_parse_time(data.get("start_time", "")),
        end_time=_parse_time(data.get("end_time", "")),
        hours_qty=parse_amount(data.get("hours_qty"), "Quantité d'heures"),
        unit_price=parse_amount(data.get("unit_price"), "Prix unitaire"),
        course_title=(data.get("course_title") or "").strip(),
        campus_id=campus_id,
        filiere_id=filiere_id,
        class_id=optional_int(data.get("class_id")),
        is_late=bool(data.get("is_late", False)),
        observations=data.get("observations"),
    )


def _optional_datetime(value):
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(f"Date de paiement invalide: {value}") from e


def register(app: Flask, container: Container) -> None:
    @app.route("/api/invoices", methods=["GET"], endpoint="list_invoices")
    @login_required
    @handle_errors
    def list_invoices():
        status = request.args.get("status")
        invoices = container.invoice_service.list_invoices(
            actor=current_actor(),
            status=parse_enum(InvoiceStatus, status, "Statut") if status else None,
            month=optional_int(request.args.get("month")),
            year=optional_int(request.args.get("year")),
            campus_id=optional_int(request.args.get("campus_id")),
        )
        return json_ok(invoices=invoices)

    @app.route("/api/invoices/<int:invoice_id>", methods=["GET"], endpoint="invoice_details")
    @login_required
    @handle_errors
    def invoice_details(invoice_id: int):
        return json_ok(**container.invoice_service.get_invoice_details(actor=current_actor(), invoice_id=invoice_id))

    @app.route("/api/invoices", methods=["POST"], endpoint="create_invoice")
    @roles_required(Role.ENSEIGNANT)
    @handle_errors
    def create_invoice():
        data = json_body()
        campus_id = optional_int(data.get("campus_id"))
        if campus_id is None:
            raise ValidationError("Campus obligatoire")
        invoice = container.invoice_service.create_manual_invoice(
            actor=current_actor(),
            campus_id=campus_id,
            month=optional_int(data.get("month")),
            year=optional_int(data.get("year")),
            lines=[_line_from_json(line) for line in data.get("lines") or []],
            notes=data.get("notes"),
        )
        return json_ok(invoice=invoice), 201

    @app.route("/api/invoices/import", methods=["POST"], endpoint="import_invoice")
    @roles_required(Role.ENSEIGNANT)
    @handle_errors
    def import_invoice():
        filename, text = read_uploaded_csv()
        lines, warnings = parse_invoice_csv(text)
        result = container.invoice_service.import_invoice(
            actor=current_actor(),
            lines=lines,
            filename=filename,
            month=optional_int(request.form.get("month")),
            year=optional_int(request.form.get("year")),
            drive_url=request.form.get("drive_url"),
        )
        return json_ok(**result, warnings=warnings)

    @app.route("/api/invoices/<int:invoice_id>/prevalidate", methods=["POST"], endpoint="prevalidate_invoice")
    @roles_required(Role.DIRECTEUR_CAMPUS)
    @handle_errors
    def prevalidate_invoice(invoice_id: int):
        result = container.invoice_workflow.prevalidate(
            invoice_id, actor=current_actor(), comment=json_body().get("comment")
        )
        return json_ok(**result.to_dict())

    @app.route("/api/invoices/<int:invoice_id>/validate", methods=["POST"], endpoint="validate_invoice")
    @roles_required(Role.COMPTABLE)
    @handle_errors
    def validate_invoice(invoice_id: int):
        result = container.invoice_workflow.validate(invoice_id, actor=current_actor(), comment=json_body().get("comment"))
        return json_ok(**result.to_dict())

    @app.route("/api/invoices/<int:invoice_id>/reject", methods=["POST"], endpoint="reject_invoice")
    @roles_required(Role.DIRECTEUR_CAMPUS, Role.COMPTABLE)
    @handle_errors
    def reject_invoice(invoice_id: int):
        result = container.invoice_workflow.reject(invoice_id, actor=current_actor(), reason=json_body().get("reason"))
        return json_ok(**result.to_dict())

    @app.route("/api/invoices/<int:invoice_id>/pay", methods=["POST"], endpoint="pay_invoice")
    @roles_required(Role.COMPTABLE)
    @handle_errors
    def pay_invoice(invoice_id: int):
        data = json_body()
        result = container.invoice_workflow.mark_paid(
            invoice_id,
            actor=current_actor(),
            method=parse_enum(PaymentMethod, data.get("method", PaymentMethod.VIREMENT.value), "Mode de paiement"),
            reference=data.get("reference"),
            paid_at=_optional_datetime(data.get("paid_at")),
        )
        return json_ok(**result.to_dict())

    @app.route("/api/invoices/<int:invoice_id>/payments", methods=["POST"], endpoint="record_payment")
    @roles_required(Role.COMPTABLE)
    @handle_errors
    def record_payment(invoice_id: int):
        data = json_body()
        result = container.invoice_workflow.record_payment(
            invoice_id,
            actor=current_actor(),
            amount=data.get("amount"),
            method=parse_enum(PaymentMethod, data.get("method", PaymentMethod.VIREMENT.value), "Mode de paiement"),
            reference=data.get("reference"),
            paid_at=_optional_datetime(data.get("paid_at")),
        )
        transition = result.pop("transition")
        return json_ok(**result, transition=transition.to_dict() if transition else None)

    @app.route("/api/invoices/<int:invoice_id>", methods=["DELETE"], endpoint="delete_invoice")
    @roles_required(Role.SUPER_ADMIN)
    @handle_errors
    def delete_invoice(invoice_id: int):
        container.invoice_service.delete_invoice(actor=current_actor(), invoice_id=invoice_id)
        return json_ok(invoice_id=invoice_id)
