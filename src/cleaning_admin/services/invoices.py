from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable

from ..errors import ValidationError
from ..models import INVOICEABLE_TYPE, InvoiceStatus
from .dates import DateLike, parse_date
from .rates import lookup, round_money, to_decimal

DEFAULT_DUE_DAYS = 30

# Transiciones permitidas del estado guardado. "overdue" nunca se guarda:
# se deriva al mostrar la factura (ver effective_status).
TRANSITIONS: dict[str, frozenset[str]] = {
    InvoiceStatus.DRAFT.value: frozenset({InvoiceStatus.SENT.value}),
    InvoiceStatus.SENT.value: frozenset({InvoiceStatus.PAID.value}),
    InvoiceStatus.OVERDUE.value: frozenset({InvoiceStatus.PAID.value}),
    InvoiceStatus.PAID.value: frozenset(),
}


def invoiced_service_ids(existing_invoices: Iterable, exclude_invoice_id: int | None = None) -> set[int]:
    ids: set[int] = set()
    for invoice in existing_invoices:
        if exclude_invoice_id is not None and invoice.id == exclude_invoice_id:
            continue
        ids.update(invoice.service_ids)
    return ids


def build_invoice_candidates(
    services: Iterable,
    existing_invoices: Iterable,
    exclude_invoice_id: int | None = None,
    *,
    client_id: int | None = None,
    units=None,
) -> list:
    """Servicios Touch Up que no están en otra factura.

    La factura en edición (``exclude_invoice_id``) no bloquea sus propios
    servicios. Con ``client_id`` y ``units`` se limita a las unidades del cliente.
    """
    taken = invoiced_service_ids(existing_invoices, exclude_invoice_id)
    result = []
    for service in services:
        if service.service_type != INVOICEABLE_TYPE or service.id in taken:
            continue
        if client_id is not None:
            unit = lookup(units, service.unit_id)
            if unit is None or unit.client_id != client_id:
                continue
        result.append(service)
    return result


def compute_invoice_total(candidates: Iterable) -> Decimal:
    """Suma del ``total_cost`` guardado en cada servicio."""
    return round_money(sum((to_decimal(s.total_cost) for s in candidates), Decimal("0")))


def validate_invoice_selection(client_id: int | None, service_ids: Iterable[int], invoice_number: str | None) -> None:
    if not client_id:
        raise ValidationError("Por favor, seleccione un cliente.")
    if not list(service_ids):
        raise ValidationError("Por favor, seleccione al menos un servicio.")
    if not (invoice_number or "").strip():
        raise ValidationError("Por favor, ingrese el número de factura.")


def default_due_date(issue_date: DateLike, days: int = DEFAULT_DUE_DAYS) -> date:
    return parse_date(issue_date) + timedelta(days=days)


def effective_status(invoice, today: date | None = None) -> str:
    """Estado a mostrar: una factura enviada y vencida se ve como ``overdue``."""
    today = today or date.today()
    if invoice.status == InvoiceStatus.SENT.value and parse_date(invoice.due_date) < today:
        return InvoiceStatus.OVERDUE.value
    return invoice.status


def transition_status(invoice, target: str) -> None:
    target = InvoiceStatus(target).value
    current = invoice.status or InvoiceStatus.DRAFT.value
    if target not in TRANSITIONS.get(current, frozenset()):
        raise ValidationError(f"No se puede pasar la factura {invoice.invoice_number} de '{current}' a '{target}'.")
    invoice.status = target
