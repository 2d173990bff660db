from __future__ import annotations

import logging
import re
from typing import Iterable

from ..errors import ValidationError
from ..models import ServiceType

logger = logging.getLogger(__name__)

WORK_ORDER_PREFIXES: dict[str, str] = {
    ServiceType.TOUCH_UP.value: "T",
    ServiceType.LANDSCAPING.value: "L",
    ServiceType.TERCEROS.value: "C",
}

COUNTER_FIELDS: dict[str, str] = {
    ServiceType.TOUCH_UP.value: "last_touch_up_number",
    ServiceType.LANDSCAPING.value: "last_landscaping_number",
    ServiceType.TERCEROS.value: "last_terceros_number",
}

INVOICE_PREFIX = "INV-"

_LEADING_DIGITS = re.compile(r"^\d+")


def sequence_number(code: str | None, prefix: str = "") -> int | None:
    """Sufijo numérico de un código: ``T0007`` -> 7, ``INV-0012`` -> 12.

    El prefijo no distingue mayúsculas, igual que la validación de unicidad.
    """
    if not code:
        return None
    code = code.strip().upper()
    if not code.startswith(prefix.upper()):
        return None
    m = _LEADING_DIGITS.match(code[len(prefix):])
    return int(m.group(0)) if m else None


def work_order_prefix(service_type: str) -> str | None:
    return WORK_ORDER_PREFIXES.get(str(service_type))


def _counter_value(config, field: str) -> int:
    if config is None:
        return 0
    return int(getattr(config, field, 0) or 0)


def next_work_order(service_type: str, existing_services: Iterable, config=None) -> str | None:
    """Siguiente orden de trabajo para el tipo de servicio.

    Toma el máximo entre los servicios visibles y el contador guardado, así un
    contador atrasado no produce colisiones. Departure Clean y Prearrival
    Service no llevan orden de trabajo.
    """
    prefix = work_order_prefix(service_type)
    if prefix is None:
        return None
    max_num = 0
    for service in existing_services:
        n = sequence_number(service.work_order, prefix)
        if n is not None and n > max_num:
            max_num = n
    max_num = max(max_num, _counter_value(config, COUNTER_FIELDS[str(service_type)]))
    return f"{prefix}{max_num + 1:04d}"


def next_invoice_number(config, existing_invoices: Iterable = ()) -> str:
    """``INV-`` + (contador + 1) con 4 dígitos, revisando también las facturas visibles."""
    max_num = _counter_value(config, "last_invoice_number")
    for invoice in existing_invoices:
        n = sequence_number(invoice.invoice_number, INVOICE_PREFIX)
        if n is not None and n > max_num:
            max_num = n
    return f"{INVOICE_PREFIX}{max_num + 1:04d}"


def _norm(code: str | None) -> str:
    return (code or "").strip().lower()


def check_work_order_unique(work_order: str | None, work_order_pet: str | None, services: Iterable, exclude_id: int | None = None) -> None:
    """Rechaza órdenes de trabajo repetidas (sin distinguir mayúsculas).

    Ambas se comparan contra ``work_order`` y ``work_order_pet`` del resto de
    servicios.
    """
    taken: set[str] = set()
    for service in services:
        if exclude_id is not None and service.id == exclude_id:
            continue
        for code in (service.work_order, service.work_order_pet):
            if _norm(code):
                taken.add(_norm(code))

    wo, pet = _norm(work_order), _norm(work_order_pet)
    if wo and wo in taken:
        raise ValidationError(f"La orden de trabajo {work_order.strip()} ya existe en otro servicio.")
    if pet:
        if pet in taken:
            raise ValidationError(f"La orden de trabajo de mascota {work_order_pet.strip()} ya existe en otro servicio.")
        if pet == wo:
            raise ValidationError("La orden de trabajo de mascota no puede ser igual a la orden de trabajo.")


def check_invoice_number_unique(invoice_number: str, invoices: Iterable, exclude_id: int | None = None) -> None:
    target = _norm(invoice_number)
    for invoice in invoices:
        if exclude_id is not None and invoice.id == exclude_id:
            continue
        if _norm(invoice.invoice_number) == target:
            raise ValidationError(f"El número de factura {invoice_number} ya existe.")


def advance_work_order_counter(config, service_type: str, work_order: str | None) -> bool:
    """Sube el contador del tipo si la orden emitida lo supera. Nunca lo baja."""
    prefix = work_order_prefix(service_type)
    if prefix is None or config is None:
        return False
    n = sequence_number(work_order, prefix)
    field = COUNTER_FIELDS[str(service_type)]
    if n is None or n <= _counter_value(config, field):
        return False
    setattr(config, field, n)
    logger.info(f"Contador {field} actualizado a {n}")
    return True


def advance_invoice_counter(config, invoice_number: str) -> bool:
    n = sequence_number(invoice_number, INVOICE_PREFIX)
    if config is None or n is None or n <= _counter_value(config, "last_invoice_number"):
        return False
    config.last_invoice_number = n
    logger.info(f"Contador de facturas actualizado a {n}")
    return True
