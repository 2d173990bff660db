from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping, Tuple

from ..errors import ValidationError
from .dates import DateLike, date_range, effective_date
from .rates import lookup, resolve_pay, round_money

MISSING_UNIT_LABEL = "Unidad eliminada"


@dataclass(frozen=True, slots=True)
class PaymentDraft:
    """Pago validado, listo para persistir."""

    worker_id: int
    lines: tuple[tuple[int, Decimal], ...]
    total_amount: Decimal

    @property
    def service_ids(self) -> list[int]:
        return [sid for sid, _ in self.lines]


def build_payment_candidates(
    worker_id: int,
    dates: Tuple[DateLike, DateLike],
    services: Iterable,
    existing_payments: Iterable,
    is_editing: bool = False,
    editing_payment_id: int | None = None,
) -> list:
    """Servicios que se le pueden pagar a ``worker_id`` en el rango (inclusivo).

    Sin edición se excluyen los servicios ya cubiertos por otro pago del mismo
    trabajador. Al editar un pago conocido (``editing_payment_id``) sólo se
    reabren los servicios de ese pago; ``is_editing`` sin id no excluye nada.
    """
    start, end = date_range(dates)
    candidates = [
        s for s in services
        if worker_id in (s.worker_ids or []) and start <= effective_date(s) <= end
    ]
    if editing_payment_id is None and is_editing:
        return sorted(candidates, key=effective_date)

    already_paid: set[int] = set()
    for payment in existing_payments:
        if payment.worker_id != worker_id:
            continue
        if editing_payment_id is not None and payment.id == editing_payment_id:
            continue
        already_paid.update(payment.service_ids)
    return sorted((s for s in candidates if s.id not in already_paid), key=effective_date)


def payment_lines(candidates: Iterable, worker_id: int, workers, units) -> list[tuple[object, Decimal]]:
    return [(s, resolve_pay(s, worker_id, workers, units)) for s in candidates]


def compute_payment_total(candidates: Iterable, worker_id: int, workers, units) -> Decimal:
    total = sum((amount for _, amount in payment_lines(candidates, worker_id, workers, units)), Decimal("0"))
    return round_money(total)


def zero_pay_units(lines: Iterable[tuple[object, Decimal]], units) -> list[str]:
    """Nombres de las unidades cuyos servicios resolvieron a 0."""
    names: list[str] = []
    for service, amount in lines:
        if amount != 0:
            continue
        unit = lookup(units, service.unit_id)
        name = unit.name if unit is not None else MISSING_UNIT_LABEL
        if name not in names:
            names.append(name)
    return names


def prepare_payment(
    *,
    worker_id: int | None,
    dates: Tuple[DateLike, DateLike],
    selected: Iterable,
    workers,
    units,
    operation_number: str | None,
) -> PaymentDraft:
    """Valida la selección y congela los montos por servicio.

    Se rechaza: sin trabajador, sin servicios, rango invertido, algún servicio
    con pago 0 (tarifa mal configurada), sin número de operación o total 0.
    """
    if not worker_id:
        raise ValidationError("Debe seleccionar un trabajador.")
    selected = list(selected)
    if not selected:
        raise ValidationError("Debe seleccionar al menos un servicio.")
    date_range(dates)
    lines = payment_lines(selected, worker_id, workers, units)
    zero_units = zero_pay_units(lines, units)
    if zero_units:
        raise ValidationError(
            "No se puede registrar el pago: hay servicios con monto 0. "
            f"Revise las tarifas de: {', '.join(zero_units)}",
            details=zero_units,
        )
    if not (operation_number or "").strip():
        raise ValidationError("Debe indicar el número de operación.")
    total = round_money(sum((amount for _, amount in lines), Decimal("0")))
    if total <= 0:
        raise ValidationError("El total del pago debe ser mayor a 0.")
    return PaymentDraft(
        worker_id=worker_id,
        lines=tuple((s.id, amount) for s, amount in lines),
        total_amount=total,
    )


def apply_payment_to_services(services: Iterable, worker_id: int, amounts: Mapping[int, Decimal]) -> None:
    """Registra en cada servicio el pago del trabajador, reemplazando uno anterior."""
    for service in services:
        if service.id not in amounts:
            continue
        records = [p for p in (service.payments or []) if p.get("worker_id") != worker_id]
        records.append({
            "service_id": service.id,
            "worker_id": worker_id,
            "amount": float(amounts[service.id]),
            "is_paid": True,
        })
        # Reasignar para que SQLAlchemy detecte el cambio en la columna JSON
        service.payments = records


def remove_payment_from_services(services: Iterable, worker_id: int) -> None:
    for service in services:
        records = service.payments or []
        kept = [p for p in records if p.get("worker_id") != worker_id]
        if len(kept) != len(records):
            service.payments = kept


def is_paid_to(service, worker_id: int) -> bool:
    return any(p.get("worker_id") == worker_id and p.get("is_paid") for p in (service.payments or []))
