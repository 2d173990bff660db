from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Mapping

from ..errors import ValidationError
from ..models import EXTRAS_ONLY_TYPES

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Convierte montos guardados (Decimal, float de JSON, str) a Decimal."""
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Monto inválido: {value!r}") from e


def round_money(value: Decimal) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def lookup(directory: Mapping[Any, Any] | Iterable[Any] | None, key: Any) -> Any | None:
    """Busca por id en un dict {id: registro} o en una lista de registros con ``.id``."""
    if directory is None or key is None:
        return None
    if isinstance(directory, Mapping):
        found = directory.get(key)
        if found is None:
            found = directory.get(str(key))
        return found
    for item in directory:
        if getattr(item, "id", None) == key:
            return item
    return None


def _rate_for_unit(rates: Mapping | None, unit_id: Any) -> Any:
    # Las claves vienen como str desde JSON
    if not rates:
        return None
    if str(unit_id) in rates:
        return rates[str(unit_id)]
    return rates.get(unit_id)


def parse_time(value: str) -> int:
    """'HH:MM' -> minutos desde medianoche."""
    try:
        hh, mm = str(value).strip().split(":")
        hours, minutes = int(hh), int(mm)
    except (AttributeError, ValueError) as e:
        raise ValidationError(f"Hora inválida: {value!r} (formato HH:MM)") from e
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValidationError(f"Hora inválida: {value!r} (formato HH:MM)")
    return hours * 60 + minutes


def hours_between(start_time: str, end_time: str) -> Decimal:
    """Horas (con fracción) entre dos horas HH:MM. Puede ser negativo."""
    minutes = parse_time(end_time) - parse_time(start_time)
    return Decimal(minutes) / Decimal(60)


def extras_worker_pay(extras: Iterable[Any] | None) -> Decimal:
    total = Decimal("0")
    for extra in extras or []:
        if isinstance(extra, Mapping):
            total += to_decimal(extra.get("worker_pay"))
        else:
            total += to_decimal(getattr(extra, "worker_pay", 0))
    return total


def is_extras_only(service_type: str) -> bool:
    return str(service_type) in EXTRAS_ONLY_TYPES


def base_pay(service, worker, unit) -> Decimal:
    """Pago base del trabajador, sin extras.

    Orden: tipos de sólo extras -> 0; por hora -> tarifa × horas;
    tarifa cruzada (unidad, tipo) > 0; tarifa por unidad; 0.
    """
    if is_extras_only(service.service_type):
        return Decimal("0")
    if service.pay_by_hour:
        return to_decimal(worker.hourly_rate) * hours_between(service.start_time, service.end_time)
    cross = _rate_for_unit(worker.cross_rates, unit.id) or {}
    cross_rate = to_decimal(cross.get(str(service.service_type)))
    if cross_rate > 0:
        return cross_rate
    return to_decimal(_rate_for_unit(worker.unit_rates, unit.id))


def resolve_pay(service, worker_id: int, workers, units) -> Decimal:
    """Monto que se le debe a ``worker_id`` por ``service``.

    Un trabajador o unidad inexistente resuelve a 0; el agregador de pagos
    trata ese 0 como error de configuración.
    """
    worker = lookup(workers, worker_id)
    unit = lookup(units, service.unit_id)
    if worker is None or unit is None:
        return ZERO
    amount = base_pay(service, worker, unit) + extras_worker_pay(service.extras)
    return round_money(amount)


def has_usable_rate(worker, unit_id: int, service_type: str) -> bool:
    if to_decimal(worker.hourly_rate) > 0:
        return True
    if to_decimal(_rate_for_unit(worker.unit_rates, unit_id)) > 0:
        return True
    cross = _rate_for_unit(worker.cross_rates, unit_id) or {}
    return to_decimal(cross.get(str(service_type))) > 0


def workers_without_rate(worker_ids: Iterable[int], unit_id: int, service_type: str, workers) -> list[str]:
    """Nombres de los trabajadores asignados que no tienen tarifa para la unidad."""
    if is_extras_only(service_type):
        return []
    missing: list[str] = []
    for wid in worker_ids:
        worker = lookup(workers, wid)
        if worker is None:
            missing.append(f"Trabajador {wid}")
        elif not has_usable_rate(worker, unit_id, service_type):
            missing.append(worker.name)
    return missing


def legacy_unit_rates(cross_rates: Mapping[str, Mapping[str, Any]] | None) -> dict[str, float]:
    """Promedio de las tarifas cruzadas positivas por unidad (tarifa plana heredada)."""
    result: dict[str, float] = {}
    for unit_id, per_type in (cross_rates or {}).items():
        values = [to_decimal(v) for v in (per_type or {}).values()]
        positives = [v for v in values if v > 0]
        if positives:
            avg = round_money(sum(positives) / len(positives))
        else:
            avg = ZERO
        result[str(unit_id)] = float(avg)
    return result
