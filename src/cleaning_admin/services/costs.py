from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from .rates import is_extras_only, round_money, to_decimal

PETS_FEE = Decimal("50")
DEEP_CLEANING_MULTIPLIER = Decimal("2")


@dataclass(frozen=True, slots=True)
class ServiceCost:
    historical_unit_price: Decimal
    total_cost: Decimal


def compute_cost(
    service_type: str,
    unit_historical_price: Decimal | float | int | None,
    has_pets: bool,
    deep_cleaning: bool,
) -> Decimal:
    """Monto a cobrar al cliente por un servicio.

    - Recargo por mascotas fijo de 50.
    - La limpieza profunda duplica precio + recargo.
    - Touch Up, Landscaping y Terceros no cobran el precio de la unidad.
    Los extras no forman parte de este total.
    """
    pets_fee = PETS_FEE if has_pets else Decimal("0")
    multiplier = DEEP_CLEANING_MULTIPLIER if deep_cleaning else Decimal("1")
    if is_extras_only(service_type):
        return round_money(pets_fee * multiplier)
    return round_money((to_decimal(unit_historical_price) + pets_fee) * multiplier)


def resolve_historical_price(unit, existing_service=None) -> Decimal:
    """Precio de la unidad a congelar en el servicio.

    Un servicio nuevo toma el precio actual de la unidad; uno existente
    conserva el que ya tenía guardado mientras no cambie de unidad.
    """
    if (
        existing_service is not None
        and existing_service.historical_unit_price is not None
        and (unit is None or existing_service.unit_id == unit.id)
    ):
        return round_money(existing_service.historical_unit_price)
    if unit is None:
        return round_money(Decimal("0"))
    return round_money(unit.price)


def price_service(*, service_type: str, unit, has_pets: bool, deep_cleaning: bool, existing_service=None) -> ServiceCost:
    historical = resolve_historical_price(unit, existing_service)
    return ServiceCost(
        historical_unit_price=historical,
        total_cost=compute_cost(service_type, historical, has_pets, deep_cleaning),
    )
