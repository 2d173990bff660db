from __future__ import annotations

from datetime import date, datetime
from typing import Tuple

from ..errors import ValidationError

DateLike = date | datetime | str


def parse_date(value: DateLike | None) -> date | None:
    """Acepta ``date``, ``datetime`` o texto ISO ``YYYY-MM-DD``."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as e:
        raise ValidationError(f"Fecha inválida: {value!r} (formato YYYY-MM-DD)") from e


def date_range(value: Tuple[DateLike, DateLike]) -> tuple[date, date]:
    """Normaliza un rango inclusivo. Falla si falta un extremo o está invertido."""
    start, end = (parse_date(v) for v in value)
    if start is None or end is None:
        raise ValidationError("Debe indicar fecha de inicio y fecha de fin.")
    if start > end:
        raise ValidationError("La fecha de inicio no puede ser posterior a la fecha de fin.")
    return start, end


def effective_date(service) -> date:
    """Fecha de ejecución si existe; si no, la fecha de inicio."""
    return parse_date(service.execution_date) or parse_date(service.start_date)


def format_ddmmyyyy(value: DateLike | None) -> str:
    d = parse_date(value)
    return d.strftime("%d/%m/%Y") if d else ""
