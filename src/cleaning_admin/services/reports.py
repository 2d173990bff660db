from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Tuple

from .dates import DateLike, date_range, effective_date
from .payments import is_paid_to
from .rates import hours_between, lookup, resolve_pay, round_money


@dataclass(slots=True)
class WorkerReportRow:
    worker_id: int
    worker_name: str
    total_hours: Decimal = Decimal("0")
    total_pay: Decimal = Decimal("0.00")
    pending_pay: Decimal = Decimal("0.00")
    services_count: int = 0


def build_worker_report(services: Iterable, workers, units, dates: Tuple[DateLike, DateLike]) -> dict[int, WorkerReportRow]:
    """Horas, pago y cantidad de servicios por trabajador en un rango de fechas.

    Las horas se miden entre la hora de inicio y fin del servicio; el pago
    usa la misma resolución de tarifas que los pagos. El resultado se indexa
    por id de trabajador y sigue el orden alfabético de los nombres.
    """
    start, end = date_range(dates)
    rows: dict[int, WorkerReportRow] = {}
    for service in services:
        if not (start <= effective_date(service) <= end):
            continue
        hours = max(hours_between(service.start_time, service.end_time), Decimal("0"))
        for worker_id in service.worker_ids or []:
            worker = lookup(workers, worker_id)
            if worker is None:
                continue
            row = rows.setdefault(worker_id, WorkerReportRow(worker_id=worker_id, worker_name=worker.name))
            pay = resolve_pay(service, worker_id, workers, units)
            row.total_hours += hours
            row.total_pay += pay
            if not is_paid_to(service, worker_id):
                row.pending_pay += pay
            row.services_count += 1

    report: dict[int, WorkerReportRow] = {}
    for row in sorted(rows.values(), key=lambda r: r.worker_name.lower()):
        row.total_hours = row.total_hours.quantize(Decimal("0.01"))
        row.total_pay = round_money(row.total_pay)
        row.pending_pay = round_money(row.pending_pay)
        report[row.worker_id] = row
    return report
