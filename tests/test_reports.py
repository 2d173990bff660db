from datetime import date
from decimal import Decimal

import pytest

from src.cleaning_admin.errors import ValidationError
from src.cleaning_admin.models import Service, Unit, Worker
from src.cleaning_admin.services.reports import build_worker_report

WORKERS = {
    1: Worker(id=1, name="luis", hourly_rate=Decimal("0"), unit_rates={"1": 60}, cross_rates=None),
    2: Worker(id=2, name="Ana", hourly_rate=Decimal("20"), unit_rates={}, cross_rates=None),
}
UNITS = {1: Unit(id=1, name="Ocean 12", price=Decimal("100"))}


def svc(sid, day, worker_ids, **kw):
    data = dict(
        id=sid,
        unit_id=1,
        worker_ids=worker_ids,
        start_date=day,
        execution_date=None,
        service_type="Departure Clean",
        pay_by_hour=False,
        start_time="09:00",
        end_time="13:30",
        extras=[],
        payments=[],
    )
    data.update(kw)
    return Service(**data)


def test_worker_report_totals():
    services = [
        svc(1, date(2026, 3, 2), [1, 2], pay_by_hour=True),
        svc(2, date(2026, 3, 3), [1], payments=[{"worker_id": 1, "amount": 60.0, "is_paid": True}]),
        svc(3, date(2026, 4, 1), [1, 2]),
        svc(4, date(2026, 3, 4), [7]),
    ]
    report = build_worker_report(services, WORKERS, UNITS, ("2026-03-01", "2026-03-31"))

    # ordenado por nombre sin distinguir mayúsculas; el trabajador 7 no existe
    assert [r.worker_name for r in report.values()] == ["Ana", "luis"]
    ana, luis = report[2], report[1]
    assert ana.total_hours == Decimal("4.50")
    assert ana.total_pay == Decimal("90.00")
    assert ana.pending_pay == Decimal("90.00")
    assert ana.services_count == 1

    # luis no tiene tarifa por hora: el servicio 1 le paga 0
    assert luis.total_hours == Decimal("9.00")
    assert luis.total_pay == Decimal("60.00")
    assert luis.pending_pay == Decimal("0.00")
    assert luis.services_count == 2


def test_worker_report_ignores_negative_hours():
    services = [svc(1, date(2026, 3, 2), [1], start_time="15:00", end_time="09:00")]
    report = build_worker_report(services, WORKERS, UNITS, ("2026-03-01", "2026-03-31"))
    assert report[1].total_hours == Decimal("0.00")


def test_worker_report_requires_valid_range():
    with pytest.raises(ValidationError):
        build_worker_report([], WORKERS, UNITS, ("2026-03-31", "2026-03-01"))


def test_workers_sharing_a_name_keep_separate_rows():
    workers = {
        1: Worker(id=1, name="Ana", hourly_rate=Decimal("0"), unit_rates={"1": 50}, cross_rates=None),
        2: Worker(id=2, name="Ana", hourly_rate=Decimal("0"), unit_rates={"1": 70}, cross_rates=None),
    }
    services = [svc(1, date(2026, 3, 2), [1, 2])]
    report = build_worker_report(services, workers, UNITS, ("2026-03-01", "2026-03-31"))

    assert len(report) == 2
    assert report[1].total_pay == Decimal("50.00")
    assert report[2].total_pay == Decimal("70.00")
    assert {r.worker_name for r in report.values()} == {"Ana"}
