from __future__ import annotations

from decimal import Decimal

import pytest

from src.cleaning_admin.errors import ValidationError
from src.cleaning_admin.models import Service, Unit, Worker
from src.cleaning_admin.services.rates import (
    hours_between,
    legacy_unit_rates,
    resolve_pay,
    workers_without_rate,
)


def make_unit(uid: int = 1, price: str = "100") -> Unit:
    return Unit(id=uid, name=f"Unidad {uid}", price=Decimal(price))


def make_worker(wid: int = 1, hourly: str = "0", unit_rates=None, cross_rates=None, name: str = "Ana") -> Worker:
    return Worker(id=wid, name=name, hourly_rate=Decimal(hourly), unit_rates=unit_rates or {}, cross_rates=cross_rates)


def make_service(**kw) -> Service:
    data = dict(
        id=1,
        unit_id=1,
        worker_ids=[1],
        service_type="Departure Clean",
        pay_by_hour=False,
        start_time="09:00",
        end_time="17:00",
        extras=[],
    )
    data.update(kw)
    return Service(**data)


def resolve(service, worker, unit=None):
    unit = unit or make_unit()
    return resolve_pay(service, worker.id, {worker.id: worker}, {unit.id: unit})


def test_hourly_pay_four_hours():
    worker = make_worker(hourly="20")
    service = make_service(pay_by_hour=True, start_time="09:00", end_time="13:00")
    assert resolve(service, worker) == Decimal("80.00")


def test_hourly_pay_supports_fractional_hours_and_extras():
    worker = make_worker(hourly="20")
    service = make_service(
        pay_by_hour=True,
        start_time="09:00",
        end_time="10:30",
        extras=[{"name": "Horno", "price": 40, "worker_pay": 12.5}],
    )
    assert resolve(service, worker) == Decimal("42.50")


@pytest.mark.parametrize("service_type", ["Touch Up", "Landscaping", "Terceros"])
def test_extras_only_types_ignore_all_rates(service_type: str):
    worker = make_worker(
        hourly="50",
        unit_rates={"1": 60},
        cross_rates={"1": {service_type: 99}},
    )
    service = make_service(service_type=service_type, pay_by_hour=True, extras=[{"worker_pay": 15}])
    assert resolve(service, worker) == Decimal("15.00")


def test_touch_up_without_extras_pays_zero():
    worker = make_worker(hourly="50", unit_rates={"1": 60})
    service = make_service(service_type="Touch Up")
    assert resolve(service, worker) == Decimal("0.00")


def test_cross_rate_takes_precedence_over_unit_rate():
    worker = make_worker(unit_rates={"1": 10}, cross_rates={"1": {"Departure Clean": 25}})
    assert resolve(make_service(), worker) == Decimal("25.00")
    with_extra = make_service(extras=[{"worker_pay": 5}])
    assert resolve(with_extra, worker) == Decimal("30.00")


def test_zero_cross_rate_falls_back_to_unit_rate():
    worker = make_worker(unit_rates={"1": 10}, cross_rates={"1": {"Departure Clean": 0}})
    assert resolve(make_service(), worker) == Decimal("10.00")


def test_cross_rate_for_other_type_is_not_used():
    worker = make_worker(unit_rates={"1": 10}, cross_rates={"1": {"Prearrival Service": 40}})
    assert resolve(make_service(), worker) == Decimal("10.00")


def test_hourly_flag_wins_over_fixed_rates():
    worker = make_worker(hourly="15", unit_rates={"1": 100}, cross_rates={"1": {"Departure Clean": 200}})
    service = make_service(pay_by_hour=True, start_time="08:00", end_time="10:00")
    assert resolve(service, worker) == Decimal("30.00")


def test_no_rate_resolves_to_zero():
    assert resolve(make_service(), make_worker()) == Decimal("0.00")


def test_unknown_worker_or_unit_resolves_to_zero():
    worker = make_worker(unit_rates={"1": 60})
    unit = make_unit()
    service = make_service()
    assert resolve_pay(service, 99, {worker.id: worker}, {unit.id: unit}) == Decimal("0.00")
    orphan = make_service(unit_id=42)
    assert resolve_pay(orphan, worker.id, {worker.id: worker}, {unit.id: unit}) == Decimal("0.00")


def test_directories_can_be_lists():
    worker = make_worker(unit_rates={"1": 60})
    assert resolve_pay(make_service(), 1, [worker], [make_unit()]) == Decimal("60.00")


def test_hours_between():
    assert hours_between("09:00", "13:30") == Decimal("4.5")
    assert hours_between("13:00", "09:00") == Decimal("-4")


@pytest.mark.parametrize("bad", ["9am", "25:00", "", "12:75"])
def test_hours_between_rejects_bad_times(bad: str):
    with pytest.raises(ValidationError):
        hours_between(bad, "10:00")


def test_legacy_unit_rates_average_positive_cross_rates():
    cross = {
        "1": {"Departure Clean": 60, "Prearrival Service": 40, "Touch Up": 0},
        "2": {"Departure Clean": 0},
    }
    assert legacy_unit_rates(cross) == {"1": 50.0, "2": 0.0}


def test_workers_without_rate_lists_names():
    ana = make_worker(1, hourly="20", name="Ana")
    luis = make_worker(2, cross_rates={"1": {"Departure Clean": 70}}, name="Luis")
    nora = make_worker(3, name="Nora")
    workers = {w.id: w for w in (ana, luis, nora)}

    assert workers_without_rate([1, 2, 3], 1, "Departure Clean", workers) == ["Nora"]
    # Luis sólo tiene tarifa cruzada para Departure Clean
    assert workers_without_rate([2, 3], 1, "Prearrival Service", workers) == ["Luis", "Nora"]
    assert workers_without_rate([3, 7], 1, "Departure Clean", workers) == ["Nora", "Trabajador 7"]


def test_workers_without_rate_ignores_extras_only_types():
    nora = make_worker(3, name="Nora")
    assert workers_without_rate([3], 1, "Touch Up", {3: nora}) == []
