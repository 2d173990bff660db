from decimal import Decimal

import pytest

from src.cleaning_admin.errors import ValidationError
from src.cleaning_admin.repository import (
    add_worker,
    delete_worker_by_id,
    get_worker_by_id,
    list_workers,
    save_payment,
    save_service,
    set_worker_tariffs,
    update_worker,
)

USER = "user-1"


def test_worker_full_crud(session):
    worker = add_worker(
        session,
        user_id=USER,
        name="  Juan Perez ",
        dni="V-12345678",
        phone="0414-1234567",
        email="juan@example.com",
        hourly_rate=18.5,
        unit_rates={3: 45},
    )
    assert worker.id is not None
    assert worker.name == "Juan Perez"
    assert worker.hourly_rate == Decimal("18.5")
    assert worker.unit_rates == {"3": 45}
    assert worker.cross_rates is None

    ok = update_worker(session, worker.id, name="Juan P.", phone="0412-7654321", hourly_rate="22")
    assert ok is True
    session.expire_all()
    fetched = get_worker_by_id(session, worker.id)
    assert fetched.name == "Juan P."
    assert fetched.phone == "0412-7654321"
    assert fetched.hourly_rate == Decimal("22.00")

    assert update_worker(session, 9999, name="x") is False
    assert [w.name for w in list_workers(session, USER)] == ["Juan P."]
    assert delete_worker_by_id(session, worker.id) is True
    assert list_workers(session, USER) == []


def test_worker_requires_name(session):
    with pytest.raises(ValidationError):
        add_worker(session, user_id=USER, name="  ")


def test_set_tariffs_recomputes_flat_rates(session, seeded):
    ocean, palm = seeded["ocean"], seeded["palm"]
    w = set_worker_tariffs(
        session,
        seeded["nora"].id,
        {
            ocean.id: {"Departure Clean": 80, "Prearrival Service": 40, "Touch Up": 0},
            palm.id: {"Departure Clean": "55.5"},
        },
    )
    assert w.cross_rates == {
        str(ocean.id): {"Departure Clean": 80.0, "Prearrival Service": 40.0, "Touch Up": 0.0},
        str(palm.id): {"Departure Clean": 55.5},
    }
    assert w.unit_rates == {str(ocean.id): 60.0, str(palm.id): 55.5}


def test_set_tariffs_rejects_unknown_service_type(session, seeded):
    with pytest.raises(ValidationError):
        set_worker_tariffs(session, seeded["nora"].id, {seeded["ocean"].id: {"Window Cleaning": 10}})
    with pytest.raises(ValidationError):
        set_worker_tariffs(session, 9999, {})


def test_luis_flat_rate_from_cross_rates(seeded):
    assert seeded["luis"].unit_rates == {str(seeded["ocean"].id): 60.0}


def test_worker_with_payments_cannot_be_deleted(session, seeded):
    ana = seeded["ana"]
    s = save_service(
        session,
        user_id=USER,
        data={"unit_id": seeded["ocean"].id, "worker_ids": [ana.id], "start_date": "2026-03-02"},
    )
    save_payment(
        session,
        user_id=USER,
        worker_id=ana.id,
        service_ids=[s.id],
        date_from="2026-03-01",
        date_to="2026-03-31",
        operation_number="OP-1",
    )
    with pytest.raises(ValidationError):
        delete_worker_by_id(session, ana.id)
