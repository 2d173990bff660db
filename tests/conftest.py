# Ensure project root is on sys.path so `import src.cleaning_admin...` works when running tests in various environments.
import os
import sys
from decimal import Decimal

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import pytest
from src.cleaning_admin import settings as settings_module
from src.cleaning_admin.db import make_engine, make_session_factory
from src.cleaning_admin.models import Base
from src.cleaning_admin.repository import add_client, add_unit, add_worker

USER = "user-1"


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path, monkeypatch):
    # Cada prueba escribe settings, logs y documentos en su propia carpeta
    monkeypatch.setenv("CLEANING_ADMIN_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("EXTRACTION_API_URL", raising=False)
    monkeypatch.delenv("EXTRACTION_API_KEY", raising=False)
    settings_module._CACHE = None
    data_dir = tmp_path / "data"
    data_dir.mkdir(parents=True, exist_ok=True)
    yield data_dir
    settings_module._CACHE = None


@pytest.fixture
def engine():
    engine = make_engine(":memory:")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def session(session_factory):
    with session_factory() as s:
        yield s


@pytest.fixture
def seeded(session):
    """Cliente con dos unidades y tres trabajadores con distintos tipos de tarifa."""
    client = add_client(session, user_id=USER, name="Ocean Rentals", email="owner@ocean.test", address="1 Beach Rd")
    ocean = add_unit(session, user_id=USER, name="Ocean 12", code_name="OC12", price=Decimal("100"), client_id=client.id)
    palm = add_unit(session, user_id=USER, name="Palm 3", price=Decimal("150"), client_id=client.id)
    ana = add_worker(session, user_id=USER, name="Ana", hourly_rate=Decimal("20"), unit_rates={ocean.id: 60})
    luis = add_worker(
        session,
        user_id=USER,
        name="Luis",
        cross_rates={ocean.id: {"Departure Clean": 75, "Prearrival Service": 45}},
    )
    nora = add_worker(session, user_id=USER, name="Nora")
    return {
        "client": client,
        "ocean": ocean,
        "palm": palm,
        "ana": ana,
        "luis": luis,
        "nora": nora,
    }
