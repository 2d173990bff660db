from __future__ import annotations

from pathlib import Path
import logging
import os
import time

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker
from .models import Base

# Cargar variables desde .env si existe
load_dotenv()

logger = logging.getLogger(__name__)

MEMORY_URLS = {":memory:", "sqlite:///:memory:", "sqlite+pysqlite:///:memory:"}


def get_data_dir() -> Path:
    """Devuelve la carpeta de datos persistente.
    - Por defecto: ./data
    - Se puede forzar con la variable CLEANING_ADMIN_DATA_DIR
    """
    override = os.getenv("CLEANING_ADMIN_DATA_DIR")
    d = Path(override).expanduser() if override else Path.cwd() / "data"
    d.mkdir(parents=True, exist_ok=True)
    return d


def get_default_db_path() -> Path:
    return get_data_dir() / "cleaning.db"


def make_engine(db_path: Path | str | None = None):
    """Crear un engine de SQLAlchemy.

    Prioridad de conexión:
    1) Si se pasa ``db_path`` (ruta SQLite o URL completa), respetar ese destino.
    2) Si existe la variable de entorno ``DATABASE_URL``, usarla.
    3) Usar SQLite local por defecto en ``./data/cleaning.db``.
    """
    if db_path is not None:
        s = str(db_path)
        if s in MEMORY_URLS:
            # Todas las conexiones comparten la misma base en memoria (pruebas)
            return create_engine(
                "sqlite+pysqlite:///:memory:",
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        if "://" in s:
            return _make_url_engine(s)
        return create_engine(f"sqlite:///{s}", connect_args={"check_same_thread": False})

    env_url = os.getenv("DATABASE_URL")
    if env_url:
        return _make_url_engine(env_url)

    url = f"sqlite:///{get_default_db_path()}"
    return create_engine(url, connect_args={"check_same_thread": False})


def _make_url_engine(url: str):
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_recycle=1800,
    )


def make_session_factory(engine=None):
    engine = engine or make_engine()
    # CLEANING_ADMIN_SKIP_CREATE_ALL=1 cuando el esquema se gestiona fuera de la app
    skip_create = os.getenv("CLEANING_ADMIN_SKIP_CREATE_ALL", "0").lower() in ("1", "true", "yes")
    if not skip_create:
        Base.metadata.create_all(bind=engine)
    # expire_on_commit=False: las instancias siguen legibles fuera de la sesión
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def test_connection(engine=None) -> dict:
    """Probar la conexión a la base de datos actual.

    Retorna un dict con ``ok``, ``elapsed_ms``, ``url`` (sin contraseña),
    ``backend`` y ``error``.
    """
    e = engine or make_engine()
    info = {
        "ok": False,
        "elapsed_ms": None,
        "url": e.url.render_as_string(hide_password=True),
        "backend": e.url.get_backend_name(),
        "error": None,
    }
    try:
        t0 = time.perf_counter()
        with e.connect() as conn:
            conn.exec_driver_sql("SELECT 1")
        info["elapsed_ms"] = (time.perf_counter() - t0) * 1000.0
        info["ok"] = True
    except SQLAlchemyError as ex:
        logger.error(f"No se pudo conectar a {info['url']}: {ex}")
        info["error"] = str(ex)
    return info


# pytest no debe recolectar esta función de utilidad
test_connection.__test__ = False
