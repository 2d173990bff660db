from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "settings.json"

# Valores por defecto (se pueden ajustar en data/settings.json)
DEFAULTS: Dict[str, Any] = {
    # Encabezado de las facturas
    "company_name": "K&D Cleaning services",
    "company_short_name": "K&D Cleaning",
    "company_address": "26 Stanhope Rd",
    "company_city": "Goose Creek",
    "company_state": "South Carolina",
    "company_zip": "29445",

    # Facturación
    "currency": "USD",
    "invoice_due_days": 30,

    # Servicio externo de extracción de PDFs
    "extraction_api_url": "",
    "extraction_api_key": "",
    "extraction_timeout": 60.0,
    "extraction_max_retries": 3,
    "extraction_backoff_seconds": 2.0,

    # Horario por defecto de los servicios importados
    "import_start_time": "09:00",
    "import_end_time": "17:00",
}

# Variables de entorno que pisan el archivo
ENV_OVERRIDES: Dict[str, str] = {
    "extraction_api_url": "EXTRACTION_API_URL",
    "extraction_api_key": "EXTRACTION_API_KEY",
}

_CACHE: Dict[str, Any] | None = None


def default_settings_path() -> Path:
    from .db import get_data_dir
    return get_data_dir() / SETTINGS_FILENAME


def load_settings(path: Path | None = None, *, reload: bool = False) -> Dict[str, Any]:
    global _CACHE
    if _CACHE is not None and path is None and not reload:
        return _CACHE
    p = path or default_settings_path()
    data: Dict[str, Any] = {}
    if p.exists():
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"No se pudo leer {p}: {e}. Se usan valores por defecto.")
            data = {}
    merged = {**DEFAULTS, **data}
    for key, env_name in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            merged[key] = value
    if path is None:
        _CACHE = merged
    return merged


def save_settings(values: Dict[str, Any], path: Path | None = None) -> Path:
    """Guarda sólo las claves conocidas en el archivo de configuración."""
    global _CACHE
    p = path or default_settings_path()
    current: Dict[str, Any] = {}
    if p.exists():
        try:
            current = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"No se pudo leer {p}: {e}. Se reemplaza el archivo.")
            current = {}
    current.update({k: v for k, v in values.items() if k in DEFAULTS})
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(current, ensure_ascii=False, indent=2), encoding="utf-8")
    _CACHE = None
    return p


def get_setting(key: str, default: Any = None) -> Any:
    return load_settings().get(key, default)
