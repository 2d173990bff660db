from __future__ import annotations

"""
Cliente del servicio externo que extrae servicios programados desde el texto
de un PDF, y utilidades para relacionar lo extraído con las unidades.

El servicio devuelve aproximaciones: cada fila se valida contra las unidades
registradas antes de crear servicios (ver ``repository.import_extracted_services``).
"""

from dataclasses import dataclass, field
import json
import logging
import re
import time
from typing import Any, Callable, Iterable

import requests

from .errors import ExternalServiceError
from .settings import load_settings

logger = logging.getLogger(__name__)

RETRY_STATUS = (429, 503)

PROMPT = """Extrae los servicios programados del siguiente texto.
Devuelve SOLO un arreglo JSON con objetos {"workOrder", "scheduledDate", "serviceType", "unitName"}.
- scheduledDate en formato YYYY-MM-DD.
- El tipo de servicio devuélvelo tal cual aparece.

Contenido del PDF:
"""


@dataclass(frozen=True, slots=True)
class ExtractedService:
    work_order: str = ""
    scheduled_date: str = ""
    service_type: str = ""
    unit_name: str = ""

    @classmethod
    def from_row(cls, row: Any) -> "ExtractedService":
        if not isinstance(row, dict):
            return cls()
        return cls(
            work_order=str(row.get("workOrder") or row.get("work_order") or ""),
            scheduled_date=str(row.get("scheduledDate") or row.get("scheduled_date") or ""),
            service_type=str(row.get("serviceType") or row.get("service_type") or ""),
            unit_name=str(row.get("unitName") or row.get("unit_name") or ""),
        )


@dataclass(slots=True)
class UnitMatch:
    is_valid: bool
    unit_id: int | None = None
    unit_name: str | None = None
    error: str | None = None
    suggestions: list[str] = field(default_factory=list)


def normalize_unit_string(value: str | None) -> str:
    """Quita todos los espacios y pasa a minúsculas."""
    return re.sub(r"\s+", "", value or "").lower()


def match_unit(unit_name: str, units: Iterable) -> UnitMatch:
    """Busca la unidad por nombre o código ignorando espacios y mayúsculas.

    Si no hay coincidencia exacta devuelve sugerencias por coincidencia parcial.
    """
    target = normalize_unit_string(unit_name)
    units = list(units)
    if not target:
        return UnitMatch(is_valid=False, error="Nombre de unidad vacío.")
    for unit in units:
        name = normalize_unit_string(unit.name)
        code = normalize_unit_string(unit.code_name)
        if name == target or (code and code == target):
            return UnitMatch(is_valid=True, unit_id=unit.id, unit_name=unit.name)

    suggestions = []
    for unit in units:
        name = normalize_unit_string(unit.name)
        code = normalize_unit_string(unit.code_name)
        if (name and (target in name or name in target)) or (code and (target in code or code in target)):
            suggestions.append(unit.name)
    error = f'La unidad "{unit_name}" no existe en el sistema.'
    if suggestions:
        error += f" ¿Quiso decir: {', '.join(suggestions)}?"
    return UnitMatch(is_valid=False, error=error, suggestions=suggestions)


def parse_extracted_rows(text: str) -> list[ExtractedService]:
    """Toma el primer arreglo JSON de la respuesta del modelo."""
    m = re.search(r"\[[\s\S]*\]", text or "")
    if not m:
        raise ExternalServiceError("No se encontró un arreglo JSON en la respuesta del servicio.")
    try:
        rows = json.loads(m.group(0))
    except json.JSONDecodeError as e:
        raise ExternalServiceError("No se pudo leer el arreglo JSON devuelto por el servicio.") from e
    return [ExtractedService.from_row(r) for r in rows]


_WORK_ORDER_RE = re.compile(r"(?:work\s*order|orden\s*de\s*trabajo|wo)[\s:#]*([A-Za-z]?\d+)", re.I)
_DATE_RE = re.compile(r"(\d{4}-\d{2}-\d{2})")
_UNIT_RE = re.compile(r"(?:unit|unidad|property|propiedad)[\s:]*([^,\n]+)", re.I)
_TYPE_RE = re.compile(r"(?:service|servicio|type|tipo)[\s:]*([^,\n]+)", re.I)


def heuristic_extract(text: str) -> list[ExtractedService]:
    """Extracción de respaldo por patrones cuando el servicio no responde."""
    rows = []
    for line in (text or "").splitlines():
        if not line.strip():
            continue
        wo = _WORK_ORDER_RE.search(line)
        dt = _DATE_RE.search(line)
        unit = _UNIT_RE.search(line)
        stype = _TYPE_RE.search(line)
        if not (wo or dt or unit or stype):
            continue
        rows.append(ExtractedService(
            work_order=wo.group(1) if wo else "",
            scheduled_date=dt.group(1) if dt else "",
            service_type=stype.group(1).strip() if stype else "",
            unit_name=unit.group(1).strip() if unit else "",
        ))
    return rows


def _reply_text(data: Any) -> str:
    if isinstance(data, list):
        return json.dumps(data)
    if isinstance(data, dict):
        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            pass
        if isinstance(data.get("services"), list):
            return json.dumps(data["services"])
        if isinstance(data.get("text"), str):
            return data["text"]
    raise ExternalServiceError("Respuesta del servicio de extracción sin contenido reconocible.")


class ExtractionClient:
    def __init__(
        self,
        api_url: str,
        api_key: str | None = None,
        *,
        timeout: float = 60.0,
        max_retries: int = 3,
        backoff_seconds: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not api_url:
            raise ExternalServiceError("No hay URL configurada para el servicio de extracción (EXTRACTION_API_URL).")
        self.api_url = api_url
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max(1, int(max_retries))
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: dict | None = None) -> "ExtractionClient":
        s = settings or load_settings()
        return cls(
            s.get("extraction_api_url", ""),
            s.get("extraction_api_key") or None,
            timeout=float(s.get("extraction_timeout", 60.0)),
            max_retries=int(s.get("extraction_max_retries", 3)),
            backoff_seconds=float(s.get("extraction_backoff_seconds", 2.0)),
        )

    def _post(self, payload: dict) -> requests.Response:
        params = {"key": self.api_key} if self.api_key else None
        return requests.post(self.api_url, params=params, json=payload, timeout=self.timeout)

    def extract_services(self, pdf_text: str) -> list[ExtractedService]:
        """Envía el texto al servicio y devuelve las filas extraídas.

        Reintenta ante 429/503 o fallos de red, esperando ``intento × backoff``
        segundos. Otros códigos de error son terminales.
        """
        payload = {
            "contents": [{"parts": [{"text": PROMPT + (pdf_text or "")}]}],
            "generationConfig": {"temperature": 0.1, "topK": 1, "topP": 1, "maxOutputTokens": 8192},
        }
        last_error: str = "Error desconocido"
        for attempt in range(1, self.max_retries + 1):
            try:
                resp = self._post(payload)
            except (requests.ConnectionError, requests.Timeout) as e:
                last_error = str(e)
                logger.warning(f"Intento {attempt} falló por red: {e}")
            else:
                if resp.status_code == 200:
                    try:
                        body = resp.json()
                    except ValueError as e:
                        raise ExternalServiceError("El servicio de extracción devolvió una respuesta no JSON.") from e
                    rows = parse_extracted_rows(_reply_text(body))
                    logger.info(f"Extracción completada: {len(rows)} filas")
                    return rows
                last_error = f"{resp.status_code} {resp.text[:200]}"
                if resp.status_code not in RETRY_STATUS:
                    raise ExternalServiceError(
                        f"El servicio de extracción respondió {resp.status_code}.",
                        status_code=resp.status_code,
                    )
                logger.warning(f"Intento {attempt} falló con {resp.status_code}")
            if attempt < self.max_retries:
                wait = attempt * self.backoff_seconds
                logger.info(f"Reintentando en {wait} segundos...")
                self._sleep(wait)
        raise ExternalServiceError(
            f"Error después de {self.max_retries} intentos: {last_error}",
            transient=True,
        )


def extract_with_fallback(client: ExtractionClient | None, pdf_text: str) -> list[ExtractedService]:
    """Usa el servicio externo y, si falla, la extracción por patrones.

    Si tampoco hay patrones reconocibles se propaga el error del servicio.
    """
    if client is None:
        rows = heuristic_extract(pdf_text)
        if not rows:
            raise ExternalServiceError("No se encontraron servicios en el texto del PDF.")
        return rows
    try:
        return client.extract_services(pdf_text)
    except ExternalServiceError as e:
        logger.warning(f"Extracción externa falló ({e}); usando método de respaldo")
        rows = heuristic_extract(pdf_text)
        if not rows:
            raise
        return rows
