import json
from decimal import Decimal

import pytest
import requests

from src.cleaning_admin import extraction
from src.cleaning_admin.errors import ExternalServiceError
from src.cleaning_admin.extraction import (
    ExtractedService,
    ExtractionClient,
    extract_with_fallback,
    heuristic_extract,
    match_unit,
    normalize_unit_string,
    parse_extracted_rows,
)
from src.cleaning_admin.models import Unit
from src.cleaning_admin.repository import get_or_create_config, import_extracted_services, list_services

USER = "user-1"

ROWS = [
    {"workOrder": "T0100", "scheduledDate": "2026-05-20", "serviceType": "Touch Up", "unitName": "Ocean 12"},
    {"work_order": "", "scheduled_date": "2026-05-21", "service_type": "Departure Clean", "unit_name": "palm3"},
]


class FakeResponse:
    def __init__(self, status_code, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text or json.dumps(payload)

    def json(self):
        return self._payload


def gemini_reply(rows):
    text = "Aquí están los servicios:\n```json\n" + json.dumps(rows) + "\n```"
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class Recorder:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def __call__(self, url, params=None, json=None, timeout=None):
        self.calls.append({"url": url, "params": params, "json": json, "timeout": timeout})
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp


def make_client(sleeps, **kw):
    return ExtractionClient("https://extract.test/v1", "secret", sleep=sleeps.append, **kw)


# --- Unidades ---

UNITS = [
    Unit(id=1, name="Ocean 12", code_name="OC12"),
    Unit(id=2, name="Palm 3", code_name=None),
    Unit(id=3, name="Ocean 14", code_name="OC14"),
]


def test_normalize_unit_string():
    assert normalize_unit_string("  Ocean\t12 ") == "ocean12"
    assert normalize_unit_string(None) == ""


def test_match_unit_by_name_or_code():
    assert match_unit("ocean 12", UNITS).unit_id == 1
    assert match_unit("PALM3", UNITS).unit_id == 2
    assert match_unit("oc 14", UNITS).unit_id == 3


def test_match_unit_suggestions():
    result = match_unit("Ocean", UNITS)
    assert result.is_valid is False
    assert result.suggestions == ["Ocean 12", "Ocean 14"]
    assert "¿Quiso decir" in result.error

    missing = match_unit("Sunset 9", UNITS)
    assert missing.is_valid is False
    assert missing.suggestions == []
    assert missing.error == 'La unidad "Sunset 9" no existe en el sistema.'

    assert match_unit("  ", UNITS).is_valid is False


# --- Respuestas ---

def test_parse_rows_accepts_both_key_styles():
    rows = parse_extracted_rows("texto previo " + json.dumps(ROWS) + " texto final")
    assert rows == [
        ExtractedService("T0100", "2026-05-20", "Touch Up", "Ocean 12"),
        ExtractedService("", "2026-05-21", "Departure Clean", "palm3"),
    ]


@pytest.mark.parametrize("text", ["sin arreglo", "[no es json]"])
def test_parse_rows_errors(text):
    with pytest.raises(ExternalServiceError):
        parse_extracted_rows(text)


def test_heuristic_extract():
    text = "Work Order: T0200, Date 2026-05-22, Unit: Ocean 12, Service: Touch Up\n\nlinea sin datos\n"
    rows = heuristic_extract(text)
    assert rows == [ExtractedService("T0200", "2026-05-22", "Touch Up", "Ocean 12")]


# --- Cliente HTTP ---

def test_client_requires_url():
    with pytest.raises(ExternalServiceError):
        ExtractionClient("")


def test_extract_services_success(monkeypatch):
    recorder = Recorder([FakeResponse(200, gemini_reply(ROWS))])
    monkeypatch.setattr(extraction.requests, "post", recorder)
    sleeps = []
    rows = make_client(sleeps, timeout=5).extract_services("PDF TEXT")

    assert [r.work_order for r in rows] == ["T0100", ""]
    assert sleeps == []
    call = recorder.calls[0]
    assert call["url"] == "https://extract.test/v1"
    assert call["params"] == {"key": "secret"}
    assert call["timeout"] == 5
    assert call["json"]["contents"][0]["parts"][0]["text"].endswith("PDF TEXT")


def test_extract_services_accepts_plain_list(monkeypatch):
    monkeypatch.setattr(extraction.requests, "post", Recorder([FakeResponse(200, ROWS)]))
    assert len(make_client([]).extract_services("x")) == 2


def test_retries_with_linear_backoff(monkeypatch):
    recorder = Recorder([
        FakeResponse(503, text="unavailable"),
        requests.ConnectionError("reset"),
        FakeResponse(200, {"services": ROWS}),
    ])
    monkeypatch.setattr(extraction.requests, "post", recorder)
    sleeps = []
    rows = make_client(sleeps).extract_services("x")
    assert len(rows) == 2
    assert sleeps == [2.0, 4.0]
    assert len(recorder.calls) == 3


def test_retries_exhausted_is_transient(monkeypatch):
    monkeypatch.setattr(extraction.requests, "post", Recorder([FakeResponse(429, text="slow down")] * 3))
    sleeps = []
    with pytest.raises(ExternalServiceError) as exc:
        make_client(sleeps).extract_services("x")
    assert exc.value.transient is True
    assert sleeps == [2.0, 4.0]


def test_client_error_is_terminal(monkeypatch):
    recorder = Recorder([FakeResponse(400, text="bad request"), FakeResponse(200, ROWS)])
    monkeypatch.setattr(extraction.requests, "post", recorder)
    sleeps = []
    with pytest.raises(ExternalServiceError) as exc:
        make_client(sleeps).extract_services("x")
    assert exc.value.status_code == 400
    assert exc.value.transient is False
    assert len(recorder.calls) == 1
    assert sleeps == []


def test_from_settings_reads_environment(monkeypatch):
    monkeypatch.setenv("EXTRACTION_API_URL", "https://env.test/extract")
    monkeypatch.setenv("EXTRACTION_API_KEY", "k-123")
    client = ExtractionClient.from_settings()
    assert client.api_url == "https://env.test/extract"
    assert client.api_key == "k-123"
    assert client.max_retries == 3


def test_fallback_to_heuristics(monkeypatch):
    monkeypatch.setattr(extraction.requests, "post", Recorder([FakeResponse(500, text="boom")]))
    text = "WO T0300 2026-05-23 Unit: Palm 3"
    rows = extract_with_fallback(make_client([]), text)
    assert rows == [ExtractedService("T0300", "2026-05-23", "", "Palm 3")]


def test_fallback_propagates_when_nothing_found(monkeypatch):
    monkeypatch.setattr(extraction.requests, "post", Recorder([FakeResponse(500, text="boom")]))
    with pytest.raises(ExternalServiceError):
        extract_with_fallback(make_client([]), "nada útil aquí")
    with pytest.raises(ExternalServiceError):
        extract_with_fallback(None, "nada útil aquí")


class HtmlResponse(FakeResponse):
    def json(self):
        raise requests.exceptions.JSONDecodeError("Expecting value", self.text, 0)


def test_non_json_reply_uses_heuristics(monkeypatch):
    monkeypatch.setattr(extraction.requests, "post", Recorder([HtmlResponse(200, text="<html>oops</html>")]))
    text = "WO T0300 2026-05-23 Unit: Palm 3"
    with pytest.raises(ExternalServiceError):
        make_client([]).extract_services(text)

    monkeypatch.setattr(extraction.requests, "post", Recorder([HtmlResponse(200, text="<html>oops</html>")]))
    rows = extract_with_fallback(make_client([]), text)
    assert rows == [ExtractedService("T0300", "2026-05-23", "", "Palm 3")]


# --- Importación ---

def test_import_extracted_services(session, seeded):
    rows = [ExtractedService.from_row(r) for r in ROWS] + [
        ExtractedService("T0100", "2026-05-22", "Touch Up", "Ocean 12"),
        ExtractedService("", "2026-05-23", "Touch Up", "Sunset 9"),
        ExtractedService("", "23/05/2026", "Touch Up", "Ocean 12"),
        ExtractedService("", "2026-05-24", "Touch Up", "oc12"),
    ]
    result = import_extracted_services(session, user_id=USER, rows=rows)

    assert len(result.created) == 3
    assert len(result.errors) == 3
    assert any("Sunset 9" in e for e in result.errors)
    assert any("T0100" in e for e in result.errors)

    services = sorted(list_services(session, USER), key=lambda s: s.id)
    first, second, third = services
    assert first.work_order == "T0100"
    assert first.worker_ids == []
    assert first.pay_by_hour is True
    assert (first.start_time, first.end_time) == ("09:00", "17:00")
    assert str(first.execution_date) == "2026-05-20"
    assert second.unit_id == seeded["palm"].id
    assert second.work_order is None
    assert second.total_cost == Decimal("150.00")
    assert third.work_order == "T0101"
    assert get_or_create_config(session, USER).last_touch_up_number == 101
