import logging
from logging.handlers import RotatingFileHandler

import pytest

from src.cleaning_admin.__main__ import main
from src.cleaning_admin.db import make_engine, make_session_factory
from src.cleaning_admin.models import Invoice
from src.cleaning_admin.repository import (
    add_client,
    add_unit,
    add_worker,
    save_invoice,
    save_service,
)
from src.cleaning_admin.utils.logging_config import configure_logging


@pytest.fixture
def db_file(tmp_path):
    return tmp_path / "cli.db"


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    yield
    for h in list(root.handlers):
        if h not in before:
            root.removeHandler(h)
            h.close()
    root.setLevel(level)


def seed_invoice(db_file, user="default"):
    Session = make_session_factory(make_engine(db_file))
    with Session() as s:
        client = add_client(s, user_id=user, name="Ocean Rentals", email="owner@ocean.test")
        unit = add_unit(s, user_id=user, name="Ocean 12", price=100, client_id=client.id)
        worker = add_worker(s, user_id=user, name="Ana", hourly_rate=20)
        service = save_service(
            s,
            user_id=user,
            data={
                "unit_id": unit.id,
                "worker_ids": [worker.id],
                "start_date": "2026-05-04",
                "service_type": "Touch Up",
                "has_pets": True,
            },
        )
        invoice = save_invoice(s, user_id=user, client_id=client.id, service_ids=[service.id], issue_date="2026-05-10")
        return invoice.id


def test_init_db_and_next_numbers(db_file, capsys):
    assert main(["--db", str(db_file), "init-db"]) == 0
    assert db_file.exists()
    assert "moneda USD" in capsys.readouterr().out

    assert main(["--db", str(db_file), "next-numbers"]) == 0
    out = capsys.readouterr().out
    assert "Touch Up: T0001" in out
    assert "Landscaping: L0001" in out
    assert "Terceros: C0001" in out
    assert "Factura: INV-0001" in out


def test_check_db(db_file, capsys):
    assert main(["--db", str(db_file), "check-db"]) == 0
    assert "OK" in capsys.readouterr().out


def test_invoice_documents_and_status(db_file, tmp_path, capsys):
    invoice_id = seed_invoice(db_file)

    pdf = tmp_path / "out" / "f.pdf"
    assert main(["--db", str(db_file), "invoice-pdf", str(invoice_id), "--out", str(pdf)]) == 0
    assert pdf.read_bytes()[:4] == b"%PDF"

    xlsx = tmp_path / "out" / "f.xlsx"
    assert main(["--db", str(db_file), "invoice-xlsx", str(invoice_id), "--out", str(xlsx)]) == 0
    assert xlsx.exists()

    capsys.readouterr()
    assert main(["--db", str(db_file), "send-invoice", str(invoice_id)]) == 0
    assert capsys.readouterr().out.startswith("mailto:owner@ocean.test?subject=Factura%20INV-0001")

    assert main(["--db", str(db_file), "mark-paid", str(invoice_id)]) == 0
    assert "INV-0001: paid" in capsys.readouterr().out


def test_errors_return_code_two(db_file, capsys):
    seed_invoice(db_file)
    assert main(["--db", str(db_file), "mark-paid", "1"]) == 2
    assert "ERROR" in capsys.readouterr().err
    # otro usuario no ve la factura
    assert main(["--db", str(db_file), "--user", "otro", "invoice-pdf", "1"]) == 2


def test_other_user_cannot_change_invoice_status(db_file, capsys):
    invoice_id = seed_invoice(db_file)
    assert main(["--db", str(db_file), "--user", "otro", "send-invoice", str(invoice_id)]) == 2
    assert main(["--db", str(db_file), "--user", "otro", "mark-paid", str(invoice_id)]) == 2
    assert "no encontrada" in capsys.readouterr().err

    Session = make_session_factory(make_engine(db_file))
    with Session() as s:
        assert s.get(Invoice, invoice_id).status == "draft"


def test_worker_report(db_file, capsys):
    seed_invoice(db_file)
    assert main(["--db", str(db_file), "worker-report", "--from", "2026-05-01", "--to", "2026-05-31"]) == 0
    out = capsys.readouterr().out
    assert "Ana" in out


def test_import_pdf_text_without_service(db_file, tmp_path, capsys):
    seed_invoice(db_file)
    text = tmp_path / "pdf.txt"
    text.write_text("WO T0050 2026-05-20 Unit: Ocean 12, Service: Touch Up\n", encoding="utf-8")

    assert main(["--db", str(db_file), "import-pdf-text", str(text), "--dry-run"]) == 0
    assert "T0050" in capsys.readouterr().out

    assert main(["--db", str(db_file), "import-pdf-text", str(text)]) == 0
    assert "1 servicios creados, 0 errores" in capsys.readouterr().out


def test_configure_logging_is_idempotent(tmp_path):
    log_file = tmp_path / "logs" / "app.log"
    root = configure_logging(logging.INFO, log_file)
    configure_logging(logging.DEBUG, log_file)
    tagged = [h for h in root.handlers if getattr(h, "_cleaning_admin", False)]
    files = [h for h in root.handlers if isinstance(h, RotatingFileHandler) and h.baseFilename == str(log_file.resolve())]
    assert len(tagged) == 1
    assert len(files) == 1
    assert root.level == logging.DEBUG
    logging.getLogger("src.cleaning_admin.test").info("hola")
    for h in files:
        h.flush()
    assert "hola" in log_file.read_text(encoding="utf-8")
