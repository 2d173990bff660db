from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from .db import get_data_dir, make_engine, make_session_factory, test_connection
from .errors import ExternalServiceError, ValidationError
from .utils.logging_config import configure_logging

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="cleaning_admin", description="Administración de servicios de limpieza: pagos y facturas")
    p.add_argument("--db", default=None, help="Ruta SQLite o URL SQLAlchemy (por defecto DATABASE_URL o data/cleaning.db)")
    p.add_argument("--user", default=os.getenv("CLEANING_ADMIN_USER", "default"), help="Usuario dueño de los datos")
    p.add_argument("-v", "--verbose", action="store_true", help="Log en nivel DEBUG")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Crear tablas y configuración del usuario")
    sub.add_parser("check-db", help="Probar la conexión a la base de datos")
    sub.add_parser("next-numbers", help="Mostrar las próximas órdenes de trabajo y número de factura")

    rep = sub.add_parser("worker-report", help="Horas y pago por trabajador en un rango")
    rep.add_argument("--from", dest="date_from", required=True, help="YYYY-MM-DD")
    rep.add_argument("--to", dest="date_to", required=True, help="YYYY-MM-DD")

    for name, help_text in (("invoice-pdf", "Generar PDF de una factura"), ("invoice-xlsx", "Exportar factura a Excel")):
        sp = sub.add_parser(name, help=help_text)
        sp.add_argument("invoice_id", type=int)
        sp.add_argument("--out", default=None, help="Ruta de salida")

    snd = sub.add_parser("send-invoice", help="Preparar el correo de una factura y marcarla como enviada")
    snd.add_argument("invoice_id", type=int)
    paid = sub.add_parser("mark-paid", help="Marcar una factura enviada como pagada")
    paid.add_argument("invoice_id", type=int)

    ex = sub.add_parser("import-pdf-text", help="Extraer servicios del texto de un PDF e importarlos")
    ex.add_argument("text_file", help="Archivo de texto extraído del PDF")
    ex.add_argument("--dry-run", action="store_true", help="Sólo mostrar las filas extraídas")
    return p.parse_args(argv)


def _cmd_next_numbers(session, user_id: str) -> None:
    from .repository import load_state
    from .services.numbering import WORK_ORDER_PREFIXES, next_invoice_number, next_work_order

    state = load_state(session, user_id)
    for service_type in WORK_ORDER_PREFIXES:
        print(f"{service_type}: {next_work_order(service_type, state.services, state.config)}")
    print(f"Factura: {next_invoice_number(state.config, state.invoices)}")


def _cmd_worker_report(session, user_id: str, date_from: str, date_to: str) -> None:
    from .repository import load_state
    from .services.reports import build_worker_report

    state = load_state(session, user_id)
    report = build_worker_report(state.services, state.workers_by_id, state.units_by_id, (date_from, date_to))
    print(f"{'Trabajador':30} {'Servicios':>9} {'Horas':>8} {'Pago':>10} {'Pendiente':>10}")
    for row in report.values():
        print(f"{row.worker_name[:30]:30} {row.services_count:>9} {row.total_hours:>8} {row.total_pay:>10} {row.pending_pay:>10}")


def _user_invoice(session, user_id: str, invoice_id: int):
    from .repository import get_invoice_by_id

    invoice = get_invoice_by_id(session, invoice_id)
    if invoice is None or invoice.user_id != user_id:
        raise ValidationError(f"Factura no encontrada: {invoice_id}")
    return invoice


def _cmd_invoice_document(session, user_id: str, invoice_id: int, kind: str, out: str | None) -> Path:
    from .documents import export_invoice_xlsx, render_invoice_pdf
    from .models import Client
    from .repository import list_units, services_for_invoice

    invoice = _user_invoice(session, user_id, invoice_id)
    client = session.get(Client, invoice.client_id)
    services = services_for_invoice(session, invoice)
    out_path = Path(out) if out else None
    if kind == "pdf":
        return render_invoice_pdf(invoice, client, services, out_path)
    units = {u.id: u for u in list_units(session, user_id)}
    return export_invoice_xlsx(invoice, client, services, units, out_path)


def _cmd_import(session, user_id: str, text_file: str, dry_run: bool) -> None:
    from .extraction import ExtractionClient, extract_with_fallback
    from .repository import import_extracted_services
    from .settings import load_settings

    text = Path(text_file).read_text(encoding="utf-8")
    settings = load_settings()
    client = ExtractionClient.from_settings(settings) if settings.get("extraction_api_url") else None
    rows = extract_with_fallback(client, text)
    for row in rows:
        print(f"{row.work_order or '-':10} {row.scheduled_date or '-':12} {row.service_type or '-':20} {row.unit_name}")
    if dry_run:
        return
    result = import_extracted_services(session, user_id=user_id, rows=rows)
    print(f"{len(result.created)} servicios creados, {len(result.errors)} errores")
    for err in result.errors:
        print(f"  - {err}")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO, get_data_dir() / "cleaning_admin.log")

    engine = make_engine(args.db)
    if args.command == "check-db":
        info = test_connection(engine)
        print(f"{info['backend']} {info['url']}: {'OK' if info['ok'] else 'ERROR ' + str(info['error'])}")
        return 0 if info["ok"] else 1

    Session = make_session_factory(engine)
    try:
        with Session() as session:
            if args.command == "init-db":
                from .repository import get_or_create_config
                cfg = get_or_create_config(session, args.user)
                print(f"Base de datos lista ({engine.url.render_as_string(hide_password=True)}); moneda {cfg.currency}")
            elif args.command == "next-numbers":
                _cmd_next_numbers(session, args.user)
            elif args.command == "worker-report":
                _cmd_worker_report(session, args.user, args.date_from, args.date_to)
            elif args.command in ("invoice-pdf", "invoice-xlsx"):
                kind = "pdf" if args.command == "invoice-pdf" else "xlsx"
                out = _cmd_invoice_document(session, args.user, args.invoice_id, kind, args.out)
                print(f"Archivo generado: {out}")
            elif args.command == "send-invoice":
                from .documents import invoice_mailto
                from .models import Client
                from .repository import send_invoice
                _user_invoice(session, args.user, args.invoice_id)
                invoice, subject, body = send_invoice(session, args.invoice_id)
                print(invoice_mailto(session.get(Client, invoice.client_id).email, subject, body))
            elif args.command == "mark-paid":
                from .repository import mark_invoice_paid
                _user_invoice(session, args.user, args.invoice_id)
                invoice = mark_invoice_paid(session, args.invoice_id)
                print(f"Factura {invoice.invoice_number}: {invoice.status}")
            elif args.command == "import-pdf-text":
                _cmd_import(session, args.user, args.text_file, args.dry_run)
    except (ValidationError, ExternalServiceError) as e:
        logger.error(str(e))
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
