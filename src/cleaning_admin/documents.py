from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Iterable
from urllib.parse import quote

from openpyxl import Workbook
from openpyxl.styles import Font
from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from .errors import ValidationError
from .services.dates import effective_date, format_ddmmyyyy
from .services.rates import lookup, to_decimal
from .settings import load_settings

HEADER_COLOR = colors.HexColor("#2B6CB0")
LIGHT_GRAY = colors.HexColor("#F0F0F0")
MONEY_FORMAT = '"$"#,##0.00'


def _data_dir() -> Path:
    from .db import get_data_dir
    d = get_data_dir() / "invoices"
    d.mkdir(parents=True, exist_ok=True)
    return d


def invoice_file_stem(invoice) -> str:
    return f"Factura_{invoice.invoice_number}_{invoice.issue_date.isoformat()}"


def _money(value) -> str:
    return f"{to_decimal(value):,.2f}"


def invoice_rows(services: Iterable) -> list[tuple[str, str, str, str, str]]:
    """Filas de la tabla de la factura: (ítem, descripción, precio, cantidad, monto)."""
    rows = []
    for service in services:
        amount = _money(service.total_cost)
        rows.append((
            "Service",
            f"Cleaning Services {format_ddmmyyyy(effective_date(service))}",
            amount,
            "1.00",
            amount,
        ))
    return rows


def render_invoice_pdf(invoice, client, services: Iterable, out_path: Path | None = None,
                       settings: dict | None = None) -> Path:
    """Genera la factura en PDF (carta) y devuelve la ruta del archivo."""
    s = settings or load_settings()
    services = list(services)
    out = Path(out_path) if out_path else (_data_dir() / f"{invoice_file_stem(invoice)}.pdf")
    out.parent.mkdir(parents=True, exist_ok=True)

    width, height = letter
    c = canvas.Canvas(str(out), pagesize=letter)
    c.setTitle(f"{invoice.invoice_number}-INVOICE")
    left = 20 * mm
    right = width - 20 * mm
    y = height - 25 * mm

    # Encabezado
    c.setFillColor(HEADER_COLOR)
    c.setFont("Helvetica-Bold", 20)
    c.drawRightString(right, y, f"{invoice.invoice_number}-INVOICE")
    c.setFillColor(colors.black)
    c.setFont("Helvetica-Bold", 12)
    c.drawString(left, y, s["company_name"])
    c.setFont("Helvetica", 10)
    for line in (s["company_address"], s["company_city"], s["company_state"], s["company_zip"]):
        y -= 5 * mm
        c.drawString(left, y, str(line))

    # Cliente
    y -= 10 * mm
    c.setFont("Helvetica-Bold", 10)
    c.drawString(left, y, client.name if client else "")
    c.setFont("Helvetica", 10)
    if client is not None and client.address:
        y -= 4 * mm
        c.drawString(left, y, client.address)

    # Datos de la factura
    box_x = 100 * mm
    box_y = y - 18 * mm
    c.setFillColor(LIGHT_GRAY)
    c.rect(box_x - 5 * mm, box_y - 4 * mm, 85 * mm, 20 * mm, stroke=0, fill=1)
    c.setFillColor(colors.black)
    labels = (
        ("Invoice #", invoice.invoice_number),
        ("Invoice Date", format_ddmmyyyy(invoice.issue_date)),
        ("Due Date", format_ddmmyyyy(invoice.due_date)),
    )
    for i, (label, value) in enumerate(labels):
        row_y = box_y + 12 * mm - i * 6 * mm
        c.setFont("Helvetica", 10)
        c.drawString(box_x, row_y, label)
        c.setFont("Helvetica-Bold", 10)
        c.drawString(box_x + 50 * mm, row_y, str(value))

    # Tabla de servicios
    y = box_y - 15 * mm
    cols = (left, left + 25 * mm, left + 125 * mm, left + 150 * mm, right)
    c.setFillColor(HEADER_COLOR)
    c.rect(left, y - 2 * mm, right - left, 7 * mm, stroke=0, fill=1)
    c.setFillColor(colors.white)
    c.setFont("Helvetica-Bold", 9)
    c.drawString(cols[0] + 2 * mm, y, "Item")
    c.drawString(cols[1] + 2 * mm, y, "Description")
    c.drawRightString(cols[2] + 20 * mm, y, "Unit Price")
    c.drawRightString(cols[3] + 20 * mm, y, "Quantity")
    c.drawRightString(cols[4] - 2 * mm, y, "Amount")
    c.setFillColor(colors.black)
    c.setFont("Helvetica", 9)
    for item, desc, price, qty, amount in invoice_rows(services):
        y -= 7 * mm
        if y < 40 * mm:
            c.showPage()
            c.setFont("Helvetica", 9)
            y = height - 25 * mm
        c.drawString(cols[0] + 2 * mm, y, item)
        c.drawString(cols[1] + 2 * mm, y, desc)
        c.drawRightString(cols[2] + 20 * mm, y, price)
        c.drawRightString(cols[3] + 20 * mm, y, qty)
        c.drawRightString(cols[4] - 2 * mm, y, amount)
        c.setStrokeColor(colors.lightgrey)
        c.line(left, y - 2 * mm, right, y - 2 * mm)

    # Resumen
    total = _money(invoice.total_amount)
    summary = (
        ("Subtotal", total),
        ("Total", total),
        ("Amount Paid", "0.00"),
        ("Balance Due", f"${total}"),
    )
    y -= 12 * mm
    sx = 110 * mm
    for i, (label, value) in enumerate(summary):
        if i == len(summary) - 1:
            c.setFillColor(LIGHT_GRAY)
            c.rect(sx - 2 * mm, y - 2 * mm, right - sx + 2 * mm, 7 * mm, stroke=0, fill=1)
            c.setFillColor(colors.black)
            c.setFont("Helvetica-Bold", 10)
        else:
            c.setFont("Helvetica", 10)
        c.drawString(sx, y, label)
        c.drawRightString(right - 2 * mm, y, value)
        y -= 7 * mm

    if invoice.notes:
        y -= 5 * mm
        c.setFont("Helvetica-Oblique", 9)
        c.drawString(left, y, f"Notes: {invoice.notes}")

    c.showPage()
    c.save()
    return out


EXCEL_HEADERS = ("Work Order", "Unidad", "Cliente", "Fecha", "Monto")


def export_invoice_xlsx(invoice, client, services: Iterable, units, out_path: Path | None = None) -> Path:
    """Exporta el detalle de la factura a Excel con una fila TOTAL al final."""
    out = Path(out_path) if out_path else (_data_dir() / f"{invoice_file_stem(invoice)}.xlsx")
    out.parent.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    ws = wb.active
    ws.title = "Factura"
    ws.append(EXCEL_HEADERS)
    for cell in ws[1]:
        cell.font = Font(bold=True)

    client_name = client.name if client is not None else "Cliente eliminado"
    for service in services:
        unit = lookup(units, service.unit_id)
        ws.append([
            service.work_order or "-",
            unit.name if unit is not None else "Unidad eliminada",
            client_name,
            format_ddmmyyyy(effective_date(service)),
            float(to_decimal(service.total_cost)),
        ])
        ws.cell(row=ws.max_row, column=5).number_format = MONEY_FORMAT

    ws.append(["", "", "", "TOTAL", float(to_decimal(invoice.total_amount))])
    total_row = ws.max_row
    ws.cell(row=total_row, column=4).font = Font(bold=True)
    ws.cell(row=total_row, column=5).font = Font(bold=True)
    ws.cell(row=total_row, column=5).number_format = MONEY_FORMAT

    for col, w in zip("ABCDE", (14, 30, 30, 12, 14)):
        ws.column_dimensions[col].width = w
    wb.save(out)
    return out


def compose_invoice_email(invoice, client, settings: dict | None = None) -> tuple[str, str]:
    """Asunto y cuerpo del correo con el que se envía la factura al cliente."""
    if client is None or not (client.email or "").strip():
        raise ValidationError("El cliente no tiene email registrado.")
    s = settings or load_settings()
    company = s["company_short_name"]
    total = to_decimal(invoice.total_amount).quantize(Decimal("0.01"))
    subject = f"Factura {invoice.invoice_number} - {company}"
    lines = [
        f"Estimado/a {client.name},",
        "",
        f"Adjunto encontrará la factura {invoice.invoice_number} por los servicios realizados.",
        "",
        "Detalles de la factura:",
        f"- Número: {invoice.invoice_number}",
        f"- Fecha de emisión: {format_ddmmyyyy(invoice.issue_date)}",
        f"- Fecha de vencimiento: {format_ddmmyyyy(invoice.due_date)}",
        f"- Total a pagar: ${total}",
        "",
    ]
    if invoice.notes:
        lines += [f"Notas: {invoice.notes}", ""]
    lines += [
        "Por favor, no dude en contactarnos si tiene alguna pregunta.",
        "",
        "Saludos cordiales,",
        company,
    ]
    return subject, "\n".join(lines)


def invoice_mailto(email: str, subject: str, body: str) -> str:
    return f"mailto:{email}?subject={quote(subject)}&body={quote(body)}"
