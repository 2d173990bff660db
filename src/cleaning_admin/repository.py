from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from .documents import compose_invoice_email
from .errors import ConfigurationError, ValidationError
from .extraction import ExtractedService, match_unit
from .models import (
    Client, Extra, Invoice, InvoiceLine, InvoiceStatus, Payment, PaymentLine,
    Service, ServiceType, Unit, UnitType, UserConfig, Worker,
)
from .services.costs import price_service
from .services.dates import parse_date
from .services.invoices import (
    build_invoice_candidates, compute_invoice_total, default_due_date,
    transition_status, validate_invoice_selection,
)
from .services.numbering import (
    advance_invoice_counter, advance_work_order_counter, check_invoice_number_unique,
    check_work_order_unique, next_invoice_number, next_work_order, work_order_prefix,
)
from .services.payments import (
    apply_payment_to_services, build_payment_candidates, prepare_payment,
    remove_payment_from_services,
)
from .services.rates import hours_between, legacy_unit_rates, to_decimal, workers_without_rate
from .services.state import AppState
from .settings import get_setting

logger = logging.getLogger(__name__)


def _require(session: Session, model, obj_id: int | None, user_id: str, label: str):
    obj = session.get(model, obj_id) if obj_id is not None else None
    if obj is None or obj.user_id != user_id:
        raise ValidationError(f"{label} no encontrado(a): {obj_id}")
    return obj


def _apply_fields(obj, fields: dict[str, Any], allowed: Iterable[str]) -> None:
    for key in allowed:
        if key in fields:
            setattr(obj, key, fields[key])


# --- Configuración por usuario ---

def get_or_create_config(session: Session, user_id: str) -> UserConfig:
    cfg = session.query(UserConfig).filter(UserConfig.user_id == user_id).first()
    if cfg:
        return cfg
    cfg = UserConfig(
        user_id=user_id,
        last_touch_up_number=0,
        last_landscaping_number=0,
        last_terceros_number=0,
        last_invoice_number=0,
        currency=get_setting("currency", "USD"),
    )
    session.add(cfg)
    try:
        session.commit()
        return cfg
    except IntegrityError:
        session.rollback()
        # Otra sesión la creó en paralelo
        return session.query(UserConfig).filter(UserConfig.user_id == user_id).one()


def update_config(session: Session, user_id: str, **fields) -> UserConfig:
    """Actualiza la configuración. Los contadores sólo pueden subir."""
    cfg = get_or_create_config(session, user_id)
    for key in ("last_touch_up_number", "last_landscaping_number", "last_terceros_number", "last_invoice_number"):
        if key in fields and fields[key] is not None:
            value = int(fields[key])
            if value < getattr(cfg, key):
                raise ValidationError(f"El contador {key} no puede disminuir ({getattr(cfg, key)} -> {value}).")
            setattr(cfg, key, value)
    if fields.get("currency"):
        cfg.currency = str(fields["currency"]).upper()
    session.commit()
    return cfg


def load_state(session: Session, user_id: str) -> AppState:
    """Carga la foto de datos del usuario que usan los cálculos."""
    return AppState(
        user_id=user_id,
        config=get_or_create_config(session, user_id),
        clients=list_clients(session, user_id),
        units=list_units(session, user_id),
        workers=list_workers(session, user_id),
        extras=list_extras(session, user_id),
        services=list_services(session, user_id),
        payments=list_payments(session, user_id),
        invoices=list_invoices(session, user_id),
    )


# --- Clientes ---

CLIENT_FIELDS = ("name", "email", "phone", "address", "notes")


def add_client(session: Session, *, user_id: str, name: str, email: str | None = None, phone: str | None = None,
               address: str | None = None, notes: str | None = None) -> Client:
    if not (name or "").strip():
        raise ValidationError("El nombre del cliente es obligatorio.")
    c = Client(user_id=user_id, name=name.strip(), email=email, phone=phone, address=address, notes=notes)
    session.add(c)
    session.commit()
    session.refresh(c)
    return c


def list_clients(session: Session, user_id: str) -> list[Client]:
    return session.query(Client).filter(Client.user_id == user_id).order_by(Client.name.asc()).all()


def get_client_by_id(session: Session, client_id: int) -> Client | None:
    return session.get(Client, client_id)


def update_client(session: Session, client_id: int, **fields) -> bool:
    c = session.get(Client, client_id)
    if not c:
        return False
    _apply_fields(c, fields, CLIENT_FIELDS)
    session.commit()
    return True


def delete_client_by_id(session: Session, client_id: int) -> bool:
    c = session.get(Client, client_id)
    if not c:
        return False
    if session.query(Unit).filter(Unit.client_id == client_id).count():
        raise ValidationError(f"El cliente {c.name} tiene unidades asociadas.")
    if session.query(Invoice).filter(Invoice.client_id == client_id).count():
        raise ValidationError(f"El cliente {c.name} tiene facturas asociadas.")
    session.delete(c)
    session.commit()
    return True


# --- Tipos de unidad y unidades ---

UNIT_FIELDS = ("name", "code_name", "address", "price", "client_id", "unit_type_id")


def add_unit_type(session: Session, *, user_id: str, name: str) -> UnitType:
    t = UnitType(user_id=user_id, name=name)
    session.add(t)
    session.commit()
    session.refresh(t)
    return t


def list_unit_types(session: Session, user_id: str) -> list[UnitType]:
    return session.query(UnitType).filter(UnitType.user_id == user_id).order_by(UnitType.name.asc()).all()


def add_unit(session: Session, *, user_id: str, name: str, price: Decimal | float = 0, code_name: str | None = None,
             address: str | None = None, client_id: int | None = None, unit_type_id: int | None = None) -> Unit:
    if not (name or "").strip():
        raise ValidationError("El nombre de la unidad es obligatorio.")
    u = Unit(
        user_id=user_id,
        name=name.strip(),
        code_name=code_name,
        address=address,
        price=to_decimal(price),
        client_id=client_id,
        unit_type_id=unit_type_id,
    )
    session.add(u)
    session.commit()
    session.refresh(u)
    return u


def list_units(session: Session, user_id: str) -> list[Unit]:
    return session.query(Unit).filter(Unit.user_id == user_id).order_by(Unit.name.asc()).all()


def get_unit_by_id(session: Session, unit_id: int) -> Unit | None:
    return session.get(Unit, unit_id)


def update_unit(session: Session, unit_id: int, **fields) -> bool:
    """Actualiza la unidad. Los servicios existentes conservan su precio histórico."""
    u = session.get(Unit, unit_id)
    if not u:
        return False
    if "price" in fields:
        fields = {**fields, "price": to_decimal(fields["price"])}
    _apply_fields(u, fields, UNIT_FIELDS)
    session.commit()
    return True


def delete_unit_by_id(session: Session, unit_id: int) -> bool:
    u = session.get(Unit, unit_id)
    if not u:
        return False
    if session.query(Service).filter(Service.unit_id == unit_id).count():
        raise ValidationError(f"La unidad {u.name} tiene servicios asociados.")
    session.delete(u)
    session.commit()
    return True


# --- Trabajadores ---

WORKER_FIELDS = ("name", "dni", "phone", "email", "hourly_rate", "unit_rates", "cross_rates")


def add_worker(session: Session, *, user_id: str, name: str, hourly_rate: Decimal | float = 0,
               unit_rates: dict | None = None, cross_rates: dict | None = None, dni: str | None = None,
               phone: str | None = None, email: str | None = None) -> Worker:
    if not (name or "").strip():
        raise ValidationError("El nombre del trabajador es obligatorio.")
    w = Worker(
        user_id=user_id,
        name=name.strip(),
        dni=dni,
        phone=phone,
        email=email,
        hourly_rate=to_decimal(hourly_rate),
        unit_rates={str(k): v for k, v in (unit_rates or {}).items()},
        cross_rates=None,
    )
    if cross_rates:
        _set_tariffs(w, cross_rates)
    session.add(w)
    session.commit()
    session.refresh(w)
    return w


def list_workers(session: Session, user_id: str) -> list[Worker]:
    return session.query(Worker).filter(Worker.user_id == user_id).order_by(Worker.name.asc()).all()


def get_worker_by_id(session: Session, worker_id: int) -> Worker | None:
    return session.get(Worker, worker_id)


def update_worker(session: Session, worker_id: int, **fields) -> bool:
    w = session.get(Worker, worker_id)
    if not w:
        return False
    if "hourly_rate" in fields:
        fields = {**fields, "hourly_rate": to_decimal(fields["hourly_rate"])}
    cross = fields.pop("cross_rates", None)
    _apply_fields(w, fields, WORKER_FIELDS)
    if cross is not None:
        _set_tariffs(w, cross)
    session.commit()
    return True


def _set_tariffs(worker: Worker, cross_rates: dict) -> None:
    cleaned: dict[str, dict[str, float]] = {}
    for unit_id, per_type in cross_rates.items():
        rates = {}
        for service_type, value in (per_type or {}).items():
            try:
                ServiceType(service_type)
            except ValueError as e:
                raise ValidationError(f"Tipo de servicio inválido en tarifas: {service_type!r}") from e
            rates[service_type] = float(to_decimal(value))
        cleaned[str(unit_id)] = rates
    worker.cross_rates = cleaned
    # unit_rates queda como promedio de las tarifas cruzadas
    worker.unit_rates = {**(worker.unit_rates or {}), **legacy_unit_rates(cleaned)}


def set_worker_tariffs(session: Session, worker_id: int, cross_rates: dict) -> Worker:
    """Guarda las tarifas por (unidad, tipo) y recalcula la tarifa plana por unidad."""
    w = session.get(Worker, worker_id)
    if not w:
        raise ValidationError(f"Trabajador no encontrado: {worker_id}")
    _set_tariffs(w, cross_rates)
    session.commit()
    logger.info(f"Tarifas actualizadas para {w.name}: {len(cross_rates)} unidades")
    return w


def delete_worker_by_id(session: Session, worker_id: int) -> bool:
    w = session.get(Worker, worker_id)
    if not w:
        return False
    if session.query(Payment).filter(Payment.worker_id == worker_id).count():
        raise ValidationError(f"El trabajador {w.name} tiene pagos registrados.")
    session.delete(w)
    session.commit()
    return True


# --- Extras ---

def add_extra(session: Session, *, user_id: str, name: str, price: Decimal | float = 0,
              worker_pay: Decimal | float = 0, duration_hours: Decimal | float = 0) -> Extra:
    e = Extra(
        user_id=user_id,
        name=name,
        price=to_decimal(price),
        worker_pay=to_decimal(worker_pay),
        duration_hours=to_decimal(duration_hours),
    )
    session.add(e)
    session.commit()
    session.refresh(e)
    return e


def list_extras(session: Session, user_id: str) -> list[Extra]:
    return session.query(Extra).filter(Extra.user_id == user_id).order_by(Extra.name.asc()).all()


def delete_extra_by_id(session: Session, extra_id: int) -> bool:
    e = session.get(Extra, extra_id)
    if not e:
        return False
    session.delete(e)
    session.commit()
    return True


# --- Servicios ---

def list_services(session: Session, user_id: str) -> list[Service]:
    return (
        session.query(Service)
        .filter(Service.user_id == user_id)
        .order_by(Service.start_date.desc(), Service.id.desc())
        .all()
    )


def get_service_by_id(session: Session, service_id: int) -> Service | None:
    return session.get(Service, service_id)


def _normalize_extras(extras: Iterable | None) -> list[dict]:
    result = []
    for extra in extras or []:
        if isinstance(extra, Extra):
            result.append(extra.as_snapshot())
            continue
        result.append({
            "name": extra.get("name", ""),
            "price": float(to_decimal(extra.get("price"))),
            "worker_pay": float(to_decimal(extra.get("worker_pay"))),
            "duration_hours": float(to_decimal(extra.get("duration_hours"))),
        })
    return result


def save_service(session: Session, *, user_id: str, data: dict, service_id: int | None = None) -> Service:
    """Crea o actualiza un servicio.

    Valida unidad, trabajadores, horas y órdenes de trabajo; congela el precio
    de la unidad y calcula el costo. Al crear, genera la orden de trabajo si
    falta y sube el contador correspondiente.
    """
    state = load_state(session, user_id)
    existing = _require(session, Service, service_id, user_id, "Servicio") if service_id is not None else None

    def pick(key: str, default=None):
        if key in data:
            return data[key]
        return getattr(existing, key) if existing is not None else default

    try:
        service_type = ServiceType(pick("service_type", ServiceType.DEPARTURE_CLEAN.value)).value
    except ValueError as e:
        raise ValidationError(f"Tipo de servicio inválido: {data.get('service_type')!r}") from e

    unit = next((u for u in state.units if u.id == pick("unit_id")), None)
    if unit is None:
        raise ValidationError("Debe seleccionar una unidad.")

    worker_ids = [int(w) for w in (pick("worker_ids") or [])]
    if not worker_ids:
        raise ValidationError("Debe asignar al menos un trabajador.")

    start_date = parse_date(pick("start_date"))
    if start_date is None:
        raise ValidationError("La fecha de inicio es obligatoria.")
    execution_date = parse_date(pick("execution_date"))

    start_time = pick("start_time", "09:00")
    end_time = pick("end_time", "17:00")
    pay_by_hour = bool(pick("pay_by_hour", False))
    if pay_by_hour and hours_between(start_time, end_time) <= 0:
        raise ValidationError("La hora de fin debe ser posterior a la hora de inicio.")

    missing = workers_without_rate(worker_ids, unit.id, service_type, state.workers_by_id)
    if missing:
        raise ConfigurationError(
            f"Los siguientes trabajadores no tienen tarifa para {unit.name}: {', '.join(missing)}",
            workers=missing,
        )

    work_order = (pick("work_order") or "").strip() or None
    if work_order_prefix(service_type) is None:
        work_order = None
    elif work_order is None:
        work_order = next_work_order(service_type, state.services, state.config)
    work_order_pet = (pick("work_order_pet") or "").strip() or None
    check_work_order_unique(work_order, work_order_pet, state.services, exclude_id=service_id)

    has_pets = bool(pick("has_pets", False))
    deep_cleaning = bool(pick("deep_cleaning", False))
    if existing is not None and _is_service_locked(session, existing.id):
        changed = (
            service_type != existing.service_type
            or unit.id != existing.unit_id
            or has_pets != bool(existing.has_pets)
            or deep_cleaning != bool(existing.deep_cleaning)
        )
        if changed:
            raise ValidationError(
                f"El servicio {existing.work_order or existing.id} ya fue pagado o facturado; "
                "no se puede cambiar tipo, unidad, mascotas ni limpieza profunda."
            )
    cost = price_service(
        service_type=service_type,
        unit=unit,
        has_pets=has_pets,
        deep_cleaning=deep_cleaning,
        existing_service=existing,
    )

    service = existing or Service(user_id=user_id)
    service.unit_id = unit.id
    service.worker_ids = worker_ids
    service.start_date = start_date
    service.execution_date = execution_date
    service.start_time = start_time
    service.end_time = end_time
    service.service_type = service_type
    service.pay_by_hour = pay_by_hour
    service.has_pets = has_pets
    service.deep_cleaning = deep_cleaning
    service.work_order = work_order
    service.work_order_pet = work_order_pet
    service.historical_unit_price = cost.historical_unit_price
    service.total_cost = cost.total_cost
    service.extras = _normalize_extras(pick("extras", []))
    service.notes = pick("notes")
    if existing is None:
        service.payments = []
        session.add(service)
        advance_work_order_counter(state.config, service_type, work_order)
    session.commit()
    session.refresh(service)
    logger.info(f"Servicio {'actualizado' if existing else 'creado'}: id={service.id} tipo={service_type} orden={work_order} total={service.total_cost}")
    return service


def _is_service_locked(session: Session, service_id: int) -> bool:
    paid = session.query(PaymentLine).filter(PaymentLine.service_id == service_id).count()
    invoiced = session.query(InvoiceLine).filter(InvoiceLine.service_id == service_id).count()
    return bool(paid or invoiced)


def delete_service_by_id(session: Session, service_id: int) -> bool:
    s = session.get(Service, service_id)
    if not s:
        return False
    if _is_service_locked(session, service_id):
        raise ValidationError(f"El servicio {s.work_order or s.id} ya fue pagado o facturado.")
    session.delete(s)
    session.commit()
    return True


# --- Pagos ---

def list_payments(session: Session, user_id: str, *, date_from: date | str | None = None,
                  date_to: date | str | None = None) -> list[Payment]:
    q = (
        session.query(Payment)
        .options(selectinload(Payment.lines))
        .filter(Payment.user_id == user_id)
    )
    if date_from:
        q = q.filter(Payment.payment_date >= parse_date(date_from))
    if date_to:
        q = q.filter(Payment.payment_date <= parse_date(date_to))
    return q.order_by(Payment.payment_date.desc(), Payment.id.desc()).all()


def get_payment_by_id(session: Session, payment_id: int) -> Payment | None:
    return session.get(Payment, payment_id)


def payment_candidates(session: Session, *, user_id: str, worker_id: int, date_from, date_to,
                       editing_payment_id: int | None = None) -> list[Service]:
    state = load_state(session, user_id)
    return build_payment_candidates(
        worker_id,
        (date_from, date_to),
        state.services,
        state.payments,
        is_editing=editing_payment_id is not None,
        editing_payment_id=editing_payment_id,
    )


def save_payment(
    session: Session,
    *,
    user_id: str,
    worker_id: int | None,
    service_ids: Iterable[int],
    date_from,
    date_to,
    payment_date=None,
    operation_number: str | None = None,
    notes: str | None = None,
    payment_id: int | None = None,
) -> Payment:
    """Registra (o edita) el pago de un trabajador por un conjunto de servicios.

    Los montos se congelan por servicio y cada servicio recibe su registro de
    pago. La restricción única (servicio, trabajador) impide pagar dos veces
    el mismo servicio aunque dos operaciones compitan.
    """
    state = load_state(session, user_id)
    existing = _require(session, Payment, payment_id, user_id, "Pago") if payment_id is not None else None
    if not worker_id:
        raise ValidationError("Debe seleccionar un trabajador.")
    _require(session, Worker, worker_id, user_id, "Trabajador")

    requested = [int(s) for s in service_ids]
    candidates = build_payment_candidates(
        worker_id,
        (date_from, date_to),
        state.services,
        state.payments,
        is_editing=existing is not None,
        editing_payment_id=payment_id,
    )
    available = {s.id: s for s in candidates}
    unavailable = [str(sid) for sid in requested if sid not in available]
    if unavailable:
        raise ValidationError(
            f"Servicios no disponibles para este pago: {', '.join(unavailable)}",
            details=unavailable,
        )
    selected = [available[sid] for sid in requested]
    draft = prepare_payment(
        worker_id=worker_id,
        dates=(date_from, date_to),
        selected=selected,
        workers=state.workers_by_id,
        units=state.units_by_id,
        operation_number=operation_number,
    )

    try:
        if existing is not None:
            old_services = state.services_by_ids(existing.service_ids)
            remove_payment_from_services(old_services, existing.worker_id)
            existing.lines = []
            session.flush()
            payment = existing
        else:
            payment = Payment(user_id=user_id)
            session.add(payment)
        payment.worker_id = worker_id
        payment.total_amount = draft.total_amount
        payment.payment_date = parse_date(payment_date) or date.today()
        payment.operation_number = operation_number.strip()
        payment.notes = notes
        payment.lines = [
            PaymentLine(service_id=sid, worker_id=worker_id, amount=amount)
            for sid, amount in draft.lines
        ]
        apply_payment_to_services(selected, worker_id, dict(draft.lines))
        session.commit()
    except IntegrityError as e:
        session.rollback()
        logger.warning(f"Pago rechazado por servicio ya pagado (trabajador {worker_id}): {e}")
        raise ValidationError("Alguno de los servicios ya fue pagado a este trabajador.") from e

    logger.info(f"Pago {'actualizado' if existing else 'registrado'}: id={payment.id} trabajador={worker_id} total={payment.total_amount} servicios={len(draft.lines)}")
    return payment


def delete_payment_by_id(session: Session, payment_id: int) -> bool:
    """Elimina el pago y libera sus servicios para un pago futuro."""
    p = session.get(Payment, payment_id)
    if not p:
        return False
    services = session.query(Service).filter(Service.id.in_(p.service_ids)).all()
    remove_payment_from_services(services, p.worker_id)
    session.delete(p)
    session.commit()
    return True


# --- Facturas ---

def list_invoices(session: Session, user_id: str) -> list[Invoice]:
    return (
        session.query(Invoice)
        .options(selectinload(Invoice.lines))
        .filter(Invoice.user_id == user_id)
        .order_by(Invoice.issue_date.desc(), Invoice.id.desc())
        .all()
    )


def get_invoice_by_id(session: Session, invoice_id: int) -> Invoice | None:
    return session.get(Invoice, invoice_id)


def invoice_candidates(session: Session, *, user_id: str, client_id: int | None = None,
                       editing_invoice_id: int | None = None) -> list[Service]:
    state = load_state(session, user_id)
    return build_invoice_candidates(
        state.services,
        state.invoices,
        editing_invoice_id,
        client_id=client_id,
        units=state.units_by_id,
    )


def suggest_invoice_number(session: Session, user_id: str) -> str:
    state = load_state(session, user_id)
    return next_invoice_number(state.config, state.invoices)


def save_invoice(
    session: Session,
    *,
    user_id: str,
    client_id: int | None,
    service_ids: Iterable[int],
    invoice_number: str | None = None,
    issue_date=None,
    due_date=None,
    notes: str | None = None,
    invoice_id: int | None = None,
) -> Invoice:
    """Crea o edita una factura de servicios Touch Up.

    Al crear, el número por defecto es el siguiente correlativo y el contador
    de facturas sube hasta el número usado. Al editar se conserva el estado.
    """
    state = load_state(session, user_id)
    existing = _require(session, Invoice, invoice_id, user_id, "Factura") if invoice_id is not None else None
    requested = [int(s) for s in service_ids]
    if invoice_number is None:
        invoice_number = existing.invoice_number if existing else next_invoice_number(state.config, state.invoices)
    validate_invoice_selection(client_id, requested, invoice_number)
    invoice_number = invoice_number.strip()
    _require(session, Client, client_id, user_id, "Cliente")
    check_invoice_number_unique(invoice_number, state.invoices, exclude_id=invoice_id)

    candidates = {s.id: s for s in build_invoice_candidates(state.services, state.invoices, invoice_id)}
    unavailable = [str(sid) for sid in requested if sid not in candidates]
    if unavailable:
        raise ValidationError(
            f"Servicios ya facturados o no facturables: {', '.join(unavailable)}",
            details=unavailable,
        )
    selected = [candidates[sid] for sid in requested]
    total = compute_invoice_total(selected)

    issue = parse_date(issue_date) or (existing.issue_date if existing else date.today())
    due = parse_date(due_date) or default_due_date(issue, int(get_setting("invoice_due_days", 30)))
    if due < issue:
        raise ValidationError("La fecha de vencimiento no puede ser anterior a la fecha de emisión.")

    try:
        if existing is not None:
            existing.lines = []
            session.flush()
            invoice = existing
        else:
            invoice = Invoice(user_id=user_id, status=InvoiceStatus.DRAFT.value)
            session.add(invoice)
        invoice.client_id = client_id
        invoice.invoice_number = invoice_number
        invoice.total_amount = total
        invoice.issue_date = issue
        invoice.due_date = due
        invoice.notes = notes
        invoice.lines = [InvoiceLine(service_id=s.id, amount=to_decimal(s.total_cost)) for s in selected]
        if existing is None:
            advance_invoice_counter(state.config, invoice_number)
        session.commit()
    except IntegrityError as e:
        session.rollback()
        logger.warning(f"Factura {invoice_number} rechazada: {e}")
        raise ValidationError("Algún servicio ya está facturado o el número de factura está repetido.") from e

    logger.info(f"Factura {'actualizada' if existing else 'creada'}: {invoice.invoice_number} total={invoice.total_amount}")
    return invoice


def send_invoice(session: Session, invoice_id: int) -> tuple[Invoice, str, str]:
    """Prepara el correo de la factura y la marca como enviada.

    Devuelve ``(factura, asunto, cuerpo)``. Reenviar una factura ya enviada
    no cambia su estado; una factura pagada no se puede enviar.
    """
    inv = session.get(Invoice, invoice_id)
    if not inv:
        raise ValidationError(f"Factura no encontrada: {invoice_id}")
    client = session.get(Client, inv.client_id)
    subject, body = compose_invoice_email(inv, client)
    if inv.status != InvoiceStatus.SENT.value:
        transition_status(inv, InvoiceStatus.SENT.value)
    session.commit()
    logger.info(f"Factura {inv.invoice_number} enviada a {client.email}")
    return inv, subject, body


def mark_invoice_paid(session: Session, invoice_id: int) -> Invoice:
    inv = session.get(Invoice, invoice_id)
    if not inv:
        raise ValidationError(f"Factura no encontrada: {invoice_id}")
    transition_status(inv, InvoiceStatus.PAID.value)
    session.commit()
    logger.info(f"Factura {inv.invoice_number} marcada como pagada")
    return inv


def delete_invoice_by_id(session: Session, invoice_id: int) -> bool:
    inv = session.get(Invoice, invoice_id)
    if not inv:
        return False
    session.delete(inv)
    session.commit()
    return True


# --- Importación desde PDF ---

@dataclass
class ImportResult:
    created: list[Service] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def import_extracted_services(session: Session, *, user_id: str, rows: Iterable[ExtractedService]) -> ImportResult:
    """Crea servicios a partir de las filas extraídas de un PDF.

    Las filas sin unidad reconocible o con orden de trabajo repetida se
    reportan como error y no detienen la importación. Los servicios se crean
    sin trabajadores, por horas, con el horario por defecto.
    """
    state = load_state(session, user_id)
    result = ImportResult()
    known = list(state.services)
    for row in rows:
        match = match_unit(row.unit_name, state.units)
        if not match.is_valid:
            result.errors.append(match.error or f"Unidad no encontrada: {row.unit_name}")
            continue
        unit = state.units_by_id[match.unit_id]
        try:
            service_type = ServiceType(row.service_type).value
        except ValueError:
            service_type = ServiceType.DEPARTURE_CLEAN.value
        try:
            scheduled = parse_date(row.scheduled_date) or date.today()
        except ValidationError as e:
            result.errors.append(f"{row.unit_name}: {e}")
            continue

        work_order = (row.work_order or "").strip() or None
        if work_order is None and work_order_prefix(service_type) is not None:
            work_order = next_work_order(service_type, known, state.config)
        try:
            check_work_order_unique(work_order, None, known)
        except ValidationError as e:
            result.errors.append(str(e))
            continue

        cost = price_service(service_type=service_type, unit=unit, has_pets=False, deep_cleaning=False)
        service = Service(
            user_id=user_id,
            unit_id=unit.id,
            worker_ids=[],
            start_date=scheduled,
            execution_date=scheduled,
            start_time=get_setting("import_start_time", "09:00"),
            end_time=get_setting("import_end_time", "17:00"),
            pay_by_hour=True,
            service_type=service_type,
            has_pets=False,
            deep_cleaning=False,
            work_order=work_order,
            work_order_pet=None,
            historical_unit_price=cost.historical_unit_price,
            total_cost=cost.total_cost,
            extras=[],
            payments=[],
        )
        session.add(service)
        advance_work_order_counter(state.config, service_type, work_order)
        known.append(service)
        result.created.append(service)

    session.commit()
    logger.info(f"Importación completada: {len(result.created)} servicios creados, {len(result.errors)} errores")
    return result


def services_for_invoice(session: Session, invoice: Invoice) -> list[Service]:
    ids = invoice.service_ids
    if not ids:
        return []
    services = session.query(Service).filter(Service.id.in_(ids)).all()
    order = {sid: i for i, sid in enumerate(ids)}
    return sorted(services, key=lambda s: order[s.id])
