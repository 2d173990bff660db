from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base declarativa común para todos los modelos."""
    pass


class ServiceType(str, Enum):
    DEPARTURE_CLEAN = "Departure Clean"
    PREARRIVAL_SERVICE = "Prearrival Service"
    TOUCH_UP = "Touch Up"
    LANDSCAPING = "Landscaping"
    TERCEROS = "Terceros"


# Tipos que sólo pagan/cobran recargos y extras (nunca el precio de la unidad)
EXTRAS_ONLY_TYPES = frozenset({
    ServiceType.TOUCH_UP.value,
    ServiceType.LANDSCAPING.value,
    ServiceType.TERCEROS.value,
})

# Único tipo facturable al cliente
INVOICEABLE_TYPE = ServiceType.TOUCH_UP.value


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"


# --- Catálogos ---

class UnitType(Base):
    __tablename__ = "unit_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:  # pragma: no cover
        return f"UnitType(id={self.id!r}, name={self.name!r})"


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(200))
    phone: Mapped[str | None] = mapped_column(String(50))
    address: Mapped[str | None] = mapped_column(String(300))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    units: Mapped[List["Unit"]] = relationship("Unit", back_populates="client")

    def __repr__(self) -> str:  # pragma: no cover
        return f"Client(id={self.id!r}, name={self.name!r})"


class Unit(Base):
    __tablename__ = "units"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code_name: Mapped[str | None] = mapped_column(String(120))  # nombre corto usado en las órdenes de trabajo
    address: Mapped[str | None] = mapped_column(String(300))
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    client_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("clients.id"))
    unit_type_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("unit_types.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    client: Mapped["Client | None"] = relationship("Client", back_populates="units")

    def __repr__(self) -> str:  # pragma: no cover
        return f"Unit(id={self.id!r}, name={self.name!r}, price={self.price!r})"


class Worker(Base):
    __tablename__ = "workers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    dni: Mapped[str | None] = mapped_column(String(50))
    phone: Mapped[str | None] = mapped_column(String(50))
    email: Mapped[str | None] = mapped_column(String(200))
    hourly_rate: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    # {"<unit_id>": tarifa}; claves str porque se guarda como JSON
    unit_rates: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    # {"<unit_id>": {"<service_type>": tarifa}}
    cross_rates: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:  # pragma: no cover
        return f"Worker(id={self.id!r}, name={self.name!r})"


class Extra(Base):
    """Catálogo de extras. Los servicios guardan una copia en ``Service.extras``."""

    __tablename__ = "extras"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    worker_pay: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    duration_hours: Mapped[Decimal] = mapped_column(Numeric(6, 2), default=Decimal("0.00"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    def as_snapshot(self) -> dict:
        return {
            "name": self.name,
            "price": float(self.price or 0),
            "worker_pay": float(self.worker_pay or 0),
            "duration_hours": float(self.duration_hours or 0),
        }


# --- Servicios ---

class Service(Base):
    __tablename__ = "services"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    unit_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("units.id"))
    worker_ids: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    execution_date: Mapped[date | None] = mapped_column(Date)
    start_time: Mapped[str] = mapped_column(String(5), default="09:00", nullable=False)  # HH:MM
    end_time: Mapped[str] = mapped_column(String(5), default="17:00", nullable=False)  # HH:MM
    service_type: Mapped[str] = mapped_column(String(40), default=ServiceType.DEPARTURE_CLEAN.value, nullable=False)
    pay_by_hour: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_pets: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deep_cleaning: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    work_order: Mapped[str | None] = mapped_column(String(50))
    work_order_pet: Mapped[str | None] = mapped_column(String(50))
    historical_unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    extras: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    # [{"service_id", "worker_id", "amount", "is_paid"}]
    payments: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def effective_date(self) -> date:
        return self.execution_date or self.start_date

    def __repr__(self) -> str:  # pragma: no cover
        return f"Service(id={self.id!r}, type={self.service_type!r}, work_order={self.work_order!r})"


# --- Pagos a trabajadores ---

class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    worker_id: Mapped[int] = mapped_column(Integer, ForeignKey("workers.id"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    operation_number: Mapped[str | None] = mapped_column(String(120))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    lines: Mapped[List["PaymentLine"]] = relationship(
        "PaymentLine", back_populates="payment", cascade="all, delete-orphan"
    )

    @property
    def service_ids(self) -> list[int]:
        return [line.service_id for line in self.lines]

    def __repr__(self) -> str:  # pragma: no cover
        return f"Payment(id={self.id!r}, worker_id={self.worker_id!r}, total={self.total_amount!r})"


class PaymentLine(Base):
    """Servicio cubierto por un pago. Un servicio se paga una sola vez por trabajador."""

    __tablename__ = "payment_lines"
    __table_args__ = (UniqueConstraint("service_id", "worker_id", name="uq_payment_line_service_worker"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    payment_id: Mapped[int] = mapped_column(Integer, ForeignKey("payments.id"), nullable=False)
    service_id: Mapped[int] = mapped_column(Integer, ForeignKey("services.id"), nullable=False)
    worker_id: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    payment: Mapped["Payment"] = relationship("Payment", back_populates="lines")


# --- Facturas ---

class Invoice(Base):
    __tablename__ = "invoices"
    __table_args__ = (UniqueConstraint("user_id", "invoice_number", name="uq_invoice_user_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    client_id: Mapped[int] = mapped_column(Integer, ForeignKey("clients.id"), nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=InvoiceStatus.DRAFT.value, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    lines: Mapped[List["InvoiceLine"]] = relationship(
        "InvoiceLine", back_populates="invoice", cascade="all, delete-orphan"
    )

    @property
    def service_ids(self) -> list[int]:
        return [line.service_id for line in self.lines]

    def __repr__(self) -> str:  # pragma: no cover
        return f"Invoice(id={self.id!r}, number={self.invoice_number!r}, status={self.status!r})"


class InvoiceLine(Base):
    """Servicio facturado. Un servicio pertenece como máximo a una factura."""

    __tablename__ = "invoice_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_id: Mapped[int] = mapped_column(Integer, ForeignKey("invoices.id"), nullable=False)
    service_id: Mapped[int] = mapped_column(Integer, ForeignKey("services.id"), nullable=False, unique=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="lines")


# --- Configuración por usuario ---

class UserConfig(Base):
    __tablename__ = "user_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    last_touch_up_number: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_landscaping_number: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_terceros_number: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_invoice_number: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), default="USD", nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:  # pragma: no cover
        return f"UserConfig(user_id={self.user_id!r}, invoice={self.last_invoice_number!r})"
