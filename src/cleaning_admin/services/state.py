from __future__ import annotations

from dataclasses import dataclass, field

from ..models import Client, Extra, Invoice, Payment, Service, Unit, UserConfig, Worker


@dataclass(slots=True)
class AppState:
    """Foto de los datos de un usuario que reciben los cálculos de pagos y facturas.

    Se arma una vez por operación (ver ``repository.load_state``); las
    funciones de cálculo la leen y no hacen consultas propias.
    """

    user_id: str
    config: UserConfig | None = None
    clients: list[Client] = field(default_factory=list)
    units: list[Unit] = field(default_factory=list)
    workers: list[Worker] = field(default_factory=list)
    extras: list[Extra] = field(default_factory=list)
    services: list[Service] = field(default_factory=list)
    payments: list[Payment] = field(default_factory=list)
    invoices: list[Invoice] = field(default_factory=list)

    @property
    def workers_by_id(self) -> dict[int, Worker]:
        return {w.id: w for w in self.workers}

    @property
    def units_by_id(self) -> dict[int, Unit]:
        return {u.id: u for u in self.units}

    @property
    def clients_by_id(self) -> dict[int, Client]:
        return {c.id: c for c in self.clients}

    def services_by_ids(self, service_ids) -> list[Service]:
        wanted = set(service_ids)
        return [s for s in self.services if s.id in wanted]
