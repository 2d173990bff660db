from __future__ import annotations


class ValidationError(ValueError):
    """Error corregible por el usuario (selección vacía, duplicados, montos en cero...).

    ``details`` lleva los elementos afectados (p. ej. nombres de unidades) para
    que la interfaz pueda listarlos.
    """

    def __init__(self, message: str, details: list[str] | None = None):
        super().__init__(message)
        self.details = list(details or [])


class ConfigurationError(ValidationError):
    """Trabajadores sin tarifa utilizable para la unidad del servicio."""

    def __init__(self, message: str, workers: list[str] | None = None):
        super().__init__(message, details=workers)
        self.workers = list(workers or [])


class ExternalServiceError(RuntimeError):
    """Fallo del servicio externo de extracción de PDFs."""

    def __init__(self, message: str, *, transient: bool = False, status_code: int | None = None):
        super().__init__(message)
        self.transient = transient
        self.status_code = status_code
