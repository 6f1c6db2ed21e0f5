"""
Errores tipados de la aplicación

Cada condición esperada (recurso inexistente, factura no editable, precondición
de finalización incumplida) tiene su propia clase con un `code` estable, de modo
que la capa HTTP la traduce sin comparar mensajes.
"""
from typing import Any, Optional


class AppError(Exception):
    """Error esperado y visible para el usuario"""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "Error interno"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"error": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"
    default_message = "Recurso no encontrado"


class UnprocessableEntityError(AppError):
    status_code = 422
    code = "unprocessable_entity"
    default_message = "La operación no puede procesarse"


class NotDraftError(UnprocessableEntityError):
    code = "not_draft"
    default_message = "Solo se pueden modificar facturas en estado borrador"


class MissingCustomerError(UnprocessableEntityError):
    code = "missing_customer"
    default_message = "La factura no tiene cliente asignado"


class CustomerNotFoundError(UnprocessableEntityError):
    code = "customer_not_found"
    default_message = "El cliente de la factura no existe"


class CustomerInactiveError(UnprocessableEntityError):
    code = "customer_inactive"
    default_message = "El cliente de la factura está inactivo"


class NoLineItemsError(UnprocessableEntityError):
    code = "no_line_items"
    default_message = "La factura debe tener al menos un ítem"


class InvalidInvoiceDateError(UnprocessableEntityError):
    code = "invalid_invoice_date"
    default_message = "La fecha de la factura está demasiado lejos en el futuro"


class InvalidVatRateError(UnprocessableEntityError):
    code = "invalid_vat_rate"
    default_message = "Tasa de IVA no permitida para este negocio"
