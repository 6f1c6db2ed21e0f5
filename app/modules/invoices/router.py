from fastapi import APIRouter, status, Body
from uuid import UUID
from typing import Optional

from app.dependencies.dbDependecies import db_dependency
from app.dependencies.businessDependencies import BusinessId
from app.modules.invoices.service import InvoiceService
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceUpdate, InvoiceFinalize, InvoiceResponse, DeleteResponse
)

# Router principal del módulo de facturas
router = APIRouter(prefix="/invoices", tags=["Invoices"])


@router.post("/", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
def create_invoice(
    invoice_data: InvoiceCreate,
    db: db_dependency,
    business_id: BusinessId
):
    """
    Crear una factura en borrador

    Los ítems son opcionales; si se envían, los totales se calculan de inmediato.
    """
    service = InvoiceService(db)
    return service.create_draft(business_id, invoice_data)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(
    invoice_id: UUID,
    db: db_dependency,
    business_id: BusinessId
):
    """Obtener una factura con sus ítems"""
    service = InvoiceService(db)
    return service.get_invoice(business_id, invoice_id)


@router.patch("/{invoice_id}", response_model=InvoiceResponse)
def update_invoice(
    invoice_id: UUID,
    invoice_update: InvoiceUpdate,
    db: db_dependency,
    business_id: BusinessId
):
    """
    Actualizar una factura (solo si está en estado draft)

    Si se envían ítems, reemplazan a todos los existentes.
    """
    service = InvoiceService(db)
    return service.update_draft(business_id, invoice_id, invoice_update)


@router.delete("/{invoice_id}", response_model=DeleteResponse)
def delete_invoice(
    invoice_id: UUID,
    db: db_dependency,
    business_id: BusinessId
):
    """Eliminar una factura en borrador"""
    service = InvoiceService(db)
    service.delete_draft(business_id, invoice_id)
    return DeleteResponse()


@router.post("/{invoice_id}/finalize", response_model=InvoiceResponse)
def finalize_invoice(
    invoice_id: UUID,
    db: db_dependency,
    business_id: BusinessId,
    finalize_data: Optional[InvoiceFinalize] = Body(None)
):
    """
    Finalizar una factura (draft → finalized)

    Asigna el número de documento, recalcula los montos y copia los datos del
    cliente. Una vez finalizada ya no se puede modificar ni eliminar.
    """
    service = InvoiceService(db)
    invoice_date = finalize_data.invoice_date if finalize_data else None
    return service.finalize(business_id, invoice_id, invoice_date)
