from sqlalchemy.orm import Session
from typing import List, Optional, Dict, Any
from uuid import UUID
from datetime import date, datetime, timedelta, timezone
import logging

from app.core.config import settings
from app.common.exceptions import (
    AppError, NotFoundError, NotDraftError, MissingCustomerError, CustomerNotFoundError,
    CustomerInactiveError, NoLineItemsError, InvalidInvoiceDateError, InvalidVatRateError
)
from app.modules.invoices.models import Invoice, InvoiceItem, InvoiceStatus, DocumentType
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceUpdate, InvoiceOut, InvoiceItemOut, InvoiceResponse
)
from app.modules.invoices.crud import InvoiceCrud
from app.modules.invoices.sequences import assign_invoice_number, document_type_to_sequence_group
from app.modules.taxes.calculator import calculate_item, calculate_invoice_totals
from app.modules.businesses.crud import BusinessCRUD
from app.modules.businesses.models import Business
from app.modules.customers.crud import CustomerCRUD

logger = logging.getLogger(__name__)


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def build_item_row(item) -> Dict[str, Any]:
    """Fila de ítem con montos recalculados desde sus campos crudos"""
    line = calculate_item(item)
    return {
        "position": item.position,
        "description": item.description,
        "catalog_number": item.catalog_number,
        "quantity": item.quantity,
        "unit_price_agora": item.unit_price_agora,
        "discount_percent": item.discount_percent if item.discount_percent is not None else 0,
        "vat_rate_basis_points": item.vat_rate_basis_points,
        "line_total_agora": line.line_total_agora,
        "vat_amount_agora": line.vat_amount_agora,
        "line_total_incl_vat_agora": line.line_total_incl_vat_agora,
    }


class InvoiceService:
    def __init__(self, db: Session):
        self.db = db
        self.crud = InvoiceCrud(db)

    def _build_response(self, invoice: Invoice, items: List[InvoiceItem]) -> InvoiceResponse:
        return InvoiceResponse(
            invoice=InvoiceOut.model_validate(invoice),
            items=[InvoiceItemOut.model_validate(item) for item in items]
        )

    def _get_draft_for_update(self, invoice_id: UUID, business_id: UUID) -> Invoice:
        """Factura bloqueada para esta transacción; debe existir y ser borrador"""
        invoice = self.crud.find_invoice_by_id(invoice_id, business_id, for_update=True)
        if invoice is None:
            raise NotFoundError("Factura no encontrada")
        if invoice.status != InvoiceStatus.DRAFT:
            raise NotDraftError()

        # Escritura condicional: serializa con otra transacción que ya leyó el mismo
        # borrador donde FOR UPDATE no bloquea (SQLite)
        if not self.crud.touch_draft(invoice_id, business_id):
            raise NotDraftError()
        return self.crud.find_invoice_by_id(invoice_id, business_id, for_update=True)

    def create_draft(self, business_id: UUID, invoice_data: InvoiceCreate) -> InvoiceResponse:
        """Crear factura en borrador"""
        items = invoice_data.items or []

        values = {
            "business_id": business_id,
            "document_type": DocumentType(invoice_data.document_type.value),
            "customer_id": invoice_data.customer_id,
            "invoice_date": invoice_data.invoice_date or _utc_today(),
            "due_date": invoice_data.due_date,
            "notes": invoice_data.notes,
            "internal_notes": invoice_data.internal_notes,
            "status": InvoiceStatus.DRAFT,
            "currency": settings.DEFAULT_CURRENCY,
        }
        if items:
            values.update(calculate_invoice_totals(items).model_dump())

        try:
            invoice = self.crud.insert_invoice(values)
            item_records = self.crud.insert_items(invoice.id, [build_item_row(item) for item in items])
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating draft for business {business_id}: {e}", exc_info=True)
            raise

        logger.info(f"Draft invoice {invoice.id} created for business {business_id} with {len(item_records)} items")
        return self._build_response(invoice, item_records)

    def get_invoice(self, business_id: UUID, invoice_id: UUID) -> InvoiceResponse:
        """Obtener factura con sus ítems"""
        invoice = self.crud.find_invoice_by_id(invoice_id, business_id)
        if invoice is None:
            raise NotFoundError("Factura no encontrada")

        items = self.crud.find_items_by_invoice_id(invoice.id)
        return self._build_response(invoice, items)

    def update_draft(self, business_id: UUID, invoice_id: UUID, invoice_update: InvoiceUpdate) -> InvoiceResponse:
        """
        Actualizar un borrador

        Solo se aplican los campos enviados. Si vienen ítems, se reemplazan
        todos y se recalculan los totales en la misma transacción.
        """
        updates = invoice_update.model_dump(exclude_unset=True, exclude={"items"})
        if updates.get("document_type") is not None:
            updates["document_type"] = DocumentType(updates["document_type"].value)

        try:
            invoice = self._get_draft_for_update(invoice_id, business_id)

            if "items" in invoice_update.model_fields_set:
                new_items = invoice_update.items or []
                item_records = self.crud.replace_items(invoice.id, [build_item_row(item) for item in new_items])
                # Lista vacía → totales en cero
                updates.update(calculate_invoice_totals(new_items).model_dump())
            else:
                item_records = None

            invoice = self.crud.update_invoice(invoice_id, business_id, updates)
            if invoice is None:
                raise NotFoundError("Factura no encontrada")

            if item_records is None:
                item_records = self.crud.find_items_by_invoice_id(invoice.id)

            self.db.commit()

        except AppError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating draft {invoice_id}: {e}", exc_info=True)
            raise

        return self._build_response(invoice, item_records)

    def delete_draft(self, business_id: UUID, invoice_id: UUID) -> None:
        """Eliminar un borrador con sus ítems"""
        try:
            self._get_draft_for_update(invoice_id, business_id)
            self.crud.delete_invoice(invoice_id, business_id)
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error deleting draft {invoice_id}: {e}", exc_info=True)
            raise

        logger.info(f"Draft invoice {invoice_id} deleted for business {business_id}")

    def _validate_vat_rates(self, business: Business, items: List[InvoiceItem]) -> None:
        if business.is_exempt_dealer:
            allowed = frozenset({0})
        else:
            allowed = settings.allowed_vat_rates

        for item in items:
            if item.vat_rate_basis_points not in allowed:
                raise InvalidVatRateError(details={
                    "position": item.position,
                    "vat_rate_basis_points": item.vat_rate_basis_points
                })

    def finalize(self, business_id: UUID, invoice_id: UUID, invoice_date: Optional[date] = None) -> InvoiceResponse:
        """
        Finalizar una factura: draft → finalized

        Todo ocurre en una sola transacción que empieza bloqueando la fila de la
        factura, de modo que las precondiciones se validan sobre el mismo estado
        que se confirma. Un error de precondición hace rollback sin haber
        escrito nada; un error en los efectos revierte todo, incluido el
        incremento del contador.

        Args:
            business_id: Negocio dueño de la factura
            invoice_id: Factura a finalizar
            invoice_date: Fecha que reemplaza la guardada (opcional)

        Returns:
            InvoiceResponse con la factura finalizada y sus ítems recalculados
        """
        try:
            # 1. Existe y es borrador (bloqueo de fila hasta el commit)
            invoice = self._get_draft_for_update(invoice_id, business_id)

            # 2-3. Cliente asignado, existente y activo
            if invoice.customer_id is None:
                raise MissingCustomerError()
            customer = CustomerCRUD.get_by_id(self.db, invoice.customer_id, business_id, lock=True)
            if customer is None:
                raise CustomerNotFoundError()
            if not customer.is_active:
                raise CustomerInactiveError()

            # 4. Al menos un ítem
            items = self.crud.find_items_by_invoice_id(invoice.id)
            if not items:
                raise NoLineItemsError()

            # 5. Fecha efectiva no más de N días en el futuro (fechas de calendario UTC)
            effective_date = invoice_date or invoice.invoice_date
            max_date = _utc_today() + timedelta(days=settings.INVOICE_MAX_FUTURE_DAYS)
            if effective_date > max_date:
                raise InvalidInvoiceDateError(details={
                    "invoice_date": effective_date.isoformat(),
                    "max_date": max_date.isoformat()
                })

            # 6. Tasas de IVA según el tipo de negocio
            business = BusinessCRUD.get_by_id(self.db, business_id)
            if business is None:
                raise NotFoundError("Negocio no encontrado")
            self._validate_vat_rates(business, items)

            # Efectos
            assigned = assign_invoice_number(
                self.db,
                business_id,
                invoice.document_type,
                business.invoice_number_prefix or "",
                business.starting_invoice_number
            )

            # Recalcular desde los campos crudos; nunca confiar en los montos cacheados
            rows = [build_item_row(item) for item in items]
            totals = calculate_invoice_totals(items)
            item_records = self.crud.replace_items(invoice.id, rows)

            updates = {
                "status": InvoiceStatus.FINALIZED,
                "sequence_group": document_type_to_sequence_group(invoice.document_type),
                "sequence_number": assigned.sequence_number,
                "full_number": assigned.full_number,
                "invoice_date": effective_date,
                "issued_at": datetime.now(timezone.utc),
                "customer_name": customer.name,
                "customer_tax_id": customer.tax_id,
                "customer_address": customer.snapshot_address(),
                "customer_email": customer.email,
                **totals.model_dump(),
            }
            invoice = self.crud.update_invoice(invoice_id, business_id, updates)
            if invoice is None:
                raise NotFoundError("Factura no encontrada")

            self.db.commit()

        except AppError as e:
            self.db.rollback()
            logger.info(f"Finalization of invoice {invoice_id} rejected: {e.code}")
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error finalizing invoice {invoice_id}: {e}", exc_info=True)
            raise

        logger.info(f"Invoice {invoice_id} finalized as {assigned.full_number} for business {business_id}")
        return self._build_response(invoice, item_records)
