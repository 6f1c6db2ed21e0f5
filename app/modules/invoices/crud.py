"""
CRUD operations para facturas y sus ítems

Plumbing sin reglas de negocio: no valida borradores (eso es del
InvoiceService); solo touch_draft filtra por status. Todo acceso a una
factura va filtrado por (invoice_id, business_id), así que una factura de
otro negocio simplemente no existe para quien consulta.

Nada aquí hace commit: el llamador controla la transacción.
"""

from sqlalchemy.orm import Session
from sqlalchemy import delete, update, func
from typing import List, Optional, Dict, Any, Iterable
from uuid import UUID

from app.modules.invoices.models import Invoice, InvoiceItem, InvoiceStatus


class InvoiceCrud:
    """Operaciones CRUD para facturas e ítems"""

    def __init__(self, db: Session):
        self.db = db

    def insert_invoice(self, values: Dict[str, Any]) -> Invoice:
        """Crear factura"""
        invoice = Invoice(**values)
        self.db.add(invoice)
        self.db.flush()
        return invoice

    def find_invoice_by_id(self, invoice_id: UUID, business_id: UUID, for_update: bool = False) -> Optional[Invoice]:
        """
        Obtener factura por ID dentro del negocio

        Con for_update=True toma un bloqueo de fila (SELECT ... FOR UPDATE) que
        dura hasta el fin de la transacción.
        """
        query = self.db.query(Invoice).filter(
            Invoice.id == invoice_id,
            Invoice.business_id == business_id
        )
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def touch_draft(self, invoice_id: UUID, business_id: UUID) -> bool:
        """
        UPDATE condicional sobre la factura si sigue en draft

        Toma el bloqueo de escritura aun en dialectos que ignoran FOR UPDATE
        (SQLite). False si la factura ya no es borrador o no existe.
        """
        result = self.db.execute(
            update(Invoice)
            .where(
                Invoice.id == invoice_id,
                Invoice.business_id == business_id,
                Invoice.status == InvoiceStatus.DRAFT
            )
            .values(updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def update_invoice(self, invoice_id: UUID, business_id: UUID, values: Dict[str, Any]) -> Optional[Invoice]:
        """Actualizar campos de la factura; None si no existe en el negocio"""
        invoice = self.find_invoice_by_id(invoice_id, business_id)
        if invoice is None:
            return None

        for field, value in values.items():
            setattr(invoice, field, value)

        self.db.flush()
        return invoice

    def delete_invoice(self, invoice_id: UUID, business_id: UUID) -> Optional[Invoice]:
        """Eliminar factura con sus ítems; None si no existe en el negocio"""
        invoice = self.find_invoice_by_id(invoice_id, business_id)
        if invoice is None:
            return None

        self.delete_items_by_invoice_id(invoice.id)
        self.db.delete(invoice)
        self.db.flush()
        return invoice

    def insert_items(self, invoice_id: UUID, rows: Iterable[Dict[str, Any]]) -> List[InvoiceItem]:
        """Insertar ítems. Las posiciones las define el llamador"""
        items = [InvoiceItem(invoice_id=invoice_id, **row) for row in rows]
        if not items:
            return []

        self.db.add_all(items)
        self.db.flush()
        return sorted(items, key=lambda item: item.position)

    def delete_items_by_invoice_id(self, invoice_id: UUID) -> None:
        self.db.execute(
            delete(InvoiceItem).where(InvoiceItem.invoice_id == invoice_id)
        )

    def find_items_by_invoice_id(self, invoice_id: UUID) -> List[InvoiceItem]:
        """Ítems de la factura ordenados por posición"""
        return self.db.query(InvoiceItem).filter(
            InvoiceItem.invoice_id == invoice_id
        ).order_by(InvoiceItem.position).all()

    def replace_items(self, invoice_id: UUID, rows: Iterable[Dict[str, Any]]) -> List[InvoiceItem]:
        """
        Reemplazar todos los ítems: borra todos y vuelve a insertar

        Nunca parchea ítems sueltos. No deduplica ni reordena posiciones; una
        posición repetida la rechaza la restricción única (invoice_id, position).
        """
        rows = list(rows)
        self.delete_items_by_invoice_id(invoice_id)
        return self.insert_items(invoice_id, rows)
