"""
Módulo de Facturación (Invoices)

Este módulo maneja los documentos fiscales de un negocio:

- Borradores de factura con sus ítems (crear, leer, editar, eliminar)
- Finalización: draft → finalized, con número de documento, montos
  recalculados y snapshot del cliente, todo en una transacción
- Numeración secuencial por negocio y grupo de secuencia

Tipos de documento y grupos de numeración:
- tax_invoice, tax_invoice_receipt: comparten el grupo tax_document
- credit_note: grupo propio
- receipt: grupo propio

Tablas principales:
- invoices: Facturas (header, snapshot de cliente, totales)
- invoice_items: Ítems de factura
- invoice_sequences: Contadores por (negocio, grupo)
"""

from .models import Invoice, InvoiceItem, InvoiceSequence
from .schemas import InvoiceCreate, InvoiceUpdate, InvoiceFinalize, InvoiceResponse
from .service import InvoiceService
from .router import router

__all__ = [
    "Invoice", "InvoiceItem", "InvoiceSequence",
    "InvoiceCreate", "InvoiceUpdate", "InvoiceFinalize", "InvoiceResponse",
    "InvoiceService",
    "router"
]
