from app.database.database import Base
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Numeric, Enum, Date, Text, Uuid,
    UniqueConstraint, PrimaryKeyConstraint, Index, text
)
from sqlalchemy.sql import func
from datetime import date
from uuid import uuid4
from app.common.mixins import BusinessMixin, TimestampMixin
import enum


def _enum_values(enum_cls):
    # Persistir los valores ("tax_invoice"), no los nombres del enum
    return [member.value for member in enum_cls]


class DocumentType(enum.Enum):
    TAX_INVOICE = "tax_invoice"                  # Factura fiscal
    TAX_INVOICE_RECEIPT = "tax_invoice_receipt"  # Factura fiscal-recibo
    RECEIPT = "receipt"                          # Recibo
    CREDIT_NOTE = "credit_note"                  # Nota de crédito


class SequenceGroup(enum.Enum):
    TAX_DOCUMENT = "tax_document"  # Factura y factura-recibo comparten numeración
    CREDIT_NOTE = "credit_note"
    RECEIPT = "receipt"


class InvoiceStatus(enum.Enum):
    DRAFT = "draft"            # Borrador, editable, sin número
    FINALIZED = "finalized"    # Emitida con número; no vuelve a draft
    SENT = "sent"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    CANCELLED = "cancelled"
    CREDITED = "credited"


class Invoice(Base, BusinessMixin, TimestampMixin):
    __tablename__ = "invoices"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    # References
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)

    # Snapshot del cliente al finalizar (null mientras es borrador)
    customer_name = Column(String(200), nullable=True)
    customer_tax_id = Column(String(50), nullable=True)
    customer_address = Column(Text, nullable=True)
    customer_email = Column(String(100), nullable=True)

    document_type = Column(
        Enum(DocumentType, name="document_type", values_callable=_enum_values),
        nullable=False
    )
    status = Column(
        Enum(InvoiceStatus, name="invoice_status", values_callable=_enum_values),
        nullable=False,
        default=InvoiceStatus.DRAFT
    )

    # Numeración: todos null (draft) o todos asignados (finalized), una sola vez
    sequence_group = Column(
        Enum(SequenceGroup, name="sequence_group", values_callable=_enum_values),
        nullable=True
    )
    sequence_number = Column(Integer, nullable=True)
    full_number = Column(String(50), nullable=True)

    # Dates
    invoice_date = Column(Date, nullable=False, default=date.today)
    issued_at = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(Date, nullable=True)

    # Content
    notes = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)
    currency = Column(String(3), nullable=False, default="ILS")

    # Totals (agorot)
    subtotal_agora = Column(Integer, nullable=False, default=0)
    discount_agora = Column(Integer, nullable=False, default=0)
    total_excl_vat_agora = Column(Integer, nullable=False, default=0)
    vat_agora = Column(Integer, nullable=False, default=0)
    total_incl_vat_agora = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index(
            "invoices_business_seqgroup_seqnum_unique",
            "business_id", "sequence_group", "sequence_number",
            unique=True,
            postgresql_where=text("sequence_number IS NOT NULL"),
            sqlite_where=text("sequence_number IS NOT NULL"),
        ),
        Index("invoices_business_status_idx", "business_id", "status"),
        Index("invoices_business_date_idx", "business_id", "invoice_date"),
        Index("invoices_business_customer_idx", "business_id", "customer_id"),
    )

    @property
    def is_draft(self) -> bool:
        return self.status == InvoiceStatus.DRAFT


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(Uuid(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)

    position = Column(Integer, nullable=False)
    description = Column(Text, nullable=False)
    catalog_number = Column(String(100), nullable=True)

    # Valores crudos
    quantity = Column(Numeric(12, 4), nullable=False)  # Permitir decimales para servicios
    unit_price_agora = Column(Integer, nullable=False)  # Precio sin IVA
    discount_percent = Column(Numeric(5, 2), nullable=False, default=0)
    vat_rate_basis_points = Column(Integer, nullable=False)

    # Montos calculados (cache; la finalización los recalcula)
    line_total_agora = Column(Integer, nullable=False, default=0)
    vat_amount_agora = Column(Integer, nullable=False, default=0)
    line_total_incl_vat_agora = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("invoice_id", "position", name="invoice_items_invoice_position_unique"),
    )


class InvoiceSequence(Base):
    """Contador de numeración por (negocio, grupo de secuencia)"""
    __tablename__ = "invoice_sequences"

    business_id = Column(Uuid(as_uuid=True), ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False)
    sequence_group = Column(
        Enum(SequenceGroup, name="sequence_group", values_callable=_enum_values),
        nullable=False
    )
    # Próximo número a entregar
    next_number = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        # La clave compuesta la impone la base: el upsert depende de ella
        PrimaryKeyConstraint("business_id", "sequence_group", name="invoice_sequences_pkey"),
    )
