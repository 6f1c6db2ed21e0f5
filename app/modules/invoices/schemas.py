from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime
from enum import Enum


class DocumentType(str, Enum):
    TAX_INVOICE = "tax_invoice"
    TAX_INVOICE_RECEIPT = "tax_invoice_receipt"
    RECEIPT = "receipt"
    CREDIT_NOTE = "credit_note"


class SequenceGroup(str, Enum):
    TAX_DOCUMENT = "tax_document"
    CREDIT_NOTE = "credit_note"
    RECEIPT = "receipt"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    FINALIZED = "finalized"
    SENT = "sent"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    CANCELLED = "cancelled"
    CREDITED = "credited"


# Invoice Item Schemas
class InvoiceItemCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    description: str = Field(..., min_length=1)
    catalog_number: Optional[str] = None
    # Misma escala que las columnas: Numeric(12, 4) y Numeric(5, 2)
    quantity: Decimal = Field(..., gt=0, max_digits=12, decimal_places=4, description="Cantidad debe ser mayor a 0")
    unit_price_agora: int = Field(..., ge=0, description="Precio unitario sin IVA, en agorot")
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100, max_digits=5, decimal_places=2)
    vat_rate_basis_points: int = Field(..., ge=0, description="1700 = 17%")
    position: int = Field(..., ge=0)

    @field_validator('description', 'catalog_number')
    @classmethod
    def strip_text(cls, v):
        return v.strip() if v is not None else v

    @model_validator(mode='after')
    def validate_description(self):
        if not self.description:
            raise ValueError('La descripción no puede estar vacía')
        return self


class InvoiceItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    invoice_id: UUID
    position: int
    description: str
    catalog_number: Optional[str] = None
    quantity: Decimal
    unit_price_agora: int
    discount_percent: Decimal
    vat_rate_basis_points: int
    line_total_agora: int
    vat_amount_agora: int
    line_total_incl_vat_agora: int


def _validate_unique_positions(items):
    if items:
        positions = [item.position for item in items]
        if len(positions) != len(set(positions)):
            raise ValueError('Las posiciones de los ítems deben ser únicas')
    return items


# Invoice Schemas
class InvoiceCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    document_type: DocumentType
    customer_id: Optional[UUID] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    items: Optional[List[InvoiceItemCreate]] = None

    @field_validator('items')
    @classmethod
    def validate_items(cls, v):
        return _validate_unique_positions(v)


class InvoiceUpdate(BaseModel):
    """Solo se aplican los campos enviados; null explícito limpia el campo"""
    model_config = ConfigDict(extra="forbid")

    customer_id: Optional[UUID] = None
    document_type: Optional[DocumentType] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    items: Optional[List[InvoiceItemCreate]] = None

    @field_validator('items')
    @classmethod
    def validate_items(cls, v):
        return _validate_unique_positions(v)

    @model_validator(mode='after')
    def validate_not_null(self):
        # Campos NOT NULL en la tabla: se pueden omitir pero no anular
        for field in ('document_type', 'invoice_date', 'items'):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f'{field} no puede ser null')
        return self


class InvoiceFinalize(BaseModel):
    model_config = ConfigDict(extra="forbid")

    invoice_date: Optional[date] = None


class InvoiceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    business_id: UUID
    customer_id: Optional[UUID] = None

    # Snapshot del cliente al finalizar
    customer_name: Optional[str] = None
    customer_tax_id: Optional[str] = None
    customer_address: Optional[str] = None
    customer_email: Optional[str] = None

    document_type: DocumentType
    status: InvoiceStatus
    sequence_group: Optional[SequenceGroup] = None
    sequence_number: Optional[int] = None
    full_number: Optional[str] = None
    invoice_date: date
    issued_at: Optional[datetime] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    currency: str
    subtotal_agora: int
    discount_agora: int
    total_excl_vat_agora: int
    vat_agora: int
    total_incl_vat_agora: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator('document_type', 'status', 'sequence_group', mode='before')
    @classmethod
    def unwrap_model_enum(cls, v):
        # Los enums del modelo SQLAlchemy se exponen por su valor
        return getattr(v, 'value', v)


class InvoiceResponse(BaseModel):
    invoice: InvoiceOut
    items: List[InvoiceItemOut]


class DeleteResponse(BaseModel):
    ok: bool = True
