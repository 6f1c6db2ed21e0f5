from pydantic import BaseModel, Field
from decimal import Decimal


class LineItemInput(BaseModel):
    """Valores crudos de una línea: la única fuente de verdad para los montos"""
    quantity: Decimal = Field(..., gt=0, max_digits=12, decimal_places=4)
    unit_price_agora: int = Field(..., ge=0)
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100, max_digits=5, decimal_places=2)
    vat_rate_basis_points: int = Field(..., ge=0)


class LineAmounts(BaseModel):
    """Montos calculados de una línea (agorot)"""
    gross_agora: int
    discount_agora: int
    line_total_agora: int
    vat_amount_agora: int
    line_total_incl_vat_agora: int


class InvoiceTotals(BaseModel):
    """Totales de la factura: suma campo a campo de las líneas"""
    subtotal_agora: int = 0
    discount_agora: int = 0
    total_excl_vat_agora: int = 0
    vat_agora: int = 0
    total_incl_vat_agora: int = 0
