"""
Cálculo de montos de líneas de factura

Todos los montos son enteros en la unidad menor de la moneda (agorot). Cada
paso se redondea (ROUND_HALF_UP) antes de usarse en el siguiente: el bruto se
redondea antes de calcular el descuento, y el neto antes de calcular el IVA.
Redondear una sola vez al final da totales distintos.

Funciones puras, sin I/O: las usan tanto los borradores como la finalización.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Union

from app.modules.taxes.schemas import LineAmounts, InvoiceTotals

Number = Union[int, float, Decimal, str]

HUNDRED = Decimal(100)
BASIS_POINTS = Decimal(10000)


def _to_decimal(value: Number) -> Decimal:
    # Los float pasan por str para que 33.33 sea exactamente 33.33
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _round(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_line(
    quantity: Number,
    unit_price_agora: int,
    discount_percent: Number,
    vat_rate_basis_points: int
) -> LineAmounts:
    """
    Calcular los montos de una línea

    Args:
        quantity: Cantidad (admite fracciones)
        unit_price_agora: Precio unitario sin IVA, en agorot
        discount_percent: Descuento 0..100
        vat_rate_basis_points: Tasa de IVA en basis points (1700 = 17%)

    Returns:
        LineAmounts con bruto, descuento, neto, IVA y total con IVA
    """
    gross = _round(_to_decimal(quantity) * Decimal(unit_price_agora))
    discount = _round(Decimal(gross) * _to_decimal(discount_percent) / HUNDRED)
    line_total = gross - discount
    vat_amount = _round(Decimal(line_total) * Decimal(vat_rate_basis_points) / BASIS_POINTS)

    return LineAmounts(
        gross_agora=gross,
        discount_agora=discount,
        line_total_agora=line_total,
        vat_amount_agora=vat_amount,
        line_total_incl_vat_agora=line_total + vat_amount
    )


def calculate_item(item) -> LineAmounts:
    """Calcular una línea a partir de cualquier objeto con los campos crudos (schema o modelo)"""
    return calculate_line(
        item.quantity,
        item.unit_price_agora,
        item.discount_percent if item.discount_percent is not None else 0,
        item.vat_rate_basis_points
    )


def calculate_invoice_totals(items: Iterable) -> InvoiceTotals:
    """
    Sumar los montos de todas las líneas

    No se vuelve a redondear el agregado: cada total es la suma exacta de los
    campos de calculate_line. Lista vacía → todos en cero.
    """
    totals = InvoiceTotals()

    for item in items:
        line = calculate_item(item)
        totals.subtotal_agora += line.gross_agora
        totals.discount_agora += line.discount_agora
        totals.total_excl_vat_agora += line.line_total_agora
        totals.vat_agora += line.vat_amount_agora

    totals.total_incl_vat_agora = totals.total_excl_vat_agora + totals.vat_agora
    return totals
