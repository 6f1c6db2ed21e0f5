"""
Tests para el cálculo de montos de líneas y totales

Cubren el redondeo paso a paso (ROUND_HALF_UP), descuentos, tasas 0% y
estándar, y que los totales sean la suma exacta de las líneas.
"""

import pytest
from decimal import Decimal, ROUND_HALF_UP

from app.modules.taxes.calculator import calculate_line, calculate_item, calculate_invoice_totals
from app.modules.taxes.schemas import LineItemInput, InvoiceTotals


def item(quantity, unit_price_agora, discount_percent=0, vat_rate_basis_points=1700):
    return LineItemInput(
        quantity=Decimal(str(quantity)),
        unit_price_agora=unit_price_agora,
        discount_percent=Decimal(str(discount_percent)),
        vat_rate_basis_points=vat_rate_basis_points
    )


class TestCalculateLine:
    """Tests para calculate_line"""

    def test_whole_amounts_standard_vat(self):
        line = calculate_line(1, 10000, 0, 1700)

        assert line.gross_agora == 10000
        assert line.discount_agora == 0
        assert line.line_total_agora == 10000
        assert line.vat_amount_agora == 1700
        assert line.line_total_incl_vat_agora == 11700

    def test_fractional_quantity(self):
        line = calculate_line(Decimal("2.5"), 4000, 0, 1700)

        assert line.gross_agora == 10000
        assert line.vat_amount_agora == 1700

    def test_percentage_discount(self):
        line = calculate_line(2, 2500, 20, 1700)

        assert line.gross_agora == 5000
        assert line.discount_agora == 1000
        assert line.line_total_agora == 4000
        assert line.vat_amount_agora == 680
        assert line.line_total_incl_vat_agora == 4680

    def test_full_discount_leaves_nothing(self):
        line = calculate_line(3, 1234, 100, 1700)

        assert line.discount_agora == line.gross_agora == 3702
        assert line.line_total_agora == 0
        assert line.vat_amount_agora == 0
        assert line.line_total_incl_vat_agora == 0

    def test_zero_rate(self):
        line = calculate_line(1, 7500, 0, 0)

        assert line.vat_amount_agora == 0
        assert line.line_total_incl_vat_agora == 7500

    def test_zero_unit_price(self):
        line = calculate_line(4, 0, 0, 1700)

        assert line.model_dump() == {
            "gross_agora": 0,
            "discount_agora": 0,
            "line_total_agora": 0,
            "vat_amount_agora": 0,
            "line_total_incl_vat_agora": 0,
        }

    def test_vat_rounds_half_up(self):
        # 9999 * 17% = 1699.83
        line = calculate_line(3, 3333, 0, 1700)

        assert line.gross_agora == 9999
        assert line.vat_amount_agora == 1700
        assert line.line_total_incl_vat_agora == 11699

    def test_exact_half_rounds_up(self):
        # 0.5 * 1 = 0.5 → 1
        line = calculate_line(Decimal("0.5"), 1, 0, 0)
        assert line.gross_agora == 1

    def test_each_step_is_rounded_before_the_next(self):
        """1.5 × 3333 con 33.33% de descuento y 17% de IVA"""
        line = calculate_line(Decimal("1.5"), 3333, Decimal("33.33"), 1700)

        assert line.gross_agora == 5000       # 4999.5 → 5000
        assert line.discount_agora == 1667    # 1666.5 → 1667
        assert line.line_total_agora == 3333
        assert line.vat_amount_agora == 567   # 566.61 → 567
        assert line.line_total_incl_vat_agora == 3900

    def test_rounding_only_at_the_end_gives_a_different_total(self):
        exact_gross = Decimal("1.5") * 3333
        unrounded_discount = (exact_gross * Decimal("33.33") / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        rounded_gross = exact_gross.quantize(Decimal("1"), rounding=ROUND_HALF_UP)

        assert rounded_gross - unrounded_discount == 3334
        assert calculate_line(Decimal("1.5"), 3333, Decimal("33.33"), 1700).line_total_agora == 3333

    def test_float_inputs_are_read_as_written(self):
        from_float = calculate_line(1.5, 3333, 33.33, 1700)
        from_decimal = calculate_line(Decimal("1.5"), 3333, Decimal("33.33"), 1700)

        assert from_float == from_decimal

    def test_calculate_item_uses_raw_fields(self):
        line = calculate_item(item("1.5", 3333, "33.33", 1700))
        assert line.line_total_incl_vat_agora == 3900

    @pytest.mark.parametrize("quantity,price,discount,rate", [
        (1, 10000, 0, 1700),
        (Decimal("2.75"), 1999, 15, 1700),
        (7, 333, Decimal("12.5"), 0),
        (Decimal("0.001"), 123456, 0, 1700),
    ])
    def test_line_invariants(self, quantity, price, discount, rate):
        line = calculate_line(quantity, price, discount, rate)

        assert line.line_total_agora == line.gross_agora - line.discount_agora
        assert line.line_total_incl_vat_agora == line.line_total_agora + line.vat_amount_agora
        assert all(value >= 0 for value in line.model_dump().values())


class TestCalculateInvoiceTotals:
    """Tests para calculate_invoice_totals"""

    def test_empty_list_is_all_zeros(self):
        assert calculate_invoice_totals([]) == InvoiceTotals()

    def test_single_item_matches_line(self):
        single = item(1, 10000)
        totals = calculate_invoice_totals([single])
        line = calculate_item(single)

        assert totals.subtotal_agora == line.gross_agora
        assert totals.total_excl_vat_agora == line.line_total_agora
        assert totals.vat_agora == line.vat_amount_agora
        assert totals.total_incl_vat_agora == line.line_total_incl_vat_agora

    def test_sums_multiple_items(self):
        totals = calculate_invoice_totals([
            item(2, 5000),
            item(1, 3000),
        ])

        assert totals.model_dump() == {
            "subtotal_agora": 13000,
            "discount_agora": 0,
            "total_excl_vat_agora": 13000,
            "vat_agora": 2210,
            "total_incl_vat_agora": 15210,
        }

    def test_mixed_rates_and_discounts(self):
        totals = calculate_invoice_totals([
            item(1, 10000, 10, 1700),
            item(2, 5000, 20, 0),
        ])

        assert totals.subtotal_agora == 20000
        assert totals.discount_agora == 3000
        assert totals.total_excl_vat_agora == 17000
        assert totals.vat_agora == 1530
        assert totals.total_incl_vat_agora == 18530

    def test_totals_are_sums_of_line_fields(self):
        items = [
            item("1.5", 3333, "33.33", 1700),
            item("2.25", 1999, 5, 1700),
            item(3, 101, 0, 0),
        ]
        lines = [calculate_item(i) for i in items]
        totals = calculate_invoice_totals(items)

        assert totals.subtotal_agora == sum(l.gross_agora for l in lines)
        assert totals.discount_agora == sum(l.discount_agora for l in lines)
        assert totals.total_excl_vat_agora == sum(l.line_total_agora for l in lines)
        assert totals.vat_agora == sum(l.vat_amount_agora for l in lines)
        assert totals.total_incl_vat_agora == totals.total_excl_vat_agora + totals.vat_agora
