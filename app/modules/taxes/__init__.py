from .calculator import calculate_line, calculate_item, calculate_invoice_totals
from .schemas import LineItemInput, LineAmounts, InvoiceTotals

__all__ = [
    "calculate_line", "calculate_item", "calculate_invoice_totals",
    "LineItemInput", "LineAmounts", "InvoiceTotals"
]
