"""
VAT — extraction from VAT-inclusive prices.

Single-jurisdiction merchant: the rate is 21% for every destination.
"""

import csv
import io
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from storefront._types import round_money
from storefront.errors import CheckoutErrors

VAT_RATE = Decimal("0.21")


@dataclass(frozen=True, slots=True)
class VatBreakdown:
    rate: Decimal
    vat_amount: Decimal
    ex_vat_amount: Decimal

    @property
    def total(self) -> Decimal:
        return self.ex_vat_amount + self.vat_amount


def extract_vat(price: Decimal | int | str) -> VatBreakdown:
    """
    Split a VAT-inclusive price into its net and tax parts.

    The net part is rounded to cents and the tax part is the remainder,
    so `ex_vat_amount + vat_amount == price` (cent-rounded) always holds.
    Raises CheckoutError(INVALID_AMOUNT) on negative or non-finite input.
    """
    try:
        value = Decimal(price)
    except (ArithmeticError, ValueError, TypeError) as e:
        raise CheckoutErrors.invalid_amount(price) from e
    if not value.is_finite() or value < 0:
        raise CheckoutErrors.invalid_amount(price)

    gross = round_money(value)
    ex_vat = round_money(gross / (1 + VAT_RATE))
    return VatBreakdown(rate=VAT_RATE, vat_amount=gross - ex_vat, ex_vat_amount=ex_vat)


def format_vat_rate(rate: Decimal = VAT_RATE) -> str:
    return f"{(rate * 100).normalize():f}%"


# ═══════════════════════════════════════════════════════════════════════════════
# Export
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class VatExportRow:
    order_number: str
    created_at: datetime
    subtotal: Decimal
    country: str


VAT_EXPORT_HEADERS = (
    "Order Number",
    "Date",
    "Subtotal (VAT-inclusive)",
    "VAT Rate",
    "VAT Amount",
    "Country",
)


def vat_export_csv(rows: Iterable[VatExportRow]) -> str:
    """Accountant-facing CSV: one row per paid order."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(VAT_EXPORT_HEADERS)
    for row in rows:
        vat = extract_vat(row.subtotal)
        writer.writerow((
            row.order_number,
            row.created_at.date().isoformat(),
            f"{round_money(row.subtotal):.2f}",
            format_vat_rate(vat.rate),
            f"{vat.vat_amount:.2f}",
            row.country,
        ))
    return buffer.getvalue()


__all__ = (
    "VAT_RATE",
    "VatBreakdown",
    "extract_vat",
    "format_vat_rate",
    "VatExportRow",
    "VAT_EXPORT_HEADERS",
    "vat_export_csv",
)
