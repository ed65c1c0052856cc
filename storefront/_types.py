"""
Core types for storefront: money, time, categories and order numbers.
"""

from __future__ import annotations

import secrets
import time
from datetime import UTC, datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import StrEnum

# ═══════════════════════════════════════════════════════════════════════════════
# Money
# ═══════════════════════════════════════════════════════════════════════════════

type Money = Decimal
"""VAT-inclusive EUR amount, two decimal places once rounded."""

CURRENCY = "EUR"
CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def round_money(value: Decimal) -> Decimal:
    """Round a Decimal to cents, half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Coerce a number into a cent-rounded Decimal (floats go through str)."""
    if isinstance(value, float):
        value = str(value)
    return round_money(Decimal(value))


def to_cents(value: Decimal) -> int:
    return int(round_money(value) * 100)


def from_cents(cents: int) -> Decimal:
    return round_money(Decimal(cents) / 100)


# ═══════════════════════════════════════════════════════════════════════════════
# Time
# ═══════════════════════════════════════════════════════════════════════════════


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def naive_utc(value: datetime) -> datetime:
    """Column form: UTC wall time without tzinfo."""
    return as_utc(value).replace(tzinfo=None)


# ═══════════════════════════════════════════════════════════════════════════════
# Catalog enums
# ═══════════════════════════════════════════════════════════════════════════════


class ProductCategory(StrEnum):
    TOPS = "tops"
    BOTTOMS = "bottoms"
    FOOTWEAR = "footwear"
    ACCESSORIES = "accessories"

    @property
    def is_footwear(self) -> bool:
        return self is ProductCategory.FOOTWEAR


# ═══════════════════════════════════════════════════════════════════════════════
# Order numbers
# ═══════════════════════════════════════════════════════════════════════════════

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _base36(n: int) -> str:
    if n == 0:
        return "0"
    digits = []
    while n:
        n, rem = divmod(n, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def new_order_number() -> str:
    """FV-<base36 ms timestamp>-<4 random base36 chars>, URL-safe."""
    stamp = _base36(time.time_ns() // 1_000_000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"FV-{stamp}-{suffix}"


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    # Aliases
    "Money",
    # Money helpers
    "CURRENCY",
    "CENT",
    "ZERO",
    "round_money",
    "to_money",
    "to_cents",
    "from_cents",
    # Time
    "utcnow",
    "as_utc",
    "naive_utc",
    # Catalog
    "ProductCategory",
    # Order numbers
    "new_order_number",
)
