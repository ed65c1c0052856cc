"""
Discount codes — eligibility and monetary effect.

Validation is read-only: usage is consumed by the order transaction,
never here, so an abandoned checkout does not burn a code.
"""

from dataclasses import dataclass
from datetime import datetime, time
from decimal import Decimal
from enum import StrEnum
from typing import Protocol

from storefront._types import ZERO, as_utc, round_money, utcnow


class DiscountKind(StrEnum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass(frozen=True, slots=True)
class DiscountCode:
    code: str
    kind: DiscountKind
    value: Decimal
    is_active: bool = True
    used_count: int = 0
    min_purchase: Decimal | None = None
    max_discount: Decimal | None = None
    usage_limit: int | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    description: str | None = None


class DiscountLookup(Protocol):
    async def get_discount(self, code: str) -> DiscountCode | None: ...


# ═══════════════════════════════════════════════════════════════════════════════
# Outcomes
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class DiscountValid:
    code: str
    kind: DiscountKind
    value: Decimal
    amount: Decimal
    discounted_subtotal: Decimal
    description: str | None = None

    valid = True


@dataclass(frozen=True, slots=True)
class DiscountInvalid:
    reason: str

    valid = False


type DiscountOutcome = DiscountValid | DiscountInvalid


class Reasons:
    NOT_FOUND = "Invalid discount code"
    INACTIVE = "This discount code is no longer available"
    NOT_YET_VALID = "This discount code is not yet valid"
    EXPIRED = "This discount code has expired"
    EXHAUSTED = "This discount code has reached its usage limit"

    @staticmethod
    def min_purchase(amount: Decimal) -> str:
        return f"Minimum purchase of €{round_money(amount):.2f} required"


def normalize_code(code: str) -> str:
    return code.strip().upper()


def _end_of_day(moment: datetime) -> datetime:
    return datetime.combine(as_utc(moment).date(), time.max, tzinfo=as_utc(moment).tzinfo)


def discount_amount(discount: DiscountCode, subtotal: Decimal) -> Decimal:
    if discount.kind is DiscountKind.PERCENTAGE:
        amount = subtotal * discount.value / 100
        if discount.max_discount is not None:
            amount = min(amount, discount.max_discount)
    else:
        amount = min(discount.value, subtotal)
    return round_money(max(amount, ZERO))


def evaluate_discount(
    discount: DiscountCode | None,
    subtotal: Decimal,
    now: datetime,
) -> DiscountOutcome:
    """Checks run in a fixed order; the first failure is the reason."""
    if discount is None:
        return DiscountInvalid(Reasons.NOT_FOUND)
    if not discount.is_active:
        return DiscountInvalid(Reasons.INACTIVE)

    now = as_utc(now)
    if discount.valid_from is not None and now < as_utc(discount.valid_from):
        return DiscountInvalid(Reasons.NOT_YET_VALID)
    if discount.valid_until is not None and now > _end_of_day(discount.valid_until):
        return DiscountInvalid(Reasons.EXPIRED)
    if discount.usage_limit is not None and discount.used_count >= discount.usage_limit:
        return DiscountInvalid(Reasons.EXHAUSTED)
    if discount.min_purchase is not None and subtotal < discount.min_purchase:
        return DiscountInvalid(Reasons.min_purchase(discount.min_purchase))

    amount = discount_amount(discount, subtotal)
    return DiscountValid(
        code=discount.code,
        kind=discount.kind,
        value=discount.value,
        amount=amount,
        discounted_subtotal=round_money(subtotal - amount),
        description=discount.description,
    )


async def validate_discount(
    lookup: DiscountLookup,
    code: str,
    subtotal: Decimal,
    now: datetime | None = None,
) -> DiscountOutcome:
    normalized = normalize_code(code)
    if not normalized:
        return DiscountInvalid(Reasons.NOT_FOUND)
    discount = await lookup.get_discount(normalized)
    return evaluate_discount(discount, subtotal, now or utcnow())


__all__ = (
    "DiscountKind",
    "DiscountCode",
    "DiscountLookup",
    "DiscountValid",
    "DiscountInvalid",
    "DiscountOutcome",
    "Reasons",
    "normalize_code",
    "discount_amount",
    "evaluate_discount",
    "validate_discount",
)
