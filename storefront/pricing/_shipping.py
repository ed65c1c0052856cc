"""
Shipping — cost, method and ETA from cart contents and destination zone.

Pure and total: every (items, zone) pair yields a quote, an empty cart
included.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from storefront._types import ProductCategory
from storefront.pricing._zones import ShippingZone, parse_zone

FAST_ETA = "2-7 business days"
SLOW_ETA = "5-14 business days"

_REMOTE_ZONES = (ShippingZone.CA, ShippingZone.AU, ShippingZone.ASIA)


@dataclass(frozen=True, slots=True)
class ShippableItem:
    category: ProductCategory
    quantity: int


@dataclass(frozen=True, slots=True)
class ShippingQuote:
    cost: Decimal
    method: str
    estimated_days: str


def _split(items: Iterable[ShippableItem]) -> tuple[int, int]:
    clothing = footwear = 0
    for item in items:
        if item.category.is_footwear:
            footwear += item.quantity
        else:
            clothing += item.quantity
    return clothing, footwear


def quote_shipping(items: Iterable[ShippableItem], zone: ShippingZone | str) -> ShippingQuote:
    if not isinstance(zone, ShippingZone):
        zone = parse_zone(zone)
    clothing, footwear = _split(items)

    if zone is ShippingZone.EU:
        cost = Decimal("10.00") if footwear else Decimal("0.00")
        return ShippingQuote(cost, "EU Shipping", FAST_ETA)

    if zone in _REMOTE_ZONES and (clothing or footwear):
        method = f"{zone.value} Shipping"
        if clothing and footwear:
            return ShippingQuote(Decimal("75.00"), method, SLOW_ETA)
        if footwear:
            return ShippingQuote(Decimal("63.00"), method, SLOW_ETA)
        if clothing >= 3:
            return ShippingQuote(Decimal("63.00"), method, SLOW_ETA)
        return ShippingQuote(Decimal("53.00"), method, SLOW_ETA)

    # US, the international tier, and remote zones with nothing to ship
    method = "US Shipping" if zone is ShippingZone.US else "International Shipping"
    if clothing and footwear:
        cost = Decimal("55.00")
    elif footwear:
        cost = Decimal("44.03")
    elif clothing:
        cost = Decimal("30.00")
    else:
        cost = Decimal("0.00")
    return ShippingQuote(cost, method, FAST_ETA)


__all__ = ("ShippableItem", "ShippingQuote", "quote_shipping", "FAST_ETA", "SLOW_ETA")
