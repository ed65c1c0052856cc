"""Pricing inputs, outputs and the read-side collaborators they need."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

from storefront._types import ProductCategory
from storefront.pricing._discount import DiscountLookup
from storefront.pricing._zones import ShippingZone


# ═══════════════════════════════════════════════════════════════════════════════
# Catalog (read side)
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class VariantSnapshot:
    size: str | None
    color: str | None
    quantity: int


@dataclass(frozen=True, slots=True)
class ProductSnapshot:
    id: str
    name: str
    price: Decimal
    category: ProductCategory
    quantity: int
    in_stock: bool
    image: str | None = None
    variants: tuple[VariantSnapshot, ...] = ()

    def variant(self, size: str | None, color: str | None) -> VariantSnapshot | None:
        for v in self.variants:
            if v.size == size and v.color == color:
                return v
        return None

    def available(self, size: str | None = None, color: str | None = None) -> int:
        if not self.in_stock:
            return 0
        variant = self.variant(size, color)
        if variant is None:
            return self.quantity
        return min(self.quantity, variant.quantity)


class Catalog(Protocol):
    async def get_product(self, product_id: str) -> ProductSnapshot | None: ...


# ═══════════════════════════════════════════════════════════════════════════════
# Request
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class QuoteItem:
    product_id: str
    quantity: int
    size: str | None = None
    color: str | None = None

    def to_json(self) -> dict[str, Any]:
        return {"product_id": self.product_id, "quantity": self.quantity, "size": self.size, "color": self.color}

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "QuoteItem":
        return cls(
            product_id=str(data["product_id"]),
            quantity=int(data["quantity"]),
            size=data.get("size"),
            color=data.get("color"),
        )


@dataclass(frozen=True, slots=True)
class QuoteRequest:
    """Client-supplied selection; carries no prices by construction."""

    items: tuple[QuoteItem, ...]
    zone: ShippingZone
    discount_code: str | None = None


@dataclass(frozen=True, slots=True)
class PricingContext:
    catalog: Catalog
    discounts: DiscountLookup
    now: datetime


# ═══════════════════════════════════════════════════════════════════════════════
# Quote
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class PricedLine:
    product_id: str
    name: str
    unit_price: Decimal
    quantity: int
    category: ProductCategory
    size: str | None = None
    color: str | None = None
    image: str | None = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True, slots=True)
class PriceQuote:
    lines: tuple[PricedLine, ...]
    zone: ShippingZone
    subtotal: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    vat_exclusive_subtotal: Decimal
    shipping_cost: Decimal
    shipping_method: str
    estimated_days: str
    discount_amount: Decimal
    grand_total: Decimal
    discount_code: str | None = None
    discount_error: str | None = None


__all__ = (
    "VariantSnapshot",
    "ProductSnapshot",
    "Catalog",
    "QuoteItem",
    "QuoteRequest",
    "PricingContext",
    "PricedLine",
    "PriceQuote",
)
