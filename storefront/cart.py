"""
Cart — client-held line items with per-line stock ceilings.

The cart is an immutable value: every mutation returns a new Cart (or an
Error and leaves the original untouched). Prices on the lines are display
values only; pricing always re-reads the catalog.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any

from kungfu import Result, Ok, Error

from storefront._types import ProductCategory, ZERO, round_money
from storefront.errors import CheckoutError, CheckoutErrors
from storefront.pricing import QuoteItem


def line_id_for(product_id: str, size: str | None = None, color: str | None = None) -> str:
    return f"{product_id}-{size or 'no-size'}-{color or 'no-color'}"


# ═══════════════════════════════════════════════════════════════════════════════
# Lines
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CartItem:
    """What the shopper picked: one unit of a product variant."""

    product_id: str
    name: str
    unit_price: Decimal
    category: ProductCategory
    size: str | None = None
    color: str | None = None
    image: str | None = None


@dataclass(frozen=True, slots=True)
class CartLine:
    line_id: str
    product_id: str
    name: str
    unit_price: Decimal
    quantity: int
    category: ProductCategory
    size: str | None = None
    color: str | None = None
    stock_ceiling: int | None = None
    image: str | None = None

    @classmethod
    def from_item(cls, item: CartItem, quantity: int, stock_ceiling: int | None) -> CartLine:
        return cls(
            line_id=line_id_for(item.product_id, item.size, item.color),
            product_id=item.product_id,
            name=item.name,
            unit_price=item.unit_price,
            quantity=quantity,
            category=item.category,
            size=item.size,
            color=item.color,
            stock_ceiling=stock_ceiling,
            image=item.image,
        )

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_json(self) -> dict[str, Any]:
        return {
            "line_id": self.line_id,
            "product_id": self.product_id,
            "name": self.name,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
            "category": self.category.value,
            "size": self.size,
            "color": self.color,
            "stock_ceiling": self.stock_ceiling,
            "image": self.image,
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> CartLine:
        return cls(
            line_id=data["line_id"],
            product_id=data["product_id"],
            name=data["name"],
            unit_price=Decimal(data["unit_price"]),
            quantity=int(data["quantity"]),
            category=ProductCategory(data["category"]),
            size=data.get("size"),
            color=data.get("color"),
            stock_ceiling=data.get("stock_ceiling"),
            image=data.get("image"),
        )


def _exceeds(quantity: int, ceiling: int | None) -> bool:
    return ceiling is not None and quantity > ceiling


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Cart:
    lines: tuple[CartLine, ...] = ()

    def get(self, line_id: str) -> CartLine | None:
        for line in self.lines:
            if line.line_id == line_id:
                return line
        return None

    def add(self, item: CartItem, stock_ceiling: int | None = None) -> Result[Cart, CheckoutError]:
        """Add one unit; identical variant selections land on the same line."""
        line_id = line_id_for(item.product_id, item.size, item.color)
        existing = self.get(line_id)

        if existing is None:
            if _exceeds(1, stock_ceiling):
                return Error(CheckoutErrors.validation(f"{item.name} is out of stock", line_id=line_id))
            return Ok(Cart((*self.lines, CartLine.from_item(item, 1, stock_ceiling))))

        ceiling = stock_ceiling if stock_ceiling is not None else existing.stock_ceiling
        quantity = existing.quantity + 1
        if _exceeds(quantity, ceiling):
            return Error(CheckoutErrors.validation(
                f"Only {ceiling} of {item.name} available",
                line_id=line_id,
                stock_ceiling=ceiling,
            ))
        return Ok(self._swap(replace(existing, quantity=quantity, stock_ceiling=ceiling)))

    def set_quantity(
        self,
        line_id: str,
        quantity: int,
        stock_ceiling: int | None = None,
    ) -> Result[Cart, CheckoutError]:
        existing = self.get(line_id)
        if existing is None:
            return Error(CheckoutErrors.validation(f"No cart line {line_id}", line_id=line_id))
        if quantity <= 0:
            return Ok(self.remove(line_id))

        ceiling = stock_ceiling if stock_ceiling is not None else existing.stock_ceiling
        if _exceeds(quantity, ceiling):
            return Error(CheckoutErrors.validation(
                f"Only {ceiling} of {existing.name} available",
                line_id=line_id,
                stock_ceiling=ceiling,
            ))
        return Ok(self._swap(replace(existing, quantity=quantity, stock_ceiling=ceiling)))

    def remove(self, line_id: str) -> Cart:
        return Cart(tuple(line for line in self.lines if line.line_id != line_id))

    def clear(self) -> Cart:
        return Cart()

    def total(self) -> Decimal:
        return round_money(sum((line.line_total for line in self.lines), ZERO))

    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def is_empty(self) -> bool:
        return not self.lines

    def to_quote_items(self) -> tuple[QuoteItem, ...]:
        """What pricing gets: ids, variants and quantities, never the display prices."""
        return tuple(QuoteItem(line.product_id, line.quantity, line.size, line.color) for line in self.lines)

    def _swap(self, updated: CartLine) -> Cart:
        return Cart(tuple(updated if line.line_id == updated.line_id else line for line in self.lines))

    # ─────────────────────────────────────────────────────────────────────────
    # Persistence
    # ─────────────────────────────────────────────────────────────────────────

    def dumps(self) -> str:
        return json.dumps({"lines": [line.to_json() for line in self.lines]})

    @classmethod
    def loads(cls, raw: str) -> Cart:
        data = json.loads(raw)
        return cls(tuple(CartLine.from_json(line) for line in data.get("lines", [])))


__all__ = ("CartItem", "CartLine", "Cart", "line_id_for")
