"""
Wire schemas — pydantic in, domain out.

Request models expose to_domain(); response models expose from_domain().
Prices never appear on request models: anything the client sends beyond
ids, quantities and variants is ignored.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, Field, PlainSerializer

from storefront._types import ProductCategory
from storefront.finalize import FinalizedOrder
from storefront.payments import CheckoutSnapshot, IntentRef, ShippingAddress
from storefront.pricing import (
    DiscountInvalid,
    DiscountOutcome,
    DiscountValid,
    PricedLine,
    PriceQuote,
    QuoteItem,
    QuoteRequest,
    ShippableItem,
    ShippingQuote,
    ShippingZone,
    parse_zone,
    zone_for_country,
)
from storefront.store import OrderItemRecord, OrderRecord

Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


# ═══════════════════════════════════════════════════════════════════════════════
# Shared
# ═══════════════════════════════════════════════════════════════════════════════


class ItemIn(BaseModel):
    product_id: str = Field(min_length=1)
    quantity: int
    size: str | None = None
    color: str | None = None

    def to_domain(self) -> QuoteItem:
        return QuoteItem(self.product_id, self.quantity, self.size, self.color)


class AddressIn(BaseModel):
    email: str = ""
    name: str = ""
    address: str = ""
    city: str = ""
    zip: str = ""
    country: str = ""
    phone: str = ""
    state: str | None = None

    def to_domain(self) -> ShippingAddress:
        return ShippingAddress(
            email=self.email,
            name=self.name,
            address=self.address,
            city=self.city,
            zip=self.zip,
            country=self.country,
            phone=self.phone,
            state=self.state,
        )


class ErrorOut(BaseModel):
    error: str
    reason: str


# ═══════════════════════════════════════════════════════════════════════════════
# Quote
# ═══════════════════════════════════════════════════════════════════════════════


class QuoteIn(BaseModel):
    items: list[ItemIn]
    zone: str | None = None
    country: str | None = None
    discount_code: str | None = None

    def to_domain(self) -> QuoteRequest:
        if self.zone:
            zone = parse_zone(self.zone)
        else:
            zone = zone_for_country(self.country or "")
        return QuoteRequest(
            items=tuple(item.to_domain() for item in self.items),
            zone=zone,
            discount_code=self.discount_code or None,
        )


class LineOut(BaseModel):
    product_id: str
    name: str
    unit_price: Money
    quantity: int
    line_total: Money
    size: str | None
    color: str | None

    @classmethod
    def from_domain(cls, line: PricedLine) -> "LineOut":
        return cls(
            product_id=line.product_id,
            name=line.name,
            unit_price=line.unit_price,
            quantity=line.quantity,
            line_total=line.line_total,
            size=line.size,
            color=line.color,
        )


class QuoteOut(BaseModel):
    lines: list[LineOut]
    zone: ShippingZone
    subtotal: Money
    vat_rate: Money
    vat_amount: Money
    vat_exclusive_subtotal: Money
    shipping_cost: Money
    shipping_method: str
    estimated_days: str
    discount_code: str | None
    discount_amount: Money
    discount_error: str | None
    grand_total: Money

    @classmethod
    def from_domain(cls, quote: PriceQuote) -> "QuoteOut":
        return cls(
            lines=[LineOut.from_domain(line) for line in quote.lines],
            zone=quote.zone,
            subtotal=quote.subtotal,
            vat_rate=quote.vat_rate,
            vat_amount=quote.vat_amount,
            vat_exclusive_subtotal=quote.vat_exclusive_subtotal,
            shipping_cost=quote.shipping_cost,
            shipping_method=quote.shipping_method,
            estimated_days=quote.estimated_days,
            discount_code=quote.discount_code,
            discount_amount=quote.discount_amount,
            discount_error=quote.discount_error,
            grand_total=quote.grand_total,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Discounts
# ═══════════════════════════════════════════════════════════════════════════════


class DiscountCheckIn(BaseModel):
    code: str
    subtotal: Decimal


class DiscountCheckOut(BaseModel):
    valid: bool
    code: str | None = None
    discount_amount: Money | None = None
    discounted_subtotal: Money | None = None
    description: str | None = None
    error: str | None = None

    @classmethod
    def from_domain(cls, outcome: DiscountOutcome) -> "DiscountCheckOut":
        match outcome:
            case DiscountValid(code=code, amount=amount, discounted_subtotal=rest, description=description):
                return cls(
                    valid=True,
                    code=code,
                    discount_amount=amount,
                    discounted_subtotal=rest,
                    description=description,
                )
            case DiscountInvalid(reason=reason):
                return cls(valid=False, error=reason)


# ═══════════════════════════════════════════════════════════════════════════════
# Shipping
# ═══════════════════════════════════════════════════════════════════════════════


class ShippableIn(BaseModel):
    category: ProductCategory
    quantity: int = Field(ge=0)

    def to_domain(self) -> ShippableItem:
        return ShippableItem(self.category, self.quantity)


class ShippingIn(BaseModel):
    items: list[ShippableIn]
    country: str


class ShippingOut(BaseModel):
    cost: Money
    method: str
    estimated_days: str
    zone: ShippingZone

    @classmethod
    def from_domain(cls, quote: ShippingQuote, zone: ShippingZone) -> "ShippingOut":
        return cls(cost=quote.cost, method=quote.method, estimated_days=quote.estimated_days, zone=zone)


# ═══════════════════════════════════════════════════════════════════════════════
# Checkout
# ═══════════════════════════════════════════════════════════════════════════════


class CheckoutIn(BaseModel):
    items: list[ItemIn]
    shipping_address: AddressIn
    discount_code: str | None = None

    def to_domain(self, user_id: str | None = None) -> CheckoutSnapshot:
        return CheckoutSnapshot(
            items=tuple(item.to_domain() for item in self.items),
            shipping_address=self.shipping_address.to_domain(),
            discount_code=self.discount_code or None,
            user_id=user_id,
        )


class SessionOut(BaseModel):
    session_id: str
    url: str | None
    order_number: str | None

    @classmethod
    def from_domain(cls, ref: IntentRef) -> "SessionOut":
        return cls(session_id=ref.provider_ref, url=ref.redirect_url, order_number=ref.order_number)


class TwoPhaseOrderOut(BaseModel):
    order_id: str
    approval_url: str | None

    @classmethod
    def from_domain(cls, ref: IntentRef) -> "TwoPhaseOrderOut":
        return cls(order_id=ref.provider_ref, approval_url=ref.redirect_url)


class CaptureIn(CheckoutIn):
    order_id: str = Field(min_length=1)


class CaptureOut(BaseModel):
    success: bool
    order_number: str | None = None
    total: Money | None = None
    error: str | None = None

    @classmethod
    def from_domain(cls, order: FinalizedOrder) -> "CaptureOut":
        return cls(success=True, order_number=order.order_number, total=order.total)


# ═══════════════════════════════════════════════════════════════════════════════
# Orders
# ═══════════════════════════════════════════════════════════════════════════════


class OrderItemOut(BaseModel):
    product_id: str
    name: str
    price: Money
    quantity: int
    size: str | None
    color: str | None

    @classmethod
    def from_domain(cls, item: OrderItemRecord) -> "OrderItemOut":
        return cls(
            product_id=item.product_id,
            name=item.name,
            price=item.price,
            quantity=item.quantity,
            size=item.size,
            color=item.color,
        )


class OrderOut(BaseModel):
    order_number: str
    status: str
    currency: str
    customer_email: str
    customer_name: str
    country: str
    items: list[OrderItemOut]
    subtotal: Money
    shipping: Money
    tax: Money
    discount: Money
    discount_code: str | None
    total: Money
    payment_method: str
    paid_at: datetime | None
    created_at: datetime

    @classmethod
    def from_domain(cls, order: OrderRecord) -> "OrderOut":
        return cls(
            order_number=order.order_number,
            status=order.status,
            currency=order.currency,
            customer_email=order.customer_email,
            customer_name=order.customer_name,
            country=order.country,
            items=[OrderItemOut.from_domain(item) for item in order.items],
            subtotal=order.subtotal,
            shipping=order.shipping,
            tax=order.tax,
            discount=order.discount,
            discount_code=order.discount_code,
            total=order.total,
            payment_method=order.payment_method,
            paid_at=order.paid_at,
            created_at=order.created_at,
        )


class WebhookOut(BaseModel):
    received: bool = True
    order_number: str | None = None
    error: str | None = None


__all__ = (
    "Money",
    "ItemIn",
    "AddressIn",
    "ErrorOut",
    "QuoteIn",
    "LineOut",
    "QuoteOut",
    "DiscountCheckIn",
    "DiscountCheckOut",
    "ShippableIn",
    "ShippingIn",
    "ShippingOut",
    "CheckoutIn",
    "SessionOut",
    "TwoPhaseOrderOut",
    "CaptureIn",
    "CaptureOut",
    "WebhookOut",
    "OrderItemOut",
    "OrderOut",
)
