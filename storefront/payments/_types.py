"""
Payment capability — what OrderFinalizer needs from any provider.

Both adapters speak this protocol; the finalizer never branches on
which one ran.
"""

import json
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

from kungfu import Result

from storefront._types import ZERO, to_money
from storefront.errors import CheckoutError
from storefront.pricing import PriceQuote, QuoteItem, QuoteRequest, zone_for_country


# ═══════════════════════════════════════════════════════════════════════════════
# Checkout payload
# ═══════════════════════════════════════════════════════════════════════════════

ADDRESS_FIELDS = ("email", "name", "address", "city", "zip", "country", "phone")


@dataclass(frozen=True, slots=True)
class ShippingAddress:
    email: str
    name: str
    address: str
    city: str
    zip: str
    country: str
    phone: str
    state: str | None = None

    def missing_fields(self) -> list[str]:
        return [f for f in ADDRESS_FIELDS if not str(getattr(self, f) or "").strip()]

    def to_json(self) -> dict[str, Any]:
        return {
            "email": self.email,
            "name": self.name,
            "address": self.address,
            "city": self.city,
            "zip": self.zip,
            "country": self.country,
            "phone": self.phone,
            "state": self.state,
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "ShippingAddress":
        return cls(
            email=str(data.get("email", "")),
            name=str(data.get("name", "")),
            address=str(data.get("address", "")),
            city=str(data.get("city", "")),
            zip=str(data.get("zip", "")),
            country=str(data.get("country", "")),
            phone=str(data.get("phone", "")),
            state=data.get("state"),
        )


@dataclass(frozen=True, slots=True)
class CheckoutSnapshot:
    """
    Everything needed to re-price an order at finalize time.

    The hosted provider carries it as opaque session metadata; the
    two-phase flow gets it replayed by the client. Either way the totals
    here are informational: finalize re-prices from `items`.
    """

    items: tuple[QuoteItem, ...]
    shipping_address: ShippingAddress
    discount_code: str | None = None
    user_id: str | None = None
    order_number: str | None = None
    subtotal: Decimal = ZERO
    shipping: Decimal = ZERO
    tax: Decimal = ZERO
    discount: Decimal = ZERO
    total: Decimal = ZERO

    def to_request(self) -> QuoteRequest:
        return QuoteRequest(
            items=self.items,
            zone=zone_for_country(self.shipping_address.country),
            discount_code=self.discount_code or None,
        )

    def with_quote(self, quote: PriceQuote, order_number: str | None = None) -> "CheckoutSnapshot":
        return CheckoutSnapshot(
            items=self.items,
            shipping_address=self.shipping_address,
            discount_code=quote.discount_code,
            user_id=self.user_id,
            order_number=order_number or self.order_number,
            subtotal=quote.subtotal,
            shipping=quote.shipping_cost,
            tax=quote.vat_amount,
            discount=quote.discount_amount,
            total=quote.grand_total,
        )

    def to_metadata(self) -> dict[str, str]:
        """Flat string map, the shape provider metadata accepts."""
        return {
            "orderNumber": self.order_number or "",
            "userId": self.user_id or "",
            "shippingAddress": json.dumps(self.shipping_address.to_json()),
            "items": json.dumps([item.to_json() for item in self.items]),
            "subtotal": str(self.subtotal),
            "shipping": str(self.shipping),
            "tax": str(self.tax),
            "discount": str(self.discount),
            "discountCode": self.discount_code or "",
            "total": str(self.total),
        }

    @classmethod
    def from_metadata(cls, metadata: dict[str, str]) -> "CheckoutSnapshot":
        return cls(
            items=tuple(QuoteItem.from_json(item) for item in json.loads(metadata["items"])),
            shipping_address=ShippingAddress.from_json(json.loads(metadata["shippingAddress"])),
            discount_code=metadata.get("discountCode") or None,
            user_id=metadata.get("userId") or None,
            order_number=metadata.get("orderNumber") or None,
            subtotal=to_money(metadata.get("subtotal") or "0"),
            shipping=to_money(metadata.get("shipping") or "0"),
            tax=to_money(metadata.get("tax") or "0"),
            discount=to_money(metadata.get("discount") or "0"),
            total=to_money(metadata.get("total") or "0"),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Provider results
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class IntentRef:
    provider: str
    provider_ref: str
    redirect_url: str | None
    order_number: str | None


@dataclass(frozen=True, slots=True)
class CaptureResult:
    """Provider-agnostic proof of payment."""

    external_payment_id: str
    amount_captured: Decimal
    currency: str
    payer_email: str | None = None

    def to_json(self) -> str:
        return json.dumps({
            "external_payment_id": self.external_payment_id,
            "amount_captured": str(self.amount_captured),
            "currency": self.currency,
            "payer_email": self.payer_email,
        })

    @classmethod
    def from_json(cls, raw: str) -> "CaptureResult":
        data = json.loads(raw)
        return cls(
            external_payment_id=data["external_payment_id"],
            amount_captured=Decimal(data["amount_captured"]),
            currency=data["currency"],
            payer_email=data.get("payer_email"),
        )


class PaymentAdapter(Protocol):
    name: str

    async def create_intent(
        self,
        quote: PriceQuote,
        snapshot: CheckoutSnapshot,
    ) -> Result[IntentRef, CheckoutError]: ...

    async def finalize(
        self,
        provider_ref: str,
        token: str | None = None,
    ) -> Result[CaptureResult, CheckoutError]: ...


__all__ = (
    "ADDRESS_FIELDS",
    "ShippingAddress",
    "CheckoutSnapshot",
    "IntentRef",
    "CaptureResult",
    "PaymentAdapter",
)
