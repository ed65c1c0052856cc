"""
Pricing pipeline — authoritative quote as a nodnod graph.

    QuoteRequest, PricingContext (injected)
         │
         ▼
    AuthoritativeLinesNode  (re-reads every product, checks stock)
         │
         ▼
    SubtotalNode ──┬── ShippingNode
                   ├── VatNode
                   └── DiscountNode
                         │
                         ▼
                    QuoteNode  (grand total > 0)

Client prices never enter the graph: QuoteItem has no price field.

Note: no 'from __future__ import annotations' here, nodnod reads the
__compose__ hints at runtime.
"""

import logging
from collections import Counter
from datetime import datetime
from decimal import Decimal

from kungfu import Ok, Error, Result, LazyCoroResult

import combinators as C
from storefront import graph as G
from storefront._types import ZERO, round_money, utcnow
from storefront.errors import CheckoutError, CheckoutErrors
from storefront.pricing._discount import (
    DiscountLookup,
    DiscountValid,
    DiscountInvalid,
    validate_discount,
)
from storefront.pricing._shipping import ShippableItem, ShippingQuote, quote_shipping
from storefront.pricing._types import (
    Catalog,
    PricedLine,
    PriceQuote,
    PricingContext,
    ProductSnapshot,
    QuoteItem,
    QuoteRequest,
)
from storefront.pricing._vat import VatBreakdown, extract_vat

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Lines
# ═══════════════════════════════════════════════════════════════════════════════


def _as_checkout_error(e: Exception) -> CheckoutError:
    if isinstance(e, CheckoutError):
        return e
    return CheckoutErrors.persistence(f"Catalog lookup failed: {e}")


def _authorize(item: QuoteItem, product: ProductSnapshot | None) -> Result[PricedLine, CheckoutError]:
    if product is None:
        return Error(CheckoutErrors.missing_product(item.product_id))
    if product.variants and product.variant(item.size, item.color) is None:
        return Error(CheckoutErrors.unknown_variant(product.id, product.name, item.size, item.color))
    available = product.available(item.size, item.color)
    if available < item.quantity:
        return Error(CheckoutErrors.out_of_stock(product.id, product.name, item.quantity, available))
    return Ok(PricedLine(
        product_id=product.id,
        name=product.name,
        unit_price=product.price,
        quantity=item.quantity,
        category=product.category,
        size=item.size,
        color=item.color,
        image=product.image,
    ))


@G.node
class AuthoritativeLinesNode:
    """Re-fetch every line's product concurrently; fail fast on the first bad one."""

    def __init__(self, lines: tuple[PricedLine, ...]) -> None:
        self.lines = lines

    @classmethod
    async def __compose__(cls, request: QuoteRequest, ctx: PricingContext) -> "AuthoritativeLinesNode":
        if not request.items:
            raise CheckoutErrors.validation("Cart is empty")
        for item in request.items:
            if item.quantity < 1:
                raise CheckoutErrors.validation(
                    f"Invalid quantity {item.quantity} for product {item.product_id}",
                    product_id=item.product_id,
                )

        def price_line(item: QuoteItem) -> LazyCoroResult[tuple[PricedLine, ProductSnapshot], CheckoutError]:
            fetch = C.catching_async(
                lambda: ctx.catalog.get_product(item.product_id),
                on_error=_as_checkout_error,
            )
            return fetch.then(
                lambda product: C.from_result(_authorize(item, product).map(lambda line: (line, product)))
            )

        result = await C.traverse_par(list(request.items), price_line)()

        match result:
            case Ok(pairs):
                lines = tuple(line for line, _ in pairs)
                products = {product.id: product for _, product in pairs}
            case Error(e):
                raise e

        # Several variant lines may draw on the same product-level stock.
        wanted = Counter[str]()
        for line in lines:
            wanted[line.product_id] += line.quantity
        for product_id, quantity in wanted.items():
            product = products[product_id]
            if product.available() < quantity:
                raise CheckoutErrors.out_of_stock(product_id, product.name, quantity, product.available())

        return cls(lines)


# ═══════════════════════════════════════════════════════════════════════════════
# Totals
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class SubtotalNode:
    def __init__(self, subtotal: Decimal) -> None:
        self.subtotal = subtotal

    @classmethod
    def __compose__(cls, lines: AuthoritativeLinesNode) -> "SubtotalNode":
        return cls(round_money(sum((line.line_total for line in lines.lines), ZERO)))


@G.node
class ShippingNode:
    def __init__(self, quote: ShippingQuote) -> None:
        self.quote = quote

    @classmethod
    def __compose__(cls, lines: AuthoritativeLinesNode, request: QuoteRequest) -> "ShippingNode":
        items = [ShippableItem(line.category, line.quantity) for line in lines.lines]
        return cls(quote_shipping(items, request.zone))


@G.node
class VatNode:
    def __init__(self, breakdown: VatBreakdown) -> None:
        self.breakdown = breakdown

    @classmethod
    def __compose__(cls, subtotal: SubtotalNode) -> "VatNode":
        return cls(extract_vat(subtotal.subtotal))


@G.node
class DiscountNode:
    """Applies to the subtotal only. An unusable code prices as no discount."""

    def __init__(self, code: str | None, amount: Decimal, error: str | None) -> None:
        self.code = code
        self.amount = amount
        self.error = error

    @classmethod
    async def __compose__(cls, subtotal: SubtotalNode, request: QuoteRequest, ctx: PricingContext) -> "DiscountNode":
        if not request.discount_code:
            return cls(None, ZERO, None)

        outcome = await validate_discount(ctx.discounts, request.discount_code, subtotal.subtotal, ctx.now)
        match outcome:
            case DiscountValid(code=code, amount=amount):
                return cls(code, amount, None)
            case DiscountInvalid(reason=reason):
                logger.info("Discount %s not applied: %s", request.discount_code, reason)
                return cls(None, ZERO, reason)


@G.node
class QuoteNode:
    def __init__(self, quote: PriceQuote) -> None:
        self.quote = quote

    @classmethod
    def __compose__(
        cls,
        request: QuoteRequest,
        lines: AuthoritativeLinesNode,
        subtotal: SubtotalNode,
        shipping: ShippingNode,
        vat: VatNode,
        discount: DiscountNode,
    ) -> "QuoteNode":
        grand_total = round_money(subtotal.subtotal + shipping.quote.cost - discount.amount)
        if grand_total <= 0:
            raise CheckoutErrors.non_positive_total(grand_total)

        return cls(PriceQuote(
            lines=lines.lines,
            zone=request.zone,
            subtotal=subtotal.subtotal,
            vat_rate=vat.breakdown.rate,
            vat_amount=vat.breakdown.vat_amount,
            vat_exclusive_subtotal=vat.breakdown.ex_vat_amount,
            shipping_cost=shipping.quote.cost,
            shipping_method=shipping.quote.method,
            estimated_days=shipping.quote.estimated_days,
            discount_amount=discount.amount,
            grand_total=grand_total,
            discount_code=discount.code,
            discount_error=discount.error,
        ))


# ═══════════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════════


async def price(
    catalog: Catalog,
    discounts: DiscountLookup,
    request: QuoteRequest,
    now: datetime | None = None,
) -> Result[PriceQuote, CheckoutError]:
    """Run the pricing graph. Domain failures come back as Error."""
    ctx = PricingContext(catalog=catalog, discounts=discounts, now=now or utcnow())
    try:
        node = await G.run(QuoteNode).given(request, ctx).named("pricing")
    except CheckoutError as e:
        logger.info("Quote rejected: %s", e)
        return Error(e)
    return Ok(node.quote)


__all__ = (
    "AuthoritativeLinesNode",
    "SubtotalNode",
    "ShippingNode",
    "VatNode",
    "DiscountNode",
    "QuoteNode",
    "price",
)
