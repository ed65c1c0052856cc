"""
Orders — the one transaction that turns a capture into an order.

persist() applies, all-or-nothing:
    - attempt CAPTURED → PERSISTED (compare-and-set, taken first)
    - conditional stock decrement per line (product, then variant)
    - conditional discount usage increment
    - order row + item snapshots
"""

import json
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from kungfu import Result, Ok, Error

from storefront._types import CURRENCY, as_utc, from_cents, naive_utc, to_cents
from storefront.errors import CheckoutError, CheckoutErrors
from storefront.payments import CaptureResult, CheckoutSnapshot
from storefront.pricing import PriceQuote, VatExportRow, country_code
from storefront.store._ledger import AttemptStatus
from storefront.store._tables import (
    DiscountCodeTable,
    OrderItemTable,
    OrderTable,
    PaymentAttemptTable,
    ProductTable,
    VariantTable,
)

logger = logging.getLogger(__name__)

PAID = "PAID"


# ═══════════════════════════════════════════════════════════════════════════════
# Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class OrderDraft:
    order_number: str
    idempotency_key: str
    payment_method: str
    snapshot: CheckoutSnapshot
    quote: PriceQuote
    capture: CaptureResult
    paid_at: datetime


@dataclass(frozen=True, slots=True)
class OrderItemRecord:
    product_id: str
    name: str
    price: Decimal
    quantity: int
    size: str | None
    color: str | None


@dataclass(frozen=True, slots=True)
class OrderRecord:
    order_number: str
    status: str
    currency: str
    customer_email: str
    customer_name: str
    country: str
    items: tuple[OrderItemRecord, ...]
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    discount: Decimal
    discount_code: str | None
    total: Decimal
    payment_method: str
    payment_intent_id: str
    paid_at: datetime | None
    created_at: datetime
    user_id: str | None = None


def _record(row: OrderTable) -> OrderRecord:
    return OrderRecord(
        order_number=row.order_number,
        status=row.status,
        currency=row.currency,
        customer_email=row.customer_email,
        customer_name=row.customer_name,
        country=row.country,
        items=tuple(
            OrderItemRecord(
                product_id=item.product_id,
                name=item.name,
                price=from_cents(item.price_cents),
                quantity=item.quantity,
                size=item.size,
                color=item.color,
            )
            for item in row.items
        ),
        subtotal=from_cents(row.subtotal_cents),
        shipping=from_cents(row.shipping_cents),
        tax=from_cents(row.tax_cents),
        discount=from_cents(row.discount_cents),
        discount_code=row.discount_code,
        total=from_cents(row.total_cents),
        payment_method=row.payment_method,
        payment_intent_id=row.payment_intent_id,
        paid_at=as_utc(row.paid_at) if row.paid_at else None,
        created_at=as_utc(row.created_at),
        user_id=row.user_id,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Repository
# ═══════════════════════════════════════════════════════════════════════════════


class OrderRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def persist(self, draft: OrderDraft) -> Result[OrderRecord, CheckoutError]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await self._take_attempt(session, draft)
                    await self._decrement_stock(session, draft)
                    await self._consume_discount(session, draft)
                    row = self._order_row(draft)
                    session.add(row)
                    await session.flush()
                record = _record(row)
        except CheckoutError as e:
            logger.info("Order %s not persisted: %s", draft.order_number, e)
            return Error(e)
        except SQLAlchemyError as e:
            logger.warning("Order %s persistence failed: %s", draft.order_number, e)
            return Error(CheckoutErrors.persistence(f"Could not store order {draft.order_number}: {e}"))

        logger.info(
            "Order %s persisted (%s, %s %s)",
            record.order_number,
            record.payment_intent_id,
            record.total,
            record.currency,
        )
        return Ok(record)

    async def _take_attempt(self, session: AsyncSession, draft: OrderDraft) -> None:
        stmt = (
            update(PaymentAttemptTable)
            .where(
                PaymentAttemptTable.idempotency_key == draft.idempotency_key,
                PaymentAttemptTable.status == AttemptStatus.CAPTURED,
            )
            .values(
                status=AttemptStatus.PERSISTED,
                order_number=draft.order_number,
                lease_expires_at=None,
                updated_at=naive_utc(draft.paid_at),
            )
        )
        if (await session.execute(stmt)).rowcount != 1:
            raise CheckoutErrors.persistence(
                f"Attempt {draft.idempotency_key} is no longer awaiting persistence",
                idempotency_key=draft.idempotency_key,
            )

    async def _decrement_stock(self, session: AsyncSession, draft: OrderDraft) -> None:
        per_product = Counter[str]()
        for line in draft.quote.lines:
            per_product[line.product_id] += line.quantity

        for product_id, quantity in per_product.items():
            stmt = (
                update(ProductTable)
                .where(ProductTable.id == product_id, ProductTable.quantity >= quantity)
                .values(
                    quantity=ProductTable.quantity - quantity,
                    in_stock=(ProductTable.quantity - quantity) > 0,
                )
            )
            if (await session.execute(stmt)).rowcount != 1:
                raise CheckoutErrors.insufficient_stock(product_id, quantity)

        for line in draft.quote.lines:
            if line.size is None and line.color is None:
                continue
            variant = (
                VariantTable.size.is_(None) if line.size is None else VariantTable.size == line.size,
                VariantTable.color.is_(None) if line.color is None else VariantTable.color == line.color,
            )
            tracked = await session.scalar(
                select(func.count()).select_from(VariantTable).where(VariantTable.product_id == line.product_id, *variant)
            )
            if not tracked:
                continue
            stmt = (
                update(VariantTable)
                .where(VariantTable.product_id == line.product_id, *variant, VariantTable.quantity >= line.quantity)
                .values(quantity=VariantTable.quantity - line.quantity)
            )
            if (await session.execute(stmt)).rowcount != 1:
                raise CheckoutErrors.insufficient_stock(line.product_id, line.quantity)

    async def _consume_discount(self, session: AsyncSession, draft: OrderDraft) -> None:
        code = draft.quote.discount_code
        if not code or draft.quote.discount_amount <= 0:
            return
        stmt = (
            update(DiscountCodeTable)
            .where(
                DiscountCodeTable.code == code,
                DiscountCodeTable.is_active.is_(True),
                (DiscountCodeTable.usage_limit.is_(None))
                | (DiscountCodeTable.used_count < DiscountCodeTable.usage_limit),
            )
            .values(used_count=DiscountCodeTable.used_count + 1)
        )
        if (await session.execute(stmt)).rowcount != 1:
            raise CheckoutErrors.discount_invalid(f"Discount code {code} was used up before the order was stored")

    def _order_row(self, draft: OrderDraft) -> OrderTable:
        snapshot, quote, capture = draft.snapshot, draft.quote, draft.capture
        address = snapshot.shipping_address
        paid_at = naive_utc(draft.paid_at)
        return OrderTable(
            order_number=draft.order_number,
            status=PAID,
            currency=CURRENCY,
            user_id=snapshot.user_id,
            customer_email=capture.payer_email or address.email,
            customer_name=address.name,
            shipping_address=json.dumps(address.to_json()),
            country=country_code(address.country),
            subtotal_cents=to_cents(quote.subtotal),
            shipping_cents=to_cents(quote.shipping_cost),
            tax_cents=to_cents(quote.vat_amount),
            discount_cents=to_cents(quote.discount_amount),
            discount_code=quote.discount_code,
            total_cents=to_cents(quote.grand_total),
            payment_method=draft.payment_method,
            payment_intent_id=capture.external_payment_id,
            paid_at=paid_at,
            created_at=paid_at,
            items=[
                OrderItemTable(
                    product_id=line.product_id,
                    name=line.name,
                    price_cents=to_cents(line.unit_price),
                    quantity=line.quantity,
                    size=line.size,
                    color=line.color,
                    image=line.image,
                )
                for line in quote.lines
            ],
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────────────

    async def get(self, order_number: str) -> OrderRecord | None:
        async with self._session_factory() as session:
            stmt = select(OrderTable).where(OrderTable.order_number == order_number)
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _record(row) if row is not None else None

    async def get_by_payment(self, external_payment_id: str) -> OrderRecord | None:
        async with self._session_factory() as session:
            stmt = select(OrderTable).where(OrderTable.payment_intent_id == external_payment_id)
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _record(row) if row is not None else None

    async def count(self) -> int:
        async with self._session_factory() as session:
            return int(await session.scalar(select(func.count()).select_from(OrderTable)) or 0)

    async def vat_rows(self, since: datetime | None = None) -> list[VatExportRow]:
        async with self._session_factory() as session:
            stmt = select(OrderTable).where(OrderTable.status == PAID).order_by(OrderTable.created_at)
            if since is not None:
                stmt = stmt.where(OrderTable.created_at >= naive_utc(since))
            rows = (await session.execute(stmt)).scalars()
            return [
                VatExportRow(
                    order_number=row.order_number,
                    created_at=as_utc(row.created_at),
                    subtotal=from_cents(row.subtotal_cents),
                    country=row.country,
                )
                for row in rows
            ]


__all__ = ("PAID", "OrderDraft", "OrderItemRecord", "OrderRecord", "OrderRepository")
