"""Read side: products and discount codes as pricing snapshots."""

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront._types import ProductCategory, from_cents, naive_utc, to_cents
from storefront.errors import CheckoutErrors
from storefront.pricing import DiscountCode, DiscountKind, ProductSnapshot, VariantSnapshot, normalize_code
from storefront.store._tables import DiscountCodeTable, ProductTable

logger = logging.getLogger(__name__)


def product_snapshot(row: ProductTable) -> ProductSnapshot:
    return ProductSnapshot(
        id=row.id,
        name=row.name,
        price=from_cents(row.price_cents),
        category=ProductCategory(row.category),
        quantity=row.quantity,
        in_stock=row.in_stock and row.quantity > 0,
        image=row.image,
        variants=tuple(VariantSnapshot(v.size, v.color, v.quantity) for v in row.variants),
    )


def discount_snapshot(row: DiscountCodeTable) -> DiscountCode:
    return DiscountCode(
        code=row.code,
        kind=DiscountKind(row.kind),
        value=from_cents(row.value),
        is_active=row.is_active,
        used_count=row.used_count,
        min_purchase=from_cents(row.min_purchase_cents) if row.min_purchase_cents is not None else None,
        max_discount=from_cents(row.max_discount_cents) if row.max_discount_cents is not None else None,
        usage_limit=row.usage_limit,
        valid_from=row.valid_from,
        valid_until=row.valid_until,
        description=row.description,
    )


class SqlCatalog:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_product(self, product_id: str) -> ProductSnapshot | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(ProductTable, product_id)
                return product_snapshot(row) if row is not None else None
        except SQLAlchemyError as e:
            logger.exception("Product lookup failed for %s", product_id)
            raise CheckoutErrors.persistence(f"Product lookup failed: {e}") from e

    async def list_products(self) -> list[ProductSnapshot]:
        async with self._session_factory() as session:
            rows = (await session.execute(select(ProductTable).order_by(ProductTable.created_at))).scalars()
            return [product_snapshot(row) for row in rows]

    async def stock_of(self, product_id: str) -> int | None:
        async with self._session_factory() as session:
            row = await session.get(ProductTable, product_id)
            return row.quantity if row is not None else None


class SqlDiscounts:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_discount(self, code: str) -> DiscountCode | None:
        try:
            async with self._session_factory() as session:
                stmt = select(DiscountCodeTable).where(DiscountCodeTable.code == normalize_code(code))
                row = (await session.execute(stmt)).scalar_one_or_none()
                return discount_snapshot(row) if row is not None else None
        except SQLAlchemyError as e:
            logger.exception("Discount lookup failed for %s", code)
            raise CheckoutErrors.persistence(f"Discount lookup failed: {e}") from e

    async def add(self, discount: DiscountCode) -> None:
        """Admin-side insert; codes are stored upper-cased."""
        async with self._session_factory() as session, session.begin():
            session.add(DiscountCodeTable(
                code=normalize_code(discount.code),
                description=discount.description,
                kind=discount.kind.value,
                value=to_cents(discount.value),
                min_purchase_cents=to_cents(discount.min_purchase) if discount.min_purchase is not None else None,
                max_discount_cents=to_cents(discount.max_discount) if discount.max_discount is not None else None,
                usage_limit=discount.usage_limit,
                used_count=discount.used_count,
                valid_from=naive_utc(discount.valid_from) if discount.valid_from else None,
                valid_until=naive_utc(discount.valid_until) if discount.valid_until else None,
                is_active=discount.is_active,
            ))
        logger.info("Discount code %s added", discount.code)


__all__ = ("SqlCatalog", "SqlDiscounts", "product_snapshot", "discount_snapshot")
