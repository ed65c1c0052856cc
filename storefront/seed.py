"""
Demo catalog and the launch discount code.

Variant stock is split evenly across size × color, remainder dropped,
the same way the catalog was first loaded.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront._types import ProductCategory, naive_utc, to_cents, utcnow
from storefront.pricing import DiscountCode, DiscountKind
from storefront.store import DiscountCodeTable, ProductTable, SqlDiscounts, VariantTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SeedProduct:
    id: str
    name: str
    price: Decimal
    category: ProductCategory
    quantity: int
    sizes: tuple[str, ...] = ()
    colors: tuple[str, ...] = ()
    description: str | None = None
    image: str | None = None


SEED_PRODUCTS = (
    SeedProduct(
        id="vintage-black-leather-jacket",
        name="Vintage Black Leather Jacket",
        price=Decimal("299.99"),
        category=ProductCategory.TOPS,
        quantity=15,
        sizes=("S", "M", "L", "XL"),
        colors=("Black",),
        description="Classic vintage black leather jacket with a slim fit.",
    ),
    SeedProduct(
        id="oversized-white-t-shirt",
        name="Oversized White T-Shirt",
        price=Decimal("49.99"),
        category=ProductCategory.TOPS,
        quantity=50,
        sizes=("S", "M", "L", "XL"),
        colors=("White", "Black", "Gray"),
        description="Minimalist oversized t-shirt in organic cotton.",
    ),
    SeedProduct(
        id="minimalist-black-trousers",
        name="Minimalist Black Trousers",
        price=Decimal("89.99"),
        category=ProductCategory.BOTTOMS,
        quantity=25,
        sizes=("28", "30", "32", "34", "36"),
        colors=("Black", "Gray"),
        description="Sleek slim-fit trousers.",
    ),
    SeedProduct(
        id="classic-white-sneakers",
        name="Classic White Sneakers",
        price=Decimal("149.99"),
        category=ProductCategory.FOOTWEAR,
        quantity=40,
        sizes=("40", "41", "42", "43", "44"),
        colors=("White",),
        description="Clean leather sneakers.",
    ),
    SeedProduct(
        id="minimalist-silver-watch",
        name="Minimalist Silver Watch",
        price=Decimal("179.99"),
        category=ProductCategory.ACCESSORIES,
        quantity=35,
        colors=("Silver",),
        description="Stainless steel watch with a clean dial.",
    ),
)

WELCOME10 = DiscountCode(
    code="WELCOME10",
    kind=DiscountKind.PERCENTAGE,
    value=Decimal("10"),
    usage_limit=1,
    description="10% off your first order",
)


def _variants(product: SeedProduct) -> list[VariantTable]:
    if product.sizes and product.colors:
        each = product.quantity // (len(product.sizes) * len(product.colors))
        return [VariantTable(size=s, color=c, quantity=each) for s in product.sizes for c in product.colors]
    if product.sizes:
        each = product.quantity // len(product.sizes)
        return [VariantTable(size=s, color=None, quantity=each) for s in product.sizes]
    if product.colors:
        each = product.quantity // len(product.colors)
        return [VariantTable(size=None, color=c, quantity=each) for c in product.colors]
    return []


async def seed_catalog(
    session_factory: async_sessionmaker[AsyncSession],
    products: tuple[SeedProduct, ...] = SEED_PRODUCTS,
    now: datetime | None = None,
) -> int:
    """Insert missing products; existing ids are left alone. Returns the number added."""
    created_at = naive_utc(now or utcnow())
    added = 0
    async with session_factory() as session, session.begin():
        existing = set((await session.execute(select(ProductTable.id))).scalars())
        for product in products:
            if product.id in existing:
                continue
            session.add(ProductTable(
                id=product.id,
                name=product.name,
                description=product.description,
                price_cents=to_cents(product.price),
                category=product.category.value,
                image=product.image,
                quantity=product.quantity,
                in_stock=product.quantity > 0,
                created_at=created_at,
                variants=_variants(product),
            ))
            added += 1
    logger.info("Seeded %d product(s)", added)
    return added


async def seed_discounts(
    session_factory: async_sessionmaker[AsyncSession],
    codes: tuple[DiscountCode, ...] = (WELCOME10,),
) -> int:
    discounts = SqlDiscounts(session_factory)
    async with session_factory() as session:
        existing = set((await session.execute(select(DiscountCodeTable.code))).scalars())
    added = 0
    for code in codes:
        if code.code not in existing:
            await discounts.add(code)
            added += 1
    return added


__all__ = (
    "SeedProduct",
    "SEED_PRODUCTS",
    "WELCOME10",
    "seed_catalog",
    "seed_discounts",
)
