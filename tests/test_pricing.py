from decimal import Decimal

import pytest
from kungfu import Ok, Error
from sqlalchemy import update

from storefront.errors import ErrorKind
from storefront.pricing import DiscountCode, DiscountKind, QuoteItem, QuoteRequest, Reasons, ShippingZone, price
from storefront.store import ProductTable, SqlCatalog, SqlDiscounts

from conftest import JACKET, SNEAKERS, TEE


async def quote(db, *items, zone=ShippingZone.EU, code=None):
    return await price(SqlCatalog(db), SqlDiscounts(db), QuoteRequest(items, zone, code))


def error_kind(result) -> ErrorKind:
    match result:
        case Error(e):
            return e.kind
        case Ok(q):
            raise AssertionError(f"expected an error, got {q}")


@pytest.mark.asyncio
async def test_eu_clothing_quote(db):
    match await quote(db, QuoteItem(TEE, 2, "M", "White")):
        case Ok(q):
            pass
        case Error(e):
            raise AssertionError(e)

    assert q.subtotal == Decimal("99.98")
    assert q.shipping_cost == Decimal("0.00")
    assert q.vat_exclusive_subtotal == Decimal("82.63")
    assert q.vat_amount == Decimal("17.35")
    assert q.grand_total == Decimal("99.98")
    assert q.lines[0].unit_price == Decimal("49.99")


@pytest.mark.asyncio
async def test_eu_footwear_adds_flat_fee(db):
    q = (await quote(db, QuoteItem(SNEAKERS, 1, "42", "White"))).unwrap()

    assert q.shipping_method == "EU Shipping"
    assert q.grand_total == Decimal("159.99")


@pytest.mark.asyncio
async def test_us_mixed_cart(db):
    q = (await quote(
        db,
        QuoteItem(JACKET, 1, "M", "Black"),
        QuoteItem(SNEAKERS, 1, "42", "White"),
        zone=ShippingZone.US,
    )).unwrap()

    assert q.subtotal == Decimal("449.98")
    assert q.shipping_cost == Decimal("55.00")
    assert q.grand_total == Decimal("504.98")


@pytest.mark.asyncio
async def test_discount_applies_to_subtotal_only(db):
    q = (await quote(db, QuoteItem(SNEAKERS, 1, "42", "White"), code="welcome10")).unwrap()

    assert q.discount_code == "WELCOME10"
    assert q.discount_amount == Decimal("15.00")
    assert q.grand_total == Decimal("144.99")


@pytest.mark.asyncio
async def test_unusable_code_prices_without_discount(db):
    q = (await quote(db, QuoteItem(TEE, 1, "S", "Black"), code="NOPE")).unwrap()

    assert q.discount_amount == Decimal("0.00")
    assert q.discount_code is None
    assert q.discount_error == Reasons.NOT_FOUND
    assert q.grand_total == Decimal("49.99")


@pytest.mark.asyncio
async def test_current_catalog_price_wins(db):
    async with db() as session, session.begin():
        await session.execute(update(ProductTable).where(ProductTable.id == TEE).values(price_cents=5999))

    q = (await quote(db, QuoteItem(TEE, 1, "S", "Black"))).unwrap()

    assert q.grand_total == Decimal("59.99")


@pytest.mark.asyncio
async def test_missing_product(db):
    result = await quote(db, QuoteItem("discontinued-hat", 1))

    assert error_kind(result) is ErrorKind.STALE_OR_MISSING_PRODUCT


@pytest.mark.asyncio
async def test_variant_stock_exceeded(db):
    # 50 tees over 4 sizes x 3 colors leaves 4 per variant
    result = await quote(db, QuoteItem(TEE, 5, "M", "White"))

    assert error_kind(result) is ErrorKind.STALE_OR_MISSING_PRODUCT


@pytest.mark.asyncio
async def test_unknown_variant_is_rejected(db):
    result = await quote(db, QuoteItem(TEE, 1, "XXL", "White"))

    assert error_kind(result) is ErrorKind.STALE_OR_MISSING_PRODUCT
    assert error_kind(await quote(db, QuoteItem(TEE, 1))) is ErrorKind.STALE_OR_MISSING_PRODUCT


@pytest.mark.asyncio
async def test_product_stock_shared_across_variant_lines(db):
    async with db() as session, session.begin():
        await session.execute(update(ProductTable).where(ProductTable.id == TEE).values(quantity=3))

    result = await quote(db, QuoteItem(TEE, 2, "M", "White"), QuoteItem(TEE, 2, "L", "White"))

    assert error_kind(result) is ErrorKind.STALE_OR_MISSING_PRODUCT


@pytest.mark.asyncio
async def test_out_of_stock_flag(db):
    async with db() as session, session.begin():
        await session.execute(update(ProductTable).where(ProductTable.id == JACKET).values(in_stock=False))

    assert error_kind(await quote(db, QuoteItem(JACKET, 1, "M", "Black"))) is ErrorKind.STALE_OR_MISSING_PRODUCT


@pytest.mark.asyncio
async def test_empty_cart(db):
    assert error_kind(await quote(db)) is ErrorKind.VALIDATION


@pytest.mark.asyncio
async def test_zero_quantity_line(db):
    assert error_kind(await quote(db, QuoteItem(TEE, 0, "M", "White"))) is ErrorKind.VALIDATION


@pytest.mark.asyncio
async def test_non_positive_total(db):
    await SqlDiscounts(db).add(DiscountCode(code="FREEBIE", kind=DiscountKind.FIXED, value=Decimal("100.00")))

    result = await quote(db, QuoteItem(TEE, 1, "M", "White"), code="FREEBIE")

    assert error_kind(result) is ErrorKind.NON_POSITIVE_TOTAL
