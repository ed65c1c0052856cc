from decimal import Decimal

from kungfu import Ok, Error

from storefront._types import ProductCategory
from storefront.cart import Cart, CartItem, line_id_for
from storefront.errors import ErrorKind
from storefront.pricing import QuoteItem

TEE_M_WHITE = CartItem(
    product_id="oversized-white-t-shirt",
    name="Oversized White T-Shirt",
    unit_price=Decimal("49.99"),
    category=ProductCategory.TOPS,
    size="M",
    color="White",
)
WATCH = CartItem(
    product_id="minimalist-silver-watch",
    name="Minimalist Silver Watch",
    unit_price=Decimal("179.99"),
    category=ProductCategory.ACCESSORIES,
)


def add(cart: Cart, item: CartItem, ceiling: int | None = None) -> Cart:
    match cart.add(item, ceiling):
        case Ok(updated):
            return updated
        case Error(e):
            raise AssertionError(f"add failed: {e}")


def test_line_id_format():
    assert line_id_for("tee", "M", "White") == "tee-M-White"
    assert line_id_for("watch") == "watch-no-size-no-color"


def test_same_variant_merges_into_one_line():
    cart = add(add(Cart(), TEE_M_WHITE), TEE_M_WHITE)

    assert len(cart.lines) == 1
    assert cart.lines[0].quantity == 2
    assert cart.item_count() == 2
    assert cart.total() == Decimal("99.98")


def test_add_leaves_original_untouched():
    empty = Cart()
    full = add(empty, WATCH)

    assert empty.is_empty()
    assert not full.is_empty()


def test_stock_ceiling_blocks_add():
    cart = add(Cart(), TEE_M_WHITE, ceiling=1)

    result = cart.add(TEE_M_WHITE)

    match result:
        case Error(e):
            assert e.kind is ErrorKind.VALIDATION
            assert e.details["stock_ceiling"] == 1
        case Ok(_):
            raise AssertionError("expected the ceiling to hold")
    assert cart.lines[0].quantity == 1


def test_out_of_stock_item_cannot_be_added():
    result = Cart().add(WATCH, stock_ceiling=0)

    assert isinstance(result, Error)


def test_set_quantity():
    cart = add(Cart(), TEE_M_WHITE, ceiling=5)
    line_id = cart.lines[0].line_id

    assert cart.set_quantity(line_id, 4).unwrap().lines[0].quantity == 4
    assert isinstance(cart.set_quantity(line_id, 6), Error)


def test_set_quantity_zero_removes_line():
    cart = add(add(Cart(), TEE_M_WHITE), WATCH)

    updated = cart.set_quantity(line_id_for(WATCH.product_id), 0).unwrap()

    assert [line.product_id for line in updated.lines] == [TEE_M_WHITE.product_id]


def test_set_quantity_unknown_line():
    match Cart().set_quantity("nope", 1):
        case Error(e):
            assert e.kind is ErrorKind.VALIDATION
        case Ok(_):
            raise AssertionError("expected an error")


def test_remove_and_clear():
    cart = add(add(Cart(), TEE_M_WHITE), WATCH)

    assert len(cart.remove(line_id_for(WATCH.product_id)).lines) == 1
    assert cart.clear().is_empty()


def test_quote_items_carry_no_prices():
    cart = add(add(add(Cart(), TEE_M_WHITE), TEE_M_WHITE), WATCH)

    assert cart.to_quote_items() == (
        QuoteItem("oversized-white-t-shirt", 2, "M", "White"),
        QuoteItem("minimalist-silver-watch", 1, None, None),
    )


def test_dumps_and_loads():
    cart = add(add(Cart(), TEE_M_WHITE, ceiling=3), WATCH)

    restored = Cart.loads(cart.dumps())

    assert restored == cart
    assert restored.lines[0].stock_ceiling == 3
