"""
Store — SQLAlchemy persistence for catalog, orders and the finalize ledger.

    session_factory, engine = await create_database("sqlite+aiosqlite:///shop.db")
    catalog = SqlCatalog(session_factory)
    ledger = AttemptLedger(session_factory)
    orders = OrderRepository(session_factory)
"""

from storefront.store._tables import (
    Base,
    ProductTable,
    VariantTable,
    DiscountCodeTable,
    OrderTable,
    OrderItemTable,
    PaymentAttemptTable,
    ManualReviewTable,
    create_database,
)
from storefront.store._catalog import SqlCatalog, SqlDiscounts, product_snapshot, discount_snapshot
from storefront.store._ledger import AttemptStatus, AttemptRecord, ManualReview, AttemptLedger
from storefront.store._orders import PAID, OrderDraft, OrderItemRecord, OrderRecord, OrderRepository

__all__ = (
    # Tables
    "Base",
    "ProductTable",
    "VariantTable",
    "DiscountCodeTable",
    "OrderTable",
    "OrderItemTable",
    "PaymentAttemptTable",
    "ManualReviewTable",
    "create_database",
    # Catalog
    "SqlCatalog",
    "SqlDiscounts",
    "product_snapshot",
    "discount_snapshot",
    # Ledger
    "AttemptStatus",
    "AttemptRecord",
    "ManualReview",
    "AttemptLedger",
    # Orders
    "PAID",
    "OrderDraft",
    "OrderItemRecord",
    "OrderRecord",
    "OrderRepository",
)
