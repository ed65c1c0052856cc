from datetime import timedelta
from decimal import Decimal

import pytest

from storefront.config import Settings, logging_config
from storefront.seed import SEED_PRODUCTS, seed_catalog, seed_discounts
from storefront.store import SqlCatalog


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("SITE_URL", "https://shop.example/")
    monkeypatch.setenv("AMOUNT_TOLERANCE", "0.02")
    monkeypatch.setenv("FINALIZE_LEASE_SECONDS", "45")
    monkeypatch.setenv("PERSIST_RETRIES", "5")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = Settings.from_env(dotenv=False)

    assert settings.database_url == "sqlite+aiosqlite:///:memory:"
    assert settings.site_url == "https://shop.example"
    assert settings.amount_tolerance == Decimal("0.02")
    assert settings.finalize_lease == timedelta(seconds=45)
    assert settings.persist_retries == 5
    assert settings.log_level == "DEBUG"


def test_settings_defaults(monkeypatch):
    for name in ("DATABASE_URL", "AMOUNT_TOLERANCE", "PERSIST_RETRIES"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env(dotenv=False)

    assert settings.amount_tolerance == Decimal("0.01")
    assert settings.persist_retries == 3


def test_logging_config_levels():
    config = logging_config("DEBUG")

    assert config["loggers"]["storefront"]["level"] == "DEBUG"
    assert config["root"]["level"] == "WARNING"


@pytest.mark.asyncio
async def test_seeding_is_idempotent(db):
    assert await seed_catalog(db) == 0
    assert await seed_discounts(db) == 0

    products = await SqlCatalog(db).list_products()
    assert {p.id for p in SEED_PRODUCTS} <= {p.id for p in products}


@pytest.mark.asyncio
async def test_seed_splits_stock_across_variants(db):
    tee = await SqlCatalog(db).get_product("oversized-white-t-shirt")

    assert tee.quantity == 50
    assert len(tee.variants) == 12
    assert {v.quantity for v in tee.variants} == {4}


def test_cli_serves_by_default_and_seeds_on_flag():
    from storefront.__main__ import build_parser

    plain = build_parser().parse_args([])
    assert (plain.host, plain.port, plain.seed) == ("127.0.0.1", 8000, False)

    seeded = build_parser().parse_args(["--seed", "--port", "9000"])
    assert seeded.seed is True
    assert seeded.port == 9000
