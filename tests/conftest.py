import asyncio
from dataclasses import replace
from datetime import timedelta
from decimal import Decimal
from urllib.parse import parse_qs

import httpx
import pytest
import pytest_asyncio
from kungfu import Ok, Error

from storefront._types import ProductCategory
from storefront.config import Settings
from storefront.errors import CheckoutError
from storefront.finalize import FinalizeDeps
from storefront.payments import CaptureResult, CheckoutSnapshot, IntentRef, ShippingAddress
from storefront.pricing import QuoteItem
from storefront.seed import SeedProduct, seed_catalog, seed_discounts
from storefront.store import AttemptLedger, OrderRepository, SqlCatalog, SqlDiscounts, create_database

JACKET = "vintage-black-leather-jacket"
TEE = "oversized-white-t-shirt"
TROUSERS = "minimalist-black-trousers"
SNEAKERS = "classic-white-sneakers"
WATCH = "minimalist-silver-watch"
SCARF = "last-wool-scarf"

LAST_SCARF = SeedProduct(
    id=SCARF,
    name="Wool Scarf",
    price=Decimal("39.99"),
    category=ProductCategory.ACCESSORIES,
    quantity=1,
)


SETTINGS = Settings(
    hosted_api_base="https://hosted.test",
    hosted_secret_key="sk_test_123",
    hosted_webhook_secret="whsec_test",
    paypal_api_base="https://paypal.test",
    paypal_client_id="client",
    paypal_client_secret="secret",
    site_url="https://shop.test",
)


class Recorder:
    """MockTransport handler that answers from a route table and keeps every request."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        respond = self.routes[(request.method, request.url.path)]
        return respond(request) if callable(respond) else respond

    def form(self, index: int) -> dict[str, str]:
        return {k: v[0] for k, v in parse_qs(self.requests[index].content.decode()).items()}


class FakeAdapter:
    """Payment provider double: charges a fixed amount per call."""

    def __init__(
        self,
        amount: Decimal | str,
        name: str = "fake",
        error: CheckoutError | None = None,
        barrier: asyncio.Barrier | None = None,
        currency: str = "EUR",
        gate: asyncio.Event | None = None,
    ) -> None:
        self.name = name
        self.amount = Decimal(amount)
        self.currency = currency
        self.error = error
        self.barrier = barrier
        self.gate = gate
        self.calls = 0
        self.intents: list[CheckoutSnapshot] = []

    async def create_intent(self, quote, snapshot):
        self.intents.append(snapshot)
        return Ok(IntentRef(self.name, f"ref-{len(self.intents)}", "https://pay.example/approve", snapshot.order_number))

    async def finalize(self, provider_ref, token=None):
        self.calls += 1
        if self.barrier is not None:
            await self.barrier.wait()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            return Error(self.error)
        return Ok(CaptureResult(
            external_payment_id=f"pay_{provider_ref}",
            amount_captured=self.amount,
            currency=self.currency,
            payer_email="buyer@example.com",
        ))


class RecordingNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent = []

    async def order_confirmed(self, order):
        if self.fail:
            raise RuntimeError("mail server down")
        self.sent.append(order.order_number)


def address(country: str = "Germany") -> ShippingAddress:
    return ShippingAddress(
        email="buyer@example.com",
        name="Ada Buyer",
        address="Hauptstrasse 1",
        city="Berlin",
        zip="10115",
        country=country,
        phone="+49 30 123456",
    )


def snapshot(*items: QuoteItem, country: str = "Germany", discount_code: str | None = None) -> CheckoutSnapshot:
    return CheckoutSnapshot(items=items, shipping_address=address(country), discount_code=discount_code)


def make_deps(session_factory, notifier=None, **overrides) -> FinalizeDeps:
    deps = FinalizeDeps(
        ledger=AttemptLedger(session_factory),
        orders=OrderRepository(session_factory),
        catalog=SqlCatalog(session_factory),
        discounts=SqlDiscounts(session_factory),
        notifier=notifier or RecordingNotifier(),
        wait=timedelta(seconds=5),
        retry_delay=0.0,
        poll_interval=0.01,
    )
    return replace(deps, **overrides)


@pytest_asyncio.fixture
async def db(tmp_path):
    session_factory, engine = await create_database(f"sqlite+aiosqlite:///{tmp_path / 'shop.db'}")
    await seed_catalog(session_factory)
    await seed_catalog(session_factory, products=(LAST_SCARF,))
    await seed_discounts(session_factory)
    yield session_factory
    await engine.dispose()


@pytest.fixture
def notifier():
    return RecordingNotifier()
