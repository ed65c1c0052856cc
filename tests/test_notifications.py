from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from storefront.config import Settings
from storefront.finalize import FinalizeCommand, finalize
from storefront.notifications import (
    LoggingNotifier,
    SmtpNotifier,
    confirmation_message,
    default_notifier,
    smtp_transport,
)
from storefront.pricing import QuoteItem
from storefront.store import OrderItemRecord, OrderRecord

from conftest import TEE, FakeAdapter, make_deps, snapshot

MAIL = Settings(smtp_host="smtp.test", smtp_port=587, smtp_user="shop", smtp_password="pw", smtp_from="orders@shop.test")

ORDER = OrderRecord(
    order_number="FV-TEST-0001",
    status="PAID",
    currency="EUR",
    customer_email="buyer@example.com",
    customer_name="Ada Buyer",
    country="Germany",
    items=(OrderItemRecord(TEE, "Oversized <White> T-Shirt", Decimal("49.99"), 2, "M", "White"),),
    subtotal=Decimal("99.98"),
    shipping=Decimal("0.00"),
    tax=Decimal("17.35"),
    discount=Decimal("0.00"),
    discount_code=None,
    total=Decimal("99.98"),
    payment_method="fake",
    payment_intent_id="pay_1",
    paid_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
)


class Outbox:
    """Transport double that keeps every message instead of sending it."""

    def __init__(self) -> None:
        self.messages = []

    async def __call__(self, message) -> None:
        self.messages.append(message)


def test_confirmation_message():
    message = confirmation_message(ORDER, "orders@shop.test")

    assert message["Subject"] == "Your order FV-TEST-0001"
    assert message["From"] == "orders@shop.test"
    assert message["To"] == "buyer@example.com"

    text = message.get_body(("plain",)).get_content()
    assert "2 x Oversized <White> T-Shirt (M / White): 49.99 EUR" in text
    assert "Total: 99.98 EUR" in text
    assert "Discount" not in text

    markup = message.get_body(("html",)).get_content()
    assert "Oversized &lt;White&gt; T-Shirt" in markup


@pytest.mark.asyncio
async def test_smtp_notifier_hands_message_to_transport():
    outbox = Outbox()

    await SmtpNotifier(MAIL, transport=outbox).order_confirmed(ORDER)

    assert [m["To"] for m in outbox.messages] == ["buyer@example.com"]
    assert outbox.messages[0]["From"] == "orders@shop.test"


@pytest.mark.asyncio
async def test_smtp_notifier_without_transport_skips(caplog):
    notifier = SmtpNotifier(Settings())

    assert notifier.transport is None
    with caplog.at_level("WARNING", logger="storefront.notifications"):
        await notifier.order_confirmed(ORDER)

    assert "skipping confirmation for FV-TEST-0001" in caplog.text


@pytest.mark.asyncio
async def test_smtp_notifier_skips_orders_without_email():
    outbox = Outbox()

    await SmtpNotifier(MAIL, transport=outbox).order_confirmed(replace(ORDER, customer_email=""))

    assert outbox.messages == []


def test_transport_needs_host_and_sender():
    assert smtp_transport(Settings()) is None
    assert smtp_transport(Settings(smtp_host="smtp.test")) is None
    assert smtp_transport(MAIL) is not None


def test_default_notifier_follows_settings():
    assert isinstance(default_notifier(Settings()), LoggingNotifier)
    assert isinstance(default_notifier(MAIL), SmtpNotifier)


def test_smtp_settings_from_env(monkeypatch):
    monkeypatch.setenv("SMTP_HOST", "smtp.test")
    monkeypatch.setenv("SMTP_PORT", "465")
    monkeypatch.setenv("SMTP_USER", "shop")
    monkeypatch.setenv("SMTP_PASS", "pw")
    monkeypatch.setenv("SMTP_FROM", "orders@shop.test")

    settings = Settings.from_env(dotenv=False)

    assert (settings.smtp_host, settings.smtp_port) == ("smtp.test", 465)
    assert (settings.smtp_user, settings.smtp_password) == ("shop", "pw")
    assert settings.smtp_configured


@pytest.mark.asyncio
async def test_finalized_order_is_mailed(db):
    outbox = Outbox()
    deps = make_deps(db, SmtpNotifier(MAIL, transport=outbox))

    result = await finalize(FinalizeCommand(FakeAdapter("49.99"), "sess_1", snapshot(QuoteItem(TEE, 1, "M", "White"))), deps)

    order = result.unwrap()
    assert [m["Subject"] for m in outbox.messages] == [f"Your order {order.order_number}"]
    assert "Total: 49.99 EUR" in outbox.messages[0].get_body(("plain",)).get_content()


@pytest.mark.asyncio
async def test_failed_mail_does_not_undo_the_order(db):
    async def refuse(message):
        raise ConnectionRefusedError("smtp.test:587")

    deps = make_deps(db, SmtpNotifier(MAIL, transport=refuse))

    result = await finalize(FinalizeCommand(FakeAdapter("49.99"), "sess_1", snapshot(QuoteItem(TEE, 1, "M", "White"))), deps)

    assert await deps.orders.get(result.unwrap().order_number) is not None
