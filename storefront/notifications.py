"""
Order confirmation hook, called once per persisted order.

    notifier = default_notifier(settings)   # SMTP when configured, else log
    await notifier.order_confirmed(order)

SmtpNotifier hands a finished EmailMessage to a transport. The default
transport talks SMTP on a worker thread; tests pass their own.
"""

import asyncio
import html
import logging
import smtplib
from collections.abc import Awaitable, Callable
from email.message import EmailMessage
from typing import Protocol

from storefront.config import Settings
from storefront.store import OrderRecord

logger = logging.getLogger(__name__)

Transport = Callable[[EmailMessage], Awaitable[None]]

SMTPS_PORT = 465


class Notifier(Protocol):
    async def order_confirmed(self, order: OrderRecord) -> None: ...


class LoggingNotifier:
    """Default notifier: writes the confirmation to the log."""

    async def order_confirmed(self, order: OrderRecord) -> None:
        logger.info(
            "Order confirmation for %s to %s: %d item(s), total %s %s",
            order.order_number,
            order.customer_email,
            sum(item.quantity for item in order.items),
            order.total,
            order.currency,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# SMTP
# ═══════════════════════════════════════════════════════════════════════════════


def smtp_transport(settings: Settings) -> Transport | None:
    """Blocking smtplib delivery run off the event loop; None when SMTP is not configured."""
    if not settings.smtp_configured:
        return None

    def deliver(message: EmailMessage) -> None:
        if settings.smtp_port == SMTPS_PORT:
            client: smtplib.SMTP = smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, timeout=settings.http_timeout)
        else:
            client = smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.http_timeout)
        with client:
            if settings.smtp_port != SMTPS_PORT:
                client.ehlo()
                if client.has_extn("starttls"):
                    client.starttls()
                    client.ehlo()
            if settings.smtp_user:
                client.login(settings.smtp_user, settings.smtp_password)
            client.send_message(message)

    async def send(message: EmailMessage) -> None:
        await asyncio.to_thread(deliver, message)

    return send


def _money(amount, currency: str) -> str:
    return f"{amount:.2f} {currency}"


def confirmation_message(order: OrderRecord, sender: str) -> EmailMessage:
    message = EmailMessage()
    message["Subject"] = f"Your order {order.order_number}"
    message["From"] = sender
    message["To"] = order.customer_email

    lines = [
        "Thanks for your purchase!",
        f"Order: {order.order_number}",
        "",
    ]
    for item in order.items:
        variant = " / ".join(part for part in (item.size, item.color) if part)
        label = f"{item.name} ({variant})" if variant else item.name
        lines.append(f"{item.quantity} x {label}: {_money(item.price, order.currency)}")
    lines += [
        "",
        f"Subtotal: {_money(order.subtotal, order.currency)}",
        f"Shipping: {_money(order.shipping, order.currency)}",
    ]
    if order.discount:
        lines.append(f"Discount: -{_money(order.discount, order.currency)}")
    lines += [
        f"VAT included: {_money(order.tax, order.currency)}",
        f"Total: {_money(order.total, order.currency)}",
        "",
        "We will notify you when your order ships.",
    ]
    message.set_content("\n".join(lines))

    rows = "".join(
        f"<tr><td>{html.escape(item.name)}</td>"
        f"<td>{html.escape(' / '.join(p for p in (item.size, item.color) if p) or '-')}</td>"
        f"<td>{item.quantity}</td><td>{_money(item.price, order.currency)}</td></tr>"
        for item in order.items
    )
    message.add_alternative(
        f"<h2>Thanks for your purchase</h2>"
        f"<p>Order: <strong>{html.escape(order.order_number)}</strong></p>"
        f"<table><tr><th>Item</th><th>Size/Color</th><th>Qty</th><th>Price</th></tr>{rows}</table>"
        f"<p><strong>Total: {_money(order.total, order.currency)}</strong></p>",
        subtype="html",
    )
    return message


class SmtpNotifier:
    """Mails the confirmation to the customer."""

    def __init__(self, settings: Settings, transport: Transport | None = None) -> None:
        self.sender = settings.smtp_from
        self.transport = transport if transport is not None else smtp_transport(settings)

    async def order_confirmed(self, order: OrderRecord) -> None:
        if self.transport is None:
            logger.warning("Mail transport not configured; skipping confirmation for %s", order.order_number)
            return
        if not order.customer_email:
            logger.warning("Order %s has no customer email; skipping confirmation", order.order_number)
            return
        await self.transport(confirmation_message(order, self.sender))
        logger.info("Confirmation for %s sent to %s", order.order_number, order.customer_email)


def default_notifier(settings: Settings) -> Notifier:
    if settings.smtp_configured:
        return SmtpNotifier(settings)
    return LoggingNotifier()


__all__ = (
    "Notifier",
    "LoggingNotifier",
    "SmtpNotifier",
    "Transport",
    "confirmation_message",
    "default_notifier",
    "smtp_transport",
)
