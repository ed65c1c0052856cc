"""
Checkout service — the operations the HTTP layer exposes.

Wires the catalog, discount lookup, payment adapters, ledger and order
repository together. Every method returns a Result; nothing here raises
for a domain failure.
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from kungfu import Result, Ok, Error

from storefront._types import to_money
from storefront.config import Settings
from storefront.errors import CheckoutError, CheckoutErrors
from storefront.finalize import FinalizeCommand, FinalizeDeps, FinalizedOrder, finalize
from storefront.notifications import Notifier, default_notifier
from storefront.payments import (
    CheckoutSnapshot,
    HostedSessionAdapter,
    IntentRef,
    PaymentAdapter,
    ShippingAddress,
    TwoPhaseAdapter,
    snapshot_of_session,
)
from storefront.pricing import (
    DiscountOutcome,
    PriceQuote,
    QuoteItem,
    QuoteRequest,
    ShippableItem,
    ShippingQuote,
    ShippingZone,
    price,
    quote_shipping,
    validate_discount,
    vat_export_csv,
    zone_for_country,
)
from storefront.store import AttemptLedger, OrderRecord, OrderRepository, SqlCatalog, SqlDiscounts, create_database

logger = logging.getLogger(__name__)

SESSION_COMPLETED = "checkout.session.completed"


class CheckoutService:
    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        hosted: HostedSessionAdapter,
        two_phase: TwoPhaseAdapter,
        notifier: Notifier | None = None,
        engine: AsyncEngine | None = None,
    ) -> None:
        self.settings = settings
        self.catalog = SqlCatalog(session_factory)
        self.discounts = SqlDiscounts(session_factory)
        self.ledger = AttemptLedger(session_factory)
        self.orders = OrderRepository(session_factory)
        self.hosted = hosted
        self.two_phase = two_phase
        self.notifier = notifier or default_notifier(settings)
        self._engine = engine

    @classmethod
    async def create(cls, settings: Settings, notifier: Notifier | None = None) -> "CheckoutService":
        session_factory, engine = await create_database(settings.database_url)
        return cls(
            settings,
            session_factory,
            HostedSessionAdapter(settings),
            TwoPhaseAdapter(settings),
            notifier=notifier,
            engine=engine,
        )

    @property
    def finalize_deps(self) -> FinalizeDeps:
        return FinalizeDeps(
            ledger=self.ledger,
            orders=self.orders,
            catalog=self.catalog,
            discounts=self.discounts,
            notifier=self.notifier,
            tolerance=self.settings.amount_tolerance,
            lease=self.settings.finalize_lease,
            wait=self.settings.finalize_wait,
            persist_retries=self.settings.persist_retries,
        )

    async def aclose(self) -> None:
        await self.hosted.aclose()
        await self.two_phase.aclose()
        if self._engine is not None:
            await self._engine.dispose()

    # ─────────────────────────────────────────────────────────────────────────
    # Pricing
    # ─────────────────────────────────────────────────────────────────────────

    async def quote(self, request: QuoteRequest) -> Result[PriceQuote, CheckoutError]:
        return await price(self.catalog, self.discounts, request)

    async def check_discount(
        self,
        code: str,
        subtotal: Decimal | str | int,
        now: datetime | None = None,
    ) -> Result[DiscountOutcome, CheckoutError]:
        """Validate a code against a subtotal; an unusable code is Ok(DiscountInvalid)."""
        if not code or not code.strip():
            return Error(CheckoutErrors.validation("Discount code is required"))
        try:
            amount = to_money(subtotal)
        except (InvalidOperation, TypeError, ValueError):
            return Error(CheckoutErrors.invalid_amount(subtotal))
        if not amount.is_finite() or amount < 0:
            return Error(CheckoutErrors.invalid_amount(subtotal))

        try:
            return Ok(await validate_discount(self.discounts, code, amount, now))
        except CheckoutError as e:
            return Error(e)

    def shipping(self, items: list[ShippableItem], country: str) -> tuple[ShippingQuote, ShippingZone]:
        zone = zone_for_country(country)
        return quote_shipping(items, zone), zone

    # ─────────────────────────────────────────────────────────────────────────
    # Intents
    # ─────────────────────────────────────────────────────────────────────────

    async def _priced(self, snapshot: CheckoutSnapshot) -> Result[PriceQuote, CheckoutError]:
        missing = snapshot.shipping_address.missing_fields()
        if missing:
            return Error(CheckoutErrors.validation(
                f"Missing shipping fields: {', '.join(missing)}",
                fields=missing,
            ))
        if not snapshot.items:
            return Error(CheckoutErrors.validation("Cart is empty"))
        return await price(self.catalog, self.discounts, snapshot.to_request())

    async def _open_intent(
        self,
        adapter: PaymentAdapter,
        snapshot: CheckoutSnapshot,
    ) -> Result[IntentRef, CheckoutError]:
        match await self._priced(snapshot):
            case Ok(quote):
                pass
            case Error(e):
                return Error(e)
        if quote.discount_error:
            logger.info("Opening %s intent without discount: %s", adapter.name, quote.discount_error)
        return await adapter.create_intent(quote, snapshot.with_quote(quote))

    async def open_hosted_session(self, snapshot: CheckoutSnapshot) -> Result[IntentRef, CheckoutError]:
        return await self._open_intent(self.hosted, snapshot)

    async def open_two_phase_order(self, snapshot: CheckoutSnapshot) -> Result[IntentRef, CheckoutError]:
        return await self._open_intent(self.two_phase, snapshot)

    # ─────────────────────────────────────────────────────────────────────────
    # Finalize
    # ─────────────────────────────────────────────────────────────────────────

    async def finalize(self, command: FinalizeCommand) -> Result[FinalizedOrder, CheckoutError]:
        return await finalize(command, self.finalize_deps)

    async def handle_hosted_webhook(
        self,
        payload: bytes,
        signature: str | None,
    ) -> Result[FinalizedOrder | None, CheckoutError]:
        """Verify and dispatch a provider event; events other than completion are acknowledged."""
        match self.hosted.verify_webhook(payload, signature):
            case Ok(event):
                pass
            case Error(e):
                logger.warning("Rejected webhook: %s", e)
                return Error(e)

        if event.get("type") != SESSION_COMPLETED:
            logger.info("Ignoring webhook event %s", event.get("type"))
            return Ok(None)

        session = (event.get("data") or {}).get("object") or {}
        session_id = session.get("id")
        if not session_id:
            return Error(CheckoutErrors.validation("Webhook event has no session id"))

        match snapshot_of_session(session):
            case Ok(snapshot):
                pass
            case Error(e):
                return Error(e)

        command = FinalizeCommand(adapter=self.hosted, provider_ref=session_id, snapshot=snapshot)
        return await self.finalize(command)

    async def capture_two_phase(
        self,
        order_id: str,
        items: tuple[QuoteItem, ...],
        shipping_address: ShippingAddress,
        discount_code: str | None = None,
        user_id: str | None = None,
    ) -> Result[FinalizedOrder, CheckoutError]:
        if not order_id:
            return Error(CheckoutErrors.validation("Order id is required"))
        snapshot = CheckoutSnapshot(
            items=items,
            shipping_address=shipping_address,
            discount_code=discount_code,
            user_id=user_id,
        )
        command = FinalizeCommand(adapter=self.two_phase, provider_ref=order_id, snapshot=snapshot)
        return await self.finalize(command)

    # ─────────────────────────────────────────────────────────────────────────
    # Orders
    # ─────────────────────────────────────────────────────────────────────────

    async def get_order(self, order_number: str) -> Result[OrderRecord, CheckoutError]:
        order = await self.orders.get(order_number)
        if order is None:
            return Error(CheckoutErrors.order_not_found(order_number))
        return Ok(order)

    # ─────────────────────────────────────────────────────────────────────────
    # Reporting
    # ─────────────────────────────────────────────────────────────────────────

    async def vat_export(self, since: datetime | None = None) -> str:
        return vat_export_csv(await self.orders.vat_rows(since))


__all__ = ("CheckoutService", "SESSION_COMPLETED")
