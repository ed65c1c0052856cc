"""Finalize inputs and outputs."""

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from storefront.notifications import Notifier
from storefront.payments import CheckoutSnapshot, PaymentAdapter
from storefront.pricing import Catalog, DiscountLookup
from storefront.store import AttemptLedger, OrderRepository


@dataclass(frozen=True, slots=True)
class FinalizeCommand:
    """
    One finalize request for one external payment.

    provider_ref is what the provider knows the payment by: the hosted
    session id or the two-phase order id. The snapshot is replayed by the
    client (two-phase) or read back from session metadata (hosted).
    """

    adapter: PaymentAdapter
    provider_ref: str
    snapshot: CheckoutSnapshot
    token: str | None = None

    @property
    def idempotency_key(self) -> str:
        return f"{self.adapter.name}:{self.provider_ref}"


@dataclass(frozen=True, slots=True)
class FinalizeDeps:
    ledger: AttemptLedger
    orders: OrderRepository
    catalog: Catalog
    discounts: DiscountLookup
    notifier: Notifier
    tolerance: Decimal = Decimal("0.01")
    lease: timedelta = timedelta(seconds=30)
    wait: timedelta = timedelta(seconds=10)
    persist_retries: int = 3
    retry_delay: float = 0.1
    poll_interval: float = 0.05


@dataclass(frozen=True, slots=True)
class FinalizedOrder:
    order_number: str
    external_payment_id: str
    total: Decimal
    replayed: bool = False


__all__ = ("FinalizeCommand", "FinalizeDeps", "FinalizedOrder")
