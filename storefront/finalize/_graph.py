"""
Finalize graph — Pending → Priced → Captured → Persisted, or Failed.

Architecture:
    FinalizeCommand, FinalizeDeps (injected)
         │
         ▼
    LedgerNode (reads the attempt for the idempotency key)
         │
         ├── PersistedAttemptNode ──┐
         ├── FailedAttemptNode ─────┤
         ├── InFlightAttemptNode ───┼── FinalizeOutcome (@polymorphic)
         ├── ResumableAttemptNode ──┤             │
         └── OpenAttemptNode ───────┘             ▼
                                          FinalizeResultNode

State nodes are mutually exclusive; each raises NodeError when the
attempt is not in its state, so exactly one outcome case runs.

Note: no 'from __future__ import annotations' here, nodnod resolves
__compose__ hints at runtime.
"""

import asyncio
import logging
from dataclasses import dataclass

from nodnod import NodeError, polymorphic, case

from kungfu import Result, Ok, Error, LazyCoroResult

import combinators as C
from combinators import RetryPolicy
from storefront import graph as G
from storefront._types import CURRENCY, new_order_number, utcnow
from storefront.errors import CheckoutError, CheckoutErrors, ErrorKind
from storefront.finalize._types import FinalizeCommand, FinalizeDeps, FinalizedOrder
from storefront.payments import CaptureResult
from storefront.pricing import PriceQuote, price
from storefront.store import AttemptRecord, AttemptStatus, ManualReview, OrderDraft, OrderRecord

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Ledger
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class LedgerNode:
    def __init__(self, record: AttemptRecord | None, command: FinalizeCommand, deps: FinalizeDeps) -> None:
        self.record = record
        self.command = command
        self.deps = deps

    @classmethod
    async def __compose__(cls, command: FinalizeCommand, deps: FinalizeDeps) -> "LedgerNode":
        match await deps.ledger.get(command.idempotency_key):
            case Ok(record):
                return cls(record, command, deps)
            case Error(e):
                raise e


# ═══════════════════════════════════════════════════════════════════════════════
# State Nodes
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class PersistedAttemptNode:
    def __init__(self, ledger: LedgerNode, record: AttemptRecord) -> None:
        self.ledger = ledger
        self.record = record

    @classmethod
    def __compose__(cls, ledger: LedgerNode) -> "PersistedAttemptNode":
        record = ledger.record
        if record is None or record.status is not AttemptStatus.PERSISTED:
            raise NodeError("Not persisted")
        return cls(ledger, record)


@G.node
class FailedAttemptNode:
    def __init__(self, ledger: LedgerNode, record: AttemptRecord) -> None:
        self.ledger = ledger
        self.record = record

    @classmethod
    def __compose__(cls, ledger: LedgerNode) -> "FailedAttemptNode":
        record = ledger.record
        if record is None or record.status is not AttemptStatus.FAILED:
            raise NodeError("Not failed")
        return cls(ledger, record)


@G.node
class InFlightAttemptNode:
    """Another caller holds a live lease (claimed or persisting)."""

    def __init__(self, ledger: LedgerNode, record: AttemptRecord) -> None:
        self.ledger = ledger
        self.record = record

    @classmethod
    def __compose__(cls, ledger: LedgerNode) -> "InFlightAttemptNode":
        record = ledger.record
        if record is None:
            raise NodeError("No attempt")
        if record.status not in (AttemptStatus.CLAIMED, AttemptStatus.CAPTURED):
            raise NodeError("Settled")
        if not record.lease_live(utcnow()):
            raise NodeError("Lease expired")
        return cls(ledger, record)


@G.node
class ResumableAttemptNode:
    """Money captured, order not yet stored, nobody working on it."""

    def __init__(self, ledger: LedgerNode, record: AttemptRecord, capture: CaptureResult) -> None:
        self.ledger = ledger
        self.record = record
        self.capture = capture

    @classmethod
    def __compose__(cls, ledger: LedgerNode) -> "ResumableAttemptNode":
        record = ledger.record
        if record is None or record.status is not AttemptStatus.CAPTURED:
            raise NodeError("Not captured")
        if record.lease_live(utcnow()):
            raise NodeError("Lease held")
        if record.capture is None:
            raise NodeError("No stored capture")
        return cls(ledger, record, record.capture)


@G.node
class OpenAttemptNode:
    """No attempt yet, or a claim whose owner went away before capturing."""

    def __init__(self, ledger: LedgerNode) -> None:
        self.ledger = ledger

    @classmethod
    def __compose__(cls, ledger: LedgerNode) -> "OpenAttemptNode":
        record = ledger.record
        if record is None:
            return cls(ledger)
        if record.status is AttemptStatus.CLAIMED and not record.lease_live(utcnow()):
            return cls(ledger)
        raise NodeError("Attempt in progress or settled")


# ═══════════════════════════════════════════════════════════════════════════════
# Outcome Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Finalized:
    order: FinalizedOrder


@dataclass(frozen=True, slots=True)
class Rejected:
    error: CheckoutError


type Outcome = Finalized | Rejected


# ═══════════════════════════════════════════════════════════════════════════════
# Steps
# ═══════════════════════════════════════════════════════════════════════════════


def _amount_matches(quote: PriceQuote, capture: CaptureResult, deps: FinalizeDeps) -> bool:
    if capture.currency.upper() != CURRENCY:
        return False
    return abs(capture.amount_captured - quote.grand_total) <= deps.tolerance


def _review(key: str, error: CheckoutError, order_number: str, capture: CaptureResult, quote: PriceQuote | None) -> ManualReview:
    return ManualReview(
        idempotency_key=key,
        reason=error.kind,
        message=error.message,
        order_number=order_number,
        external_payment_id=capture.external_payment_id,
        expected=quote.grand_total if quote is not None else None,
        captured=capture.amount_captured,
    )


async def _reject_after_capture(
    command: FinalizeCommand,
    deps: FinalizeDeps,
    error: CheckoutError,
    order_number: str,
    capture: CaptureResult,
    quote: PriceQuote | None,
) -> Outcome:
    """Money moved but no order will exist: FAILED plus a manual review."""
    key = command.idempotency_key
    logger.warning("Finalize %s: Captured → Failed (%s)", key, error.kind)
    match await deps.ledger.fail(key, error, _review(key, error, order_number, capture, quote)):
        case Error(e):
            logger.error("Finalize %s: could not record failure: %s", key, e)
        case Ok(_):
            pass
    return Rejected(error)


async def _release(command: FinalizeCommand, deps: FinalizeDeps, error: CheckoutError) -> Outcome:
    """Nothing captured: drop the claim so the payment can be finalized again."""
    key = command.idempotency_key
    logger.info("Finalize %s: Pending → Failed before capture (%s)", key, error.kind)
    match await deps.ledger.release(key):
        case Error(e):
            logger.error("Finalize %s: could not release claim: %s", key, e)
        case Ok(_):
            pass
    return Rejected(error)


async def _replay(record: AttemptRecord, deps: FinalizeDeps) -> Outcome:
    order_number = record.order_number or ""
    lookup = C.catching_async(
        lambda: deps.orders.get(order_number),
        on_error=lambda e: CheckoutErrors.persistence(f"Failed to read order {order_number}: {e}"),
    )
    match await lookup:
        case Ok(None):
            return Rejected(CheckoutErrors.persistence(f"Attempt {record.idempotency_key} has no order {order_number}"))
        case Ok(order):
            logger.info("Finalize %s: duplicate callback, replaying %s", record.idempotency_key, order.order_number)
            return Finalized(FinalizedOrder(
                order_number=order.order_number,
                external_payment_id=order.payment_intent_id,
                total=order.total,
                replayed=True,
            ))
        case Error(e):
            return Rejected(e)


async def _notify(deps: FinalizeDeps, order: OrderRecord) -> None:
    try:
        await deps.notifier.order_confirmed(order)
    except Exception:
        logger.exception("Confirmation for %s failed; order stands", order.order_number)


def _transient(error: CheckoutError) -> bool:
    return error.kind is ErrorKind.PERSISTENCE


async def _persist(
    command: FinalizeCommand,
    deps: FinalizeDeps,
    quote: PriceQuote,
    capture: CaptureResult,
    order_number: str,
) -> Outcome:
    """Captured → Persisted, retrying storage failures; money has already moved."""
    key = command.idempotency_key
    draft = OrderDraft(
        order_number=order_number,
        idempotency_key=key,
        payment_method=command.adapter.name,
        snapshot=command.snapshot,
        quote=quote,
        capture=capture,
        paid_at=utcnow(),
    )
    attempt = C.retry(
        LazyCoroResult(lambda: deps.orders.persist(draft)),
        policy=RetryPolicy.exponential(
            times=max(deps.persist_retries, 1),
            initial=deps.retry_delay,
            retry_on=_transient,
        ),
    )

    match await attempt:
        case Ok(order):
            logger.info("Finalize %s: Captured → Persisted as %s", key, order.order_number)
            await _notify(deps, order)
            return Finalized(FinalizedOrder(
                order_number=order.order_number,
                external_payment_id=order.payment_intent_id,
                total=order.total,
            ))
        case Error(e) if _transient(e):
            match await deps.ledger.get(key):
                case Ok(record) if record is not None and record.status is AttemptStatus.PERSISTED:
                    return await _replay(record, deps)
                case _:
                    pass
            logger.error(
                "Finalize %s: %s captured but not persisted after %d attempt(s): %s",
                key,
                capture.external_payment_id,
                deps.persist_retries,
                e,
            )
            match await deps.ledger.release_captured(key):
                case Error(release_error):
                    logger.error("Finalize %s: could not release capture lease: %s", key, release_error)
                case Ok(_):
                    pass
            return Rejected(e)
        case Error(e):
            return await _reject_after_capture(command, deps, e, order_number, capture, quote)


async def _await_settled(command: FinalizeCommand, deps: FinalizeDeps) -> Outcome:
    """Another caller owns the attempt; poll the ledger until it settles."""
    key = command.idempotency_key
    loop = asyncio.get_running_loop()
    deadline = loop.time() + deps.wait.total_seconds()

    while loop.time() < deadline:
        await asyncio.sleep(deps.poll_interval)

        match await deps.ledger.get(key):
            case Error(e):
                return Rejected(e)
            case Ok(None):
                return Rejected(CheckoutErrors.provider(
                    "Payment was not captured by the concurrent attempt; retry finalize",
                    idempotency_key=key,
                ))
            case Ok(record) if record.status is AttemptStatus.PERSISTED:
                return await _replay(record, deps)
            case Ok(record) if record.status is AttemptStatus.FAILED:
                return Rejected(record.failure())
            case Ok(record) if record.status is AttemptStatus.CAPTURED and not record.lease_live(utcnow()):
                return await _resume(command, deps, record)
            case Ok(_):
                pass

    logger.info("Finalize %s: gave up waiting for concurrent attempt", key)
    return Rejected(CheckoutErrors.provider("Finalize already in progress", idempotency_key=key))


async def _resume(command: FinalizeCommand, deps: FinalizeDeps, record: AttemptRecord) -> Outcome:
    """Captured earlier, never persisted: re-price and persist without charging again."""
    key = command.idempotency_key
    match await deps.ledger.reclaim_captured(key, deps.lease):
        case Error(e):
            return Rejected(e)
        case Ok(False):
            return await _await_settled(command, deps)
        case Ok(True):
            pass

    capture = record.capture
    if capture is None:
        return Rejected(CheckoutErrors.persistence(f"Attempt {key} has no stored capture"))
    order_number = record.order_number or command.snapshot.order_number or new_order_number()
    logger.info("Finalize %s: resuming captured payment %s", key, capture.external_payment_id)

    match await price(deps.catalog, deps.discounts, command.snapshot.to_request()):
        case Error(e):
            return await _reject_after_capture(command, deps, e, order_number, capture, None)
        case Ok(quote):
            pass

    if not _amount_matches(quote, capture, deps):
        error = CheckoutErrors.amount_mismatch(quote.grand_total, capture.amount_captured)
        return await _reject_after_capture(command, deps, error, order_number, capture, quote)

    return await _persist(command, deps, quote, capture, order_number)


async def _capture_on_record(
    command: FinalizeCommand,
    deps: FinalizeDeps,
    quote: PriceQuote,
    capture: CaptureResult,
    order_number: str,
) -> Outcome:
    """Another caller recorded a capture for this payment while ours was in flight."""
    key = command.idempotency_key
    match await deps.ledger.get(key):
        case Ok(record) if record is not None and record.capture is not None and (
            record.capture.external_payment_id == capture.external_payment_id
        ):
            logger.info("Finalize %s: capture %s already on record, waiting", key, capture.external_payment_id)
            return await _await_settled(command, deps)
        case Error(e):
            logger.error("Finalize %s: %s captured but the ledger is unreadable: %s", key, capture.external_payment_id, e)
        case Ok(_):
            pass

    error = CheckoutErrors.provider(
        f"Payment {capture.external_payment_id} captured while another capture was on record",
        idempotency_key=key,
    )
    match await deps.ledger.file_review(_review(key, error, order_number, capture, quote)):
        case Error(e):
            logger.error("Finalize %s: could not file review: %s", key, e)
        case Ok(_):
            pass
    return Rejected(error)


async def _run_fresh(command: FinalizeCommand, deps: FinalizeDeps) -> Outcome:
    key = command.idempotency_key

    match await deps.ledger.claim(key, command.adapter.name, command.provider_ref, deps.lease):
        case Error(e):
            return Rejected(e)
        case Ok(False):
            logger.info("Finalize %s: claimed concurrently, waiting", key)
            return await _await_settled(command, deps)
        case Ok(True):
            logger.info("Finalize %s: Pending", key)

    # Pending → Priced
    match await price(deps.catalog, deps.discounts, command.snapshot.to_request()):
        case Error(e):
            return await _release(command, deps, e)
        case Ok(quote):
            logger.info("Finalize %s: Pending → Priced (%s %s)", key, quote.grand_total, CURRENCY)

    # Priced → Captured
    match await command.adapter.finalize(command.provider_ref, command.token):
        case Error(e):
            return await _release(command, deps, e)
        case Ok(capture):
            logger.info("Finalize %s: Priced → Captured (%s)", key, capture.external_payment_id)

    order_number = command.snapshot.order_number or new_order_number()

    if not _amount_matches(quote, capture, deps):
        error = CheckoutErrors.amount_mismatch(quote.grand_total, capture.amount_captured)
        return await _reject_after_capture(command, deps, error, order_number, capture, quote)

    match await deps.ledger.record_capture(
        key,
        command.adapter.name,
        command.provider_ref,
        capture,
        order_number,
        deps.lease,
    ):
        case Error(e):
            logger.error("Finalize %s: %s captured but not recorded: %s", key, capture.external_payment_id, e)
            return Rejected(e)
        case Ok(False):
            return await _capture_on_record(command, deps, quote, capture, order_number)
        case Ok(True):
            pass

    # Captured → Persisted
    return await _persist(command, deps, quote, capture, order_number)


# ═══════════════════════════════════════════════════════════════════════════════
# Polymorphic Outcome
# ═══════════════════════════════════════════════════════════════════════════════


@polymorphic[Outcome]
class FinalizeOutcome:
    @case
    async def replay_persisted(cls, node: PersistedAttemptNode) -> Outcome:
        return await _replay(node.record, node.ledger.deps)

    @case
    def replay_failed(cls, node: FailedAttemptNode) -> Outcome:
        logger.info("Finalize %s: replaying stored failure", node.record.idempotency_key)
        return Rejected(node.record.failure())

    @case
    async def wait_in_flight(cls, node: InFlightAttemptNode) -> Outcome:
        return await _await_settled(node.ledger.command, node.ledger.deps)

    @case
    async def resume_captured(cls, node: ResumableAttemptNode) -> Outcome:
        return await _resume(node.ledger.command, node.ledger.deps, node.record)

    @case
    async def run_fresh(cls, node: OpenAttemptNode) -> Outcome:
        return await _run_fresh(node.ledger.command, node.ledger.deps)


# ═══════════════════════════════════════════════════════════════════════════════
# Final Node
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class FinalizeResultNode:
    def __init__(self, outcome: Outcome) -> None:
        self.outcome = outcome

    @classmethod
    def __compose__(cls, outcome: FinalizeOutcome) -> "FinalizeResultNode":
        return cls(outcome.value)

    def to_result(self) -> Result[FinalizedOrder, CheckoutError]:
        match self.outcome:
            case Finalized(order=order):
                return Ok(order)
            case Rejected(error=error):
                return Error(error)


# ═══════════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════════


async def finalize(command: FinalizeCommand, deps: FinalizeDeps) -> Result[FinalizedOrder, CheckoutError]:
    """
    Turn one external payment into at most one order.

    Safe to call concurrently and repeatedly for the same payment: the
    ledger key serializes callers and later calls replay the outcome.
    """
    try:
        node = await G.run(FinalizeResultNode).given(command, deps).named("finalize")
    except CheckoutError as e:
        logger.warning("Finalize %s aborted: %s", command.idempotency_key, e)
        return Error(e)
    return node.to_result()


__all__ = (
    "LedgerNode",
    "PersistedAttemptNode",
    "FailedAttemptNode",
    "InFlightAttemptNode",
    "ResumableAttemptNode",
    "OpenAttemptNode",
    "Finalized",
    "Rejected",
    "Outcome",
    "FinalizeOutcome",
    "FinalizeResultNode",
    "finalize",
)
