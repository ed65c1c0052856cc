"""
Payment attempt ledger — one row per external payment.

The unique idempotency key is the serialization point for finalize:

    (absent) ──claim──► CLAIMED ──record_capture──► CAPTURED ──persist──► PERSISTED
                           │                            │
                           └──release (pre-capture)     └──fail──► FAILED (+ manual review)

Claims carry a lease. A CLAIMED row with an expired lease may be taken
over; a CAPTURED row with no live lease may be resumed without charging
again.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import StrEnum
from typing import Any

from sqlalchemy import delete, or_, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from kungfu import Result, Ok, Error

from storefront._types import as_utc, naive_utc, to_cents, utcnow
from storefront.errors import CheckoutError, CheckoutErrors, ErrorKind
from storefront.payments import CaptureResult
from storefront.store._tables import ManualReviewTable, PaymentAttemptTable

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Types
# ═══════════════════════════════════════════════════════════════════════════════


class AttemptStatus(StrEnum):
    CLAIMED = "claimed"
    CAPTURED = "captured"
    PERSISTED = "persisted"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class AttemptRecord:
    idempotency_key: str
    provider: str
    provider_ref: str
    status: AttemptStatus
    lease_expires_at: datetime | None
    order_number: str | None
    capture: CaptureResult | None
    error_kind: ErrorKind | None
    error_message: str | None

    def lease_live(self, now: datetime) -> bool:
        return self.lease_expires_at is not None and self.lease_expires_at > as_utc(now)

    def failure(self) -> CheckoutError:
        """Rebuild the terminal error recorded for a FAILED attempt."""
        return CheckoutError(
            kind=self.error_kind or ErrorKind.PAYMENT_PROVIDER,
            message=self.error_message or "Payment could not be finalized",
            details={"idempotency_key": self.idempotency_key},
        )


@dataclass(frozen=True, slots=True)
class ManualReview:
    """Captured money that did not become an order; somebody has to look."""

    idempotency_key: str
    reason: ErrorKind
    message: str
    order_number: str | None = None
    external_payment_id: str | None = None
    expected: Decimal | None = None
    captured: Decimal | None = None


def _attempt(row: PaymentAttemptTable) -> AttemptRecord:
    return AttemptRecord(
        idempotency_key=row.idempotency_key,
        provider=row.provider,
        provider_ref=row.provider_ref,
        status=AttemptStatus(row.status),
        lease_expires_at=as_utc(row.lease_expires_at) if row.lease_expires_at else None,
        order_number=row.order_number,
        capture=CaptureResult.from_json(row.capture) if row.capture else None,
        error_kind=ErrorKind(row.error_kind) if row.error_kind else None,
        error_message=row.error_message,
    )


def _review(row: ManualReviewTable) -> ManualReview:
    return ManualReview(
        idempotency_key=row.idempotency_key,
        reason=ErrorKind(row.reason),
        message=row.message,
        order_number=row.order_number,
        external_payment_id=row.external_payment_id,
        expected=Decimal(row.expected_cents) / 100 if row.expected_cents is not None else None,
        captured=Decimal(row.captured_cents) / 100 if row.captured_cents is not None else None,
    )


def _review_row(review: ManualReview, now: datetime) -> ManualReviewTable:
    return ManualReviewTable(
        idempotency_key=review.idempotency_key,
        order_number=review.order_number,
        external_payment_id=review.external_payment_id,
        expected_cents=to_cents(review.expected) if review.expected is not None else None,
        captured_cents=to_cents(review.captured) if review.captured is not None else None,
        reason=review.reason.value,
        message=review.message,
        created_at=now,
    )


def _insert_ignoring_conflict(session: AsyncSession, values: dict[str, Any]) -> Any:
    """INSERT ... ON CONFLICT (idempotency_key) DO NOTHING for the bound dialect."""
    insert = postgresql_insert if session.get_bind().dialect.name == "postgresql" else sqlite_insert
    return insert(PaymentAttemptTable).values(**values).on_conflict_do_nothing(
        index_elements=[PaymentAttemptTable.idempotency_key],
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Ledger
# ═══════════════════════════════════════════════════════════════════════════════


class AttemptLedger:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, key: str) -> Result[AttemptRecord | None, CheckoutError]:
        try:
            async with self._session_factory() as session:
                stmt = select(PaymentAttemptTable).where(PaymentAttemptTable.idempotency_key == key)
                row = (await session.execute(stmt)).scalar_one_or_none()
                return Ok(_attempt(row) if row is not None else None)
        except SQLAlchemyError as e:
            return Error(CheckoutErrors.persistence(f"Failed to read attempt {key}: {e}"))

    async def claim(
        self,
        key: str,
        provider: str,
        provider_ref: str,
        lease: timedelta,
        now: datetime | None = None,
    ) -> Result[bool, CheckoutError]:
        """
        Take exclusive ownership of a payment. True when this caller owns it.

        A fresh key is inserted; an existing CLAIMED row is taken over
        only once its lease has expired.
        """
        now = naive_utc(now or utcnow())
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    inserted = await session.execute(_insert_ignoring_conflict(session, {
                        "idempotency_key": key,
                        "provider": provider,
                        "provider_ref": provider_ref,
                        "status": AttemptStatus.CLAIMED.value,
                        "lease_expires_at": now + lease,
                        "created_at": now,
                        "updated_at": now,
                    }))
                    if inserted.rowcount > 0:
                        return Ok(True)

                    taken = await session.execute(
                        update(PaymentAttemptTable)
                        .where(
                            PaymentAttemptTable.idempotency_key == key,
                            PaymentAttemptTable.status == AttemptStatus.CLAIMED,
                            PaymentAttemptTable.lease_expires_at < now,
                        )
                        .values(lease_expires_at=now + lease, updated_at=now)
                    )
                    if taken.rowcount > 0:
                        logger.warning("Took over expired claim on %s", key)
                    return Ok(taken.rowcount > 0)
        except SQLAlchemyError as e:
            return Error(CheckoutErrors.persistence(f"Failed to claim {key}: {e}"))

    async def reclaim_captured(
        self,
        key: str,
        lease: timedelta,
        now: datetime | None = None,
    ) -> Result[bool, CheckoutError]:
        """Own a CAPTURED attempt nobody is persisting right now."""
        now = naive_utc(now or utcnow())
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    taken = await session.execute(
                        update(PaymentAttemptTable)
                        .where(
                            PaymentAttemptTable.idempotency_key == key,
                            PaymentAttemptTable.status == AttemptStatus.CAPTURED,
                            or_(
                                PaymentAttemptTable.lease_expires_at.is_(None),
                                PaymentAttemptTable.lease_expires_at < now,
                            ),
                        )
                        .values(lease_expires_at=now + lease, updated_at=now)
                    )
                    return Ok(taken.rowcount > 0)
        except SQLAlchemyError as e:
            return Error(CheckoutErrors.persistence(f"Failed to reclaim {key}: {e}"))

    async def record_capture(
        self,
        key: str,
        provider: str,
        provider_ref: str,
        capture: CaptureResult,
        order_number: str,
        lease: timedelta,
        now: datetime | None = None,
    ) -> Result[bool, CheckoutError]:
        """
        Store a successful capture. True when this caller now owns the CAPTURED row.

        The capture is recorded whoever holds the claim: money has moved.
        A row dropped by a caller that took over the lease is re-created
        as CAPTURED. False means another capture is already on record.
        """
        now = naive_utc(now or utcnow())
        values = {
            "status": AttemptStatus.CAPTURED.value,
            "capture": capture.to_json(),
            "order_number": order_number,
            "lease_expires_at": now + lease,
            "updated_at": now,
        }
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    recorded = await session.execute(
                        update(PaymentAttemptTable)
                        .where(
                            PaymentAttemptTable.idempotency_key == key,
                            PaymentAttemptTable.status == AttemptStatus.CLAIMED,
                        )
                        .values(**values)
                    )
                    if recorded.rowcount > 0:
                        return Ok(True)

                    restored = await session.execute(_insert_ignoring_conflict(session, {
                        "idempotency_key": key,
                        "provider": provider,
                        "provider_ref": provider_ref,
                        "created_at": now,
                        **values,
                    }))
                    if restored.rowcount > 0:
                        logger.warning("Claim on %s was lost during capture; restored as captured", key)
                    return Ok(restored.rowcount > 0)
        except SQLAlchemyError as e:
            return Error(CheckoutErrors.persistence(f"Failed to record capture for {key}: {e}"))

    async def release(self, key: str) -> Result[bool, CheckoutError]:
        """Drop a CLAIMED attempt that never captured, so the payment can be retried."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    deleted = await session.execute(
                        delete(PaymentAttemptTable).where(
                            PaymentAttemptTable.idempotency_key == key,
                            PaymentAttemptTable.status == AttemptStatus.CLAIMED,
                        )
                    )
                    return Ok(deleted.rowcount > 0)
        except SQLAlchemyError as e:
            return Error(CheckoutErrors.persistence(f"Failed to release {key}: {e}"))

    async def release_captured(self, key: str, now: datetime | None = None) -> Result[None, CheckoutError]:
        """Give up the lease on a CAPTURED attempt; the next finalize resumes it."""
        now = naive_utc(now or utcnow())
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        update(PaymentAttemptTable)
                        .where(
                            PaymentAttemptTable.idempotency_key == key,
                            PaymentAttemptTable.status == AttemptStatus.CAPTURED,
                        )
                        .values(lease_expires_at=None, updated_at=now)
                    )
            return Ok(None)
        except SQLAlchemyError as e:
            return Error(CheckoutErrors.persistence(f"Failed to release capture lease for {key}: {e}"))

    async def fail(
        self,
        key: str,
        error: CheckoutError,
        review: ManualReview | None = None,
        now: datetime | None = None,
    ) -> Result[None, CheckoutError]:
        """Mark the attempt terminally FAILED, filing the review in the same transaction."""
        now = naive_utc(now or utcnow())
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        update(PaymentAttemptTable)
                        .where(
                            PaymentAttemptTable.idempotency_key == key,
                            PaymentAttemptTable.status.in_((AttemptStatus.CLAIMED, AttemptStatus.CAPTURED)),
                        )
                        .values(
                            status=AttemptStatus.FAILED.value,
                            lease_expires_at=None,
                            error_kind=error.kind.value,
                            error_message=error.message,
                            updated_at=now,
                        )
                    )
                    if review is not None:
                        session.add(_review_row(review, now))
        except SQLAlchemyError as e:
            return Error(CheckoutErrors.persistence(f"Failed to record failure for {key}: {e}"))

        if review is not None:
            logger.error("Manual review filed for %s: %s", key, review.message)
        return Ok(None)

    async def file_review(self, review: ManualReview, now: datetime | None = None) -> Result[None, CheckoutError]:
        """File a review without touching the attempt, which another caller owns."""
        now = naive_utc(now or utcnow())
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(_review_row(review, now))
        except SQLAlchemyError as e:
            return Error(CheckoutErrors.persistence(f"Failed to file review for {review.idempotency_key}: {e}"))

        logger.error("Manual review filed for %s: %s", review.idempotency_key, review.message)
        return Ok(None)

    async def reviews(self) -> list[ManualReview]:
        async with self._session_factory() as session:
            rows = (await session.execute(select(ManualReviewTable).order_by(ManualReviewTable.id))).scalars()
            return [_review(row) for row in rows]


__all__ = (
    "AttemptStatus",
    "AttemptRecord",
    "ManualReview",
    "AttemptLedger",
)
