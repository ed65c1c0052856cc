"""
Finalize — turn a completed external payment into exactly one order.

    deps = FinalizeDeps(ledger, orders, catalog, discounts, notifier)
    result = await finalize(FinalizeCommand(adapter, session_id, snapshot), deps)

    match result:
        case Ok(order): ...        # order.replayed is True for duplicate callbacks
        case Error(err): ...       # err.kind tells the caller what to do
"""

from storefront.finalize._types import FinalizeCommand, FinalizeDeps, FinalizedOrder
from storefront.finalize._graph import (
    LedgerNode,
    PersistedAttemptNode,
    FailedAttemptNode,
    InFlightAttemptNode,
    ResumableAttemptNode,
    OpenAttemptNode,
    Finalized,
    Rejected,
    Outcome,
    FinalizeOutcome,
    FinalizeResultNode,
    finalize,
)

__all__ = (
    # Types
    "FinalizeCommand",
    "FinalizeDeps",
    "FinalizedOrder",
    # Graph
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
    # Public API
    "finalize",
)
