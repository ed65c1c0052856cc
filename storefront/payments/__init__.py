"""
Payments — one capability, two providers.

    adapter: PaymentAdapter = HostedSessionAdapter(settings)
    ref = await adapter.create_intent(quote, snapshot)
    capture = await adapter.finalize(ref.provider_ref)
"""

from storefront.payments._types import (
    ADDRESS_FIELDS,
    ShippingAddress,
    CheckoutSnapshot,
    IntentRef,
    CaptureResult,
    PaymentAdapter,
)
from storefront.payments._hosted import (
    HostedSessionAdapter,
    sign_payload,
    verify_signature,
    snapshot_of_session,
)
from storefront.payments._two_phase import TwoPhaseAdapter

__all__ = (
    "ADDRESS_FIELDS",
    "ShippingAddress",
    "CheckoutSnapshot",
    "IntentRef",
    "CaptureResult",
    "PaymentAdapter",
    "HostedSessionAdapter",
    "TwoPhaseAdapter",
    "sign_payload",
    "verify_signature",
    "snapshot_of_session",
)
