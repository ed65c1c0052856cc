"""
Hosted-session provider (Stripe Checkout wire format).

create_intent opens a provider-hosted payment page and embeds the whole
checkout snapshot as session metadata. The order itself is only created
when the completion webhook arrives and finalize confirms the session is
paid.
"""

import hashlib
import hmac
import json
import logging
import time
from typing import Any

import httpx
from kungfu import Result, Ok, Error

from storefront._types import CURRENCY, from_cents, new_order_number, to_cents
from storefront.config import Settings
from storefront.errors import CheckoutError, CheckoutErrors
from storefront.payments._types import CaptureResult, CheckoutSnapshot, IntentRef
from storefront.pricing import PriceQuote

logger = logging.getLogger(__name__)

SIGNATURE_TOLERANCE_SECONDS = 300


def _handle_response(response: httpx.Response) -> Result[dict[str, Any], CheckoutError]:
    if response.is_success:
        return Ok(response.json())
    try:
        message = response.json().get("error", {}).get("message", response.text)
    except ValueError:
        message = response.text
    return Error(CheckoutErrors.provider(
        f"Payment provider returned {response.status_code}: {message}",
        status=response.status_code,
    ))


def _session_form(
    quote: PriceQuote,
    snapshot: CheckoutSnapshot,
    site_url: str,
    coupon: str | None,
) -> dict[str, str]:
    form: dict[str, str] = {
        "mode": "payment",
        "success_url": f"{site_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{site_url}/checkout",
        "customer_email": snapshot.shipping_address.email,
        "client_reference_id": snapshot.order_number or "",
    }
    for i, line in enumerate(quote.lines):
        name = line.name
        variant = ", ".join(part for part in (line.size, line.color) if part)
        if variant:
            name = f"{name} ({variant})"
        form[f"line_items[{i}][price_data][currency]"] = CURRENCY.lower()
        form[f"line_items[{i}][price_data][product_data][name]"] = name
        form[f"line_items[{i}][price_data][unit_amount]"] = str(to_cents(line.unit_price))
        form[f"line_items[{i}][quantity]"] = str(line.quantity)

    if quote.shipping_cost > 0:
        i = len(quote.lines)
        form[f"line_items[{i}][price_data][currency]"] = CURRENCY.lower()
        form[f"line_items[{i}][price_data][product_data][name]"] = f"Shipping ({quote.shipping_method})"
        form[f"line_items[{i}][price_data][unit_amount]"] = str(to_cents(quote.shipping_cost))
        form[f"line_items[{i}][quantity]"] = "1"

    if coupon:
        form["discounts[0][coupon]"] = coupon

    for key, value in snapshot.to_metadata().items():
        form[f"metadata[{key}]"] = value
    return form


class HostedSessionAdapter:
    name = "hosted"

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._client = client or httpx.AsyncClient(
            base_url=settings.hosted_api_base,
            timeout=settings.http_timeout,
        )

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._settings.hosted_secret_key}"}

    async def _post(self, path: str, form: dict[str, str]) -> Result[dict[str, Any], CheckoutError]:
        try:
            response = await self._client.post(path, data=form, headers=self._headers)
        except httpx.HTTPError as e:
            logger.warning("Hosted provider POST %s failed: %s", path, e)
            return Error(CheckoutErrors.provider(f"Payment provider unreachable: {e}"))
        return _handle_response(response)

    async def _get(self, path: str) -> Result[dict[str, Any], CheckoutError]:
        try:
            response = await self._client.get(path, headers=self._headers)
        except httpx.HTTPError as e:
            logger.warning("Hosted provider GET %s failed: %s", path, e)
            return Error(CheckoutErrors.provider(f"Payment provider unreachable: {e}"))
        return _handle_response(response)

    async def _coupon(self, quote: PriceQuote) -> Result[str | None, CheckoutError]:
        if quote.discount_amount <= 0:
            return Ok(None)
        created = await self._post("/v1/coupons", {
            "amount_off": str(to_cents(quote.discount_amount)),
            "currency": CURRENCY.lower(),
            "duration": "once",
            "name": quote.discount_code or "Discount",
        })
        return created.map(lambda body: body["id"])

    async def create_intent(
        self,
        quote: PriceQuote,
        snapshot: CheckoutSnapshot,
    ) -> Result[IntentRef, CheckoutError]:
        order_number = snapshot.order_number or new_order_number()
        snapshot = snapshot.with_quote(quote, order_number)

        match await self._coupon(quote):
            case Ok(coupon):
                pass
            case Error(e):
                return Error(e)

        form = _session_form(quote, snapshot, self._settings.site_url, coupon)
        match await self._post("/v1/checkout/sessions", form):
            case Ok(session):
                logger.info("Hosted session %s opened for order %s", session["id"], order_number)
                return Ok(IntentRef(
                    provider=self.name,
                    provider_ref=session["id"],
                    redirect_url=session.get("url"),
                    order_number=order_number,
                ))
            case Error(e):
                return Error(e)

    async def load_snapshot(self, session_id: str) -> Result[CheckoutSnapshot, CheckoutError]:
        """Read back the snapshot embedded at creation time."""
        return (await self._get(f"/v1/checkout/sessions/{session_id}")).then(snapshot_of_session)

    async def finalize(
        self,
        provider_ref: str,
        token: str | None = None,
    ) -> Result[CaptureResult, CheckoutError]:
        match await self._get(f"/v1/checkout/sessions/{provider_ref}"):
            case Ok(session):
                pass
            case Error(e):
                return Error(e)

        if session.get("payment_status") != "paid":
            return Error(CheckoutErrors.provider(
                f"Session {provider_ref} is not paid (status {session.get('payment_status')!r})",
            ))

        try:
            amount_captured = from_cents(int(session["amount_total"]))
        except (KeyError, ValueError, TypeError) as e:
            return Error(CheckoutErrors.provider(f"Session {provider_ref} has no usable amount_total: {e!r}"))

        details = session.get("customer_details") or {}
        payment_intent = session.get("payment_intent")
        if isinstance(payment_intent, dict):
            payment_intent = payment_intent.get("id")

        return Ok(CaptureResult(
            external_payment_id=payment_intent or session.get("id") or provider_ref,
            amount_captured=amount_captured,
            currency=str(session.get("currency", "")).upper(),
            payer_email=details.get("email") or session.get("customer_email"),
        ))

    # ─────────────────────────────────────────────────────────────────────────
    # Webhooks
    # ─────────────────────────────────────────────────────────────────────────

    def verify_webhook(
        self,
        payload: bytes,
        signature_header: str | None,
        now: float | None = None,
    ) -> Result[dict[str, Any], CheckoutError]:
        """Check the `t=<ts>,v1=<hex>` HMAC-SHA256 header and parse the event."""
        return verify_signature(
            payload,
            signature_header,
            self._settings.hosted_webhook_secret,
            now=now,
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def snapshot_of_session(session: dict[str, Any]) -> Result[CheckoutSnapshot, CheckoutError]:
    metadata = session.get("metadata") or {}
    try:
        return Ok(CheckoutSnapshot.from_metadata(metadata))
    except (KeyError, ValueError, TypeError) as e:
        return Error(CheckoutErrors.validation(f"Session metadata is incomplete: {e}"))


def sign_payload(payload: bytes, secret: str, timestamp: int) -> str:
    signed = f"{timestamp}.".encode() + payload
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def verify_signature(
    payload: bytes,
    signature_header: str | None,
    secret: str,
    now: float | None = None,
    tolerance: int = SIGNATURE_TOLERANCE_SECONDS,
) -> Result[dict[str, Any], CheckoutError]:
    if not signature_header:
        return Error(CheckoutErrors.validation("Missing webhook signature"))
    if not secret:
        return Error(CheckoutErrors.validation("Webhook secret is not configured"))

    timestamp: int | None = None
    signatures: list[str] = []
    for part in signature_header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t" and value.isdigit():
            timestamp = int(value)
        elif key == "v1":
            signatures.append(value)
    if timestamp is None or not signatures:
        return Error(CheckoutErrors.validation("Malformed webhook signature"))

    now = time.time() if now is None else now
    if abs(now - timestamp) > tolerance:
        return Error(CheckoutErrors.validation("Webhook signature timestamp outside tolerance"))

    expected = sign_payload(payload, secret, timestamp).partition(",v1=")[2]
    if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
        return Error(CheckoutErrors.validation("Webhook signature mismatch"))

    try:
        return Ok(json.loads(payload))
    except ValueError as e:
        return Error(CheckoutErrors.validation(f"Webhook body is not JSON: {e}"))


__all__ = (
    "HostedSessionAdapter",
    "snapshot_of_session",
    "sign_payload",
    "verify_signature",
    "SIGNATURE_TOLERANCE_SECONDS",
)
