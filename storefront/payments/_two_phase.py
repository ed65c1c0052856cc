"""
Two-phase provider (PayPal Orders v2 wire format).

create_intent registers an order for the quoted amount and returns the
approval link; finalize captures it once the buyer has approved. The cart
travels through the client between the two calls, so finalize callers
must hand the replayed snapshot to the finalizer for re-pricing.
"""

import logging
from typing import Any

import httpx
from kungfu import Result, Ok, Error

from storefront._types import CURRENCY, to_money
from storefront.config import Settings
from storefront.errors import CheckoutError, CheckoutErrors
from storefront.payments._types import CaptureResult, CheckoutSnapshot, IntentRef
from storefront.pricing import PriceQuote

logger = logging.getLogger(__name__)


def _amount(value: Any) -> dict[str, str]:
    return {"currency_code": CURRENCY, "value": f"{to_money(value):.2f}"}


def order_body(quote: PriceQuote, snapshot: CheckoutSnapshot, site_url: str) -> dict[str, Any]:
    breakdown: dict[str, Any] = {
        "item_total": _amount(quote.subtotal),
        "shipping": _amount(quote.shipping_cost),
    }
    if quote.discount_amount > 0:
        breakdown["discount"] = _amount(quote.discount_amount)

    unit: dict[str, Any] = {
        "amount": {**_amount(quote.grand_total), "breakdown": breakdown},
        "items": [
            {
                "name": line.name[:127],
                "quantity": str(line.quantity),
                "unit_amount": _amount(line.unit_price),
                "sku": line.product_id,
            }
            for line in quote.lines
        ],
    }
    if snapshot.order_number:
        unit["reference_id"] = snapshot.order_number

    return {
        "intent": "CAPTURE",
        "purchase_units": [unit],
        "application_context": {
            "return_url": f"{site_url}/checkout/success",
            "cancel_url": f"{site_url}/checkout",
            "shipping_preference": "NO_SHIPPING",
        },
    }


def _error_of(response: httpx.Response) -> CheckoutError:
    try:
        body = response.json()
        message = body.get("message") or body.get("error_description") or response.text
    except ValueError:
        message = response.text
    return CheckoutErrors.provider(
        f"Payment provider returned {response.status_code}: {message}",
        status=response.status_code,
    )


class TwoPhaseAdapter:
    name = "paypal"

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._client = client or httpx.AsyncClient(
            base_url=settings.paypal_api_base,
            timeout=settings.http_timeout,
        )

    async def _token(self) -> Result[str, CheckoutError]:
        try:
            response = await self._client.post(
                "/v1/oauth2/token",
                data={"grant_type": "client_credentials"},
                auth=(self._settings.paypal_client_id, self._settings.paypal_client_secret),
            )
        except httpx.HTTPError as e:
            return Error(CheckoutErrors.provider(f"Payment provider unreachable: {e}"))
        if not response.is_success:
            return Error(_error_of(response))
        return Ok(response.json()["access_token"])

    async def _call(self, path: str, body: dict[str, Any] | None = None) -> Result[dict[str, Any], CheckoutError]:
        match await self._token():
            case Ok(token):
                pass
            case Error(e):
                return Error(e)
        try:
            response = await self._client.post(
                path,
                json=body or {},
                headers={"Authorization": f"Bearer {token}", "Prefer": "return=representation"},
            )
        except httpx.HTTPError as e:
            logger.warning("Two-phase provider POST %s failed: %s", path, e)
            return Error(CheckoutErrors.provider(f"Payment provider unreachable: {e}"))
        if not response.is_success:
            return Error(_error_of(response))
        return Ok(response.json())

    async def create_intent(
        self,
        quote: PriceQuote,
        snapshot: CheckoutSnapshot,
    ) -> Result[IntentRef, CheckoutError]:
        match await self._call("/v2/checkout/orders", order_body(quote, snapshot, self._settings.site_url)):
            case Ok(order):
                pass
            case Error(e):
                return Error(e)

        approval = next(
            (link["href"] for link in order.get("links", []) if link.get("rel") in ("approve", "payer-action")),
            None,
        )
        logger.info("Two-phase order %s created for %s", order["id"], quote.grand_total)
        return Ok(IntentRef(
            provider=self.name,
            provider_ref=order["id"],
            redirect_url=approval,
            order_number=snapshot.order_number,
        ))

    async def finalize(
        self,
        provider_ref: str,
        token: str | None = None,
    ) -> Result[CaptureResult, CheckoutError]:
        match await self._call(f"/v2/checkout/orders/{provider_ref}/capture"):
            case Ok(order):
                pass
            case Error(e):
                return Error(e)

        if order.get("status") != "COMPLETED":
            return Error(CheckoutErrors.provider(
                f"Order {provider_ref} was not captured (status {order.get('status')!r})",
            ))

        try:
            capture = order["purchase_units"][0]["payments"]["captures"][0]
            amount = capture["amount"]
            amount_captured = to_money(amount["value"])
        except (KeyError, IndexError, TypeError, ArithmeticError) as e:
            return Error(CheckoutErrors.provider(f"Capture response is malformed: {e!r}"))

        return Ok(CaptureResult(
            external_payment_id=capture.get("id") or order.get("id") or provider_ref,
            amount_captured=amount_captured,
            currency=str(amount.get("currency_code", "")).upper(),
            payer_email=(order.get("payer") or {}).get("email_address"),
        ))

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ("TwoPhaseAdapter", "order_body")
