import json
import time
from dataclasses import dataclass, replace

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from starlette.authentication import AuthCredentials, AuthenticationBackend, BaseUser
from starlette.middleware.authentication import AuthenticationMiddleware

from storefront.api import SIGNATURE_HEADER, create_app, get_user_id
from storefront.errors import SUPPORT_MESSAGE
from storefront.payments import HostedSessionAdapter, TwoPhaseAdapter, sign_payload
from storefront.pricing import QuoteItem
from storefront.service import CheckoutService

from conftest import SETTINGS, SNEAKERS, TEE, RecordingNotifier, Recorder, snapshot

ADDRESS = {
    "email": "buyer@example.com",
    "name": "Ada Buyer",
    "address": "Hauptstrasse 1",
    "city": "Berlin",
    "zip": "10115",
    "country": "Germany",
    "phone": "+49 30 123456",
}
TEE_LINE = {"product_id": TEE, "quantity": 1, "size": "M", "color": "White"}


@dataclass
class Shop:
    client: httpx.AsyncClient
    service: CheckoutService
    hosted_api: Recorder
    paypal_api: Recorder
    app: FastAPI


@pytest_asyncio.fixture
async def shop(db):
    hosted_api, paypal_api = Recorder(), Recorder()
    service = CheckoutService(
        SETTINGS,
        db,
        HostedSessionAdapter(SETTINGS, httpx.AsyncClient(
            transport=httpx.MockTransport(hosted_api),
            base_url=SETTINGS.hosted_api_base,
        )),
        TwoPhaseAdapter(SETTINGS, httpx.AsyncClient(
            transport=httpx.MockTransport(paypal_api),
            base_url=SETTINGS.paypal_api_base,
        )),
        notifier=RecordingNotifier(),
    )
    app = create_app(service)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield Shop(client, service, hosted_api, paypal_api, app)
    await service.aclose()


# ═══════════════════════════════════════════════════════════════════════════════
# Quote, discounts, shipping
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_quote_ignores_client_prices(shop):
    response = await shop.client.post("/api/quote", json={
        "items": [{**TEE_LINE, "price": 0.01, "unit_price": 0.01}],
        "country": "Germany",
        "subtotal": 0.01,
    })

    assert response.status_code == 200
    body = response.json()
    assert body["subtotal"] == 49.99
    assert body["grand_total"] == 49.99
    assert body["vat_amount"] == 8.68
    assert body["zone"] == "EU"
    assert body["lines"][0]["unit_price"] == 49.99


@pytest.mark.asyncio
async def test_quote_with_zone_and_discount(shop):
    response = await shop.client.post("/api/quote", json={
        "items": [{"product_id": SNEAKERS, "quantity": 1, "size": "42", "color": "White"}],
        "zone": "ca",
        "discount_code": "WELCOME10",
    })

    body = response.json()
    assert body["shipping_cost"] == 63.0
    assert body["shipping_method"] == "CA Shipping"
    assert body["discount_amount"] == 15.0
    assert body["grand_total"] == 197.99


@pytest.mark.asyncio
async def test_quote_unknown_product(shop):
    response = await shop.client.post("/api/quote", json={
        "items": [{"product_id": "discontinued-hat", "quantity": 1}],
        "country": "Germany",
    })

    assert response.status_code == 409
    assert response.json()["reason"] == "stale_or_missing_product"


@pytest.mark.asyncio
async def test_malformed_request_is_400(shop):
    response = await shop.client.post("/api/quote", json={"items": [{"quantity": 1}], "country": "Germany"})

    assert response.status_code == 400
    body = response.json()
    assert body["reason"] == "validation"
    assert "product_id" in body["error"]


@pytest.mark.asyncio
async def test_discount_check_invalid_code_is_not_an_error(shop):
    response = await shop.client.post("/api/discounts/validate", json={"code": "NOPE", "subtotal": "50.00"})

    assert response.status_code == 200
    assert response.json()["valid"] is False
    assert response.json()["error"] == "Invalid discount code"


@pytest.mark.asyncio
async def test_discount_check_valid_code(shop):
    response = await shop.client.post("/api/discounts/validate", json={"code": "welcome10", "subtotal": 49.99})

    body = response.json()
    assert body["valid"] is True
    assert body["code"] == "WELCOME10"
    assert body["discount_amount"] == 5.0
    assert body["discounted_subtotal"] == 44.99


@pytest.mark.asyncio
async def test_discount_check_bad_subtotal(shop):
    negative = await shop.client.post("/api/discounts/validate", json={"code": "WELCOME10", "subtotal": -5})
    garbage = await shop.client.post("/api/discounts/validate", json={"code": "WELCOME10", "subtotal": "lots"})

    assert negative.status_code == 400
    assert negative.json()["reason"] == "invalid_amount"
    assert garbage.status_code == 400


@pytest.mark.asyncio
async def test_shipping_calculate(shop):
    response = await shop.client.post("/api/shipping/calculate", json={
        "items": [{"category": "footwear", "quantity": 1}, {"category": "tops", "quantity": 2}],
        "country": "United States",
    })

    assert response.json() == {
        "cost": 55.0,
        "method": "US Shipping",
        "estimated_days": "2-7 business days",
        "zone": "US",
    }


# ═══════════════════════════════════════════════════════════════════════════════
# Hosted checkout
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_checkout_session(shop):
    shop.hosted_api.routes[("POST", "/v1/checkout/sessions")] = httpx.Response(
        200, json={"id": "cs_1", "url": "https://pay.test/cs_1"},
    )

    response = await shop.client.post("/api/checkout/session", json={
        "items": [TEE_LINE],
        "shipping_address": ADDRESS,
    })

    assert response.status_code == 200
    body = response.json()
    assert body["session_id"] == "cs_1"
    assert body["url"] == "https://pay.test/cs_1"
    assert shop.hosted_api.form(0)["metadata[orderNumber]"] == body["order_number"]


@pytest.mark.asyncio
async def test_checkout_session_requires_address(shop):
    response = await shop.client.post("/api/checkout/session", json={
        "items": [TEE_LINE],
        "shipping_address": {**ADDRESS, "city": "", "phone": " "},
    })

    assert response.status_code == 400
    assert response.json()["error"] == "Missing shipping fields: city, phone"
    assert shop.hosted_api.requests == []


def completed_event(session_id: str, order_number: str) -> bytes:
    metadata = replace(snapshot(QuoteItem(TEE, 1, "M", "White")), order_number=order_number).to_metadata()
    return json.dumps({
        "type": "checkout.session.completed",
        "data": {"object": {"id": session_id, "metadata": metadata}},
    }).encode()


def paid_session(session_id: str, cents: int) -> httpx.Response:
    return httpx.Response(200, json={
        "id": session_id,
        "payment_status": "paid",
        "amount_total": cents,
        "currency": "eur",
        "payment_intent": f"pi_{session_id}",
        "customer_details": {"email": "buyer@example.com"},
    })


async def deliver(shop: Shop, payload: bytes, secret: str = "whsec_test") -> httpx.Response:
    signature = sign_payload(payload, secret, int(time.time()))
    return await shop.client.post("/api/webhooks/hosted", content=payload, headers={SIGNATURE_HEADER: signature})


@pytest.mark.asyncio
async def test_webhook_finalizes_once(shop):
    shop.hosted_api.routes[("GET", "/v1/checkout/sessions/cs_1")] = lambda request: paid_session("cs_1", 4999)
    payload = completed_event("cs_1", "FV-HOOK-1")

    first = await deliver(shop, payload)
    second = await deliver(shop, payload)

    assert first.status_code == 200
    assert first.json() == {"received": True, "order_number": "FV-HOOK-1", "error": None}
    assert second.json()["order_number"] == "FV-HOOK-1"
    assert await shop.service.orders.count() == 1
    assert len(shop.hosted_api.requests) == 1
    assert await shop.service.catalog.stock_of(TEE) == 49


@pytest.mark.asyncio
async def test_webhook_bad_signature(shop):
    response = await deliver(shop, completed_event("cs_1", "FV-HOOK-1"), secret="forged")

    assert response.status_code == 400
    assert response.json()["reason"] == "validation"
    assert shop.hosted_api.requests == []


@pytest.mark.asyncio
async def test_webhook_ignores_other_events(shop):
    response = await deliver(shop, json.dumps({"type": "payment_intent.created", "data": {}}).encode())

    assert response.status_code == 200
    assert response.json()["order_number"] is None


@pytest.mark.asyncio
async def test_webhook_amount_mismatch_is_acknowledged(shop):
    shop.hosted_api.routes[("GET", "/v1/checkout/sessions/cs_2")] = lambda request: paid_session("cs_2", 100)

    response = await deliver(shop, completed_event("cs_2", "FV-HOOK-2"))

    assert response.status_code == 200
    assert response.json()["error"] == SUPPORT_MESSAGE
    assert await shop.service.orders.count() == 0
    assert len(await shop.service.ledger.reviews()) == 1


@pytest.mark.asyncio
async def test_webhook_provider_outage_asks_for_redelivery(shop):
    shop.hosted_api.routes[("GET", "/v1/checkout/sessions/cs_3")] = httpx.Response(503, json={"error": {"message": "busy"}})

    response = await deliver(shop, completed_event("cs_3", "FV-HOOK-3"))

    assert response.status_code == 502
    assert response.json()["reason"] == "payment_provider"


# ═══════════════════════════════════════════════════════════════════════════════
# Two-phase checkout
# ═══════════════════════════════════════════════════════════════════════════════


def issue_token(request):
    return httpx.Response(200, json={"access_token": "tok_1"})


def captured(value: str):
    def respond(request):
        return httpx.Response(201, json={
            "id": "PP-1",
            "status": "COMPLETED",
            "purchase_units": [{
                "payments": {"captures": [{"id": "CAP-1", "amount": {"value": value, "currency_code": "EUR"}}]},
            }],
        })

    return respond


@pytest.mark.asyncio
async def test_two_phase_create_and_capture(shop):
    shop.paypal_api.routes.update({
        ("POST", "/v1/oauth2/token"): issue_token,
        ("POST", "/v2/checkout/orders"): lambda request: httpx.Response(201, json={
            "id": "PP-1",
            "links": [{"rel": "approve", "href": "https://paypal.test/approve/PP-1"}],
        }),
        ("POST", "/v2/checkout/orders/PP-1/capture"): captured("49.99"),
    })
    checkout = {"items": [TEE_LINE], "shipping_address": ADDRESS}

    created = await shop.client.post("/api/paypal/create-order", json=checkout)
    assert created.json() == {"order_id": "PP-1", "approval_url": "https://paypal.test/approve/PP-1"}

    capture = await shop.client.post("/api/paypal/capture-order", json={**checkout, "order_id": "PP-1"})

    assert capture.status_code == 200
    body = capture.json()
    assert body["success"] is True
    assert body["total"] == 49.99
    assert body["order_number"].startswith("FV-")

    export = await shop.client.get("/api/admin/vat-export")
    assert export.status_code == 200
    assert f"{body['order_number']}," in export.text
    assert export.text.rstrip().endswith(",49.99,21%,8.68,DE")


@pytest.mark.asyncio
async def test_two_phase_capture_mismatch(shop):
    shop.paypal_api.routes.update({
        ("POST", "/v1/oauth2/token"): issue_token,
        ("POST", "/v2/checkout/orders/PP-1/capture"): captured("1.00"),
    })

    response = await shop.client.post("/api/paypal/capture-order", json={
        "items": [TEE_LINE],
        "shipping_address": ADDRESS,
        "order_id": "PP-1",
    })

    assert response.status_code == 402
    assert response.json() == {"success": False, "error": SUPPORT_MESSAGE, "reason": "amount_mismatch"}
    assert await shop.service.orders.count() == 0


def two_phase_routes(shop: Shop, value: str = "49.99") -> None:
    shop.paypal_api.routes.update({
        ("POST", "/v1/oauth2/token"): issue_token,
        ("POST", "/v2/checkout/orders"): lambda request: httpx.Response(201, json={
            "id": "PP-1",
            "links": [{"rel": "approve", "href": "https://paypal.test/approve/PP-1"}],
        }),
        ("POST", "/v2/checkout/orders/PP-1/capture"): captured(value),
    })


# ═══════════════════════════════════════════════════════════════════════════════
# Orders
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_get_order_after_capture(shop):
    two_phase_routes(shop)
    capture = await shop.client.post("/api/paypal/capture-order", json={
        "items": [TEE_LINE],
        "shipping_address": ADDRESS,
        "order_id": "PP-1",
    })
    order_number = capture.json()["order_number"]

    response = await shop.client.get(f"/api/orders/{order_number}")

    assert response.status_code == 200
    body = response.json()
    assert body["order_number"] == order_number
    assert body["status"] == "PAID"
    assert body["total"] == 49.99
    assert body["tax"] == 8.68
    assert body["payment_method"] == "paypal"
    assert body["customer_email"] == "buyer@example.com"
    assert body["items"] == [{
        "product_id": TEE,
        "name": "Oversized White T-Shirt",
        "price": 49.99,
        "quantity": 1,
        "size": "M",
        "color": "White",
    }]


@pytest.mark.asyncio
async def test_get_unknown_order_is_404(shop):
    response = await shop.client.get("/api/orders/FV-NOPE")

    assert response.status_code == 404
    assert response.json() == {"error": "Order FV-NOPE not found", "reason": "not_found"}


# ═══════════════════════════════════════════════════════════════════════════════
# Customer identity
# ═══════════════════════════════════════════════════════════════════════════════


class Customer(BaseUser):
    def __init__(self, identity: str) -> None:
        self._identity = identity

    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def display_name(self) -> str:
        return self._identity

    @property
    def identity(self) -> str:
        return self._identity


class BearerAuth(AuthenticationBackend):
    async def authenticate(self, conn):
        header = conn.headers.get("authorization")
        if not header:
            return None
        return AuthCredentials(["authenticated"]), Customer(header.removeprefix("Bearer "))


@pytest.mark.asyncio
async def test_user_id_in_body_is_ignored(shop):
    shop.hosted_api.routes[("POST", "/v1/checkout/sessions")] = httpx.Response(
        200, json={"id": "cs_1", "url": "https://pay.test/cs_1"},
    )

    response = await shop.client.post("/api/checkout/session", json={
        "items": [TEE_LINE],
        "shipping_address": ADDRESS,
        "user_id": "someone-else",
    })

    assert response.status_code == 200
    assert shop.hosted_api.form(0)["metadata[userId]"] == ""


@pytest.mark.asyncio
async def test_user_id_comes_from_dependency(shop):
    shop.app.dependency_overrides[get_user_id] = lambda: "user-7"
    shop.hosted_api.routes[("POST", "/v1/checkout/sessions")] = httpx.Response(
        200, json={"id": "cs_1", "url": "https://pay.test/cs_1"},
    )

    response = await shop.client.post("/api/checkout/session", json={
        "items": [TEE_LINE],
        "shipping_address": ADDRESS,
        "user_id": "someone-else",
    })

    assert response.status_code == 200
    assert shop.hosted_api.form(0)["metadata[userId]"] == "user-7"


@pytest.mark.asyncio
async def test_authenticated_capture_stores_principal(shop):
    two_phase_routes(shop)
    app = create_app(shop.service)
    app.add_middleware(AuthenticationMiddleware, backend=BearerAuth())
    checkout = {"items": [TEE_LINE], "shipping_address": ADDRESS, "order_id": "PP-1", "user_id": "forged"}

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/api/paypal/capture-order",
            json=checkout,
            headers={"Authorization": "Bearer customer-42"},
        )

    assert response.status_code == 200
    order = await shop.service.orders.get(response.json()["order_number"])
    assert order.user_id == "customer-42"


@pytest.mark.asyncio
async def test_anonymous_capture_is_a_guest_order(shop):
    two_phase_routes(shop)
    app = create_app(shop.service)
    app.add_middleware(AuthenticationMiddleware, backend=BearerAuth())

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post("/api/paypal/capture-order", json={
            "items": [TEE_LINE],
            "shipping_address": ADDRESS,
            "order_id": "PP-1",
        })

    assert response.status_code == 200
    order = await shop.service.orders.get(response.json()["order_number"])
    assert order.user_id is None
