"""
FastAPI surface.

    app = create_app(service)              # tests, embedding
    uvicorn storefront.api:app_from_env --factory

Handlers translate schemas to domain values, call the service and map
Result back: Ok → response model, Error → CheckoutError raised and
rendered by the exception handler with its HTTP status.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from kungfu import Ok, Error

from storefront.config import Settings
from storefront.errors import CheckoutError, ErrorKind
from storefront.service import CheckoutService
from storefront.api._schemas import (
    CaptureIn,
    CaptureOut,
    CheckoutIn,
    DiscountCheckIn,
    DiscountCheckOut,
    OrderOut,
    QuoteIn,
    QuoteOut,
    SessionOut,
    ShippingIn,
    ShippingOut,
    TwoPhaseOrderOut,
    WebhookOut,
)

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "stripe-signature"


def get_service(request: Request) -> CheckoutService:
    return request.app.state.service


def get_user_id(request: Request) -> str | None:
    """Identity of the authenticated principal, if an auth middleware set one.

    Any AuthenticationMiddleware backend works as long as its user exposes
    `identity`. Anonymous requests check out as guests.
    """
    user = request.scope.get("user")
    if user is None or not getattr(user, "is_authenticated", False):
        return None
    return str(user.identity)


Service = Annotated[CheckoutService, Depends(get_service)]
UserId = Annotated[str | None, Depends(get_user_id)]


# ═══════════════════════════════════════════════════════════════════════════════
# Error rendering
# ═══════════════════════════════════════════════════════════════════════════════


async def _checkout_error(request: Request, exc: CheckoutError) -> JSONResponse:
    if exc.http_status >= 500 or exc.kind is ErrorKind.AMOUNT_MISMATCH:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=exc.http_status,
        content={"error": exc.public_message, "reason": exc.kind.value},
    )


async def _malformed(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    where = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{where}: {first.get('msg', 'invalid')}" if where else str(first.get("msg", "Invalid request"))
    return JSONResponse(status_code=400, content={"error": message, "reason": ErrorKind.VALIDATION.value})


# ═══════════════════════════════════════════════════════════════════════════════
# Routes
# ═══════════════════════════════════════════════════════════════════════════════


def _mount_routes(app: FastAPI) -> None:
    @app.post("/api/quote")
    async def quote(body: QuoteIn, service: Service) -> QuoteOut:
        match await service.quote(body.to_domain()):
            case Ok(priced):
                return QuoteOut.from_domain(priced)
            case Error(e):
                raise e

    @app.post("/api/discounts/validate")
    async def validate_discount(body: DiscountCheckIn, service: Service) -> DiscountCheckOut:
        match await service.check_discount(body.code, body.subtotal):
            case Ok(outcome):
                return DiscountCheckOut.from_domain(outcome)
            case Error(e):
                raise e

    @app.post("/api/shipping/calculate")
    async def calculate_shipping(body: ShippingIn, service: Service) -> ShippingOut:
        quoted, zone = service.shipping([item.to_domain() for item in body.items], body.country)
        return ShippingOut.from_domain(quoted, zone)

    @app.post("/api/checkout/session")
    async def checkout_session(body: CheckoutIn, service: Service, user_id: UserId) -> SessionOut:
        match await service.open_hosted_session(body.to_domain(user_id)):
            case Ok(ref):
                return SessionOut.from_domain(ref)
            case Error(e):
                raise e

    @app.post("/api/webhooks/hosted")
    async def hosted_webhook(request: Request, service: Service) -> WebhookOut:
        payload = await request.body()
        match await service.handle_hosted_webhook(payload, request.headers.get(SIGNATURE_HEADER)):
            case Ok(None):
                return WebhookOut()
            case Ok(order):
                return WebhookOut(order_number=order.order_number)
            case Error(e) if e.retryable or e.kind is ErrorKind.VALIDATION:
                # The provider redelivers on non-2xx.
                raise e
            case Error(e):
                logger.warning("Webhook acknowledged without an order: %s", e)
                return WebhookOut(error=e.public_message)

    @app.post("/api/paypal/create-order")
    async def create_two_phase_order(body: CheckoutIn, service: Service, user_id: UserId) -> TwoPhaseOrderOut:
        match await service.open_two_phase_order(body.to_domain(user_id)):
            case Ok(ref):
                return TwoPhaseOrderOut.from_domain(ref)
            case Error(e):
                raise e

    @app.post("/api/paypal/capture-order", response_model=None)
    async def capture_two_phase_order(
        body: CaptureIn,
        service: Service,
        user_id: UserId,
    ) -> CaptureOut | JSONResponse:
        snapshot = body.to_domain(user_id)
        result = await service.capture_two_phase(
            body.order_id,
            snapshot.items,
            snapshot.shipping_address,
            discount_code=snapshot.discount_code,
            user_id=snapshot.user_id,
        )
        match result:
            case Ok(order):
                return CaptureOut.from_domain(order)
            case Error(e):
                return JSONResponse(
                    status_code=e.http_status,
                    content={"success": False, "error": e.public_message, "reason": e.kind.value},
                )

    @app.get("/api/orders/{order_number}")
    async def get_order(order_number: str, service: Service) -> OrderOut:
        match await service.get_order(order_number):
            case Ok(order):
                return OrderOut.from_domain(order)
            case Error(e):
                raise e

    @app.get("/api/admin/vat-export", response_class=PlainTextResponse)
    async def vat_export(service: Service) -> str:
        return await service.vat_export()


# ═══════════════════════════════════════════════════════════════════════════════
# Application
# ═══════════════════════════════════════════════════════════════════════════════


def create_app(service: CheckoutService | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the app around `service`, or create one from settings on startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if service is not None:
            yield
            return
        owned = await CheckoutService.create(settings or Settings.from_env())
        app.state.service = owned
        try:
            yield
        finally:
            await owned.aclose()

    app = FastAPI(title="storefront-checkout", lifespan=lifespan)
    if service is not None:
        app.state.service = service
    app.add_exception_handler(CheckoutError, _checkout_error)
    app.add_exception_handler(RequestValidationError, _malformed)
    _mount_routes(app)
    return app


def app_from_env() -> FastAPI:
    return create_app(settings=Settings.from_env())


__all__ = ("SIGNATURE_HEADER", "create_app", "app_from_env", "get_service", "get_user_id")
