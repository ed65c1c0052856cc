"""
Errors — one exception type, tagged by kind.

Graph nodes raise CheckoutError; public entry points catch it and
return Error(...). Callers match on `kind`, never on message text.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum
from typing import Any


# ═══════════════════════════════════════════════════════════════════════════════
# Kinds
# ═══════════════════════════════════════════════════════════════════════════════


class ErrorKind(StrEnum):
    VALIDATION = "validation"
    INVALID_AMOUNT = "invalid_amount"
    STALE_OR_MISSING_PRODUCT = "stale_or_missing_product"
    INSUFFICIENT_STOCK = "insufficient_stock"
    DISCOUNT_INVALID = "discount_invalid"
    NON_POSITIVE_TOTAL = "non_positive_total"
    AMOUNT_MISMATCH = "amount_mismatch"
    PAYMENT_PROVIDER = "payment_provider"
    PERSISTENCE = "persistence"
    NOT_FOUND = "not_found"


HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.INVALID_AMOUNT: 400,
    ErrorKind.STALE_OR_MISSING_PRODUCT: 409,
    ErrorKind.INSUFFICIENT_STOCK: 409,
    ErrorKind.DISCOUNT_INVALID: 422,
    ErrorKind.NON_POSITIVE_TOTAL: 409,
    ErrorKind.AMOUNT_MISMATCH: 402,
    ErrorKind.PAYMENT_PROVIDER: 502,
    ErrorKind.PERSISTENCE: 503,
    ErrorKind.NOT_FOUND: 404,
}

# Kinds that may be shown to the customer verbatim.
_PUBLIC_KINDS = frozenset({
    ErrorKind.VALIDATION,
    ErrorKind.INVALID_AMOUNT,
    ErrorKind.STALE_OR_MISSING_PRODUCT,
    ErrorKind.INSUFFICIENT_STOCK,
    ErrorKind.DISCOUNT_INVALID,
    ErrorKind.NON_POSITIVE_TOTAL,
    ErrorKind.NOT_FOUND,
})

SUPPORT_MESSAGE = (
    "We could not complete your payment. "
    "Please contact support with your order number."
)


# ═══════════════════════════════════════════════════════════════════════════════
# CheckoutError
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(eq=False, slots=True)
class CheckoutError(Exception):
    kind: ErrorKind
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"

    @property
    def http_status(self) -> int:
        return HTTP_STATUS[self.kind]

    @property
    def public_message(self) -> str:
        if self.kind in _PUBLIC_KINDS:
            return self.message
        return SUPPORT_MESSAGE

    @property
    def retryable(self) -> bool:
        """Persistence failures after capture must be replayed, never dropped."""
        return self.kind in (ErrorKind.PERSISTENCE, ErrorKind.PAYMENT_PROVIDER)


class CheckoutErrors:
    @staticmethod
    def validation(msg: str, **details: Any) -> CheckoutError:
        return CheckoutError(ErrorKind.VALIDATION, msg, details)

    @staticmethod
    def invalid_amount(value: object) -> CheckoutError:
        return CheckoutError(
            ErrorKind.INVALID_AMOUNT,
            f"Amount must be a finite, non-negative number (got {value!r})",
            {"value": str(value)},
        )

    @staticmethod
    def missing_product(product_id: str) -> CheckoutError:
        return CheckoutError(
            ErrorKind.STALE_OR_MISSING_PRODUCT,
            f"Product {product_id} is no longer available",
            {"product_id": product_id},
        )

    @staticmethod
    def out_of_stock(product_id: str, name: str, requested: int, available: int) -> CheckoutError:
        return CheckoutError(
            ErrorKind.STALE_OR_MISSING_PRODUCT,
            f"Only {available} of {name} left in stock (requested {requested})",
            {"product_id": product_id, "requested": requested, "available": available},
        )

    @staticmethod
    def unknown_variant(product_id: str, name: str, size: str | None, color: str | None) -> CheckoutError:
        return CheckoutError(
            ErrorKind.STALE_OR_MISSING_PRODUCT,
            f"{name} is not available in size {size or '-'}, color {color or '-'}",
            {"product_id": product_id, "size": size, "color": color},
        )

    @staticmethod
    def insufficient_stock(product_id: str, requested: int) -> CheckoutError:
        return CheckoutError(
            ErrorKind.INSUFFICIENT_STOCK,
            f"Insufficient stock for product {product_id}",
            {"product_id": product_id, "requested": requested},
        )

    @staticmethod
    def discount_invalid(reason: str) -> CheckoutError:
        return CheckoutError(ErrorKind.DISCOUNT_INVALID, reason)

    @staticmethod
    def non_positive_total(total: Decimal) -> CheckoutError:
        return CheckoutError(
            ErrorKind.NON_POSITIVE_TOTAL,
            "Order total must be greater than zero",
            {"grand_total": str(total)},
        )

    @staticmethod
    def amount_mismatch(expected: Decimal, captured: Decimal) -> CheckoutError:
        return CheckoutError(
            ErrorKind.AMOUNT_MISMATCH,
            f"Captured {captured} but expected {expected}",
            {"expected": str(expected), "captured": str(captured)},
        )

    @staticmethod
    def provider(msg: str, **details: Any) -> CheckoutError:
        return CheckoutError(ErrorKind.PAYMENT_PROVIDER, msg, details)

    @staticmethod
    def persistence(msg: str, **details: Any) -> CheckoutError:
        return CheckoutError(ErrorKind.PERSISTENCE, msg, details)

    @staticmethod
    def order_not_found(order_number: str) -> CheckoutError:
        return CheckoutError(
            ErrorKind.NOT_FOUND,
            f"Order {order_number} not found",
            {"order_number": order_number},
        )


__all__ = (
    "ErrorKind",
    "HTTP_STATUS",
    "SUPPORT_MESSAGE",
    "CheckoutError",
    "CheckoutErrors",
)
