"""
storefront — checkout pricing and order finalization.

    from storefront import pricing as P    # VAT, shipping, discounts, quotes
    from storefront import payments        # hosted-session and two-phase adapters
    from storefront import finalize as F   # capture → exactly one order
    from storefront import graph as G      # nodnod runner
"""

from storefront import graph
from storefront import pricing
from storefront import payments
from storefront import store
from storefront import finalize
from storefront._types import Money, ProductCategory, new_order_number
from storefront.errors import CheckoutError, CheckoutErrors, ErrorKind

__version__ = "0.1.0"

__all__ = (
    "graph",
    "pricing",
    "payments",
    "store",
    "finalize",
    "Money",
    "ProductCategory",
    "new_order_number",
    "CheckoutError",
    "CheckoutErrors",
    "ErrorKind",
)
