"""
Pricing — VAT, shipping, discounts and the authoritative quote.

    from storefront import pricing as P

    result = await P.price(catalog, discounts, P.QuoteRequest(items, P.ShippingZone.EU, "WELCOME10"))
    match result:
        case Ok(quote): ...
        case Error(err): ...
"""

from storefront.pricing._vat import (
    VAT_RATE,
    VatBreakdown,
    extract_vat,
    format_vat_rate,
    VatExportRow,
    VAT_EXPORT_HEADERS,
    vat_export_csv,
)
from storefront.pricing._zones import (
    ShippingZone,
    EU_COUNTRIES,
    ASIA_COUNTRIES,
    COUNTRY_CODES,
    country_code,
    zone_for_country,
    parse_zone,
)
from storefront.pricing._shipping import (
    ShippableItem,
    ShippingQuote,
    quote_shipping,
    FAST_ETA,
    SLOW_ETA,
)
from storefront.pricing._discount import (
    DiscountKind,
    DiscountCode,
    DiscountLookup,
    DiscountValid,
    DiscountInvalid,
    DiscountOutcome,
    Reasons,
    normalize_code,
    discount_amount,
    evaluate_discount,
    validate_discount,
)
from storefront.pricing._types import (
    VariantSnapshot,
    ProductSnapshot,
    Catalog,
    QuoteItem,
    QuoteRequest,
    PricingContext,
    PricedLine,
    PriceQuote,
)
from storefront.pricing._pipeline import price

__all__ = (
    # VAT
    "VAT_RATE",
    "VatBreakdown",
    "extract_vat",
    "format_vat_rate",
    "VatExportRow",
    "VAT_EXPORT_HEADERS",
    "vat_export_csv",
    # Zones
    "ShippingZone",
    "EU_COUNTRIES",
    "ASIA_COUNTRIES",
    "COUNTRY_CODES",
    "country_code",
    "zone_for_country",
    "parse_zone",
    # Shipping
    "ShippableItem",
    "ShippingQuote",
    "quote_shipping",
    "FAST_ETA",
    "SLOW_ETA",
    # Discounts
    "DiscountKind",
    "DiscountCode",
    "DiscountLookup",
    "DiscountValid",
    "DiscountInvalid",
    "DiscountOutcome",
    "Reasons",
    "normalize_code",
    "discount_amount",
    "evaluate_discount",
    "validate_discount",
    # Quote
    "VariantSnapshot",
    "ProductSnapshot",
    "Catalog",
    "QuoteItem",
    "QuoteRequest",
    "PricingContext",
    "PricedLine",
    "PriceQuote",
    "price",
)
