"""Shipping zones and the static country tables behind them."""

from enum import StrEnum


class ShippingZone(StrEnum):
    EU = "EU"
    US = "US"
    CA = "CA"
    AU = "AU"
    ASIA = "ASIA"
    OTHER = "OTHER"


EU_COUNTRIES = frozenset({
    "AT", "BE", "BG", "HR", "CY", "CZ", "DK", "EE", "FI", "FR", "DE", "GR", "HU", "IE",
    "IT", "LV", "LT", "LU", "MT", "NL", "PL", "PT", "RO", "SK", "SI", "ES", "SE",
})

ASIA_COUNTRIES = frozenset({
    "JP", "CN", "KR", "SG", "HK", "TW", "TH", "MY", "ID", "PH", "VN", "IN",
})

COUNTRY_CODES: dict[str, str] = {
    "Austria": "AT",
    "Belgium": "BE",
    "Bulgaria": "BG",
    "Croatia": "HR",
    "Cyprus": "CY",
    "Czech Republic": "CZ",
    "Denmark": "DK",
    "Estonia": "EE",
    "Finland": "FI",
    "France": "FR",
    "Germany": "DE",
    "Greece": "GR",
    "Hungary": "HU",
    "Ireland": "IE",
    "Italy": "IT",
    "Latvia": "LV",
    "Lithuania": "LT",
    "Luxembourg": "LU",
    "Malta": "MT",
    "Netherlands": "NL",
    "Poland": "PL",
    "Portugal": "PT",
    "Romania": "RO",
    "Slovakia": "SK",
    "Slovenia": "SI",
    "Spain": "ES",
    "Sweden": "SE",
    "United States": "US",
    "Canada": "CA",
    "Australia": "AU",
    "Japan": "JP",
    "China": "CN",
    "South Korea": "KR",
    "Singapore": "SG",
    "Hong Kong": "HK",
    "Taiwan": "TW",
    "Thailand": "TH",
    "Malaysia": "MY",
    "Indonesia": "ID",
    "Philippines": "PH",
    "Vietnam": "VN",
    "India": "IN",
    "United Kingdom": "GB",
    "Switzerland": "CH",
    "Norway": "NO",
    "Other": "OTHER",
}


def country_code(name_or_code: str) -> str:
    """Display name or ISO code → upper-cased code; unknown names pass through."""
    cleaned = name_or_code.strip()
    return COUNTRY_CODES.get(cleaned, cleaned).upper()


def zone_for_country(country: str) -> ShippingZone:
    code = country_code(country)
    if code in EU_COUNTRIES:
        return ShippingZone.EU
    if code == "US":
        return ShippingZone.US
    if code == "CA":
        return ShippingZone.CA
    if code == "AU":
        return ShippingZone.AU
    if code in ASIA_COUNTRIES:
        return ShippingZone.ASIA
    return ShippingZone.OTHER


def parse_zone(raw: str) -> ShippingZone:
    """Upper-case a zone name; anything unknown is the international tier."""
    try:
        return ShippingZone(raw.strip().upper())
    except ValueError:
        return ShippingZone.OTHER


__all__ = (
    "ShippingZone",
    "EU_COUNTRIES",
    "ASIA_COUNTRIES",
    "COUNTRY_CODES",
    "country_code",
    "zone_for_country",
    "parse_zone",
)
