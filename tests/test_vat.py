from datetime import datetime, timezone
from decimal import Decimal

import pytest

from storefront.errors import CheckoutError, ErrorKind
from storefront.pricing import VAT_RATE, VatExportRow, extract_vat, format_vat_rate, vat_export_csv


def test_extract_vat_round_number():
    vat = extract_vat(Decimal("121.00"))

    assert vat.rate == VAT_RATE
    assert vat.ex_vat_amount == Decimal("100.00")
    assert vat.vat_amount == Decimal("21.00")


@pytest.mark.parametrize("gross", ["49.99", "299.99", "0.01", "1234.56", "89.99"])
def test_extract_vat_parts_add_up(gross):
    """Net plus tax must give back the gross price to the cent"""
    vat = extract_vat(Decimal(gross))

    assert vat.ex_vat_amount + vat.vat_amount == Decimal(gross)
    assert vat.total == Decimal(gross)


def test_extract_vat_rounds_net_to_cents():
    vat = extract_vat("49.99")

    assert vat.ex_vat_amount == Decimal("41.31")
    assert vat.vat_amount == Decimal("8.68")


def test_extract_vat_zero():
    vat = extract_vat(0)

    assert vat.ex_vat_amount == Decimal("0.00")
    assert vat.vat_amount == Decimal("0.00")


@pytest.mark.parametrize("bad", [Decimal("-1"), "NaN", "Infinity", "abc"])
def test_extract_vat_rejects_bad_input(bad):
    with pytest.raises(CheckoutError) as exc:
        extract_vat(bad)

    assert exc.value.kind is ErrorKind.INVALID_AMOUNT


def test_format_vat_rate():
    assert format_vat_rate() == "21%"
    assert format_vat_rate(Decimal("0.095")) == "9.5%"


def test_vat_export_csv():
    rows = [
        VatExportRow("ORD-1", datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc), Decimal("121.00"), "DE"),
        VatExportRow("ORD-2", datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc), Decimal("49.99"), "US"),
    ]

    lines = vat_export_csv(rows).splitlines()

    assert lines[0] == "Order Number,Date,Subtotal (VAT-inclusive),VAT Rate,VAT Amount,Country"
    assert lines[1] == "ORD-1,2026-03-01,121.00,21%,21.00,DE"
    assert lines[2] == "ORD-2,2026-03-02,49.99,21%,8.68,US"


def test_vat_export_csv_empty():
    assert vat_export_csv([]).splitlines() == [
        "Order Number,Date,Subtotal (VAT-inclusive),VAT Rate,VAT Amount,Country",
    ]
