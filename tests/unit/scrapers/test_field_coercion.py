"""Unit tests for raw field coercion shared by extraction strategies."""

from __future__ import annotations

from scrapers.base import coerce_fields, is_numeric_field, parse_numeric


def test_parse_numeric_strips_currency_formatting() -> None:
    """Dollar signs, commas and spaces should be ignored."""
    assert parse_numeric("$1,850,000") == 1850000.0
    assert parse_numeric(" $ 12,345.67 ") == 12345.67


def test_parse_numeric_returns_none_without_digits() -> None:
    """Placeholder text should not become a number."""
    assert parse_numeric("N/A") is None
    assert parse_numeric("") is None
    assert parse_numeric(None) is None


def test_numeric_fields_are_detected_by_name() -> None:
    """Value, amount and taxes fields are numeric; identifiers are not."""
    assert is_numeric_field("assessed_value")
    assert is_numeric_field("tax_amount")
    assert is_numeric_field("annual_taxes")
    assert not is_numeric_field("parcel_id")


def test_coerce_fields_drops_empty_and_unparsable_values() -> None:
    """Blank text and non-numeric money should be left out."""
    fields = coerce_fields(
        {
            "assessed_value": "$1,850,000",
            "land_value": "Not available",
            "tax_amount": "   ",
            "parcel_id": "  4348-001-012 ",
            "property_class": None,
        }
    )

    assert fields == {"assessed_value": 1850000.0, "parcel_id": "4348-001-012"}


def test_coerce_fields_collapses_whitespace_in_text() -> None:
    """Multi-line text values should collapse to single spaces."""
    fields = coerce_fields({"address": "123 Main St\n   Beverly Hills"})

    assert fields["address"] == "123 Main St Beverly Hills"
