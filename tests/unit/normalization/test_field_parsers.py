"""Unit tests for field-level parsers."""

from __future__ import annotations

from datetime import date

import pytest

from normalization import fields as f


def test_parse_money_handles_formatting_and_multipliers() -> None:
    """Money should parse currency text and scale suffixes."""
    assert f.parse_money("$2,850,000") == 2850000.0
    assert f.parse_money("$12.5M") == 12500000.0
    assert f.parse_money("1.2 billion") == 1200000000.0
    assert f.parse_money("450k") == 450000.0
    assert f.parse_money(1500) == 1500.0


def test_parse_money_rejects_placeholder_text() -> None:
    """Text with no digits should not parse."""
    with pytest.raises(ValueError):
        f.parse_money("N/A")


def test_parse_rate_converts_percentages() -> None:
    """Whole percentages should become decimal fractions."""
    assert f.parse_rate("5.2%") == 0.052
    assert f.parse_rate(0.065) == 0.065
    assert f.parse_rate(7) == 0.07


def test_parse_year_built_bounds() -> None:
    """Years should be four digits between 1800 and the current year."""
    assert f.parse_year_built("1995") == 1995
    assert f.parse_year_built("Built in 1925") == 1925
    with pytest.raises(ValueError):
        f.parse_year_built("1750")
    with pytest.raises(ValueError):
        f.parse_year_built("3000")


def test_parse_count_rejects_negative_values() -> None:
    """Counts should be non-negative integers."""
    assert f.parse_count("12,500 SF") == 12500
    with pytest.raises(ValueError):
        f.parse_count("-4")


def test_parse_date_accepts_common_formats() -> None:
    """Dates should parse from several human formats."""
    assert f.parse_date("March 15, 2024") == date(2024, 3, 15)
    assert f.parse_date("2024-03-15") == date(2024, 3, 15)
    with pytest.raises(ValueError):
        f.parse_date("sometime soon")


def test_normalize_address_expands_abbreviations() -> None:
    """Directionals and suffixes should expand, ordinals stay lowercase."""
    assert f.normalize_address("123 n main st.") == "123 North Main Street"
    assert f.normalize_address("45 W 34th ave, Suite 2b") == "45 West 34th Avenue, Suite 2B"


def test_normalize_region_maps_state_names() -> None:
    """Full state names should become postal codes."""
    assert f.normalize_region("California") == "CA"
    assert f.normalize_region("tx") == "TX"


def test_normalize_postal_code_splits_plus_four() -> None:
    """ZIP+4 should split into the five-digit code and extension."""
    assert f.normalize_postal_code("90210-1234") == ("90210", "1234")
    assert f.normalize_postal_code(" 60601 ") == ("60601", None)
    with pytest.raises(ValueError):
        f.normalize_postal_code("123")


def test_vocabularies_map_known_terms() -> None:
    """Known property, metric and unit terms should map to canonical values."""
    assert f.normalize_property_type("Apartments") == ("multifamily", "Apartments")
    assert f.normalize_property_type("Data Center") == ("data center", "Data Center")
    assert f.normalize_metric_type("Vacancy Rate") == "vacancy_rate"
    assert f.normalize_unit("%") == "percentage"
    assert f.normalize_report_type("Quarterly Snapshot") == "quarterly_snapshot"


def test_extract_key_findings_picks_market_sentences() -> None:
    """Only sentences mentioning market terms should be kept."""
    summary = (
        "Cap rates expanded 25 basis points in the quarter. Hello. "
        "Rent growth slowed across Sunbelt markets! The office is closed."
    )

    findings = f.extract_key_findings(summary)

    assert findings == [
        "Cap rates expanded 25 basis points in the quarter",
        "Rent growth slowed across Sunbelt markets",
    ]


def test_parse_money_rejects_several_numbers() -> None:
    """Text carrying more than one number should not be merged into one."""
    with pytest.raises(ValueError):
        f.parse_money("Sold 2019 for $1.2M")
    assert f.parse_money("-$5,000") == -5000.0
    assert f.parse_money("Price - $500") == 500.0


def test_normalize_address_expands_only_suffix_and_directional_positions() -> None:
    """Street names and unit letters should not be read as abbreviations."""
    assert f.normalize_address("100 St Louis Ave Unit E") == "100 St Louis Avenue Unit E"
    assert f.normalize_address("12 main st nw") == "12 Main Street Northwest"
    assert f.normalize_address("7 E Dr Martin Luther King Jr Blvd") == (
        "7 East Dr Martin Luther King Jr Boulevard"
    )
