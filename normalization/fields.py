"""Field-level parsers shared by the record normalizers.

Every parser takes a raw value (text or number) and either returns the
canonical value or raises ``ValueError``.  Callers decide whether a failure
is a hard error or a warning.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone

from dateutil import parser as date_parser

STATE_CODES: dict[str, str] = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "district of columbia": "DC", "florida": "FL", "georgia": "GA", "hawaii": "HI",
    "idaho": "ID", "illinois": "IL", "indiana": "IN", "iowa": "IA",
    "kansas": "KS", "kentucky": "KY", "louisiana": "LA", "maine": "ME",
    "maryland": "MD", "massachusetts": "MA", "michigan": "MI", "minnesota": "MN",
    "mississippi": "MS", "missouri": "MO", "montana": "MT", "nebraska": "NE",
    "nevada": "NV", "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM",
    "new york": "NY", "north carolina": "NC", "north dakota": "ND", "ohio": "OH",
    "oklahoma": "OK", "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI",
    "south carolina": "SC", "south dakota": "SD", "tennessee": "TN", "texas": "TX",
    "utah": "UT", "vermont": "VT", "virginia": "VA", "washington": "WA",
    "west virginia": "WV", "wisconsin": "WI", "wyoming": "WY",
}

DIRECTIONALS: dict[str, str] = {
    "n": "North", "s": "South", "e": "East", "w": "West",
    "ne": "Northeast", "nw": "Northwest", "se": "Southeast", "sw": "Southwest",
}

STREET_SUFFIXES: dict[str, str] = {
    "st": "Street", "ave": "Avenue", "av": "Avenue", "blvd": "Boulevard",
    "rd": "Road", "dr": "Drive", "ln": "Lane", "ct": "Court", "pl": "Place",
    "cir": "Circle", "pkwy": "Parkway", "ter": "Terrace", "trl": "Trail",
    "sq": "Square", "hwy": "Highway", "fwy": "Freeway", "expy": "Expressway",
    "plz": "Plaza",
}

PROPERTY_TYPES: dict[str, str] = {
    # multifamily
    "multifamily": "multifamily", "multi-family": "multifamily",
    "multi family": "multifamily", "apartment": "multifamily",
    "apartments": "multifamily", "multifamily residential": "multifamily",
    "residential": "multifamily", "garden style": "multifamily",
    "high rise": "multifamily", "mid rise": "multifamily", "low rise": "multifamily",
    # office
    "office": "office", "office building": "office", "office space": "office",
    "commercial office": "office", "professional office": "office",
    "medical office": "office", "flex office": "office",
    # retail
    "retail": "retail", "retail space": "retail", "shopping center": "retail",
    "strip center": "retail", "mall": "retail", "restaurant": "retail",
    "storefront": "retail",
    # industrial
    "industrial": "industrial", "warehouse": "industrial",
    "distribution": "industrial", "manufacturing": "industrial",
    "flex industrial": "industrial", "logistics": "industrial",
    "industrial & logistics": "industrial",
    # hospitality
    "hotel": "hospitality", "hotels": "hospitality", "motel": "hospitality",
    "resort": "hospitality", "hospitality": "hospitality",
    # mixed use / land
    "mixed use": "mixed_use", "mixed-use": "mixed_use", "land": "land",
    "vacant land": "land", "development site": "land",
}

REPORT_TYPES: dict[str, str] = {
    "market outlook": "market_outlook",
    "market report": "market_report",
    "investment trends": "investment_trends",
    "cap rate survey": "cap_rate_survey",
    "transaction report": "transaction_report",
    "research report": "research_report",
    "forecast": "forecast",
    "survey": "survey",
}

METRIC_TYPES: dict[str, str] = {
    "cap rate": "cap_rate",
    "vacancy": "vacancy_rate",
    "vacancy rate": "vacancy_rate",
    "occupancy": "occupancy_rate",
    "occupancy rate": "occupancy_rate",
    "asking rent": "asking_rent",
    "average rent": "asking_rent",
    "rent growth": "rent_growth",
    "absorption": "net_absorption",
    "net absorption": "net_absorption",
    "under construction": "under_construction",
    "deliveries": "deliveries",
    "gdp": "gdp_growth",
    "gdp growth": "gdp_growth",
    "employment": "employment_rate",
    "employment rate": "employment_rate",
    "unemployment": "unemployment_rate",
    "population growth": "population_growth",
    "median income": "median_income",
}

UNITS: dict[str, str] = {
    "%": "percentage", "percent": "percentage", "percentage": "percentage",
    "$": "dollars", "usd": "dollars", "dollars": "dollars",
    "$/sf": "dollars_per_sqft", "psf": "dollars_per_sqft",
    "sf": "sqft", "sq ft": "sqft", "square feet": "sqft",
    "units": "count", "people": "count", "persons": "count", "jobs": "count",
}

_FINDING_TERMS = ("cap rate", "price", "market", "growth", "trend")

_MULTIPLIERS = {
    "billion": 1e9, "bn": 1e9, "b": 1e9,
    "million": 1e6, "mm": 1e6, "m": 1e6,
    "thousand": 1e3, "k": 1e3,
}
_MULTIPLIER_RE = re.compile(r"\d\s*(billion|bn|b|million|mm|m|thousand|k)\b")
_NUMERIC_RE = re.compile(r"[^\d.\-]")
# Digits with their own thousands separators and decimal point
_NUMBER_GROUP_RE = re.compile(r"\d[\d,]*(?:\.\d+)?")
_NEGATIVE_PREFIX_RE = re.compile(r"^[\s$(]*-[\s$]*$")
_UNIT_DESIGNATORS = {
    "unit", "suite", "ste", "apt", "apartment", "fl", "floor", "bldg", "building",
    "rm", "room",
}
_ADDRESS_JUNK_RE = re.compile(r"[^\w\s#\-/&.,]")
_ORDINAL_RE = re.compile(r"^\d+(st|nd|rd|th)$", re.IGNORECASE)


def collapse(text: str) -> str:
    return " ".join(str(text).split())


def title_words(text: str) -> str:
    return " ".join(_title(w) for w in collapse(text).split(" "))


def _title(word: str) -> str:
    if _ORDINAL_RE.match(word):
        return word.lower()
    if any(ch.isdigit() for ch in word):
        return word.upper()
    return word[:1].upper() + word[1:].lower()


def normalize_address(value) -> str:
    text = collapse(_ADDRESS_JUNK_RE.sub(" ", str(value)))
    if not text:
        raise ValueError("empty address")
    tokens = text.split(" ")
    keys = [t.lower().rstrip(".,") for t in tokens]
    start, end = _street_span(tokens, keys)

    # Directionals only lead or trail the street name; the suffix is its last
    # word, or the one before a trailing directional.
    expand_dir: set[int] = set()
    suffix_at = -1
    if end - start >= 2:
        expand_dir = {start, end - 1}
        suffix_at = end - 1
        if keys[end - 1] in DIRECTIONALS and keys[end - 2] in STREET_SUFFIXES:
            suffix_at = end - 2

    words = []
    for i, (word, key) in enumerate(zip(tokens, keys)):
        trailing = "," if word.endswith(",") else ""
        if i in expand_dir and key in DIRECTIONALS:
            words.append(DIRECTIONALS[key] + trailing)
        elif i == suffix_at and key in STREET_SUFFIXES:
            words.append(STREET_SUFFIXES[key] + trailing)
        else:
            words.append(_title(word))
    return " ".join(words)


def _street_span(tokens: list[str], keys: list[str]) -> tuple[int, int]:
    """Index range of the street name: after the house number, before any
    comma or unit designator."""
    start = 1 if len(tokens) > 1 and tokens[0][:1].isdigit() else 0
    end = len(tokens)
    for i in range(start, len(tokens)):
        if i > start and (keys[i] in _UNIT_DESIGNATORS or tokens[i].startswith("#")):
            end = i
            break
        if tokens[i].endswith(","):
            end = i + 1
            break
    return start, end


def normalize_region(value) -> str:
    text = collapse(value)
    if not text:
        raise ValueError("empty region")
    key = text.lower().rstrip(".")
    if key in STATE_CODES:
        return STATE_CODES[key]
    return text.upper()


def normalize_postal_code(value) -> tuple[str, str | None]:
    """``"90210-1234"`` -> ``("90210", "1234")``."""
    digits = re.sub(r"\D", "", str(value))
    if len(digits) < 5:
        raise ValueError(f"postal code too short: {value!r}")
    plus4 = digits[5:9] if len(digits) >= 9 else None
    return digits[:5], plus4


def normalize_city(value) -> str:
    text = title_words(value)
    if not text:
        raise ValueError("empty city")
    return text


def parse_money(value) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    text = str(value).strip().lower()
    multiplier = 1.0
    match = _MULTIPLIER_RE.search(text)
    if match:
        multiplier = _MULTIPLIERS[match.group(1)]
    groups = list(_NUMBER_GROUP_RE.finditer(text))
    if not groups:
        raise ValueError(f"not a money value: {value!r}")
    if len(groups) > 1:
        raise ValueError(f"ambiguous money value: {value!r}")
    group = groups[0]
    try:
        amount = float(group.group(0).replace(",", ""))
    except ValueError as e:
        raise ValueError(f"not a money value: {value!r}") from e
    if _NEGATIVE_PREFIX_RE.search(text[: group.start()]):
        amount = -amount
    return amount * multiplier


def parse_rate(value) -> float:
    """Fraction in decimal form; whole percentages are divided by 100."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = float(value)
    else:
        cleaned = _NUMERIC_RE.sub("", str(value))
        if not cleaned:
            raise ValueError(f"not a rate: {value!r}")
        number = float(cleaned)
    if abs(number) > 1:
        number = number / 100
    return round(number, 6)


def parse_count(value) -> int:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = float(value)
    else:
        text = str(value).strip()
        if text.startswith("-"):
            raise ValueError(f"negative count: {value!r}")
        cleaned = re.sub(r"[^\d.]", "", text)
        if not cleaned:
            raise ValueError(f"not a count: {value!r}")
        number = float(cleaned)
    if number < 0:
        raise ValueError(f"negative count: {value!r}")
    return int(number)


def parse_year_built(value) -> int:
    match = re.search(r"\d{4}", str(value))
    if not match:
        raise ValueError(f"not a year: {value!r}")
    year = int(match.group(0))
    if not 1800 <= year <= datetime.now(timezone.utc).year:
        raise ValueError(f"year out of range: {year}")
    return year


def parse_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date_parser.parse(collapse(value)).date()
    except (ValueError, OverflowError) as e:
        raise ValueError(f"not a date: {value!r}") from e


def normalize_property_type(value) -> tuple[str, str]:
    """Returns ``(canonical_type, original_text)``."""
    original = collapse(value)
    if not original:
        raise ValueError("empty property type")
    key = original.lower()
    return PROPERTY_TYPES.get(key, key), original


def _vocabulary(value, table: dict[str, str]) -> str:
    key = collapse(value).lower()
    if not key:
        raise ValueError("empty value")
    return table.get(key, re.sub(r"\s+", "_", key))


def normalize_report_type(value) -> str:
    return _vocabulary(value, REPORT_TYPES)


def normalize_metric_type(value) -> str:
    return _vocabulary(value, METRIC_TYPES)


def normalize_unit(value) -> str:
    return _vocabulary(value, UNITS)


def extract_key_findings(summary: str, limit: int = 5) -> list[str]:
    sentences = [s.strip() for s in re.split(r"[.!?]+", summary or "")]
    findings = [
        s
        for s in sentences
        if len(s) > 10 and any(term in s.lower() for term in _FINDING_TERMS)
    ]
    return findings[:limit]
