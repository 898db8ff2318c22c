from __future__ import annotations

from core.models import ENTITY_TYPE_BY_KIND, EntityType, JobKind, SourceConfig

# County assessor portals.  Field names are the raw keys the navigators and
# the static fetcher emit; adapters map them onto the canonical vocabulary.
# Rate limits are one request per ``window`` seconds per portal.
ASSESSOR_CONFIGS: dict[str, dict] = {
    "new_york_ny": {
        "county": "New York",
        "region": "NY",
        "url": "https://a836-acris.nyc.gov/bblsearch/bblsearch.asp",
        "interactive": True,
        "window": 3.0,
        "fields": {
            "assessed_value": ".assessed-value",
            "tax_amount": ".tax-amount",
            "property_class": ".property-class",
        },
    },
    "los_angeles_ca": {
        "county": "Los Angeles",
        "region": "CA",
        "url": "https://portal.assessor.lacounty.gov/",
        "interactive": True,
        "window": 2.0,
        "fields": {
            "assessed_value": '[data-testid="assessed-value"]',
            "land_value": '[data-testid="land-value"]',
            "improvement_value": '[data-testid="improvement-value"]',
            "tax_amount": '[data-testid="tax-amount"]',
            "parcel_id": '[data-testid="parcel-id"]',
        },
    },
    "cook_il": {
        "county": "Cook",
        "region": "IL",
        "url": "https://www.cookcountyassessor.com/",
        "interactive": True,
        "window": 2.5,
        "fields": {
            "assessed_value": ".assessed-value",
            "market_value": ".market-value",
            "pin": ".property-pin",
        },
    },
    "harris_tx": {
        "county": "Harris",
        "region": "TX",
        "url": "https://hcad.org/",
        "interactive": False,
        "window": 1.5,
        "fields": {
            "total_value": ".total-value",
            "land_value": ".land-value",
            "improvement_value": ".improvement-value",
            "exemptions": ".exemptions",
        },
    },
    "maricopa_az": {
        "county": "Maricopa",
        "region": "AZ",
        "url": "https://mcassessor.maricopa.gov/",
        "interactive": True,
        "window": 2.0,
        "fields": {
            "full_cash_value": ".full-cash-value",
            "assessed_value": ".assessed-value",
            "parcel_number": ".parcel-number",
        },
    },
    "philadelphia_pa": {
        "county": "Philadelphia",
        "region": "PA",
        "url": "https://property.phila.gov/",
        "interactive": True,
        "window": 2.0,
        "fields": {
            "market_value": ".market-value",
            "assessed_value": ".assessed-value",
            "opa": ".opa-number",
        },
    },
    "bexar_tx": {
        "county": "Bexar",
        "region": "TX",
        "url": "https://www.bcad.org/",
        "interactive": False,
        "window": 1.5,
        "fields": {
            "market_value": ".market-value",
            "taxable_value": ".taxable-value",
            "land_value": ".land-value",
        },
    },
    "san_diego_ca": {
        "county": "San Diego",
        "region": "CA",
        "url": "https://sdtreastax.com/",
        "interactive": True,
        "window": 2.5,
        "fields": {
            "assessed_value": ".assessed-value",
            "land_value": ".land-value",
            "structure_value": ".structure-value",
        },
    },
    "dallas_tx": {
        "county": "Dallas",
        "region": "TX",
        "url": "https://www.dallascad.org/",
        "interactive": True,
        "window": 2.0,
        "fields": {
            "market_value": ".market-value",
            "assessed_value": ".assessed-value",
            "account": ".account-number",
        },
    },
    "santa_clara_ca": {
        "county": "Santa Clara",
        "region": "CA",
        "url": "https://www.sccassessor.org/",
        "interactive": True,
        "window": 2.5,
        "fields": {
            "assessed_value": ".assessed-value",
            "land_value": ".land-value",
            "improvement_value": ".improvement-value",
        },
    },
}

# Postal code -> (county, region) for the metros above.  Boroughs outside
# Manhattan map to counties with no configured portal.
POSTAL_CODE_JURISDICTIONS: dict[str, tuple[str, str]] = {
    **{z: ("New York", "NY") for z in ("10001", "10002", "10003", "10004", "10005")},
    **{z: ("Kings", "NY") for z in ("11201", "11202", "11203")},
    **{z: ("Bronx", "NY") for z in ("10451", "10452")},
    **{z: ("Queens", "NY") for z in ("11101", "11102")},
    **{z: ("Los Angeles", "CA") for z in ("90001", "90002", "90210", "90211", "90212")},
    **{z: ("Cook", "IL") for z in ("60601", "60602", "60603", "60604", "60605")},
    **{z: ("Harris", "TX") for z in ("77001", "77002", "77003", "77004", "77005")},
    **{z: ("Maricopa", "AZ") for z in ("85001", "85002", "85003", "85004", "85005")},
    **{z: ("Philadelphia", "PA") for z in ("19101", "19102", "19103", "19104", "19105")},
    **{z: ("Bexar", "TX") for z in ("78201", "78202", "78203", "78204", "78205")},
    **{z: ("San Diego", "CA") for z in ("92101", "92102", "92103", "92104", "92105")},
    **{z: ("Dallas", "TX") for z in ("75201", "75202", "75203", "75204", "75205")},
    **{z: ("Santa Clara", "CA") for z in ("95101", "95102", "95103", "95104", "95105")},
}

# Listing locators shared by providers that publish no custom markup for a kind.
_DEFAULT_TRANSACTION_FIELDS = {
    "address": ".address, .property-address",
    "price": ".sale-price, .transaction-price",
    "date": ".sale-date, .closed-date",
    "cap_rate": ".cap-rate, .capitalization-rate",
    "buyer": ".buyer, .purchaser",
    "seller": ".seller, .vendor",
}
_DEFAULT_TRANSACTION_ITEM = ".transaction-item, .sale-item, .closed-deal"

_DEFAULT_MARKET_DATA_FIELDS = {
    "metric": ".metric-name, .stat-label",
    "value": ".metric-value, .stat-value",
    "unit": ".metric-unit, .stat-unit",
    "market": ".market, .region",
    "period": ".period, .as-of-date",
}
_DEFAULT_MARKET_DATA_ITEM = ".market-stat, .data-point, .kpi-card"

INSTITUTIONAL_PROVIDERS: dict[str, dict] = {
    "cbre": {
        "name": "CBRE",
        "requests_per_minute": 15,
        "urls": {
            JobKind.PROPERTIES: "https://www.cbre.com/properties",
            JobKind.RESEARCH: "https://www.cbre.com/insights",
            JobKind.TRANSACTIONS: "https://www.cbre.com/insights/transaction-data",
            JobKind.MARKET_DATA: "https://www.cbre.com/insights/market-outlook",
        },
        "listings": {
            JobKind.PROPERTIES: (
                ".property-item, .listing-item, .property-card",
                {
                    "address": ".address, .property-address, .listing-address",
                    "price": ".price, .asking-price, .list-price",
                    "cap_rate": ".cap-rate, .capitalization-rate",
                    "property_type": ".property-type, .asset-type",
                    "units": ".units, .unit-count",
                    "sqft": ".sqft, .square-feet, .sf",
                    "year_built": ".year-built, .built",
                    "agent": ".agent-name, .broker-name",
                    "description": ".description, .property-description",
                },
            ),
            JobKind.RESEARCH: (
                ".research-item, .report-item, .publication-item",
                {
                    "title": ".title, .report-title, .research-title",
                    "summary": ".summary, .excerpt, .description",
                    "date": ".date, .published-date, .pub-date",
                    "type": ".type, .category, .report-type",
                    "market": ".market, .region, .geography",
                    "download_link": 'a[href*=".pdf"]',
                },
            ),
        },
    },
    "colliers": {
        "name": "Colliers",
        "requests_per_minute": 12,
        "urls": {
            JobKind.PROPERTIES: "https://www.colliers.com/listings",
            JobKind.RESEARCH: "https://www.colliers.com/insights",
            JobKind.TRANSACTIONS: "https://www.colliers.com/insights/transaction-data",
            JobKind.MARKET_DATA: "https://www.colliers.com/insights/market-data",
        },
        "listings": {
            JobKind.PROPERTIES: (
                ".listing-card, .property-listing, .search-result",
                {
                    "address": ".property-address, .listing-address",
                    "price": ".asking-price, .price, .listing-price",
                    "cap_rate": ".cap-rate, .yield",
                    "property_type": ".property-type, .asset-class",
                    "units": ".unit-count, .units",
                    "sqft": ".floor-area, .sqft",
                    "year_built": ".year-built, .construction-year",
                    "agent": ".listing-agent, .contact-name",
                    "description": ".property-description, .listing-description",
                },
            ),
            JobKind.RESEARCH: (
                ".insight-card, .research-card, .report-item",
                {
                    "title": ".insight-title, .report-title",
                    "summary": ".insight-summary, .report-summary",
                    "date": ".publication-date, .date",
                    "type": ".insight-type, .report-category",
                    "market": ".market-focus, .geographic-focus",
                    "download_link": '.download-link, a[href*=".pdf"]',
                },
            ),
        },
    },
    "jll": {
        "name": "JLL",
        "requests_per_minute": 10,
        "urls": {
            JobKind.PROPERTIES: "https://www.jll.com/en-us/properties",
            JobKind.RESEARCH: "https://www.jll.com/en-us/trends-and-insights",
            JobKind.TRANSACTIONS: "https://www.jll.com/en-us/trends-and-insights/transactions",
            JobKind.MARKET_DATA: "https://www.jll.com/en-us/trends-and-insights/market-data",
        },
        "listings": {
            JobKind.PROPERTIES: (
                ".property-card, .listing-tile, .search-card",
                {
                    "address": ".property-address, .card-address",
                    "price": ".price, .asking-price",
                    "cap_rate": ".cap-rate, .yield-rate",
                    "property_type": ".property-type, .asset-type",
                    "units": ".unit-count, .number-of-units",
                    "sqft": ".building-size, .total-area",
                    "year_built": ".year-built, .construction-date",
                    "description": ".property-summary, .description",
                },
            ),
            JobKind.RESEARCH: (
                ".insight-tile, .research-tile, .content-card",
                {
                    "title": ".card-title, .insight-title",
                    "summary": ".card-description, .summary",
                    "date": ".publish-date, .content-date",
                    "type": ".content-type, .category",
                    "market": ".geography, .market-focus",
                },
            ),
        },
    },
    "cushman_wakefield": {
        "name": "Cushman & Wakefield",
        "requests_per_minute": 8,
        "urls": {
            JobKind.PROPERTIES: "https://www.cushmanwakefield.com/en/united-states/properties",
            JobKind.RESEARCH: "https://www.cushmanwakefield.com/en/united-states/insights",
            JobKind.TRANSACTIONS: "https://www.cushmanwakefield.com/en/united-states/insights/transaction-activity",
            JobKind.MARKET_DATA: "https://www.cushmanwakefield.com/en/united-states/insights/market-data",
        },
        "listings": {
            JobKind.PROPERTIES: (
                ".property-item, .listing-card",
                {
                    "address": ".property-address, .address",
                    "price": ".asking-price, .price",
                    "cap_rate": ".cap-rate",
                    "property_type": ".property-type",
                    "units": ".units",
                    "sqft": ".area, .sqft",
                    "year_built": ".year-built",
                    "description": ".description",
                },
            ),
            JobKind.RESEARCH: (
                ".insight-card, .report-card",
                {
                    "title": ".card-title, .report-title",
                    "summary": ".card-summary, .excerpt",
                    "date": ".publish-date, .date",
                    "type": ".report-type, .content-type",
                    "market": ".market, .region",
                },
            ),
        },
    },
}


def assessor_source_configs() -> list[SourceConfig]:
    configs = []
    for source_id, c in ASSESSOR_CONFIGS.items():
        configs.append(
            SourceConfig(
                source_id=source_id,
                name=f"{c['county']}, {c['region']}",
                base_url=c["url"],
                needs_interactive_rendering=c["interactive"],
                field_locators=dict(c["fields"]),
                rate_limit_requests=1,
                rate_limit_window_seconds=c["window"],
                source_type="assessor",
                entity_type=EntityType.TAX_ASSESSMENT.value,
                county=c["county"],
                region=c["region"],
            )
        )
    return configs


def institutional_source_configs() -> list[SourceConfig]:
    """One config per provider and listing kind, e.g. ``cbre:research``."""
    configs = []
    for provider, p in INSTITUTIONAL_PROVIDERS.items():
        for kind, url in p["urls"].items():
            item_locator, fields = p["listings"].get(kind, (None, None))
            if fields is None:
                if kind == JobKind.TRANSACTIONS:
                    item_locator, fields = _DEFAULT_TRANSACTION_ITEM, _DEFAULT_TRANSACTION_FIELDS
                else:
                    item_locator, fields = _DEFAULT_MARKET_DATA_ITEM, _DEFAULT_MARKET_DATA_FIELDS
            configs.append(
                SourceConfig(
                    source_id=f"{provider}:{kind.value}",
                    name=f"{p['name']} {kind.value.replace('_', ' ')}",
                    base_url=url,
                    needs_interactive_rendering=True,
                    field_locators=dict(fields),
                    rate_limit_requests=p["requests_per_minute"],
                    rate_limit_window_seconds=60.0,
                    source_type="institutional",
                    entity_type=ENTITY_TYPE_BY_KIND[kind].value,
                    item_locator=item_locator,
                )
            )
    return configs


def builtin_source_configs() -> list[SourceConfig]:
    return assessor_source_configs() + institutional_source_configs()
