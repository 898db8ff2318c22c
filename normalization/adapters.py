from __future__ import annotations

from typing import Any

from core.models import EntityType, NormalizationResult, RawExtractionResult
from normalization.records import NORMALIZERS

# Provider-neutral aliases per entity, including the camelCase keys some
# listing feeds use.
ENTITY_ALIASES: dict[EntityType, dict[str, str]] = {
    EntityType.PROPERTY: {
        "listingPrice": "price",
        "listing_price": "price",
        "asking_price": "price",
        "capRate": "cap_rate",
        "propertyType": "property_type",
        "yearBuilt": "year_built",
        "sqft": "square_feet",
        "sq_ft": "square_feet",
        "squareFeet": "square_feet",
        "unit_count": "units",
        "zipCode": "postal_code",
        "zip_code": "postal_code",
        "state": "region",
    },
    EntityType.TAX_ASSESSMENT: {
        "tax_amount": "annual_taxes",
        "taxAmount": "annual_taxes",
        "assessedValue": "assessed_value",
        "marketValue": "market_value",
        "totalValue": "total_value",
        "landValue": "land_value",
        "improvementValue": "improvement_value",
        "assessmentYear": "assessment_year",
        "parcelId": "parcel_id",
        "zipCode": "postal_code",
        "zip_code": "postal_code",
        "state": "region",
    },
    EntityType.RESEARCH_REPORT: {
        "date": "publication_date",
        "publicationDate": "publication_date",
        "type": "report_type",
        "reportType": "report_type",
        "market": "market_area",
        "marketArea": "market_area",
        "download_link": "report_url",
        "downloadUrl": "report_url",
    },
    EntityType.TRANSACTION: {
        "price": "sale_price",
        "salePrice": "sale_price",
        "date": "sale_date",
        "saleDate": "sale_date",
        "propertyAddress": "address",
        "property_address": "address",
        "capRate": "cap_rate",
        "propertyType": "property_type",
        "sqft": "square_feet",
        "sq_ft": "square_feet",
        "zipCode": "postal_code",
        "state": "region",
    },
    EntityType.MARKET_DATA_POINT: {
        "market": "market_area",
        "period": "period_date",
        "date": "period_date",
        "metricName": "metric",
        "name": "metric",
    },
}

# Portal-specific field names.
SOURCE_ALIASES: dict[str, dict[str, str]] = {
    "maricopa_az": {"full_cash_value": "total_value", "parcel_number": "parcel_id"},
    "cook_il": {"pin": "parcel_id"},
    "philadelphia_pa": {"opa": "parcel_id"},
    "dallas_tx": {"account": "parcel_id"},
    "san_diego_ca": {"structure_value": "improvement_value"},
}


def adapt_fields(
    fields: dict[str, Any], source: str, entity_type: EntityType
) -> dict[str, Any]:
    """Rename raw keys onto the canonical vocabulary.  Canonical keys that are
    already present win over renamed ones."""
    aliases = {**ENTITY_ALIASES.get(entity_type, {}), **SOURCE_ALIASES.get(source, {})}
    adapted: dict[str, Any] = {}
    for key, value in fields.items():
        if key not in aliases:
            adapted[key] = value
    for key, value in fields.items():
        target = aliases.get(key)
        if target is not None:
            adapted.setdefault(target, value)
    return adapted


class RecordNormalizer:
    """Adapter + per-entity normalizer for one raw extraction result."""

    def normalize(
        self,
        raw: RawExtractionResult,
        entity_type: EntityType,
        *,
        context: dict[str, Any] | None = None,
    ) -> NormalizationResult:
        fields = adapt_fields(raw.fields, raw.source, entity_type)
        for key, value in (context or {}).items():
            if value is not None:
                fields.setdefault(key, value)
        if raw.source_url:
            fields.setdefault("source_url", raw.source_url)
        return NORMALIZERS[entity_type].normalize(fields, raw.source)
