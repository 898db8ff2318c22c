from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from core.models import (
    EntityType,
    NormalizationResult,
    NormalizedRecord,
    ValidationResult,
)
from normalization import fields as f

log = logging.getLogger(__name__)

ERROR_PENALTY = 0.2
WARNING_PENALTY = 0.1
# Share of the score earned by the optional high-value fields; a record with
# none of them tops out at 1.0 - OPTIONAL_WEIGHT.
OPTIONAL_WEIGHT = 0.1


def external_id_for(*parts: Any) -> str:
    key = "|".join("" if p is None else str(p).lower() for p in parts)
    return hashlib.md5(key.encode()).hexdigest()[:16]


class _Diagnostics:
    def __init__(self) -> None:
        self.errors: list[str] = []
        self.warnings: list[str] = []
        self.missing: list[str] = []
        self.transformations: list[str] = []


class EntityNormalizer:
    """Shared machinery: field parsing, required checks, confidence."""

    entity_type: EntityType
    required: tuple[str, ...] = ()
    # At least one of these must survive parsing with a positive value
    required_any: tuple[str, ...] = ()
    optional_bonus: tuple[str, ...] = ()

    def normalize(self, raw: dict[str, Any], source: str) -> NormalizationResult:
        diag = _Diagnostics()
        try:
            data = self.transform(dict(raw), diag)
            self.check(data, diag)
            self._require(data, diag)
            confidence = self.confidence(data, diag)
            external_id = self.external_id(data)
        except Exception as e:
            log.error("Error normalizing %s from %s: %s", self.entity_type.value, source, e)
            diag.errors.append(f"normalization error: {e}")
            return self._failed(raw, source, diag)

        validation = ValidationResult(
            is_valid=not diag.errors,
            errors=diag.errors,
            warnings=diag.warnings,
            missing_fields=diag.missing,
            confidence=confidence,
        )
        record = NormalizedRecord(
            entity_type=self.entity_type,
            source=source,
            data=data,
            confidence=confidence,
            is_valid=validation.is_valid,
            external_id=external_id,
        )
        return NormalizationResult(record, validation, diag.transformations)

    # -- hooks ---------------------------------------------------------

    def transform(self, raw: dict[str, Any], diag: _Diagnostics) -> dict[str, Any]:
        raise NotImplementedError

    def check(self, data: dict[str, Any], diag: _Diagnostics) -> None:
        """Range checks that only ever add warnings."""

    def external_id(self, data: dict[str, Any]) -> str:
        raise NotImplementedError

    # -- shared helpers ------------------------------------------------

    def _failed(self, raw: dict[str, Any], source: str, diag: _Diagnostics) -> NormalizationResult:
        validation = ValidationResult(
            is_valid=False,
            errors=diag.errors,
            warnings=diag.warnings,
            missing_fields=diag.missing,
            confidence=0.0,
        )
        record = NormalizedRecord(
            entity_type=self.entity_type,
            source=source,
            data=dict(raw),
            confidence=0.0,
            is_valid=False,
            external_id=external_id_for(source, sorted(raw.items(), key=lambda kv: kv[0])),
        )
        return NormalizationResult(record, validation, diag.transformations)

    def _require(self, data: dict[str, Any], diag: _Diagnostics) -> None:
        for name in self.required:
            if data.get(name) in (None, ""):
                diag.missing.append(name)
                diag.errors.append(f"missing required field: {name}")
        if self.required_any and not any(
            data.get(name) is not None for name in self.required_any
        ):
            label = "|".join(self.required_any)
            diag.missing.append(label)
            diag.errors.append(f"missing required field: one of {label}")

    def confidence(self, data: dict[str, Any], diag: _Diagnostics) -> float:
        score = 1.0 - OPTIONAL_WEIGHT
        score -= ERROR_PENALTY * len(diag.errors)
        score -= WARNING_PENALTY * len(diag.warnings)
        if self.optional_bonus:
            present = sum(1 for name in self.optional_bonus if data.get(name) is not None)
            score += OPTIONAL_WEIGHT * present / len(self.optional_bonus)
        return round(max(0.0, min(1.0, score)), 4)

    def _text(self, data: dict, name: str, parser: Callable, diag: _Diagnostics, step: str) -> None:
        value = data.get(name)
        if value in (None, ""):
            data.pop(name, None)
            return
        try:
            data[name] = parser(value)
            diag.transformations.append(step)
        except ValueError as e:
            data.pop(name)
            diag.warnings.append(f"invalid {name}: {e}")

    def _money(self, data: dict, name: str, diag: _Diagnostics, *, required: bool = False) -> None:
        value = data.get(name)
        if value in (None, ""):
            data.pop(name, None)
            return
        try:
            amount = f.parse_money(value)
        except ValueError:
            data.pop(name)
            diag.warnings.append(f"invalid {name}: {value!r}")
            return
        if amount <= 0:
            data.pop(name)
            message = f"non-positive {name}: {value!r}"
            (diag.errors if required else diag.warnings).append(message)
            return
        data[name] = amount
        diag.transformations.append(f"{name}_normalization")

    def _rate(self, data: dict, name: str, diag: _Diagnostics) -> None:
        value = data.get(name)
        if value in (None, ""):
            data.pop(name, None)
            return
        try:
            rate = f.parse_rate(value)
        except ValueError:
            data.pop(name)
            diag.warnings.append(f"invalid {name}: {value!r}")
            return
        if not 0 < rate < 1:
            diag.warnings.append(f"{name} out of range: {value!r}")
        data[name] = rate
        diag.transformations.append(f"{name}_normalization")

    def _location(self, data: dict, diag: _Diagnostics) -> None:
        self._text(data, "address", f.normalize_address, diag, "address_normalization")
        self._text(data, "city", f.normalize_city, diag, "city_normalization")
        self._text(data, "region", f.normalize_region, diag, "region_normalization")
        code = data.pop("postal_code", None)
        if code not in (None, ""):
            try:
                data["postal_code"], plus4 = f.normalize_postal_code(code)
                if plus4:
                    data["postal_code_plus4"] = plus4
                diag.transformations.append("postal_code_normalization")
            except ValueError as e:
                diag.warnings.append(f"invalid postal_code: {e}")

    def _size(self, data: dict, diag: _Diagnostics) -> None:
        self._text(data, "units", f.parse_count, diag, "units_normalization")
        self._text(data, "square_feet", f.parse_count, diag, "sqft_normalization")

    def _property_type(self, data: dict, diag: _Diagnostics) -> None:
        value = data.get("property_type")
        if value in (None, ""):
            data.pop("property_type", None)
            return
        try:
            data["property_type"], data["property_subtype"] = f.normalize_property_type(value)
            diag.transformations.append("property_type_normalization")
        except ValueError as e:
            data.pop("property_type")
            diag.warnings.append(f"invalid property_type: {e}")

    def _date(self, data: dict, name: str, diag: _Diagnostics) -> None:
        self._text(
            data, name, lambda v: f.parse_date(v).isoformat(), diag, f"{name}_normalization"
        )

    @staticmethod
    def _per_unit_metrics(data: dict, price_field: str, diag: _Diagnostics) -> None:
        price = data.get(price_field)
        if not price:
            return
        if data.get("units"):
            data["price_per_unit"] = round(price / data["units"], 2)
            diag.transformations.append("price_per_unit_calculation")
        if data.get("square_feet"):
            data["price_per_sqft"] = round(price / data["square_feet"], 2)
            diag.transformations.append("price_per_sqft_calculation")


class PropertyNormalizer(EntityNormalizer):
    entity_type = EntityType.PROPERTY
    required = ("address", "city", "region")
    optional_bonus = ("listing_price", "cap_rate", "units", "square_feet", "year_built")

    def transform(self, data, diag):
        self._location(data, diag)
        self._property_type(data, diag)
        if "price" in data:
            data["listing_price"] = data.pop("price")
        self._money(data, "listing_price", diag)
        self._rate(data, "cap_rate", diag)
        self._size(data, diag)
        self._text(data, "year_built", f.parse_year_built, diag, "year_built_normalization")
        self._text(data, "description", f.collapse, diag, "description_normalization")
        self._per_unit_metrics(data, "listing_price", diag)
        return data

    def check(self, data, diag):
        if data.get("listing_price") and data["listing_price"] < 10_000:
            diag.warnings.append("listing price unusually low")
        rate = data.get("cap_rate")
        if rate is not None and 0 < rate < 1 and not 0.01 <= rate <= 0.5:
            diag.warnings.append("cap rate outside typical range (1%-50%)")
        if data.get("year_built") and data["year_built"] < 1900:
            diag.warnings.append("year built unusually old")

    def external_id(self, data):
        return external_id_for(data.get("address"), data.get("city"), data.get("region"))


class TaxAssessmentNormalizer(EntityNormalizer):
    entity_type = EntityType.TAX_ASSESSMENT
    required = ("assessment_year",)
    required_any = ("assessed_value", "total_value", "market_value")
    optional_bonus = ("land_value", "improvement_value", "annual_taxes", "parcel_id")

    def transform(self, data, diag):
        self._location(data, diag)
        for name in self.required_any:
            self._money(data, name, diag)
        for name in ("land_value", "improvement_value", "taxable_value", "annual_taxes"):
            self._money(data, name, diag)
        self._text(data, "parcel_id", f.collapse, diag, "parcel_id_normalization")

        year = data.get("assessment_year")
        if year in (None, ""):
            data["assessment_year"] = datetime.now(timezone.utc).year
            diag.transformations.append("assessment_year_default")
        else:
            try:
                data["assessment_year"] = int(f.parse_count(year))
                diag.transformations.append("assessment_year_normalization")
            except ValueError:
                data["assessment_year"] = datetime.now(timezone.utc).year
                diag.warnings.append(f"invalid assessment_year: {year!r}")
        return data

    def external_id(self, data):
        subject = data.get("parcel_id") or (
            f"{data.get('address', '')}|{data.get('postal_code', '')}"
        )
        return external_id_for(subject, data.get("assessment_year"))


class ResearchReportNormalizer(EntityNormalizer):
    entity_type = EntityType.RESEARCH_REPORT
    required = ("title", "publication_date")
    optional_bonus = ("summary", "report_url")

    def transform(self, data, diag):
        self._text(data, "title", f.collapse, diag, "title_normalization")
        self._date(data, "publication_date", diag)
        self._text(data, "report_type", f.normalize_report_type, diag, "report_type_normalization")
        self._text(data, "market_area", f.title_words, diag, "market_area_normalization")
        self._text(data, "summary", f.collapse, diag, "summary_normalization")
        if data.get("summary") and not data.get("key_findings"):
            data["key_findings"] = f.extract_key_findings(data["summary"])
            diag.transformations.append("key_findings_extraction")
        return data

    def check(self, data, diag):
        if data.get("title") and len(data["title"]) < 10:
            diag.warnings.append("title unusually short")

    def external_id(self, data):
        return external_id_for(data.get("title"), data.get("publication_date"))


class TransactionNormalizer(EntityNormalizer):
    entity_type = EntityType.TRANSACTION
    required = ("address", "sale_price", "sale_date")
    optional_bonus = ("cap_rate", "property_type", "buyer", "seller")

    def transform(self, data, diag):
        self._location(data, diag)
        self._money(data, "sale_price", diag, required=True)
        self._date(data, "sale_date", diag)
        self._rate(data, "cap_rate", diag)
        self._property_type(data, diag)
        self._size(data, diag)
        self._text(data, "buyer", f.collapse, diag, "buyer_normalization")
        self._text(data, "seller", f.collapse, diag, "seller_normalization")
        self._per_unit_metrics(data, "sale_price", diag)
        return data

    def check(self, data, diag):
        if data.get("sale_price") and data["sale_price"] < 50_000:
            diag.warnings.append("sale price unusually low for commercial property")

    def external_id(self, data):
        return external_id_for(data.get("address"), data.get("sale_date"), data.get("sale_price"))


class MarketDataPointNormalizer(EntityNormalizer):
    entity_type = EntityType.MARKET_DATA_POINT
    required = ("metric", "value")
    optional_bonus = ("unit", "market_area", "period_date")

    def transform(self, data, diag):
        if data.get("metric"):
            data["metric_name"] = f.collapse(data["metric"])
        self._text(data, "metric", f.normalize_metric_type, diag, "metric_normalization")
        self._text(data, "unit", f.normalize_unit, diag, "unit_normalization")
        value = data.get("value")
        if isinstance(value, str):
            self._text(data, "value", f.parse_money, diag, "value_normalization")
        elif value is not None:
            data["value"] = float(value)
        if data.get("unit") == "percentage" and data.get("value") is not None:
            data["value"] = f.parse_rate(data["value"])
        self._text(data, "market_area", f.title_words, diag, "market_area_normalization")
        self._date(data, "period_date", diag)
        self._property_type(data, diag)
        return data

    def external_id(self, data):
        return external_id_for(data.get("metric"), data.get("market_area"), data.get("period_date"))


NORMALIZERS: dict[EntityType, EntityNormalizer] = {
    n.entity_type: n
    for n in (
        PropertyNormalizer(),
        TaxAssessmentNormalizer(),
        ResearchReportNormalizer(),
        TransactionNormalizer(),
        MarketDataPointNormalizer(),
    )
}
