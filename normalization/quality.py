from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta

from core.models import NormalizationResult, QualityReport, utcnow

DEFAULT_WINDOW = timedelta(hours=24)


def dedupe_key(data: dict) -> str | None:
    """Normalized (address, city, region); None for records without an address."""
    address = data.get("address")
    if not address:
        return None
    parts = (address, data.get("city") or "", data.get("region") or "")
    return "-".join(str(p).strip().lower() for p in parts)


def build_quality_report(
    source: str,
    data_type: str,
    results: Iterable[NormalizationResult],
    *,
    window: timedelta = DEFAULT_WINDOW,
    now: datetime | None = None,
) -> QualityReport:
    end = now or utcnow()
    report = QualityReport(
        source=source,
        data_type=data_type,
        period_start=end - window,
        period_end=end,
    )
    seen: set[str] = set()
    for result in results:
        report.total_records += 1
        if result.validation.is_valid:
            report.valid_records += 1
        else:
            report.invalid_records += 1
        if result.validation.missing_fields:
            report.missing_required_fields += 1
        key = dedupe_key(result.record.data)
        if key is not None:
            if key in seen:
                report.duplicate_records += 1
            else:
                seen.add(key)

    if report.total_records:
        report.completeness_score = round(
            report.valid_records / report.total_records * 100, 2
        )
    return report
