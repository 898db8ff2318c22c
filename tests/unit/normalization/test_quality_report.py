"""Unit tests for batch quality reports."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from normalization.quality import build_quality_report, dedupe_key
from normalization.records import PropertyNormalizer


def _results(*rows):
    normalizer = PropertyNormalizer()
    return [normalizer.normalize(row, "cbre:properties") for row in rows]


def test_report_counts_valid_invalid_and_duplicates() -> None:
    """Counts should reflect validation outcomes and repeated addresses."""
    now = datetime(2024, 5, 1, 12, tzinfo=timezone.utc)
    results = _results(
        {"address": "1 Main St", "city": "Austin", "region": "TX"},
        {"address": "1 main street", "city": "austin", "region": "texas"},
        {"address": "9 Oak Ave", "city": "Dallas", "region": "TX"},
        {"city": "Houston", "region": "TX"},
    )

    report = build_quality_report("cbre:properties", "property", results, now=now)

    assert report.total_records == 4
    assert report.valid_records == 3
    assert report.invalid_records == 1
    assert report.duplicate_records == 1
    assert report.missing_required_fields == 1
    assert report.completeness_score == 75.0
    assert report.period_end - report.period_start == timedelta(hours=24)


def test_empty_batch_has_zero_completeness() -> None:
    """A batch with no records should not divide by zero."""
    report = build_quality_report("jll:research", "research_report", [])

    assert report.total_records == 0
    assert report.completeness_score == 0.0


def test_dedupe_key_requires_address() -> None:
    """Records without an address are never counted as duplicates."""
    assert dedupe_key({"city": "Austin"}) is None
    assert dedupe_key({"address": " 1 Main St", "city": "Austin"}) == "1 main st-austin-"
