from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_utc(value: datetime | None) -> str | None:
    """SQLite hands datetimes back naive; they are always stored as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)


class JobKind(str, Enum):
    TAX_ASSESSMENT = "tax_assessment"
    PROPERTIES = "properties"
    RESEARCH = "research"
    TRANSACTIONS = "transactions"
    MARKET_DATA = "market_data"


class EntityType(str, Enum):
    PROPERTY = "property"
    TAX_ASSESSMENT = "tax_assessment"
    RESEARCH_REPORT = "research_report"
    TRANSACTION = "transaction"
    MARKET_DATA_POINT = "market_data_point"


ENTITY_TYPE_BY_KIND: dict[JobKind, EntityType] = {
    JobKind.TAX_ASSESSMENT: EntityType.TAX_ASSESSMENT,
    JobKind.PROPERTIES: EntityType.PROPERTY,
    JobKind.RESEARCH: EntityType.RESEARCH_REPORT,
    JobKind.TRANSACTIONS: EntityType.TRANSACTION,
    JobKind.MARKET_DATA: EntityType.MARKET_DATA_POINT,
}

# Kinds scraped from institutional list pages, processed in chunked batches.
INSTITUTIONAL_KINDS = (
    JobKind.PROPERTIES,
    JobKind.RESEARCH,
    JobKind.TRANSACTIONS,
    JobKind.MARKET_DATA,
)


@dataclass
class JobTarget:
    """What a job points at. At least one field must be set."""

    source_id: str | None = None
    url: str | None = None
    postal_code: str | None = None
    entity_id: int | None = None
    address: str | None = None

    def is_empty(self) -> bool:
        return not any(
            (self.source_id, self.url, self.postal_code, self.entity_id, self.address)
        )


@dataclass(frozen=True)
class SourceConfig:
    """Read-only view of a registered source as the executor sees it."""

    source_id: str
    name: str
    base_url: str
    needs_interactive_rendering: bool
    field_locators: dict[str, str]
    rate_limit_requests: int = 10
    rate_limit_window_seconds: float = 60.0
    auth_required: bool = False
    is_active: bool = True
    source_type: str = "assessor"  # "assessor" or "institutional"
    entity_type: str = EntityType.TAX_ASSESSMENT.value
    item_locator: str | None = None
    county: str | None = None
    region: str | None = None


@dataclass
class ExtractionRequest:
    """Everything a strategy needs to know about one attempt."""

    job_id: str | None
    kind: JobKind
    url: str | None = None
    address: str | None = None
    postal_code: str | None = None
    entity_id: int | None = None
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class RawExtractionResult:
    """Field map as read off a page, before any normalization."""

    source: str
    fields: dict[str, Any]
    extracted_at: datetime = field(default_factory=utcnow)
    source_url: str | None = None


@dataclass
class ExtractionOutcome:
    """Structured result of one executor attempt. Never raised."""

    source: str
    success: bool
    records: list[RawExtractionResult] = field(default_factory=list)
    error: str | None = None
    strategy: str = ""
    duration_seconds: float = 0.0


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    missing_fields: list[str] = field(default_factory=list)
    confidence: float = 0.0


@dataclass
class NormalizedRecord:
    entity_type: EntityType
    source: str
    data: dict[str, Any]
    confidence: float
    is_valid: bool
    external_id: str
    normalized_at: datetime = field(default_factory=utcnow)


@dataclass
class NormalizationResult:
    """The (normalized data, validation, transformation log) triple."""

    record: NormalizedRecord
    validation: ValidationResult
    transformations: list[str] = field(default_factory=list)

    def __iter__(self):
        return iter((self.record, self.validation, self.transformations))


@dataclass
class QualityReport:
    source: str
    data_type: str
    period_start: datetime
    period_end: datetime
    total_records: int = 0
    valid_records: int = 0
    invalid_records: int = 0
    duplicate_records: int = 0
    missing_required_fields: int = 0
    completeness_score: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "data_type": self.data_type,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "total_records": self.total_records,
            "valid_records": self.valid_records,
            "invalid_records": self.invalid_records,
            "duplicate_records": self.duplicate_records,
            "missing_required_fields": self.missing_required_fields,
            "completeness_score": self.completeness_score,
        }


@dataclass
class JobOutcome:
    """What the dispatcher reports back to the queue for one job."""

    success: bool
    result: dict[str, Any] | None = None
    error: str | None = None
    retryable: bool = True
