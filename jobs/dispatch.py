from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlparse

from core.errors import SourceConfigurationError
from core.models import (
    ENTITY_TYPE_BY_KIND,
    EntityType,
    ExtractionRequest,
    JobKind,
    JobOutcome,
    SourceConfig,
    utcnow,
)
from data.database import Database
from data.repositories import (
    PropertyRepository,
    QualityReportRepository,
    RecordRepository,
)
from data.schema import DBScrapeJob
from normalization.adapters import RecordNormalizer
from normalization.quality import build_quality_report
from scrapers.executor import ScraperExecutor
from scrapers.registry import SourceRegistry

log = logging.getLogger(__name__)


class JobDispatcher:
    """Turns one claimed job into a JobOutcome.

    Configuration problems come back as non-retryable failures, extraction
    failures as retryable ones.  Persistence errors propagate so the queue
    treats the attempt as failed and retries it.
    """

    def __init__(
        self,
        db: Database,
        registry: SourceRegistry,
        executor: ScraperExecutor,
        normalizer: RecordNormalizer | None = None,
    ) -> None:
        self._db = db
        self._registry = registry
        self._executor = executor
        self._normalizer = normalizer or RecordNormalizer()

    async def __call__(self, job: DBScrapeJob) -> JobOutcome:
        kind = JobKind(job.kind)
        try:
            context = await self._context(job)
            source = await self._resolve_source(job, kind, context)
        except SourceConfigurationError as e:
            log.warning("Job %s has no usable source: %s", job.id, e)
            return JobOutcome(success=False, error=str(e), retryable=False)

        request = ExtractionRequest(
            job_id=job.id,
            kind=kind,
            url=job.target_url,
            address=context.get("address"),
            postal_code=context.get("postal_code"),
            entity_id=job.entity_id,
            options=dict(job.options or {}),
        )
        outcome = await self._executor.execute(request, source)
        if not outcome.success:
            return JobOutcome(success=False, error=outcome.error, retryable=True)

        entity_type = EntityType(source.entity_type)
        results = [
            self._normalizer.normalize(raw, entity_type, context=context)
            for raw in outcome.records
        ]
        report = build_quality_report(source.source_id, entity_type.value, results)
        valid = [r for r in results if r.validation.is_valid]
        for r in results:
            if not r.validation.is_valid:
                log.debug("Rejected %s record: %s", source.source_id, r.validation.errors)

        now = utcnow()
        async with self._db.get_session() as session:
            records = RecordRepository(session)
            for r in valid:
                await records.upsert(r.record, entity_id=job.entity_id)
            await QualityReportRepository(session).append(report, created_at=now, job_id=job.id)
            if kind is JobKind.TAX_ASSESSMENT and job.entity_id is not None:
                await PropertyRepository(session).mark_refreshed(job.entity_id, now)

        log.info(
            "Job %s: %d/%d valid %s records from %s",
            job.id,
            len(valid),
            len(results),
            entity_type.value,
            source.source_id,
        )
        return JobOutcome(
            success=True,
            result={
                "source": source.source_id,
                "source_name": source.name,
                "strategy": outcome.strategy,
                "total_records": len(results),
                "valid_records": len(valid),
                "invalid_records": len(results) - len(valid),
                "records": [
                    {
                        "external_id": r.record.external_id,
                        "confidence": r.record.confidence,
                        "data": r.record.data,
                    }
                    for r in valid
                ],
                "quality": report.to_dict(),
            },
        )

    async def _context(self, job: DBScrapeJob) -> dict[str, Any]:
        """Location fields known before scraping, from the job and its property."""
        context: dict[str, Any] = {"address": job.address, "postal_code": job.postal_code}
        if job.entity_id is not None:
            async with self._db.get_session() as session:
                prop = await PropertyRepository(session).get(job.entity_id)
            if prop is None:
                raise SourceConfigurationError(f"property {job.entity_id} not found")
            context["address"] = context["address"] or prop.address
            context["postal_code"] = context["postal_code"] or prop.postal_code
            context["city"] = prop.city
            context["region"] = prop.region
        return {k: v for k, v in context.items() if v}

    async def _resolve_source(
        self, job: DBScrapeJob, kind: JobKind, context: dict[str, Any]
    ) -> SourceConfig:
        source: SourceConfig | None = None
        if job.source_id:
            source = await self._registry.get(job.source_id)
            if source is None:
                raise SourceConfigurationError(f"unknown source {job.source_id!r}")
        elif kind is JobKind.TAX_ASSESSMENT and context.get("postal_code"):
            code = context["postal_code"]
            source = await self._registry.resolve_for_postal_code(code)
            if source is None:
                raise SourceConfigurationError(f"no assessor source for postal code {code}")
        elif job.target_url:
            source = await self._source_for_url(job.target_url, kind)
            if source is None:
                raise SourceConfigurationError(f"no source configured for {job.target_url}")
        else:
            raise SourceConfigurationError(f"cannot resolve a source for {kind.value} job")

        if not source.is_active:
            raise SourceConfigurationError(f"source {source.source_id} is inactive")
        if source.auth_required:
            raise SourceConfigurationError(
                f"source {source.source_id} requires authentication, which is not supported"
            )
        return source

    async def _source_for_url(self, url: str, kind: JobKind) -> SourceConfig | None:
        host = urlparse(url).netloc
        entity_type = ENTITY_TYPE_BY_KIND[kind].value
        for source in await self._registry.list_sources():
            if urlparse(source.base_url).netloc == host and source.entity_type == entity_type:
                return source
        return None
