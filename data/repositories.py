from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_upsert
from sqlalchemy.ext.asyncio import AsyncSession

from core.models import (
    TERMINAL_STATUSES,
    JobStatus,
    NormalizedRecord,
    QualityReport,
    SourceConfig,
    isoformat_utc,
)
from data.schema import (
    DBNormalizedRecord,
    DBPostalCodeMapping,
    DBProperty,
    DBQualityReport,
    DBScrapeJob,
    DBSource,
)

# ── JobRepository ────────────────────────────────────────────────────


class JobRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._s = session

    async def create(self, job: DBScrapeJob) -> DBScrapeJob:
        self._s.add(job)
        await self._s.flush()
        return job

    async def get(self, job_id: str) -> DBScrapeJob | None:
        return await self._s.get(DBScrapeJob, job_id)

    async def next_pending(
        self, now: datetime, *, kinds: Iterable[str] | None = None, limit: int = 1
    ) -> list[DBScrapeJob]:
        """Pending jobs ready to run, lower priority value first, then FIFO."""
        q = select(DBScrapeJob).where(
            DBScrapeJob.status == JobStatus.PENDING.value,
            (DBScrapeJob.available_at.is_(None)) | (DBScrapeJob.available_at <= now),
        )
        if kinds:
            q = q.where(DBScrapeJob.kind.in_(list(kinds)))
        q = q.order_by(DBScrapeJob.priority.asc(), DBScrapeJob.created_at.asc()).limit(
            limit
        )
        result = await self._s.execute(q)
        return list(result.scalars().all())

    async def transition(self, job_id: str, expected: JobStatus, **values) -> bool:
        """Conditional update keyed by id + current status.

        Returns False when another owner moved the job first.
        """
        stmt = (
            update(DBScrapeJob)
            .where(DBScrapeJob.id == job_id, DBScrapeJob.status == expected.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._s.execute(stmt)
        return bool(result.rowcount)

    async def delete_finished_before(self, cutoff: datetime) -> int:
        stmt = delete(DBScrapeJob).where(
            DBScrapeJob.status.in_([s.value for s in TERMINAL_STATUSES]),
            DBScrapeJob.created_at < cutoff,
        )
        result = await self._s.execute(stmt)
        return result.rowcount or 0

    async def count_by_status(self) -> dict[str, int]:
        q = select(DBScrapeJob.status, func.count(DBScrapeJob.id)).group_by(
            DBScrapeJob.status
        )
        rows = (await self._s.execute(q)).all()
        return {row[0]: row[1] for row in rows}

    async def active_entity_ids(self, kind: str) -> set[int]:
        """Entities that already have a pending or running job of this kind."""
        q = select(DBScrapeJob.entity_id).where(
            DBScrapeJob.kind == kind,
            DBScrapeJob.entity_id.is_not(None),
            DBScrapeJob.status.in_(
                [JobStatus.PENDING.value, JobStatus.RUNNING.value]
            ),
        )
        rows = (await self._s.execute(q)).scalars().all()
        return set(rows)


# ── SourceRepository ─────────────────────────────────────────────────


def source_to_config(row: DBSource) -> SourceConfig:
    return SourceConfig(
        source_id=row.source_id,
        name=row.name,
        base_url=row.base_url,
        needs_interactive_rendering=row.needs_interactive_rendering,
        field_locators=dict(row.field_locators or {}),
        rate_limit_requests=row.rate_limit_requests,
        rate_limit_window_seconds=row.rate_limit_window_seconds,
        auth_required=row.auth_required,
        is_active=row.is_active,
        source_type=row.source_type,
        entity_type=row.entity_type,
        item_locator=row.item_locator,
        county=row.county,
        region=row.region,
    )


class SourceRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._s = session

    async def upsert_source(self, config: SourceConfig, now: datetime) -> None:
        """Insert or refresh a source's configuration, keeping its counters."""
        values = {
            "name": config.name,
            "source_type": config.source_type,
            "entity_type": config.entity_type,
            "county": config.county,
            "region": config.region,
            "base_url": config.base_url,
            "needs_interactive_rendering": config.needs_interactive_rendering,
            "auth_required": config.auth_required,
            "field_locators": dict(config.field_locators),
            "item_locator": config.item_locator,
            "rate_limit_requests": config.rate_limit_requests,
            "rate_limit_window_seconds": config.rate_limit_window_seconds,
            "updated_at": now,
        }
        stmt = (
            sqlite_upsert(DBSource)
            .values(source_id=config.source_id, is_active=config.is_active, **values)
            .on_conflict_do_update(index_elements=["source_id"], set_=values)
        )
        await self._s.execute(stmt)

    async def upsert_postal_code(self, postal_code: str, county: str, region: str) -> None:
        stmt = (
            sqlite_upsert(DBPostalCodeMapping)
            .values(postal_code=postal_code, county=county, region=region)
            .on_conflict_do_update(
                index_elements=["postal_code"],
                set_={"county": county, "region": region},
            )
        )
        await self._s.execute(stmt)

    async def get(self, source_id: str) -> DBSource | None:
        return await self._s.get(DBSource, source_id)

    async def find_for_postal_code(self, postal_code: str) -> DBSource | None:
        q = (
            select(DBSource)
            .join(
                DBPostalCodeMapping,
                (DBPostalCodeMapping.county == DBSource.county)
                & (DBPostalCodeMapping.region == DBSource.region),
            )
            .where(
                DBPostalCodeMapping.postal_code == postal_code,
                DBSource.source_type == "assessor",
            )
            .limit(1)
        )
        result = await self._s.execute(q)
        return result.scalars().first()

    async def list_sources(
        self, *, source_type: str | None = None, active_only: bool = False
    ) -> list[DBSource]:
        q = select(DBSource)
        if source_type:
            q = q.where(DBSource.source_type == source_type)
        if active_only:
            q = q.where(DBSource.is_active.is_(True))
        q = q.order_by(DBSource.region.asc(), DBSource.name.asc())
        result = await self._s.execute(q)
        return list(result.scalars().all())

    async def record_outcome(
        self, source_id: str, *, success: bool, error: str | None, now: datetime
    ) -> None:
        if success:
            values = {
                "success_count": DBSource.success_count + 1,
                "last_success_at": now,
            }
        else:
            values = {
                "failure_count": DBSource.failure_count + 1,
                "last_failure_at": now,
                "last_error": (error or "")[:500],
            }
        await self._s.execute(
            update(DBSource)
            .where(DBSource.source_id == source_id)
            .values(updated_at=now, **values)
        )

    async def set_active(self, source_id: str, active: bool) -> bool:
        result = await self._s.execute(
            update(DBSource)
            .where(DBSource.source_id == source_id)
            .values(is_active=active)
        )
        return bool(result.rowcount)

    async def source_stats(self) -> list[dict]:
        """Per-source: counters, success rate, last outcome times."""
        rows = await self.list_sources()
        stats = []
        for r in rows:
            total = r.success_count + r.failure_count
            stats.append(
                {
                    "source_id": r.source_id,
                    "name": r.name,
                    "source_type": r.source_type,
                    "is_active": r.is_active,
                    "success_count": r.success_count,
                    "failure_count": r.failure_count,
                    "success_rate": round(r.success_count / max(total, 1) * 100, 0),
                    "last_success_at": isoformat_utc(r.last_success_at),
                    "last_failure_at": isoformat_utc(r.last_failure_at),
                    "last_error": r.last_error,
                }
            )
        return stats


# ── PropertyRepository ───────────────────────────────────────────────


class PropertyRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._s = session

    async def add(
        self,
        *,
        address: str,
        created_at: datetime,
        city: str | None = None,
        region: str | None = None,
        postal_code: str | None = None,
        last_refreshed_at: datetime | None = None,
    ) -> DBProperty:
        prop = DBProperty(
            address=address,
            city=city,
            region=region,
            postal_code=postal_code,
            created_at=created_at,
            last_refreshed_at=last_refreshed_at,
        )
        self._s.add(prop)
        await self._s.flush()
        return prop

    async def get(self, property_id: int) -> DBProperty | None:
        return await self._s.get(DBProperty, property_id)

    async def stale_candidates(
        self, cutoff: datetime, *, limit: int, offset: int = 0
    ) -> list[DBProperty]:
        """Never-refreshed or refreshed-before-cutoff, oldest first then newest created."""
        q = (
            select(DBProperty)
            .where(
                DBProperty.postal_code.is_not(None),
                (DBProperty.last_refreshed_at.is_(None))
                | (DBProperty.last_refreshed_at < cutoff),
            )
            .order_by(
                DBProperty.last_refreshed_at.asc().nulls_first(),
                DBProperty.created_at.desc(),
            )
            .limit(limit)
            .offset(offset)
        )
        result = await self._s.execute(q)
        return list(result.scalars().all())

    async def mark_refreshed(self, property_id: int, now: datetime) -> None:
        await self._s.execute(
            update(DBProperty)
            .where(DBProperty.id == property_id)
            .values(last_refreshed_at=now)
        )


# ── RecordRepository ─────────────────────────────────────────────────


class RecordRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._s = session

    async def upsert(self, record: NormalizedRecord, *, entity_id: int | None = None) -> None:
        """Insert or refresh a normalized record keyed by (source, external_id)."""
        stmt = (
            sqlite_upsert(DBNormalizedRecord)
            .values(
                source=record.source,
                external_id=record.external_id,
                entity_type=record.entity_type.value,
                entity_id=entity_id,
                data=record.data,
                confidence=record.confidence,
                normalized_at=record.normalized_at,
            )
            .on_conflict_do_update(
                index_elements=["source", "external_id"],
                set_={
                    "data": record.data,
                    "confidence": record.confidence,
                    "normalized_at": record.normalized_at,
                    "entity_id": entity_id,
                },
            )
        )
        await self._s.execute(stmt)

    async def list_records(
        self,
        *,
        source: str | None = None,
        entity_type: str | None = None,
        limit: int = 100,
    ) -> list[DBNormalizedRecord]:
        q = select(DBNormalizedRecord)
        if source:
            q = q.where(DBNormalizedRecord.source == source)
        if entity_type:
            q = q.where(DBNormalizedRecord.entity_type == entity_type)
        q = q.order_by(DBNormalizedRecord.normalized_at.desc()).limit(limit)
        result = await self._s.execute(q)
        return list(result.scalars().all())

    async def count_by_type(self) -> dict[str, int]:
        q = select(
            DBNormalizedRecord.entity_type, func.count(DBNormalizedRecord.id)
        ).group_by(DBNormalizedRecord.entity_type)
        rows = (await self._s.execute(q)).all()
        return {row[0]: row[1] for row in rows}


# ── QualityReportRepository ──────────────────────────────────────────


class QualityReportRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._s = session

    async def append(
        self, report: QualityReport, *, created_at: datetime, job_id: str | None = None
    ) -> None:
        self._s.add(
            DBQualityReport(
                source=report.source,
                data_type=report.data_type,
                job_id=job_id,
                total_records=report.total_records,
                valid_records=report.valid_records,
                invalid_records=report.invalid_records,
                duplicate_records=report.duplicate_records,
                missing_required_fields=report.missing_required_fields,
                completeness_score=round(report.completeness_score, 2),
                period_start=report.period_start,
                period_end=report.period_end,
                created_at=created_at,
            )
        )

    async def recent(
        self, *, source: str | None = None, limit: int = 20
    ) -> list[DBQualityReport]:
        q = select(DBQualityReport)
        if source:
            q = q.where(DBQualityReport.source == source)
        q = q.order_by(DBQualityReport.created_at.desc(), DBQualityReport.id.desc()).limit(
            limit
        )
        result = await self._s.execute(q)
        return list(result.scalars().all())

    async def source_health(self) -> list[dict]:
        """Per-source averages across all historical batches."""
        q = select(
            DBQualityReport.source,
            DBQualityReport.data_type,
            func.count(DBQualityReport.id),
            func.sum(DBQualityReport.total_records),
            func.sum(DBQualityReport.valid_records),
            func.avg(DBQualityReport.completeness_score),
            func.max(DBQualityReport.created_at),
        ).group_by(DBQualityReport.source, DBQualityReport.data_type)
        rows = (await self._s.execute(q)).all()
        return [
            {
                "source": r[0],
                "data_type": r[1],
                "batches": r[2],
                "total_records": r[3] or 0,
                "valid_records": r[4] or 0,
                "avg_completeness": round(r[5] or 0, 1),
                "last_report": isoformat_utc(r[6]),
            }
            for r in rows
        ]
