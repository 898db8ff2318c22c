from __future__ import annotations

from fastapi import APIRouter, Query, Request

from core.models import isoformat_utc
from data.repositories import QualityReportRepository, RecordRepository

router = APIRouter(prefix="/api/quality", tags=["quality"])


@router.get("")
async def quality_overview(
    request: Request,
    source: str | None = None,
    limit: int = Query(20, ge=1, le=100),
):
    async with request.app.state.services.db.get_session() as session:
        reports = QualityReportRepository(session)
        recent = await reports.recent(source=source, limit=limit)
        health = await reports.source_health()
        record_counts = await RecordRepository(session).count_by_type()
    return {
        "records": record_counts,
        "health": health,
        "recent": [
            {
                "id": r.id,
                "source": r.source,
                "data_type": r.data_type,
                "job_id": r.job_id,
                "total_records": r.total_records,
                "valid_records": r.valid_records,
                "invalid_records": r.invalid_records,
                "duplicate_records": r.duplicate_records,
                "missing_required_fields": r.missing_required_fields,
                "completeness_score": r.completeness_score,
                "created_at": isoformat_utc(r.created_at),
            }
            for r in recent
        ],
    }
