from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, HTTPException, Query, Request

from scrapers.rate_limiter import limiter_key

router = APIRouter(prefix="/api/sources", tags=["sources"])


@router.get("")
async def list_sources(
    request: Request,
    source_type: str | None = Query(None, pattern="^(assessor|institutional)$"),
):
    services = request.app.state.services
    sources = await services.registry.list_sources(source_type=source_type)
    stats = {s["source_id"]: s for s in await services.registry.source_stats()}
    limits = services.limiters.status()
    return [
        {
            "source_id": s.source_id,
            "name": s.name,
            "source_type": s.source_type,
            "entity_type": s.entity_type,
            "base_url": s.base_url,
            "is_active": s.is_active,
            "needs_interactive_rendering": s.needs_interactive_rendering,
            "rate_limit": {
                "requests": s.rate_limit_requests,
                "window_seconds": s.rate_limit_window_seconds,
            },
            "stats": stats.get(s.source_id),
            "limiter": limits.get(limiter_key(s)),
        }
        for s in sources
    ]


@router.get("/postal/{postal_code}")
async def source_for_postal_code(postal_code: str, request: Request):
    source = await request.app.state.services.registry.resolve_for_postal_code(postal_code)
    if source is None:
        raise HTTPException(404, f"No assessor source for postal code {postal_code}")
    return asdict(source)
