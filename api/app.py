from __future__ import annotations

import asyncio
import json
import logging

from fastapi import FastAPI, Request
from sse_starlette.sse import EventSourceResponse

from api.routers import jobs, quality, sources
from config.settings import settings
from core.container import Services, build_services

log = logging.getLogger(__name__)


class Broadcaster:
    """Simple in-memory SSE broadcaster."""

    def __init__(self) -> None:
        self._listeners: list[asyncio.Queue] = []

    async def broadcast(self, data: dict) -> None:
        for q in list(self._listeners):
            try:
                q.put_nowait(data)
            except asyncio.QueueFull:
                log.debug("SSE listener queue full; dropping %s", data.get("event"))

    def subscribe(self) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=50)
        self._listeners.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        if q in self._listeners:
            self._listeners.remove(q)


def create_app(services: Services | None = None) -> FastAPI:
    app = FastAPI(title="Real Estate Ingestion", version="0.1.0")
    broadcaster = Broadcaster()
    app.state.broadcaster = broadcaster
    app.state.services = services or build_services(
        settings, broadcast=broadcaster.broadcast
    )

    # Register API routers
    app.include_router(jobs.router)
    app.include_router(sources.router)
    app.include_router(quality.router)

    # SSE endpoint
    @app.get("/api/events")
    async def sse_events(request: Request):
        q = broadcaster.subscribe()

        async def event_generator():
            try:
                while True:
                    if await request.is_disconnected():
                        break
                    try:
                        data = await asyncio.wait_for(q.get(), timeout=30.0)
                        yield {"event": data.get("event", "message"), "data": json.dumps(data)}
                    except asyncio.TimeoutError:
                        yield {"event": "ping", "data": ""}
            finally:
                broadcaster.unsubscribe(q)

        return EventSourceResponse(event_generator())

    # Health check
    @app.get("/health")
    async def health():
        services = app.state.services
        return {
            "status": "ok",
            "active_jobs": services.queue.active_count,
            "scheduler": services.scheduler.get_status(),
        }

    return app
