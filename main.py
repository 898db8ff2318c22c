"""Real-estate ingestion service — entry point."""

from __future__ import annotations

import asyncio
import logging
import os

import certifi
import uvicorn

# Fix SSL cert resolution for curl_cffi (used by Scrapling)
os.environ.setdefault("CURL_CA_BUNDLE", certifi.where())
os.environ.setdefault("SSL_CERT_FILE", certifi.where())

from api.app import create_app  # noqa: E402
from config.settings import settings  # noqa: E402

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)
log = logging.getLogger(__name__)

app = create_app()


@app.on_event("startup")
async def on_startup() -> None:
    services = app.state.services
    log.info("Initialising database…")
    await services.db.init_db()
    await services.registry.initialize()

    log.info("Starting job queue…")
    app.state.queue_task = asyncio.create_task(services.queue.run_forever())

    if settings.SCHEDULING_ENABLED:
        log.info("Starting job scheduler…")
        services.scheduler.start()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    services = app.state.services
    services.scheduler.stop()
    services.queue.stop()
    if hasattr(app.state, "queue_task"):
        await app.state.queue_task
    await services.queue.drain()
    log.info("Job queue stopped.")
    await services.browser.close()
    await services.db.dispose()


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.API_PORT,
        reload=False,
    )
