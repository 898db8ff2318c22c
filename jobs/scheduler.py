from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from core.models import ENTITY_TYPE_BY_KIND, INSTITUTIONAL_KINDS, JobTarget
from jobs.queue import JobQueue
from scrapers.registry import SourceRegistry

log = logging.getLogger(__name__)

KIND_BY_ENTITY_TYPE = {entity.value: kind for kind, entity in ENTITY_TYPE_BY_KIND.items()}


class JobScheduler:
    """Recurring triggers: stale refresh, cleanup and institutional sweeps."""

    def __init__(
        self,
        queue: JobQueue,
        registry: SourceRegistry,
        *,
        stale_refresh_cron: str = "0 2 * * *",
        stale_refresh_max_jobs: int = 100,
        cleanup_cron: str = "0 3 * * sun",
        cleanup_after_days: int = 7,
        institutional_sweep_crons: list[str] | None = None,
        institutional_batch_size: int = 10,
        institutional_chunk_size: int = 3,
        sweep_priority: int = 3,
    ) -> None:
        self._queue = queue
        self._registry = registry
        self._scheduler = AsyncIOScheduler()
        self._stale_cron = stale_refresh_cron
        self._stale_max = stale_refresh_max_jobs
        self._cleanup_cron = cleanup_cron
        self._cleanup_days = cleanup_after_days
        self._sweep_crons = (
            ["0 6 * * *", "0 18 * * *"]
            if institutional_sweep_crons is None
            else institutional_sweep_crons
        )
        self._batch_size = institutional_batch_size
        self._chunk_size = institutional_chunk_size
        self._sweep_priority = sweep_priority

    def start(self) -> None:
        self._scheduler.add_job(
            self.stale_refresh,
            CronTrigger.from_crontab(self._stale_cron),
            id="stale_refresh",
            replace_existing=True,
        )
        self._scheduler.add_job(
            self.cleanup,
            CronTrigger.from_crontab(self._cleanup_cron),
            id="cleanup",
            replace_existing=True,
        )
        for i, cron in enumerate(self._sweep_crons):
            self._scheduler.add_job(
                self.institutional_sweep,
                CronTrigger.from_crontab(cron),
                id=f"institutional_sweep_{i}",
                replace_existing=True,
            )
        self._scheduler.start()
        log.info(
            "Job scheduler started: stale=%r cleanup=%r sweeps=%r",
            self._stale_cron,
            self._cleanup_cron,
            self._sweep_crons,
        )

    def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def get_status(self) -> dict:
        jobs = []
        for job in self._scheduler.get_jobs():
            jobs.append(
                {
                    "id": job.id,
                    "next_run": job.next_run_time.isoformat()
                    if job.next_run_time
                    else None,
                }
            )
        return {"running": self._scheduler.running, "jobs": jobs}

    async def stale_refresh(self) -> list[str]:
        try:
            return await self._queue.bulk_enqueue_stale(self._stale_max)
        except Exception as e:
            log.error("Stale refresh failed: %s", e)
            return []

    async def cleanup(self) -> int:
        try:
            return await self._queue.cleanup(self._cleanup_days)
        except Exception as e:
            log.error("Job cleanup failed: %s", e)
            return 0

    async def institutional_sweep(self) -> dict:
        """Queue one job per active institutional source, then work a batch."""
        enqueued = 0
        try:
            sources = await self._registry.list_sources(
                source_type="institutional", active_only=True
            )
            for source in sources:
                if source.auth_required:
                    continue
                await self._queue.enqueue(
                    KIND_BY_ENTITY_TYPE[source.entity_type],
                    JobTarget(source_id=source.source_id, url=source.base_url),
                    priority=self._sweep_priority,
                )
                enqueued += 1
            summary = await self._queue.process_batch(
                INSTITUTIONAL_KINDS,
                batch_size=self._batch_size,
                chunk_size=self._chunk_size,
            )
        except Exception as e:
            log.error("Institutional sweep failed: %s", e)
            return {"enqueued": enqueued, "error": str(e)}

        log.info("Institutional sweep: %d jobs enqueued, %s", enqueued, summary)
        return {"enqueued": enqueued, **summary}
