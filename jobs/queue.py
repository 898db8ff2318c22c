"""Durable scrape-job queue.

Jobs live in the ``scrape_jobs`` table.  Every state change is a
conditional update keyed by id and expected status, so a job is owned by
exactly one worker between claim and its terminal transition.
"""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from collections.abc import Awaitable, Callable, Iterable
from datetime import timedelta
from typing import Any

from core.errors import JobNotFoundError, JobStateConflictError
from core.models import (
    JobKind,
    JobOutcome,
    JobStatus,
    JobTarget,
    isoformat_utc,
    utcnow,
)
from data.database import Database
from data.repositories import JobRepository, PropertyRepository, SourceRepository
from data.schema import DBScrapeJob

log = logging.getLogger(__name__)

JobHandler = Callable[[DBScrapeJob], Awaitable[JobOutcome]]
Broadcast = Callable[[dict], Awaitable[None]]

STALE_REFRESH_PRIORITY = 2


class JobQueue:
    def __init__(
        self,
        db: Database,
        *,
        handler: JobHandler | None = None,
        broadcast: Broadcast | None = None,
        concurrency: int = 5,
        idle_poll_seconds: float = 10.0,
        busy_poll_seconds: float = 5.0,
        default_priority: int = 3,
        default_max_retries: int = 3,
        retry_base_delay: float = 30.0,
        retry_max_delay: float = 900.0,
        retry_jitter: float = 5.0,
        stale_after_days: int = 30,
    ) -> None:
        self._db = db
        self._handler = handler
        self._broadcast = broadcast
        self._concurrency = concurrency
        self._slots = asyncio.Semaphore(concurrency)
        self._idle_poll = idle_poll_seconds
        self._busy_poll = busy_poll_seconds
        self._default_priority = default_priority
        self._default_max_retries = default_max_retries
        self._retry_base = retry_base_delay
        self._retry_max = retry_max_delay
        self._retry_jitter = retry_jitter
        self._stale_after_days = stale_after_days
        self._tasks: set[asyncio.Task] = set()
        self._running = False
        self._stop_event = asyncio.Event()

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    # ── Enqueue ──────────────────────────────────────────────────────

    async def enqueue(
        self,
        kind: JobKind | str,
        target: JobTarget,
        *,
        priority: int | None = None,
        max_retries: int | None = None,
        options: dict[str, Any] | None = None,
    ) -> str:
        kind = JobKind(kind)
        if target.is_empty():
            raise ValueError("job target must name a source, url, postal code, entity or address")
        max_retries = self._default_max_retries if max_retries is None else max_retries
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        job = self._new_job(
            kind,
            target,
            priority=self._default_priority if priority is None else priority,
            max_retries=max_retries,
            options=options,
        )
        async with self._db.get_session() as session:
            await JobRepository(session).create(job)

        log.info("Enqueued %s job %s (priority %d)", kind.value, job.id, job.priority)
        await self._emit("job_enqueued", job.id, kind=kind.value)
        return job.id

    @staticmethod
    def _new_job(
        kind: JobKind,
        target: JobTarget,
        *,
        priority: int,
        max_retries: int,
        options: dict[str, Any] | None,
    ) -> DBScrapeJob:
        return DBScrapeJob(
            id=uuid.uuid4().hex,
            kind=kind.value,
            source_id=target.source_id,
            target_url=target.url,
            postal_code=target.postal_code,
            entity_id=target.entity_id,
            address=target.address,
            options=dict(options or {}),
            status=JobStatus.PENDING.value,
            priority=priority,
            retry_count=0,
            max_retries=max_retries,
            created_at=utcnow(),
        )

    async def bulk_enqueue_stale(self, max_jobs: int = 100) -> list[str]:
        """One tax-assessment refresh per stale property, oldest first.

        Skips properties that already have a pending/running tax job and
        properties whose postal code has no active, unauthenticated source.
        """
        now = utcnow()
        cutoff = now - timedelta(days=self._stale_after_days)
        kind = JobKind.TAX_ASSESSMENT
        created: list[str] = []

        async with self._db.get_session() as session:
            jobs = JobRepository(session)
            properties = PropertyRepository(session)
            sources = SourceRepository(session)
            busy = await jobs.active_entity_ids(kind.value)
            usable: dict[str, bool] = {}

            offset = 0
            page_size = max(max_jobs, 50)
            while len(created) < max_jobs:
                page = await properties.stale_candidates(cutoff, limit=page_size, offset=offset)
                if not page:
                    break
                offset += len(page)
                for prop in page:
                    if len(created) >= max_jobs:
                        break
                    if prop.id in busy:
                        continue
                    code = prop.postal_code[:5]
                    if code not in usable:
                        source = await sources.find_for_postal_code(code)
                        usable[code] = bool(
                            source and source.is_active and not source.auth_required
                        )
                    if not usable[code]:
                        continue
                    job = self._new_job(
                        kind,
                        JobTarget(
                            postal_code=code, entity_id=prop.id, address=prop.address
                        ),
                        priority=STALE_REFRESH_PRIORITY,
                        max_retries=self._default_max_retries,
                        options=None,
                    )
                    await jobs.create(job)
                    busy.add(prop.id)
                    created.append(job.id)

        log.info("Enqueued %d stale tax-assessment refresh jobs", len(created))
        return created

    # ── Dispatch ─────────────────────────────────────────────────────

    async def run_forever(self) -> None:
        """Claim and dispatch jobs until ``stop()`` is called."""
        self._running = True
        self._stop_event.clear()
        log.info("Job queue started (concurrency %d)", self._concurrency)
        while self._running:
            if self.active_count >= self._concurrency:
                await self._pause(self._busy_poll)
                continue
            try:
                job = await self._claim_next()
            except Exception as e:
                log.error("Failed to claim next job: %s", e)
                await self._pause(self._idle_poll)
                continue
            if job is None:
                await self._pause(self._idle_poll)
                continue
            self._spawn(job)
        log.info("Job queue stopped")

    def stop(self) -> None:
        self._running = False
        self._stop_event.set()

    async def drain(self) -> None:
        """Wait for every in-flight job to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def process_next(self, kinds: Iterable[JobKind] | None = None) -> str | None:
        """Claim one job and run it to its next state.  Returns its id."""
        job = await self._claim_next(kinds)
        if job is None:
            return None
        await self._run(job)
        return job.id

    async def process_batch(
        self,
        kinds: Iterable[JobKind],
        *,
        batch_size: int = 10,
        chunk_size: int = 3,
    ) -> dict[str, int]:
        """Claim up to ``batch_size`` jobs of ``kinds`` and run them in chunks."""
        kinds = list(kinds)
        claimed: list[DBScrapeJob] = []
        while len(claimed) < batch_size:
            job = await self._claim_next(kinds)
            if job is None:
                break
            claimed.append(job)

        summary = {"claimed": len(claimed), "succeeded": 0, "failed": 0}
        for start in range(0, len(claimed), chunk_size):
            chunk = claimed[start : start + chunk_size]
            tasks = [self._spawn(job) for job in chunk]
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for ok in results:
                summary["succeeded" if ok is True else "failed"] += 1
        log.info("Batch processed: %s", summary)
        return summary

    async def _claim_next(self, kinds: Iterable[JobKind] | None = None) -> DBScrapeJob | None:
        now = utcnow()
        kind_values = [JobKind(k).value for k in kinds] if kinds else None
        async with self._db.get_session() as session:
            repo = JobRepository(session)
            for job in await repo.next_pending(now, kinds=kind_values, limit=5):
                claimed = await repo.transition(
                    job.id,
                    JobStatus.PENDING,
                    status=JobStatus.RUNNING.value,
                    started_at=now,
                )
                if claimed:
                    await session.refresh(job)
                    return job
        return None

    def _spawn(self, job: DBScrapeJob) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._run(job))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, job: DBScrapeJob) -> bool:
        if self._handler is None:
            raise RuntimeError("job queue has no handler")
        async with self._slots:
            log.info("Running %s job %s (attempt %d)", job.kind, job.id, job.retry_count + 1)
            try:
                outcome = await self._handler(job)
            except Exception as e:
                log.warning("Job %s raised %s: %s", job.id, type(e).__name__, e)
                outcome = JobOutcome(success=False, error=str(e) or type(e).__name__)

            try:
                if outcome.success:
                    await self.on_complete(job.id, outcome.result or {})
                else:
                    await self.on_failure(
                        job.id, outcome.error or "unknown error", retryable=outcome.retryable
                    )
            except Exception as e:
                log.error("Failed to record outcome of job %s: %s", job.id, e)
                return False
            return outcome.success

    async def _pause(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    # ── Transitions ──────────────────────────────────────────────────

    async def on_complete(self, job_id: str, result: dict[str, Any]) -> bool:
        async with self._db.get_session() as session:
            ok = await JobRepository(session).transition(
                job_id,
                JobStatus.RUNNING,
                status=JobStatus.COMPLETED.value,
                completed_at=utcnow(),
                result=result,
                error_message=None,
            )
        if ok:
            log.info("Job %s completed", job_id)
            await self._emit("job_completed", job_id, records=result.get("valid_records"))
        else:
            log.warning("Job %s was not running; completion ignored", job_id)
        return ok

    def backoff_delay(self, attempt: int) -> float:
        """Exponential in the retry number, capped, plus uniform jitter."""
        delay = min(self._retry_base * 2 ** (attempt - 1), self._retry_max)
        if self._retry_jitter > 0:
            delay += random.uniform(0, self._retry_jitter)
        return delay

    async def on_failure(self, job_id: str, error: str, *, retryable: bool = True) -> JobStatus:
        """Requeue with backoff while attempts remain, otherwise fail."""
        now = utcnow()
        async with self._db.get_session() as session:
            repo = JobRepository(session)
            job = await repo.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if job.status != JobStatus.RUNNING.value:
                log.warning("Job %s is %s; failure ignored", job_id, job.status)
                return JobStatus(job.status)

            next_retry = job.retry_count + 1
            if retryable and next_retry <= job.max_retries:
                delay = self.backoff_delay(next_retry)
                await repo.transition(
                    job_id,
                    JobStatus.RUNNING,
                    status=JobStatus.PENDING.value,
                    retry_count=next_retry,
                    started_at=None,
                    available_at=now + timedelta(seconds=delay),
                    error_message=error,
                )
                status = JobStatus.PENDING
            else:
                await repo.transition(
                    job_id,
                    JobStatus.RUNNING,
                    status=JobStatus.FAILED.value,
                    completed_at=now,
                    error_message=error,
                )
                status = JobStatus.FAILED

        if status is JobStatus.PENDING:
            log.info(
                "Job %s failed (%s); retry %d/%d in %.0fs",
                job_id, error, next_retry, job.max_retries, delay,
            )
            await self._emit("job_retry", job_id, error=error, retry=next_retry)
        else:
            log.warning("Job %s failed permanently: %s", job_id, error)
            await self._emit("job_failed", job_id, error=error)
        return status

    async def cancel(self, job_id: str) -> None:
        async with self._db.get_session() as session:
            repo = JobRepository(session)
            job = await repo.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            cancelled = job.status == JobStatus.PENDING.value and await repo.transition(
                job_id,
                JobStatus.PENDING,
                status=JobStatus.FAILED.value,
                completed_at=utcnow(),
                error_message="cancelled",
            )
            if not cancelled:
                await session.refresh(job)
                raise JobStateConflictError(f"job {job_id} is {job.status}")
        log.info("Job %s cancelled", job_id)
        await self._emit("job_cancelled", job_id)

    async def cleanup(self, older_than_days: int = 7) -> int:
        cutoff = utcnow() - timedelta(days=older_than_days)
        async with self._db.get_session() as session:
            removed = await JobRepository(session).delete_finished_before(cutoff)
        log.info("Removed %d finished jobs older than %d days", removed, older_than_days)
        return removed

    # ── Queries ──────────────────────────────────────────────────────

    async def get_status(self, job_id: str) -> dict[str, Any]:
        async with self._db.get_session() as session:
            job = await JobRepository(session).get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return job_to_dict(job)

    async def get_stats(self) -> dict[str, Any]:
        async with self._db.get_session() as session:
            counts = await JobRepository(session).count_by_status()
        stats = {status.value: counts.get(status.value, 0) for status in JobStatus}
        stats["total"] = sum(counts.values())
        stats["active_jobs"] = self.active_count
        stats["concurrency"] = self._concurrency
        return stats

    async def _emit(self, event: str, job_id: str, **data) -> None:
        if self._broadcast:
            await self._broadcast({"event": event, "job_id": job_id, **data})


def job_to_dict(job: DBScrapeJob) -> dict[str, Any]:
    return {
        "id": job.id,
        "kind": job.kind,
        "status": job.status,
        "priority": job.priority,
        "retry_count": job.retry_count,
        "max_retries": job.max_retries,
        "source_id": job.source_id,
        "target": {
            "url": job.target_url,
            "postal_code": job.postal_code,
            "entity_id": job.entity_id,
            "address": job.address,
        },
        "options": job.options or {},
        "created_at": isoformat_utc(job.created_at),
        "started_at": isoformat_utc(job.started_at),
        "completed_at": isoformat_utc(job.completed_at),
        "available_at": isoformat_utc(job.available_at),
        "error_message": job.error_message,
        "result": job.result if job.status == JobStatus.COMPLETED.value else None,
    }
