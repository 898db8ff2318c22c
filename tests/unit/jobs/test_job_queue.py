"""Unit tests for the durable job queue."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import update

from core.errors import JobNotFoundError, JobStateConflictError
from core.models import JobKind, JobOutcome, JobTarget, utcnow
from data.repositories import PropertyRepository
from data.schema import DBScrapeJob
from jobs.queue import JobQueue
from scrapers.registry import SourceRegistry
from tests.helpers import open_db


class ScriptedHandler:
    """Returns queued outcomes in order, repeating the last one."""

    def __init__(self, *outcomes: JobOutcome):
        self.outcomes = list(outcomes)
        self.seen: list[str] = []

    async def __call__(self, job):
        self.seen.append(job.id)
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        return self.outcomes[0]


def _queue(db, handler=None, events=None, **kwargs) -> JobQueue:
    async def broadcast(event):
        events.append(event)

    return JobQueue(
        db,
        handler=handler,
        broadcast=broadcast if events is not None else None,
        retry_base_delay=0,
        retry_jitter=0,
        **kwargs,
    )


def test_enqueue_rejects_empty_target(tmp_path) -> None:
    """A job must point at something."""

    async def scenario():
        db = await open_db(tmp_path)
        try:
            await _queue(db).enqueue(JobKind.RESEARCH, JobTarget())
        finally:
            await db.dispose()

    with pytest.raises(ValueError):
        asyncio.run(scenario())


def test_job_runs_to_completion(tmp_path) -> None:
    """A successful attempt should complete the job and keep its result."""

    async def scenario():
        db = await open_db(tmp_path)
        events: list[dict] = []
        handler = ScriptedHandler(JobOutcome(success=True, result={"valid_records": 2}))
        queue = _queue(db, handler, events)
        job_id = await queue.enqueue(JobKind.RESEARCH, JobTarget(source_id="cbre:research"))
        pending = await queue.get_status(job_id)
        processed = await queue.process_next()
        done = await queue.get_status(job_id)
        await db.dispose()
        return job_id, pending, processed, done, events

    job_id, pending, processed, done, events = asyncio.run(scenario())

    assert pending["status"] == "pending"
    assert pending["result"] is None
    assert processed == job_id
    assert done["status"] == "completed"
    assert done["result"] == {"valid_records": 2}
    assert done["started_at"] is not None
    assert done["completed_at"].endswith("+00:00")
    assert [e["event"] for e in events] == ["job_enqueued", "job_completed"]


def test_failed_attempts_retry_until_exhausted(tmp_path) -> None:
    """A job should get max_retries + 1 attempts and keep the last error."""

    async def scenario():
        db = await open_db(tmp_path)
        handler = ScriptedHandler(JobOutcome(success=False, error="HTTP 503"))
        queue = _queue(db, handler)
        job_id = await queue.enqueue(
            JobKind.TAX_ASSESSMENT, JobTarget(postal_code="90210"), max_retries=2
        )
        statuses = []
        while await queue.process_next() is not None:
            statuses.append((await queue.get_status(job_id))["status"])
        final = await queue.get_status(job_id)
        await db.dispose()
        return handler, statuses, final

    handler, statuses, final = asyncio.run(scenario())

    assert len(handler.seen) == 3
    assert statuses == ["pending", "pending", "failed"]
    assert final["retry_count"] == 2
    assert final["error_message"] == "HTTP 503"
    assert final["completed_at"] is not None


def test_non_retryable_failure_fails_immediately(tmp_path) -> None:
    """Configuration failures should not be retried."""

    async def scenario():
        db = await open_db(tmp_path)
        handler = ScriptedHandler(
            JobOutcome(success=False, error="no assessor source", retryable=False)
        )
        queue = _queue(db, handler)
        job_id = await queue.enqueue(JobKind.TAX_ASSESSMENT, JobTarget(postal_code="11201"))
        await queue.process_next()
        status = await queue.get_status(job_id)
        await db.dispose()
        return status

    status = asyncio.run(scenario())

    assert status["status"] == "failed"
    assert status["retry_count"] == 0


def test_handler_exception_is_treated_as_retryable_failure(tmp_path) -> None:
    """An exception escaping the handler should requeue the job."""

    async def boom(job):
        raise RuntimeError("database is locked")

    async def scenario():
        db = await open_db(tmp_path)
        queue = _queue(db, boom)
        job_id = await queue.enqueue(JobKind.RESEARCH, JobTarget(source_id="jll:research"))
        await queue.process_next()
        status = await queue.get_status(job_id)
        await db.dispose()
        return status

    status = asyncio.run(scenario())

    assert status["status"] == "pending"
    assert status["retry_count"] == 1
    assert status["error_message"] == "database is locked"


def test_backoff_delays_retry(tmp_path) -> None:
    """A requeued job should not be claimable until its backoff elapses."""

    async def scenario():
        db = await open_db(tmp_path)
        handler = ScriptedHandler(JobOutcome(success=False, error="timeout"))
        queue = JobQueue(db, handler=handler, retry_base_delay=60, retry_jitter=0)
        await queue.enqueue(JobKind.RESEARCH, JobTarget(source_id="jll:research"))
        first = await queue.process_next()
        second = await queue.process_next()
        await db.dispose()
        return first, second

    first, second = asyncio.run(scenario())

    assert first is not None
    assert second is None


def test_backoff_delay_grows_and_caps() -> None:
    """Delay should double per retry up to the cap."""
    queue = JobQueue(None, retry_base_delay=30, retry_max_delay=100, retry_jitter=0)

    assert [queue.backoff_delay(n) for n in (1, 2, 3, 4)] == [30, 60, 100, 100]


def test_jobs_are_claimed_by_priority_then_age(tmp_path) -> None:
    """Lower priority values run first; ties run oldest first."""

    async def scenario():
        db = await open_db(tmp_path)
        handler = ScriptedHandler(JobOutcome(success=True, result={}))
        queue = _queue(db, handler)
        low = await queue.enqueue(JobKind.RESEARCH, JobTarget(url="https://a.test"), priority=5)
        first = await queue.enqueue(JobKind.RESEARCH, JobTarget(url="https://b.test"), priority=1)
        second = await queue.enqueue(JobKind.RESEARCH, JobTarget(url="https://c.test"), priority=1)
        while await queue.process_next() is not None:
            pass
        await db.dispose()
        return handler.seen, [first, second, low]

    seen, expected = asyncio.run(scenario())

    assert seen == expected


def test_cancel_only_applies_to_pending_jobs(tmp_path) -> None:
    """Pending jobs cancel to failed; finished or unknown jobs raise."""

    async def scenario():
        db = await open_db(tmp_path)
        handler = ScriptedHandler(JobOutcome(success=True, result={}))
        queue = _queue(db, handler)
        done_id = await queue.enqueue(JobKind.RESEARCH, JobTarget(url="https://a.test"))
        await queue.process_next()
        pending_id = await queue.enqueue(JobKind.RESEARCH, JobTarget(url="https://b.test"))
        await queue.cancel(pending_id)
        cancelled = await queue.get_status(pending_id)
        with pytest.raises(JobStateConflictError):
            await queue.cancel(done_id)
        with pytest.raises(JobStateConflictError):
            await queue.cancel(pending_id)
        with pytest.raises(JobNotFoundError):
            await queue.cancel("missing")
        claimed = await queue.process_next()
        await db.dispose()
        return cancelled, claimed

    cancelled, claimed = asyncio.run(scenario())

    assert cancelled["status"] == "failed"
    assert cancelled["error_message"] == "cancelled"
    assert claimed is None


def test_failure_report_for_unknown_or_idle_job(tmp_path) -> None:
    """Failure reports should reject unknown ids and ignore non-running jobs."""

    async def scenario():
        db = await open_db(tmp_path)
        queue = _queue(db)
        job_id = await queue.enqueue(JobKind.RESEARCH, JobTarget(url="https://a.test"))
        status = await queue.on_failure(job_id, "late report")
        with pytest.raises(JobNotFoundError):
            await queue.on_failure("missing", "boom")
        completed = await queue.on_complete(job_id, {})
        await db.dispose()
        return status, completed

    status, completed = asyncio.run(scenario())

    assert status.value == "pending"
    assert completed is False


def test_cleanup_removes_only_old_finished_jobs(tmp_path) -> None:
    """Cleanup should delete finished jobs older than the cutoff."""

    async def scenario():
        db = await open_db(tmp_path)
        handler = ScriptedHandler(JobOutcome(success=True, result={}))
        queue = _queue(db, handler)
        old_done = await queue.enqueue(JobKind.RESEARCH, JobTarget(url="https://a.test"))
        await queue.process_next()
        old_pending = await queue.enqueue(JobKind.RESEARCH, JobTarget(url="https://b.test"))
        fresh_done = await queue.enqueue(
            JobKind.RESEARCH, JobTarget(url="https://c.test"), priority=1
        )
        await queue.process_next()
        async with db.get_session() as session:
            await session.execute(
                update(DBScrapeJob)
                .where(DBScrapeJob.id.in_([old_done, old_pending]))
                .values(created_at=utcnow() - timedelta(days=10))
            )
        removed = await queue.cleanup(older_than_days=7)
        stats = await queue.get_stats()
        with pytest.raises(JobNotFoundError):
            await queue.get_status(old_done)
        remaining = [await queue.get_status(old_pending), await queue.get_status(fresh_done)]
        await db.dispose()
        return removed, stats, remaining

    removed, stats, remaining = asyncio.run(scenario())

    assert removed == 1
    assert stats["total"] == 2
    assert stats["pending"] == 1
    assert stats["completed"] == 1
    assert [r["status"] for r in remaining] == ["pending", "completed"]


def test_bulk_enqueue_stale_respects_sources_and_bound(tmp_path) -> None:
    """Stale refresh should skip busy, fresh and unserviceable properties."""

    async def scenario():
        db = await open_db(tmp_path)
        registry = SourceRegistry(db)
        await registry.initialize()
        await registry.set_active("cook_il", False)
        now = utcnow()
        async with db.get_session() as session:
            props = PropertyRepository(session)
            la_old = await props.add(
                address="1 Rodeo Dr", postal_code="90210", created_at=now - timedelta(days=90),
                last_refreshed_at=now - timedelta(days=45),
            )
            la_new = await props.add(address="2 Rodeo Dr", postal_code="90210-4321", created_at=now)
            la_busy = await props.add(address="3 Rodeo Dr", postal_code="90211", created_at=now)
            fresh = await props.add(
                address="4 Rodeo Dr", postal_code="90212", created_at=now,
                last_refreshed_at=now - timedelta(days=1),
            )
            brooklyn = await props.add(address="5 Court St", postal_code="11201", created_at=now)
            chicago = await props.add(address="6 Wacker Dr", postal_code="60601", created_at=now)
            no_zip = await props.add(address="7 Unknown Rd", created_at=now)
            ids = {
                "la_old": la_old.id, "la_new": la_new.id, "la_busy": la_busy.id,
                "fresh": fresh.id, "brooklyn": brooklyn.id, "chicago": chicago.id,
                "no_zip": no_zip.id,
            }

        queue = _queue(db)
        await queue.enqueue(JobKind.TAX_ASSESSMENT, JobTarget(entity_id=ids["la_busy"]))
        bounded = await queue.bulk_enqueue_stale(max_jobs=1)
        rest = await queue.bulk_enqueue_stale(max_jobs=10)
        again = await queue.bulk_enqueue_stale(max_jobs=10)
        jobs = [await queue.get_status(j) for j in bounded + rest]
        await db.dispose()
        return ids, jobs, again

    ids, jobs, again = asyncio.run(scenario())

    assert [j["target"]["entity_id"] for j in jobs] == [ids["la_new"], ids["la_old"]]
    assert jobs[0]["target"]["postal_code"] == "90210"
    assert all(j["priority"] == 2 for j in jobs)
    assert all(j["kind"] == "tax_assessment" for j in jobs)
    assert again == []


class SlowHandler:
    """Succeeds after a short delay and records how many jobs overlap."""

    def __init__(self, delay: float = 0.05):
        self.delay = delay
        self.in_flight = 0
        self.peak = 0

    async def __call__(self, job):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        return JobOutcome(success=True, result={"valid_records": 0})


async def _wait_for(predicate, timeout: float = 5.0) -> None:
    async def poll():
        while not await predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout)


def test_run_forever_respects_concurrency_limit(tmp_path) -> None:
    """The loop should finish every job without exceeding the concurrency cap."""

    async def scenario():
        db = await open_db(tmp_path)
        handler = SlowHandler()
        queue = _queue(
            db, handler, concurrency=2, idle_poll_seconds=0.01, busy_poll_seconds=0.01
        )
        ids = [
            await queue.enqueue(JobKind.RESEARCH, JobTarget(source_id="cbre:research"))
            for _ in range(6)
        ]
        loop_task = asyncio.create_task(queue.run_forever())

        async def all_done():
            return (await queue.get_stats())["completed"] == 6

        await _wait_for(all_done)
        queue.stop()
        await loop_task
        await queue.drain()
        statuses = [(await queue.get_status(i))["status"] for i in ids]
        await db.dispose()
        return handler.peak, statuses

    peak, statuses = asyncio.run(scenario())

    assert peak == 2
    assert statuses == ["completed"] * 6


def test_stop_then_drain_lets_in_flight_job_finish(tmp_path) -> None:
    """Stopping the loop should not abandon a job that is already running."""

    async def scenario():
        db = await open_db(tmp_path)
        handler = SlowHandler(delay=0.2)
        queue = _queue(db, handler, idle_poll_seconds=0.01, busy_poll_seconds=0.01)
        job_id = await queue.enqueue(JobKind.RESEARCH, JobTarget(source_id="cbre:research"))
        loop_task = asyncio.create_task(queue.run_forever())

        async def started():
            return handler.in_flight == 1

        await _wait_for(started)
        queue.stop()
        await loop_task
        running = (await queue.get_status(job_id))["status"]
        await queue.drain()
        final = await queue.get_status(job_id)
        await db.dispose()
        return running, final, queue.active_count

    running, final, active = asyncio.run(scenario())

    assert running == "running"
    assert final["status"] == "completed"
    assert active == 0
