from __future__ import annotations

from dataclasses import dataclass

from scrapling import Fetcher

from config.settings import Settings
from data.database import Database
from jobs.dispatch import JobDispatcher
from jobs.queue import Broadcast, JobQueue
from jobs.scheduler import JobScheduler
from normalization.adapters import RecordNormalizer
from scrapers.browser import BrowserPool
from scrapers.executor import ScraperExecutor
from scrapers.interactive import InteractiveStrategy
from scrapers.navigators import NavigatorResolver
from scrapers.rate_limiter import RateLimiterRegistry
from scrapers.registry import SourceRegistry
from scrapers.static import StaticFetchStrategy


@dataclass
class Services:
    db: Database
    registry: SourceRegistry
    limiters: RateLimiterRegistry
    browser: BrowserPool
    executor: ScraperExecutor
    dispatcher: JobDispatcher
    queue: JobQueue
    scheduler: JobScheduler


def split_crons(value: str) -> list[str]:
    return [c.strip() for c in value.split(";") if c.strip()]


def build_services(
    settings: Settings,
    *,
    db: Database | None = None,
    fetcher_factory=Fetcher,
    browser_launcher=None,
    broadcast: Broadcast | None = None,
) -> Services:
    """Wire every component from one Settings object."""
    db = db or Database(settings.DATABASE_URL)
    registry = SourceRegistry(db)
    limiters = RateLimiterRegistry(poll_interval=settings.RATE_LIMIT_POLL_SECONDS)
    browser = BrowserPool(
        headless=settings.BROWSER_HEADLESS,
        max_sessions=settings.BROWSER_MAX_SESSIONS,
        navigation_timeout_ms=settings.BROWSER_NAVIGATION_TIMEOUT_MS,
        launcher=browser_launcher,
    )
    executor = ScraperExecutor(
        registry=registry,
        limiters=limiters,
        interactive=InteractiveStrategy(
            browser, NavigatorResolver(settle_seconds=settings.GENERIC_SETTLE_SECONDS)
        ),
        static=StaticFetchStrategy(
            timeout_seconds=settings.SCRAPE_TIMEOUT_SECONDS,
            fetcher_factory=fetcher_factory,
        ),
        timeout_seconds=settings.SCRAPE_TIMEOUT_SECONDS,
    )
    dispatcher = JobDispatcher(db, registry, executor, RecordNormalizer())
    queue = JobQueue(
        db,
        handler=dispatcher,
        broadcast=broadcast,
        concurrency=settings.CONCURRENT_JOBS,
        idle_poll_seconds=settings.IDLE_POLL_SECONDS,
        busy_poll_seconds=settings.BUSY_POLL_SECONDS,
        default_priority=settings.DEFAULT_PRIORITY,
        default_max_retries=settings.DEFAULT_MAX_RETRIES,
        retry_base_delay=settings.RETRY_BASE_DELAY_SECONDS,
        retry_max_delay=settings.RETRY_MAX_DELAY_SECONDS,
        retry_jitter=settings.RETRY_JITTER_SECONDS,
        stale_after_days=settings.STALE_AFTER_DAYS,
    )
    scheduler = JobScheduler(
        queue,
        registry,
        stale_refresh_cron=settings.STALE_REFRESH_CRON,
        stale_refresh_max_jobs=settings.STALE_REFRESH_MAX_JOBS,
        cleanup_cron=settings.CLEANUP_CRON,
        cleanup_after_days=settings.CLEANUP_AFTER_DAYS,
        institutional_sweep_crons=split_crons(settings.INSTITUTIONAL_SWEEP_CRONS),
        institutional_batch_size=settings.INSTITUTIONAL_BATCH_SIZE,
        institutional_chunk_size=settings.INSTITUTIONAL_CHUNK_SIZE,
        sweep_priority=settings.DEFAULT_PRIORITY,
    )
    return Services(
        db=db,
        registry=registry,
        limiters=limiters,
        browser=browser,
        executor=executor,
        dispatcher=dispatcher,
        queue=queue,
        scheduler=scheduler,
    )
