from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./ingestion.db"

    # Server
    API_PORT: int = 8001
    LOG_LEVEL: str = "INFO"

    # Job queue
    CONCURRENT_JOBS: int = 5
    IDLE_POLL_SECONDS: float = 10.0
    BUSY_POLL_SECONDS: float = 5.0
    DEFAULT_PRIORITY: int = 3
    DEFAULT_MAX_RETRIES: int = 3

    # Retry backoff
    RETRY_BASE_DELAY_SECONDS: float = 30.0
    RETRY_MAX_DELAY_SECONDS: float = 900.0
    RETRY_JITTER_SECONDS: float = 5.0

    # Scraping behaviour
    SCRAPE_TIMEOUT_SECONDS: float = 60.0
    BROWSER_HEADLESS: bool = True
    BROWSER_MAX_SESSIONS: int = 3
    BROWSER_NAVIGATION_TIMEOUT_MS: int = 30_000
    GENERIC_SETTLE_SECONDS: float = 3.0
    RATE_LIMIT_POLL_SECONDS: float = 0.1

    # Staleness & recurring triggers
    SCHEDULING_ENABLED: bool = True
    STALE_AFTER_DAYS: int = 30
    STALE_REFRESH_CRON: str = "0 2 * * *"
    STALE_REFRESH_MAX_JOBS: int = 100
    CLEANUP_CRON: str = "0 3 * * sun"
    CLEANUP_AFTER_DAYS: int = 7
    INSTITUTIONAL_SWEEP_CRONS: str = "0 6 * * *;0 18 * * *"
    INSTITUTIONAL_BATCH_SIZE: int = 10
    INSTITUTIONAL_CHUNK_SIZE: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
