"""Pytest configuration for repository test runs."""

from __future__ import annotations

import pytest

from config.settings import Settings


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings with a throwaway database and no waiting between retries."""
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'ingestion.db'}",
        RETRY_BASE_DELAY_SECONDS=0,
        RETRY_JITTER_SECONDS=0,
        GENERIC_SETTLE_SECONDS=0,
        RATE_LIMIT_POLL_SECONDS=0.01,
        SCHEDULING_ENABLED=False,
    )
