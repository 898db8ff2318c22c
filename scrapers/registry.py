from __future__ import annotations

import logging

from core.models import SourceConfig, utcnow
from data.database import Database
from data.repositories import SourceRepository, source_to_config
from scrapers.sources import POSTAL_CODE_JURISDICTIONS, builtin_source_configs

log = logging.getLogger(__name__)


class SourceRegistry:
    """Persisted source catalogue plus the postal-code jurisdiction map."""

    def __init__(self, db: Database, configs: list[SourceConfig] | None = None) -> None:
        self._db = db
        self._builtin = configs if configs is not None else builtin_source_configs()

    async def initialize(self) -> None:
        """Upsert the built-in catalogue.  Counters and ``is_active`` survive."""
        now = utcnow()
        async with self._db.get_session() as session:
            repo = SourceRepository(session)
            for config in self._builtin:
                await repo.upsert_source(config, now)
            for code, (county, region) in POSTAL_CODE_JURISDICTIONS.items():
                await repo.upsert_postal_code(code, county, region)
        log.info(
            "Source registry initialized: %d sources, %d postal codes",
            len(self._builtin),
            len(POSTAL_CODE_JURISDICTIONS),
        )

    async def get(self, source_id: str) -> SourceConfig | None:
        async with self._db.get_session() as session:
            row = await SourceRepository(session).get(source_id)
            return source_to_config(row) if row else None

    async def resolve_for_postal_code(self, postal_code: str) -> SourceConfig | None:
        """Jurisdiction source for a postal code, or None when unmapped."""
        code = (postal_code or "").strip()[:5]
        async with self._db.get_session() as session:
            row = await SourceRepository(session).find_for_postal_code(code)
            return source_to_config(row) if row else None

    async def list_sources(
        self, *, source_type: str | None = None, active_only: bool = False
    ) -> list[SourceConfig]:
        async with self._db.get_session() as session:
            rows = await SourceRepository(session).list_sources(
                source_type=source_type, active_only=active_only
            )
            return [source_to_config(r) for r in rows]

    async def set_active(self, source_id: str, active: bool) -> bool:
        async with self._db.get_session() as session:
            return await SourceRepository(session).set_active(source_id, active)

    async def record_outcome(
        self, source_id: str, success: bool, error: str | None = None
    ) -> None:
        async with self._db.get_session() as session:
            await SourceRepository(session).record_outcome(
                source_id, success=success, error=error, now=utcnow()
            )

    async def source_stats(self) -> list[dict]:
        async with self._db.get_session() as session:
            return await SourceRepository(session).source_stats()
