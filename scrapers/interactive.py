from __future__ import annotations

import logging

from core.errors import ExtractionError
from core.models import ExtractionRequest, RawExtractionResult, SourceConfig
from scrapers.base import ExtractionStrategy, coerce_fields
from scrapers.browser import BrowserPool
from scrapers.navigators import NavigatorResolver

log = logging.getLogger(__name__)


class InteractiveStrategy(ExtractionStrategy):
    """Headless-browser extraction for script-rendered portals."""

    name = "interactive"

    def __init__(self, pool: BrowserPool, navigators: NavigatorResolver) -> None:
        self._pool = pool
        self._navigators = navigators

    async def extract(
        self, request: ExtractionRequest, source: SourceConfig
    ) -> list[RawExtractionResult]:
        url = request.url or source.base_url
        navigator = self._navigators.resolve(source)

        async with self._pool.session() as page:
            response = await page.goto(url, wait_until="domcontentloaded")
            if response is not None and response.status >= 400:
                raise ExtractionError(f"HTTP {response.status}")
            raw_records = await navigator.navigate(page, request, source)

        results = []
        for raw in raw_records:
            fields = coerce_fields(raw)
            if fields:
                results.append(
                    RawExtractionResult(
                        source=source.source_id, fields=fields, source_url=url
                    )
                )
        log.debug(
            "%s via %s: %d records", source.source_id, type(navigator).__name__, len(results)
        )
        return results
