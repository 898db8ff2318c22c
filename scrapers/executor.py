from __future__ import annotations

import asyncio
import logging
import time

from core.errors import BrowserUnavailableError
from core.models import ExtractionOutcome, ExtractionRequest, SourceConfig
from scrapers.base import ExtractionStrategy
from scrapers.rate_limiter import RateLimiterRegistry
from scrapers.registry import SourceRegistry

log = logging.getLogger(__name__)


class ScraperExecutor:
    """Runs one extraction attempt against one source.

    Failures come back as ``ExtractionOutcome(success=False)``; retry
    decisions belong to the queue.
    """

    def __init__(
        self,
        *,
        registry: SourceRegistry,
        limiters: RateLimiterRegistry,
        interactive: ExtractionStrategy,
        static: ExtractionStrategy,
        timeout_seconds: float = 60.0,
    ) -> None:
        self._registry = registry
        self._limiters = limiters
        self._interactive = interactive
        self._static = static
        self._timeout = timeout_seconds

    def strategy_for(self, source: SourceConfig) -> ExtractionStrategy:
        return self._interactive if source.needs_interactive_rendering else self._static

    async def execute(
        self, request: ExtractionRequest, source: SourceConfig
    ) -> ExtractionOutcome:
        strategy = self.strategy_for(source)
        outcome = ExtractionOutcome(
            source=source.source_id, success=False, strategy=strategy.name
        )
        start = time.monotonic()

        try:
            await self._limiters.for_source(source).acquire()
            outcome.records = await asyncio.wait_for(
                strategy.extract(request, source), timeout=self._timeout
            )
            outcome.success = True
        except asyncio.TimeoutError:
            outcome.error = f"timed out after {self._timeout:.0f}s"
        except BrowserUnavailableError as e:
            log.error("Browser unavailable for %s: %s", source.source_id, e)
            outcome.error = str(e)
        except Exception as e:
            outcome.error = str(e) or type(e).__name__
        finally:
            outcome.duration_seconds = time.monotonic() - start
            await self._record(source.source_id, outcome)

        if outcome.success:
            log.info(
                "Extracted %s via %s: %d records in %.1fs",
                source.source_id,
                strategy.name,
                len(outcome.records),
                outcome.duration_seconds,
            )
        else:
            log.warning(
                "Extraction failed for %s via %s: %s",
                source.source_id,
                strategy.name,
                outcome.error,
            )
        return outcome

    async def _record(self, source_id: str, outcome: ExtractionOutcome) -> None:
        try:
            await self._registry.record_outcome(
                source_id, outcome.success, outcome.error
            )
        except Exception as e:
            log.error("Failed to update source counters for %s: %s", source_id, e)
