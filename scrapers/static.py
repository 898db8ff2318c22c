from __future__ import annotations

import asyncio

from scrapling import Fetcher

from core.errors import ExtractionError
from core.models import ExtractionRequest, RawExtractionResult, SourceConfig
from scrapers.base import ExtractionStrategy, coerce_fields


def _text_of(el) -> str:
    text = el.text.strip() if el.text else ""
    return text or el.get_all_text(strip=True)


class StaticFetchStrategy(ExtractionStrategy):
    """Single GET with stealth headers, markup parsed offline."""

    name = "static"

    def __init__(self, *, timeout_seconds: float = 30.0, fetcher_factory=Fetcher) -> None:
        self._timeout = timeout_seconds
        self._fetcher_factory = fetcher_factory

    async def extract(
        self, request: ExtractionRequest, source: SourceConfig
    ) -> list[RawExtractionResult]:
        url = request.url or source.base_url
        max_items = int(request.options.get("max_items", 50))
        raw_records = await asyncio.to_thread(self._fetch, url, source, max_items)
        results = []
        for raw in raw_records:
            fields = coerce_fields(raw)
            if fields:
                results.append(
                    RawExtractionResult(source=source.source_id, fields=fields, source_url=url)
                )
        return results

    def _fetch(self, url: str, source: SourceConfig, max_items: int) -> list[dict]:
        fetcher = self._fetcher_factory()
        page = fetcher.get(
            url,
            stealthy_headers=True,
            follow_redirects=True,
            timeout=self._timeout,
        )
        if page.status != 200:
            raise ExtractionError(f"HTTP {page.status}")

        if source.item_locator:
            return [
                self._read(item, source.field_locators)
                for item in page.css(source.item_locator)[:max_items]
            ]
        return [self._read(page, source.field_locators)]

    @staticmethod
    def _read(scope, locators: dict[str, str]) -> dict[str, str]:
        fields = {}
        for name, locator in locators.items():
            matches = scope.css(locator)
            if matches:
                fields[name] = _text_of(matches[0])
        return fields
