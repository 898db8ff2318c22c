"""Page navigators for the interactive-browser strategy.

A navigator drives one page from the source's landing page to the place
where the configured locators can be read, and returns one raw text map
per record found.  Known portals get a scripted search flow; everything
else falls back to the generic search heuristics.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from core.models import ExtractionRequest, SourceConfig

log = logging.getLogger(__name__)

RawFields = dict[str, str | None]

SEARCH_INPUT_LOCATORS = [
    "#address",
    "#property-address",
    "#search-address",
    ".address-input",
    ".property-search",
    '[name="address"]',
]
SUBMIT_LOCATORS = [
    "#search",
    "#search-btn",
    ".search-button",
    '[type="submit"]',
    ".btn-search",
]


async def read_fields(scope, locators: dict[str, str]) -> RawFields:
    """Text of the first match for each locator; absent ones are skipped."""
    fields: RawFields = {}
    for name, locator in locators.items():
        el = await scope.query_selector(locator)
        if el is None:
            continue
        fields[name] = await el.text_content()
    return fields


class Navigator(ABC):
    @abstractmethod
    async def navigate(
        self, page: Page, request: ExtractionRequest, source: SourceConfig
    ) -> list[RawFields]: ...


class ScriptedSearchNavigator(Navigator):
    """Search by address, open the first hit, wait for the detail view."""

    def __init__(
        self,
        *,
        search_url: str,
        search_input: str,
        submit: str,
        results: str,
        first_result: str,
        detail: str,
    ) -> None:
        self.search_url = search_url
        self.search_input = search_input
        self.submit = submit
        self.results = results
        self.first_result = first_result
        self.detail = detail

    async def navigate(
        self, page: Page, request: ExtractionRequest, source: SourceConfig
    ) -> list[RawFields]:
        if page.url.rstrip("/") != self.search_url.rstrip("/"):
            await page.goto(self.search_url, wait_until="networkidle")
        await page.wait_for_selector(self.search_input, timeout=10_000)
        await page.fill(self.search_input, request.address or "")
        await page.click(self.submit)
        await page.wait_for_selector(self.results, timeout=15_000)
        await page.click(self.first_result)
        await page.wait_for_selector(self.detail, timeout=10_000)
        return [await read_fields(page, source.field_locators)]


class GenericNavigator(Navigator):
    """Best-effort search for portals without a scripted flow."""

    def __init__(self, settle_seconds: float = 3.0, probe_timeout_ms: float = 3_000) -> None:
        self.settle_seconds = settle_seconds
        self.probe_timeout_ms = probe_timeout_ms

    async def navigate(
        self, page: Page, request: ExtractionRequest, source: SourceConfig
    ) -> list[RawFields]:
        if request.address:
            filled = await self._fill_search(page, request.address)
            if filled:
                await self._submit(page)
            else:
                log.debug("No search input found on %s", source.source_id)
        await asyncio.sleep(self.settle_seconds)
        return [await read_fields(page, source.field_locators)]

    async def _fill_search(self, page: Page, address: str) -> bool:
        for locator in SEARCH_INPUT_LOCATORS:
            try:
                await page.wait_for_selector(locator, timeout=self.probe_timeout_ms)
                await page.fill(locator, address)
                return True
            except PlaywrightError:
                continue
        return False

    async def _submit(self, page: Page) -> bool:
        for locator in SUBMIT_LOCATORS:
            try:
                await page.click(locator, timeout=self.probe_timeout_ms)
                return True
            except PlaywrightError:
                continue
        return False


class ListingNavigator(Navigator):
    """List pages: wait for items to render, then read each one."""

    def __init__(self, settle_seconds: float = 3.0, max_items: int = 50) -> None:
        self.settle_seconds = settle_seconds
        self.max_items = max_items

    async def navigate(
        self, page: Page, request: ExtractionRequest, source: SourceConfig
    ) -> list[RawFields]:
        try:
            await page.wait_for_selector(source.item_locator, timeout=10_000)
        except PlaywrightError:
            log.warning("No listing items rendered for %s", source.source_id)
            return []
        await asyncio.sleep(self.settle_seconds)

        limit = int(request.options.get("max_items", self.max_items))
        items = await page.query_selector_all(source.item_locator)
        records = []
        for item in items[:limit]:
            fields = await read_fields(item, source.field_locators)
            if fields:
                records.append(fields)
        return records


SCRIPTED_NAVIGATORS: dict[str, ScriptedSearchNavigator] = {
    "los_angeles_ca": ScriptedSearchNavigator(
        search_url="https://portal.assessor.lacounty.gov/",
        search_input="#property-search-input",
        submit='[data-testid="search-button"]',
        results='[data-testid="property-result"]',
        first_result='[data-testid="property-result"]:first-child',
        detail='[data-testid="assessed-value"]',
    ),
    "cook_il": ScriptedSearchNavigator(
        search_url="https://www.cookcountyassessor.com/property-search",
        search_input="#address-search",
        submit=".search-button",
        results=".property-result",
        first_result=".property-result:first-child",
        detail=".assessed-value",
    ),
    "harris_tx": ScriptedSearchNavigator(
        search_url="https://hcad.org/property-search/",
        search_input="#quick-search",
        submit="#search-btn",
        results=".search-results",
        first_result=".search-results tr:first-child a",
        detail=".property-details",
    ),
    "new_york_ny": ScriptedSearchNavigator(
        search_url="https://a836-acris.nyc.gov/bblsearch/bblsearch.asp",
        search_input="#address",
        submit="#search",
        results=".results-table",
        first_result=".results-table tr:first-child a",
        detail=".property-info",
    ),
    "maricopa_az": ScriptedSearchNavigator(
        search_url="https://mcassessor.maricopa.gov/property-search",
        search_input="#property-address",
        submit="#search-submit",
        results=".property-results",
        first_result=".property-results .result-item:first-child a",
        detail=".property-detail",
    ),
}


class NavigatorResolver:
    """source id -> navigator, with listing and generic fallbacks."""

    def __init__(
        self,
        *,
        settle_seconds: float = 3.0,
        scripted: dict[str, Navigator] | None = None,
    ) -> None:
        self._scripted = dict(SCRIPTED_NAVIGATORS if scripted is None else scripted)
        self._generic = GenericNavigator(settle_seconds)
        self._listing = ListingNavigator(settle_seconds)

    def resolve(self, source: SourceConfig) -> Navigator:
        if source.item_locator:
            return self._listing
        return self._scripted.get(source.source_id, self._generic)
