"""Shared fakes and builders for tests."""

from __future__ import annotations

from pathlib import Path

from core.models import RawExtractionResult, SourceConfig
from data.database import Database
from scrapers.base import ExtractionStrategy


async def open_db(tmp_path: Path) -> Database:
    """Fresh file-backed database with all tables created."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'ingestion.db'}")
    await db.init_db()
    return db


def make_source(**overrides) -> SourceConfig:
    values = {
        "source_id": "test_county",
        "name": "Test, CA",
        "base_url": "https://assessor.example.test/",
        "needs_interactive_rendering": True,
        "field_locators": {"assessed_value": ".assessed-value"},
        "rate_limit_requests": 100,
        "rate_limit_window_seconds": 1.0,
        "county": "Test",
        "region": "CA",
    }
    values.update(overrides)
    return SourceConfig(**values)


class FakeStrategy(ExtractionStrategy):
    """Returns canned field maps, or raises the given exception."""

    def __init__(self, name: str, records: list[dict] | None = None, error: Exception | None = None):
        self.name = name
        self.records = records or []
        self.error = error
        self.calls = []

    async def extract(self, request, source):
        self.calls.append((request, source))
        if self.error is not None:
            raise self.error
        return [
            RawExtractionResult(
                source=source.source_id, fields=dict(r), source_url=request.url or source.base_url
            )
            for r in self.records
        ]


class FakeElement:
    def __init__(self, text: str | None = None, children: dict[str, "FakeElement"] | None = None):
        self._text = text
        self._children = children or {}

    async def text_content(self):
        return self._text

    async def query_selector(self, locator):
        return self._children.get(locator)


class FakeSelectorElement:
    """Mimics the parsed-element API of the static fetcher."""

    def __init__(self, text: str = "", children: dict[str, list] | None = None):
        self.text = text
        self._children = children or {}

    def get_all_text(self, strip: bool = False):
        return self.text.strip() if strip else self.text

    def css(self, locator):
        return self._children.get(locator, [])


class FakeResponsePage(FakeSelectorElement):
    def __init__(self, status: int = 200, children: dict[str, list] | None = None):
        super().__init__("", children)
        self.status = status


class FakeFetcher:
    """Stands in for the static fetcher class; ``page`` is served for every GET."""

    def __init__(self, page: FakeResponsePage):
        self.page = page
        self.requests = []

    def __call__(self):
        return self

    def get(self, url, **kwargs):
        self.requests.append((url, kwargs))
        return self.page
