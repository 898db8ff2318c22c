from __future__ import annotations

import random
import re
from abc import ABC, abstractmethod
from typing import Any

from core.models import ExtractionRequest, RawExtractionResult, SourceConfig

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Safari/605.1.15",
]

BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

_NUMERIC_MARKERS = ("value", "amount", "taxes")
_CURRENCY_RE = re.compile(r"[$,\s]")
_NON_NUMERIC_RE = re.compile(r"[^\d.\-]")


def pick_user_agent() -> str:
    return random.choice(USER_AGENTS)


def is_numeric_field(name: str) -> bool:
    lowered = name.lower()
    return any(marker in lowered for marker in _NUMERIC_MARKERS)


def parse_numeric(text: str | None) -> float | None:
    """``"$1,234,567"`` -> 1234567.0; None when nothing numeric is left."""
    if not text:
        return None
    cleaned = _NON_NUMERIC_RE.sub("", _CURRENCY_RE.sub("", text))
    try:
        return float(cleaned)
    except ValueError:
        return None


def coerce_fields(raw: dict[str, str | None]) -> dict[str, Any]:
    """Strip text values and parse numeric ones.  Empty or unparsable
    values are left out entirely."""
    fields: dict[str, Any] = {}
    for name, text in raw.items():
        if text is None:
            continue
        text = text.strip()
        if not text:
            continue
        if is_numeric_field(name):
            number = parse_numeric(text)
            if number is not None:
                fields[name] = number
        else:
            fields[name] = " ".join(text.split())
    return fields


class ExtractionStrategy(ABC):
    name: str

    @abstractmethod
    async def extract(
        self, request: ExtractionRequest, source: SourceConfig
    ) -> list[RawExtractionResult]:
        """Run one extraction attempt.  Raises on navigation or HTTP failure."""
        ...
