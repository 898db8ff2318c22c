"""Ingestion exception hierarchy.

Each boundary raises a specific type so the queue can tell terminal
failures from retryable ones and the API can map them to status codes.
"""

from __future__ import annotations


class IngestionError(Exception):
    """Base exception for all ingestion failures."""


class SourceConfigurationError(IngestionError):
    """No usable SourceConfig for a job target. Never retried."""


class ExtractionError(IngestionError):
    """Transient extraction failure (navigation, locator miss, bad status)."""


class BrowserUnavailableError(IngestionError):
    """The shared headless browser could not be launched."""


class JobNotFoundError(IngestionError):
    """No job with the requested id."""


class JobStateConflictError(IngestionError):
    """The job is not in a state that permits the requested transition."""
