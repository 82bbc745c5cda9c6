"""Structured logging for pipeline monitoring."""

import json
import logging
from typing import Optional


class StructuredLogger:
    """Structured logger with uniform schema."""

    def __init__(self, name: str = "catalog_export", level: str = "INFO"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(handler)

    def log(self, event: str, level: int = logging.INFO, **kwargs) -> None:
        """
        Log structured event.

        Standard keys: event, state, url, page, status, attempt, elapsed_ms,
                      batch, batch_size, failed
        """
        log_data = {"event": event, **kwargs}
        self.logger.log(level, json.dumps(log_data, default=str))

    def step_start(self, state: str) -> None:
        self.log("step_start", state=state)

    def step_complete(self, state: str, elapsed_ms: float, message: str) -> None:
        self.log("step_complete", state=state, elapsed_ms=round(elapsed_ms, 1), message=message)

    def step_failed(self, state: str, error: str, error_type: str) -> None:
        self.log("step_failed", level=logging.ERROR, state=state, error=error, error_type=error_type)

    def page_fetched(self, page: int, items: int, total_pages: int) -> None:
        self.log("page_fetched", page=page, items=items, total_pages=total_pages)

    def fetch_error(self, url: str, status: Optional[int], error: str, attempt: int) -> None:
        self.log("fetch_error", level=logging.WARNING, url=url, status=status, error=error, attempt=attempt)

    def retry(self, attempt: int, delay: float, error: str) -> None:
        self.log("retry", level=logging.DEBUG, attempt=attempt, delay=delay, error=error)

    def batch_processed(self, batch: int, batch_size: int, failed: int, elapsed_ms: float) -> None:
        self.log(
            "batch_processed",
            batch=batch,
            batch_size=batch_size,
            failed=failed,
            elapsed_ms=round(elapsed_ms, 1)
        )

    def degraded(self, source: str, cause: str) -> None:
        self.log("degraded", level=logging.WARNING, source=source, cause=cause)

    def cache_stats(self, name: str, hits: int, misses: int) -> None:
        self.log("cache_stats", level=logging.DEBUG, cache=name, hits=hits, misses=misses)

    def storage_failed(self, provider: str, error: str) -> None:
        self.log("storage_failed", level=logging.ERROR, provider=provider, error=error)
