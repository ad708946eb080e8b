"""Counters, ETC logging and a final summary for one indexing run."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Optional

_log = logging.getLogger(__name__)


def _format_seconds(seconds: int) -> str:
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


def _plain(message: str) -> None:
    # Section markers are always shown, whatever the configured level.
    _log.critical(message, extra={"plain": True})


class MetricsTracker:
    """Thread-safe counters for HTTP requests, pages and topics in one run."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._start_monotonic = time.monotonic()
        self.start_time: datetime = datetime.now().astimezone()
        self.end_time: Optional[datetime] = None
        self.pages_fetched = 0
        self.topics_found = 0
        self.topics_added_to_store = 0
        self.http_requests = 0
        self.successful_requests = 0
        self.failed_requests = 0
        self.current_page = 0
        self.total_pages = 0

    def set_total_pages(self, total_pages: int) -> None:
        """Set the number of pages the run will process, used for the ETC."""
        with self._lock:
            self.total_pages = total_pages
        _log.info("[Metrics] Total pages for ETC calculation set to: %d", total_pages)

    def increment_pages_fetched(self) -> None:
        """Count one page fetched and processed; it also advances the ETC."""
        with self._lock:
            self.pages_fetched += 1
            self.current_page = self.pages_fetched

    def increment_http_requests(self) -> None:
        """Count one HTTP request made."""
        with self._lock:
            self.http_requests += 1

    def increment_successful_requests(self) -> None:
        """Count one successful HTTP request."""
        with self._lock:
            self.successful_requests += 1

    def increment_failed_requests(self) -> None:
        """Count one failed HTTP request."""
        with self._lock:
            self.failed_requests += 1

    def add_topics_found(self, count: int) -> None:
        """Add to the raw (not de-duplicated) topic count."""
        with self._lock:
            self.topics_found += count

    def set_topics_added_to_store(self, count: int) -> None:
        """Record the final number of unique topics stored."""
        with self._lock:
            self.topics_added_to_store = count

    def estimated_remaining(self) -> Optional[timedelta]:
        """Remaining time in whole seconds, or None when it cannot be estimated."""
        with self._lock:
            current = self.current_page
            total = self.total_pages
        if total == 0 or current == 0 or current > total:
            return None
        elapsed = time.monotonic() - self._start_monotonic
        progress = current / total
        remaining = max(elapsed / progress - elapsed, 0.0)
        return timedelta(seconds=int(remaining))

    def log_etc(self) -> None:
        """Log the estimated time to completion, if it can be estimated."""
        remaining = self.estimated_remaining()
        if remaining is None:
            return
        with self._lock:
            current = self.current_page
            total = self.total_pages
        _log.info(
            "[Metrics] ETC: Processed %d/%d pages (%.2f%%). Approx. %s remaining.",
            current, total, current / total * 100, _format_seconds(int(remaining.total_seconds())),
        )

    def finalize(self) -> timedelta:
        """Stamp the end time, log the run summary and return the run's duration."""
        with self._lock:
            self.end_time = datetime.now().astimezone()
            duration = timedelta(seconds=time.monotonic() - self._start_monotonic)
            seconds = duration.total_seconds()
            _plain("--- Performance Metrics --- ")
            _log.info("[Metrics] Indexing Run Start Time: %s", self.start_time.isoformat(timespec="seconds"))
            _log.info("[Metrics] Indexing Run End Time:   %s", self.end_time.isoformat(timespec="seconds"))
            _log.info("[Metrics] Total Duration:           %s", _format_seconds(int(seconds + 0.5)))
            _log.info("[Metrics] Total Pages Processed:    %d", self.pages_fetched)
            _log.info(
                "[Metrics] Total HTTP Requests:      %d (Successful: %d, Failed: %d)",
                self.http_requests, self.successful_requests, self.failed_requests,
            )
            _log.info("[Metrics] Total Topics Found (raw): %d", self.topics_found)
            _log.info("[Metrics] Unique Topics Saved:      %d", self.topics_added_to_store)
            if self.pages_fetched > 0 and seconds > 0:
                _log.info("[Metrics] Avg. Time Per Page:     %.2f seconds", seconds / self.pages_fetched)
            if self.topics_added_to_store > 0 and seconds > 0:
                _log.info("[Metrics] Avg. Topics Saved/Sec:  %.2f", self.topics_added_to_store / seconds)
            _plain("---------------------------")
        return duration