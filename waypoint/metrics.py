"""Live processing metrics, their formatting, and a history of completed runs."""

from __future__ import annotations

import json
import logging
import re
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, List, Optional, Tuple

_log = logging.getLogger(__name__)

_MIN_ELAPSED_MINUTES = 0.1
_ZERO_TIME = "0001-01-01T00:00:00Z"


class MetricsUnavailableError(Exception):
    """Raised when an estimate cannot be computed from the data at hand."""


class ProcessingMetrics:
    """Thread-safe tracker of progress and per-minute rates for one run."""

    def __init__(self, expected_pages: int, expected_topics: int) -> None:
        self._lock = threading.Lock()
        now = time.monotonic()
        self._start = now
        self._last_update = now
        self._expected_pages = expected_pages
        self._expected_topics = expected_topics
        self._pages_processed = 0
        self._topics_processed = 0
        self._unique_topics_found = 0
        self._current_page_rate = 0.0
        self._current_topic_rate = 0.0
        self._average_page_rate = 0.0
        self._average_topic_rate = 0.0

    def update(self, pages_processed: int, topics_processed: int, unique_topics_found: int) -> None:
        """Record new totals and recompute current and average rates."""
        with self._lock:
            now = time.monotonic()
            since_last = max((now - self._last_update) / 60.0, _MIN_ELAPSED_MINUTES)
            self._pages_processed = pages_processed
            self._topics_processed = topics_processed
            self._unique_topics_found = unique_topics_found
            self._current_page_rate = pages_processed / since_last
            self._current_topic_rate = topics_processed / since_last
            total = max((now - self._start) / 60.0, _MIN_ELAPSED_MINUTES)
            self._average_page_rate = pages_processed / total
            self._average_topic_rate = topics_processed / total
            self._last_update = now

    def etc(self) -> timedelta:
        """Estimated time to completion, based on the average page rate."""
        with self._lock:
            if self._expected_pages == 0 or self._expected_topics == 0:
                raise MetricsUnavailableError("expected counts not set")
            remaining = self._expected_pages - self._pages_processed
            if remaining <= 0:
                return timedelta(0)
            if self._average_page_rate <= 0:
                raise MetricsUnavailableError("no processing rate recorded yet")
            return timedelta(minutes=remaining / self._average_page_rate)

    def current_rates(self) -> Tuple[float, float]:
        """Pages and topics per minute since the previous update."""
        with self._lock:
            return self._current_page_rate, self._current_topic_rate

    def average_rates(self) -> Tuple[float, float]:
        """Pages and topics per minute since tracking began."""
        with self._lock:
            return self._average_page_rate, self._average_topic_rate

    def progress(self) -> Tuple[float, float]:
        """Page and topic progress as percentages (0 when no total is known)."""
        with self._lock:
            pages = (
                self._pages_processed / self._expected_pages * 100
                if self._expected_pages > 0
                else 0.0
            )
            topics = (
                self._topics_processed / self._expected_topics * 100
                if self._expected_topics > 0
                else 0.0
            )
            return pages, topics

    def elapsed(self) -> timedelta:
        """Time since tracking began."""
        return timedelta(seconds=time.monotonic() - self._start)

    def unique_topics_count(self) -> int:
        """Number of unique topics found so far."""
        with self._lock:
            return self._unique_topics_found


def format_duration(duration: timedelta) -> str:
    """Render a duration as seconds, whole minutes, hours or days."""
    seconds = duration.total_seconds()
    if seconds < 60:
        return f"{seconds:.0f} seconds"
    if seconds < 3600:
        return f"{int(seconds // 60)} minutes"
    hours = seconds / 3600
    if hours < 24:
        return f"{hours:.1f} hours"
    return f"{hours / 24:.1f} days"


def format_rate(rate: float, unit: str) -> str:
    """Render a per-minute rate, with two decimals when below one."""
    if rate < 1:
        return f"{rate:.2f} {unit}/minute"
    return f"{rate:.0f} {unit}/minute"


def format_progress(progress: float) -> str:
    """Render a percentage with one decimal."""
    return f"{progress:.1f}%"


def format_metrics(metrics: ProcessingMetrics) -> str:
    """Multi-line human-readable summary of a tracker's state."""
    try:
        etc_text = format_duration(metrics.etc())
    except MetricsUnavailableError:
        etc_text = "calculating..."
    page_progress, topic_progress = metrics.progress()
    current_pages, current_topics = metrics.current_rates()
    average_pages, average_topics = metrics.average_rates()
    return (
        f"Progress: {format_progress(page_progress)} (pages) / "
        f"{format_progress(topic_progress)} (topics)\n"
        f"Current Rate: {format_rate(current_pages, 'pages')} / "
        f"{format_rate(current_topics, 'topics')}\n"
        f"Average Rate: {format_rate(average_pages, 'pages')} / "
        f"{format_rate(average_topics, 'topics')}\n"
        f"Unique Topics Found: {metrics.unique_topics_count()}\n"
        f"Elapsed Time: {format_duration(metrics.elapsed())}\n"
        f"ETC: {etc_text}"
    )


def _format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return _ZERO_TIME
    return value.isoformat()


_FRACTION = re.compile(r"\.(\d+)")


def _parse_timestamp(text: str) -> datetime:
    normalized = text.strip()
    if normalized.endswith(("Z", "z")):
        normalized = normalized[:-1] + "+00:00"
    # Fractions longer than microseconds are truncated.
    normalized = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), normalized, count=1)
    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class HistoricalRun:
    """Performance figures from one completed sub-forum run."""

    sub_forum_id: str
    total_pages: int = 0
    total_topics: int = 0
    unique_topics_found: int = 0
    total_time: float = 0.0
    average_page_rate: float = 0.0
    average_topic_rate: float = 0.0
    timestamp: Optional[datetime] = None

    def to_dict(self) -> dict:
        """JSON-ready mapping using the history file's keys."""
        return {
            "sub_forum_id": self.sub_forum_id,
            "timestamp": _format_timestamp(self.timestamp),
            "total_pages": self.total_pages,
            "total_topics": self.total_topics,
            "unique_topics_found": self.unique_topics_found,
            "total_time_minutes": self.total_time,
            "average_page_rate": self.average_page_rate,
            "average_topic_rate": self.average_topic_rate,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HistoricalRun":
        """Build a run from a mapping read from the history file."""
        return cls(
            sub_forum_id=str(data.get("sub_forum_id", "")),
            timestamp=_parse_timestamp(data.get("timestamp", _ZERO_TIME)),
            total_pages=int(data.get("total_pages", 0)),
            total_topics=int(data.get("total_topics", 0)),
            unique_topics_found=int(data.get("unique_topics_found", 0)),
            total_time=float(data.get("total_time_minutes", 0.0)),
            average_page_rate=float(data.get("average_page_rate", 0.0)),
            average_topic_rate=float(data.get("average_topic_rate", 0.0)),
        )


class HistoryManager:
    """Stores completed runs as JSON lines under ``<base>/metrics``."""

    def __init__(self, base_path: Any) -> None:
        history_dir = Path(base_path) / "metrics"
        try:
            history_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            _log.warning("Failed to create metrics directory: %s", exc)
        self.path = history_dir / "performance_history.jsonl"

    def save_run(self, run: HistoricalRun) -> None:
        """Stamp ``run`` with the current time and append it to the history."""
        run.timestamp = datetime.now().astimezone()
        line = json.dumps(run.to_dict())
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")

    def recent_runs(self, limit: int) -> List[HistoricalRun]:
        """Runs newest first; at most ``limit`` of them when ``limit`` > 0."""
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        runs = []
        for line in content.split("\n"):
            if not line:
                continue
            try:
                runs.append(HistoricalRun.from_dict(json.loads(line)))
            except (ValueError, TypeError, AttributeError) as exc:
                raise ValueError(f"failed to parse history entry: {exc}") from exc
        runs.sort(key=lambda run: run.timestamp, reverse=True)
        if 0 < limit < len(runs):
            runs = runs[:limit]
        return runs

    def average_rates(self, limit: int) -> Tuple[float, float]:
        """Mean page and topic rates over the most recent runs."""
        runs = self.recent_runs(limit)
        if not runs:
            raise MetricsUnavailableError("no historical data available")
        count = len(runs)
        return (
            sum(run.average_page_rate for run in runs) / count,
            sum(run.average_topic_rate for run in runs) / count,
        )

    def estimate_etc(self, sub_forum_id: str, expected_pages: int, expected_topics: int) -> timedelta:
        """Initial ETC for a new sub-forum from the last ten runs' page rate."""
        try:
            page_rate, _ = self.average_rates(10)
        except MetricsUnavailableError as exc:
            raise MetricsUnavailableError(f"failed to get historical rates: {exc}") from exc
        if page_rate <= 0:
            raise MetricsUnavailableError("invalid average page rate from history")
        return timedelta(minutes=expected_pages / page_rate)