"""Command-line indexer: scan a sub-forum, re-scan its first page, save the topic index."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from dataclasses import dataclass
from typing import IO, Dict, List, Optional, Sequence, Tuple

from waypoint.log import configure, get_logger
from waypoint.navigation import FetchError, Fetcher, fetch_html, parse_pagination_links
from waypoint.run_metrics import MetricsTracker
from waypoint.topic import TopicInfo, extract_topics
from waypoint.topic_index import extract_sub_forum_id, save_topic_index

_log = logging.getLogger(__name__)

_FETCH_ERRORS = (FetchError, OSError)


@dataclass
class IndexerConfig:
    """Settings for one indexing run."""

    sub_forum_url: str
    output_dir: str = "./output_data"
    request_delay: int = 1000
    log_level: str = "INFO"
    max_pages: int = 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="waypoint-indexer",
        description="Index the topics of one forum sub-forum.",
    )
    parser.add_argument("-url", "--url", dest="url", default="",
                        help="Target sub-forum base URL (required)")
    parser.add_argument("-output", "--output", dest="output", default="./output_data",
                        help="Base output directory for generated files")
    parser.add_argument("-delay", "--delay", dest="delay", type=int, default=1000,
                        help="Delay between HTTP requests in milliseconds")
    parser.add_argument("-loglevel", "--loglevel", dest="loglevel", default="INFO",
                        help="Logging verbosity (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("-maxpages", "--maxpages", dest="maxpages", type=int, default=0,
                        help="Maximum number of pages to process (0 for no limit, for testing)")
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> IndexerConfig:
    """Read the command line; exit with status 1 when no URL is given."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.url:
        sys.stderr.write("Error: Target sub-forum URL (-url) is required.\n")
        parser.print_usage(sys.stderr)
        raise SystemExit(1)
    return IndexerConfig(
        sub_forum_url=args.url,
        output_dir=args.output,
        request_delay=args.delay,
        log_level=args.loglevel,
        max_pages=args.maxpages,
    )


def _pause(delay_ms: int) -> None:
    if delay_ms > 0:
        time.sleep(delay_ms / 1000.0)


def perform_full_scan(
    base_url: str,
    request_delay_ms: int,
    tracker: MetricsTracker,
    max_pages: int = 0,
    fetch: Optional[Fetcher] = None,
) -> Tuple[Dict[str, TopicInfo], List[str]]:
    """Fetch every page of a sub-forum and collect its unique topics.

    Returns the topics keyed by ID and the page URLs that were scanned.
    """
    fetcher = fetch if fetch is not None else fetch_html
    delay = request_delay_ms / 1000.0

    _log.info("Full Scan: Fetching initial page to discover all page URLs: %s", base_url)
    tracker.increment_http_requests()
    try:
        initial_html = fetcher(base_url, delay)
    except _FETCH_ERRORS as exc:
        tracker.increment_failed_requests()
        raise FetchError(f"full scan: failed to fetch HTML from {base_url}: {exc}") from exc
    tracker.increment_successful_requests()

    _log.debug("Full Scan: Applying %dms delay after fetching initial page...", request_delay_ms)
    _pause(request_delay_ms)

    _log.info("Full Scan: Parsing pagination links...")
    try:
        page_urls = parse_pagination_links(initial_html, base_url)
    except ValueError as exc:
        raise ValueError(
            f"full scan: failed to parse pagination links from {base_url}: {exc}"
        ) from exc
    _log.info("Full Scan: Discovered %d page URLs for sub-forum.", len(page_urls))

    if max_pages > 0 and len(page_urls) > max_pages:
        _log.warning(
            "Max pages limit active: Truncating page list from %d to %d pages.",
            len(page_urls), max_pages,
        )
        page_urls = page_urls[:max_pages]
    tracker.set_total_pages(len(page_urls))

    scanned: Dict[str, TopicInfo] = {}
    total = len(page_urls)
    for number, page_url in enumerate(page_urls, start=1):
        _log.info("Full Scan: Processing page %d/%d: %s", number, total, page_url)
        tracker.increment_http_requests()
        try:
            html = fetcher(page_url, delay)
        except _FETCH_ERRORS as exc:
            tracker.increment_failed_requests()
            _log.warning(
                "Full Scan: Error fetching HTML from %s: %s. Skipping this page.", page_url, exc
            )
            continue
        tracker.increment_successful_requests()
        tracker.increment_pages_fetched()

        try:
            topics = extract_topics(html, page_url)
        except ValueError as exc:
            _log.warning(
                "Full Scan: Error extracting topics from %s: %s. Skipping this page.", page_url, exc
            )
            continue
        _log.info("Full Scan: Found %d topics on page %s", len(topics), page_url)
        tracker.add_topics_found(len(topics))

        for topic in topics:
            scanned.setdefault(topic.id, topic)

        if number < total:
            _log.debug(
                "Full Scan: Applying %dms delay after processing page %d/%d...",
                request_delay_ms, number, total,
            )
            _pause(request_delay_ms)
        tracker.log_etc()

    return scanned, page_urls


def _rescan_first_page(
    first_page_url: str,
    combined: Dict[str, TopicInfo],
    config: IndexerConfig,
    tracker: MetricsTracker,
    fetcher: Fetcher,
) -> None:
    _log.info("Orchestrator: Re-scanning first page: %s", first_page_url)
    _log.debug("Orchestrator: Applying %dms delay before re-scan fetch...", config.request_delay)
    _pause(config.request_delay)

    tracker.increment_http_requests()
    try:
        html = fetcher(first_page_url, config.request_delay / 1000.0)
    except _FETCH_ERRORS as exc:
        tracker.increment_failed_requests()
        _log.warning(
            "Orchestrator: Warning - Failed to fetch first page for re-scan (%s): %s. "
            "Proceeding with full scan results only.",
            first_page_url, exc,
        )
        return
    tracker.increment_successful_requests()

    try:
        topics = extract_topics(html, first_page_url)
    except ValueError as exc:
        _log.warning(
            "Orchestrator: Warning - Failed to extract topics from re-scanned first page (%s): %s. "
            "Proceeding with full scan results only.",
            first_page_url, exc,
        )
        return
    _log.info(
        "Orchestrator: Found %d topics on re-scanned first page %s", len(topics), first_page_url
    )
    tracker.add_topics_found(len(topics))
    added = 0
    for topic in topics:
        if topic.id not in combined:
            combined[topic.id] = topic
            added += 1
    _log.info("Orchestrator: Identified %d new or bumped topics from the first-page re-scan.", added)


class _Tee:
    """Text stream that writes to several streams at once."""

    def __init__(self, *streams: IO[str]) -> None:
        self._streams = streams

    def write(self, text: str) -> int:
        for stream in self._streams:
            stream.write(text)
        return len(text)

    def flush(self) -> None:
        for stream in self._streams:
            stream.flush()


def _log_file_name(sub_forum_url: str) -> str:
    try:
        forum_id = extract_sub_forum_id(sub_forum_url)
    except ValueError as exc:
        _log.warning(
            "Could not parse URL '%s' for log file naming: %s. "
            "Using 'unknownforum_parse_error' as fallback.",
            sub_forum_url, exc,
        )
        forum_id = "unknownforum_parse_error"
    else:
        if not forum_id:
            _log.warning(
                "Could not extract forum ID from URL '%s' for log file naming (query param missing). "
                "Using 'unknownforum_no_id' as fallback.",
                sub_forum_url,
            )
            forum_id = "unknownforum_no_id"
    return f"indexer_run_sf_{forum_id}.log"


def run(config: IndexerConfig, fetch: Optional[Fetcher] = None) -> Dict[str, TopicInfo]:
    """Run the two-pass indexing of one sub-forum and save its topic index.

    Returns every unique topic discovered. Errors that end the run are logged
    as fatal and raised.
    """
    fetcher = fetch if fetch is not None else fetch_html
    os.makedirs(config.output_dir, exist_ok=True)
    log_path = os.path.join(config.output_dir, _log_file_name(config.sub_forum_url))

    log_file: Optional[IO[str]] = None
    try:
        log_file = open(log_path, "a", encoding="utf-8")
    except OSError as exc:
        configure(config.log_level, None)
        _log.error("Failed to open log file %s: %s. Logging to stderr only.", log_path, exc)
        stream: Optional[_Tee] = None
    else:
        stream = _Tee(sys.stderr, log_file)
        configure(config.log_level, stream)

    tracker = MetricsTracker()
    try:
        _log.info("Starting Project Waypoint Indexer...")
        _log.info(
            "Configuration: URL=%s, OutputDir=%s, Delay=%dms, LogLevel=%s, MaxPages=%d",
            config.sub_forum_url, config.output_dir, config.request_delay,
            config.log_level, config.max_pages,
        )
        _log.info("Logs will also be written to: %s", log_path)
        _log.info("Orchestrator: Initializing core components...")

        _log.info("--- Orchestrator: Starting Initial Full Scan Phase ---")
        try:
            scanned, page_urls = perform_full_scan(
                config.sub_forum_url, config.request_delay, tracker, config.max_pages, fetcher
            )
        except (FetchError, ValueError) as exc:
            _log.critical("Orchestrator: Error during initial full scan: %s", exc)
            raise
        _log.info(
            "--- Orchestrator: Initial Full Scan Phase Completed. "
            "Discovered %d unique topics from %d pages ---",
            len(scanned), len(page_urls),
        )

        combined = dict(scanned)
        _log.info("--- Orchestrator: Starting First-Page Re-scan Phase ---")
        if page_urls:
            _rescan_first_page(page_urls[0], combined, config, tracker, fetcher)
        else:
            _log.info("Orchestrator: No pages discovered in full scan, skipping first-page re-scan.")
        _log.info("--- Orchestrator: First-Page Re-scan Phase Completed ---")

        _log.info("Orchestrator: Total unique topics discovered across all passes: %d", len(combined))
        tracker.set_topics_added_to_store(len(combined))

        if combined:
            _log.info("Orchestrator: Attempting to save topic index...")
            try:
                save_topic_index(config.output_dir, combined, config.sub_forum_url)
            except OSError as exc:
                _log.critical("Orchestrator: Failed to save topic index: %s", exc)
                raise
            _log.info("Orchestrator: Topic index saved successfully.")
        else:
            _log.info("Orchestrator: No topics discovered, skipping save operation.")

        _log.info("Project Waypoint Indexer finished.")
        return combined
    finally:
        tracker.finalize()
        if log_file is not None:
            logger = get_logger()
            for handler in list(logger.handlers):
                if getattr(handler, "stream", None) is stream:
                    logger.removeHandler(handler)
            try:
                log_file.close()
            except OSError as exc:
                sys.stderr.write(f"Failed to close log file {log_path}: {exc}\n")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command entry point; returns the process exit status."""
    config = parse_args(argv)
    try:
        run(config)
    except (FetchError, ValueError, OSError):
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())