"""Fetching forum pages and working out the page URLs of sub-forums and topics."""

from __future__ import annotations

import logging
import re
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional
from urllib.parse import parse_qs, urlencode, urljoin, urlsplit

from bs4 import BeautifulSoup

TOPICS_PER_PAGE = 30

_PAGINATION_SELECTOR = "td.normal.bgc1.b.midtext a[href]"
_NAVIGATION_WORDS = {"next", "prev", "[next]", "[prev]"}
_NEXT_WORDS = {"next", "[next]"}
_INTEGER = re.compile(r"[+-]?\d+")

_log = logging.getLogger(__name__)

Fetcher = Callable[[str, float], str]


class FetchError(Exception):
    """A page could not be retrieved.

    ``pages`` holds the page URLs discovered before the failure, if any.
    """

    def __init__(self, message: str, pages: Iterable["PageNavigationInfo"] = ()) -> None:
        super().__init__(message)
        self.pages: List[PageNavigationInfo] = list(pages)


@dataclass(frozen=True)
class PageNavigationInfo:
    """One page of a topic: its 1-based number and absolute URL."""

    page_number: int
    url: str


def _check_url(url: str) -> None:
    if any(ord(char) < 0x20 or ord(char) == 0x7F for char in url):
        raise ValueError("invalid control character in URL")
    if url.startswith(":"):
        raise ValueError("missing protocol scheme")
    urlsplit(url)


def _query_value(url: str, key: str) -> str:
    return parse_qs(urlsplit(url).query, keep_blank_values=True).get(key, [""])[0]


def fetch_html(url: str, delay: float = 0.0) -> str:
    """Sleep ``delay`` seconds, then GET ``url`` and return its body as text."""
    if delay > 0:
        _log.debug("Politeness delay: sleeping for %ss before fetching %s", delay, url)
        time.sleep(delay)
    try:
        with urllib.request.urlopen(url) as response:
            status = response.status
            body = response.read()
    except urllib.error.HTTPError as exc:
        raise FetchError(f"failed to get URL {url}: status code {exc.code}") from exc
    except (urllib.error.URLError, OSError, ValueError) as exc:
        raise FetchError(f"failed to get URL {url}: {exc}") from exc
    if status != 200:
        raise FetchError(f"failed to get URL {url}: status code {status}")
    return body.decode("utf-8", errors="replace")


def _start_values(soup: BeautifulSoup, page_url: str, page_path: str) -> List[int]:
    values: List[int] = []
    for link in soup.select(_PAGINATION_SELECTOR):
        href = link.get("href")
        if href is None:
            continue
        if link.get_text().lower() in _NAVIGATION_WORDS:
            continue
        try:
            _check_url(href)
            resolved = urljoin(page_url, href)
            resolved_path = urlsplit(resolved).path
        except ValueError as exc:
            _log.warning("Could not parse pagination link href '%s': %s", href, exc)
            continue
        if resolved_path.endswith("viewforum.php") or (
            resolved_path == "" and page_path.endswith("viewforum.php")
        ):
            start = _query_value(resolved, "start")
            if _INTEGER.fullmatch(start):
                value = int(start)
                if value >= 0:
                    values.append(value)
    return values


def parse_pagination_links(html_content: str, page_url: str) -> List[str]:
    """Absolute URLs of every page of a sub-forum, first page first."""
    try:
        _check_url(page_url)
        parts = urlsplit(page_url)
    except ValueError as exc:
        raise ValueError(f"failed to parse pageURL '{page_url}': {exc}") from exc

    forum_id = _query_value(page_url, "forum")
    if not forum_id:
        raise ValueError(f"forum ID not found in query parameters of URL: {page_url}")

    host = parts.netloc.rpartition("@")[2]
    base = f"{parts.scheme}://{host}{parts.path}"

    soup = BeautifulSoup(html_content, "html.parser")
    starts = _start_values(soup, page_url, parts.path)
    max_start = max(starts, default=0)
    total_pages = max_start // TOPICS_PER_PAGE + 1 if max_start > 0 else 1

    urls = [f"{base}?{urlencode({'forum': forum_id})}"]
    for page in range(1, total_pages):
        query = urlencode(sorted({"forum": forum_id, "start": str(page * TOPICS_PER_PAGE)}.items()))
        url = f"{base}?{query}"
        if url not in urls:
            urls.append(url)
    return urls


def _next_link(html: str) -> Optional[str]:
    soup = BeautifulSoup(html, "html.parser")
    found = None
    for link in soup.select("a[href]"):
        if link.get_text().strip().lower() in _NEXT_WORDS:
            found = link.get("href")
    return found or None


def get_topic_page_urls(
    topic_id: str,
    topic_url: str,
    politeness_delay: float = 0.0,
    fetch: Optional[Fetcher] = None,
) -> List[PageNavigationInfo]:
    """Follow a topic's "Next" links and list every page it has.

    Raises ValueError for a missing ID or unusable URL, and FetchError, carrying
    the pages found so far, when a page cannot be fetched.
    """
    fetcher = fetch if fetch is not None else fetch_html
    _log.info(
        "Starting to get page URLs for Topic ID: %s (URL: %s), Politeness Delay: %ss",
        topic_id, topic_url, politeness_delay,
    )
    if not topic_id:
        _log.error("GetTopicPageURLs: Topic ID cannot be empty for topic URL %s", topic_url)
        raise ValueError("topic ID cannot be empty")
    try:
        _check_url(topic_url)
        parts = urlsplit(topic_url)
    except ValueError as exc:
        raise ValueError(f"failed to parse topic URL '{topic_url}': {exc}") from exc
    if not parts.scheme or not parts.netloc:
        _log.error(
            "GetTopicPageURLs: Invalid topic URL '%s' (missing scheme or host) for Topic ID %s",
            topic_url, topic_id,
        )
        raise ValueError(f"invalid topic URL '{topic_url}': missing scheme or host")

    pages: List[PageNavigationInfo] = []
    seen = set()
    current = topic_url
    while True:
        if current not in seen:
            pages.append(PageNavigationInfo(page_number=len(pages) + 1, url=current))
            seen.add(current)
            _log.debug("GetTopicPageURLs: Found page %d for Topic ID %s: %s", len(pages), topic_id, current)

        try:
            html = fetcher(current, politeness_delay)
        except (FetchError, OSError) as exc:
            _log.error("GetTopicPageURLs: Failed to fetch page %s for Topic ID %s: %s", current, topic_id, exc)
            raise FetchError(f"failed to fetch page {current}: {exc}", pages) from exc

        href = _next_link(html)
        if href is None:
            _log.debug(
                "GetTopicPageURLs: No 'Next' link found on page %s for Topic ID %s. Assuming last page.",
                current, topic_id,
            )
            break
        try:
            _check_url(href)
            next_url = urljoin(current, href)
        except ValueError as exc:
            raise FetchError(
                f"failed to parse next URL '{href}' relative to '{current}': {exc}", pages
            ) from exc
        if next_url in seen:
            _log.warning(
                "GetTopicPageURLs: Detected pagination loop or revisit at URL: %s for Topic ID %s. "
                "Stopping pagination here.",
                next_url, topic_id,
            )
            break
        current = next_url

    _log.info("GetTopicPageURLs: Successfully found %d page(s) for Topic ID: %s", len(pages), topic_id)
    return pages