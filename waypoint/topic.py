"""Extraction of topic links from a sub-forum listing page."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, List
from urllib.parse import parse_qs, urljoin, urlsplit

from bs4 import BeautifulSoup

_log = logging.getLogger(__name__)

_ROW_SELECTOR = "table.normal tr"
_LINK_SELECTOR = "td.normal.bgc2 > a.b[href*='viewtopic.php']"


@dataclass(frozen=True)
class TopicInfo:
    """One topic listed on a sub-forum page."""

    id: str
    title: str
    url: str


def _topic_links(soup: BeautifulSoup) -> Iterator:
    for row in soup.select(_ROW_SELECTOR):
        yield from row.select(_LINK_SELECTOR)


def extract_topics(html_content: str, page_url: str) -> List[TopicInfo]:
    """Topics linked from a sub-forum page, in page order, without duplicate IDs."""
    try:
        urlsplit(page_url)
    except ValueError as exc:
        raise ValueError(f"failed to parse page URL {page_url}: {exc}") from exc

    soup = BeautifulSoup(html_content, "html.parser")
    topics: List[TopicInfo] = []
    seen = set()

    for link in _topic_links(soup):
        href = link.get("href")
        if href is None:
            continue
        title = link.get_text().strip()
        if not title:
            continue
        try:
            absolute_url = urljoin(page_url, href)
            query = urlsplit(absolute_url).query
        except ValueError as exc:
            _log.warning("Error parsing topic URL '%s': %s. Skipping topic.", href, exc)
            continue
        topic_id = parse_qs(query, keep_blank_values=True).get("topic", [""])[0]
        if not topic_id:
            _log.warning(
                "Topic ID not found for URL '%s' with title '%s'. Skipping topic.",
                absolute_url,
                title,
            )
            continue
        if topic_id in seen:
            continue
        seen.add(topic_id)
        topics.append(TopicInfo(id=topic_id, title=title, url=absolute_url))

    if not topics:
        _log.debug(
            "No topics extracted from page: %s. This might be an empty page or selector mismatch.",
            page_url,
        )
    return topics