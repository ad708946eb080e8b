"""Persisting the discovered topics of one sub-forum as a JSON index."""

from __future__ import annotations

import json
import logging
import os
from typing import Mapping, Union
from urllib.parse import parse_qs, urlsplit

from waypoint.topic import TopicInfo

PathLike = Union[str, "os.PathLike[str]"]

UNKNOWN_FORUM = "unknown_forum"

_log = logging.getLogger(__name__)

_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _query_of(url: str) -> str:
    if any(ord(char) < 0x20 or ord(char) == 0x7F for char in url):
        raise ValueError(f"failed to parse URL '{url}': invalid control character in URL")
    if url.startswith(":"):
        raise ValueError(f"failed to parse URL '{url}': missing protocol scheme")
    try:
        return urlsplit(url).query
    except ValueError as exc:
        raise ValueError(f"failed to parse URL '{url}': {exc}") from exc


def extract_sub_forum_id(page_url: str) -> str:
    """The ``forum`` query parameter of ``page_url``, or "" when absent.

    Raises ValueError when the URL cannot be parsed.
    """
    query = _query_of(page_url)
    return parse_qs(query, keep_blank_values=True).get("forum", [""])[0]


def _encode(records) -> str:
    text = json.dumps(records, indent=2, ensure_ascii=False)
    for raw, escaped in _HTML_ESCAPES.items():
        text = text.replace(raw, escaped)
    return text


def save_topic_index(
    output_dir: PathLike, topics: Mapping[str, TopicInfo], sub_forum_base_url: str
) -> str:
    """Write ``topics`` sorted by ID to ``topic_index_<forum>.json``; return its path."""
    try:
        sub_forum_id = extract_sub_forum_id(sub_forum_base_url)
    except ValueError as exc:
        _log.warning(
            "Could not extract subForumID from URL '%s' due to parsing error: %s. "
            "Using default '%s' for filename.",
            sub_forum_base_url, exc, UNKNOWN_FORUM,
        )
        sub_forum_id = UNKNOWN_FORUM
    else:
        if not sub_forum_id:
            _log.warning(
                "'forum' query parameter not found in URL '%s'. Using default '%s' for filename.",
                sub_forum_base_url, UNKNOWN_FORUM,
            )
            sub_forum_id = UNKNOWN_FORUM

    try:
        os.makedirs(output_dir, exist_ok=True)
    except OSError as exc:
        raise OSError(f"failed to create output directory '{output_dir}': {exc}") from exc

    path = os.path.join(output_dir, f"topic_index_{sub_forum_id}.json")
    ordered = sorted(topics.values(), key=lambda topic: topic.id)
    records = [{"ID": t.id, "Title": t.title, "URL": t.url} for t in ordered]

    _log.info("Saving %d topics to %s", len(records), path)
    try:
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(_encode(records or None))
    except OSError as exc:
        raise OSError(f"failed to write topic index to file '{path}': {exc}") from exc
    _log.info("Successfully saved topic index to %s", path)
    return path