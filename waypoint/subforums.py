"""Building the list of sub-forums from the forum front page and storing it as CSV."""

from __future__ import annotations

import argparse
import csv
import logging
import os
import re
from dataclasses import astuple, dataclass
from typing import Iterable, Iterator, List, Optional, Sequence, Union
from urllib.parse import parse_qs, urlsplit

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from waypoint.log import configure

PathLike = Union[str, "os.PathLike[str]"]

FORUM_BASE_URL = "https://www.themagiccafe.com/forums/"
CSV_HEADERS = [
    "sub_forum_id",
    "sub_forum_name",
    "base_url",
    "description",
    "topics_count",
    "posts_count",
    "last_active_datetime_str",
    "last_active_by",
    "last_post_id",
]
DEFAULT_INPUT_FILE = os.path.join("bmad-agent", "forum_front_page.html")

_FORUM_LINK = "td.bgc2 a.b[href*='viewforum.php']"
_COUNT_CELLS = "td.bgc2.w5.c.normal.midtext"
_LAST_ACTIVE_CELLS = "td.bgc2.w22.c.normal"
_LAST_POST_LINK = "span.smalltext a.b[href*='viewtopic.php']"
_FORUM_ID_RE = re.compile(r"forum=(\d+)")

_log = logging.getLogger(__name__)


@dataclass
class SubForum:
    """One sub-forum as listed on the forum front page."""

    id: str = ""
    name: str = ""
    base_url: str = ""
    description: str = ""
    topics_count: str = ""
    posts_count: str = ""
    last_active_datetime_str: str = ""
    last_active_by: str = ""
    last_post_id: str = ""

    def as_row(self) -> List[str]:
        """The CSV row for this sub-forum, in header order."""
        return list(astuple(self))

    @classmethod
    def from_row(cls, row: Sequence[str]) -> "SubForum":
        """Build from a CSV row of exactly nine fields."""
        if len(row) != len(CSV_HEADERS):
            raise ValueError(
                f"expected {len(CSV_HEADERS)} fields in sub-forum record, got {len(row)}: {list(row)}"
            )
        return cls(*row)


def extract_forum_id(url: str) -> str:
    """The numeric ``forum=`` value found anywhere in ``url``, or "" if none."""
    match = _FORUM_ID_RE.search(url)
    return match.group(1) if match else ""


def _query_value(url: str, key: str) -> Optional[str]:
    try:
        query = urlsplit(url).query
    except ValueError:
        return None
    return parse_qs(query, keep_blank_values=True).get(key, [""])[0]


def _direct_text_without_links(span: Tag) -> str:
    parts = []
    for child in span.contents:
        if isinstance(child, Comment):
            continue
        if isinstance(child, Tag):
            if child.name == "a":
                continue
            parts.append(child.get_text())
        elif isinstance(child, NavigableString):
            parts.append(str(child))
    return "".join(parts)


def _description(links: List[Tag]) -> str:
    seen = []
    for link in links:
        parent = link.parent
        if parent is not None and not any(parent is known for known in seen):
            seen.append(parent)
    for parent in seen:
        span = parent.select_one("span.smalltext")
        if span is not None:
            return span.get_text().strip()
    return ""


def _fill_last_active(sub_forum: SubForum, cells: List[Tag]) -> None:
    mid_spans = [span for cell in cells for span in cell.select("span.midtext")]
    sub_forum.last_active_datetime_str = mid_spans[0].get_text().strip() if mid_spans else ""
    if sub_forum.last_active_datetime_str == "No Posts":
        return

    small_spans = [span for cell in cells for span in cell.select("span.smalltext")]
    by_text = _direct_text_without_links(small_spans[0]) if small_spans else ""
    sub_forum.last_active_by = by_text.replace("by ", "", 1).strip()

    post_links = [link for cell in cells for link in cell.select(_LAST_POST_LINK)]
    if post_links:
        href = post_links[0].get("href") or ""
        post_id = _query_value(href, "post")
        if post_id is not None:
            sub_forum.last_post_id = post_id or (_query_value(href, "topic") or "")


def _parse_row(row: Tag) -> Optional[SubForum]:
    links = row.select(_FORUM_LINK)
    if not links:
        return None

    sub_forum = SubForum(name="".join(link.get_text() for link in links).strip())
    href = links[0].get("href") or ""
    if href:
        sub_forum.base_url = href if href.startswith("http") else FORUM_BASE_URL + href
        sub_forum.id = _query_value(sub_forum.base_url, "forum") or ""

    sub_forum.description = _description(links)

    counts = row.select(_COUNT_CELLS)
    if len(counts) >= 2:
        sub_forum.topics_count = counts[0].get_text().strip()
        sub_forum.posts_count = counts[1].get_text().strip()

    if "Chef's Specials By Year" in sub_forum.name:
        return None
    if (
        "Welcome special guest of honor" in sub_forum.name
        and sub_forum.topics_count == "0"
        and sub_forum.posts_count == "0"
    ):
        return None

    cells = row.select(_LAST_ACTIVE_CELLS)
    if cells:
        _fill_last_active(sub_forum, cells)

    if not sub_forum.id or not sub_forum.name:
        return None
    if "Mark all forums as read" in sub_forum.name or "viewcat=" in sub_forum.base_url:
        return None
    return sub_forum


def _rows(soup: BeautifulSoup) -> Iterator[Tag]:
    for table in soup.select("table.normal"):
        yield from table.select("tr")


def parse_subforums(html: Union[str, bytes]) -> List[SubForum]:
    """Sub-forum entries found on a front page, in page order; may hold duplicates."""
    soup = BeautifulSoup(html, "html.parser")
    return [sub_forum for sub_forum in map(_parse_row, _rows(soup)) if sub_forum is not None]


def unique_by_id(sub_forums: Iterable[SubForum]) -> List[SubForum]:
    """Drop entries without an ID and all but the first entry for each ID."""
    unique = {}
    for sub_forum in sub_forums:
        if sub_forum.id and sub_forum.id not in unique:
            unique[sub_forum.id] = sub_forum
    return list(unique.values())


def write_subforum_csv(sub_forums: Iterable[SubForum], path: PathLike) -> None:
    """Write the header and one row per sub-forum to ``path``."""
    with open(path, "w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle, lineterminator="\n")
        writer.writerow(CSV_HEADERS)
        for sub_forum in sub_forums:
            writer.writerow(sub_forum.as_row())


def _without_comments(lines: Iterable[str]) -> Iterator[str]:
    return (line for line in lines if not line.startswith("#"))


def read_subforum_csv(path: PathLike) -> List[SubForum]:
    """Read a sub-forum list written by :func:`write_subforum_csv`.

    Raises OSError when the file cannot be opened and ValueError when it is
    empty, holds no records after the header, or a record has the wrong
    number of fields.
    """
    with open(path, encoding="utf-8", newline="") as handle:
        records = (row for row in csv.reader(_without_comments(handle)) if row)
        header = next(records, None)
        if header is None:
            raise ValueError(f"sub-forum CSV file '{path}' is empty or has no header")
        if len(header) != len(CSV_HEADERS):
            raise ValueError(
                f"error reading header from sub-forum CSV file '{path}': "
                f"wrong number of fields ({len(header)})"
            )
        try:
            sub_forums = [SubForum.from_row(row) for row in records]
        except ValueError as exc:
            raise ValueError(f"error reading record from sub-forum CSV file '{path}': {exc}") from exc
    if not sub_forums:
        raise ValueError(f"no sub-forum data found in CSV file '{path}' (after header)")
    return sub_forums


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="waypoint-subforums",
        description="Extract the sub-forum list from a saved forum front page.",
    )
    parser.add_argument("-inputFile", "--inputFile", dest="input_file", default=DEFAULT_INPUT_FILE,
                        help="Saved HTML of the forum front page")
    parser.add_argument("-outputDir", "--outputDir", dest="output_dir", default="data",
                        help="Directory to save the output CSV file")
    parser.add_argument("-outputFile", "--outputFile", dest="output_file", default="subforum_list.csv",
                        help="Name of the output CSV file")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command entry point; returns the process exit status."""
    args = _build_parser().parse_args(argv)
    configure("INFO", None)

    try:
        with open(args.input_file, "rb") as handle:
            content = handle.read()
    except OSError as exc:
        _log.critical("Error opening input file %s: %s", args.input_file, exc)
        return 1

    sub_forums = unique_by_id(parse_subforums(content))

    try:
        os.makedirs(args.output_dir, exist_ok=True)
    except OSError as exc:
        _log.critical("Error creating output directory %s: %s", args.output_dir, exc)
        return 1

    output_path = os.path.join(args.output_dir, args.output_file)
    try:
        write_subforum_csv(sub_forums, output_path)
    except OSError as exc:
        _log.critical("Error creating CSV file %s: %s", output_path, exc)
        return 1

    _log.info("Successfully parsed %d unique sub-forums and wrote to %s", len(sub_forums), output_path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())