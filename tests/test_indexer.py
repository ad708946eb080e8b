import json
import os

import pytest

from waypoint.indexer import IndexerConfig, main, parse_args, perform_full_scan, run
from waypoint.navigation import FetchError
from waypoint.run_metrics import MetricsTracker

BASE = "https://www.themagiccafe.com/forums/viewforum.php"
FIRST = f"{BASE}?forum=54"
SECOND = f"{BASE}?forum=54&start=30"
THIRD = f"{BASE}?forum=54&start=60"


def listing(topic_ids, max_start=0):
    links = "".join(
        f'<a href="viewforum.php?forum=54&amp;start={start}">{start // 30 + 1}</a>~'
        for start in range(30, max_start + 1, 30)
    )
    rows = "".join(
        f'<tr><td class="normal bgc2"><a class="b" href="viewtopic.php?topic={tid}&forum=54">'
        f"Topic {tid}</a></td></tr>"
        for tid in topic_ids
    )
    return (
        '<table class="normal">'
        f'<tr><td class="normal bgc1 b midtext">Go to page <span>1</span>~{links}</td></tr>'
        f"{rows}</table>"
    )


def fetcher_from(pages, failing=()):
    calls = []

    def fetch(url, delay):
        calls.append(url)
        if url in failing:
            raise FetchError(f"mock failure for {url}")
        value = pages[url]
        if callable(value):
            return value()
        return value

    fetch.calls = calls
    return fetch


def test_parse_args_defaults():
    config = parse_args(["-url", FIRST])
    assert config == IndexerConfig(
        sub_forum_url=FIRST,
        output_dir="./output_data",
        request_delay=1000,
        log_level="INFO",
        max_pages=0,
    )


def test_parse_args_equals_form():
    config = parse_args(
        [f"-url={FIRST}", "-output=out", "-delay=0", "-loglevel=DEBUG", "-maxpages=2"]
    )
    assert config.sub_forum_url == FIRST
    assert config.output_dir == "out"
    assert config.request_delay == 0
    assert config.log_level == "DEBUG"
    assert config.max_pages == 2


def test_parse_args_requires_url():
    with pytest.raises(SystemExit) as info:
        parse_args([])
    assert info.value.code == 1


def test_full_scan_collects_unique_topics():
    pages = {
        FIRST: listing(["1", "2"], max_start=30),
        SECOND: listing(["2", "3"]),
    }
    tracker = MetricsTracker()
    topics, urls = perform_full_scan(FIRST, 0, tracker, 0, fetcher_from(pages))
    assert urls == [FIRST, SECOND]
    assert sorted(topics) == ["1", "2", "3"]
    assert topics["3"].url == "https://www.themagiccafe.com/forums/viewtopic.php?topic=3&forum=54"
    assert tracker.http_requests == len(urls) + 1
    assert tracker.successful_requests == tracker.http_requests
    assert tracker.pages_fetched == len(urls)
    assert tracker.topics_found == 4
    assert tracker.total_pages == len(urls)


def test_full_scan_respects_max_pages():
    pages = {
        FIRST: listing(["1"], max_start=60),
        SECOND: listing(["2"]),
        THIRD: listing(["3"]),
    }
    tracker = MetricsTracker()
    fetch = fetcher_from(pages)
    topics, urls = perform_full_scan(FIRST, 0, tracker, 2, fetch)
    assert urls == [FIRST, SECOND]
    assert THIRD not in fetch.calls
    assert sorted(topics) == ["1", "2"]
    assert tracker.total_pages == 2


def test_full_scan_initial_fetch_failure():
    tracker = MetricsTracker()
    with pytest.raises(FetchError):
        perform_full_scan(FIRST, 0, tracker, 0, fetcher_from({}, failing={FIRST}))
    assert tracker.failed_requests == 1
    assert tracker.successful_requests == 0


def test_full_scan_skips_failed_page():
    pages = {FIRST: listing(["1"], max_start=30)}
    tracker = MetricsTracker()
    topics, urls = perform_full_scan(FIRST, 0, tracker, 0, fetcher_from(pages, failing={SECOND}))
    assert urls == [FIRST, SECOND]
    assert list(topics) == ["1"]
    assert tracker.failed_requests == 1
    assert tracker.pages_fetched == 1


def test_full_scan_rejects_url_without_forum():
    tracker = MetricsTracker()
    with pytest.raises(ValueError, match="forum ID not found"):
        perform_full_scan(BASE, 0, tracker, 0, fetcher_from({BASE: listing(["1"])}))


def test_run_saves_index_and_picks_up_bumped_topic(tmp_path):
    served = {"count": 0}

    def first_page():
        served["count"] += 1
        if served["count"] >= 3:
            return listing(["9", "1"], max_start=30)
        return listing(["1"], max_start=30)

    pages = {FIRST: first_page, SECOND: listing(["2"])}
    config = IndexerConfig(sub_forum_url=FIRST, output_dir=str(tmp_path), request_delay=0)
    topics = run(config, fetcher_from(pages))
    assert sorted(topics) == ["1", "2", "9"]

    index_path = tmp_path / "topic_index_54.json"
    records = json.loads(index_path.read_text(encoding="utf-8"))
    assert [record["ID"] for record in records] == ["1", "2", "9"]

    log_text = (tmp_path / "indexer_run_sf_54.log").read_text(encoding="utf-8")
    assert "Starting Project Waypoint Indexer..." in log_text
    assert "Project Waypoint Indexer finished." in log_text


def test_run_without_topics_writes_no_index(tmp_path):
    pages = {FIRST: listing([])}
    config = IndexerConfig(sub_forum_url=FIRST, output_dir=str(tmp_path), request_delay=0)
    topics = run(config, fetcher_from(pages))
    assert topics == {}
    assert not (tmp_path / "topic_index_54.json").exists()


def test_run_fails_without_forum_id(tmp_path):
    config = IndexerConfig(sub_forum_url=BASE, output_dir=str(tmp_path), request_delay=0)
    with pytest.raises(ValueError):
        run(config, fetcher_from({BASE: listing(["1"])}))
    log_path = tmp_path / "indexer_run_sf_unknownforum_no_id.log"
    assert log_path.exists()
    assert "[FATAL]" in log_path.read_text(encoding="utf-8")


def test_main_returns_failure_status_when_unreachable(tmp_path):
    url = "http://127.0.0.1:1/forums/viewforum.php?forum=5"
    status = main(["-url", url, "-output", str(tmp_path), "-delay", "0"])
    assert status == 1
    assert os.path.exists(tmp_path / "indexer_run_sf_5.log")