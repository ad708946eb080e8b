import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from waypoint.navigation import (
    FetchError,
    PageNavigationInfo,
    fetch_html,
    get_topic_page_urls,
    parse_pagination_links,
)

FORUM_BASE_URL = "https://www.themagiccafe.com/forums/viewforum.php"


class _Handler(BaseHTTPRequestHandler):
    def do_GET(self):
        if self.path == "/fail":
            self.send_response(500)
            self.end_headers()
            return
        body = b"<html><body>Hello</body></html>\n"
        if self.path == "/delayed":
            body = b"<html><body>Delayed Hello</body></html>\n"
        self.send_response(200)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, *args):
        pass


@pytest.fixture
def server_url():
    server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()


def test_fetch_without_delay(server_url):
    html = fetch_html(server_url + "/", 0)
    assert "Hello" in html


def test_fetch_with_delay(server_url):
    start = time.monotonic()
    html = fetch_html(server_url + "/delayed", 0.01)
    assert "Delayed Hello" in html
    assert time.monotonic() - start >= 0.01


def test_fetch_server_error(server_url):
    with pytest.raises(FetchError):
        fetch_html(server_url + "/fail", 0)


def test_fetch_invalid_url():
    with pytest.raises(FetchError):
        fetch_html("invalid-url", 0)


MULTIPLE_PAGES = """
<table class="normal" cellpadding="4" cellspacing="1">
    <tr>
        <td class="normal bgc1 b midtext" colspan="6">
            &nbsp;Go to page <span class="on_page">1</span>~
            <a href="viewforum.php?forum=54&amp;start=30">2</a>~
            <a href="viewforum.php?forum=54&amp;start=60">3</a>
            [<a href="viewforum.php?forum=54&amp;start=30">Next</a>]
        </td>
    </tr>
</table>"""

SINGLE_PAGE = """
<table class="normal" cellpadding="4" cellspacing="1">
    <tr><td class="normal bgc1 b midtext" colspan="6">&nbsp;Go to page <span class="on_page">1</span></td></tr>
</table>"""

REALISTIC = """
<body bgcolor="#000000"><div id="container">
<table class="normal" cellpadding="4" cellspacing="1">
    <tr class="normal bgc1">
        <td class="mltext" colspan="6">
            <table class="w100"><tr><td class="w75">Index</td></tr></table>
        </td>
    </tr>
    <tr>
        <td class="normal bgc1 b midtext" colspan="6">
            &nbsp;Go to page <span class="on_page">1</span>~
            <a href="viewforum.php?forum=54&amp;start=30" title="Page 2" alt="Page 2">2</a>~
            <a href="viewforum.php?forum=54&amp;start=60" title="Page 3" alt="Page 3">3</a>..
            <a href="viewforum.php?forum=54&amp;start=1890" title="Page 64" alt="Page 64">64</a>
            [<a href="viewforum.php?forum=54&amp;start=30" title="Next Page" alt="Next Page">Next</a>]
        </td>
    </tr>
</table></div></body>"""


@pytest.mark.parametrize(
    "page_url, html, expected",
    [
        (
            f"{FORUM_BASE_URL}?forum=54",
            MULTIPLE_PAGES,
            [
                f"{FORUM_BASE_URL}?forum=54",
                f"{FORUM_BASE_URL}?forum=54&start=30",
                f"{FORUM_BASE_URL}?forum=54&start=60",
            ],
        ),
        (f"{FORUM_BASE_URL}?forum=100", SINGLE_PAGE, [f"{FORUM_BASE_URL}?forum=100"]),
        (
            "https://www.themagiccafe.com/forums/viewforum.php?forum=54",
            REALISTIC,
            ["https://www.themagiccafe.com/forums/viewforum.php?forum=54"]
            + [
                f"https://www.themagiccafe.com/forums/viewforum.php?forum=54&start={i * 30}"
                for i in range(1, 64)
            ],
        ),
        (
            f"{FORUM_BASE_URL}?forum=54",
            "<body><p>No links here</p></body>",
            [f"{FORUM_BASE_URL}?forum=54"],
        ),
        (
            f"{FORUM_BASE_URL}?forum=54",
            '<td class="normal bgc1 b midtext"><a href="://malformed">2</a></td>',
            [f"{FORUM_BASE_URL}?forum=54"],
        ),
    ],
    ids=["multiple pages", "single page", "realistic", "no links", "malformed href"],
)
def test_parse_pagination_links(page_url, html, expected):
    assert parse_pagination_links(html, page_url) == expected


def test_parse_pagination_invalid_page_url():
    with pytest.raises(ValueError, match="failed to parse pageURL"):
        parse_pagination_links("", "://invalid-url")


def test_parse_pagination_missing_forum_id():
    html = '<td class="normal bgc1 b midtext"><a href="viewforum.php?forum=54&amp;start=30">2</a></td>'
    with pytest.raises(ValueError, match="forum ID not found"):
        parse_pagination_links(html, FORUM_BASE_URL)


def _fake_fetch(pages, failing=()):
    def fetch(url, delay):
        if url in failing:
            raise FetchError(f"mock fetch error for {url}")
        if url in pages:
            return pages[url]
        raise FetchError(f"unexpected URL fetched in test: {url}")

    return fetch


def test_single_page_topic():
    url = "https://www.themagiccafe.com/forums/viewtopic.php?topic_id=12345"
    fetch = _fake_fetch({url: "<html><body><p>Single page content</p></body></html>"})
    assert get_topic_page_urls("12345", url, 0, fetch) == [PageNavigationInfo(1, url)]


def test_multi_page_topic():
    base = "http://example.com/viewtopic.php?topic_id=67890"
    pages = {
        base: '<html><body>Page 1 <a href="viewtopic.php?topic_id=67890&page=2">Next</a></body></html>',
        base + "&page=2": '<html><body>Page 2 <a href="viewtopic.php?topic_id=67890&page=3">Next</a></body></html>',
        base + "&page=3": "<html><body>Page 3 No Next Link</body></html>",
    }
    result = get_topic_page_urls("67890", base, 0, _fake_fetch(pages))
    assert result == [
        PageNavigationInfo(1, base),
        PageNavigationInfo(2, base + "&page=2"),
        PageNavigationInfo(3, base + "&page=3"),
    ]


def test_empty_topic_id():
    with pytest.raises(ValueError):
        get_topic_page_urls(
            "", "https://www.themagiccafe.com/forums/viewtopic.php?topic_id=", 0, _fake_fetch({})
        )


def test_invalid_topic_url():
    with pytest.raises(ValueError):
        get_topic_page_urls("123", "://not-a-url", 0, _fake_fetch({}))


def test_fetch_error_on_first_page():
    url = "http://example.com/fetcherror1"
    with pytest.raises(FetchError) as info:
        get_topic_page_urls("fetcherror1", url, 0, _fake_fetch({}, failing={url}))
    assert info.value.pages == [PageNavigationInfo(1, url)]


def test_fetch_error_on_second_page():
    first = "http://example.com/fetcherror2_page1"
    second = "http://example.com/fetcherror2_page2"
    fetch = _fake_fetch(
        {first: '<html><body>Page 1 <a href="fetcherror2_page2">Next</a></body></html>'},
        failing={second},
    )
    with pytest.raises(FetchError) as info:
        get_topic_page_urls("fetcherror2", first, 0, fetch)
    assert info.value.pages == [PageNavigationInfo(1, first), PageNavigationInfo(2, second)]


def test_pagination_loop_stops():
    url = "http://example.com/viewtopic.php?topic=1"
    fetch = _fake_fetch({url: '<a href="viewtopic.php?topic=1">Next</a>'})
    assert get_topic_page_urls("1", url, 0, fetch) == [PageNavigationInfo(1, url)]