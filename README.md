# waypoint

Tools for indexing the sub-forums and topics of a phpBB-style forum, writing
the results to disk, and keeping track of how an indexing run is going.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Commands

Three commands are installed. Each accepts `--help`.

### `waypoint-subforums`

Reads a saved copy of the forum's front page, picks out every sub-forum
listed there (id, name, address, description, topic and post counts, last
activity time, last poster and last post id), drops duplicates by id and
writes the list to a CSV file.

| Option | Default | Meaning |
| --- | --- | --- |
| `-inputFile` | `bmad-agent/forum_front_page.html` | saved front page HTML |
| `-outputDir` | `data` | directory for the CSV (created if missing) |
| `-outputFile` | `subforum_list.csv` | name of the CSV file |

Options may also be written with two dashes (`--outputDir`).

### `waypoint-indexer`

Indexes one sub-forum. It fetches the first listing page, works out how many
pages there are (30 topics per page), visits each one with a politeness delay
between requests, collects every topic, then reads the first page once more
to catch topics that were bumped or added while the scan ran. The unique
topics are saved, sorted by id, as `topic_index_<forum id>.json` in the output
directory; each entry has `ID`, `Title` and `URL` keys. A log of the run is
appended to `indexer_run_sf_<forum id>.log` in the same directory as well as
written to standard error. Progress and an estimated time to completion are
logged as pages are processed, with a summary of request counts and timings
at the end.

| Option | Default | Meaning |
| --- | --- | --- |
| `-url` | (required) | sub-forum address, with a `forum=` query parameter |
| `-output` | `./output_data` | output directory |
| `-delay` | `1000` | delay between requests, in milliseconds |
| `-loglevel` | `INFO` | `DEBUG`, `INFO`, `WARNING` or `ERROR` |
| `-maxpages` | `0` | stop after this many listing pages (0: no limit) |

The command exits with status 1 when no URL is given or when the scan or the
save fails.

### `waypoint-master`

Runs the indexer over every sub-forum in the CSV produced by
`waypoint-subforums`, one process per sub-forum, each with its own output
directory `forum_<id>` under the output base. Sub-forums whose run succeeds
are appended to a completion file, so an interrupted batch can be started
again and will skip those already done; failed ones are retried next time.

| Option | Default | Meaning |
| --- | --- | --- |
| `--subforum-list` | `data/subforum_list.csv` | sub-forum CSV |
| `--completed-file` | `data/completed_subforums.txt` | ids already done (created if missing) |
| `--output-base` | `master_output/indexed_data` | base output directory |
| `--executable` | this package's indexer | indexer program to run |

Each indexer run is given `-url`, `-output`, `-delay=1000` and
`-loglevel=INFO`. Its output is captured and logged.

## Using the library

### Extracting topics and page links

```python
from waypoint.topic import extract_topics
from waypoint.navigation import parse_pagination_links

page_url = "https://forum.example.com/forums/viewforum.php?forum=54"

for topic in extract_topics(html, page_url):
    print(topic.id, topic.title, topic.url)

for url in parse_pagination_links(html, page_url):
    print(url)
```

`waypoint.navigation.fetch_html(url, delay)` waits `delay` seconds, fetches
the page and raises `FetchError` on failure. `get_topic_page_urls(topic_id,
topic_url, politeness_delay, fetch)` follows "Next" links through a topic and
returns a list of `PageNavigationInfo` (page number and URL); if a page
cannot be fetched it raises `FetchError`, whose `pages` attribute holds the
pages found so far. Any function taking `(url, delay)` and returning HTML can
be passed as `fetch`.

`waypoint.topic_index.save_topic_index(output_dir, topics, sub_forum_url)`
writes the topic index file described above, and `extract_sub_forum_id`
returns the `forum` query parameter of a URL.

### Archive layout

`waypoint.archive` manages a directory tree of the form:

```
<base>/
    progress.json
    raw-html/subforum-<id>/topic-<id>/page-<n>.html
    structured-json/subforum-<id>/topic-<id>.json
    metadata/subforum-<id>/index.json
```

```python
from waypoint.archive import (
    ProgressData, initialize_storage, read_progress, write_progress,
    raw_html_path, parse_raw_html_path,
)

initialize_storage("archive")
write_progress("archive", ProgressData(overall_archival_progress=42.0))
print(read_progress("archive"))

path = raw_html_path("archive", "54", "1234", "1")
print(parse_raw_html_path(path))
```

`write_sub_forum_metadata` and `read_sub_forum_metadata` handle the
`SubForumMetadata` index files; `validate_base_structure` checks that the
base directories and `progress.json` exist. Failures are reported as
subclasses of `StorageError`: `StorageNotFoundError`,
`StorageInvalidFormatError`, `StoragePermissionError`, `StorageFullError` and
`StorageIOError`. The path parsers raise `ValueError` for paths of the wrong
shape.

### Quotas and backups

```python
from waypoint.backup import check_storage_quota, backup_metadata_and_progress, list_backups

status = check_storage_quota("archive", 80.0, 10 * 1024**3)
print(status.current_usage_bytes, status.usage_percentage, status.is_warning)

backup_metadata_and_progress("archive", "backups")
for backup in list_backups("backups"):
    print(backup.timestamp, backup.path)
```

A backup copies `progress.json` and the whole `metadata` directory into a new
directory named `project-waypoint-backup-<YYYYMMDDHHMMSS>`; sources that are
missing are skipped. `list_backups` returns them newest first.

### Performance metrics

`waypoint.metrics.ProcessingMetrics` tracks progress, current and average
rates and an estimated time to completion; `format_metrics` renders them as
text. `HistoryManager` appends finished runs (`HistoricalRun`) to
`<base>/metrics/performance_history.jsonl` and uses the recent ones to
estimate how long a new sub-forum will take.

`waypoint.run_metrics.MetricsTracker` holds the request, page and topic
counters of one indexer run, logs an ETC with `log_etc` and a summary with
`finalize`. `waypoint.log.configure(level_name, stream)` sets up the
package's levelled log output.

## What it does not do

The indexer only discovers topics and saves their index. Nothing in the
package downloads the pages of the topics themselves or fills the `raw-html`
and `structured-json` parts of the archive layout; `waypoint.archive` provides
the layout, paths and progress file, but no command writes topic content
into it.