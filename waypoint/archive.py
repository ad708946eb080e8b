"""On-disk archive layout: base directories, the progress file and sub-forum metadata."""

from __future__ import annotations

import errno
import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple, Union

PathLike = Union[str, "os.PathLike[str]"]

RAW_HTML_DIR = "raw-html"
STRUCTURED_JSON_DIR = "structured-json"
METADATA_DIR = "metadata"
PROGRESS_FILE = "progress.json"
METADATA_INDEX_FILE = "index.json"


class StorageError(Exception):
    """Base class for archive storage failures."""


class StorageNotFoundError(StorageError):
    """The requested item does not exist."""


class StorageInvalidFormatError(StorageError):
    """Stored data could not be decoded or failed validation."""


class StoragePermissionError(StorageError):
    """The operating system refused access."""


class StorageFullError(StorageError):
    """The device has no space left."""


class StorageIOError(StorageError):
    """Any other input/output failure."""


def _write_error(exc: OSError, context: str) -> StorageError:
    if isinstance(exc, PermissionError):
        return StoragePermissionError(f"{context}: {exc}")
    if exc.errno == errno.ENOSPC or "no space left on device" in str(exc).lower():
        return StorageFullError(f"{context}: {exc}")
    return StorageIOError(f"{context}: {exc}")


def _write_json(path: str, payload: Any, what: str) -> None:
    text = json.dumps(payload, indent=2)
    try:
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(text)
    except OSError as exc:
        raise _write_error(exc, f"writing {what} {path}") from exc


def _read_json(path: str, what: str) -> Any:
    try:
        with open(path, encoding="utf-8") as handle:
            content = handle.read()
    except FileNotFoundError as exc:
        raise StorageNotFoundError(f"{what} at {path}") from exc
    except OSError as exc:
        raise StorageIOError(f"reading {what} {path}: {exc}") from exc
    try:
        return json.loads(content)
    except ValueError as exc:
        raise StorageInvalidFormatError(f"unmarshaling {what} {path}: {exc}") from exc


def _require_mapping(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise TypeError(f"expected a JSON object, got {type(data).__name__}")
    return data


def _get_str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"{key} must be a string")
    return value


def _get_number(data: Mapping[str, Any], key: str) -> float:
    value = data.get(key)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{key} must be a number")
    return float(value)


def _get_int(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{key} must be an integer")
    return value


@dataclass
class ProgressData:
    """Contents of the archive-wide progress.json file."""

    overall_archival_progress: float = 0.0
    last_processed_sub_forum: str = ""
    last_processed_topic: str = ""
    last_processed_page: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready mapping using the file's keys."""
        return {
            "overall_archival_progress": self.overall_archival_progress,
            "last_processed_sub_forum": self.last_processed_sub_forum,
            "last_processed_topic": self.last_processed_topic,
            "last_processed_page": self.last_processed_page,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProgressData":
        """Build from a decoded JSON object; missing keys take zero values."""
        data = _require_mapping(data)
        return cls(
            overall_archival_progress=_get_number(data, "overall_archival_progress"),
            last_processed_sub_forum=_get_str(data, "last_processed_sub_forum"),
            last_processed_topic=_get_str(data, "last_processed_topic"),
            last_processed_page=_get_str(data, "last_processed_page"),
        )


@dataclass
class SubForumMetadata:
    """Contents of a sub-forum's metadata index.json file."""

    total_topics: int = 0
    pages_per_topic: Dict[str, int] = field(default_factory=dict)
    last_update_timestamp: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready mapping using the file's keys."""
        return {
            "total_topics": self.total_topics,
            "pages_per_topic": dict(self.pages_per_topic),
            "last_update_timestamp": self.last_update_timestamp,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SubForumMetadata":
        """Build from a decoded JSON object; missing keys take zero values."""
        data = _require_mapping(data)
        raw_pages = data.get("pages_per_topic")
        pages: Dict[str, int] = {}
        if raw_pages is not None:
            for topic_id, count in _require_mapping(raw_pages).items():
                if isinstance(count, bool) or not isinstance(count, int):
                    raise TypeError(f"page count for topic {topic_id} must be an integer")
                pages[str(topic_id)] = count
        return cls(
            total_topics=_get_int(data, "total_topics"),
            pages_per_topic=pages,
            last_update_timestamp=_get_str(data, "last_update_timestamp"),
        )


def _base_dirs(base_path: PathLike) -> List[str]:
    return [
        os.path.join(base_path, RAW_HTML_DIR),
        os.path.join(base_path, STRUCTURED_JSON_DIR),
        os.path.join(base_path, METADATA_DIR),
    ]


def _progress_path(base_path: PathLike) -> str:
    return os.path.join(base_path, PROGRESS_FILE)


def initialize_storage(base_path: PathLike) -> None:
    """Create the base directories and, if absent, an initial progress.json."""
    for directory in _base_dirs(base_path):
        os.makedirs(directory, exist_ok=True)
    progress_path = _progress_path(base_path)
    try:
        os.stat(progress_path)
    except FileNotFoundError:
        _write_json(progress_path, ProgressData().to_dict(), "initial progress.json")
    except OSError as exc:
        raise StorageIOError(f"stating progress.json {progress_path}: {exc}") from exc


def raw_html_path(base_path: PathLike, sub_forum_id: str, topic_id: str, page_number: str) -> str:
    """Location of one raw HTML page of a topic."""
    return os.path.join(
        base_path,
        RAW_HTML_DIR,
        f"subforum-{sub_forum_id}",
        f"topic-{topic_id}",
        f"page-{page_number}.html",
    )


def structured_json_path(base_path: PathLike, sub_forum_id: str, topic_id: str) -> str:
    """Location of a topic's structured JSON file."""
    return os.path.join(
        base_path, STRUCTURED_JSON_DIR, f"subforum-{sub_forum_id}", f"topic-{topic_id}.json"
    )


def metadata_index_path(base_path: PathLike, sub_forum_id: str) -> str:
    """Location of a sub-forum's metadata index file."""
    return os.path.join(base_path, METADATA_DIR, f"subforum-{sub_forum_id}", METADATA_INDEX_FILE)


def write_sub_forum_metadata(base_path: PathLike, sub_forum_id: str, metadata: SubForumMetadata) -> None:
    """Create or replace a sub-forum's index.json, making its directory if needed."""
    path = metadata_index_path(base_path, sub_forum_id)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    _write_json(path, metadata.to_dict(), "metadata file")


def read_sub_forum_metadata(base_path: PathLike, sub_forum_id: str) -> SubForumMetadata:
    """Read and validate a sub-forum's index.json."""
    path = metadata_index_path(base_path, sub_forum_id)
    raw = _read_json(path, "metadata file")
    try:
        metadata = SubForumMetadata.from_dict(raw)
    except (TypeError, ValueError) as exc:
        raise StorageInvalidFormatError(f"unmarshaling metadata {path}: {exc}") from exc
    if metadata.total_topics < 0:
        raise StorageInvalidFormatError(
            f"TotalTopics invalid in {path}: {metadata.total_topics}"
        )
    return metadata


def read_progress(base_path: PathLike) -> ProgressData:
    """Read and validate the archive's progress.json."""
    path = _progress_path(base_path)
    raw = _read_json(path, "progress.json")
    try:
        data = ProgressData.from_dict(raw)
    except (TypeError, ValueError) as exc:
        raise StorageInvalidFormatError(f"unmarshaling progress.json: {exc}") from exc
    if not 0 <= data.overall_archival_progress <= 100:
        raise StorageInvalidFormatError(
            "OverallArchivalProgress out of range (0-100) in progress.json: "
            f"{data.overall_archival_progress:f}"
        )
    return data


def write_progress(base_path: PathLike, data: ProgressData) -> None:
    """Replace the archive's progress.json."""
    _write_json(_progress_path(base_path), data.to_dict(), "progress.json")


def validate_base_structure(base_path: PathLike) -> None:
    """Raise FileNotFoundError unless the base directories and progress.json exist."""
    for path in [*_base_dirs(base_path), _progress_path(base_path)]:
        os.stat(path)


def _parent(path: str) -> str:
    return os.path.normpath(os.path.dirname(path))


def parse_raw_html_path(file_path: PathLike) -> Tuple[str, str, str, str]:
    """Split a raw HTML page path into (base_path, sub_forum_id, topic_id, page_number)."""
    original = os.fspath(file_path)
    path = os.path.normpath(original)
    name = os.path.basename(path)
    topic_dir = _parent(path)
    sub_forum_dir = _parent(topic_dir)
    raw_dir = _parent(sub_forum_dir)
    base_path = _parent(raw_dir)

    sub_forum_name = os.path.basename(sub_forum_dir)
    topic_name = os.path.basename(topic_dir)
    if (
        os.path.basename(raw_dir) != RAW_HTML_DIR
        or not sub_forum_name.startswith("subforum-")
        or not topic_name.startswith("topic-")
        or not name.startswith("page-")
        or not name.endswith(".html")
    ):
        raise ValueError(f"invalid raw HTML path structure: {original}")

    sub_forum_id = sub_forum_name.removeprefix("subforum-")
    topic_id = topic_name.removeprefix("topic-")
    page_number = name.removeprefix("page-").removesuffix(".html")
    if not sub_forum_id or not topic_id or not page_number:
        raise ValueError(f"empty ID component in raw HTML path: {original}")
    return base_path, sub_forum_id, topic_id, page_number


def parse_structured_json_path(file_path: PathLike) -> Tuple[str, str, str]:
    """Split a structured JSON path into (base_path, sub_forum_id, topic_id)."""
    original = os.fspath(file_path)
    path = os.path.normpath(original)
    name = os.path.basename(path)
    sub_forum_dir = _parent(path)
    structured_dir = _parent(sub_forum_dir)
    base_path = _parent(structured_dir)

    sub_forum_name = os.path.basename(sub_forum_dir)
    if (
        os.path.basename(structured_dir) != STRUCTURED_JSON_DIR
        or not sub_forum_name.startswith("subforum-")
        or not name.startswith("topic-")
        or not name.endswith(".json")
    ):
        raise ValueError(f"invalid structured JSON path structure: {original}")

    sub_forum_id = sub_forum_name.removeprefix("subforum-")
    topic_id = name.removeprefix("topic-").removesuffix(".json")
    if not sub_forum_id or not topic_id:
        raise ValueError(f"empty ID component in structured JSON path: {original}")
    return base_path, sub_forum_id, topic_id


def parse_metadata_index_path(file_path: PathLike) -> Tuple[str, str]:
    """Split a metadata index path into (base_path, sub_forum_id)."""
    original = os.fspath(file_path)
    path = os.path.normpath(original)
    sub_forum_dir = _parent(path)
    metadata_dir = _parent(sub_forum_dir)
    base_path = _parent(metadata_dir)

    sub_forum_name = os.path.basename(sub_forum_dir)
    if (
        os.path.basename(metadata_dir) != METADATA_DIR
        or not sub_forum_name.startswith("subforum-")
        or os.path.basename(path) != METADATA_INDEX_FILE
    ):
        raise ValueError(f"invalid metadata index path structure: {original}")

    sub_forum_id = sub_forum_name.removeprefix("subforum-")
    if not sub_forum_id:
        raise ValueError(f"empty ID component in metadata index path: {original}")
    return base_path, sub_forum_id