"""Archive size accounting, quota checks and backups of progress and metadata."""

from __future__ import annotations

import errno
import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Union

from waypoint.archive import (
    METADATA_DIR,
    PROGRESS_FILE,
    StorageError,
    StorageFullError,
    StorageIOError,
    StorageNotFoundError,
    StoragePermissionError,
)

PathLike = Union[str, "os.PathLike[str]"]

BACKUP_PREFIX = "project-waypoint-backup-"
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
_TIMESTAMP_RE = re.compile(r"\d{14}")

_log = logging.getLogger(__name__)


def _tree_size(path: str) -> int:
    total = 0
    with os.scandir(path) as entries:
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                total += _tree_size(entry.path)
            else:
                total += entry.stat(follow_symlinks=False).st_size
    return total


def directory_size(dir_path: PathLike) -> int:
    """Total size in bytes of all files below ``dir_path``."""
    path = os.fspath(dir_path)
    try:
        info = os.lstat(path)
        if not os.path.isdir(path) or os.path.islink(path):
            return info.st_size
        return _tree_size(path)
    except OSError as exc:
        raise StorageIOError(f"error walking directory {path}: {exc}") from exc


@dataclass
class StorageStatus:
    """Storage usage measured against an optional quota."""

    current_usage_bytes: int = 0
    quota_bytes: int = 0
    usage_percentage: float = 0.0
    is_warning: bool = False
    error: Optional[Exception] = None


def check_storage_quota(
    base_path: PathLike, warning_threshold: float, quota_bytes: int
) -> StorageStatus:
    """Measure usage under ``base_path``; a quota of zero or less means none is set."""
    status = StorageStatus(quota_bytes=quota_bytes)
    try:
        usage = directory_size(base_path)
    except StorageError as exc:
        status.error = StorageIOError(f"failed to get directory size for quota check: {exc}")
        _log.error("Error checking storage quota for %s: %s", base_path, status.error)
        return status
    status.current_usage_bytes = usage

    if quota_bytes > 0:
        status.usage_percentage = usage / quota_bytes * 100.0
        if status.usage_percentage >= warning_threshold:
            status.is_warning = True
            _log.warning(
                "Storage usage for %s is at %.2f%% (Used: %d, Quota: %d), exceeding threshold of %.2f%%.",
                base_path, status.usage_percentage, usage, quota_bytes, warning_threshold,
            )
        else:
            _log.info(
                "Storage usage for %s is at %.2f%% (Used: %d, Quota: %d). Threshold: %.2f%%.",
                base_path, status.usage_percentage, usage, quota_bytes, warning_threshold,
            )
    else:
        _log.info("Storage usage for %s is %d bytes. No quota set.", base_path, usage)
    return status


def _write_failure(exc: OSError, context: str) -> StorageError:
    if isinstance(exc, PermissionError):
        return StoragePermissionError(f"{context}: {exc}")
    if exc.errno == errno.ENOSPC or "no space left on device" in str(exc).lower():
        return StorageFullError(f"{context}: {exc}")
    return StorageIOError(f"{context}: {exc}")


def _copy_file(src: str, dst: str) -> None:
    try:
        with open(src, "rb") as handle:
            content = handle.read()
    except FileNotFoundError as exc:
        raise StorageNotFoundError(f"source file {src} for copy") from exc
    except OSError as exc:
        raise StorageIOError(f"reading source file {src} for copy: {exc}") from exc
    try:
        with open(dst, "wb") as handle:
            handle.write(content)
    except OSError as exc:
        raise _write_failure(exc, f"writing destination file {dst} for copy") from exc


def _copy_tree(src: str, dst: str) -> None:
    try:
        is_dir = os.path.isdir(src)
        os.stat(src)
    except OSError as exc:
        raise StorageIOError(f"failed to stat source directory {src}: {exc}") from exc
    if not is_dir:
        raise StorageIOError(f"source {src} is not a directory")
    try:
        os.makedirs(dst, exist_ok=True)
    except OSError as exc:
        raise StorageIOError(f"failed to create destination directory {dst}: {exc}") from exc
    try:
        with os.scandir(src) as iterator:
            entries = sorted(iterator, key=lambda entry: entry.name)
    except OSError as exc:
        raise StorageIOError(f"failed to read source directory {src}: {exc}") from exc
    for entry in entries:
        target = os.path.join(dst, entry.name)
        if entry.is_dir(follow_symlinks=False):
            _copy_tree(entry.path, target)
        else:
            _copy_file(entry.path, target)


def backup_metadata_and_progress(archive_base_path: PathLike, backup_base_dir: PathLike) -> str:
    """Copy progress.json and the metadata tree into a new timestamped backup folder.

    Returns the path of the backup folder. Missing sources are skipped.
    """
    _log.info(
        "BackupMetadataAndProgress started. ArchiveBasePath: [%s], BackupBaseDir: [%s]",
        archive_base_path, backup_base_dir,
    )
    stamp = datetime.now().strftime(TIMESTAMP_FORMAT)
    backup_path = os.path.join(backup_base_dir, f"{BACKUP_PREFIX}{stamp}")

    _log.info("Attempting to create backup target directory: [%s]", backup_path)
    try:
        os.makedirs(backup_path, exist_ok=True)
    except OSError as exc:
        _log.error("Failed to create main backup directory [%s]: %s", backup_path, exc)
        raise StorageIOError(
            f"failed to create main backup directory {backup_path}: {exc}"
        ) from exc

    progress_src = os.path.join(archive_base_path, PROGRESS_FILE)
    progress_dst = os.path.join(backup_path, PROGRESS_FILE)
    _log.info("Checking for progress file source: [%s]", progress_src)
    try:
        os.stat(progress_src)
    except FileNotFoundError:
        _log.info("Progress file source [%s] does not exist. Skipping copy.", progress_src)
    except OSError as exc:
        _log.error("Error stating progress file source [%s]: %s", progress_src, exc)
        raise StorageIOError(
            f"failed to stat source progress.json {progress_src}: {exc}"
        ) from exc
    else:
        _log.info(
            "Progress file source [%s] exists. Attempting to copy to [%s]", progress_src, progress_dst
        )
        try:
            _copy_file(progress_src, progress_dst)
        except StorageError as exc:
            _log.error(
                "Failed to backup progress.json from [%s] to [%s]: %s", progress_src, progress_dst, exc
            )
            raise type(exc)(f"failed to backup progress.json: {exc}") from exc
        _log.info("Successfully copied progress.json to [%s]", progress_dst)

    metadata_src = os.path.join(archive_base_path, METADATA_DIR)
    metadata_dst = os.path.join(backup_path, METADATA_DIR)
    _log.info("Checking for metadata directory source: [%s]", metadata_src)
    try:
        os.stat(metadata_src)
    except FileNotFoundError:
        _log.info("Metadata directory source [%s] does not exist. Skipping copy.", metadata_src)
    except OSError as exc:
        _log.error("Error stating metadata directory source [%s]: %s", metadata_src, exc)
        raise StorageIOError(
            f"failed to stat source metadata directory {metadata_src}: {exc}"
        ) from exc
    else:
        if not os.path.isdir(metadata_src):
            _log.warning(
                "Source metadata path [%s] exists but is not a directory. Skipping copy.", metadata_src
            )
        else:
            _log.info(
                "Metadata directory source [%s] exists and is a directory. Attempting to copy to [%s]",
                metadata_src, metadata_dst,
            )
            try:
                _copy_tree(metadata_src, metadata_dst)
            except StorageError as exc:
                _log.error(
                    "Failed to backup metadata directory from [%s] to [%s]: %s",
                    metadata_src, metadata_dst, exc,
                )
                raise type(exc)(f"failed to backup metadata directory: {exc}") from exc
            _log.info("Successfully copied metadata directory to [%s]", metadata_dst)

    _log.info("BackupMetadataAndProgress finished successfully. Backup at: [%s]", backup_path)
    return backup_path


@dataclass(frozen=True)
class BackupInfo:
    """One backup folder and the time encoded in its name."""

    path: str
    timestamp: datetime


def _parse_stamp(text: str) -> datetime:
    if not _TIMESTAMP_RE.fullmatch(text):
        raise ValueError(f"timestamp {text!r} does not match {TIMESTAMP_FORMAT}")
    return datetime.strptime(text, TIMESTAMP_FORMAT)


def list_backups(backup_base_dir: PathLike) -> List[BackupInfo]:
    """Backup folders under ``backup_base_dir``, newest first; none if it does not exist."""
    try:
        with os.scandir(backup_base_dir) as iterator:
            entries = sorted(iterator, key=lambda entry: entry.name)
    except FileNotFoundError:
        return []
    except OSError as exc:
        raise StorageIOError(
            f"failed to read backup base directory {backup_base_dir}: {exc}"
        ) from exc

    backups: List[BackupInfo] = []
    for entry in entries:
        if not entry.is_dir(follow_symlinks=False) or not entry.name.startswith(BACKUP_PREFIX):
            continue
        try:
            stamp = _parse_stamp(entry.name.removeprefix(BACKUP_PREFIX))
        except ValueError as exc:
            _log.warning(
                "Found directory %s with backup prefix but invalid timestamp format: %s",
                entry.name, exc,
            )
            continue
        backups.append(BackupInfo(path=os.path.join(backup_base_dir, entry.name), timestamp=stamp))

    backups.sort(key=lambda info: info.timestamp, reverse=True)
    return backups