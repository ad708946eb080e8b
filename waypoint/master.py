"""Driving the indexer over every sub-forum in the list, remembering which are done."""

from __future__ import annotations

import argparse
import logging
import os
import subprocess
import sys
from typing import Iterable, List, Optional, Sequence, Set, Tuple, Union

from waypoint.log import configure
from waypoint.subforums import SubForum, read_subforum_csv

PathLike = Union[str, "os.PathLike[str]"]
Command = Union[str, Sequence[str]]

SUB_FORUM_LIST_CSV = os.path.join("data", "subforum_list.csv")
COMPLETED_SUB_FORUMS_FILE = os.path.join("data", "completed_subforums.txt")
MASTER_OUTPUT_BASE_DIR = os.path.join("master_output", "indexed_data")
DEFAULT_DELAY_MS = 1000
DEFAULT_LOG_LEVEL = "INFO"

_log = logging.getLogger(__name__)


def load_completed_ids(path: PathLike) -> Set[str]:
    """IDs listed one per line in ``path``; the file is created if missing."""
    with open(path, "a+", encoding="utf-8") as handle:
        handle.seek(0)
        return {line.strip() for line in handle if line.strip()}


def mark_completed(path: PathLike, sub_forum_id: str) -> None:
    """Append ``sub_forum_id`` to the completed-IDs file."""
    with open(path, "a", encoding="utf-8") as handle:
        handle.write(sub_forum_id + "\n")


def build_indexer_command(executable: Command, sub_forum: SubForum, output_dir: PathLike) -> List[str]:
    """Argument list that runs the indexer for one sub-forum."""
    prefix = [executable] if isinstance(executable, str) else list(executable)
    return prefix + [
        f"-url={sub_forum.base_url}",
        f"-output={os.fspath(output_dir)}",
        f"-delay={DEFAULT_DELAY_MS}",
        f"-loglevel={DEFAULT_LOG_LEVEL}",
    ]


def _log_output(stdout: str, stderr: str) -> None:
    if stdout:
        _log.info("Core Indexer STDOUT:\n--- Output Start ---\n%s\n--- Output End ---", stdout)
    if stderr:
        _log.info("Core Indexer STDERR:\n--- Error Output Start ---\n%s\n--- Error Output End ---", stderr)


def _run_indexer(command: List[str], sub_forum: SubForum) -> bool:
    _log.info("Executing: %s", " ".join(command))
    try:
        result = subprocess.run(command, capture_output=True, text=True, check=False)
    except OSError as exc:
        _log.error(
            "Core Indexing Script for sub-forum %s (%s) failed. ExitError: %s",
            sub_forum.id, sub_forum.name, exc,
        )
        return False
    if result.returncode != 0:
        _log.error(
            "Core Indexing Script for sub-forum %s (%s) failed. ExitError: exit status %d",
            sub_forum.id, sub_forum.name, result.returncode,
        )
        _log_output(result.stdout, result.stderr)
        return False
    _log.info("Core Indexing Script for sub-forum %s (%s) completed successfully.", sub_forum.id, sub_forum.name)
    _log_output(result.stdout, result.stderr)
    return True


def process_sub_forums(
    sub_forums: Iterable[SubForum],
    completed_path: PathLike,
    executable: Command,
    output_base_dir: PathLike,
) -> Tuple[int, int]:
    """Run the indexer on each sub-forum not yet marked completed.

    Returns (processed successfully in this run, skipped as already complete).
    """
    completed = load_completed_ids(completed_path)
    _log.info("Loaded %d completed sub-forum IDs.", len(completed))
    items = list(sub_forums)
    total = len(items)
    processed = skipped = 0

    for number, sub_forum in enumerate(items, start=1):
        _log.info("--- Processing sub-forum %d/%d: ID=%s, Name=%s ---", number, total, sub_forum.id, sub_forum.name)
        if not sub_forum.id or not sub_forum.base_url:
            _log.warning(
                "Sub-forum ID or BaseURL is empty for entry %d. Skipping. CSV Record: %s", number, sub_forum
            )
            continue
        if sub_forum.id in completed:
            _log.info("Sub-forum %s (%s) already marked as completed. Skipping.", sub_forum.id, sub_forum.name)
            skipped += 1
            continue

        _log.info("Invoking core_indexer for sub-forum %s (%s)...", sub_forum.id, sub_forum.name)
        output_dir = os.path.join(output_base_dir, f"forum_{sub_forum.id}")
        try:
            os.makedirs(output_dir, exist_ok=True)
        except OSError as exc:
            _log.error(
                "Could not create output directory '%s' for sub-forum %s: %s. Skipping this sub-forum.",
                output_dir, sub_forum.id, exc,
            )
            continue
        _log.info("Core indexer output for forum %s will be in: %s", sub_forum.id, output_dir)

        command = build_indexer_command(executable, sub_forum, output_dir)
        if _run_indexer(command, sub_forum):
            try:
                mark_completed(completed_path, sub_forum.id)
            except OSError as exc:
                _log.error("Failed to mark sub-forum %s (%s) as completed: %s", sub_forum.id, sub_forum.name, exc)
            else:
                _log.info(
                    "Successfully marked sub-forum %s (%s) as completed in master log.",
                    sub_forum.id, sub_forum.name,
                )
                processed += 1
        else:
            _log.info(
                "Processing FAILED for sub-forum %s (%s). It will be retried on the next run.",
                sub_forum.id, sub_forum.name,
            )
        _log.info("--- Finished processing attempt for sub-forum %s (%s) ---", sub_forum.id, sub_forum.name)

    return processed, skipped


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="waypoint-master",
        description="Run the indexer over every sub-forum in the sub-forum list.",
    )
    parser.add_argument("--subforum-list", default=SUB_FORUM_LIST_CSV,
                        help="CSV file listing the sub-forums")
    parser.add_argument("--completed-file", default=COMPLETED_SUB_FORUMS_FILE,
                        help="File recording IDs of completed sub-forums")
    parser.add_argument("--output-base", default=MASTER_OUTPUT_BASE_DIR,
                        help="Base directory for per-sub-forum indexer output")
    parser.add_argument("--executable", default=None,
                        help="Indexer program to run (default: this package's indexer)")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command entry point; returns the process exit status."""
    args = _build_parser().parse_args(argv)
    configure("INFO", None)
    _log.info("Master Indexer starting...")

    if args.executable is None:
        executable: Command = [sys.executable, "-m", "waypoint.indexer"]
    else:
        if not os.path.exists(args.executable):
            _log.critical("Core indexer executable '%s' not found. Please build or install it first.", args.executable)
            return 1
        executable = args.executable

    _log.info("Loading completed sub-forum IDs from: %s", args.completed_file)
    try:
        load_completed_ids(args.completed_file)
    except OSError as exc:
        _log.critical("Could not load completed sub-forum IDs: %s", exc)
        return 1

    _log.info("Attempting to load sub-forums from: %s", args.subforum_list)
    try:
        sub_forums = read_subforum_csv(args.subforum_list)
    except (OSError, ValueError) as exc:
        _log.critical("Could not load sub-forums: %s", exc)
        return 1
    _log.info("Successfully loaded %d total sub-forums to process.", len(sub_forums))

    processed, skipped = process_sub_forums(sub_forums, args.completed_file, executable, args.output_base)
    _log.info("Master Indexer finished.")
    _log.info(
        "Summary: Total Sub-forums: %d, Processed successfully in this run: %d, Skipped (already complete): %d",
        len(sub_forums), processed, skipped,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())