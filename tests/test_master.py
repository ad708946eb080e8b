import os
import sys

from waypoint.master import (
    build_indexer_command,
    load_completed_ids,
    main,
    mark_completed,
    process_sub_forums,
)
from waypoint.subforums import SubForum

BASE_URL = "https://example.com/forums/viewforum.php?forum=54"

SUCCEED = [sys.executable, "-c", "import sys; sys.exit(0)"]
FAIL = [sys.executable, "-c", "import sys; sys.exit(3)"]
RECORD_ARGS = [
    sys.executable,
    "-c",
    "import sys, pathlib; "
    "d = [a.split('=', 1)[1] for a in sys.argv[1:] if a.startswith('-output=')][0]; "
    "pathlib.Path(d, 'args.txt').write_text('\\n'.join(sys.argv[1:]))",
]


def _forum(forum_id="54", url=BASE_URL):
    return SubForum(id=forum_id, name="Close-Up", base_url=url)


def test_load_completed_creates_missing_file(tmp_path):
    path = tmp_path / "done.txt"
    assert load_completed_ids(path) == set()
    assert path.exists()


def test_load_completed_strips_and_skips_blanks(tmp_path):
    path = tmp_path / "done.txt"
    path.write_text("  5 \n\n6\n")
    assert load_completed_ids(path) == {"5", "6"}


def test_mark_completed_round_trip(tmp_path):
    path = tmp_path / "done.txt"
    mark_completed(path, "11")
    mark_completed(path, "12")
    assert load_completed_ids(path) == {"11", "12"}


def test_build_indexer_command():
    command = build_indexer_command("core", _forum(), "out")
    assert command == ["core", f"-url={BASE_URL}", "-output=out", "-delay=1000", "-loglevel=INFO"]


def test_build_indexer_command_with_sequence():
    command = build_indexer_command(["python", "-m", "x"], _forum(), "out")
    assert command[:3] == ["python", "-m", "x"]
    assert command[3] == f"-url={BASE_URL}"


def test_success_marks_completed(tmp_path):
    done = tmp_path / "done.txt"
    out = tmp_path / "out"
    result = process_sub_forums([_forum()], done, SUCCEED, out)
    assert result == (1, 0)
    assert load_completed_ids(done) == {"54"}
    assert (out / "forum_54").is_dir()


def test_failure_is_not_marked(tmp_path):
    done = tmp_path / "done.txt"
    result = process_sub_forums([_forum()], done, FAIL, tmp_path / "out")
    assert result == (0, 0)
    assert load_completed_ids(done) == set()


def test_already_completed_is_skipped(tmp_path):
    done = tmp_path / "done.txt"
    mark_completed(done, "54")
    out = tmp_path / "out"
    result = process_sub_forums([_forum()], done, FAIL, out)
    assert result == (0, 1)
    assert not (out / "forum_54").exists()


def test_entries_without_id_or_url_are_skipped(tmp_path):
    out = tmp_path / "out"
    result = process_sub_forums([_forum(forum_id=""), _forum(url="")], tmp_path / "done.txt", SUCCEED, out)
    assert result == (0, 0)
    assert not out.exists()


def test_missing_executable_counts_as_failure(tmp_path):
    done = tmp_path / "done.txt"
    missing = os.path.join(str(tmp_path), "no_such_indexer")
    result = process_sub_forums([_forum()], done, missing, tmp_path / "out")
    assert result == (0, 0)
    assert load_completed_ids(done) == set()


def test_indexer_receives_arguments(tmp_path):
    out = tmp_path / "out"
    process_sub_forums([_forum()], tmp_path / "done.txt", RECORD_ARGS, out)
    recorded = (out / "forum_54" / "args.txt").read_text().splitlines()
    assert recorded[0] == f"-url={BASE_URL}"
    assert recorded[1] == "-output=" + os.path.join(str(out), "forum_54")
    assert recorded[2:] == ["-delay=1000", "-loglevel=INFO"]


def test_main_missing_list_fails(tmp_path):
    status = main([
        "--subforum-list", str(tmp_path / "missing.csv"),
        "--completed-file", str(tmp_path / "done.txt"),
        "--output-base", str(tmp_path / "out"),
    ])
    assert status == 1


def test_main_missing_executable_fails(tmp_path):
    status = main([
        "--executable", str(tmp_path / "absent"),
        "--completed-file", str(tmp_path / "done.txt"),
    ])
    assert status == 1
    assert not (tmp_path / "done.txt").exists()