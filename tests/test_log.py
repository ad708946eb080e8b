import io

import pytest

from waypoint.log import LogLevel, configure, get_logger, parse_level


@pytest.fixture(autouse=True)
def _reset_handlers():
    yield
    logger = get_logger()
    for handler in list(logger.handlers):
        logger.removeHandler(handler)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("DEBUG", LogLevel.DEBUG),
        ("debug", LogLevel.DEBUG),
        ("Info", LogLevel.INFO),
        ("WARNING", LogLevel.WARNING),
        ("error", LogLevel.ERROR),
    ],
)
def test_parse_level_known_names(name, expected):
    assert parse_level(name) is expected


def test_parse_level_unknown_defaults_to_info():
    assert parse_level("verbose") is LogLevel.INFO


def test_parsed_levels_are_ordered():
    parsed = [parse_level(name) for name in ("error", "debug", "warning", "info")]
    assert sorted(parsed) == [
        LogLevel.DEBUG,
        LogLevel.INFO,
        LogLevel.WARNING,
        LogLevel.ERROR,
    ]


def test_configure_writes_init_message_untagged():
    out = io.StringIO()
    configure("DEBUG", out)
    text = out.getvalue()
    assert "Logger initialized with level: DEBUG" in text
    assert "[FATAL]" not in text


def test_info_level_filters_debug():
    out = io.StringIO()
    logger = configure("INFO", out)
    logger.debug("hidden detail")
    logger.info("visible detail")
    text = out.getvalue()
    assert "hidden detail" not in text
    assert "[INFO] visible detail" in text


def test_debug_level_shows_debug():
    out = io.StringIO()
    logger = configure("DEBUG", out)
    logger.debug("fine grained")
    assert "[DEBUG] fine grained" in out.getvalue()


def test_warning_and_fatal_tags():
    out = io.StringIO()
    logger = configure("ERROR", out)
    logger.warning("dropped")
    logger.error("kept error")
    logger.critical("kept fatal")
    text = out.getvalue()
    assert "dropped" not in text
    assert "[ERROR] kept error" in text
    assert "[FATAL] kept fatal" in text


def test_warn_tag_used_for_warnings():
    out = io.StringIO()
    logger = configure("WARNING", out)
    logger.warning("careful")
    assert "[WARN] careful" in out.getvalue()


def test_reconfigure_replaces_stream():
    first = io.StringIO()
    second = io.StringIO()
    configure("INFO", first)
    logger = configure("INFO", second)
    logger.info("after switch")
    assert "after switch" not in first.getvalue()
    assert "after switch" in second.getvalue()
    assert logger is get_logger()
    assert len(logger.handlers) == 1