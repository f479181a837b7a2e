"""Tests for logging, the LogBus and brick loggers."""

from __future__ import annotations

import pytest

from brickflow.core.brick_logger import BrickLogger
from brickflow.core.config import LoggingPolicy
from brickflow.core.log_bus import LogRecord, get_log_bus
from brickflow.core.logging import (
    VerbosityLevel,
    apply_logging_policy,
    get_logger,
    get_verbosity,
    set_colors,
    set_log_sink,
    set_verbosity,
)


@pytest.fixture
def records() -> list[LogRecord]:
    seen: list[LogRecord] = []
    get_log_bus().subscribe_all(seen.append)
    return seen


def test_verbosity_filters_levels(records: list[LogRecord]) -> None:
    logger = get_logger("test")
    set_verbosity(VerbosityLevel.NORMAL)

    logger.debug("hidden")
    logger.verbose("hidden")
    logger.info("shown")
    logger.warning("shown")
    logger.error("shown")

    assert [r.level_name for r in records] == ["INFO", "WARNING", "ERROR"]


def test_quiet_still_emits_errors(records: list[LogRecord]) -> None:
    set_verbosity(0)
    logger = get_logger("test")
    logger.info("hidden")
    logger.error("shown")
    assert [r.plain for r in records] == ["[error] shown"]


@pytest.mark.parametrize(
    ("level_name", "expected"),
    [
        ("quiet", VerbosityLevel.QUIET),
        ("normal", VerbosityLevel.NORMAL),
        ("verbose", VerbosityLevel.VERBOSE),
        ("debug", VerbosityLevel.DEBUG),
    ],
)
def test_apply_logging_policy(level_name: str, expected: VerbosityLevel) -> None:
    policy = LoggingPolicy(
        level_name=level_name,
        emit_info=level_name != "quiet",
        emit_verbose=level_name in {"verbose", "debug"},
        emit_debug=level_name == "debug",
        source="cli",
    )
    apply_logging_policy(policy)
    assert get_verbosity() is expected


def test_records_carry_structured_data(records: list[LogRecord]) -> None:
    get_logger("brickflow.test").warning("careful", data={"brick_id": "@x/y"})
    assert records[0].logger_name == "brickflow.test"
    assert records[0].data == {"brick_id": "@x/y"}


def test_log_sink_receives_plain_lines() -> None:
    lines: list[str] = []
    set_log_sink(lines.append)
    get_logger("test").info("hello")
    set_log_sink(None)
    get_logger("test").info("after")

    assert lines == ["[info] hello"]


def test_console_output_without_colors(capsys: pytest.CaptureFixture[str]) -> None:
    set_colors(False)
    get_logger("test").info("plain")
    get_logger("test").error("bad")
    set_colors(True)

    captured = capsys.readouterr()
    assert captured.out == "[info] plain\n"
    assert captured.err == "[error] bad\n"


def test_failing_subscriber_is_suppressed(records: list[LogRecord]) -> None:
    def broken(record: LogRecord) -> None:
        raise RuntimeError("subscriber broke")

    get_log_bus().subscribe_all(broken)
    get_logger("test").info("still delivered")

    assert [r.plain for r in records] == ["[info] still delivered"]


def test_brick_logger_prefixes_and_attaches_fields(records: list[LogRecord]) -> None:
    logger = BrickLogger({"run_id": "r1"}).child(brick_id="@test/echo", instance_id="n1")
    logger.warning("odd input", data={"arg": "x"})

    record = records[0]
    assert record.plain == "[warning] [@test/echo] odd input"
    assert record.data == {
        "run_id": "r1",
        "brick_id": "@test/echo",
        "instance_id": "n1",
        "arg": "x",
    }


def test_brick_logger_child_does_not_mutate_parent() -> None:
    parent = BrickLogger({"run_id": "r1"})
    parent.child(brick_id="@test/echo")
    assert parent.fields == {"run_id": "r1"}


def test_unsubscribed_callback_stops_receiving(records: list[LogRecord]) -> None:
    late: list[LogRecord] = []
    get_log_bus().subscribe_all(late.append)
    get_logger("test").info("one")
    get_log_bus().unsubscribe_all(late.append)
    get_logger("test").info("two")

    assert [r.plain for r in late] == ["[info] one"]
    assert len(records) == 2
