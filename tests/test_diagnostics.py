"""Tests for diagnostics envelopes, the JSONL sink and background runs."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import pytest

from brickflow.core.background import drain, pending, spawn
from brickflow.core.brick_logger import BrickLogger
from brickflow.core.config import ConfigResolver
from brickflow.core.diagnostics import build_envelope, emit, install_jsonl_sink
from brickflow.core.events import EventBus, get_event_bus


def _resolver(tmp_path: Path, **cli_args: Any) -> ConfigResolver:
    return ConfigResolver(
        cli_args=cli_args,
        user_config_path=tmp_path / "user.yaml",
        system_config_path=tmp_path / "system.yaml",
    )


def test_envelope_shape() -> None:
    envelope = build_envelope(event="e", component="c", operation="o", data={"k": 1})
    assert set(envelope) == {"event", "component", "operation", "timestamp", "data"}
    assert envelope["timestamp"].endswith("Z")


def test_emit_publishes_envelope(events: list[tuple[str, dict[str, Any]]]) -> None:
    emit("trace.entry", component="reducer", operation="run_stage", data={"index": 0})

    name, envelope = events[0]
    assert name == "trace.entry"
    assert envelope["component"] == "reducer"
    assert envelope["data"] == {"index": 0}


def test_emit_never_raises() -> None:
    def broken(event: str, data: dict[str, Any]) -> None:
        raise RuntimeError("subscriber broke")

    get_event_bus().subscribe_all(broken)
    emit("anything", component="c", operation="o", data={})


def test_event_bus_subscribe_and_unsubscribe() -> None:
    bus = EventBus()
    seen: list[dict[str, Any]] = []
    bus.subscribe("evt", seen.append)
    bus.publish("evt", {"n": 1})
    bus.publish("other", {"n": 2})
    bus.unsubscribe("evt", seen.append)
    bus.publish("evt", {"n": 3})

    assert seen == [{"n": 1}]


def test_disabled_sink_is_not_installed(tmp_path: Path) -> None:
    path = tmp_path / "diag.jsonl"
    bus = EventBus()
    sink = install_jsonl_sink(_resolver(tmp_path, diagnostics={"path": str(path)}), bus)

    bus.publish("evt", {"k": "v"})
    assert sink is None
    assert not path.exists()


def test_enabled_sink_writes_jsonl(tmp_path: Path) -> None:
    path = tmp_path / "out" / "diag.jsonl"
    bus = EventBus()
    resolver = _resolver(tmp_path, diagnostics={"enabled": True, "path": str(path)})
    assert install_jsonl_sink(resolver, bus) is not None

    envelope = build_envelope(
        event="trace.exit", component="reducer", operation="run_stage", data={"state": "bound"}
    )
    bus.publish("trace.exit", envelope)
    bus.publish("raw", {"k": "v"})

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert lines[0]["event"] == "trace.exit"
    assert lines[0]["data"] == {"state": "bound"}
    # Non-envelope payloads are wrapped
    assert lines[1]["event"] == "raw"
    assert lines[1]["component"] == "unknown"
    assert lines[1]["data"] == {"k": "v"}


def test_invalid_enabled_flag_disables_sink(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("BRICKFLOW_DIAGNOSTICS_ENABLED", "sometimes")
    assert install_jsonl_sink(_resolver(tmp_path), EventBus()) is None


@pytest.mark.asyncio
async def test_background_success_events(events: list[tuple[str, dict[str, Any]]]) -> None:
    async def work() -> None:
        await asyncio.sleep(0)

    spawn(work(), operation="run", logger=BrickLogger(), data={"run_id": "r1"})
    assert pending() == 1
    await drain()
    assert pending() == 0

    names = [name for name, _ in events]
    assert names == ["diag.background.start", "diag.background.end"]
    end = events[1][1]["data"]
    assert end["status"] == "succeeded"
    assert end["run_id"] == "r1"
    assert end["duration_ms"] >= 0


@pytest.mark.asyncio
async def test_background_failure_is_reported_not_raised(
    events: list[tuple[str, dict[str, Any]]],
) -> None:
    async def work() -> None:
        raise ValueError("exploded")

    task = spawn(work(), operation="run", logger=BrickLogger())
    await drain()

    assert task.exception() is None
    end = events[-1][1]["data"]
    assert end["status"] == "failed"
    assert end["error_type"] == "ValueError"
    assert end["error_message"] == "exploded"
    assert end["error"]["name"] == "ValueError"
