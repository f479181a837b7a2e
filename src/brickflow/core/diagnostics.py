"""Runtime diagnostics envelope + JSONL sink.

This module provides:
- The canonical envelope for diagnostic events (trace entry/exit, background
  run failures).
- A fail-safe ``emit`` used by the runtime: diagnostics must never change a
  pipeline's outcome.
- An optional JSONL sink enabled via ``diagnostics.enabled``.
"""

from __future__ import annotations

import contextlib
import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from brickflow.core.config import ConfigResolver
from brickflow.core.errors import ConfigError
from brickflow.core.events import EventBus, get_event_bus
from brickflow.core.logging import get_logger

_logger = get_logger(__name__)


def build_envelope(
    *,
    event: str,
    component: str,
    operation: str,
    data: dict[str, Any],
) -> dict[str, Any]:
    """Build the canonical diagnostics envelope.

    Schema:
        {
          "event": "<string>",
          "component": "<string>",
          "operation": "<string>",
          "timestamp": "<iso8601 utc>",
          "data": { ... }
        }
    """
    ts = datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return {
        "event": event,
        "component": component,
        "operation": operation,
        "timestamp": ts,
        "data": data,
    }


def emit(event: str, *, component: str, operation: str, data: dict[str, Any]) -> None:
    """Publish a diagnostics envelope on the global event bus.

    Never raises.
    """
    with contextlib.suppress(Exception):
        envelope = build_envelope(event=event, component=component, operation=operation, data=data)
        get_event_bus().publish(event, envelope)


def is_diagnostics_enabled(resolver: ConfigResolver) -> bool:
    """Return whether the JSONL sink should write (``diagnostics.enabled``)."""
    try:
        return resolver.resolve_bool("diagnostics.enabled")
    except ConfigError:
        _logger.warning("Invalid diagnostics.enabled value; treating as disabled")
        return False


def _is_envelope(obj: Any) -> bool:
    if not isinstance(obj, dict):
        return False
    if set(obj.keys()) != {"event", "component", "operation", "timestamp", "data"}:
        return False
    return isinstance(obj.get("data"), dict)


class JsonlSink:
    """Event bus subscriber appending envelopes to a JSONL file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def __call__(self, event: str, data: dict[str, Any]) -> None:
        payload = data if _is_envelope(data) else build_envelope(
            event=event, component="unknown", operation="unknown", data=data
        )
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            line = json.dumps(
                payload,
                ensure_ascii=True,
                separators=(",", ":"),
                sort_keys=True,
                default=repr,
            )
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)
                f.write("\n")
        except Exception as e:
            _logger.warning(f"Diagnostics sink write failed: {type(e).__name__}: {e}")


def install_jsonl_sink(
    resolver: ConfigResolver, bus: EventBus | None = None
) -> JsonlSink | None:
    """Subscribe a JSONL sink when diagnostics are enabled.

    Returns:
        The installed sink, or None when diagnostics are disabled.
    """
    if not is_diagnostics_enabled(resolver):
        return None

    try:
        raw_path, _src = resolver.resolve("diagnostics.path")
    except ConfigError:
        _logger.warning("Missing diagnostics.path; cannot write diagnostics JSONL.")
        return None

    sink = JsonlSink(Path(str(raw_path)).expanduser())
    (bus or get_event_bus()).subscribe_all(sink)
    return sink
