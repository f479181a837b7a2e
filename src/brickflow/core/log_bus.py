"""LogBus: publish/subscribe for log records.

Subscribers are fail-safe: an exception raised by a subscriber is written to
stderr and never reaches the code that logged. Pipeline outcomes must not
depend on whether logging works.
"""

from __future__ import annotations

import contextlib
import sys
import traceback
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class LogRecord:
    level_name: str
    plain: str
    logger_name: str
    # Structured fields, e.g. brick_id / instance_id / run_id for brick loggers.
    data: dict[str, Any] = field(default_factory=dict)


class LogBus:
    def __init__(self) -> None:
        self._subscribers: list[Callable[[LogRecord], None]] = []

    def subscribe_all(self, cb: Callable[[LogRecord], None]) -> None:
        self._subscribers.append(cb)

    def unsubscribe_all(self, cb: Callable[[LogRecord], None]) -> None:
        with contextlib.suppress(ValueError):
            self._subscribers.remove(cb)

    def publish(self, record: LogRecord) -> None:
        for cb in list(self._subscribers):
            self._invoke_cb(cb, record)

    def clear(self) -> None:
        self._subscribers.clear()

    def _invoke_cb(self, cb: Callable[[LogRecord], None], record: LogRecord) -> None:
        try:
            cb(record)
        except Exception:
            # Never call the core logger from here (recursion).
            msg = "LogBus subscriber raised; suppressed.\n" + traceback.format_exc()
            with contextlib.suppress(Exception):
                sys.stderr.write(msg)


_LOG_BUS: LogBus | None = None


def get_log_bus() -> LogBus:
    global _LOG_BUS
    if _LOG_BUS is None:
        _LOG_BUS = LogBus()
    return _LOG_BUS
