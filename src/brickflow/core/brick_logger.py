"""Logger handed to bricks.

Carries structured fields (run id, brick id, node id) that are attached to
every record published on the LogBus. Logging never raises into a brick.
"""

from __future__ import annotations

import contextlib
from typing import Any

from brickflow.core.logging import BrickflowLogger, get_logger


class BrickLogger:
    def __init__(
        self,
        fields: dict[str, Any] | None = None,
        base: BrickflowLogger | None = None,
    ) -> None:
        self.fields: dict[str, Any] = dict(fields or {})
        self._base = base or get_logger("brickflow.brick")

    def child(self, **fields: Any) -> BrickLogger:
        """New logger with extra fields (existing keys are overridden)."""
        return BrickLogger({**self.fields, **fields}, self._base)

    def _prefix(self, message: str) -> str:
        brick_id = self.fields.get("brick_id")
        return f"[{brick_id}] {message}" if brick_id else message

    def _log(self, method: str, message: str, data: dict[str, Any] | None) -> None:
        with contextlib.suppress(Exception):
            getattr(self._base, method)(self._prefix(message), {**self.fields, **(data or {})})

    def debug(self, message: str, data: dict[str, Any] | None = None) -> None:
        self._log("debug", message, data)

    def verbose(self, message: str, data: dict[str, Any] | None = None) -> None:
        self._log("verbose", message, data)

    def info(self, message: str, data: dict[str, Any] | None = None) -> None:
        self._log("info", message, data)

    def warning(self, message: str, data: dict[str, Any] | None = None) -> None:
        self._log("warning", message, data)

    def error(self, message: str, data: dict[str, Any] | None = None) -> None:
        self._log("error", message, data)
