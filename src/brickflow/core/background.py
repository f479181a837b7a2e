"""Detached background runs.

Used by the async ``Run`` brick and the async-state brick. A detached run is
not awaited by the pipeline that started it and is not cancelled with it;
its failure is reported only through the logger and diagnostics events.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Coroutine
from typing import Any

from brickflow.core.brick_logger import BrickLogger
from brickflow.core.diagnostics import emit
from brickflow.core.errors import serialize_error

COMPONENT = "background"

_TASKS: set[asyncio.Task[None]] = set()


def _duration_ms(start: float, end: float) -> int:
    return int(max(0.0, end - start) * 1000)


async def _guarded(
    coro: Coroutine[Any, Any, Any],
    *,
    operation: str,
    logger: BrickLogger,
    data: dict[str, Any],
) -> None:
    start_time = time.monotonic()
    emit(
        "diag.background.start",
        component=COMPONENT,
        operation=operation,
        data={**data, "status": "running"},
    )
    try:
        await coro
    except Exception as e:
        emit(
            "diag.background.end",
            component=COMPONENT,
            operation=operation,
            data={
                **data,
                "status": "failed",
                "duration_ms": _duration_ms(start_time, time.monotonic()),
                "error_type": type(e).__name__,
                "error_message": str(e),
                "error": serialize_error(e),
            },
        )
        logger.error(f"Background run failed: {e}")
    else:
        emit(
            "diag.background.end",
            component=COMPONENT,
            operation=operation,
            data={
                **data,
                "status": "succeeded",
                "duration_ms": _duration_ms(start_time, time.monotonic()),
            },
        )


def spawn(
    coro: Coroutine[Any, Any, Any],
    *,
    operation: str,
    logger: BrickLogger,
    data: dict[str, Any] | None = None,
) -> asyncio.Task[None]:
    """Schedule ``coro`` on the running loop without awaiting it.

    The task is referenced until it finishes so it cannot be garbage
    collected mid-run.
    """
    task = asyncio.get_running_loop().create_task(
        _guarded(coro, operation=operation, logger=logger, data=dict(data or {}))
    )
    _TASKS.add(task)
    task.add_done_callback(_TASKS.discard)
    return task


def pending() -> int:
    return len(_TASKS)


async def drain() -> None:
    """Wait until every background task (including ones they spawn) is done."""
    while _TASKS:
        await asyncio.gather(*list(_TASKS), return_exceptions=True)
