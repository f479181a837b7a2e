"""Cooperative cancellation.

The interpreter never pre-empts a running brick. Bricks check the signal at
safe points (before/after I/O) and raise CancelError.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from brickflow.core.errors import CancelError


class AbortSignal:
    """Read-only view of an abort request."""

    def __init__(self) -> None:
        self._aborted = False
        self._reason: str | None = None
        self._callbacks: list[Callable[[], None]] = []
        self._event: asyncio.Event | None = None

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def reason(self) -> str | None:
        return self._reason

    def throw_if_aborted(self) -> None:
        """Raise CancelError if the signal has fired."""
        if self._aborted:
            raise CancelError(self._reason or "Run was cancelled")

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Call ``callback`` once when aborted (immediately if already aborted)."""
        if self._aborted:
            callback()
            return
        self._callbacks.append(callback)

    async def wait(self) -> None:
        """Block until the signal fires."""
        if self._aborted:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    def _abort(self, reason: str | None) -> None:
        if self._aborted:
            return
        self._aborted = True
        self._reason = reason
        if self._event is not None:
            self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for cb in callbacks:
            cb()


class AbortController:
    """Owner side of an AbortSignal."""

    def __init__(self) -> None:
        self.signal = AbortSignal()

    def abort(self, reason: str | None = None) -> None:
        self.signal._abort(reason)


def never_aborted() -> AbortSignal:
    """A fresh signal nobody can fire."""
    return AbortSignal()
