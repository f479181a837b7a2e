"""Shared state store (mod variables).

State is a JSON-like mapping per (namespace, component id). The only shared
mutable resource in the runtime; writers race and there is no locking.
"""

from __future__ import annotations

import copy
import traceback
from collections.abc import Callable, Mapping
from enum import StrEnum
from typing import Any, Protocol

from brickflow.core.logging import get_logger

_logger = get_logger(__name__)


class StateNamespace(StrEnum):
    MOD = "mod"
    SHARED = "shared"


class MergeStrategy(StrEnum):
    REPLACE = "replace"
    SHALLOW = "shallow"
    DEEP = "deep"


StateListener = Callable[[str, str, dict[str, Any]], None]


class StateStore(Protocol):
    async def get_state(self, namespace: str, component_id: str) -> dict[str, Any]: ...

    async def set_state(
        self,
        namespace: str,
        component_id: str,
        data: Mapping[str, Any],
        merge_strategy: MergeStrategy | str = MergeStrategy.SHALLOW,
    ) -> dict[str, Any]: ...


def deep_merge(target: Mapping[str, Any], source: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge ``source`` into a copy of ``target``.

    Nested mappings are merged key by key; any other value replaces.
    """
    result = dict(target)
    for key, value in source.items():
        existing = result.get(key)
        if isinstance(existing, Mapping) and isinstance(value, Mapping):
            result[key] = deep_merge(existing, value)
        else:
            result[key] = value
    return result


class MemoryStateStore:
    """In-process StateStore.

    Reads and writes copy their data so callers never share structure with
    the store.
    """

    def __init__(self) -> None:
        self._state: dict[tuple[str, str], dict[str, Any]] = {}
        self._listeners: list[StateListener] = []

    async def get_state(self, namespace: str, component_id: str) -> dict[str, Any]:
        return copy.deepcopy(self._state.get((str(namespace), component_id), {}))

    async def set_state(
        self,
        namespace: str,
        component_id: str,
        data: Mapping[str, Any],
        merge_strategy: MergeStrategy | str = MergeStrategy.SHALLOW,
    ) -> dict[str, Any]:
        """Write state and notify listeners.

        Returns:
            The new state for (namespace, component_id)
        """
        strategy = MergeStrategy(merge_strategy)
        key = (str(namespace), component_id)
        previous = self._state.get(key, {})
        incoming = copy.deepcopy(dict(data))

        match strategy:
            case MergeStrategy.REPLACE:
                new_state = incoming
            case MergeStrategy.SHALLOW:
                new_state = {**previous, **incoming}
            case MergeStrategy.DEEP:
                new_state = deep_merge(previous, incoming)

        self._state[key] = new_state
        self._notify(str(namespace), component_id, new_state)
        return copy.deepcopy(new_state)

    def add_listener(self, listener: StateListener) -> None:
        """Call ``listener(namespace, component_id, state)`` after every write."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def clear(self) -> None:
        self._state.clear()

    def _notify(self, namespace: str, component_id: str, state: dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(namespace, component_id, copy.deepcopy(state))
            except Exception as e:
                tb = traceback.format_exc()
                _logger.error(
                    f"Error in state listener (namespace='{namespace}'): "
                    f"{type(e).__name__}: {e}\n{tb}"
                )
