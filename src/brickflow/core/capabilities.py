"""Platform capability provider."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum

from brickflow.core.roots import ElementReferences, get_element_references
from brickflow.core.state import MemoryStateStore, StateStore


class Capability(StrEnum):
    NETWORK = "network"
    PROMPT = "prompt"
    CLIPBOARD = "clipboard"
    DOM = "dom"
    STATE = "state"


class Capabilities:
    """Set of capabilities the host platform provides."""

    def __init__(self, available: Iterable[str] | None = None) -> None:
        if available is None:
            available = (Capability.DOM, Capability.STATE)
        self._available = frozenset(str(c) for c in available)

    def is_available(self, name: str) -> bool:
        return str(name) in self._available

    def missing(self, required: Iterable[str]) -> list[str]:
        """Names in ``required`` the platform does not provide, sorted."""
        return sorted(str(c) for c in required if not self.is_available(c))

    @classmethod
    def all(cls) -> Capabilities:
        return cls(list(Capability))


@dataclass
class Platform:
    """Host services available to bricks."""

    capabilities: Capabilities = field(default_factory=Capabilities)
    state: StateStore = field(default_factory=MemoryStateStore)
    references: ElementReferences = field(default_factory=get_element_references)
