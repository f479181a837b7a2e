"""Execution context that flows through a pipeline."""

from __future__ import annotations

import re
import uuid
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from brickflow.core.errors import OutputKeyError

INPUT_KEY = "@input"
OPTIONS_KEY = "@options"
CURRENT_KEY = "@current"

RESERVED_OUTPUT_KEYS = frozenset({"input", "options", "current"})

_OUTPUT_KEY_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


def validate_output_key(output_key: str) -> str:
    """Return the key unchanged, or raise OutputKeyError.

    Keys are given without the ``@`` prefix.
    """
    if not isinstance(output_key, str) or not _OUTPUT_KEY_RE.match(output_key):
        raise OutputKeyError(str(output_key))
    if output_key in RESERVED_OUTPUT_KEYS:
        raise OutputKeyError(output_key)
    return output_key


class ExecutionContext(Mapping[str, Any]):
    """Immutable mapping of variables visible to a brick.

    Keys are ``@input``, ``@options``, integration keys, ``@<outputKey>``
    bindings and the anonymous ``@current`` slot. Every operation returns a new
    context; the receiver is never modified, so a nested pipeline's bindings
    cannot leak into its parent or into sibling branches.
    """

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(data or {})

    @classmethod
    def initial(
        cls,
        input: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
        integrations: Mapping[str, Any] | None = None,
    ) -> ExecutionContext:
        # Integrations first so they cannot override @input/@options
        data: dict[str, Any] = dict(integrations or {})
        data[INPUT_KEY] = dict(input or {})
        data[OPTIONS_KEY] = dict(options or {})
        return cls(data)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"ExecutionContext({self._data!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ExecutionContext):
            return self._data == other._data
        if isinstance(other, Mapping):
            return self._data == dict(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    @property
    def current(self) -> Any:
        """The anonymous output of the last node without an output key."""
        return self._data.get(CURRENT_KEY)

    def bind(self, output_key: str, value: Any) -> ExecutionContext:
        """New context with ``@<output_key>`` bound to ``value``."""
        key = validate_output_key(output_key)
        data = dict(self._data)
        # Keys overwrite any previous binding with the same name
        data[f"@{key}"] = value
        return ExecutionContext(data)

    def with_current(self, value: Any) -> ExecutionContext:
        data = dict(self._data)
        data[CURRENT_KEY] = value
        return ExecutionContext(data)

    def extend(self, extra: Mapping[str, Any] | None) -> ExecutionContext:
        """New context with extra variables (names with or without ``@``)."""
        if not extra:
            return self
        data = dict(self._data)
        for name, value in extra.items():
            data[name if name.startswith("@") else f"@{name}"] = value
        return ExecutionContext(data)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._data)


@dataclass(frozen=True)
class Branch:
    """A control-flow branch, for correlating trace records."""

    key: str
    counter: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "counter": self.counter}


@dataclass(frozen=True)
class RunMetadata:
    """Identifiers correlating a run to its owner. Read-only for bricks."""

    mod_component_id: str
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    deployment_id: str | None = None
    branches: tuple[Branch, ...] = ()

    def with_branch(self, branch: Branch) -> RunMetadata:
        return replace(self, branches=(*self.branches, branch))

    def to_dict(self) -> dict[str, Any]:
        return {
            "mod_component_id": self.mod_component_id,
            "run_id": self.run_id,
            "deployment_id": self.deployment_id,
            "branches": [b.to_dict() for b in self.branches],
        }
