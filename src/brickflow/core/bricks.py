"""Brick model.

A brick is a unit of behavior with a closed set of roles. Each role has
exactly one method the interpreter calls:

- Reader.read: extracts data, no mutation
- Transformer.transform: returns a value
- Effect.effect: mutates, returns nothing meaningful
- Renderer.render: produces a display payload
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from brickflow.core.errors import PlatformError

if TYPE_CHECKING:
    from brickflow.core.abort import AbortSignal
    from brickflow.core.brick_logger import BrickLogger
    from brickflow.core.capabilities import Platform
    from brickflow.core.context import ExecutionContext, RunMetadata
    from brickflow.core.roots import Root

RunPipeline = Callable[..., Awaitable[Any]]


class BrickType(StrEnum):
    READER = "reader"
    TRANSFORMER = "transformer"
    EFFECT = "effect"
    RENDERER = "renderer"


@dataclass(frozen=True)
class BrickOptions:
    """Everything a brick receives besides its arguments."""

    ctxt: ExecutionContext
    root: Root
    meta: RunMetadata
    logger: BrickLogger
    abort_signal: AbortSignal
    platform: Platform
    headless: bool
    # run_pipeline(pipeline, branch, extra_context=None, root=None, *, base_context=None)
    run_pipeline: RunPipeline


class Brick(ABC):
    """Base class for all bricks.

    Subclasses set the class attributes and implement their role's method.
    """

    id: str = ""
    name: str = ""
    description: str = ""
    version: str = "1.0.0"
    input_schema: dict[str, Any] = {}
    output_schema: dict[str, Any] | None = None
    required_capabilities: frozenset[str] = frozenset()
    default_output_key: str | None = None

    pure: bool = False
    root_aware: bool = False

    def is_pure(self) -> bool:
        return self.pure

    def is_root_aware(self) -> bool:
        return self.root_aware

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}@{self.version}>"


class Reader(Brick):
    @abstractmethod
    async def read(self, args: dict[str, Any], options: BrickOptions) -> Any: ...


class Transformer(Brick):
    @abstractmethod
    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any: ...


class Effect(Brick):
    @abstractmethod
    async def effect(self, args: dict[str, Any], options: BrickOptions) -> None: ...


class Renderer(Brick):
    @abstractmethod
    async def render(self, args: dict[str, Any], options: BrickOptions) -> Any: ...


def get_brick_type(brick: Brick) -> BrickType:
    """Return the role of a brick.

    Raises:
        PlatformError: If the brick does not subclass one of the role classes.
    """
    if isinstance(brick, Reader):
        return BrickType.READER
    if isinstance(brick, Transformer):
        return BrickType.TRANSFORMER
    if isinstance(brick, Effect):
        return BrickType.EFFECT
    if isinstance(brick, Renderer):
        return BrickType.RENDERER
    raise PlatformError(f"Brick {brick.id!r} has no known role ({type(brick).__name__})")
