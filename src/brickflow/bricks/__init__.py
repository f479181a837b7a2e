"""Built-in bricks: control flow and mod-variable state."""

from __future__ import annotations

from brickflow.bricks.async_variable import WithAsyncModVariable
from brickflow.bricks.cache import WithCache
from brickflow.bricks.control_flow import ForEach, MapValues, Run, TryExcept
from brickflow.bricks.user_defined import UserDefinedBrick
from brickflow.core.bricks import Brick
from brickflow.core.registry import BrickRegistry, get_brick_registry


def builtin_bricks() -> list[Brick]:
    return [
        ForEach(),
        MapValues(),
        TryExcept(),
        Run(),
        WithAsyncModVariable(),
        WithCache(),
    ]


def register_builtins(registry: BrickRegistry | None = None) -> None:
    """Register the built-in bricks (global registry by default)."""
    (registry if registry is not None else get_brick_registry()).register(builtin_bricks())


__all__ = [
    "ForEach",
    "MapValues",
    "Run",
    "TryExcept",
    "UserDefinedBrick",
    "WithAsyncModVariable",
    "WithCache",
    "builtin_bricks",
    "register_builtins",
]
