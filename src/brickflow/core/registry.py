"""BrickRegistry: in-memory index of bricks by id.

The registry only stores what it is given. Schema validation happens in the
interpreter at invocation time.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from brickflow.core.bricks import Brick
from brickflow.core.errors import NotFoundError
from brickflow.core.logging import get_logger

_logger = get_logger(__name__)


class BrickRegistry:
    def __init__(self) -> None:
        self._bricks: dict[str, Brick] = {}

    def register(self, bricks: Iterable[Brick]) -> None:
        """Register bricks. The last registration for an id wins."""
        for brick in bricks:
            previous = self._bricks.get(brick.id)
            if previous is not None and previous is not brick:
                _logger.debug(
                    f"Replacing brick {brick.id}@{previous.version} with version {brick.version}"
                )
            self._bricks[brick.id] = brick

    def lookup(self, brick_id: str) -> Brick:
        """Get a brick by id.

        Raises:
            NotFoundError: If no brick is registered under ``brick_id``.
        """
        try:
            return self._bricks[brick_id]
        except KeyError:
            raise NotFoundError(brick_id) from None

    def all(self) -> list[Brick]:
        return sorted(self._bricks.values(), key=lambda b: b.id)

    def clear(self) -> None:
        self._bricks.clear()

    def __contains__(self, brick_id: object) -> bool:
        return brick_id in self._bricks

    def __iter__(self) -> Iterator[Brick]:
        return iter(self.all())

    def __len__(self) -> int:
        return len(self._bricks)


_global_registry: BrickRegistry | None = None


def get_brick_registry() -> BrickRegistry:
    """Get global brick registry instance."""
    global _global_registry
    if _global_registry is None:
        _global_registry = BrickRegistry()
    return _global_registry
