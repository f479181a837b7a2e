"""Brick loader and discovery system.

User-defined bricks are YAML files with ``kind: component`` (see
``brickflow.bricks.user_defined``). The loader scans the configured
directories for ``*.yaml`` / ``*.yml`` files and registers what it finds.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import yaml

from brickflow.bricks.user_defined import UserDefinedBrick
from brickflow.core.errors import PipelineDefinitionError
from brickflow.core.logging import get_logger
from brickflow.core.pipeline import ExpressionLoader
from brickflow.core.registry import BrickRegistry, get_brick_registry

_logger = get_logger(__name__)

_SUFFIXES = (".yaml", ".yml")


class BrickLoader:
    """Load user-defined bricks from directories.

    Example:
        loader = BrickLoader([Path("~/.brickflow/bricks").expanduser()])
        loaded = loader.load_all()
    """

    def __init__(
        self,
        bricks_dirs: Sequence[Path],
        registry: BrickRegistry | None = None,
    ) -> None:
        """Initialize brick loader.

        Args:
            bricks_dirs: Directories to scan (missing ones are skipped)
            registry: Registry to register into (global registry by default)
        """
        self.bricks_dirs = list(bricks_dirs)
        self._registry = registry if registry is not None else get_brick_registry()

    def discover(self) -> list[Path]:
        """Discover brick definition files.

        Returns:
            Definition files, sorted per directory
        """
        paths: list[Path] = []
        for base_dir in self.bricks_dirs:
            if not base_dir.is_dir():
                continue
            paths.extend(
                sorted(p for p in base_dir.iterdir() if p.is_file() and p.suffix in _SUFFIXES)
            )
        return paths

    def load_brick(self, path: Path) -> UserDefinedBrick:
        """Load a single brick definition.

        Raises:
            PipelineDefinitionError: If the file cannot be read or is invalid
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.load(f, Loader=ExpressionLoader)  # noqa: S506 - SafeLoader subclass
            return UserDefinedBrick.from_definition(data, registry=self._registry)
        except (OSError, yaml.YAMLError, PipelineDefinitionError) as e:
            raise PipelineDefinitionError(
                f"Failed to load brick definition from {path}: {e}"
            ) from e

    def load_all(self, *, strict: bool = False) -> list[UserDefinedBrick]:
        """Load and register every discovered brick.

        Args:
            strict: Raise on the first invalid definition instead of skipping it

        Returns:
            The registered bricks
        """
        loaded: list[UserDefinedBrick] = []
        for path in self.discover():
            try:
                brick = self.load_brick(path)
            except PipelineDefinitionError as e:
                if strict:
                    raise
                _logger.warning(str(e))
                continue
            loaded.append(brick)

        self._registry.register(loaded)
        _logger.verbose(f"Loaded {len(loaded)} user-defined brick(s)")
        return loaded
