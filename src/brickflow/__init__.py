"""brickflow - declarative brick pipelines."""

from brickflow.core import __version__

__all__ = ["__version__"]
