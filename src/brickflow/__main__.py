"""Package entry point.

This module enables running the project with:

    python -m brickflow ...
"""

from __future__ import annotations

import sys

from brickflow.cli import main

if __name__ == "__main__":
    sys.exit(main())
