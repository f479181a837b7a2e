"""Command line interface.

    brickflow run PIPELINE.yaml [--input JSON] [--html FILE] [--bricks-dir DIR]
    brickflow bricks
    brickflow version

Verbosity flags (-q/-v/-d) and --headless map onto config keys, so they win
over environment variables and config files.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from brickflow.bricks import register_builtins
from brickflow.core import __version__
from brickflow.core.background import drain
from brickflow.core.config import ConfigResolver
from brickflow.core.context import RunMetadata
from brickflow.core.diagnostics import emit, install_jsonl_sink
from brickflow.core.dom import Document
from brickflow.core.errors import (
    BrickflowError,
    ValidationError,
    get_error_message,
    new_error_reference,
    serialize_error,
)
from brickflow.core.loader import BrickLoader
from brickflow.core.logging import apply_logging_policy, get_logger, set_colors
from brickflow.core.pipeline import load_pipeline_yaml
from brickflow.core.reducer import InitialValues, ReduceOptions, reduce_pipeline
from brickflow.core.registry import get_brick_registry

_logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="brickflow", description="Run brick pipelines")

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Warnings and errors only")
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Detailed progress")
    verbosity.add_argument("-d", "--debug", action="store_true", help="Everything")

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a pipeline YAML file")
    run.add_argument("pipeline", type=Path, help="Pipeline YAML file")
    run.add_argument("--input", default=None, help="JSON object bound to @input")
    run.add_argument("--options", default=None, help="JSON object bound to @options")
    run.add_argument("--html", type=Path, default=None, help="HTML file used as the document")
    run.add_argument(
        "--bricks-dir",
        type=Path,
        action="append",
        default=None,
        help="Directory with user-defined brick YAML files (repeatable)",
    )
    run.add_argument("--headless", action="store_true", default=None, help="Refuse renderers")
    run.add_argument("--mod-id", default="cli", help="Mod component id for state and traces")

    sub.add_parser("bricks", help="List registered bricks")
    sub.add_parser("version", help="Show version")
    return parser


def cli_args_from_namespace(ns: argparse.Namespace) -> dict[str, Any]:
    """Map parsed flags onto nested config keys for ConfigResolver."""
    cli_args: dict[str, Any] = {}

    if ns.quiet:
        cli_args.setdefault("logging", {})["level"] = "quiet"
    elif ns.verbose:
        cli_args.setdefault("logging", {})["level"] = "verbose"
    elif ns.debug:
        cli_args.setdefault("logging", {})["level"] = "debug"

    if getattr(ns, "headless", None):
        cli_args.setdefault("runtime", {})["headless"] = True
    if getattr(ns, "bricks_dir", None):
        cli_args["bricks_dirs"] = [str(p) for p in ns.bricks_dir]

    return cli_args


def _json_object(raw: str | None, flag: str) -> dict[str, Any]:
    if raw is None:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"{flag} is not valid JSON: {e}") from e
    if not isinstance(value, dict):
        raise ValidationError(f"{flag} must be a JSON object")
    return value


def _load_bricks(resolver: ConfigResolver) -> None:
    register_builtins()
    settings = resolver.resolve_runtime_settings()
    BrickLoader(settings.bricks_dirs).load_all()


async def _run_command(ns: argparse.Namespace, resolver: ConfigResolver) -> Any:
    _load_bricks(resolver)
    settings = resolver.resolve_runtime_settings()

    pipeline = load_pipeline_yaml(ns.pipeline)
    if ns.html is not None:
        document = Document.from_html(ns.html.read_text(encoding="utf-8"))
    else:
        document = Document()

    options = ReduceOptions.from_settings(
        settings,
        document=document,
        meta=RunMetadata(mod_component_id=ns.mod_id),
    )
    initial = InitialValues(
        input=_json_object(ns.input, "--input"),
        options=_json_object(ns.options, "--options"),
    )

    try:
        return await reduce_pipeline(pipeline, initial, options)
    finally:
        # Detached runs finish before the loop closes
        await drain()


def _bricks_command(resolver: ConfigResolver) -> None:
    _load_bricks(resolver)
    for brick in get_brick_registry().all():
        flags = []
        if brick.is_pure():
            flags.append("pure")
        if brick.is_root_aware():
            flags.append("root-aware")
        line = f"{brick.id}@{brick.version}  {brick.name}"
        if brick.default_output_key:
            line += f"  (output key: {brick.default_output_key})"
        if flags:
            line += f"  [{', '.join(flags)}]"
        print(line)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point. Returns the process exit code."""
    ns = build_parser().parse_args(argv)

    try:
        resolver = ConfigResolver(cli_args=cli_args_from_namespace(ns))
        apply_logging_policy(resolver.resolve_logging_policy())
        set_colors(resolver.resolve_bool("logging.color", default=True))
        install_jsonl_sink(resolver)

        if ns.command == "version":
            print(f"brickflow {__version__}")
        elif ns.command == "bricks":
            _bricks_command(resolver)
        else:
            result = asyncio.run(_run_command(ns, resolver))
            print(json.dumps(result, indent=2, ensure_ascii=False, default=str))
    except BrickflowError as e:
        reference = new_error_reference()
        emit(
            "cli.failed",
            component="cli",
            operation=ns.command,
            data={"reference": reference, "error": serialize_error(e)},
        )
        _logger.debug(f"Command failed (reference: {reference}): {e!r}")
        print(f"Error: {get_error_message(e, reference)}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130

    return 0
