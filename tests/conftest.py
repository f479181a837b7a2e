"""Pytest configuration and fixtures."""

import asyncio
import sys
from pathlib import Path
from typing import Any

import pytest

# Add src to path (for 'brickflow.*' imports without an install)
repo_root = Path(__file__).parent.parent
sys.path.insert(0, str(repo_root / "src"))

from brickflow.bricks import register_builtins  # noqa: E402
from brickflow.core.bricks import (  # noqa: E402
    BrickOptions,
    Effect,
    Reader,
    Renderer,
    Transformer,
)
from brickflow.core.context import RunMetadata  # noqa: E402
from brickflow.core.dom import Document  # noqa: E402
from brickflow.core.events import get_event_bus  # noqa: E402
from brickflow.core.log_bus import get_log_bus  # noqa: E402
from brickflow.core.logging import VerbosityLevel, set_log_sink, set_verbosity  # noqa: E402
from brickflow.core.reducer import ReduceOptions  # noqa: E402
from brickflow.core.registry import get_brick_registry  # noqa: E402


class EchoBrick(Transformer):
    """Returns its arguments unchanged."""

    id = "@test/echo"
    name = "Echo"
    pure = True

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        return args


class ValueBrick(Transformer):
    """Returns ``args["value"]``, optionally after a delay."""

    id = "@test/value"
    name = "Value"
    pure = True
    input_schema = {
        "type": "object",
        "properties": {"value": {}, "delay": {"type": "number", "minimum": 0}},
    }

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        if args.get("delay"):
            await asyncio.sleep(args["delay"])
        return args.get("value")


class MultiplyByTwo(Transformer):
    """Doubles ``@element`` (or ``args["value"]``)."""

    id = "@test/multiply-by-two"
    name = "Multiply by Two"
    pure = True

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        value = args["value"] if "value" in args else options.ctxt["@element"]
        return value * 2


class ThrowBrick(Transformer):
    id = "@test/throw"
    name = "Throw"
    input_schema = {"type": "object", "properties": {"message": {"type": "string"}}}

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        raise RuntimeError(args.get("message", "boom"))


class ContextBrick(Transformer):
    """Returns the keys visible in the execution context."""

    id = "@test/context"
    name = "Context Keys"

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        return sorted(options.ctxt)


class RootBrick(Transformer):
    """Returns the root it ran against."""

    id = "@test/root"
    name = "Root"
    root_aware = True

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        return options.root


class ReadTextBrick(Reader):
    """Reads the text content of the root element."""

    id = "@test/read-text"
    name = "Read Text"
    pure = True
    root_aware = True

    async def read(self, args: dict[str, Any], options: BrickOptions) -> Any:
        return options.root.text_content.strip()


class TemplateBrick(Transformer):
    id = "@test/template"
    name = "Template"
    pure = True
    input_schema = {
        "type": "object",
        "properties": {"template": {"type": "string"}},
        "required": ["template"],
    }

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        return args["template"]


class RecordEffect(Effect):
    """Appends its arguments to ``RecordEffect.calls``."""

    id = "@test/record"
    name = "Record"
    calls: list[Any] = []

    async def effect(self, args: dict[str, Any], options: BrickOptions) -> None:
        RecordEffect.calls.append(args)


class PanelRenderer(Renderer):
    id = "@test/panel"
    name = "Panel"

    async def render(self, args: dict[str, Any], options: BrickOptions) -> Any:
        return {"panel": args}


class NetworkBrick(Transformer):
    id = "@test/network"
    name = "Network"
    required_capabilities = frozenset({"network"})

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        return "fetched"


class CountingBrick(Transformer):
    """Counts calls; returns the call number after an optional delay."""

    id = "@test/counter"
    name = "Counter"
    calls = 0

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        CountingBrick.calls += 1
        call = CountingBrick.calls
        if args.get("delay"):
            await asyncio.sleep(args["delay"])
        if args.get("fail"):
            raise RuntimeError(f"call {call} failed")
        return call


TEST_BRICKS = (
    EchoBrick,
    ValueBrick,
    MultiplyByTwo,
    ThrowBrick,
    ContextBrick,
    RootBrick,
    ReadTextBrick,
    TemplateBrick,
    RecordEffect,
    PanelRenderer,
    NetworkBrick,
    CountingBrick,
)


@pytest.fixture(autouse=True)
def _isolate_globals():
    """Fresh registry, buses and verbosity for every test."""
    registry = get_brick_registry()
    registry.clear()
    register_builtins(registry)
    registry.register(cls() for cls in TEST_BRICKS)
    RecordEffect.calls.clear()
    CountingBrick.calls = 0

    get_event_bus().clear()
    get_log_bus().clear()
    set_log_sink(None)
    set_verbosity(VerbosityLevel.NORMAL)

    yield

    registry.clear()
    get_event_bus().clear()
    get_log_bus().clear()
    set_log_sink(None)
    set_verbosity(VerbosityLevel.NORMAL)


@pytest.fixture
def document() -> Document:
    return Document.from_html(
        """
        <html><body>
          <h1 id="title">World</h1>
          <ul class="items">
            <li class="item">one</li>
            <li class="item">two</li>
          </ul>
          <div id="card"><span class="name">Ada</span></div>
        </body></html>
        """
    )


@pytest.fixture
def reduce_options(document: Document) -> ReduceOptions:
    return ReduceOptions(document=document, meta=RunMetadata(mod_component_id="test-mod"))


@pytest.fixture
def events() -> list[tuple[str, dict[str, Any]]]:
    """Every event published on the global event bus during the test."""
    seen: list[tuple[str, dict[str, Any]]] = []

    def cb(event: str, data: dict[str, Any]) -> None:
        seen.append((event, data))

    get_event_bus().subscribe_all(cb)
    return seen


@pytest.fixture
def recorded() -> list[Any]:
    """Arguments of every ``@test/record`` effect call."""
    return RecordEffect.calls
