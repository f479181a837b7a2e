"""Control-flow bricks.

Ordinary transformers whose config holds nested pipeline expressions. Each
one is a structured caller of ``options.run_pipeline``.
"""

from __future__ import annotations

import asyncio
from typing import Any

from brickflow.core.background import spawn
from brickflow.core.bricks import BrickOptions, Transformer
from brickflow.core.context import Branch, validate_output_key
from brickflow.core.errors import (
    CancelError,
    OutputKeyError,
    PropError,
    get_root_cause,
    has_specific_error_cause,
    serialize_error,
)

PIPELINE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "description": "A pipeline expression",
    "required": ["__type__", "__value__"],
    "properties": {
        "__type__": {"const": "pipeline"},
        "__value__": {"type": "array"},
    },
}


def binding_key(brick_id: str, args: dict[str, Any], prop: str, default: str) -> str:
    """Read a variable-name argument (given without ``@``).

    Raises:
        PropError: If the name is not a valid output key.
    """
    value = args.get(prop) or default
    try:
        return validate_output_key(str(value).removeprefix("@"))
    except OutputKeyError as e:
        raise PropError(f"Invalid {prop}: {value!r}", brick_id, prop, value) from e


class ForEach(Transformer):
    """Run the body once per element, in order. Returns the last result."""

    id = "@brickflow/for-each"
    name = "For-Each Loop"
    description = "Loop over elements, running the body for each one in order"
    input_schema = {
        "type": "object",
        "properties": {
            "elements": {"type": "array", "description": "The elements to loop over"},
            "elementKey": {
                "type": "string",
                "default": "element",
                "description": "Variable name for the element, without the @",
            },
            "body": PIPELINE_SCHEMA,
        },
        "required": ["elements", "body"],
    }

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        element_key = binding_key(self.id, args, "elementKey", "element")

        last: Any = None
        for counter, element in enumerate(args["elements"]):
            last = await options.run_pipeline(
                args["body"], Branch("body", counter), {element_key: element}
            )
        return last


class MapValues(Transformer):
    """Run the body once per element and collect the results in order.

    With ``parallel`` every iteration is started before any is awaited; the
    result list still follows the input order.
    """

    id = "@brickflow/map"
    name = "Map Loop"
    description = "Run the body for each element and collect the results"
    input_schema = {
        "type": "object",
        "properties": {
            "elements": {"type": "array", "description": "The elements to map"},
            "elementKey": {"type": "string", "default": "element"},
            "parallel": {"type": "boolean", "default": False},
            "body": PIPELINE_SCHEMA,
        },
        "required": ["elements", "body"],
    }

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> list[Any]:
        element_key = binding_key(self.id, args, "elementKey", "element")
        elements = args["elements"]

        def _iteration(counter: int, element: Any) -> Any:
            return options.run_pipeline(
                args["body"], Branch("body", counter), {element_key: element}
            )

        if args.get("parallel"):
            return list(
                await asyncio.gather(*(_iteration(i, e) for i, e in enumerate(elements)))
            )

        results: list[Any] = []
        for counter, element in enumerate(elements):
            results.append(await _iteration(counter, element))
        return results


class TryExcept(Transformer):
    """Run the try body; on failure run the except body with the error bound.

    Without an except body the failure is swallowed and the brick yields
    None. Cancellation is never caught.
    """

    id = "@brickflow/try-catch"
    name = "Try-Except"
    description = "Run a pipeline, handling failures with a second pipeline"
    input_schema = {
        "type": "object",
        "properties": {
            "try": PIPELINE_SCHEMA,
            "except": PIPELINE_SCHEMA,
            "errorKey": {
                "type": "string",
                "default": "error",
                "description": "Variable name for the serialized error, without the @",
            },
        },
        "required": ["try"],
    }

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        error_key = binding_key(self.id, args, "errorKey", "error")

        try:
            return await options.run_pipeline(args["try"], Branch("try"))
        except Exception as e:
            if has_specific_error_cause(e, CancelError):
                raise
            error = serialize_error(get_root_cause(e))
            options.logger.debug("Caught error in try body", data={"error": error})

            if not args.get("except"):
                return None

        return await options.run_pipeline(args["except"], Branch("except"), {error_key: error})


class Run(Transformer):
    """Run the body, synchronously or detached.

    Detached runs return ``{}`` at once; their failures are only logged.
    """

    id = "@brickflow/run"
    name = "Run Brick Pipeline"
    description = "Run a pipeline, optionally without waiting for it"
    input_schema = {
        "type": "object",
        "properties": {
            "body": PIPELINE_SCHEMA,
            "async": {
                "type": "boolean",
                "default": False,
                "description": "Run the body in the background and continue immediately",
            },
        },
        "required": ["body"],
    }

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        if not args.get("async"):
            return await options.run_pipeline(args["body"], Branch("body"))

        spawn(
            options.run_pipeline(args["body"], Branch("body"), detached=True),
            operation="run",
            logger=options.logger,
            data={"run_id": options.meta.run_id, "brick_id": self.id},
        )
        return {}
