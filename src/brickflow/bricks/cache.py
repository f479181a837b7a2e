"""Memoize a body's result in a mod variable.

Concurrent calls for the same variable share the in-flight run. A call with
``forceFetch`` (or after ``ttl`` seconds) starts a new generation; an older
generation that finishes afterwards is superseded and raises CancelError.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import Any

from brickflow.bricks.async_variable import ModVariable, is_blank
from brickflow.bricks.control_flow import PIPELINE_SCHEMA
from brickflow.core.bricks import BrickOptions, Transformer
from brickflow.core.capabilities import Capability
from brickflow.core.context import Branch
from brickflow.core.errors import CancelError, PropError, serialize_error


def _retrieve(future: asyncio.Future[Any]) -> None:
    # Mark the exception retrieved; callers that care await the future
    if not future.cancelled():
        future.exception()


class WithCache(Transformer):
    id = "@brickflow/cache"
    name = "Run with Cache"
    description = "Run bricks once and reuse the result stored in a Mod Variable"
    default_output_key = "cached"
    required_capabilities = frozenset({Capability.STATE})

    input_schema = {
        "type": "object",
        "properties": {
            "body": PIPELINE_SCHEMA,
            "stateKey": {
                "type": "string",
                "description": "The Mod Variable to store the status and data in",
            },
            "forceFetch": {
                "type": "boolean",
                "default": False,
                "description": "Run the body even if a cached value is available",
            },
            "ttl": {
                "type": ["number", "null"],
                "minimum": 0,
                "description": "Seconds the cached value stays fresh (no expiry if empty)",
            },
        },
        "required": ["body", "stateKey"],
    }

    def __init__(self) -> None:
        # (mod component id, state key) -> (request id, result future)
        self._inflight: dict[tuple[str, str], tuple[str, asyncio.Future[Any]]] = {}

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        state_key = args.get("stateKey")
        if is_blank(state_key):
            raise PropError("Mod Variable Name is required", self.id, "stateKey", state_key)

        variable = ModVariable(options, str(state_key))
        slot = (options.meta.mod_component_id, variable.state_key)
        previous = await variable.get()

        if not args.get("forceFetch"):
            inflight = self._inflight.get(slot)
            if (
                previous.get("isFetching")
                and inflight is not None
                and inflight[0] == previous.get("requestId")
            ):
                options.logger.debug(f"Waiting for in-flight request {inflight[0]}")
                return await asyncio.shield(inflight[1])

            expires_at = previous.get("expiresAt")
            if previous.get("isSuccess") and (expires_at is None or time.time() < expires_at):
                return previous.get("data")

        return await self._fetch(args, variable, slot, previous, options)

    async def _fetch(
        self,
        args: dict[str, Any],
        variable: ModVariable,
        slot: tuple[str, str],
        previous: dict[str, Any],
        options: BrickOptions,
    ) -> Any:
        request_id = str(uuid.uuid4())
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        future.add_done_callback(_retrieve)
        self._inflight[slot] = (request_id, future)

        await variable.set(
            {
                "isLoading": not previous.get("isSuccess", False),
                "isFetching": True,
                "isSuccess": bool(previous.get("isSuccess", False)),
                "isError": False,
                "currentData": None,
                "data": previous.get("data"),
                "requestId": request_id,
                "error": None,
                "expiresAt": previous.get("expiresAt"),
            }
        )

        try:
            try:
                data = await options.run_pipeline(args["body"], Branch("body"))
            except Exception as e:
                if not await variable.is_current(request_id):
                    raise CancelError("Value generation was superseded") from e
                await variable.set(
                    {
                        "isLoading": False,
                        "isFetching": False,
                        "isSuccess": False,
                        "isError": True,
                        "currentData": None,
                        "data": None,
                        "requestId": request_id,
                        "error": serialize_error(e),
                        "expiresAt": None,
                    }
                )
                raise

            if not await variable.is_current(request_id):
                raise CancelError("Value generation was superseded")

            ttl = args.get("ttl")
            await variable.set(
                {
                    "isLoading": False,
                    "isFetching": False,
                    "isSuccess": True,
                    "isError": False,
                    "currentData": data,
                    "data": data,
                    "requestId": request_id,
                    "error": None,
                    "expiresAt": None if ttl is None else time.time() + ttl,
                }
            )
        except Exception as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(data)
            return data
        finally:
            if not future.done():
                future.cancel()
            if self._inflight.get(slot, (None,))[0] == request_id:
                del self._inflight[slot]
