"""Run a body in the background and mirror its status into a mod variable.

Each dispatch stamps a fresh ``requestId`` into the record. When the body
finishes, the terminal record is written only if the stored ``requestId``
still equals the one the run started with (or the record was deleted), so a
superseded run can never overwrite a newer one.
"""

from __future__ import annotations

import uuid
from typing import Any

from brickflow.bricks.control_flow import PIPELINE_SCHEMA
from brickflow.core.background import spawn
from brickflow.core.bricks import BrickOptions, Transformer
from brickflow.core.capabilities import Capability
from brickflow.core.context import Branch
from brickflow.core.errors import PropError, serialize_error
from brickflow.core.state import MergeStrategy, StateNamespace


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class ModVariable:
    """One key of the mod-scoped shared state."""

    def __init__(self, options: BrickOptions, state_key: str) -> None:
        self._state = options.platform.state
        self._component_id = options.meta.mod_component_id
        self.state_key = state_key

    async def get(self) -> dict[str, Any]:
        state = await self._state.get_state(StateNamespace.MOD, self._component_id)
        value = state.get(self.state_key)
        return value if isinstance(value, dict) else {}

    async def set(self, record: dict[str, Any]) -> None:
        await self._state.set_state(
            StateNamespace.MOD,
            self._component_id,
            {self.state_key: record},
            MergeStrategy.SHALLOW,
        )

    async def is_current(self, request_id: str) -> bool:
        """True if ``request_id`` still owns the record (or the record is gone)."""
        current = (await self.get()).get("requestId")
        return current is None or current == request_id


class WithAsyncModVariable(Transformer):
    id = "@brickflow/async"
    name = "Run with Async Mod Variable"
    description = (
        "Run bricks asynchronously and store the status and result in a Mod Variable"
    )
    default_output_key = "async"
    required_capabilities = frozenset({Capability.STATE})

    input_schema = {
        "type": "object",
        "properties": {
            "body": PIPELINE_SCHEMA,
            "stateKey": {
                "type": "string",
                "description": "The Mod Variable to store the status and data in",
            },
        },
        "required": ["body", "stateKey"],
    }
    output_schema = {
        "type": "object",
        "properties": {
            "requestId": {
                "type": "string",
                "description": "Nonce of the run, stored in the Mod Variable",
            },
        },
        "required": ["requestId"],
        "additionalProperties": False,
    }

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> dict[str, Any]:
        state_key = args.get("stateKey")
        if is_blank(state_key):
            raise PropError("Mod Variable Name is required", self.id, "stateKey", state_key)

        request_id = str(uuid.uuid4())
        variable = ModVariable(options, str(state_key))

        # Read-modify-write without locking; the request id fences the result
        previous = await variable.get()
        if not previous:
            await variable.set(
                {
                    "isLoading": True,
                    "isFetching": True,
                    "isSuccess": False,
                    "isError": False,
                    "currentData": None,
                    "data": None,
                    "requestId": request_id,
                    "error": None,
                }
            )
        else:
            await variable.set(
                {**previous, "requestId": request_id, "isFetching": True, "currentData": None}
            )

        spawn(
            self._run_body(args["body"], variable, request_id, options),
            operation="async_variable",
            logger=options.logger,
            data={
                "run_id": options.meta.run_id,
                "brick_id": self.id,
                "state_key": variable.state_key,
                "request_id": request_id,
            },
        )
        return {"requestId": request_id}

    async def _run_body(
        self,
        body: Any,
        variable: ModVariable,
        request_id: str,
        options: BrickOptions,
    ) -> None:
        try:
            data = await options.run_pipeline(body, Branch("body"), detached=True)
        except Exception as e:
            if not await variable.is_current(request_id):
                options.logger.debug(f"Discarding superseded error for request {request_id}")
                return
            options.logger.warning(f"Async body failed: {e}")
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
                }
            )
            return

        if not await variable.is_current(request_id):
            options.logger.debug(f"Discarding superseded result for request {request_id}")
            return

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
            }
        )
