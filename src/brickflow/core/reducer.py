"""Pipeline interpreter.

Walks a pipeline node by node. Per node:

    pending -> resolving-root -> resolving-inputs -> validating
            -> dispatching -> bound | failed

Nodes run strictly in order; each node sees the bindings of every node
before it. Control-flow bricks recurse through the ``run_pipeline`` callback
in their options, with extra bindings and (optionally) a different root.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any, assert_never, cast

from brickflow.core.abort import AbortSignal, never_aborted
from brickflow.core.brick_logger import BrickLogger
from brickflow.core.bricks import (
    Brick,
    BrickOptions,
    BrickType,
    Effect,
    Reader,
    Renderer,
    RunPipeline,
    Transformer,
    get_brick_type,
)
from brickflow.core.capabilities import Platform
from brickflow.core.config import RuntimeSettings
from brickflow.core.context import Branch, ExecutionContext, RunMetadata
from brickflow.core.diagnostics import emit
from brickflow.core.dom import Document
from brickflow.core.errors import (
    HeadlessModeError,
    MissingCapabilityError,
    PipelineStageError,
    serialize_error,
)
from brickflow.core.expressions import is_expression, resolve, to_boolean
from brickflow.core.logging import get_logger
from brickflow.core.pipeline import Pipeline, PipelineNode, validate_pipeline
from brickflow.core.registry import BrickRegistry, get_brick_registry
from brickflow.core.roots import Root, resolve_root
from brickflow.core.validation import schema_errors, validate_input

_logger = get_logger(__name__)

COMPONENT = "reducer"


class NodeState(StrEnum):
    PENDING = "pending"
    RESOLVING_ROOT = "resolving-root"
    RESOLVING_INPUTS = "resolving-inputs"
    VALIDATING = "validating"
    DISPATCHING = "dispatching"
    BOUND = "bound"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ReduceOptions:
    """Run-wide options shared by every node of a run."""

    document: Document
    meta: RunMetadata
    registry: BrickRegistry = field(default_factory=get_brick_registry)
    platform: Platform = field(default_factory=Platform)
    abort_signal: AbortSignal = field(default_factory=never_aborted)
    logger: BrickLogger = field(default_factory=BrickLogger)
    headless: bool = False
    validate_input: bool = True
    # Include args/outputs in trace events and debug logs
    log_values: bool = False

    @classmethod
    def from_settings(
        cls,
        settings: RuntimeSettings,
        *,
        document: Document,
        meta: RunMetadata,
        **kwargs: Any,
    ) -> ReduceOptions:
        return cls(
            document=document,
            meta=meta,
            headless=settings.headless,
            validate_input=settings.validate_input,
            log_values=settings.log_values,
            **kwargs,
        )


@dataclass
class InitialValues:
    """Inputs of a top-level run."""

    input: dict[str, Any] = field(default_factory=dict)
    options: dict[str, Any] = field(default_factory=dict)
    integrations: dict[str, Any] = field(default_factory=dict)
    # Defaults to the document
    root: Root | None = None


@dataclass
class _StageResult:
    output: Any
    context: ExecutionContext
    # False for effects and skipped nodes: the pipeline output is unchanged
    produced: bool


def _trace_data(
    node: PipelineNode, index: int, options: ReduceOptions, **extra: Any
) -> dict[str, Any]:
    return {
        "run_id": options.meta.run_id,
        "mod_component_id": options.meta.mod_component_id,
        "branches": [b.to_dict() for b in options.meta.branches],
        "brick_id": node.id,
        "instance_id": node.instance_id,
        "label": node.label,
        "index": index,
        **extra,
    }


async def _dispatch(brick: Brick, args: dict[str, Any], options: BrickOptions) -> Any:
    brick_type = get_brick_type(brick)
    match brick_type:
        case BrickType.READER:
            return await cast(Reader, brick).read(args, options)
        case BrickType.TRANSFORMER:
            return await cast(Transformer, brick).transform(args, options)
        case BrickType.EFFECT:
            await cast(Effect, brick).effect(args, options)
            return None
        case BrickType.RENDERER:
            if options.headless:
                raise HeadlessModeError(brick.id, args, options.ctxt.to_dict())
            return await cast(Renderer, brick).render(args, options)
        case _:
            assert_never(brick_type)


def _make_run_pipeline(
    context: ExecutionContext, node_root: Root, options: ReduceOptions
) -> RunPipeline:
    async def run_pipeline(
        pipeline: Any,
        branch: Branch | str,
        extra_context: dict[str, Any] | None = None,
        root: Root | None = None,
        *,
        base_context: ExecutionContext | None = None,
        detached: bool = False,
    ) -> Any:
        if isinstance(branch, str):
            branch = Branch(branch)
        child_options = replace(options, meta=options.meta.with_branch(branch))
        if detached:
            # Background runs outlive the caller and ignore its abort signal
            child_options = replace(child_options, abort_signal=never_aborted())
        # base_context replaces the caller's bindings (isolated runs)
        parent = context if base_context is None else base_context
        return await reduce_pipeline_expression(
            Pipeline.coerce(pipeline),
            parent.extend(extra_context),
            node_root if root is None else root,
            child_options,
        )

    return run_pipeline


async def _run_stage(
    node: PipelineNode,
    index: int,
    context: ExecutionContext,
    root: Root,
    options: ReduceOptions,
) -> _StageResult:
    stage = index + 1
    state = NodeState.PENDING
    started = time.perf_counter()
    emit(
        "trace.entry",
        component=COMPONENT,
        operation="run_stage",
        data=_trace_data(node, index, options, state=str(state)),
    )

    def _exit(state: NodeState, **extra: Any) -> None:
        duration_ms = round((time.perf_counter() - started) * 1000, 3)
        emit(
            "trace.exit",
            component=COMPONENT,
            operation="run_stage",
            data=_trace_data(
                node, index, options, state=str(state), duration_ms=duration_ms, **extra
            ),
        )

    try:
        brick = options.registry.lookup(node.id)
        options.abort_signal.throw_if_aborted()

        if node.condition is not None:
            if not to_boolean(resolve(node.condition, context, root)):
                _logger.verbose(f"Skipping pipeline stage #{stage}: {node.id} (condition)")
                _exit(NodeState.SKIPPED, skipped_run=True)
                return _StageResult(output=None, context=context, produced=False)

        state = NodeState.RESOLVING_ROOT
        selector = resolve(node.root, context, root) if is_expression(node.root) else node.root
        node_root = resolve_root(
            node.root_mode,
            selector,
            root,
            options.document,
            options.platform.references,
        )

        state = NodeState.RESOLVING_INPUTS
        args = resolve(node.config, context, node_root)

        state = NodeState.VALIDATING
        if options.validate_input:
            validate_input(brick.id, brick.input_schema, args)
        missing = options.platform.capabilities.missing(brick.required_capabilities)
        if missing:
            raise MissingCapabilityError(brick.id, missing)

        state = NodeState.DISPATCHING
        _logger.verbose(f"Running pipeline stage #{stage}: {node.id}")
        if options.log_values:
            _logger.debug(f"Arguments for stage #{stage}: {node.id}", data={"args": args})

        brick_options = BrickOptions(
            ctxt=context,
            root=node_root,
            meta=options.meta,
            logger=options.logger.child(
                run_id=options.meta.run_id,
                brick_id=brick.id,
                instance_id=node.instance_id,
                label=node.label,
            ),
            abort_signal=options.abort_signal,
            platform=options.platform,
            headless=options.headless,
            run_pipeline=_make_run_pipeline(context, node_root, options),
        )
        output = await _dispatch(brick, args, brick_options)
    except Exception as e:
        _logger.debug(f"Pipeline stage #{stage} failed in state {state}: {node.id}: {e}")
        _exit(NodeState.FAILED, error=serialize_error(e))
        raise PipelineStageError(
            f"An error occurred running pipeline stage #{stage}: {node.id}",
            index=index,
            brick_id=node.id,
            instance_id=node.instance_id,
        ) from e

    if get_brick_type(brick) is BrickType.EFFECT:
        if node.output_key:
            _logger.warning(
                f"Ignoring output key '{node.output_key}' for effect brick {brick.id}"
            )
        _exit(NodeState.BOUND)
        return _StageResult(output=None, context=context, produced=False)

    if brick.output_schema:
        errors = schema_errors(brick.output_schema, output)
        if errors:
            _logger.warning(
                f"Output of brick {brick.id} does not match its output schema",
                data={"errors": errors},
            )

    if node.output_key:
        context = context.bind(node.output_key, output)
    else:
        context = context.with_current(output)

    extra = {"output": output} if options.log_values else {}
    _exit(NodeState.BOUND, **extra)
    return _StageResult(output=output, context=context, produced=True)


async def reduce_pipeline_expression(
    pipeline: Pipeline,
    context: ExecutionContext,
    root: Root,
    options: ReduceOptions,
) -> Any:
    """Run a nested pipeline.

    Args:
        pipeline: Nodes to run
        context: Context of the calling node plus any extra bindings
        root: Root the nodes inherit
        options: Run options (metadata carries the branch path)

    Returns:
        Output of the last node that produced one, even if it was bound to an
        output key; None for an empty pipeline

    Raises:
        PipelineStageError: If a node fails (original error as ``__cause__``)
    """
    validate_pipeline(pipeline, recursive=False)

    output: Any = None
    for index, node in enumerate(pipeline):
        result = await _run_stage(node, index, context, root, options)
        context = result.context
        if result.produced:
            output = result.output
    return output


async def reduce_pipeline(
    pipeline: Pipeline,
    initial_values: InitialValues,
    options: ReduceOptions,
) -> Any:
    """Run a top-level pipeline.

    Args:
        pipeline: Nodes to run
        initial_values: Input, mod options, integrations and optional root
        options: Run options

    Returns:
        The current value after the last node: the output of the last node
        without an output key (None if there is none)

    Raises:
        PipelineStageError: If a node fails (original error as ``__cause__``)
    """
    validate_pipeline(pipeline, recursive=False)

    context = ExecutionContext.initial(
        input=initial_values.input,
        options=initial_values.options,
        integrations=initial_values.integrations,
    )
    root = initial_values.root if initial_values.root is not None else options.document

    _logger.verbose(
        f"Running pipeline with {len(pipeline)} stage(s)",
        data={"run_id": options.meta.run_id},
    )

    for index, node in enumerate(pipeline):
        result = await _run_stage(node, index, context, root, options)
        context = result.context

    return context.current
