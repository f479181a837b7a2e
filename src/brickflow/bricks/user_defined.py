"""User-defined bricks: a pipeline packaged as a transformer.

Example YAML:
    kind: component
    metadata:
      id: "@acme/greet"
      name: Greet
      version: 1.0.0
    inputSchema:
      type: object
      properties:
        name: {type: string}
      required: [name]
    defaultOutputKey: greeting
    pipeline:
      - id: "@acme/template"
        config:
          template: !template "Hello {{ input.name }}"

The pipeline runs isolated from the caller: it sees ``@input`` (the brick's
arguments) and the caller's ``@options`` only.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

from brickflow.core.bricks import Brick, BrickOptions, Transformer
from brickflow.core.context import OPTIONS_KEY, Branch, ExecutionContext
from brickflow.core.errors import NotFoundError, PipelineDefinitionError
from brickflow.core.expressions import VALUE_KEY, is_pipeline_expression
from brickflow.core.pipeline import Pipeline, validate_pipeline
from brickflow.core.registry import BrickRegistry, get_brick_registry

COMPONENT_KIND = "component"


def _iter_brick_ids(pipeline: Pipeline) -> Iterator[str]:
    """Brick ids of a pipeline, including nested pipeline expressions."""

    def _nested(value: Any) -> Iterator[str]:
        if is_pipeline_expression(value):
            yield from _iter_brick_ids(Pipeline.coerce(value[VALUE_KEY]))
        elif isinstance(value, Mapping):
            for item in value.values():
                yield from _nested(item)
        elif isinstance(value, (list, tuple)):
            for item in value:
                yield from _nested(item)

    for node in pipeline:
        yield node.id
        yield from _nested(node.config)


class UserDefinedBrick(Transformer):
    """Transformer backed by a pipeline definition.

    Pure when every inner brick is pure; root-aware when any inner brick is.
    """

    def __init__(
        self,
        *,
        brick_id: str,
        pipeline: Pipeline,
        name: str = "",
        description: str = "",
        version: str = "1.0.0",
        input_schema: dict[str, Any] | None = None,
        output_schema: dict[str, Any] | None = None,
        default_output_key: str | None = None,
        registry: BrickRegistry | None = None,
    ) -> None:
        validate_pipeline(pipeline)
        # Instance attributes shadow the class-level defaults
        self.id = brick_id
        self.name = name or brick_id
        self.description = description
        self.version = version
        self.input_schema = dict(input_schema or {})
        self.output_schema = output_schema
        self.default_output_key = default_output_key
        self.pipeline = pipeline
        self._registry = registry

    @classmethod
    def from_definition(
        cls, data: Mapping[str, Any], registry: BrickRegistry | None = None
    ) -> UserDefinedBrick:
        """Build a brick from a ``kind: component`` definition.

        Raises:
            PipelineDefinitionError: If the definition is malformed
        """
        if not isinstance(data, Mapping):
            raise PipelineDefinitionError("Brick definition must be a mapping")
        if data.get("kind") != COMPONENT_KIND:
            raise PipelineDefinitionError(
                f"Unsupported brick definition kind: {data.get('kind')!r}",
                f"Use 'kind: {COMPONENT_KIND}'",
            )

        metadata = data.get("metadata") or {}
        brick_id = metadata.get("id") if isinstance(metadata, Mapping) else None
        if not isinstance(brick_id, str) or not brick_id:
            raise PipelineDefinitionError("Brick definition is missing metadata.id")

        return cls(
            brick_id=brick_id,
            pipeline=Pipeline.from_list(data.get("pipeline") or []),
            name=str(metadata.get("name", "")),
            description=str(metadata.get("description", "")),
            version=str(metadata.get("version", "1.0.0")),
            input_schema=data.get("inputSchema"),
            output_schema=data.get("outputSchema"),
            default_output_key=data.get("defaultOutputKey"),
            registry=registry,
        )

    def _inner_bricks(self) -> list[Brick]:
        registry = self._registry if self._registry is not None else get_brick_registry()
        return [registry.lookup(brick_id) for brick_id in _iter_brick_ids(self.pipeline)]

    def is_pure(self) -> bool:
        try:
            return all(brick.is_pure() for brick in self._inner_bricks())
        except NotFoundError:
            return False

    def is_root_aware(self) -> bool:
        try:
            return any(brick.is_root_aware() for brick in self._inner_bricks())
        except NotFoundError:
            return False

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        context = ExecutionContext.initial(input=args, options=options.ctxt.get(OPTIONS_KEY))
        return await options.run_pipeline(
            self.pipeline, Branch("component"), base_context=context
        )
