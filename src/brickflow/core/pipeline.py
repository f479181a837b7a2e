"""Pipeline model - JSON shape, validation and YAML files.

A pipeline is an ordered list of nodes. JSON shape of a node:

    {
      "id": "@brickflow/for-each",
      "config": {...},
      "rootMode": "inherit",
      "root": "#title",
      "outputKey": "items",
      "instanceId": "...",
      "label": "...",
      "if": {...}
    }

Example YAML:
    pipeline:
      - id: "@example/read-text"
        root: "#title"
        rootMode: document
        outputKey: title
      - id: "@example/template"
        config:
          template: !template "Hello {{ title }}"
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from brickflow.core.context import validate_output_key
from brickflow.core.errors import OutputKeyError, PipelineDefinitionError
from brickflow.core.expressions import (
    EXPRESSION_TYPES,
    TYPE_KEY,
    VALUE_KEY,
    is_expression,
    is_pipeline_expression,
)
from brickflow.core.roots import RootMode

_KNOWN_KEYS = frozenset(
    {"id", "config", "rootMode", "root", "outputKey", "instanceId", "label", "if"}
)


def _with_instance_id(node: Any) -> Any:
    if not isinstance(node, Mapping):
        return node
    data = dict(node)
    if not data.get("instanceId"):
        data["instanceId"] = str(uuid.uuid4())
    if isinstance(data.get("config"), Mapping):
        data["config"] = _assign_nested_ids(data["config"])
    return data


def _assign_nested_ids(value: Any) -> Any:
    """Copy ``value`` giving every node of a nested pipeline an instanceId.

    Nested pipelines are re-read on each run; ids fixed here keep traces of
    the same body node comparable across iterations.
    """
    if is_pipeline_expression(value):
        nodes = value[VALUE_KEY]
        if isinstance(nodes, (list, tuple)):
            nodes = [_with_instance_id(n) for n in nodes]
        else:
            nodes = _with_instance_id(nodes)
        return {TYPE_KEY: value[TYPE_KEY], VALUE_KEY: nodes}
    if isinstance(value, Mapping):
        return {key: _assign_nested_ids(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_assign_nested_ids(item) for item in value]
    return value


@dataclass
class PipelineNode:
    """Single pipeline node (brick configuration)."""

    id: str
    config: dict[str, Any] = field(default_factory=dict)
    root_mode: str | None = None  # inherit | document | element
    root: Any = None
    output_key: str | None = None
    instance_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    label: str | None = None
    condition: Any = None  # "if" guard

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PipelineNode:
        """Build a node from its JSON shape.

        Raises:
            PipelineDefinitionError: If the shape is invalid
        """
        if not isinstance(data, Mapping):
            raise PipelineDefinitionError(
                f"Pipeline node must be a mapping, got {type(data).__name__}"
            )

        brick_id = data.get("id")
        if not isinstance(brick_id, str) or not brick_id:
            raise PipelineDefinitionError("Pipeline node is missing its brick 'id'")

        unknown = set(data) - _KNOWN_KEYS
        if unknown:
            raise PipelineDefinitionError(
                f"Unknown keys in pipeline node {brick_id}: {', '.join(sorted(unknown))}"
            )

        config = data.get("config") or {}
        if not isinstance(config, Mapping):
            raise PipelineDefinitionError(f"Config of pipeline node {brick_id} must be a mapping")

        root_mode = data.get("rootMode")
        if root_mode is not None:
            try:
                root_mode = str(RootMode(root_mode))
            except ValueError as e:
                raise PipelineDefinitionError(
                    f"Invalid rootMode {root_mode!r} for pipeline node {brick_id}",
                    "Use one of: inherit, document, element",
                ) from e

        kwargs: dict[str, Any] = {}
        if data.get("instanceId"):
            kwargs["instance_id"] = str(data["instanceId"])

        return cls(
            id=brick_id,
            config=_assign_nested_ids(config),
            root_mode=root_mode,
            root=data.get("root"),
            output_key=data.get("outputKey") or None,
            label=data.get("label"),
            condition=data.get("if"),
            **kwargs,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "config": self.config}
        if self.root_mode is not None:
            data["rootMode"] = self.root_mode
        if self.root is not None:
            data["root"] = self.root
        if self.output_key is not None:
            data["outputKey"] = self.output_key
        data["instanceId"] = self.instance_id
        if self.label is not None:
            data["label"] = self.label
        if self.condition is not None:
            data["if"] = self.condition
        return data


# Alias used by brick authors.
BrickConfig = PipelineNode


@dataclass
class Pipeline:
    """Ordered sequence of nodes."""

    nodes: tuple[PipelineNode, ...] = ()

    def __iter__(self) -> Iterator[PipelineNode]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    def __getitem__(self, index: int) -> PipelineNode:
        return self.nodes[index]

    @classmethod
    def from_list(cls, items: Any) -> Pipeline:
        if isinstance(items, Mapping):
            # A single node is a one-node pipeline
            items = [items]
        if not isinstance(items, (list, tuple)):
            raise PipelineDefinitionError(
                f"Pipeline must be a list of nodes, got {type(items).__name__}"
            )
        nodes = [n if isinstance(n, PipelineNode) else PipelineNode.from_dict(n) for n in items]
        return cls(tuple(nodes))

    def to_list(self) -> list[dict[str, Any]]:
        return [node.to_dict() for node in self.nodes]

    @classmethod
    def coerce(cls, value: Any) -> Pipeline:
        """Accept a Pipeline, a list of nodes, or a pipeline expression."""
        if isinstance(value, Pipeline):
            return value
        if is_pipeline_expression(value):
            value = value[VALUE_KEY]
            if isinstance(value, Pipeline):
                return value
        if value is None:
            return cls()
        return cls.from_list(value)


def _nested_pipelines(value: Any) -> Iterator[Any]:
    if is_pipeline_expression(value):
        yield value[VALUE_KEY]
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from _nested_pipelines(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _nested_pipelines(item)


def validate_pipeline(pipeline: Pipeline, *, recursive: bool = True) -> None:
    """Check structural invariants.

    Instance ids must be unique within a pipeline and output keys must be
    valid, non-reserved identifiers. Nested pipeline expressions in node
    configs are checked as pipelines of their own when ``recursive``.

    Raises:
        PipelineDefinitionError: On the first violation found
    """
    seen: set[str] = set()
    for index, node in enumerate(pipeline):
        if node.instance_id in seen:
            raise PipelineDefinitionError(
                f"Duplicate instanceId {node.instance_id!r} at pipeline stage #{index + 1}"
            )
        seen.add(node.instance_id)

        if node.output_key is not None:
            try:
                validate_output_key(node.output_key)
            except OutputKeyError as e:
                raise PipelineDefinitionError(
                    f"{e.message} at pipeline stage #{index + 1}: {node.id}", e.suggestion
                ) from e

        if recursive:
            for nested in _nested_pipelines(node.config):
                validate_pipeline(Pipeline.coerce(nested), recursive=True)


# ---------------------------------------------------------------------------
# YAML
# ---------------------------------------------------------------------------


class ExpressionLoader(yaml.SafeLoader):
    pass


class ExpressionDumper(yaml.SafeDumper):
    pass


def _make_constructor(tag: str) -> Any:
    def construct(loader: yaml.SafeLoader, node: yaml.Node) -> dict[str, Any]:
        value: Any
        if isinstance(node, yaml.SequenceNode):
            value = loader.construct_sequence(node, deep=True)
        elif isinstance(node, yaml.MappingNode):
            value = loader.construct_mapping(node, deep=True)
        else:
            value = loader.construct_scalar(node)
        return {TYPE_KEY: tag, VALUE_KEY: value}

    return construct


for _tag in EXPRESSION_TYPES:
    ExpressionLoader.add_constructor(f"!{_tag}", _make_constructor(_tag))


def _represent_dict(dumper: yaml.SafeDumper, data: dict[str, Any]) -> yaml.Node:
    if is_expression(data):
        tag = f"!{data[TYPE_KEY]}"
        value = data[VALUE_KEY]
        if isinstance(value, Pipeline):
            value = value.to_list()
        if isinstance(value, (list, tuple)):
            return dumper.represent_sequence(tag, value)
        if isinstance(value, Mapping):
            return dumper.represent_mapping(tag, value)
        return dumper.represent_scalar(tag, str(value))
    return dumper.represent_dict(data)


ExpressionDumper.add_representer(dict, _represent_dict)


def load_pipeline_yaml(source: str | Path) -> Pipeline:
    """Load a pipeline from YAML text or a file path.

    The document is either a list of nodes or a mapping with a ``pipeline``
    key. Expressions use the tags ``!var``, ``!template``, ``!nunjucks``,
    ``!pipeline`` and ``!defer``.

    Raises:
        PipelineDefinitionError: If the file is missing or malformed
    """
    if isinstance(source, Path):
        if not source.exists():
            raise PipelineDefinitionError(f"Pipeline file not found: {source}")
        text = source.read_text(encoding="utf-8")
    else:
        text = source

    try:
        data = yaml.load(text, Loader=ExpressionLoader)  # noqa: S506 - SafeLoader subclass
    except yaml.YAMLError as e:
        raise PipelineDefinitionError(f"Invalid pipeline YAML: {e}") from e

    if isinstance(data, Mapping):
        if "pipeline" not in data:
            raise PipelineDefinitionError("Invalid pipeline YAML: missing 'pipeline' key")
        data = data["pipeline"]

    pipeline = Pipeline.from_list(data or [])
    validate_pipeline(pipeline)
    return pipeline


def dump_pipeline_yaml(pipeline: Pipeline) -> str:
    return yaml.dump(
        {"pipeline": pipeline.to_list()},
        Dumper=ExpressionDumper,
        sort_keys=False,
        allow_unicode=True,
    )
