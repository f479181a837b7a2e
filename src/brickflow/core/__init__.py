"""brickflow core - pipeline model, interpreter and runtime services."""

__version__ = "0.1.0"

from brickflow.core.abort import AbortController, AbortSignal
from brickflow.core.bricks import (
    Brick,
    BrickOptions,
    BrickType,
    Effect,
    Reader,
    Renderer,
    Transformer,
    get_brick_type,
)
from brickflow.core.capabilities import Capabilities, Capability, Platform
from brickflow.core.config import ConfigResolver, RuntimeSettings
from brickflow.core.context import Branch, ExecutionContext, RunMetadata
from brickflow.core.dom import Document, Element
from brickflow.core.errors import (
    BrickflowError,
    BusinessError,
    CancelError,
    ConfigError,
    HeadlessModeError,
    InputValidationError,
    MissingCapabilityError,
    MultipleRootsFoundError,
    NoRootFoundError,
    NotFoundError,
    OutputKeyError,
    PipelineDefinitionError,
    PipelineError,
    PipelineStageError,
    PlatformError,
    PropError,
    ValidationError,
)
from brickflow.core.events import EventBus, get_event_bus
from brickflow.core.expressions import resolve, to_expression
from brickflow.core.loader import BrickLoader
from brickflow.core.logging import (
    VerbosityLevel,
    get_logger,
    get_verbosity,
    set_colors,
    set_verbosity,
)
from brickflow.core.pipeline import (
    BrickConfig,
    Pipeline,
    PipelineNode,
    dump_pipeline_yaml,
    load_pipeline_yaml,
    validate_pipeline,
)
from brickflow.core.reducer import (
    InitialValues,
    NodeState,
    ReduceOptions,
    reduce_pipeline,
    reduce_pipeline_expression,
)
from brickflow.core.registry import BrickRegistry, get_brick_registry
from brickflow.core.roots import ElementReferences, RootMode, resolve_root
from brickflow.core.state import MemoryStateStore, MergeStrategy, StateStore

__all__ = [
    # Bricks
    "Brick",
    "BrickOptions",
    "BrickType",
    "Reader",
    "Transformer",
    "Effect",
    "Renderer",
    "get_brick_type",
    # Registry / loader
    "BrickRegistry",
    "get_brick_registry",
    "BrickLoader",
    # Pipeline
    "Pipeline",
    "PipelineNode",
    "BrickConfig",
    "validate_pipeline",
    "load_pipeline_yaml",
    "dump_pipeline_yaml",
    # Interpreter
    "reduce_pipeline",
    "reduce_pipeline_expression",
    "ReduceOptions",
    "InitialValues",
    "NodeState",
    # Context
    "ExecutionContext",
    "RunMetadata",
    "Branch",
    # Expressions
    "resolve",
    "to_expression",
    # Roots / document
    "Document",
    "Element",
    "ElementReferences",
    "RootMode",
    "resolve_root",
    # Platform
    "AbortController",
    "AbortSignal",
    "Capabilities",
    "Capability",
    "Platform",
    "StateStore",
    "MemoryStateStore",
    "MergeStrategy",
    # Config
    "ConfigResolver",
    "RuntimeSettings",
    # Errors
    "BrickflowError",
    "ValidationError",
    "InputValidationError",
    "PipelineDefinitionError",
    "OutputKeyError",
    "BusinessError",
    "NotFoundError",
    "PropError",
    "MissingCapabilityError",
    "NoRootFoundError",
    "MultipleRootsFoundError",
    "PlatformError",
    "CancelError",
    "ConfigError",
    "PipelineError",
    "PipelineStageError",
    "HeadlessModeError",
    # Events
    "EventBus",
    "get_event_bus",
    # Logging
    "VerbosityLevel",
    "get_logger",
    "set_verbosity",
    "get_verbosity",
    "set_colors",
]
