"""Error handling with friendly messages.

Taxonomy:
- ValidationError: input fails a schema or a pipeline definition is malformed
- BusinessError: expected, user-actionable failure
- PlatformError: unexpected internal failure
- CancelError: abort signal fired or a prompt was dismissed
"""

from __future__ import annotations

import uuid
from typing import Any


class BrickflowError(Exception):
    """Base exception for all brickflow errors."""

    def __init__(self, message: str, suggestion: str | None = None) -> None:
        self.message = message
        self.suggestion = suggestion
        super().__init__(message)

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.message}\nSuggestion: {self.suggestion}"
        return self.message


class ValidationError(BrickflowError):
    """Local authoring bug: a value does not match its schema."""

    pass


class InputValidationError(ValidationError):
    """Brick arguments failed input schema validation."""

    def __init__(
        self,
        message: str,
        schema: dict[str, Any],
        value: Any,
        errors: list[dict[str, Any]],
    ) -> None:
        super().__init__(message)
        self.schema = schema
        self.value = value
        self.errors = errors


class PipelineDefinitionError(ValidationError):
    """Pipeline definition violates a structural invariant."""

    pass


class OutputKeyError(PipelineDefinitionError):
    """Output key is not a valid identifier or shadows a reserved key."""

    def __init__(self, output_key: str) -> None:
        super().__init__(
            f"Invalid output key: {output_key!r}",
            "Output keys must start with a letter, contain only letters, digits or "
            "underscores, and must not be 'input', 'options' or 'current'",
        )
        self.output_key = output_key


class BusinessError(BrickflowError):
    """Expected, user-actionable failure."""

    pass


class NotFoundError(BusinessError):
    """Brick not found in the registry."""

    def __init__(self, brick_id: str) -> None:
        super().__init__(
            f"Brick '{brick_id}' not found",
            "Check available bricks with: brickflow bricks",
        )
        self.brick_id = brick_id


class PropError(BusinessError):
    """A brick argument has an invalid value."""

    def __init__(self, message: str, brick_id: str, prop: str, value: Any) -> None:
        super().__init__(message)
        self.brick_id = brick_id
        self.prop = prop
        self.value = value


class MissingCapabilityError(BusinessError):
    """Brick requires platform capabilities the host does not provide."""

    def __init__(self, brick_id: str, missing: list[str]) -> None:
        super().__init__(
            f"Brick '{brick_id}' requires unavailable capabilities: {', '.join(missing)}",
        )
        self.brick_id = brick_id
        self.missing = missing


class NoRootFoundError(BusinessError):
    """Root selector matched no element."""

    def __init__(self, selector: str) -> None:
        super().__init__(f"No roots found for selector: {selector}")
        self.selector = selector


class MultipleRootsFoundError(BusinessError):
    """Root selector matched more than one element."""

    def __init__(self, selector: str, count: int) -> None:
        super().__init__(
            f"Multiple roots found for selector: {selector} ({count} matches)",
            "Use a more specific selector so exactly one element matches",
        )
        self.selector = selector
        self.count = count


class PlatformError(BrickflowError):
    """Unexpected internal failure."""

    pass


class CancelError(BrickflowError):
    """Execution was cancelled."""

    pass


class ConfigError(BrickflowError):
    """Configuration error."""

    pass


class PipelineError(BrickflowError):
    """Pipeline execution error."""

    pass


class PipelineStageError(PipelineError):
    """A pipeline stage failed. The original failure is chained as ``__cause__``."""

    def __init__(
        self,
        message: str,
        *,
        index: int,
        brick_id: str,
        instance_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.index = index
        self.brick_id = brick_id
        self.instance_id = instance_id


class HeadlessModeError(BrickflowError):
    """A renderer was reached while running headless.

    Carries what is needed to render the panel elsewhere.
    """

    def __init__(self, brick_id: str, args: dict[str, Any], context: dict[str, Any]) -> None:
        super().__init__(f"Renderer '{brick_id}' cannot run in headless mode")
        self.brick_id = brick_id
        self.brick_args = args
        self.context = context


_ERROR_TYPES: dict[str, type[BrickflowError]] = {
    cls.__name__: cls
    for cls in (
        BrickflowError,
        ValidationError,
        PipelineDefinitionError,
        BusinessError,
        PlatformError,
        CancelError,
        PipelineError,
    )
}

# Extra attributes worth carrying across serialization.
_SERIALIZED_FIELDS = (
    "suggestion",
    "errors",
    "brick_id",
    "prop",
    "selector",
    "missing",
    "index",
    "instance_id",
)


def serialize_error(error: BaseException) -> dict[str, Any]:
    """Convert an exception (and its cause chain) to a JSON-compatible dict."""
    if isinstance(error, BrickflowError):
        message = error.message
    else:
        message = str(error)

    data: dict[str, Any] = {"name": type(error).__name__, "message": message}

    for field in _SERIALIZED_FIELDS:
        value = getattr(error, field, None)
        if value is not None:
            data[field] = value

    cause = error.__cause__
    if cause is not None:
        data["cause"] = serialize_error(cause)

    return data


def deserialize_error(data: dict[str, Any] | None) -> BrickflowError:
    """Rebuild an exception from :func:`serialize_error` output.

    Subclasses with custom constructors come back as their nearest generic
    ancestor with the same message.
    """
    if not isinstance(data, dict):
        return PlatformError("Unknown error")

    name = str(data.get("name", ""))
    message = str(data.get("message", "Unknown error"))

    if name in _ERROR_TYPES:
        error: BrickflowError = _ERROR_TYPES[name](message, data.get("suggestion"))
    elif name in {"InputValidationError", "OutputKeyError"}:
        error = ValidationError(message, data.get("suggestion"))
    elif name in {
        "NotFoundError",
        "PropError",
        "MissingCapabilityError",
        "NoRootFoundError",
        "MultipleRootsFoundError",
    }:
        error = BusinessError(message, data.get("suggestion"))
    elif name == "PipelineStageError":
        error = PipelineError(message)
    else:
        error = PlatformError(message)

    cause = data.get("cause")
    if isinstance(cause, dict):
        error.__cause__ = deserialize_error(cause)

    return error


def get_root_cause(error: BaseException) -> BaseException:
    """Follow the ``__cause__`` chain to the innermost exception."""
    current = error
    while current.__cause__ is not None:
        current = current.__cause__
    return current


def has_specific_error_cause(error: BaseException, error_type: type[BaseException]) -> bool:
    """True if the error or anything in its cause chain is an ``error_type``."""
    current: BaseException | None = error
    while current is not None:
        if isinstance(current, error_type):
            return True
        current = current.__cause__
    return False


def new_error_reference() -> str:
    return uuid.uuid4().hex[:12]


def get_error_message(error: BaseException, reference: str | None = None) -> str:
    """User-facing message.

    Business errors render their own concise message. Everything else renders a
    generic message plus an opaque reference so the full record can be found in
    the logs.
    """
    root = get_root_cause(error)
    if isinstance(root, (BusinessError, ValidationError, CancelError)):
        return root.message
    return f"An unexpected error occurred (reference: {reference or new_error_reference()})"
