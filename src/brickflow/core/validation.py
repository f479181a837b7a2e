"""JSON Schema validation of brick inputs and outputs."""

from __future__ import annotations

from typing import Any

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

from brickflow.core.errors import InputValidationError, ValidationError


def _location(error: Any) -> str:
    parts = [str(p) for p in error.absolute_path]
    return "#/" + "/".join(parts) if parts else "#"


def schema_errors(schema: dict[str, Any] | None, value: Any) -> list[dict[str, Any]]:
    """Validate ``value`` and return the violated constraints.

    Each entry has ``keyword``, ``location`` (a JSON pointer into the value)
    and ``message``. An empty or missing schema accepts anything.

    Raises:
        ValidationError: If the schema itself is invalid.
    """
    if not schema:
        return []

    try:
        Draft7Validator.check_schema(schema)
    except SchemaError as e:
        raise ValidationError(f"Invalid JSON schema: {e.message}") from e

    validator = Draft7Validator(schema)
    errors = sorted(
        validator.iter_errors(value), key=lambda e: [str(p) for p in e.absolute_path]
    )
    return [
        {"keyword": str(e.validator), "location": _location(e), "message": e.message}
        for e in errors
    ]


def validate_input(brick_id: str, schema: dict[str, Any] | None, args: dict[str, Any]) -> None:
    """Raise InputValidationError if ``args`` do not match the input schema."""
    errors = schema_errors(schema, args)
    if errors:
        first = errors[0]
        raise InputValidationError(
            f"Invalid inputs for brick {brick_id}: {first['location']}: {first['message']}",
            schema=dict(schema or {}),
            value=args,
            errors=errors,
        )
