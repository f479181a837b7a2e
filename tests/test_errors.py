"""Tests for the error taxonomy, serialization and schema validation."""

from __future__ import annotations

import pytest

from brickflow.core.errors import (
    BrickflowError,
    BusinessError,
    CancelError,
    InputValidationError,
    MultipleRootsFoundError,
    NotFoundError,
    PipelineError,
    PipelineStageError,
    PlatformError,
    PropError,
    ValidationError,
    deserialize_error,
    get_error_message,
    get_root_cause,
    has_specific_error_cause,
    serialize_error,
)
from brickflow.core.validation import schema_errors, validate_input


def _stage_error(cause: BaseException) -> PipelineStageError:
    try:
        try:
            raise cause
        except BaseException as e:
            raise PipelineStageError(
                "An error occurred running pipeline stage #1: @x/y", index=0, brick_id="@x/y"
            ) from e
    except PipelineStageError as wrapped:
        return wrapped


def test_str_includes_suggestion() -> None:
    err = BrickflowError("Something failed", "Try again")
    assert str(err) == "Something failed\nSuggestion: Try again"
    assert err.message == "Something failed"


def test_taxonomy() -> None:
    assert issubclass(InputValidationError, ValidationError)
    assert issubclass(NotFoundError, BusinessError)
    assert issubclass(PropError, BusinessError)
    assert issubclass(PipelineStageError, PipelineError)
    assert issubclass(CancelError, BrickflowError)


def test_serialize_follows_cause_chain() -> None:
    err = _stage_error(PropError("Bad value", "@x/y", "count", -1))
    data = serialize_error(err)

    assert data["name"] == "PipelineStageError"
    assert data["index"] == 0
    assert data["brick_id"] == "@x/y"
    assert data["cause"] == {
        "name": "PropError",
        "message": "Bad value",
        "brick_id": "@x/y",
        "prop": "count",
    }


def test_serialize_foreign_exception() -> None:
    assert serialize_error(KeyError("k")) == {"name": "KeyError", "message": "'k'"}


def test_deserialize_keeps_message_and_family() -> None:
    original = _stage_error(MultipleRootsFoundError("li", 2))
    restored = deserialize_error(serialize_error(original))

    assert isinstance(restored, PipelineError)
    assert isinstance(restored.__cause__, BusinessError)
    assert restored.__cause__.message == "Multiple roots found for selector: li (2 matches)"


def test_deserialize_garbage() -> None:
    assert isinstance(deserialize_error(None), PlatformError)
    assert isinstance(deserialize_error({"name": "Weird", "message": "x"}), PlatformError)


def test_root_cause_and_specific_cause() -> None:
    cancel = CancelError("stopped")
    err = _stage_error(cancel)

    assert get_root_cause(err) is cancel
    assert has_specific_error_cause(err, CancelError)
    assert not has_specific_error_cause(err, NotFoundError)


def test_user_message_for_business_error() -> None:
    err = _stage_error(NotFoundError("@x/missing"))
    assert get_error_message(err, "ref") == "Brick '@x/missing' not found"


def test_user_message_for_unexpected_error() -> None:
    err = _stage_error(RuntimeError("internal detail"))
    message = get_error_message(err, "abc123")
    assert message == "An unexpected error occurred (reference: abc123)"
    assert "internal detail" not in message


SCHEMA = {
    "type": "object",
    "properties": {
        "items": {"type": "array", "items": {"type": "integer"}},
        "name": {"type": "string"},
    },
    "required": ["name"],
}


def test_schema_errors_report_locations() -> None:
    errors = schema_errors(SCHEMA, {"name": "x", "items": [1, "two"]})
    assert errors == [
        {"keyword": "type", "location": "#/items/1", "message": "'two' is not of type 'integer'"}
    ]


def test_schema_errors_empty_schema_accepts_anything() -> None:
    assert schema_errors({}, object()) == []
    assert schema_errors(None, 1) == []


def test_invalid_schema_raises() -> None:
    with pytest.raises(ValidationError, match="Invalid JSON schema"):
        schema_errors({"type": "no-such-type"}, 1)


def test_validate_input_raises_with_all_errors() -> None:
    with pytest.raises(InputValidationError) as exc_info:
        validate_input("@x/y", SCHEMA, {"items": ["a"]})

    err = exc_info.value
    assert err.message.startswith("Invalid inputs for brick @x/y: ")
    assert {e["keyword"] for e in err.errors} == {"required", "type"}
    assert err.value == {"items": ["a"]}
