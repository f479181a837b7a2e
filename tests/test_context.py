"""Tests for ExecutionContext and run metadata."""

from __future__ import annotations

import pytest

from brickflow.core.context import (
    CURRENT_KEY,
    Branch,
    ExecutionContext,
    RunMetadata,
    validate_output_key,
)
from brickflow.core.errors import OutputKeyError


def test_initial_context() -> None:
    ctxt = ExecutionContext.initial(input={"a": 1}, options={"b": 2}, integrations={"@api": "x"})
    assert ctxt == {"@input": {"a": 1}, "@options": {"b": 2}, "@api": "x"}
    assert ctxt.current is None


def test_integrations_cannot_override_reserved_keys() -> None:
    ctxt = ExecutionContext.initial(input={"a": 1}, integrations={"@input": "hijack"})
    assert ctxt["@input"] == {"a": 1}


def test_bind_returns_new_context() -> None:
    ctxt = ExecutionContext.initial()
    bound = ctxt.bind("title", "Hello")

    assert bound["@title"] == "Hello"
    assert "@title" not in ctxt


def test_bind_overwrites_previous_binding() -> None:
    ctxt = ExecutionContext.initial().bind("x", 1).bind("x", 2)
    assert ctxt["@x"] == 2


def test_with_current() -> None:
    ctxt = ExecutionContext.initial().with_current([1, 2])
    assert ctxt.current == [1, 2]
    assert ctxt[CURRENT_KEY] == [1, 2]


def test_extend_adds_prefix() -> None:
    ctxt = ExecutionContext.initial().extend({"element": 1, "@index": 0})
    assert ctxt["@element"] == 1
    assert ctxt["@index"] == 0


def test_extend_with_nothing_returns_same_context() -> None:
    ctxt = ExecutionContext.initial()
    assert ctxt.extend(None) is ctxt
    assert ctxt.extend({}) is ctxt


def test_to_dict_is_a_copy() -> None:
    ctxt = ExecutionContext.initial()
    data = ctxt.to_dict()
    data["@evil"] = True
    assert "@evil" not in ctxt


@pytest.mark.parametrize("key", ["title", "a1", "snake_case", "X"])
def test_valid_output_keys(key: str) -> None:
    assert validate_output_key(key) == key


@pytest.mark.parametrize("key", ["", "1abc", "has space", "@title", "input", "options", "current"])
def test_invalid_output_keys(key: str) -> None:
    with pytest.raises(OutputKeyError):
        validate_output_key(key)


def test_run_metadata_branches() -> None:
    meta = RunMetadata(mod_component_id="mod-1")
    child = meta.with_branch(Branch("body", 2)).with_branch(Branch("try"))

    assert meta.branches == ()
    assert child.run_id == meta.run_id
    assert [b.to_dict() for b in child.branches] == [
        {"key": "body", "counter": 2},
        {"key": "try", "counter": 0},
    ]


def test_run_ids_are_unique() -> None:
    assert RunMetadata("m").run_id != RunMetadata("m").run_id
