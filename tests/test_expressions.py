"""Tests for expression resolution."""

from __future__ import annotations

import pytest

from brickflow.core.context import ExecutionContext
from brickflow.core.errors import InputValidationError, ValidationError
from brickflow.core.expressions import (
    MISSING,
    is_expression,
    is_pipeline_expression,
    lookup_var,
    parse_var_path,
    render_template,
    resolve,
    to_boolean,
    to_expression,
)


@pytest.fixture
def ctxt() -> ExecutionContext:
    return ExecutionContext.initial(input={"name": "Ada", "tags": ["a", "b"]}).bind(
        "user", {"profile": {"first name": "Grace"}, "age": 36}
    )


def test_to_expression_rejects_unknown_type() -> None:
    with pytest.raises(ValidationError):
        to_expression("javascript", "1 + 1")


def test_is_expression_requires_exact_shape() -> None:
    assert is_expression({"__type__": "var", "__value__": "@input"})
    assert not is_expression({"__type__": "var", "__value__": "@input", "extra": 1})
    assert not is_expression({"__type__": "other", "__value__": "x"})
    assert not is_expression("@input")


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("@input", ("@input", [])),
        ("@input.name", ("@input", ["name"])),
        ("@data.items[0].name", ("@data", ["items", 0, "name"])),
        ('@user.profile["first name"]', ("@user", ["profile", "first name"])),
        ("@user?.profile?.age", ("@user", ["profile", "age"])),
        ("@list['key']", ("@list", ["key"])),
    ],
)
def test_parse_var_path(path: str, expected: tuple[str, list[object]]) -> None:
    assert parse_var_path(path) == expected


@pytest.mark.parametrize("path", ["", "@input..name", "@input[", "@input.name!"])
def test_parse_var_path_rejects_malformed(path: str) -> None:
    with pytest.raises(ValidationError):
        parse_var_path(path)


def test_lookup_var(ctxt: ExecutionContext) -> None:
    assert lookup_var("@input.name", ctxt) == "Ada"
    assert lookup_var("@input.tags[1]", ctxt) == "b"
    assert lookup_var('@user.profile["first name"]', ctxt) == "Grace"


def test_lookup_missing_path_is_missing(ctxt: ExecutionContext) -> None:
    assert lookup_var("@input.unknown", ctxt) is MISSING
    assert lookup_var("@input.unknown.deeper", ctxt) is MISSING
    assert lookup_var("@input.tags[5]", ctxt) is MISSING


def test_lookup_unbound_root_raises(ctxt: ExecutionContext) -> None:
    with pytest.raises(InputValidationError) as exc_info:
        lookup_var("@nothing.here", ctxt)
    assert exc_info.value.errors[0]["keyword"] == "var"


def test_render_template_with_and_without_prefix(ctxt: ExecutionContext) -> None:
    assert render_template("Hi {{ @input.name }}", ctxt) == "Hi Ada"
    assert render_template("Hi {{ input.name }}", ctxt) == "Hi Ada"
    assert render_template("{{ user.age + 1 }}", ctxt) == "37"


def test_render_template_keeps_at_outside_tags(ctxt: ExecutionContext) -> None:
    assert render_template("mail @input.name", ctxt) == "mail @input.name"


def test_render_template_keeps_at_inside_string_literals(ctxt: ExecutionContext) -> None:
    assert render_template('{{ "@home" }} x', ctxt) == "@home x"
    assert render_template("{{ '@' ~ @input.name }}", ctxt) == "@Ada"


def test_render_template_undefined_is_empty(ctxt: ExecutionContext) -> None:
    assert render_template("[{{ missing.deep.path }}]", ctxt) == "[]"


def test_render_template_loops(ctxt: ExecutionContext) -> None:
    assert render_template("{% for t in @input.tags %}{{ t }};{% endfor %}", ctxt) == "a;b;"


def test_render_template_syntax_error(ctxt: ExecutionContext) -> None:
    with pytest.raises(ValidationError):
        render_template("{{ unclosed", ctxt)


def test_resolve_literals_unchanged(ctxt: ExecutionContext) -> None:
    assert resolve(5, ctxt) == 5
    assert resolve("plain", ctxt) == "plain"
    assert resolve(None, ctxt) is None


def test_resolve_nested_containers(ctxt: ExecutionContext) -> None:
    config = {
        "name": to_expression("var", "@input.name"),
        "greeting": to_expression("template", "Hello {{ input.name }}"),
        "list": [to_expression("var", "@user.age"), "literal"],
        "nested": {"tag": to_expression("nunjucks", "{{ input.tags | join(',') }}")},
    }
    assert resolve(config, ctxt) == {
        "name": "Ada",
        "greeting": "Hello Ada",
        "list": [36, "literal"],
        "nested": {"tag": "a,b"},
    }


def test_resolve_drops_missing_keys(ctxt: ExecutionContext) -> None:
    config = {"a": to_expression("var", "@input.unknown"), "b": 1}
    assert resolve(config, ctxt) == {"b": 1}


def test_resolve_missing_in_list_is_none(ctxt: ExecutionContext) -> None:
    assert resolve([to_expression("var", "@input.unknown")], ctxt) == [None]


def test_resolve_missing_at_top_level_is_none(ctxt: ExecutionContext) -> None:
    assert resolve(to_expression("var", "@input.unknown"), ctxt) is None


def test_resolve_passes_pipeline_and_defer_through(ctxt: ExecutionContext) -> None:
    pipeline = to_expression("pipeline", [{"id": "@test/echo"}])
    deferred = to_expression("defer", {"x": to_expression("var", "@element")})
    resolved = resolve({"body": pipeline, "later": deferred}, ctxt)

    assert resolved["body"] is pipeline
    assert is_pipeline_expression(resolved["body"])
    assert resolved["later"] is deferred


def test_resolve_does_not_mutate_config(ctxt: ExecutionContext) -> None:
    config = {"name": to_expression("var", "@input.name")}
    resolve(config, ctxt)
    assert config == {"name": {"__type__": "var", "__value__": "@input.name"}}


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (True, True),
        (False, False),
        (None, False),
        (0, False),
        (1, True),
        ("", False),
        ("false", False),
        ("FALSE", False),
        ("no", False),
        ("0", False),
        ("off", False),
        ("yes", True),
        ("anything", True),
        ([], False),
        ([0], True),
    ],
)
def test_to_boolean(value: object, expected: bool) -> None:
    assert to_boolean(value) is expected
