"""Expression resolution.

Config values are either literals or tagged expressions of the form
``{"__type__": <tag>, "__value__": <payload>}``:

- ``var``: a path into the context, e.g. ``@input.items[0].name``
- ``template`` / ``nunjucks``: a Jinja2 template rendered against the context
- ``pipeline`` / ``defer``: passed through untouched for the interpreter

Resolution is synchronous, performs no I/O and never mutates the context.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from jinja2 import ChainableUndefined, Environment, TemplateError

from brickflow.core.errors import InputValidationError, ValidationError

TYPE_KEY = "__type__"
VALUE_KEY = "__value__"

VAR = "var"
TEMPLATE = "template"
NUNJUCKS = "nunjucks"
PIPELINE = "pipeline"
DEFER = "defer"

EXPRESSION_TYPES = frozenset({VAR, TEMPLATE, NUNJUCKS, PIPELINE, DEFER})
TEMPLATE_TYPES = frozenset({TEMPLATE, NUNJUCKS})

_FALSY_STRINGS = frozenset({"", "false", "no", "0", "off"})


class _Missing:
    """Marker for a path that does not exist (distinct from an explicit None)."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def to_expression(tag: str, value: Any) -> dict[str, Any]:
    if tag not in EXPRESSION_TYPES:
        raise ValidationError(f"Unknown expression type: {tag!r}")
    return {TYPE_KEY: tag, VALUE_KEY: value}


def is_expression(value: Any) -> bool:
    return (
        isinstance(value, Mapping)
        and set(value.keys()) == {TYPE_KEY, VALUE_KEY}
        and value[TYPE_KEY] in EXPRESSION_TYPES
    )


def is_var_expression(value: Any) -> bool:
    return is_expression(value) and value[TYPE_KEY] == VAR


def is_template_expression(value: Any) -> bool:
    return is_expression(value) and value[TYPE_KEY] in TEMPLATE_TYPES


def is_pipeline_expression(value: Any) -> bool:
    return is_expression(value) and value[TYPE_KEY] == PIPELINE


def is_deferred_expression(value: Any) -> bool:
    return is_expression(value) and value[TYPE_KEY] == DEFER


def to_boolean(value: Any) -> bool:
    """Truthiness for ``if`` guards and flags: strings like ``"false"`` are falsy."""
    if isinstance(value, str):
        return value.strip().lower() not in _FALSY_STRINGS
    return bool(value)


# ---------------------------------------------------------------------------
# Variable paths
# ---------------------------------------------------------------------------

_ROOT_RE = re.compile(r"\s*(?P<root>@?[A-Za-z_$][\w$-]*)")
_SEGMENT_RE = re.compile(
    r"""
      \??\.(?P<name>[A-Za-z_$][\w$-]*)
    | (?:\?\.)?\[\s*(?:(?P<index>-?\d+)|"(?P<dq>[^"]*)"|'(?P<sq>[^']*)')\s*\]
    """,
    re.VERBOSE,
)


def parse_var_path(path: str) -> tuple[str, list[str | int]]:
    """Split ``@data.items[0]["k"]`` into ``("@data", ["items", 0, "k"])``.

    Raises:
        ValidationError: If the path is malformed.
    """
    if not isinstance(path, str):
        raise ValidationError(f"Variable path must be a string, got {type(path).__name__}")

    m = _ROOT_RE.match(path)
    if m is None:
        raise ValidationError(f"Invalid variable path: {path!r}")
    root = m.group("root")

    segments: list[str | int] = []
    pos = m.end()
    end = len(path.rstrip())
    while pos < end:
        seg = _SEGMENT_RE.match(path, pos)
        if seg is None:
            raise ValidationError(f"Invalid variable path: {path!r}")
        if seg.group("name") is not None:
            segments.append(seg.group("name"))
        elif seg.group("index") is not None:
            segments.append(int(seg.group("index")))
        elif seg.group("dq") is not None:
            segments.append(seg.group("dq"))
        else:
            segments.append(seg.group("sq"))
        pos = seg.end()

    return root, segments


def _get_segment(value: Any, segment: str | int) -> Any:
    if isinstance(value, Mapping):
        if segment in value:
            return value[segment]
        return value.get(str(segment), MISSING)
    if isinstance(value, (list, tuple)):
        if isinstance(segment, str) and segment.lstrip("-").isdigit():
            segment = int(segment)
        if isinstance(segment, int) and -len(value) <= segment < len(value):
            return value[segment]
        return MISSING
    if isinstance(segment, str) and not segment.startswith("_"):
        return getattr(value, segment, MISSING)
    return MISSING


def lookup_var(path: str, context: Mapping[str, Any]) -> Any:
    """Look up a variable path.

    Returns:
        The value, or MISSING when a segment below the root does not exist

    Raises:
        InputValidationError: If the root variable is not bound in the context
    """
    root, segments = parse_var_path(path)

    if root not in context:
        message = f"Variable {root} is not defined"
        raise InputValidationError(
            message,
            schema={},
            value=path,
            errors=[{"keyword": "var", "location": path, "message": message}],
        )

    value = context[root]
    for segment in segments:
        if value is None or value is MISSING:
            return MISSING
        value = _get_segment(value, segment)
    return value


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

_env = Environment(undefined=ChainableUndefined, autoescape=False, keep_trailing_newline=True)

_TAG_RE = re.compile(r"\{\{.*?\}\}|\{%.*?%\}", re.DOTALL)
# Quoted strings are matched first so an @ inside a literal is kept
_AT_NAME_RE = re.compile(
    r"""('(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")|(?<![\w.])@(?=[A-Za-z_])"""
)


def _strip_at_prefixes(tag: re.Match[str]) -> str:
    return _AT_NAME_RE.sub(lambda m: m.group(1) or "", tag.group(0))


def _template_variables(context: Mapping[str, Any]) -> dict[str, Any]:
    variables: dict[str, Any] = {}
    for key, value in context.items():
        name = key[1:] if key.startswith("@") else key
        variables[name] = value
    return variables


def render_template(template: str, context: Mapping[str, Any]) -> str:
    """Render a Jinja2 template against the context.

    ``@``-prefixed variables may be written with or without the prefix;
    undefined names render as an empty string.

    Raises:
        ValidationError: If the template does not compile or render.
    """
    if not isinstance(template, str):
        raise ValidationError(f"Template must be a string, got {type(template).__name__}")

    source = _TAG_RE.sub(_strip_at_prefixes, template)
    try:
        return _env.from_string(source).render(**_template_variables(context))
    except TemplateError as e:
        raise ValidationError(f"Template rendering failed for '{template}': {e}") from e


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def _resolve(value: Any, context: Mapping[str, Any]) -> Any:
    if is_expression(value):
        tag = value[TYPE_KEY]
        payload = value[VALUE_KEY]
        if tag == VAR:
            return lookup_var(payload, context)
        if tag in TEMPLATE_TYPES:
            return render_template(payload, context)
        # pipeline / defer: the interpreter or the brick expands these
        return value

    if isinstance(value, Mapping):
        resolved: dict[str, Any] = {}
        for key, item in value.items():
            item = _resolve(item, context)
            if item is not MISSING:
                resolved[key] = item
        return resolved

    if isinstance(value, (list, tuple)):
        items = [_resolve(v, context) for v in value]
        return [None if item is MISSING else item for item in items]

    return value


def resolve(expression: Any, context: Mapping[str, Any], root: Any = None) -> Any:
    """Resolve a config value against the context.

    Literal containers are copied and walked so nested expressions resolve.
    Keys whose variable path is missing are dropped from mappings; a missing
    path at the top level resolves to None.

    Args:
        expression: Literal or tagged expression
        context: Variables visible to the node
        root: The node's resolved root (not consulted by the built-in
            expression types)

    Returns:
        The resolved value

    Raises:
        InputValidationError: If a variable's root is not bound
        ValidationError: If a path or template is malformed
    """
    result = _resolve(expression, context)
    return None if result is MISSING else result
