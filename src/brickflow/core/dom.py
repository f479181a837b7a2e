"""Abstract document model the runtime resolves roots against.

A small element tree with CSS-style queries. Supported selector syntax:
type (``div``, ``*``), ``#id``, ``.class``, ``[attr]``, ``[attr=value]``,
descendant (whitespace) and child (``>``) combinators, and selector lists
(``a, b``).
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from html.parser import HTMLParser

from brickflow.core.errors import BusinessError

_VOID_TAGS = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "source",
        "track",
        "wbr",
    }
)


class Node:
    """Common parent/child handling for documents and elements."""

    def __init__(self) -> None:
        self.parent: Node | None = None
        self.nodes: list[Element | str] = []

    @property
    def children(self) -> list[Element]:
        return [n for n in self.nodes if isinstance(n, Element)]

    @property
    def text_content(self) -> str:
        parts: list[str] = []
        for n in self.nodes:
            parts.append(n if isinstance(n, str) else n.text_content)
        return "".join(parts)

    def append(self, *items: Element | str) -> None:
        for item in items:
            if isinstance(item, Element):
                if item.parent is not None:
                    item.remove()
                item.parent = self
            self.nodes.append(item)

    def iter_descendants(self) -> Iterator[Element]:
        """Descendant elements in document order (excluding self)."""
        for child in self.children:
            yield child
            yield from child.iter_descendants()

    def query_selector_all(self, selector: str) -> list[Element]:
        selectors = parse_selector(selector)
        return [
            el
            for el in self.iter_descendants()
            if any(_matches(el, parts, len(parts) - 1) for parts in selectors)
        ]

    def query_selector(self, selector: str) -> Element | None:
        matches = self.query_selector_all(selector)
        return matches[0] if matches else None


class Document(Node):
    """The whole document."""

    def __repr__(self) -> str:
        return f"<Document children={len(self.children)}>"

    @classmethod
    def from_html(cls, markup: str) -> Document:
        builder = _TreeBuilder()
        builder.feed(markup)
        builder.close()
        return builder.document


class Element(Node):
    def __init__(
        self,
        tag: str,
        attrs: dict[str, str] | None = None,
        *children: Element | str,
    ) -> None:
        super().__init__()
        self.tag = tag.lower()
        self.attrs: dict[str, str] = dict(attrs or {})
        self.append(*children)

    def __repr__(self) -> str:
        ident = f"#{self.id}" if self.id else ""
        return f"<Element {self.tag}{ident}>"

    @property
    def id(self) -> str | None:
        return self.attrs.get("id")

    @property
    def classes(self) -> list[str]:
        return self.attrs.get("class", "").split()

    @property
    def is_connected(self) -> bool:
        """True if the element is still attached to a Document."""
        node: Node | None = self.parent
        while node is not None:
            if isinstance(node, Document):
                return True
            node = node.parent
        return False

    def remove(self) -> None:
        if self.parent is None:
            return
        self.parent.nodes = [n for n in self.parent.nodes if n is not self]
        self.parent = None


@dataclass
class _Compound:
    tag: str | None = None
    ids: list[str] = field(default_factory=list)
    classes: list[str] = field(default_factory=list)
    attrs: list[tuple[str, str | None]] = field(default_factory=list)

    def matches(self, el: Element) -> bool:
        if self.tag not in (None, "*") and el.tag != self.tag:
            return False
        if any(el.id != i for i in self.ids):
            return False
        el_classes = el.classes
        if any(c not in el_classes for c in self.classes):
            return False
        for name, value in self.attrs:
            if name not in el.attrs:
                return False
            if value is not None and el.attrs[name] != value:
                return False
        return True


# (combinator to the previous compound, compound); combinator is None for the first
_Complex = list[tuple[str | None, _Compound]]

_TOKEN_RE = re.compile(
    r"""
      (?P<tag>[A-Za-z][\w-]*|\*)
    | \#(?P<id>[\w-]+)
    | \.(?P<cls>[\w-]+)
    | \[\s*(?P<attr>[\w-]+)\s*(?:=\s*(?P<val>"[^"]*"|'[^']*'|[^\]\s]+)\s*)?\]
    """,
    re.VERBOSE,
)
_COMBINATOR_RE = re.compile(r"\s*(>)?\s*")


def _parse_compound(text: str, pos: int) -> tuple[_Compound, int]:
    compound = _Compound()
    start = pos
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None:
            break
        if m.group("tag") is not None:
            if pos != start:
                raise BusinessError(f"Invalid selector: {text!r}")
            compound.tag = m.group("tag").lower()
        elif m.group("id") is not None:
            compound.ids.append(m.group("id"))
        elif m.group("cls") is not None:
            compound.classes.append(m.group("cls"))
        else:
            value = m.group("val")
            if value is not None and value[:1] in {'"', "'"}:
                value = value[1:-1]
            compound.attrs.append((m.group("attr"), value))
        pos = m.end()

    if pos == start:
        raise BusinessError(f"Invalid selector: {text!r}")
    return compound, pos


def _parse_complex(text: str) -> _Complex:
    parts: _Complex = []
    combinator: str | None = None
    pos = 0
    while pos < len(text):
        if text[pos].isspace() or text[pos] == ">":
            m = _COMBINATOR_RE.match(text, pos)
            assert m is not None
            combinator = ">" if m.group(1) else " "
            pos = m.end()
            continue
        if parts and combinator is None:
            raise BusinessError(f"Invalid selector: {text!r}")
        compound, pos = _parse_compound(text, pos)
        parts.append((combinator, compound))
        combinator = None

    if not parts or parts[0][0] is not None or combinator is not None:
        raise BusinessError(f"Invalid selector: {text!r}")
    return parts


def parse_selector(selector: str) -> list[_Complex]:
    """Parse a selector list.

    Raises:
        BusinessError: If the selector is empty or malformed.
    """
    if not isinstance(selector, str) or not selector.strip():
        raise BusinessError("Selector must be a non-empty string")
    return [_parse_complex(part.strip()) for part in selector.split(",")]


def _matches(el: Element, parts: _Complex, index: int) -> bool:
    combinator, compound = parts[index]
    if not compound.matches(el):
        return False
    if index == 0:
        return True

    if combinator == ">":
        parent = el.parent
        return isinstance(parent, Element) and _matches(parent, parts, index - 1)

    ancestor = el.parent
    while isinstance(ancestor, Element):
        if _matches(ancestor, parts, index - 1):
            return True
        ancestor = ancestor.parent
    return False


class _TreeBuilder(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.document = Document()
        self._stack: list[Node] = [self.document]

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        el = Element(tag, {k: v if v is not None else "" for k, v in attrs})
        self._stack[-1].append(el)
        if el.tag not in _VOID_TAGS:
            self._stack.append(el)

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        el = Element(tag, {k: v if v is not None else "" for k, v in attrs})
        self._stack[-1].append(el)

    def handle_endtag(self, tag: str) -> None:
        tag = tag.lower()
        for i in range(len(self._stack) - 1, 0, -1):
            node = self._stack[i]
            if isinstance(node, Element) and node.tag == tag:
                del self._stack[i:]
                return

    def handle_data(self, data: str) -> None:
        self._stack[-1].append(data)
