"""Root/target resolution.

Every node runs against a root: the whole document, the root inherited from
its parent, or exactly one element picked by a selector or an element handle.
"""

from __future__ import annotations

import uuid
import weakref
from enum import StrEnum
from typing import Any, TypeAlias

from brickflow.core.dom import Document, Element
from brickflow.core.errors import BusinessError, MultipleRootsFoundError, NoRootFoundError

Root: TypeAlias = Document | Element


class RootMode(StrEnum):
    """How a node picks its root."""

    INHERIT = "inherit"
    DOCUMENT = "document"
    ELEMENT = "element"


class ElementReferences:
    """Opaque handles for elements.

    Handles hold weak references; an element that has been garbage collected
    or detached from its document no longer dereferences.
    """

    def __init__(self) -> None:
        self._refs: dict[str, weakref.ref[Element]] = {}

    def get_reference(self, element: Element) -> str:
        for handle, ref in self._refs.items():
            if ref() is element:
                return handle
        handle = str(uuid.uuid4())
        self._refs[handle] = weakref.ref(element)
        return handle

    def dereference(self, handle: str) -> Element:
        """Return the live element for ``handle``.

        Raises:
            BusinessError: If the handle is unknown or the element is gone.
        """
        ref = self._refs.get(handle)
        element = ref() if ref is not None else None
        if element is None or not element.is_connected:
            self._refs.pop(handle, None)
            raise BusinessError(
                f"Element reference {handle} is no longer attached to the document",
                "Re-select the element before running the brick",
            )
        return element

    def __contains__(self, handle: object) -> bool:
        return handle in self._refs


_global_references: ElementReferences | None = None


def get_element_references() -> ElementReferences:
    """Get global element handle provider."""
    global _global_references
    if _global_references is None:
        _global_references = ElementReferences()
    return _global_references


def _select_one(scope: Root, selector: str) -> Element:
    matches = scope.query_selector_all(selector)
    if not matches:
        raise NoRootFoundError(selector)
    if len(matches) > 1:
        raise MultipleRootsFoundError(selector, len(matches))
    return matches[0]


def resolve_root(
    root_mode: RootMode | str | None,
    selector_or_handle: Any,
    parent_root: Root,
    document: Document,
    references: ElementReferences | None = None,
) -> Root:
    """Resolve the root for a node.

    Args:
        root_mode: ``inherit`` (default), ``document`` or ``element``
        selector_or_handle: Selector string, Element, element handle or None
        parent_root: Root of the enclosing pipeline
        document: The whole document
        references: Handle provider for ``element`` mode (global one by default)

    Returns:
        The parent root unchanged, the document, or exactly one element

    Raises:
        BusinessError: If a selector matches zero or several elements, or a
            handle no longer refers to a live element
    """
    mode = RootMode(root_mode or RootMode.INHERIT)

    if isinstance(selector_or_handle, Element):
        if not selector_or_handle.is_connected:
            raise BusinessError("Root element is no longer attached to the document")
        return selector_or_handle

    if mode is RootMode.ELEMENT:
        if not selector_or_handle:
            raise BusinessError("Element root mode requires an element reference")
        refs = references or get_element_references()
        if selector_or_handle in refs:
            return refs.dereference(str(selector_or_handle))
        # Not a handle: treat as a selector against the document
        return _select_one(document, str(selector_or_handle))

    if not selector_or_handle:
        return document if mode is RootMode.DOCUMENT else parent_root

    if not isinstance(selector_or_handle, str):
        kind = type(selector_or_handle).__name__
        raise BusinessError(f"Invalid root: expected selector string, got {kind}")

    scope = document if mode is RootMode.DOCUMENT else parent_root
    return _select_one(scope, selector_or_handle)
