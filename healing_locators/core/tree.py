from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

ElementHandle = Any


@dataclass(frozen=True, slots=True)
class BoundingBox:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    def contains(self, x: float, y: float) -> bool:
        return self.x <= x <= self.x + self.width and self.y <= y <= self.y + self.height


@runtime_checkable
class ElementTree(Protocol):
    """Query capability over a live or captured element tree.

    Selectors beginning with ``/`` or ``(`` are XPath expressions, anything
    else is CSS. ``find``/``find_all`` raise ``InvalidSelectorError`` when
    the selector is malformed and return ``None``/``[]`` when nothing matches.
    """

    def find(self, selector: str) -> ElementHandle | None: ...

    def find_all(self, selector: str) -> list[ElementHandle]: ...

    def attributes(self, handle: ElementHandle) -> dict[str, str]: ...

    def text(self, handle: ElementHandle) -> str: ...

    def bounding_box(self, handle: ElementHandle) -> BoundingBox: ...

    def element_at_point(self, x: float, y: float) -> ElementHandle | None: ...

    def tag_name(self, handle: ElementHandle) -> str: ...

    def parent(self, handle: ElementHandle) -> ElementHandle | None: ...

    def children(self, handle: ElementHandle) -> list[ElementHandle]: ...

    def is_visible(self, handle: ElementHandle) -> bool: ...


def element_depth(tree: ElementTree, handle: ElementHandle) -> int:
    depth = 0
    current = handle
    while (parent := tree.parent(current)) is not None:
        depth += 1
        current = parent
    return depth


def ancestors(tree: ElementTree, handle: ElementHandle) -> list[ElementHandle]:
    """Returns the element's ancestors, closest first, excluding the document root."""

    chain: list[ElementHandle] = []
    current = tree.parent(handle)
    while current is not None and tree.parent(current) is not None:
        chain.append(current)
        current = tree.parent(current)
    return chain
