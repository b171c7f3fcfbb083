from __future__ import annotations

import re
from pathlib import Path

from cssselect import HTMLTranslator, SelectorError
from lxml import etree, html

from healing_locators.core.exceptions import InvalidSelectorError
from healing_locators.core.tree import BoundingBox
from healing_locators.utils.selectors import infer_selector_type, normalize_text

_HIDDEN_STYLE = re.compile(r"(display\s*:\s*none|visibility\s*:\s*hidden)", re.IGNORECASE)


class HtmlElementTree:
    """Element tree over a parsed HTML document.

    Used to replay against DOM snapshots written by the artifact manager and
    as the in-memory tree in tests. Layout is not computed: bounding boxes
    are supplied per selector and default to an empty box.
    """

    def __init__(self, markup: str, layout: dict[str, BoundingBox] | None = None) -> None:
        self.root = html.document_fromstring(markup)
        self._translator = HTMLTranslator()
        self._xpath_cache: dict[str, str] = {}
        self._boxes: dict[html.HtmlElement, BoundingBox] = {}
        for selector, box in (layout or {}).items():
            for element in self.find_all(selector):
                self._boxes[element] = box

    @classmethod
    def from_file(cls, path: str | Path, layout: dict[str, BoundingBox] | None = None) -> HtmlElementTree:
        return cls(Path(path).read_text(encoding="utf-8"), layout=layout)

    @property
    def page_source(self) -> str:
        return html.tostring(self.root, encoding="unicode")

    def set_box(self, selector: str, box: BoundingBox) -> None:
        for element in self.find_all(selector):
            self._boxes[element] = box

    def find(self, selector: str):
        matches = self.find_all(selector)
        return matches[0] if matches else None

    def find_all(self, selector: str) -> list:
        expression = self._to_xpath(selector)
        try:
            results = self.root.xpath(expression)
        except etree.XPathError as exc:
            raise InvalidSelectorError(selector, str(exc)) from exc
        if not isinstance(results, list):
            return []
        return [item for item in results if isinstance(item, etree._Element) and isinstance(item.tag, str)]

    def attributes(self, handle) -> dict[str, str]:
        return {str(name): str(value) for name, value in handle.attrib.items()}

    def text(self, handle) -> str:
        return normalize_text(handle.text_content())

    def bounding_box(self, handle) -> BoundingBox:
        return self._boxes.get(handle, BoundingBox())

    def element_at_point(self, x: float, y: float):
        hit = None
        for element in self.root.iter():
            if not isinstance(element.tag, str):
                continue
            box = self._boxes.get(element)
            if box is not None and box.contains(x, y) and self.is_visible(element):
                hit = element
        return hit

    def tag_name(self, handle) -> str:
        tag = getattr(handle, "tag", "")
        return tag.lower() if isinstance(tag, str) else ""

    def parent(self, handle):
        return handle.getparent()

    def children(self, handle) -> list:
        return [child for child in handle if isinstance(child.tag, str)]

    def is_visible(self, handle) -> bool:
        current = handle
        while current is not None:
            if "hidden" in current.attrib or _HIDDEN_STYLE.search(current.get("style", "")):
                return False
            current = current.getparent()
        return True

    def _to_xpath(self, selector: str) -> str:
        if infer_selector_type(selector) == "xpath":
            return selector
        cached = self._xpath_cache.get(selector)
        if cached is not None:
            return cached
        try:
            expression = self._translator.css_to_xpath(selector)
        except SelectorError as exc:
            raise InvalidSelectorError(selector, str(exc)) from exc
        self._xpath_cache[selector] = expression
        return expression
