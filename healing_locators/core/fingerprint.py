from __future__ import annotations

from healing_locators.config.schema import (
    ElementFingerprint,
    ElementLocator,
    PathNode,
    Point,
    SelectorOptions,
    Size,
)
from healing_locators.core.exceptions import NoSelectorGenerated
from healing_locators.core.generator import SelectorGenerator
from healing_locators.core.tree import ElementTree, ancestors

MAX_FINGERPRINT_TEXT = 200


class FingerprintBuilder:
    """Captures the immutable record-time description of an element."""

    def __init__(self, tree: ElementTree, generator: SelectorGenerator | None = None) -> None:
        self.tree = tree
        self.generator = generator or SelectorGenerator(tree)

    def build(self, element, ignore_attributes: list[str] | None = None) -> ElementFingerprint:
        tag = self.tree.tag_name(element) if element is not None else ""
        if not tag:
            raise NoSelectorGenerated("Cannot fingerprint a detached or invalid element")

        ignored = set(ignore_attributes or [])
        attributes = {name: value for name, value in self.tree.attributes(element).items() if name not in ignored}
        text = self.tree.text(element)[:MAX_FINGERPRINT_TEXT]
        box = self.tree.bounding_box(element)
        chain = list(reversed(ancestors(self.tree, element))) + [element]
        return ElementFingerprint(
            tag_name=tag,
            attributes=attributes,
            text_content=text or None,
            position=Point(x=box.x, y=box.y),
            size=Size(width=box.width, height=box.height),
            ancestor_path=tuple(self.path_node(node) for node in chain),
        )

    def path_node(self, element) -> PathNode:
        attributes = self.tree.attributes(element)
        parent = self.tree.parent(element)
        siblings = self.tree.children(parent) if parent is not None else [element]
        index = next((position for position, item in enumerate(siblings) if item == element), 0)
        return PathNode(
            tag_name=self.tree.tag_name(element),
            id=attributes.get("id") or None,
            class_name=attributes.get("class") or None,
            attributes=attributes,
            sibling_index=index,
            selector=self.generator.simple_selector(element),
        )

    def capture(
        self,
        element,
        options: SelectorOptions | None = None,
        key: str = "",
    ) -> ElementLocator:
        """Builds the locator recorded for an interacted-with element."""

        options = options or SelectorOptions()
        primary = self.generator.generate_selector(element, options)
        alternatives = [
            selector
            for selector in self.generator.generate_alternative_selectors(element, options.max_alternatives + 1)
            if selector != primary
        ]
        return ElementLocator(
            key=key,
            primary_selector=primary,
            alternative_selectors=alternatives,
            fingerprint=self.build(element, ignore_attributes=options.ignore_attributes),
            max_alternatives=options.max_alternatives,
        )
