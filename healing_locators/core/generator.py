from __future__ import annotations

import logging

from healing_locators.config.schema import SelectorOptions, SelectorType
from healing_locators.core.exceptions import InvalidSelectorError, NoSelectorGenerated
from healing_locators.core.metadata import SelectorCandidate, SelectorValidation
from healing_locators.core.stability import is_stable_class, is_stable_css_selector
from healing_locators.core.tree import ElementTree
from healing_locators.utils.scoring import score_selector
from healing_locators.utils.selectors import attribute_selector, css_escape, normalize_text, xpath_literal

log = logging.getLogger(__name__)

DEFAULT_PRIORITY = (
    SelectorType.ID,
    SelectorType.DATA_TESTID,
    SelectorType.DATA_TEST,
    SelectorType.ARIA_LABEL,
    SelectorType.NAME,
    SelectorType.PLACEHOLDER,
    SelectorType.TEXT,
    SelectorType.CSS,
    SelectorType.XPATH,
    SelectorType.POSITION,
)

MAX_TEXT_LENGTH = 50
MAX_CSS_DEPTH = 4
MAX_POSITION_DEPTH = 5
MAX_CLASSES = 3


class SelectorGenerator:
    """Produces scored selector candidates for an element in a live tree."""

    def __init__(self, tree: ElementTree) -> None:
        self.tree = tree

    def generate_selector(self, element, options: SelectorOptions | None = None) -> str:
        options = options or SelectorOptions()
        candidates = self.generate_candidates(element, options)
        if not candidates:
            raise NoSelectorGenerated(f"No selector could be generated for <{self.tree.tag_name(element) or '?'}>")

        viable = [
            candidate
            for candidate in candidates
            if (not options.unique or candidate.unique) and (not options.stable or candidate.stable)
        ]
        if not viable:
            log.debug("No candidate met unique=%s stable=%s, using top scored", options.unique, options.stable)
            viable = candidates[:3]

        if options.priority and not options.fallback:
            listed = [candidate for candidate in viable if candidate.type in options.priority]
            viable = listed or viable

        viable.sort(key=lambda item: (self._priority_index(item.type, options.priority), -item.score))
        return viable[0].selector

    def generate_alternative_selectors(self, element, max_alternatives: int = 3) -> list[str]:
        options = SelectorOptions().relaxed(max_alternatives)
        candidates = self.generate_candidates(element, options)

        alternatives: list[str] = []
        used_types: set[SelectorType] = set()
        for candidate in candidates[: max_alternatives * 2]:
            if len(alternatives) >= max_alternatives:
                break
            if candidate.type not in used_types:
                alternatives.append(candidate.selector)
                used_types.add(candidate.type)

        for candidate in candidates:
            if len(alternatives) >= max_alternatives:
                break
            if candidate.selector not in alternatives:
                alternatives.append(candidate.selector)
        return alternatives

    def generate_candidates(self, element, options: SelectorOptions | None = None) -> list[SelectorCandidate]:
        """Emits every applicable candidate, best score first."""

        options = options or SelectorOptions()
        tag = self.tree.tag_name(element) if element is not None else ""
        if not tag:
            raise NoSelectorGenerated("Element is detached or invalid")

        attributes = self.tree.attributes(element)
        ignored = set(options.ignore_attributes)
        candidates: list[SelectorCandidate] = []

        def add(selector: str, selector_type: SelectorType, stable: bool, description: str) -> None:
            candidate = self.candidate(selector, selector_type, stable, description)
            if candidate is not None:
                candidates.append(candidate)

        element_id = attributes.get("id", "").strip()
        if options.include_id and element_id and "id" not in ignored:
            add(f"#{css_escape(element_id)}", SelectorType.ID, True, f"ID selector: {element_id}")

        if options.include_attributes:
            claimed: set[SelectorType] = set()
            for name in options.custom_attributes:
                selector_type = SelectorType.DATA_TESTID if "testid" in name else SelectorType.DATA_TEST
                value = attributes.get(name, "")
                if name in ignored or not value or selector_type in claimed:
                    continue
                claimed.add(selector_type)
                add(attribute_selector(name, value), selector_type, True, f"{name} attribute: {value}")

            aria_label = attributes.get("aria-label", "")
            if options.aria_label_fallback and aria_label and "aria-label" not in ignored:
                add(attribute_selector("aria-label", aria_label), SelectorType.ARIA_LABEL, True, f"ARIA label: {aria_label}")

            name_value = attributes.get("name", "")
            if name_value and "name" not in ignored:
                add(attribute_selector("name", name_value), SelectorType.NAME, True, f"Name attribute: {name_value}")

            placeholder = attributes.get("placeholder", "")
            if placeholder and "placeholder" not in ignored:
                add(
                    attribute_selector("placeholder", placeholder),
                    SelectorType.PLACEHOLDER,
                    False,
                    f"Placeholder: {placeholder}",
                )

        if options.include_text:
            text = normalize_text(self.tree.text(element))
            snippet = text[:MAX_TEXT_LENGTH].strip()
            if len(snippet) > 2:
                add(self.text_selector(tag, snippet, exact=snippet == text), SelectorType.TEXT, False, f"Text content: {snippet}")

        if options.include_class and attributes.get("class", "").strip() and "class" not in ignored:
            css_selector = self.css_path(element)
            if options.optimize:
                css_selector = self._shortest_unique_suffix(css_selector, element)
            add(css_selector, SelectorType.CSS, is_stable_css_selector(css_selector), f"CSS selector: {css_selector}")

        if options.include_class or options.include_position or options.generate_alternatives:
            xpath = self.absolute_xpath(element)
            add(xpath, SelectorType.XPATH, False, f"XPath: {xpath}")

        if options.include_position:
            position_selector = self.position_selector(element)
            add(position_selector, SelectorType.POSITION, False, f"Position-based: {position_selector}")

        candidates.sort(key=lambda item: item.score, reverse=True)
        return candidates

    def validate_selector(self, selector: str) -> SelectorValidation:
        try:
            count = len(self.tree.find_all(selector))
        except InvalidSelectorError as exc:
            return SelectorValidation(is_valid=False, is_unique=False, element_count=0, error=str(exc))
        return SelectorValidation(is_valid=True, is_unique=count == 1, element_count=count)

    def simple_selector(self, element) -> str:
        attributes = self.tree.attributes(element)
        element_id = attributes.get("id", "").strip()
        if element_id:
            return f"#{css_escape(element_id)}"
        tag = self.tree.tag_name(element)
        classes = attributes.get("class", "").split()
        if classes:
            return f"{tag}." + ".".join(css_escape(item) for item in classes)
        return tag

    @staticmethod
    def text_selector(tag: str, text: str, exact: bool = True) -> str:
        if exact:
            return f"//{tag}[normalize-space(.)={xpath_literal(text)}]"
        return f"//{tag}[contains(normalize-space(.), {xpath_literal(text)})]"

    def css_path(self, element) -> str:
        parts: list[str] = []
        current = element
        while current is not None and self.tree.parent(current) is not None:
            tag = self.tree.tag_name(current)
            attributes = self.tree.attributes(current)
            element_id = attributes.get("id", "").strip()
            if element_id:
                parts.insert(0, f"{tag}#{css_escape(element_id)}")
                break

            part = tag
            stable_classes = [item for item in attributes.get("class", "").split() if is_stable_class(item)]
            if stable_classes:
                part += "." + ".".join(css_escape(item) for item in stable_classes[:MAX_CLASSES])

            same_tag = self._same_tag_siblings(current)
            if len(same_tag) > 1:
                part += f":nth-of-type({self._index_of(same_tag, current) + 1})"

            parts.insert(0, part)
            current = self.tree.parent(current)
            if len(parts) >= MAX_CSS_DEPTH:
                break
        return " > ".join(parts)

    def absolute_xpath(self, element) -> str:
        steps: list[str] = []
        current = element
        while current is not None:
            tag = self.tree.tag_name(current)
            step = tag
            if self.tree.parent(current) is not None:
                same_tag = self._same_tag_siblings(current)
                if len(same_tag) > 1:
                    step += f"[{self._index_of(same_tag, current) + 1}]"
            steps.insert(0, step)
            current = self.tree.parent(current)
        return "/" + "/".join(steps)

    def position_selector(self, element) -> str:
        parts: list[str] = []
        current = element
        while current is not None and self.tree.parent(current) is not None:
            siblings = self.tree.children(self.tree.parent(current))
            parts.insert(0, f"{self.tree.tag_name(current)}:nth-child({self._index_of(siblings, current) + 1})")
            current = self.tree.parent(current)
            if len(parts) >= MAX_POSITION_DEPTH:
                break
        return " > ".join(parts)

    def candidate(
        self,
        selector: str,
        selector_type: SelectorType,
        stable: bool,
        description: str,
    ) -> SelectorCandidate | None:
        try:
            count = len(self.tree.find_all(selector))
        except InvalidSelectorError as exc:
            log.debug("Excluding candidate %s: %s", selector, exc)
            return None
        return SelectorCandidate(
            selector=selector,
            type=selector_type,
            score=score_selector(selector, selector_type, count),
            unique=count == 1,
            stable=stable,
            description=description,
            match_count=count,
        )

    def _shortest_unique_suffix(self, selector: str, element) -> str:
        parts = selector.split(" > ")
        for size in range(1, len(parts)):
            suffix = " > ".join(parts[-size:])
            try:
                matches = self.tree.find_all(suffix)
            except InvalidSelectorError:
                continue
            if len(matches) == 1 and matches[0] == element:
                return suffix
        return selector

    def _same_tag_siblings(self, element) -> list:
        parent = self.tree.parent(element)
        if parent is None:
            return [element]
        tag = self.tree.tag_name(element)
        return [child for child in self.tree.children(parent) if self.tree.tag_name(child) == tag]

    @staticmethod
    def _index_of(items: list, element) -> int:
        for index, item in enumerate(items):
            if item == element:
                return index
        return 0

    @staticmethod
    def _priority_index(selector_type: SelectorType, priority: list[SelectorType]) -> int:
        order = list(priority) if priority else list(DEFAULT_PRIORITY)
        if selector_type in order:
            return order.index(selector_type)
        return len(order)
