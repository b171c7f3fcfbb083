from __future__ import annotations

import itertools
import logging
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

from healing_locators.config.schema import (
    ElementFingerprint,
    HealingStrategySettings,
    SelectorOptions,
    SelectorType,
)
from healing_locators.core.exceptions import InvalidSelectorError
from healing_locators.core.generator import SelectorGenerator
from healing_locators.core.metadata import HealingMatch, SelectorCandidate
from healing_locators.core.tree import BoundingBox, ElementTree
from healing_locators.utils.scoring import similarity_score
from healing_locators.utils.selectors import (
    attribute_selector,
    css_escape,
    normalize_text,
    parse_selector,
    xpath_literal,
)

log = logging.getLogger(__name__)

_ATTRIBUTE_OPERATOR = re.compile(r"[~|^$*]?=")


@dataclass(slots=True)
class StrategyContext:
    """What a matcher may use to query the current tree."""

    tree: ElementTree
    generator: SelectorGenerator
    original_selector: str
    options: SelectorOptions
    find: Callable[[str], Any]


Matcher = Callable[[ElementFingerprint, StrategyContext, dict[str, Any]], HealingMatch | None]


@dataclass(slots=True)
class HealingStrategy:
    name: str
    priority: int
    matcher: Matcher
    enabled: bool = True
    config: dict[str, Any] = field(default_factory=dict)

    def apply(self, fingerprint: ElementFingerprint, context: StrategyContext) -> HealingMatch | None:
        return self.matcher(fingerprint, context, self.config)


class StrategyRegistry:
    """Ordered collection of healing strategies keyed by name."""

    def __init__(self, strategies: list[HealingStrategy] | None = None) -> None:
        self._strategies: dict[str, HealingStrategy] = {}
        for strategy in strategies or []:
            self.register(strategy)

    def register(self, strategy: HealingStrategy) -> None:
        self._strategies[strategy.name] = strategy

    def unregister(self, name: str) -> None:
        self.get(name)
        del self._strategies[name]

    def get(self, name: str) -> HealingStrategy:
        try:
            return self._strategies[name]
        except KeyError:
            raise KeyError(f"Unknown healing strategy: {name}") from None

    def enable(self, name: str) -> None:
        self.get(name).enabled = True

    def disable(self, name: str) -> None:
        self.get(name).enabled = False

    def set_priority(self, name: str, priority: int) -> None:
        self.get(name).priority = priority

    def configure(self, settings: list[HealingStrategySettings]) -> None:
        for item in settings:
            strategy = self.get(item.name)
            if item.priority is not None:
                strategy.priority = item.priority
            if item.enabled is not None:
                strategy.enabled = item.enabled
            strategy.config.update(item.config)

    def ordered(self) -> list[HealingStrategy]:
        enabled = [strategy for strategy in self._strategies.values() if strategy.enabled]
        return sorted(enabled, key=lambda strategy: strategy.priority, reverse=True)

    def __iter__(self) -> Iterator[HealingStrategy]:
        return iter(list(self._strategies.values()))

    def __len__(self) -> int:
        return len(self._strategies)


def verify_match(tree: ElementTree, element, fingerprint: ElementFingerprint) -> bool:
    """Re-checks a located element against the recorded fingerprint."""

    if element is None or tree.tag_name(element) != fingerprint.tag_name:
        return False
    expected_text = normalize_text(fingerprint.text_content)
    if expected_text and expected_text not in tree.text(element):
        return False
    return True


def match_by_text(fingerprint: ElementFingerprint, context: StrategyContext, config: dict[str, Any]) -> HealingMatch | None:
    text = normalize_text(fingerprint.text_content)
    if not text:
        return None

    tag = fingerprint.tag_name
    literal = xpath_literal(text)
    selectors = [
        _innermost(tag, f"normalize-space(.)={literal}"),
        _innermost(tag, f"contains(normalize-space(.), {literal})"),
    ]
    min_length = config.get("min_word_length", 3)
    words = [word for word in text.split() if len(word) >= min_length]
    if words:
        clauses = " and ".join(f"contains(., {xpath_literal(word)})" for word in words)
        selectors.append(_innermost(tag, clauses))
    selectors.append(f"//*[contains(text(), {literal})]")

    for selector in selectors:
        found = _try_selector(context, fingerprint, selector, SelectorType.TEXT, 0.7)
        if found is not None:
            return found
    return None


def match_by_attributes(
    fingerprint: ElementFingerprint,
    context: StrategyContext,
    config: dict[str, Any],
) -> HealingMatch | None:
    attributes = fingerprint.attributes
    for name in config.get("attributes", ("id", "data-testid", "name", "class", "aria-label")):
        value = attributes.get(name, "").strip()
        if not value:
            continue
        if name == "class":
            for token in value.split():
                found = _try_selector(context, fingerprint, f".{css_escape(token)}", SelectorType.CSS, 0.6)
                if found is not None:
                    return found
            continue
        if name == "id":
            selector, selector_type, confidence = f"#{css_escape(value)}", SelectorType.ID, 0.9
        else:
            selector, selector_type, confidence = attribute_selector(name, value), _attribute_type(name), 0.7
        found = _try_selector(context, fingerprint, selector, selector_type, confidence)
        if found is not None:
            return found
    return None


def match_by_hierarchy(
    fingerprint: ElementFingerprint,
    context: StrategyContext,
    config: dict[str, Any],
) -> HealingMatch | None:
    if not fingerprint.ancestor_path:
        return None

    parts: list[str] = []
    for node in fingerprint.ancestor_path:
        if node.id:
            parts.append(f"#{css_escape(node.id)}")
            continue
        part = node.tag_name
        classes = (node.class_name or "").split()
        if classes:
            part += "." + ".".join(css_escape(item) for item in classes)
        else:
            for name in ("data-testid", "name", "role"):
                if node.attributes.get(name):
                    part += attribute_selector(name, node.attributes[name])
                    break
        parts.append(part)

    max_depth = config.get("max_depth", 3)
    for depth in range(min(max_depth, len(parts)), 0, -1):
        selector = " > ".join(parts[-depth:])
        found = _try_selector(context, fingerprint, selector, SelectorType.CSS, round(0.6 + 0.1 * depth, 2))
        if found is not None:
            return found
    return None


def match_by_position(
    fingerprint: ElementFingerprint,
    context: StrategyContext,
    config: dict[str, Any],
) -> HealingMatch | None:
    tree = context.tree
    tolerance = config.get("tolerance", 50)
    expected = BoundingBox(
        x=fingerprint.position.x,
        y=fingerprint.position.y,
        width=fingerprint.size.width,
        height=fingerprint.size.height,
    )

    def delta(element) -> float | None:
        box = tree.bounding_box(element)
        deltas = (
            abs(box.x - expected.x),
            abs(box.y - expected.y),
            abs(box.width - expected.width),
            abs(box.height - expected.height),
        )
        if any(value > tolerance for value in deltas):
            return None
        return sum(deltas)

    nearby: list[tuple[float, int, Any]] = []
    at_point = tree.element_at_point(expected.x, expected.y)
    if at_point is not None and tree.tag_name(at_point) == fingerprint.tag_name and delta(at_point) is not None:
        nearby.append((-1.0, -1, at_point))
    try:
        same_tag = tree.find_all(fingerprint.tag_name)
    except InvalidSelectorError:
        same_tag = []
    for index, element in enumerate(same_tag):
        distance = delta(element)
        if distance is not None and element != at_point:
            nearby.append((distance, index, element))
    nearby.sort(key=lambda item: (item[0], item[1]))

    for _, _, element in nearby:
        found = _confirm_element(context, fingerprint, element, 0.5)
        if found is not None:
            return found
    return None


def match_by_fuzzy_selector(
    fingerprint: ElementFingerprint,
    context: StrategyContext,
    config: dict[str, Any],
) -> HealingMatch | None:
    parts = parse_selector(context.original_selector)
    tag = parts.tag or fingerprint.tag_name

    pieces: list[str] = []
    if parts.id:
        pieces.append(f"#{css_escape(parts.id)}")
    pieces.extend(f".{css_escape(item)}" for item in parts.classes)
    for attribute in parts.attributes:
        pieces.append(f"[{attribute}]")
        name = _ATTRIBUTE_OPERATOR.split(attribute, maxsplit=1)[0].strip()
        if name and name != attribute:
            pieces.append(f"[{name}]")
    pieces = pieces[: config.get("max_parts", 6)]

    variations: list[str] = []
    for size in range(len(pieces), 0, -1):
        for combo in itertools.combinations(pieces, size):
            variations.append(tag + "".join(combo))
            if size == 1:
                variations.append(combo[0])
    variations.append(tag)

    seen: set[str] = {context.original_selector.strip()}
    for selector in variations[: config.get("max_variations", 64)]:
        if selector in seen:
            continue
        seen.add(selector)
        found = _try_selector(context, fingerprint, selector, SelectorType.CSS, 0.4)
        if found is not None:
            return found
    return None


def match_by_tree_analysis(
    fingerprint: ElementFingerprint,
    context: StrategyContext,
    config: dict[str, Any],
) -> HealingMatch | None:
    tree = context.tree
    min_score = config.get("min_score", 0.3)
    try:
        elements = tree.find_all(fingerprint.tag_name)
    except InvalidSelectorError:
        return None

    scored: list[tuple[float, int, Any]] = []
    for index, element in enumerate(elements):
        if not tree.is_visible(element):
            continue
        score = similarity_score(fingerprint, tree.text(element), tree.attributes(element), tree.bounding_box(element))
        scored.append((score, index, element))
    scored.sort(key=lambda item: (-item[0], item[1]))

    for score, _, element in scored:
        if score <= min_score:
            break
        found = _confirm_element(context, fingerprint, element, score)
        if found is not None:
            return found
    return None


def default_registry() -> StrategyRegistry:
    return StrategyRegistry(
        [
            HealingStrategy("text", 90, match_by_text),
            HealingStrategy("attributes", 85, match_by_attributes),
            HealingStrategy("hierarchy", 75, match_by_hierarchy),
            HealingStrategy("position", 60, match_by_position, config={"tolerance": 50}),
            HealingStrategy("fuzzy", 50, match_by_fuzzy_selector),
            HealingStrategy("tree_analysis", 40, match_by_tree_analysis, config={"min_score": 0.3}),
        ]
    )


def _innermost(tag: str, predicate: str) -> str:
    # Nested same-tag containers share their descendants' text; keep the deepest.
    return f"//{tag}[{predicate}][not(descendant::{tag}[{predicate}])]"


def _try_selector(
    context: StrategyContext,
    fingerprint: ElementFingerprint,
    selector: str,
    selector_type: SelectorType,
    confidence: float,
) -> HealingMatch | None:
    element = context.find(selector)
    if element is None or not verify_match(context.tree, element, fingerprint):
        return None
    return HealingMatch(candidate=_scored(context, selector, selector_type), element=element, confidence=confidence)


def _confirm_element(
    context: StrategyContext,
    fingerprint: ElementFingerprint,
    element,
    confidence: float,
) -> HealingMatch | None:
    if not verify_match(context.tree, element, fingerprint):
        return None
    selector = context.generator.simple_selector(element)
    selector_type = SelectorType.ID if selector.startswith("#") else SelectorType.CSS
    if context.find(selector) != element:
        selector = context.generator.absolute_xpath(element)
        selector_type = SelectorType.XPATH
        if context.find(selector) != element:
            return None
    return HealingMatch(candidate=_scored(context, selector, selector_type), element=element, confidence=round(confidence, 4))


def _scored(context: StrategyContext, selector: str, selector_type: SelectorType) -> SelectorCandidate:
    candidate = context.generator.candidate(selector, selector_type, stable=False, description=f"Healed selector: {selector}")
    if candidate is None:
        return SelectorCandidate(selector=selector, type=selector_type, description=f"Healed selector: {selector}")
    return candidate


def _attribute_type(name: str) -> SelectorType:
    if name == "data-testid":
        return SelectorType.DATA_TESTID
    if name.startswith("data-test"):
        return SelectorType.DATA_TEST
    if name == "aria-label":
        return SelectorType.ARIA_LABEL
    if name == "name":
        return SelectorType.NAME
    return SelectorType.CSS
