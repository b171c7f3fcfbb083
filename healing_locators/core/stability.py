from __future__ import annotations

import logging
import re

from healing_locators.core.exceptions import InvalidSelectorError
from healing_locators.core.metadata import ElementStability
from healing_locators.core.tree import ElementTree, element_depth

log = logging.getLogger(__name__)

DYNAMIC_CLASS_PATTERNS = (
    re.compile(r"^css-\w+$"),
    re.compile(r"^_\w+$"),
    re.compile(r"^[a-z]+-\d+$"),
    re.compile(r"^ember\d+$"),
    re.compile(r"^js-"),
    re.compile(r"^is-"),
    re.compile(r"^has-"),
    re.compile(r"active$"),
    re.compile(r"hover$"),
    re.compile(r"focus$"),
    re.compile(r"loading$"),
    re.compile(r"disabled$"),
)

UNSTABLE_CSS_PATTERNS = (
    re.compile(r":nth-child"),
    re.compile(r":nth-of-type"),
    re.compile(r"\[style"),
    re.compile(r"\[class.*=.*active"),
    re.compile(r"\[class.*=.*hover"),
    re.compile(r"\[class.*=.*focus"),
)

DYNAMIC_SELECTOR_PATTERNS = (
    re.compile(r"\.css-\w+"),
    re.compile(r"\._\w+"),
    re.compile(r"\.[a-z]+-\d+"),
    re.compile(r"\.ember\d+"),
    re.compile(r"\.active"),
    re.compile(r"\.hover"),
    re.compile(r"\.focus"),
    re.compile(r"generated-\w+-\d+"),
    re.compile(r"temp-\w+"),
    re.compile(r"hash-\w+"),
)


def is_stable_class(class_name: str) -> bool:
    return not any(pattern.search(class_name) for pattern in DYNAMIC_CLASS_PATTERNS)


def is_stable_css_selector(selector: str) -> bool:
    return not any(pattern.search(selector) for pattern in UNSTABLE_CSS_PATTERNS)


def is_stable_selector(selector: str) -> bool:
    if selector.startswith("#") and " " not in selector:
        return True
    if "[data-testid" in selector or "[data-test" in selector:
        return True
    if "[aria-label" in selector or "[aria-labelledby" in selector:
        return True
    if "text()" in selector or "normalize-space(" in selector:
        return True
    if not is_stable_css_selector(selector):
        return False
    return not any(pattern.search(selector) for pattern in DYNAMIC_SELECTOR_PATTERNS)


class StabilityEvaluator:
    """Scores how likely a selector is to survive changes to the tree."""

    def __init__(self, tree: ElementTree) -> None:
        self.tree = tree
        self._scores: dict[str, float] = {}

    def evaluate_selector_stability(self, selector: str, element) -> float:
        cached = self._scores.get(selector)
        if cached is not None:
            return cached

        score = 0.0
        try:
            count = len(self.tree.find_all(selector))
        except InvalidSelectorError as exc:
            log.debug("Stability check rejected %s: %s", selector, exc)
            score = 0.1
        else:
            if count == 1:
                score += 0.3
            elif count > 1:
                score -= 0.2

            if "#" in selector:
                score += 0.3
            if "[data-testid" in selector:
                score += 0.25
            elif "[data-test" in selector:
                score += 0.2
            if "[aria-" in selector:
                score += 0.15
            if "[name=" in selector:
                score += 0.1

            if ":nth-child" in selector:
                score -= 0.2
            if len(selector.split(".")) > 3:
                score -= 0.1
            if len(selector) > 100:
                score -= 0.1

            score += self._element_stability_score(element) * 0.2

        score = round(max(0.0, min(1.0, score)), 4)
        self._scores[selector] = score
        return score

    def element_stability(self, element) -> ElementStability:
        attributes = self.tree.attributes(element)
        has_stable_id = bool(attributes.get("id"))
        has_test_id = bool(attributes.get("data-testid") or attributes.get("data-test"))
        has_aria_label = bool(attributes.get("aria-label"))
        has_name = bool(attributes.get("name"))

        classes = attributes.get("class", "").split()
        stable_classes = [item for item in classes if is_stable_class(item)]
        class_stability = len(stable_classes) / len(classes) if classes else 0.0

        parent = self.tree.parent(element)
        siblings = self.tree.children(parent) if parent is not None else []
        if len(siblings) > 1 and element in siblings:
            position_stability = 1 - siblings.index(element) / len(siblings)
        else:
            position_stability = 1.0

        score = 0.3
        if has_stable_id:
            score += 0.3
        if has_test_id:
            score += 0.3
        if has_aria_label:
            score += 0.2
        if has_name:
            score += 0.15
        score += class_stability * 0.1
        score += position_stability * 0.05
        if element_depth(self.tree, element) > 10:
            score -= 0.1

        return ElementStability(
            score=round(max(0.0, min(1.0, score)), 4),
            has_stable_id=has_stable_id,
            has_test_id=has_test_id,
            has_aria_label=has_aria_label,
            has_name=has_name,
            class_stability=class_stability,
            position_stability=position_stability,
        )

    def clear(self) -> None:
        self._scores.clear()

    def _element_stability_score(self, element) -> float:
        attributes = self.tree.attributes(element)
        stability = 0.5
        if attributes.get("id"):
            stability += 0.3
        if attributes.get("data-testid"):
            stability += 0.3
        if attributes.get("name"):
            stability += 0.2
        if attributes.get("aria-label"):
            stability += 0.2
        unstable = [item for item in attributes.get("class", "").split() if not is_stable_class(item)]
        stability -= 0.1 * len(unstable)
        if element_depth(self.tree, element) > 10:
            stability -= 0.1
        return max(0.0, min(1.0, stability))
