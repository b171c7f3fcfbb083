from __future__ import annotations

from rapidfuzz.distance import Levenshtein

from healing_locators.config.schema import ElementFingerprint, SelectorType
from healing_locators.core.tree import BoundingBox
from healing_locators.utils.selectors import count_combinators

TYPE_WEIGHTS: dict[SelectorType, float] = {
    SelectorType.ID: 10,
    SelectorType.DATA_TESTID: 9,
    SelectorType.DATA_TEST: 8,
    SelectorType.ARIA_LABEL: 7,
    SelectorType.NAME: 6,
    SelectorType.PLACEHOLDER: 5,
    SelectorType.TEXT: 4,
    SelectorType.CSS: 3,
    SelectorType.XPATH: 2,
    SelectorType.POSITION: 1,
}

STABLE_TYPES = frozenset({SelectorType.ID, SelectorType.DATA_TESTID, SelectorType.DATA_TEST})

# Pixel distance at which position and size similarity bottom out.
DELTA_NORMALIZER = 1000.0


def score_selector(selector: str, selector_type: SelectorType, match_count: int) -> float:
    score = TYPE_WEIGHTS.get(selector_type, 1)
    if selector_type in STABLE_TYPES:
        score += 3
    if match_count == 1:
        score += 5
    elif match_count > 1:
        score -= 3
    score -= len(selector) / 100
    score -= 0.5 * count_combinators(selector)
    return max(0.0, round(score, 4))


def string_similarity(left: str, right: str) -> float:
    return Levenshtein.normalized_similarity(left, right)


def similarity_score(
    fingerprint: ElementFingerprint,
    text: str,
    attributes: dict[str, str],
    box: BoundingBox,
) -> float:
    """Weighted resemblance of a live element to a recorded fingerprint."""

    score = 0.0
    if text and fingerprint.text_content:
        score += string_similarity(text, fingerprint.text_content) * 0.3

    position_delta = abs(box.x - fingerprint.position.x) + abs(box.y - fingerprint.position.y)
    score += _delta_score(position_delta) * 0.2

    size_delta = abs(box.width - fingerprint.size.width) + abs(box.height - fingerprint.size.height)
    score += _delta_score(size_delta) * 0.2

    expected = {key: value for key, value in fingerprint.attributes.items() if value}
    if expected:
        matches = sum(1 for key, value in expected.items() if attributes.get(key) == value)
        score += (matches / len(expected)) * 0.3
    return round(score, 4)


def _delta_score(delta: float) -> float:
    return max(0.0, 1.0 - delta / DELTA_NORMALIZER)
