from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from healing_locators.config.schema import SelectorType


@dataclass(slots=True)
class SelectorCandidate:
    selector: str
    type: SelectorType
    score: float = 0.0
    unique: bool = False
    stable: bool = False
    description: str = ""
    match_count: int = 0


@dataclass(slots=True)
class SelectorValidation:
    is_valid: bool
    is_unique: bool
    element_count: int
    error: str | None = None


@dataclass(slots=True)
class ElementStability:
    score: float
    has_stable_id: bool
    has_test_id: bool
    has_aria_label: bool
    has_name: bool
    class_stability: float
    position_stability: float


@dataclass(slots=True)
class HealingMatch:
    candidate: SelectorCandidate
    element: Any
    confidence: float


@dataclass(slots=True)
class ResolutionMetadata:
    attempts: int = 0
    healing_applied: bool = False
    fallback_used: bool = False
    time_taken_ms: float = 0.0


@dataclass(slots=True)
class ResolutionResult:
    selector: str
    element: Any
    confidence: float
    strategy: str
    alternatives: list[str] = field(default_factory=list)
    metadata: ResolutionMetadata = field(default_factory=ResolutionMetadata)
    id: str = ""

    @property
    def resolved(self) -> bool:
        return self.element is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "selector": self.selector,
            "resolved": self.resolved,
            "confidence": self.confidence,
            "strategy": self.strategy,
            "alternatives": list(self.alternatives),
            "metadata": asdict(self.metadata),
        }


@dataclass(slots=True)
class ResolverStats:
    total_resolutions: int = 0
    successful_resolutions: int = 0
    healing_attempts: int = 0
    healing_successes: int = 0
    avg_resolution_time_ms: float = 0.0


@dataclass(slots=True)
class HealAttempt:
    attempt_id: str
    original_selector: str
    strategy: str
    new_selector: str
    confidence: float
    success: bool
    attempts: int
    time_taken_ms: float
    locator_key: str = ""
    tag_name: str = ""
