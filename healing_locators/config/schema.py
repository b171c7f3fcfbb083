from __future__ import annotations

import hashlib
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class SelectorType(str, Enum):
    ID = "id"
    DATA_TESTID = "data-testid"
    DATA_TEST = "data-test"
    ARIA_LABEL = "aria-label"
    NAME = "name"
    PLACEHOLDER = "placeholder"
    TEXT = "text"
    CSS = "css"
    XPATH = "xpath"
    POSITION = "position"


class SelectorOptions(BaseModel):
    include_id: bool = True
    include_class: bool = True
    include_attributes: bool = True
    include_text: bool = True
    include_position: bool = False
    optimize: bool = True
    unique: bool = True
    stable: bool = False
    fallback: bool = True
    generate_alternatives: bool = False
    max_alternatives: int = Field(default=3, ge=0)
    custom_attributes: list[str] = Field(default_factory=lambda: ["data-testid", "data-test"])
    ignore_attributes: list[str] = Field(default_factory=lambda: ["style"])
    aria_label_fallback: bool = True
    priority: list[SelectorType] = Field(default_factory=list)

    @field_validator("priority")
    @classmethod
    def dedupe_priority(cls, value: list[SelectorType]) -> list[SelectorType]:
        seen: list[SelectorType] = []
        for item in value:
            if item not in seen:
                seen.append(item)
        return seen

    @field_validator("custom_attributes", "ignore_attributes")
    @classmethod
    def normalize_attribute_names(cls, value: list[str]) -> list[str]:
        return [item.strip().lower() for item in value if item.strip()]

    def relaxed(self, max_alternatives: int) -> SelectorOptions:
        return self.model_copy(
            update={
                "include_id": True,
                "include_class": True,
                "include_attributes": True,
                "include_text": True,
                "include_position": True,
                "unique": False,
                "stable": False,
                "generate_alternatives": True,
                "max_alternatives": max_alternatives,
                "aria_label_fallback": True,
            }
        )

    def cache_key(self) -> str:
        return hashlib.sha1(self.model_dump_json().encode("utf-8")).hexdigest()


class Point(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0


class Size(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: float = 0.0
    height: float = 0.0


class PathNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    tag_name: str
    id: str | None = None
    class_name: str | None = None
    attributes: dict[str, str] = Field(default_factory=dict)
    sibling_index: int = 0
    selector: str = ""


class ElementFingerprint(BaseModel):
    """Descriptive snapshot of an element taken at record time."""

    model_config = ConfigDict(frozen=True)

    tag_name: str
    attributes: dict[str, str] = Field(default_factory=dict)
    text_content: str | None = None
    position: Point = Field(default_factory=Point)
    size: Size = Field(default_factory=Size)
    ancestor_path: tuple[PathNode, ...] = ()

    @field_validator("tag_name")
    @classmethod
    def lowercase_tag(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError("tag_name must not be empty")
        return normalized


class ElementLocator(BaseModel):
    key: str = ""
    primary_selector: str
    alternative_selectors: list[str] = Field(default_factory=list)
    fingerprint: ElementFingerprint
    max_alternatives: int = Field(default=3, ge=0)

    @field_validator("primary_selector")
    @classmethod
    def require_primary(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("primary_selector must not be empty")
        return value

    @model_validator(mode="after")
    def cap_alternatives(self) -> ElementLocator:
        unique: list[str] = []
        for selector in self.alternative_selectors:
            if selector != self.primary_selector and selector not in unique:
                unique.append(selector)
        self.alternative_selectors = unique[: self.max_alternatives]
        return self

    def apply_heal(self, selector: str) -> bool:
        """Promotes a healed selector to primary for the rest of the session."""

        if not selector or selector == self.primary_selector:
            return False
        demoted = [self.primary_selector] + [item for item in self.alternative_selectors if item != selector]
        self.primary_selector = selector
        self.alternative_selectors = demoted[: self.max_alternatives]
        return True


class HealingStrategySettings(BaseModel):
    name: str
    priority: int | None = None
    enabled: bool | None = None
    config: dict[str, Any] = Field(default_factory=dict)


class ResolverSettings(BaseModel):
    poll_interval_ms: int = Field(default=100, gt=0)
    original_timeout_ms: int = Field(default=2000, ge=0)
    alternative_timeout_ms: int = Field(default=1000, ge=0)
    heal_timeout_ms: int = Field(default=1000, ge=0)
    cascade_timeout_ms: int = Field(default=5000, ge=0)
    retry_backoff_ms: int = Field(default=1000, ge=0)
    max_retries: int = Field(default=3, ge=1)
    cache_enabled: bool = True
    strategies: list[HealingStrategySettings] = Field(default_factory=list)


class PlaybackOptions(BaseModel):
    continue_on_error: bool = False
    capture_diagnostics: bool = True
    min_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    wait_between_steps_ms: int = Field(default=0, ge=0)
    max_retries: int | None = Field(default=None, ge=1)


class LocatorSuiteConfig(BaseModel):
    selector: SelectorOptions = Field(default_factory=SelectorOptions)
    resolver: ResolverSettings = Field(default_factory=ResolverSettings)
    playback: PlaybackOptions = Field(default_factory=PlaybackOptions)
    locators: list[ElementLocator] = Field(default_factory=list)

    def get_locator(self, key: str) -> ElementLocator:
        for locator in self.locators:
            if locator.key == key:
                return locator
        raise KeyError(f"Unknown locator key: {key}")
