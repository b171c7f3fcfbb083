from __future__ import annotations

import logging
import time
from dataclasses import replace

from healing_locators.config.schema import ElementFingerprint, ElementLocator, ResolverSettings, SelectorOptions
from healing_locators.core.cache import ResolutionCache
from healing_locators.core.exceptions import InvalidSelectorError, LocatorError, ResolutionCancelled
from healing_locators.core.generator import SelectorGenerator
from healing_locators.core.ids import IdSource
from healing_locators.core.metadata import (
    HealAttempt,
    HealingMatch,
    ResolutionMetadata,
    ResolutionResult,
    ResolverStats,
)
from healing_locators.core.strategies import StrategyContext, StrategyRegistry, default_registry
from healing_locators.core.tree import ElementTree
from healing_locators.utils.wait import CancellationToken, wait_until

log = logging.getLogger(__name__)


class SelectorResolver:
    """Re-resolves recorded selectors against the current tree, healing when they break."""

    def __init__(
        self,
        tree: ElementTree,
        registry: StrategyRegistry | None = None,
        settings: ResolverSettings | None = None,
        audit_logger=None,
        cancel: CancellationToken | None = None,
        id_source: IdSource | None = None,
        clock=time.monotonic,
    ) -> None:
        self.tree = tree
        self.settings = settings or ResolverSettings()
        self.registry = registry or default_registry()
        self.registry.configure(self.settings.strategies)
        self.generator = SelectorGenerator(tree)
        self.cache = ResolutionCache()
        self.audit_logger = audit_logger
        self.cancel = cancel or CancellationToken()
        self.id_source = id_source or IdSource()
        self.clock = clock
        self.stats = ResolverStats()
        self._healing_history: dict[str, list[str]] = {}

    def resolve(
        self,
        original_selector: str,
        fingerprint: ElementFingerprint,
        options: SelectorOptions | None = None,
        max_retries: int | None = None,
        alternatives: list[str] | tuple[str, ...] = (),
        locator_key: str = "",
    ) -> ResolutionResult:
        options = options or SelectorOptions()
        retries = max_retries if max_retries is not None else self.settings.max_retries
        started = self.clock()
        self.stats.total_resolutions += 1
        cache_key = ResolutionCache.key(original_selector, options)

        if self.settings.cache_enabled:
            hit = self.cache.lookup(cache_key, lambda cached: self._safe_find(cached.selector))
            if hit is not None:
                cached, element = hit
                log.debug("Cache hit for %s via %s", original_selector, cached.strategy)
                self.stats.successful_resolutions += 1
                return self._finish(
                    ResolutionResult(
                        selector=cached.selector,
                        element=element,
                        confidence=cached.confidence,
                        strategy=cached.strategy,
                        alternatives=list(cached.alternatives),
                        metadata=ResolutionMetadata(
                            attempts=cached.metadata.attempts,
                            healing_applied=cached.metadata.healing_applied,
                            fallback_used=cached.metadata.fallback_used,
                        ),
                        id=cached.id,
                    ),
                    started,
                )

        attempts = 1
        element = self._find_with_wait(original_selector, self.settings.original_timeout_ms)
        if element is not None:
            result = ResolutionResult(
                selector=original_selector,
                element=element,
                confidence=1.0,
                strategy="original",
                alternatives=list(alternatives),
                metadata=ResolutionMetadata(attempts=attempts),
            )
            return self._succeed(cache_key, result, started)

        for alternative in alternatives:
            attempts += 1
            element = self._find_with_wait(alternative, self.settings.alternative_timeout_ms)
            if element is not None:
                log.info("Resolved %s through recorded alternative %s", original_selector, alternative)
                result = ResolutionResult(
                    selector=alternative,
                    element=element,
                    confidence=0.8,
                    strategy="alternative",
                    alternatives=[item for item in alternatives if item != alternative],
                    metadata=ResolutionMetadata(attempts=attempts, fallback_used=True),
                )
                return self._succeed(cache_key, result, started)

        for retry in range(retries):
            self.cancel.raise_if_cancelled()
            self.stats.healing_attempts += 1
            deadline = self.clock() + self.settings.cascade_timeout_ms / 1000
            context = StrategyContext(
                tree=self.tree,
                generator=self.generator,
                original_selector=original_selector,
                options=options,
                find=lambda selector, deadline=deadline: self._find_before(selector, deadline),
            )
            strategy_name, match = self._run_cascade(fingerprint, context)
            if match is not None:
                known = [original_selector] + list(alternatives)
                result = ResolutionResult(
                    selector=match.candidate.selector,
                    element=match.element,
                    confidence=match.confidence,
                    strategy=strategy_name,
                    alternatives=[item for item in known if item != match.candidate.selector],
                    metadata=ResolutionMetadata(attempts=attempts + retry + 1, healing_applied=True),
                )
                log.info(
                    "Healed %s -> %s using %s (confidence %.2f)",
                    original_selector,
                    result.selector,
                    strategy_name,
                    result.confidence,
                )
                self.stats.healing_successes += 1
                self._healing_history.setdefault(original_selector, []).append(result.selector)
                result = self._succeed(cache_key, result, started)
                self._audit(original_selector, fingerprint, result, locator_key)
                return result
            if retry < retries - 1:
                self.cancel.sleep(self.settings.retry_backoff_ms * (retry + 1) / 1000)

        log.warning("Could not resolve %s after %d healing rounds", original_selector, retries)
        result = self._finish(
            ResolutionResult(
                selector=original_selector,
                element=None,
                confidence=0.0,
                strategy="failed",
                alternatives=[],
                metadata=ResolutionMetadata(
                    attempts=attempts + retries,
                    healing_applied=True,
                    fallback_used=True,
                ),
                id=self.id_source.next_id("resolution"),
            ),
            started,
        )
        self._audit(original_selector, fingerprint, result, locator_key)
        return result

    def resolve_locator(
        self,
        locator: ElementLocator,
        options: SelectorOptions | None = None,
        max_retries: int | None = None,
    ) -> ResolutionResult:
        """Resolves a recorded locator and keeps a successful heal as its primary."""

        result = self.resolve(
            locator.primary_selector,
            locator.fingerprint,
            options=options,
            max_retries=max_retries,
            alternatives=locator.alternative_selectors,
            locator_key=locator.key,
        )
        if result.resolved and result.strategy != "original" and locator.apply_heal(result.selector):
            log.info("Locator %s now uses %s", locator.key or locator.fingerprint.tag_name, result.selector)
        return result

    def healing_history(self, original_selector: str) -> list[str]:
        return list(self._healing_history.get(original_selector, []))

    def reset(self) -> None:
        self.cache.clear()
        self._healing_history.clear()

    def _run_cascade(self, fingerprint: ElementFingerprint, context: StrategyContext) -> tuple[str, HealingMatch | None]:
        for strategy in self.registry.ordered():
            self.cancel.raise_if_cancelled()
            try:
                match = strategy.apply(fingerprint, context)
            except ResolutionCancelled:
                raise
            except LocatorError as exc:
                log.warning("Healing strategy %s failed: %s", strategy.name, exc)
                continue
            if match is not None:
                return strategy.name, match
            log.debug("Healing strategy %s found no match", strategy.name)
        return "", None

    def _find_with_wait(self, selector: str, timeout_ms: float):
        try:
            return wait_until(
                lambda: self.tree.find(selector),
                timeout=timeout_ms / 1000,
                interval=self.settings.poll_interval_ms / 1000,
                cancel=self.cancel,
                clock=self.clock,
            )
        except InvalidSelectorError as exc:
            log.debug("Skipping malformed selector %s: %s", selector, exc)
            return None

    def _find_before(self, selector: str, deadline: float):
        # Past the round's deadline every selector still gets one immediate query.
        remaining_ms = max(0.0, (deadline - self.clock()) * 1000)
        return self._find_with_wait(selector, min(self.settings.heal_timeout_ms, remaining_ms))

    def _safe_find(self, selector: str):
        try:
            return self.tree.find(selector)
        except InvalidSelectorError:
            return None

    def _succeed(self, cache_key, result: ResolutionResult, started: float) -> ResolutionResult:
        result.id = self.id_source.next_id("resolution")
        self.stats.successful_resolutions += 1
        result = self._finish(result, started)
        if self.settings.cache_enabled:
            self.cache.store(
                cache_key,
                replace(result, alternatives=list(result.alternatives), metadata=replace(result.metadata)),
            )
        return result

    def _finish(self, result: ResolutionResult, started: float) -> ResolutionResult:
        elapsed = (self.clock() - started) * 1000
        result.metadata.time_taken_ms = round(elapsed, 3)
        total = self.stats.total_resolutions
        self.stats.avg_resolution_time_ms = round(
            (self.stats.avg_resolution_time_ms * (total - 1) + elapsed) / total,
            3,
        )
        return result

    def _audit(
        self,
        original_selector: str,
        fingerprint: ElementFingerprint,
        result: ResolutionResult,
        locator_key: str,
    ) -> None:
        if self.audit_logger is None:
            return
        self.audit_logger.write(
            HealAttempt(
                attempt_id=self.id_source.next_id("heal"),
                original_selector=original_selector,
                strategy=result.strategy,
                new_selector=result.selector if result.resolved else "",
                confidence=result.confidence,
                success=result.resolved,
                attempts=result.metadata.attempts,
                time_taken_ms=result.metadata.time_taken_ms,
                locator_key=locator_key,
                tag_name=fingerprint.tag_name,
            )
        )
