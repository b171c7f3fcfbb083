from __future__ import annotations

import pytest

from healing_locators.config.schema import ElementFingerprint, HealingStrategySettings, SelectorOptions
from healing_locators.core.exceptions import InvalidSelectorError, ResolutionCancelled
from healing_locators.core.resolver import SelectorResolver
from healing_locators.core.strategies import HealingStrategy, StrategyRegistry
from healing_locators.utils.wait import CancellationToken
from tests.helpers import build_tree, fingerprint_of, make_context, record_locator


def recording_registry(calls: list[str], *specs):
    strategies = []
    for name, priority, enabled in specs:
        def matcher(fingerprint, context, config, name=name):
            calls.append(name)
            return None

        strategies.append(HealingStrategy(name, priority, matcher, enabled=enabled))
    return StrategyRegistry(strategies)


class ManualClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class RecordingToken(CancellationToken):
    """Advances a manual clock instead of sleeping."""

    def __init__(self, clock: ManualClock) -> None:
        super().__init__()
        self.clock = clock
        self.sleeps: list[float] = []

    def sleep(self, seconds: float) -> None:
        self.raise_if_cancelled()
        self.sleeps.append(seconds)
        self.clock.now += seconds


def test_original_selector_resolves_with_full_confidence(recorded_tree, fast_settings):
    resolver = SelectorResolver(recorded_tree, settings=fast_settings)
    result = resolver.resolve("#login-button", fingerprint_of(recorded_tree, "#login-button"))

    assert result.strategy == "original"
    assert result.confidence == 1.0
    assert result.element == recorded_tree.find("#login-button")
    assert result.metadata.attempts == 1
    assert not result.metadata.healing_applied
    assert result.id.startswith("resolution_")


def test_repeated_resolution_is_served_from_cache(recorded_tree, fast_settings):
    resolver = SelectorResolver(recorded_tree, settings=fast_settings)
    fingerprint = fingerprint_of(recorded_tree, "#email")

    first = resolver.resolve("#email", fingerprint)
    second = resolver.resolve("#email", fingerprint)

    assert second.id == first.id
    assert second.selector == first.selector
    assert second.element == first.element
    assert len(resolver.cache) == 1
    assert resolver.stats.total_resolutions == 2
    assert resolver.stats.successful_resolutions == 2


def test_cache_is_keyed_by_options(recorded_tree, fast_settings):
    resolver = SelectorResolver(recorded_tree, settings=fast_settings)
    fingerprint = fingerprint_of(recorded_tree, "#email")

    first = resolver.resolve("#email", fingerprint)
    second = resolver.resolve("#email", fingerprint, options=SelectorOptions(include_text=False))

    assert second.id != first.id
    assert len(resolver.cache) == 2


def test_stale_cache_entry_is_evicted_and_healed(recorded_tree, fast_settings):
    resolver = SelectorResolver(recorded_tree, settings=fast_settings)
    fingerprint = fingerprint_of(recorded_tree, "#email")
    first = resolver.resolve("#email", fingerprint)

    recorded_tree.find("#email").set("id", "email-2")
    second = resolver.resolve("#email", fingerprint)

    assert second.id != first.id
    assert second.strategy == "attributes"
    assert second.selector == '[data-testid="email-input"]'
    assert second.confidence == 0.7


def test_text_heal_after_id_removed(recorded_tree, replay_tree, fast_settings):
    resolver = SelectorResolver(replay_tree, settings=fast_settings)
    result = resolver.resolve("#login-button", fingerprint_of(recorded_tree, "#login-button"))

    assert result.strategy == "text"
    assert result.confidence == 0.7
    assert result.metadata.healing_applied
    assert result.element == replay_tree.find("button")
    assert replay_tree.find(result.selector) == result.element
    assert result.alternatives == ["#login-button"]
    assert resolver.healing_history("#login-button") == [result.selector]
    assert resolver.stats.healing_successes == 1


def test_recorded_alternative_used_before_healing(recorded_tree, replay_tree, fast_settings):
    resolver = SelectorResolver(replay_tree, settings=fast_settings)
    result = resolver.resolve(
        "#login-button",
        fingerprint_of(recorded_tree, "#login-button"),
        alternatives=["#submit", "button.btn.btn-primary"],
    )

    assert result.strategy == "alternative"
    assert result.selector == "button.btn.btn-primary"
    assert result.confidence == 0.8
    assert result.metadata.fallback_used
    assert not result.metadata.healing_applied
    assert result.metadata.attempts == 3
    assert resolver.healing_history("#login-button") == []


def test_malformed_alternative_is_skipped(recorded_tree, replay_tree, fast_settings):
    resolver = SelectorResolver(replay_tree, settings=fast_settings)
    result = resolver.resolve(
        "#login-button",
        fingerprint_of(recorded_tree, "#login-button"),
        alternatives=["[[broken", "button.btn.btn-primary"],
    )

    assert result.selector == "button.btn.btn-primary"


def test_cascade_runs_enabled_strategies_by_priority(replay_tree, fast_settings):
    calls: list[str] = []
    registry = recording_registry(calls, ("low", 10, True), ("high", 30, True), ("mid", 20, True), ("off", 99, False))
    resolver = SelectorResolver(replay_tree, registry=registry, settings=fast_settings)

    result = resolver.resolve("#gone", ElementFingerprint(tag_name="select"), max_retries=2)

    assert calls == ["high", "mid", "low", "high", "mid", "low"]
    assert result.strategy == "failed"
    assert result.element is None
    assert result.confidence == 0.0
    assert result.metadata.attempts == 3
    assert result.metadata.healing_applied


def test_failing_strategy_does_not_stop_cascade(recorded_tree, replay_tree, fast_settings):
    def broken(fingerprint, context, config):
        raise InvalidSelectorError("??", "unsupported")

    registry = StrategyRegistry([HealingStrategy("broken", 100, broken)])
    for strategy in SelectorResolver(replay_tree).registry:
        registry.register(strategy)
    resolver = SelectorResolver(replay_tree, registry=registry, settings=fast_settings)

    result = resolver.resolve("#login-button", fingerprint_of(recorded_tree, "#login-button"))
    assert result.strategy == "text"


def test_strategy_settings_applied_to_registry(recorded_tree, replay_tree, fast_settings):
    settings = fast_settings.model_copy(update={"strategies": [HealingStrategySettings(name="text", enabled=False)]})
    resolver = SelectorResolver(replay_tree, settings=settings)

    result = resolver.resolve("#login-button", fingerprint_of(recorded_tree, "#login-button"))
    assert result.strategy == "attributes"
    assert result.selector == ".btn"
    assert result.confidence == 0.6


def test_cancelled_session_aborts_resolution(recorded_tree, fast_settings):
    token = CancellationToken()
    token.cancel()
    resolver = SelectorResolver(recorded_tree, settings=fast_settings, cancel=token)

    with pytest.raises(ResolutionCancelled):
        resolver.resolve("#email", fingerprint_of(recorded_tree, "#email"))


def test_cancel_during_cascade_stops_remaining_strategies(replay_tree, fast_settings):
    token = CancellationToken()
    calls: list[str] = []

    def cancelling(fingerprint, context, config):
        calls.append("cancelling")
        token.cancel()
        return None

    def never(fingerprint, context, config):
        calls.append("never")
        return None

    registry = StrategyRegistry([HealingStrategy("cancelling", 2, cancelling), HealingStrategy("never", 1, never)])
    resolver = SelectorResolver(replay_tree, registry=registry, settings=fast_settings, cancel=token)

    with pytest.raises(ResolutionCancelled):
        resolver.resolve("#gone", ElementFingerprint(tag_name="button"))
    assert calls == ["cancelling"]


def test_heal_attempts_are_audited(recorded_tree, replay_tree, fast_settings, audit_logger):
    resolver = SelectorResolver(replay_tree, settings=fast_settings, audit_logger=audit_logger)
    fingerprint = fingerprint_of(recorded_tree, "#login-button")

    resolver.resolve("#login-button", fingerprint, locator_key="login_button")
    resolver.resolve("#missing", ElementFingerprint(tag_name="select"))

    healed, failed = audit_logger.read_attempts()
    assert healed["success"] is True
    assert healed["strategy"] == "text"
    assert healed["locator_key"] == "login_button"
    assert healed["tag_name"] == "button"
    assert failed["success"] is False
    assert failed["new_selector"] == ""


def test_original_hits_are_not_audited(recorded_tree, fast_settings, audit_logger):
    resolver = SelectorResolver(recorded_tree, settings=fast_settings, audit_logger=audit_logger)
    resolver.resolve("#email", fingerprint_of(recorded_tree, "#email"))

    assert audit_logger.read_attempts() == []


def test_resolve_locator_promotes_healed_selector(recorded_tree, replay_tree, fast_settings):
    locator = record_locator(recorded_tree, "#login-button", key="login_button")
    resolver = SelectorResolver(replay_tree, settings=fast_settings)

    result = resolver.resolve_locator(locator)

    assert result.strategy == "alternative"
    assert locator.primary_selector == result.selector
    assert locator.alternative_selectors[0] == "#login-button"


def test_reset_clears_cache_and_history(recorded_tree, replay_tree, fast_settings):
    resolver = SelectorResolver(replay_tree, settings=fast_settings)
    resolver.resolve("#login-button", fingerprint_of(recorded_tree, "#login-button"))

    resolver.reset()

    assert len(resolver.cache) == 0
    assert resolver.healing_history("#login-button") == []


def test_result_serializes_for_reports(recorded_tree, fast_settings):
    resolver = SelectorResolver(recorded_tree, settings=fast_settings)
    payload = resolver.resolve("#email", fingerprint_of(recorded_tree, "#email")).to_dict()

    assert payload["resolved"] is True
    assert payload["strategy"] == "original"
    assert payload["metadata"]["attempts"] == 1


def test_higher_priority_strategy_wins_when_several_match(recorded_tree, replay_tree, fast_settings):
    fingerprint = fingerprint_of(recorded_tree, "#login-button")
    resolver = SelectorResolver(replay_tree, settings=fast_settings)
    context = make_context(replay_tree, "#login-button")

    assert resolver.registry.get("text").apply(fingerprint, context) is not None
    assert resolver.registry.get("attributes").apply(fingerprint, context) is not None
    assert resolver.resolve("#login-button", fingerprint).strategy == "text"


def test_healed_result_is_served_from_cache(recorded_tree, replay_tree, fast_settings):
    resolver = SelectorResolver(replay_tree, settings=fast_settings)
    fingerprint = fingerprint_of(recorded_tree, "#login-button")

    first = resolver.resolve("#login-button", fingerprint)
    second = resolver.resolve("#login-button", fingerprint)

    assert second.id == first.id
    assert second.selector == first.selector
    assert second.strategy == first.strategy == "text"
    assert second.confidence == first.confidence
    assert second.element == first.element
    assert len(resolver.cache) == 1
    assert resolver.stats.healing_attempts == 1
    assert resolver.healing_history("#login-button") == [first.selector]


def test_mutating_a_returned_result_leaves_cache_intact(recorded_tree, replay_tree, fast_settings):
    resolver = SelectorResolver(replay_tree, settings=fast_settings)
    fingerprint = fingerprint_of(recorded_tree, "#login-button")

    first = resolver.resolve("#login-button", fingerprint)
    first.alternatives.append("#elsewhere")
    first.metadata.attempts = 99
    first.selector = "#elsewhere"

    second = resolver.resolve("#login-button", fingerprint)
    assert second.id == first.id
    assert second.selector != "#elsewhere"
    assert second.alternatives == ["#login-button"]
    assert second.metadata.attempts == 2


def test_backoff_grows_between_rounds_without_trailing_sleep(fast_settings):
    clock = ManualClock()
    token = RecordingToken(clock)
    settings = fast_settings.model_copy(update={"retry_backoff_ms": 1000, "max_retries": 3})
    resolver = SelectorResolver(build_tree("<p>nothing here</p>"), settings=settings, cancel=token, clock=clock)

    result = resolver.resolve("#gone", ElementFingerprint(tag_name="select"))

    assert result.strategy == "failed"
    assert token.sleeps == [1.0, 2.0]
    assert resolver.stats.healing_attempts == 3


def test_cascade_round_is_bounded_by_its_budget(fast_settings):
    clock = ManualClock()
    token = RecordingToken(clock)
    settings = fast_settings.model_copy(
        update={"poll_interval_ms": 100, "heal_timeout_ms": 1000, "cascade_timeout_ms": 2000}
    )
    resolver = SelectorResolver(build_tree('<form><input name="q" /></form>'), settings=settings, cancel=token, clock=clock)

    result = resolver.resolve(
        'button.btn.btn-primary.submit[type="submit"][data-role="go"]',
        ElementFingerprint(tag_name="button", text_content="Go", attributes={"class": "btn btn-primary submit"}),
    )

    assert result.strategy == "failed"
    assert clock.now == pytest.approx(2.0)
    assert sum(token.sleeps) == pytest.approx(2.0)


def test_spent_budget_still_queries_each_selector_once(recorded_tree, replay_tree, fast_settings):
    clock = ManualClock()
    token = RecordingToken(clock)
    settings = fast_settings.model_copy(
        update={
            "heal_timeout_ms": 1000,
            "cascade_timeout_ms": 0,
            "strategies": [HealingStrategySettings(name="text", enabled=False)],
        }
    )
    resolver = SelectorResolver(replay_tree, settings=settings, cancel=token, clock=clock)

    result = resolver.resolve("#login-button", fingerprint_of(recorded_tree, "#login-button"))

    assert result.strategy == "attributes"
    assert result.selector == ".btn"
    assert token.sleeps == []
