from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from healing_locators.config.schema import ElementLocator, PlaybackOptions
from healing_locators.core.exceptions import PlaybackAborted
from healing_locators.core.metadata import ResolutionResult
from healing_locators.core.resolver import SelectorResolver
from healing_locators.logging.artifacts import ArtifactManager
from healing_locators.utils.wait import CancellationToken

log = logging.getLogger(__name__)

StepAction = Callable[[Any], None]


@dataclass(slots=True)
class PlaybackStep:
    key: str
    locator: ElementLocator
    action: StepAction | None = None


@dataclass(slots=True)
class StepOutcome:
    key: str
    result: ResolutionResult
    success: bool
    error: str | None = None
    diagnostics: list[str] = field(default_factory=list)


@dataclass(slots=True)
class PlaybackReport:
    outcomes: list[StepOutcome] = field(default_factory=list)
    aborted: bool = False

    @property
    def passed(self) -> bool:
        return not self.aborted and all(outcome.success for outcome in self.outcomes)

    @property
    def failure_rate(self) -> float:
        if not self.outcomes:
            return 0.0
        failures = sum(1 for outcome in self.outcomes if not outcome.success)
        return round(failures / len(self.outcomes), 4)

    def raise_for_failure(self) -> None:
        failed = [outcome.key for outcome in self.outcomes if not outcome.success]
        if failed or self.aborted:
            raise PlaybackAborted(f"Playback failed at step(s): {', '.join(failed) or 'none'}")


class PlaybackRunner:
    """Replays recorded steps, delegating every lookup to the resolver.

    The runner decides what a failed step means for the session. It never
    heals a selector itself.
    """

    def __init__(
        self,
        resolver: SelectorResolver,
        options: PlaybackOptions | None = None,
        artifact_manager: ArtifactManager | None = None,
        cancel: CancellationToken | None = None,
    ) -> None:
        self.resolver = resolver
        self.options = options or PlaybackOptions()
        self.artifact_manager = artifact_manager
        self.cancel = cancel or resolver.cancel

    def run(self, steps: list[PlaybackStep]) -> PlaybackReport:
        report = PlaybackReport()
        for index, step in enumerate(steps):
            if index and self.options.wait_between_steps_ms:
                self.cancel.sleep(self.options.wait_between_steps_ms / 1000)
            self.cancel.raise_if_cancelled()

            outcome = self._run_step(step)
            report.outcomes.append(outcome)
            if outcome.success:
                continue
            log.warning("Step %s failed: %s", step.key, outcome.error)
            if not self.options.continue_on_error:
                report.aborted = True
                break

        self._write_run_log(report)
        return report

    def _run_step(self, step: PlaybackStep) -> StepOutcome:
        result = self.resolver.resolve_locator(step.locator, max_retries=self.options.max_retries)
        outcome = StepOutcome(key=step.key, result=result, success=True)

        if not result.resolved:
            outcome.success = False
            outcome.error = f"Element not resolved for {step.locator.primary_selector}"
        elif result.confidence < self.options.min_confidence:
            outcome.success = False
            outcome.error = (
                f"Confidence {result.confidence:.2f} below minimum {self.options.min_confidence:.2f}"
            )
        elif step.action is not None:
            try:
                step.action(result.element)
            except Exception as exc:  # noqa: BLE001
                outcome.success = False
                outcome.error = f"{type(exc).__name__}: {exc}"

        if not outcome.success and self.options.capture_diagnostics:
            outcome.diagnostics = self._capture_diagnostics(step, outcome)
        return outcome

    def _capture_diagnostics(self, step: PlaybackStep, outcome: StepOutcome) -> list[str]:
        if self.artifact_manager is None:
            return []
        stamp = self.artifact_manager.timestamp()
        payload = {
            "step": step.key,
            "error": outcome.error,
            "result": outcome.result.to_dict(),
            "primary_selector": step.locator.primary_selector,
            "alternative_selectors": list(step.locator.alternative_selectors),
            "fingerprint": step.locator.fingerprint.model_dump(mode="json"),
        }
        paths = [str(self.artifact_manager.write_diagnostic(step.key, payload, timestamp=stamp))]
        page_source = getattr(self.resolver.tree, "page_source", None)
        if page_source:
            paths.append(str(self.artifact_manager.write_dom_snapshot(step.key, page_source, timestamp=stamp)))
        return paths

    def _write_run_log(self, report: PlaybackReport) -> None:
        if self.artifact_manager is None:
            return
        lines = [
            f"{outcome.key}\t{'ok' if outcome.success else 'failed'}\t{outcome.result.strategy}"
            f"\t{outcome.result.confidence:.2f}\t{outcome.result.selector}"
            for outcome in report.outcomes
        ]
        lines.append(f"aborted={report.aborted} failure_rate={report.failure_rate}")
        self.artifact_manager.write_run_log("\n".join(lines) + "\n")
