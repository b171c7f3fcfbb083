from __future__ import annotations

import threading
import time

from healing_locators.core.exceptions import ResolutionCancelled


class CancellationToken:
    """Session-level abort flag with an interruptible sleep."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ResolutionCancelled("Resolution cancelled by session abort")

    def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            self.raise_if_cancelled()
            return
        if self._event.wait(seconds):
            raise ResolutionCancelled("Resolution cancelled by session abort")


def wait_until(
    predicate,
    timeout: float,
    interval: float = 0.1,
    cancel: CancellationToken | None = None,
    clock=time.monotonic,
):
    """Waits for a predicate to return something other than ``None``."""

    token = cancel or CancellationToken()
    deadline = clock() + timeout
    while clock() < deadline:
        token.raise_if_cancelled()
        result = predicate()
        if result is not None:
            return result
        token.sleep(min(interval, max(deadline - clock(), 0.0)))
    token.raise_if_cancelled()
    return predicate()
