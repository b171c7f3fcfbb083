class LocatorError(RuntimeError):
    """Base class for locator generation and resolution failures."""


class NoSelectorGenerated(LocatorError):
    """Raised when no selector candidate can be produced for an element."""


class InvalidSelectorError(LocatorError):
    """Raised when the element tree rejects a selector as malformed."""

    def __init__(self, selector: str, reason: str = "") -> None:
        message = f"Invalid selector {selector!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.selector = selector


class ResolutionCancelled(LocatorError):
    """Raised when a session-level abort interrupts a resolution."""


class PlaybackAborted(LocatorError):
    """Raised when a replay stops on a failed step."""
