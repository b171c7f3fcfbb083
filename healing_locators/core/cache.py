from __future__ import annotations

from collections.abc import Callable

from healing_locators.config.schema import SelectorOptions
from healing_locators.core.metadata import ResolutionResult


class ResolutionCache:
    """Memoized resolutions owned by a single resolver.

    Entries are only served after the caller re-checks them; a failed
    re-check evicts the entry immediately.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], ResolutionResult] = {}

    @staticmethod
    def key(original_selector: str, options: SelectorOptions) -> tuple[str, str]:
        return original_selector, options.cache_key()

    def lookup(self, key: tuple[str, str], revalidate: Callable[[ResolutionResult], object]):
        """Returns the cached result and its re-resolved element, or ``None``."""

        cached = self._entries.get(key)
        if cached is None:
            return None
        element = revalidate(cached)
        if element is None:
            self._entries.pop(key, None)
            return None
        return cached, element

    def store(self, key: tuple[str, str], result: ResolutionResult) -> None:
        self._entries[key] = result

    def evict(self, key: tuple[str, str]) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: tuple[str, str]) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
