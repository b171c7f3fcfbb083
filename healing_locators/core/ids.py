from __future__ import annotations

import itertools
import random


class IdSource:
    """Deterministic identifiers: a monotonic counter plus seedable randomness."""

    def __init__(self, seed: int | None = 0) -> None:
        self._counter = itertools.count(1)
        self._random = random.Random(seed)

    def next_id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._counter):06d}_{self._random.getrandbits(32):08x}"
