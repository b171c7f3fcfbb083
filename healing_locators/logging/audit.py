from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path

from healing_locators.core.metadata import HealAttempt


class HealingAuditLogger:
    """Persists healing attempts and explicitly committed selector overrides."""

    def __init__(self, root: str | Path = "artifacts") -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.healed_locators_path = self.root / "healed_locators.jsonl"
        self.selector_overrides_path = self.root / "selector_overrides.json"

    def write(self, attempt: HealAttempt) -> None:
        with self.healed_locators_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(asdict(attempt)) + "\n")

    def read_attempts(self) -> list[dict]:
        if not self.healed_locators_path.exists():
            return []
        with self.healed_locators_path.open("r", encoding="utf-8") as handle:
            return [json.loads(line) for line in handle if line.strip()]

    def commit_override(self, locator_key: str, selector: str) -> None:
        """Records a healed selector so later sessions start from it."""

        if not locator_key:
            raise ValueError("A locator key is required to commit an override")
        overrides = self.read_overrides()
        overrides[locator_key] = selector
        self.selector_overrides_path.write_text(
            json.dumps(overrides, indent=2, sort_keys=True),
            encoding="utf-8",
        )

    def read_overrides(self) -> dict[str, str]:
        if not self.selector_overrides_path.exists():
            return {}
        return json.loads(self.selector_overrides_path.read_text(encoding="utf-8"))
