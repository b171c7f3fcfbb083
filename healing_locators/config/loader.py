from __future__ import annotations

import json
from pathlib import Path

from healing_locators.config.schema import LocatorSuiteConfig


class ConfigLoader:
    """Loads and validates the JSON locator suite configuration."""

    @staticmethod
    def load(path: str | Path) -> LocatorSuiteConfig:
        config_path = Path(path)
        with config_path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        return LocatorSuiteConfig.model_validate(payload)

    @staticmethod
    def dump(config: LocatorSuiteConfig, path: str | Path) -> Path:
        config_path = Path(path)
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(config.model_dump_json(indent=2), encoding="utf-8")
        return config_path
