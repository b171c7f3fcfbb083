from __future__ import annotations

import pytest

from healing_locators.config.schema import ResolverSettings
from healing_locators.logging.artifacts import ArtifactManager
from healing_locators.logging.audit import HealingAuditLogger
from tests.helpers import login_tree, rerendered_login_tree


@pytest.fixture()
def recorded_tree():
    return login_tree()


@pytest.fixture()
def replay_tree():
    return rerendered_login_tree()


@pytest.fixture()
def fast_settings():
    return ResolverSettings(
        poll_interval_ms=1,
        original_timeout_ms=0,
        alternative_timeout_ms=0,
        heal_timeout_ms=0,
        retry_backoff_ms=0,
        max_retries=1,
    )


@pytest.fixture()
def artifact_manager(tmp_path):
    return ArtifactManager(tmp_path / "artifacts")


@pytest.fixture()
def audit_logger(tmp_path):
    return HealingAuditLogger(tmp_path / "artifacts")
