"""Test configuration for component-engine tests.

Clears the cached EngineConfig around every test so tests that set
environment variables with monkeypatch see their own values.
"""

from __future__ import annotations

import pytest

from component_engine.config import get_config

_ENGINE_ENV_VARS = (
    "COMPONENT_SIMILARITY_THRESHOLD",
    "COMPONENT_DEFAULT_TIMING_OPERATOR",
    "COMPONENT_DEFAULT_TIMING_REFERENCE",
    "CRITERIA_MAX_TREE_DEPTH",
)


@pytest.fixture(autouse=True)
def _fresh_engine_config(monkeypatch: pytest.MonkeyPatch):
    for name in _ENGINE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_config.cache_clear()
    yield
    get_config.cache_clear()
