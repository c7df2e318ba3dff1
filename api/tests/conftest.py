"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

_ENV_KEYS = (
    "FLOW_NETWORK",
    "NODE_ENV",
    "FIND_LABS_API_BASE_MAINNET",
    "FIND_LABS_API_BASE_TESTNET",
    "FIND_LABS_USERNAME",
    "FIND_LABS_PASSWORD",
    "SOURCE_PAGE_SIZE",
    "SOURCE_MAX_RECORDS",
    "SOURCE_TIMEOUT_SECONDS",
    "SYNC_CACHE_INTERVAL_MINUTES",
    "SCAN_CREATE_WORKERS",
    "AGENTS_DATABASE_URL",
    "DATABASE_URL_MAINNET",
    "DATABASE_URL",
)


@pytest.fixture(autouse=True)
def _reset_app_state_between_tests():
    # Every test starts from an empty in-memory store and a clean environment.
    for key in _ENV_KEYS:
        os.environ.pop(key, None)

    from app.adapters.agent_store import InMemoryAgentStore
    from app.main import app

    app.state.agent_store = InMemoryAgentStore()
    app.state.source_client_factory = None
    yield
    app.state.source_client_factory = None


@pytest.fixture
def store():
    from app.adapters.agent_store import InMemoryAgentStore

    return InMemoryAgentStore()


@pytest.fixture
def source_env(monkeypatch: pytest.MonkeyPatch) -> str:
    base = "https://source.test"
    monkeypatch.setenv("FLOW_NETWORK", "mainnet")
    monkeypatch.setenv("FIND_LABS_API_BASE_MAINNET", base)
    monkeypatch.setenv("FIND_LABS_USERNAME", "scanner")
    monkeypatch.setenv("FIND_LABS_PASSWORD", "secret")
    return base
