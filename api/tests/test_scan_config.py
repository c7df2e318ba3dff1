from __future__ import annotations

from datetime import timedelta

import pytest

from app.services import scan_config


@pytest.mark.parametrize(
    "address,valid",
    [
        ("0x1234567890abcdef", True),
        ("0xABCDEF0123456789", True),
        ("1234567890abcdef", False),
        ("0x1234", False),
        ("0x1234567890abcdeg", False),
        (None, False),
        (1234, False),
    ],
)
def test_owner_address_format(address, valid):
    assert scan_config.is_valid_owner_address(address) is valid


def test_defaults():
    assert scan_config.flow_network() == "mainnet"
    assert scan_config.page_size() == 100
    assert scan_config.max_records() == 1000
    assert scan_config.source_timeout_seconds() == 30.0
    assert scan_config.cache_window() == timedelta(minutes=5)
    assert scan_config.database_url() == ""


def test_numeric_overrides_are_bounded(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SOURCE_PAGE_SIZE", "5000")
    monkeypatch.setenv("SOURCE_MAX_RECORDS", "abc")
    monkeypatch.setenv("SYNC_CACHE_INTERVAL_MINUTES", "0")

    assert scan_config.page_size() == 500
    assert scan_config.max_records() == 1000
    assert scan_config.cache_window() == timedelta(0)


def test_database_url_follows_network(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DATABASE_URL_MAINNET", "postgresql://main")
    monkeypatch.setenv("DATABASE_URL", "postgresql://shared")

    assert scan_config.database_url() == "postgresql://main"

    monkeypatch.setenv("FLOW_NETWORK", "testnet")
    assert scan_config.database_url() == "postgresql://shared"

    monkeypatch.setenv("AGENTS_DATABASE_URL", "sqlite:///agents.db")
    assert scan_config.database_url() == "sqlite:///agents.db"
