"""Scan configuration: upstream endpoint selection, pagination and cache window."""

from __future__ import annotations

import os
import re
from datetime import timedelta

OWNER_ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{16}$")

_DEFAULT_PAGE_SIZE = 100
_DEFAULT_MAX_RECORDS = 1000
_DEFAULT_TIMEOUT_SECONDS = 30.0
_DEFAULT_CACHE_MINUTES = 5
_DEFAULT_CREATE_WORKERS = 8

USER_AGENT = "agent-scanner/1.0.0"


def _int_env(name: str, default: int, minimum: int = 1, maximum: int | None = None) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


def flow_network() -> str:
    configured = os.getenv("FLOW_NETWORK", "").strip().lower()
    if configured:
        return configured
    return "testnet" if os.getenv("NODE_ENV", "").strip().lower() == "testnet" else "mainnet"


def source_base_url() -> str:
    if flow_network() == "testnet":
        raw = os.getenv("FIND_LABS_API_BASE_TESTNET", "")
    else:
        raw = os.getenv("FIND_LABS_API_BASE_MAINNET", "")
    return raw.strip().rstrip("/")


def source_credentials() -> tuple[str, str]:
    return (
        os.getenv("FIND_LABS_USERNAME", "").strip(),
        os.getenv("FIND_LABS_PASSWORD", "").strip(),
    )


def page_size() -> int:
    return _int_env("SOURCE_PAGE_SIZE", _DEFAULT_PAGE_SIZE, maximum=500)


def max_records() -> int:
    return _int_env("SOURCE_MAX_RECORDS", _DEFAULT_MAX_RECORDS)


def source_timeout_seconds() -> float:
    raw = os.getenv("SOURCE_TIMEOUT_SECONDS", "").strip()
    try:
        return max(1.0, float(raw)) if raw else _DEFAULT_TIMEOUT_SECONDS
    except ValueError:
        return _DEFAULT_TIMEOUT_SECONDS


def cache_window() -> timedelta:
    return timedelta(minutes=_int_env("SYNC_CACHE_INTERVAL_MINUTES", _DEFAULT_CACHE_MINUTES, minimum=0))


def create_workers() -> int:
    return _int_env("SCAN_CREATE_WORKERS", _DEFAULT_CREATE_WORKERS, maximum=64)


def database_url() -> str:
    """SQL store URL; empty means the in-memory store is used."""
    if flow_network() == "mainnet":
        configured = os.getenv("AGENTS_DATABASE_URL") or os.getenv("DATABASE_URL_MAINNET") or os.getenv("DATABASE_URL")
    else:
        configured = os.getenv("AGENTS_DATABASE_URL") or os.getenv("DATABASE_URL")
    return (configured or "").strip()


def is_valid_owner_address(address: object) -> bool:
    return isinstance(address, str) and bool(OWNER_ADDRESS_PATTERN.match(address))


def log_level() -> str:
    return os.getenv("LOG_LEVEL", "").strip().upper() or "INFO"


def slow_request_ms() -> float:
    raw = os.getenv("API_SLOW_REQUEST_MS", "").strip()
    try:
        return max(25.0, float(raw)) if raw else 1500.0
    except ValueError:
        return 1500.0


def log_all_requests() -> bool:
    return os.getenv("API_LOG_ALL_REQUESTS", "").strip().lower() in {"1", "true", "yes", "on"}


def allowed_origins() -> list[str]:
    raw = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]
