"""Freshness check in front of the scan pipeline.

Pure over the last successful scan record and the current time; no
in-process state, so every service instance reaches the same answer.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from app.adapters.agent_store import AgentStore
from app.models.scan import ScanRecord
from app.services import scan_config


def should_rescan(
    last_success_at: Optional[datetime],
    now: datetime,
    cache_window: timedelta,
    force_refresh: bool = False,
) -> bool:
    if force_refresh or last_success_at is None:
        return True
    return (now - last_success_at) >= cache_window


def needs_rescan(
    store: AgentStore,
    owner_address: str,
    force_refresh: bool = False,
    *,
    now: Optional[datetime] = None,
    cache_window: Optional[timedelta] = None,
) -> tuple[bool, Optional[ScanRecord]]:
    """Return (stale, last successful scan) for an owner."""
    if force_refresh:
        return True, None
    last = store.latest_successful_scan(owner_address)
    stale = should_rescan(
        last.observed_at if last else None,
        now or datetime.now(timezone.utc),
        cache_window if cache_window is not None else scan_config.cache_window(),
        force_refresh,
    )
    return stale, last
