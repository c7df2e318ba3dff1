"""Owner profile, profile edits, paged scan history and the dashboard view."""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Optional

from app.adapters.agent_store import AgentStore
from app.models.agent import AgentStatus
from app.models.user import (
    Dashboard,
    DashboardStats,
    Pagination,
    ScanHistoryPage,
    UpcomingAgent,
    User,
    UserProfile,
    UserStats,
    UserUpdate,
)
from app.services.scan_errors import UserNotFound
from app.services.sync_service import validate_owner_address

logger = logging.getLogger(__name__)

DASHBOARD_SCANS = 5
DASHBOARD_UPCOMING = 5


def get_user(store: AgentStore, address: str) -> User:
    address = validate_owner_address(address)
    found = store.get_user(address)
    if found is None:
        raise UserNotFound("No user found with this address")
    return found


def get_profile(store: AgentStore, address: str) -> UserProfile:
    user = get_user(store, address)
    agents = store.list_agents(user.address)
    active = [a for a in agents if a.is_active]
    return UserProfile(
        user=user,
        agents=active,
        stats=UserStats(total_agents=len(agents), active_agents=len(active)),
    )


def update_user(store: AgentStore, address: str, data: UserUpdate) -> User:
    user = get_user(store, address)
    changes = data.model_dump(exclude_unset=True)
    if not changes:
        return user
    updated = store.update_user(user.address, changes)
    logger.info("user_profile_updated address=%s fields=%s", user.address, ",".join(sorted(changes)))
    return updated


def scan_history(store: AgentStore, address: str, limit: int = 20, offset: int = 0) -> ScanHistoryPage:
    """Newest-first scan history. Unknown addresses get an empty page, not a 404."""
    address = validate_owner_address(address)
    total = store.count_scans(address)
    return ScanHistoryPage(
        scan_history=store.list_scans(address, limit=limit, offset=offset),
        pagination=Pagination(total=total, limit=limit, offset=offset, has_more=offset + limit < total),
    )


def dashboard(store: AgentStore, address: str, now: Optional[datetime] = None) -> Dashboard:
    user = get_user(store, address)
    now = now or datetime.now(timezone.utc)
    agents = store.list_agents(user.address)
    active = [a for a in agents if a.is_active]
    upcoming = sorted(
        (
            a
            for a in active
            if a.status == AgentStatus.SCHEDULED and a.scheduled_at is not None and a.scheduled_at >= now
        ),
        key=lambda a: a.scheduled_at,
    )
    recent = store.list_scans(user.address, limit=DASHBOARD_SCANS)
    return Dashboard(
        user=user,
        stats=DashboardStats(
            total_agents=len(agents),
            active_agents=len(active),
            by_status=dict(Counter(AgentStatus(a.status).value for a in agents)),
            recent_scans=len(recent),
            upcoming_executions=len(upcoming),
        ),
        upcoming_agents=[
            UpcomingAgent(
                current_record_id=a.current_record_id,
                handler_contract=a.handler_contract,
                scheduled_at=a.scheduled_at,
                nickname=a.nickname,
            )
            for a in upcoming[:DASHBOARD_UPCOMING]
        ],
        recent_scans=recent,
    )
