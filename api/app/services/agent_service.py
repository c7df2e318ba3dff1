"""Agent metadata operations: listing, user edits, manual deactivation and stats."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Optional

from app.adapters.agent_store import AgentStore
from app.models.agent import Agent, AgentStats, AgentStatus, AgentUpdate
from app.services.scan_errors import AgentNotFound
from app.services.sync_service import validate_owner_address

logger = logging.getLogger(__name__)


def list_agents(
    store: AgentStore,
    owner_address: str,
    status: Optional[AgentStatus] = None,
    is_active: Optional[bool] = None,
) -> list[Agent]:
    owner_address = validate_owner_address(owner_address)
    return store.list_agents(owner_address, is_active=is_active, status=status)


def get_agent(store: AgentStore, record_id: str) -> Agent:
    found = store.get_agent(record_id)
    if found is None:
        raise AgentNotFound("No agent found with this ID")
    return found


def update_agent(store: AgentStore, record_id: str, data: AgentUpdate) -> Agent:
    """Apply user edits. Only fields present in the request are written."""
    get_agent(store, record_id)
    changes = data.model_dump(exclude_unset=True)
    if not changes:
        return get_agent(store, record_id)
    updated = store.update_agent(record_id, changes)
    logger.info("agent_metadata_updated record_id=%s fields=%s", record_id, ",".join(sorted(changes)))
    return updated


def deactivate_agent(store: AgentStore, record_id: str) -> Agent:
    get_agent(store, record_id)
    return store.update_agent(record_id, {"is_active": False})


def agent_stats(store: AgentStore, owner_address: str) -> AgentStats:
    owner_address = validate_owner_address(owner_address)
    agents = store.list_agents(owner_address)
    by_status = Counter(AgentStatus(a.status).value for a in agents)
    return AgentStats(
        total_agents=len(agents),
        active_agents=sum(1 for a in agents if a.is_active),
        by_status=dict(by_status),
    )
