"""AgentStore abstraction + in-memory backend.

Three record kinds live in a store:
- agent rows keyed by ``current_record_id`` and addressable by owner
- append-only scan history rows per owner
- one user row per owner address, created by its first scan
"""

from __future__ import annotations

import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Protocol

from app.models.agent import Agent, AgentStatus
from app.models.scan import ScanRecord
from app.models.user import User
from app.services.scan_errors import AgentNotFound, PersistenceConflict, PersistenceError, UserNotFound

# Fields a scan may write; user metadata (nickname/description/tags) is never in here.
SCAN_WRITABLE_FIELDS = frozenset(
    {
        "chain_id",
        "handler_id",
        "handler_contract",
        "status",
        "scheduled_at",
        "priority",
        "execution_effort",
        "fee",
        "is_active",
        "total_runs",
        "successful_runs",
        "failed_runs",
        "last_execution_at",
        "execution_history",
        "superseded_by",
    }
)

METADATA_FIELDS = frozenset({"nickname", "description", "tags", "is_active"})
USER_FIELDS = frozenset({"nickname", "email"})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AgentStore(Protocol):
    """Protocol for agent persistence. Implementations: InMemoryAgentStore, SqlAgentStore."""

    def list_agents(
        self,
        owner_address: str,
        *,
        is_active: Optional[bool] = None,
        status: Optional[AgentStatus] = None,
    ) -> list[Agent]:
        """Agents for an owner, newest first."""
        ...

    def get_agent(self, record_id: str) -> Optional[Agent]:
        ...

    def create_agent(self, agent: Agent) -> Agent:
        """Insert a row keyed by ``current_record_id``; PersistenceConflict when it exists."""
        ...

    def update_agent(self, record_id: str, changes: Mapping[str, Any]) -> Agent:
        ...

    def deactivate_agents(
        self,
        record_ids: Iterable[str],
        *,
        superseded_by: Optional[Mapping[str, str]] = None,
    ) -> int:
        """Batch: is_active=False, status=completed. Returns rows touched."""
        ...

    def append_scan(self, record: ScanRecord) -> None:
        ...

    def latest_successful_scan(self, owner_address: str) -> Optional[ScanRecord]:
        ...

    def list_scans(self, owner_address: str, limit: int = 10, offset: int = 0) -> list[ScanRecord]:
        """Scan history for an owner, newest first."""
        ...

    def count_scans(self, owner_address: str) -> int:
        ...

    def upsert_user(self, address: str) -> User:
        """Return the user row for ``address``, creating it on first sight. Never overwrites."""
        ...

    def get_user(self, address: str) -> Optional[User]:
        ...

    def update_user(self, address: str, changes: Mapping[str, Any]) -> User:
        ...

    def ping(self) -> bool:
        """True when the backend answers a trivial query."""
        ...

    def clear(self) -> None:
        ...


def _check_fields(changes: Mapping[str, Any]) -> None:
    unknown = set(changes) - METADATA_FIELDS - SCAN_WRITABLE_FIELDS
    if unknown:
        raise PersistenceError(f"Unknown agent fields: {sorted(unknown)}")


class InMemoryAgentStore:
    """In-memory AgentStore. Safe for the reconciler's parallel creates."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._agents: dict[str, Agent] = {}
        self._scans: dict[str, list[ScanRecord]] = defaultdict(list)
        self._users: dict[str, User] = {}

    def list_agents(
        self,
        owner_address: str,
        *,
        is_active: Optional[bool] = None,
        status: Optional[AgentStatus] = None,
    ) -> list[Agent]:
        with self._lock:
            rows = [a for a in self._agents.values() if a.owner_address == owner_address]
        if is_active is not None:
            rows = [a for a in rows if a.is_active == is_active]
        if status is not None:
            rows = [a for a in rows if a.status == status]
        rows.sort(key=lambda a: a.created_at or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
        return [a.model_copy(deep=True) for a in rows]

    def get_agent(self, record_id: str) -> Optional[Agent]:
        with self._lock:
            found = self._agents.get(record_id)
        return found.model_copy(deep=True) if found else None

    def create_agent(self, agent: Agent) -> Agent:
        now = utc_now()
        with self._lock:
            if agent.current_record_id in self._agents:
                raise PersistenceConflict(agent.current_record_id)
            stored = agent.model_copy(deep=True, update={"created_at": now, "updated_at": now})
            self._agents[agent.current_record_id] = stored
        return stored.model_copy(deep=True)

    def update_agent(self, record_id: str, changes: Mapping[str, Any]) -> Agent:
        _check_fields(changes)
        with self._lock:
            current = self._agents.get(record_id)
            if current is None:
                raise AgentNotFound(f"No agent found with record id {record_id}")
            payload = current.model_dump()
            payload.update(changes)
            payload["updated_at"] = utc_now()
            updated = Agent.model_validate(payload)
            self._agents[record_id] = updated
        return updated.model_copy(deep=True)

    def deactivate_agents(
        self,
        record_ids: Iterable[str],
        *,
        superseded_by: Optional[Mapping[str, str]] = None,
    ) -> int:
        ids = set(record_ids)
        superseded_by = superseded_by or {}
        now = utc_now()
        touched = 0
        with self._lock:
            for record_id in ids:
                current = self._agents.get(record_id)
                if current is None:
                    continue
                update: dict[str, Any] = {
                    "is_active": False,
                    "status": AgentStatus.COMPLETED,
                    "updated_at": now,
                }
                if record_id in superseded_by:
                    update["superseded_by"] = superseded_by[record_id]
                self._agents[record_id] = current.model_copy(update=update)
                touched += 1
        return touched

    def append_scan(self, record: ScanRecord) -> None:
        with self._lock:
            self._scans[record.owner_address].append(record.model_copy())

    def latest_successful_scan(self, owner_address: str) -> Optional[ScanRecord]:
        with self._lock:
            rows = [r for r in self._scans.get(owner_address, []) if r.succeeded]
        if not rows:
            return None
        return max(rows, key=lambda r: r.observed_at).model_copy()

    def list_scans(self, owner_address: str, limit: int = 10, offset: int = 0) -> list[ScanRecord]:
        with self._lock:
            rows = list(self._scans.get(owner_address, []))
        rows.sort(key=lambda r: r.observed_at, reverse=True)
        return [r.model_copy() for r in rows[offset : offset + limit]]

    def count_scans(self, owner_address: str) -> int:
        with self._lock:
            return len(self._scans.get(owner_address, []))

    def upsert_user(self, address: str) -> User:
        with self._lock:
            found = self._users.get(address)
            if found is None:
                now = utc_now()
                found = User(address=address, created_at=now, updated_at=now)
                self._users[address] = found
        return found.model_copy()

    def get_user(self, address: str) -> Optional[User]:
        with self._lock:
            found = self._users.get(address)
        return found.model_copy() if found else None

    def update_user(self, address: str, changes: Mapping[str, Any]) -> User:
        unknown = set(changes) - USER_FIELDS
        if unknown:
            raise PersistenceError(f"Unknown user fields: {sorted(unknown)}")
        with self._lock:
            current = self._users.get(address)
            if current is None:
                raise UserNotFound("No user found with this address")
            updated = current.model_copy(update={**changes, "updated_at": utc_now()})
            self._users[address] = updated
        return updated.model_copy()

    def ping(self) -> bool:
        return True

    def clear(self) -> None:
        with self._lock:
            self._agents.clear()
            self._scans.clear()
            self._users.clear()
