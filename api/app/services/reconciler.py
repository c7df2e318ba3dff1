"""State reconciliation between freshly built agents and the persisted store.

Rows are keyed by ``current_record_id`` (the chain tail). When a chain
advances its tail id changes, so the new tail is created and the old row is
absorbed: deactivated and pointed at the active agent whose execution history
now contains it. Existing rows are only updated while their tail id is
unchanged, and only when a scan-owned field actually differs, so a repeated
scan over unchanged upstream data writes nothing.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from app.adapters.agent_store import SCAN_WRITABLE_FIELDS, AgentStore
from app.models.agent import Agent, AgentStatus
from app.models.scan import ReconcileResult
from app.services import scan_config
from app.services.scan_errors import PersistenceConflict

logger = logging.getLogger(__name__)


@dataclass
class ReconcilePlan:
    to_create: list[Agent] = field(default_factory=list)
    to_update: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    # Rows whose tail has finished: final counters written and the row closed.
    to_finish: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    to_deactivate: set[str] = field(default_factory=set)
    superseded_by: dict[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.to_create or self.to_update or self.to_finish or self.to_deactivate)


def active_history_index(source_active: Iterable[Agent]) -> dict[str, str]:
    """Map every record id inside an active agent's history to that agent's tail id."""
    index: dict[str, str] = {}
    for agent in source_active:
        for record_id in agent.history_ids():
            index[record_id] = agent.current_record_id
    return index


def _absorb(plan: ReconcilePlan, existing: Agent, tail_id: str) -> None:
    # Closed rows are absorbed as well when a finished chain resumes under a new tail.
    if existing.is_active or existing.superseded_by != tail_id:
        plan.to_deactivate.add(existing.current_record_id)
        plan.superseded_by[existing.current_record_id] = tail_id


def _scan_fields(agent: Agent) -> dict[str, Any]:
    return agent.model_dump(mode="json", include=SCAN_WRITABLE_FIELDS)


def _changed_fields(existing: Agent, target: Agent) -> dict[str, Any]:
    current = _scan_fields(existing)
    wanted = _scan_fields(target)
    changed_keys = [key for key in sorted(SCAN_WRITABLE_FIELDS) if current.get(key) != wanted.get(key)]
    return target.model_dump(include=set(changed_keys))


def plan_reconciliation(
    persisted: Iterable[Agent],
    source_active: Iterable[Agent],
    source_completed: Iterable[Agent],
) -> ReconcilePlan:
    """Decide creates, updates and deactivations without touching the store."""
    active_map = {a.current_record_id: a for a in source_active}
    completed_map = {a.current_record_id: a for a in source_completed}
    persisted_map = {a.current_record_id: a for a in persisted}
    absorbed_into = active_history_index(active_map.values())
    plan = ReconcilePlan()

    for record_id, agent in active_map.items():
        target = agent.model_copy(update={"is_active": True, "superseded_by": None})
        existing = persisted_map.get(record_id)
        if existing is None:
            plan.to_create.append(target)
            continue
        changes = _changed_fields(existing, target)
        if changes:
            plan.to_update.append((record_id, changes))

    for record_id, agent in completed_map.items():
        existing = persisted_map.get(record_id)
        if record_id in absorbed_into:
            if existing is not None:
                _absorb(plan, existing, absorbed_into[record_id])
            continue
        target = agent.model_copy(update={"is_active": False})
        if existing is None:
            plan.to_create.append(target)
        elif existing.is_active:
            changes = _changed_fields(existing, target)
            changes["is_active"] = False
            plan.to_finish.append((record_id, changes))

    for record_id, existing in persisted_map.items():
        if record_id in active_map or record_id in completed_map:
            continue
        if record_id in absorbed_into:
            _absorb(plan, existing, absorbed_into[record_id])
        elif existing.is_active:
            plan.to_deactivate.add(record_id)

    return plan


def _create_all(store: AgentStore, agents: list[Agent], workers: int) -> int:
    if not agents:
        return 0
    created = 0
    with ThreadPoolExecutor(max_workers=max(1, min(workers, len(agents)))) as ex:
        futures = {ex.submit(store.create_agent, agent): agent.current_record_id for agent in agents}
        try:
            for future in as_completed(futures):
                try:
                    future.result()
                except PersistenceConflict:
                    logger.warning("agent_create_conflict record_id=%s", futures[future])
                    continue
                created += 1
        except Exception:
            for pending in futures:
                pending.cancel()
            raise
    return created


def apply_plan(store: AgentStore, plan: ReconcilePlan, workers: Optional[int] = None) -> ReconcileResult:
    created = _create_all(store, plan.to_create, workers or scan_config.create_workers())
    for record_id, changes in plan.to_update:
        store.update_agent(record_id, changes)
    for record_id, changes in plan.to_finish:
        store.update_agent(record_id, changes)
    if plan.to_deactivate:
        store.deactivate_agents(plan.to_deactivate, superseded_by=plan.superseded_by)
    return ReconcileResult(
        created=created,
        updated=len(plan.to_update),
        deactivated=len(plan.to_finish) + len(plan.to_deactivate),
    )


def reconcile(
    store: AgentStore,
    owner_address: str,
    source_active: Iterable[Agent],
    source_completed: Iterable[Agent],
    *,
    workers: Optional[int] = None,
) -> ReconcileResult:
    persisted = store.list_agents(owner_address)
    plan = plan_reconciliation(persisted, source_active, source_completed)
    if plan.is_empty:
        logger.info("reconcile_noop owner=%s persisted=%s", owner_address, len(persisted))
        return ReconcileResult()
    result = apply_plan(store, plan, workers)
    logger.info(
        "reconcile_complete owner=%s created=%s updated=%s deactivated=%s absorbed=%s",
        owner_address,
        result.created,
        result.updated,
        result.deactivated,
        len(plan.superseded_by),
    )
    return result
