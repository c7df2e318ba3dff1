"""Chain builder: turn flat task records into agent aggregates.

Records link forward by value: a record's ``successor_ref`` names the record
whose ``predecessor_ref`` carries the same id. Chains are walked from their
heads with an explicit visited set, never recursively.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Sequence

from app.models.agent import Agent, AgentStatus
from app.models.task_record import ExecutionEntry, TaskRecord, TaskStatus

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class BuiltChain:
    agent: Agent
    records: list[TaskRecord]
    is_active: bool

    @property
    def record_ids(self) -> set[str]:
        return {r.id for r in self.records}

    @property
    def latest_scheduled_at(self) -> datetime:
        return max((r.scheduled_at for r in self.records), default=_EPOCH)


@dataclass
class ChainBuildResult:
    active: list[Agent] = field(default_factory=list)
    completed: list[Agent] = field(default_factory=list)

    @property
    def total_found(self) -> int:
        return len(self.active) + len(self.completed)


def find_heads(records: Sequence[TaskRecord]) -> list[TaskRecord]:
    """Records that start a lineage: nothing claims to have produced them."""
    claimed_as_successor = {r.successor_ref for r in records if r.successor_ref}
    return [r for r in records if not r.predecessor_ref or r.predecessor_ref not in claimed_as_successor]


def walk_chain(
    head: TaskRecord,
    by_predecessor: dict[str, TaskRecord],
    visited: set[str],
) -> list[TaskRecord]:
    chain: list[TaskRecord] = []
    current: TaskRecord | None = head
    while current is not None and current.id not in visited:
        chain.append(current)
        visited.add(current.id)
        current = by_predecessor.get(current.successor_ref) if current.successor_ref else None
    return chain


def build_agent(chain: Sequence[TaskRecord], is_active: bool) -> Agent:
    head, tail = chain[0], chain[-1]
    history = sorted(
        (ExecutionEntry.from_record(r) for r in chain if r.is_terminal),
        key=lambda e: e.completed_at or _EPOCH,
        reverse=True,
    )
    return Agent(
        current_record_id=tail.id,
        chain_id=head.predecessor_ref or head.id,
        owner_address=tail.owner_address,
        handler_id=tail.handler_id,
        handler_contract=tail.handler_contract,
        status=AgentStatus.from_task_status(tail.status),
        scheduled_at=tail.scheduled_at,
        priority=tail.priority,
        execution_effort=tail.execution_effort,
        fee=tail.fee,
        is_active=is_active,
        total_runs=len(history),
        successful_runs=sum(1 for e in history if e.status == TaskStatus.EXECUTED),
        failed_runs=sum(1 for e in history if e.status == TaskStatus.FAILED),
        last_execution_at=history[0].completed_at if history else None,
        execution_history=history,
    )


def _classify(chain: Sequence[TaskRecord]) -> bool | None:
    """True for active, False for completed, None when the chain is dropped."""
    tail = chain[-1]
    if tail.status == TaskStatus.SCHEDULED:
        return True
    if tail.is_terminal and tail.completed_at is not None:
        if len(chain) == 1 and not tail.predecessor_ref and not tail.successor_ref:
            # Unlinked one-off: not part of any recurring lineage.
            return None
        return False
    return None


def collect_chains(records: Iterable[TaskRecord]) -> list[BuiltChain]:
    """Walk every chain and return (agent, records, is_active) triples."""
    by_id: dict[str, TaskRecord] = {}
    for record in records:
        by_id[record.id] = record
    unique = list(by_id.values())
    by_predecessor = {r.predecessor_ref: r for r in unique if r.predecessor_ref}

    visited: set[str] = set()
    built: list[BuiltChain] = []
    dropped = 0
    for head in find_heads(unique):
        if head.id in visited:
            continue
        chain = walk_chain(head, by_predecessor, visited)
        if not chain:
            continue
        is_active = _classify(chain)
        if is_active is None:
            dropped += 1
            continue
        agent = build_agent(chain, is_active)
        if not is_active and agent.total_runs == 0:
            dropped += 1
            continue
        built.append(BuiltChain(agent=agent, records=chain, is_active=is_active))
    if dropped:
        logger.info("chains_dropped count=%s", dropped)
    return built


def split_agents(chains: Iterable[BuiltChain]) -> ChainBuildResult:
    result = ChainBuildResult()
    for item in chains:
        (result.active if item.is_active else result.completed).append(item.agent)
    return result


def build_chains(records: Iterable[TaskRecord]) -> ChainBuildResult:
    """Build active and completed agents without deduplication."""
    return split_agents(collect_chains(records))
