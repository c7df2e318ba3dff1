"""Chain building: head detection, forward walks, classification and history."""

from __future__ import annotations

from app.models.agent import AgentStatus
from app.services.chain_builder import build_chains, collect_chains, find_heads, walk_chain
from factories import linked_chain, make_record


def test_linear_chain_with_scheduled_tail_is_one_active_agent():
    records = linked_chain(("R1", "executed"), ("R2", "executed"), ("R3", "scheduled"))

    result = build_chains(records)

    assert len(result.active) == 1
    assert result.completed == []
    agent = result.active[0]
    assert agent.current_record_id == "R3"
    assert agent.chain_id == "R1"
    assert agent.status == AgentStatus.SCHEDULED
    assert agent.is_active is True
    assert agent.total_runs == 2
    assert agent.successful_runs == 2
    assert agent.failed_runs == 0
    assert [e.record_id for e in agent.execution_history] == ["R2", "R1"]
    assert agent.last_execution_at == agent.execution_history[0].completed_at


def test_history_counts_failed_runs():
    records = linked_chain(("A", "executed"), ("B", "failed"), ("C", "executed"), ("D", "scheduled"))

    agent = build_chains(records).active[0]

    assert agent.total_runs == 3
    assert agent.successful_runs == 2
    assert agent.failed_runs == 1
    assert agent.total_runs == agent.successful_runs + agent.failed_runs


def test_input_order_does_not_matter():
    records = linked_chain(("R1", "executed"), ("R2", "executed"), ("R3", "scheduled"))

    forward = build_chains(records).active[0]
    backward = build_chains(list(reversed(records))).active[0]

    assert forward.model_dump() == backward.model_dump()


def test_chain_id_uses_head_predecessor_when_it_is_outside_the_page():
    # The transaction that scheduled R1 is not a record in this fetch.
    records = linked_chain(("R1", "executed"), ("R2", "scheduled"), head_predecessor="tx-R0")

    agent = build_chains(records).active[0]

    assert agent.chain_id == "tx-R0"
    assert agent.current_record_id == "R2"


def test_finished_chain_is_completed_agent():
    records = linked_chain(("F1", "executed"), ("F2", "failed"))

    result = build_chains(records)

    assert result.active == []
    assert len(result.completed) == 1
    agent = result.completed[0]
    assert agent.current_record_id == "F2"
    assert agent.is_active is False
    assert agent.status == AgentStatus.FAILED
    assert agent.total_runs == 2


def test_terminal_tail_without_completion_time_is_dropped():
    records = [
        make_record("X1", successor="tx-X1"),
        make_record("X2", predecessor="tx-X1", status="executed", completed=False, minutes=10),
    ]

    result = build_chains(records)

    assert result.active == []
    assert result.completed == []


def test_unlinked_one_off_terminal_record_is_dropped():
    result = build_chains([make_record("solo")])

    assert result.total_found == 0


def test_single_scheduled_record_is_active_with_no_runs():
    agent = build_chains([make_record("new", status="scheduled")]).active[0]

    assert agent.total_runs == 0
    assert agent.last_execution_at is None
    assert agent.execution_history == []


def test_independent_lineages_stay_separate():
    records = linked_chain(("A1", "executed"), ("A2", "scheduled")) + linked_chain(
        ("B1", "executed"), ("B2", "executed"), ("B3", "scheduled"), start_minutes=5
    )

    result = build_chains(records)

    assert sorted(a.current_record_id for a in result.active) == ["A2", "B3"]
    assert result.total_found == 2


def test_every_record_lands_in_at_most_one_chain():
    records = linked_chain(("A1", "executed"), ("A2", "executed"), ("A3", "scheduled")) + [
        make_record("lone", status="scheduled", minutes=3)
    ]

    chains = collect_chains(records)

    seen: list[str] = []
    for chain in chains:
        seen.extend(chain.record_ids)
    assert len(seen) == len(set(seen))


def test_duplicate_record_ids_are_collapsed():
    records = linked_chain(("R1", "executed"), ("R2", "scheduled"))

    result = build_chains(records + [records[0]])

    assert len(result.active) == 1
    assert result.active[0].total_runs == 1


def test_cycle_terminates():
    records = [
        make_record("C1", predecessor="tx-C2", successor="tx-C1"),
        make_record("C2", predecessor="tx-C1", successor="tx-C2", minutes=10),
    ]

    # Every record is claimed as a successor, so no head exists and nothing is built.
    assert find_heads(records) == []
    assert collect_chains(records) == []


def test_walk_stops_at_visited_records():
    records = linked_chain(("W1", "executed"), ("W2", "executed"), ("W3", "scheduled"))
    by_predecessor = {r.predecessor_ref: r for r in records if r.predecessor_ref}

    chain = walk_chain(records[0], by_predecessor, visited={"W3"})

    assert [r.id for r in chain] == ["W1", "W2"]


def test_long_chain_walk_is_iterative():
    specs = [(f"L{i}", "executed") for i in range(3000)] + [("L3000", "scheduled")]
    records = linked_chain(*specs)

    agent = build_chains(records).active[0]

    assert agent.total_runs == 3000
    assert agent.current_record_id == "L3000"
