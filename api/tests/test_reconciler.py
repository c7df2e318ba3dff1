"""Reconciliation of built agents against the persisted store."""

from __future__ import annotations

import pytest

from app.adapters.agent_store import InMemoryAgentStore
from app.models.agent import AgentStatus
from app.models.scan import ReconcileResult
from app.services.chain_builder import build_chains
from app.services.reconciler import active_history_index, plan_reconciliation, reconcile
from app.services.scan_errors import PersistenceError
from factories import OTHER_OWNER, OWNER, linked_chain, make_record


def _sync(store, records) -> ReconcileResult:
    built = build_chains(records)
    return reconcile(store, OWNER, built.active, built.completed, workers=4)


def _by_id(store) -> dict:
    return {a.current_record_id: a for a in store.list_agents(OWNER)}


def test_new_chain_creates_one_active_agent(store):
    records = linked_chain(("R1", "executed"), ("R2", "executed"), ("R3", "scheduled"))

    result = _sync(store, records)

    assert result == ReconcileResult(created=1, updated=0, deactivated=0)
    rows = store.list_agents(OWNER)
    assert len(rows) == 1
    assert rows[0].current_record_id == "R3"
    assert rows[0].is_active is True
    assert rows[0].total_runs == 2


def test_advanced_chain_absorbs_previous_tail(store):
    _sync(store, [make_record("T1", status="scheduled")])

    result = _sync(store, linked_chain(("T1", "executed"), ("T2", "scheduled")))

    assert result.created == 1
    assert result.deactivated == 1
    rows = _by_id(store)
    assert rows["T2"].is_active is True
    assert rows["T2"].total_runs == 1
    assert rows["T1"].is_active is False
    assert rows["T1"].status == AgentStatus.COMPLETED
    assert rows["T1"].superseded_by == "T2"


def test_agent_missing_from_source_is_deactivated(store):
    _sync(store, [make_record("T5", status="scheduled")])

    result = _sync(store, [])

    assert result == ReconcileResult(created=0, updated=0, deactivated=1)
    row = store.get_agent("T5")
    assert row.is_active is False
    assert row.status == AgentStatus.COMPLETED
    assert row.superseded_by is None


def test_repeat_scan_over_same_data_writes_nothing(store):
    records = linked_chain(("R1", "executed"), ("R2", "scheduled")) + linked_chain(
        ("F1", "executed"), ("F2", "failed"), start_minutes=3
    )
    _sync(store, records)
    before = {a.current_record_id: a.updated_at for a in store.list_agents(OWNER)}

    result = _sync(store, records)

    assert result == ReconcileResult()
    after = {a.current_record_id: a.updated_at for a in store.list_agents(OWNER)}
    assert after == before


def test_changed_scan_fields_update_in_place(store):
    _sync(store, linked_chain(("R1", "executed"), ("R2", "scheduled")))
    changed = [
        make_record("R1", successor="tx-R1"),
        make_record("R2", status="scheduled", predecessor="tx-R1", minutes=10, fee="0.25", priority="high"),
    ]

    result = _sync(store, changed)

    assert result == ReconcileResult(created=0, updated=1, deactivated=0)
    row = store.get_agent("R2")
    assert row.fee == "0.25"
    assert row.priority == "high"
    assert row.is_active is True


def test_user_metadata_survives_rescans(store):
    _sync(store, [make_record("T1", status="scheduled")])
    store.update_agent("T1", {"nickname": "counter", "description": "ticks", "tags": ["prod"]})
    changed = [make_record("T1", status="scheduled", fee="9.9")]

    _sync(store, changed)

    row = store.get_agent("T1")
    assert row.fee == "9.9"
    assert row.nickname == "counter"
    assert row.description == "ticks"
    assert row.tags == ["prod"]


def test_finished_chain_closes_persisted_active_row(store):
    _sync(store, linked_chain(("F1", "executed"), ("F2", "scheduled")))

    result = _sync(store, linked_chain(("F1", "executed"), ("F2", "failed")))

    assert result == ReconcileResult(created=0, updated=0, deactivated=1)
    row = store.get_agent("F2")
    assert row.is_active is False
    assert row.status == AgentStatus.FAILED
    assert row.total_runs == 2
    assert row.failed_runs == 1


def test_completed_chain_seen_first_time_is_stored_inactive(store):
    result = _sync(store, linked_chain(("F1", "executed"), ("F2", "executed")))

    assert result.created == 1
    row = store.get_agent("F2")
    assert row.is_active is False
    assert row.status == AgentStatus.EXECUTED


def test_inactive_rows_are_left_alone(store):
    _sync(store, [make_record("T5", status="scheduled")])
    _sync(store, [])

    result = _sync(store, [])

    assert result == ReconcileResult()


def test_persisted_inactive_row_is_reactivated_when_source_is_active(store):
    _sync(store, [make_record("T7", status="scheduled")])
    store.update_agent("T7", {"is_active": False})

    result = _sync(store, [make_record("T7", status="scheduled")])

    assert result.updated == 1
    assert store.get_agent("T7").is_active is True


def test_every_source_agent_has_exactly_one_row(store):
    _sync(store, linked_chain(("A1", "scheduled")) + [make_record("B1", status="scheduled", minutes=2)])
    records = (
        linked_chain(("A1", "executed"), ("A2", "executed"), ("A3", "scheduled"))
        + [make_record("B1", status="scheduled", minutes=2)]
        + linked_chain(("C1", "executed"), ("C2", "executed"), start_minutes=4)
    )
    built = build_chains(records)

    reconcile(store, OWNER, built.active, built.completed)

    rows = _by_id(store)
    for agent in built.active:
        assert rows[agent.current_record_id].is_active is True
    for agent in built.completed:
        assert rows[agent.current_record_id].is_active is False
    assert sorted(r for r, a in rows.items() if a.is_active) == ["A3", "B1"]
    assert rows["A1"].superseded_by == "A3"


def test_duplicate_key_from_another_owner_is_tolerated(store):
    foreign = build_chains([make_record("R9", status="scheduled", owner=OTHER_OWNER)]).active[0]
    store.create_agent(foreign)

    result = _sync(store, [make_record("R9", status="scheduled"), make_record("R10", status="scheduled", minutes=1)])

    assert result.created == 1
    assert store.get_agent("R10").owner_address == OWNER
    assert store.get_agent("R9").owner_address == OTHER_OWNER


class _BrokenStore(InMemoryAgentStore):
    def create_agent(self, agent):
        raise PersistenceError("disk full")


def test_other_create_failures_abort_the_write():
    store = _BrokenStore()

    with pytest.raises(PersistenceError):
        _sync(store, [make_record("R1", status="scheduled")])


def test_plan_is_pure():
    built = build_chains(linked_chain(("T1", "executed"), ("T2", "scheduled")))
    persisted = build_chains([make_record("T1", status="scheduled")]).active

    plan = plan_reconciliation(persisted, built.active, built.completed)

    assert [a.current_record_id for a in plan.to_create] == ["T2"]
    assert plan.to_update == []
    assert plan.to_deactivate == {"T1"}
    assert plan.superseded_by == {"T1": "T2"}
    assert persisted[0].is_active is True


def test_active_history_index_maps_history_to_tail():
    built = build_chains(linked_chain(("H1", "executed"), ("H2", "executed"), ("H3", "scheduled")))

    assert active_history_index(built.active) == {"H1": "H3", "H2": "H3"}


def test_resumed_finished_chain_absorbs_its_closed_tail(store):
    _sync(store, linked_chain(("F1", "executed"), ("F2", "executed")))
    assert store.get_agent("F2").is_active is False

    result = _sync(store, linked_chain(("F1", "executed"), ("F2", "executed"), ("F3", "scheduled")))

    assert result == ReconcileResult(created=1, updated=0, deactivated=1)
    rows = _by_id(store)
    assert rows["F3"].is_active is True
    assert [e.record_id for e in rows["F3"].execution_history] == ["F2", "F1"]
    assert rows["F2"].superseded_by == "F3"
    assert rows["F2"].status == AgentStatus.COMPLETED
    assert _sync(store, linked_chain(("F1", "executed"), ("F2", "executed"), ("F3", "scheduled"))) == ReconcileResult()


def test_absorbed_row_follows_the_chain_to_its_newest_tail(store):
    _sync(store, [make_record("T1", status="scheduled")])
    _sync(store, linked_chain(("T1", "executed"), ("T2", "scheduled")))

    result = _sync(store, linked_chain(("T1", "executed"), ("T2", "executed"), ("T3", "scheduled")))

    assert result == ReconcileResult(created=1, updated=0, deactivated=2)
    assert store.get_agent("T1").superseded_by == "T3"
    assert store.get_agent("T2").superseded_by == "T3"


def test_completed_source_agent_inside_active_history_is_absorbed():
    active = build_chains(linked_chain(("C1", "executed"), ("C2", "executed"), ("C3", "scheduled"))).active
    completed = build_chains(linked_chain(("C1", "executed"), ("C2", "executed"))).completed
    open_row = completed[0].model_copy(update={"is_active": True})

    plan = plan_reconciliation([open_row], active, completed)

    assert [a.current_record_id for a in plan.to_create] == ["C3"]
    assert plan.to_finish == []
    assert plan.to_deactivate == {"C2"}
    assert plan.superseded_by == {"C2": "C3"}


def test_completed_source_agent_already_absorbed_plans_nothing():
    active = build_chains(linked_chain(("C1", "executed"), ("C2", "executed"), ("C3", "scheduled"))).active
    completed = build_chains(linked_chain(("C1", "executed"), ("C2", "executed"))).completed
    closed_row = completed[0].model_copy(update={"superseded_by": "C3", "status": AgentStatus.COMPLETED})

    plan = plan_reconciliation([closed_row, active[0]], active, completed)

    assert plan.is_empty


def test_counts_match_rows_that_changed(store):
    _sync(
        store,
        linked_chain(("A1", "executed"), ("A2", "scheduled"))
        + [make_record("B1", status="scheduled", minutes=1)]
        + linked_chain(("F1", "executed"), ("F2", "scheduled"), start_minutes=2)
        + [make_record("G1", status="scheduled", minutes=3), make_record("K1", status="scheduled", minutes=5)],
    )
    before = {a.current_record_id: a.model_dump() for a in store.list_agents(OWNER)}

    result = _sync(
        store,
        linked_chain(("A1", "executed"), ("A2", "executed"), ("A3", "scheduled"))
        + [make_record("B1", status="scheduled", minutes=1, fee="0.5")]
        + linked_chain(("F1", "executed"), ("F2", "failed"), start_minutes=2)
        + [make_record("N1", status="scheduled", minutes=4), make_record("K1", status="scheduled", minutes=5)],
    )

    after = {a.current_record_id: a.model_dump() for a in store.list_agents(OWNER)}
    changed = sorted(record_id for record_id, row in after.items() if before.get(record_id) != row)
    assert result == ReconcileResult(created=2, updated=1, deactivated=3)
    assert changed == ["A2", "A3", "B1", "F2", "G1", "N1"]
    assert result.changed == len(changed)
