"""Rebalance journal tests against the in-memory and SQLite backends."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from fractions import Fraction

import pytest

from rebalancer.errors import PersistenceFailure
from rebalancer.journal.store import RebalanceStore
from rebalancer.models import (
    ActionStatus,
    ChainSnapshot,
    ConfidenceFactors,
    DebtResult,
    RebalanceAction,
    ReasoningRecord,
    RouteQuote,
    RouteStep,
    TransferEvent,
    UpcomingObligation,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
ROUTE = RouteQuote(steps=(RouteStep("ERC20", 5), RouteStep("Stargate", 35)), estimated_cost=2_450_000,
                   raw_payload={"simulated": True})


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return RebalanceStore(None)
    return RebalanceStore(f"sqlite+aiosqlite:///{tmp_path / 'journal.db'}")


def make_record(ts=NOW, needs=True, amount=6_000_000):
    return ReasoningRecord(
        analysis_timestamp=ts,
        per_chain_interest={1: 10, 2: 20},
        net_flow=-5,
        debt=DebtResult(amount=amount, source_chain_id=2, destination_chain_id=1, per_chain={1: amount, 2: 0}),
        obligations=(UpcomingObligation(chain_id=1, amount=10_000_000, due_at=ts + timedelta(hours=1)),),
        suggested_amount=amount if needs else 0,
        suggested_route=ROUTE if needs else None,
        thoughts=("one", "two"),
        confidence_factors=ConfidenceFactors(True, True, False),
        confidence_score=Fraction(2, 3),
        snapshot_ids={1: "s1", 2: "s2"},
        event_ids=("e1",),
        needs_rebalance=needs,
    )


def make_action(record, ts=NOW):
    return RebalanceAction(source_chain_id=2, destination_chain_id=1, amount=record.suggested_amount,
                           route=record.suggested_route, reasoning_record_id=record.id, timestamp=ts)


@pytest.mark.asyncio
async def test_record_round_trip(store):
    record = make_record()
    await store.commit_analysis(record)
    loaded = await store.show_record(record.id)
    assert loaded == record
    assert loaded.confidence_score == Fraction(2, 3)
    assert loaded.snapshot_ids == {1: "s1", 2: "s2"}


@pytest.mark.asyncio
async def test_show_missing(store):
    assert await store.show_record("nope") is None
    assert await store.show_action("nope") is None


@pytest.mark.asyncio
async def test_records_newest_first(store):
    old, new = make_record(NOW - timedelta(hours=1)), make_record(NOW)
    await store.commit_analysis(old)
    await store.commit_analysis(new)
    assert [r.id for r in await store.recent_records()] == [new.id, old.id]
    assert [r.id for r in await store.recent_records(limit=1)] == [new.id]


@pytest.mark.asyncio
async def test_action_committed_with_record(store):
    record = make_record()
    action = make_action(record)
    await store.commit_analysis(record, action)
    loaded = await store.show_action(action.id)
    assert loaded.status == ActionStatus.SUGGESTED
    assert loaded.route == ROUTE
    assert loaded.reasoning_record_id == record.id
    assert (await store.last_action()).id == action.id


@pytest.mark.asyncio
async def test_update_action_status(store):
    record = make_record()
    action = make_action(record)
    await store.commit_analysis(record, action)
    action.status = ActionStatus.EXECUTED
    action.execution_ref = "0xabc"
    await store.update_action(action)
    loaded = await store.show_action(action.id)
    assert loaded.status == ActionStatus.EXECUTED
    assert loaded.execution_ref == "0xabc"
    assert await store.recent_actions(status=ActionStatus.SUGGESTED) == []
    assert len(await store.recent_actions(status=ActionStatus.EXECUTED)) == 1


@pytest.mark.asyncio
async def test_events_since(store):
    old = TransferEvent(source_chain_id=1, destination_chain_id=2, amount=5, occurred_at=NOW - timedelta(days=2))
    new = TransferEvent(source_chain_id=2, destination_chain_id=1, amount=7, occurred_at=NOW - timedelta(hours=1))
    await store.append_event(new)
    await store.append_event(old)
    events = await store.events_since(NOW - timedelta(days=1))
    assert [e.id for e in events] == [new.id]
    assert events[0].occurred_at == new.occurred_at
    assert [e.id for e in await store.events_since(NOW - timedelta(days=3))] == [old.id, new.id]


@pytest.mark.asyncio
async def test_obligations_between(store):
    inside = UpcomingObligation(chain_id=1, amount=10, due_at=NOW + timedelta(hours=1))
    edge = UpcomingObligation(chain_id=1, amount=20, due_at=NOW + timedelta(hours=24))
    other = UpcomingObligation(chain_id=2, amount=30, due_at=NOW + timedelta(hours=2))
    done = UpcomingObligation(chain_id=1, amount=40, due_at=NOW + timedelta(hours=3), processed=True)
    for o in (inside, edge, other, done):
        await store.append_obligation(o)
    found = await store.obligations_between(NOW, NOW + timedelta(hours=24))
    assert [o.id for o in found] == [inside.id, other.id]
    found = await store.obligations_between(NOW, NOW + timedelta(hours=24), chain_id=1)
    assert [o.id for o in found] == [inside.id]


@pytest.mark.asyncio
async def test_snapshots(store):
    a = ChainSnapshot(chain_id=1, total_reserve=5, available_reserve=5, captured_at=NOW - timedelta(minutes=1),
                      block_ref="1")
    b = ChainSnapshot(chain_id=2, total_reserve=6, available_reserve=6, captured_at=NOW, block_ref="2")
    await store.append_snapshot(a)
    await store.append_snapshot(b)
    assert [s.id for s in await store.recent_snapshots()] == [b.id, a.id]
    assert [s.id for s in await store.recent_snapshots(chain_id=1)] == [a.id]
    found = await store.snapshots_by_id([a.id, "missing"])
    assert found == [a]
    assert await store.snapshots_by_id([]) == []


@pytest.mark.asyncio
async def test_claim_action_once(store):
    record = make_record()
    action = make_action(record)
    await store.commit_analysis(record, action)
    assert await store.claim_action(action.id) is True
    assert await store.claim_action(action.id) is False
    assert await store.claim_action("missing") is False
    assert (await store.show_action(action.id)).status == ActionStatus.SUGGESTED


@pytest.mark.asyncio
async def test_update_action_never_overwrites_final_status(store):
    record = make_record()
    action = make_action(record)
    await store.commit_analysis(record, action)
    action.status = ActionStatus.FAILED
    action.failure_reason = "nonce too low"
    await store.update_action(action)

    action.status = ActionStatus.EXECUTED
    action.execution_ref = "0xlate"
    with pytest.raises(PersistenceFailure):
        await store.update_action(action)
    loaded = await store.show_action(action.id)
    assert loaded.status == ActionStatus.FAILED
    assert loaded.execution_ref is None
    assert await store.claim_action(action.id) is False


@pytest.mark.asyncio
async def test_update_unknown_action(store):
    with pytest.raises(PersistenceFailure):
        await store.update_action(make_action(make_record()))


@pytest.mark.asyncio
async def test_memory_update_unknown_action():
    store = RebalanceStore(None)
    record = make_record()
    with pytest.raises(PersistenceFailure):
        await store.update_action(make_action(record))


@pytest.mark.asyncio
async def test_unreachable_database_raises(tmp_path):
    store = RebalanceStore(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'x.db'}")
    with pytest.raises(PersistenceFailure):
        await store.commit_analysis(make_record())
