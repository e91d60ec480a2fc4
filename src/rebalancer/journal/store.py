"""Append-only rebalance journal: SQL database with in-memory fallback.

The in-memory journal is used only when no database URL is configured.
Once a URL is set, database errors surface as PersistenceFailure instead of
silently falling back, since a lost decision must be visible to the caller.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from functools import lru_cache
from types import SimpleNamespace
from typing import Any

from rebalancer.errors import PersistenceFailure
from rebalancer.journal import codec
from rebalancer.models import (
    ActionStatus,
    ChainSnapshot,
    RebalanceAction,
    ReasoningRecord,
    TransferEvent,
    UpcomingObligation,
)

logger = logging.getLogger(__name__)

_engines: dict[str, Any] = {}
_sessionmakers: dict[str, Any] = {}
_tables_ready: set[str] = set()


@lru_cache(maxsize=1)
def _sa_models() -> SimpleNamespace:
    from sqlalchemy import JSON, BigInteger, Boolean, Column, DateTime, Float, Integer, String, Text
    from sqlalchemy.dialects.postgresql import JSONB
    from sqlalchemy.orm import DeclarativeBase

    Json = JSON().with_variant(JSONB(), "postgresql")

    class Base(DeclarativeBase):
        pass

    class SnapshotRow(Base):
        __tablename__ = "chain_snapshots"
        id = Column(String(32), primary_key=True)
        chain_id = Column(Integer, nullable=False, index=True)
        total_reserve = Column(BigInteger, nullable=False)
        locked_reserve = Column(BigInteger, default=0)
        available_reserve = Column(BigInteger, nullable=False)
        captured_at = Column(DateTime(timezone=True), nullable=False, index=True)
        block_ref = Column(String(80), nullable=False)

    class EventRow(Base):
        __tablename__ = "transfer_events"
        id = Column(String(80), primary_key=True)
        source_chain_id = Column(Integer, nullable=False)
        destination_chain_id = Column(Integer, nullable=False)
        amount = Column(BigInteger, nullable=False)
        occurred_at = Column(DateTime(timezone=True), nullable=False, index=True)
        tx_hash = Column(String(80), nullable=True)

    class ObligationRow(Base):
        __tablename__ = "upcoming_obligations"
        id = Column(String(80), primary_key=True)
        chain_id = Column(Integer, nullable=False, index=True)
        amount = Column(BigInteger, nullable=False)
        due_at = Column(DateTime(timezone=True), nullable=False, index=True)
        processed = Column(Boolean, default=False)

    class ReasoningRow(Base):
        __tablename__ = "reasoning_records"
        id = Column(String(32), primary_key=True)
        analysis_timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
        needs_rebalance = Column(Boolean, nullable=False)
        debt_amount = Column(BigInteger, nullable=False)
        destination_chain_id = Column(Integer, nullable=False)
        confidence_score = Column(Float, nullable=False)
        payload = Column(Json, nullable=False)

    class ActionRow(Base):
        __tablename__ = "rebalance_actions"
        id = Column(String(32), primary_key=True)
        timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
        source_chain_id = Column(Integer, nullable=False)
        destination_chain_id = Column(Integer, nullable=False)
        amount = Column(BigInteger, nullable=False)
        route = Column(Json, nullable=True)
        status = Column(String(16), nullable=False, index=True)
        execution_ref = Column(String(128), nullable=True)
        failure_reason = Column(Text, nullable=True)
        claimed_at = Column(DateTime(timezone=True), nullable=True)
        reasoning_record_id = Column(String(32), nullable=False, index=True)

    return SimpleNamespace(
        Base=Base, Snapshot=SnapshotRow, Event=EventRow, Obligation=ObligationRow,
        Reasoning=ReasoningRow, Action=ActionRow,
    )


async def _get_session(database_url: str):
    if database_url not in _engines:
        from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
        pool_args = {} if database_url.startswith("sqlite") else {"pool_size": 5, "max_overflow": 10}
        engine = create_async_engine(database_url, **pool_args)
        _engines[database_url] = engine
        _sessionmakers[database_url] = async_sessionmaker(engine, expire_on_commit=False)
    if database_url not in _tables_ready:
        async with _engines[database_url].begin() as conn:
            await conn.run_sync(_sa_models().Base.metadata.create_all)
        _tables_ready.add(database_url)
    return _sessionmakers[database_url]()


class RebalanceStore:
    """Stores snapshots, transfer events, obligations, reasoning records and actions."""

    def __init__(self, database_url: str | None = None):
        self._db_url = database_url
        self._memory: dict[str, list[dict[str, Any]]] = {
            "snapshots": [], "events": [], "obligations": [], "records": [], "actions": [],
        }

    @property
    def _use_db(self) -> bool:
        return bool(self._db_url)

    @asynccontextmanager
    async def _session(self, op: str):
        try:
            async with await _get_session(self._db_url) as session:
                yield session
        except PersistenceFailure:
            raise
        except Exception as e:
            logger.error("Journal %s failed: %s", op, e)
            raise PersistenceFailure(f"{op} failed: {e}") from e

    # ── Row conversion ──

    def _snapshot_row(self, s: ChainSnapshot):
        return _sa_models().Snapshot(
            id=s.id, chain_id=s.chain_id, total_reserve=s.total_reserve,
            locked_reserve=s.locked_reserve, available_reserve=s.available_reserve,
            captured_at=s.captured_at, block_ref=s.block_ref,
        )

    def _row_to_snapshot(self, row) -> ChainSnapshot:
        return ChainSnapshot(
            id=row.id, chain_id=row.chain_id, total_reserve=row.total_reserve,
            locked_reserve=row.locked_reserve or 0, available_reserve=row.available_reserve,
            captured_at=codec.as_utc(row.captured_at), block_ref=row.block_ref,
        )

    def _row_to_event(self, row) -> TransferEvent:
        return TransferEvent(
            id=row.id, source_chain_id=row.source_chain_id,
            destination_chain_id=row.destination_chain_id, amount=row.amount,
            occurred_at=codec.as_utc(row.occurred_at), tx_hash=row.tx_hash,
        )

    def _row_to_obligation(self, row) -> UpcomingObligation:
        return UpcomingObligation(
            id=row.id, chain_id=row.chain_id, amount=row.amount,
            due_at=codec.as_utc(row.due_at), processed=bool(row.processed),
        )

    def _action_row_dict(self, a: RebalanceAction) -> dict[str, Any]:
        return {
            "id": a.id, "timestamp": a.timestamp,
            "source_chain_id": a.source_chain_id,
            "destination_chain_id": a.destination_chain_id,
            "amount": a.amount, "route": codec.route_to_dict(a.route),
            "status": a.status.value, "execution_ref": a.execution_ref,
            "failure_reason": a.failure_reason,
            "reasoning_record_id": a.reasoning_record_id,
        }

    def _row_to_action(self, row) -> RebalanceAction:
        return RebalanceAction(
            id=row.id, timestamp=codec.as_utc(row.timestamp),
            source_chain_id=row.source_chain_id,
            destination_chain_id=row.destination_chain_id,
            amount=row.amount, route=codec.route_from_dict(row.route),
            status=ActionStatus(row.status), execution_ref=row.execution_ref,
            failure_reason=row.failure_reason,
            reasoning_record_id=row.reasoning_record_id,
        )

    # ── Appends ──

    async def append_snapshot(self, snapshot: ChainSnapshot) -> ChainSnapshot:
        if self._use_db:
            async with self._session("snapshot append") as session:
                session.add(self._snapshot_row(snapshot))
                await session.commit()
            return snapshot
        self._memory["snapshots"].append(codec.snapshot_to_dict(snapshot))
        return snapshot

    async def append_event(self, event: TransferEvent) -> TransferEvent:
        if self._use_db:
            async with self._session("event append") as session:
                session.add(_sa_models().Event(**codec.event_to_dict(event) | {"occurred_at": event.occurred_at}))
                await session.commit()
            return event
        self._memory["events"].append(codec.event_to_dict(event))
        return event

    async def append_obligation(self, obligation: UpcomingObligation) -> UpcomingObligation:
        if self._use_db:
            async with self._session("obligation append") as session:
                session.add(_sa_models().Obligation(
                    **codec.obligation_to_dict(obligation) | {"due_at": obligation.due_at}))
                await session.commit()
            return obligation
        self._memory["obligations"].append(codec.obligation_to_dict(obligation))
        return obligation

    async def commit_analysis(self, record: ReasoningRecord, action: RebalanceAction | None = None) -> None:
        """Write a reasoning record and its suggested action in one transaction."""
        payload = codec.record_to_dict(record)
        if self._use_db:
            m = _sa_models()
            async with self._session("analysis commit") as session:
                session.add(m.Reasoning(
                    id=record.id, analysis_timestamp=record.analysis_timestamp,
                    needs_rebalance=record.needs_rebalance, debt_amount=record.debt.amount,
                    destination_chain_id=record.debt.destination_chain_id,
                    confidence_score=float(record.confidence_score), payload=payload,
                ))
                if action is not None:
                    session.add(m.Action(**self._action_row_dict(action)))
                await session.commit()
            return
        self._memory["records"].append(payload)
        if action is not None:
            self._memory["actions"].append(codec.action_to_dict(action))

    async def claim_action(self, action_id: str) -> bool:
        """Mark a suggested action as taken for execution.

        Returns False when the action is unknown, no longer suggested, or
        already claimed. At most one caller gets True for a given action.
        """
        claimed_at = datetime.now(UTC)
        if self._use_db:
            from sqlalchemy import update
            Row = _sa_models().Action
            async with self._session("action claim") as session:
                result = await session.execute(
                    update(Row).where(
                        Row.id == action_id,
                        Row.status == ActionStatus.SUGGESTED.value,
                        Row.claimed_at.is_(None),
                    ).values(claimed_at=claimed_at))
                await session.commit()
                return result.rowcount == 1
        for r in self._memory["actions"]:
            if r["id"] == action_id:
                if r["status"] != ActionStatus.SUGGESTED.value or r.get("claimed_at"):
                    return False
                r["claimed_at"] = claimed_at.isoformat()
                return True
        return False

    async def update_action(
        self, action: RebalanceAction, expected: ActionStatus = ActionStatus.SUGGESTED,
    ) -> None:
        """Persist a status transition from ``expected``. Only status fields are written.

        Raises PersistenceFailure when the stored action is missing or no
        longer in ``expected`` status, so a final status is never overwritten.
        """
        if self._use_db:
            from sqlalchemy import update
            Row = _sa_models().Action
            async with self._session("action update") as session:
                result = await session.execute(
                    update(Row).where(Row.id == action.id, Row.status == expected.value).values(
                        status=action.status.value, execution_ref=action.execution_ref,
                        failure_reason=action.failure_reason))
                if result.rowcount != 1:
                    await session.rollback()
                    raise PersistenceFailure(f"Action {action.id} not found in {expected.value} status")
                await session.commit()
            return
        for r in self._memory["actions"]:
            if r["id"] == action.id:
                if r["status"] != expected.value:
                    raise PersistenceFailure(
                        f"Action {action.id} is {r['status']}, expected {expected.value}")
                r["status"] = action.status.value
                r["execution_ref"] = action.execution_ref
                r["failure_reason"] = action.failure_reason
                return
        raise PersistenceFailure(f"Action {action.id} not found")

    # ── Queries ──

    async def ping(self) -> str:
        """'memory' without a database, 'ok' when it answers. Raises PersistenceFailure."""
        if not self._use_db:
            return "memory"
        from sqlalchemy import text
        async with self._session("ping") as session:
            await session.execute(text("SELECT 1"))
        return "ok"

    async def events_since(self, since: datetime) -> list[TransferEvent]:
        if self._use_db:
            from sqlalchemy import select
            Row = _sa_models().Event
            async with self._session("event query") as session:
                result = await session.execute(
                    select(Row).where(Row.occurred_at >= since).order_by(Row.occurred_at))
                return [self._row_to_event(r) for r in result.scalars().all()]
        events = [codec.event_from_dict(r) for r in self._memory["events"]]
        return sorted((e for e in events if e.occurred_at >= since), key=lambda e: e.occurred_at)

    async def obligations_between(
        self, start: datetime, end: datetime, chain_id: int | None = None,
    ) -> list[UpcomingObligation]:
        """Unprocessed obligations due in [start, end)."""
        if self._use_db:
            from sqlalchemy import select
            Row = _sa_models().Obligation
            async with self._session("obligation query") as session:
                q = select(Row).where(
                    Row.due_at >= start, Row.due_at < end, Row.processed.is_(False),
                ).order_by(Row.due_at)
                if chain_id is not None:
                    q = q.where(Row.chain_id == chain_id)
                result = await session.execute(q)
                return [self._row_to_obligation(r) for r in result.scalars().all()]
        rows = [codec.obligation_from_dict(r) for r in self._memory["obligations"]]
        return sorted(
            (o for o in rows
             if start <= o.due_at < end and not o.processed
             and (chain_id is None or o.chain_id == chain_id)),
            key=lambda o: o.due_at,
        )

    async def recent_snapshots(self, limit: int = 10, chain_id: int | None = None) -> list[ChainSnapshot]:
        if self._use_db:
            from sqlalchemy import select
            Row = _sa_models().Snapshot
            async with self._session("snapshot query") as session:
                q = select(Row).order_by(Row.captured_at.desc()).limit(limit)
                if chain_id is not None:
                    q = q.where(Row.chain_id == chain_id)
                result = await session.execute(q)
                return [self._row_to_snapshot(r) for r in result.scalars().all()]
        rows = [codec.snapshot_from_dict(r) for r in self._memory["snapshots"]]
        if chain_id is not None:
            rows = [s for s in rows if s.chain_id == chain_id]
        return sorted(rows, key=lambda s: s.captured_at, reverse=True)[:limit]

    async def recent_records(self, limit: int = 10) -> list[ReasoningRecord]:
        if self._use_db:
            from sqlalchemy import select
            Row = _sa_models().Reasoning
            async with self._session("reasoning query") as session:
                result = await session.execute(
                    select(Row).order_by(Row.analysis_timestamp.desc()).limit(limit))
                return [codec.record_from_dict(r.payload) for r in result.scalars().all()]
        rows = [codec.record_from_dict(r) for r in self._memory["records"]]
        return sorted(rows, key=lambda r: r.analysis_timestamp, reverse=True)[:limit]

    async def show_record(self, record_id: str) -> ReasoningRecord | None:
        if self._use_db:
            from sqlalchemy import select
            Row = _sa_models().Reasoning
            async with self._session("reasoning query") as session:
                result = await session.execute(select(Row).where(Row.id == record_id))
                row = result.scalar_one_or_none()
                return codec.record_from_dict(row.payload) if row else None
        for r in self._memory["records"]:
            if r["id"] == record_id:
                return codec.record_from_dict(r)
        return None

    async def recent_actions(self, limit: int = 20, status: ActionStatus | None = None) -> list[RebalanceAction]:
        if self._use_db:
            from sqlalchemy import select
            Row = _sa_models().Action
            async with self._session("action query") as session:
                q = select(Row).order_by(Row.timestamp.desc()).limit(limit)
                if status is not None:
                    q = q.where(Row.status == status.value)
                result = await session.execute(q)
                return [self._row_to_action(r) for r in result.scalars().all()]
        rows = [codec.action_from_dict(r) for r in self._memory["actions"]]
        if status is not None:
            rows = [a for a in rows if a.status == status]
        return sorted(rows, key=lambda a: a.timestamp, reverse=True)[:limit]

    async def last_action(self) -> RebalanceAction | None:
        actions = await self.recent_actions(limit=1)
        return actions[0] if actions else None

    async def show_action(self, action_id: str) -> RebalanceAction | None:
        if self._use_db:
            from sqlalchemy import select
            Row = _sa_models().Action
            async with self._session("action query") as session:
                result = await session.execute(select(Row).where(Row.id == action_id))
                row = result.scalar_one_or_none()
                return self._row_to_action(row) if row else None
        for r in self._memory["actions"]:
            if r["id"] == action_id:
                return codec.action_from_dict(r)
        return None

    async def snapshots_by_id(self, snapshot_ids: list[str]) -> list[ChainSnapshot]:
        if not snapshot_ids:
            return []
        if self._use_db:
            from sqlalchemy import select
            Row = _sa_models().Snapshot
            async with self._session("snapshot query") as session:
                result = await session.execute(select(Row).where(Row.id.in_(snapshot_ids)))
                return [self._row_to_snapshot(r) for r in result.scalars().all()]
        wanted = set(snapshot_ids)
        return [codec.snapshot_from_dict(r) for r in self._memory["snapshots"] if r["id"] in wanted]
