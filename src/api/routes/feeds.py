"""Transfer event and LP unlock feeds."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from api.deps import get_engine
from rebalancer.engine import RebalanceEngine
from rebalancer.journal import codec
from rebalancer.models import TransferEvent, UpcomingObligation, format_units, parse_units

router = APIRouter()


class EventRequest(BaseModel):
    source_chain_id: int
    destination_chain_id: int
    amount: str  # decimal USDC, e.g. "12.5"
    occurred_at: datetime | None = None
    tx_hash: str | None = None


class ObligationRequest(BaseModel):
    chain_id: int
    amount: str
    due_at: datetime


def _units(value: str) -> int:
    try:
        return parse_units(value)
    except ValueError as e:
        raise HTTPException(422, str(e))


def _known_chain(engine: RebalanceEngine, chain_id: int) -> None:
    if chain_id not in engine.config.chain_ids:
        raise HTTPException(422, f"Unknown chain {chain_id}")


@router.post("/events", status_code=201)
async def record_event(req: EventRequest, engine: RebalanceEngine = Depends(get_engine)):
    _known_chain(engine, req.source_chain_id)
    _known_chain(engine, req.destination_chain_id)
    try:
        event = TransferEvent(
            source_chain_id=req.source_chain_id,
            destination_chain_id=req.destination_chain_id,
            amount=_units(req.amount),
            occurred_at=codec.as_utc(req.occurred_at or datetime.now(UTC)),
            tx_hash=req.tx_hash,
        )
    except ValueError as e:
        raise HTTPException(422, str(e))
    await engine.store.append_event(event)
    return codec.event_to_dict(event)


@router.post("/obligations", status_code=201)
async def record_obligation(req: ObligationRequest, engine: RebalanceEngine = Depends(get_engine)):
    _known_chain(engine, req.chain_id)
    try:
        obligation = UpcomingObligation(
            chain_id=req.chain_id, amount=_units(req.amount), due_at=codec.as_utc(req.due_at))
    except ValueError as e:
        raise HTTPException(422, str(e))
    await engine.store.append_obligation(obligation)
    return codec.obligation_to_dict(obligation)


@router.get("/obligations/upcoming")
async def upcoming_obligations(engine: RebalanceEngine = Depends(get_engine)):
    now = datetime.now(UTC)
    horizon = timedelta(hours=engine.config.engine.demand_horizon_hours)
    obligations = await engine.store.obligations_between(now, now + horizon)
    totals = {c: 0 for c in engine.config.chain_ids}
    for o in obligations:
        totals[o.chain_id] = totals.get(o.chain_id, 0) + o.amount
    return {
        "horizon_hours": engine.config.engine.demand_horizon_hours,
        "totals": {str(c): format_units(v) for c, v in totals.items()},
        "obligations": [codec.obligation_to_dict(o) for o in obligations],
    }
