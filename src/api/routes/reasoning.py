"""Reasoning log endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from api.deps import get_engine
from rebalancer.engine import RebalanceEngine
from rebalancer.journal import codec
from rebalancer.narrative import assess

router = APIRouter(prefix="/reasoning")


@router.get("/log")
async def reasoning_log(limit: int = 10, engine: RebalanceEngine = Depends(get_engine)):
    records = await engine.store.recent_records(limit=limit)
    return [{"id": r.id, "timestamp": r.analysis_timestamp.isoformat(),
             "needs_rebalance": r.needs_rebalance, "debt": r.debt.amount,
             "confidence_score": str(r.confidence_score)} for r in records]


@router.get("/{record_id}")
async def reasoning_show(record_id: str, engine: RebalanceEngine = Depends(get_engine)):
    record = await engine.store.show_record(record_id)
    if not record:
        raise HTTPException(404, "Reasoning record not found")
    return codec.record_to_dict(record)


@router.post("/{record_id}/assessment")
async def reasoning_assessment(record_id: str, engine: RebalanceEngine = Depends(get_engine)):
    record = await engine.store.show_record(record_id)
    if not record:
        raise HTTPException(404, "Reasoning record not found")
    found = {s.chain_id: s for s in await engine.store.snapshots_by_id(list(record.snapshot_ids.values()))}
    snapshots = [found[c] for c in engine.config.chain_ids if c in found]
    if len(snapshots) != 2:
        raise HTTPException(409, "Snapshots for this record are no longer available")
    names = {c.chain_id: c.name for c in engine.config.chains}
    models = engine.config.models
    assessment = await assess(record, snapshots, names, models.assessment, models.temperature)
    return {"record_id": record.id, **assessment.to_dict()}
