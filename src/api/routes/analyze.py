"""POST /analyze endpoint."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.deps import get_engine
from rebalancer.engine import RebalanceEngine
from rebalancer.journal import codec

router = APIRouter()


class AnalyzeResponse(BaseModel):
    needs_rebalance: bool
    record: dict[str, Any]
    action: dict[str, Any] | None = None


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze(engine: RebalanceEngine = Depends(get_engine)):
    result = await engine.run_analysis()
    return AnalyzeResponse(
        needs_rebalance=result.needs_rebalance,
        record=codec.record_to_dict(result.record),
        action=codec.action_to_dict(result.action) if result.action else None,
    )
