"""Rebalance history and operator approval."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from api.deps import get_engine
from rebalancer.engine import RebalanceEngine
from rebalancer.journal import codec
from rebalancer.models import ActionStatus

router = APIRouter(prefix="/rebalances")


class ExecuteRequest(BaseModel):
    signer: str | None = None


@router.get("")
async def rebalance_history(
    limit: int = 20, status: ActionStatus | None = None,
    engine: RebalanceEngine = Depends(get_engine),
):
    actions = await engine.store.recent_actions(limit=limit, status=status)
    return [codec.action_to_dict(a) for a in actions]


@router.post("/{action_id}/execute")
async def rebalance_execute(
    action_id: str, req: ExecuteRequest | None = None,
    engine: RebalanceEngine = Depends(get_engine),
):
    try:
        action = await engine.execute(action_id, req.signer if req else None)
    except LookupError:
        raise HTTPException(404, "Rebalance action not found")
    return codec.action_to_dict(action)
