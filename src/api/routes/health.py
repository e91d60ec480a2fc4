"""Health and metrics endpoints."""

import time

from fastapi import APIRouter, Depends

from api.deps import get_engine
from rebalancer.engine import RebalanceEngine
from rebalancer.errors import PersistenceFailure
from rebalancer.models import ActionStatus

router = APIRouter()

_start_time = time.time()


@router.get("/health")
async def health(engine: RebalanceEngine = Depends(get_engine)):
    """Journal and run-lock reachability plus whether an analysis is in flight."""
    try:
        journal = await engine.store.ping()
    except PersistenceFailure:
        journal = "unavailable"
    run_lock = await engine.run_lock.ping() if engine.run_lock is not None else "not_configured"

    checks = {
        "journal": journal,
        "run_lock": run_lock,
        "analysis": "running" if engine.running else "idle",
    }
    status = "degraded" if "unavailable" in (journal, run_lock) else "ok"
    return {"status": status, "checks": checks}


@router.get("/metrics")
async def metrics(engine: RebalanceEngine = Depends(get_engine)):
    records = await engine.store.recent_records(limit=1000)
    actions = await engine.store.recent_actions(limit=1000)
    by_status = {s.value: sum(1 for a in actions if a.status == s) for s in ActionStatus}
    return {
        "analyses_total": len(records),
        "rebalances_needed": sum(1 for r in records if r.needs_rebalance),
        "actions": by_status,
        "analysis_running": engine.running,
        "uptime_seconds": round(time.time() - _start_time),
    }
