"""Plain-dict encoding of journal models for JSON columns and API responses."""

from __future__ import annotations

from datetime import UTC, datetime
from fractions import Fraction
from typing import Any

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


def as_utc(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt.astimezone(UTC)


def parse_dt(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        return as_utc(value)
    return as_utc(datetime.fromisoformat(value))


def _int_keys(d: dict[Any, Any]) -> dict[int, Any]:
    return {int(k): v for k, v in d.items()}


def snapshot_to_dict(s: ChainSnapshot) -> dict[str, Any]:
    return {
        "id": s.id, "chain_id": s.chain_id,
        "total_reserve": s.total_reserve, "locked_reserve": s.locked_reserve,
        "available_reserve": s.available_reserve,
        "captured_at": s.captured_at.isoformat(), "block_ref": s.block_ref,
    }


def snapshot_from_dict(d: dict[str, Any]) -> ChainSnapshot:
    return ChainSnapshot(
        id=d["id"], chain_id=int(d["chain_id"]),
        total_reserve=int(d["total_reserve"]),
        locked_reserve=int(d.get("locked_reserve", 0)),
        available_reserve=int(d["available_reserve"]),
        captured_at=parse_dt(d["captured_at"]), block_ref=str(d["block_ref"]),
    )


def event_to_dict(e: TransferEvent) -> dict[str, Any]:
    return {
        "id": e.id, "source_chain_id": e.source_chain_id,
        "destination_chain_id": e.destination_chain_id, "amount": e.amount,
        "occurred_at": e.occurred_at.isoformat(), "tx_hash": e.tx_hash,
    }


def event_from_dict(d: dict[str, Any]) -> TransferEvent:
    return TransferEvent(
        id=d["id"], source_chain_id=int(d["source_chain_id"]),
        destination_chain_id=int(d["destination_chain_id"]),
        amount=int(d["amount"]), occurred_at=parse_dt(d["occurred_at"]),
        tx_hash=d.get("tx_hash"),
    )


def obligation_to_dict(o: UpcomingObligation) -> dict[str, Any]:
    return {
        "id": o.id, "chain_id": o.chain_id, "amount": o.amount,
        "due_at": o.due_at.isoformat(), "processed": o.processed,
    }


def obligation_from_dict(d: dict[str, Any]) -> UpcomingObligation:
    return UpcomingObligation(
        id=d["id"], chain_id=int(d["chain_id"]), amount=int(d["amount"]),
        due_at=parse_dt(d["due_at"]), processed=bool(d.get("processed", False)),
    )


def route_to_dict(r: RouteQuote | None) -> dict[str, Any] | None:
    if r is None:
        return None
    return {
        "steps": [{"tool_name": s.tool_name, "estimated_duration": s.estimated_duration} for s in r.steps],
        "estimated_cost": r.estimated_cost,
        "raw_payload": r.raw_payload,
    }


def route_from_dict(d: dict[str, Any] | None) -> RouteQuote | None:
    if not d:
        return None
    return RouteQuote(
        steps=tuple(RouteStep(s["tool_name"], int(s["estimated_duration"])) for s in d.get("steps", [])),
        estimated_cost=int(d.get("estimated_cost", 0)),
        raw_payload=d.get("raw_payload") or {},
    )


def debt_to_dict(debt: DebtResult) -> dict[str, Any]:
    return {
        "amount": debt.amount, "source_chain_id": debt.source_chain_id,
        "destination_chain_id": debt.destination_chain_id,
        "per_chain": {str(k): v for k, v in debt.per_chain.items()},
    }


def debt_from_dict(d: dict[str, Any]) -> DebtResult:
    return DebtResult(
        amount=int(d["amount"]), source_chain_id=int(d["source_chain_id"]),
        destination_chain_id=int(d["destination_chain_id"]),
        per_chain={k: int(v) for k, v in _int_keys(d.get("per_chain", {})).items()},
    )


def record_to_dict(r: ReasoningRecord) -> dict[str, Any]:
    return {
        "id": r.id,
        "analysis_timestamp": r.analysis_timestamp.isoformat(),
        "needs_rebalance": r.needs_rebalance,
        "per_chain_interest": {str(k): v for k, v in r.per_chain_interest.items()},
        "net_flow": r.net_flow,
        "debt": debt_to_dict(r.debt),
        "obligations": [obligation_to_dict(o) for o in r.obligations],
        "suggested_amount": r.suggested_amount,
        "suggested_route": route_to_dict(r.suggested_route),
        "thoughts": list(r.thoughts),
        "confidence_factors": {
            "data_freshness": r.confidence_factors.data_freshness,
            "sufficient_liquidity": r.confidence_factors.sufficient_liquidity,
            "cost_efficiency": r.confidence_factors.cost_efficiency,
        },
        "confidence_score": str(r.confidence_score),
        "snapshot_ids": {str(k): v for k, v in r.snapshot_ids.items()},
        "event_ids": list(r.event_ids),
    }


def record_from_dict(d: dict[str, Any]) -> ReasoningRecord:
    return ReasoningRecord(
        id=d["id"],
        analysis_timestamp=parse_dt(d["analysis_timestamp"]),
        needs_rebalance=bool(d["needs_rebalance"]),
        per_chain_interest={k: int(v) for k, v in _int_keys(d.get("per_chain_interest", {})).items()},
        net_flow=int(d["net_flow"]),
        debt=debt_from_dict(d["debt"]),
        obligations=tuple(obligation_from_dict(o) for o in d.get("obligations", [])),
        suggested_amount=int(d["suggested_amount"]),
        suggested_route=route_from_dict(d.get("suggested_route")),
        thoughts=tuple(d.get("thoughts", [])),
        confidence_factors=ConfidenceFactors(**d.get("confidence_factors", {})),
        confidence_score=Fraction(d["confidence_score"]),
        snapshot_ids=_int_keys(d.get("snapshot_ids", {})),
        event_ids=tuple(d.get("event_ids", [])),
    )


def action_to_dict(a: RebalanceAction) -> dict[str, Any]:
    return {
        "id": a.id, "timestamp": a.timestamp.isoformat(),
        "source_chain_id": a.source_chain_id,
        "destination_chain_id": a.destination_chain_id,
        "amount": a.amount, "route": route_to_dict(a.route),
        "status": a.status.value, "execution_ref": a.execution_ref,
        "failure_reason": a.failure_reason,
        "reasoning_record_id": a.reasoning_record_id,
    }


def action_from_dict(d: dict[str, Any]) -> RebalanceAction:
    return RebalanceAction(
        id=d["id"], timestamp=parse_dt(d["timestamp"]),
        source_chain_id=int(d["source_chain_id"]),
        destination_chain_id=int(d["destination_chain_id"]),
        amount=int(d["amount"]), route=route_from_dict(d.get("route")),
        status=ActionStatus(d["status"]), execution_ref=d.get("execution_ref"),
        failure_reason=d.get("failure_reason"),
        reasoning_record_id=d["reasoning_record_id"],
    )
