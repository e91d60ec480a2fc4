"""Reasoning composer: the human-readable audit trail for one analysis run."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime

from rebalancer.models import (
    ChainSnapshot,
    ConfidenceFactors,
    DebtResult,
    FlowSummary,
    ReasoningRecord,
    RouteQuote,
    UpcomingObligation,
    format_units,
)


def confidence_factors(
    snapshots: Sequence[ChainSnapshot],
    debt: DebtResult,
    route: RouteQuote | None,
    analysis_time: datetime,
    freshness_seconds: int,
) -> ConfidenceFactors:
    source = next((s for s in snapshots if s.chain_id == debt.source_chain_id), None)
    fresh = bool(snapshots) and all(s.age_seconds(analysis_time) < freshness_seconds for s in snapshots)
    # Guards against draining the source chain
    liquid = route is not None and source is not None and debt.amount * 2 < source.total_reserve
    cheap = route is not None and route.estimated_cost * 100 < debt.amount
    return ConfidenceFactors(data_freshness=fresh, sufficient_liquidity=liquid, cost_efficiency=cheap)


def build_thoughts(
    snapshots: Sequence[ChainSnapshot],
    names: Mapping[int, str],
    flow: FlowSummary,
    obligations: Sequence[UpcomingObligation],
    debt: DebtResult,
    route: RouteQuote | None,
    needs_rebalance: bool,
    threshold: int,
    asset: str = "USDC",
    horizon_hours: int = 24,
) -> tuple[str, ...]:
    def name(chain_id: int) -> str:
        return names.get(chain_id, f"chain {chain_id}")

    a, b = snapshots
    thoughts: list[str] = []
    for s in (a, b):
        thoughts.append(
            f"Analyzed {name(s.chain_id)} ({s.chain_id}): {format_units(s.total_reserve)} {asset} "
            f"total reserve, {format_units(s.available_reserve)} available at block {s.block_ref}")
        thoughts.append(
            f"{name(s.chain_id)} interest earned: "
            f"{format_units(flow.per_chain_interest.get(s.chain_id, 0))} {asset}")

    thoughts.append(
        f"Net transfer flow ({name(a.chain_id)} -> {name(b.chain_id)}): {format_units(flow.net_flow)} {asset}")

    parts = []
    for s in (a, b):
        due = [o for o in obligations if o.chain_id == s.chain_id]
        parts.append(f"{name(s.chain_id)}={len(due)} ({format_units(sum(o.amount for o in due))} {asset})")
    thoughts.append(f"Upcoming obligations ({horizon_hours}h): " + ", ".join(parts))

    if debt.amount == 0:
        thoughts.append("Debt calculation: both chains cover projected demand plus buffer")
    else:
        thoughts.append(
            f"Debt calculation: {name(debt.destination_chain_id)} needs {format_units(debt.amount)} {asset} "
            f"from {name(debt.source_chain_id)}")

    if not needs_rebalance:
        thoughts.append(
            f"No rebalance needed: debt {format_units(debt.amount)} {asset} is within the "
            f"{format_units(threshold)} {asset} threshold")
    elif route is None:
        thoughts.append("No actionable route: quoting returned no usable route")
    else:
        thoughts.append(
            f"Route found: {' -> '.join(route.tools)} (~{route.total_duration}s, "
            f"est. cost {format_units(route.estimated_cost)} {asset})")
    return tuple(thoughts)


def compose(
    snapshots: Mapping[int, ChainSnapshot],
    names: Mapping[int, str],
    flow: FlowSummary,
    obligations: Sequence[UpcomingObligation],
    debt: DebtResult,
    route: RouteQuote | None,
    threshold: int,
    analysis_time: datetime,
    freshness_seconds: int = 300,
    asset: str = "USDC",
    horizon_hours: int = 24,
) -> ReasoningRecord:
    """Assemble the reasoning record. Pure: the same inputs give the same record content."""
    ordered = list(snapshots.values())
    if len(ordered) != 2:
        raise ValueError(f"Reasoning needs exactly two chain snapshots, got {len(ordered)}")
    needs_rebalance = debt.amount > threshold
    factors = confidence_factors(ordered, debt, route, analysis_time, freshness_seconds)
    return ReasoningRecord(
        analysis_timestamp=analysis_time,
        per_chain_interest=dict(flow.per_chain_interest),
        net_flow=flow.net_flow,
        debt=debt,
        obligations=tuple(obligations),
        suggested_amount=debt.amount if needs_rebalance else 0,
        suggested_route=route,
        thoughts=build_thoughts(ordered, names, flow, obligations, debt, route,
                                needs_rebalance, threshold, asset, horizon_hours),
        confidence_factors=factors,
        confidence_score=factors.score,
        snapshot_ids={s.chain_id: s.id for s in ordered},
        event_ids=flow.event_ids,
        needs_rebalance=needs_rebalance,
    )
