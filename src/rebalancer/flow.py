"""Flow aggregation over tracked bridge transfers.

Interest is an approximation: any growth of a vault's reserve that tracked
transfers do not explain is counted as yield. This is not a ledger
reconciliation, and it assumes every transfer since the window start is
visible here.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta

from rebalancer.models import ChainSnapshot, FlowSummary, RebalanceAction, TransferEvent


def resolve_window_start(
    last_action: RebalanceAction | None, now: datetime, fallback_days: int = 7,
) -> datetime:
    """Events are aggregated since the last rebalance action, else a fixed lookback."""
    if last_action is not None:
        return last_action.timestamp
    return now - timedelta(days=fallback_days)


def _sum(events: Iterable[TransferEvent], source: int | None = None, dest: int | None = None) -> int:
    return sum(
        e.amount for e in events
        if (source is None or e.source_chain_id == source)
        and (dest is None or e.destination_chain_id == dest)
    )


def interest_for(snapshot: ChainSnapshot, events: list[TransferEvent]) -> int:
    chain = snapshot.chain_id
    net_change = _sum(events, dest=chain) - _sum(events, source=chain)
    return max(0, snapshot.total_reserve - net_change)


def net_flow(events: list[TransferEvent], chain_a: int, chain_b: int) -> int:
    """Positive means chain_a is net losing liquidity to chain_b."""
    return _sum(events, chain_a, chain_b) - _sum(events, chain_b, chain_a)


def aggregate_flow(
    events: Iterable[TransferEvent],
    window_start: datetime,
    snapshots: Mapping[int, ChainSnapshot],
    chain_a: int,
    chain_b: int,
) -> FlowSummary:
    in_window = [e for e in events if e.occurred_at >= window_start]
    return FlowSummary(
        per_chain_interest={c: interest_for(snapshots[c], in_window) for c in (chain_a, chain_b)},
        net_flow=net_flow(in_window, chain_a, chain_b),
        window_start=window_start,
        event_ids=tuple(e.id for e in in_window),
    )
