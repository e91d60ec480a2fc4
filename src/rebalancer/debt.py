"""Debt calculation: which chain is short of liquidity, and by how much.

Selection is explicitly two-chain (largest of two debts). Spreading a deficit
across more chains would need a different allocation algorithm.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from rebalancer.models import ChainSnapshot, DebtResult


def required_liquidity(demand: int, buffer_pct: int) -> int:
    """demand * (1 + buffer_pct/100), rounded down, in integer arithmetic."""
    if not 0 <= buffer_pct <= 100:
        raise ValueError(f"buffer_pct must be in 0..100, got {buffer_pct}")
    return demand + (demand * buffer_pct) // 100


def chain_debt(snapshot: ChainSnapshot, demand: int, buffer_pct: int) -> int:
    return max(0, required_liquidity(demand, buffer_pct) - snapshot.available_reserve)


def compute_debt(
    snapshots: Mapping[int, ChainSnapshot] | Sequence[ChainSnapshot],
    demands: Mapping[int, int],
    buffer_pct: int,
) -> DebtResult:
    """The chain with the larger debt is the destination, the other the source.

    On a tie the second chain is the destination; with both debts at zero
    no action follows, so the direction carries no meaning.
    """
    ordered = list(snapshots.values()) if isinstance(snapshots, Mapping) else list(snapshots)
    if len(ordered) != 2:
        raise ValueError(f"Debt calculation needs exactly two chains, got {len(ordered)}")
    a, b = ordered
    debt_a = chain_debt(a, demands.get(a.chain_id, 0), buffer_pct)
    debt_b = chain_debt(b, demands.get(b.chain_id, 0), buffer_pct)
    per_chain = {a.chain_id: debt_a, b.chain_id: debt_b}
    if debt_a > debt_b:
        return DebtResult(amount=debt_a, source_chain_id=b.chain_id,
                          destination_chain_id=a.chain_id, per_chain=per_chain)
    return DebtResult(amount=debt_b, source_chain_id=a.chain_id,
                      destination_chain_id=b.chain_id, per_chain=per_chain)
