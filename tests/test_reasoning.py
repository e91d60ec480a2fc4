"""Reasoning composer and confidence tests."""

from datetime import UTC, datetime, timedelta
from fractions import Fraction

from rebalancer.models import (
    ChainSnapshot,
    DebtResult,
    FlowSummary,
    RouteQuote,
    RouteStep,
    UpcomingObligation,
)
from rebalancer.reasoning import compose, confidence_factors

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
NAMES = {1: "Sepolia", 2: "Base Sepolia"}
ROUTE = RouteQuote(steps=(RouteStep("ERC20", 5), RouteStep("Stargate", 35), RouteStep("LayerZero", 5)),
                   estimated_cost=2_450_000)


def snap(chain_id, total, age=0):
    return ChainSnapshot(chain_id=chain_id, total_reserve=total, available_reserve=total,
                         captured_at=NOW - timedelta(seconds=age), block_ref="42")


def flow(a=0, b=0, net=0):
    return FlowSummary(per_chain_interest={1: a, 2: b}, net_flow=net, window_start=NOW - timedelta(days=7))


def test_all_factors_true():
    debt = DebtResult(amount=500_000_000, source_chain_id=2, destination_chain_id=1)
    f = confidence_factors([snap(1, 5_000_000), snap(2, 2_000_000_000)], debt, ROUTE, NOW, 300)
    assert (f.data_freshness, f.sufficient_liquidity, f.cost_efficiency) == (True, True, True)
    assert f.score == 1


def test_stale_snapshot():
    debt = DebtResult(amount=0, source_chain_id=1, destination_chain_id=2)
    f = confidence_factors([snap(1, 1, age=300), snap(2, 1)], debt, None, NOW, 300)
    assert not f.data_freshness


def test_no_route_means_only_freshness_can_count():
    debt = DebtResult(amount=6_000_000, source_chain_id=2, destination_chain_id=1)
    f = confidence_factors([snap(1, 5_000_000), snap(2, 20_000_000)], debt, None, NOW, 300)
    assert f.score == Fraction(1, 3)


def test_liquidity_and_cost_bounds_are_strict():
    # debt * 2 == reserve fails; cost * 100 == debt fails
    debt = DebtResult(amount=245_000_000, source_chain_id=2, destination_chain_id=1)
    f = confidence_factors([snap(1, 1), snap(2, 490_000_000)], debt, ROUTE, NOW, 300)
    assert not f.sufficient_liquidity
    assert not f.cost_efficiency


def test_compose_balanced():
    debt = DebtResult(amount=0, source_chain_id=1, destination_chain_id=2)
    record = compose({1: snap(1, 15_234_000_000), 2: snap(2, 13_034_000_000)}, NAMES,
                     flow(), [], debt, None, 1_000_000, NOW)
    assert not record.needs_rebalance
    assert record.suggested_amount == 0
    assert record.suggested_route is None
    assert len(record.thoughts) == 8
    assert record.thoughts[0].startswith("Analyzed Sepolia (1): 15234.0 USDC total reserve")
    assert "both chains cover" in record.thoughts[6]
    assert record.thoughts[7].startswith("No rebalance needed")


def test_compose_with_route():
    obligation = UpcomingObligation(chain_id=1, amount=10_000_000, due_at=NOW + timedelta(hours=1))
    debt = DebtResult(amount=6_000_000, source_chain_id=2, destination_chain_id=1)
    record = compose({1: snap(1, 5_000_000), 2: snap(2, 20_000_000)}, NAMES,
                     flow(), [obligation], debt, ROUTE, 1_000_000, NOW)
    assert record.needs_rebalance
    assert record.suggested_amount == 6_000_000
    assert record.thoughts[5] == "Upcoming obligations (24h): Sepolia=1 (10.0 USDC), Base Sepolia=0 (0.0 USDC)"
    assert record.thoughts[6] == "Debt calculation: Sepolia needs 6.0 USDC from Base Sepolia"
    assert "ERC20 -> Stargate -> LayerZero" in record.thoughts[7]
    assert record.confidence_score == Fraction(2, 3)
    assert record.snapshot_ids.keys() == {1, 2}


def test_compose_no_route_thought():
    debt = DebtResult(amount=6_000_000, source_chain_id=2, destination_chain_id=1)
    record = compose({1: snap(1, 5_000_000), 2: snap(2, 20_000_000)}, NAMES,
                     flow(), [], debt, None, 1_000_000, NOW)
    assert record.needs_rebalance
    assert record.thoughts[7].startswith("No actionable route")


def test_threshold_is_strict():
    debt = DebtResult(amount=1_000_000, source_chain_id=2, destination_chain_id=1)
    record = compose({1: snap(1, 0), 2: snap(2, 10)}, NAMES, flow(), [], debt, None, 1_000_000, NOW)
    assert not record.needs_rebalance


def test_compose_is_deterministic():
    debt = DebtResult(amount=6_000_000, source_chain_id=2, destination_chain_id=1)
    args = ({1: snap(1, 5_000_000), 2: snap(2, 20_000_000)}, NAMES, flow(3, 4, 5), [], debt, ROUTE, 1_000_000, NOW)
    a, b = compose(*args), compose(*args)
    assert a.thoughts == b.thoughts
    assert a.confidence_score == b.confidence_score
    assert a.id != b.id
