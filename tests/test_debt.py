"""Debt calculation tests."""

from datetime import UTC, datetime

import pytest

from rebalancer.debt import chain_debt, compute_debt, required_liquidity
from rebalancer.models import ChainSnapshot

NOW = datetime(2026, 3, 1, tzinfo=UTC)


def snap(chain_id, available, total=None):
    return ChainSnapshot(chain_id=chain_id, total_reserve=total if total is not None else available,
                         available_reserve=available, captured_at=NOW, block_ref="1")


def test_required_liquidity():
    assert required_liquidity(10_000_000, 10) == 11_000_000
    assert required_liquidity(0, 10) == 0
    assert required_liquidity(10_000_000, 0) == 10_000_000
    # integer floor, never float
    assert required_liquidity(7, 10) == 7


@pytest.mark.parametrize("pct", [-1, 101])
def test_required_liquidity_buffer_range(pct):
    with pytest.raises(ValueError):
        required_liquidity(100, pct)


def test_no_demand_means_no_debt():
    assert chain_debt(snap(1, 15_000_000), 0, 10) == 0


def test_deficit_debt():
    assert chain_debt(snap(1, 5_000_000), 10_000_000, 10) == 6_000_000


def test_destination_is_larger_debt():
    debt = compute_debt([snap(1, 5_000_000), snap(2, 20_000_000)], {1: 10_000_000}, 10)
    assert debt.amount == 6_000_000
    assert debt.destination_chain_id == 1
    assert debt.source_chain_id == 2
    assert debt.per_chain == {1: 6_000_000, 2: 0}


def test_destination_second_chain():
    debt = compute_debt({1: snap(1, 50_000_000), 2: snap(2, 1_000_000)}, {2: 3_000_000}, 0)
    assert debt.amount == 2_000_000
    assert (debt.source_chain_id, debt.destination_chain_id) == (1, 2)


def test_tie_goes_to_second_chain():
    debt = compute_debt([snap(1, 0), snap(2, 0)], {1: 5, 2: 5}, 0)
    assert debt.amount == 5
    assert debt.destination_chain_id == 2


def test_balanced_is_zero():
    debt = compute_debt([snap(1, 15_234_000_000), snap(2, 13_034_000_000)], {}, 10)
    assert debt.amount == 0
    assert debt.source_chain_id != debt.destination_chain_id


def test_requires_two_chains():
    with pytest.raises(ValueError):
        compute_debt([snap(1, 1)], {}, 10)
    with pytest.raises(ValueError):
        compute_debt([snap(1, 1), snap(2, 1), snap(3, 1)], {}, 10)
