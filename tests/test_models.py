"""Data model tests."""

from datetime import UTC, datetime
from fractions import Fraction

import pytest

from rebalancer.models import (
    ActionStatus,
    ConfidenceFactors,
    DebtResult,
    RouteQuote,
    RouteStep,
    TransferEvent,
    UpcomingObligation,
    VALID_TRANSITIONS,
    format_units,
    parse_units,
)


def test_format_units():
    assert format_units(15_234_000) == "15.234"
    assert format_units(15_000_000) == "15.0"
    assert format_units(0) == "0.0"
    assert format_units(-2_450_000) == "-2.45"
    assert format_units(1) == "0.000001"


def test_parse_units():
    assert parse_units("15.234") == 15_234_000
    assert parse_units("2.45") == 2_450_000
    assert parse_units("100") == 100_000_000
    assert parse_units("-1.5") == -1_500_000
    assert parse_units(".5") == 500_000
    # extra precision truncates
    assert parse_units("0.0000019") == 1


@pytest.mark.parametrize("bad", ["", "abc", "1.2.3", "1e5", "."])
def test_parse_units_rejects(bad):
    with pytest.raises(ValueError):
        parse_units(bad)


def test_transfer_event_amount_positive():
    with pytest.raises(ValueError):
        TransferEvent(source_chain_id=1, destination_chain_id=2, amount=0, occurred_at=datetime.now(UTC))


def test_obligation_amount_non_negative():
    UpcomingObligation(chain_id=1, amount=0, due_at=datetime.now(UTC))
    with pytest.raises(ValueError):
        UpcomingObligation(chain_id=1, amount=-1, due_at=datetime.now(UTC))


def test_debt_validation():
    with pytest.raises(ValueError):
        DebtResult(amount=-1, source_chain_id=1, destination_chain_id=2)
    with pytest.raises(ValueError):
        DebtResult(amount=5, source_chain_id=1, destination_chain_id=1)


def test_confidence_score_fractions():
    assert ConfidenceFactors().score == Fraction(0)
    assert ConfidenceFactors(data_freshness=True).score == Fraction(1, 3)
    assert ConfidenceFactors(True, True, False).score == Fraction(2, 3)
    assert ConfidenceFactors(True, True, True).score == 1


def test_route_derived_fields():
    route = RouteQuote(steps=(RouteStep("ERC20", 5), RouteStep("Stargate", 35)), estimated_cost=1)
    assert route.total_duration == 40
    assert route.tools == ["ERC20", "Stargate"]


def test_route_equality_ignores_payload():
    a = RouteQuote(steps=(RouteStep("x", 1),), estimated_cost=1, raw_payload={"a": 1})
    b = RouteQuote(steps=(RouteStep("x", 1),), estimated_cost=1, raw_payload={"b": 2})
    assert a == b


def test_transitions_only_from_suggested():
    assert VALID_TRANSITIONS[ActionStatus.SUGGESTED] == {ActionStatus.EXECUTED, ActionStatus.FAILED}
    assert ActionStatus.EXECUTED not in VALID_TRANSITIONS
    assert ActionStatus("failed") is ActionStatus.FAILED
