"""All data models for the Setu liquidity rebalancer.

Amounts are integer micro-units of USDC (6 decimals). Nothing here uses
floating point for money.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from fractions import Fraction
from typing import Any

USDC_DECIMALS = 6
UNIT = 10 ** USDC_DECIMALS


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(UTC)


def format_units(amount: int, decimals: int = USDC_DECIMALS) -> str:
    """Render micro-units as a decimal string, e.g. 15234000 -> '15.234'."""
    sign = "-" if amount < 0 else ""
    whole, frac = divmod(abs(int(amount)), 10 ** decimals)
    frac_str = f"{frac:0{decimals}d}".rstrip("0") or "0"
    return f"{sign}{whole}.{frac_str}"


def parse_units(value: str | int, decimals: int = USDC_DECIMALS) -> int:
    """Parse a decimal string into micro-units, truncating extra precision."""
    text = str(value).strip()
    if not text:
        raise ValueError("Empty amount")
    sign = -1 if text.startswith("-") else 1
    text = text.lstrip("+-")
    whole, _, frac = text.partition(".")
    if not (whole or frac) or not (whole or "0").isdigit() or (frac and not frac.isdigit()):
        raise ValueError(f"Invalid amount: {value!r}")
    frac = (frac + "0" * decimals)[:decimals]
    return sign * (int(whole or "0") * 10 ** decimals + int(frac))


# ── Chain state ──

@dataclass(frozen=True)
class ChainSnapshot:
    chain_id: int
    total_reserve: int
    available_reserve: int
    captured_at: datetime
    block_ref: str
    # Per-user lock accounting is not tracked yet; see LockLedger.
    locked_reserve: int = 0
    id: str = field(default_factory=_new_id)

    def age_seconds(self, now: datetime) -> float:
        return (now - self.captured_at).total_seconds()


@dataclass(frozen=True)
class TransferEvent:
    source_chain_id: int
    destination_chain_id: int
    amount: int
    occurred_at: datetime
    id: str = field(default_factory=_new_id)
    tx_hash: str | None = None

    def __post_init__(self) -> None:
        if self.amount <= 0:
            raise ValueError(f"Transfer amount must be positive, got {self.amount}")


@dataclass(frozen=True)
class UpcomingObligation:
    chain_id: int
    amount: int
    due_at: datetime
    id: str = field(default_factory=_new_id)
    processed: bool = False

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError(f"Obligation amount must be non-negative, got {self.amount}")


# ── Decision models ──

@dataclass(frozen=True)
class FlowSummary:
    per_chain_interest: dict[int, int]
    net_flow: int
    window_start: datetime
    event_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class DebtResult:
    amount: int
    source_chain_id: int
    destination_chain_id: int
    per_chain: dict[int, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError(f"Debt amount must be non-negative, got {self.amount}")
        if self.source_chain_id == self.destination_chain_id:
            raise ValueError("Debt source and destination chains must differ")


@dataclass(frozen=True)
class RouteStep:
    tool_name: str
    estimated_duration: int  # seconds


@dataclass(frozen=True)
class RouteQuote:
    steps: tuple[RouteStep, ...]
    estimated_cost: int
    raw_payload: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def total_duration(self) -> int:
        return sum(s.estimated_duration for s in self.steps)

    @property
    def tools(self) -> list[str]:
        return [s.tool_name for s in self.steps]


@dataclass(frozen=True)
class ConfidenceFactors:
    data_freshness: bool = False
    sufficient_liquidity: bool = False
    cost_efficiency: bool = False

    @property
    def score(self) -> Fraction:
        passed = sum([self.data_freshness, self.sufficient_liquidity, self.cost_efficiency])
        return Fraction(passed, 3)


@dataclass(frozen=True)
class ReasoningRecord:
    analysis_timestamp: datetime
    per_chain_interest: dict[int, int]
    net_flow: int
    debt: DebtResult
    obligations: tuple[UpcomingObligation, ...]
    suggested_amount: int
    suggested_route: RouteQuote | None
    thoughts: tuple[str, ...]
    confidence_factors: ConfidenceFactors
    confidence_score: Fraction
    snapshot_ids: dict[int, str]
    event_ids: tuple[str, ...]
    needs_rebalance: bool
    id: str = field(default_factory=_new_id)


# ── Rebalance actions ──

class ActionStatus(str, Enum):
    SUGGESTED = "suggested"
    EXECUTED = "executed"
    FAILED = "failed"


VALID_TRANSITIONS: dict[ActionStatus, set[ActionStatus]] = {
    ActionStatus.SUGGESTED: {ActionStatus.EXECUTED, ActionStatus.FAILED},
}


@dataclass
class RebalanceAction:
    source_chain_id: int
    destination_chain_id: int
    amount: int
    route: RouteQuote | None
    reasoning_record_id: str
    status: ActionStatus = ActionStatus.SUGGESTED
    execution_ref: str | None = None
    failure_reason: str | None = None
    timestamp: datetime = field(default_factory=_utcnow)
    id: str = field(default_factory=_new_id)


@dataclass(frozen=True)
class AnalysisResult:
    record: ReasoningRecord
    action: RebalanceAction | None = None

    @property
    def needs_rebalance(self) -> bool:
        return self.record.needs_rebalance
