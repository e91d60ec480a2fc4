"""Narrative assessment of a stored reasoning record.

An optional LLM opinion layered on top of the deterministic record. It never
changes the record; when no model is configured or the call fails, a
rule-based imbalance assessment is returned instead.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass, field
from fractions import Fraction
from typing import Any

import litellm

from rebalancer.models import UNIT, ChainSnapshot, ReasoningRecord, format_units, parse_units

logger = logging.getLogger(__name__)

IMBALANCE_PCT_THRESHOLD = 10
MIN_IMBALANCE = UNIT  # 1 USDC

SYSTEM_PROMPT = "You are a DeFi rebalancing analyst. Always respond with valid JSON only."

ASSESSMENT_PROMPT = """Assess this cross-chain liquidity state for the Setu vaults.

{data}

Consider:
1. Current imbalance severity (>10% of the average chain balance should trigger a rebalance)
2. Upcoming liquidity demands (ensure sufficient liquidity for withdrawals)
3. Cost efficiency (typical bridge cost is 2-5 USDC, the move should be worth it)
4. Risk of insufficient liquidity on either chain

Respond ONLY with JSON in this format:
{{"needsRebalance": true/false, "confidence": 0-100, "reasoning": ["..."],
  "suggestedAmount": number in USDC (positive = first chain to second, negative = second to first, 0 = none),
  "urgency": "low|medium|high", "riskFactors": ["..."]}}"""


@dataclass
class Assessment:
    needs_rebalance: bool
    confidence: int
    reasoning: list[str]
    suggested_amount: int  # signed micro-units, positive moves first chain -> second
    urgency: str
    risk_factors: list[str] = field(default_factory=list)
    source: str = "rules"

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["suggested_amount"] = format_units(self.suggested_amount)
        return d


def _imbalance_pct(a: int, b: int) -> Fraction:
    total = a + b
    if total <= 0:
        return Fraction(0)
    # imbalance relative to the average balance
    return Fraction(abs(a - b) * 200, total)


def rule_based_assessment(
    snapshots: Sequence[ChainSnapshot],
    names: Mapping[int, str],
    upcoming_total: int = 0,
) -> Assessment:
    a, b = snapshots
    ra, rb = a.total_reserve, b.total_reserve
    imbalance = abs(ra - rb)
    pct = _imbalance_pct(ra, rb)
    needs = pct > IMBALANCE_PCT_THRESHOLD and imbalance > MIN_IMBALANCE

    confidence = 85 if needs else 95
    if pct > 50:
        confidence = 95
    elif pct > 30:
        confidence = 92
    elif pct > 20:
        confidence = 88

    urgency = "high" if pct > 50 else "medium" if pct > 20 else "low"
    name_a = names.get(a.chain_id, str(a.chain_id))
    name_b = names.get(b.chain_id, str(b.chain_id))
    return Assessment(
        needs_rebalance=needs,
        confidence=confidence,
        reasoning=[
            f"Analyzed current balances: {name_a} has {format_units(ra)} USDC, "
            f"{name_b} has {format_units(rb)} USDC",
            f"Imbalance is {float(pct):.2f}% of average balance",
            "Imbalance exceeds 10% threshold, rebalancing recommended" if needs
            else "System is balanced, no action needed",
            f"Upcoming unlocks: {format_units(upcoming_total)} USDC in next 24h",
        ],
        suggested_amount=(ra - rb) // 2 if needs else 0,
        urgency=urgency,
        risk_factors=[
            "Significant liquidity imbalance detected",
            "May impact withdrawal capacity on lower-balance chain",
        ] if needs else [],
    )


def _build_prompt(record: ReasoningRecord, snapshots: Sequence[ChainSnapshot], names: Mapping[int, str]) -> str:
    parts = [f"Analysis time: {record.analysis_timestamp.isoformat()}"]
    for s in snapshots:
        parts.append(f"{names.get(s.chain_id, s.chain_id)} ({s.chain_id}) balance: "
                     f"{format_units(s.total_reserve)} USDC, available {format_units(s.available_reserve)}")
    for chain_id, due in _upcoming_by_chain(record).items():
        parts.append(f"Upcoming unlocks (24h) on {names.get(chain_id, chain_id)}: {format_units(due)} USDC")
    parts.append(f"Computed debt: {format_units(record.debt.amount)} USDC "
                 f"to chain {record.debt.destination_chain_id}")
    parts.append("Engine reasoning:\n" + "\n".join(f"- {t}" for t in record.thoughts))
    return ASSESSMENT_PROMPT.format(data="\n".join(parts))


def _upcoming_by_chain(record: ReasoningRecord) -> dict[int, int]:
    totals: dict[int, int] = {}
    for o in record.obligations:
        totals[o.chain_id] = totals.get(o.chain_id, 0) + o.amount
    return totals


def parse_assessment(text: str) -> Assessment:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise ValueError("No JSON object found in LLM response")
    data = json.loads(text[start:end + 1])
    try:
        amount = parse_units(str(data.get("suggestedAmount", 0)))
    except ValueError:
        logger.warning("Unparseable suggestedAmount %r", data.get("suggestedAmount"))
        amount = 0
    urgency = str(data.get("urgency", "low")).lower()
    return Assessment(
        needs_rebalance=bool(data.get("needsRebalance", False)),
        confidence=max(0, min(100, int(float(data.get("confidence", 50))))),
        reasoning=[str(r) for r in data.get("reasoning", [])],
        suggested_amount=amount,
        urgency=urgency if urgency in ("low", "medium", "high") else "low",
        risk_factors=[str(r) for r in data.get("riskFactors", [])],
        source="llm",
    )


async def assess(
    record: ReasoningRecord,
    snapshots: Sequence[ChainSnapshot],
    names: Mapping[int, str],
    model: str = "",
    temperature: float = 0.3,
) -> Assessment:
    """LLM assessment of a record, falling back to the rule-based one."""
    upcoming = sum(o.amount for o in record.obligations)
    if not model:
        return rule_based_assessment(snapshots, names, upcoming)
    try:
        response = await litellm.acompletion(
            model=model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": _build_prompt(record, snapshots, names)},
            ],
            temperature=temperature,
            max_tokens=800,
        )
        return parse_assessment(response.choices[0].message.content)
    except Exception:
        logger.exception("LLM assessment failed for record %s, using rule-based assessment", record.id)
        return rule_based_assessment(snapshots, names, upcoming)
