"""Route quoting providers: LI.FI REST API and a simulated testnet route."""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from rebalancer.config import ChainConfig, RoutingConfig
from rebalancer.errors import QuoteUnavailable
from rebalancer.models import RouteQuote, RouteStep, parse_units

logger = logging.getLogger(__name__)


@runtime_checkable
class RouteQuoter(Protocol):
    async def quote(self, source_chain_id: int, destination_chain_id: int,
                    asset: str, amount: int) -> list[RouteQuote]: ...


def parse_lifi_route(route: dict[str, Any]) -> RouteQuote:
    steps = []
    for step in route.get("steps", []):
        name = (step.get("toolDetails") or {}).get("name") or step.get("tool") or "unknown"
        duration = (step.get("estimate") or {}).get("executionDuration") or 0
        steps.append(RouteStep(tool_name=name, estimated_duration=int(float(duration))))
    try:
        cost = parse_units(route.get("gasCostUSD") or "0")
    except ValueError:
        logger.warning("Unparseable gasCostUSD %r, treating as zero", route.get("gasCostUSD"))
        cost = 0
    return RouteQuote(steps=tuple(steps), estimated_cost=cost, raw_payload=route)


class LifiQuoter:
    """Queries LI.FI for routes, in the provider's recommended order."""

    def __init__(self, chains: list[ChainConfig], config: RoutingConfig | None = None) -> None:
        self._chains = {c.chain_id: c for c in chains}
        self._cfg = config or RoutingConfig()

    async def quote(self, source_chain_id: int, destination_chain_id: int,
                    asset: str, amount: int) -> list[RouteQuote]:
        if asset.upper() != "USDC":
            raise QuoteUnavailable(f"Unsupported asset {asset}")
        src = self._chains.get(source_chain_id)
        dst = self._chains.get(destination_chain_id)
        if src is None or dst is None:
            raise QuoteUnavailable(f"Unknown chain pair {source_chain_id}->{destination_chain_id}")

        body = {
            "fromChainId": src.chain_id,
            "toChainId": dst.chain_id,
            "fromTokenAddress": src.usdc_address,
            "toTokenAddress": dst.usdc_address,
            "fromAmount": str(amount),
            "fromAddress": src.vault_address,
            "toAddress": dst.vault_address,
            "options": {
                "slippage": self._cfg.slippage,
                "order": "RECOMMENDED",
                "integrator": self._cfg.integrator,
            },
        }
        try:
            async with httpx.AsyncClient(timeout=self._cfg.timeout_s) as c:
                r = await c.post(f"{self._cfg.base_url}/advanced/routes", json=body)
                r.raise_for_status()
                routes = r.json().get("routes", [])
        except (httpx.HTTPError, ValueError) as e:
            raise QuoteUnavailable(f"LI.FI route query failed: {e}") from e
        logger.info("LI.FI returned %d route(s) for %d->%d", len(routes), source_chain_id, destination_chain_id)
        return [parse_lifi_route(rt) for rt in routes]


class SimulatedQuoter:
    """Fixed Stargate-style route for testnets, which LI.FI does not serve."""

    COST = 2_450_000  # 2.45 USDC

    async def quote(self, source_chain_id: int, destination_chain_id: int,
                    asset: str, amount: int) -> list[RouteQuote]:
        steps = (
            RouteStep("ERC20", 5),
            RouteStep("Stargate", 35),
            RouteStep("LayerZero", 5),
        )
        payload = {
            "simulated": True,
            "fromChainId": source_chain_id,
            "toChainId": destination_chain_id,
            "asset": asset,
            "fromAmount": str(amount),
            "protocol": "Stargate (Testnet Simulation)",
        }
        return [RouteQuote(steps=steps, estimated_cost=self.COST, raw_payload=payload)]


def build_quoter(provider: str, chains: list[ChainConfig], config: RoutingConfig) -> RouteQuoter:
    if provider == "lifi":
        return LifiQuoter(chains, config)
    if provider == "simulated":
        return SimulatedQuoter()
    raise ValueError(f"Unknown routing provider: {provider}")
