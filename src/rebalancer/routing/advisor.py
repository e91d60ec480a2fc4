"""Route advisor: pick a transfer route for a debt, or none."""

from __future__ import annotations

import logging

from rebalancer.errors import QuoteUnavailable
from rebalancer.models import DebtResult, RouteQuote
from rebalancer.routing.quoter import RouteQuoter

logger = logging.getLogger(__name__)


class RouteAdvisor:
    def __init__(self, quoter: RouteQuoter, asset: str = "USDC") -> None:
        self._quoter = quoter
        self._asset = asset

    async def find_route(self, debt: DebtResult) -> RouteQuote | None:
        """First candidate from the quoter, which already ranks by recommendation.

        A failed or empty quote is not fatal to the run; it only means there
        is no actionable suggestion.
        """
        try:
            routes = await self._quoter.quote(
                debt.source_chain_id, debt.destination_chain_id, self._asset, debt.amount)
        except QuoteUnavailable as e:
            logger.warning("Route quote unavailable for %d->%d: %s",
                           debt.source_chain_id, debt.destination_chain_id, e)
            return None
        except Exception:
            logger.exception("Route quoter error for %d->%d",
                             debt.source_chain_id, debt.destination_chain_id)
            return None
        if not routes:
            logger.info("No route found for %d->%d amount=%d",
                        debt.source_chain_id, debt.destination_chain_id, debt.amount)
            return None
        return routes[0]
