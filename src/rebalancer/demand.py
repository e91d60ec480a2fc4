"""Near-term liquidity demand per chain (LP unlocks and withdrawals)."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable

from rebalancer.models import UpcomingObligation

DEFAULT_HORIZON = timedelta(hours=24)


@runtime_checkable
class ObligationSource(Protocol):
    async def obligations_between(
        self, start: datetime, end: datetime, chain_id: int | None = None,
    ) -> list[UpcomingObligation]: ...


class StaticObligations:
    """Fixed obligation list, filtered the same way the journal filters."""

    def __init__(self, obligations: Iterable[UpcomingObligation] = ()) -> None:
        self._items = list(obligations)

    async def obligations_between(
        self, start: datetime, end: datetime, chain_id: int | None = None,
    ) -> list[UpcomingObligation]:
        return sorted(
            (o for o in self._items
             if start <= o.due_at < end and not o.processed
             and (chain_id is None or o.chain_id == chain_id)),
            key=lambda o: o.due_at,
        )


class DemandProjector:

    def __init__(self, source: ObligationSource, horizon: timedelta = DEFAULT_HORIZON) -> None:
        self._source = source
        self._horizon = horizon

    async def upcoming(self, now: datetime, chain_id: int | None = None) -> list[UpcomingObligation]:
        return await self._source.obligations_between(now, now + self._horizon, chain_id)

    async def project(self, chain_id: int, now: datetime) -> int:
        """Sum of obligations due on chain_id in [now, now + horizon). Never negative."""
        obligations = await self.upcoming(now, chain_id)
        return max(0, sum(o.amount for o in obligations if o.chain_id == chain_id))

    async def project_all(
        self, chain_ids: Iterable[int], now: datetime,
    ) -> tuple[dict[int, int], list[UpcomingObligation]]:
        ids = list(chain_ids)
        obligations = [o for o in await self.upcoming(now) if o.chain_id in ids]
        demands = {c: sum(o.amount for o in obligations if o.chain_id == c) for c in ids}
        return demands, obligations
