"""Shared fixtures: fixed clock, in-memory collaborators, two-chain config."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from rebalancer.chain.reader import StaticChainReader
from rebalancer.config import AppConfig
from rebalancer.engine import RebalanceEngine
from rebalancer.journal.store import RebalanceStore
from rebalancer.routing.quoter import SimulatedQuoter

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
CHAIN_A = 11155111
CHAIN_B = 84532


class RecordingQuoter:
    """Wraps a quoter and records every request."""

    def __init__(self, routes=None, error: Exception | None = None):
        self.calls: list[tuple[int, int, str, int]] = []
        self._routes = routes
        self._error = error
        self._sim = SimulatedQuoter()

    async def quote(self, source_chain_id, destination_chain_id, asset, amount):
        self.calls.append((source_chain_id, destination_chain_id, asset, amount))
        if self._error is not None:
            raise self._error
        if self._routes is not None:
            return list(self._routes)
        return await self._sim.quote(source_chain_id, destination_chain_id, asset, amount)


class RecordingNotifier:
    def __init__(self):
        self.sent: list[tuple[str, dict]] = []

    async def notify(self, event, data):
        self.sent.append((event, data))

    @property
    def events(self) -> list[str]:
        return [e for e, _ in self.sent]


@pytest.fixture
def config():
    return AppConfig()


@pytest.fixture
def store():
    return RebalanceStore(None)


@pytest.fixture
def quoter():
    return RecordingQuoter()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_engine(config, store, quoter, notifier):
    def _make(reserves: dict[int, int], **kw) -> RebalanceEngine:
        kw.setdefault("quoter", quoter)
        kw.setdefault("notifier", notifier)
        kw.setdefault("clock", lambda: NOW)
        return RebalanceEngine(
            config=kw.pop("config", config),
            reader=kw.pop("reader", StaticChainReader(reserves, block_ref="100")),
            store=kw.pop("store", store),
            **kw,
        )
    return _make
