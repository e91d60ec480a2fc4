"""Analysis orchestration: a LangGraph run over the rebalancing components.

capture -> (aggregate | project) -> decide -> [find_route] -> compose -> persist
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Annotated, Any

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from rebalancer.chain.reader import ChainReader, LockLedger, RpcChainReader
from rebalancer.config import AppConfig, load_config
from rebalancer.debt import compute_debt
from rebalancer.demand import DemandProjector, ObligationSource
from rebalancer.errors import AnalysisInProgress
from rebalancer.execution.actions import execute_suggested
from rebalancer.execution.executor import RebalanceExecutor, build_transfer_executor
from rebalancer.flow import aggregate_flow, resolve_window_start
from rebalancer.journal.store import RebalanceStore
from rebalancer.lock import RunLock
from rebalancer.models import AnalysisResult, RebalanceAction, format_units
from rebalancer.notifications import Notifier
from rebalancer.reasoning import compose
from rebalancer.routing.advisor import RouteAdvisor
from rebalancer.routing.quoter import RouteQuoter, build_quoter
from rebalancer.snapshot import SnapshotCapturer

logger = logging.getLogger(__name__)


def merge_dicts(a: dict, b: dict) -> dict:
    result = {**a}
    for k, v in b.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = merge_dicts(result[k], v)
        else:
            result[k] = v
    return result


class RunState(TypedDict):
    data: Annotated[dict[str, Any], merge_dicts]
    metadata: Annotated[dict[str, Any], merge_dicts]


class RebalanceEngine:
    """Runs one analysis at a time over two configured chains.

    Collaborators are injected; build_engine wires the configured ones.
    """

    def __init__(
        self,
        config: AppConfig,
        reader: ChainReader,
        store: RebalanceStore,
        quoter: RouteQuoter,
        executor: RebalanceExecutor | None = None,
        obligations: ObligationSource | None = None,
        locks: LockLedger | None = None,
        notifier: Notifier | None = None,
        run_lock: RunLock | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        eng = config.engine
        self.config = config
        self.store = store
        self.executor = executor or RebalanceExecutor(build_transfer_executor(config.execution.engine))
        self.notifier = notifier or Notifier()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._capturer = SnapshotCapturer(reader, store, locks, eng.chain_read_timeout_s, self._clock)
        self._projector = DemandProjector(obligations or store, timedelta(hours=eng.demand_horizon_hours))
        self._advisor = RouteAdvisor(quoter, eng.asset)
        self._names = {c.chain_id: c.name for c in config.chains}
        self._lock = asyncio.Lock()
        self._run_lock = run_lock
        self._graph = self._build_graph()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    @property
    def run_lock(self) -> RunLock | None:
        return self._run_lock

    # ── Graph nodes ──

    async def _capture(self, state: RunState) -> dict:
        snapshots = await self._capturer.capture_all(self.config.chain_ids)
        return {"data": {"snapshots": snapshots}}

    async def _aggregate(self, state: RunState) -> dict:
        now = state["metadata"]["run_started"]
        last = await self.store.last_action()
        window_start = resolve_window_start(last, now, self.config.engine.fallback_window_days)
        events = await self.store.events_since(window_start)
        a, b = self.config.chain_ids
        flow = aggregate_flow(events, window_start, state["data"]["snapshots"], a, b)
        return {"data": {"flow": flow}}

    async def _project(self, state: RunState) -> dict:
        now = state["metadata"]["run_started"]
        demands, obligations = await self._projector.project_all(self.config.chain_ids, now)
        return {"data": {"demands": demands, "obligations": obligations}}

    async def _decide(self, state: RunState) -> dict:
        debt = compute_debt(state["data"]["snapshots"], state["data"]["demands"],
                            self.config.engine.buffer_pct)
        needs = debt.amount > self.config.engine.rebalance_threshold
        logger.info("Debt %d on chain %d (needs_rebalance=%s)", debt.amount, debt.destination_chain_id, needs)
        return {"data": {"debt": debt, "needs_rebalance": needs}}

    @staticmethod
    def _route_router(state: RunState) -> str:
        return "route" if state["data"]["needs_rebalance"] else "skip"

    async def _find_route(self, state: RunState) -> dict:
        route = await self._advisor.find_route(state["data"]["debt"])
        return {"data": {"route": route}}

    async def _compose(self, state: RunState) -> dict:
        eng = self.config.engine
        data = state["data"]
        # read after capture; snapshot ages are measured against it
        analysis_time = self._clock()
        record = compose(
            data["snapshots"], self._names, data["flow"], data["obligations"], data["debt"],
            data.get("route"), eng.rebalance_threshold, analysis_time,
            eng.freshness_seconds, eng.asset, eng.demand_horizon_hours,
        )
        return {"data": {"record": record}}

    async def _persist(self, state: RunState) -> dict:
        record = state["data"]["record"]
        action = None
        if record.needs_rebalance and record.suggested_route is not None:
            action = RebalanceAction(
                source_chain_id=record.debt.source_chain_id,
                destination_chain_id=record.debt.destination_chain_id,
                amount=record.suggested_amount,
                route=record.suggested_route,
                reasoning_record_id=record.id,
                timestamp=record.analysis_timestamp,
            )
        if record.needs_rebalance or self.config.engine.persist_balanced_runs:
            await self.store.commit_analysis(record, action)
        return {"data": {"action": action}}

    def _build_graph(self) -> Any:
        graph = StateGraph(RunState)
        graph.add_node("capture", self._capture)
        graph.add_node("aggregate", self._aggregate)
        graph.add_node("project", self._project)
        graph.add_node("decide", self._decide)
        graph.add_node("find_route", self._find_route)
        graph.add_node("compose", self._compose)
        graph.add_node("persist", self._persist)

        graph.add_edge(START, "capture")
        graph.add_edge("capture", "aggregate")
        graph.add_edge("capture", "project")
        graph.add_edge("aggregate", "decide")
        graph.add_edge("project", "decide")
        graph.add_conditional_edges("decide", self._route_router, {
            "route": "find_route",
            "skip": "compose",
        })
        graph.add_edge("find_route", "compose")
        graph.add_edge("compose", "persist")
        graph.add_edge("persist", END)
        return graph.compile()

    # ── Public surface ──

    async def run_analysis(self) -> AnalysisResult:
        """Run one full analysis. Raises AnalysisInProgress if one is in flight."""
        if self._lock.locked():
            raise AnalysisInProgress("An analysis run is already in progress")
        async with self._lock:
            token = None
            if self._run_lock is not None:
                token = await self._run_lock.acquire()
                if token is None:
                    raise AnalysisInProgress("An analysis run holds the shared run lock")
            try:
                return await self._run()
            finally:
                if token is not None:
                    await self._run_lock.release(token)

    async def _run(self) -> AnalysisResult:
        started = self._clock()
        try:
            final = await self._graph.ainvoke({"data": {}, "metadata": {"run_started": started}})
        except Exception as e:
            logger.error("Analysis run failed: %s", e)
            await self.notifier.notify("run_failed", {"error": str(e), "type": type(e).__name__})
            raise

        record = final["data"]["record"]
        action = final["data"].get("action")
        if action is not None:
            await self.notifier.notify("suggestion", {
                "action_id": action.id,
                "record_id": record.id,
                "amount": format_units(action.amount),
                "source_chain_id": action.source_chain_id,
                "destination_chain_id": action.destination_chain_id,
                "route": action.route.tools if action.route else [],
                "confidence": str(record.confidence_score),
            })
        return AnalysisResult(record=record, action=action)

    async def execute(self, action_id: str, signer: Any = None) -> RebalanceAction:
        """Operator approval of a suggested action. Takes no run lock."""
        signer = signer or self.config.execution.signer_address or None
        return await execute_suggested(self.store, self.executor, action_id, signer, self.notifier)


def build_engine(
    config: AppConfig | None = None,
    reader: ChainReader | None = None,
    quoter: RouteQuoter | None = None,
    store: RebalanceStore | None = None,
) -> RebalanceEngine:
    """Wire the engine from configuration and environment (DATABASE_URL, REDIS_URL)."""
    config = config or load_config()
    eng = config.engine
    return RebalanceEngine(
        config=config,
        reader=reader or RpcChainReader(config.chains, eng.chain_read_timeout_s),
        store=store or RebalanceStore(os.environ.get("DATABASE_URL")),
        quoter=quoter or build_quoter(config.routing.provider, config.chains, config.routing),
        notifier=Notifier(config.notifications.webhook_url, config.notifications.enabled,
                          config.notifications.events),
        run_lock=RunLock(os.environ.get("REDIS_URL"), ttl=config.scheduler.run_lock_ttl_s),
    )
