"""Simple asyncio-based scheduler for periodic analysis runs."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from rebalancer.engine import RebalanceEngine
from rebalancer.errors import AnalysisInProgress

logger = logging.getLogger(__name__)


class Scheduler:
    def __init__(self, engine: RebalanceEngine, interval_minutes: int = 5):
        self.engine = engine
        self.interval = interval_minutes * 60
        self._running = False
        self._status: dict[str, Any] = {}

    async def start(self) -> None:
        self._running = True
        logger.info("Scheduler started: interval=%dm", self.interval // 60)
        while self._running:
            await self.tick()
            self._status["next_run"] = (
                datetime.now(UTC) + timedelta(seconds=self.interval)
            ).isoformat()
            await asyncio.sleep(self.interval)

    def stop(self) -> None:
        self._running = False

    @property
    def status(self) -> dict[str, Any]:
        return self._status

    async def tick(self) -> None:
        """One scheduled run. Failures are recorded, never raised into the loop."""
        self._status["last_run"] = datetime.now(UTC).isoformat()
        try:
            result = await self.engine.run_analysis()
        except AnalysisInProgress:
            logger.info("Analysis already in progress, skipping tick")
            self._status["last_outcome"] = "skipped"
            return
        except Exception as e:
            logger.error("Scheduled analysis failed: %s", e)
            self._status["last_outcome"] = "failed"
            self._status["last_error"] = str(e)
            return

        self._status["last_error"] = None
        self._status["last_record_id"] = result.record.id
        if result.action is not None:
            self._status["last_outcome"] = "suggested"
        elif result.needs_rebalance:
            self._status["last_outcome"] = "no_route"
        else:
            self._status["last_outcome"] = "balanced"
