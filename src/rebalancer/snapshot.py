"""Snapshot capturer: reads each chain's reserve and records it before use."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from rebalancer.chain.reader import ChainReader, LockLedger, NoLocks
from rebalancer.errors import ChainUnreachable
from rebalancer.journal.store import RebalanceStore
from rebalancer.models import ChainSnapshot

logger = logging.getLogger(__name__)


class SnapshotCapturer:

    def __init__(
        self,
        reader: ChainReader,
        store: RebalanceStore,
        locks: LockLedger | None = None,
        timeout: float = 10.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._reader = reader
        self._store = store
        self._locks = locks or NoLocks()
        self._timeout = timeout
        self._clock = clock or (lambda: datetime.now(UTC))

    async def capture(self, chain_id: int) -> ChainSnapshot:
        """Read, timestamp and persist one chain's reserve state.

        Raises ChainUnreachable when the read errors or times out. The
        snapshot is persisted before it is returned, so it stays on record
        even if later steps of the run fail.
        """
        try:
            reading = await asyncio.wait_for(self._reader.read_reserve(chain_id), timeout=self._timeout)
            locked = await self._locks.locked_amount(chain_id)
        except asyncio.TimeoutError as e:
            logger.error("Chain %d read timed out after %.1fs", chain_id, self._timeout)
            raise ChainUnreachable(chain_id, "read timed out") from e
        except Exception as e:
            logger.error("Chain %d read failed: %s", chain_id, e)
            raise ChainUnreachable(chain_id, str(e)) from e

        locked = max(0, min(locked, reading.total_reserve))
        snapshot = ChainSnapshot(
            chain_id=chain_id,
            total_reserve=reading.total_reserve,
            locked_reserve=locked,
            available_reserve=reading.total_reserve - locked,
            captured_at=self._clock(),
            block_ref=reading.block_ref,
        )
        await self._store.append_snapshot(snapshot)
        logger.info("Captured chain %d reserve=%d block=%s", chain_id, snapshot.total_reserve, snapshot.block_ref)
        return snapshot

    async def capture_all(self, chain_ids: Iterable[int]) -> dict[int, ChainSnapshot]:
        """Capture chains concurrently; the first failure cancels the remaining reads."""
        ids = list(chain_ids)
        tasks = [asyncio.create_task(self.capture(c)) for c in ids]
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        for t in tasks:
            if t in done and t.exception() is not None:
                raise t.exception()
        return {c: t.result() for c, t in zip(ids, tasks)}
