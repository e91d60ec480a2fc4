"""Chain-state readers: vault reserve and block reference per chain."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import httpx

from rebalancer.config import ChainConfig

logger = logging.getLogger(__name__)

# keccak256("totalAssets()")[:4], ERC-4626
TOTAL_ASSETS_SELECTOR = "0x01e1d114"


@dataclass(frozen=True)
class ReserveReading:
    total_reserve: int
    block_ref: str


class RpcError(Exception):
    """JSON-RPC node returned an error object or malformed result."""


@runtime_checkable
class ChainReader(Protocol):
    async def read_reserve(self, chain_id: int) -> ReserveReading: ...


@runtime_checkable
class LockLedger(Protocol):
    async def locked_amount(self, chain_id: int) -> int: ...


class NoLocks:
    """Known gap: per-user locks are not tracked, the whole reserve is available."""

    async def locked_amount(self, chain_id: int) -> int:
        logger.debug("No lock ledger for chain %d, treating the whole reserve as available", chain_id)
        return 0


class StaticChainReader:
    """Fixed reserves per chain. Used in paper mode and tests."""

    def __init__(self, reserves: dict[int, int], block_ref: str = "0") -> None:
        self._reserves = dict(reserves)
        self._block_ref = block_ref

    def set_reserve(self, chain_id: int, amount: int) -> None:
        self._reserves[chain_id] = amount

    async def read_reserve(self, chain_id: int) -> ReserveReading:
        if chain_id not in self._reserves:
            raise KeyError(f"No reserve configured for chain {chain_id}")
        return ReserveReading(total_reserve=self._reserves[chain_id], block_ref=self._block_ref)


class RpcChainReader:
    """Reads vault totalAssets() over JSON-RPC, pinned to the latest block number."""

    def __init__(self, chains: list[ChainConfig], timeout: float = 10.0) -> None:
        self._chains = {c.chain_id: c for c in chains}
        self._timeout = timeout
        self._ids = itertools.count(1)

    async def _call(self, client: httpx.AsyncClient, url: str, method: str, params: list) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        r = await client.post(url, json=payload)
        r.raise_for_status()
        body = r.json()
        if body.get("error"):
            raise RpcError(f"{method} failed: {body['error']}")
        if "result" not in body:
            raise RpcError(f"{method} returned no result")
        return body["result"]

    async def read_reserve(self, chain_id: int) -> ReserveReading:
        chain = self._chains.get(chain_id)
        if chain is None:
            raise KeyError(f"Unknown chain {chain_id}")
        url = chain.resolved_rpc_url()
        if not url or not chain.vault_address:
            raise RpcError(f"Chain {chain_id} has no RPC URL or vault address configured")

        async with httpx.AsyncClient(timeout=self._timeout) as c:
            block_hex = await self._call(c, url, "eth_blockNumber", [])
            raw = await self._call(c, url, "eth_call", [
                {"to": chain.vault_address, "data": TOTAL_ASSETS_SELECTOR}, block_hex,
            ])
        try:
            block = int(block_hex, 16)
            total = int(raw, 16) if raw not in ("0x", "") else 0
        except (TypeError, ValueError) as e:
            raise RpcError(f"Malformed RPC result on chain {chain_id}: {e}") from e
        logger.debug("Chain %d block %d totalAssets=%d", chain_id, block, total)
        return ReserveReading(total_reserve=total, block_ref=str(block))
