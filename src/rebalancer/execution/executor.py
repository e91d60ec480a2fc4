"""Transfer executor protocol, paper executor, and the rebalance executor."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Protocol, runtime_checkable

from rebalancer.errors import ExecutionFailed
from rebalancer.models import ActionStatus, RebalanceAction, RouteQuote

logger = logging.getLogger(__name__)


@runtime_checkable
class TransferExecutor(Protocol):
    async def submit(self, route: RouteQuote, amount: int, signer: Any) -> str: ...


class PaperTransferExecutor:
    """Records submissions and returns a mock transaction hash. Nothing goes on-chain."""

    def __init__(self) -> None:
        self.submissions: list[dict[str, Any]] = []

    async def submit(self, route: RouteQuote, amount: int, signer: Any) -> str:
        tx_ref = f"0xpaper_{uuid.uuid4().hex}"
        self.submissions.append({
            "tx_ref": tx_ref, "amount": amount, "tools": route.tools,
            "signer": getattr(signer, "address", signer),
        })
        logger.warning("Paper execution only: %s via %s (no transfer submitted)", tx_ref, " -> ".join(route.tools))
        return tx_ref


class RebalanceExecutor:
    """Submits an approved action's route. No automatic retry.

    The caller moves the action to executed or failed based on the outcome.
    """

    def __init__(self, transfer: TransferExecutor) -> None:
        self._transfer = transfer

    async def execute(self, action: RebalanceAction, signer: Any) -> str:
        if action.status != ActionStatus.SUGGESTED:
            raise ExecutionFailed(f"Action {action.id} is {action.status.value}, not suggested")
        if action.route is None:
            raise ExecutionFailed(f"Action {action.id} has no route")
        if signer is None:
            raise ExecutionFailed("No signer provided")
        try:
            tx_ref = await self._transfer.submit(action.route, action.amount, signer)
        except ExecutionFailed:
            raise
        except Exception as e:
            logger.error("Rebalance %s submission failed: %s", action.id, e)
            raise ExecutionFailed(str(e)) from e
        if not tx_ref:
            raise ExecutionFailed(f"Executor returned no transaction reference for {action.id}")
        logger.info("Rebalance %s submitted: %s", action.id, tx_ref)
        return tx_ref


def build_transfer_executor(engine: str) -> TransferExecutor:
    if engine == "paper":
        return PaperTransferExecutor()
    raise ValueError(f"Unsupported execution engine: {engine}")
