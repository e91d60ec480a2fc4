"""Rebalance action state transitions and the operator execution flow."""

from __future__ import annotations

import logging
from typing import Any

from rebalancer.errors import ExecutionFailed
from rebalancer.execution.executor import RebalanceExecutor
from rebalancer.journal.store import RebalanceStore
from rebalancer.models import VALID_TRANSITIONS, ActionStatus, RebalanceAction
from rebalancer.notifications import Notifier

logger = logging.getLogger(__name__)


class ActionManager:
    def transition(self, action: RebalanceAction, new_status: ActionStatus) -> RebalanceAction:
        allowed = VALID_TRANSITIONS.get(action.status, set())
        if new_status not in allowed:
            raise ValueError(
                f"Invalid transition: {action.status.value} -> {new_status.value}"
            )
        action.status = new_status
        return action


async def execute_suggested(
    store: RebalanceStore,
    executor: RebalanceExecutor,
    action_id: str,
    signer: Any,
    notifier: Notifier | None = None,
) -> RebalanceAction:
    """Execute a suggested action and record the outcome.

    Raises LookupError for an unknown id and ExecutionFailed after recording
    the failure. The action is claimed in the store before anything is
    submitted, so concurrent approvals submit the transfer at most once. A
    failed action stays failed; a fresh analysis run has to suggest a new one.
    """
    action = await store.show_action(action_id)
    if action is None:
        raise LookupError(f"Rebalance action {action_id} not found")
    if action.status != ActionStatus.SUGGESTED:
        raise ExecutionFailed(f"Action {action_id} is already {action.status.value}")
    if not await store.claim_action(action_id):
        logger.warning("Action %s already claimed by another approval", action_id)
        raise ExecutionFailed(f"Action {action_id} is already being executed")

    manager = ActionManager()
    try:
        tx_ref = await executor.execute(action, signer)
    except ExecutionFailed as e:
        manager.transition(action, ActionStatus.FAILED)
        action.failure_reason = str(e)
        await store.update_action(action)
        if notifier is not None:
            await notifier.notify("execution_failed", {"action_id": action.id, "reason": str(e)})
        raise

    manager.transition(action, ActionStatus.EXECUTED)
    action.execution_ref = tx_ref
    await store.update_action(action)
    if notifier is not None:
        await notifier.notify("executed", {
            "action_id": action.id, "execution_ref": tx_ref, "amount": action.amount,
            "source_chain_id": action.source_chain_id,
            "destination_chain_id": action.destination_chain_id,
        })
    return action
