"""Error taxonomy for the rebalancing engine.

Collaborator errors (RPC, HTTP, database) are converted into one of these at
the boundary of the component that called the collaborator.
"""

from __future__ import annotations


class RebalancerError(Exception):
    """Base class for engine errors."""


class ChainUnreachable(RebalancerError):
    """Chain-state read failed or timed out. Fatal to the current run."""

    def __init__(self, chain_id: int, reason: str = "") -> None:
        self.chain_id = chain_id
        self.reason = reason
        super().__init__(f"Chain {chain_id} unreachable: {reason}" if reason else f"Chain {chain_id} unreachable")


class QuoteUnavailable(RebalancerError):
    """Route quoting failed. Non-fatal: the run continues without a route."""


class PersistenceFailure(RebalancerError):
    """Writing to or reading from the persistent log failed. Fatal to the run."""


class ExecutionFailed(RebalancerError):
    """Submitting a rebalance transfer failed."""


class AnalysisInProgress(RebalancerError):
    """Another analysis run holds the run lock."""
