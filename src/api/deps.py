"""Shared engine for the API process."""

from __future__ import annotations

from functools import lru_cache

from rebalancer.engine import RebalanceEngine, build_engine


@lru_cache(maxsize=1)
def get_engine() -> RebalanceEngine:
    return build_engine()
