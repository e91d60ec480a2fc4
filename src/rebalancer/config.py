"""Load and validate TOML configuration files."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import tomli
from pydantic import BaseModel, Field, model_validator

CONFIG_DIR = Path(__file__).resolve().parent.parent.parent / "config"


class ChainConfig(BaseModel):
    chain_id: int
    name: str
    rpc_url: str = ""
    vault_address: str = ""
    usdc_address: str = ""

    def resolved_rpc_url(self) -> str:
        # SETU_RPC_URL_<chain_id> wins over the file so keys stay out of config
        return os.environ.get(f"SETU_RPC_URL_{self.chain_id}", self.rpc_url)


class EngineConfig(BaseModel):
    buffer_pct: int = Field(10, ge=0, le=100)
    rebalance_threshold: int = Field(1_000_000, ge=0)
    freshness_seconds: int = 300
    demand_horizon_hours: int = 24
    fallback_window_days: int = 7
    chain_read_timeout_s: float = 10.0
    persist_balanced_runs: bool = True
    asset: str = "USDC"


class RoutingConfig(BaseModel):
    provider: str = "simulated"
    base_url: str = "https://li.quest/v1"
    integrator: str = "setu-rebalancer"
    slippage: float = 0.03
    timeout_s: float = 15.0


class ExecutionConfig(BaseModel):
    engine: str = "paper"
    signer_address: str = ""


class SchedulerConfig(BaseModel):
    enabled: bool = False
    interval_minutes: int = 5
    run_lock_ttl_s: int = 240


class NotificationsConfig(BaseModel):
    webhook_url: str = ""
    enabled: bool = True
    events: list[str] = [
        "suggestion", "run_failed", "executed", "execution_failed",
    ]


class ModelsConfig(BaseModel):
    assessment: str = ""
    temperature: float = 0.3


def _default_chains() -> list[ChainConfig]:
    return [
        ChainConfig(
            chain_id=11155111, name="Sepolia",
            rpc_url="https://ethereum-sepolia-rpc.publicnode.com",
            vault_address="0x010a712748b9903c90deec684f433bae57a67476",
            usdc_address="0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238",
        ),
        ChainConfig(
            chain_id=84532, name="Base Sepolia",
            rpc_url="https://sepolia.base.org",
            vault_address="0x8116cFd461C5AB410131Fd6925e6D394F0065Ee2",
            usdc_address="0x036CbD53842c5426634e7929541eC2318f3dCF7e",
        ),
    ]


class AppConfig(BaseModel):
    chains: list[ChainConfig] = Field(default_factory=_default_chains)
    engine: EngineConfig = EngineConfig()
    routing: RoutingConfig = RoutingConfig()
    execution: ExecutionConfig = ExecutionConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    notifications: NotificationsConfig = NotificationsConfig()
    models: ModelsConfig = ModelsConfig()

    @model_validator(mode="after")
    def _two_chains(self) -> AppConfig:
        if len(self.chains) != 2:
            raise ValueError(f"Exactly two chains must be configured, got {len(self.chains)}")
        if self.chains[0].chain_id == self.chains[1].chain_id:
            raise ValueError("Configured chains must have distinct chain ids")
        return self

    @property
    def chain_ids(self) -> tuple[int, int]:
        return self.chains[0].chain_id, self.chains[1].chain_id

    def chain(self, chain_id: int) -> ChainConfig:
        for c in self.chains:
            if c.chain_id == chain_id:
                return c
        raise KeyError(f"Unknown chain {chain_id}")


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomli.load(f)


def load_config(config_dir: Path | None = None) -> AppConfig:
    d = config_dir or CONFIG_DIR
    raw: dict[str, Any] = {}

    default_path = d / "default.toml"
    if default_path.exists():
        data = _load_toml(default_path)
        for section in ("chains", "engine", "routing", "execution",
                        "scheduler", "notifications", "models"):
            if section in data:
                raw[section] = data[section]

    return AppConfig(**raw)
