# src/yieldfarm/runtime/executor_boot.py

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from yieldfarm.runtime.chain_config import FarmConfig, load_chain_config
from yieldfarm.runtime.executor import FarmExecutor


@dataclass
class ExecutorBootConfig:
    db_path: str
    chain_id: str


def boot_config_from_env(cfg: Optional[FarmConfig] = None) -> ExecutorBootConfig:
    """Env vars win over the config file for where and which chain to open."""
    c = cfg or load_chain_config()
    return ExecutorBootConfig(
        db_path=os.environ.get("YIELDFARM_DB_PATH", c.db_path),
        chain_id=os.environ.get("YIELDFARM_CHAIN_ID", c.chain_id),
    )


def build_executor(cfg: Optional[ExecutorBootConfig] = None, *, chain_config: Optional[FarmConfig] = None) -> FarmExecutor:
    """
    Build a FarmExecutor from an explicit boot config or, if omitted,
    from environment variables and the chain config file.

    chain_config is only consulted to build genesis for a fresh DB.
    """
    farm_cfg = chain_config or load_chain_config()
    c = cfg or boot_config_from_env(farm_cfg)
    return FarmExecutor(db_path=c.db_path, chain_id=c.chain_id, config=farm_cfg)
