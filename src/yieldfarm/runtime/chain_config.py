# src/yieldfarm/runtime/chain_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from yieldfarm.ledger.constants import (
    DEFAULT_MINIMUM_REWARD_PER_BLOCK,
    DEFAULT_REDUCTION_PERIOD_BLOCKS,
    DEFAULT_REDUCTION_RATE_BPS,
    DEFAULT_REWARD_PER_BLOCK,
    FARM_ACCOUNT_ID,
    MAX_BPS,
    REWARD_TOKEN_ID,
    VAULT_ACCOUNT_ID,
    ZERO_ACCOUNT,
)

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


@dataclass(frozen=True)
class FarmConfig:
    chain_id: str
    mode: str  # "dev" | "testnet" | "prod"

    # Single SQLite DB file path for all node persistence.
    db_path: str

    api_host: str
    api_port: int
    log_level: str

    # When set, every tx must carry a valid Ed25519 signature and next nonce.
    require_signatures: bool

    # Farm wiring
    reward_token: str
    farm_address: str
    vault_address: str
    owner: str
    dev_address: str
    fee_address: str

    # Emission schedule
    start_block: int
    reward_per_block: int
    reduction_period_blocks: int
    reduction_rate_bps: int
    minimum_reward_per_block: int

    # Vesting window [vesting_start_block, vesting_end_block)
    vesting_start_block: int
    vesting_end_block: int

    # Extra tokens and initial balances:
    #   {token_id: {"transfer_tax_bps": int, "balances": {account: int}}}
    # An entry for the reward token sets its tax and initial balances; the farm
    # stays its only minter.
    tokens: Dict[str, Json] = field(default_factory=dict)

    # Ed25519 pubkeys (hex) bound at genesis to the owner, dev and fee principals:
    #   {account: pubkey_hex}
    principal_keys: Dict[str, str] = field(default_factory=dict)


_ALLOWED_MODES = {"dev", "testnet", "prod"}


def validate_chain_config(cfg: FarmConfig) -> None:
    """Fail-fast validation for operator config.

    Raises ValueError on the first problem found.
    """

    if not isinstance(cfg.chain_id, str) or not cfg.chain_id.strip():
        raise ValueError("chain_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise ValueError("db_path must be a non-empty string")

    for name in ("reward_token", "farm_address", "vault_address", "owner", "dev_address", "fee_address"):
        v = getattr(cfg, name)
        if not isinstance(v, str) or not v.strip() or v.strip() == ZERO_ACCOUNT:
            raise ValueError(f"{name} must be a non-empty, non-zero account/token id")

    if cfg.farm_address == cfg.vault_address:
        raise ValueError("farm_address and vault_address must differ")

    for name in ("start_block", "reward_per_block", "minimum_reward_per_block", "vesting_start_block"):
        if int(getattr(cfg, name)) < 0:
            raise ValueError(f"{name} must be >= 0; got: {getattr(cfg, name)}")

    if int(cfg.reduction_period_blocks) <= 0:
        raise ValueError(f"reduction_period_blocks must be > 0; got: {cfg.reduction_period_blocks}")

    if not 0 <= int(cfg.reduction_rate_bps) <= MAX_BPS:
        raise ValueError(f"reduction_rate_bps must be 0..{MAX_BPS}; got: {cfg.reduction_rate_bps}")

    if int(cfg.vesting_end_block) <= int(cfg.vesting_start_block):
        raise ValueError(
            "vesting_end_block must be > vesting_start_block; "
            f"got: [{cfg.vesting_start_block}, {cfg.vesting_end_block})"
        )

    if not isinstance(cfg.tokens, dict):
        raise ValueError("tokens must be a mapping of token_id -> token settings")
    for token_id, tok_cfg in cfg.tokens.items():
        if not isinstance(tok_cfg, dict):
            raise ValueError(f"tokens[{token_id!r}] must be a mapping")
        tax = _as_int(tok_cfg.get("transfer_tax_bps"), 0)
        if not 0 <= tax <= MAX_BPS:
            raise ValueError(f"tokens[{token_id!r}].transfer_tax_bps must be 0..{MAX_BPS}; got: {tax}")
        balances = tok_cfg.get("balances") or {}
        if not isinstance(balances, dict):
            raise ValueError(f"tokens[{token_id!r}].balances must be a mapping")
        for acct, amount in balances.items():
            if _as_int(amount, -1) < 0:
                raise ValueError(f"tokens[{token_id!r}].balances[{acct!r}] must be >= 0")

    if not isinstance(cfg.principal_keys, dict):
        raise ValueError("principal_keys must be a mapping of account -> pubkey hex")
    principals = {cfg.owner, cfg.dev_address, cfg.fee_address}
    for acct, pk in cfg.principal_keys.items():
        if acct not in principals:
            raise ValueError(f"principal_keys[{acct!r}] is not the owner, dev or fee address")
        try:
            raw = bytes.fromhex(str(pk))
        except ValueError:
            raw = b""
        if len(raw) != 32:
            raise ValueError(f"principal_keys[{acct!r}] must be a 32-byte Ed25519 pubkey in hex")


def default_chain_config() -> FarmConfig:
    return FarmConfig(
        chain_id="yieldfarm-dev",
        # Production-safe defaults: no block advancing over HTTP, signatures required.
        mode="prod",
        db_path="./data/yieldfarm.db",
        api_host="127.0.0.1",
        api_port=8080,
        log_level="INFO",
        require_signatures=True,
        reward_token=REWARD_TOKEN_ID,
        farm_address=FARM_ACCOUNT_ID,
        vault_address=VAULT_ACCOUNT_ID,
        owner="@owner",
        dev_address="@dev",
        fee_address="@fees",
        start_block=0,
        reward_per_block=DEFAULT_REWARD_PER_BLOCK,
        reduction_period_blocks=DEFAULT_REDUCTION_PERIOD_BLOCKS,
        reduction_rate_bps=DEFAULT_REDUCTION_RATE_BPS,
        minimum_reward_per_block=DEFAULT_MINIMUM_REWARD_PER_BLOCK,
        vesting_start_block=0,
        vesting_end_block=DEFAULT_REDUCTION_PERIOD_BLOCKS * 30,
        tokens={},
        principal_keys={},
    )


def chain_config_from_dict(raw: Json) -> FarmConfig:
    if not isinstance(raw, dict):
        raise ValueError("chain config must be a mapping")

    d = default_chain_config()
    tokens = raw.get("tokens")
    principal_keys = raw.get("principal_keys")

    cfg = FarmConfig(
        chain_id=_as_str(raw.get("chain_id"), d.chain_id),
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level),
        require_signatures=_as_bool(raw.get("require_signatures"), d.require_signatures),
        reward_token=_as_str(raw.get("reward_token"), d.reward_token),
        farm_address=_as_str(raw.get("farm_address"), d.farm_address),
        vault_address=_as_str(raw.get("vault_address"), d.vault_address),
        owner=_as_str(raw.get("owner"), d.owner),
        dev_address=_as_str(raw.get("dev_address"), d.dev_address),
        fee_address=_as_str(raw.get("fee_address"), d.fee_address),
        start_block=_as_int(raw.get("start_block"), d.start_block),
        reward_per_block=_as_int(raw.get("reward_per_block"), d.reward_per_block),
        reduction_period_blocks=_as_int(raw.get("reduction_period_blocks"), d.reduction_period_blocks),
        reduction_rate_bps=_as_int(raw.get("reduction_rate_bps"), d.reduction_rate_bps),
        minimum_reward_per_block=_as_int(raw.get("minimum_reward_per_block"), d.minimum_reward_per_block),
        vesting_start_block=_as_int(raw.get("vesting_start_block"), d.vesting_start_block),
        vesting_end_block=_as_int(raw.get("vesting_end_block"), d.vesting_end_block),
        tokens=dict(tokens) if isinstance(tokens, dict) else d.tokens,
        principal_keys=(
            {str(k): str(v) for k, v in principal_keys.items()} if isinstance(principal_keys, dict) else d.principal_keys
        ),
    )

    validate_chain_config(cfg)
    return cfg


def read_chain_config_file(path: str) -> FarmConfig:
    """Read a JSON or YAML (.yaml / .yml) config file."""
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = yaml.safe_load(text)
    else:
        raw = json.loads(text)
    if not isinstance(raw, dict):
        raise ValueError("chain config must be a JSON/YAML object")
    return chain_config_from_dict(raw)


def load_chain_config(*, config_path: Optional[str] = None) -> FarmConfig:
    p = config_path or os.environ.get("YIELDFARM_CHAIN_CONFIG_PATH")
    if p:
        return read_chain_config_file(p)

    cfg = default_chain_config()
    validate_chain_config(cfg)
    return cfg


def apply_chain_config_to_env(cfg: FarmConfig) -> None:
    """Expose the operator-facing subset of config to env-driven components.

    Variables already set in the environment are left alone.
    """
    validate_chain_config(cfg)
    os.environ.setdefault("YIELDFARM_CHAIN_ID", cfg.chain_id)
    os.environ.setdefault("YIELDFARM_MODE", (cfg.mode or "prod").strip().lower())
    os.environ.setdefault("YIELDFARM_DB_PATH", cfg.db_path)
    os.environ.setdefault("YIELDFARM_LOG_LEVEL", cfg.log_level)
    os.environ.setdefault("YIELDFARM_API_HOST", cfg.api_host)
    os.environ.setdefault("YIELDFARM_API_PORT", str(int(cfg.api_port)))
