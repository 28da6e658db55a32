from __future__ import annotations

from typing import Any, Dict, Optional

from yieldfarm.runtime.chain_config import FarmConfig, chain_config_from_dict
from yieldfarm.runtime.domain_apply import apply_tx_atomic
from yieldfarm.runtime.genesis import build_genesis_state

Json = Dict[str, Any]

OWNER = "@owner"
DEV = "@dev"
FEES = "@fees"
FARM = "@farm"
VAULT = "@vault"
REWARD = "REWARD"


def make_config(**overrides: Any) -> FarmConfig:
    """Small, round-numbered config for tests.

    TEST ONLY. Two stake tokens (LP, LP2) funded for alice / bob / carol.
    """
    raw: Json = {
        "chain_id": "yieldfarm-test",
        "mode": "dev",
        "db_path": "./data/yieldfarm-test.db",
        "require_signatures": False,
        "reward_token": REWARD,
        "farm_address": FARM,
        "vault_address": VAULT,
        "owner": OWNER,
        "dev_address": DEV,
        "fee_address": FEES,
        "start_block": 0,
        "reward_per_block": 1000,
        "reduction_period_blocks": 100,
        "reduction_rate_bps": 1000,
        "minimum_reward_per_block": 100,
        "vesting_start_block": 0,
        "vesting_end_block": 100,
        "tokens": {
            "LP": {"balances": {"alice": 1000, "bob": 1000, "carol": 1000}},
            "LP2": {"balances": {"alice": 1000, "bob": 1000}},
        },
    }
    raw.update(overrides)
    return chain_config_from_dict(raw)


def make_state(**overrides: Any) -> Json:
    return build_genesis_state(make_config(**overrides))


def submit(state: Json, tx_type: str, signer: str, payload: Optional[Json] = None, *, nonce: int = 0) -> Json:
    """Apply one unsigned tx atomically."""
    return apply_tx_atomic(
        state,
        {"tx_type": tx_type, "signer": signer, "nonce": nonce, "payload": dict(payload or {})},
    )


def add_pool(state: Json, staked_token: str = "LP", weight: int = 1, **kw: Any) -> Json:
    payload: Json = {"weight": weight, "staked_token": staked_token}
    payload.update(kw)
    return submit(state, "FARM_POOL_ADD", OWNER, payload)


def approve_farm(state: Json, account: str, token: str = "LP", amount: int = 10**30) -> Json:
    return submit(state, "TOKEN_APPROVE", account, {"token": token, "spender": FARM, "amount": amount})


def stake(state: Json, account: str, pid: int, amount: int) -> Json:
    return submit(state, "FARM_DEPOSIT", account, {"pid": pid, "amount": amount})


def set_height(state: Json, height: int) -> None:
    state["height"] = int(height)
