# src/yieldfarm/runtime/apply/farm.py
from __future__ import annotations

"""Pool Reward Ledger.

Accrues the reward token to pools by weight and to stakers by their share of
each pool, using a per-pool accumulator so every operation is O(1) in the
number of stakers.

  state["farm"] = {
    "address": str,               # custody account of the ledger (and minter)
    "reward_token": str,
    "vault_address": str,
    "owner": str, "dev_address": str, "fee_address": str,
    "start_block": int,
    "total_weight": int,          # == sum(pool.weight), always
    "pools": [ {pid, staked_token, weight, last_accrual_block,
                acc_reward_per_share, deposit_fee_bps, lock_fraction_bps} ],
    "users": {str(pid): {account: {"amount": int, "reward_debt": int}}},
    "emission": {rate_per_block, period_index, reduction_period_blocks,
                 reduction_rate_bps, minimum_rate_per_block},
  }

For any staker: pending = amount * acc_reward_per_share / SCALE - reward_debt.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from yieldfarm.ledger.constants import MAX_BPS, ZERO_ACCOUNT
from yieldfarm.ledger.rewards import (
    acc_per_share_delta,
    accumulated_reward,
    decay_rate,
    dev_share,
    pending_reward as _pending_from,
    pool_accrual,
    reward_multiplier,
    split_deposit_fee,
    split_payout,
)
from yieldfarm.runtime.apply.accounts import has_active_key
from yieldfarm.runtime.apply.tokens import balance_of, mint, token_exists, transfer, transfer_from
from yieldfarm.runtime.apply.vault import lock as vault_lock
from yieldfarm.runtime.errors import ApplyError
from yieldfarm.runtime.gates import CAP_DEV, CAP_FEE_ADMIN, CAP_OWNER, require_capability, require_not_custody
from yieldfarm.runtime.state_invariants import block_height, emit_event
from yieldfarm.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


@dataclass
class FarmApplyError(ApplyError):
    code: str
    reason: str
    details: Optional[Json] = None


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int)) else ""


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_bool(v: Any, default: bool = False) -> bool:
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def _is_zero_account(a: Any) -> bool:
    s = _as_str(a)
    return not s or s == ZERO_ACCOUNT


def _require_uint(payload: Json, key: str, default: Optional[int] = None) -> int:
    v = payload.get(key)
    if v is None and default is not None:
        return int(default)
    if v is None:
        raise FarmApplyError("invalid_payload", f"missing_{key}", {})
    if isinstance(v, bool):
        raise FarmApplyError("invalid_payload", f"bad_{key}", {key: v})
    i = _as_int(v, -1)
    if i < 0:
        raise FarmApplyError("invalid_payload", f"bad_{key}", {key: v})
    return i


def _require_bps(payload: Json, key: str, default: Optional[int] = None) -> int:
    i = _require_uint(payload, key, default)
    if i > MAX_BPS:
        raise FarmApplyError("invalid_payload", f"{key}_above_max", {key: i, "max": MAX_BPS})
    return i


def _require_account(payload: Json, key: str) -> str:
    a = _as_str(payload.get(key))
    if _is_zero_account(a):
        raise FarmApplyError("invalid_payload", f"zero_{key}", {key: payload.get(key)})
    return a


def _require_principal(state: Json, payload: Json, key: str) -> str:
    """A new capability holder: never a custody account, and registered when signatures are on."""
    a = _require_account(payload, key)
    require_not_custody(state, a, reason=f"custody_{key}")
    params = _as_dict(state.get("params"))
    if _as_bool(params.get("require_signatures"), False) and not has_active_key(state, a):
        raise FarmApplyError("precondition_failed", "account_not_registered", {key: a})
    return a


# ---------------------------------------------------------------------------
# Aggregate access
# ---------------------------------------------------------------------------


def init_farm(
    state: Json,
    *,
    address: str,
    reward_token: str,
    vault_address: str,
    owner: str,
    dev_address: str,
    fee_address: str,
    start_block: int,
    rate_per_block: int,
    reduction_period_blocks: int,
    reduction_rate_bps: int,
    minimum_rate_per_block: int,
) -> Json:
    """Create the farm aggregate (genesis only)."""
    for name, v in (
        ("address", address),
        ("owner", owner),
        ("dev_address", dev_address),
        ("fee_address", fee_address),
        ("vault_address", vault_address),
    ):
        if _is_zero_account(v):
            raise FarmApplyError("invalid_payload", f"zero_{name}", {})

    emission = {
        "rate_per_block": _as_int(rate_per_block, 0),
        "period_index": 0,
        "reduction_period_blocks": _as_int(reduction_period_blocks, 0),
        "reduction_rate_bps": _as_int(reduction_rate_bps, 0),
        "minimum_rate_per_block": _as_int(minimum_rate_per_block, 0),
    }
    if emission["reduction_period_blocks"] <= 0:
        raise FarmApplyError("invalid_payload", "reduction_period_blocks_not_positive", {})
    if not 0 <= emission["reduction_rate_bps"] <= MAX_BPS:
        raise FarmApplyError("invalid_payload", "reduction_rate_bps_out_of_range", {})
    if emission["rate_per_block"] < 0 or emission["minimum_rate_per_block"] < 0:
        raise FarmApplyError("invalid_payload", "negative_rate", {})

    farm = {
        "address": _as_str(address),
        "reward_token": _as_str(reward_token),
        "vault_address": _as_str(vault_address),
        "owner": _as_str(owner),
        "dev_address": _as_str(dev_address),
        "fee_address": _as_str(fee_address),
        "start_block": _as_int(start_block, 0),
        "total_weight": 0,
        "pools": [],
        "users": {},
        "emission": emission,
    }
    state["farm"] = farm
    return farm


def _farm(state: Json) -> Json:
    f = state.get("farm")
    if not isinstance(f, dict):
        raise FarmApplyError("invalid_state", "farm_not_initialized", {})
    if not isinstance(f.get("pools"), list):
        f["pools"] = []
    if not isinstance(f.get("users"), dict):
        f["users"] = {}
    return f


def _pool(farm: Json, pid: Any) -> Json:
    i = _as_int(pid, -1)
    pools: List[Json] = farm["pools"]
    if isinstance(pid, bool) or i < 0 or i >= len(pools):
        raise FarmApplyError("not_found", "pool_not_found", {"pid": pid, "pool_length": len(pools)})
    return pools[i]


def pool_length(state: Json) -> int:
    return len(_farm(state)["pools"])


def get_pool(state: Json, pid: int) -> Json:
    return dict(_pool(_farm(state), pid))


def get_user_stake(state: Json, pid: int, account: str) -> Json:
    """Get-or-default read: a zero record when the account never staked."""
    farm = _farm(state)
    _pool(farm, pid)
    rec = _as_dict(_as_dict(farm["users"].get(str(int(pid)))).get(_as_str(account)))
    return {"amount": _as_int(rec.get("amount"), 0), "reward_debt": _as_int(rec.get("reward_debt"), 0)}


def _ensure_user(farm: Json, pid: int, account: str) -> Json:
    per_pool = farm["users"].get(str(pid))
    if not isinstance(per_pool, dict):
        per_pool = {}
        farm["users"][str(pid)] = per_pool
    rec = per_pool.get(account)
    if not isinstance(rec, dict):
        rec = {"amount": 0, "reward_debt": 0}
        per_pool[account] = rec
    return rec


def staked_balance(state: Json, pid: int) -> int:
    farm = _farm(state)
    pool = _pool(farm, pid)
    return balance_of(state, pool["staked_token"], farm["address"])


# ---------------------------------------------------------------------------
# Accrual
# ---------------------------------------------------------------------------


def sync_pool(state: Json, pid: int) -> Json:
    """Materialize accrual for one pool up to the current block.

    The only place new reward supply is created. Idempotent per block.
    """
    farm = _farm(state)
    pool = _pool(farm, pid)
    now = block_height(state)
    last = _as_int(pool.get("last_accrual_block"), 0)

    if now <= last:
        return {"pid": int(pid), "minted": 0, "acc_reward_per_share": int(pool["acc_reward_per_share"])}

    staked = balance_of(state, pool["staked_token"], farm["address"])
    weight = _as_int(pool.get("weight"), 0)
    if staked == 0 or weight == 0:
        pool["last_accrual_block"] = now
        return {"pid": int(pid), "minted": 0, "acc_reward_per_share": int(pool["acc_reward_per_share"])}

    emission = _as_dict(farm.get("emission"))
    reward = pool_accrual(
        reward_multiplier(last, now),
        _as_int(emission.get("rate_per_block"), 0),
        weight,
        _as_int(farm.get("total_weight"), 0),
    )

    reward_token = farm["reward_token"]
    mint(state, reward_token, farm["address"], farm["dev_address"], dev_share(reward))
    mint(state, reward_token, farm["address"], farm["address"], reward)

    pool["acc_reward_per_share"] = _as_int(pool.get("acc_reward_per_share"), 0) + acc_per_share_delta(reward, staked)
    pool["last_accrual_block"] = now

    return {"pid": int(pid), "minted": int(reward), "acc_reward_per_share": int(pool["acc_reward_per_share"])}


def sync_all(state: Json) -> List[Json]:
    """Sync every pool in ascending pid order. Cost grows with pool count."""
    return [sync_pool(state, pid) for pid in range(pool_length(state))]


def projected_acc_reward_per_share(state: Json, pid: int) -> int:
    """acc_reward_per_share as if sync_pool(pid) ran now; never mutates state."""
    farm = _farm(state)
    pool = _pool(farm, pid)
    acc = _as_int(pool.get("acc_reward_per_share"), 0)
    now = block_height(state)
    last = _as_int(pool.get("last_accrual_block"), 0)
    staked = balance_of(state, pool["staked_token"], farm["address"])
    total_weight = _as_int(farm.get("total_weight"), 0)

    if now > last and staked != 0 and total_weight > 0:
        emission = _as_dict(farm.get("emission"))
        reward = pool_accrual(
            reward_multiplier(last, now),
            _as_int(emission.get("rate_per_block"), 0),
            _as_int(pool.get("weight"), 0),
            total_weight,
        )
        acc += acc_per_share_delta(reward, staked)
    return acc


def pending_reward(state: Json, pid: int, account: str) -> int:
    user = get_user_stake(state, pid, account)
    return _pending_from(user["amount"], projected_acc_reward_per_share(state, pid), user["reward_debt"])


# ---------------------------------------------------------------------------
# Staking
# ---------------------------------------------------------------------------


def _payout_reward(state: Json, to: str, total_amount: int, pid: int) -> Json:
    """Pay `total_amount` of reward: part now, part into the vesting vault.

    Capped at the ledger's reward custody so accumulator rounding can never
    make a payout fail.
    """
    farm = _farm(state)
    pool = _pool(farm, pid)
    reward_token = farm["reward_token"]

    available = balance_of(state, reward_token, farm["address"])
    total = min(int(total_amount), available)
    claimable, locked = split_payout(total, _as_int(pool.get("lock_fraction_bps"), 0))

    if claimable > 0:
        transfer(state, reward_token, farm["address"], to, claimable)
    if locked > 0:
        vault_lock(state, caller=farm["address"], beneficiary=to, amount=locked)

    emit_event(state, "RewardPaid", account=to, pool_id=int(pid), claimable=claimable, locked=locked)
    return {"claimable": claimable, "locked": locked}


def deposit(state: Json, account: str, pid: int, amount: int) -> Json:
    farm = _farm(state)
    pool = _pool(farm, pid)
    pid = int(pid)
    amt = int(amount)
    if amt < 0:
        raise FarmApplyError("invalid_payload", "bad_amount", {"amount": amount})

    sync_pool(state, pid)
    acc = _as_int(pool.get("acc_reward_per_share"), 0)

    user = _ensure_user(farm, pid, account)
    pending = 0
    if _as_int(user.get("amount"), 0) > 0:
        pending = _pending_from(user["amount"], acc, user["reward_debt"])

    fee = 0
    if amt > 0:
        transfer_from(state, pool["staked_token"], farm["address"], account, farm["address"], amt)
        credited, fee = split_deposit_fee(amt, _as_int(pool.get("deposit_fee_bps"), 0))
        user["amount"] = _as_int(user.get("amount"), 0) + credited
    user["reward_debt"] = accumulated_reward(user["amount"], acc)

    paid = {"claimable": 0, "locked": 0}
    if pending > 0:
        paid = _payout_reward(state, account, pending, pid)
    if fee > 0:
        transfer(state, pool["staked_token"], farm["address"], farm["fee_address"], fee)

    emit_event(state, "Deposit", account=account, pool_id=pid, amount=amt)
    return {"pid": pid, "amount": amt, "fee": fee, "staked": int(user["amount"]), "reward": paid}


def withdraw(state: Json, account: str, pid: int, amount: int) -> Json:
    farm = _farm(state)
    pool = _pool(farm, pid)
    pid = int(pid)
    amt = int(amount)
    if amt < 0:
        raise FarmApplyError("invalid_payload", "bad_amount", {"amount": amount})

    have = get_user_stake(state, pid, account)["amount"]
    if amt > have:
        raise FarmApplyError(
            "insufficient_balance",
            "withdraw_exceeds_stake",
            {"pid": pid, "account": account, "staked": have, "amount": amt},
        )

    sync_pool(state, pid)
    acc = _as_int(pool.get("acc_reward_per_share"), 0)

    user = _ensure_user(farm, pid, account)
    pending = _pending_from(user["amount"], acc, user["reward_debt"])

    user["amount"] = _as_int(user.get("amount"), 0) - amt
    user["reward_debt"] = accumulated_reward(user["amount"], acc)

    paid = {"claimable": 0, "locked": 0}
    if pending > 0:
        paid = _payout_reward(state, account, pending, pid)
    if amt > 0:
        transfer(state, pool["staked_token"], farm["address"], account, amt)

    emit_event(state, "Withdraw", account=account, pool_id=pid, amount=amt)
    return {"pid": pid, "amount": amt, "staked": int(user["amount"]), "reward": paid}


def emergency_withdraw(state: Json, account: str, pid: int) -> Json:
    """Return the whole stake now and forfeit every pending reward."""
    farm = _farm(state)
    pool = _pool(farm, pid)
    pid = int(pid)

    user = _ensure_user(farm, pid, account)
    amt = _as_int(user.get("amount"), 0)
    user["amount"] = 0
    user["reward_debt"] = 0

    if amt > 0:
        transfer(state, pool["staked_token"], farm["address"], account, amt)

    emit_event(state, "EmergencyWithdraw", account=account, pool_id=pid, amount=amt)
    return {"pid": pid, "amount": amt}


# ---------------------------------------------------------------------------
# Emission schedule
# ---------------------------------------------------------------------------


def update_emission_rate(state: Json) -> Json:
    farm = _farm(state)
    emission = farm["emission"]
    now = block_height(state)
    start = _as_int(farm.get("start_block"), 0)

    if now < start:
        raise FarmApplyError("precondition_failed", "before_start_block", {"height": now, "start_block": start})

    rate = _as_int(emission.get("rate_per_block"), 0)
    floor = _as_int(emission.get("minimum_rate_per_block"), 0)
    if rate <= floor:
        raise FarmApplyError("precondition_failed", "rate_at_floor", {"rate_per_block": rate, "minimum": floor})

    period_index = _as_int(emission.get("period_index"), 0)
    periods_elapsed = (now - start) // _as_int(emission.get("reduction_period_blocks"), 1)
    if periods_elapsed <= period_index:
        return {"changed": False, "rate_per_block": rate, "period_index": period_index}

    new_rate = decay_rate(
        rate,
        periods_elapsed - period_index,
        _as_int(emission.get("reduction_rate_bps"), 0),
        floor,
    )
    if new_rate >= rate:
        return {"changed": False, "rate_per_block": rate, "period_index": period_index}

    # Accrue the old rate up to now so the new one applies to future blocks only.
    sync_all(state)
    emission["rate_per_block"] = new_rate
    emission["period_index"] = periods_elapsed

    emit_event(state, "EmissionRateUpdated", previous=rate, rate_per_block=new_rate, period_index=periods_elapsed)
    return {"changed": True, "rate_per_block": new_rate, "period_index": periods_elapsed, "previous": rate}


# ---------------------------------------------------------------------------
# Tx appliers
# ---------------------------------------------------------------------------


def _apply_pool_add(state: Json, env: TxEnvelope) -> Json:
    require_capability(state, env.signer, CAP_OWNER)
    payload = _as_dict(env.payload)

    weight = _require_uint(payload, "weight")
    staked_token = _as_str(payload.get("staked_token"))
    deposit_fee_bps = _require_bps(payload, "deposit_fee_bps", 0)
    lock_fraction_bps = _require_bps(payload, "lock_fraction_bps", 0)
    if not staked_token:
        raise FarmApplyError("invalid_payload", "missing_staked_token", {})
    if not token_exists(state, staked_token):
        raise FarmApplyError("not_found", "unknown_token", {"token": staked_token})
    # Custody of the reward token also holds unpaid rewards, so it cannot double as stake.
    if staked_token == _farm(state)["reward_token"]:
        raise FarmApplyError("invalid_payload", "staked_token_is_reward_token", {"token": staked_token})

    if _as_bool(payload.get("sync_first"), False):
        sync_all(state)

    farm = _farm(state)
    pid = len(farm["pools"])
    farm["pools"].append(
        {
            "pid": pid,
            "staked_token": staked_token,
            "weight": weight,
            "last_accrual_block": max(block_height(state), _as_int(farm.get("start_block"), 0)),
            "acc_reward_per_share": 0,
            "deposit_fee_bps": deposit_fee_bps,
            "lock_fraction_bps": lock_fraction_bps,
        }
    )
    farm["total_weight"] = _as_int(farm.get("total_weight"), 0) + weight

    emit_event(state, "PoolAdded", pool_id=pid, staked_token=staked_token, weight=weight)
    return {"applied": "FARM_POOL_ADD", "pid": pid, "total_weight": farm["total_weight"]}


def _apply_pool_set(state: Json, env: TxEnvelope) -> Json:
    require_capability(state, env.signer, CAP_OWNER)
    payload = _as_dict(env.payload)

    farm = _farm(state)
    pid = _require_uint(payload, "pid")
    pool = _pool(farm, pid)
    weight = _require_uint(payload, "weight")
    deposit_fee_bps = _require_bps(payload, "deposit_fee_bps", _as_int(pool.get("deposit_fee_bps"), 0))
    lock_fraction_bps = _require_bps(payload, "lock_fraction_bps", _as_int(pool.get("lock_fraction_bps"), 0))

    if _as_bool(payload.get("sync_first"), False):
        sync_all(state)

    farm["total_weight"] = _as_int(farm.get("total_weight"), 0) - _as_int(pool.get("weight"), 0) + weight
    pool["weight"] = weight
    pool["deposit_fee_bps"] = deposit_fee_bps
    pool["lock_fraction_bps"] = lock_fraction_bps

    emit_event(state, "PoolSet", pool_id=pid, weight=weight)
    return {"applied": "FARM_POOL_SET", "pid": pid, "total_weight": farm["total_weight"]}


def _apply_pool_sync(state: Json, env: TxEnvelope) -> Json:
    payload = _as_dict(env.payload)
    pid = _require_uint(payload, "pid")
    meta = sync_pool(state, pid)
    return {"applied": "FARM_POOL_SYNC", **meta}


def _apply_pools_sync_all(state: Json, env: TxEnvelope) -> Json:
    metas = sync_all(state)
    return {"applied": "FARM_POOLS_SYNC_ALL", "pools": len(metas), "minted": sum(m["minted"] for m in metas)}


def _apply_deposit(state: Json, env: TxEnvelope) -> Json:
    payload = _as_dict(env.payload)
    pid = _require_uint(payload, "pid")
    amount = _require_uint(payload, "amount")
    return {"applied": "FARM_DEPOSIT", **deposit(state, env.signer, pid, amount)}


def _apply_withdraw(state: Json, env: TxEnvelope) -> Json:
    payload = _as_dict(env.payload)
    pid = _require_uint(payload, "pid")
    amount = _require_uint(payload, "amount")
    return {"applied": "FARM_WITHDRAW", **withdraw(state, env.signer, pid, amount)}


def _apply_emergency_withdraw(state: Json, env: TxEnvelope) -> Json:
    payload = _as_dict(env.payload)
    pid = _require_uint(payload, "pid")
    return {"applied": "FARM_EMERGENCY_WITHDRAW", **emergency_withdraw(state, env.signer, pid)}


def _apply_emission_rate_update(state: Json, env: TxEnvelope) -> Json:
    return {"applied": "FARM_EMISSION_RATE_UPDATE", **update_emission_rate(state)}


def _apply_dev_address_set(state: Json, env: TxEnvelope) -> Json:
    require_capability(state, env.signer, CAP_DEV)
    new = _require_principal(state, _as_dict(env.payload), "dev_address")
    farm = _farm(state)
    previous = farm["dev_address"]
    farm["dev_address"] = new
    emit_event(state, "DevAddressSet", previous=previous, dev_address=new)
    return {"applied": "FARM_DEV_ADDRESS_SET", "dev_address": new}


def _apply_fee_address_set(state: Json, env: TxEnvelope) -> Json:
    require_capability(state, env.signer, CAP_FEE_ADMIN)
    new = _require_principal(state, _as_dict(env.payload), "fee_address")
    farm = _farm(state)
    previous = farm["fee_address"]
    farm["fee_address"] = new
    emit_event(state, "FeeAddressSet", previous=previous, fee_address=new)
    return {"applied": "FARM_FEE_ADDRESS_SET", "fee_address": new}


def _apply_ownership_transfer(state: Json, env: TxEnvelope) -> Json:
    require_capability(state, env.signer, CAP_OWNER)
    new = _require_principal(state, _as_dict(env.payload), "new_owner")
    farm = _farm(state)
    previous = farm["owner"]
    farm["owner"] = new
    emit_event(state, "OwnershipTransferred", previous=previous, owner=new)
    return {"applied": "FARM_OWNERSHIP_TRANSFER", "owner": new}


FARM_TX_TYPES: Set[str] = {
    "FARM_POOL_ADD",
    "FARM_POOL_SET",
    "FARM_POOL_SYNC",
    "FARM_POOLS_SYNC_ALL",
    "FARM_DEPOSIT",
    "FARM_WITHDRAW",
    "FARM_EMERGENCY_WITHDRAW",
    "FARM_EMISSION_RATE_UPDATE",
    "FARM_DEV_ADDRESS_SET",
    "FARM_FEE_ADDRESS_SET",
    "FARM_OWNERSHIP_TRANSFER",
}

_APPLIERS = {
    "FARM_POOL_ADD": _apply_pool_add,
    "FARM_POOL_SET": _apply_pool_set,
    "FARM_POOL_SYNC": _apply_pool_sync,
    "FARM_POOLS_SYNC_ALL": _apply_pools_sync_all,
    "FARM_DEPOSIT": _apply_deposit,
    "FARM_WITHDRAW": _apply_withdraw,
    "FARM_EMERGENCY_WITHDRAW": _apply_emergency_withdraw,
    "FARM_EMISSION_RATE_UPDATE": _apply_emission_rate_update,
    "FARM_DEV_ADDRESS_SET": _apply_dev_address_set,
    "FARM_FEE_ADDRESS_SET": _apply_fee_address_set,
    "FARM_OWNERSHIP_TRANSFER": _apply_ownership_transfer,
}


def apply_farm(state: Json, env: TxEnvelope) -> Optional[Json]:
    """
    Returns:
      - dict: applied result
      - None: tx_type not in the farm domain
    """
    t = _as_str(env.tx_type).upper()
    if t not in FARM_TX_TYPES:
        return None
    return _APPLIERS[t](state, env)


__all__ = [
    "FARM_TX_TYPES",
    "FarmApplyError",
    "apply_farm",
    "deposit",
    "emergency_withdraw",
    "get_pool",
    "get_user_stake",
    "init_farm",
    "pending_reward",
    "pool_length",
    "projected_acc_reward_per_share",
    "staked_balance",
    "sync_all",
    "sync_pool",
    "update_emission_rate",
    "withdraw",
]
